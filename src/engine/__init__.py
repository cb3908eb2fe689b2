"""
압축 엔진 모듈 패키지

공통 데이터 타입 정의:
- TraceLevel, TraceEntity: 엔진 트레이스 수준과 발신 주체
- LastPacketInfo: 마지막 압축 패킷의 컨텍스트 정보
- EngineCallbacks: 엔진 생성 시 주입하는 콜백 묶음
- CompressionEngine: 파이프라인이 사용하는 엔진 인터페이스
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol


class TraceLevel(enum.IntEnum):
    """엔진 트레이스 수준입니다. 값은 librohc rohc_trace_level_t와 같습니다."""
    DEBUG = 0
    INFO = 1
    WARNING = 2
    ERROR = 3


class TraceEntity(enum.IntEnum):
    """트레이스를 남긴 엔진 측 주체입니다."""
    COMPRESSOR = 0
    DECOMPRESSOR = 1


class RohcProfile(enum.IntEnum):
    """세션이 활성화하는 ROHC 프로파일 번호입니다."""
    UNCOMPRESSED = 0x0000
    RTP = 0x0001
    UDP = 0x0002
    ESP = 0x0003
    IP = 0x0004
    UDPLITE = 0x0008


# 세션 시작 시 활성화하는 프로파일 순서
ENABLED_PROFILES: tuple[RohcProfile, ...] = (
    RohcProfile.UNCOMPRESSED,
    RohcProfile.UDP,
    RohcProfile.IP,
    RohcProfile.UDPLITE,
    RohcProfile.RTP,
    RohcProfile.ESP,
)


@dataclass(frozen=True)
class LastPacketInfo:
    """
    마지막으로 압축한 패킷에 대한 엔진 보고입니다.

    필드:
        context_id: 패킷이 사용한 컨텍스트 ID
        is_new_context: 이 패킷으로 컨텍스트가 (재)초기화되었는지 여부
    """
    context_id: int
    is_new_context: bool


# (level, entity, profile, message) → None
TraceCallback = Callable[[TraceLevel, TraceEntity, int, str], None]
# () → 압축기가 사용할 난수 (세션 재현을 위해 고정값)
RandomCallback = Callable[[], int]
# (ip_header, udp_header, payload) → RTP 여부
RtpDetectCallback = Callable[[bytes, bytes, bytes], bool]


def fixed_random() -> int:
    """압축기 난수 콜백입니다. 실행 간 재현성을 위해 항상 0을 반환합니다."""
    return 0


def _ignore_trace(level: TraceLevel, entity: TraceEntity, profile: int, message: str) -> None:
    return None


def _never_rtp(ip_header: bytes, udp_header: bytes, payload: bytes) -> bool:
    return False


@dataclass
class EngineCallbacks:
    """
    엔진 생성 시 주입하는 콜백 묶음입니다.

    엔진은 이 객체를 통해서만 세션의 트레이스 버퍼와 분류기에 접근합니다.
    """
    trace: TraceCallback = field(default=_ignore_trace)
    random: RandomCallback = field(default=fixed_random)
    rtp_detect: RtpDetectCallback = field(default=_never_rtp)


class CompressionEngine(Protocol):
    """
    압축기/복원기 한 쌍을 감싸는 엔진 인터페이스입니다.

    compress()/decompress()는 실패 시 CompressionError/DecompressionError를,
    last_packet_info()는 EngineInfoUnavailable을 발생시킵니다.
    """

    def compress(self, ip_packet: bytes) -> bytes: ...

    def decompress(self, rohc_packet: bytes) -> bytes: ...

    def last_packet_info(self) -> LastPacketInfo: ...

    def version(self) -> Optional[str]: ...

    def close(self) -> None: ...
