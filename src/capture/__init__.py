"""
캡처 모듈 패키지

공통 데이터 타입 정의:
- LinkLayer: 지원하는 링크 계층 종류와 헤더 길이
- CapturedFrame: 캡처된 프레임 컨테이너
- CaptureSource: 라이브/파일 캡처가 공통으로 제공하는 인터페이스
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional, Protocol

# pcap 링크 계층 타입 (DLT_*) 값
DLT_EN10MB = 1
DLT_RAW = 101
DLT_RAW_BSD = 12      # 일부 플랫폼의 DLT_RAW 값
DLT_RAW_OPENBSD = 14
DLT_LINUX_SLL = 113

# 이더넷 최소 프레임 길이 (FCS 제외, 바이트)
ETHER_FRAME_MIN_LEN = 60


class LinkLayer(enum.Enum):
    """
    세션이 지원하는 링크 계층입니다.

    값은 (pcap DLT 번호, 링크 헤더 길이) 튜플입니다.
    """
    ETHERNET = (DLT_EN10MB, 14)
    LINUX_COOKED = (DLT_LINUX_SLL, 16)
    RAW = (DLT_RAW, 0)

    @property
    def dlt(self) -> int:
        """덤프 파일에 기록할 pcap 링크 타입을 반환합니다."""
        return self.value[0]

    @property
    def header_length(self) -> int:
        """IP 데이터 앞의 링크 헤더 길이(바이트)를 반환합니다."""
        return self.value[1]

    @classmethod
    def from_dlt(cls, dlt: int) -> Optional["LinkLayer"]:
        """pcap 링크 타입으로부터 LinkLayer를 찾습니다. 지원하지 않으면 None."""
        if dlt == DLT_EN10MB:
            return cls.ETHERNET
        if dlt == DLT_LINUX_SLL:
            return cls.LINUX_COOKED
        if dlt in (DLT_RAW, DLT_RAW_BSD, DLT_RAW_OPENBSD):
            return cls.RAW
        return None


@dataclass(frozen=True)
class CapturedFrame:
    """
    캡처된 프레임 데이터 컨테이너입니다. 생성 후 변경할 수 없습니다.

    필드:
        data: 캡처된 원시 바이트 (링크 헤더 포함)
        declared_length: 선로상의 원래 프레임 길이 (pcap len)
        captured_length: 실제로 캡처된 길이 (pcap caplen)
        timestamp: 캡처 시각 (epoch 초, 소수점 이하 마이크로초)
    """
    data: bytes
    declared_length: int
    captured_length: int
    timestamp: float = 0.0

    @classmethod
    def from_bytes(cls, data: bytes, timestamp: float = 0.0) -> "CapturedFrame":
        """선언 길이와 캡처 길이가 모두 데이터 길이와 같은 프레임을 만듭니다."""
        return cls(
            data=bytes(data),
            declared_length=len(data),
            captured_length=len(data),
            timestamp=timestamp,
        )


class CaptureSource(Protocol):
    """
    LiveCapture와 PcapFileCapture가 공통으로 제공하는 인터페이스입니다.

    next_frame()은 캡처 종료(파일 끝, 소켓 종료, 정지 요청) 시 None을 반환합니다.
    """

    @property
    def link_layer(self) -> LinkLayer: ...

    @property
    def description(self) -> str: ...

    def open(self) -> None: ...

    def next_frame(self) -> Optional[CapturedFrame]: ...

    def close(self) -> None: ...
