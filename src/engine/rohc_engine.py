"""
librohc 기반 압축 엔진 모듈입니다.

역할:
- ROHC 압축기/복원기 한 쌍 생성 및 설정
  (프로파일 활성화, CID 타입, MAX_CID, 트레이스/난수/RTP 감지 콜백)
- IP 패킷 압축 → ROHC 패킷, ROHC 패킷 복원 → IP 패킷
- 마지막 압축 패킷의 컨텍스트 정보 조회

ctypes 콜백 객체는 엔진 수명 동안 인스턴스에 보관합니다.
C 쪽이 함수 포인터를 계속 호출하므로 GC되면 안 됩니다.

사용 예시:
    >>> engine = RohcEngine(config.engine, callbacks)
    >>> rohc_packet = engine.compress(ip_packet)
    >>> info = engine.last_packet_info()
    >>> engine.decompress(rohc_packet)
    >>> engine.close()
"""

from __future__ import annotations

import ctypes
import logging
from typing import Optional

from src.config.schema import EngineConfig
from src.engine import (
    ENABLED_PROFILES,
    EngineCallbacks,
    LastPacketInfo,
    TraceEntity,
    TraceLevel,
)
from src.engine.rohc_bindings import (
    LastPacketInfo2,
    RANDOM_CALLBACK,
    ROHC_LARGE_CID_MAX,
    ROHC_SMALL_CID_MAX,
    RTP_DETECT_CALLBACK,
    RohcCidType,
    RohcLibraryNotFoundError,
    TRACE_CALLBACK,
    _load_library,
    ip_header_length,
    make_input_buffer,
    make_output_buffer,
)
from src.errors import (
    CompressionError,
    DecompressionError,
    EngineConfigError,
    EngineInfoUnavailable,
)

logger = logging.getLogger(__name__)

# UDP 헤더 길이 (바이트)
_UDP_HEADER_LEN = 8


class RohcEngine:
    """
    librohc 압축기/복원기 쌍을 감싸는 CompressionEngine 구현체입니다.

    복원기는 압축기와 연결된 형태로 생성되며(피드백 채널 공유),
    양쪽 모두 같은 CID 타입과 최대 CID로 설정됩니다.
    """

    def __init__(self, config: EngineConfig, callbacks: EngineCallbacks) -> None:
        """
        엔진을 생성하고 설정합니다.

        파라미터:
            config: 엔진 설정 (cid_type, max_contexts, library_path, max_packet_size)
            callbacks: 트레이스/난수/RTP 감지 콜백

        예외:
            EngineConfigError: 라이브러리 로드, 생성 또는 설정 실패 시
        """
        self._config = config
        self._callbacks = callbacks
        self._max_packet_size = config.max_packet_size
        self._comp: Optional[int] = None
        self._decomp: Optional[int] = None

        try:
            self._lib = _load_library(config.library_path)
        except RohcLibraryNotFoundError as exc:
            raise EngineConfigError(str(exc)) from exc

        # C 쪽에 등록되는 콜백 객체 (GC 방지를 위해 보관)
        self._trace_cb = TRACE_CALLBACK(self._on_trace)
        self._random_cb = RANDOM_CALLBACK(self._on_random)
        self._rtp_detect_cb = RTP_DETECT_CALLBACK(self._on_rtp_detect)

        try:
            self._create_compressor()
            self._create_decompressor()
        except EngineConfigError:
            self.close()
            raise

        logger.info(
            f"ROHC 엔진 설정 완료: cid_type={config.cid_type}, "
            f"max_contexts={config.max_contexts}"
        )

    # =========================================================================
    # 설정
    # =========================================================================

    def _create_compressor(self) -> None:
        lib = self._lib
        max_cid = self._config.max_contexts - 1

        comp = lib.rohc_alloc_compressor(max_cid, 0, 0, 0)
        if not comp:
            raise EngineConfigError("cannot create the ROHC compressor")
        self._comp = comp

        if not lib.rohc_comp_set_traces_cb(comp, self._trace_cb):
            raise EngineConfigError("cannot set trace callback for compressor")

        for profile in ENABLED_PROFILES:
            lib.rohc_activate_profile(comp, int(profile))

        lib.rohc_c_set_large_cid(comp, int(self._config.use_large_cid))
        lib.rohc_c_set_max_cid(comp, max_cid)

        if not lib.rohc_comp_set_random_cb(comp, self._random_cb, None):
            raise EngineConfigError("failed to set the callback for random numbers")

        # 포트 기반 RTP 감지를 끄고 휴리스틱 콜백만 사용
        if not lib.rohc_comp_reset_rtp_ports(comp):
            raise EngineConfigError("failed to reset the list of RTP ports")

        if not lib.rohc_comp_set_rtp_detection_cb(comp, self._rtp_detect_cb, None):
            raise EngineConfigError("failed to set the RTP detection callback")

        logger.debug(f"압축기 생성: max_cid={max_cid}, large_cid={self._config.use_large_cid}")

    def _create_decompressor(self) -> None:
        lib = self._lib

        decomp = lib.rohc_alloc_decompressor(self._comp)
        if not decomp:
            raise EngineConfigError("cannot create the ROHC decompressor")
        self._decomp = decomp

        if not lib.rohc_decomp_set_traces_cb(decomp, self._trace_cb):
            raise EngineConfigError("cannot set trace callback for decompressor")

        if self._config.use_large_cid:
            cid_type, max_cid = RohcCidType.LARGE_CID, ROHC_LARGE_CID_MAX
        else:
            cid_type, max_cid = RohcCidType.SMALL_CID, ROHC_SMALL_CID_MAX

        if not lib.rohc_decomp_set_cid_type(decomp, cid_type):
            raise EngineConfigError(
                f"failed to set CID type to {self._config.cid_type} for decompressor"
            )
        if not lib.rohc_decomp_set_max_cid(decomp, max_cid):
            raise EngineConfigError(
                f"failed to set MAX_CID to {max_cid} for decompressor"
            )

    # =========================================================================
    # 패킷 처리
    # =========================================================================

    def compress(self, ip_packet: bytes) -> bytes:
        """
        IP 패킷을 ROHC 패킷으로 압축합니다.

        예외:
            CompressionError: 결과 크기가 0 이하일 때
        """
        out = make_output_buffer(self._max_packet_size)
        size = self._lib.rohc_compress(
            self._comp, make_input_buffer(ip_packet), len(ip_packet),
            out, self._max_packet_size,
        )
        if size <= 0:
            raise CompressionError("compression failed")
        return bytes(out[:size])

    def decompress(self, rohc_packet: bytes) -> bytes:
        """
        ROHC 패킷을 IP 패킷으로 복원합니다.

        예외:
            DecompressionError: 결과 크기가 0 이하일 때
        """
        out = make_output_buffer(self._max_packet_size)
        size = self._lib.rohc_decompress(
            self._decomp, make_input_buffer(rohc_packet), len(rohc_packet),
            out, self._max_packet_size,
        )
        if size <= 0:
            raise DecompressionError("decompression failed")
        return bytes(out[:size])

    def last_packet_info(self) -> LastPacketInfo:
        """
        마지막 압축 패킷의 컨텍스트 정보를 조회합니다.

        예외:
            EngineInfoUnavailable: 엔진이 정보를 제공하지 못할 때
        """
        info = LastPacketInfo2()
        info.version_major = 0
        info.version_minor = 0
        if not self._lib.rohc_comp_get_last_packet_info2(self._comp, ctypes.byref(info)):
            raise EngineInfoUnavailable("failed to get compression info")
        return LastPacketInfo(
            context_id=int(info.context_id),
            is_new_context=bool(info.is_context_init),
        )

    def version(self) -> Optional[str]:
        raw = self._lib.rohc_version()
        return raw.decode('ascii', errors='replace') if raw else None

    def close(self) -> None:
        """복원기와 압축기를 해제합니다. 여러 번 호출해도 안전합니다."""
        if self._decomp:
            self._lib.rohc_free_decompressor(self._decomp)
            self._decomp = None
        if self._comp:
            self._lib.rohc_free_compressor(self._comp)
            self._comp = None

    # =========================================================================
    # C 콜백
    # =========================================================================

    def _on_trace(self, level: int, entity: int, profile: int, fmt: Optional[bytes]) -> None:
        message = fmt.decode('utf-8', errors='replace').rstrip('\n') if fmt else ''
        try:
            trace_level = TraceLevel(level)
        except ValueError:
            trace_level = TraceLevel.ERROR
        try:
            trace_entity = TraceEntity(entity)
        except ValueError:
            trace_entity = TraceEntity.COMPRESSOR
        self._callbacks.trace(trace_level, trace_entity, profile, message)

    def _on_random(self, comp: Optional[int], user_context: Optional[int]) -> int:
        return self._callbacks.random()

    def _on_rtp_detect(
        self,
        ip: Optional[int],
        udp: Optional[int],
        payload: Optional[int],
        payload_size: int,
        rtp_private: Optional[int],
    ) -> bool:
        if not ip or not udp:
            return False
        ip_header = ctypes.string_at(ip, ip_header_length(ip))
        udp_header = ctypes.string_at(udp, _UDP_HEADER_LEN)
        payload_bytes = ctypes.string_at(payload, payload_size) if payload else b''
        return bool(self._callbacks.rtp_detect(ip_header, udp_header, payload_bytes))
