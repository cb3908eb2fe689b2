"""
압축 → 복원 → 비교 검증 파이프라인 모듈입니다.

처리 흐름 (프레임 하나당):
    1. pcap 길이 검증 (len > 링크 헤더, len == caplen)
    2. 링크 헤더 제거
    3. 60바이트 이더넷 최소 프레임의 패딩 제거
    4. 압축 (실패 시 프레임을 폴백 덤프에 기록)
    5. 마지막 압축 패킷 정보 조회
    6. 새 컨텍스트면 CID 덤프 파일 (재)생성, 프레임을 CID 덤프에 추가
    7. 복원
    8. 원본 IP 패킷과 비교

각 단계의 실패는 Outcome으로 분류하여 PipelineResult로 반환합니다.
덤프 파일 실패(DumpFileError)만 예외로 호출자에게 전파됩니다.
"""

from __future__ import annotations

import logging
import struct
import sys
from typing import Optional, TextIO

from src.capture import ETHER_FRAME_MIN_LEN, CapturedFrame, LinkLayer
from src.capture.dump_writer import ContextDumpTable
from src.config.schema import CompareConfig
from src.engine import CompressionEngine
from src.errors import CompressionError, DecompressionError, EngineInfoUnavailable
from src.verify import Outcome, PipelineResult
from src.verify.comparator import compare_packets

logger = logging.getLogger(__name__)

IPV6_HEADER_LEN = 40


def ip_total_length(ip_packet: bytes) -> Optional[int]:
    """
    IP 헤더에 기록된 전체 패킷 길이를 반환합니다.

    IPv4는 Total Length 필드, 그 외는 IPv6로 보고 40 + Payload Length를 사용합니다.
    헤더가 잘려 길이를 읽을 수 없으면 None을 반환합니다.
    """
    if not ip_packet:
        return None
    version = (ip_packet[0] >> 4) & 0x0F
    if version == 4:
        if len(ip_packet) < 4:
            return None
        return struct.unpack_from("!H", ip_packet, 2)[0]
    if len(ip_packet) < 6:
        return None
    return IPV6_HEADER_LEN + struct.unpack_from("!H", ip_packet, 4)[0]


class VerifyPipeline:
    """
    프레임 하나를 압축-복원-비교하는 검증 파이프라인입니다.

    엔진과 덤프 테이블은 세션 컨트롤러가 소유하며 여기서는 사용만 합니다.
    """

    def __init__(
        self,
        engine: CompressionEngine,
        dumps: ContextDumpTable,
        link_layer: LinkLayer,
        compare_config: CompareConfig,
        max_contexts: int,
        diff_out: Optional[TextIO] = None,
    ) -> None:
        """
        파라미터:
            engine: 압축/복원 엔진
            dumps: 컨텍스트별 덤프 테이블
            link_layer: 세션 링크 계층
            compare_config: 비교 출력 설정
            max_contexts: 유효한 컨텍스트 ID 개수
            diff_out: 불일치 hex 덤프 출력 스트림 (기본 sys.stdout)
        """
        self._engine = engine
        self._dumps = dumps
        self._link_layer = link_layer
        self._max_dump_bytes = compare_config.max_dump_bytes
        self._max_contexts = max_contexts
        self._diff_out = diff_out

    def process(self, frame: CapturedFrame) -> PipelineResult:
        """
        프레임 하나를 검증합니다.

        반환값:
            PipelineResult: 결과 분류와 (알게 된 경우) 컨텍스트 ID

        예외:
            DumpFileError: 덤프 파일 열기/쓰기/삭제 실패 시
        """
        header_length = self._link_layer.header_length

        # 1. 길이 검증
        if (frame.declared_length <= header_length
                or frame.declared_length != frame.captured_length
                or len(frame.data) < frame.declared_length):
            detail = (
                f"bad PCAP packet (len = {frame.declared_length}, "
                f"caplen = {frame.captured_length})"
            )
            logger.error(detail)
            return PipelineResult(Outcome.MALFORMED_CAPTURE, detail=detail)

        # 2. 링크 헤더 제거
        ip_packet = frame.data[header_length:frame.declared_length]

        # 3. 이더넷 패딩 제거
        ip_packet = self._strip_ethernet_padding(frame, ip_packet)

        # 4. 압축
        try:
            rohc_packet = self._engine.compress(ip_packet)
        except CompressionError as exc:
            logger.error(f"{exc}")
            self._dumps.write_fallback(frame)
            return PipelineResult(Outcome.COMPRESSION_FAILURE, detail=str(exc))

        # 5. 컨텍스트 정보
        try:
            info = self._engine.last_packet_info()
        except EngineInfoUnavailable as exc:
            logger.error(f"{exc}")
            return PipelineResult(Outcome.ENGINE_INFO_UNAVAILABLE, detail=str(exc))

        context_id = info.context_id
        if not 0 <= context_id < self._max_contexts:
            detail = (
                f"engine reported context ID {context_id} outside "
                f"0..{self._max_contexts - 1}"
            )
            logger.error(detail)
            return PipelineResult(Outcome.ENGINE_INFO_UNAVAILABLE, context_id, detail)

        # 6. 컨텍스트 덤프
        if info.is_new_context:
            self._dumps.open_context(context_id)
        self._dumps.append(context_id, frame)

        # 7. 복원
        try:
            decompressed = self._engine.decompress(rohc_packet)
        except DecompressionError as exc:
            logger.error(f"{exc}")
            return PipelineResult(Outcome.DECOMPRESSION_FAILURE, context_id, str(exc))

        # 8. 비교
        out = self._diff_out or sys.stdout
        if not compare_packets(ip_packet, decompressed, out, self._max_dump_bytes):
            detail = "comparison with original packet failed"
            logger.error(detail)
            return PipelineResult(Outcome.MISMATCH_FAILURE, context_id, detail)

        return PipelineResult(Outcome.SUCCESS, context_id)

    def _strip_ethernet_padding(self, frame: CapturedFrame, ip_packet: bytes) -> bytes:
        """60바이트 최소 이더넷 프레임이면 IP 길이 필드 뒤의 패딩을 잘라냅니다."""
        if (self._link_layer is not LinkLayer.ETHERNET
                or frame.declared_length != ETHER_FRAME_MIN_LEN):
            return ip_packet

        total_length = ip_total_length(ip_packet)
        if total_length is None or total_length >= len(ip_packet):
            return ip_packet

        logger.warning(
            f"the Ethernet frame has {len(ip_packet) - total_length} bytes of "
            f"padding after the {total_length} byte IP packet!"
        )
        return ip_packet[:total_length]
