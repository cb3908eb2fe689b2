"""
pcap 파일 재생 캡처 모듈입니다.

역할:
- scapy RawPcapReader로 pcap/pcapng 파일을 한 프레임씩 읽어 CapturedFrame 생성
- 파일 헤더의 링크 타입으로 세션의 LinkLayer 결정
- LiveCapture와 동일한 next_frame() 인터페이스 제공 (파일 끝 = 캡처 종료)

라이브 장치 없이 실제 트래픽 녹화본으로 같은 검증 루프를 돌릴 때 사용합니다.

사용 예시:
    >>> capture = PcapFileCapture(config.capture)
    >>> capture.open()
    >>> frame = capture.next_frame()
    >>> capture.close()
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

from scapy.error import Scapy_Exception
from scapy.utils import RawPcapReader

from src.capture import CapturedFrame, LinkLayer
from src.config.schema import CaptureConfig
from src.errors import CaptureOpenError, UnsupportedLinkTypeError

# 모듈 로거
logger = logging.getLogger(__name__)


class PcapFileCapture:
    """
    pcap 파일을 처음부터 끝까지 한 번 재생하는 캡처 소스입니다.

    프레임의 pcap 헤더에 기록된 len/caplen을 그대로 보존하므로
    잘린 캡처(caplen < len)도 파이프라인의 malformed 검사까지 전달됩니다.
    """

    def __init__(self, config: CaptureConfig) -> None:
        """
        PcapFileCapture를 초기화합니다.

        파라미터:
            config (CaptureConfig): 캡처 설정 (pcap_path 사용)
        """
        self._path = Path(config.pcap_path)
        self._reader: Optional[Any] = None
        self._link_layer: Optional[LinkLayer] = None
        # pcapng에서 링크 타입 확인을 위해 먼저 읽어둔 프레임
        self._pending: Optional[CapturedFrame] = None
        self._frame_count: int = 0

        logger.info(f"PcapFileCapture 초기화 완료: path={self._path}")

    # =========================================================================
    # 공개 인터페이스
    # =========================================================================

    @property
    def link_layer(self) -> LinkLayer:
        """파일의 링크 계층을 반환합니다. open() 이후에만 유효합니다."""
        if self._link_layer is None:
            raise RuntimeError("캡처 소스가 열리지 않았습니다. open()을 먼저 호출하세요.")
        return self._link_layer

    @property
    def description(self) -> str:
        return f"file '{self._path}'"

    def open(self) -> None:
        """
        pcap 파일을 열고 링크 계층을 결정합니다.

        예외:
            CaptureOpenError: 파일이 없거나 pcap 형식이 아닐 때
            UnsupportedLinkTypeError: Ethernet/Linux cooked/Raw 외의 링크 타입일 때
        """
        if self._reader is not None:
            logger.warning("PcapFileCapture가 이미 열려 있습니다")
            return

        try:
            self._reader = RawPcapReader(str(self._path))
        except (OSError, Scapy_Exception) as exc:
            raise CaptureOpenError(
                f"failed to open capture file '{self._path}': {exc}"
            ) from exc

        dlt = getattr(self._reader, "linktype", None)
        if dlt is None:
            # pcapng는 인터페이스 블록마다 링크 타입을 가지므로 첫 프레임에서 확인
            self._pending, dlt = self._read_one()

        link_layer = LinkLayer.from_dlt(dlt) if dlt is not None else None
        if link_layer is None:
            self.close()
            raise UnsupportedLinkTypeError(
                f"link layer type {dlt} not supported in source dump "
                f"(supported = {[layer.dlt for layer in LinkLayer]})"
            )

        self._link_layer = link_layer
        logger.info(
            f"pcap 파일 열기 완료: {self._path}, "
            f"link_layer={link_layer.name} (header {link_layer.header_length} bytes)"
        )

    def next_frame(self) -> Optional[CapturedFrame]:
        """다음 프레임을 반환합니다. 파일 끝이면 None을 반환합니다."""
        if self._reader is None:
            return None

        if self._pending is not None:
            frame, self._pending = self._pending, None
        else:
            frame, _ = self._read_one()

        if frame is None:
            logger.info(f"pcap 파일 재생 완료: 총 {self._frame_count}개 프레임")
            return None

        self._frame_count += 1
        return frame

    def close(self) -> None:
        """파일 핸들을 닫습니다. 여러 번 호출해도 안전합니다."""
        if self._reader is None:
            return
        self._reader.close()
        self._reader = None
        self._pending = None
        logger.debug(f"pcap 파일 닫기: {self._path}")

    # =========================================================================
    # 내부 헬퍼
    # =========================================================================

    def _read_one(self) -> tuple[Optional[CapturedFrame], Optional[int]]:
        """
        리더에서 프레임 하나를 읽어 (CapturedFrame, 링크 타입) 튜플로 반환합니다.

        pcap 메타데이터에는 sec/usec/wirelen/caplen이, pcapng 메타데이터에는
        linktype/wirelen과 분해된 타임스탬프가 들어 있습니다.
        """
        record = next(self._reader, None)
        if record is None:
            return None, None

        data, metadata = record
        data = bytes(data)
        # 0은 손상된 레코드의 실제 값이므로 필드가 없을 때만 데이터 길이로 대체
        wirelen = getattr(metadata, "wirelen", None)
        caplen = getattr(metadata, "caplen", None)
        frame = CapturedFrame(
            data=data,
            declared_length=len(data) if wirelen is None else wirelen,
            captured_length=len(data) if caplen is None else caplen,
            timestamp=self._record_timestamp(metadata),
        )
        return frame, getattr(metadata, "linktype", None)

    @staticmethod
    def _record_timestamp(metadata: Any) -> float:
        """레코드 메타데이터에서 캡처 시각(epoch 초)을 계산합니다."""
        if hasattr(metadata, "tshigh") and hasattr(metadata, "tslow"):
            # pcapng: 64비트 tick 카운터, tsresol = 초당 tick 수
            ticks = (metadata.tshigh << 32) + metadata.tslow
            return ticks / (getattr(metadata, "tsresol", None) or 1_000_000)
        return getattr(metadata, "sec", 0) + getattr(metadata, "usec", 0) / 1_000_000
