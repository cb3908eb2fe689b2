"""
단위 테스트 공용 픽스처

- FakeEngine: librohc 없이 압축-복원 왕복을 흉내 내는 엔진
  (5-tuple마다 컨텍스트 할당, 실패/변조 주입 가능)
- make_udp_frame: 이더넷/IPv4/UDP 프레임 바이트 생성
- ListCapture: 미리 준비한 프레임 목록을 재생하는 캡처 소스
"""

from __future__ import annotations

from typing import Optional

import pytest
from scapy.layers.inet import IP, UDP
from scapy.layers.l2 import Ether
from scapy.packet import Raw

from src.capture import CapturedFrame, LinkLayer
from src.config.schema import AppConfig, EngineConfig
from src.engine import EngineCallbacks, LastPacketInfo, TraceEntity, TraceLevel
from src.errors import CompressionError, DecompressionError, EngineInfoUnavailable

_ROHC_MARKER = b"\xfd"


class FakeEngine:
    """
    CompressionEngine 테스트 대역입니다.

    compress()는 표식 바이트를 앞에 붙이고 decompress()는 제거합니다.
    IPv4 5-tuple별로 CID를 0부터 순서대로 할당하고, 처음 쓰일 때 새 컨텍스트로 보고합니다.
    실패 주입 집합에는 1부터 시작하는 호출 순번을 넣습니다.
    """

    def __init__(self, config: EngineConfig, callbacks: EngineCallbacks) -> None:
        self.config = config
        self.callbacks = callbacks
        self.compressed: list[bytes] = []
        self.closed = False
        self.fail_compress_on: set[int] = set()
        self.fail_decompress_on: set[int] = set()
        self.corrupt_on: set[int] = set()
        self.info_unavailable_on: set[int] = set()
        # 호출 순번 → 강제로 보고할 (cid, is_new)
        self.forced_info: dict[int, tuple[int, bool]] = {}
        self._contexts: dict[tuple, int] = {}
        self._last: Optional[LastPacketInfo] = None

    @property
    def calls(self) -> int:
        return len(self.compressed)

    def compress(self, ip_packet: bytes) -> bytes:
        self.compressed.append(ip_packet)
        call = self.calls
        self.callbacks.trace(TraceLevel.DEBUG, TraceEntity.COMPRESSOR, 2, f"compress packet #{call}")
        if call in self.fail_compress_on:
            self.callbacks.trace(TraceLevel.ERROR, TraceEntity.COMPRESSOR, 2, "no profile found")
            raise CompressionError("compression failed")

        if call in self.forced_info:
            cid, is_new = self.forced_info[call]
        else:
            flow = self._flow_key(ip_packet)
            is_new = flow not in self._contexts
            if is_new:
                self._contexts[flow] = len(self._contexts)
            cid = self._contexts[flow]
        self._last = LastPacketInfo(context_id=cid, is_new_context=is_new)
        return _ROHC_MARKER + ip_packet

    def decompress(self, rohc_packet: bytes) -> bytes:
        call = self.calls
        self.callbacks.trace(TraceLevel.DEBUG, TraceEntity.DECOMPRESSOR, 2, f"decompress packet #{call}")
        if call in self.fail_decompress_on:
            raise DecompressionError("decompression failed")
        packet = rohc_packet[len(_ROHC_MARKER):]
        if call in self.corrupt_on:
            packet = packet[:-1] + bytes([packet[-1] ^ 0xFF])
        return packet

    def last_packet_info(self) -> LastPacketInfo:
        if self.calls in self.info_unavailable_on or self._last is None:
            raise EngineInfoUnavailable("failed to get compression info")
        return self._last

    def version(self) -> Optional[str]:
        return "fake"

    def close(self) -> None:
        self.closed = True

    @staticmethod
    def _flow_key(ip_packet: bytes) -> tuple:
        ihl = (ip_packet[0] & 0x0F) * 4
        return (ip_packet[12:16], ip_packet[16:20], ip_packet[9], ip_packet[ihl:ihl + 4])


class ListCapture:
    """프레임 목록을 순서대로 반환하는 CaptureSource 테스트 대역입니다."""

    def __init__(self, frames: list[CapturedFrame], link_layer: LinkLayer = LinkLayer.ETHERNET,
                 on_frame=None) -> None:
        self._frames = list(frames)
        self._link_layer = link_layer
        self._on_frame = on_frame
        self.opened = False
        self.closed = False
        self.served = 0

    @property
    def link_layer(self) -> LinkLayer:
        return self._link_layer

    @property
    def description(self) -> str:
        return "test frames"

    def open(self) -> None:
        self.opened = True

    def next_frame(self) -> Optional[CapturedFrame]:
        if not self._frames:
            return None
        self.served += 1
        frame = self._frames.pop(0)
        if self._on_frame is not None:
            self._on_frame(self.served)
        return frame

    def close(self) -> None:
        self.closed = True


def build_udp_frame(
    payload: bytes = b"hello rohc",
    sport: int = 4000,
    dport: int = 5062,
    src: str = "10.0.0.1",
    dst: str = "10.0.0.2",
) -> bytes:
    """이더넷/IPv4/UDP 프레임 바이트를 만듭니다."""
    packet = (
        Ether(src="00:11:22:33:44:55", dst="66:77:88:99:aa:bb")
        / IP(src=src, dst=dst, id=1, ttl=64)
        / UDP(sport=sport, dport=dport)
        / Raw(load=payload)
    )
    return bytes(packet)


@pytest.fixture
def make_udp_frame():
    """CapturedFrame 생성 함수를 반환합니다."""

    def _make(payload: bytes = b"hello rohc", timestamp: float = 1_700_000_000.25, **kwargs) -> CapturedFrame:
        return CapturedFrame.from_bytes(build_udp_frame(payload, **kwargs), timestamp=timestamp)

    return _make


@pytest.fixture
def fake_engines():
    """생성된 FakeEngine을 기록하는 엔진 팩토리와 목록을 반환합니다."""
    created: list[FakeEngine] = []

    def _factory(config: EngineConfig, callbacks: EngineCallbacks) -> FakeEngine:
        engine = FakeEngine(config, callbacks)
        created.append(engine)
        return engine

    _factory.created = created
    return _factory


@pytest.fixture
def sniffer_config(tmp_path) -> AppConfig:
    """덤프와 로그를 tmp_path에 쓰는 테스트용 설정입니다."""
    return AppConfig(**{
        "system": {"log_dir": str(tmp_path / "logs"), "show_progress": True},
        "capture": {"mode": "file", "pcap_path": str(tmp_path / "input.pcap")},
        "engine": {"cid_type": "smallcid", "max_contexts": 16},
        "trace": {"capacity": 8, "max_line_length": 40},
        "dump": {"output_dir": str(tmp_path / "dumps")},
    })


@pytest.fixture
def list_capture_cls():
    return ListCapture


@pytest.fixture
def fake_engine_cls():
    return FakeEngine
