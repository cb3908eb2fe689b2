"""
SessionController 단위 테스트

검증 항목:
- 같은 흐름의 UDP 패킷 3개 → 모두 성공, CID 0 덤프 하나
- 잘린 프레임 → 통계 줄과 트레이스를 stderr에 출력하고 VerificationHalted
- 정지 요청 시 현재 패킷까지 처리 후 정상 종료
- 덤프 파일 실패는 dump_errors로 집계되고 세션 중단
- pcap 파일 재생 모드 전체 흐름, len = 0 레코드는 엔진 호출 없이 중단
- 세션 상태 전이
"""

from __future__ import annotations

import logging
import struct
import threading
from io import StringIO

import dpkt
import pytest

from src.capture import DLT_EN10MB, CapturedFrame
from src.errors import UnsupportedLinkTypeError, VerificationHalted
from src.verify import Outcome
from src.verify.session import SessionController, SessionState


# =============================================================================
# 헬퍼
# =============================================================================

def _make_session(config, capture, fake_engines, stop_event=None):
    stdout, stderr = StringIO(), StringIO()
    session = SessionController(
        config,
        stop_event=stop_event,
        capture=capture,
        engine_factory=fake_engines,
        stdout=stdout,
        stderr=stderr,
    )
    return session, stdout, stderr


def _start(session):
    session.open()
    session.configure_engine()
    return session


def _dump_records(path):
    with open(path, "rb") as f:
        return list(dpkt.pcap.Reader(f))


# =============================================================================
# 정상 흐름
# =============================================================================

class TestCleanRun:
    def test_three_packets_same_flow(
        self, sniffer_config, list_capture_cls, fake_engines, make_udp_frame, tmp_path
    ):
        frames = [make_udp_frame(payload) for payload in (b"p1", b"p2", b"p3")]
        capture = list_capture_cls(frames)
        session, stdout, stderr = _make_session(sniffer_config, capture, fake_engines)

        with session:
            statistics = _start(session).run()
            assert session.state is SessionState.DRAINING

        assert statistics.packets == 3
        assert statistics.successes == 3
        assert statistics.failures == 0
        assert session.used_contexts == [0]
        assert session.state is SessionState.CLOSED
        assert capture.closed
        assert fake_engines.created[0].closed

        dumps = list((tmp_path / "dumps").iterdir())
        assert [p.name for p in dumps] == ["dump_stream_cid_0.pcap"]
        assert len(_dump_records(dumps[0])) == 3

        output = stdout.getvalue()
        assert output.startswith("packet #1\rpacket #2\rpacket #3\n")
        assert "close dump file for context with ID 0" in output
        assert stderr.getvalue() == ""

    def test_engine_configured_with_callbacks(
        self, sniffer_config, list_capture_cls, fake_engines
    ):
        session, _, _ = _make_session(sniffer_config, list_capture_cls([]), fake_engines)
        _start(session)
        engine = fake_engines.created[0]
        assert engine.config.cid_type == "smallcid"
        assert engine.callbacks.random() == 0
        assert engine.callbacks.trace == session.traces.record
        session.close()

    def test_engine_version_logged(
        self, sniffer_config, list_capture_cls, fake_engines, caplog
    ):
        caplog.set_level(logging.INFO, logger="src.verify.session")
        session, _, _ = _make_session(sniffer_config, list_capture_cls([]), fake_engines)
        _start(session)
        session.close()
        assert "version=fake" in caplog.text

    def test_empty_capture(self, sniffer_config, list_capture_cls, fake_engines):
        session, stdout, _ = _make_session(sniffer_config, list_capture_cls([]), fake_engines)
        statistics = _start(session).run()
        assert statistics.packets == 0
        assert session.used_contexts == []
        assert stdout.getvalue() == ""
        session.close()


class TestStopRequest:
    def test_stop_after_current_packet(
        self, sniffer_config, list_capture_cls, fake_engines, make_udp_frame
    ):
        stop_event = threading.Event()
        frames = [make_udp_frame(bytes([i]) * 4) for i in range(5)]
        capture = list_capture_cls(
            frames, on_frame=lambda served: served == 2 and stop_event.set(),
        )
        session, stdout, _ = _make_session(sniffer_config, capture, fake_engines, stop_event)

        statistics = _start(session).run()
        session.close()

        assert statistics.packets == 2
        assert capture.served == 2
        assert "program stopped by signal" in stdout.getvalue()

    def test_stop_before_first_frame(
        self, sniffer_config, list_capture_cls, fake_engines, make_udp_frame
    ):
        stop_event = threading.Event()
        stop_event.set()
        capture = list_capture_cls([make_udp_frame()])
        session, stdout, _ = _make_session(sniffer_config, capture, fake_engines, stop_event)

        statistics = _start(session).run()
        session.close()

        assert statistics.packets == 0
        assert capture.served == 0
        assert stdout.getvalue() == "program stopped by signal\n"


# =============================================================================
# 검증 실패
# =============================================================================

class TestHalt:
    def test_truncated_frame_halts(
        self, sniffer_config, list_capture_cls, fake_engines, make_udp_frame
    ):
        good = make_udp_frame()
        truncated = CapturedFrame(
            data=good.data[:40], declared_length=len(good.data), captured_length=40,
        )
        capture = list_capture_cls([good, truncated, make_udp_frame(b"never")])
        session, _, stderr = _make_session(sniffer_config, capture, fake_engines)

        with pytest.raises(VerificationHalted) as exc_info:
            _start(session).run()

        halted = exc_info.value
        assert halted.packet_number == 2
        assert halted.result.outcome is Outcome.MALFORMED_CAPTURE
        assert halted.statistics.successes == 1
        assert halted.statistics.malformed_captures == 1
        assert session.state is SessionState.HALTED
        assert capture.served == 2

        lines = stderr.getvalue().splitlines()
        assert lines[0].startswith("packet #2, CID ?: stats OK")
        assert lines[0].endswith("\t=\t1\t0\t0\t0\t1\t0\t0")
        assert lines[1] == "print the last 2 traces ('%' arguments are not expanded)..."
        assert lines[2:] == ["compress packet #1", "decompress packet #1"]
        session.close()

    def test_compression_failure_halts_with_fallback(
        self, sniffer_config, list_capture_cls, fake_engines, make_udp_frame, tmp_path
    ):
        capture = list_capture_cls([make_udp_frame()])
        session, stdout, stderr = _make_session(sniffer_config, capture, fake_engines)
        _start(session)
        fake_engines.created[0].fail_compress_on = {1}

        with pytest.raises(VerificationHalted) as exc_info:
            session.run()
        session.close()

        assert exc_info.value.statistics.compression_failures == 1
        assert (tmp_path / "dumps" / "dump_stream_default.pcap").exists()
        # ERROR 트레이스는 즉시 출력됨
        assert "[ERROR] no profile found" in stdout.getvalue()
        assert "CID ?" in stderr.getvalue()

    def test_mismatch_reports_context(
        self, sniffer_config, list_capture_cls, fake_engines, make_udp_frame
    ):
        capture = list_capture_cls([make_udp_frame()])
        session, stdout, stderr = _make_session(sniffer_config, capture, fake_engines)
        _start(session)
        fake_engines.created[0].corrupt_on = {1}

        with pytest.raises(VerificationHalted) as exc_info:
            session.run()
        session.close()

        assert exc_info.value.result.outcome is Outcome.MISMATCH_FAILURE
        assert stderr.getvalue().startswith("packet #1, CID 0: stats")
        assert "packets are different" in stdout.getvalue()

    def test_dump_error_halts(
        self, sniffer_config, list_capture_cls, fake_engines, make_udp_frame
    ):
        capture = list_capture_cls([make_udp_frame()])
        session, _, _ = _make_session(sniffer_config, capture, fake_engines)
        _start(session)
        fake_engines.created[0].forced_info = {1: (3, False)}

        with pytest.raises(VerificationHalted) as exc_info:
            session.run()
        session.close()

        assert exc_info.value.statistics.dump_errors == 1
        assert exc_info.value.result is None
        assert exc_info.value.__cause__ is not None


# =============================================================================
# 파일 재생 모드
# =============================================================================

class TestFileReplay:
    def test_replays_pcap_file(self, sniffer_config, fake_engines, make_udp_frame, tmp_path):
        frames = [make_udp_frame(b"a"), make_udp_frame(b"b", dport=7000)]
        with open(tmp_path / "input.pcap", "wb") as f:
            writer = dpkt.pcap.Writer(f, linktype=DLT_EN10MB)
            for frame in frames:
                writer.writepkt(frame.data, ts=frame.timestamp)

        session, _, _ = _make_session(sniffer_config, None, fake_engines)
        with session:
            statistics = _start(session).run()

        assert statistics.successes == 2
        assert session.used_contexts == [0, 1]

    def test_zero_length_record_halts_before_engine(self, sniffer_config, fake_engines, tmp_path):
        header = struct.pack("<IHHiIII", 0xA1B2C3D4, 2, 4, 0, 0, 65535, DLT_EN10MB)
        record = struct.pack("<IIII", 10, 0, 60, 0) + bytes(60)
        (tmp_path / "input.pcap").write_bytes(header + record)

        session, _, stderr = _make_session(sniffer_config, None, fake_engines)
        with pytest.raises(VerificationHalted) as exc_info:
            _start(session).run()
        session.close()

        assert exc_info.value.result.outcome is Outcome.MALFORMED_CAPTURE
        assert exc_info.value.statistics.malformed_captures == 1
        assert fake_engines.created[0].calls == 0
        assert stderr.getvalue().startswith("packet #1, CID ?: stats OK")

    def test_unsupported_link_type(self, sniffer_config, fake_engines, tmp_path):
        with open(tmp_path / "input.pcap", "wb") as f:
            writer = dpkt.pcap.Writer(f, linktype=105)  # 802.11
            writer.writepkt(b"\x00" * 30, ts=1.0)

        session, _, _ = _make_session(sniffer_config, None, fake_engines)
        with pytest.raises(UnsupportedLinkTypeError):
            session.open()
        session.close()
        assert session.state is SessionState.CLOSED
        assert fake_engines.created == []


class TestStateMachine:
    def test_run_requires_configured_engine(self, sniffer_config, list_capture_cls, fake_engines):
        session, _, _ = _make_session(sniffer_config, list_capture_cls([]), fake_engines)
        session.open()
        with pytest.raises(RuntimeError, match="잘못된 세션 상태"):
            session.run()
        session.close()

    def test_close_is_idempotent(self, sniffer_config, list_capture_cls, fake_engines):
        session, _, _ = _make_session(sniffer_config, list_capture_cls([]), fake_engines)
        _start(session)
        session.close()
        session.close()
        assert session.state is SessionState.CLOSED
