"""
TraceRingBuffer 단위 테스트

검증 항목:
- 기록 순서대로 drain
- 용량 초과 시 가장 오래된 줄부터 덮어씀
- 최대 길이 절단
- WARNING 이상 또는 verbose일 때만 즉시 출력
- 비어 있을 때 dump 메시지
"""

from __future__ import annotations

from io import StringIO

import pytest

from src.config.schema import TraceConfig
from src.engine import TraceEntity, TraceLevel
from src.verify.trace_buffer import TraceRingBuffer


def _make_buffer(capacity: int = 3, max_line_length: int = 300, verbose: bool = False):
    echo = StringIO()
    buffer = TraceRingBuffer(
        TraceConfig(capacity=capacity, max_line_length=max_line_length),
        verbose=verbose,
        echo=echo,
    )
    return buffer, echo


def _record(buffer: TraceRingBuffer, message: str, level: TraceLevel = TraceLevel.DEBUG) -> None:
    buffer.record(level, TraceEntity.COMPRESSOR, 1, message)


class TestRecordAndDrain:
    def test_empty_buffer(self):
        buffer, _ = _make_buffer()
        assert len(buffer) == 0
        assert buffer.drain() == []

    def test_chronological_order(self):
        buffer, _ = _make_buffer()
        for message in ("a", "b"):
            _record(buffer, message)
        assert buffer.drain() == ["a", "b"]

    def test_overwrites_oldest_when_full(self):
        buffer, _ = _make_buffer(capacity=3)
        for message in ("t1", "t2", "t3", "t4", "t5"):
            _record(buffer, message)
        assert len(buffer) == 3
        assert buffer.drain() == ["t3", "t4", "t5"]

    def test_exactly_full(self):
        buffer, _ = _make_buffer(capacity=3)
        for message in ("t1", "t2", "t3"):
            _record(buffer, message)
        assert buffer.drain() == ["t1", "t2", "t3"]

    def test_capacity_one(self):
        buffer, _ = _make_buffer(capacity=1)
        _record(buffer, "first")
        _record(buffer, "second")
        assert buffer.drain() == ["second"]

    def test_drain_does_not_consume(self):
        buffer, _ = _make_buffer()
        _record(buffer, "keep")
        buffer.drain()
        assert buffer.drain() == ["keep"]

    def test_truncates_long_lines(self):
        buffer, _ = _make_buffer(max_line_length=5)
        _record(buffer, "0123456789")
        assert buffer.drain() == ["01234"]


class TestEcho:
    @pytest.mark.parametrize("level", [TraceLevel.WARNING, TraceLevel.ERROR])
    def test_warning_and_above_echoed(self, level):
        buffer, echo = _make_buffer()
        _record(buffer, "context not found", level)
        assert echo.getvalue() == f"[{level.name}] context not found\n"

    @pytest.mark.parametrize("level", [TraceLevel.DEBUG, TraceLevel.INFO])
    def test_low_levels_silent(self, level):
        buffer, echo = _make_buffer()
        _record(buffer, "quiet", level)
        assert echo.getvalue() == ""
        assert buffer.drain() == ["quiet"]

    def test_verbose_echoes_everything(self):
        buffer, echo = _make_buffer(verbose=True)
        _record(buffer, "detail", TraceLevel.DEBUG)
        assert echo.getvalue() == "[DEBUG] detail\n"

    def test_echo_is_not_truncated(self):
        buffer, echo = _make_buffer(max_line_length=3)
        _record(buffer, "abcdef", TraceLevel.ERROR)
        assert "abcdef" in echo.getvalue()


class TestDump:
    def test_dump_empty(self):
        buffer, _ = _make_buffer()
        stream = StringIO()
        assert buffer.dump(stream) == 0
        assert stream.getvalue() == "no trace to display\n"

    def test_dump_after_wraparound(self):
        buffer, _ = _make_buffer(capacity=2)
        for message in ("x", "y", "z"):
            _record(buffer, message)
        stream = StringIO()
        assert buffer.dump(stream) == 2
        assert stream.getvalue().splitlines() == [
            "print the last 2 traces ('%' arguments are not expanded)...", "y", "z",
        ]

    def test_dump_header_notes_unexpanded_format(self):
        buffer, _ = _make_buffer()
        _record(buffer, "CID %zu: context reinitialised")
        stream = StringIO()
        buffer.dump(stream)
        header, line = stream.getvalue().splitlines()
        assert "'%' arguments are not expanded" in header
        assert line == "CID %zu: context reinitialised"
