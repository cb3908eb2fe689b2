"""
검증 세션 컨트롤러 모듈입니다.

역할:
- 캡처 소스 열기, 엔진 생성/설정, 캡처 루프 실행, 자원 정리
- 프레임마다 VerifyPipeline을 실행하고 RunStatistics에 반영
- 첫 실패에서 통계 한 줄과 최근 엔진 트레이스를 stderr에 출력하고 중단
- 정지 요청 또는 캡처 종료 시 열린 덤프 파일을 모두 닫음

상태 전이:
    INIT → CAPTURE_OPEN → ENGINE_CONFIGURED → RUNNING → DRAINING → CLOSED
                                                      └→ HALTED → CLOSED

사용 예시:
    >>> with SessionController(config, stop_event) as session:
    ...     session.open()
    ...     session.configure_engine()
    ...     statistics = session.run()
"""

from __future__ import annotations

import enum
import logging
import sys
import threading
from typing import Callable, Optional, TextIO

from src.capture import CaptureSource, LinkLayer
from src.capture.dump_writer import ContextDumpTable
from src.config.schema import AppConfig, EngineConfig
from src.engine import CompressionEngine, EngineCallbacks, fixed_random
from src.errors import DumpFileError, VerificationHalted
from src.metrics import RunStatistics
from src.verify import PipelineResult
from src.verify.pipeline import VerifyPipeline
from src.verify.rtp_detector import looks_like_rtp
from src.verify.trace_buffer import TraceRingBuffer

logger = logging.getLogger(__name__)

# (엔진 설정, 콜백) → 엔진
EngineFactory = Callable[[EngineConfig, EngineCallbacks], CompressionEngine]


class SessionState(enum.Enum):
    INIT = "init"
    CAPTURE_OPEN = "capture_open"
    ENGINE_CONFIGURED = "engine_configured"
    RUNNING = "running"
    DRAINING = "draining"
    HALTED = "halted"
    CLOSED = "closed"


def _default_engine_factory(config: EngineConfig, callbacks: EngineCallbacks) -> CompressionEngine:
    from src.engine.rohc_engine import RohcEngine
    return RohcEngine(config, callbacks)


class SessionController:
    """
    검증 세션 하나를 관리하는 컨트롤러입니다.

    단일 스레드에서 동작하며, 외부 스레드(시그널 핸들러)와는
    stop_event로만 통신합니다.
    """

    def __init__(
        self,
        config: AppConfig,
        stop_event: Optional[threading.Event] = None,
        capture: Optional[CaptureSource] = None,
        engine_factory: Optional[EngineFactory] = None,
        stdout: Optional[TextIO] = None,
        stderr: Optional[TextIO] = None,
    ) -> None:
        """
        파라미터:
            config: 애플리케이션 설정
            stop_event: 설정되면 다음 프레임 처리 전에 루프 종료
            capture: 캡처 소스 (None이면 capture.mode에 따라 생성)
            engine_factory: 엔진 생성 함수 (None이면 RohcEngine)
            stdout: 진행 표시/트레이스/비교 덤프 출력 스트림
            stderr: 중단 보고 출력 스트림
        """
        self._config = config
        self._stop_event = stop_event or threading.Event()
        self._capture = capture
        self._engine_factory = engine_factory or _default_engine_factory
        self._stdout = stdout or sys.stdout
        self._stderr = stderr or sys.stderr

        self._state = SessionState.INIT
        self._link_layer: Optional[LinkLayer] = None
        self._engine: Optional[CompressionEngine] = None
        self._dumps: Optional[ContextDumpTable] = None
        self._pipeline: Optional[VerifyPipeline] = None
        self._traces = TraceRingBuffer(
            config.trace,
            verbose=config.system.verbose,
            echo=self._stdout,
        )
        self.statistics = RunStatistics()
        self.used_contexts: list[int] = []

    # =========================================================================
    # 조회
    # =========================================================================

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def traces(self) -> TraceRingBuffer:
        return self._traces

    @property
    def link_layer(self) -> Optional[LinkLayer]:
        return self._link_layer

    # =========================================================================
    # 세션 단계
    # =========================================================================

    def open(self) -> None:
        """
        캡처 소스를 열고 링크 계층을 결정합니다.

        예외:
            CaptureOpenError, UnsupportedLinkTypeError: 설정 단계 실패 시
        """
        self._expect(SessionState.INIT)
        if self._capture is None:
            self._capture = self._create_capture()

        self._capture.open()
        self._link_layer = self._capture.link_layer
        self._state = SessionState.CAPTURE_OPEN
        logger.info(
            f"캡처 소스 열기 완료: {self._capture.description}, "
            f"link_layer={self._link_layer.name}"
        )

    def configure_engine(self) -> None:
        """
        압축기/복원기를 생성하고 트레이스 버퍼, 고정 난수, RTP 분류기를 연결합니다.

        예외:
            EngineConfigError: 엔진 생성 또는 설정 실패 시
        """
        self._expect(SessionState.CAPTURE_OPEN)
        callbacks = EngineCallbacks(
            trace=self._traces.record,
            random=fixed_random,
            rtp_detect=looks_like_rtp,
        )
        self._engine = self._engine_factory(self._config.engine, callbacks)
        logger.info(f"압축 엔진 준비 완료: version={self._engine.version() or 'unknown'}")

        max_contexts = self._config.engine.max_contexts
        self._dumps = ContextDumpTable(self._config.dump, self._link_layer, max_contexts)
        self._pipeline = VerifyPipeline(
            engine=self._engine,
            dumps=self._dumps,
            link_layer=self._link_layer,
            compare_config=self._config.compare,
            max_contexts=max_contexts,
            diff_out=self._stdout,
        )
        self._state = SessionState.ENGINE_CONFIGURED

    def run(self) -> RunStatistics:
        """
        캡처 루프를 실행합니다.

        정지 요청 또는 캡처 종료 시 덤프를 닫고 통계를 반환합니다.

        예외:
            VerificationHalted: 프레임 하나라도 검증에 실패했을 때
        """
        self._expect(SessionState.ENGINE_CONFIGURED)
        self._state = SessionState.RUNNING
        logger.info("캡처 루프 시작")

        show_progress = self._config.system.show_progress
        while not self._stop_event.is_set():
            frame = self._capture.next_frame()
            if frame is None:
                break

            packet_number = self.statistics.packets + 1
            if show_progress:
                prefix = "\r" if packet_number > 1 else ""
                self._stdout.write(f"{prefix}packet #{packet_number}")
                self._stdout.flush()

            try:
                result = self._pipeline.process(frame)
            except DumpFileError as exc:
                self.statistics.record_dump_error()
                raise self._halt(str(exc), None, packet_number) from exc

            self.statistics.record(result.outcome)
            if not result.outcome.is_success:
                raise self._halt(result.detail, result, packet_number)

        if show_progress and self.statistics.packets:
            self._stdout.write("\n")

        self._drain()
        return self.statistics

    def close(self) -> None:
        """덤프, 엔진, 캡처 소스를 해제합니다. 여러 번 호출해도 안전합니다."""
        if self._state is SessionState.CLOSED:
            return
        if self._dumps is not None:
            self._dumps.close_all()
        if self._engine is not None:
            self._engine.close()
            self._engine = None
        if self._capture is not None:
            self._capture.close()
        self._state = SessionState.CLOSED
        logger.info(f"세션 종료: {self.statistics.to_dict()}")

    def __enter__(self) -> "SessionController":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # =========================================================================
    # 내부 헬퍼
    # =========================================================================

    def _drain(self) -> None:
        self._state = SessionState.DRAINING
        if self._stop_event.is_set():
            self._stdout.write("program stopped by signal\n")
        self.used_contexts = self._dumps.close_all()
        for context_id in self.used_contexts:
            self._stdout.write(f"close dump file for context with ID {context_id}\n")
        self._stdout.flush()
        logger.info(
            f"캡처 루프 종료: packets={self.statistics.packets}, "
            f"contexts={self.used_contexts}"
        )

    def _halt(
        self,
        detail: str,
        result: Optional[PipelineResult],
        packet_number: int,
    ) -> VerificationHalted:
        """통계와 최근 트레이스를 stderr에 출력하고 발생시킬 VerificationHalted를 반환합니다."""
        self._state = SessionState.HALTED
        if self._config.system.show_progress:
            self._stdout.write("\n")
            self._stdout.flush()

        context_id = result.context_id if result is not None else None
        self._stderr.write(self.statistics.format_line(context_id) + "\n")
        self._stderr.flush()
        self._traces.dump(self._stderr)

        logger.error(f"packet #{packet_number} 검증 실패, 세션 중단: {detail}")
        return VerificationHalted(
            f"packet #{packet_number}: {detail}",
            result=result,
            statistics=self.statistics,
            packet_number=packet_number,
        )

    def _expect(self, state: SessionState) -> None:
        if self._state is not state:
            raise RuntimeError(
                f"잘못된 세션 상태: {self._state.value} (필요: {state.value})"
            )

    def _create_capture(self) -> CaptureSource:
        """설정에 따라 적절한 캡처 소스를 생성합니다."""
        if self._config.capture.mode == "file":
            from src.capture.pcap_file_capture import PcapFileCapture
            return PcapFileCapture(self._config.capture)
        from src.capture.live_capture import LiveCapture
        return LiveCapture(self._config.capture, self._stop_event)
