"""
컨텍스트별 pcap 덤프 관리 모듈입니다.

역할:
- ROHC 컨텍스트(CID)마다 pcap 덤프 파일 하나를 열어 처리한 모든 프레임을 기록
- 같은 CID가 새 흐름으로 재초기화되면 이전 파일을 닫고 삭제한 뒤 새로 생성
- 압축에 실패한 프레임을 폴백 덤프 파일에 단독으로 기록
- 세션 종료 시 열린 덤프를 모두 닫고 사용된 CID 목록 반환

덤프 파일은 언버퍼드로 열어 프로세스가 abort되어도 마지막 프레임까지 남도록 합니다.
모든 파일 작업 실패는 DumpFileError로 올려 세션을 중단시킵니다.

사용 예시:
    >>> table = ContextDumpTable(config.dump, LinkLayer.ETHERNET, max_contexts=16)
    >>> table.open_context(0)
    >>> table.append(0, frame)
    >>> table.close_all()
    [0]
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import BinaryIO

import dpkt

from src.capture import CapturedFrame, LinkLayer
from src.config.schema import DumpConfig
from src.errors import DumpFileError

logger = logging.getLogger(__name__)

# 덤프 파일 헤더의 snaplen
_DUMP_SNAPLEN = 65535


class _PcapDumper:
    """pcap 파일 하나에 대한 언버퍼드 writer 래퍼입니다."""

    def __init__(self, path: Path, link_layer: LinkLayer) -> None:
        self.path = path
        self._file: BinaryIO = open(path, "wb", buffering=0)
        self._writer = dpkt.pcap.Writer(
            self._file, snaplen=_DUMP_SNAPLEN, linktype=link_layer.dlt
        )

    def write(self, frame: CapturedFrame) -> None:
        self._writer.writepkt(frame.data, ts=frame.timestamp)

    def close(self) -> None:
        self._writer.close()


class ContextDumpTable:
    """
    ContextID → 열린 pcap 덤프의 테이블입니다.

    세션 컨트롤러가 소유하고, 파이프라인은 open_context()/append()로만 접근합니다.
    """

    def __init__(
        self,
        config: DumpConfig,
        link_layer: LinkLayer,
        max_contexts: int,
    ) -> None:
        """
        파라미터:
            config: 덤프 설정 (출력 디렉토리, 파일명 패턴)
            link_layer: 덤프 헤더에 기록할 링크 계층
            max_contexts: 허용되는 CID 개수 (0 ~ max_contexts-1)
        """
        self._output_dir = Path(config.output_dir)
        self._context_filename = config.context_filename
        self._fallback_path = self._output_dir / config.fallback_filename
        self._link_layer = link_layer
        self._max_contexts = max_contexts
        self._dumpers: dict[int, _PcapDumper] = {}

        logger.debug(
            f"ContextDumpTable 초기화: output_dir={self._output_dir}, "
            f"max_contexts={max_contexts}"
        )

    # =========================================================================
    # 조회
    # =========================================================================

    @property
    def open_contexts(self) -> list[int]:
        """덤프가 열려 있는 CID 목록을 오름차순으로 반환합니다."""
        return sorted(self._dumpers)

    def path_for(self, context_id: int) -> Path:
        """CID에 대응하는 결정적인 덤프 파일 경로를 반환합니다."""
        return self._output_dir / self._context_filename.format(cid=context_id)

    def has(self, context_id: int) -> bool:
        return context_id in self._dumpers

    # =========================================================================
    # 변경
    # =========================================================================

    def open_context(self, context_id: int) -> Path:
        """
        CID에 새 덤프 파일을 엽니다.

        같은 CID의 덤프가 이미 열려 있으면 (흐름이 컨텍스트 슬롯을 재사용)
        이전 파일을 닫고 삭제한 뒤 새로 만듭니다.

        반환값:
            Path: 새로 연 덤프 파일 경로

        예외:
            DumpFileError: CID 범위 초과 또는 파일 열기/삭제 실패 시
        """
        self._check_range(context_id)
        path = self.path_for(context_id)

        previous = self._dumpers.pop(context_id, None)
        if previous is not None:
            logger.info(
                f"replace dump file '{path}' for context with ID {context_id}"
            )
            try:
                previous.close()
                previous.path.unlink(missing_ok=True)
            except OSError as exc:
                raise DumpFileError(
                    f"failed to remove previous dump file '{path}': {exc}"
                ) from exc

        self._dumpers[context_id] = self._open_dumper(path)
        logger.debug(f"CID {context_id} 덤프 파일 생성: {path}")
        return path

    def append(self, context_id: int, frame: CapturedFrame) -> None:
        """
        CID의 덤프 파일에 프레임(링크 계층 포함)을 추가합니다.

        예외:
            DumpFileError: 해당 CID에 열린 덤프가 없거나 쓰기 실패 시
        """
        dumper = self._dumpers.get(context_id)
        if dumper is None:
            raise DumpFileError(f"no dump file open for context with ID {context_id}")
        try:
            dumper.write(frame)
        except OSError as exc:
            raise DumpFileError(
                f"failed to write frame to dump file '{dumper.path}': {exc}"
            ) from exc

    def write_fallback(self, frame: CapturedFrame) -> Path:
        """
        압축에 실패한 프레임 하나를 폴백 덤프 파일에 기록합니다.

        파일은 매번 새로 만들어지므로 마지막 실패 프레임만 남습니다.
        """
        dumper = self._open_dumper(self._fallback_path)
        logger.error(f"dump packet in file '{self._fallback_path}'")
        try:
            dumper.write(frame)
        except OSError as exc:
            raise DumpFileError(
                f"failed to write frame to dump file '{self._fallback_path}': {exc}"
            ) from exc
        finally:
            dumper.close()
        return self._fallback_path

    def close_all(self) -> list[int]:
        """
        열린 덤프를 모두 닫고, 사용되었던 CID 목록을 반환합니다.

        닫기 실패는 경고만 남기고 나머지 덤프를 계속 닫습니다.
        """
        closed: list[int] = []
        for context_id in sorted(self._dumpers):
            dumper = self._dumpers[context_id]
            logger.debug(f"close dump file for context with ID {context_id}")
            try:
                dumper.close()
            except OSError as exc:
                logger.warning(f"덤프 파일 닫기 실패: {dumper.path}: {exc}")
            closed.append(context_id)
        self._dumpers.clear()
        return closed

    # =========================================================================
    # 내부 헬퍼
    # =========================================================================

    def _check_range(self, context_id: int) -> None:
        if not 0 <= context_id < self._max_contexts:
            raise DumpFileError(
                f"context ID {context_id} out of range "
                f"(0..{self._max_contexts - 1})"
            )

    def _open_dumper(self, path: Path) -> _PcapDumper:
        try:
            self._output_dir.mkdir(parents=True, exist_ok=True)
            return _PcapDumper(path, self._link_layer)
        except OSError as exc:
            raise DumpFileError(f"failed to open new dump file '{path}': {exc}") from exc
