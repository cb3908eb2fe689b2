"""
엔진 트레이스 링 버퍼 모듈입니다.

역할:
- 압축기/복원기가 남기는 트레이스를 고정 크기 링 버퍼에 보관
- 가득 차면 가장 오래된 줄을 덮어씀
- WARNING 이상(또는 verbose 모드의 모든 줄)은 즉시 stdout에 [LEVEL] 형식으로 출력
- 검증 실패 시 보관된 트레이스를 오래된 순서로 덤프

슬롯은 생성 시 미리 할당하고 first/last 커서로 관리합니다.
"""

from __future__ import annotations

import sys
from typing import Optional, TextIO

from src.config.schema import TraceConfig
from src.engine import TraceEntity, TraceLevel


class TraceRingBuffer:
    """
    최근 엔진 트레이스를 보관하는 링 버퍼입니다.

    커서:
        _first: 가장 오래된 줄의 슬롯 (-1 = 비어 있음)
        _last: 가장 최근 줄의 슬롯 (-1 = 비어 있음)
    """

    def __init__(
        self,
        config: TraceConfig,
        verbose: bool = False,
        echo: Optional[TextIO] = None,
    ) -> None:
        """
        파라미터:
            config: 트레이스 설정 (capacity, max_line_length)
            verbose: True면 모든 수준의 트레이스를 즉시 출력
            echo: 즉시 출력 대상 스트림 (기본 sys.stdout)
        """
        self._capacity = config.capacity
        self._max_line_length = config.max_line_length
        self._verbose = verbose
        self._echo = echo

        self._slots: list[str] = [""] * self._capacity
        self._first = -1
        self._last = -1

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        if self._last == -1:
            return 0
        return (self._last - self._first) % self._capacity + 1

    def record(
        self,
        level: TraceLevel,
        entity: TraceEntity,
        profile: int,
        message: str,
    ) -> None:
        """
        트레이스 한 줄을 기록합니다.

        엔진 콜백에서 호출되므로 절대 예외를 올리지 않아야 합니다.
        """
        if level >= TraceLevel.WARNING or self._verbose:
            stream = self._echo or sys.stdout
            stream.write(f"[{level.name}] {message}\n")

        self._last = (self._last + 1) % self._capacity
        self._slots[self._last] = message[:self._max_line_length]

        if self._first == -1:
            self._first = 0
        elif self._first == self._last:
            # 가득 참: 가장 오래된 줄을 덮어썼으므로 first 전진
            self._first = (self._first + 1) % self._capacity

    def drain(self) -> list[str]:
        """보관된 트레이스를 오래된 순서로 반환합니다. 버퍼는 변경하지 않습니다."""
        count = len(self)
        return [
            self._slots[(self._first + offset) % self._capacity]
            for offset in range(count)
        ]

    def dump(self, stream: TextIO) -> int:
        """
        보관된 트레이스를 stream에 씁니다.

        반환값:
            int: 출력한 트레이스 줄 수
        """
        lines = self.drain()
        if not lines:
            stream.write("no trace to display\n")
        else:
            stream.write(f"print the last {len(lines)} traces ('%' arguments are not expanded)...\n")
            for line in lines:
                stream.write(f"{line}\n")
        stream.flush()
        return len(lines)
