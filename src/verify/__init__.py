"""
검증 모듈 패키지

공통 데이터 타입 정의:
- Outcome: 패킷 하나의 압축-복원-비교 결과 분류
- PipelineResult: 파이프라인 처리 결과 컨테이너
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional


class Outcome(enum.Enum):
    """패킷 하나의 검증 결과입니다."""
    SUCCESS = "success"
    COMPRESSION_FAILURE = "compression_failure"
    DECOMPRESSION_FAILURE = "decompression_failure"
    MISMATCH_FAILURE = "mismatch_failure"
    MALFORMED_CAPTURE = "malformed_capture"
    ENGINE_INFO_UNAVAILABLE = "engine_info_unavailable"

    @property
    def is_success(self) -> bool:
        return self is Outcome.SUCCESS


@dataclass(frozen=True)
class PipelineResult:
    """
    파이프라인 처리 결과입니다.

    필드:
        outcome: 검증 결과
        context_id: 엔진이 보고한 컨텍스트 ID (알 수 없으면 None)
        detail: 실패 사유 메시지 (성공 시 빈 문자열)
    """
    outcome: Outcome
    context_id: Optional[int] = None
    detail: str = ""
