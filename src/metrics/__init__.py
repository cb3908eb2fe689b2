"""
메트릭 모듈 패키지

공통 데이터 타입:
- RunStatistics: 세션 동안의 패킷 검증 결과 카운터
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Optional

from src.verify import Outcome

# 결과 → 카운터 필드 이름
_OUTCOME_FIELDS: dict[Outcome, str] = {
    Outcome.SUCCESS: "successes",
    Outcome.COMPRESSION_FAILURE: "compression_failures",
    Outcome.DECOMPRESSION_FAILURE: "decompression_failures",
    Outcome.MISMATCH_FAILURE: "mismatches",
    Outcome.MALFORMED_CAPTURE: "malformed_captures",
    Outcome.ENGINE_INFO_UNAVAILABLE: "engine_info_errors",
}


@dataclass
class RunStatistics:
    """
    세션 검증 통계입니다. 카운터는 세션 동안 증가만 합니다.

    필드:
        packets: 처리한 프레임 수
        successes: 압축-복원-비교 성공
        compression_failures: 압축 실패
        decompression_failures: 복원 실패
        mismatches: 복원 결과 불일치
        malformed_captures: 잘못된 캡처 프레임
        engine_info_errors: 마지막 패킷 정보 조회 실패
        dump_errors: 덤프 파일 작업 실패
    """
    packets: int = 0
    successes: int = 0
    compression_failures: int = 0
    decompression_failures: int = 0
    mismatches: int = 0
    malformed_captures: int = 0
    engine_info_errors: int = 0
    dump_errors: int = 0

    def record(self, outcome: Outcome) -> None:
        """프레임 하나의 결과를 반영합니다."""
        self.packets += 1
        field_name = _OUTCOME_FIELDS[outcome]
        setattr(self, field_name, getattr(self, field_name) + 1)

    def record_dump_error(self) -> None:
        self.packets += 1
        self.dump_errors += 1

    @property
    def failures(self) -> int:
        return self.packets - self.successes

    def format_line(self, context_id: Optional[int] = None) -> str:
        """검증 중단 시 stderr에 출력하는 통계 한 줄을 만듭니다."""
        cid = "?" if context_id is None else str(context_id)
        values = "\t".join(str(value) for value in (
            self.successes,
            self.compression_failures,
            self.decompression_failures,
            self.mismatches,
            self.malformed_captures,
            self.engine_info_errors,
            self.dump_errors,
        ))
        return (
            f"packet #{self.packets}, CID {cid}: stats OK, ERR(COMP), "
            f"ERR(DECOMP), ERR(REF), ERR(BAD), ERR(INTERNAL), ERR(DUMP)"
            f"\t=\t{values}"
        )

    def to_dict(self) -> dict[str, int]:
        return asdict(self)
