"""
ROHC sniffer 공통 예외 계층입니다.

분류:
- ConfigurationError: 잘못된 CLI 입력, 지원하지 않는 링크 계층, 캡처/엔진 설정 실패
  (보고 후 종료 코드 1로 정상 종료)
- EngineError 계열: 압축/복원 실패, 마지막 패킷 정보 조회 실패
- DumpFileError: pcap 덤프 파일 열기/쓰기/삭제 실패
- VerificationHalted: 패킷 단위 검증 실패로 세션이 중단됨 (의도된 치명적 종료)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from src.metrics import RunStatistics


class SnifferError(Exception):
    """sniffer 예외의 최상위 클래스입니다."""


# =============================================================================
# 설정 단계 에러 (soft failure)
# =============================================================================

class ConfigurationError(SnifferError):
    """설정 단계에서 발생하는 에러입니다. 프로세스는 종료 코드 1로 끝납니다."""


class CaptureOpenError(ConfigurationError):
    """캡처 소스(장치 또는 pcap 파일)를 열 수 없을 때 발생합니다."""


class UnsupportedLinkTypeError(ConfigurationError):
    """캡처 소스의 링크 계층 타입을 지원하지 않을 때 발생합니다."""


class EngineConfigError(ConfigurationError):
    """압축기/복원기 생성 또는 설정에 실패했을 때 발생합니다."""


# =============================================================================
# 패킷 처리 단계 에러 (fatal)
# =============================================================================

class EngineError(SnifferError):
    """외부 압축 엔진이 보고한 에러의 기본 클래스입니다."""


class CompressionError(EngineError):
    """압축 결과 크기가 0 이하일 때 발생합니다."""


class DecompressionError(EngineError):
    """복원 결과 크기가 0 이하일 때 발생합니다."""


class EngineInfoUnavailable(EngineError):
    """마지막 압축 패킷 정보를 얻을 수 없을 때 발생합니다."""


class DumpFileError(SnifferError):
    """pcap 덤프 파일 작업이 실패했을 때 발생합니다."""


class VerificationHalted(SnifferError):
    """
    검증 실패로 세션이 중단되었음을 알립니다.

    필드:
        result: 실패한 패킷의 PipelineResult (덤프 에러일 때는 None)
        statistics: 중단 시점의 RunStatistics
        packet_number: 실패한 패킷 순번 (1부터 시작)
    """

    def __init__(
        self,
        message: str,
        result: Any = None,
        statistics: "RunStatistics | None" = None,
        packet_number: int = 0,
    ) -> None:
        super().__init__(message)
        self.result = result
        self.statistics = statistics
        self.packet_number = packet_number
