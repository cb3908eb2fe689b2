"""
ROHC sniffer 설정 스키마 정의 모듈입니다.

역할:
- Pydantic v2 BaseModel 기반으로 config.yaml의 전체 구조를 타입 안전하게 정의
- 각 섹션(system, capture, engine, trace, dump, compare)을
  독립적인 중첩 모델로 분리하여 유지보수성 확보
- 필드별 기본값, 허용 범위, 유효성 검증(validator)을 포함

사용 예시:
    >>> from src.config.schema import AppConfig
    >>> config = AppConfig(**yaml_data)
    >>> print(config.engine.cid_type)
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field, field_validator, model_validator

# 모듈 로거 설정
logger = logging.getLogger(__name__)

# ROHC CID 공간 상한 (RFC 3095: small CID 0~15, large CID 0~16383)
SMALL_CID_MAX = 15
LARGE_CID_MAX = 16383


# =============================================================================
# system 섹션: 시스템 전역 설정
# =============================================================================

class SystemConfig(BaseModel):
    """
    시스템 전역 설정을 정의하는 모델입니다.

    역할:
    - 로깅 레벨 및 포맷 지정
    - 세션 식별자 관리
    - verbose 모드 및 버그 발견 시 종료 방식 결정
    """
    # 로그 출력 레벨
    log_level: str = Field(default="INFO", description="로그 레벨 (DEBUG | INFO | WARNING | ERROR)")
    # 로그 출력 포맷
    log_format: str = Field(default="text", description="로그 포맷 (json | text)")
    # 로그 파일 저장 디렉토리 경로
    log_dir: str = Field(default="output/logs", description="로그 저장 디렉토리")
    # 세션 고유 식별자 (빈 문자열이면 UUID로 자동 생성)
    session_id: str = Field(default="", description="세션 ID (비어있으면 UUID 자동생성)")
    # verbose 모드: 모든 엔진 트레이스를 콘솔에 즉시 출력
    verbose: bool = Field(default=False, description="모든 엔진 트레이스 콘솔 출력 여부")
    # 콘솔 진행 표시 (packet #N)
    show_progress: bool = Field(default=True, description="패킷 진행 카운터 표시 여부")
    # 버그 발견 시 os.abort()로 코어 덤프를 남길지 여부 (False면 종료 코드 2)
    abort_on_failure: bool = Field(default=True, description="버그 발견 시 프로세스 abort 여부")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """로그 레벨이 유효한 Python 로깅 레벨인지 검증합니다."""
        allowed_levels = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
        # 대소문자 구분 없이 비교 후 대문자로 정규화
        upper_value = value.upper()
        if upper_value not in allowed_levels:
            error_message = f"log_level은 {allowed_levels} 중 하나여야 합니다. 입력값: '{value}'"
            raise ValueError(error_message)
        return upper_value

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, value: str) -> str:
        """로그 포맷이 지원되는 형식인지 검증합니다."""
        allowed_formats = ("json", "text")
        if value not in allowed_formats:
            error_message = f"log_format은 {allowed_formats} 중 하나여야 합니다. 입력값: '{value}'"
            raise ValueError(error_message)
        return value


# =============================================================================
# capture 섹션: 패킷 캡처 관련 설정
# =============================================================================

class CaptureConfig(BaseModel):
    """
    패킷 캡처 소스 설정을 정의하는 모델입니다.

    역할:
    - 라이브 인터페이스 캡처(live)와 pcap 파일 재생(file) 모드 선택
    - snaplen으로 캡처 길이 제한 (라이브 모드)
    - 정지 플래그 확인 주기 지정
    """
    # 캡처 모드: "live"는 네트워크 인터페이스, "file"은 pcap 파일 재생
    mode: str = Field(default="live", description="캡처 모드 (live | file)")
    # 네트워크 장치 이름 (live 모드)
    device: str = Field(default="", description="캡처할 네트워크 장치 이름")
    # 재생할 pcap 파일 경로 (file 모드)
    pcap_path: str = Field(default="", description="재생할 pcap 파일 경로")
    # 라이브 캡처 시 프레임당 최대 저장 길이 (바이트)
    snaplen: int = Field(default=1518, description="캡처 snaplen (바이트)")
    # 패킷 대기 중 정지 플래그 확인 주기 (초)
    poll_interval_sec: float = Field(default=0.5, description="수신 대기 폴링 주기 (초)")

    @field_validator("mode")
    @classmethod
    def validate_mode(cls, value: str) -> str:
        """캡처 모드가 허용된 값인지 검증합니다."""
        allowed_modes = ("live", "file")
        if value not in allowed_modes:
            error_message = f"mode는 {allowed_modes} 중 하나여야 합니다. 입력값: '{value}'"
            raise ValueError(error_message)
        return value

    @field_validator("snaplen")
    @classmethod
    def validate_snaplen(cls, value: int) -> int:
        """snaplen이 이더넷 최소 프레임보다 큰지 검증합니다."""
        if value < 60:
            raise ValueError(f"snaplen은 60 이상이어야 합니다. 입력값: {value}")
        return value


# =============================================================================
# engine 섹션: ROHC 압축/복원 엔진 설정
# =============================================================================

class EngineConfig(BaseModel):
    """
    ROHC 압축기/복원기 쌍의 설정입니다.

    역할:
    - CID 타입(smallcid/largecid)과 최대 컨텍스트 수 지정
    - librohc 공유 라이브러리 경로 지정 (비어있으면 자동 탐색)
    - 압축/복원 출력 버퍼 크기 제한
    """
    # CID 타입
    cid_type: str = Field(default="smallcid", description="CID 타입 (smallcid | largecid)")
    # 동시에 사용할 최대 ROHC 컨텍스트 수 (MAX_CID + 1)
    max_contexts: int = Field(default=SMALL_CID_MAX + 1, description="최대 컨텍스트 수")
    # librohc 경로 (비어있으면 ctypes.util.find_library로 탐색)
    library_path: str = Field(default="", description="librohc 공유 라이브러리 경로")
    # ROHC 패킷/복원 패킷 최대 크기 (바이트)
    max_packet_size: int = Field(default=5 * 1024, description="압축/복원 버퍼 크기 (바이트)")

    @field_validator("cid_type")
    @classmethod
    def validate_cid_type(cls, value: str) -> str:
        """CID 타입이 smallcid 또는 largecid인지 검증합니다."""
        allowed_types = ("smallcid", "largecid")
        if value not in allowed_types:
            error_message = (
                f"invalid CID type '{value}', only 'smallcid' and 'largecid' expected"
            )
            raise ValueError(error_message)
        return value

    @model_validator(mode="after")
    def validate_max_contexts(self) -> "EngineConfig":
        """최대 컨텍스트 수가 CID 타입의 허용 범위(1~MAX_CID+1) 안인지 검증합니다."""
        upper = self.max_cid_limit + 1
        if not 1 <= self.max_contexts <= upper:
            raise ValueError(
                f"the maximum number of ROHC contexts should be between 1 and {upper}"
            )
        return self

    @property
    def use_large_cid(self) -> bool:
        """large CID 사용 여부를 반환합니다."""
        return self.cid_type == "largecid"

    @property
    def max_cid_limit(self) -> int:
        """선택된 CID 타입의 MAX_CID 상한을 반환합니다."""
        return LARGE_CID_MAX if self.use_large_cid else SMALL_CID_MAX


# =============================================================================
# trace 섹션: 엔진 트레이스 링 버퍼 설정
# =============================================================================

class TraceConfig(BaseModel):
    """
    엔진 진단 트레이스를 보관하는 링 버퍼 설정입니다.
    """
    # 보관할 최근 트레이스 수
    capacity: int = Field(default=5000, description="링 버퍼 슬롯 수")
    # 트레이스 한 줄 최대 길이 (초과분은 잘라냄)
    max_line_length: int = Field(default=300, description="트레이스 최대 길이 (문자)")

    @field_validator("capacity", "max_line_length")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        """용량과 길이가 양수인지 검증합니다."""
        if value < 1:
            raise ValueError(f"1 이상이어야 합니다. 입력값: {value}")
        return value


# =============================================================================
# dump 섹션: 컨텍스트별 pcap 덤프 설정
# =============================================================================

class DumpConfig(BaseModel):
    """
    사후 재현용 pcap 덤프 파일 설정입니다.

    역할:
    - 덤프 파일 출력 디렉토리 지정
    - 컨텍스트별 파일명 패턴과 압축 실패용 폴백 파일명 지정
    """
    # 덤프 파일 저장 디렉토리
    output_dir: str = Field(default=".", description="덤프 파일 출력 디렉토리")
    # 컨텍스트별 덤프 파일명 패턴 ({cid}가 컨텍스트 ID로 치환됨)
    context_filename: str = Field(
        default="dump_stream_cid_{cid}.pcap",
        description="컨텍스트별 덤프 파일명 패턴",
    )
    # 압축 실패 프레임을 기록할 폴백 파일명
    fallback_filename: str = Field(
        default="dump_stream_default.pcap",
        description="압축 실패 프레임 덤프 파일명",
    )

    @field_validator("context_filename")
    @classmethod
    def validate_context_filename(cls, value: str) -> str:
        """파일명 패턴에 {cid} 자리표시자가 있는지 검증합니다."""
        if "{cid}" not in value:
            raise ValueError(f"context_filename에 '{{cid}}'가 필요합니다. 입력값: '{value}'")
        return value


# =============================================================================
# compare 섹션: 패킷 비교 출력 설정
# =============================================================================

class CompareConfig(BaseModel):
    """패킷 비교 시 헥스 덤프 출력 범위 설정입니다."""
    # 불일치 시 출력할 최대 바이트 수
    max_dump_bytes: int = Field(default=180, description="불일치 헥스 덤프 최대 바이트")


# =============================================================================
# 최상위 설정 모델
# =============================================================================

class AppConfig(BaseModel):
    """
    config.yaml 전체 구조를 나타내는 최상위 설정 모델입니다.

    모든 섹션은 기본값을 가지므로 빈 YAML로도 생성할 수 있습니다.
    """
    # 시스템 전역 설정
    system: SystemConfig = Field(default_factory=SystemConfig, description="시스템 설정")
    # 캡처 소스 설정
    capture: CaptureConfig = Field(default_factory=CaptureConfig, description="캡처 설정")
    # ROHC 엔진 설정
    engine: EngineConfig = Field(default_factory=EngineConfig, description="엔진 설정")
    # 트레이스 링 버퍼 설정
    trace: TraceConfig = Field(default_factory=TraceConfig, description="트레이스 설정")
    # 덤프 파일 설정
    dump: DumpConfig = Field(default_factory=DumpConfig, description="덤프 설정")
    # 패킷 비교 설정
    compare: CompareConfig = Field(default_factory=CompareConfig, description="비교 설정")
