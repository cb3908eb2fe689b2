"""
ROHC sniffer 설정 관리 모듈입니다.

역할:
- YAML 설정 파일을 로드하고 Pydantic 스키마로 유효성 검증
- 환경변수 오버라이드 지원 (접두사: RSN_)
- 커맨드라인 인자 오버라이드 병합
- dot-notation 기반 설정값 조회 (예: "engine.cid_type")

사용 예시:
    >>> manager = ConfigManager()
    >>> config = manager.load("config.yaml")
    >>> cid_type = manager.get("engine.cid_type")
"""

from __future__ import annotations

import copy
import logging
import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import ValidationError

from src.config.schema import AppConfig
from src.errors import ConfigurationError

# 모듈 로거 설정
logger = logging.getLogger(__name__)

# 환경변수 오버라이드 접두사
ENV_PREFIX = "RSN_"


class ConfigLoadError(ConfigurationError):
    """설정 파일 로드 중 발생하는 에러의 기본 클래스입니다."""
    pass


class ConfigValidationError(ConfigLoadError):
    """설정 스키마 검증 실패 시 발생하는 에러입니다."""
    pass


class ConfigFileNotFoundError(ConfigLoadError):
    """설정 파일을 찾을 수 없을 때 발생하는 에러입니다."""
    pass


class ConfigManager:
    """
    YAML 설정 파일을 로드하고 관리하는 매니저 클래스입니다.

    역할:
    - YAML 파일 파싱 및 Pydantic 유효성 검증
    - 환경변수 오버라이드 (RSN_ 접두사)
    - 커맨드라인 오버라이드 병합 후 재검증
    - dot-notation 설정값 조회

    사용 예시:
        >>> manager = ConfigManager()
        >>> config = manager.load("config.yaml")
        >>> print(manager.get("capture.snaplen"))
        1518
    """

    def __init__(self) -> None:
        """ConfigManager를 초기화합니다."""
        # 현재 활성 설정 객체 (로드 전에는 None)
        self._config: Optional[AppConfig] = None
        # 설정 파일 경로 (로드 시 설정됨)
        self._config_filepath: Optional[Path] = None

        logger.debug("ConfigManager 인스턴스 생성 완료")

    @property
    def config(self) -> Optional[AppConfig]:
        """현재 활성 설정 객체를 반환합니다."""
        return self._config

    def load(self, filepath: str | Path | None = None) -> AppConfig:
        """
        YAML 설정 파일을 로드하고 Pydantic 스키마로 검증합니다.

        처리 순서:
        1. 파일 존재 여부 확인 (filepath가 None이면 기본값에서 시작)
        2. YAML 파싱
        3. 환경변수 오버라이드 적용
        4. Pydantic 스키마 검증
        5. 검증 통과 시 활성 설정으로 교체

        파라미터:
            filepath (str | Path | None): YAML 설정 파일 경로

        반환값:
            AppConfig: 검증 완료된 설정 객체

        에러:
            ConfigFileNotFoundError: 파일이 존재하지 않을 때
            ConfigValidationError: 스키마 검증 실패 시
            ConfigLoadError: YAML 파싱 실패 등 기타 에러
        """
        if filepath is None:
            logger.info("설정 파일 없이 기본값으로 시작")
            raw_config: dict = {}
        else:
            filepath = Path(filepath)
            logger.info(f"설정 파일 로드 시작: {filepath}")

            # 1단계: 파일 존재 여부 확인
            if not filepath.exists():
                error_message = f"설정 파일을 찾을 수 없습니다: {filepath}"
                logger.error(error_message)
                raise ConfigFileNotFoundError(error_message)

            # 2단계: YAML 파일 파싱
            raw_config = self._parse_yaml_file(filepath)
            logger.debug(f"YAML 파싱 완료: {len(raw_config)} 개 최상위 키")

        # 3단계: 환경변수 오버라이드 적용
        raw_config = self._apply_env_overrides(raw_config)

        # 4단계: Pydantic 스키마 검증
        validated_config = self._validate_config(raw_config)

        # 5단계: 활성 설정으로 교체
        self._config = validated_config
        self._config_filepath = filepath

        logger.info(
            f"설정 로드 성공: "
            f"capture_mode={validated_config.capture.mode}, "
            f"cid_type={validated_config.engine.cid_type}, "
            f"max_contexts={validated_config.engine.max_contexts}"
        )
        return validated_config

    def apply_overrides(self, overrides: dict[str, Any]) -> AppConfig:
        """
        dot-notation 키로 표현된 오버라이드를 현재 설정에 병합하고 재검증합니다.

        커맨드라인 인자처럼 설정 파일보다 우선하는 값을 적용할 때 사용합니다.
        값이 None인 항목은 무시합니다.

        파라미터:
            overrides (dict[str, Any]): {"engine.cid_type": "largecid", ...}

        반환값:
            AppConfig: 병합 후 검증된 설정 객체

        에러:
            RuntimeError: 설정이 로드되지 않은 상태에서 호출 시
            ConfigValidationError: 병합 결과가 스키마를 만족하지 않을 때
        """
        if self._config is None:
            raise RuntimeError("설정이 아직 로드되지 않았습니다. load()를 먼저 호출하세요.")

        # Pydantic 모델은 dict로 덤프 후 재생성
        config_dict = copy.deepcopy(self._config.model_dump())
        for key, value in overrides.items():
            if value is None:
                continue
            section_name, _, field_name = key.partition(".")
            config_dict.setdefault(section_name, {})[field_name] = value
            logger.debug(f"커맨드라인 오버라이드: {key} = {value}")

        self._config = self._validate_config(config_dict)
        return self._config

    def get(self, key: str, default: Any = None) -> Any:
        """
        dot-notation으로 설정값을 조회합니다.

        중첩된 설정값에 접근할 때 점(.)으로 구분된 키를 사용합니다.
        예: "engine.max_contexts" -> config.engine.max_contexts

        파라미터:
            key (str): dot-notation 설정 키
            default (Any): 키가 존재하지 않을 때 반환할 기본값

        반환값:
            Any: 설정값 또는 기본값

        에러:
            RuntimeError: 설정이 로드되지 않은 상태에서 호출 시
        """
        if self._config is None:
            error_message = "설정이 아직 로드되지 않았습니다. load()를 먼저 호출하세요."
            logger.error(error_message)
            raise RuntimeError(error_message)

        current_value: Any = self._config
        for part in key.split("."):
            if hasattr(current_value, part):
                current_value = getattr(current_value, part)
            elif isinstance(current_value, dict) and part in current_value:
                current_value = current_value[part]
            else:
                logger.debug(f"설정 키 '{key}'에서 '{part}' 부분을 찾을 수 없음, 기본값 반환")
                return default

        return current_value

    def validate_schema(self, raw_config: dict) -> bool:
        """
        딕셔너리 데이터가 AppConfig 스키마를 만족하는지 검증합니다.

        파라미터:
            raw_config (dict): 검증할 설정 딕셔너리

        반환값:
            bool: 검증 통과 시 True, 실패 시 False
        """
        try:
            AppConfig(**raw_config)
            logger.debug("스키마 검증 통과")
            return True
        except ValidationError as validation_error:
            logger.warning(f"스키마 검증 실패: {validation_error}")
            return False

    # =========================================================================
    # 내부 메서드 (private)
    # =========================================================================

    def _parse_yaml_file(self, filepath: Path) -> dict:
        """
        YAML 파일을 읽어서 딕셔너리로 파싱합니다.

        에러:
            ConfigLoadError: 파일 읽기 또는 파싱 실패 시
        """
        try:
            with open(filepath, "r", encoding="utf-8") as config_file:
                raw_data = yaml.safe_load(config_file)
        except yaml.YAMLError as yaml_error:
            error_message = f"YAML 파싱 에러: {yaml_error}"
            logger.error(error_message)
            raise ConfigLoadError(error_message) from yaml_error
        except OSError as file_error:
            error_message = f"파일 읽기 에러: {file_error}"
            logger.error(error_message)
            raise ConfigLoadError(error_message) from file_error

        # YAML 파일이 비어있으면 빈 딕셔너리
        if raw_data is None:
            logger.warning(f"설정 파일이 비어있습니다: {filepath}")
            return {}

        if not isinstance(raw_data, dict):
            raise ConfigLoadError(
                f"설정 파일의 최상위 구조가 딕셔너리가 아닙니다: {type(raw_data)}"
            )

        return raw_data

    def _apply_env_overrides(self, raw_config: dict) -> dict:
        """
        RSN_ 접두사 환경변수로 설정값을 오버라이드합니다.

        환경변수 매핑 규칙:
        - 접두사 제거 후 첫 번째 언더스코어를 섹션 구분자로 사용
        - 예: RSN_ENGINE_MAX_CONTEXTS -> engine.max_contexts
        - 예: RSN_SYSTEM_VERBOSE -> system.verbose
        """
        override_count = 0

        for env_key, env_value in os.environ.items():
            if not env_key.startswith(ENV_PREFIX):
                continue

            config_path = env_key[len(ENV_PREFIX):].lower()
            path_parts = config_path.split("_", 1)

            if len(path_parts) < 2:
                # 섹션만 있고 키가 없는 경우 무시
                logger.debug(f"환경변수 '{env_key}' 무시 (키 경로 부족)")
                continue

            section_name, field_name = path_parts
            section = raw_config.setdefault(section_name, {})
            if not isinstance(section, dict):
                logger.debug(f"환경변수 '{env_key}' 무시 ('{section_name}'이 섹션이 아님)")
                continue

            section[field_name] = self._convert_env_value(env_value)
            logger.info(
                f"환경변수 오버라이드: {env_key} -> {section_name}.{field_name}"
            )
            override_count += 1

        if override_count > 0:
            logger.info(f"환경변수 오버라이드 적용 완료: {override_count}건")

        return raw_config

    def _convert_env_value(self, value: str) -> Any:
        """
        환경변수 문자열 값을 적절한 Python 타입으로 변환합니다.

        변환 규칙:
        - "true"/"false" (대소문자 무관) -> bool
        - 정수 형식 문자열 -> int
        - 부동소수점 형식 문자열 -> float
        - 그 외 -> str (원본 유지)
        """
        if value.lower() == "true":
            return True
        if value.lower() == "false":
            return False

        try:
            return int(value)
        except ValueError:
            pass

        try:
            return float(value)
        except ValueError:
            pass

        return value

    def _validate_config(self, raw_config: dict) -> AppConfig:
        """
        딕셔너리를 Pydantic AppConfig 모델로 검증하고 변환합니다.

        에러:
            ConfigValidationError: Pydantic 검증 실패 시
        """
        try:
            return AppConfig(**raw_config)

        except ValidationError as validation_error:
            # 검증 에러 상세 내용을 로그에 기록
            error_details = validation_error.errors()
            messages = []
            for error_detail in error_details:
                field_path = " -> ".join(str(loc) for loc in error_detail["loc"])
                messages.append(f"{field_path}: {error_detail['msg']}")
                logger.error(
                    f"설정 검증 실패 - 필드: {field_path}, "
                    f"에러: {error_detail['msg']}, "
                    f"입력값: {error_detail.get('input', 'N/A')}"
                )

            error_message = "; ".join(messages)
            raise ConfigValidationError(error_message) from validation_error
