"""
ROHC 압축-복원 검증 sniffer 진입점

역할:
- 네트워크 장치(또는 pcap 파일)에서 IP 패킷을 캡처하여 ROHC 압축 → 복원 → 비교
- 첫 번째 불일치/실패에서 통계와 최근 엔진 트레이스를 출력하고 abort
- 컨텍스트(CID)별 pcap 덤프 파일로 실패 재현용 트래픽 보존
- SIGINT/SIGTERM 수신 시 현재 패킷 처리 후 정상 종료

종료 코드:
    0: 정상 종료 (정지 요청 또는 캡처 종료)
    1: 설정 에러 (잘못된 인자, 장치 열기 실패, 엔진 설정 실패)
    2: 검증 실패 (system.abort_on_failure=false 일 때, 기본은 abort)

실행 예시:
    라이브 캡처 (small CID, 기본 16 컨텍스트):
        python main.py smallcid eth0

    라이브 캡처 (large CID, 100 컨텍스트, 모든 트레이스 출력):
        python main.py --verbose --max-contexts 100 largecid eth0

    pcap 파일 재생:
        python main.py --pcap tests/fixtures/capture.pcap smallcid
"""

from __future__ import annotations

import argparse
import logging
import os
import signal
import sys
import threading
from typing import Optional

from src.config.config_manager import ConfigLoadError, ConfigManager
from src.engine.rohc_bindings import library_version
from src.errors import ConfigurationError, VerificationHalted
from src.logging import setup_logging
from src.verify.session import SessionController

APP_NAME = "rohc_sniffer"
APP_VERSION = "0.1.0"

logger = logging.getLogger(__name__)


# =============================================================================
# 진입점
# =============================================================================

def _build_parser() -> argparse.ArgumentParser:
    """커맨드라인 파서를 생성합니다."""
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        usage=f"{APP_NAME} [OPTIONS] CID_TYPE DEVICE",
        description=(
            "Sniff IP packets, compress/decompress them with ROHC and "
            "verify that the decompressed packets match the originals."
        ),
    )
    parser.add_argument(
        "cid_type", nargs="?", help="CID 타입 (smallcid | largecid)"
    )
    parser.add_argument(
        "device", nargs="?", help="캡처할 네트워크 장치 이름"
    )
    parser.add_argument(
        "-v", "--version", action="store_true", help="버전 정보 출력 후 종료"
    )
    parser.add_argument(
        "--verbose", action="store_true", default=None,
        help="모든 엔진 트레이스를 콘솔에 출력",
    )
    parser.add_argument(
        "--max-contexts", type=int, metavar="NUM",
        help="최대 ROHC 컨텍스트 수 (smallcid: 1~16, largecid: 1~16384)",
    )
    parser.add_argument(
        "--config", help="설정 파일 경로 (지정하지 않으면 기본값 사용)"
    )
    parser.add_argument(
        "--pcap", metavar="FILE", help="장치 대신 pcap 파일을 재생"
    )
    parser.add_argument(
        "--dump-dir", metavar="DIR", help="pcap 덤프 파일 출력 디렉토리"
    )
    return parser


def _build_overrides(args: argparse.Namespace) -> dict:
    """커맨드라인 인자를 dot-notation 설정 오버라이드로 변환합니다."""
    overrides = {
        "engine.cid_type": args.cid_type,
        "engine.max_contexts": args.max_contexts,
        "system.verbose": args.verbose,
        "dump.output_dir": args.dump_dir,
    }
    if args.pcap:
        overrides["capture.mode"] = "file"
        overrides["capture.pcap_path"] = args.pcap
    elif args.device:
        overrides["capture.mode"] = "live"
        overrides["capture.device"] = args.device
    return overrides


def _install_signal_handlers(stop_event: threading.Event) -> None:
    """SIGINT/SIGTERM 수신 시 stop_event를 설정하는 핸들러를 등록합니다."""

    def _signal_handler(signum, frame) -> None:
        logger.info(f"종료 시그널 수신: {signal.Signals(signum).name}")
        stop_event.set()

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)


def main(argv: Optional[list[str]] = None) -> int:
    """
    sniffer를 실행하고 종료 코드를 반환합니다.

    검증 실패 시 system.abort_on_failure가 true면 반환하지 않고 abort합니다.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(f"{APP_NAME} version {APP_VERSION}")
        print(f"librohc version {library_version() or 'not available'}")
        return 0

    if args.cid_type is None or (args.device is None and args.pcap is None):
        print("CID_TYPE and DEVICE are mandatory\n", file=sys.stderr)
        parser.print_usage(sys.stderr)
        return 1

    # 설정 로드 및 커맨드라인 오버라이드
    manager = ConfigManager()
    try:
        manager.load(args.config)
        config = manager.apply_overrides(_build_overrides(args))
    except ConfigLoadError as exc:
        print(f"{exc}\n", file=sys.stderr)
        parser.print_usage(sys.stderr)
        return 1

    session_id = setup_logging(config)
    logger.info(
        f"{APP_NAME} 시작: session_id={session_id}, "
        f"mode={config.capture.mode}, cid_type={config.engine.cid_type}, "
        f"max_contexts={config.engine.max_contexts}"
    )

    stop_event = threading.Event()
    _install_signal_handlers(stop_event)

    session = SessionController(config, stop_event)
    try:
        session.open()
        session.configure_engine()
        session.run()
    except ConfigurationError as exc:
        logger.error(f"설정 단계 실패: {exc}")
        print(f"{exc}", file=sys.stderr)
        return 1
    except VerificationHalted as exc:
        logger.critical(f"검증 실패로 중단: {exc}")
        session.close()
        logging.shutdown()
        if config.system.abort_on_failure:
            os.abort()
        return 2
    finally:
        session.close()

    logger.info(f"{APP_NAME} 종료: {session.statistics.to_dict()}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
