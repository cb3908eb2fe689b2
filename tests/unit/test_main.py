"""
main() 진입점 단위 테스트 (SessionController는 mock으로 대체)

검증 항목:
- 필수 인자 누락 / 잘못된 설정 → 종료 코드 1
- 버전 출력 → 종료 코드 0
- 커맨드라인 → 설정 오버라이드 변환
- 검증 중단 시 abort_on_failure=false → 종료 코드 2
"""

from __future__ import annotations

from unittest.mock import patch

import pytest

import main
from src.errors import CaptureOpenError, VerificationHalted


@pytest.fixture(autouse=True)
def quiet_setup():
    """로깅 설정과 시그널 핸들러 등록을 막습니다."""
    with patch("main.setup_logging", return_value="test-session"), \
         patch("main.logging.shutdown"), \
         patch("main._install_signal_handlers"):
        yield


@pytest.fixture
def session_cls():
    with patch("main.SessionController") as cls:
        yield cls


class TestArguments:
    def test_missing_device(self, capsys):
        assert main.main(["smallcid"]) == 1
        assert "CID_TYPE and DEVICE are mandatory" in capsys.readouterr().err

    def test_missing_everything(self):
        assert main.main([]) == 1

    def test_invalid_cid_type(self, capsys, session_cls):
        assert main.main(["mediumcid", "eth0"]) == 1
        assert "invalid CID type 'mediumcid'" in capsys.readouterr().err
        session_cls.assert_not_called()

    def test_max_contexts_out_of_range(self, capsys, session_cls):
        assert main.main(["--max-contexts", "17", "smallcid", "eth0"]) == 1
        assert "between 1 and 16" in capsys.readouterr().err

    def test_version(self, capsys):
        with patch("main.library_version", return_value="1.7.0"):
            assert main.main(["--version"]) == 0
        out = capsys.readouterr().out
        assert f"{main.APP_NAME} version {main.APP_VERSION}" in out
        assert "librohc version 1.7.0" in out


class TestOverrides:
    def test_live_device(self):
        args = main._build_parser().parse_args(["--max-contexts", "4", "largecid", "eth1"])
        overrides = main._build_overrides(args)
        assert overrides["engine.cid_type"] == "largecid"
        assert overrides["engine.max_contexts"] == 4
        assert overrides["capture.mode"] == "live"
        assert overrides["capture.device"] == "eth1"
        assert overrides["system.verbose"] is None

    def test_pcap_replaces_device(self):
        args = main._build_parser().parse_args(["--pcap", "in.pcap", "--verbose", "smallcid"])
        overrides = main._build_overrides(args)
        assert overrides["capture.mode"] == "file"
        assert overrides["capture.pcap_path"] == "in.pcap"
        assert overrides["system.verbose"] is True
        assert "capture.device" not in overrides


class TestRun:
    def test_clean_run(self, session_cls):
        assert main.main(["smallcid", "eth0"]) == 0
        session = session_cls.return_value
        session.open.assert_called_once()
        session.configure_engine.assert_called_once()
        session.run.assert_called_once()
        session.close.assert_called()

        config = session_cls.call_args.args[0]
        assert config.capture.device == "eth0"
        assert config.engine.cid_type == "smallcid"

    def test_configuration_error(self, capsys, session_cls):
        session_cls.return_value.open.side_effect = CaptureOpenError("cannot open device eth9")
        assert main.main(["smallcid", "eth9"]) == 1
        assert "cannot open device eth9" in capsys.readouterr().err
        session_cls.return_value.run.assert_not_called()

    def test_halt_without_abort(self, tmp_path, session_cls):
        config_path = tmp_path / "config.yaml"
        config_path.write_text("system:\n  abort_on_failure: false\n", encoding="utf-8")
        session_cls.return_value.run.side_effect = VerificationHalted("mismatch")

        with patch("main.os.abort") as abort:
            assert main.main(["--config", str(config_path), "smallcid", "eth0"]) == 2
        abort.assert_not_called()
        session_cls.return_value.close.assert_called()

    def test_halt_aborts_by_default(self, session_cls):
        session_cls.return_value.run.side_effect = VerificationHalted("mismatch")
        with patch("main.os.abort", side_effect=SystemExit(134)) as abort:
            with pytest.raises(SystemExit):
                main.main(["smallcid", "eth0"])
        abort.assert_called_once()
