"""
Config テスト — ドライバ設定の単体テスト

環境変数・CLI 引数からの設定読み込みを検証する。
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

from simdriver.config import (
    DriverConfig,
    _parse_bool,
    apply_overrides,
    load_config_from_env,
)


# ---------------------------------------------------------------------------
# デフォルト値
# ---------------------------------------------------------------------------

class TestDriverConfigDefaults:
    """DriverConfig のデフォルト値テスト。"""

    def test_default_xcrun_path(self):
        """デフォルトの xcrun_path が /usr/bin/xcrun であること。"""
        assert DriverConfig().xcrun_path == "/usr/bin/xcrun"

    def test_default_work_root_is_temp(self):
        """デフォルトの work_root がシステムの一時ディレクトリであること。"""
        assert DriverConfig().work_root == Path(tempfile.gettempdir())

    def test_default_timeouts(self):
        """タイムアウト関連のデフォルト値。"""
        config = DriverConfig()
        assert config.run_timeout == 300.0
        assert config.result_wait_timeout == 2.0
        assert config.result_poll_interval == 0.1
        assert config.recording_settle_delay == 0.5
        assert config.recording_stop_timeout == 10.0

    def test_default_strict_exit(self):
        """デフォルトで strict_exit=False であること。"""
        assert DriverConfig().strict_exit is False


# ---------------------------------------------------------------------------
# _parse_bool
# ---------------------------------------------------------------------------

class TestParseBool:
    """_parse_bool() のテスト。"""

    @pytest.mark.parametrize("value", ["true", "True", "1", "yes", "YES"])
    def test_truthy(self, value):
        """真として解釈される値。"""
        assert _parse_bool(value) is True

    @pytest.mark.parametrize("value", ["false", "0", "no", "", "on"])
    def test_falsy(self, value):
        """偽として解釈される値。"""
        assert _parse_bool(value) is False


# ---------------------------------------------------------------------------
# 環境変数
# ---------------------------------------------------------------------------

class TestLoadConfigFromEnv:
    """load_config_from_env() のテスト。"""

    def test_no_env(self):
        """環境変数がなければデフォルト値になること。"""
        env = {k: v for k, v in os.environ.items() if not k.startswith("SIMDRIVER_")}
        with patch.dict(os.environ, env, clear=True):
            assert load_config_from_env() == DriverConfig()

    def test_paths_from_env(self, tmp_path: Path):
        """パス系の環境変数が反映されること。"""
        env = {
            "SIMDRIVER_XCRUN_PATH": "/opt/xcode/xcrun",
            "SIMDRIVER_RUNNER_ARTIFACTS_DIR": str(tmp_path / "artifacts"),
            "SIMDRIVER_WORK_ROOT": str(tmp_path / "work"),
            "SIMDRIVER_RECORDINGS_DIR": str(tmp_path / "videos"),
        }
        with patch.dict(os.environ, env):
            config = load_config_from_env()
        assert config.xcrun_path == "/opt/xcode/xcrun"
        assert config.runner_artifacts_dir == tmp_path / "artifacts"
        assert config.work_root == tmp_path / "work"
        assert config.recordings_dir == tmp_path / "videos"

    def test_numbers_from_env(self):
        """数値の環境変数が float として反映されること。"""
        env = {
            "SIMDRIVER_RUN_TIMEOUT": "120",
            "SIMDRIVER_RESULT_WAIT_TIMEOUT": "5.5",
            "SIMDRIVER_RECORDING_SETTLE_DELAY": "1",
        }
        with patch.dict(os.environ, env):
            config = load_config_from_env()
        assert config.run_timeout == 120.0
        assert config.result_wait_timeout == 5.5
        assert config.recording_settle_delay == 1.0

    def test_invalid_number_is_ignored(self, caplog: pytest.LogCaptureFixture):
        """数値として解釈できない値は警告を出して無視されること。"""
        with patch.dict(os.environ, {"SIMDRIVER_RUN_TIMEOUT": "forever"}):
            config = load_config_from_env()
        assert config.run_timeout == 300.0
        assert "SIMDRIVER_RUN_TIMEOUT" in caplog.text

    def test_strict_exit_from_env(self):
        """SIMDRIVER_STRICT_EXIT が反映されること。"""
        with patch.dict(os.environ, {"SIMDRIVER_STRICT_EXIT": "true"}):
            assert load_config_from_env().strict_exit is True


# ---------------------------------------------------------------------------
# CLI 引数による上書き
# ---------------------------------------------------------------------------

class TestApplyOverrides:
    """apply_overrides() のテスト。"""

    def test_override_values(self, tmp_path: Path):
        """指定した値で上書きされること。"""
        config = apply_overrides(DriverConfig(), run_timeout=60.0, runner_artifacts_dir=tmp_path)
        assert config.run_timeout == 60.0
        assert config.runner_artifacts_dir == tmp_path

    def test_none_is_not_applied(self):
        """None は未指定として扱われること。"""
        base = DriverConfig(run_timeout=42.0)
        assert apply_overrides(base, run_timeout=None).run_timeout == 42.0

    def test_cli_overrides_env(self):
        """CLI 引数 > 環境変数 の優先順位であること。"""
        with patch.dict(os.environ, {"SIMDRIVER_RUN_TIMEOUT": "120"}):
            config = apply_overrides(load_config_from_env(), run_timeout=30.0)
        assert config.run_timeout == 30.0

    def test_unknown_field(self):
        """未知の設定項目は AttributeError になること。"""
        with pytest.raises(AttributeError):
            apply_overrides(DriverConfig(), headless=True)
