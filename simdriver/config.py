"""
ドライバ設定 — 環境変数・CLI 引数からの設定読み込み

CLI 引数 > 環境変数 > デフォルト値 の優先順位で適用される。

環境変数一覧:
  SIMDRIVER_XCRUN_PATH            : xcrun のパス（デフォルト: /usr/bin/xcrun）
  SIMDRIVER_RUNNER_ARTIFACTS_DIR  : ビルド済みランナー成果物ディレクトリ（デフォルト: build/SimDriver）
  SIMDRIVER_WORK_ROOT             : 作業ディレクトリの親（デフォルト: システムの一時ディレクトリ）
  SIMDRIVER_RECORDINGS_DIR        : 録画ファイルの保存先（デフォルト: recordings）
  SIMDRIVER_RUN_TIMEOUT           : ランナー実行のタイムアウト秒（デフォルト: 300）
  SIMDRIVER_RESULT_WAIT_TIMEOUT   : 結果ファイル待ちのタイムアウト秒（デフォルト: 2）
  SIMDRIVER_RESULT_POLL_INTERVAL  : 結果ファイルのポーリング間隔秒（デフォルト: 0.1）
  SIMDRIVER_RECORDING_SETTLE_DELAY: 録画開始待ちの秒数（デフォルト: 0.5）
  SIMDRIVER_RECORDING_STOP_TIMEOUT: 録画停止待ちの上限秒（デフォルト: 10）
  SIMDRIVER_STRICT_EXIT           : 結果ファイルなしの非ゼロ終了を例外にする（true/false, デフォルト: false）
"""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# 環境変数キー定数
# ---------------------------------------------------------------------------

_ENV_XCRUN_PATH = "SIMDRIVER_XCRUN_PATH"
_ENV_RUNNER_ARTIFACTS_DIR = "SIMDRIVER_RUNNER_ARTIFACTS_DIR"
_ENV_WORK_ROOT = "SIMDRIVER_WORK_ROOT"
_ENV_RECORDINGS_DIR = "SIMDRIVER_RECORDINGS_DIR"
_ENV_RUN_TIMEOUT = "SIMDRIVER_RUN_TIMEOUT"
_ENV_RESULT_WAIT_TIMEOUT = "SIMDRIVER_RESULT_WAIT_TIMEOUT"
_ENV_RESULT_POLL_INTERVAL = "SIMDRIVER_RESULT_POLL_INTERVAL"
_ENV_RECORDING_SETTLE_DELAY = "SIMDRIVER_RECORDING_SETTLE_DELAY"
_ENV_RECORDING_STOP_TIMEOUT = "SIMDRIVER_RECORDING_STOP_TIMEOUT"
_ENV_STRICT_EXIT = "SIMDRIVER_STRICT_EXIT"

_FLOAT_ENV_FIELDS = {
    _ENV_RUN_TIMEOUT: "run_timeout",
    _ENV_RESULT_WAIT_TIMEOUT: "result_wait_timeout",
    _ENV_RESULT_POLL_INTERVAL: "result_poll_interval",
    _ENV_RECORDING_SETTLE_DELAY: "recording_settle_delay",
    _ENV_RECORDING_STOP_TIMEOUT: "recording_stop_timeout",
}


# ---------------------------------------------------------------------------
# 設定データクラス
# ---------------------------------------------------------------------------

@dataclass
class DriverConfig:
    """UI テストドライバの実行時設定。

    Attributes:
        xcrun_path: xcrun 実行ファイルのパス
        runner_artifacts_dir: ビルド済みランナー成果物のディレクトリ
        work_root: 実行ごとの作業ディレクトリを作成する親ディレクトリ
        recordings_dir: 録画ファイルのデフォルト保存先
        run_timeout: ランナー実行のタイムアウト（秒）
        result_wait_timeout: ランナー終了後に結果ファイルを待つ上限（秒）
        result_poll_interval: 結果ファイルのポーリング間隔（秒）
        recording_settle_delay: 録画開始待ちの固定待機時間（秒）
        recording_stop_timeout: 録画停止待ちの上限（秒）
        strict_exit: 結果ファイルなしの非ゼロ終了を ExternalRunFailed にするか
    """

    xcrun_path: str = "/usr/bin/xcrun"
    runner_artifacts_dir: Path = field(default_factory=lambda: Path("build/SimDriver"))
    work_root: Path = field(default_factory=lambda: Path(tempfile.gettempdir()))
    recordings_dir: Path = field(default_factory=lambda: Path("recordings"))
    run_timeout: float = 300.0
    result_wait_timeout: float = 2.0
    result_poll_interval: float = 0.1
    recording_settle_delay: float = 0.5
    recording_stop_timeout: float = 10.0
    strict_exit: bool = False


# ---------------------------------------------------------------------------
# 環境変数からの読み込み
# ---------------------------------------------------------------------------

def _parse_bool(value: str) -> bool:
    """文字列を bool に変換する。

    Args:
        value: "true", "1", "yes" → True、それ以外 → False

    Returns:
        変換結果
    """
    return value.lower() in ("true", "1", "yes")


def load_config_from_env() -> DriverConfig:
    """環境変数から DriverConfig を生成する。

    設定されていない環境変数はデフォルト値を使用する。
    数値として解釈できない値は警告を出して無視する。

    Returns:
        環境変数から読み込んだ設定
    """
    config = DriverConfig()

    if _ENV_XCRUN_PATH in os.environ:
        config.xcrun_path = os.environ[_ENV_XCRUN_PATH]

    if _ENV_RUNNER_ARTIFACTS_DIR in os.environ:
        config.runner_artifacts_dir = Path(os.environ[_ENV_RUNNER_ARTIFACTS_DIR])

    if _ENV_WORK_ROOT in os.environ:
        config.work_root = Path(os.environ[_ENV_WORK_ROOT])

    if _ENV_RECORDINGS_DIR in os.environ:
        config.recordings_dir = Path(os.environ[_ENV_RECORDINGS_DIR])

    for env_key, attr in _FLOAT_ENV_FIELDS.items():
        if env_key not in os.environ:
            continue
        try:
            setattr(config, attr, float(os.environ[env_key]))
        except ValueError:
            logger.warning("%s の値が不正です: %s", env_key, os.environ[env_key])

    if _ENV_STRICT_EXIT in os.environ:
        config.strict_exit = _parse_bool(os.environ[_ENV_STRICT_EXIT])

    logger.debug("設定を読み込みました: %s", config)
    return config


def apply_overrides(config: DriverConfig, **overrides: Any) -> DriverConfig:
    """CLI 引数などの上書き値を DriverConfig に適用する。

    None の値は未指定として扱い、上書きしない。

    Args:
        config: ベースとなる設定（環境変数から読み込み済み）
        **overrides: フィールド名と値

    Returns:
        上書きが適用された設定

    Raises:
        AttributeError: 未知のフィールド名の場合
    """
    for name, value in overrides.items():
        if value is None:
            continue
        if not hasattr(config, name):
            raise AttributeError(f"未知の設定項目です: {name}")
        setattr(config, name, value)
    return config
