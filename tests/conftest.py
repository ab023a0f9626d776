"""
テスト共通フィクスチャ

全テストモジュールで共有するフィクスチャを提供する。
ビルド済みランナー成果物は実物の代わりに、同じディレクトリ構成の
ダミー（空の .app ディレクトリとマニフェストテンプレート）を生成して使用する。
"""

from __future__ import annotations

from pathlib import Path

import pytest

from simdriver.config import DriverConfig
from simdriver.core.manifest import (
    HOST_APP_NAME,
    MANIFEST_TEMPLATE_NAME,
    RUNNER_APP_NAME,
)


# ---------------------------------------------------------------------------
# サンプルデータ
# ---------------------------------------------------------------------------

MANIFEST_TEMPLATE = """\
<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE plist PUBLIC "-//Apple//DTD PLIST 1.0//EN" "http://www.apple.com/DTDs/PropertyList-1.0.dtd">
<plist version="1.0">
<dict>
\t<key>SimDriverUITests</key>
\t<dict>
\t\t<key>TestHostPath</key>
\t\t<string>__TESTROOT__/Debug-iphonesimulator/SimDriverUITests-Runner.app</string>
\t\t<key>UITargetAppPath</key>
\t\t<string>__TESTROOT__/Debug-iphonesimulator/SimDriverHost.app</string>
\t\t<key>EnvironmentVariables</key>
\t\t<dict>
\t\t\t<key>OS_ACTIVITY_DT_MODE</key>
\t\t\t<string>YES</string>
\t\t</dict>
\t</dict>
</dict>
</plist>
"""


@pytest.fixture
def manifest_template() -> str:
    """EnvironmentVariables 辞書を 1 つ含むマニフェストテンプレート。"""
    return MANIFEST_TEMPLATE


@pytest.fixture
def sample_script_dict() -> dict:
    """サンプルのスクリプト辞書データ（ワイヤ形式）。"""
    return {
        "bundleId": "com.example.app",
        "actions": [
            {"type": "tap", "target": {"type": "identifier", "value": "loginButton"}},
            {
                "type": "typeText",
                "text": "user@example.com",
                "target": {"type": "label", "value": "メールアドレス"},
            },
            {"type": "swipe", "direction": "up"},
            {
                "type": "drag",
                "from": {"type": "coordinate", "x": 10, "y": 20},
                "to": {"type": "elementType", "value": "cell", "index": 2},
                "duration": 0.5,
            },
            {"type": "waitForElement", "target": {"type": "identifier", "value": "home"}, "timeout": 5.0},
            {"type": "screenshot"},
        ],
        "recordVideo": False,
    }


@pytest.fixture
def sample_yaml_content() -> str:
    """サンプルの YAML スクリプト文字列。"""
    return """\
bundleId: com.example.app
recordVideo: true
actions:
  - type: tap
    target:
      type: identifier
      value: loginButton
  - type: typeText
    text: secret
    target:
      type: label
      value: パスワード
  - type: assertExists
    target:
      type: identifier
      value: home
"""


# ---------------------------------------------------------------------------
# ランナー成果物・設定
# ---------------------------------------------------------------------------

def make_runner_artifacts(directory: Path, template: str = MANIFEST_TEMPLATE) -> Path:
    """ダミーのランナー成果物ディレクトリを生成する。"""
    directory.mkdir(parents=True, exist_ok=True)
    for name in (RUNNER_APP_NAME, HOST_APP_NAME):
        app = directory / name
        app.mkdir()
        (app / "Info.plist").write_text("<plist/>", encoding="utf-8")
    (directory / MANIFEST_TEMPLATE_NAME).write_text(template, encoding="utf-8")
    return directory


@pytest.fixture
def runner_artifacts(tmp_path: Path) -> Path:
    """ダミーのランナー成果物ディレクトリを提供するフィクスチャ。"""
    return make_runner_artifacts(tmp_path / "artifacts")


@pytest.fixture
def driver_config(tmp_path: Path, runner_artifacts: Path) -> DriverConfig:
    """テスト用に待機時間を短縮した DriverConfig。"""
    return DriverConfig(
        xcrun_path="/usr/bin/xcrun",
        runner_artifacts_dir=runner_artifacts,
        work_root=tmp_path / "work",
        recordings_dir=tmp_path / "recordings",
        run_timeout=30.0,
        result_wait_timeout=0.2,
        result_poll_interval=0.01,
        recording_settle_delay=0.0,
        recording_stop_timeout=1.0,
    )
