"""
マニフェスト — ランナー成果物の配置と .xctestrun テンプレートの書き換え

ビルド済みのランナー成果物ディレクトリには以下が含まれる前提とする:
  - SimDriverUITests-Runner.app : UI テストランナー
  - SimDriverHost.app           : ホストアプリ
  - SimDriver.xctestrun         : マニフェストテンプレート（__TESTROOT__ を含む plist）

作業ディレクトリにランナーが期待する構成（Debug-iphonesimulator/ 配下）を再現し、
テンプレートの __TESTROOT__ を作業ディレクトリの絶対パスに置換したうえで、
EnvironmentVariables 辞書にスクリプト / 結果ファイルのパスを注入する。
注入先が見つからない場合は ManifestInjectionFailed を送出する。
"""

from __future__ import annotations

import logging
import re
import shutil
from collections.abc import Mapping
from pathlib import Path
from xml.sax.saxutils import escape

from ..errors import ManifestInjectionFailed, MissingRunnerArtifact

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# 成果物レイアウト定数
# ---------------------------------------------------------------------------

RUNNER_APP_NAME = "SimDriverUITests-Runner.app"
HOST_APP_NAME = "SimDriverHost.app"
MANIFEST_TEMPLATE_NAME = "SimDriver.xctestrun"
PRODUCTS_DIR_NAME = "Debug-iphonesimulator"

TESTROOT_PLACEHOLDER = "__TESTROOT__"

ENV_SCRIPT_PATH = "UI_TEST_SCRIPT_PATH"
ENV_RESULT_PATH = "UI_TEST_RESULT_PATH"

# <key>EnvironmentVariables</key> に続く <dict> または空の <dict/>
_ENV_ANCHOR = re.compile(
    r"(<key>\s*EnvironmentVariables\s*</key>\s*)(<dict>|<dict\s*/>)"
)


# ---------------------------------------------------------------------------
# 成果物の配置
# ---------------------------------------------------------------------------

def materialize_runner_layout(artifacts_dir: Path, work_dir: Path) -> Path:
    """ランナー / ホストアプリを作業ディレクトリの固定パスへコピーする。

    Args:
        artifacts_dir: ビルド済みランナー成果物のディレクトリ
        work_dir: 実行ごとの作業ディレクトリ

    Returns:
        コピー先の製品ディレクトリ（<work_dir>/Debug-iphonesimulator）

    Raises:
        MissingRunnerArtifact: 成果物が見つからない場合
    """
    artifacts_dir = Path(artifacts_dir)
    products_dir = Path(work_dir) / PRODUCTS_DIR_NAME
    products_dir.mkdir(parents=True, exist_ok=True)

    for name in (RUNNER_APP_NAME, HOST_APP_NAME):
        source = artifacts_dir / name
        if not source.exists():
            raise MissingRunnerArtifact(source)
        destination = products_dir / name
        if source.is_dir():
            shutil.copytree(source, destination, symlinks=True)
        else:
            shutil.copy2(source, destination)
        logger.debug("成果物をコピーしました: %s → %s", source, destination)

    return products_dir


# ---------------------------------------------------------------------------
# テンプレートの書き換え
# ---------------------------------------------------------------------------

def _env_entries(env: Mapping[str, str]) -> str:
    return "".join(
        f"<key>{escape(key)}</key><string>{escape(value)}</string>"
        for key, value in env.items()
    )


def rewrite_manifest(template: str, test_root: Path, env: Mapping[str, str]) -> str:
    """マニフェストテンプレートを書き換える。

    __TESTROOT__ を test_root の絶対パスに置換し、全テストターゲットの
    EnvironmentVariables 辞書の先頭に env を注入する。

    Args:
        template: .xctestrun テンプレートの内容
        test_root: 作業ディレクトリ
        env: 注入する環境変数

    Returns:
        書き換え後のマニフェスト

    Raises:
        ManifestInjectionFailed: EnvironmentVariables 辞書が見つからない場合
    """
    text = template.replace(TESTROOT_PLACEHOLDER, escape(str(Path(test_root).resolve())))

    entries = _env_entries(env)

    def _inject(match: re.Match) -> str:
        prefix, opening = match.group(1), match.group(2)
        if opening == "<dict>":
            return f"{prefix}<dict>{entries}"
        return f"{prefix}<dict>{entries}</dict>"

    text, count = _ENV_ANCHOR.subn(_inject, text)
    if count == 0:
        raise ManifestInjectionFailed(
            "マニフェストに EnvironmentVariables 辞書が見つかりません。"
            f" {', '.join(env)} を注入できません"
        )

    logger.debug("マニフェストに環境変数を注入しました（%d 箇所）", count)
    return text


def write_manifest(
    artifacts_dir: Path,
    work_dir: Path,
    env: Mapping[str, str],
) -> Path:
    """テンプレートを複製・書き換えして作業ディレクトリに保存する。

    Returns:
        書き換え後のマニフェストのパス

    Raises:
        MissingRunnerArtifact: テンプレートが見つからない場合
        ManifestInjectionFailed: 注入先が見つからない場合
    """
    template_path = Path(artifacts_dir) / MANIFEST_TEMPLATE_NAME
    if not template_path.exists():
        raise MissingRunnerArtifact(template_path)

    template = template_path.read_text(encoding="utf-8")
    manifest_path = Path(work_dir) / MANIFEST_TEMPLATE_NAME
    manifest_path.write_text(rewrite_manifest(template, work_dir, env), encoding="utf-8")
    return manifest_path
