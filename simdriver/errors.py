"""
例外定義 — simdriver 全体で使用するエラー型

UI 自動化ドライバの各層（スクリプト符号化、プロセス実行、
マニフェスト書き換え、結果読み込み、simctl 操作）が送出する例外を定義する。
いずれも内部でリトライせず、呼び出し元へそのまま伝播する。
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional


class SimDriverError(Exception):
    """simdriver が送出する全例外の基底クラス。"""


# ---------------------------------------------------------------------------
# スクリプト / 結果ファイル
# ---------------------------------------------------------------------------

class ScriptMalformed(SimDriverError):
    """スクリプトの構造が不正な場合の例外。

    未知の判別子（type）や必須フィールドの欠落を検出した際に送出する。

    Attributes:
        field: 問題のあるフィールドパス（例: "actions[2].target.type"）
        value: 問題のある値（取得できない場合は None）
    """

    def __init__(self, message: str, field: str = "", value: Any = None) -> None:
        self.field = field
        self.value = value
        if field:
            message = f"{message} (field={field}, value={value!r})"
        super().__init__(message)


class ResultMalformed(SimDriverError):
    """結果ファイルをデコードできない場合の例外。"""


class ResultWaitTimeout(SimDriverError):
    """結果ファイルが期限内に出現しなかった場合の例外。"""

    def __init__(self, path: Path, timeout: float) -> None:
        self.path = path
        self.timeout = timeout
        super().__init__(
            f"結果ファイルが {timeout:.1f} 秒以内に出現しませんでした: {path}"
        )


# ---------------------------------------------------------------------------
# プロセス実行
# ---------------------------------------------------------------------------

class ProcessTimeout(SimDriverError):
    """外部プロセスがタイムアウトした場合の例外。"""

    def __init__(self, duration: float) -> None:
        self.duration = duration
        super().__init__(f"プロセスが {duration:g} 秒以内に終了しませんでした")


class ProcessLaunchFailed(SimDriverError):
    """外部プロセスを起動できなかった場合の例外。"""

    def __init__(self, executable: str, reason: str) -> None:
        self.executable = executable
        self.reason = reason
        super().__init__(f"プロセスを起動できませんでした: {executable}: {reason}")


# ---------------------------------------------------------------------------
# ランナー準備
# ---------------------------------------------------------------------------

class ManifestInjectionFailed(SimDriverError):
    """マニフェストに環境変数を注入できなかった場合の例外。"""


class MissingRunnerArtifact(SimDriverError):
    """ビルド済みランナー成果物が見つからない場合の例外。"""

    def __init__(self, path: Path) -> None:
        self.path = path
        super().__init__(f"ランナー成果物が見つかりません: {path}")


class ExternalRunFailed(SimDriverError):
    """ランナーが非ゼロ終了し、結果ファイルも残さなかった場合の例外。"""

    def __init__(self, stderr: str, exit_code: Optional[int] = None) -> None:
        self.stderr = stderr
        self.exit_code = exit_code
        super().__init__(
            f"UI テストランナーが失敗しました (exit={exit_code}): {stderr.strip()}"
        )


# ---------------------------------------------------------------------------
# simctl
# ---------------------------------------------------------------------------

class SimulatorCommandFailed(SimDriverError):
    """simctl コマンドが非ゼロ終了した場合の例外。"""

    def __init__(self, stderr: str) -> None:
        self.stderr = stderr
        super().__init__(f"simctl コマンドが失敗しました: {stderr.strip()}")


class NoBootedSimulator(SimDriverError):
    """起動中のシミュレータが存在しない場合の例外。"""

    def __init__(self) -> None:
        super().__init__("起動中のシミュレータがありません")
