"""
RunSession — 1 回の自動化実行の作業領域と状態管理

実行ごとに一意の作業ディレクトリ（セッショントークン単位）を確保し、
スクリプト・結果ファイル・書き換え済みマニフェストを保持する。
録画ファイルは作業ディレクトリの外に置き、クリーンアップ対象にしない。

状態遷移:
  IDLE → WORKING_DIR_PREPARED → SCRIPT_WRITTEN → MANIFEST_REWRITTEN
       → [RECORDING_STARTED] → RUNNER_INVOKED
       → RESULT_AVAILABLE | RESULT_SYNTHESIZED → CLEANED_UP
どの状態からも CLEANED_UP へ遷移でき、cleanup() は何度呼んでもよい。
"""

from __future__ import annotations

import enum
import logging
import shutil
import tempfile
import uuid
from pathlib import Path
from typing import Optional

from .mailbox import FILE_PREFIX, Mailbox

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# 実行状態
# ---------------------------------------------------------------------------

class RunState(enum.Enum):
    """1 回の実行の状態。"""

    IDLE = "idle"
    WORKING_DIR_PREPARED = "working_dir_prepared"
    SCRIPT_WRITTEN = "script_written"
    MANIFEST_REWRITTEN = "manifest_rewritten"
    RECORDING_STARTED = "recording_started"
    RUNNER_INVOKED = "runner_invoked"
    RESULT_AVAILABLE = "result_available"
    RESULT_SYNTHESIZED = "result_synthesized"
    CLEANED_UP = "cleaned_up"


# 各状態から遷移可能な状態（CLEANED_UP は全状態から遷移可能）
_TRANSITIONS: dict[RunState, frozenset[RunState]] = {
    RunState.IDLE: frozenset({RunState.WORKING_DIR_PREPARED}),
    RunState.WORKING_DIR_PREPARED: frozenset({RunState.SCRIPT_WRITTEN}),
    RunState.SCRIPT_WRITTEN: frozenset({RunState.MANIFEST_REWRITTEN}),
    RunState.MANIFEST_REWRITTEN: frozenset({RunState.RECORDING_STARTED, RunState.RUNNER_INVOKED}),
    RunState.RECORDING_STARTED: frozenset({RunState.RUNNER_INVOKED}),
    RunState.RUNNER_INVOKED: frozenset({RunState.RESULT_AVAILABLE, RunState.RESULT_SYNTHESIZED}),
    RunState.RESULT_AVAILABLE: frozenset(),
    RunState.RESULT_SYNTHESIZED: frozenset(),
    RunState.CLEANED_UP: frozenset(),
}


def new_session_token() -> str:
    """衝突しないセッショントークンを生成する。"""
    return uuid.uuid4().hex


# ---------------------------------------------------------------------------
# RunSession 本体
# ---------------------------------------------------------------------------

class RunSession:
    """1 回の実行が専有する作業領域。

    Attributes:
        token: セッショントークン
        work_root: 作業ディレクトリを作成する親ディレクトリ
        recording_path: 録画ファイルのパス（作業ディレクトリ外）
    """

    def __init__(
        self,
        token: Optional[str] = None,
        work_root: Optional[Path] = None,
        recording_path: Optional[Path] = None,
    ) -> None:
        self.token = token or new_session_token()
        self.work_root = Path(work_root) if work_root is not None else Path(tempfile.gettempdir())
        self.recording_path = Path(recording_path) if recording_path is not None else None
        self.manifest_path: Optional[Path] = None
        self._state = RunState.IDLE

    # ----- プロパティ -----

    @property
    def state(self) -> RunState:
        """現在の状態を返す。"""
        return self._state

    @property
    def work_dir(self) -> Path:
        """作業ディレクトリのパス。"""
        return self.work_root / f"{FILE_PREFIX}-{self.token}"

    @property
    def mailbox(self) -> Mailbox:
        """この実行のスクリプト / 結果ファイル。"""
        return Mailbox(self.token, self.work_dir)

    # ----- 状態遷移 -----

    def advance(self, state: RunState) -> None:
        """次の状態へ遷移する。

        Raises:
            RuntimeError: 許可されていない遷移の場合
        """
        if state is RunState.CLEANED_UP:
            raise RuntimeError("CLEANED_UP への遷移は cleanup() で行ってください")
        if state not in _TRANSITIONS[self._state]:
            raise RuntimeError(
                f"不正な状態遷移です: {self._state.value} → {state.value}"
            )
        logger.debug("状態遷移: %s → %s", self._state.value, state.value)
        self._state = state

    # ----- 作業ディレクトリ -----

    def prepare(self) -> Path:
        """作業ディレクトリを作成する。

        Raises:
            FileExistsError: 同じトークンのディレクトリが既に存在する場合
        """
        self.work_root.mkdir(parents=True, exist_ok=True)
        self.work_dir.mkdir()
        self.advance(RunState.WORKING_DIR_PREPARED)
        logger.info("作業ディレクトリを作成しました: %s", self.work_dir)
        return self.work_dir

    def cleanup(self) -> None:
        """作業ディレクトリを削除する（録画ファイルは残す）。

        削除は best-effort で、失敗しても例外を送出しない。
        """
        if self._state is RunState.CLEANED_UP:
            return

        # IDLE のままなら作業ディレクトリは自分で作成したものではない
        if self._state is not RunState.IDLE and self.work_dir.exists():
            try:
                shutil.rmtree(self.work_dir)
                logger.info("作業ディレクトリを削除しました: %s", self.work_dir)
            except OSError:
                logger.warning("作業ディレクトリの削除に失敗しました: %s", self.work_dir, exc_info=True)

        self._state = RunState.CLEANED_UP
