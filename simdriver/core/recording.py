"""
RecordingSession — シミュレータ画面録画プロセスの管理

`simctl io <udid> recordVideo` を長時間動作するサブプロセスとして起動し、
開始待ち・停止（SIGINT による動画ファイルの確定）を管理する。

録画プロセスは準備完了を明示的に通知しないため、
開始待ちは固定の待機時間で近似する。
停止後のセッションは再利用できない。
"""

from __future__ import annotations

import asyncio
import enum
import logging
import signal
from collections.abc import Sequence
from pathlib import Path
from typing import Optional

from ..errors import ProcessLaunchFailed

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# 録画状態
# ---------------------------------------------------------------------------

class RecordingState(enum.Enum):
    """録画セッションの状態。"""

    RECORDING = "recording"
    STOPPING = "stopping"
    STOPPED = "stopped"


# ---------------------------------------------------------------------------
# RecordingSession 本体
# ---------------------------------------------------------------------------

class RecordingSession:
    """起動済みの録画サブプロセスを保持するセッション。

    start() で生成し、wait_until_started() で開始を待ってから
    操作を行い、最後に stop() で動画を確定させる。
    """

    # 録画プロセスが書き込みを始めるまでの待機時間（秒）
    SETTLE_DELAY = 0.5

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        output_path: Path,
        settle_delay: float = SETTLE_DELAY,
    ) -> None:
        self._process = process
        self._settle_delay = settle_delay
        self._state = RecordingState.RECORDING
        self.output_path = Path(output_path)

    @classmethod
    async def start(
        cls,
        command: Sequence[str],
        output_path: Path,
        settle_delay: float = SETTLE_DELAY,
    ) -> RecordingSession:
        """録画プロセスを起動する（完了は待たない）。

        Args:
            command: 実行ファイルと引数
            output_path: 動画ファイルの出力先
            settle_delay: 開始待ちの固定待機時間（秒）

        Raises:
            ProcessLaunchFailed: 録画プロセスを起動できなかった場合
        """
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as exc:
            raise ProcessLaunchFailed(command[0], str(exc)) from exc

        logger.info("録画を開始しました: %s (pid=%d)", output_path, process.pid)
        return cls(process, output_path, settle_delay=settle_delay)

    @property
    def state(self) -> RecordingState:
        """現在の録画状態を返す。"""
        return self._state

    @property
    def is_running(self) -> bool:
        """録画プロセスが動作中かどうかを返す。"""
        return self._process.returncode is None

    async def wait_until_started(self, timeout: float = 5.0) -> None:
        """録画が開始されるまで待機する。

        固定の待機時間（timeout を上限とする）で近似する。

        Raises:
            RuntimeError: 停止済みのセッションの場合
        """
        if self._state is not RecordingState.RECORDING:
            raise RuntimeError("停止済みの録画セッションは再利用できません")
        await asyncio.sleep(min(self._settle_delay, timeout))

    async def stop(self, timeout: Optional[float] = None) -> None:
        """SIGINT を送信し、録画プロセスの終了を待って動画を確定させる。

        停止済みの場合は何もしない。

        Args:
            timeout: 終了待ちの上限（秒）。超過時は SIGKILL で強制終了する。
                     None の場合は終了まで待ち続ける。
        """
        if self._state is not RecordingState.RECORDING:
            return

        self._state = RecordingState.STOPPING
        try:
            if self._process.returncode is None:
                try:
                    self._process.send_signal(signal.SIGINT)
                except ProcessLookupError:
                    pass

            if timeout is None:
                await self._process.wait()
            else:
                try:
                    await asyncio.wait_for(self._process.wait(), timeout=timeout)
                except asyncio.TimeoutError:
                    logger.warning(
                        "録画プロセスが %.1f 秒以内に終了しないため強制終了します", timeout,
                    )
                    try:
                        self._process.kill()
                    except ProcessLookupError:
                        pass
                    await self._process.wait()
        finally:
            self._state = RecordingState.STOPPED
            logger.info("録画を停止しました: %s", self.output_path)
