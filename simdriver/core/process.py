"""
プロセス実行エンジン — タイムアウト付き外部コマンド実行

外部プログラムを asyncio サブプロセスとして起動し、
stdout / stderr を並行して読み続けながら終了を待機する。

主な機能:
  - ProcessResult: 終了コードと出力のデータクラス
  - ProcessRunner: 実行インターフェース（テストでモック差し替え可能）
  - DefaultProcessRunner: asyncio ベースの実装

タイムアウト時は SIGTERM → 500ms 待機 → SIGINT → 100ms 待機 → SIGKILL の順に
段階的に停止させ、ProcessTimeout を送出する。
非ゼロ終了はエンジンレベルのエラーではなく、ProcessResult として返す。
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import threading
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable

from ..errors import ProcessLaunchFailed, ProcessTimeout

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# 結果データクラス
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ProcessResult:
    """完了した外部コマンドの結果。

    Attributes:
        exit_code: 終了コード
        stdout: 標準出力（UTF-8 デコード済み）
        stderr: 標準エラー出力（UTF-8 デコード済み）
    """

    exit_code: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        """終了コードが 0 かどうかを返す。"""
        return self.exit_code == 0


# ---------------------------------------------------------------------------
# 出力蓄積バッファ
# ---------------------------------------------------------------------------

class _OutputAccumulator:
    """パイプ出力をロック付きで蓄積するバッファ。"""

    def __init__(self) -> None:
        self._chunks: list[bytes] = []
        self._lock = threading.Lock()

    def append(self, data: bytes) -> None:
        with self._lock:
            self._chunks.append(data)

    @property
    def data(self) -> bytes:
        with self._lock:
            return b"".join(self._chunks)

    def text(self) -> str:
        return self.data.decode("utf-8", errors="replace")


# ---------------------------------------------------------------------------
# ProcessRunner インターフェース
# ---------------------------------------------------------------------------

@runtime_checkable
class ProcessRunner(Protocol):
    """外部プロセス実行のインターフェース。"""

    async def run(
        self,
        executable: str,
        args: Sequence[str],
        env: Optional[Mapping[str, str]] = None,
        timeout: float = 60.0,
    ) -> ProcessResult:
        ...


# ---------------------------------------------------------------------------
# DefaultProcessRunner 本体
# ---------------------------------------------------------------------------

class DefaultProcessRunner:
    """asyncio サブプロセスによる ProcessRunner 実装。

    使用例::

        runner = DefaultProcessRunner()
        result = await runner.run("/usr/bin/xcrun", ["simctl", "list", "-j"])
    """

    DEFAULT_TIMEOUT = 60.0

    # 段階的停止の待機時間（秒）
    _TERMINATE_GRACE = 0.5
    _INTERRUPT_GRACE = 0.1
    # SIGKILL 後の回収待ち上限（秒）
    _REAP_TIMEOUT = 2.0
    # 正常終了後に残り出力を読み切るまでの上限（秒）
    _FINAL_DRAIN_TIMEOUT = 1.0
    # 終了検知のポーリング間隔（秒）
    _EXIT_POLL_INTERVAL = 0.02
    _READ_CHUNK = 64 * 1024

    async def run(
        self,
        executable: str,
        args: Sequence[str],
        env: Optional[Mapping[str, str]] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> ProcessResult:
        """外部コマンドを実行し、終了を待機する。

        環境変数は現在のプロセス環境に env を上書きしたものを渡す。

        Args:
            executable: 実行ファイルのパス
            args: 引数リスト
            env: 上書きする環境変数
            timeout: タイムアウト（秒）

        Returns:
            終了コードと出力を含む ProcessResult

        Raises:
            ProcessLaunchFailed: プロセスを起動できなかった場合
            ProcessTimeout: タイムアウトまでに終了しなかった場合
        """
        merged_env = dict(os.environ)
        if env:
            merged_env.update(env)

        stdout_acc = _OutputAccumulator()
        stderr_acc = _OutputAccumulator()

        logger.debug("プロセスを起動します: %s %s", executable, " ".join(args))
        try:
            process = await asyncio.create_subprocess_exec(
                executable,
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=merged_env,
            )
        except OSError as exc:
            raise ProcessLaunchFailed(executable, str(exc)) from exc

        # パイプの読み取りは待機より先に開始する（パイプバッファ満杯によるデッドロック防止）
        drains = [
            asyncio.create_task(self._drain(process.stdout, stdout_acc)),
            asyncio.create_task(self._drain(process.stderr, stderr_acc)),
        ]

        try:
            exited = await self._wait_with_deadline(process, timeout)
            if not exited:
                logger.warning(
                    "プロセスが %.1f 秒でタイムアウトしました。停止します: %s",
                    timeout, executable,
                )
                await self._escalate(process)
                raise ProcessTimeout(timeout)

            # 子孫プロセスがパイプを保持し続ける場合があるため、読み切りは上限付き
            _, pending = await asyncio.wait(drains, timeout=self._FINAL_DRAIN_TIMEOUT)
            if pending:
                logger.debug("終了後も出力パイプが閉じられていません（子孫プロセスが保持）: %s", executable)
        except asyncio.CancelledError:
            if process.returncode is None:
                logger.warning("呼び出し元がキャンセルされたためプロセスを強制終了します: %s", executable)
                _send_signal(process, signal.SIGKILL)
                await self._reap(process)
            raise
        finally:
            for task in drains:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*drains, return_exceptions=True)

        result = ProcessResult(
            exit_code=process.returncode if process.returncode is not None else -1,
            stdout=stdout_acc.text(),
            stderr=stderr_acc.text(),
        )
        logger.debug("プロセスが終了しました: %s (exit=%d)", executable, result.exit_code)
        return result

    # -------------------------------------------------------------------
    # 内部処理
    # -------------------------------------------------------------------

    async def _drain(
        self,
        stream: Optional[asyncio.StreamReader],
        accumulator: _OutputAccumulator,
    ) -> None:
        """EOF までストリームを読み続け、バッファに蓄積する。"""
        if stream is None:
            return
        while True:
            chunk = await stream.read(self._READ_CHUNK)
            if not chunk:
                return
            accumulator.append(chunk)

    async def _wait_with_deadline(
        self, process: asyncio.subprocess.Process, timeout: float
    ) -> bool:
        """プロセス終了と期限切れを競わせる。

        負けた側のタスクはキャンセルし、完了まで待って解放する。

        Returns:
            期限内にプロセスが終了した場合 True
        """
        wait_task = asyncio.create_task(self._wait_exit(process))
        deadline_task = asyncio.create_task(asyncio.sleep(timeout))
        try:
            done, _ = await asyncio.wait(
                {wait_task, deadline_task},
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for task in (wait_task, deadline_task):
                if not task.done():
                    task.cancel()
            await asyncio.gather(wait_task, deadline_task, return_exceptions=True)
        return wait_task in done

    async def _escalate(self, process: asyncio.subprocess.Process) -> None:
        """SIGTERM → SIGINT → SIGKILL の順にプロセスを停止させる。"""
        _send_signal(process, signal.SIGTERM)
        await asyncio.sleep(self._TERMINATE_GRACE)

        if process.returncode is None:
            _send_signal(process, signal.SIGINT)
            await asyncio.sleep(self._INTERRUPT_GRACE)

            if process.returncode is None:
                logger.warning("プロセスが応答しないため SIGKILL を送信します (pid=%d)", process.pid)
                _send_signal(process, signal.SIGKILL)

        await self._reap(process)

    async def _wait_exit(self, process: asyncio.subprocess.Process) -> int:
        """プロセス自身の終了を待つ。

        process.wait() はパイプが閉じるまで戻らないため、
        終了時に設定される returncode を監視する。
        """
        while process.returncode is None:
            await asyncio.sleep(self._EXIT_POLL_INTERVAL)
        return process.returncode

    async def _reap(self, process: asyncio.subprocess.Process) -> None:
        """シグナル送信後、プロセスが回収されるまで上限付きで待つ。"""
        try:
            await asyncio.wait_for(self._wait_exit(process), timeout=self._REAP_TIMEOUT)
        except asyncio.TimeoutError:
            logger.error("プロセスを回収できませんでした (pid=%d)", process.pid)


def _send_signal(process: asyncio.subprocess.Process, sig: int) -> None:
    """終了済みプロセスへのシグナル送信を無視して送信する。"""
    try:
        process.send_signal(sig)
    except ProcessLookupError:
        pass
