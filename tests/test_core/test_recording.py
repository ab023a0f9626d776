"""
録画セッションのテスト

simctl の代わりに sys.executable -c の実プロセスを録画プロセスとして起動し、
開始待ち・停止・強制終了の状態遷移を検証する。
"""

from __future__ import annotations

import asyncio
import sys
import time
from pathlib import Path

import pytest

from simdriver.core.recording import RecordingSession, RecordingState
from simdriver.errors import ProcessLaunchFailed

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="POSIX シグナル前提のテスト")

# SIGINT（KeyboardInterrupt）で終了する録画プロセスの代替
_SLEEPER = [sys.executable, "-c", "import time; time.sleep(30)"]


def _stubborn_command(ready: Path) -> list[str]:
    """SIGINT を無視する録画プロセスの代替コマンド。"""
    code = (
        "import signal, time\n"
        "signal.signal(signal.SIGINT, signal.SIG_IGN)\n"
        f"open({str(ready)!r}, 'w').close()\n"
        "time.sleep(30)\n"
    )
    return [sys.executable, "-c", code]


async def _wait_for_file(path: Path, timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while not path.exists():
        if time.monotonic() > deadline:
            raise AssertionError(f"{path} が作成されませんでした")
        await asyncio.sleep(0.01)


class TestRecordingSession:
    """RecordingSession のライフサイクルテスト。"""

    @pytest.mark.asyncio
    async def test_start_creates_parent_directory(self, tmp_path: Path):
        """出力先の親ディレクトリが作成され、RECORDING 状態になること。"""
        output = tmp_path / "videos" / "run.mov"
        session = await RecordingSession.start(_SLEEPER, output, settle_delay=0.0)
        try:
            assert output.parent.is_dir()
            assert session.state == RecordingState.RECORDING
            assert session.is_running is True
            assert session.output_path == output
        finally:
            await session.stop(timeout=5.0)

    @pytest.mark.asyncio
    async def test_wait_until_started_uses_settle_delay(self, tmp_path: Path):
        """開始待ちは固定の待機時間で近似されること。"""
        session = await RecordingSession.start(_SLEEPER, tmp_path / "run.mov", settle_delay=0.2)
        try:
            start = time.monotonic()
            await session.wait_until_started()
            assert time.monotonic() - start >= 0.19
        finally:
            await session.stop(timeout=5.0)

    @pytest.mark.asyncio
    async def test_stop_sends_sigint(self, tmp_path: Path):
        """stop() で SIGINT が送られ、プロセスが終了すること。"""
        session = await RecordingSession.start(_SLEEPER, tmp_path / "run.mov", settle_delay=0.0)
        await asyncio.sleep(0.3)

        await session.stop(timeout=5.0)

        assert session.state == RecordingState.STOPPED
        assert session.is_running is False

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, tmp_path: Path):
        """停止済みのセッションに stop() を呼んでも何もしないこと。"""
        session = await RecordingSession.start(_SLEEPER, tmp_path / "run.mov", settle_delay=0.0)
        await session.stop(timeout=5.0)
        await session.stop(timeout=5.0)
        assert session.state == RecordingState.STOPPED

    @pytest.mark.asyncio
    async def test_stopped_session_cannot_be_reused(self, tmp_path: Path):
        """停止後に wait_until_started() を呼ぶと RuntimeError になること。"""
        session = await RecordingSession.start(_SLEEPER, tmp_path / "run.mov", settle_delay=0.0)
        await session.stop(timeout=5.0)
        with pytest.raises(RuntimeError):
            await session.wait_until_started()

    @pytest.mark.asyncio
    async def test_stop_timeout_kills_process(self, tmp_path: Path):
        """SIGINT に応答しない場合は期限後に強制終了されること。"""
        ready = tmp_path / "ready"
        session = await RecordingSession.start(
            _stubborn_command(ready), tmp_path / "run.mov", settle_delay=0.0,
        )
        await _wait_for_file(ready)

        start = time.monotonic()
        await session.stop(timeout=0.3)

        assert time.monotonic() - start < 3.0
        assert session.is_running is False
        assert session.state == RecordingState.STOPPED

    @pytest.mark.asyncio
    async def test_launch_failure(self, tmp_path: Path):
        """起動できない場合は ProcessLaunchFailed になること。"""
        with pytest.raises(ProcessLaunchFailed):
            await RecordingSession.start([str(tmp_path / "no-such-recorder")], tmp_path / "run.mov")
