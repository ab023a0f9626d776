"""
SimulatorController のテスト

ProcessRunner を AsyncMock で差し替え、simctl の呼び出し内容と
出力の解釈を検証する。
"""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from simdriver.core.process import ProcessResult
from simdriver.core.simulator import (
    HOST_APP_BUNDLE_ID,
    Simulator,
    SimulatorController,
    SimulatorState,
)
from simdriver.errors import NoBootedSimulator, SimulatorCommandFailed

XCRUN = "/usr/bin/xcrun"

DEVICES_JSON = {
    "devices": {
        "com.apple.CoreSimulator.SimRuntime.iOS-17-2": [
            {"udid": "AAAA", "name": "iPhone 15", "state": "Booted", "isAvailable": True},
            {"udid": "BBBB", "name": "iPhone SE (3rd generation)", "state": "Shutdown", "isAvailable": True},
            {"udid": "CCCC", "name": "iPhone 8", "state": "Shutdown", "isAvailable": False},
        ],
        "com.apple.CoreSimulator.SimRuntime.iOS-16-4": [
            {"udid": "DDDD", "name": "iPad Air", "state": "Creating", "isAvailable": True},
        ],
    },
}


def _ok(stdout: str = "") -> ProcessResult:
    return ProcessResult(exit_code=0, stdout=stdout, stderr="")


def _fail(stderr: str = "error", exit_code: int = 1) -> ProcessResult:
    return ProcessResult(exit_code=exit_code, stdout="", stderr=stderr)


def _make_controller(*results: ProcessResult) -> tuple[SimulatorController, MagicMock]:
    runner = MagicMock()
    runner.run = AsyncMock(side_effect=list(results))
    return SimulatorController(process_runner=runner, xcrun_path=XCRUN), runner


# ---------------------------------------------------------------------------
# デバイス一覧
# ---------------------------------------------------------------------------

class TestListSimulators:
    """list_simulators() / get_booted_simulator() のテスト。"""

    @pytest.mark.asyncio
    async def test_lists_available_devices(self):
        """利用可能なデバイスのみが返ること。"""
        controller, runner = _make_controller(_ok(json.dumps(DEVICES_JSON)))

        simulators = await controller.list_simulators()

        runner.run.assert_awaited_once_with(XCRUN, ["simctl", "list", "devices", "-j"])
        assert [s.udid for s in simulators] == ["AAAA", "BBBB", "DDDD"]
        assert simulators[0] == Simulator(
            udid="AAAA",
            name="iPhone 15",
            state=SimulatorState.BOOTED,
            is_available=True,
            runtime="com.apple.CoreSimulator.SimRuntime.iOS-17-2",
        )

    @pytest.mark.asyncio
    async def test_unknown_state(self):
        """未知の状態は UNKNOWN として扱うこと。"""
        controller, _ = _make_controller(_ok(json.dumps(DEVICES_JSON)))
        simulators = await controller.list_simulators()
        assert simulators[-1].state == SimulatorState.UNKNOWN

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        """出力が JSON でなければ SimulatorCommandFailed になること。"""
        controller, _ = _make_controller(_ok("not json"))
        with pytest.raises(SimulatorCommandFailed):
            await controller.list_simulators()

    @pytest.mark.asyncio
    async def test_command_failure(self):
        """simctl が失敗した場合は stderr 付きの SimulatorCommandFailed になること。"""
        controller, _ = _make_controller(_fail("CoreSimulatorService unavailable"))
        with pytest.raises(SimulatorCommandFailed) as exc_info:
            await controller.list_simulators()
        assert exc_info.value.stderr == "CoreSimulatorService unavailable"

    @pytest.mark.asyncio
    async def test_get_booted_simulator(self):
        """起動中のシミュレータが返ること。"""
        controller, _ = _make_controller(_ok(json.dumps(DEVICES_JSON)))
        booted = await controller.get_booted_simulator()
        assert booted is not None
        assert booted.udid == "AAAA"

    @pytest.mark.asyncio
    async def test_require_booted_udid_without_booted(self):
        """起動中のシミュレータがない場合は NoBootedSimulator になること。"""
        controller, _ = _make_controller(_ok(json.dumps({"devices": {}})))
        with pytest.raises(NoBootedSimulator):
            await controller.require_booted_udid()


# ---------------------------------------------------------------------------
# 単発コマンド
# ---------------------------------------------------------------------------

class TestCommands:
    """単発の simctl コマンドのテスト。"""

    @pytest.mark.asyncio
    async def test_boot(self):
        """boot_simulator() が simctl boot を呼ぶこと。"""
        controller, runner = _make_controller(_ok())
        await controller.boot_simulator("AAAA")
        runner.run.assert_awaited_once_with(XCRUN, ["simctl", "boot", "AAAA"])

    @pytest.mark.asyncio
    async def test_shutdown(self):
        """shutdown_simulator() が simctl shutdown を呼ぶこと。"""
        controller, runner = _make_controller(_ok())
        await controller.shutdown_simulator("AAAA")
        runner.run.assert_awaited_once_with(XCRUN, ["simctl", "shutdown", "AAAA"])

    @pytest.mark.asyncio
    async def test_boot_failure(self):
        """非ゼロ終了は SimulatorCommandFailed になること。"""
        controller, _ = _make_controller(_fail("Unable to boot device in current state: Booted"))
        with pytest.raises(SimulatorCommandFailed, match="Booted"):
            await controller.boot_simulator("AAAA")

    @pytest.mark.asyncio
    async def test_launch_and_terminate(self):
        """launch_app() / terminate_app() が UDID → バンドル ID の順で渡すこと。"""
        controller, runner = _make_controller(_ok(), _ok())
        await controller.launch_app("com.example.app", "AAAA")
        await controller.terminate_app("com.example.app", "AAAA")
        assert runner.run.await_args_list[0].args == (XCRUN, ["simctl", "launch", "AAAA", "com.example.app"])
        assert runner.run.await_args_list[1].args == (XCRUN, ["simctl", "terminate", "AAAA", "com.example.app"])

    @pytest.mark.asyncio
    async def test_take_screenshot(self, tmp_path: Path):
        """take_screenshot() が出力先の親ディレクトリを作成して simctl io を呼ぶこと。"""
        controller, runner = _make_controller(_ok())
        output = tmp_path / "shots" / "home.png"

        saved = await controller.take_screenshot("AAAA", output)

        assert saved == output
        assert output.parent.is_dir()
        runner.run.assert_awaited_once_with(XCRUN, ["simctl", "io", "AAAA", "screenshot", str(output)])


# ---------------------------------------------------------------------------
# インストール
# ---------------------------------------------------------------------------

class TestInstall:
    """アプリのインストールのテスト。"""

    @pytest.mark.asyncio
    async def test_is_app_installed(self):
        """get_app_container の成否でインストール状態を判定すること。"""
        controller, runner = _make_controller(_ok("/path/to/container"), _fail())
        assert await controller.is_app_installed("com.example.app", "AAAA") is True
        assert await controller.is_app_installed("com.example.app", "AAAA") is False
        runner.run.assert_awaited_with(XCRUN, ["simctl", "get_app_container", "AAAA", "com.example.app"])

    @pytest.mark.asyncio
    async def test_ensure_host_app_skips_when_installed(self, tmp_path: Path):
        """ホストアプリがインストール済みならインストールしないこと。"""
        controller, runner = _make_controller(_ok("/container"))
        await controller.ensure_host_app_installed(tmp_path / "SimDriverHost.app", "AAAA")
        runner.run.assert_awaited_once_with(
            XCRUN, ["simctl", "get_app_container", "AAAA", HOST_APP_BUNDLE_ID],
        )

    @pytest.mark.asyncio
    async def test_ensure_host_app_installs_when_missing(self, tmp_path: Path):
        """ホストアプリが未インストールならインストールすること。"""
        host_app = tmp_path / "SimDriverHost.app"
        controller, runner = _make_controller(_fail(), _ok())

        await controller.ensure_host_app_installed(host_app, "AAAA")

        assert runner.run.await_count == 2
        runner.run.assert_awaited_with(XCRUN, ["simctl", "install", "AAAA", str(host_app)])


# ---------------------------------------------------------------------------
# 録画
# ---------------------------------------------------------------------------

class TestRecording:
    """録画開始のテスト。"""

    def test_recording_command(self, tmp_path: Path):
        """recordVideo コマンドが h264 / --force 付きで組み立てられること。"""
        controller = SimulatorController(process_runner=MagicMock(), xcrun_path=XCRUN)
        output = tmp_path / "run.mov"
        assert controller.recording_command("AAAA", output) == [
            XCRUN, "simctl", "io", "AAAA", "recordVideo", "--codec=h264", "--force", str(output),
        ]

    @pytest.mark.asyncio
    async def test_start_recording_delegates_to_session(self, tmp_path: Path):
        """start_recording() が RecordingSession.start に委譲すること。"""
        controller = SimulatorController(
            process_runner=MagicMock(), xcrun_path=XCRUN, recording_settle_delay=0.25,
        )
        output = tmp_path / "run.mov"
        sentinel = MagicMock()

        with patch(
            "simdriver.core.simulator.RecordingSession.start",
            new=AsyncMock(return_value=sentinel),
        ) as mock_start:
            session = await controller.start_recording("AAAA", output)

        assert session is sentinel
        mock_start.assert_awaited_once_with(
            controller.recording_command("AAAA", output), output, settle_delay=0.25,
        )
