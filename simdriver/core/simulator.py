"""
SimulatorController — `xcrun simctl` による iOS シミュレータ操作

起動・終了・アプリ操作などの単発コマンドは終了コードのみで成否を判定する。
画面録画は長時間動作するプロセスのため RecordingSession として返す。
"""

from __future__ import annotations

import enum
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..errors import NoBootedSimulator, SimulatorCommandFailed
from .process import DefaultProcessRunner, ProcessResult, ProcessRunner
from .recording import RecordingSession

logger = logging.getLogger(__name__)

DEFAULT_XCRUN_PATH = "/usr/bin/xcrun"

# ホストアプリのバンドル ID（ランナー成果物に同梱）
HOST_APP_BUNDLE_ID = "app.simdriver.SimDriverHost"


# ---------------------------------------------------------------------------
# シミュレータ情報
# ---------------------------------------------------------------------------

class SimulatorState(enum.Enum):
    """シミュレータの状態（simctl の表記に一致）。"""

    BOOTED = "Booted"
    SHUTDOWN = "Shutdown"
    SHUTTING_DOWN = "Shutting Down"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: str) -> SimulatorState:
        """未知の状態文字列は UNKNOWN として扱う。"""
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class Simulator:
    """シミュレータデバイス情報。

    Attributes:
        udid: デバイス UDID
        name: デバイス名（iPhone 15 等）
        state: 現在の状態
        is_available: 利用可能か
        runtime: ランタイム識別子
    """

    udid: str
    name: str
    state: SimulatorState
    is_available: bool = True
    runtime: str = ""


# ---------------------------------------------------------------------------
# SimulatorController 本体
# ---------------------------------------------------------------------------

class SimulatorController:
    """simctl を介してシミュレータを操作するクラス。"""

    def __init__(
        self,
        process_runner: Optional[ProcessRunner] = None,
        xcrun_path: str = DEFAULT_XCRUN_PATH,
        recording_settle_delay: float = RecordingSession.SETTLE_DELAY,
    ) -> None:
        self._runner = process_runner or DefaultProcessRunner()
        self._xcrun_path = xcrun_path
        self._recording_settle_delay = recording_settle_delay

    # -------------------------------------------------------------------
    # デバイス一覧
    # -------------------------------------------------------------------

    async def list_simulators(self) -> list[Simulator]:
        """利用可能なシミュレータを一覧する。"""
        result = await self._simctl("list", "devices", "-j")
        try:
            response = json.loads(result.stdout)
        except json.JSONDecodeError as exc:
            raise SimulatorCommandFailed(f"simctl の出力を解析できません: {exc}") from exc

        simulators: list[Simulator] = []
        for runtime, devices in response.get("devices", {}).items():
            for device in devices:
                if not device.get("isAvailable", False):
                    continue
                simulators.append(
                    Simulator(
                        udid=device["udid"],
                        name=device.get("name", ""),
                        state=SimulatorState.parse(device.get("state", "")),
                        is_available=True,
                        runtime=runtime,
                    )
                )
        return simulators

    async def get_booted_simulator(self) -> Optional[Simulator]:
        """起動中のシミュレータを返す。なければ None。"""
        for simulator in await self.list_simulators():
            if simulator.state is SimulatorState.BOOTED:
                return simulator
        return None

    async def require_booted_udid(self) -> str:
        """起動中シミュレータの UDID を返す。

        Raises:
            NoBootedSimulator: 起動中のシミュレータがない場合
        """
        simulator = await self.get_booted_simulator()
        if simulator is None:
            raise NoBootedSimulator()
        return simulator.udid

    # -------------------------------------------------------------------
    # ライフサイクル
    # -------------------------------------------------------------------

    async def boot_simulator(self, udid: str) -> None:
        await self._simctl("boot", udid)
        logger.info("シミュレータを起動しました: %s", udid)

    async def shutdown_simulator(self, udid: str) -> None:
        await self._simctl("shutdown", udid)
        logger.info("シミュレータを終了しました: %s", udid)

    async def launch_app(self, bundle_id: str, udid: str) -> None:
        await self._simctl("launch", udid, bundle_id)

    async def terminate_app(self, bundle_id: str, udid: str) -> None:
        await self._simctl("terminate", udid, bundle_id)

    async def take_screenshot(self, udid: str, output_path: Path) -> Path:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        await self._simctl("io", udid, "screenshot", str(output_path))
        return output_path

    # -------------------------------------------------------------------
    # アプリのインストール
    # -------------------------------------------------------------------

    async def is_app_installed(self, bundle_id: str, udid: str) -> bool:
        """アプリがインストール済みかどうかを返す（失敗時は False）。"""
        result = await self._runner.run(
            self._xcrun_path, ["simctl", "get_app_container", udid, bundle_id],
        )
        return result.success

    async def install_app(self, app_path: Path, udid: str) -> None:
        await self._simctl("install", udid, str(app_path))
        logger.info("アプリをインストールしました: %s → %s", app_path, udid)

    async def ensure_host_app_installed(self, host_app_path: Path, udid: str) -> None:
        """ホストアプリが未インストールの場合のみインストールする。

        確認とインストールは不可分ではない。同一デバイスへの並行実行は想定しない。
        """
        if await self.is_app_installed(HOST_APP_BUNDLE_ID, udid):
            logger.debug("ホストアプリはインストール済みです: %s", udid)
            return
        await self.install_app(host_app_path, udid)

    # -------------------------------------------------------------------
    # 録画
    # -------------------------------------------------------------------

    def recording_command(self, udid: str, output_path: Path) -> list[str]:
        """録画プロセスのコマンドラインを組み立てる。"""
        return [
            self._xcrun_path,
            "simctl", "io", udid, "recordVideo",
            "--codec=h264", "--force",
            str(output_path),
        ]

    async def start_recording(self, udid: str, output_path: Path) -> RecordingSession:
        """画面録画を開始し、RecordingSession を返す。"""
        return await RecordingSession.start(
            self.recording_command(udid, output_path),
            Path(output_path),
            settle_delay=self._recording_settle_delay,
        )

    # -------------------------------------------------------------------
    # 内部処理
    # -------------------------------------------------------------------

    async def _simctl(self, *args: str) -> ProcessResult:
        """simctl サブコマンドを実行し、非ゼロ終了なら例外を送出する。"""
        result = await self._runner.run(self._xcrun_path, ["simctl", *args])
        if not result.success:
            raise SimulatorCommandFailed(result.stderr)
        return result
