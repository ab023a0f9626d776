"""
UITestDriver — 外部 UI テストランナーによるスクリプト実行

Script を対象シミュレータ上で実行する。UI 操作そのものは
`xcodebuild test-without-building` で起動される外部ランナーが担い、
本モジュールはファイルベースの要求/応答とプロセスのライフサイクルを管理する。

実行手順:
  1. セッショントークン単位の作業ディレクトリを確保
  2. ビルド済みランナー / ホストアプリを固定パスへコピー
  3. スクリプトファイルを書き出し
  4. マニフェストを複製・書き換え（__TESTROOT__ 置換、環境変数注入）
  5. 録画指定時は録画を開始し、開始を待機
  6. タイムアウト付きでランナーを起動
  7. 結果ファイルがあれば終了コードに関わらずそれを返す
  8. なければ終了コードから結果を合成
  9. 成否・タイムアウトに関わらず録画を停止し、作業ディレクトリを削除
 10. 録画指定時は録画パスを結果に付与
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from ..config import DriverConfig
from ..dsl.schema import Script, ScriptResult
from ..errors import ExternalRunFailed, ResultWaitTimeout
from .manifest import (
    ENV_RESULT_PATH,
    ENV_SCRIPT_PATH,
    HOST_APP_NAME,
    materialize_runner_layout,
    write_manifest,
)
from .process import DefaultProcessRunner, ProcessResult, ProcessRunner
from .recording import RecordingSession
from .session import RunSession, RunState
from .simulator import SimulatorController

logger = logging.getLogger(__name__)

# ランナー内で実行するテストメソッド
TEST_SELECTOR = "SimDriverUITests/DriverTests/testScript"


class UITestDriver:
    """外部 UI テストランナーにスクリプト実行を委譲するドライバ。

    使用例::

        driver = UITestDriver(config)
        result = await driver.execute(script, device_id="XXXX-...")
    """

    def __init__(
        self,
        config: Optional[DriverConfig] = None,
        process_runner: Optional[ProcessRunner] = None,
        simulator: Optional[SimulatorController] = None,
    ) -> None:
        """UITestDriver を初期化する。

        Args:
            config: ドライバ設定（None でデフォルト）
            process_runner: ランナー起動に使う ProcessRunner
            simulator: 録画の開始に使う SimulatorController
        """
        self._config = config or DriverConfig()
        self._runner = process_runner or DefaultProcessRunner()
        self._simulator = simulator or SimulatorController(
            process_runner=self._runner,
            xcrun_path=self._config.xcrun_path,
            recording_settle_delay=self._config.recording_settle_delay,
        )

    @property
    def config(self) -> DriverConfig:
        """ドライバ設定を返す。"""
        return self._config

    # -------------------------------------------------------------------
    # パブリック API
    # -------------------------------------------------------------------

    async def ensure_host_app(self, device_id: str) -> None:
        """ランナー成果物のホストアプリを未インストールならインストールする。"""
        host_app = Path(self._config.runner_artifacts_dir) / HOST_APP_NAME
        await self._simulator.ensure_host_app_installed(host_app, device_id)

    async def execute(
        self,
        script: Script,
        device_id: str,
        *,
        timeout: Optional[float] = None,
        recording_path: Optional[Path] = None,
        session_token: Optional[str] = None,
    ) -> ScriptResult:
        """スクリプトを対象シミュレータで実行し、結果を返す。

        script.recordVideo が True、または recording_path が指定された場合は
        実行中の画面を録画し、結果の videoPath に録画パスを設定する。

        Args:
            script: 実行するスクリプト
            device_id: 対象シミュレータの UDID
            timeout: ランナー実行のタイムアウト（秒）。None で設定値
            recording_path: 録画ファイルの保存先。None で recordings_dir 配下
            session_token: セッショントークン。並行実行時は呼び出し元が一意性を保証する

        Returns:
            スクリプトの実行結果

        Raises:
            MissingRunnerArtifact: ランナー成果物が見つからない場合
            ManifestInjectionFailed: マニフェストへの注入に失敗した場合
            ProcessLaunchFailed: ランナーまたは録画プロセスを起動できなかった場合
            ProcessTimeout: ランナーがタイムアウトした場合
            ResultMalformed: 結果ファイルをデコードできない場合
            ExternalRunFailed: strict_exit 有効時に結果ファイルなしで非ゼロ終了した場合
        """
        cfg = self._config
        run_timeout = timeout if timeout is not None else cfg.run_timeout

        session = RunSession(token=session_token, work_root=cfg.work_root)
        if script.recordVideo or recording_path is not None:
            session.recording_path = (
                Path(recording_path).absolute()
                if recording_path is not None
                else (Path(cfg.recordings_dir) / f"simdriver-{session.token}.mov").absolute()
            )

        recording: Optional[RecordingSession] = None
        logger.info(
            "スクリプトを実行します: bundleId=%s, actions=%d, device=%s",
            script.bundleId, len(script.actions), device_id,
        )

        try:
            session.prepare()
            materialize_runner_layout(cfg.runner_artifacts_dir, session.work_dir)

            mailbox = session.mailbox
            mailbox.write_script(script)
            session.advance(RunState.SCRIPT_WRITTEN)

            session.manifest_path = write_manifest(
                cfg.runner_artifacts_dir,
                session.work_dir,
                {
                    ENV_SCRIPT_PATH: str(mailbox.script_path.resolve()),
                    ENV_RESULT_PATH: str(mailbox.result_path.resolve()),
                },
            )
            session.advance(RunState.MANIFEST_REWRITTEN)

            if session.recording_path is not None:
                recording = await self._simulator.start_recording(device_id, session.recording_path)
                session.advance(RunState.RECORDING_STARTED)
                await recording.wait_until_started()

            session.advance(RunState.RUNNER_INVOKED)
            process_result = await self._runner.run(
                cfg.xcrun_path,
                runner_arguments(session.manifest_path, device_id),
                timeout=run_timeout,
            )
            logger.info("ランナーが終了しました (exit=%d)", process_result.exit_code)

            result = await self._collect_result(session, process_result)
        finally:
            if recording is not None:
                await self._stop_recording(recording)
            session.cleanup()

        if session.recording_path is not None:
            result = result.model_copy(update={"videoPath": str(session.recording_path)})

        logger.info(
            "スクリプトの実行が完了しました: success=%s, results=%d",
            result.success, len(result.results),
        )
        return result

    # -------------------------------------------------------------------
    # 結果の取得
    # -------------------------------------------------------------------

    async def _collect_result(
        self, session: RunSession, process_result: ProcessResult
    ) -> ScriptResult:
        """結果ファイルを優先し、なければプロセス結果から合成する。

        部分失敗でもランナーは非ゼロ終了し得るため、
        結果ファイルの自己申告を終了コードより優先する。
        """
        cfg = self._config
        try:
            result = await session.mailbox.wait_for_result(
                timeout=cfg.result_wait_timeout,
                poll_interval=cfg.result_poll_interval,
            )
        except ResultWaitTimeout:
            session.advance(RunState.RESULT_SYNTHESIZED)
            logger.info("結果ファイルがないため、終了コードから結果を合成します")
            return self._synthesize(process_result)

        session.advance(RunState.RESULT_AVAILABLE)
        if not process_result.success:
            logger.info(
                "ランナーは非ゼロ終了しましたが結果ファイルを使用します (exit=%d)",
                process_result.exit_code,
            )
        return result

    def _synthesize(self, process_result: ProcessResult) -> ScriptResult:
        if process_result.success:
            return ScriptResult(success=True, results=[])
        if self._config.strict_exit:
            raise ExternalRunFailed(process_result.stderr, process_result.exit_code)
        return ScriptResult(success=False, results=[], error=process_result.stderr)

    async def _stop_recording(self, recording: RecordingSession) -> None:
        """録画を停止する。失敗しても後続のクリーンアップは継続する。"""
        try:
            await recording.stop(timeout=self._config.recording_stop_timeout)
        except Exception:
            logger.warning("録画の停止に失敗しました: %s", recording.output_path, exc_info=True)


def runner_arguments(manifest_path: Path, device_id: str) -> list[str]:
    """xcrun に渡すランナー起動引数を組み立てる。"""
    return [
        "xcodebuild",
        "test-without-building",
        "-xctestrun", str(manifest_path),
        "-destination", f"platform=iOS Simulator,id={device_id}",
        f"-only-testing:{TEST_SELECTOR}",
    ]
