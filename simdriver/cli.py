"""
CLI エントリポイント — Typer ベースのコマンドラインインターフェース

simdriver コマンドとして以下のサブコマンドを提供する:
  - devices: 利用可能なシミュレータ一覧
  - boot / shutdown: シミュレータの起動・終了
  - launch / terminate: アプリの起動・終了
  - screenshot: スクリーンショット取得
  - install: アプリのインストール
  - validate: スクリプトのスキーマ検証
  - run: スクリプト実行

デバイス指定（--device）を省略した場合は起動中のシミュレータを使用する。
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, NoReturn, Optional

import typer

from .config import DriverConfig, apply_overrides, load_config_from_env

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Typer アプリ定義
# ---------------------------------------------------------------------------

app = typer.Typer(
    help=(
        "simdriver — iOS シミュレータ UI 自動化ドライバ\n\n"
        "基本の流れ:\n"
        "  1. simdriver devices             シミュレータを確認\n"
        "  2. simdriver validate flows/x.yaml  スクリプトを検証\n"
        "  3. simdriver run flows/x.yaml       スクリプトを実行\n\n"
        "詳しくは各コマンドに --help を付けてください。"
    ),
    no_args_is_help=True,
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="デバッグログを出力する"),
) -> None:
    """ログ出力を設定する。"""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(name)s - %(levelname)s - %(message)s",
    )


# ---------------------------------------------------------------------------
# ヘルパー
# ---------------------------------------------------------------------------

_DEVICE_HELP = "対象シミュレータの UDID（省略時は起動中のシミュレータ）"


def _load_config(**overrides: Any) -> DriverConfig:
    """環境変数 → CLI 引数の順で設定を構築する。"""
    return apply_overrides(load_config_from_env(), **overrides)


def _controller(config: DriverConfig):
    from .core.simulator import SimulatorController

    return SimulatorController(
        xcrun_path=config.xcrun_path,
        recording_settle_delay=config.recording_settle_delay,
    )


async def _resolve_device(controller, device: Optional[str]) -> str:
    if device:
        return device
    return await controller.require_booted_udid()


def _fail(exc: BaseException) -> NoReturn:
    typer.echo(f"エラー: {exc}", err=True)
    raise typer.Exit(code=1)


# ---------------------------------------------------------------------------
# devices コマンド
# ---------------------------------------------------------------------------

@app.command()
def devices(
    json_output: bool = typer.Option(False, "--json", help="JSON 形式で出力する"),
) -> None:
    """利用可能なシミュレータを一覧表示する。"""
    try:
        controller = _controller(_load_config())
        simulators = asyncio.run(controller.list_simulators())
    except Exception as exc:
        _fail(exc)

    if json_output:
        payload = [
            {
                "udid": s.udid,
                "name": s.name,
                "state": s.state.value,
                "runtime": s.runtime,
            }
            for s in simulators
        ]
        typer.echo(json.dumps(payload, indent=2, ensure_ascii=False))
        return

    if not simulators:
        typer.echo("利用可能なシミュレータがありません")
        return

    for s in simulators:
        typer.echo(f"{s.udid}  {s.name:<24} {s.state.value:<14} {s.runtime}")


# ---------------------------------------------------------------------------
# boot / shutdown コマンド
# ---------------------------------------------------------------------------

@app.command()
def boot(
    udid: str = typer.Argument(..., help="起動するシミュレータの UDID"),
) -> None:
    """シミュレータを起動する。"""
    try:
        asyncio.run(_controller(_load_config()).boot_simulator(udid))
    except Exception as exc:
        _fail(exc)
    typer.echo(f"シミュレータを起動しました: {udid}")


@app.command()
def shutdown(
    udid: str = typer.Argument(..., help="終了するシミュレータの UDID"),
) -> None:
    """シミュレータを終了する。"""
    try:
        asyncio.run(_controller(_load_config()).shutdown_simulator(udid))
    except Exception as exc:
        _fail(exc)
    typer.echo(f"シミュレータを終了しました: {udid}")


# ---------------------------------------------------------------------------
# launch / terminate コマンド
# ---------------------------------------------------------------------------

@app.command()
def launch(
    bundle_id: str = typer.Argument(..., help="起動するアプリのバンドル ID"),
    device: Optional[str] = typer.Option(None, "--device", "-d", help=_DEVICE_HELP),
) -> None:
    """アプリを起動する。"""

    async def _launch() -> str:
        controller = _controller(_load_config())
        udid = await _resolve_device(controller, device)
        await controller.launch_app(bundle_id, udid)
        return udid

    try:
        udid = asyncio.run(_launch())
    except Exception as exc:
        _fail(exc)
    typer.echo(f"アプリを起動しました: {bundle_id} ({udid})")


@app.command()
def terminate(
    bundle_id: str = typer.Argument(..., help="終了するアプリのバンドル ID"),
    device: Optional[str] = typer.Option(None, "--device", "-d", help=_DEVICE_HELP),
) -> None:
    """アプリを終了する。"""

    async def _terminate() -> str:
        controller = _controller(_load_config())
        udid = await _resolve_device(controller, device)
        await controller.terminate_app(bundle_id, udid)
        return udid

    try:
        udid = asyncio.run(_terminate())
    except Exception as exc:
        _fail(exc)
    typer.echo(f"アプリを終了しました: {bundle_id} ({udid})")


# ---------------------------------------------------------------------------
# screenshot コマンド
# ---------------------------------------------------------------------------

@app.command()
def screenshot(
    output: Path = typer.Argument(..., help="保存先の画像ファイルパス"),
    device: Optional[str] = typer.Option(None, "--device", "-d", help=_DEVICE_HELP),
) -> None:
    """シミュレータ画面のスクリーンショットを保存する。"""

    async def _screenshot() -> Path:
        controller = _controller(_load_config())
        udid = await _resolve_device(controller, device)
        return await controller.take_screenshot(udid, output)

    try:
        saved = asyncio.run(_screenshot())
    except Exception as exc:
        _fail(exc)
    typer.echo(f"スクリーンショットを保存しました: {saved}")


# ---------------------------------------------------------------------------
# install コマンド
# ---------------------------------------------------------------------------

@app.command()
def install(
    app_path: Path = typer.Argument(..., help="インストールする .app のパス"),
    device: Optional[str] = typer.Option(None, "--device", "-d", help=_DEVICE_HELP),
) -> None:
    """アプリをシミュレータにインストールする。"""
    if not app_path.exists():
        typer.echo(f"エラー: アプリが見つかりません: {app_path}", err=True)
        raise typer.Exit(code=1)

    async def _install() -> str:
        controller = _controller(_load_config())
        udid = await _resolve_device(controller, device)
        await controller.install_app(app_path, udid)
        return udid

    try:
        udid = asyncio.run(_install())
    except Exception as exc:
        _fail(exc)
    typer.echo(f"アプリをインストールしました: {app_path} ({udid})")


# ---------------------------------------------------------------------------
# validate コマンド
# ---------------------------------------------------------------------------

@app.command()
def validate(
    script_file: Path = typer.Argument(..., help="検証するスクリプトファイル（YAML / JSON）"),
) -> None:
    """スクリプトファイルのスキーマ検証を行う。"""
    from .dsl.parser import ScriptParser
    from .errors import ScriptMalformed

    try:
        script = ScriptParser().load(script_file)
    except (FileNotFoundError, ScriptMalformed) as exc:
        typer.echo(f"✗ {script_file}: {exc}", err=True)
        raise typer.Exit(code=1)

    typer.echo(
        f"✓ {script_file}: スキーマ検証 OK "
        f"(bundleId={script.bundleId}, actions={len(script.actions)})"
    )


# ---------------------------------------------------------------------------
# run コマンド
# ---------------------------------------------------------------------------

@app.command()
def run(
    script_file: Path = typer.Argument(..., help="実行するスクリプトファイル（YAML / JSON）"),
    device: Optional[str] = typer.Option(None, "--device", "-d", help=_DEVICE_HELP),
    record: Optional[Path] = typer.Option(
        None, "--record", "-r", help="実行中の画面を録画し、指定パスに保存する",
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", "-t", help="ランナー実行のタイムアウト（秒）",
    ),
    artifacts: Optional[Path] = typer.Option(
        None, "--artifacts", help="ビルド済みランナー成果物のディレクトリ",
    ),
    install_host: bool = typer.Option(
        True, "--install-host/--no-install-host",
        help="ホストアプリが未インストールならインストールする",
    ),
    json_output: bool = typer.Option(False, "--json", help="結果を JSON 形式で出力する"),
) -> None:
    """スクリプトをシミュレータ上で実行する。"""
    from .core.driver import UITestDriver
    from .dsl.codec import encode_result
    from .dsl.parser import ScriptParser

    async def _run(script):
        config = _load_config(run_timeout=timeout, runner_artifacts_dir=artifacts)
        controller = _controller(config)
        driver = UITestDriver(config, simulator=controller)
        udid = await _resolve_device(controller, device)
        if install_host:
            await driver.ensure_host_app(udid)
        return await driver.execute(script, udid, recording_path=record)

    try:
        script = ScriptParser().load(script_file)
        result = asyncio.run(_run(script))
    except Exception as exc:
        _fail(exc)

    if json_output:
        typer.echo(encode_result(result).decode("utf-8"))
    else:
        typer.echo(f"スクリプト: {script_file} ({script.bundleId})")
        typer.echo(f"ステータス: {'passed' if result.success else 'failed'}")
        typer.echo(f"アクション: {len(result.results)}/{len(script.actions)}")
        for r in result.results:
            mark = "✓" if r.success else "✗"
            line = f"  [{r.actionIndex}] {mark}"
            if 0 <= r.actionIndex < len(script.actions):
                line += f" {script.actions[r.actionIndex].type}"
            if r.error:
                line += f": {r.error}"
            elif r.value is not None:
                line += f" → {r.value}"
            elif r.screenshotPath:
                line += f" → {r.screenshotPath}"
            typer.echo(line)
        if result.error and not result.results:
            typer.echo(f"エラー: {result.error}", err=True)
        if result.videoPath:
            typer.echo(f"録画: {result.videoPath}")

    if not result.success:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
