"""
Mailbox — ランナーとのファイルベース要求/応答

UI 操作ロジックはサンドボックス化された別プロセス（UI テストランナー）で動作するため、
スクリプトをファイルに書き出し、ランナーが書き戻す結果ファイルをポーリングで受け取る。

ファイル名はセッショントークンで一意に決まる:
  - simdriver-<token>-script.json
  - simdriver-<token>-result.json
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from pathlib import Path

from ..dsl.codec import decode_result, encode_script
from ..dsl.schema import Script, ScriptResult
from ..errors import ResultMalformed, ResultWaitTimeout

logger = logging.getLogger(__name__)

FILE_PREFIX = "simdriver"


class Mailbox:
    """セッショントークン単位のスクリプト / 結果ファイル。

    Attributes:
        session_token: セッショントークン
        directory: ファイルを置くディレクトリ
    """

    def __init__(self, session_token: str, directory: Path) -> None:
        self.session_token = session_token
        self.directory = Path(directory)

    @property
    def script_path(self) -> Path:
        """スクリプトファイルのパス。"""
        return self.directory / f"{FILE_PREFIX}-{self.session_token}-script.json"

    @property
    def result_path(self) -> Path:
        """結果ファイルのパス。"""
        return self.directory / f"{FILE_PREFIX}-{self.session_token}-result.json"

    # ----- 要求 -----

    def write_script(self, script: Script) -> Path:
        """スクリプトをアトミックに書き出す（一時ファイル → os.replace）。

        Returns:
            書き出したスクリプトファイルのパス
        """
        path = self.script_path
        tmp_path = path.with_name(path.name + ".tmp")
        tmp_path.write_bytes(encode_script(script))
        os.replace(tmp_path, path)
        logger.debug("スクリプトを書き出しました: %s", path)
        return path

    # ----- 応答 -----

    def has_result(self) -> bool:
        """結果ファイルが存在するかどうかを返す。"""
        return self.result_path.exists()

    def read_result(self) -> ScriptResult:
        """結果ファイルを読み込む。

        Raises:
            ResultMalformed: 読み込めない、またはデコードできない場合
        """
        try:
            data = self.result_path.read_bytes()
        except OSError as exc:
            raise ResultMalformed(f"結果ファイルを読み込めません: {exc}") from exc
        return decode_result(data)

    async def wait_for_result(
        self,
        timeout: float,
        poll_interval: float = 0.1,
    ) -> ScriptResult:
        """結果ファイルの出現を待って読み込む。

        poll_interval 間隔で存在を確認し、timeout までに出現しなければ
        ResultWaitTimeout を送出する。少なくとも 1 回は確認する。

        Raises:
            ResultWaitTimeout: 期限内に出現しなかった場合
            ResultMalformed: デコードできない場合
        """
        start = time.perf_counter()
        while True:
            if self.has_result():
                return self.read_result()

            elapsed = time.perf_counter() - start
            if elapsed >= timeout:
                raise ResultWaitTimeout(self.result_path, timeout)

            logger.debug("結果ファイルを待機中（%.0fms 経過）", elapsed * 1000)
            await asyncio.sleep(min(poll_interval, max(timeout - elapsed, 0.0)))
