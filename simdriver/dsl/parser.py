"""
スクリプトパーサー — YAML / JSON スクリプトファイルの読み込み・書き出し

オペレーターが手で書いたスクリプトファイルを Script モデルに変換する。
YAML は ruamel.yaml で読み込み、検証は codec の判別子ディスパッチに委譲する。
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from ..errors import ScriptMalformed
from .codec import decode_script, script_to_dict
from .schema import Script

_YAML_SUFFIXES = (".yaml", ".yml")


class ScriptParser:
    """スクリプトファイルの読み込み・書き出しを担当するパーサー。"""

    def __init__(self) -> None:
        """ruamel.yaml インスタンスを初期化する。"""
        self._yaml = YAML(typ="safe")
        self._yaml.default_flow_style = False

    # ----- load -----

    def load(self, path: Path) -> Script:
        """スクリプトファイルを読み込み、Script モデルに変換する。

        拡張子が .yaml / .yml の場合は YAML、それ以外は JSON として扱う。

        Args:
            path: 読み込むファイルのパス

        Returns:
            パース済みの Script

        Raises:
            FileNotFoundError: ファイルが存在しない場合
            ScriptMalformed: 構文エラーまたはスキーマ違反の場合
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"スクリプトファイルが見つかりません: {path}")

        if path.suffix.lower() in _YAML_SUFFIXES:
            data = self._load_yaml(path)
        else:
            data = self._load_json(path)

        if data is None:
            raise ScriptMalformed("スクリプトファイルが空です", field="<root>")

        return decode_script(data)

    def loads(self, text: str) -> Script:
        """YAML 文字列から Script を生成する（JSON も YAML として解釈可能）。"""
        try:
            data = self._yaml.load(text)
        except YAMLError as exc:
            raise ScriptMalformed(f"YAML 構文エラー: {exc}", field="<root>") from exc
        if data is None:
            raise ScriptMalformed("スクリプトが空です", field="<root>")
        return decode_script(data)

    # ----- dump -----

    def dump(self, script: Script, path: Path) -> None:
        """Script を YAML ファイルに書き出す。

        Args:
            script: 書き出す Script
            path: 出力先ファイルパス
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            self._yaml.dump(script_to_dict(script), f)

    # ----- 内部 -----

    def _load_yaml(self, path: Path) -> Any:
        try:
            with open(path, "r", encoding="utf-8") as f:
                return self._yaml.load(f)
        except YAMLError as exc:
            line_info = ""
            mark = getattr(exc, "problem_mark", None)
            if mark is not None:
                line_info = f" (行 {mark.line + 1}, 列 {mark.column + 1})"
            raise ScriptMalformed(f"YAML 構文エラー{line_info}: {exc}", field="<root>") from exc

    def _load_json(self, path: Path) -> Any:
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ScriptMalformed(
                f"JSON 構文エラー (行 {exc.lineno}, 列 {exc.colno}): {exc.msg}",
                field="<root>",
            ) from exc
