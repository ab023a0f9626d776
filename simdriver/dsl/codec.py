"""
スクリプトコーデック — Script / ScriptResult と JSON ワイヤ形式の相互変換

判別子 `type` を最初に読み取り、判別子ごとのディスパッチテーブルから
対応するモデルを選んでから残りのフィールドを検証する。
未知の判別子は ScriptMalformed（フィールドパスと値付き）として即座に失敗し、
部分的に構築された値を返すことはない。

アクション種別を追加する場合は _ACTION_TABLE に 1 行追加するだけでよい。
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any, Union

from pydantic import BaseModel, ValidationError

from ..errors import ResultMalformed, ScriptMalformed
from .schema import (
    AssertExistsAction,
    ClearTextAction,
    CoordinateTarget,
    DoubleTapAction,
    DragAction,
    ElementTypeTarget,
    GetElementFrameAction,
    GetElementPropertiesAction,
    GetElementValueAction,
    IdentifierTarget,
    LabelTarget,
    LongPressAction,
    PinchAction,
    RotateAction,
    ScreenshotAction,
    Script,
    ScriptResult,
    ScrollToElementAction,
    ShakeAction,
    SwipeAction,
    TapAction,
    TypeTextAction,
    WaitForElementAction,
)

RawInput = Union[bytes, str, Mapping[str, Any]]

DISCRIMINATOR = "type"

# ---------------------------------------------------------------------------
# ディスパッチテーブル
# ---------------------------------------------------------------------------

_TARGET_TABLE: dict[str, type[BaseModel]] = {
    "identifier": IdentifierTarget,
    "label": LabelTarget,
    "coordinate": CoordinateTarget,
    "elementType": ElementTypeTarget,
}

_ACTION_TABLE: dict[str, type[BaseModel]] = {
    "tap": TapAction,
    "doubleTap": DoubleTapAction,
    "typeText": TypeTextAction,
    "clearText": ClearTextAction,
    "longPress": LongPressAction,
    "swipe": SwipeAction,
    "pinch": PinchAction,
    "rotate": RotateAction,
    "drag": DragAction,
    "scrollToElement": ScrollToElementAction,
    "shake": ShakeAction,
    "waitForElement": WaitForElementAction,
    "assertExists": AssertExistsAction,
    "screenshot": ScreenshotAction,
    "getElementValue": GetElementValueAction,
    "getElementProperties": GetElementPropertiesAction,
    "getElementFrame": GetElementFrameAction,
}

# アクション内で ElementTarget を保持し得るワイヤ上のキー
_TARGET_KEYS = ("target", "within", "from", "to")


def action_types() -> list[str]:
    """登録済みのアクション種別名を返す。"""
    return list(_ACTION_TABLE)


def target_types() -> list[str]:
    """登録済みのターゲット種別名を返す。"""
    return list(_TARGET_TABLE)


# ---------------------------------------------------------------------------
# 内部ヘルパー
# ---------------------------------------------------------------------------

def _join(path: str, key: str) -> str:
    """フィールドパスを連結する。"""
    if not path:
        return key
    if key.startswith("["):
        return f"{path}{key}"
    return f"{path}.{key}"


def _load_json(data: RawInput, error_cls: type[Exception]) -> Any:
    """bytes / str を Python オブジェクトに変換する。

    それ以外（解析済みの辞書やリスト等）はそのまま返し、構造検証は呼び出し側に任せる。
    """
    if not isinstance(data, (bytes, str)):
        return data
    try:
        if isinstance(data, bytes):
            data = data.decode("utf-8")
        return json.loads(data)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        if error_cls is ScriptMalformed:
            raise ScriptMalformed(f"JSON として解析できません: {exc}", field="<root>") from exc
        raise error_cls(f"JSON として解析できません: {exc}") from exc


def _select_model(
    data: Any,
    table: dict[str, type[BaseModel]],
    path: str,
    kind: str,
) -> type[BaseModel]:
    """判別子を読み取り、対応するモデルクラスを返す。

    Raises:
        ScriptMalformed: オブジェクトでない、判別子がない、または未知の判別子の場合
    """
    if not isinstance(data, Mapping):
        raise ScriptMalformed(
            f"{kind} はオブジェクトである必要があります",
            field=path or "<root>",
            value=data,
        )

    tag_path = _join(path, DISCRIMINATOR)
    if DISCRIMINATOR not in data:
        raise ScriptMalformed(f"{kind} の判別子がありません", field=tag_path)

    tag = data[DISCRIMINATOR]
    model = table.get(tag) if isinstance(tag, str) else None
    if model is None:
        raise ScriptMalformed(f"未知の {kind} 種別です", field=tag_path, value=tag)
    return model


def _validate(model: type[BaseModel], data: Mapping[str, Any], path: str) -> Any:
    """Pydantic 検証を行い、失敗時は ScriptMalformed に変換する。"""
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        first = exc.errors()[0]
        loc = ".".join(str(p) for p in first.get("loc", ()))
        raise ScriptMalformed(
            first.get("msg", "検証エラー"),
            field=_join(path, loc) if loc else (path or "<root>"),
            value=first.get("input"),
        ) from exc


# ---------------------------------------------------------------------------
# ElementTarget
# ---------------------------------------------------------------------------

def encode_target(target: BaseModel) -> dict[str, Any]:
    """ElementTarget をワイヤ形式の辞書に変換する。"""
    return target.model_dump(mode="json", by_alias=True, exclude_none=True)


def decode_target(data: RawInput, path: str = ""):
    """ワイヤ形式から ElementTarget を復元する。

    Args:
        data: JSON 文字列・bytes・辞書のいずれか
        path: エラー報告用のフィールドパス

    Raises:
        ScriptMalformed: 未知の判別子や必須フィールド欠落の場合
    """
    return _decode_target(_load_json(data, ScriptMalformed), path)


def _decode_target(raw: Any, path: str):
    model = _select_model(raw, _TARGET_TABLE, path, "ターゲット")
    return _validate(model, raw, path)


# ---------------------------------------------------------------------------
# Action
# ---------------------------------------------------------------------------

def encode_action(action: BaseModel) -> dict[str, Any]:
    """Action をワイヤ形式の辞書に変換する。未指定の任意フィールドは出力しない。"""
    return action.model_dump(mode="json", by_alias=True, exclude_none=True)


def decode_action(data: RawInput, path: str = ""):
    """ワイヤ形式から Action を復元する。

    判別子でモデルを決定した後、ターゲットを保持するフィールドを
    decode_target で先に復元してから全体を検証する。

    Raises:
        ScriptMalformed: 未知の判別子や必須フィールド欠落の場合
    """
    return _decode_action(_load_json(data, ScriptMalformed), path)


def _decode_action(raw: Any, path: str):
    model = _select_model(raw, _ACTION_TABLE, path, "アクション")

    fields = dict(raw)
    for key in _TARGET_KEYS:
        if fields.get(key) is not None:
            fields[key] = _decode_target(fields[key], _join(path, key))

    return _validate(model, fields, path)


# ---------------------------------------------------------------------------
# Script
# ---------------------------------------------------------------------------

def script_to_dict(script: Script) -> dict[str, Any]:
    """Script をワイヤ形式の辞書に変換する。"""
    return {
        "bundleId": script.bundleId,
        "actions": [encode_action(a) for a in script.actions],
        "recordVideo": script.recordVideo,
    }


def encode_script(script: Script) -> bytes:
    """Script を JSON（UTF-8）にエンコードする。"""
    return json.dumps(script_to_dict(script), indent=2, ensure_ascii=False).encode("utf-8")


def decode_script(data: RawInput) -> Script:
    """JSON（または辞書）から Script を復元する。

    Raises:
        ScriptMalformed: 構造不正の場合。どのアクションが不正かは field に含まれる。
    """
    raw = _load_json(data, ScriptMalformed)
    if not isinstance(raw, Mapping):
        raise ScriptMalformed(
            "スクリプトはオブジェクトである必要があります",
            field="<root>",
            value=type(raw).__name__,
        )

    actions_raw = raw.get("actions", [])
    if not isinstance(actions_raw, list):
        raise ScriptMalformed("actions は配列である必要があります", field="actions", value=actions_raw)

    actions = [_decode_action(a, f"actions[{i}]") for i, a in enumerate(actions_raw)]

    fields = {k: v for k, v in raw.items() if k != "actions"}
    fields["actions"] = actions
    return _validate(Script, fields, "")


# ---------------------------------------------------------------------------
# ScriptResult
# ---------------------------------------------------------------------------

def encode_result(result: ScriptResult) -> bytes:
    """ScriptResult を JSON（UTF-8）にエンコードする。null は省略しない。"""
    return result.model_dump_json(indent=2).encode("utf-8")


def decode_result(data: RawInput) -> ScriptResult:
    """ランナーが書き出した結果 JSON から ScriptResult を復元する。

    Raises:
        ResultMalformed: JSON 不正またはスキーマ違反の場合
    """
    raw = _load_json(data, ResultMalformed)
    try:
        return ScriptResult.model_validate(raw)
    except ValidationError as exc:
        raise ResultMalformed(f"結果ファイルのスキーマ検証エラー: {exc}") from exc
