"""
スクリプトスキーマ定義 — UI アクション列の Pydantic v2 モデル

外部 UI テストランナーへ渡すスクリプト（Script）と、
ランナーが書き戻す実行結果（ScriptResult）のモデルを定義する。

フィールド名は JSON ワイヤ形式（camelCase）と一致させている。
アクション・要素ターゲットはいずれも `type` を判別子とするタグ付き共用体で、
任意フィールドは「未指定」と「指定あり」を区別したまま保持する。
既定値（longPress の押下時間等）は実行側（ランナー）でのみ適用する。
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class _FrozenModel(BaseModel):
    """不変モデルの基底クラス。"""

    model_config = ConfigDict(frozen=True, populate_by_name=True)


# ---------------------------------------------------------------------------
# 要素ターゲット
# ---------------------------------------------------------------------------

class IdentifierTarget(_FrozenModel):
    """accessibilityIdentifier による要素指定。最も安定した指定方式。"""

    type: Literal["identifier"] = "identifier"
    value: str = Field(..., description="accessibilityIdentifier の値")


class LabelTarget(_FrozenModel):
    """アクセシビリティラベルによる要素指定。"""

    type: Literal["label"] = "label"
    value: str = Field(..., description="ラベル文字列（完全一致）")


class CoordinateTarget(_FrozenModel):
    """画面座標（ポイント）による位置指定。"""

    type: Literal["coordinate"] = "coordinate"
    x: int = Field(..., description="X 座標（ポイント）")
    y: int = Field(..., description="Y 座標（ポイント）")


class ElementTypeTarget(_FrozenModel):
    """要素種別と出現順による要素指定。

    value に XCUIElement.ElementType 名（button, textField 等）、
    index に同種要素内の 0 始まりの位置を指定する。
    """

    type: Literal["elementType"] = "elementType"
    value: str = Field(..., description="要素種別名（button, cell 等）")
    index: int = Field(..., ge=0, description="同種要素内のインデックス")


ElementTarget = Annotated[
    Union[IdentifierTarget, LabelTarget, CoordinateTarget, ElementTypeTarget],
    Field(discriminator="type"),
]
"""全ターゲット種別の判別共用体。"""


SwipeDirection = Literal["up", "down", "left", "right"]


# ===========================================================================
# アクションモデル定義
# ===========================================================================

# ---------------------------------------------------------------------------
# タップ・入力
# ---------------------------------------------------------------------------

class TapAction(_FrozenModel):
    """要素をタップするアクション。"""

    type: Literal["tap"] = "tap"
    target: ElementTarget


class DoubleTapAction(_FrozenModel):
    """要素をダブルタップするアクション。"""

    type: Literal["doubleTap"] = "doubleTap"
    target: ElementTarget


class TypeTextAction(_FrozenModel):
    """テキストを入力するアクション。

    target 省略時はフォーカス中の要素へ入力する。
    """

    type: Literal["typeText"] = "typeText"
    text: str
    target: Optional[ElementTarget] = None


class ClearTextAction(_FrozenModel):
    """テキストフィールドの内容を消去するアクション。"""

    type: Literal["clearText"] = "clearText"
    target: ElementTarget


class LongPressAction(_FrozenModel):
    """要素を長押しするアクション。"""

    type: Literal["longPress"] = "longPress"
    target: ElementTarget
    duration: Optional[float] = Field(default=None, description="押下時間（秒）")


# ---------------------------------------------------------------------------
# ジェスチャー
# ---------------------------------------------------------------------------

class SwipeAction(_FrozenModel):
    """スワイプするアクション。target 省略時はアプリ全体が対象。"""

    type: Literal["swipe"] = "swipe"
    direction: SwipeDirection
    target: Optional[ElementTarget] = None
    velocity: Optional[float] = Field(default=None, description="スワイプ速度（ポイント/秒）")


class PinchAction(_FrozenModel):
    """ピンチ（拡大・縮小）するアクション。scale > 1 で拡大。"""

    type: Literal["pinch"] = "pinch"
    target: ElementTarget
    scale: Optional[float] = Field(default=None, description="拡大率。省略時は実行側の既定値")
    velocity: Optional[float] = None


class RotateAction(_FrozenModel):
    """2 本指で回転するアクション。rotation はラジアン。"""

    type: Literal["rotate"] = "rotate"
    target: ElementTarget
    rotation: float
    velocity: Optional[float] = None


class DragAction(_FrozenModel):
    """要素（または座標）から別の要素（または座標）へドラッグするアクション。

    `from` は Python の予約語のため、属性名は from_ とする。
    """

    type: Literal["drag"] = "drag"
    from_: ElementTarget = Field(..., alias="from")
    to: ElementTarget
    duration: Optional[float] = Field(default=None, description="押下してから移動を始めるまでの時間（秒）")


class ScrollToElementAction(_FrozenModel):
    """対象要素が見えるまでスクロールするアクション。"""

    type: Literal["scrollToElement"] = "scrollToElement"
    target: ElementTarget
    within: Optional[ElementTarget] = Field(default=None, description="スクロール対象のコンテナ")
    direction: Optional[SwipeDirection] = None
    maxScrolls: Optional[int] = Field(default=None, ge=1, description="最大スクロール回数")


class ShakeAction(_FrozenModel):
    """デバイスのシェイクを発生させるアクション。"""

    type: Literal["shake"] = "shake"


# ---------------------------------------------------------------------------
# 待機・検証
# ---------------------------------------------------------------------------

class WaitForElementAction(_FrozenModel):
    """要素の出現を待機するアクション。"""

    type: Literal["waitForElement"] = "waitForElement"
    target: ElementTarget
    timeout: Optional[float] = Field(default=None, description="待機上限（秒）")


class AssertExistsAction(_FrozenModel):
    """要素が存在することを検証するアクション。"""

    type: Literal["assertExists"] = "assertExists"
    target: ElementTarget


# ---------------------------------------------------------------------------
# 取得
# ---------------------------------------------------------------------------

class ScreenshotAction(_FrozenModel):
    """スクリーンショットを保存するアクション。"""

    type: Literal["screenshot"] = "screenshot"
    outputPath: Optional[str] = Field(default=None, description="保存先（省略時はランナーの一時領域）")


class GetElementValueAction(_FrozenModel):
    """要素の value を取得するアクション。"""

    type: Literal["getElementValue"] = "getElementValue"
    target: ElementTarget


class GetElementPropertiesAction(_FrozenModel):
    """要素のプロパティ一式（label, enabled 等）を取得するアクション。"""

    type: Literal["getElementProperties"] = "getElementProperties"
    target: ElementTarget


class GetElementFrameAction(_FrozenModel):
    """要素のフレーム（位置・サイズ）を取得するアクション。"""

    type: Literal["getElementFrame"] = "getElementFrame"
    target: ElementTarget


Action = Annotated[
    Union[
        TapAction,
        DoubleTapAction,
        TypeTextAction,
        ClearTextAction,
        LongPressAction,
        SwipeAction,
        PinchAction,
        RotateAction,
        DragAction,
        ScrollToElementAction,
        ShakeAction,
        WaitForElementAction,
        AssertExistsAction,
        ScreenshotAction,
        GetElementValueAction,
        GetElementPropertiesAction,
        GetElementFrameAction,
    ],
    Field(discriminator="type"),
]
"""全アクション種別の判別共用体。"""


# ---------------------------------------------------------------------------
# スクリプト
# ---------------------------------------------------------------------------

class Script(_FrozenModel):
    """ランナーへ渡す UI 操作スクリプト。

    1 回の自動化呼び出しにつき 1 つ生成され、以降は変更されない。

    Attributes:
        bundleId: 操作対象アプリのバンドル ID
        actions: 順序付きアクション列
        recordVideo: 実行中に画面録画を行うか
    """

    bundleId: str = Field(..., min_length=1)
    actions: tuple[Action, ...] = ()
    recordVideo: bool = False


# ===========================================================================
# 実行結果モデル
# ===========================================================================

class ElementFrame(BaseModel):
    """要素のフレーム（ポイント単位）。"""

    x: float
    y: float
    width: float
    height: float


class ActionResult(BaseModel):
    """単一アクションの実行結果。

    ペイロード（value / properties / frame / screenshotPath）は
    取得系アクションの場合のみ設定される。
    """

    actionIndex: int
    success: bool
    error: Optional[str] = None
    value: Optional[str] = None
    properties: Optional[dict[str, Any]] = None
    frame: Optional[ElementFrame] = None
    screenshotPath: Optional[str] = None


class ScriptResult(BaseModel):
    """スクリプト全体の実行結果。

    ランナーは最初に失敗したアクションで実行を打ち切るため、
    results は途中までの結果になり得る（それ自体はエラーではない）。

    Attributes:
        success: 全アクション結果の論理積
        results: アクション結果（実行順）
        error: 最初に失敗したアクションのエラー
        videoPath: 録画ファイルのパス（録画時のみ）
    """

    success: bool
    results: list[ActionResult] = Field(default_factory=list)
    error: Optional[str] = None
    videoPath: Optional[str] = None

    @classmethod
    def from_action_results(
        cls,
        results: list[ActionResult],
        video_path: Optional[str] = None,
    ) -> ScriptResult:
        """アクション結果列から ScriptResult を組み立てる。

        Args:
            results: アクション結果（実行順）
            video_path: 録画ファイルのパス

        Returns:
            success と error を導出済みの ScriptResult
        """
        first_failure = next((r for r in results if not r.success), None)
        return cls(
            success=first_failure is None,
            results=list(results),
            error=first_failure.error if first_failure is not None else None,
            videoPath=video_path,
        )

    @property
    def failed_result(self) -> Optional[ActionResult]:
        """最初に失敗したアクション結果を返す。全成功なら None。"""
        return next((r for r in self.results if not r.success), None)
