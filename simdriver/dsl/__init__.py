# DSL モジュール
# UI アクションスクリプトのスキーマ定義、コーデック、ファイルパーサーを提供

from . import schema  # noqa: F401
from . import codec  # noqa: F401
from . import parser  # noqa: F401
