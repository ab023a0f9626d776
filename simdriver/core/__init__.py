# コアモジュール
# プロセス実行、シミュレータ操作、録画、ランナー実行のオーケストレーションを提供

from .driver import UITestDriver
from .mailbox import Mailbox
from .process import DefaultProcessRunner, ProcessResult, ProcessRunner
from .recording import RecordingSession, RecordingState
from .session import RunSession, RunState
from .simulator import Simulator, SimulatorController, SimulatorState

__all__ = [
    "DefaultProcessRunner",
    "Mailbox",
    "ProcessResult",
    "ProcessRunner",
    "RecordingSession",
    "RecordingState",
    "RunSession",
    "RunState",
    "Simulator",
    "SimulatorController",
    "SimulatorState",
    "UITestDriver",
]
