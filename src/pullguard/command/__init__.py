"""CLI command modules for pullguard."""

from pullguard.command.abort import AbortCommand
from pullguard.command.continue_operation import ContinueCommand
from pullguard.command.merge import MergeCommand
from pullguard.command.predict import PredictCommand
from pullguard.command.pull import PullCommand
from pullguard.command.resolve import ResolveCommand
from pullguard.command.skip import SkipCommand
from pullguard.command.status import StatusCommand

__all__ = [
    "AbortCommand",
    "ContinueCommand",
    "MergeCommand",
    "PredictCommand",
    "PullCommand",
    "ResolveCommand",
    "SkipCommand",
    "StatusCommand",
]
