"""Workflow nodes for the pull graph."""

from pullguard.workflow.nodes.continue_operation import ContinueOperation
from pullguard.workflow.nodes.predict import Predict
from pullguard.workflow.nodes.resolve_all import ResolveAll
from pullguard.workflow.nodes.start_operation import StartOperation

__all__ = [
    "Predict",
    "StartOperation",
    "ResolveAll",
    "ContinueOperation",
]
