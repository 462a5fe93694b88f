"""Operation lifecycle: orchestrator, reconciler and notifications."""

from pullguard.engine.events import (
    IndicatorsChanged,
    ModalContent,
    StateChanged,
)
from pullguard.engine.orchestrator import OperationOrchestrator
from pullguard.engine.reconciler import StatusReconciler
from pullguard.git.repository import GitRepository
from pullguard.predict.predictor import ConflictPredictor


def open_engine(config) -> OperationOrchestrator:
    """Build an orchestrator for ``config.git.workdir`` and adopt any
    operation already in progress there.

    Args:
        config: Application Config (git and reconcile sections)
    """
    repo = GitRepository.from_config(config.git)
    orchestrator = OperationOrchestrator(
        repo,
        predictor=ConflictPredictor(repo, remote=config.git.remote),
        reconciler=StatusReconciler(
            repo,
            timeout=config.reconcile.timeout,
            interval=config.reconcile.interval,
        ),
        remote=config.git.remote,
        retries=config.reconcile.retries,
    )
    orchestrator.attach()
    return orchestrator


__all__ = [
    "ConflictPredictor",
    "GitRepository",
    "IndicatorsChanged",
    "ModalContent",
    "OperationOrchestrator",
    "StateChanged",
    "StatusReconciler",
    "open_engine",
]
