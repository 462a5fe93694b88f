"""Notifications published by the orchestrator."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from pullguard.models import OperationState

NO_CONFLICTS = "No conflicts predicted."
CONFLICTS_DETECTED = "Conflicts detected"


class Event(BaseModel):
    model_config = ConfigDict(frozen=True)


class StateChanged(Event):
    """A transition published a new OperationState."""

    state: OperationState


class IndicatorsChanged(Event):
    """Ahead/behind badge counts relative to the upstream."""

    upstream: str | None
    ahead: int = 0
    behind: int = 0


class ModalContent(Event):
    """Result of a prediction, ready for a dialog."""

    message: str
    paths: tuple[str, ...] = ()

    @classmethod
    def for_paths(cls, paths) -> ModalContent:
        paths = tuple(paths)
        return cls(message=CONFLICTS_DETECTED if paths else NO_CONFLICTS, paths=paths)
