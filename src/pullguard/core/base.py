"""Base classes for configuration and state models.

Kept apart from config.py so that log.py can build its sink models
on the same foundation without a circular import:
- Closeable Protocol for resource cleanup
- BaseCloseable for the automatic close() cascade
- BaseConfig / BaseState as semantic markers
"""

from __future__ import annotations

import sys
from typing import Protocol, runtime_checkable

from pydantic import BaseModel


@runtime_checkable
class Closeable(Protocol):
    """Protocol for objects that support close()."""

    def close(self) -> None:
        """Release resources."""
        ...


class BaseCloseable(BaseModel):
    """Pydantic model that closes its Closeable children.

    The cascade runs State → Config → Logger → Sink, so leaving the
    outermost ``with`` block flushes log files and exporters even when
    the pull workflow raised.
    """

    def close(self):
        """Close every Closeable field, continuing past failures."""
        for field_name in self.__class__.model_fields:
            child = getattr(self, field_name, None)
            if child is None:
                continue

            if isinstance(child, Closeable):
                try:
                    child.close()
                except Exception as e:
                    print(
                        f"Warning: Error closing {field_name}: {e}",
                        file=sys.stderr,
                    )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):  # noqa: U100
        self.close()
        return False


class BaseConfig(BaseCloseable):
    """Configuration section (loaded from YAML/env/CLI)."""
    pass


class BaseState(BaseCloseable):
    """Runtime section (mutated while a workflow runs)."""
    pass


__all__ = ["Closeable", "BaseCloseable", "BaseConfig", "BaseState"]
