"""Conflict marker parsing and resolution."""

from pullguard.conflict.applier import apply
from pullguard.conflict.markers import (
    flag_unparseable,
    has_markers,
    parse,
    serialize,
)

__all__ = [
    "apply",
    "flag_unparseable",
    "has_markers",
    "parse",
    "serialize",
]
