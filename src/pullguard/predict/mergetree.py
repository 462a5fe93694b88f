"""Parse ``git merge-tree --write-tree -z --name-only --messages`` output."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from pullguard.models import ConflictKind, ConflictPrediction

_DELETED_THEN_MODIFIED = re.compile(r"deleted in (\S+?) and modified in (\S+?)\.")
_RENAMED_BUT_DELETED = re.compile(r"but deleted in (\S+?)\.")

# Path-level kinds win over a content message for the same path
_PRIORITY = {
    ConflictKind.CONTENT: 0,
    ConflictKind.ADD_ADD: 1,
    ConflictKind.MODIFY_DELETE: 2,
    ConflictKind.DELETE_MODIFY: 2,
    ConflictKind.RENAME_RENAME: 3,
}


@dataclass
class MergeMessage:
    """One informational message from merge-tree."""

    paths: list[str]
    type: str
    text: str


@dataclass
class MergeTreeResult:
    """Tree written by a dry-run merge plus its conflicts."""

    tree: str
    conflicted: list[str] = field(default_factory=list)
    messages: list[MergeMessage] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not self.conflicted


def parse(output: str) -> MergeTreeResult:
    """Split the NUL-separated sections.

    Layout: tree OID, conflicted paths, an empty record, then messages
    of the form ``<count> <path>... <type> <text>``.
    """
    records = output.split("\0")
    tree = records[0].strip() if records else ""
    i = 1
    conflicted: list[str] = []
    while i < len(records) and records[i] != "":
        if records[i] not in conflicted:
            conflicted.append(records[i])
        i += 1
    i += 1

    messages = []
    while i < len(records):
        try:
            count = int(records[i])
        except ValueError:
            break
        paths = records[i + 1:i + 1 + count]
        i += 1 + count
        if i + 1 >= len(records):
            break
        kind, text = records[i], records[i + 1]
        messages.append(MergeMessage(paths=paths, type=kind, text=text.strip()))
        i += 2

    return MergeTreeResult(tree=tree, conflicted=conflicted, messages=messages)


def _classify(message: MergeMessage, ours: str, theirs: str) -> tuple[ConflictKind, str | None] | None:
    kind = message.type
    if not kind.startswith("CONFLICT"):
        return None

    if "rename/rename" in kind or "rename involved in collision" in kind:
        return ConflictKind.RENAME_RENAME, message.text
    if "modify/delete" in kind:
        match = _DELETED_THEN_MODIFIED.search(message.text)
        if match and match.group(1) == ours:
            return ConflictKind.DELETE_MODIFY, message.text
        return ConflictKind.MODIFY_DELETE, message.text
    if "rename/delete" in kind:
        match = _RENAMED_BUT_DELETED.search(message.text)
        if match and match.group(1) == ours:
            return ConflictKind.DELETE_MODIFY, message.text
        return ConflictKind.MODIFY_DELETE, message.text
    if "file/directory" in kind:
        return ConflictKind.ADD_ADD, message.text
    if "contents" in kind:
        if "add/add" in message.text:
            return ConflictKind.ADD_ADD, None
        return ConflictKind.CONTENT, None
    # binary, distinct modes, submodule and directory-rename cases
    return ConflictKind.CONTENT, message.text


def predictions(
    result: MergeTreeResult,
    ours: str,
    theirs: str,
) -> list[ConflictPrediction]:
    """One prediction per conflicted path, kind taken from its messages.

    Args:
        result: Parsed merge-tree output
        ours: Label merge-tree used for the ours side (the argument)
        theirs: Label merge-tree used for the theirs side
    """
    found: dict[str, tuple[ConflictKind, str | None]] = {
        path: (ConflictKind.CONTENT, None) for path in result.conflicted
    }
    for message in result.messages:
        classified = _classify(message, ours, theirs)
        if classified is None:
            continue
        for path in message.paths:
            if path not in found:
                continue
            current = found[path]
            if _PRIORITY[classified[0]] > _PRIORITY[current[0]] or (
                classified[0] == current[0] and current[1] is None
            ):
                found[path] = classified

    return [
        ConflictPrediction(path=path, kind=kind, note=note)
        for path, (kind, note) in sorted(found.items())
    ]
