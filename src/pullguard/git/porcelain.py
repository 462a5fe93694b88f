"""Parsers for git's NUL-separated porcelain output."""

from __future__ import annotations

from collections import defaultdict

from pydantic import BaseModel, ConfigDict, Field

from pullguard.models import (
    ConflictKind,
    FileStatus,
    StatusEntry,
    UnmergedEntry,
)

# Two-letter codes git status uses for unmerged paths, by stage set
UNMERGED_CODES = {
    frozenset({1}): "DD",
    frozenset({2}): "AU",
    frozenset({1, 2}): "UD",
    frozenset({3}): "UA",
    frozenset({1, 3}): "DU",
    frozenset({2, 3}): "AA",
    frozenset({1, 2, 3}): "UU",
}

# Base blobs shared by many unrelated paths; never evidence of a rename
EMPTY_BLOBS = frozenset({
    "e69de29bb2d1d6434b8b29ae775ad8c2e48c5391",
    "473a0f4c3be8a93681a267e3b1e9a7dcda1185436fe141f7749120a303721813",
})


def _records(output: str) -> list[str]:
    records = output.split("\0")
    if records and records[-1] == "":
        records.pop()
    return records


def parse_status_z(output: str) -> list[StatusEntry]:
    """Parse ``git status --porcelain -z``.

    Renames and copies carry their source path in the following record.
    """
    entries = []
    records = _records(output)
    i = 0
    while i < len(records):
        record = records[i]
        i += 1
        if len(record) < 4:
            continue
        index, worktree, path = record[0], record[1], record[3:]
        orig_path = None
        if index in "RC" or worktree in "RC":
            if i < len(records):
                orig_path = records[i]
                i += 1
        entries.append(StatusEntry(
            index=index, worktree=worktree, path=path, orig_path=orig_path
        ))
    return entries


def parse_ls_files_unmerged_z(output: str) -> dict[str, UnmergedEntry]:
    """Parse ``git ls-files -u -z`` into one entry per path, path-sorted.

    Each record reads ``<mode> <oid> <stage>\\t<path>``.
    """
    stages: dict[str, dict[int, str]] = defaultdict(dict)
    modes: dict[str, str] = {}
    for record in _records(output):
        meta, _, path = record.partition("\t")
        parts = meta.split()
        if len(parts) != 3 or not path:
            continue
        mode, oid, stage = parts
        stages[path][int(stage)] = oid
        modes.setdefault(path, mode)

    return {
        path: UnmergedEntry(path=path, stages=stages[path], mode=modes[path])
        for path in sorted(stages)
    }


class UnmergedPath(BaseModel):
    """A conflict as the resolver sees it, possibly spanning index paths."""

    path: str
    kind: ConflictKind
    status: FileStatus
    stages: list[int] = Field(default_factory=list)
    candidates: list[str] = Field(default_factory=list)
    covers: list[str] = Field(
        default_factory=list,
        description="Every unmerged index path this conflict accounts for",
    )

    model_config = ConfigDict(frozen=True)

    @property
    def code(self) -> str:
        return UNMERGED_CODES.get(frozenset(self.stages), "UU")


def _single(path: str, entry: UnmergedEntry) -> UnmergedPath:
    present = frozenset(entry.stages)
    if {2, 3} <= present:
        if 1 in present:
            kind, status = ConflictKind.CONTENT, FileStatus.UNMERGED
        else:
            kind, status = ConflictKind.ADD_ADD, FileStatus.ADDED
    elif 2 in present:
        kind, status = ConflictKind.MODIFY_DELETE, FileStatus.DELETED
    elif 3 in present:
        kind, status = ConflictKind.DELETE_MODIFY, FileStatus.DELETED
    else:
        # Deleted on both sides
        kind, status = ConflictKind.MODIFY_DELETE, FileStatus.DELETED
    return UnmergedPath(
        path=path,
        kind=kind,
        status=status,
        stages=sorted(present),
        covers=[path],
    )


def _rename_pair(ours: UnmergedEntry, theirs: UnmergedEntry, extra=()) -> UnmergedPath:
    return UnmergedPath(
        path=ours.path,
        kind=ConflictKind.RENAME_RENAME,
        status=FileStatus.RENAMED,
        stages=sorted(set(ours.stages) | set(theirs.stages)),
        candidates=[ours.path, theirs.path],
        covers=sorted({ours.path, theirs.path, *extra}),
    )


def classify_unmerged(entries: dict[str, UnmergedEntry]) -> list[UnmergedPath]:
    """Group unmerged index entries into resolvable conflicts.

    A path renamed differently on each side shows up as two entries
    holding the same base blob, one with stages 1+2 and one with 1+3.
    Older merge backends instead leave the base alone at the original
    path, with the sides at stage 2 and 3 of the new paths, or drop the
    base entirely; those are paired only when the content was not
    changed by the rename.
    """
    by_set: dict[frozenset, list[UnmergedEntry]] = defaultdict(list)
    for entry in entries.values():
        by_set[frozenset(entry.stages)].append(entry)

    claimed: set[str] = set()
    result: list[UnmergedPath] = []

    ours_side: dict[str, list[UnmergedEntry]] = defaultdict(list)
    theirs_side: dict[str, list[UnmergedEntry]] = defaultdict(list)
    for entry in by_set[frozenset({1, 2})]:
        ours_side[entry.stages[1]].append(entry)
    for entry in by_set[frozenset({1, 3})]:
        theirs_side[entry.stages[1]].append(entry)
    for oid, ours in ours_side.items():
        theirs = theirs_side.get(oid, [])
        if oid in EMPTY_BLOBS or len(ours) != 1 or len(theirs) != 1:
            continue
        result.append(_rename_pair(ours[0], theirs[0]))
        claimed.update((ours[0].path, theirs[0].path))

    added_ours = by_set[frozenset({2})]
    added_theirs = by_set[frozenset({3})]
    for original in by_set[frozenset({1})]:
        oid = original.stages[1]
        if oid in EMPTY_BLOBS:
            continue
        ours = [e for e in added_ours if e.stages[2] == oid and e.path not in claimed]
        theirs = [e for e in added_theirs if e.stages[3] == oid and e.path not in claimed]
        if len(ours) == 1 and len(theirs) == 1:
            result.append(_rename_pair(ours[0], theirs[0], extra=[original.path]))
            claimed.update((original.path, ours[0].path, theirs[0].path))

    # Identical adds merge cleanly, so equal blobs added on each side
    # without a base entry are the two halves of one rename
    for ours in added_ours:
        if ours.path in claimed or ours.stages[2] in EMPTY_BLOBS:
            continue
        theirs = [
            e for e in added_theirs
            if e.stages[3] == ours.stages[2] and e.path not in claimed
        ]
        if len(theirs) == 1:
            result.append(_rename_pair(ours, theirs[0]))
            claimed.update((ours.path, theirs[0].path))

    for path, entry in entries.items():
        if path not in claimed:
            result.append(_single(path, entry))

    return sorted(result, key=lambda conflict: conflict.path)
