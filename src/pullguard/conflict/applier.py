"""Turn a conflict file plus resolution choices into bytes and index updates."""

from __future__ import annotations

import posixpath
from collections.abc import Iterable
from pathlib import PureWindowsPath

from pullguard.conflict.markers import (
    collect_choices,
    decode,
    parse,
    serialize,
)
from pullguard.errors import ConflictParseError, ResolutionError
from pullguard.models import (
    ApplyResult,
    ConflictFile,
    ConflictKind,
    FileStatus,
    Resolution,
    ResolutionChoice,
    StagingAction,
)


def _last_rename(resolutions: list[Resolution]) -> Resolution | None:
    renames = [r for r in resolutions if r.choice == ResolutionChoice.RENAME]
    return renames[-1] if renames else None


def _check_target(file: ConflictFile, rename: Resolution | None) -> None:
    """Reject rename targets that leave the working tree or enter .git."""
    if rename is None:
        return
    target = rename.target.replace("\\", "/")
    normalized = posixpath.normpath(target)
    parts = normalized.split("/")
    if (
        posixpath.isabs(target)
        or PureWindowsPath(rename.target).drive
        or normalized in (".", "..")
        or parts[0] == ".."
        or parts[0] == ".git"
    ):
        raise ResolutionError(
            f"{file.path}: rename target {rename.target} is outside the "
            "working tree"
        )


def _last_whole_file(resolutions: list[Resolution]) -> Resolution | None:
    whole = [
        r for r in resolutions
        if r.whole_file and r.choice != ResolutionChoice.RENAME
    ]
    return whole[-1] if whole else None


def _resolved_file(
    file: ConflictFile,
    final_bytes: bytes | None,
    path: str | None = None,
) -> ConflictFile:
    return ConflictFile(
        path=path or file.path,
        status=FileStatus.RESOLVED,
        kind=file.kind,
        segments=[decode(final_bytes)] if final_bytes is not None else [],
        is_binary=file.is_binary,
    )


def _keep_actions(file: ConflictFile, rename: Resolution | None) -> tuple:
    if rename is not None and rename.target != file.path:
        return (StagingAction.rename(file.path, rename.target),)
    return (StagingAction.add(file.path),)


def _side_bytes(file: ConflictFile, choice: ResolutionChoice) -> bytes:
    versions = file.versions
    data = None
    if versions is not None:
        data = versions.ours if choice == ResolutionChoice.OURS else versions.theirs
    if data is None:
        raise ResolutionError(
            f"{file.path}: no {choice.value} version available"
        )
    return data


def _apply_rename_rename(
    file: ConflictFile,
    rename: Resolution | None,
) -> ApplyResult:
    if rename is None:
        return ApplyResult(final_bytes=None, resolved=False, file=file)
    if rename.target not in file.candidates:
        raise ResolutionError(
            f"{rename.target} is not a rename candidate for {file.path} "
            f"(candidates: {', '.join(file.candidates)})"
        )

    # Candidates are ordered [ours-side path, theirs-side path]
    final_bytes = None
    if file.versions is not None and len(file.candidates) == 2:
        if rename.target == file.candidates[0]:
            final_bytes = file.versions.ours
        else:
            final_bytes = file.versions.theirs

    actions = [StagingAction.add(rename.target)]
    actions += [
        StagingAction.remove(candidate)
        for candidate in file.candidates
        if candidate != rename.target
    ]
    return ApplyResult(
        final_bytes=final_bytes,
        staging_actions=tuple(actions),
        resolved=True,
        file=_resolved_file(file, final_bytes, rename.target),
    )


def _apply_presence(
    file: ConflictFile,
    decision: Resolution | None,
    rename: Resolution | None,
) -> ApplyResult:
    """Modify/delete, delete/modify and both-deleted paths."""
    if decision is None:
        return ApplyResult(final_bytes=None, resolved=False, file=file)

    if not file.ours_present and not file.theirs_present:
        keep = False
    elif decision.choice == ResolutionChoice.CUSTOM:
        keep = True
    elif file.kind == ConflictKind.MODIFY_DELETE:
        keep = decision.choice == ResolutionChoice.OURS
    else:
        keep = decision.choice == ResolutionChoice.THEIRS

    if not keep:
        return ApplyResult(
            final_bytes=None,
            staging_actions=(StagingAction.remove(file.path),),
            resolved=True,
            file=_resolved_file(file, None),
        )

    if decision.choice == ResolutionChoice.CUSTOM:
        final_bytes = decision.text.encode("utf-8", "surrogateescape")
    elif file.versions is not None:
        final_bytes = _side_bytes(file, decision.choice)
    else:
        # git leaves the surviving side in the working tree
        final_bytes = "".join(file.segments).encode("utf-8", "surrogateescape")

    target = rename.target if rename is not None else None
    return ApplyResult(
        final_bytes=final_bytes,
        staging_actions=_keep_actions(file, rename),
        resolved=True,
        file=_resolved_file(file, final_bytes, target),
    )


def _apply_whole_file_only(
    file: ConflictFile,
    decision: Resolution | None,
    rename: Resolution | None,
) -> ApplyResult:
    """Binary files and files whose markers could not be parsed."""
    if decision is None:
        return ApplyResult(final_bytes=None, resolved=False, file=file)

    if decision.choice == ResolutionChoice.CUSTOM:
        if file.is_binary:
            raise ResolutionError(
                f"{file.path} is binary; only whole-file ours or theirs apply"
            )
        final_bytes = decision.text.encode("utf-8", "surrogateescape")
    else:
        final_bytes = _side_bytes(file, decision.choice)

    target = rename.target if rename is not None else None
    return ApplyResult(
        final_bytes=final_bytes,
        staging_actions=_keep_actions(file, rename),
        resolved=True,
        file=_resolved_file(file, final_bytes, target),
    )


def apply(
    file: ConflictFile,
    resolutions: Iterable[Resolution],
) -> ApplyResult:
    """Apply resolutions to one conflict file.

    Pure: reads nothing from the repository, so applying the same set
    twice gives identical bytes and staging actions. The caller writes
    ``final_bytes`` (when not None) to the resulting path and performs
    the staging actions in order.

    Args:
        file: Parsed conflict file
        resolutions: Choices in the order the user made them; later
            choices for the same hunk override earlier ones

    Returns:
        ApplyResult; ``resolved`` is False while any hunk or path
        choice is still missing, and then nothing is staged

    Raises:
        ResolutionError: If a choice does not fit the file (hunk
            choices on a binary file, a rename target that is unknown
            or outside the working tree, hunk index out of range)
    """
    resolutions = list(resolutions)
    rename = _last_rename(resolutions)
    decision = _last_whole_file(resolutions)
    _check_target(file, rename)

    if file.kind == ConflictKind.RENAME_RENAME:
        for r in resolutions:
            if r.path != file.path:
                raise ResolutionError(
                    f"Resolution for {r.path} applied to {file.path}"
                )
        return _apply_rename_rename(file, rename)

    if file.whole_file_only or file.status == FileStatus.DELETED:
        if any(not r.whole_file for r in resolutions):
            raise ResolutionError(
                f"{file.path}: only whole-file choices apply"
            )
        collect_choices(file, resolutions)
        if file.status == FileStatus.DELETED:
            return _apply_presence(file, decision, rename)
        return _apply_whole_file_only(file, decision, rename)

    choices, whole_text = collect_choices(file, resolutions)
    final_bytes = serialize(file, resolutions)
    resolved = whole_text is not None or len(choices) == len(file.hunks)

    if not resolved:
        remaining = file
        if choices:
            try:
                remaining = parse(
                    final_bytes,
                    file.path,
                    status=file.status,
                    kind=file.kind,
                    versions=file.versions,
                    stages=file.stages,
                    candidates=file.candidates,
                )
            except ConflictParseError:
                # Custom text that itself looks like markers
                remaining = file
        return ApplyResult(
            final_bytes=final_bytes,
            resolved=False,
            file=remaining,
        )

    target = rename.target if rename is not None else None
    return ApplyResult(
        final_bytes=final_bytes,
        staging_actions=_keep_actions(file, rename),
        resolved=True,
        file=_resolved_file(file, final_bytes, target),
    )
