"""Parse git conflict markers into structured hunks and back."""

from __future__ import annotations

from collections.abc import Iterable

from pullguard.errors import ConflictParseError, ResolutionError
from pullguard.models import (
    ConflictFile,
    ConflictHunk,
    ConflictKind,
    ConflictVersions,
    FileStatus,
    Resolution,
    ResolutionChoice,
)

OURS_MARKER = "<" * 7
BASE_MARKER = "|" * 7
SEPARATOR = "=" * 7
THEIRS_MARKER = ">" * 7

_CONTEXT, _OURS, _BASE, _THEIRS = range(4)


def decode(data: bytes) -> str:
    """Decode file bytes so that every byte survives a round trip."""
    return data.decode("utf-8", "surrogateescape")


def encode(text: str) -> bytes:
    return text.encode("utf-8", "surrogateescape")


def is_binary(data: bytes) -> bool:
    return b"\0" in data


def split_lines(text: str) -> list[str]:
    """Split on ``\\n`` only, keeping line endings.

    str.splitlines() also breaks on form feeds and other separators,
    which would shift line numbers relative to git's view of the file.
    """
    pieces = text.split("\n")
    lines = [piece + "\n" for piece in pieces[:-1]]
    if pieces[-1]:
        lines.append(pieces[-1])
    return lines


def _is_marker(line: str, marker: str) -> bool:
    """A marker line is the marker alone or followed by a space and label."""
    bare = line.rstrip("\r\n")
    return bare == marker or bare.startswith(marker + " ")


def _is_separator(line: str) -> bool:
    return line.rstrip("\r\n") == SEPARATOR


def has_markers(data: bytes) -> bool:
    """Check whether any line still opens or closes a conflict hunk."""
    for line in split_lines(decode(data)):
        if _is_marker(line, OURS_MARKER) or _is_marker(line, THEIRS_MARKER):
            return True
    return False


def parse(
    data: bytes,
    path: str,
    status: FileStatus = FileStatus.UNMERGED,
    kind: ConflictKind = ConflictKind.CONTENT,
    binary: bool = False,
    versions: ConflictVersions | None = None,
    stages: Iterable[int] = (),
    candidates: Iterable[str] = (),
) -> ConflictFile:
    """Parse a conflicted file's bytes into a ConflictFile.

    Binary data (a NUL byte, or ``binary=True`` when git already said
    so) is never text-parsed; it comes back with no hunks and only
    whole-file choices apply.

    Args:
        data: Raw working-tree bytes
        path: Repository-relative path, used in errors
        status: Status derived from the index stages
        kind: Conflict kind derived from the index stages
        binary: Force binary handling
        versions: Stage blobs, kept for whole-file resolutions
        stages: Index stages present for the path
        candidates: Rename targets for rename/rename conflicts

    Returns:
        ConflictFile whose serialize() reproduces ``data`` exactly

    Raises:
        ConflictParseError: If markers are unmatched or nested, or an
            unmerged text file carries no markers at all
    """
    common = {
        "path": path,
        "status": status,
        "kind": kind,
        "versions": versions,
        "stages": sorted(stages),
        "candidates": list(candidates),
    }
    text = decode(data)

    if binary or is_binary(data):
        return ConflictFile(is_binary=True, segments=[text], **common)

    hunks: list[ConflictHunk] = []
    segments: list[str] = []
    context: list[str] = []
    state = _CONTEXT
    hunk: dict = {}

    for lineno, line in enumerate(split_lines(text), start=1):
        if state == _CONTEXT:
            if _is_marker(line, OURS_MARKER):
                segments.append("".join(context))
                context = []
                hunk = {
                    "ours_marker": line,
                    "start_line": lineno,
                    "ours": [],
                    "base": [],
                    "base_marker": None,
                }
                state = _OURS
            elif _is_marker(line, THEIRS_MARKER):
                raise ConflictParseError(
                    path, "closing marker without opening marker", lineno
                )
            elif _is_marker(line, BASE_MARKER):
                raise ConflictParseError(
                    path, "base marker outside a conflict hunk", lineno
                )
            else:
                # A lone ======= here is plain text (setext headings)
                context.append(line)
            continue

        if _is_marker(line, OURS_MARKER):
            raise ConflictParseError(
                path,
                f"nested opening marker inside hunk starting at line "
                f"{hunk['start_line']}",
                lineno,
            )

        if state in (_OURS, _BASE):
            if _is_marker(line, THEIRS_MARKER):
                raise ConflictParseError(
                    path, "closing marker before separator", lineno
                )
            if _is_separator(line):
                hunk["separator"] = line
                hunk["theirs"] = []
                state = _THEIRS
            elif _is_marker(line, BASE_MARKER):
                if state == _BASE:
                    raise ConflictParseError(
                        path, "repeated base marker", lineno
                    )
                hunk["base_marker"] = line
                state = _BASE
            elif state == _OURS:
                hunk["ours"].append(line)
            else:
                hunk["base"].append(line)
            continue

        # state == _THEIRS
        if _is_separator(line):
            raise ConflictParseError(path, "repeated separator", lineno)
        if _is_marker(line, BASE_MARKER):
            raise ConflictParseError(
                path, "base marker after separator", lineno
            )
        if _is_marker(line, THEIRS_MARKER):
            has_base = hunk["base_marker"] is not None
            hunks.append(ConflictHunk(
                ours_text="".join(hunk["ours"]),
                theirs_text="".join(hunk["theirs"]),
                base_text="".join(hunk["base"]) if has_base else None,
                start_line=hunk["start_line"],
                end_line=lineno,
                ours_marker=hunk["ours_marker"],
                base_marker=hunk["base_marker"],
                separator=hunk["separator"],
                theirs_marker=line,
            ))
            state = _CONTEXT
        else:
            hunk["theirs"].append(line)

    if state != _CONTEXT:
        raise ConflictParseError(
            path, "unterminated conflict hunk", hunk["start_line"]
        )
    segments.append("".join(context))

    if not hunks and status == FileStatus.UNMERGED:
        raise ConflictParseError(path, "no conflict markers found")

    if not hunks:
        return ConflictFile(segments=segments, **common)
    return ConflictFile(hunks=hunks, segments=segments, **common)


def flag_unparseable(
    data: bytes,
    error: ConflictParseError,
    **kwargs,
) -> ConflictFile:
    """Wrap a file whose markers could not be parsed.

    The file keeps its raw text so it still serializes unchanged, and
    carries the error so a resolver can mark it "needs manual edit".
    """
    return ConflictFile(
        path=error.path,
        segments=[decode(data)],
        parse_error=str(error),
        **kwargs,
    )


def collect_choices(
    file: ConflictFile,
    resolutions: Iterable[Resolution],
) -> tuple[dict[int, Resolution], str | None]:
    """Fold resolutions in order into per-hunk choices.

    Later resolutions for the same hunk override earlier ones. A
    whole-file Custom replaces the entire file; any later resolution
    discards it again.

    Returns:
        (hunk index → resolution, whole-file replacement text or None)

    Raises:
        ResolutionError: For another path's resolution or an unknown
            hunk index
    """
    choices: dict[int, Resolution] = {}
    whole_text: str | None = None

    for resolution in resolutions:
        if resolution.path != file.path:
            raise ResolutionError(
                f"Resolution for {resolution.path} applied to {file.path}"
            )
        if resolution.choice == ResolutionChoice.RENAME:
            continue

        if resolution.whole_file:
            if resolution.choice == ResolutionChoice.CUSTOM:
                whole_text = resolution.text
                choices = {}
            else:
                whole_text = None
                choices = {i: resolution for i in range(len(file.hunks))}
            continue

        whole_text = None
        for index in resolution.hunks:
            if not 0 <= index < len(file.hunks):
                raise ResolutionError(
                    f"{file.path} has {len(file.hunks)} hunk(s), "
                    f"no hunk {index}"
                )
            choices[index] = resolution

    return choices, whole_text


def _render(hunk: ConflictHunk, resolution: Resolution | None) -> str:
    if resolution is None:
        return hunk.render()
    if resolution.choice == ResolutionChoice.OURS:
        return hunk.ours_text
    if resolution.choice == ResolutionChoice.THEIRS:
        return hunk.theirs_text
    return resolution.text


def serialize(
    file: ConflictFile,
    resolutions: Iterable[Resolution] = (),
) -> bytes:
    """Rebuild file bytes, applying resolutions to their hunks.

    With no resolutions the original bytes come back unchanged.
    Unresolved hunks keep their markers.
    """
    choices, whole_text = collect_choices(file, resolutions)
    if whole_text is not None:
        return encode(whole_text)
    if not file.hunks:
        return encode("".join(file.segments))

    parts = [file.segments[0]]
    for index, hunk in enumerate(file.hunks):
        parts.append(_render(hunk, choices.get(index)))
        parts.append(file.segments[index + 1])
    return encode("".join(parts))
