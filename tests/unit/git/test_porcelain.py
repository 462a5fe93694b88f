"""Tests for parsing git's NUL-separated porcelain output."""

from pullguard.git.porcelain import (
    classify_unmerged,
    parse_ls_files_unmerged_z,
    parse_status_z,
)
from pullguard.models import ConflictKind, FileStatus, UnmergedEntry

BASE = "1" * 40
OURS = "2" * 40
THEIRS = "3" * 40
EMPTY = "e69de29bb2d1d6434b8b29ae775ad8c2e48c5391"


def _entry(path, **stages):
    return UnmergedEntry(
        path=path,
        stages={int(k[1:]): v for k, v in stages.items()},
        mode="100644",
    )


def test_status_with_rename_and_unmerged():
    output = "UU aaa\0R  new.txt\0old.txt\0 M ddd\0"
    entries = parse_status_z(output)

    assert [e.code for e in entries] == ["UU", "R ", " M"]
    assert entries[1].path == "new.txt"
    assert entries[1].orig_path == "old.txt"
    assert entries[2].path == "ddd"


def test_status_path_with_spaces_and_arrows():
    entries = parse_status_z("A  a -> b.txt\0")
    assert entries[0].path == "a -> b.txt"


def test_status_empty():
    assert parse_status_z("") == []


def test_ls_files_groups_stages_and_sorts():
    output = (
        f"100644 {BASE} 1\tzzz\0"
        f"100644 {OURS} 2\tzzz\0"
        f"100644 {THEIRS} 3\tzzz\0"
        f"100755 {OURS} 2\taaa\0"
    )
    entries = parse_ls_files_unmerged_z(output)

    assert list(entries) == ["aaa", "zzz"]
    assert entries["zzz"].stages == {1: BASE, 2: OURS, 3: THEIRS}
    assert entries["aaa"].mode == "100755"


def test_ls_files_path_with_tab():
    entries = parse_ls_files_unmerged_z(f"100644 {OURS} 2\tdir/a\tb\0")
    assert list(entries) == ["dir/a\tb"]


def test_classify_single_paths():
    entries = {
        "both": _entry("both", s1=BASE, s2=OURS, s3=THEIRS),
        "added": _entry("added", s2=OURS, s3=THEIRS),
        "md": _entry("md", s1="4" * 40, s2=OURS),
        "dm": _entry("dm", s1="5" * 40, s3=THEIRS),
    }
    by_path = {c.path: c for c in classify_unmerged(entries)}

    assert by_path["both"].kind == ConflictKind.CONTENT
    assert by_path["both"].status == FileStatus.UNMERGED
    assert by_path["both"].code == "UU"
    assert by_path["added"].kind == ConflictKind.ADD_ADD
    assert by_path["added"].code == "AA"
    assert by_path["md"].kind == ConflictKind.MODIFY_DELETE
    assert by_path["md"].status == FileStatus.DELETED
    assert by_path["md"].code == "UD"
    assert by_path["dm"].kind == ConflictKind.DELETE_MODIFY
    assert by_path["dm"].code == "DU"


def test_classify_rename_rename_shared_base():
    """Two entries holding the same base blob are one rename conflict."""
    entries = {
        "bbb2": _entry("bbb2", s1=BASE, s3=THEIRS),
        "bbb3": _entry("bbb3", s1=BASE, s2=OURS),
        "ccc": _entry("ccc", s1="4" * 40, s2=OURS),
    }
    conflicts = classify_unmerged(entries)

    assert [c.path for c in conflicts] == ["bbb3", "ccc"]
    rename = conflicts[0]
    assert rename.kind == ConflictKind.RENAME_RENAME
    assert rename.status == FileStatus.RENAMED
    assert rename.candidates == ["bbb3", "bbb2"]
    assert rename.covers == ["bbb2", "bbb3"]
    assert conflicts[1].kind == ConflictKind.MODIFY_DELETE


def test_classify_rename_rename_original_path_left_behind():
    entries = {
        "bbb": _entry("bbb", s1=BASE),
        "bbb2": _entry("bbb2", s3=BASE),
        "bbb3": _entry("bbb3", s2=BASE),
    }
    conflicts = classify_unmerged(entries)

    assert len(conflicts) == 1
    assert conflicts[0].candidates == ["bbb3", "bbb2"]
    assert conflicts[0].covers == ["bbb", "bbb2", "bbb3"]


def test_classify_empty_blob_is_not_a_rename():
    entries = {
        "one": _entry("one", s1=EMPTY, s2=OURS),
        "two": _entry("two", s1=EMPTY, s3=THEIRS),
    }
    kinds = [c.kind for c in classify_unmerged(entries)]
    assert kinds == [ConflictKind.MODIFY_DELETE, ConflictKind.DELETE_MODIFY]


def test_classify_rename_rename_without_base_entry():
    entries = {
        "bbb2": _entry("bbb2", s3=BASE),
        "bbb3": _entry("bbb3", s2=BASE),
    }
    (conflict,) = classify_unmerged(entries)

    assert conflict.kind == ConflictKind.RENAME_RENAME
    assert conflict.candidates == ["bbb3", "bbb2"]
    assert conflict.code == "AA"
