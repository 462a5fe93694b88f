"""Tests for conflict marker parsing and serialization."""

import pytest

from pullguard.conflict import markers
from pullguard.errors import ConflictParseError, ResolutionError
from pullguard.models import FileStatus, Resolution

TWO_HUNKS = (
    b"header\n"
    b"<<<<<<< HEAD\n"
    b"ours one\n"
    b"=======\n"
    b"theirs one\n"
    b">>>>>>> feature\n"
    b"middle\n"
    b"<<<<<<< HEAD\n"
    b"ours two\n"
    b"=======\n"
    b"theirs two\n"
    b">>>>>>> feature\n"
    b"footer\n"
)

DIFF3 = (
    b"<<<<<<< ours\n"
    b"a = 2\n"
    b"||||||| base\n"
    b"a = 1\n"
    b"=======\n"
    b"a = 3\n"
    b">>>>>>> theirs\n"
)


def test_parse_two_hunks():
    """Hunks, segments and line numbers come out of a plain conflict."""
    file = markers.parse(TWO_HUNKS, "a.txt")

    assert len(file.hunks) == 2
    assert file.segments == ["header\n", "middle\n", "footer\n"]
    first, second = file.hunks
    assert first.ours_text == "ours one\n"
    assert first.theirs_text == "theirs one\n"
    assert first.base_text is None
    assert (first.start_line, first.end_line) == (2, 6)
    assert (second.start_line, second.end_line) == (8, 12)


def test_serialize_without_resolutions_is_identity():
    file = markers.parse(TWO_HUNKS, "a.txt")
    assert markers.serialize(file) == TWO_HUNKS


def test_diff3_base_section():
    """The ||||||| section is kept as the base text."""
    file = markers.parse(DIFF3, "a.py")

    hunk = file.hunks[0]
    assert hunk.ours_text == "a = 2\n"
    assert hunk.base_text == "a = 1\n"
    assert hunk.theirs_text == "a = 3\n"
    assert markers.serialize(file) == DIFF3


def test_crlf_round_trip():
    """CRLF line endings and marker labels survive unchanged."""
    data = TWO_HUNKS.replace(b"\n", b"\r\n")
    file = markers.parse(data, "win.txt")

    assert len(file.hunks) == 2
    assert file.hunks[0].ours_text == "ours one\r\n"
    assert markers.serialize(file) == data


def test_missing_trailing_newline_round_trip():
    data = TWO_HUNKS + b"no newline"
    file = markers.parse(data, "a.txt")
    assert file.segments[-1] == "footer\nno newline"
    assert markers.serialize(file) == data


def test_non_utf8_bytes_round_trip():
    data = b"caf\xe9\n" + DIFF3
    file = markers.parse(data, "latin1.txt")
    assert markers.serialize(file) == data


def test_resolve_each_hunk_differently():
    file = markers.parse(TWO_HUNKS, "a.txt")
    result = markers.serialize(file, [
        Resolution.ours("a.txt", hunks=[0]),
        Resolution.theirs("a.txt", hunks=[1]),
    ])
    assert result == b"header\nours one\nmiddle\ntheirs two\nfooter\n"


def test_later_resolution_overrides_earlier():
    file = markers.parse(TWO_HUNKS, "a.txt")
    result = markers.serialize(file, [
        Resolution.ours("a.txt"),
        Resolution.theirs("a.txt", hunks=[0]),
    ])
    assert result == b"header\ntheirs one\nmiddle\nours two\nfooter\n"


def test_unresolved_hunk_keeps_markers():
    file = markers.parse(TWO_HUNKS, "a.txt")
    result = markers.serialize(file, [Resolution.theirs("a.txt", hunks=[1])])
    assert b"<<<<<<< HEAD\nours one\n" in result
    assert b"theirs two" in result
    assert b"ours two" not in result


def test_whole_file_custom_text():
    file = markers.parse(TWO_HUNKS, "a.txt")
    result = markers.serialize(file, [Resolution.custom("a.txt", "merged\n")])
    assert result == b"merged\n"


def test_lone_separator_in_context_is_text():
    """A setext heading underline is not a marker outside a hunk."""
    data = b"Title\n=======\n\n" + DIFF3
    file = markers.parse(data, "README.md")

    assert len(file.hunks) == 1
    assert file.segments[0] == "Title\n=======\n\n"


def test_marker_needs_space_or_end_of_line():
    """Eight angle brackets are content, not a marker."""
    data = b"<<<<<<<< not a marker\n" + DIFF3
    file = markers.parse(data, "a.txt")
    assert file.segments[0] == "<<<<<<<< not a marker\n"


@pytest.mark.parametrize("data, message", [
    (b"<<<<<<< ours\na\n=======\nb\n", "unterminated"),
    (b"a\n>>>>>>> theirs\n", "closing marker without opening"),
    (b"<<<<<<< ours\n<<<<<<< ours\n", "nested"),
    (b"<<<<<<< ours\na\n>>>>>>> theirs\n", "before separator"),
    (b"<<<<<<< ours\na\n=======\nb\n=======\nc\n>>>>>>> theirs\n",
     "repeated separator"),
    (b"plain text\n", "no conflict markers"),
])
def test_malformed_markers(data, message):
    with pytest.raises(ConflictParseError, match=message):
        markers.parse(data, "bad.txt")


def test_parse_error_reports_line():
    with pytest.raises(ConflictParseError) as excinfo:
        markers.parse(b"ok\nok\n>>>>>>> theirs\n", "bad.txt")
    assert excinfo.value.line == 3
    assert str(excinfo.value).startswith("bad.txt:3:")


def test_resolved_status_allows_no_markers():
    file = markers.parse(b"clean\n", "a.txt", status=FileStatus.RESOLVED)
    assert file.hunks == []
    assert markers.serialize(file) == b"clean\n"


def test_binary_detected_by_nul():
    data = b"\x89PNG\x00\x01<<<<<<< ours\n"
    file = markers.parse(data, "logo.png")

    assert file.is_binary
    assert file.hunks == []
    assert file.whole_file_only
    assert markers.serialize(file) == data


def test_flag_unparseable_keeps_raw_text():
    data = b"<<<<<<< ours\nbroken\n"
    with pytest.raises(ConflictParseError) as excinfo:
        markers.parse(data, "bad.txt")

    file = markers.flag_unparseable(data, excinfo.value)
    assert file.needs_manual_edit
    assert file.whole_file_only
    assert markers.serialize(file) == data


def test_has_markers():
    assert markers.has_markers(TWO_HUNKS)
    assert not markers.has_markers(b"Title\n=======\n")


def test_resolution_for_other_path_rejected():
    file = markers.parse(TWO_HUNKS, "a.txt")
    with pytest.raises(ResolutionError, match="b.txt"):
        markers.serialize(file, [Resolution.ours("b.txt")])


def test_hunk_index_out_of_range():
    file = markers.parse(TWO_HUNKS, "a.txt")
    with pytest.raises(ResolutionError, match="no hunk 2"):
        markers.serialize(file, [Resolution.ours("a.txt", hunks=[2])])


def test_split_lines_only_on_newline():
    """Form feeds and other separators stay inside their line."""
    assert markers.split_lines("a\x0cb\nc") == ["a\x0cb\n", "c"]
    assert markers.split_lines("") == []
