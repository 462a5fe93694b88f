"""Tests for the predictor's decisions, with git mocked out."""

import threading
from unittest.mock import Mock

import pytest
from invoke import Result

from pullguard.errors import GitCommandError, PredictionCancelled, PredictionFailed
from pullguard.git.repository import GitRepository
from pullguard.models import FileStatus, OperationKind, PullMode
from pullguard.predict.predictor import ConflictPredictor

TREE = "f" * 40


@pytest.fixture
def repo():
    repo = Mock(spec=GitRepository)
    repo.resolve_ref.side_effect = lambda ref: ref
    repo.merge_base.return_value = "base"
    repo.rev_list.return_value = []
    repo.merge_tree.return_value = Result(exited=0, stdout=f"{TREE}\0")
    repo.current_branch.return_value = "main"
    repo.upstream.return_value = "origin/main"
    return repo


def test_merge_uses_merge_base(repo):
    prediction = ConflictPredictor(repo).predict("HEAD", "topic", OperationKind.MERGE)

    assert prediction.clean
    repo.merge_tree.assert_called_once_with("base", "HEAD", "topic")


def test_cherry_pick_uses_parent(repo):
    ConflictPredictor(repo).predict("HEAD", "abc", OperationKind.CHERRY_PICK)
    repo.merge_tree.assert_called_once_with("abc^", "HEAD", "abc")


def test_unrelated_histories(repo):
    repo.merge_base.return_value = None
    with pytest.raises(PredictionFailed, match="unrelated histories"):
        ConflictPredictor(repo).predict("HEAD", "other", OperationKind.MERGE)


def test_unresolvable_ref(repo):
    repo.resolve_ref.side_effect = GitCommandError("git rev-parse", 1, "bad ref")
    with pytest.raises(PredictionFailed, match="Cannot resolve"):
        ConflictPredictor(repo).predict("HEAD", "nope", OperationKind.MERGE)


def test_merge_tree_error(repo):
    repo.merge_tree.return_value = Result(exited=128, stderr="fatal: bad object")
    with pytest.raises(PredictionFailed, match="bad object"):
        ConflictPredictor(repo).predict("HEAD", "topic", OperationKind.MERGE)


def test_rebase_first_conflict_per_path_wins(repo):
    """Each replayed commit merges onto the previous step's result."""
    repo.rev_list.return_value = ["c1", "c2"]
    repo.commit_tree.side_effect = ["step1", "step2"]
    repo.merge_tree.side_effect = [
        Result(exited=1, stdout=(
            f"{TREE}\0a.txt\0\0"
            "1\0a.txt\0CONFLICT (contents)\0CONFLICT (content): a.txt\0"
        )),
        Result(exited=1, stdout=(
            f"{TREE}\0a.txt\0\0"
            "1\0a.txt\0CONFLICT (modify/delete)\0CONFLICT (modify/delete): a.txt\0"
        )),
    ]

    prediction = ConflictPredictor(repo).predict("HEAD", "origin/main", OperationKind.REBASE)

    assert prediction.paths == ["a.txt"]
    assert prediction.conflicting_paths[0].kind.value == "content"
    first, second = repo.merge_tree.call_args_list
    assert first.args == ("c1^", "origin/main", "c1")
    assert second.args == ("c2^", "step1", "c2")


def test_preview_pull_actions(repo):
    predictor = ConflictPredictor(repo)

    repo.ahead_behind.return_value = (0, 0)
    assert predictor.preview_pull(PullMode.AUTO).action == "noop"

    repo.ahead_behind.return_value = (0, 3)
    assert predictor.preview_pull(PullMode.AUTO).action == "fast-forward"

    repo.ahead_behind.return_value = (2, 3)
    assert predictor.preview_pull(PullMode.MERGE).action == "merge-commit"
    preview = predictor.preview_pull(PullMode.AUTO)
    assert preview.action == "rebase"
    assert preview.prediction.kind == OperationKind.REBASE


def test_preview_pull_without_upstream(repo):
    repo.upstream.return_value = None
    repo.try_resolve_ref.return_value = None

    preview = ConflictPredictor(repo).preview_pull(PullMode.AUTO)

    assert preview.action == "no-upstream"
    assert preview.upstream is None
    repo.merge_tree.assert_not_called()


def test_preview_pull_infers_remote_branch(repo):
    repo.upstream.return_value = None
    repo.try_resolve_ref.return_value = "deadbeef"
    repo.ahead_behind.return_value = (0, 0)

    preview = ConflictPredictor(repo, remote="upstream").preview_pull(PullMode.AUTO)

    assert preview.upstream == "upstream/main"


def test_preview_pull_detached_head(repo):
    repo.current_branch.return_value = None
    with pytest.raises(PredictionFailed, match="detached HEAD"):
        ConflictPredictor(repo).preview_pull(PullMode.AUTO)


def test_fetch_failure(repo):
    repo.fetch.side_effect = GitCommandError("git fetch", 128, "could not resolve host")
    with pytest.raises(PredictionFailed, match="Fetch failed"):
        ConflictPredictor(repo).preview_pull(PullMode.AUTO)


def test_cancelled_before_start(repo):
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(PredictionCancelled):
        ConflictPredictor(repo).predict(
            "HEAD", "origin/main", OperationKind.REBASE, cancel=cancel
        )

    repo.merge_tree.assert_not_called()
    repo.commit_tree.assert_not_called()


def test_cancelled_between_rebase_steps(repo):
    cancel = threading.Event()

    def commit_tree(tree, parent, message):
        cancel.set()
        return "step1"

    repo.rev_list.return_value = ["c1", "c2", "c3"]
    repo.commit_tree.side_effect = commit_tree

    with pytest.raises(PredictionCancelled):
        ConflictPredictor(repo).predict(
            "HEAD", "origin/main", OperationKind.REBASE, cancel=cancel
        )

    assert repo.merge_tree.call_count == 1
    assert repo.commit_tree.call_count == 1


DIFF3 = (
    b"one\n"
    b"<<<<<<< ours\n"
    b"two (ours)\n"
    b"||||||| base\n"
    b"two\n"
    b"=======\n"
    b"two (theirs)\n"
    b">>>>>>> theirs\n"
)


def _blobs(repo, **by_rev):
    def read_blob(spec):
        rev, _, _ = spec.partition(":")
        return by_rev[rev]
    repo.read_blob.side_effect = read_blob


def test_preview_conflict_renders_diff3(repo):
    _blobs(repo, base=b"one\ntwo\n", HEAD=b"one\ntwo (ours)\n",
           **{"origin/main": b"one\ntwo (theirs)\n"})
    repo.merge_file.return_value = DIFF3

    preview = ConflictPredictor(repo).preview_conflict("origin/main", " a.txt ")

    repo.merge_file.assert_called_once_with(
        b"one\ntwo (ours)\n", b"one\ntwo\n", b"one\ntwo (theirs)\n"
    )
    assert preview.path == "a.txt"
    assert preview.status == FileStatus.UNMERGED
    (hunk,) = preview.hunks
    assert hunk.ours_text == "two (ours)\n"
    assert hunk.base_text == "two\n"
    assert hunk.theirs_text == "two (theirs)\n"
    assert preview.versions.theirs == b"one\ntwo (theirs)\n"


def test_preview_conflict_missing_side_reads_empty(repo):
    def read_blob(spec):
        if spec.startswith("origin/main:"):
            raise GitCommandError("git cat-file", 128, "does not exist")
        return b"one\n"

    repo.read_blob.side_effect = read_blob
    repo.merge_file.return_value = b"one\n"

    preview = ConflictPredictor(repo).preview_conflict("origin/main", "a.txt")

    assert repo.merge_file.call_args.args[2] == b""
    assert preview.status == FileStatus.RESOLVED
    assert preview.hunks == []


def test_preview_conflict_refuses_binary(repo):
    _blobs(repo, base=b"\x00base", HEAD=b"\x00ours", **{"origin/main": b"\x00theirs"})

    with pytest.raises(PredictionFailed, match="Binary file preview"):
        ConflictPredictor(repo).preview_conflict("origin/main", "logo.png")

    repo.merge_file.assert_not_called()


def test_preview_conflict_refuses_empty_path(repo):
    with pytest.raises(PredictionFailed, match="path is empty"):
        ConflictPredictor(repo).preview_conflict("origin/main", "   ")
    repo.read_blob.assert_not_called()
