"""Dry-run conflict prediction for merge, rebase and cherry-pick."""

from __future__ import annotations

import threading

from pullguard.conflict import markers
from pullguard.core.log import logger
from pullguard.errors import GitCommandError, PredictionCancelled, PredictionFailed
from pullguard.git.repository import GitRepository
from pullguard.models import (
    ConflictFile,
    ConflictPrediction,
    ConflictVersions,
    FileStatus,
    OperationKind,
    PredictionResult,
    PullMode,
    PullPreview,
)
from pullguard.predict import mergetree


def _check_cancel(cancel: threading.Event | None) -> None:
    if cancel is not None and cancel.is_set():
        raise PredictionCancelled("Prediction cancelled")


class ConflictPredictor:
    """Predicts which paths an operation would leave unmerged.

    Nothing here writes to the index, the working tree or any ref:
    ``git merge-tree --write-tree`` only adds objects to the store, so
    a cancelled or failed prediction leaves nothing to clean up.
    """

    def __init__(self, repo: GitRepository, remote: str = "origin"):
        self.repo = repo
        self.remote = remote

    def _resolve(self, ref: str) -> str:
        try:
            return self.repo.resolve_ref(ref)
        except GitCommandError as e:
            raise PredictionFailed(f"Cannot resolve {ref}: {e.stderr or e}") from e

    def _merge_base(self, ours: str, theirs: str) -> str:
        try:
            base = self.repo.merge_base(ours, theirs)
        except GitCommandError as e:
            raise PredictionFailed(str(e)) from e
        if base is None:
            raise PredictionFailed(
                f"{ours} and {theirs} share no history (unrelated histories)"
            )
        return base

    def _step(self, base: str, ours: str, theirs: str) -> mergetree.MergeTreeResult:
        """One three-way merge in the object store."""
        result = self.repo.merge_tree(base, ours, theirs)
        if result.exited not in (0, 1):
            raise PredictionFailed(
                f"git merge-tree failed ({result.exited}): "
                f"{result.stderr.strip() or 'no output'}"
            )
        parsed = mergetree.parse(result.stdout)
        if not parsed.tree:
            raise PredictionFailed("git merge-tree wrote no tree")
        return parsed

    def predict(
        self,
        ours: str,
        theirs: str,
        kind: OperationKind,
        base: str | None = None,
        cancel: threading.Event | None = None,
    ) -> PredictionResult:
        """Predict the conflicts of applying ``theirs`` to ``ours``.

        Args:
            ours: The branch being updated (usually HEAD)
            theirs: Upstream or branch to merge; for REBASE the new
                base; for CHERRY_PICK the commit to pick
            kind: Operation to simulate
            base: Merge base override (MERGE and CHERRY_PICK only)
            cancel: Checked between steps

        Returns:
            PredictionResult with path-sorted predictions

        Raises:
            PredictionFailed: Unrelated histories, unreadable objects
                or a merge-tree failure
            PredictionCancelled: If ``cancel`` was set
        """
        with logger.span("predict", kind=kind.value, ours=ours, theirs=theirs):
            _check_cancel(cancel)
            ours_hash = self._resolve(ours)
            theirs_hash = self._resolve(theirs)

            if kind == OperationKind.REBASE:
                found = self._simulate_rebase(ours_hash, theirs_hash, cancel)
            else:
                if kind == OperationKind.CHERRY_PICK:
                    base = base or self._resolve(f"{theirs_hash}^")
                else:
                    base = base or self._merge_base(ours_hash, theirs_hash)
                step = self._step(base, ours_hash, theirs_hash)
                found = mergetree.predictions(step, ours_hash, theirs_hash)

            prediction = PredictionResult(kind=kind, conflicting_paths=tuple(found))
            logger.info(
                "Prediction complete",
                kind=kind.value,
                clean=prediction.clean,
                paths=prediction.paths,
            )
            return prediction

    def _simulate_rebase(
        self,
        ours: str,
        onto: str,
        cancel: threading.Event | None,
    ) -> list[ConflictPrediction]:
        """Replay each of our commits onto ``onto``, one merge per commit.

        The first step to conflict on a path decides its prediction;
        later commits touching it are not analyzed again.
        """
        self._merge_base(ours, onto)
        commits = self.repo.rev_list(f"{onto}...{ours}", cherry_pick=True)
        logger.debug("Simulating rebase", onto=onto, commits=len(commits))

        found: dict[str, ConflictPrediction] = {}
        running = onto
        for commit in commits:
            _check_cancel(cancel)
            parent = self._resolve(f"{commit}^")
            step = self._step(parent, running, commit)
            for prediction in mergetree.predictions(step, running, commit):
                if prediction.path not in found:
                    found[prediction.path] = prediction
            if step.conflicted:
                logger.debug(
                    "Rebase step conflicts",
                    commit=commit,
                    paths=step.conflicted,
                )
            # Wrap the tree in an unreferenced commit for the next step
            try:
                running = self.repo.commit_tree(
                    step.tree, running, f"pullguard: simulate {commit}"
                )
            except GitCommandError as e:
                raise PredictionFailed(str(e)) from e
        return list(found.values())

    # ------------------------------------------------------------
    # Pull preview
    # ------------------------------------------------------------

    def infer_upstream(self, branch: str) -> str | None:
        """Configured upstream, else ``<remote>/<branch>`` when it exists."""
        upstream = self.repo.upstream()
        if upstream:
            return upstream
        candidate = f"{self.remote}/{branch}"
        if self.repo.try_resolve_ref(candidate):
            return candidate
        return None

    def preview_pull(
        self,
        mode: PullMode,
        cancel: threading.Event | None = None,
        fetch: bool = True,
    ) -> PullPreview:
        """Fetch, then describe what pulling would do and what conflicts.

        Raises:
            PredictionFailed: On detached HEAD, fetch failure or any
                prediction failure
        """
        with logger.span("preview pull", mode=mode.value, remote=self.remote):
            if fetch:
                try:
                    self.repo.fetch(self.remote)
                except GitCommandError as e:
                    raise PredictionFailed(f"Fetch failed: {e.stderr or e}") from e
            _check_cancel(cancel)

            branch = self.repo.current_branch()
            if branch is None:
                raise PredictionFailed("Cannot predict pull from detached HEAD.")

            upstream = self.infer_upstream(branch)
            ahead, behind = (0, 0)
            if upstream:
                ahead, behind = self.repo.ahead_behind(upstream)

            rebase = mode != PullMode.MERGE
            if upstream is None:
                action = "no-upstream"
            elif behind == 0:
                action = "noop"
            elif ahead == 0:
                action = "fast-forward"
            else:
                action = "rebase" if rebase else "merge-commit"

            kind = OperationKind.REBASE if rebase else OperationKind.MERGE
            if upstream and behind > 0:
                prediction = self.predict("HEAD", upstream, kind, cancel=cancel)
            else:
                prediction = PredictionResult(kind=kind)

            return PullPreview(
                upstream=upstream,
                ahead=ahead,
                behind=behind,
                action=action,
                prediction=prediction,
            )

    def predict_pull(
        self,
        mode: PullMode,
        cancel: threading.Event | None = None,
    ) -> PredictionResult:
        return self.preview_pull(mode, cancel=cancel).prediction

    def _blob_or_empty(self, rev: str, path: str) -> bytes:
        try:
            return self.repo.read_blob(f"{rev}:{path}")
        except GitCommandError:
            return b""

    def preview_conflict(
        self,
        upstream: str,
        path: str,
        ours: str = "HEAD",
    ) -> ConflictFile:
        """Render the predicted conflict for one path with diff3 markers."""
        path = path.strip()
        if not path:
            raise PredictionFailed("path is empty")
        base = self._merge_base(self._resolve(ours), self._resolve(upstream))

        base_bytes = self._blob_or_empty(base, path)
        ours_bytes = self._blob_or_empty(ours, path)
        theirs_bytes = self._blob_or_empty(upstream, path)
        if any(markers.is_binary(b) for b in (base_bytes, ours_bytes, theirs_bytes)):
            raise PredictionFailed("Binary file preview is not supported.")

        try:
            merged = self.repo.merge_file(ours_bytes, base_bytes, theirs_bytes)
        except GitCommandError as e:
            raise PredictionFailed(str(e)) from e

        status = (
            FileStatus.UNMERGED if markers.has_markers(merged)
            else FileStatus.RESOLVED
        )
        return markers.parse(
            merged,
            path,
            status=status,
            versions=ConflictVersions(
                base=base_bytes, ours=ours_bytes, theirs=theirs_bytes
            ),
        )
