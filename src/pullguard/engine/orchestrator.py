"""State machine driving merge, rebase and cherry-pick to completion."""

from __future__ import annotations

import contextlib
import threading
from collections.abc import Callable, Iterable

from invoke import Result

from pullguard.conflict import applier, markers
from pullguard.core.log import logger
from pullguard.engine.events import (
    Event,
    IndicatorsChanged,
    ModalContent,
    StateChanged,
)
from pullguard.engine.reconciler import StatusReconciler
from pullguard.errors import (
    ApplyFailed,
    ConflictParseError,
    GitCommandError,
    InvalidTransition,
    OperationAbortFailed,
    OperationBusy,
    PredictionFailed,
    ResolutionError,
    ResolutionIncomplete,
)
from pullguard.git.porcelain import UnmergedPath, classify_unmerged
from pullguard.git.repository import GitRepository
from pullguard.models import (
    ConflictFile,
    ConflictVersions,
    OperationKind,
    OperationState,
    Phase,
    PredictionResult,
    PullMode,
    PullPreview,
    ReconcileOutcome,
    Resolution,
    StagingActionType,
    UnmergedEntry,
)
from pullguard.predict.predictor import ConflictPredictor

Listener = Callable[[Event], None]

_RESOLVABLE = (Phase.CONFLICTED, Phase.RESOLVING)
_ABORT_REFUSED = (Phase.IDLE, Phase.COMPLETED, Phase.ABORTED)


class _SharedExclusiveLock:
    """Predictions share the repository; applies own it.

    Shared acquisition never waits: a prediction during an apply
    fails fast. Exclusive acquisition waits for in-flight readers.
    """

    def __init__(self):
        self._cond = threading.Condition()
        self._readers = 0
        self._writer = False

    @contextlib.contextmanager
    def shared(self):
        with self._cond:
            if self._writer:
                raise PredictionFailed(
                    "An operation is being applied to this repository"
                )
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                self._cond.notify_all()

    @contextlib.contextmanager
    def exclusive(self):
        with self._cond:
            while self._writer or self._readers:
                self._cond.wait()
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class OperationOrchestrator:
    """One repository's operation lifecycle.

    Phases: Idle → Running → (Conflicted → Resolving → Continuing)* →
    Completed, with Aborted and Failed reachable as described on each
    action. Every public action is one transition attempt: it either
    publishes a new frozen OperationState or raises a typed rejection
    and leaves the state as it was.
    """

    def __init__(
        self,
        repo: GitRepository,
        predictor: ConflictPredictor | None = None,
        reconciler: StatusReconciler | None = None,
        remote: str = "origin",
        retries: int = 2,
    ):
        self.repo = repo
        self.remote = remote
        self.predictor = predictor or ConflictPredictor(repo, remote=remote)
        self.reconciler = reconciler or StatusReconciler(repo)
        self.retries = retries

        self._state = OperationState()
        self._lock = threading.RLock()
        self._repo_lock = _SharedExclusiveLock()
        self._listeners: list[Listener] = []
        self._files: dict[str, ConflictFile] = {}
        self._covers: dict[str, list[str]] = {}

    # ------------------------------------------------------------
    # State and notifications
    # ------------------------------------------------------------

    @property
    def state(self) -> OperationState:
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register for events; returns a function that unsubscribes."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)
        return unsubscribe

    def _publish(self, event: Event) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(
                    "Event listener failed",
                    event=type(event).__name__,
                    error=str(e),
                )

    def _transition(self, **changes) -> OperationState:
        with self._lock:
            previous = self._state
            self._state = previous.model_copy(update=changes)
            if self._state.phase != previous.phase:
                logger.info(
                    f"Operation {previous.phase.value} → {self._state.phase.value}",
                    kind=self._state.kind.value if self._state.kind else None,
                    unresolved=len(self._state.unresolved_paths),
                )
            self._publish(StateChanged(state=self._state))
            return self._state

    def _restore(self, previous: OperationState) -> OperationState:
        with self._lock:
            self._state = previous
            self._publish(StateChanged(state=previous))
            return previous

    def _require(self, action: str, phases: Iterable[Phase]) -> None:
        if self._state.phase not in tuple(phases):
            logger.warn(
                f"Rejected {action}",
                phase=self._state.phase.value,
            )
            raise InvalidTransition(action, self._state.phase.value)

    def _require_startable(self, action: str) -> None:
        if self._state.is_open:
            kind = self._state.kind.value if self._state.kind else "operation"
            logger.warn(f"Rejected {action}: {kind} is open")
            raise OperationBusy(
                f"Cannot {action}: a {kind} is {self._state.phase.value}"
            )

    def _refresh_indicators(self) -> None:
        try:
            found = self.reconciler.indicators()
        except GitCommandError as e:
            logger.debug("Could not refresh indicators", error=str(e))
            return
        if found is not None:
            upstream, ahead, behind = found
            self._publish(IndicatorsChanged(
                upstream=upstream, ahead=ahead, behind=behind
            ))

    # ------------------------------------------------------------
    # Prediction
    # ------------------------------------------------------------

    def preview_pull(
        self,
        mode: PullMode,
        cancel: threading.Event | None = None,
    ) -> PullPreview:
        """Fetch, predict the pull and publish badges and modal content.

        Raises:
            PredictionFailed: Also raised immediately while an apply
                holds the repository
        """
        with self._repo_lock.shared():
            preview = self.predictor.preview_pull(mode, cancel=cancel)
        self._publish(IndicatorsChanged(
            upstream=preview.upstream,
            ahead=preview.ahead,
            behind=preview.behind,
        ))
        self._publish(ModalContent.for_paths(preview.prediction.paths))
        return preview

    def predict_pull(
        self,
        mode: PullMode,
        cancel: threading.Event | None = None,
    ) -> PredictionResult:
        return self.preview_pull(mode, cancel=cancel).prediction

    def predict(
        self,
        ours: str,
        theirs: str,
        kind: OperationKind,
        cancel: threading.Event | None = None,
    ) -> PredictionResult:
        with self._repo_lock.shared():
            prediction = self.predictor.predict(ours, theirs, kind, cancel=cancel)
        self._publish(ModalContent.for_paths(prediction.paths))
        return prediction

    # ------------------------------------------------------------
    # Starting operations
    # ------------------------------------------------------------

    def _pull_source(self, branch: str | None) -> tuple[str | None, str | None]:
        """Remote and branch to pull, matching the ref the preview used.

        Without an explicit branch this is the configured upstream, or
        ``<remote>/<current branch>`` when nothing is configured. An
        upstream on another remote is left for git to follow.

        Raises:
            ApplyFailed: On detached HEAD or with no upstream to pull
        """
        if branch is not None:
            return self.remote, branch
        current = self.repo.current_branch()
        if current is None:
            raise ApplyFailed("Cannot pull from detached HEAD.")
        upstream = self.predictor.infer_upstream(current)
        if upstream is None:
            raise ApplyFailed(f"No upstream branch to pull into {current}")
        prefix = f"{self.remote}/"
        if upstream.startswith(prefix):
            return self.remote, upstream[len(prefix):]
        return None, None

    def apply_pull(
        self,
        mode: PullMode,
        branch: str | None = None,
        force: bool = False,
        prediction: PredictionResult | None = None,
    ) -> OperationState:
        """Pull from the configured remote.

        AUTO predicts a rebase first, unless ``prediction`` already
        holds one from a preview. When clean the rebase runs; otherwise
        nothing is started and the returned state carries the
        prediction so the conflicts can be shown up front.

        Raises:
            ApplyFailed: On detached HEAD, with no upstream, or when git
                fails without leaving conflicts
        """
        self._require_startable("pull")
        remote, branch = self._pull_source(branch)
        if mode == PullMode.AUTO:
            if prediction is None:
                prediction = self.predict_pull(PullMode.REBASE)
            if not prediction.clean:
                logger.info(
                    "Conflicts detected; pull not started",
                    paths=prediction.paths,
                )
                return self._transition(
                    prediction=prediction,
                    message="Conflicts detected",
                )
            mode = PullMode.REBASE

        kind = OperationKind.REBASE if mode == PullMode.REBASE else OperationKind.MERGE
        return self._start(
            kind,
            f"pull ({mode.value}) from {remote or 'upstream'}",
            lambda: self.repo.pull(mode, remote, branch, force),
        )

    def merge_branch(self, target: str) -> OperationState:
        return self._start(
            OperationKind.MERGE,
            f"merge {target}",
            lambda: self.repo.merge_branch(target),
        )

    def rebase(self, upstream: str) -> OperationState:
        return self._start(
            OperationKind.REBASE,
            f"rebase onto {upstream}",
            lambda: self.repo.rebase(upstream),
        )

    def cherry_pick(self, commit: str) -> OperationState:
        return self._start(
            OperationKind.CHERRY_PICK,
            f"cherry-pick {commit}",
            lambda: self.repo.cherry_pick(commit),
        )

    def _start(
        self,
        kind: OperationKind,
        description: str,
        action: Callable[[], Result],
    ) -> OperationState:
        with self._lock:
            self._require_startable(description)
            previous = self._state
            with self._repo_lock.exclusive():
                self._files.clear()
                self._covers.clear()
                self._transition(
                    kind=kind,
                    phase=Phase.RUNNING,
                    unresolved_paths=frozenset(),
                    message=description,
                    reconcile=None,
                    prediction=None,
                )
                with logger.span(description, kind=kind.value):
                    try:
                        result = action()
                        unmerged = self.repo.ls_files_unmerged()
                    except GitCommandError as e:
                        self._transition(phase=Phase.FAILED, message=str(e))
                        raise ApplyFailed(str(e)) from e

                if unmerged:
                    return self._enter_conflicted(unmerged)

                if result.exited == 0:
                    return self._complete(f"{description} completed")

                detail = (result.stderr or result.stdout).strip()
                if self.repo.in_progress_operation() is None:
                    # git refused before changing anything
                    logger.error(f"{description} was not started", error=detail)
                    self._restore(previous)
                    raise ApplyFailed(detail or f"{description} failed")

                self._transition(phase=Phase.FAILED, message=detail)
                logger.error(f"{description} failed", error=detail)
                raise ApplyFailed(detail or f"{description} failed")

    def _enter_conflicted(self, unmerged: dict[str, UnmergedEntry]) -> OperationState:
        self._files.clear()
        self._covers.clear()
        return self._transition(
            phase=Phase.CONFLICTED,
            unresolved_paths=frozenset(unmerged),
            message=f"{len(unmerged)} path(s) need resolution",
            reconcile=None,
        )

    def _reconcile(self) -> ReconcileOutcome:
        outcome = self.reconciler.await_clean()
        attempt = 0
        while outcome != ReconcileOutcome.CLEAN and attempt < self.retries:
            attempt += 1
            logger.debug("Re-polling status", attempt=attempt, outcome=outcome.value)
            outcome = self.reconciler.await_clean()
        return outcome

    def _complete(
        self,
        message: str,
        outcome: ReconcileOutcome | None = None,
    ) -> OperationState:
        outcome = outcome or self._reconcile()
        state = self._transition(
            phase=Phase.COMPLETED,
            unresolved_paths=frozenset(),
            message=message,
            reconcile=outcome,
        )
        self._refresh_indicators()
        return state

    # ------------------------------------------------------------
    # Resolving
    # ------------------------------------------------------------

    def _load_file(self, group: UnmergedPath, entries: dict[str, UnmergedEntry]) -> ConflictFile:
        def blob(path: str, stage: int) -> bytes | None:
            entry = entries.get(path)
            if entry is None or stage not in entry.stages:
                return None
            return self.repo.read_blob(entry.stages[stage])

        if group.candidates:
            ours_path, theirs_path = group.candidates[0], group.candidates[-1]
        else:
            ours_path = theirs_path = group.path
        versions = ConflictVersions(
            base=blob(ours_path, 1),
            ours=blob(ours_path, 2),
            theirs=blob(theirs_path, 3),
        )
        binary = any(
            data is not None and markers.is_binary(data)
            for data in (versions.base, versions.ours, versions.theirs)
        )

        data = self.repo.read_file(group.path) or b""
        details = {
            "status": group.status,
            "kind": group.kind,
            "versions": versions,
            "stages": group.stages,
            "candidates": group.candidates,
        }
        try:
            return markers.parse(data, group.path, binary=binary, **details)
        except ConflictParseError as e:
            logger.warn("Needs manual edit", path=group.path, error=str(e))
            return markers.flag_unparseable(data, e, is_binary=binary, **details)

    def _load_conflicts(self) -> list[ConflictFile]:
        entries = self.repo.ls_files_unmerged()
        self._files.clear()
        self._covers.clear()
        for group in classify_unmerged(entries):
            self._files[group.path] = self._load_file(group, entries)
            self._covers[group.path] = group.covers
        return [self._files[path] for path in sorted(self._files)]

    def list_conflict_files(self) -> list[ConflictFile]:
        """Open the resolver: parse every unmerged path.

        Files whose markers cannot be parsed are returned flagged with
        ``parse_error`` so the others stay resolvable.
        """
        with self._lock:
            self._require("list conflict files", _RESOLVABLE)
            with self._repo_lock.exclusive():
                files = self._load_conflicts()
            if self._state.phase == Phase.CONFLICTED:
                self._transition(phase=Phase.RESOLVING)
            return files

    def resolve_file(
        self,
        path: str,
        resolutions: Iterable[Resolution],
    ) -> ConflictFile:
        """Apply resolutions to one file, then write and stage it.

        A partially resolved file is written with its remaining markers
        and nothing is staged; hunk indices in later calls refer to the
        returned file's hunks.

        Raises:
            InvalidTransition: Outside Conflicted/Resolving
            ResolutionError: Unknown path or a choice that does not fit
        """
        resolutions = list(resolutions)
        with self._lock:
            self._require("resolve", _RESOLVABLE)
            with self._repo_lock.exclusive():
                if path not in self._files:
                    self._load_conflicts()
                file = self._files.get(path)
                if file is None:
                    raise ResolutionError(f"{path} is not an unresolved conflict")

                result = applier.apply(file, resolutions)
                try:
                    if not result.resolved:
                        if result.final_bytes is not None:
                            self.repo.write_file(path, result.final_bytes)
                        self._files[path] = result.file
                        self._transition(phase=Phase.RESOLVING)
                        return result.file

                    touched = self._stage(result)
                    leftover = [p for p in self._covers.get(path, [path]) if p not in touched]
                    self.repo.rm(leftover)
                except GitCommandError as e:
                    logger.error("Staging failed", path=path, error=str(e))
                    # Part of the staging may have landed in the index
                    try:
                        self._resync()
                    except GitCommandError as sync_error:
                        logger.warn("Could not reread the index", error=str(sync_error))
                    raise ResolutionError(f"Could not stage {path}: {e}") from e

                covered = set(self._covers.pop(path, [path]))
                del self._files[path]
                logger.info("Resolved", path=path, staged=len(result.staging_actions))
                self._transition(
                    phase=Phase.RESOLVING,
                    unresolved_paths=self._state.unresolved_paths - covered,
                )
                return result.file

    def _stage(self, result) -> set[str]:
        touched = set()
        for action in result.staging_actions:
            if action.action == StagingActionType.REMOVE:
                self.repo.rm([action.path])
            else:
                if result.final_bytes is not None:
                    self.repo.write_file(action.path, result.final_bytes)
                self.repo.add([action.path])
                if action.action == StagingActionType.RENAME:
                    self.repo.rm([action.source])
                    touched.add(action.source)
            touched.add(action.path)
        return touched

    def _resync(self) -> OperationState:
        unmerged = self.repo.ls_files_unmerged()
        for path in list(self._files):
            if not set(self._covers.get(path, [path])) & set(unmerged):
                self._files.pop(path)
                self._covers.pop(path, None)
        return self._transition(unresolved_paths=frozenset(unmerged))

    def refresh_conflicts(self) -> OperationState:
        """Resync unresolved paths with the index after outside edits."""
        with self._lock:
            self._require("refresh conflicts", _RESOLVABLE)
            return self._resync()

    # ------------------------------------------------------------
    # Finishing
    # ------------------------------------------------------------

    def continue_operation(self) -> OperationState:
        """Commit the resolution and move on.

        From Continuing this only re-polls the reconciler. A rebase
        that stops on a later commit returns to Conflicted.

        Raises:
            ResolutionIncomplete: Paths remain unresolved (phase kept)
        """
        with self._lock:
            self._require("continue", (*_RESOLVABLE, Phase.CONTINUING))

            if self._state.phase == Phase.CONTINUING:
                outcome = self._reconcile()
                if outcome == ReconcileOutcome.CLEAN:
                    return self._complete(
                        f"{self._state.kind.value} completed", outcome
                    )
                return self._transition(reconcile=outcome)

            unmerged = self.repo.ls_files_unmerged()
            remaining = self._state.unresolved_paths | frozenset(unmerged)
            if remaining:
                logger.warn("Continue rejected", unresolved=sorted(remaining))
                if remaining != self._state.unresolved_paths:
                    self._transition(unresolved_paths=remaining)
                raise ResolutionIncomplete(remaining)

            kind = self._state.kind
            with self._repo_lock.exclusive():
                self._transition(phase=Phase.CONTINUING, message=f"continuing {kind.value}")
                with logger.span(f"continue {kind.value}"):
                    try:
                        result = self.repo.continue_operation(kind)
                        unmerged = self.repo.ls_files_unmerged()
                    except GitCommandError as e:
                        return self._transition(phase=Phase.FAILED, message=str(e))

                if unmerged:
                    return self._enter_conflicted(unmerged)

                if result.exited != 0:
                    detail = (result.stderr or result.stdout).strip()
                    logger.error(f"{kind.value} --continue failed", error=detail)
                    return self._transition(phase=Phase.FAILED, message=detail)

                outcome = self._reconcile()
                if outcome == ReconcileOutcome.CLEAN:
                    return self._complete(f"{kind.value} completed", outcome)
                logger.warn("Working tree not clean yet", outcome=outcome.value)
                return self._transition(
                    reconcile=outcome,
                    message="Waiting for a clean working tree",
                )

    def skip_commit(self) -> OperationState:
        """Drop the commit a rebase or cherry-pick stopped on."""
        with self._lock:
            self._require("skip", _RESOLVABLE)
            kind = self._state.kind
            if kind not in (OperationKind.REBASE, OperationKind.CHERRY_PICK):
                raise InvalidTransition("skip", f"{self._state.phase.value} {kind.value}")

            with self._repo_lock.exclusive():
                result = self.repo.skip(kind)
                unmerged = self.repo.ls_files_unmerged()
                if unmerged:
                    return self._enter_conflicted(unmerged)
                if result.exited != 0:
                    detail = (result.stderr or result.stdout).strip()
                    logger.error(f"{kind.value} --skip failed", error=detail)
                    return self._transition(phase=Phase.FAILED, message=detail)
                if self.repo.in_progress_operation() is None:
                    return self._complete(f"{kind.value} completed")
                return self._transition(
                    phase=Phase.RESOLVING, unresolved_paths=frozenset()
                )

    def abort_operation(self) -> OperationState:
        """Run the abort command of the open operation.

        Raises:
            InvalidTransition: Nothing to abort
            OperationAbortFailed: git could not abort; phase is Failed
        """
        with self._lock:
            self._require("abort", [p for p in Phase if p not in _ABORT_REFUSED])
            kind = self._state.kind or self.repo.in_progress_operation()
            if kind is None:
                raise InvalidTransition("abort", self._state.phase.value)

            with self._repo_lock.exclusive():
                result = self.repo.abort(kind)
                if result.exited != 0:
                    detail = (result.stderr or result.stdout).strip()
                    logger.error(f"{kind.value} --abort failed", error=detail)
                    self._transition(phase=Phase.FAILED, message=detail)
                    raise OperationAbortFailed(detail or f"{kind.value} --abort failed")

                self._files.clear()
                self._covers.clear()
                state = self._transition(
                    phase=Phase.ABORTED,
                    unresolved_paths=frozenset(),
                    message=f"{kind.value} aborted",
                    reconcile=None,
                )
            self._refresh_indicators()
            return state

    def attach(self) -> OperationState:
        """Adopt an operation already in progress on disk (e.g. after a
        restart, or one started from a terminal)."""
        with self._lock:
            self._require_startable("attach")
            kind = self.repo.in_progress_operation()
            if kind is None:
                return self._state

            unmerged = self.repo.ls_files_unmerged()
            self._files.clear()
            self._covers.clear()
            logger.info("Attached to operation in progress", kind=kind.value)
            return self._transition(
                kind=kind,
                phase=Phase.CONFLICTED if unmerged else Phase.RESOLVING,
                unresolved_paths=frozenset(unmerged),
                message=f"{kind.value} in progress",
                reconcile=None,
            )
