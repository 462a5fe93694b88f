"""Bounded polling until the working tree is clean."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable

from pullguard.core.log import logger
from pullguard.git.repository import GitRepository
from pullguard.models import ReconcileOutcome


class StatusReconciler:
    """Waits for git to report a clean tree with no operation in progress.

    git can return before hooks or filesystem watchers settle, so the
    orchestrator polls here instead of trusting the exit code alone.
    """

    def __init__(
        self,
        repo: GitRepository,
        timeout: float = 30.0,
        interval: float = 0.25,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.repo = repo
        self.timeout = timeout
        self.interval = interval
        self.clock = clock

    def is_clean(self) -> bool:
        return not self.repo.status() and self.repo.in_progress_operation() is None

    def await_clean(
        self,
        timeout: float | None = None,
        interval: float | None = None,
        cancel: threading.Event | None = None,
    ) -> ReconcileOutcome:
        """Poll until clean, cancelled, or out of time.

        Args:
            timeout: Seconds to wait; 0 polls exactly once
            interval: Seconds between polls
            cancel: Set to stop waiting early

        Returns:
            CLEAN; STILL_DIRTY when cancelled or after a single dirty
            poll with a zero timeout; TIMED_OUT when the deadline passed
        """
        timeout = self.timeout if timeout is None else timeout
        interval = self.interval if interval is None else interval
        deadline = self.clock() + timeout
        polls = 0

        while True:
            if cancel is not None and cancel.is_set():
                logger.debug("Reconcile cancelled", polls=polls)
                return ReconcileOutcome.STILL_DIRTY

            polls += 1
            if self.is_clean():
                logger.debug("Working tree clean", polls=polls)
                return ReconcileOutcome.CLEAN

            if timeout <= 0:
                return ReconcileOutcome.STILL_DIRTY

            remaining = deadline - self.clock()
            if remaining <= 0:
                logger.warn("Timed out waiting for clean tree", timeout=timeout)
                return ReconcileOutcome.TIMED_OUT

            wait = min(interval, remaining)
            if cancel is not None:
                cancel.wait(wait)
            else:
                time.sleep(wait)

    def indicators(self, upstream: str | None = None) -> tuple[str, int, int] | None:
        """Current (upstream, ahead, behind), or None without an upstream."""
        upstream = upstream or self.repo.upstream()
        if not upstream:
            return None
        ahead, behind = self.repo.ahead_behind(upstream)
        return upstream, ahead, behind
