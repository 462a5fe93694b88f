"""Exception hierarchy for pullguard."""

from __future__ import annotations


class PullguardError(Exception):
    """Base exception for all pullguard errors."""


class GitCommandError(PullguardError):
    """A git invocation exited with an unexpected status."""

    def __init__(self, command: str, exit_code: int, stderr: str = "", stdout: str = ""):
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr.strip()
        self.stdout = stdout.strip()
        detail = self.stderr or self.stdout or "no output"
        super().__init__(f"{command} failed with exit code {exit_code}: {detail}")


class PredictionFailed(PullguardError):
    """The dry run could not be computed (unrelated histories,
    unreadable objects, operation being applied)."""


class PredictionCancelled(PredictionFailed):
    """The caller cancelled a running prediction."""


class ApplyFailed(PullguardError):
    """The real merge/rebase/cherry-pick could not be started or failed
    without leaving conflicts (dirty tree, network failure on fetch)."""


class ConflictParseError(PullguardError):
    """Malformed conflict markers in a single file."""

    def __init__(self, path: str, message: str, line: int | None = None):
        self.path = path
        self.line = line
        where = f"{path}:{line}" if line is not None else path
        super().__init__(f"{where}: {message}")


class ResolutionError(PullguardError):
    """A resolution cannot be applied to the given file."""


class OperationRejected(PullguardError):
    """A requested transition was refused; state is unchanged."""


class InvalidTransition(OperationRejected):
    """The action is not allowed from the current phase."""

    def __init__(self, action: str, phase):
        self.action = action
        self.phase = phase
        super().__init__(f"Cannot {action} while phase is {phase}")


class OperationBusy(OperationRejected):
    """Another operation is already open on the repository."""


class ResolutionIncomplete(OperationRejected):
    """Continue was requested while paths are still unresolved."""

    def __init__(self, unresolved_paths):
        self.unresolved_paths = sorted(unresolved_paths)
        super().__init__(
            f"{len(self.unresolved_paths)} path(s) still unresolved: "
            + ", ".join(self.unresolved_paths)
        )


class OperationAbortFailed(PullguardError):
    """The abort command failed; the repository is as git left it."""
