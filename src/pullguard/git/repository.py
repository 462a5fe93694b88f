"""Git command layer used by the predictor and orchestrator."""

from __future__ import annotations

import shlex
import tempfile
from pathlib import Path

from invoke import Result

from pullguard.core.log import logger
from pullguard.core.runner import Runner
from pullguard.errors import GitCommandError
from pullguard.git.porcelain import parse_ls_files_unmerged_z, parse_status_z
from pullguard.models import (
    OperationKind,
    PullMode,
    StatusEntry,
    UnmergedEntry,
)

# Never let git open an editor while the engine waits on it
NO_EDITOR = {"GIT_EDITOR": "true", "GIT_SEQUENCE_EDITOR": "true"}

# Identity for dry-run commit objects, which never reach a ref
SCRATCH_IDENTITY = {
    "GIT_AUTHOR_NAME": "pullguard",
    "GIT_AUTHOR_EMAIL": "pullguard@localhost",
    "GIT_COMMITTER_NAME": "pullguard",
    "GIT_COMMITTER_EMAIL": "pullguard@localhost",
}

# Bytes pass through latin-1 unchanged in both directions
RAW = "latin-1"

_OPERATION_VERB = {
    OperationKind.MERGE: "merge",
    OperationKind.REBASE: "rebase",
    OperationKind.CHERRY_PICK: "cherry-pick",
}


class GitRepository:
    """Blocking git plumbing and porcelain calls for one working tree.

    Every call goes through a Runner (invoke) with shell-quoted
    arguments. Commands whose non-zero exit is meaningful (merge,
    rebase, merge-tree) return the invoke Result; everything else
    raises GitCommandError on failure.
    """

    def __init__(
        self,
        workdir: Path,
        executable: str = "git",
        timeout: int | None = 600,
        ignore_untracked: bool = True,
        runner: Runner | None = None,
    ):
        self.workdir = Path(workdir)
        self.executable = executable
        self.timeout = timeout
        self.ignore_untracked = ignore_untracked
        self.runner = runner or Runner()

    @classmethod
    def from_config(cls, config) -> GitRepository:
        """Build from a GitConfig section."""
        return cls(
            workdir=config.workdir,
            executable=config.executable,
            timeout=config.timeout,
            ignore_untracked=config.ignore_untracked,
        )

    # ------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------

    def _command(self, args: tuple[str, ...]) -> str:
        return " ".join(shlex.quote(part) for part in (self.executable, *args))

    def run(
        self,
        *args: str,
        check: bool = True,
        env: dict[str, str] | None = None,
        encoding: str | None = "utf-8",
    ) -> Result:
        """Run git with the given arguments in the working tree.

        Raises:
            GitCommandError: If ``check`` and git exits non-zero
        """
        command = self._command(args)
        result = self.runner.execute(
            command,
            cwd=self.workdir,
            timeout=self.timeout,
            check=False,
            env=env,
            encoding=encoding,
        )
        if check and result.exited != 0:
            raise GitCommandError(
                command, result.exited, result.stderr, result.stdout
            )
        return result

    # ------------------------------------------------------------
    # Refs and history
    # ------------------------------------------------------------

    def resolve_ref(self, ref: str) -> str:
        """Resolve a commit-ish to its full hash.

        Raises:
            GitCommandError: If the ref does not name a commit
        """
        result = self.run("rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}")
        return result.stdout.strip()

    def try_resolve_ref(self, ref: str) -> str | None:
        result = self.run(
            "rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}", check=False
        )
        return result.stdout.strip() if result.exited == 0 else None

    def merge_base(self, ours: str, theirs: str) -> str | None:
        """Best common ancestor, or None for unrelated histories."""
        result = self.run("merge-base", ours, theirs, check=False)
        if result.exited == 1:
            return None
        if result.exited != 0:
            raise GitCommandError(
                self._command(("merge-base", ours, theirs)),
                result.exited,
                result.stderr,
            )
        return result.stdout.strip()

    def rev_list(
        self,
        revision_range: str,
        no_merges: bool = True,
        cherry_pick: bool = False,
    ) -> list[str]:
        """Commits in the range, oldest first.

        ``cherry_pick`` takes a symmetric ``upstream...branch`` range and
        keeps only the branch side, dropping commits whose patch is
        already upstream (the set ``git rebase`` replays).
        """
        args = ["rev-list", "--reverse"]
        if no_merges:
            args.append("--no-merges")
        if cherry_pick:
            args += ["--cherry-pick", "--right-only"]
        args.append(revision_range)
        return self.run(*args).stdout.split()

    def current_branch(self) -> str | None:
        result = self.run("symbolic-ref", "--short", "-q", "HEAD", check=False)
        return result.stdout.strip() or None

    def upstream(self, ref: str = "HEAD") -> str | None:
        """Configured upstream of ``ref`` (e.g. ``origin/main``)."""
        result = self.run(
            "rev-parse", "--abbrev-ref", "--symbolic-full-name", f"{ref}@{{u}}",
            check=False,
        )
        if result.exited != 0:
            return None
        return result.stdout.strip() or None

    def ahead_behind(self, upstream: str, ref: str = "HEAD") -> tuple[int, int]:
        """Return (ahead, behind) of ``ref`` relative to ``upstream``."""
        result = self.run(
            "rev-list", "--left-right", "--count", f"{upstream}...{ref}"
        )
        behind, ahead = (int(n) for n in result.stdout.split())
        return ahead, behind

    # ------------------------------------------------------------
    # Network and dry runs
    # ------------------------------------------------------------

    def fetch(self, remote: str) -> None:
        with logger.span("git fetch", remote=remote):
            self.run("fetch", "--quiet", remote)

    def merge_tree(self, base: str, ours: str, theirs: str) -> Result:
        """Three-way merge into a new tree without touching index or
        working tree.

        Exit 0 is clean, 1 has conflicts; the caller interprets stdout.
        """
        return self.run(
            "merge-tree", "--write-tree", "-z", "--name-only", "--messages",
            f"--merge-base={base}", ours, theirs,
            check=False,
        )

    def commit_tree(self, tree: str, parent: str, message: str) -> str:
        """Write a dangling commit object for ``tree``; no ref moves."""
        result = self.run(
            "commit-tree", tree, "-p", parent, "-m", message,
            env=SCRATCH_IDENTITY,
        )
        return result.stdout.strip()

    def merge_file(
        self,
        ours: bytes,
        base: bytes,
        theirs: bytes,
        labels: tuple[str, str, str] = ("ours", "base", "theirs"),
    ) -> bytes:
        """Three-way merge of blob contents, conflict markers included."""
        with tempfile.TemporaryDirectory(prefix="pullguard-") as tmp:
            paths = []
            for name, data in (("ours", ours), ("base", base), ("theirs", theirs)):
                path = Path(tmp) / name
                path.write_bytes(data)
                paths.append(str(path))

            args = ["merge-file", "-p", "--diff3"]
            for label in labels:
                args += ["-L", label]
            result = self.run(*args, *paths, check=False, encoding=RAW)

        # Positive exit is the number of conflicts
        if result.exited < 0 or result.exited > 127:
            raise GitCommandError(
                self._command(tuple(args)), result.exited, result.stderr
            )
        return result.stdout.encode(RAW)

    # ------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------

    def pull(
        self,
        mode: PullMode,
        remote: str | None,
        branch: str | None = None,
        force: bool = False,
    ) -> Result:
        """Run git pull; without a remote git follows the tracking config."""
        args = ["pull", "--no-edit"]
        args.append("--rebase" if mode == PullMode.REBASE else "--no-rebase")
        if force:
            args.append("--force")
        if remote:
            args.append(remote)
        if branch:
            args.append(branch)
        return self.run(*args, check=False, env=NO_EDITOR)

    def merge_branch(self, target: str) -> Result:
        return self.run("merge", "--no-edit", target, check=False, env=NO_EDITOR)

    def rebase(self, upstream: str) -> Result:
        return self.run("rebase", upstream, check=False, env=NO_EDITOR)

    def cherry_pick(self, commit: str) -> Result:
        return self.run("cherry-pick", commit, check=False, env=NO_EDITOR)

    def continue_operation(self, kind: OperationKind) -> Result:
        if kind == OperationKind.MERGE:
            # Concludes the merge with the prepared MERGE_MSG
            return self.run("commit", "--no-edit", check=False, env=NO_EDITOR)
        return self.run(
            _OPERATION_VERB[kind], "--continue", check=False, env=NO_EDITOR
        )

    def abort(self, kind: OperationKind) -> Result:
        return self.run(_OPERATION_VERB[kind], "--abort", check=False)

    def skip(self, kind: OperationKind) -> Result:
        return self.run(
            _OPERATION_VERB[kind], "--skip", check=False, env=NO_EDITOR
        )

    # ------------------------------------------------------------
    # Index and status
    # ------------------------------------------------------------

    def status(self) -> list[StatusEntry]:
        untracked = "no" if self.ignore_untracked else "normal"
        result = self.run(
            "status", "--porcelain", "-z", f"--untracked-files={untracked}"
        )
        return parse_status_z(result.stdout)

    def ls_files_unmerged(self) -> dict[str, UnmergedEntry]:
        return parse_ls_files_unmerged_z(self.run("ls-files", "-u", "-z").stdout)

    def add(self, paths: list[str]) -> None:
        if paths:
            self.run("add", "--", *paths)

    def rm(self, paths: list[str]) -> None:
        """Remove paths from index and working tree; missing ones are fine."""
        if paths:
            self.run("rm", "-q", "-f", "--ignore-unmatch", "--", *paths)

    def git_path(self, name: str) -> Path:
        result = self.run("rev-parse", "--git-path", name)
        path = Path(result.stdout.strip())
        return path if path.is_absolute() else self.workdir / path

    def in_progress_operation(self) -> OperationKind | None:
        """Operation whose marker git left in the repository, if any."""
        if self.git_path("rebase-merge").is_dir() or self.git_path("rebase-apply").is_dir():
            return OperationKind.REBASE
        if self.git_path("MERGE_HEAD").is_file():
            return OperationKind.MERGE
        if self.git_path("CHERRY_PICK_HEAD").is_file():
            return OperationKind.CHERRY_PICK
        return None

    # ------------------------------------------------------------
    # Content
    # ------------------------------------------------------------

    def read_blob(self, spec: str) -> bytes:
        """Raw bytes of a blob (``<oid>``, ``:2:path`` or ``rev:path``)."""
        result = self.run("cat-file", "blob", spec, encoding=RAW)
        return result.stdout.encode(RAW)

    def read_file(self, path: str) -> bytes | None:
        file_path = self.workdir / path
        if not file_path.is_file():
            return None
        return file_path.read_bytes()

    def write_file(self, path: str, data: bytes) -> None:
        file_path = self.workdir / path
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_bytes(data)
