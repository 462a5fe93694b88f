"""Command execution using the invoke library."""

from __future__ import annotations

import contextlib
import os
import platform
from pathlib import Path

from invoke import Context, Result
from invoke.exceptions import CommandTimedOut

from pullguard.core.log import logger


class Runner(Context):
    """invoke.Context with a single, fully parameterised execute().

    Output is always captured; callers inspect ``result.exited``
    themselves when ``check=False``.
    """

    def kill(self) -> None:
        """Kill the running subprocess.

        invoke sends signal.SIGKILL, which does not exist on Windows.
        os.kill() there hands the number to TerminateProcess(), so the
        numeric value is used instead.
        """
        if platform.system() == "Windows":
            pid = self.pid if self.using_pty else self.process.pid
            with contextlib.suppress(ProcessLookupError):
                os.kill(pid, 9)
            return
        super().kill()

    def execute(
        self,
        command: str,
        cwd: Path | None = None,
        timeout: int | None = None,
        check: bool = True,
        env: dict[str, str] | None = None,
        encoding: str | None = None,
        log_level: str | None = None,
    ) -> Result:
        """Execute a shell command string.

        Args:
            command: Command string (arguments already shell-quoted)
            cwd: Working directory for the command
            timeout: Maximum execution time in seconds
            check: Raise invoke.UnexpectedExit on non-zero exit
            env: Extra environment variables (merged into os.environ)
            encoding: Stream encoding; "latin-1" keeps raw bytes intact
            log_level: Echo captured output at this level

        Returns:
            invoke.Result; a timeout yields ``exited == -1``
        """
        kwargs = {
            "hide": True,
            "warn": not check,
            "in_stream": False,
        }
        if timeout:
            kwargs["timeout"] = timeout
        if env:
            kwargs["env"] = env
        if encoding:
            kwargs["encoding"] = encoding

        logger.trace("Running command", command=command, cwd=str(cwd or ""))

        try:
            if cwd:
                with self.cd(str(cwd)):
                    result = self.run(command, **kwargs)
            else:
                result = self.run(command, **kwargs)
        except CommandTimedOut as e:
            result = e.result
            result.exited = -1

        if log_level:
            for line in (result.stdout + result.stderr).splitlines():
                logger.log(log_level, line.rstrip())

        return result
