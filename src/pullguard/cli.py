#!/usr/bin/env python3
"""pullguard CLI - predict and resolve git conflicts before they land."""

import asyncio
import sys

from pydantic import Field
from pydantic_settings import CliApp, CliSubCommand, get_subcommand

from pullguard.command.abort import AbortCommand
from pullguard.command.continue_operation import ContinueCommand
from pullguard.command.merge import MergeCommand
from pullguard.command.predict import PredictCommand
from pullguard.command.pull import PullCommand
from pullguard.command.resolve import ResolveCommand
from pullguard.command.skip import SkipCommand
from pullguard.command.status import StatusCommand
from pullguard.core.config import State
from pullguard.core.log import logger
from pullguard.errors import PullguardError


class CliState(State):
    """Pull, merge and rebase with conflicts predicted up front.

    pullguard dry-runs the operation in git's object store first, so
    you see which paths would conflict before anything is touched.
    Conflicts that do happen are resolved per file or per hunk, then
    the operation is continued or aborted.

    Configuration sources (in priority order):
    1. Command-line arguments (--config.git.remote upstream)
    2. pullguard.yaml in the current directory (plus --include files)
    3. .env file
    4. Environment variables (PULLGUARD_CONFIG__GIT__REMOTE=upstream)
    """

    predict: CliSubCommand[PredictCommand]
    pull: CliSubCommand[PullCommand]
    merge: CliSubCommand[MergeCommand]
    status: CliSubCommand[StatusCommand]
    resolve: CliSubCommand[ResolveCommand]
    continue_: CliSubCommand[ContinueCommand] = Field(alias="continue")
    abort: CliSubCommand[AbortCommand]
    skip: CliSubCommand[SkipCommand]

    def cli_cmd(self):
        """Dispatch to active subcommand, or show help if none
        provided."""
        subcommand = get_subcommand(self, is_required=False)

        if subcommand is None:
            CliApp.run(CliState, cli_args=['--help'])
            sys.exit(1)

        # Close log files and exporters on exit
        with logger:
            try:
                exit_code = asyncio.run(subcommand.run_workflow(self))
            except PullguardError as e:
                logger.error(str(e), error=type(e).__name__)
                exit_code = 1
            raise SystemExit(exit_code)


def main():
    """Main entry point for CLI."""
    CliApp.run(CliState)


if __name__ == "__main__":
    main()
