"""Pull command - runs the pull workflow."""

from typing import Literal

from pydantic import BaseModel, Field

from pullguard.core.log import logger
from pullguard.models import PullMode


class PullCommand(BaseModel):
    """Pull from the configured remote with conflict prediction.

    Fetches and predicts first. In auto mode a rebase runs only when
    no conflicts are predicted; otherwise nothing is changed and the
    predicted paths are reported. With --take every conflict is
    resolved to one side and the operation continued.
    """

    mode: PullMode = Field(
        default=PullMode.AUTO,
        description="merge, rebase, or auto (rebase when conflict-free)",
    )
    take: Literal["ours", "theirs"] | None = Field(
        default=None,
        description="Resolve every conflict by taking this side",
    )

    async def run_workflow(self, state: "State") -> int:
        """Run pull workflow.

        Args:
            state: State instance with config loaded and runtime initialized

        Returns:
            Exit code (0=success, 1=failure or unresolved conflicts)
        """
        from pullguard.engine import open_engine
        from pullguard.workflow.graph import run_workflow
        from pullguard.workflow.nodes.predict import Predict

        pull = state.runtime.pull
        pull.engine = open_engine(state.config)
        pull.mode = self.mode.value
        pull.take = self.take

        logger.info(
            f"Pulling from {state.config.git.remote} ({self.mode.value})"
        )
        return await run_workflow(Predict(), state)
