"""Merge command - merges a branch through the pull workflow."""

from typing import Literal

from pydantic import BaseModel, Field

from pullguard.core.log import logger


class MergeCommand(BaseModel):
    """Merge, rebase onto, or cherry-pick from another ref.

    Conflicts stop the operation for resolution unless --take picks a
    side for all of them.
    """

    branch: str = Field(
        description="Branch, tag or commit to integrate",
    )
    action: Literal["merge", "rebase", "cherry-pick"] = Field(
        default="merge",
        description="How to integrate the ref",
    )
    take: Literal["ours", "theirs"] | None = Field(
        default=None,
        description="Resolve every conflict by taking this side",
    )

    async def run_workflow(self, state: "State") -> int:
        """Run merge workflow.

        Returns:
            Exit code (0=success, 1=failure or unresolved conflicts)
        """
        from pullguard.engine import open_engine
        from pullguard.workflow.graph import run_workflow
        from pullguard.workflow.nodes.start_operation import StartOperation

        pull = state.runtime.pull
        pull.engine = open_engine(state.config)
        pull.take = self.take

        logger.info(f"Starting {self.action} of {self.branch}")
        return await run_workflow(
            StartOperation(action=self.action, target=self.branch), state
        )
