"""Predict node - fetch and dry-run the pull before touching anything."""

from __future__ import annotations

from dataclasses import dataclass

from pydantic_graph import BaseNode, End, GraphRunContext

from pullguard.core.config import State
from pullguard.core.log import logger
from pullguard.models import PullMode


@dataclass
class Predict(BaseNode[State, None, int]):
    """Preview the pull and stop early when there is nothing to do."""

    async def run(
        self, ctx: GraphRunContext[State]
    ) -> StartOperation | End[int]:
        pull = ctx.state.runtime.pull
        mode = PullMode(pull.mode)

        preview = pull.engine.preview_pull(mode)
        pull.preview = preview

        logger.info(
            f"Upstream {preview.upstream or '(none)'}: "
            f"{preview.ahead} ahead, {preview.behind} behind, "
            f"action {preview.action}"
        )
        if preview.action == "no-upstream":
            logger.error("No upstream branch to pull from")
            return End(1)
        if preview.action == "noop":
            logger.info("Already up to date")
            return End(0)

        if preview.prediction.clean:
            logger.info("No conflicts predicted.")
        else:
            logger.warn(
                "Conflicts detected",
                paths=preview.prediction.paths,
            )

        from pullguard.workflow.nodes.start_operation import StartOperation
        return StartOperation(action="pull")
