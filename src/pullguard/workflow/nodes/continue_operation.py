"""ContinueOperation node - commit resolutions and advance."""

from __future__ import annotations

from dataclasses import dataclass

from pydantic_graph import BaseNode, End, GraphRunContext

from pullguard.core.config import State
from pullguard.core.log import logger
from pullguard.models import Phase


@dataclass
class ContinueOperation(BaseNode[State, None, int]):
    """Continue the operation; a rebase may stop again on a later commit."""

    async def run(
        self, ctx: GraphRunContext[State]
    ) -> ResolveAll | End[int]:
        pull = ctx.state.runtime.pull
        state = pull.engine.continue_operation()
        pull.operation = state

        if state.phase == Phase.CONFLICTED:
            logger.info("Operation stopped again with new conflicts")
            from pullguard.workflow.nodes.resolve_all import ResolveAll
            return ResolveAll()

        if state.phase == Phase.COMPLETED:
            pull.status = "complete"
            logger.info(state.message)
            return End(0)

        pull.status = "failed"
        logger.error(
            f"Operation did not complete: {state.message}",
            phase=state.phase.value,
        )
        return End(1)
