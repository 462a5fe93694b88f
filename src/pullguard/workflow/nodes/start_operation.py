"""StartOperation node - run the real pull, merge or rebase."""

from __future__ import annotations

from dataclasses import dataclass

from pydantic_graph import BaseNode, End, GraphRunContext

from pullguard.core.config import State
from pullguard.core.log import logger
from pullguard.models import Phase, PullMode


@dataclass
class StartOperation(BaseNode[State, None, int]):
    """Start the operation and route on the phase it ends in."""

    action: str = "pull"
    target: str | None = None

    async def run(
        self, ctx: GraphRunContext[State]
    ) -> ResolveAll | End[int]:
        pull = ctx.state.runtime.pull
        engine = pull.engine
        before = engine.state

        if self.action == "pull":
            # Predict already fetched and dry-ran this pull
            prediction = pull.preview.prediction if pull.preview else None
            state = engine.apply_pull(PullMode(pull.mode), prediction=prediction)
        elif self.action == "merge":
            state = engine.merge_branch(self.target)
        elif self.action == "rebase":
            state = engine.rebase(self.target)
        elif self.action == "cherry-pick":
            state = engine.cherry_pick(self.target)
        else:
            raise ValueError(f"Unknown action: {self.action}")

        pull.operation = state
        pull.status = "running"

        if state.phase == Phase.COMPLETED:
            pull.status = "complete"
            logger.info(state.message)
            return End(0)

        if state.phase == before.phase and state.prediction is not None:
            # Auto mode found conflicts and left the repository alone
            pull.status = "failed"
            logger.warn(
                "Pull not started; rerun with --mode merge or --mode rebase "
                "to resolve the predicted conflicts",
                paths=state.prediction.paths,
            )
            return End(1)

        from pullguard.workflow.nodes.resolve_all import ResolveAll
        return ResolveAll()
