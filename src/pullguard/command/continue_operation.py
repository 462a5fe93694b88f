"""Continue command - commit resolutions and advance the operation."""

from pydantic import BaseModel

from pullguard.core.log import logger
from pullguard.models import Phase


class ContinueCommand(BaseModel):
    """Continue the merge, rebase or cherry-pick once all paths are resolved."""

    async def run_workflow(self, state: "State") -> int:
        from pullguard.engine import open_engine

        engine = open_engine(state.config)
        result = engine.continue_operation()

        if result.phase == Phase.COMPLETED:
            logger.info(result.message)
            return 0
        if result.phase == Phase.CONFLICTED:
            print("Stopped again; unresolved: " + ", ".join(sorted(result.unresolved_paths)))
            return 1

        logger.error(f"Continue ended in {result.phase.value}: {result.message}")
        return 1
