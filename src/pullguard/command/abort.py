"""Abort command - abandon the operation in progress."""

from pydantic import BaseModel

from pullguard.core.log import logger


class AbortCommand(BaseModel):
    """Abort the merge, rebase or cherry-pick in progress.

    The repository returns to where it was before the operation
    started.
    """

    async def run_workflow(self, state: "State") -> int:
        from pullguard.engine import open_engine

        engine = open_engine(state.config)
        result = engine.abort_operation()
        logger.info(result.message)
        return 0
