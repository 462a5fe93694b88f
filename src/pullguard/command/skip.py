"""Skip command - drop the commit a rebase or cherry-pick stopped on."""

from pydantic import BaseModel

from pullguard.core.log import logger
from pullguard.models import Phase


class SkipCommand(BaseModel):
    """Skip the current commit of a rebase or cherry-pick."""

    async def run_workflow(self, state: "State") -> int:
        from pullguard.engine import open_engine

        engine = open_engine(state.config)
        result = engine.skip_commit()
        logger.info(f"{result.kind.value}: {result.phase.value}")
        return 0 if result.phase != Phase.FAILED else 1
