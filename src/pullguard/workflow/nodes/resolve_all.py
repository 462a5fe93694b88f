"""ResolveAll node - take one side for every conflicted file."""

from __future__ import annotations

from dataclasses import dataclass

from pydantic_graph import BaseNode, End, GraphRunContext

from pullguard.core.config import State
from pullguard.core.log import logger
from pullguard.models import ConflictKind, Resolution, ResolutionChoice


def whole_side(file, choice: ResolutionChoice) -> Resolution:
    """Whole-file resolution picking ``choice`` for any conflict kind."""
    if file.kind == ConflictKind.RENAME_RENAME:
        index = 0 if choice == ResolutionChoice.OURS else -1
        return Resolution.rename(file.path, file.candidates[index])
    return Resolution(path=file.path, choice=choice)


@dataclass
class ResolveAll(BaseNode[State, None, int]):
    """Resolve all conflicts with --take, or stop for manual resolution."""

    async def run(
        self, ctx: GraphRunContext[State]
    ) -> ContinueOperation | End[int]:
        pull = ctx.state.runtime.pull
        engine = pull.engine
        files = engine.list_conflict_files()

        if pull.take is None:
            pull.status = "conflicted"
            logger.warn(
                f"{len(files)} conflicted file(s); resolve with "
                "'pullguard resolve' then run 'pullguard continue'",
                paths=[f.path for f in files],
            )
            return End(1)

        choice = ResolutionChoice(pull.take)
        for file in files:
            engine.resolve_file(file.path, [whole_side(file, choice)])
            logger.info(f"Took {choice.value} for {file.path}")

        from pullguard.workflow.nodes.continue_operation import (
            ContinueOperation,
        )
        return ContinueOperation()
