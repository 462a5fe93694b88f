"""Status command - show the operation in progress and its conflicts."""

from pydantic import BaseModel

from pullguard.models import Phase


class StatusCommand(BaseModel):
    """Show the open operation, unresolved paths and ahead/behind counts."""

    async def run_workflow(self, state: "State") -> int:
        from pullguard.engine import open_engine

        engine = open_engine(state.config)
        current = engine.state

        indicators = engine.reconciler.indicators()
        if indicators is not None:
            upstream, ahead, behind = indicators
            print(f"upstream: {upstream}  ahead: {ahead}  behind: {behind}")

        if current.kind is None:
            print("No operation in progress.")
            return 0

        print(f"{current.kind.value}: {current.phase.value}")
        if current.phase in (Phase.CONFLICTED, Phase.RESOLVING):
            for file in engine.list_conflict_files():
                flags = []
                if file.is_binary:
                    flags.append("binary")
                if file.needs_manual_edit:
                    flags.append("needs manual edit")
                if file.candidates:
                    flags.append("candidates: " + ", ".join(file.candidates))
                detail = f"  [{'; '.join(flags)}]" if flags else ""
                print(
                    f"  {file.kind.value:<14} {file.path} "
                    f"({len(file.hunks)} hunk(s)){detail}"
                )
        return 0
