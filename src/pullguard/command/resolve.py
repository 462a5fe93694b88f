"""Resolve command - apply a resolution to one conflicted file."""

from pathlib import Path

from pydantic import BaseModel, Field

from pullguard.core.log import logger
from pullguard.models import Resolution, ResolutionChoice


class ResolveCommand(BaseModel):
    """Resolve one conflicted path and stage it when fully resolved.

    Examples:
      --path src/app.py --take theirs
      --path src/app.py --take ours --hunks 0 2
      --path notes.txt --take custom --text-file merged.txt
      --path old.txt --take rename --target new.txt
    """

    path: str = Field(description="Conflicted path, relative to the repository")
    take: ResolutionChoice = Field(
        description="ours, theirs, custom (needs --text-file) or rename "
        "(needs --target)",
    )
    hunks: list[int] | None = Field(
        default=None,
        description="Hunk indices to resolve (default: whole file)",
    )
    target: str | None = Field(
        default=None,
        description="Rename target path",
    )
    text_file: Path | None = Field(
        default=None,
        alias="text-file",
        description="File holding the replacement text for a custom choice",
    )

    async def run_workflow(self, state: "State") -> int:
        from pullguard.engine import open_engine

        text = None
        if self.text_file is not None:
            text = self.text_file.read_text(encoding="utf-8")

        resolution = Resolution(
            path=self.path,
            choice=self.take,
            text=text,
            target=self.target,
            hunks=self.hunks,
        )

        engine = open_engine(state.config)
        file = engine.resolve_file(self.path, [resolution])

        remaining = sorted(engine.state.unresolved_paths)
        if file.hunks:
            logger.info(
                f"{self.path}: {len(file.hunks)} hunk(s) still unresolved"
            )
        else:
            logger.info(f"Resolved {self.path}")
        if remaining:
            print("Unresolved: " + ", ".join(remaining))
        else:
            print("All conflicts resolved; run 'pullguard continue'.")
        return 0
