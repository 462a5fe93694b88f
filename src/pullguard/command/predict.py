"""Predict command - dry-run a pull or merge and list conflicts."""

from pydantic import BaseModel, Field

from pullguard.conflict import serialize
from pullguard.core.log import logger
from pullguard.models import OperationKind, PullMode


class PredictCommand(BaseModel):
    """Predict which paths a pull (or merge of a branch) would conflict.

    Nothing in the repository changes: the merge runs in git's object
    store only.
    """

    mode: PullMode = Field(
        default=PullMode.AUTO,
        description="Pull mode to predict: merge, rebase or auto",
    )
    branch: str | None = Field(
        default=None,
        description="Predict merging this branch into HEAD instead of pulling",
    )
    preview: str | None = Field(
        default=None,
        description="Also print the predicted conflict of this path",
    )

    async def run_workflow(self, state: "State") -> int:
        """Run prediction.

        Returns:
            Exit code (0=no conflicts, 1=conflicts predicted)
        """
        from pullguard.engine import open_engine

        engine = open_engine(state.config)

        if self.branch:
            prediction = engine.predict("HEAD", self.branch, OperationKind.MERGE)
            upstream = self.branch
        else:
            preview = engine.preview_pull(self.mode)
            prediction = preview.prediction
            upstream = preview.upstream
            print(
                f"upstream: {upstream or '(none)'}  ahead: {preview.ahead}  "
                f"behind: {preview.behind}  action: {preview.action}"
            )

        if prediction.clean:
            print("No conflicts predicted.")
        else:
            print("Conflicts detected")
            for conflict in prediction.conflicting_paths:
                note = f"  ({conflict.note})" if conflict.note else ""
                print(f"  {conflict.kind.value:<14} {conflict.path}{note}")

        if self.preview and upstream:
            file = engine.predictor.preview_conflict(upstream, self.preview)
            print(serialize(file).decode("utf-8", "replace"), end="")

        logger.debug("Prediction printed", clean=prediction.clean)
        return 0 if prediction.clean else 1
