"""Data model shared by the predictor, applier and orchestrator."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator


class PullMode(str, Enum):
    """How upstream history is integrated."""

    MERGE = "merge"
    REBASE = "rebase"
    AUTO = "auto"


class OperationKind(str, Enum):
    """The operation open on a repository (at most one)."""

    MERGE = "merge"
    REBASE = "rebase"
    CHERRY_PICK = "cherry-pick"


class ConflictKind(str, Enum):
    CONTENT = "content"
    RENAME_RENAME = "rename/rename"
    MODIFY_DELETE = "modify/delete"
    DELETE_MODIFY = "delete/modify"
    ADD_ADD = "add/add"


class FileStatus(str, Enum):
    UNMERGED = "unmerged"
    RENAMED = "renamed"
    DELETED = "deleted"
    ADDED = "added"
    RESOLVED = "resolved"


class Phase(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    CONFLICTED = "conflicted"
    RESOLVING = "resolving"
    CONTINUING = "continuing"
    COMPLETED = "completed"
    ABORTED = "aborted"
    FAILED = "failed"


class ReconcileOutcome(str, Enum):
    CLEAN = "clean"
    STILL_DIRTY = "still-dirty"
    TIMED_OUT = "timed-out"


# ============================================================
# PREDICTION
# ============================================================


class ConflictPrediction(BaseModel):
    """One path the dry run expects to conflict."""

    path: str
    kind: ConflictKind
    note: str | None = None

    model_config = ConfigDict(frozen=True)


class PredictionResult(BaseModel):
    """Outcome of a dry run; built per request, never persisted."""

    kind: OperationKind
    conflicting_paths: tuple[ConflictPrediction, ...] = ()

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _sort_paths(self) -> "PredictionResult":
        ordered = tuple(sorted(self.conflicting_paths, key=lambda p: p.path))
        if ordered != self.conflicting_paths:
            object.__setattr__(self, "conflicting_paths", ordered)
        return self

    @computed_field
    @property
    def clean(self) -> bool:
        return not self.conflicting_paths

    @property
    def paths(self) -> list[str]:
        return [p.path for p in self.conflicting_paths]


class PullPreview(BaseModel):
    """Upstream relationship plus the predicted conflicts of a pull."""

    upstream: str | None
    ahead: int = 0
    behind: int = 0
    action: str
    prediction: PredictionResult

    model_config = ConfigDict(frozen=True)


# ============================================================
# CONFLICT FILES
# ============================================================


class ConflictHunk(BaseModel):
    """One marker-delimited region of a conflicted file.

    The raw marker lines are kept so that serializing an unresolved
    hunk reproduces the original bytes.
    """

    ours_text: str
    theirs_text: str
    base_text: str | None = None
    start_line: int
    end_line: int
    ours_marker: str = "<<<<<<< ours\n"
    base_marker: str | None = None
    separator: str = "=======\n"
    theirs_marker: str = ">>>>>>> theirs\n"

    model_config = ConfigDict(frozen=True)

    def render(self) -> str:
        """Return the hunk exactly as it appears in the file."""
        parts = [self.ours_marker, self.ours_text]
        if self.base_marker is not None:
            parts += [self.base_marker, self.base_text or ""]
        parts += [self.separator, self.theirs_text, self.theirs_marker]
        return "".join(parts)


class ConflictVersions(BaseModel):
    """Index stages of an unmerged path: 1=base, 2=ours, 3=theirs."""

    base: bytes | None = None
    ours: bytes | None = None
    theirs: bytes | None = None

    model_config = ConfigDict(frozen=True)


class ConflictFile(BaseModel):
    """A conflicted path as presented to the resolver."""

    path: str
    status: FileStatus = FileStatus.UNMERGED
    kind: ConflictKind = ConflictKind.CONTENT
    hunks: list[ConflictHunk] = Field(default_factory=list)
    segments: list[str] = Field(
        default_factory=list,
        description="Context around hunks; len(hunks) + 1 entries",
    )
    is_binary: bool = False
    candidates: list[str] = Field(
        default_factory=list,
        description="Rename targets the user can choose between",
    )
    stages: list[int] = Field(default_factory=list)
    versions: ConflictVersions | None = None
    parse_error: str | None = Field(
        default=None,
        description="Set when markers are malformed; needs manual edit",
    )

    @model_validator(mode="after")
    def _check_shape(self) -> "ConflictFile":
        if self.hunks and len(self.segments) != len(self.hunks) + 1:
            raise ValueError(
                f"{self.path}: expected {len(self.hunks) + 1} segments, "
                f"got {len(self.segments)}"
            )
        if (
            self.status == FileStatus.UNMERGED
            and not self.hunks
            and not self.is_binary
            and self.parse_error is None
        ):
            raise ValueError(
                f"{self.path}: unmerged text file without conflict hunks"
            )
        return self

    @property
    def needs_manual_edit(self) -> bool:
        return self.parse_error is not None

    @property
    def whole_file_only(self) -> bool:
        """Only whole-file choices apply (binary or unparseable)."""
        return self.is_binary or self.parse_error is not None

    @property
    def ours_present(self) -> bool:
        return 2 in self.stages if self.stages else True

    @property
    def theirs_present(self) -> bool:
        return 3 in self.stages if self.stages else True


# ============================================================
# RESOLUTIONS
# ============================================================


class ResolutionChoice(str, Enum):
    OURS = "ours"
    THEIRS = "theirs"
    CUSTOM = "custom"
    RENAME = "rename"


class Resolution(BaseModel):
    """A user's decision for a file or some of its hunks.

    ``hunks=None`` means the whole file.
    """

    path: str
    choice: ResolutionChoice
    text: str | None = None
    target: str | None = None
    hunks: list[int] | None = None

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _check_payload(self) -> "Resolution":
        if self.choice == ResolutionChoice.CUSTOM and self.text is None:
            raise ValueError("custom resolution requires text")
        if self.choice == ResolutionChoice.RENAME:
            if not self.target:
                raise ValueError("rename resolution requires a target path")
            if self.hunks is not None:
                raise ValueError("rename applies to the whole file")
        if self.hunks is not None and not self.hunks:
            raise ValueError("hunks must name at least one hunk index")
        return self

    @property
    def whole_file(self) -> bool:
        return self.hunks is None

    @classmethod
    def ours(cls, path: str, hunks: list[int] | None = None) -> "Resolution":
        return cls(path=path, choice=ResolutionChoice.OURS, hunks=hunks)

    @classmethod
    def theirs(cls, path: str, hunks: list[int] | None = None) -> "Resolution":
        return cls(path=path, choice=ResolutionChoice.THEIRS, hunks=hunks)

    @classmethod
    def custom(cls, path: str, text: str, hunks: list[int] | None = None) -> "Resolution":
        return cls(path=path, choice=ResolutionChoice.CUSTOM, text=text, hunks=hunks)

    @classmethod
    def rename(cls, path: str, target: str) -> "Resolution":
        return cls(path=path, choice=ResolutionChoice.RENAME, target=target)


class StagingActionType(str, Enum):
    ADD = "add"
    REMOVE = "remove"
    RENAME = "rename"


class StagingAction(BaseModel):
    """Index update needed to record a resolution."""

    action: StagingActionType
    path: str
    source: str | None = Field(
        default=None, description="Original path of a Rename"
    )

    model_config = ConfigDict(frozen=True)

    @classmethod
    def add(cls, path: str) -> "StagingAction":
        return cls(action=StagingActionType.ADD, path=path)

    @classmethod
    def remove(cls, path: str) -> "StagingAction":
        return cls(action=StagingActionType.REMOVE, path=path)

    @classmethod
    def rename(cls, source: str, path: str) -> "StagingAction":
        return cls(action=StagingActionType.RENAME, path=path, source=source)


class ApplyResult(BaseModel):
    """Final bytes and staging plan for one file."""

    final_bytes: bytes | None
    staging_actions: tuple[StagingAction, ...] = ()
    resolved: bool
    file: ConflictFile

    model_config = ConfigDict(frozen=True)


# ============================================================
# OPERATION STATE
# ============================================================


class OperationState(BaseModel):
    """Snapshot of the repository's operation.

    Frozen: the orchestrator publishes a new instance per transition,
    so observers never see a half-applied update.
    """

    kind: OperationKind | None = None
    phase: Phase = Phase.IDLE
    unresolved_paths: frozenset[str] = frozenset()
    message: str = ""
    prediction: PredictionResult | None = None
    reconcile: ReconcileOutcome | None = None

    model_config = ConfigDict(frozen=True)

    @property
    def is_open(self) -> bool:
        """True while an operation blocks starting another one."""
        return self.phase not in (
            Phase.IDLE, Phase.COMPLETED, Phase.ABORTED, Phase.FAILED
        )


class StatusEntry(BaseModel):
    """One record of ``git status --porcelain -z``."""

    index: str
    worktree: str
    path: str
    orig_path: str | None = None

    model_config = ConfigDict(frozen=True)

    @property
    def code(self) -> str:
        return self.index + self.worktree


class UnmergedEntry(BaseModel):
    """Stages of one path from ``git ls-files -u -z``."""

    path: str
    stages: dict[int, str] = Field(
        default_factory=dict, description="stage number → blob id"
    )
    mode: str = ""

    model_config = ConfigDict(frozen=True)
