"""Application state and configuration."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import platformdirs
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from pullguard.core.base import BaseConfig, BaseState
from pullguard.core.log import Logger
from pullguard.core.yaml_settings import YamlWithIncludesSettingsSource

# Modules available for template substitution in YAML files
# Usage: {platformdirs.user_log_dir}, {os.getcwd}, {Path.cwd}
TEMPLATE_NAMESPACE = {
    'os': os,
    'platformdirs': platformdirs,
    'Path': Path,
}

# ============================================================
# CONFIG MODELS (loaded from YAML/env/CLI)
# ============================================================


class GitConfig(BaseConfig):
    """Repository and git executable settings."""

    workdir: Path = Field(
        default_factory=Path.cwd,
        description="Path to the git working directory",
    )
    remote: str = Field(
        default="origin",
        description="Remote to fetch and pull from",
    )
    executable: str = Field(
        default="git",
        description="git executable name or path",
    )
    timeout: int = Field(
        default=600,
        description="Timeout in seconds for a single git command",
    )
    ignore_untracked: bool = Field(
        default=True,
        description=(
            "Ignore untracked files when deciding whether the "
            "working tree is clean"
        ),
    )


class ReconcileConfig(BaseConfig):
    """Polling bounds for the status reconciler."""

    timeout: float = Field(
        default=30.0,
        description="Seconds to wait for a clean working tree",
    )
    interval: float = Field(
        default=0.25,
        description="Seconds between status polls",
    )
    retries: int = Field(
        default=2,
        description=(
            "Extra await rounds after StillDirty/TimedOut before "
            "reporting the outcome"
        ),
    )


class Config(BaseConfig):
    """Application configuration loaded from YAML/env/CLI."""

    logger: Logger = Field(
        default=None,
        description="Logger configuration and runtime instance",
    )
    git: GitConfig = Field(
        default_factory=GitConfig,
        description="Repository settings",
    )
    reconcile: ReconcileConfig = Field(
        default_factory=ReconcileConfig,
        description="Status reconciler settings",
    )
    log_level: str = Field(
        default="info",
        alias="log-level",
        description=(
            "Console log level: 'trace', 'debug', 'info', "
            "'warn', 'error', 'fatal'"
        ),
    )
    log_root: Path = Field(
        default_factory=(
            lambda: Path(platformdirs.user_state_dir()) / "pullguard"
        ),
        description=(
            "Root directory for log files "
            "(supports {platformdirs.*} templates)"
        ),
    )

    model_config = ConfigDict(populate_by_name=True)

    @model_validator(mode='after')
    def _setup_logger(self) -> 'Config':
        """Initialize the global logger singleton once config loads."""
        from pullguard.core.log import setup_logger

        if self.logger is None:
            self.logger = Logger(level=self.log_level)

        setup_logger(
            log_root=self.log_root,
            repo_name=self.git.workdir.resolve().name or "repo",
            level=self.logger.level,
            console=self.logger.console,
            file=self.logger.file,
            otlp=self.logger.otlp,
        )
        return self

    def close(self):
        """Close the global logger, then the remaining children."""
        from pullguard.core.log import logger
        logger.close()
        super().close()


# ============================================================
# RUNTIME STATE MODELS (mutable during workflow execution)
# ============================================================


class PullState(BaseState):
    """Pull/merge workflow runtime state."""

    engine: Any = Field(
        default=None,
        description="OperationOrchestrator bound to the repository",
    )
    preview: Any = Field(
        default=None,
        description="PullPreview computed before applying",
    )
    operation: Any = Field(
        default=None,
        description="Most recent OperationState",
    )
    mode: str = Field(
        default="auto",
        description="Pull mode: merge, rebase or auto",
    )
    take: str | None = Field(
        default=None,
        description="Resolve every conflict with this side (ours or theirs)",
    )
    status: str = Field(
        default="pending",
        description="Workflow status: pending, running, complete, failed",
    )

    model_config = ConfigDict(arbitrary_types_allowed=True)


class Runtime(BaseModel):
    """All runtime state, grouped by workflow."""

    pull: PullState = Field(
        default_factory=PullState,
        description="Pull/merge workflow runtime state",
    )


# ============================================================
# STATE (config + runtime combined)
# ============================================================


class State(BaseSettings):
    """Complete application state: configuration plus runtime.

    Loaded from init arguments, YAML (with includes), .env and
    environment variables, in that priority order.
    """

    config: Config = Field(
        default_factory=Config,
        description="Application configuration (from YAML/env/CLI)",
    )
    runtime: Runtime = Field(
        default_factory=Runtime,
        description="Runtime state (mutates during workflow execution)",
    )
    include: list[str] | None = Field(
        default=None,
        description=(
            "Additional YAML files to include and merge. "
            "Use --include on CLI or include: in YAML files."
        ),
    )

    model_config = SettingsConfigDict(
        yaml_file="pullguard.yaml",
        env_file=".env",
        env_prefix="PULLGUARD_",
        env_nested_delimiter="__",
        cli_implicit_flags=True,
        cli_use_class_docs_for_groups=True,
        arbitrary_types_allowed=True,
        extra='ignore',
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            YamlWithIncludesSettingsSource(settings_cls),
            dotenv_settings,
            env_settings,
            file_secret_settings,
        )

    @model_validator(mode="after")
    def substitute_templates(self) -> "State":
        """Substitute {config.*} and {platformdirs.*} templates in
        every string and Path field."""
        self._substitute_recursive(self.config)
        return self

    def _substitute_recursive(self, obj: Any) -> None:
        if isinstance(obj, BaseModel):
            for field_name in obj.__class__.model_fields:
                value = getattr(obj, field_name)
                new_value = self._substitute_value(value)
                if new_value is not value:
                    setattr(obj, field_name, new_value)
        elif isinstance(obj, dict):
            for key in obj:
                obj[key] = self._substitute_value(obj[key])
        elif isinstance(obj, list):
            for i in range(len(obj)):
                obj[i] = self._substitute_value(obj[i])

    def _substitute_value(self, value: Any) -> Any:
        if isinstance(value, str):
            return self._substitute_string(value)
        elif isinstance(value, Path):
            return Path(self._substitute_string(str(value)))
        elif isinstance(value, (BaseModel, dict, list)):
            self._substitute_recursive(value)
        return value

    def _substitute_string(self, value: str) -> str:
        """Replace {field.path} templates with actual field values.

        Examples:
            "{config.git.workdir}/.git" → "/home/user/repo/.git"
            "{platformdirs.user_log_dir}" → "~/.local/state/pullguard/log"
        """
        def replace_template(match):
            parts = match.group(1).split(".")

            if parts[0] in TEMPLATE_NAMESPACE:
                obj = TEMPLATE_NAMESPACE[parts[0]]
                parts = parts[1:]
            else:
                obj = self

            try:
                for part in parts:
                    obj = getattr(obj, part)
                if callable(obj):
                    obj = obj('pullguard', appauthor=False)
                return str(obj)
            except (AttributeError, TypeError):
                return match.group(0)

        return re.sub(r'\{([a-z._]+)\}', replace_template, value)


__all__ = ["State", "Config", "GitConfig", "ReconcileConfig"]
