"""YAML configuration loading with include directive support."""

from __future__ import annotations

import os
import sys
from pathlib import Path

import yaml
from platformdirs import user_config_dir
from pydantic_settings import BaseSettings, YamlConfigSettingsSource

from pullguard.core.log import logger

CONFIG_FILENAME = "pullguard.yaml"


def _cli_includes(argv: list[str]) -> list[str]:
    """Collect ``--include FILE`` pairs before pydantic parses argv."""
    includes = []
    i = 1
    while i < len(argv):
        if argv[i] == "--include" and i + 1 < len(argv):
            includes.append(argv[i + 1])
            i += 1
        i += 1
    return includes


def deep_merge(base: dict, override: dict) -> dict:
    """Deep merge override into base (override wins)."""
    result = base.copy()
    for key, value in override.items():
        if (
            key in result
            and isinstance(result[key], dict)
            and isinstance(value, dict)
        ):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


# Alias so _read_files can reach the function despite its deep_merge parameter
_deep_merge = deep_merge


class YamlWithIncludesSettingsSource(YamlConfigSettingsSource):
    """YAML source layering package defaults, user, project and
    --include files.

    Priority (lowest first): ``defaults/default.yaml`` shipped with
    the package, ``pullguard.yaml`` in the user config dir,
    ``./pullguard.yaml``, then each ``--include`` file. Every file may
    carry its own ``include:`` list, resolved relative to itself.
    """

    def __init__(self, settings_cls: type[BaseSettings], yaml_file=None):
        includes = _cli_includes(sys.argv)
        base = yaml_file or settings_cls.model_config.get("yaml_file")
        if base and includes:
            yaml_file = (
                [base] if isinstance(base, (str, os.PathLike)) else list(base)
            ) + includes
        elif includes:
            yaml_file = includes
        else:
            yaml_file = base

        super().__init__(settings_cls, yaml_file)

    def _read_files(self, files, deep_merge: bool = True):
        files_to_load = [
            Path(__file__).parent.parent / "defaults" / "default.yaml",
            Path(user_config_dir("pullguard", appauthor=False))
            / CONFIG_FILENAME,
        ]
        if files:
            if isinstance(files, (str, os.PathLike)):
                files = [files]
            files_to_load.extend(Path(f).expanduser() for f in files)

        result = {}
        for file_path in files_to_load:
            if not file_path.is_file():
                logger.debug(
                    "Configuration file not found (skipping)",
                    file=str(file_path),
                )
                continue
            data = self._load_file_recursive(file_path, set())
            result = _deep_merge(result, data)
        return result

    def _load_file_recursive(self, filepath: Path, visited: set[Path]) -> dict:
        """Load a YAML file and splice in its include: directives.

        Raises:
            ValueError: If an include cycle is detected
        """
        filepath = filepath.resolve()
        if filepath in visited:
            raise ValueError(f"Circular include: {filepath}")
        visited.add(filepath)

        with open(filepath, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        includes = data.pop("include", None) or []
        if isinstance(includes, str):
            includes = [includes]

        for inc in includes:
            inc_path = Path(inc).expanduser()
            if not inc_path.is_absolute():
                inc_path = filepath.parent / inc_path
            inc_data = self._load_file_recursive(inc_path, visited.copy())
            # The including file overrides what it includes
            data = deep_merge(inc_data, data)

        return data
