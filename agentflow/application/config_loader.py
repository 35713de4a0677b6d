"""Layered engine configuration.

Precedence, highest first::

    <project>/.agentflow/config.yml
    ~/.agentflow/config.yml
    EngineConfig defaults
"""

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from agentflow.application.config_models import EngineConfig
from agentflow.domain.constants import AGENTFLOW_DIRNAME

CONFIG_FILENAME = "config.yml"


class ConfigLoadError(Exception):
    """A config layer could not be read, parsed or validated."""

    def __init__(self, message: str, *, path: Path | None = None, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.path = path
        self.cause = cause

    def __str__(self) -> str:
        return self.message if self.path is None else f"{self.message}: {self.path}"


def config_paths(project_root: Path, user_home: Path) -> tuple[Path, Path]:
    """(user, project) config files, lowest precedence first."""
    return (
        user_home / AGENTFLOW_DIRNAME / CONFIG_FILENAME,
        project_root / AGENTFLOW_DIRNAME / CONFIG_FILENAME,
    )


def _merge_layer(base: dict[str, Any], layer: dict[str, Any]) -> dict[str, Any]:
    """Nested mappings (e.g. ``session``) merge key by key; anything else is replaced."""
    merged = dict(base)
    for key, value in layer.items():
        current = merged.get(key)
        if isinstance(value, dict) and isinstance(current, dict):
            merged[key] = _merge_layer(current, value)
        else:
            merged[key] = value
    return merged


def _read_layer(path: Path) -> dict[str, Any]:
    """Parsed mapping from ``path``; a missing or empty file is an empty layer."""
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except OSError as e:
        raise ConfigLoadError("Failed to read config file", path=path, cause=e) from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigLoadError("Malformed YAML", path=path, cause=e) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigLoadError("YAML root must be a mapping", path=path)
    return data


def load_config(*, project_root: Path | None = None, user_home: Path | None = None) -> EngineConfig:
    """
    Load the merged, validated engine configuration.

    Args:
        project_root: Project directory (default: cwd)
        user_home: Home directory holding the user layer (default: ~)

    Raises:
        ConfigLoadError: unreadable or malformed file, or invalid values
    """
    project_root = project_root or Path.cwd()
    user_home = user_home or Path.home()

    merged: dict[str, Any] = EngineConfig().model_dump(mode="json")
    source: Path | None = None
    for path in config_paths(project_root, user_home):
        layer = _read_layer(path)
        if layer:
            source = path
            merged = _merge_layer(merged, layer)

    try:
        return EngineConfig.model_validate(merged)
    except ValidationError as e:
        raise ConfigLoadError(
            f"Invalid configuration ({e.error_count()} errors)", path=source, cause=e
        ) from e
