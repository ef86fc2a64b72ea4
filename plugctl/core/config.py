"""Session configuration loading and validation for YAML config files."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError

from plugctl.core.errors import ConfigLoadError, ConfigValidationError
from plugctl.schemas import load_schema_validator

LOGGER = logging.getLogger(__name__)

SERVER_ENV_VAR = "PLUGCTL_SERVER"


@dataclass(frozen=True)
class SessionConfig:
    client_name: str = "plugctl"
    server_address: str = "ws://127.0.0.1:12345/buttplug"
    message_version: int = 1
    connect_timeout_s: float = 5.0
    close_timeout_s: float = 2.0


@dataclass(frozen=True)
class LoadedConfig:
    config: SessionConfig
    source: Path | None
    warnings: tuple[str, ...]


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise ConfigValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


def default_config_path() -> Path:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return xdg_config / "plugctl" / "config.yaml"


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigLoadError(f"Could not read config file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ConfigValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigValidationError(f"Config file {path} must contain a mapping at root")
    return loaded


def _build_config(doc: dict[str, Any], source: Path) -> SessionConfig:
    validator = load_schema_validator("config.schema.json")
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise ConfigValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc

    known = {f.name for f in fields(SessionConfig)}
    values = {key: value for key, value in doc.items() if key in known}
    for key in ("connect_timeout_s", "close_timeout_s"):
        if key in values:
            values[key] = float(values[key])
    return replace(SessionConfig(), **values)


def load_config(path: Path | None = None) -> LoadedConfig:
    """Load config from ``path`` or the user config dir, falling back to defaults.

    An explicitly given path must exist. The ``PLUGCTL_SERVER`` environment
    variable overrides the server address from any source.
    """
    warnings: list[str] = []
    source: Path | None = None
    config = SessionConfig()

    if path is not None:
        config = _build_config(_read_yaml(path), path)
        source = path
    else:
        candidate = default_config_path()
        if candidate.is_file():
            config = _build_config(_read_yaml(candidate), candidate)
            source = candidate

    override = os.environ.get(SERVER_ENV_VAR)
    if override:
        if source is not None and config.server_address != SessionConfig.server_address:
            warning = f"{SERVER_ENV_VAR} overrides server_address from {source}"
            LOGGER.warning(warning)
            warnings.append(warning)
        config = replace(config, server_address=override)

    return LoadedConfig(config=config, source=source, warnings=tuple(warnings))
