"""YAML + environment variable config loader."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, cast

import yaml
from pydantic import ValidationError

from timeplus_sink.config.models import OutputConfig
from timeplus_sink.errors import ConfigurationError

# ${VAR} or ${VAR:-default}; "\}" escapes a brace inside the default.
_ENV_PATTERN = re.compile(r"\$\{([^}:]+)(?::-((?:[^}\\]|\\.)*))?}")


def _substitute(value: str, where: str) -> str:
    def _lookup(match: re.Match[str]) -> str:
        name, default = match.group(1), match.group(2)
        if name in os.environ:
            return os.environ[name]
        if default is None:
            prefix = f"{where}: " if where else ""
            msg = f"{prefix}Environment variable '{name}' is not set and no default provided"
            raise ConfigurationError(msg)
        return default.replace("\\}", "}")

    return _ENV_PATTERN.sub(_lookup, value)


def resolve_env_vars(data: Any, where: str = "") -> Any:
    """Expand ``${VAR}`` references in every string of parsed YAML.

    *where* is the dotted key path of *data*; errors name the key that
    referenced the missing variable, e.g. ``timeplus.apikey``.
    """
    if isinstance(data, str):
        return _substitute(data, where)
    if isinstance(data, dict):
        return {
            key: resolve_env_vars(value, f"{where}.{key}" if where else str(key))
            for key, value in data.items()
        }
    if isinstance(data, list):
        return [resolve_env_vars(item, f"{where}[{i}]") for i, item in enumerate(data)]
    return data


def load_yaml(path: str | Path) -> dict[str, Any]:
    """Parse *path* as a YAML mapping with environment references expanded."""
    p = Path(path)
    if not p.exists():
        msg = f"Config file not found: {p}"
        raise FileNotFoundError(msg)
    try:
        data = yaml.safe_load(p.read_text())
    except yaml.YAMLError as exc:
        mark = getattr(exc, "problem_mark", None)
        where = f" at line {mark.line + 1}" if mark is not None else ""
        msg = f"Failed to parse YAML in {p}{where}: {exc}"
        raise ConfigurationError(msg) from exc
    if not isinstance(data, dict):
        msg = f"{p} must hold a mapping of output settings, got {type(data).__name__}"
        raise ConfigurationError(msg)
    return cast(dict[str, Any], resolve_env_vars(data))


def build_output_config(data: dict[str, Any], *, source: str = "mapping") -> OutputConfig:
    """Validate a raw mapping into an :class:`OutputConfig`.

    Validation failures are re-raised as :class:`ConfigurationError` so that
    callers see a single error class for every bad configuration.
    """
    try:
        return OutputConfig.model_validate(data)
    except ValidationError as exc:
        msg = f"Invalid output config ({source}):\n{exc}"
        raise ConfigurationError(msg) from exc


def load_output_config(path: str | Path) -> OutputConfig:
    """Load an output config YAML, resolving environment variables."""
    data = load_yaml(path)
    # A config may nest the output under a top-level ``timeplus`` key.
    if isinstance(data.get("timeplus"), dict):
        data = data["timeplus"]
    return build_output_config(data, source=str(path))
