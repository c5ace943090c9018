"""YAML + environment variable config loader."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, cast

import yaml
from dotenv import find_dotenv, load_dotenv
from pydantic import ValidationError

from kafka_topic_operator.config.defaults import load_defaults, merge_configs
from kafka_topic_operator.config.models import OperatorConfig

# Matches ${VAR} or ${VAR:-default}
_ENV_PATTERN = re.compile(r"\$\{([^}:]+)(?::-((?:[^}\\]|\\.)*))?}")


def _resolve_env_str(value: str) -> str:
    """Replace all ${VAR} / ${VAR:-default} references in a string."""

    def _replace(match: re.Match[str]) -> str:
        var_name = match.group(1)
        default = match.group(2)
        env_val = os.environ.get(var_name)
        if env_val is not None:
            return env_val
        if default is not None:
            return default.replace("\\}", "}")
        msg = f"Environment variable '{var_name}' is not set and no default provided"
        raise ValueError(msg)

    return _ENV_PATTERN.sub(_replace, value)


def resolve_env_vars(data: Any) -> Any:
    """Recursively resolve ${VAR} and ${VAR:-default} in parsed YAML data."""
    if isinstance(data, str):
        return _resolve_env_str(data)
    if isinstance(data, dict):
        return {k: resolve_env_vars(v) for k, v in data.items()}
    if isinstance(data, list):
        return [resolve_env_vars(item) for item in data]
    return data


def _yaml_error_message(p: Path, exc: yaml.YAMLError) -> str:
    msg = f"Failed to parse YAML in {p}"
    mark = getattr(exc, "problem_mark", None)
    if mark is not None:
        msg += f" at line {mark.line + 1}, column {mark.column + 1}"
    return f"{msg}: {exc}"


def load_yaml(path: str | Path) -> dict[str, Any]:
    """Load a YAML file and return its contents as a dict."""
    p = Path(path)
    if not p.exists():
        msg = f"Config file not found: {p}"
        raise FileNotFoundError(msg)
    try:
        with p.open() as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ValueError(_yaml_error_message(p, exc)) from exc
    if not isinstance(data, dict):
        msg = f"Expected a YAML mapping at top level in {p}, got {type(data).__name__}"
        raise TypeError(msg)
    return cast(dict[str, Any], resolve_env_vars(data))


def load_operator_config(
    path: str | Path | None = None, *, dotenv_path: str | Path | None = None
) -> OperatorConfig:
    """Load operator config from built-in defaults, optionally merged with overrides.

    A `.env` file (*dotenv_path*, or the nearest one above the working
    directory) is loaded first.  Variables already set in the environment win.
    """
    load_dotenv(dotenv_path or find_dotenv(usecwd=True))
    base = cast(dict[str, Any], resolve_env_vars(load_defaults("operator")))
    if path is not None:
        overrides = load_yaml(path)
        base = merge_configs(base, overrides)
    try:
        return OperatorConfig.model_validate(base)
    except ValidationError as exc:
        source = path or "built-in defaults"
        msg = f"Invalid operator config ({source}):\n{exc}"
        raise ValueError(msg) from exc


def load_manifests(path: str | Path) -> list[dict[str, Any]]:
    """Load every non-empty document of a (possibly multi-document) manifest file.

    Environment placeholders are *not* resolved here: manifests are applied to
    the cluster verbatim, so the operator must see exactly what the API server
    would store.
    """
    p = Path(path)
    if not p.exists():
        msg = f"Manifest file not found: {p}"
        raise FileNotFoundError(msg)
    try:
        with p.open() as f:
            docs = [d for d in yaml.safe_load_all(f) if d is not None]
    except yaml.YAMLError as exc:
        raise ValueError(_yaml_error_message(p, exc)) from exc
    for index, doc in enumerate(docs):
        if not isinstance(doc, dict):
            msg = (
                f"Expected a YAML mapping for document {index} in {p}, "
                f"got {type(doc).__name__}"
            )
            raise TypeError(msg)
    return cast(list[dict[str, Any]], docs)
