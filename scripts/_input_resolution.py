"""Shared helpers for resolving CLI and environment inputs."""

from __future__ import annotations

import os
from collections import abc as cabc
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True, slots=True)
class InputResolution:
    """Configuration for resolving an input from multiple sources.

    ``blank_is_unset`` treats an empty environment value as missing. GitHub
    exports every declared action input, so omitted inputs arrive as ``""``.
    """

    env_key: str
    default: str | Path | None = None
    as_path: bool = False
    blank_is_unset: bool = True


def resolve_input(
    param_value: str | Path | None,
    resolution: InputResolution,
    env: cabc.Mapping[str, str] | None = None,
) -> str | Path | None:
    """Resolve input from parameter, environment variable, or default.

    Examples
    --------
    >>> resolve_input(None, InputResolution("TF_ACTION", default="plan"), env={})
    'plan'
    >>> resolve_input(None, InputResolution("TF_ACTION"), env={"TF_ACTION": "apply"})
    'apply'
    """
    if param_value is not None:
        return param_value

    env_value = (os.environ if env is None else env).get(resolution.env_key)
    if env_value is not None and not (resolution.blank_is_unset and not env_value.strip()):
        return Path(env_value) if resolution.as_path else env_value

    return resolution.default
