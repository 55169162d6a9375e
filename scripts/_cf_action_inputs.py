"""Resolve and validate inputs for the Terraform Cloudflare action.

Inputs come from CLI overrides first, then ``INPUT_*`` environment variables
set by the composite action, then defaults. Validation runs before any
Terraform process is started and checks, in order:

1. the Cloudflare credentials, reporting every missing one at once;
2. the requested action; and
3. the working directory.

Option parsing is lenient where the action allows it: an unusable
``max_parallelism`` or a malformed import line is logged and dropped rather
than failing the run.
"""

from __future__ import annotations

import logging
import os
import re
from collections import abc as cabc
from dataclasses import dataclass
from pathlib import Path

from scripts._cf_action_errors import ConfigError
from scripts._cf_action_models import ActionConfig, ImportSpec, TerraformAction
from scripts._github import parse_bool
from scripts._input_resolution import InputResolution, resolve_input

logger = logging.getLogger(__name__)

MIN_PARALLELISM = 1
MAX_PARALLELISM = 50

_SENSITIVE_BACKEND_KEY = re.compile(
    r"(?:password|secret|token|key|credentials)\s*$", re.IGNORECASE
)


@dataclass(frozen=True, slots=True)
class RawActionInputs:
    """Raw action inputs from CLI or defaults."""

    cloudflare_api_token: str | None = None
    cloudflare_account_id: str | None = None
    terraform_version: str | None = None
    working_directory: Path | None = None
    terraform_action: str | None = None
    auto_approve: str | None = None
    tfvars_file: Path | None = None
    tfvars: str | None = None
    backend_config: str | None = None
    import_resources: str | None = None
    plan_output_file: Path | None = None
    enable_drift_detection: str | None = None
    destroy_protection: str | None = None
    max_parallelism: str | None = None
    github_output: Path | None = None


_RESOLUTIONS: dict[str, InputResolution] = {
    "cloudflare_api_token": InputResolution(env_key="CLOUDFLARE_API_TOKEN"),
    "cloudflare_account_id": InputResolution(env_key="CLOUDFLARE_ACCOUNT_ID"),
    "terraform_version": InputResolution(
        env_key="INPUT_TERRAFORM_VERSION", default="1.6.0"
    ),
    "working_directory": InputResolution(
        env_key="INPUT_WORKING_DIRECTORY", default=Path("."), as_path=True
    ),
    "terraform_action": InputResolution(
        env_key="INPUT_TERRAFORM_ACTION", default=TerraformAction.PLAN.value
    ),
    "auto_approve": InputResolution(env_key="INPUT_AUTO_APPROVE", default="false"),
    "tfvars_file": InputResolution(env_key="INPUT_TFVARS_FILE", as_path=True),
    "tfvars": InputResolution(env_key="INPUT_TFVARS"),
    "backend_config": InputResolution(env_key="INPUT_BACKEND_CONFIG"),
    "import_resources": InputResolution(env_key="INPUT_IMPORT_RESOURCES"),
    "plan_output_file": InputResolution(
        env_key="INPUT_PLAN_OUTPUT_FILE", default=Path("tfplan"), as_path=True
    ),
    "enable_drift_detection": InputResolution(
        env_key="INPUT_ENABLE_DRIFT_DETECTION", default="true"
    ),
    "destroy_protection": InputResolution(
        env_key="INPUT_DESTROY_PROTECTION", default="true"
    ),
    "max_parallelism": InputResolution(env_key="INPUT_MAX_PARALLELISM", default="10"),
    "github_output": InputResolution(env_key="GITHUB_OUTPUT", as_path=True),
}


def _resolve_all(
    raw: RawActionInputs,
    env: cabc.Mapping[str, str] | None,
) -> dict[str, str | Path | None]:
    """Resolve every raw input against its environment key and default."""
    return {
        name: resolve_input(getattr(raw, name), resolution, env)
        for name, resolution in _RESOLUTIONS.items()
    }


def _as_text(value: str | Path | None) -> str | None:
    return None if value is None else str(value)


def _as_path(value: str | Path | None) -> Path | None:
    if value is None:
        return None
    return value if isinstance(value, Path) else Path(str(value))


def validate_required(api_token: str | None, account_id: str | None) -> None:
    """Fail when either Cloudflare credential is missing.

    Raises
    ------
    ConfigError
        Naming every missing input, not just the first.

    Examples
    --------
    >>> validate_required("token", "account")
    """
    missing = [
        name
        for name, value in (
            ("cloudflare_api_token", api_token),
            ("cloudflare_account_id", account_id),
        )
        if not value or not value.strip()
    ]
    if missing:
        msg = (
            f"Missing required inputs: {', '.join(missing)}. "
            "Please ensure these inputs are set in your workflow configuration."
        )
        raise ConfigError(msg)


def validate_action(value: str) -> TerraformAction:
    """Return the :class:`TerraformAction` for ``value``.

    Examples
    --------
    >>> validate_action("apply")
    <TerraformAction.APPLY: 'apply'>
    """
    try:
        return TerraformAction(value.strip())
    except ValueError:
        valid = ", ".join(TerraformAction.choices())
        msg = f"Invalid terraform action: {value!r}. Valid actions are: {valid}"
        raise ConfigError(msg) from None


def validate_working_directory(path: Path) -> Path:
    """Return ``path`` as an absolute directory the process can enter."""
    if not path.is_dir():
        msg = (
            f"Working directory does not exist: {path}. "
            "Please ensure the path is correct and the directory exists."
        )
        raise ConfigError(msg)
    if not os.access(path, os.X_OK):
        msg = f"Unable to access working directory: {path}"
        raise ConfigError(msg)
    return path.resolve()


def parse_max_parallelism(value: str | None) -> int | None:
    """Parse ``max_parallelism``, dropping unusable values with a warning.

    Examples
    --------
    >>> parse_max_parallelism("10")
    10
    >>> parse_max_parallelism("500") is None
    True
    """
    if value is None or not value.strip():
        return None
    text = value.strip()
    if not (text.isascii() and text.isdigit()):
        logger.warning(
            "max_parallelism must be a number, ignoring invalid value: %s", text
        )
        return None
    parallelism = int(text)
    if not MIN_PARALLELISM <= parallelism <= MAX_PARALLELISM:
        logger.warning(
            "max_parallelism must be between %d and %d, using default",
            MIN_PARALLELISM,
            MAX_PARALLELISM,
        )
        return None
    return parallelism


def _is_blank_or_comment(line: str) -> bool:
    return not line.strip() or line.lstrip().startswith("#")


def parse_backend_config(value: str | None) -> tuple[str, ...]:
    """Split backend configuration text into ``key=value`` lines.

    Examples
    --------
    >>> parse_backend_config("bucket=state\\n# note\\n\\nregion=auto")
    ('bucket=state', 'region=auto')
    """
    if not value:
        return ()
    return tuple(line for line in value.splitlines() if not _is_blank_or_comment(line))


def mask_backend_line(line: str) -> str:
    """Hide the value of sensitive backend settings for display.

    Examples
    --------
    >>> mask_backend_line("Access_Key=abc123")
    'Access_Key=***'
    >>> mask_backend_line("bucket=state")
    'bucket=state'
    """
    key, sep, _ = line.partition("=")
    if sep and _SENSITIVE_BACKEND_KEY.search(key):
        return f"{key}=***"
    return line


def parse_import_line(line: str) -> ImportSpec | None:
    """Parse one ``resource_address=external_id`` line.

    Returns ``None`` when the line does not hold exactly one ``=`` with text
    on both sides.

    Examples
    --------
    >>> parse_import_line("cloudflare_zone.main=abc")
    ImportSpec(address='cloudflare_zone.main', resource_id='abc')
    >>> parse_import_line("a=b=c") is None
    True
    """
    if line.count("=") != 1:
        return None
    address, _, resource_id = line.partition("=")
    if not address or not resource_id:
        return None
    return ImportSpec(address=address, resource_id=resource_id)


def parse_import_specs(value: str | None) -> tuple[ImportSpec, ...]:
    """Parse newline-delimited import pairs, skipping malformed lines."""
    if not value:
        return ()
    specs: list[ImportSpec] = []
    for line in value.splitlines():
        if _is_blank_or_comment(line):
            continue
        spec = parse_import_line(line)
        if spec is None:
            logger.warning(
                "Skipping malformed import line: %s "
                "(expected resource_address=cloudflare_id with exactly one '=' "
                "and both sides non-empty)",
                line,
            )
            continue
        specs.append(spec)
    return tuple(specs)


def resolve_action_config(
    raw: RawActionInputs,
    env: cabc.Mapping[str, str] | None = None,
) -> ActionConfig:
    """Resolve and validate all action inputs.

    Parameters
    ----------
    raw
        CLI overrides; ``None`` fields fall back to the environment.
    env
        Environment mapping, defaulting to ``os.environ``.

    Returns
    -------
    ActionConfig
        Validated configuration.

    Raises
    ------
    ConfigError
        When credentials are missing, the action is unknown, or the working
        directory cannot be used.
    """
    values = _resolve_all(raw, env)

    api_token = _as_text(values["cloudflare_api_token"])
    account_id = _as_text(values["cloudflare_account_id"])
    validate_required(api_token, account_id)

    action = validate_action(str(values["terraform_action"]))
    working_directory = validate_working_directory(
        _as_path(values["working_directory"]) or Path(".")
    )

    import_text = _as_text(values["import_resources"])
    github_output = _as_path(values["github_output"])

    return ActionConfig(
        api_token=str(api_token),
        account_id=str(account_id),
        terraform_version=str(values["terraform_version"]),
        working_directory=working_directory,
        action=action,
        auto_approve=parse_bool(_as_text(values["auto_approve"]), default=False),
        tfvars_file=_as_path(values["tfvars_file"]),
        tfvars_inline=_as_text(values["tfvars"]),
        backend_config=parse_backend_config(_as_text(values["backend_config"])),
        import_specs=parse_import_specs(import_text),
        import_requested=bool(import_text and import_text.strip()),
        plan_output_file=_as_path(values["plan_output_file"]) or Path("tfplan"),
        enable_drift_detection=parse_bool(
            _as_text(values["enable_drift_detection"]), default=True
        ),
        destroy_protection=parse_bool(
            _as_text(values["destroy_protection"]), default=True
        ),
        max_parallelism=parse_max_parallelism(_as_text(values["max_parallelism"])),
        # Absolute so the path survives the later chdir into working_directory.
        github_output=github_output.absolute() if github_output else None,
    )
