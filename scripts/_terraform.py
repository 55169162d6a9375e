"""Terraform CLI invocation helpers for the Terraform Cloudflare action.

Every helper builds an explicit token list and hands it to
:func:`run_terraform`, which blocks until the process exits and returns the
captured ``(exit code, stdout, stderr)`` triple as a
:class:`~scripts._cf_action_models.TerraformResult`. Helpers never raise for a
non-zero exit; callers decide which failures are fatal.
"""

from __future__ import annotations

import json
import logging
from collections import abc as cabc
from pathlib import Path

from plumbum import local
from plumbum.commands.processes import CommandNotFound

from scripts._cf_action_errors import TerraformCommandError
from scripts._cf_action_inputs import mask_backend_line
from scripts._cf_action_models import TerraformResult

TERRAFORM = "terraform"

logger = logging.getLogger(__name__)


def _validate_command_args(args: cabc.Sequence[str]) -> None:
    """Validate Terraform CLI arguments for safe execution."""
    for arg in args:
        if not isinstance(arg, str):
            msg = f"Terraform argument must be a string, got {type(arg).__name__}"
            raise TypeError(msg)
        if any(char in arg for char in ("\x00", "\n", "\r")):
            msg = "Terraform argument contains an invalid control character"
            raise ValueError(msg)


def _display_args(args: cabc.Sequence[str]) -> str:
    """Render arguments for logging with backend secrets hidden."""
    flag = "-backend-config="
    return " ".join(
        f"{flag}{mask_backend_line(arg.removeprefix(flag))}"
        if arg.startswith(flag)
        else arg
        for arg in args
    )


def run_terraform(
    args: cabc.Sequence[str],
    cwd: Path,
    env: cabc.Mapping[str, str] | None = None,
) -> TerraformResult:
    """Execute a Terraform command and return the result.

    Parameters
    ----------
    args
        Command arguments (without the ``terraform`` prefix).
    cwd
        Working directory for the command.
    env
        Extra environment variables layered over the current environment.

    Returns
    -------
    TerraformResult
        Result containing success status, output, and return code.

    Raises
    ------
    TerraformCommandError
        When the ``terraform`` executable cannot be found.
    """
    _validate_command_args(args)
    logger.info("Running: %s %s", TERRAFORM, _display_args(args))
    try:
        command = local[TERRAFORM][list(args)]
    except CommandNotFound as exc:
        msg = f"{TERRAFORM} executable not found on PATH"
        raise TerraformCommandError(msg) from exc

    with local.cwd(cwd), local.env(**dict(env or {})):
        return_code, stdout, stderr = command.run(retcode=None)

    return TerraformResult(
        success=return_code == 0,
        stdout=stdout,
        stderr=stderr,
        return_code=return_code,
    )


def terraform_init(
    cwd: Path,
    backend_args: cabc.Sequence[str] = (),
    env: cabc.Mapping[str, str] | None = None,
) -> TerraformResult:
    """Run ``terraform init`` with ``-backend-config`` tokens."""
    return run_terraform(["init", "-input=false", *backend_args], cwd, env)


def terraform_validate(
    cwd: Path, env: cabc.Mapping[str, str] | None = None
) -> TerraformResult:
    """Run ``terraform validate``."""
    return run_terraform(["validate"], cwd, env)


def terraform_plan(
    cwd: Path,
    plan_file: Path,
    var_file_args: cabc.Sequence[str] = (),
    parallelism_args: cabc.Sequence[str] = (),
    env: cabc.Mapping[str, str] | None = None,
) -> TerraformResult:
    """Run ``terraform plan`` and save the binary plan to ``plan_file``."""
    args = ["plan", "-input=false", f"-out={plan_file}", *var_file_args]
    args.extend(parallelism_args)
    return run_terraform(args, cwd, env)


def terraform_refresh_only_plan(
    cwd: Path,
    var_file_args: cabc.Sequence[str] = (),
    env: cabc.Mapping[str, str] | None = None,
) -> TerraformResult:
    """Run a refresh-only plan with ``-detailed-exitcode``.

    Exit code ``2`` signals differences between state and remote resources.
    """
    args = ["plan", "-input=false", "-refresh-only", "-detailed-exitcode"]
    args.extend(var_file_args)
    return run_terraform(args, cwd, env)


def terraform_apply(
    cwd: Path,
    plan_file: Path,
    parallelism_args: cabc.Sequence[str] = (),
    env: cabc.Mapping[str, str] | None = None,
) -> TerraformResult:
    """Apply a saved plan without prompting."""
    args = ["apply", "-input=false", "-auto-approve", *parallelism_args]
    args.append(str(plan_file))
    return run_terraform(args, cwd, env)


def terraform_destroy(
    cwd: Path,
    var_file_args: cabc.Sequence[str] = (),
    parallelism_args: cabc.Sequence[str] = (),
    env: cabc.Mapping[str, str] | None = None,
) -> TerraformResult:
    """Destroy every resource in the state without prompting."""
    args = ["destroy", "-input=false", "-auto-approve", *var_file_args]
    args.extend(parallelism_args)
    return run_terraform(args, cwd, env)


def terraform_import(
    cwd: Path,
    address: str,
    resource_id: str,
    var_file_args: cabc.Sequence[str] = (),
    env: cabc.Mapping[str, str] | None = None,
) -> TerraformResult:
    """Bind an existing Cloudflare object to ``address`` in state."""
    args = ["import", "-input=false", *var_file_args, address, resource_id]
    return run_terraform(args, cwd, env)


def terraform_show_json(
    cwd: Path,
    plan_file: Path,
    env: cabc.Mapping[str, str] | None = None,
) -> TerraformResult:
    """Render a saved plan as JSON."""
    return run_terraform(["show", "-json", str(plan_file)], cwd, env)


def terraform_output(
    cwd: Path, env: cabc.Mapping[str, str] | None = None
) -> dict[str, object]:
    """Retrieve state outputs as a JSON object.

    Raises
    ------
    TerraformCommandError
        When ``terraform output`` fails or prints something other than a JSON
        object.
    """
    result = run_terraform(["output", "-json"], cwd, env)
    if not result.success:
        msg = (
            "terraform output failed "
            f"(cwd={cwd}, return_code={result.return_code}): {result.stderr}"
        )
        raise TerraformCommandError(msg, result)

    try:
        outputs = json.loads(result.stdout or "{}")
    except json.JSONDecodeError as exc:
        msg = f"terraform output returned invalid JSON: {exc}"
        raise TerraformCommandError(msg, result) from exc
    if not isinstance(outputs, dict):
        msg = "terraform output returned unexpected data"
        raise TerraformCommandError(msg, result)
    return outputs
