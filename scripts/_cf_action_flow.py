"""Run the Terraform workflow for the Terraform Cloudflare action.

This module sequences Terraform for one action run: it assembles variable and
backend arguments, initializes and validates the configuration, imports
existing Cloudflare resources, and dispatches the requested action. Results are
published through :class:`~scripts._github.ActionOutputs`.

Phases run strictly in order and nothing is retried::

    init -> validate -> (import) -> plan | apply | destroy | output

Safety policies
---------------
``destroy`` runs only when ``destroy_protection`` is off *and*
``auto_approve`` is on. ``apply`` without ``auto_approve`` is downgraded to a
plan and succeeds without changing anything.

Advisory phases
---------------
Drift detection and plan analysis only log. Neither raises nor stops the
requested action.

Examples
--------
>>> with run_context(config, ActionOutputs(None)) as ctx:
...     run_action(ctx)
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from collections import abc as cabc
from contextlib import ExitStack, contextmanager
from pathlib import Path

from scripts._cf_action_errors import (
    ConfigError,
    ImportFailure,
    SafetyGateDenied,
    TerraformCommandError,
    TfvarsWriteError,
)
from scripts._cf_action_inputs import mask_backend_line
from scripts._cf_action_models import (
    ActionConfig,
    ImportOutcome,
    PlanResult,
    RunContext,
    TerraformAction,
    TerraformResult,
)
from scripts._github import BANNER_RULE, ActionOutputs, print_banner
from scripts._terraform import (
    terraform_apply,
    terraform_destroy,
    terraform_import,
    terraform_init,
    terraform_output,
    terraform_plan,
    terraform_refresh_only_plan,
    terraform_show_json,
    terraform_validate,
)

logger = logging.getLogger(__name__)

DRIFT_NONE = 0
DRIFT_ERROR = 1
DRIFT_DETECTED = 2


def terraform_env(config: ActionConfig) -> dict[str, str]:
    """Return the environment shared by every Terraform invocation."""
    return {
        "TF_IN_AUTOMATION": "1",
        "CLOUDFLARE_API_TOKEN": config.api_token,
        "CLOUDFLARE_ACCOUNT_ID": config.account_id,
    }


def _echo(result: TerraformResult) -> None:
    if result.output:
        print(result.output)


def _require_success(
    result: TerraformResult,
    action: str,
    hints: cabc.Sequence[str] = (),
) -> None:
    """Echo the output of a failed command and raise."""
    if result.success:
        return
    _echo(result)
    for hint in hints:
        logger.error(hint)
    msg = f"Terraform {action} failed (exit code {result.return_code})"
    raise TerraformCommandError(msg, result)


# Variable and backend assembly


@contextmanager
def inline_tfvars_file(content: str) -> cabc.Iterator[Path]:
    """Write ``content`` to a private temporary ``.auto.tfvars`` file.

    The file is removed when the context exits, whether the run succeeded or
    not.

    Raises
    ------
    TfvarsWriteError
        When the file cannot be created or written.
    """
    try:
        fd, name = tempfile.mkstemp(prefix="inline.", suffix=".auto.tfvars")
    except OSError as exc:
        msg = f"Failed to create temporary tfvars file: {exc}"
        raise TfvarsWriteError(msg) from exc

    path = Path(name)
    try:
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(content)
        except OSError as exc:
            msg = f"Failed to write temporary tfvars file {path}: {exc}"
            raise TfvarsWriteError(msg) from exc
        logger.info("Created inline tfvars file: %s", path)
        yield path
    finally:
        path.unlink(missing_ok=True)


def build_backend_args(lines: cabc.Sequence[str]) -> tuple[str, ...]:
    """Turn backend lines into ``-backend-config`` tokens, logging masked values."""
    args: list[str] = []
    for line in lines:
        args.append(f"-backend-config={line}")
        logger.info("Backend config: %s", mask_backend_line(line))
    return tuple(args)


@contextmanager
def run_context(
    config: ActionConfig, outputs: ActionOutputs
) -> cabc.Iterator[RunContext]:
    """Assemble Terraform arguments and hold run-scoped resources.

    Parameters
    ----------
    config
        Validated action inputs.
    outputs
        Writer for the action outputs.

    Yields
    ------
    RunContext
        Context for the phases of this run.

    Raises
    ------
    ConfigError
        When ``tfvars_file`` does not exist.
    TfvarsWriteError
        When inline variables cannot be written.
    """
    cwd = config.working_directory
    var_file_args: list[str] = []

    with ExitStack() as stack:
        if config.tfvars_file or config.tfvars_inline:
            print_banner("Setting up Terraform Variables")

        if config.tfvars_file:
            if not (cwd / config.tfvars_file).is_file():
                msg = (
                    f"Specified tfvars file not found: {config.tfvars_file}. "
                    "Please verify the file path is correct."
                )
                raise ConfigError(msg)
            var_file_args.append(f"-var-file={config.tfvars_file}")
            logger.info("Using tfvars file: %s", config.tfvars_file)

        if config.tfvars_inline:
            inline_path = stack.enter_context(inline_tfvars_file(config.tfvars_inline))
            var_file_args.append(f"-var-file={inline_path}")

        backend_args: tuple[str, ...] = ()
        if config.backend_config:
            print_banner("Setting up Backend Configuration")
            backend_args = build_backend_args(config.backend_config)

        yield RunContext(
            config=config,
            cwd=cwd,
            outputs=outputs,
            var_file_args=tuple(var_file_args),
            backend_args=backend_args,
        )


# Initialization


def initialize(ctx: RunContext) -> None:
    """Run ``terraform init`` followed by ``terraform validate``."""
    env = terraform_env(ctx.config)

    print_banner("Initializing Terraform")
    result = terraform_init(ctx.cwd, ctx.backend_args, env=env)
    _require_success(
        result,
        "init",
        hints=(
            "This could be due to:",
            "  - Invalid Terraform configuration",
            "  - Incorrect backend configuration",
            "  - Network issues downloading providers",
        ),
    )
    _echo(result)
    logger.info("Terraform initialized successfully")

    print_banner("Validating Terraform Configuration")
    result = terraform_validate(ctx.cwd, env=env)
    _require_success(
        result,
        "validate",
        hints=(
            "Please review the configuration for syntax errors or invalid references",
        ),
    )
    _echo(result)
    logger.info("Terraform configuration is valid")


# Drift detection


def detect_drift(ctx: RunContext) -> int | None:
    """Run a refresh-only plan and log whether state has drifted.

    Returns the refresh-only plan exit code, or ``None`` when drift detection
    is disabled or Terraform could not be started. Never raises.
    """
    if not ctx.config.enable_drift_detection:
        return None

    print_banner("Detecting Configuration Drift")
    try:
        result = terraform_refresh_only_plan(
            ctx.cwd, ctx.var_file_args, env=terraform_env(ctx.config)
        )
    except TerraformCommandError as exc:
        logger.warning("Drift detection could not run: %s", exc)
        return None

    _echo(result)
    match result.return_code:
        case 0:
            logger.info("No drift detected - state is in sync")
        case 1:
            logger.warning("Error during drift detection")
            logger.warning(
                "This may indicate a problem with the Terraform configuration or state"
            )
        case 2:
            logger.warning(
                "Drift detected - configuration differs from remote state"
            )
            logger.warning(
                "Review the output above to see what has changed outside of Terraform"
            )
        case code:
            logger.warning("Unexpected exit code from drift detection: %s", code)

    logger.info("Drift detection completed")
    return result.return_code


# Plan analysis


def count_plan_changes(plan: cabc.Mapping[str, object], raw_output: str = "") -> PlanResult:
    """Count create, update and delete actions in ``terraform show -json`` data.

    A replacement lists both ``delete`` and ``create`` and counts in both.

    Examples
    --------
    >>> plan = {"resource_changes": [{"change": {"actions": ["create"]}}]}
    >>> count_plan_changes(plan).summary
    'Create: 1, Update: 0, Delete: 0'
    """
    counts = {"create": 0, "update": 0, "delete": 0}
    changes = plan.get("resource_changes") or []
    if not isinstance(changes, list):
        changes = []
    for change in changes:
        if not isinstance(change, dict):
            continue
        detail = change.get("change")
        actions = detail.get("actions", []) if isinstance(detail, dict) else []
        for action in counts:
            if action in actions:
                counts[action] += 1
    return PlanResult(
        raw_output=raw_output,
        create_count=counts["create"],
        update_count=counts["update"],
        delete_count=counts["delete"],
    )


def _print_plan_summary(plan: PlanResult) -> None:
    print()
    print(BANNER_RULE)
    print("PLAN SUMMARY")
    print(BANNER_RULE)
    print(f"  + Create: {plan.create_count} resources")
    print(f"  ~ Update: {plan.update_count} resources")
    print(f"  - Delete: {plan.delete_count} resources")
    print(BANNER_RULE)
    print()


def analyze_plan(ctx: RunContext, raw_output: str = "") -> PlanResult | None:
    """Summarize the saved plan and publish ``plan_has_changes``/``plan_summary``.

    Returns ``None`` without publishing anything when the plan cannot be
    inspected. Never raises.
    """
    plan_file = ctx.plan_file
    if not plan_file.is_file():
        logger.warning("Plan file not found: %s", ctx.config.plan_output_file)
        return None

    print_banner("Analyzing Terraform Plan")
    try:
        result = terraform_show_json(
            ctx.cwd, ctx.config.plan_output_file, env=terraform_env(ctx.config)
        )
    except TerraformCommandError as exc:
        logger.warning("Detailed plan analysis unavailable: %s", exc)
        return None

    if not result.success or not result.stdout.strip():
        logger.warning("Could not analyze plan output")
        logger.warning(
            "The plan file may be invalid or Terraform may not be configured correctly"
        )
        return None

    try:
        plan_json = json.loads(result.stdout)
    except json.JSONDecodeError as exc:
        logger.warning("Detailed plan analysis unavailable: invalid plan JSON (%s)", exc)
        return None
    if not isinstance(plan_json, dict):
        logger.warning("Detailed plan analysis unavailable: unexpected plan JSON")
        return None

    plan = count_plan_changes(plan_json, raw_output)
    _print_plan_summary(plan)
    ctx.outputs.publish(
        {
            "plan_has_changes": "true" if plan.has_changes else "false",
            "plan_summary": plan.summary,
        }
    )

    if plan.delete_count > 0:
        logger.warning(
            "This plan includes %d DESTRUCTIVE change(s)!", plan.delete_count
        )
        logger.warning("Please review carefully before applying.")
    return plan


# Actions


def run_plan(ctx: RunContext) -> PlanResult | None:
    """Create a saved plan, publish its output and analyze it."""
    print_banner("Creating Terraform Plan")
    result = terraform_plan(
        ctx.cwd,
        ctx.config.plan_output_file,
        ctx.var_file_args,
        ctx.parallelism_args(),
        env=terraform_env(ctx.config),
    )
    _require_success(result, "plan")
    _echo(result)
    ctx.outputs.publish({"plan_output": result.output})

    plan = analyze_plan(ctx, result.output)
    logger.info("Terraform plan completed successfully")
    return plan


def publish_state_outputs(ctx: RunContext) -> dict[str, object]:
    """Publish ``terraform output -json`` as ``state_outputs``.

    Falls back to ``{}`` when Terraform has no readable outputs.
    """
    try:
        outputs = terraform_output(ctx.cwd, env=terraform_env(ctx.config))
    except TerraformCommandError as exc:
        logger.info("No state outputs available: %s", exc)
        outputs = {}
    ctx.outputs.publish({"state_outputs": json.dumps(outputs)})
    return outputs


def _warn_banner(*lines: str) -> None:
    logger.warning(BANNER_RULE)
    for line in lines:
        logger.warning(line)
    logger.warning(BANNER_RULE)


def run_apply(ctx: RunContext) -> None:
    """Apply changes, or plan only when ``auto_approve`` is off.

    Applies the saved plan file when one exists so the applied changes match
    the reviewed plan; otherwise a fresh plan is created first.
    """
    print_banner("Applying Terraform Changes")
    if not ctx.config.auto_approve:
        _warn_banner(
            "APPLY REQUIRES APPROVAL",
            "Set 'auto_approve: true' to apply changes automatically.",
            "This is a safety mechanism to prevent accidental changes.",
        )
        logger.info(
            "Auto-approve is disabled. Skipping apply step and running plan only "
            "for review. No changes will be applied."
        )
        run_plan(ctx)
        return

    logger.warning("Auto-approve is enabled - changes will be applied without confirmation")
    if ctx.plan_file.is_file():
        logger.info("Applying saved plan: %s", ctx.config.plan_output_file)
    else:
        run_plan(ctx)

    result = terraform_apply(
        ctx.cwd,
        ctx.config.plan_output_file,
        ctx.parallelism_args(),
        env=terraform_env(ctx.config),
    )
    _require_success(result, "apply")
    _echo(result)
    ctx.outputs.publish({"apply_output": result.output})
    publish_state_outputs(ctx)
    logger.info("Terraform apply completed successfully")


def check_destroy_protection(config: ActionConfig) -> None:
    """Refuse ``destroy`` unless protection is off and auto-approve is on.

    Raises
    ------
    SafetyGateDenied
        For every other combination of the two settings.
    """
    if not config.destroy_protection and config.auto_approve:
        return
    _warn_banner(
        "DESTROY PROTECTION ENABLED"
        if config.destroy_protection
        else "DESTROY REQUIRES APPROVAL",
        "You are attempting to destroy Cloudflare resources.",
        "Set 'auto_approve: true' and 'destroy_protection: false'",
        "to proceed with destruction.",
    )
    msg = (
        "Destroy blocked: requires destroy_protection=false and auto_approve=true "
        f"(got destroy_protection={str(config.destroy_protection).lower()}, "
        f"auto_approve={str(config.auto_approve).lower()})"
    )
    raise SafetyGateDenied(msg)


def run_destroy(ctx: RunContext) -> None:
    """Destroy all managed resources once the safety gate permits it."""
    print_banner("Destroying Terraform Resources")
    check_destroy_protection(ctx.config)
    logger.warning("Auto-approve enabled for DESTRUCTIVE operation")

    result = terraform_destroy(
        ctx.cwd,
        ctx.var_file_args,
        ctx.parallelism_args(),
        env=terraform_env(ctx.config),
    )
    _require_success(result, "destroy")
    _echo(result)
    logger.info("Terraform destroy completed successfully")


def run_imports(ctx: RunContext) -> ImportOutcome:
    """Import every well-formed ``resource_address=id`` pair.

    Raises
    ------
    ImportFailure
        When any import failed. ``imported_resources`` is published first so
        successful imports are still reported.
    """
    print_banner("Importing Existing Cloudflare Resources")
    outcome = ImportOutcome()
    env = terraform_env(ctx.config)

    for spec in ctx.config.import_specs:
        logger.info("Importing: %s from %s", spec.address, spec.resource_id)
        result = terraform_import(
            ctx.cwd, spec.address, spec.resource_id, ctx.var_file_args, env=env
        )
        _echo(result)
        if result.success:
            outcome.succeeded.append(spec.address)
            logger.info("Successfully imported: %s", spec.address)
        else:
            outcome.failed.append(spec.address)
            logger.error("Failed to import: %s", spec.address)

    if outcome.succeeded:
        logger.info("Successfully imported %d resource(s)", len(outcome.succeeded))
        ctx.outputs.publish({"imported_resources": " ".join(outcome.succeeded)})

    if not outcome.ok:
        logger.error("Please verify the resource addresses and IDs are correct")
        msg = (
            f"Failed to import {len(outcome.failed)} resource(s): "
            f"{' '.join(outcome.failed)}"
        )
        raise ImportFailure(msg, outcome)

    if not outcome.succeeded:
        logger.warning("No valid import statements found")
        logger.info("Use format: resource_address=cloudflare_id (one per line)")
    return outcome


def require_import_resources(config: ActionConfig) -> None:
    """Fail early when ``import`` is requested without any resources."""
    if config.action is TerraformAction.IMPORT and not config.import_requested:
        msg = (
            "No resources specified for import. Use the 'import_resources' input "
            "with format: resource_address=cloudflare_id"
        )
        raise ConfigError(msg)


def dispatch(ctx: RunContext) -> None:
    """Run the phase sequence for the requested action."""
    match ctx.config.action:
        case TerraformAction.PLAN:
            detect_drift(ctx)
            run_plan(ctx)
        case TerraformAction.APPLY:
            detect_drift(ctx)
            run_apply(ctx)
        case TerraformAction.DESTROY:
            run_destroy(ctx)
        case TerraformAction.IMPORT:
            require_import_resources(ctx.config)
            run_plan(ctx)
        case TerraformAction.VALIDATE:
            logger.info("Configuration is valid")
        case TerraformAction.OUTPUT:
            print_banner("Getting Terraform Outputs")
            outputs = publish_state_outputs(ctx)
            print(json.dumps(outputs, indent=2))
            logger.info("Terraform outputs retrieved")
        case TerraformAction.INIT:
            logger.info("Initialization complete")
        case unknown:
            msg = f"Unknown action: {unknown}"
            raise ConfigError(msg)


def run_action(ctx: RunContext) -> None:
    """Initialize Terraform, import resources and dispatch the action."""
    require_import_resources(ctx.config)
    initialize(ctx)
    if ctx.config.import_requested:
        run_imports(ctx)
    dispatch(ctx)
