#!/usr/bin/env -S uv run python
# /// script
# requires-python = ">=3.13"
# dependencies = ["cyclopts>=2.9", "plumbum"]
# ///
"""Manage Cloudflare infrastructure with Terraform from GitHub Actions.

This script:
- resolves and validates action inputs from environment variables;
- masks the Cloudflare credentials in workflow logs;
- runs terraform init and validate, then optional imports; and
- dispatches plan, apply, destroy, output, validate or init, publishing
  results to $GITHUB_OUTPUT.
"""

from __future__ import annotations

import logging
import os
import signal
from pathlib import Path
from types import FrameType

from cyclopts import App
from scripts._cf_action_errors import CloudflareActionError
from scripts._cf_action_flow import run_action, run_context
from scripts._cf_action_inputs import RawActionInputs, resolve_action_config
from scripts._github import ActionOutputs, configure_logging, mask_secret, print_banner

app = App(help="Run Terraform against Cloudflare for a GitHub Actions workflow.")
logger = logging.getLogger(__name__)


def _exit_on_sigterm(signum: int, _frame: FrameType | None) -> None:
    """Turn SIGTERM into ``SystemExit`` so cleanup handlers still run."""
    raise SystemExit(128 + signum)


@app.default
def main(
    cloudflare_api_token: str | None = None,
    cloudflare_account_id: str | None = None,
    terraform_version: str | None = None,
    working_directory: Path | None = None,
    terraform_action: str | None = None,
    auto_approve: str | None = None,
    tfvars_file: Path | None = None,
    tfvars: str | None = None,
    backend_config: str | None = None,
    import_resources: str | None = None,
    plan_output_file: Path | None = None,
    enable_drift_detection: str | None = None,
    destroy_protection: str | None = None,
    max_parallelism: str | None = None,
    github_output: Path | None = None,
) -> int:
    """Run the requested Terraform action.

    Inputs default to the ``CLOUDFLARE_*`` and ``INPUT_*`` environment
    variables set by ``action.yml``; CLI flags override them.

    Returns
    -------
    int
        ``0`` on success, ``1`` for any validation, safety or Terraform
        failure.
    """
    configure_logging()
    print_banner("Terraform Cloudflare Action - Starting")

    raw_inputs = RawActionInputs(
        cloudflare_api_token=cloudflare_api_token,
        cloudflare_account_id=cloudflare_account_id,
        terraform_version=terraform_version,
        working_directory=working_directory,
        terraform_action=terraform_action,
        auto_approve=auto_approve,
        tfvars_file=tfvars_file,
        tfvars=tfvars,
        backend_config=backend_config,
        import_resources=import_resources,
        plan_output_file=plan_output_file,
        enable_drift_detection=enable_drift_detection,
        destroy_protection=destroy_protection,
        max_parallelism=max_parallelism,
        github_output=github_output,
    )

    try:
        config = resolve_action_config(raw_inputs)
        mask_secret(config.api_token)
        mask_secret(config.account_id)
        logger.info("All required inputs validated")
        logger.info("Terraform action: %s", config.action)

        os.chdir(config.working_directory)
        logger.info("Working directory: %s", config.working_directory)

        with run_context(config, ActionOutputs(config.github_output)) as ctx:
            run_action(ctx)
    except CloudflareActionError as exc:
        logger.error("%s", exc)
        return 1

    print_banner("Terraform Cloudflare Action - Complete")
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    signal.signal(signal.SIGTERM, _exit_on_sigterm)
    raise SystemExit(app())
