"""Exception hierarchy for the Terraform Cloudflare action.

Every failure the orchestrator can surface derives from
:class:`CloudflareActionError` so the CLI entrypoint can catch a single base
error, log it, and exit with status ``1``.
"""

from __future__ import annotations

from scripts._cf_action_models import ImportOutcome, TerraformResult


class CloudflareActionError(Exception):
    """Base error for the Terraform Cloudflare action."""


class ConfigError(CloudflareActionError):
    """Raised when an action input is missing or invalid."""


class SafetyGateDenied(CloudflareActionError):
    """Raised when a safety policy blocks the requested operation."""


class TerraformCommandError(CloudflareActionError):
    """Raised when a Terraform subcommand exits with a non-zero status.

    Parameters
    ----------
    message
        Human-readable description of what was attempted.
    result
        Captured result of the failing invocation, if any.
    """

    def __init__(self, message: str, result: TerraformResult | None = None) -> None:
        super().__init__(message)
        self.result = result


class TfvarsWriteError(CloudflareActionError, OSError):
    """Raised when the inline tfvars file cannot be created or written."""


class ImportFailure(CloudflareActionError):
    """Raised when at least one resource import failed.

    The outcome keeps both lists so callers can still report what succeeded.
    """

    def __init__(self, message: str, outcome: ImportOutcome) -> None:
        super().__init__(message)
        self.outcome = outcome
