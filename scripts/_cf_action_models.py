"""Data models for the Terraform Cloudflare action.

These models form the typed contract passed between the input, Terraform and
flow helpers. A single :class:`RunContext` carries everything a phase needs,
so no phase reads process-wide state to find its arguments.

Examples
--------
>>> PlanResult(raw_output="", create_count=2, update_count=1, delete_count=0).summary
'Create: 2, Update: 1, Delete: 0'
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path

from scripts._github import ActionOutputs


class TerraformAction(enum.StrEnum):
    """Terraform actions the orchestrator accepts."""

    PLAN = "plan"
    APPLY = "apply"
    DESTROY = "destroy"
    IMPORT = "import"
    VALIDATE = "validate"
    OUTPUT = "output"
    INIT = "init"

    @classmethod
    def choices(cls) -> tuple[str, ...]:
        """Return the accepted action names in declaration order."""
        return tuple(member.value for member in cls)


@dataclass(frozen=True, slots=True)
class ImportSpec:
    """One ``resource_address=external_id`` pair to import."""

    address: str
    resource_id: str


@dataclass(frozen=True, slots=True)
class ActionConfig:
    """Validated action inputs.

    Attributes
    ----------
    api_token
        Cloudflare API token, always non-empty.
    account_id
        Cloudflare account identifier, always non-empty.
    terraform_version
        Terraform version requested for the setup step.
    working_directory
        Directory holding the Terraform configuration.
    action
        Requested Terraform action.
    auto_approve
        Whether changes may be applied without confirmation.
    tfvars_file
        Optional path to an existing tfvars file.
    tfvars_inline
        Optional inline HCL variable definitions.
    backend_config
        Backend ``key=value`` lines, comments and blanks removed.
    import_specs
        Well-formed import pairs in input order.
    import_requested
        Whether ``import_resources`` held any text at all.
    plan_output_file
        Path of the binary plan artifact.
    enable_drift_detection
        Whether to run a refresh-only plan before ``plan``/``apply``.
    destroy_protection
        Whether ``destroy`` is blocked.
    max_parallelism
        Terraform ``-parallelism`` value, or ``None`` for Terraform's default.
    github_output
        Path of the ``GITHUB_OUTPUT`` file, or ``None`` for local runs.
    """

    api_token: str = field(repr=False)
    account_id: str = field(repr=False)
    terraform_version: str
    working_directory: Path
    action: TerraformAction
    auto_approve: bool
    tfvars_file: Path | None
    tfvars_inline: str | None = field(repr=False)
    backend_config: tuple[str, ...] = field(repr=False)
    import_specs: tuple[ImportSpec, ...]
    import_requested: bool
    plan_output_file: Path
    enable_drift_detection: bool
    destroy_protection: bool
    max_parallelism: int | None
    github_output: Path | None


@dataclass(frozen=True, slots=True)
class TerraformResult:
    """Result of a Terraform command execution.

    Attributes
    ----------
    success
        Whether the command exited with status code ``0``.
    stdout
        Captured standard output.
    stderr
        Captured standard error.
    return_code
        Process exit status returned by Terraform.

    Examples
    --------
    >>> TerraformResult(success=True, stdout="ok", stderr="", return_code=0).output
    'ok'
    """

    success: bool
    stdout: str
    stderr: str
    return_code: int

    @property
    def output(self) -> str:
        """Return stdout and stderr joined, skipping empty streams."""
        return "\n".join(part for part in (self.stdout, self.stderr) if part)


@dataclass(frozen=True, slots=True)
class PlanResult:
    """Create/update/delete counts derived from a saved plan."""

    raw_output: str
    create_count: int
    update_count: int
    delete_count: int

    @property
    def has_changes(self) -> bool:
        """Return whether the plan changes any resource."""
        return (self.create_count + self.update_count + self.delete_count) > 0

    @property
    def summary(self) -> str:
        """Return the human-readable count line published as ``plan_summary``."""
        return (
            f"Create: {self.create_count}, "
            f"Update: {self.update_count}, "
            f"Delete: {self.delete_count}"
        )


@dataclass(slots=True)
class ImportOutcome:
    """Addresses imported so far, split by result."""

    succeeded: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        """Return ``True`` when no import failed."""
        return not self.failed


@dataclass(frozen=True, slots=True)
class RunContext:
    """State threaded through every phase of a single run.

    Attributes
    ----------
    config
        Validated inputs.
    cwd
        Terraform working directory.
    outputs
        Writer for the action outputs.
    var_file_args
        ``-var-file=`` tokens shared by plan, apply, destroy and import.
    backend_args
        ``-backend-config=`` tokens used by ``terraform init``.
    """

    config: ActionConfig
    cwd: Path
    outputs: ActionOutputs
    var_file_args: tuple[str, ...] = ()
    backend_args: tuple[str, ...] = ()

    @property
    def plan_file(self) -> Path:
        """Return the plan artifact path relative to the working directory."""
        return self.cwd / self.config.plan_output_file

    def parallelism_args(self) -> list[str]:
        """Return the ``-parallelism`` token list, empty when unset."""
        if self.config.max_parallelism is None:
            return []
        return [f"-parallelism={self.config.max_parallelism}"]
