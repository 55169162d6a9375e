from __future__ import annotations

import json
import sys
from collections import abc as cabc
from dataclasses import replace
from pathlib import Path

import pytest


def pytest_configure() -> None:
    project_root = Path(__file__).resolve().parents[2]
    if str(project_root) not in sys.path:
        sys.path.insert(0, str(project_root))


class FakeTerraform:
    """Stand-in for ``run_terraform`` that records calls and replays results.

    Results are queued per subcommand key (``init``, ``plan``, ``drift``,
    ``show``, ``import``...). The last queued result repeats once the queue is
    down to one entry; unqueued subcommands succeed with empty output. A
    ``plan -out=FILE`` call writes FILE so later phases see a saved plan.
    """

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self.envs: list[dict[str, str]] = []
        self._results: dict[str, list[object]] = {}

    @staticmethod
    def key(args: cabc.Sequence[str]) -> str:
        if args[0] == "plan" and "-refresh-only" in args:
            return "drift"
        return args[0]

    def queue(
        self,
        key: str,
        *,
        return_code: int = 0,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        from scripts._cf_action_models import TerraformResult

        self._results.setdefault(key, []).append(
            TerraformResult(
                success=return_code == 0,
                stdout=stdout,
                stderr=stderr,
                return_code=return_code,
            )
        )

    def queue_plan_json(self, *actions: list[str]) -> None:
        payload = {
            "format_version": "1.2",
            "resource_changes": [
                {"address": f"cloudflare_record.r{index}", "change": {"actions": acts}}
                for index, acts in enumerate(actions)
            ],
        }
        self.queue("show", stdout=json.dumps(payload))

    def subcommands(self) -> list[str]:
        return [self.key(call) for call in self.calls]

    def __call__(
        self,
        args: cabc.Sequence[str],
        cwd: Path,
        env: cabc.Mapping[str, str] | None = None,
    ) -> object:
        from scripts._cf_action_models import TerraformResult

        call = list(args)
        self.calls.append(call)
        self.envs.append(dict(env or {}))
        key = self.key(call)

        queued = self._results.get(key)
        if queued:
            result = queued.pop(0) if len(queued) > 1 else queued[0]
        else:
            result = TerraformResult(success=True, stdout="", stderr="", return_code=0)

        if key == "plan" and result.success:
            for arg in call:
                if arg.startswith("-out="):
                    (cwd / arg.removeprefix("-out=")).write_text("plan", encoding="utf-8")
        return result


@pytest.fixture
def fake_terraform(monkeypatch: pytest.MonkeyPatch) -> FakeTerraform:
    """Route every Terraform invocation through a :class:`FakeTerraform`."""
    fake = FakeTerraform()
    monkeypatch.setattr("scripts._terraform.run_terraform", fake)
    return fake


@pytest.fixture
def make_config(tmp_path: Path) -> cabc.Callable[..., object]:
    """Build an ``ActionConfig`` rooted in ``tmp_path`` with overrides."""
    from scripts._cf_action_models import ActionConfig, TerraformAction

    workdir = tmp_path / "infra"
    workdir.mkdir()
    base = ActionConfig(
        api_token="cf-token",
        account_id="cf-account",
        terraform_version="1.6.0",
        working_directory=workdir,
        action=TerraformAction.PLAN,
        auto_approve=False,
        tfvars_file=None,
        tfvars_inline=None,
        backend_config=(),
        import_specs=(),
        import_requested=False,
        plan_output_file=Path("tfplan"),
        enable_drift_detection=False,
        destroy_protection=True,
        max_parallelism=None,
        github_output=tmp_path / "github-output",
    )

    def _make(**overrides: object) -> ActionConfig:
        return replace(base, **overrides)

    return _make
