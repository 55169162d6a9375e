"""Unit tests for Terraform Cloudflare action input resolution."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from scripts._cf_action_errors import ConfigError
from scripts._cf_action_inputs import (
    RawActionInputs,
    mask_backend_line,
    parse_backend_config,
    parse_import_line,
    parse_import_specs,
    parse_max_parallelism,
    resolve_action_config,
    validate_action,
    validate_required,
)
from scripts._cf_action_models import ImportSpec, TerraformAction


def _env(tmp_path: Path, **overrides: str) -> dict[str, str]:
    env = {
        "CLOUDFLARE_API_TOKEN": "cf-token",
        "CLOUDFLARE_ACCOUNT_ID": "cf-account",
        "INPUT_WORKING_DIRECTORY": str(tmp_path),
    }
    env.update(overrides)
    return env


def test_resolve_action_config_defaults(tmp_path: Path) -> None:
    config = resolve_action_config(RawActionInputs(), env=_env(tmp_path))

    assert config.action is TerraformAction.PLAN, "Action should default to plan"
    assert config.auto_approve is False
    assert config.enable_drift_detection is True
    assert config.destroy_protection is True
    assert config.max_parallelism == 10, "Parallelism should default to 10"
    assert config.plan_output_file == Path("tfplan")
    assert config.terraform_version == "1.6.0"
    assert config.working_directory == tmp_path.resolve()
    assert config.github_output is None, "No GITHUB_OUTPUT means local run"


def test_resolve_action_config_cli_overrides_env(tmp_path: Path) -> None:
    config = resolve_action_config(
        RawActionInputs(terraform_action="apply", auto_approve="true"),
        env=_env(tmp_path, INPUT_TERRAFORM_ACTION="destroy"),
    )

    assert config.action is TerraformAction.APPLY, "CLI value should win over env"
    assert config.auto_approve is True


def test_resolve_action_config_treats_blank_inputs_as_unset(tmp_path: Path) -> None:
    config = resolve_action_config(
        RawActionInputs(),
        env=_env(
            tmp_path,
            INPUT_TERRAFORM_ACTION="",
            INPUT_TFVARS_FILE="",
            INPUT_MAX_PARALLELISM="",
            INPUT_DESTROY_PROTECTION="",
        ),
    )

    assert config.action is TerraformAction.PLAN
    assert config.tfvars_file is None
    assert config.max_parallelism == 10
    assert config.destroy_protection is True


def test_resolve_action_config_parses_multiline_inputs(tmp_path: Path) -> None:
    config = resolve_action_config(
        RawActionInputs(),
        env=_env(
            tmp_path,
            INPUT_BACKEND_CONFIG="bucket=state\n# comment\n\nkey=prod.tfstate",
            INPUT_IMPORT_RESOURCES="cloudflare_zone.main=abc\nbad-line",
        ),
    )

    assert config.backend_config == ("bucket=state", "key=prod.tfstate")
    assert config.import_specs == (ImportSpec("cloudflare_zone.main", "abc"),)
    assert config.import_requested is True


def test_resolve_action_config_keeps_github_output_absolute(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.chdir(tmp_path)
    config = resolve_action_config(
        RawActionInputs(github_output=Path("out")), env=_env(tmp_path)
    )

    assert config.github_output == tmp_path / "out"


def test_config_repr_hides_credentials(tmp_path: Path) -> None:
    config = resolve_action_config(
        RawActionInputs(), env=_env(tmp_path, CLOUDFLARE_API_TOKEN="super-secret")
    )

    assert "super-secret" not in repr(config), "Token must not appear in repr"


@pytest.mark.parametrize(
    ("token", "account", "expected"),
    [
        (None, None, ["cloudflare_api_token", "cloudflare_account_id"]),
        ("", "  ", ["cloudflare_api_token", "cloudflare_account_id"]),
        (None, "acct", ["cloudflare_api_token"]),
        ("tok", None, ["cloudflare_account_id"]),
    ],
)
def test_validate_required_lists_every_missing_input(
    token: str | None, account: str | None, expected: list[str]
) -> None:
    with pytest.raises(ConfigError) as excinfo:
        validate_required(token, account)

    message = str(excinfo.value)
    for name in expected:
        assert name in message, f"{name} should be reported"


def test_resolve_action_config_reports_both_credentials(tmp_path: Path) -> None:
    env = {"INPUT_WORKING_DIRECTORY": str(tmp_path)}

    with pytest.raises(ConfigError, match="cloudflare_api_token, cloudflare_account_id"):
        resolve_action_config(RawActionInputs(), env=env)


def test_credentials_checked_before_action(tmp_path: Path) -> None:
    env = {"INPUT_WORKING_DIRECTORY": str(tmp_path), "INPUT_TERRAFORM_ACTION": "nope"}

    with pytest.raises(ConfigError, match="Missing required inputs"):
        resolve_action_config(RawActionInputs(), env=env)


def test_validate_action_lists_valid_values() -> None:
    with pytest.raises(ConfigError) as excinfo:
        validate_action("refresh")

    message = str(excinfo.value)
    assert "'refresh'" in message
    assert "plan, apply, destroy, import, validate, output, init" in message


def test_resolve_action_config_rejects_missing_directory(tmp_path: Path) -> None:
    env = _env(tmp_path, INPUT_WORKING_DIRECTORY=str(tmp_path / "missing"))

    with pytest.raises(ConfigError, match="Working directory does not exist"):
        resolve_action_config(RawActionInputs(), env=env)


def test_resolve_action_config_rejects_file_as_directory(tmp_path: Path) -> None:
    target = tmp_path / "main.tf"
    target.write_text("", encoding="utf-8")

    with pytest.raises(ConfigError, match="Working directory does not exist"):
        resolve_action_config(
            RawActionInputs(), env=_env(tmp_path, INPUT_WORKING_DIRECTORY=str(target))
        )


@pytest.mark.parametrize(("value", "expected"), [("1", 1), ("25", 25), (" 50 ", 50)])
def test_parse_max_parallelism_accepts_range(value: str, expected: int) -> None:
    assert parse_max_parallelism(value) == expected


@pytest.mark.parametrize(
    "value", ["0", "51", "999", "-3", "ten", "2.5", "\u00b2", "\u0661\u0660"]
)
def test_parse_max_parallelism_drops_invalid_values(
    value: str, caplog: pytest.LogCaptureFixture
) -> None:
    with caplog.at_level(logging.WARNING):
        assert parse_max_parallelism(value) is None

    assert "max_parallelism must be" in caplog.text, "A warning should be logged"


def test_invalid_parallelism_is_not_fatal(tmp_path: Path) -> None:
    config = resolve_action_config(
        RawActionInputs(max_parallelism="100"), env=_env(tmp_path)
    )

    assert config.max_parallelism is None


def test_parse_backend_config_skips_blank_and_comment_lines() -> None:
    text = "bucket=state\n\n   # region=ignored\n#x=y\nregion=auto\n"

    assert parse_backend_config(text) == ("bucket=state", "region=auto")


@pytest.mark.parametrize(
    ("line", "expected"),
    [
        ("token=abc123", "token=***"),
        ("Access_Key=abc123", "Access_Key=***"),
        ("PASSWORD=hunter2", "PASSWORD=***"),
        ("client_secret=s3cr3t", "client_secret=***"),
        ("credentials=/path/creds.json", "credentials=***"),
        ("bucket=state", "bucket=state"),
        ("keyspace=prod", "keyspace=prod"),
        ("token_ttl=60", "token_ttl=60"),
        ("no-equals-sign", "no-equals-sign"),
    ],
)
def test_mask_backend_line(line: str, expected: str) -> None:
    assert mask_backend_line(line) == expected


@pytest.mark.parametrize(
    ("line", "expected"),
    [
        ("a.b=c", ImportSpec("a.b", "c")),
        ("cloudflare_record.www=zone/record", ImportSpec("cloudflare_record.www", "zone/record")),
        ("a=b=c", None),
        ("=c", None),
        ("a=", None),
        ("no-separator", None),
    ],
)
def test_parse_import_line(line: str, expected: ImportSpec | None) -> None:
    assert parse_import_line(line) == expected


def test_parse_import_specs_skips_comments_silently(
    caplog: pytest.LogCaptureFixture,
) -> None:
    text = "\n# cloudflare_zone.old=zzz\n  # indented comment\ncloudflare_zone.main=abc\n"

    with caplog.at_level(logging.WARNING):
        specs = parse_import_specs(text)

    assert specs == (ImportSpec("cloudflare_zone.main", "abc"),)
    assert not caplog.records, "Comments and blanks should not warn"


def test_parse_import_specs_warns_on_malformed_lines(
    caplog: pytest.LogCaptureFixture,
) -> None:
    with caplog.at_level(logging.WARNING):
        specs = parse_import_specs("a=b=c\n=c\nx.y=1")

    assert specs == (ImportSpec("x.y", "1"),)
    assert caplog.text.count("Skipping malformed import line") == 2
