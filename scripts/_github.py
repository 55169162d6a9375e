"""GitHub Actions helpers for the Terraform Cloudflare action."""

from __future__ import annotations

import logging
import sys
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import TextIO

LOG_PREFIX = "[TF-CF-ACTION]"
BANNER_RULE = "━" * 60

logger = logging.getLogger(__name__)


def mask_secret(value: str, stream: Callable[[str], object] = print) -> None:
    """Emit the GitHub Actions secret masking command.

    Parameters
    ----------
    value
        Secret value to mask.
    stream
        Output stream for the masking command (defaults to ``print``).

    Returns
    -------
    None
        Writes one masking command per non-empty line in ``value``.

    Examples
    --------
    >>> mask_secret("token")
    ::add-mask::token
    """
    if not value:
        return
    for line in value.splitlines():
        if line:
            stream(f"::add-mask::{line}")


def parse_bool(value: str | None, *, default: bool = True) -> bool:
    """Parse a boolean-like action input.

    Blank strings count as unset, since GitHub passes empty strings for
    inputs the caller left out.

    Examples
    --------
    >>> parse_bool("yes")
    True
    >>> parse_bool("", default=False)
    False
    """
    if value is None or not value.strip():
        return default
    return value.strip().lower() in ("true", "1", "yes")


def _choose_multiline_delimiter(value: str, base: str = "EOF") -> str:
    """Choose a heredoc delimiter that is not present in the value."""
    delimiter = base
    counter = 0
    while delimiter in value:
        counter += 1
        delimiter = f"{base}_{counter}"
    return delimiter


def _write_output_entry(handle: TextIO, key: str, value: str) -> None:
    """Write one output, switching to heredoc syntax for multi-line values."""
    if "\n" not in value and "\r" not in value:
        handle.write(f"{key}={value}\n")
        return
    delimiter = _choose_multiline_delimiter(value)
    handle.write(f"{key}<<{delimiter}\n")
    handle.write(f"{value}\n")
    handle.write(f"{delimiter}\n")


class ActionOutputs:
    """Append action outputs to ``GITHUB_OUTPUT``.

    When no output file is configured (a local run outside GitHub Actions)
    outputs are still recorded in :attr:`published` but nothing is written.

    Examples
    --------
    >>> outputs = ActionOutputs(None)
    >>> outputs.publish({"plan_has_changes": "false"})
    >>> outputs.published["plan_has_changes"]
    'false'
    """

    def __init__(self, output_file: Path | None) -> None:
        self.output_file = output_file
        self.published: dict[str, str] = {}

    def publish(self, items: Mapping[str, str]) -> None:
        """Record ``items`` and append them to the output file if configured."""
        self.published.update(items)
        if self.output_file is None:
            logger.debug("GITHUB_OUTPUT not set; skipping %s", ", ".join(items))
            return
        self.output_file.parent.mkdir(parents=True, exist_ok=True)
        with self.output_file.open("a", encoding="utf-8") as handle:
            for key, value in items.items():
                _write_output_entry(handle, key, value)


def print_banner(title: str, stream: TextIO | None = None) -> None:
    """Print a section banner around ``title``."""
    out = stream or sys.stdout
    out.write(f"\n{BANNER_RULE}\n{LOG_PREFIX} {title}\n{BANNER_RULE}\n\n")
    out.flush()


def _below_error(record: logging.LogRecord) -> bool:
    return record.levelno < logging.ERROR


def build_log_handlers() -> list[logging.Handler]:
    """Return handlers sending errors to stderr and everything else to stdout.

    Progress records share stdout with raw Terraform output so the two
    interleave in the order they were produced.
    """
    formatter = logging.Formatter(f"{LOG_PREFIX} [%(levelname)s] %(message)s")
    out = logging.StreamHandler(sys.stdout)
    out.addFilter(_below_error)
    err = logging.StreamHandler(sys.stderr)
    err.setLevel(logging.ERROR)
    for handler in (out, err):
        handler.setFormatter(formatter)
    return [out, err]


def configure_logging(level: int = logging.INFO) -> None:
    """Install the action's log handlers on the root logger.

    Does nothing when the root logger already has handlers.
    """
    logging.basicConfig(level=level, handlers=build_log_handlers())
