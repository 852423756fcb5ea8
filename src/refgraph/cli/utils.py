"""CLI utility functions and error handling.

Errors are printed as plain text to stderr and mapped to distinct exit codes
so scripts can tell a missing subject from an unreachable registry.

Example:
    from refgraph.cli.utils import error_exit, ExitCode

    error_exit("Subject not found", exit_code=ExitCode.NOT_FOUND, reference=ref)
"""

from __future__ import annotations

import sys
from enum import IntEnum
from typing import TYPE_CHECKING

import click

if TYPE_CHECKING:
    from typing import NoReturn


class ExitCode(IntEnum):
    """Exit codes of ``refgraph discover``.

    Match the ``exit_code`` attribute of the refgraph exceptions.
    """

    SUCCESS = 0
    """Command completed successfully, including when nothing was found."""

    GENERAL_ERROR = 1
    """General error (catch-all for failures)."""

    USAGE_ERROR = 2
    """Invalid usage, reference or platform selector."""

    NOT_FOUND = 3
    """Subject reference does not resolve to a manifest."""

    AUTH_ERROR = 4
    """Registry rejected the credentials."""

    UNAVAILABLE = 5
    """Registry or OCI layout could not be read."""

    RECURSION_LIMIT = 6
    """Referrer graph exceeded its depth or node budget."""

    CANCELLED = 130
    """Discovery interrupted by the user."""


def exit_code_for(exc: Exception) -> ExitCode:
    """Map an exception to its CLI exit code.

    Exceptions without a known ``exit_code`` map to GENERAL_ERROR.
    """
    code = getattr(exc, "exit_code", ExitCode.GENERAL_ERROR)
    try:
        return ExitCode(code)
    except ValueError:
        return ExitCode.GENERAL_ERROR


def error(message: str, **context: str | int | bool | None) -> None:
    """Print an error message to stderr.

    Args:
        message: Error message to display.
        **context: Optional context key-value pairs to include.

    Example:
        error("Subject not found", reference="ghcr.io/acme/app:v1")
        # Output: Error: Subject not found (reference=ghcr.io/acme/app:v1)
    """
    if context:
        context_str = ", ".join(f"{k}={v}" for k, v in context.items() if v is not None)
        full_message = f"Error: {message} ({context_str})"
    else:
        full_message = f"Error: {message}"

    click.echo(full_message, err=True)


def error_exit(
    message: str,
    exit_code: ExitCode = ExitCode.GENERAL_ERROR,
    **context: str | int | bool | None,
) -> NoReturn:
    """Print an error message to stderr and exit with a code.

    Args:
        message: Error message to display.
        exit_code: Exit code to use (default: GENERAL_ERROR).
        **context: Optional context key-value pairs to include.

    Raises:
        SystemExit: Always exits with the specified code.
    """
    error(message, **context)
    sys.exit(exit_code)


def warn(message: str, **context: str | int | bool | None) -> None:
    """Print a warning message to stderr."""
    if context:
        context_str = ", ".join(f"{k}={v}" for k, v in context.items() if v is not None)
        full_message = f"Warning: {message} ({context_str})"
    else:
        full_message = f"Warning: {message}"

    click.echo(full_message, err=True)


__all__ = ["ExitCode", "error", "error_exit", "exit_code_for", "warn"]
