"""CLI error handling utilities with styled output.

This module provides the Ensure class for asserting invariants in CLI commands
with consistent, user-friendly error messages, and `report_error` which turns
core exceptions into the same styled output at the CLI boundary. All errors
use a red "Error:" prefix for visual consistency.
"""

import click

from llvmenv.cli.constants import ERROR_EXIT_CODE, RESOLUTION_EXIT_CODE
from llvmenv.cli.output import user_output
from llvmenv.core.errors import BuildFailed, LlvmenvError, ResolutionError


def _error(message: str) -> None:
    user_output(click.style("Error: ", fg="red") + message)


class Ensure:
    """Helper class for asserting invariants with consistent error handling."""

    @staticmethod
    def invariant(condition: bool, error_message: str) -> None:
        """Ensure condition is true, otherwise output styled error and exit.

        Args:
            condition: Boolean condition to check
            error_message: Error message to display if condition is false.
                          "Error: " prefix will be added automatically in red.

        Raises:
            SystemExit: If condition is false (with exit code 1)
        """
        if not condition:
            _error(error_message)
            raise SystemExit(ERROR_EXIT_CODE)

    @staticmethod
    def not_none[T](value: T | None, error_message: str) -> T:
        """Ensure value is not None, otherwise output styled error and exit.

        Provides type narrowing: takes `T | None` and returns `T`.

        Raises:
            SystemExit: If value is None (with exit code 1)
        """
        if value is None:
            _error(error_message)
            raise SystemExit(ERROR_EXIT_CODE)
        return value

    @staticmethod
    def single_flag(flags: dict[str, bool], error_message: str) -> None:
        """Ensure at most one of a set of mutually exclusive flags is given."""
        if sum(1 for enabled in flags.values() if enabled) > 1:
            names = ", ".join(f"--{name}" for name in flags)
            _error(f"{error_message} ({names})")
            raise SystemExit(ERROR_EXIT_CODE)


def report_error(error: LlvmenvError) -> int:
    """Print a core error the way Ensure prints invariant failures.

    Returns:
        Exit code: 2 for resolution failures, 1 for everything else
    """
    _error(str(error))

    if isinstance(error, BuildFailed) and error.output_tail:
        user_output(click.style(f"Last {len(error.output_tail)} lines of output:", dim=True))
        for line in error.output_tail:
            user_output(click.style(f"  {line}", dim=True))

    if isinstance(error, ResolutionError):
        return RESOLUTION_EXIT_CODE
    return ERROR_EXIT_CODE
