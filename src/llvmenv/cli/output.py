"""Output routing for CLI commands.

- user_output: messages for humans, written to stderr
- machine_output: results other programs consume (prefix, env), written to stdout

Keeping the two apart means `$(llvmenv prefix)` captures only the path.
"""

from typing import Any

import click


def user_output(message: Any = "", nl: bool = True) -> None:
    """Write a human-facing message to stderr."""
    click.echo(message, nl=nl, err=True)


def machine_output(message: Any = "", nl: bool = True) -> None:
    """Write a machine-readable result to stdout."""
    click.echo(message, nl=nl)
