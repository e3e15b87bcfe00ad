"""Show the active build and its prefix."""

import click

from llvmenv.cli.output import machine_output, user_output
from llvmenv.core.context import LlvmenvContext
from llvmenv.core.prefix import Resolution


def _report_source(resolution: Resolution, verbose: bool) -> None:
    if verbose:
        user_output(f"set by {resolution.source}")


@click.command("current")
@click.option("-v", "--verbose", is_flag=True, help="Show which file selected the build.")
@click.pass_obj
def current_cmd(ctx: LlvmenvContext, verbose: bool) -> None:
    """Show the name of the active build."""
    resolution = ctx.resolver().resolve(ctx.cwd)
    machine_output(resolution.build.name)
    _report_source(resolution, verbose)


@click.command("prefix")
@click.option("-v", "--verbose", is_flag=True, help="Show which file selected the build.")
@click.pass_obj
def prefix_cmd(ctx: LlvmenvContext, verbose: bool) -> None:
    """Show the install prefix of the active build."""
    resolution = ctx.resolver().resolve(ctx.cwd)
    machine_output(str(resolution.prefix))
    _report_source(resolution, verbose)
