"""Build listing and removal."""

import click
from rich.console import Console
from rich.table import Table

from llvmenv.cli.output import user_output
from llvmenv.core.build_registry import BuildState
from llvmenv.core.context import LlvmenvContext
from llvmenv.core.errors import ResolutionError

_STATE_STYLES = {
    BuildState.INSTALLED: "green",
    BuildState.BUILDING: "yellow",
    BuildState.FAILED: "red",
    BuildState.NOT_BUILT: "dim",
}


def _active_name(ctx: LlvmenvContext) -> str | None:
    try:
        return ctx.resolver().resolve_name(ctx.cwd).name
    except ResolutionError:
        return None


@click.command("builds")
@click.pass_obj
def builds_cmd(ctx: LlvmenvContext) -> None:
    """List builds; the active one is marked with '*'."""
    active = _active_name(ctx)

    table = Table(show_header=True, header_style="bold")
    table.add_column("", no_wrap=True, width=1)
    table.add_column("name", style="cyan", no_wrap=True)
    table.add_column("state", no_wrap=True)
    table.add_column("prefix", no_wrap=True)
    table.add_column("source", no_wrap=True)
    for build in ctx.builds.list():
        marker = "*" if build.name == active else ""
        state = f"[{_STATE_STYLES[build.state]}]{build.state.value}[/]"
        source = build.metadata.source if build.metadata is not None else ""
        table.add_row(marker, build.name, state, str(build.install_path), source)

    console = Console(stderr=True, width=200)
    console.print(table)


@click.command("remove")
@click.argument("name")
@click.pass_obj
def remove_cmd(ctx: LlvmenvContext, name: str) -> None:
    """Delete an installed build.

    Override files that still name the build are left alone; resolving
    through them reports the build as unknown.
    """
    ctx.builds.remove(name)
    user_output(click.style("✓", fg="green") + f" Removed build '{name}'")

    try:
        global_name = ctx.resolver().global_name()
    except ResolutionError:
        global_name = None
    if global_name == name:
        user_output(
            click.style("Warning: ", fg="yellow")
            + f"'{name}' is still the global default; run 'llvmenv global --unset'"
        )
