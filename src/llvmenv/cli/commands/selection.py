"""Choose the active build globally or for a directory tree."""

from pathlib import Path

import click

from llvmenv.cli.ensure import Ensure
from llvmenv.cli.output import user_output
from llvmenv.core.context import LlvmenvContext


@click.command("global")
@click.argument("name", required=False)
@click.option("--unset", is_flag=True, help="Remove the global default.")
@click.pass_obj
def global_cmd(ctx: LlvmenvContext, name: str | None, unset: bool) -> None:
    """Set the build used when no .llvmenv file applies."""
    resolver = ctx.resolver()
    if unset:
        Ensure.invariant(name is None, "NAME cannot be combined with --unset")
        if resolver.unset_global():
            user_output(f"Removed {resolver.global_marker}")
        else:
            user_output("No global default was set")
        return

    name = Ensure.not_none(name, "Missing build NAME (or pass --unset)")
    marker = resolver.set_global(name)
    user_output(click.style("✓", fg="green") + f" Global build set to '{name}' ({marker})")


@click.command("local")
@click.argument("name", required=False)
@click.option(
    "-p",
    "--path",
    "directory",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Directory to pin (default: current directory).",
)
@click.option("--unset", is_flag=True, help="Remove the .llvmenv file instead.")
@click.pass_obj
def local_cmd(ctx: LlvmenvContext, name: str | None, directory: Path | None, unset: bool) -> None:
    """Pin a directory tree to a build with a .llvmenv file."""
    target = directory if directory is not None else ctx.cwd
    resolver = ctx.resolver()
    if unset:
        Ensure.invariant(name is None, "NAME cannot be combined with --unset")
        if resolver.unset_local(target):
            user_output(f"Removed override in {target}")
        else:
            user_output(f"No override in {target}")
        return

    name = Ensure.not_none(name, "Missing build NAME (or pass --unset)")
    marker = resolver.set_local(target, name)
    user_output(click.style("✓", fg="green") + f" Wrote {marker}")
