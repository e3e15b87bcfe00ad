"""Show the LLVM version of a build."""

import click

from llvmenv.cli.ensure import Ensure
from llvmenv.cli.output import machine_output
from llvmenv.core.context import LlvmenvContext
from llvmenv.core.version import query_build_version


@click.command("version")
@click.option("-n", "--name", help="Build to inspect instead of the active one.")
@click.option("--major", is_flag=True, help="Print only the major version.")
@click.option("--minor", is_flag=True, help="Print only the minor version.")
@click.option("--patch", is_flag=True, help="Print only the patch version.")
@click.pass_obj
def version_cmd(
    ctx: LlvmenvContext, name: str | None, major: bool, minor: bool, patch: bool
) -> None:
    """Show the base version of the active build (from llvm-config)."""
    Ensure.single_flag(
        {"major": major, "minor": minor, "patch": patch},
        "Only one version component can be selected",
    )

    if name is None:
        build = ctx.resolver().resolve(ctx.cwd).build
    else:
        build = ctx.builds.get(name)

    version = query_build_version(ctx.runner, build)
    if major:
        machine_output(version.major)
    elif minor:
        machine_output(version.minor)
    elif patch:
        machine_output(version.patch)
    else:
        machine_output(str(version))
