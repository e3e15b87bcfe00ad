"""Print the active build's environment as shell exports."""

import shlex

import click

from llvmenv.cli.output import machine_output
from llvmenv.core.context import LlvmenvContext
from llvmenv.core.prefix import derive_environment
from llvmenv.core.version import query_build_version


@click.command("env")
@click.pass_obj
def env_cmd(ctx: LlvmenvContext) -> None:
    """Print `export` lines activating the current build.

    Intended for `eval "$(llvmenv env)"`. Exits with code 2 and prints
    nothing on stdout when no build is active.
    """
    resolution = ctx.resolver().resolve(ctx.cwd)

    rust_version = None
    if ctx.global_config.rust_binding:
        rust_version = query_build_version(ctx.runner, resolution.build)

    env = derive_environment(
        resolution.prefix,
        base_path=ctx.environ.get("PATH", ""),
        rust_binding_version=rust_version,
    )
    for key, value in env.items():
        machine_output(f"export {key}={shlex.quote(value)}")
