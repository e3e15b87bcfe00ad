"""Build an entry into an installed build."""

from collections.abc import Callable

import click

from llvmenv.cli.output import user_output
from llvmenv.core.context import LlvmenvContext
from llvmenv.core.entry import BuildType, CMakeGenerator
from llvmenv.core.errors import BuildStage
from llvmenv.core.orchestrator import BuildRequest


def _parse_choice[T](parse: Callable[[str], T], value: str | None, param: str) -> T | None:
    if value is None:
        return None
    try:
        return parse(value)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint=param) from e


def _announce(stage: BuildStage) -> None:
    user_output(click.style(f"==> {stage.value}", bold=True))


@click.command("build-entry")
@click.argument("name")
@click.option("-f", "--force", is_flag=True, help="Rebuild even if the build is installed.")
@click.option("-G", "--builder", help="Override the entry's CMake generator.")
@click.option("-t", "--build-type", help="Override the entry's build type.")
@click.option("-j", "--nproc", type=click.IntRange(min=1), help="Parallel compile jobs.")
@click.option(
    "-d",
    "--discard",
    is_flag=True,
    help="Drop the cached download before fetching.",
)
@click.option(
    "-k",
    "--keep-build-dir",
    is_flag=True,
    help="Keep the scratch source/build tree for debugging.",
)
@click.option(
    "--wait",
    is_flag=True,
    help="Wait for a running build of the same name instead of failing.",
)
@click.pass_obj
def build_entry_cmd(
    ctx: LlvmenvContext,
    name: str,
    force: bool,
    builder: str | None,
    build_type: str | None,
    nproc: int | None,
    discard: bool,
    keep_build_dir: bool,
    wait: bool,
) -> None:
    """Fetch, configure, compile and install entry NAME.

    NAME may also be a version requirement such as 17 or ~16.0; the newest
    matching entry is built.
    """
    entry = ctx.entry_registry().find(name)
    if entry.name != name:
        user_output(f"Using entry '{entry.name}' for '{name}'")

    request = BuildRequest(
        force=force,
        keep_scratch=keep_build_dir,
        jobs=nproc or ctx.global_config.default_jobs,
        wait=wait,
        discard=discard,
        generator=_parse_choice(CMakeGenerator.parse, builder, "--builder"),
        build_type=_parse_choice(BuildType.parse, build_type, "--build-type"),
    )

    outcome = ctx.orchestrator(on_stage=_announce).orchestrate(entry, request)
    if outcome.skipped:
        user_output(f"Build '{entry.name}' is already installed (use --force to rebuild)")
        return
    user_output(
        click.style("✓", fg="green")
        + f" Installed '{outcome.build.name}' to {outcome.build.install_path}"
    )
