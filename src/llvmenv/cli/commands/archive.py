"""Archive builds to tarballs and expand them again."""

from pathlib import Path

import click

from llvmenv.cli.output import user_output
from llvmenv.core.archive import archive_build, expand_archive
from llvmenv.core.context import LlvmenvContext


@click.command("archive")
@click.argument("name")
@click.option(
    "-o",
    "--output-dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory to write NAME.tar.xz into (default: current directory).",
)
@click.pass_obj
def archive_cmd(ctx: LlvmenvContext, name: str, output_dir: Path | None) -> None:
    """Pack build NAME into NAME.tar.xz."""
    build = ctx.builds.get(name)
    target = archive_build(build, output_dir if output_dir is not None else ctx.cwd)
    user_output(click.style("✓", fg="green") + f" Wrote {target}")


@click.command("expand")
@click.argument("path", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--force", is_flag=True, help="Replace an existing build of the same name.")
@click.pass_obj
def expand_cmd(ctx: LlvmenvContext, path: Path, force: bool) -> None:
    """Install a build from an archive made by 'llvmenv archive'."""
    build = expand_archive(path, ctx.builds, force=force)
    check = click.style("✓", fg="green")
    user_output(f"{check} Expanded '{build.name}' to {build.install_path}")
