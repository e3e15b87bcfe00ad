import logging

import click

from llvmenv.cli.commands.archive import archive_cmd, expand_cmd
from llvmenv.cli.commands.build_entry import build_entry_cmd
from llvmenv.cli.commands.builds import builds_cmd, remove_cmd
from llvmenv.cli.commands.config import config_group
from llvmenv.cli.commands.current import current_cmd, prefix_cmd
from llvmenv.cli.commands.entries import add_entry_cmd, edit_cmd, entries_cmd, remove_entry_cmd
from llvmenv.cli.commands.env import env_cmd
from llvmenv.cli.commands.init import init_cmd
from llvmenv.cli.commands.selection import global_cmd, local_cmd
from llvmenv.cli.commands.version import version_cmd
from llvmenv.cli.ensure import Ensure
from llvmenv.cli.help_formatter import LlvmenvGroup
from llvmenv.cli.progress import RichDownloadProgress
from llvmenv.core.context import create_context

CONTEXT_SETTINGS = dict(help_option_names=["-h", "--help"])  # terse help flags


def configure_logging(verbose: bool) -> None:
    """Route core log records to stderr; --verbose adds debug detail."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="[DEBUG %(name)s:%(lineno)d] %(message)s",
            force=True,
        )
    else:
        logging.basicConfig(level=logging.INFO, format="%(message)s", force=True)


@click.group(cls=LlvmenvGroup, context_settings=CONTEXT_SETTINGS)
@click.version_option(package_name="llvmenv")
@click.option("--verbose", is_flag=True, help="Show debug output.")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """Manage multiple LLVM/Clang builds."""
    configure_logging(verbose)
    # Only create context if not already provided (e.g., by tests)
    if ctx.obj is None:
        try:
            ctx.obj = create_context(progress=RichDownloadProgress())
        except ValueError as e:
            Ensure.invariant(False, str(e))


cli.add_command(init_cmd)
cli.add_command(entries_cmd)
cli.add_command(add_entry_cmd)
cli.add_command(remove_entry_cmd)
cli.add_command(edit_cmd)
cli.add_command(builds_cmd)
cli.add_command(build_entry_cmd)
cli.add_command(remove_cmd)
cli.add_command(archive_cmd)
cli.add_command(expand_cmd)
cli.add_command(current_cmd)
cli.add_command(prefix_cmd)
cli.add_command(version_cmd)
cli.add_command(global_cmd)
cli.add_command(local_cmd)
cli.add_command(env_cmd)
cli.add_command(config_group)


def main() -> None:
    """CLI entry point used by the `llvmenv` console script."""
    cli()
