"""Init command: create the config file, data root and official entries."""

import click

from llvmenv.cli.output import user_output
from llvmenv.core.context import LlvmenvContext
from llvmenv.core.entry import official_releases


@click.command("init")
@click.option(
    "--no-seed",
    is_flag=True,
    help="Do not register entries for the official LLVM releases.",
)
@click.pass_obj
def init_cmd(ctx: LlvmenvContext, no_seed: bool) -> None:
    """Initialize llvmenv configuration and directories."""
    if ctx.config_store.exists():
        user_output(f"Config already exists at {ctx.config_store.path()}")
    else:
        ctx.config_store.save(ctx.global_config)
        user_output(f"Wrote {ctx.config_store.path()}")

    ctx.global_config.data_root.mkdir(parents=True, exist_ok=True)
    user_output(f"Builds will be installed under {ctx.global_config.data_root}")

    if no_seed:
        return

    added = ctx.entry_registry().seed(official_releases())
    if added:
        user_output(
            click.style("✓", fg="green") + f" Registered {len(added)} official release entries"
        )
    else:
        user_output("Official release entries are already registered")
