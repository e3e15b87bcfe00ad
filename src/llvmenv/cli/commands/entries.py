"""Entry registry commands: list, add, remove and edit entries."""

import shlex
import subprocess

import click
from rich.console import Console
from rich.table import Table

from llvmenv.cli.constants import DEFAULT_EDITOR, EDITOR_ENV
from llvmenv.cli.ensure import Ensure
from llvmenv.cli.output import user_output
from llvmenv.core.context import LlvmenvContext
from llvmenv.core.entry import parse_entry


def _parse_options(pairs: tuple[str, ...]) -> dict[str, str]:
    options: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        Ensure.invariant(bool(sep) and bool(key), f"Option must look like KEY=VALUE: {pair}")
        options[key] = value
    return options


@click.command("entries")
@click.pass_obj
def entries_cmd(ctx: LlvmenvContext) -> None:
    """List entries that can be built."""
    entries = ctx.entry_registry().list()
    if not entries:
        user_output("No entries registered. Run 'llvmenv init' or 'llvmenv add-entry'.")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("name", style="cyan", no_wrap=True)
    table.add_column("kind", no_wrap=True)
    table.add_column("source", no_wrap=True)
    table.add_column("build type", no_wrap=True)
    for entry in entries:
        table.add_row(entry.name, entry.kind_label, entry.source, entry.settings.build_type.value)

    console = Console(stderr=True, width=200)
    console.print(table)


@click.command("add-entry")
@click.argument("name")
@click.option("--url", help="Archive or git repository URL.")
@click.option("--path", "local_path", help="Local llvm-project checkout.")
@click.option(
    "--kind",
    type=click.Choice(["archive", "git"], case_sensitive=False),
    help="Treat the URL as this kind instead of detecting it.",
)
@click.option("--revision", help="Branch, tag or commit for git URLs.")
@click.option("--sha256", help="Expected checksum for archive URLs.")
@click.option("-t", "--target", "targets", multiple=True, help="LLVM target to build.")
@click.option("-G", "--generator", help="CMake generator (Makefile, Ninja, vs, vs64).")
@click.option("--build-type", help="Debug, Release, RelWithDebInfo or MinSizeRel.")
@click.option(
    "-D",
    "--option",
    "options",
    multiple=True,
    metavar="KEY=VALUE",
    help="CMake cache entry forwarded as -DKEY=VALUE.",
)
@click.option("--extra-arg", "extra_args", multiple=True, help="Raw argument for cmake.")
@click.pass_obj
def add_entry_cmd(
    ctx: LlvmenvContext,
    name: str,
    url: str | None,
    local_path: str | None,
    kind: str | None,
    revision: str | None,
    sha256: str | None,
    targets: tuple[str, ...],
    generator: str | None,
    build_type: str | None,
    options: tuple[str, ...],
    extra_args: tuple[str, ...],
) -> None:
    """Register an entry, replacing any entry with the same NAME."""
    data: dict = {}
    if url is not None:
        data["url"] = url
    if local_path is not None:
        data["path"] = local_path
    if kind is not None:
        data["kind"] = kind
    if revision is not None:
        data["revision"] = revision
    if sha256 is not None:
        data["sha256"] = sha256
    if targets:
        data["target"] = list(targets)
    if generator is not None:
        data["generator"] = generator
    if build_type is not None:
        data["build_type"] = build_type
    if options:
        data["option"] = _parse_options(options)
    if extra_args:
        data["extra_args"] = list(extra_args)

    entry = parse_entry(name, data)
    registry = ctx.entry_registry()
    replaced = any(existing.name == name for existing in registry.list())
    registry.upsert(entry)

    verb = "Replaced" if replaced else "Added"
    user_output(click.style("✓", fg="green") + f" {verb} entry '{name}' ({entry.kind_label})")


@click.command("remove-entry")
@click.argument("name")
@click.pass_obj
def remove_entry_cmd(ctx: LlvmenvContext, name: str) -> None:
    """Remove an entry. Builds made from it are kept."""
    ctx.entry_registry().remove(name)
    user_output(click.style("✓", fg="green") + f" Removed entry '{name}'")


@click.command("edit")
@click.pass_obj
def edit_cmd(ctx: LlvmenvContext) -> None:
    """Open the entry file in $EDITOR and validate it afterwards."""
    path = ctx.entry_store.path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.touch(exist_ok=True)

    editor = ctx.environ.get(EDITOR_ENV) or DEFAULT_EDITOR
    result = subprocess.run([*shlex.split(editor), str(path)], check=False)
    Ensure.invariant(result.returncode == 0, f"{editor} exited with code {result.returncode}")

    entries = ctx.entry_registry().list()
    user_output(f"{path} is valid ({len(entries)} entries)")
