"""Custom Click group: sectioned help output and domain error translation."""

import click

from llvmenv.cli.ensure import report_error
from llvmenv.core.errors import LlvmenvError


class LlvmenvGroup(click.Group):
    """Click Group that organizes commands into sections in help output.

    Also the single place where core exceptions become styled messages and
    exit codes; commands let LlvmenvError propagate.
    """

    SECTIONS = (
        ("Entries", ["entries", "add-entry", "remove-entry", "edit"]),
        ("Builds", ["builds", "build-entry", "remove", "archive", "expand"]),
        ("Selection", ["current", "prefix", "version", "global", "local", "env"]),
        ("Setup", ["init", "config"]),
    )

    def invoke(self, ctx: click.Context) -> object:
        try:
            return super().invoke(ctx)
        except LlvmenvError as e:
            raise SystemExit(report_error(e)) from e

    def format_commands(self, ctx: click.Context, formatter: click.HelpFormatter) -> None:
        """Format commands into organized sections."""
        commands: dict[str, click.Command] = {}
        for subcommand in self.list_commands(ctx):
            cmd = self.get_command(ctx, subcommand)
            if cmd is None or cmd.hidden:
                continue
            commands[subcommand] = cmd

        placed: set[str] = set()
        for title, names in self.SECTIONS:
            section = [(name, commands[name]) for name in names if name in commands]
            placed.update(name for name, _ in section)
            if section:
                with formatter.section(title):
                    self._format_command_list(formatter, section)

        other = [(name, cmd) for name, cmd in commands.items() if name not in placed]
        if other:
            with formatter.section("Other"):
                self._format_command_list(formatter, other)

    def _format_command_list(
        self,
        formatter: click.HelpFormatter,
        commands: list[tuple[str, click.Command]],
    ) -> None:
        rows = [(name, cmd.get_short_help_str(limit=formatter.width)) for name, cmd in commands]
        if rows:
            formatter.write_dl(rows)
