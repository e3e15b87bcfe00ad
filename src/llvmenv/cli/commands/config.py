"""Read and update the global config.toml."""

from pathlib import Path

import click

from llvmenv.cli.output import machine_output, user_output
from llvmenv.core.context import LlvmenvContext
from llvmenv.core.global_config import GlobalConfig

CONFIG_KEYS = ("data_root", "cache_root", "rust_binding", "default_jobs")


def _format_value(config: GlobalConfig, key: str) -> str:
    match key:
        case "data_root":
            return str(config.data_root)
        case "cache_root":
            return str(config.cache_root)
        case "rust_binding":
            return str(config.rust_binding).lower()
        case "default_jobs":
            return "" if config.default_jobs is None else str(config.default_jobs)
    raise click.BadParameter(f"Unknown config key: {key}", param_hint="KEY")


def _parse_boolean_value(value: str, field_name: str) -> bool:
    """Parse "true" or "false", case-insensitively.

    Raises:
        click.BadParameter: If the value is neither
    """
    if value.lower() not in ("true", "false"):
        raise click.BadParameter(f"Invalid boolean value for {field_name}: {value}")
    return value.lower() == "true"


def _parse_jobs(value: str) -> int | None:
    if value.lower() in ("", "auto"):
        return None
    if not value.isdigit() or int(value) < 1:
        raise click.BadParameter(f"default_jobs must be a positive integer or 'auto': {value}")
    return int(value)


def _update_global_config_field(current: GlobalConfig, field_name: str, value: str) -> GlobalConfig:
    """Return a copy of `current` with one field updated from its string form."""
    match field_name:
        case "data_root":
            return GlobalConfig(
                data_root=Path(value).expanduser().resolve(),
                cache_root=current.cache_root,
                rust_binding=current.rust_binding,
                default_jobs=current.default_jobs,
            )
        case "cache_root":
            return GlobalConfig(
                data_root=current.data_root,
                cache_root=Path(value).expanduser().resolve(),
                rust_binding=current.rust_binding,
                default_jobs=current.default_jobs,
            )
        case "rust_binding":
            return GlobalConfig(
                data_root=current.data_root,
                cache_root=current.cache_root,
                rust_binding=_parse_boolean_value(value, field_name),
                default_jobs=current.default_jobs,
            )
        case "default_jobs":
            return GlobalConfig(
                data_root=current.data_root,
                cache_root=current.cache_root,
                rust_binding=current.rust_binding,
                default_jobs=_parse_jobs(value),
            )
    raise click.BadParameter(f"Unknown config key: {field_name}", param_hint="KEY")


@click.group("config")
def config_group() -> None:
    """Manage llvmenv configuration."""


@config_group.command("list")
@click.pass_obj
def config_list(ctx: LlvmenvContext) -> None:
    """Print configuration keys and values."""
    config = ctx.config_store.load()
    user_output(click.style(f"Global configuration ({ctx.config_store.path()}):", bold=True))
    if not ctx.config_store.exists():
        user_output("  (defaults - run 'llvmenv init' to create)")
    for key in CONFIG_KEYS:
        user_output(f"  {key}={_format_value(config, key)}")


@config_group.command("get")
@click.argument("key", metavar="KEY")
@click.pass_obj
def config_get(ctx: LlvmenvContext, key: str) -> None:
    """Print the value of a configuration key."""
    machine_output(_format_value(ctx.config_store.load(), key))


@config_group.command("set")
@click.argument("key", metavar="KEY")
@click.argument("value", metavar="VALUE")
@click.pass_obj
def config_set(ctx: LlvmenvContext, key: str, value: str) -> None:
    """Update configuration with a value for the given key."""
    updated = _update_global_config_field(ctx.config_store.load(), key, value)
    ctx.config_store.save(updated)
    user_output(f"Set {key}={_format_value(updated, key)}")
