"""Global configuration data structures and loading.

Provides immutable global config data loaded from <config_dir>/config.toml.
The config dir follows the XDG layout:

- $LLVMENV_CONFIG_DIR, if set
- $XDG_CONFIG_HOME/llvmenv, if XDG_CONFIG_HOME is set
- ~/.config/llvmenv otherwise

A missing config file is not an error: every field has a default, so
commands work before `llvmenv init` has been run.
"""

import os
import tomllib
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

import tomlkit

APP_NAME = "llvmenv"
CONFIG_TOML = "config.toml"
ENTRY_TOML = "entry.toml"
RUST_BINDING_ENV = "LLVMENV_RUST_BINDING"


def _xdg_dir(env_var: str, fallback: Path) -> Path:
    value = os.environ.get(env_var, "")
    if value:
        return Path(value).expanduser() / APP_NAME
    return fallback / APP_NAME


def config_dir() -> Path:
    """Get the llvmenv configuration directory (not created)."""
    override = os.environ.get("LLVMENV_CONFIG_DIR", "")
    if override:
        return Path(override).expanduser()
    return _xdg_dir("XDG_CONFIG_HOME", Path.home() / ".config")


def default_data_root() -> Path:
    return _xdg_dir("XDG_DATA_HOME", Path.home() / ".local" / "share")


def default_cache_root() -> Path:
    return _xdg_dir("XDG_CACHE_HOME", Path.home() / ".cache")


def rust_binding_from_env(configured: bool) -> bool:
    """Apply the LLVMENV_RUST_BINDING environment toggle on top of config."""
    value = os.environ.get(RUST_BINDING_ENV, "")
    if value and value != "0":
        return True
    return configured


@dataclass(frozen=True)
class GlobalConfig:
    """Immutable global configuration data.

    Loaded once at CLI entry point and stored in LlvmenvContext.
    All fields are read-only after construction.
    """

    data_root: Path
    cache_root: Path
    rust_binding: bool
    default_jobs: int | None

    @staticmethod
    def defaults() -> "GlobalConfig":
        return GlobalConfig(
            data_root=default_data_root(),
            cache_root=default_cache_root(),
            rust_binding=False,
            default_jobs=None,
        )


def parse_global_config(data: dict, source: Path) -> GlobalConfig:
    """Build a GlobalConfig from parsed TOML data, filling in defaults.

    Args:
        data: Parsed TOML document
        source: Path the data was read from (for error messages)

    Returns:
        GlobalConfig with configured values

    Raises:
        ValueError: If a field has the wrong type
    """
    defaults = GlobalConfig.defaults()

    data_root = data.get("data_root", str(defaults.data_root))
    cache_root = data.get("cache_root", str(defaults.cache_root))
    if not isinstance(data_root, str) or not isinstance(cache_root, str):
        raise ValueError(f"'data_root' and 'cache_root' must be strings in {source}")

    rust_binding = data.get("rust_binding", False)
    if not isinstance(rust_binding, bool):
        raise ValueError(f"'rust_binding' must be a boolean in {source}")

    default_jobs = data.get("default_jobs")
    if default_jobs is not None and (not isinstance(default_jobs, int) or default_jobs < 1):
        raise ValueError(f"'default_jobs' must be a positive integer in {source}")

    return GlobalConfig(
        data_root=Path(data_root).expanduser(),
        cache_root=Path(cache_root).expanduser(),
        rust_binding=rust_binding,
        default_jobs=default_jobs,
    )


class ConfigStore(ABC):
    """Abstract interface for global config operations.

    Provides dependency injection for global config access, enabling
    in-memory implementations for tests without touching filesystem.
    """

    @abstractmethod
    def exists(self) -> bool:
        """Check if global config exists."""
        ...

    @abstractmethod
    def load(self) -> GlobalConfig:
        """Load global config, falling back to defaults when absent.

        Raises:
            ValueError: If config is malformed
        """
        ...

    @abstractmethod
    def save(self, config: GlobalConfig) -> None:
        """Save global config."""
        ...

    @abstractmethod
    def path(self) -> Path:
        """Get the path to the global config file (for messages)."""
        ...


class RealConfigStore(ConfigStore):
    """Production implementation that reads/writes <config_dir>/config.toml."""

    def __init__(self, directory: Path) -> None:
        self._directory = directory

    def exists(self) -> bool:
        return self.path().exists()

    def load(self) -> GlobalConfig:
        config_path = self.path()
        if not config_path.exists():
            return GlobalConfig.defaults()

        try:
            data = tomllib.loads(config_path.read_text(encoding="utf-8"))
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Malformed config file {config_path}: {e}") from e

        return parse_global_config(data, config_path)

    def save(self, config: GlobalConfig) -> None:
        """Save global config, preserving comments already in the file.

        Raises:
            PermissionError: If directory or file cannot be written
        """
        config_path = self.path()
        config_path.parent.mkdir(parents=True, exist_ok=True)

        if config_path.exists():
            doc = tomlkit.parse(config_path.read_text(encoding="utf-8"))
        else:
            doc = tomlkit.document()
            doc.add(tomlkit.comment("Global llvmenv configuration"))

        doc["data_root"] = str(config.data_root)
        doc["cache_root"] = str(config.cache_root)
        doc["rust_binding"] = config.rust_binding
        if config.default_jobs is None:
            if "default_jobs" in doc:
                del doc["default_jobs"]
        else:
            doc["default_jobs"] = config.default_jobs

        config_path.write_text(tomlkit.dumps(doc), encoding="utf-8")

    def path(self) -> Path:
        return self._directory / CONFIG_TOML


class InMemoryConfigStore(ConfigStore):
    """Test implementation that stores config in memory without touching filesystem."""

    def __init__(self, config: GlobalConfig | None = None) -> None:
        """Initialize in-memory config store.

        Args:
            config: Initial config state (None = config doesn't exist)
        """
        self._config = config

    def exists(self) -> bool:
        return self._config is not None

    def load(self) -> GlobalConfig:
        if self._config is None:
            return GlobalConfig.defaults()
        return self._config

    def save(self, config: GlobalConfig) -> None:
        self._config = config

    def path(self) -> Path:
        return Path("/fake/llvmenv/config.toml")
