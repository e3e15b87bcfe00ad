"""Application context with dependency injection."""

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from llvmenv.core.build_registry import SYSTEM_PREFIX, BuildRegistry
from llvmenv.core.build_runner import BuildRunner, RealBuildRunner
from llvmenv.core.entry_registry import EntryRegistry, EntryStore, FilesystemEntryStore
from llvmenv.core.fetcher import DownloadProgress, Fetcher, RealFetcher
from llvmenv.core.global_config import (
    ENTRY_TOML,
    ConfigStore,
    GlobalConfig,
    RealConfigStore,
    config_dir,
    rust_binding_from_env,
)
from llvmenv.core.orchestrator import BuildOrchestrator, StageCallback
from llvmenv.core.prefix import (
    OVERRIDE_FILE,
    PrefixFilesystem,
    PrefixResolver,
    RealPrefixFilesystem,
)


@dataclass(frozen=True)
class LlvmenvContext:
    """Immutable context holding all dependencies for llvmenv operations.

    Created at CLI entry point and threaded through the application.
    Frozen to prevent accidental modification at runtime.

    The entry registry is opened on demand (entry_registry()), so a corrupt
    entry.toml only breaks the commands that read entries. Prefix resolution
    keeps working.
    """

    config_store: ConfigStore
    global_config: GlobalConfig
    entry_store: EntryStore
    fetcher: Fetcher
    runner: BuildRunner
    prefix_filesystem: PrefixFilesystem
    cwd: Path
    config_dir: Path
    environ: Mapping[str, str]
    system_prefix: Path = SYSTEM_PREFIX

    def entry_registry(self) -> EntryRegistry:
        """Open the entry registry.

        Raises:
            CorruptRegistry: If the persisted entries cannot be loaded
        """
        return EntryRegistry(self.entry_store)

    @property
    def builds(self) -> BuildRegistry:
        return BuildRegistry(self.global_config.data_root, self.system_prefix)

    def resolver(self) -> PrefixResolver:
        return PrefixResolver(
            self.prefix_filesystem,
            self.builds,
            global_marker=self.config_dir / OVERRIDE_FILE,
        )

    def orchestrator(self, on_stage: StageCallback | None = None) -> BuildOrchestrator:
        return BuildOrchestrator(
            self.builds,
            self.global_config.cache_root,
            self.fetcher,
            self.runner,
            on_stage=on_stage,
        )

    @staticmethod
    def for_test(
        config_store: ConfigStore | None = None,
        global_config: GlobalConfig | None = None,
        entry_store: EntryStore | None = None,
        fetcher: Fetcher | None = None,
        runner: BuildRunner | None = None,
        prefix_filesystem: PrefixFilesystem | None = None,
        cwd: Path | None = None,
        config_dir: Path | None = None,
        environ: Mapping[str, str] | None = None,
        system_prefix: Path = SYSTEM_PREFIX,
    ) -> "LlvmenvContext":
        """Create test context with optional pre-configured integration classes.

        Unspecified integrations get empty fakes. Data and cache roots default
        to paths that do not exist, so tests touching the filesystem must pass
        a GlobalConfig rooted in tmp_path.

        Example:
            >>> config = GlobalConfig(tmp_path / "data", tmp_path / "cache", False, None)
            >>> ctx = LlvmenvContext.for_test(global_config=config)
        """
        from tests.fakes.build_runner import FakeBuildRunner
        from tests.fakes.fetcher import FakeFetcher
        from tests.fakes.prefix_filesystem import FakePrefixFilesystem

        from llvmenv.core.entry_registry import InMemoryEntryStore
        from llvmenv.core.global_config import InMemoryConfigStore

        if global_config is None:
            global_config = GlobalConfig(
                data_root=Path("/test/llvmenv/data"),
                cache_root=Path("/test/llvmenv/cache"),
                rust_binding=False,
                default_jobs=None,
            )
        if config_store is None:
            config_store = InMemoryConfigStore(global_config)

        return LlvmenvContext(
            config_store=config_store,
            global_config=global_config,
            entry_store=entry_store if entry_store is not None else InMemoryEntryStore(),
            fetcher=fetcher if fetcher is not None else FakeFetcher(),
            runner=runner if runner is not None else FakeBuildRunner(),
            prefix_filesystem=(
                prefix_filesystem if prefix_filesystem is not None else FakePrefixFilesystem()
            ),
            cwd=cwd if cwd is not None else Path("/test/default/cwd"),
            config_dir=config_dir if config_dir is not None else Path("/test/llvmenv/config"),
            environ=environ if environ is not None else {"PATH": "/usr/bin:/bin"},
            system_prefix=system_prefix,
        )


def create_context(*, progress: DownloadProgress | None = None) -> LlvmenvContext:
    """Create production context with real implementations.

    Called at CLI entry point to create the context for the entire
    command execution.

    Args:
        progress: Download progress display handed to the fetcher

    Returns:
        LlvmenvContext with real implementations

    Raises:
        ValueError: If config.toml is malformed
    """
    # 1. Locate and load global config (defaults when the file is absent)
    directory = config_dir()
    config_store = RealConfigStore(directory)
    loaded = config_store.load()

    # 2. Resolve roots so install prefixes handed to cmake are absolute
    global_config = GlobalConfig(
        data_root=loaded.data_root.absolute(),
        cache_root=loaded.cache_root.absolute(),
        rust_binding=rust_binding_from_env(loaded.rust_binding),
        default_jobs=loaded.default_jobs,
    )

    return LlvmenvContext(
        config_store=config_store,
        global_config=global_config,
        entry_store=FilesystemEntryStore(directory / ENTRY_TOML),
        fetcher=RealFetcher(global_config.cache_root, progress=progress),
        runner=RealBuildRunner(),
        prefix_filesystem=RealPrefixFilesystem(),
        cwd=Path.cwd(),
        config_dir=directory,
        environ=dict(os.environ),
    )
