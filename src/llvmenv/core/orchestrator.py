"""Drive an entry through fetch, configure, compile, install and register.

    NOT_BUILT -fetch-> fetched -configure-> configured -compile-> compiled -install-> INSTALLED
                  |              |                |                  |
                  +--------------+----------------+------------------+--> BuildFailed(stage)

Guarantees:
- At most one orchestration per build name at a time (flock on
  <data_root>/.locks/<name>.lock).
- The scratch directory and the staging directory are removed on every exit
  path, including KeyboardInterrupt.
- cmake installs into a staging DESTDIR inside the data root; the finished
  tree reaches its final path through a single rename, so a build directory
  is never visible half-populated.
"""

import logging
import os
from collections.abc import Callable, Generator, Mapping, Sequence
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass, replace
from pathlib import Path

from llvmenv.core.build_registry import (
    RETIRED_PREFIX,
    STAGING_PREFIX,
    Build,
    BuildMetadata,
    BuildRegistry,
    BuildState,
    write_install_marker,
)
from llvmenv.core.build_runner import BuildRunner
from llvmenv.core.entry import BuildSettings, BuildType, CMakeGenerator, Entry
from llvmenv.core.errors import BuildFailed, BuildInProgress, BuildStage, FetchError
from llvmenv.core.fetcher import Fetcher
from llvmenv.core.locking import (
    LockUnavailable,
    exclusive_lock,
    hidden_dirs,
    lock_path_for,
    make_hidden_dir,
    relative_to_anchor,
    remove_tree,
    scratch_directory,
)

logger = logging.getLogger(__name__)

StageCallback = Callable[[BuildStage], None]


@dataclass(frozen=True)
class BuildRequest:
    """Per-invocation options for an orchestration."""

    force: bool = False
    keep_scratch: bool = False
    jobs: int | None = None
    wait: bool = False
    discard: bool = False
    generator: CMakeGenerator | None = None
    build_type: BuildType | None = None


@dataclass(frozen=True)
class BuildOutcome:
    build: Build
    skipped: bool
    stages: tuple[BuildStage, ...]


@contextmanager
def stage_io(name: str, stage: BuildStage) -> Generator[None]:
    """Report filesystem errors raised inside the block as a failure of `stage`."""
    try:
        yield
    except OSError as e:
        raise BuildFailed(name, stage, str(e)) from e


def apply_overrides(entry: Entry, request: BuildRequest) -> Entry:
    """Copy of `entry` with command-line generator/build type applied."""
    settings = entry.settings
    if request.generator is not None:
        settings = replace(settings, generator=request.generator)
    if request.build_type is not None:
        settings = replace(settings, build_type=request.build_type)
    return replace(entry, settings=settings)


def cmake_source_dir(source: Path) -> Path:
    """llvm-project keeps the LLVM CMake project in its `llvm` subdirectory."""
    nested = source / "llvm"
    if (nested / "CMakeLists.txt").is_file():
        return nested
    return source


def configure_command(
    settings: BuildSettings,
    source: Path,
    install_path: Path,
    *,
    use_ccache: bool,
    use_lld: bool,
) -> list[str]:
    cmd = ["cmake", *settings.generator.configure_args(), str(cmake_source_dir(source))]
    cmd.append(f"-DCMAKE_INSTALL_PREFIX={install_path}")
    cmd.append(f"-DCMAKE_BUILD_TYPE={settings.build_type.value}")
    if use_ccache:
        cmd.append("-DLLVM_CCACHE_BUILD=ON")
    if use_lld:
        cmd.append("-DLLVM_ENABLE_LLD=ON")
    if settings.targets:
        cmd.append(f"-DLLVM_TARGETS_TO_BUILD={';'.join(settings.targets)}")
    cmd.extend(f"-D{key}={value}" for key, value in settings.options)
    cmd.extend(settings.extra_args)
    return cmd


def compile_command(settings: BuildSettings, build_dir: Path, jobs: int) -> list[str]:
    return [
        "cmake",
        "--build",
        str(build_dir),
        *settings.generator.build_args(jobs, settings.build_type),
    ]


def install_command(settings: BuildSettings, build_dir: Path) -> list[str]:
    cmd = ["cmake", "--install", str(build_dir)]
    if settings.generator in (CMakeGenerator.VISUAL_STUDIO, CMakeGenerator.VISUAL_STUDIO_WIN64):
        cmd += ["--config", settings.build_type.value]
    return cmd


class BuildOrchestrator:
    """Turns one Entry into an installed Build, or fails with BuildFailed."""

    def __init__(
        self,
        builds: BuildRegistry,
        cache_root: Path,
        fetcher: Fetcher,
        runner: BuildRunner,
        *,
        on_stage: StageCallback | None = None,
    ) -> None:
        self._builds = builds
        self._cache_root = cache_root
        self._fetcher = fetcher
        self._runner = runner
        self._on_stage = on_stage

    def orchestrate(self, entry: Entry, request: BuildRequest) -> BuildOutcome:
        """Build and install `entry`.

        Args:
            entry: Entry to build
            request: Options for this run

        Returns:
            BuildOutcome; `skipped` is True when an installed build already
            existed and `force` was not given

        Raises:
            BuildInProgress: If another orchestration of the same name holds the lock
            BuildFailed: If any stage fails
        """
        entry = apply_overrides(entry, request)
        lock_path = lock_path_for(self._builds.data_root, entry.name)
        try:
            with exclusive_lock(lock_path, blocking=request.wait):
                return self._orchestrate_locked(entry, request)
        except LockUnavailable:
            raise BuildInProgress(entry.name) from None

    def _orchestrate_locked(self, entry: Entry, request: BuildRequest) -> BuildOutcome:
        name = entry.name
        with stage_io(name, BuildStage.FETCH):
            self._clear_leftovers(name)
            if request.discard:
                self._fetcher.discard(entry.kind)

        if not request.force and self._builds.status(name) is BuildState.INSTALLED:
            logger.info("Build '%s' is already installed", name)
            return BuildOutcome(build=self._builds.get(name), skipped=True, stages=())

        install_path = self._builds.install_path_for(name).absolute()
        jobs = request.jobs or os.cpu_count() or 1
        settings = entry.settings
        completed: list[BuildStage] = []

        with ExitStack() as cleanup:
            with stage_io(name, BuildStage.FETCH):
                scratch = cleanup.enter_context(
                    scratch_directory(
                        self._cache_root / "scratch", name, keep=request.keep_scratch
                    )
                )
                staging = make_hidden_dir(self._builds.data_root, f"{STAGING_PREFIX}-{name}")
                cleanup.callback(remove_tree, staging)

            self._begin(BuildStage.FETCH, name)
            source = self._fetch(entry, scratch / "src")
            completed.append(BuildStage.FETCH)

            self._begin(BuildStage.CONFIGURE, name)
            build_dir = scratch / "build"
            with stage_io(name, BuildStage.CONFIGURE):
                build_dir.mkdir()
            configure = configure_command(
                settings,
                source,
                install_path,
                use_ccache=self._runner.which("ccache") is not None,
                use_lld=self._runner.which("lld") is not None,
            )
            self._run(name, BuildStage.CONFIGURE, configure, cwd=build_dir)
            completed.append(BuildStage.CONFIGURE)

            self._begin(BuildStage.COMPILE, name)
            self._run(
                name,
                BuildStage.COMPILE,
                compile_command(settings, build_dir, jobs),
                cwd=build_dir,
                env={"CMAKE_BUILD_PARALLEL_LEVEL": str(jobs)},
            )
            completed.append(BuildStage.COMPILE)

            self._begin(BuildStage.INSTALL, name)
            self._run(
                name,
                BuildStage.INSTALL,
                install_command(settings, build_dir),
                cwd=build_dir,
                env={"DESTDIR": str(staging)},
            )
            staged_tree = staging / relative_to_anchor(install_path)
            if not (staged_tree / "bin").is_dir():
                raise BuildFailed(
                    name,
                    BuildStage.INSTALL,
                    f"install produced no bin directory in {staged_tree}",
                )
            with stage_io(name, BuildStage.INSTALL):
                write_install_marker(staged_tree, BuildMetadata.for_entry(entry))
            completed.append(BuildStage.INSTALL)

            self._begin(BuildStage.REGISTER, name)
            self._register(name, staged_tree)
            completed.append(BuildStage.REGISTER)

        logger.debug("Installed '%s' to %s", name, install_path)
        return BuildOutcome(build=self._builds.get(name), skipped=False, stages=tuple(completed))

    def _begin(self, stage: BuildStage, name: str) -> None:
        logger.debug("[%s] %s", name, stage.value)
        if self._on_stage is not None:
            self._on_stage(stage)

    def _fetch(self, entry: Entry, dest: Path) -> Path:
        try:
            return self._fetcher.fetch(entry.kind, dest)
        except (FetchError, OSError) as e:
            raise BuildFailed(entry.name, BuildStage.FETCH, str(e)) from e

    def _run(
        self,
        name: str,
        stage: BuildStage,
        cmd: Sequence[str],
        *,
        cwd: Path,
        env: Mapping[str, str] | None = None,
    ) -> None:
        try:
            outcome = self._runner.run(cmd, cwd=cwd, env=env)
        except OSError as e:
            raise BuildFailed(name, stage, f"cannot run {cmd[0]}: {e}") from e
        if not outcome.success:
            raise BuildFailed(
                name,
                stage,
                f"{cmd[0]} exited with code {outcome.exit_code}",
                outcome.output_tail,
            )

    def _register(self, name: str, staged: Path) -> None:
        try:
            self._builds.adopt(name, staged)
        except OSError as e:
            raise BuildFailed(name, BuildStage.REGISTER, str(e)) from e

    def _clear_leftovers(self, name: str) -> None:
        """Remove staging/retired dirs a crashed run of this name left behind."""
        data_root = self._builds.data_root
        for prefix in (STAGING_PREFIX, RETIRED_PREFIX):
            for child in hidden_dirs(data_root, f"{prefix}-{name}"):
                logger.debug("Removing leftover %s", child)
                remove_tree(child)
