"""Tests for the build pipeline state machine."""

import threading
from pathlib import Path

import pytest

from llvmenv.core.build_registry import INSTALL_MARKER, BuildRegistry, BuildState
from llvmenv.core.entry import BuildSettings, BuildType, CMakeGenerator, Entry, Local
from llvmenv.core.errors import BuildFailed, BuildInProgress, BuildStage, FetchFailure
from llvmenv.core.locking import exclusive_lock, lock_path_for
from llvmenv.core.orchestrator import (
    BuildOrchestrator,
    BuildRequest,
    cmake_source_dir,
    configure_command,
)
from tests.fakes.build_runner import FakeBuildRunner
from tests.fakes.fetcher import FakeFetcher
from tests.test_utils.builds import archive_entry

PIPELINE = (
    BuildStage.FETCH,
    BuildStage.CONFIGURE,
    BuildStage.COMPILE,
    BuildStage.INSTALL,
    BuildStage.REGISTER,
)


def _orchestrator(
    tmp_path: Path,
    *,
    fetcher: FakeFetcher | None = None,
    runner: FakeBuildRunner | None = None,
    stages: list[BuildStage] | None = None,
) -> BuildOrchestrator:
    return BuildOrchestrator(
        BuildRegistry(tmp_path / "data"),
        tmp_path / "cache",
        fetcher if fetcher is not None else FakeFetcher(),
        runner if runner is not None else FakeBuildRunner(),
        on_stage=stages.append if stages is not None else None,
    )


def _leftovers(tmp_path: Path) -> list[str]:
    """Scratch and staging directories that survived an orchestration."""
    found = []
    scratch = tmp_path / "cache" / "scratch"
    if scratch.exists():
        found += [p.name for p in scratch.iterdir()]
    data_root = tmp_path / "data"
    if data_root.exists():
        hidden = (".staging", ".retired")
        found += [p.name for p in data_root.iterdir() if p.name.startswith(hidden)]
    return found


def test_orchestrate_installs_build(tmp_path: Path) -> None:
    """Test the happy path through every stage."""
    runner = FakeBuildRunner()
    announced: list[BuildStage] = []
    orchestrator = _orchestrator(tmp_path, runner=runner, stages=announced)

    outcome = orchestrator.orchestrate(archive_entry("llvm-10"), BuildRequest(jobs=4))

    install_path = tmp_path / "data" / "llvm-10"
    assert outcome.skipped is False
    assert outcome.stages == PIPELINE
    assert announced == list(PIPELINE)
    assert outcome.build.state is BuildState.INSTALLED
    assert outcome.build.install_path == install_path
    assert (install_path / "bin" / "clang").exists()
    assert (install_path / INSTALL_MARKER).exists()
    assert _leftovers(tmp_path) == []

    configure, compile_, install = runner.commands
    assert f"-DCMAKE_INSTALL_PREFIX={install_path.absolute()}" in configure
    assert "-DCMAKE_BUILD_TYPE=Release" in configure
    assert compile_[:2] == ["cmake", "--build"]
    assert runner.runs[1][2] == {"CMAKE_BUILD_PARALLEL_LEVEL": "4"}
    assert install[:2] == ["cmake", "--install"]
    assert "DESTDIR" in runner.runs[2][2]


def test_second_orchestration_is_a_no_op(tmp_path: Path) -> None:
    """Test idempotence: no fetch and no external process on the second run."""
    fetcher = FakeFetcher()
    runner = FakeBuildRunner()
    orchestrator = _orchestrator(tmp_path, fetcher=fetcher, runner=runner)
    entry = archive_entry("llvm-10")

    first = orchestrator.orchestrate(entry, BuildRequest())
    runs_after_first = len(runner.runs)
    second = orchestrator.orchestrate(entry, BuildRequest())

    assert second.skipped is True
    assert second.stages == ()
    assert second.build == first.build
    assert len(runner.runs) == runs_after_first
    assert len(fetcher.fetched) == 1


def test_force_rebuilds_and_replaces(tmp_path: Path) -> None:
    """Test that force runs the pipeline again and keeps exactly one build dir."""
    runner = FakeBuildRunner()
    orchestrator = _orchestrator(tmp_path, runner=runner)
    entry = archive_entry("llvm-10")
    orchestrator.orchestrate(entry, BuildRequest())
    (tmp_path / "data" / "llvm-10" / "OLD").write_text("", encoding="utf-8")

    outcome = orchestrator.orchestrate(entry, BuildRequest(force=True))

    assert outcome.skipped is False
    assert len(runner.runs) == 6
    assert not (tmp_path / "data" / "llvm-10" / "OLD").exists()
    assert _leftovers(tmp_path) == []


@pytest.mark.parametrize("stage", [BuildStage.CONFIGURE, BuildStage.COMPILE, BuildStage.INSTALL])
def test_nonzero_exit_fails_with_stage_and_output(tmp_path: Path, stage: BuildStage) -> None:
    """Test that a failing tool aborts with BuildFailed carrying stage and output tail."""
    runner = FakeBuildRunner(exit_codes={stage: 2}, output_tail=["error: boom"])
    orchestrator = _orchestrator(tmp_path, runner=runner)

    with pytest.raises(BuildFailed) as exc_info:
        orchestrator.orchestrate(archive_entry("llvm-10"), BuildRequest())

    assert exc_info.value.stage is stage
    assert exc_info.value.output_tail == ["error: boom"]
    assert "exited with code 2" in exc_info.value.cause
    assert not (tmp_path / "data" / "llvm-10").exists()
    assert _leftovers(tmp_path) == []


def test_fetch_error_becomes_build_failed(tmp_path: Path) -> None:
    """Test that FetchError is wrapped with the fetch stage and chained."""
    orchestrator = _orchestrator(tmp_path, fetcher=FakeFetcher(failure=FetchFailure.NETWORK))

    with pytest.raises(BuildFailed) as exc_info:
        orchestrator.orchestrate(archive_entry("llvm-10"), BuildRequest())

    assert exc_info.value.stage is BuildStage.FETCH
    assert exc_info.value.__cause__ is not None
    assert _leftovers(tmp_path) == []


def test_install_without_bin_fails(tmp_path: Path) -> None:
    """Test that an install producing no bin directory is not registered."""
    orchestrator = _orchestrator(tmp_path, runner=FakeBuildRunner(install_bin=False))

    with pytest.raises(BuildFailed) as exc_info:
        orchestrator.orchestrate(archive_entry("llvm-10"), BuildRequest())

    assert exc_info.value.stage is BuildStage.INSTALL
    assert not (tmp_path / "data" / "llvm-10").exists()


@pytest.mark.parametrize(
    "interrupt_at",
    [BuildStage.FETCH, BuildStage.CONFIGURE, BuildStage.COMPILE, BuildStage.INSTALL],
)
def test_interrupt_cleans_up_at_every_stage(tmp_path: Path, interrupt_at: BuildStage) -> None:
    """Test that KeyboardInterrupt leaves no scratch, staging or half-installed build."""
    if interrupt_at is BuildStage.FETCH:
        fetcher = FakeFetcher(interrupt=True)
        runner = FakeBuildRunner()
    else:
        fetcher = FakeFetcher()
        runner = FakeBuildRunner(interrupt_at=interrupt_at)
    orchestrator = _orchestrator(tmp_path, fetcher=fetcher, runner=runner)

    with pytest.raises(KeyboardInterrupt):
        orchestrator.orchestrate(archive_entry("llvm-10"), BuildRequest())

    assert _leftovers(tmp_path) == []
    assert BuildRegistry(tmp_path / "data").status("llvm-10") is BuildState.NOT_BUILT


def test_keep_scratch_leaves_build_tree(tmp_path: Path) -> None:
    """Test that keep_scratch preserves the scratch directory for debugging."""
    orchestrator = _orchestrator(tmp_path)

    orchestrator.orchestrate(archive_entry("llvm-10"), BuildRequest(keep_scratch=True))

    kept = list((tmp_path / "cache" / "scratch").iterdir())
    assert len(kept) == 1
    assert (kept[0] / "build").is_dir()


def test_concurrent_orchestration_fails_fast(tmp_path: Path) -> None:
    """Test that a held per-name lock yields BuildInProgress without side effects."""
    runner = FakeBuildRunner()
    orchestrator = _orchestrator(tmp_path, runner=runner)

    with exclusive_lock(lock_path_for(tmp_path / "data", "llvm-10"), blocking=True):
        with pytest.raises(BuildInProgress):
            orchestrator.orchestrate(archive_entry("llvm-10"), BuildRequest())

    assert runner.runs == []


def test_wait_serializes_behind_running_build(tmp_path: Path) -> None:
    """Test that wait=True blocks until the lock is released, then skips."""
    orchestrator = _orchestrator(tmp_path)
    entry = archive_entry("llvm-10")
    lock = lock_path_for(tmp_path / "data", "llvm-10")
    acquired = threading.Event()
    release = threading.Event()

    def hold_lock_and_build() -> None:
        with exclusive_lock(lock, blocking=True):
            acquired.set()
            release.wait(timeout=5)
            _orchestrator(tmp_path)._orchestrate_locked(entry, BuildRequest())

    holder = threading.Thread(target=hold_lock_and_build)
    holder.start()
    acquired.wait(timeout=5)
    release.set()
    outcome = orchestrator.orchestrate(entry, BuildRequest(wait=True))
    holder.join(timeout=5)

    assert outcome.skipped is True
    assert outcome.build.state is BuildState.INSTALLED


def test_different_entries_build_independently(tmp_path: Path) -> None:
    """Test that a lock on one name does not block another."""
    orchestrator = _orchestrator(tmp_path)

    with exclusive_lock(lock_path_for(tmp_path / "data", "llvm-10"), blocking=True):
        outcome = orchestrator.orchestrate(archive_entry("llvm-11"), BuildRequest())

    assert outcome.build.name == "llvm-11"


def test_request_overrides_do_not_mutate_entry(tmp_path: Path) -> None:
    """Test that generator/build type overrides apply to a copy of the entry."""
    runner = FakeBuildRunner()
    entry = archive_entry("llvm-10")

    _orchestrator(tmp_path, runner=runner).orchestrate(
        entry,
        BuildRequest(generator=CMakeGenerator.NINJA, build_type=BuildType.DEBUG, jobs=2),
    )

    configure, compile_, _ = runner.commands
    assert configure[1:3] == ["-G", "Ninja"]
    assert "-DCMAKE_BUILD_TYPE=Debug" in configure
    assert compile_[-3:] == ["--", "-j", "2"]
    assert entry.settings == BuildSettings()


def test_stale_staging_directories_are_cleared(tmp_path: Path) -> None:
    """Test that leftovers of a crashed run do not keep the build in BUILDING."""
    stale = tmp_path / "data" / ".staging-llvm-10-dead"
    stale.mkdir(parents=True)

    _orchestrator(tmp_path).orchestrate(archive_entry("llvm-10"), BuildRequest())

    assert not stale.exists()


def test_leftover_cleanup_spares_entries_sharing_a_name_prefix(tmp_path: Path) -> None:
    """Test that building 'llvm' leaves a running 'llvm-main' build's directories alone."""
    data_root = tmp_path / "data"
    other_staging = data_root / ".staging-llvm-main-x1y2"
    other_retired = data_root / ".retired-llvm-main-z3w4"
    other_staging.mkdir(parents=True)
    other_retired.mkdir()
    own_stale = data_root / ".staging-llvm-dead"
    own_stale.mkdir()

    with exclusive_lock(lock_path_for(data_root, "llvm-main"), blocking=True):
        _orchestrator(tmp_path).orchestrate(archive_entry("llvm"), BuildRequest())

    assert other_staging.is_dir()
    assert other_retired.is_dir()
    assert not own_stale.exists()
    assert BuildRegistry(data_root).status("llvm-main") is BuildState.BUILDING


def test_filesystem_error_during_fetch_is_build_failed(tmp_path: Path) -> None:
    """Test that an OSError from the fetcher carries the fetch stage."""
    fetcher = FakeFetcher(os_error=OSError(28, "No space left on device"))

    with pytest.raises(BuildFailed) as exc_info:
        _orchestrator(tmp_path, fetcher=fetcher).orchestrate(
            archive_entry("llvm-10"), BuildRequest()
        )

    assert exc_info.value.stage is BuildStage.FETCH
    assert isinstance(exc_info.value.__cause__, OSError)
    assert _leftovers(tmp_path) == []


def test_unwritable_install_marker_is_build_failed(tmp_path: Path) -> None:
    """Test that failing to write the install marker carries the install stage."""
    runner = FakeBuildRunner(block_install_marker=True)

    with pytest.raises(BuildFailed) as exc_info:
        _orchestrator(tmp_path, runner=runner).orchestrate(
            archive_entry("llvm-10"), BuildRequest()
        )

    assert exc_info.value.stage is BuildStage.INSTALL
    assert isinstance(exc_info.value.__cause__, OSError)
    assert not (tmp_path / "data" / "llvm-10").exists()
    assert _leftovers(tmp_path) == []


def test_discard_happens_under_the_lock(tmp_path: Path) -> None:
    """Test that the cached download is dropped only once the lock is held."""
    fetcher = FakeFetcher()
    orchestrator = _orchestrator(tmp_path, fetcher=fetcher)
    entry = archive_entry("llvm-10")

    with exclusive_lock(lock_path_for(tmp_path / "data", "llvm-10"), blocking=True):
        with pytest.raises(BuildInProgress):
            orchestrator.orchestrate(entry, BuildRequest(discard=True))
    assert fetcher.discarded == []

    orchestrator.orchestrate(entry, BuildRequest(discard=True))
    assert fetcher.discarded == [entry.kind]


def test_local_entry_builds_from_its_own_tree(tmp_path: Path) -> None:
    """Test that a local checkout is configured in place."""
    source = tmp_path / "llvm-project"
    (source / "llvm").mkdir(parents=True)
    (source / "llvm" / "CMakeLists.txt").write_text("", encoding="utf-8")
    runner = FakeBuildRunner()
    entry = Entry(name="mine", kind=Local(path=source))

    _orchestrator(tmp_path, runner=runner).orchestrate(entry, BuildRequest())

    assert str(source / "llvm") in runner.commands[0]


def test_configure_command_adds_optional_flags(tmp_path: Path) -> None:
    """Test ccache/lld detection flags, targets, options and extra args order."""
    settings = BuildSettings(
        targets=("X86", "AArch64"),
        options=(("LLVM_ENABLE_PROJECTS", "clang"),),
        extra_args=("-Wno-dev",),
    )

    cmd = configure_command(
        settings, tmp_path, Path("/opt/llvm"), use_ccache=True, use_lld=True
    )

    assert cmd == [
        "cmake",
        str(tmp_path),
        "-DCMAKE_INSTALL_PREFIX=/opt/llvm",
        "-DCMAKE_BUILD_TYPE=Release",
        "-DLLVM_CCACHE_BUILD=ON",
        "-DLLVM_ENABLE_LLD=ON",
        "-DLLVM_TARGETS_TO_BUILD=X86;AArch64",
        "-DLLVM_ENABLE_PROJECTS=clang",
        "-Wno-dev",
    ]


def test_cmake_source_dir_prefers_llvm_subdirectory(tmp_path: Path) -> None:
    """Test llvm-project layout detection."""
    assert cmake_source_dir(tmp_path) == tmp_path
    (tmp_path / "llvm").mkdir()
    (tmp_path / "llvm" / "CMakeLists.txt").write_text("", encoding="utf-8")
    assert cmake_source_dir(tmp_path) == tmp_path / "llvm"
