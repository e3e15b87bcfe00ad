"""Tests for llvm-config version parsing."""

from pathlib import Path

import pytest

from llvmenv.core.build_registry import Build, BuildState
from llvmenv.core.errors import VersionQueryError
from llvmenv.core.version import BuildVersion, parse_llvm_version, query_build_version
from tests.fakes.build_runner import FakeBuildRunner

BUILD = Build(name="llvm-17", install_path=Path("/data/llvm-17"), state=BuildState.INSTALLED)
LLVM_CONFIG = "/data/llvm-17/bin/llvm-config"


@pytest.mark.parametrize(
    ("output", "expected"),
    [
        ("17.0.6\n", BuildVersion(17, 0, 6)),
        ("18.0.0git\n", BuildVersion(18, 0, 0)),
        ("  6.0.1svn", BuildVersion(6, 0, 1)),
    ],
)
def test_parse_llvm_version(output: str, expected: BuildVersion) -> None:
    """Test that trailing suffixes after the patch number are ignored."""
    assert parse_llvm_version(output) == expected


@pytest.mark.parametrize("output", ["", "unknown", "17.0\n"])
def test_parse_llvm_version_rejects_garbage(output: str) -> None:
    """Test that incomplete versions are not guessed."""
    assert parse_llvm_version(output) is None


def test_query_build_version_runs_llvm_config() -> None:
    """Test that the build's own llvm-config is asked."""
    runner = FakeBuildRunner(captures={LLVM_CONFIG: "17.0.6\n"})

    version = query_build_version(runner, BUILD)

    assert str(version) == "17.0.6"
    assert runner.capture_calls == [[LLVM_CONFIG, "--version"]]


def test_query_build_version_missing_tool() -> None:
    """Test that a build without llvm-config reports a version query error."""
    with pytest.raises(VersionQueryError, match="llvm-17"):
        query_build_version(FakeBuildRunner(), BUILD)


def test_query_build_version_unexpected_output() -> None:
    """Test that unparseable output names what was printed."""
    runner = FakeBuildRunner(captures={LLVM_CONFIG: "whatever"})

    with pytest.raises(VersionQueryError, match="whatever"):
        query_build_version(runner, BUILD)
