"""Query the LLVM version of an installed build through llvm-config."""

import re
from dataclasses import dataclass

from llvmenv.core.build_registry import Build
from llvmenv.core.build_runner import BuildRunner
from llvmenv.core.errors import VersionQueryError

_LEADING_VERSION = re.compile(r"^\s*(\d+)\.(\d+)\.(\d+)")


@dataclass(frozen=True)
class BuildVersion:
    major: int
    minor: int
    patch: int

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"


def parse_llvm_version(output: str) -> BuildVersion | None:
    """Parse `llvm-config --version` output such as `17.0.6` or `18.0.0git`."""
    match = _LEADING_VERSION.match(output)
    if match is None:
        return None
    major, minor, patch = (int(group) for group in match.groups())
    return BuildVersion(major=major, minor=minor, patch=patch)


def query_build_version(runner: BuildRunner, build: Build) -> BuildVersion:
    """Run the build's llvm-config and parse its version.

    Raises:
        VersionQueryError: If llvm-config fails or prints something unexpected
    """
    llvm_config = build.bin_dir / "llvm-config"
    try:
        output = runner.capture([str(llvm_config), "--version"])
    except RuntimeError as e:
        raise VersionQueryError(build.name, str(e)) from e

    version = parse_llvm_version(output)
    if version is None:
        raise VersionQueryError(build.name, f"unexpected llvm-config output: {output.strip()!r}")
    return version
