"""Select the active build and derive its environment.

Resolution order:
1. The nearest `.llvmenv` override file, walking from cwd up to the root
2. The global default marker in the config directory
3. Otherwise NoActiveBuild; there is no silent fallback to `system`

Resolution only reads files. It takes no locks, so it is safe to run on
every shell prompt, and a build removed concurrently surfaces as
UnknownBuild instead of a crash.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from llvmenv.core.build_registry import Build, BuildRegistry, BuildState
from llvmenv.core.errors import BuildNotFound, InvalidOverride, NoActiveBuild, UnknownBuild
from llvmenv.core.version import BuildVersion

logger = logging.getLogger(__name__)

OVERRIDE_FILE = ".llvmenv"
PREFIX_ENV = "LLVMENV_PREFIX"


class PrefixFilesystem(ABC):
    """The handful of file operations override markers need."""

    @abstractmethod
    def is_file(self, path: Path) -> bool: ...

    @abstractmethod
    def read_text(self, path: Path) -> str:
        """Read a marker file.

        Raises:
            OSError: If the file vanished or cannot be read
            UnicodeDecodeError: If the file is not UTF-8 text
        """
        ...

    @abstractmethod
    def write_text(self, path: Path, content: str) -> None: ...

    @abstractmethod
    def unlink(self, path: Path) -> bool:
        """Delete a marker file; returns False when there was nothing to delete."""
        ...


class RealPrefixFilesystem(PrefixFilesystem):
    def is_file(self, path: Path) -> bool:
        return path.is_file()

    def read_text(self, path: Path) -> str:
        return path.read_text(encoding="utf-8")

    def write_text(self, path: Path, content: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")

    def unlink(self, path: Path) -> bool:
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True


class ResolutionScope(Enum):
    LOCAL = "local"
    GLOBAL = "global"


@dataclass(frozen=True)
class Selection:
    """A build name together with the marker file that selected it."""

    name: str
    source: Path
    scope: ResolutionScope


@dataclass(frozen=True)
class Resolution:
    build: Build
    source: Path
    scope: ResolutionScope

    @property
    def prefix(self) -> Path:
        return self.build.install_path


def parse_marker(content: str) -> str | None:
    """First non-empty line of a marker file, stripped."""
    for line in content.splitlines():
        name = line.strip()
        if name:
            return name
    return None


class PrefixResolver:
    """Answers "which build is active here" and edits the override markers."""

    def __init__(
        self,
        filesystem: PrefixFilesystem,
        builds: BuildRegistry,
        global_marker: Path,
    ) -> None:
        self._fs = filesystem
        self._builds = builds
        self._global_marker = global_marker

    @property
    def global_marker(self) -> Path:
        return self._global_marker

    def _read_marker(self, path: Path) -> str | None:
        """Name stored in a marker, None if it disappeared while reading."""
        try:
            content = self._fs.read_text(path)
        except FileNotFoundError:
            return None
        except UnicodeDecodeError:
            raise InvalidOverride(path) from None
        name = parse_marker(content)
        if name is None:
            raise InvalidOverride(path)
        return name

    def resolve_name(self, cwd: Path) -> Selection:
        """Find the selected build name without consulting the build registry.

        Raises:
            InvalidOverride: If the nearest marker is empty or not UTF-8 text
            NoActiveBuild: If neither an override nor a global default exists
        """
        for directory in (cwd, *cwd.parents):
            marker = directory / OVERRIDE_FILE
            if not self._fs.is_file(marker):
                continue
            name = self._read_marker(marker)
            if name is not None:
                logger.debug("Override %s selects '%s'", marker, name)
                return Selection(name=name, source=marker, scope=ResolutionScope.LOCAL)

        if self._fs.is_file(self._global_marker):
            name = self._read_marker(self._global_marker)
            if name is not None:
                logger.debug("Global default %s selects '%s'", self._global_marker, name)
                return Selection(
                    name=name, source=self._global_marker, scope=ResolutionScope.GLOBAL
                )

        raise NoActiveBuild()

    def resolve(self, cwd: Path) -> Resolution:
        """Resolve the active build for `cwd`.

        Raises:
            UnknownBuild: If the selected name has no installed build
            InvalidOverride: If the nearest marker is empty or not UTF-8 text
            NoActiveBuild: If nothing selects a build
        """
        selection = self.resolve_name(cwd)
        try:
            build = self._builds.get(selection.name)
        except BuildNotFound:
            raise UnknownBuild(selection.name, selection.source) from None
        if build.state is not BuildState.INSTALLED:
            raise UnknownBuild(selection.name, selection.source)
        return Resolution(build=build, source=selection.source, scope=selection.scope)

    def _require_build(self, name: str) -> None:
        if not self._builds.exists(name):
            raise BuildNotFound(name)

    def set_local(self, directory: Path, name: str) -> Path:
        """Pin `directory` (and everything below it) to `name`.

        Raises:
            BuildNotFound: If no build called `name` exists
        """
        self._require_build(name)
        marker = directory / OVERRIDE_FILE
        self._fs.write_text(marker, name + "\n")
        logger.debug("Wrote %s", marker)
        return marker

    def unset_local(self, directory: Path) -> bool:
        return self._fs.unlink(directory / OVERRIDE_FILE)

    def set_global(self, name: str) -> Path:
        self._require_build(name)
        self._fs.write_text(self._global_marker, name + "\n")
        logger.debug("Wrote %s", self._global_marker)
        return self._global_marker

    def unset_global(self) -> bool:
        return self._fs.unlink(self._global_marker)

    def global_name(self) -> str | None:
        """The global default, or None when unset."""
        if not self._fs.is_file(self._global_marker):
            return None
        return self._read_marker(self._global_marker)


def rust_binding_variable(version: BuildVersion) -> str:
    """Prefix variable the llvm-sys crate checks for this LLVM version."""
    return f"LLVM_SYS_{version.major}{version.minor}_PREFIX"


def derive_environment(
    prefix: Path,
    *,
    base_path: str,
    rust_binding_version: BuildVersion | None = None,
) -> dict[str, str]:
    """Environment variables that activate the build installed at `prefix`.

    Pure: no filesystem access, the caller supplies everything.

    Args:
        prefix: Install prefix of the resolved build
        base_path: Current PATH value to prepend to
        rust_binding_version: Version of the build when the rust binding
            toggle is on; adds the llvm-sys discovery variable

    Returns:
        Mapping of variable name to value, in a stable order
    """
    bin_dir = str(prefix / "bin")
    env = {
        "PATH": f"{bin_dir}:{base_path}" if base_path else bin_dir,
        PREFIX_ENV: str(prefix),
    }
    if rust_binding_version is not None:
        env[rust_binding_variable(rust_binding_version)] = str(prefix)
    return env
