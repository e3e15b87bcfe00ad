"""Installed builds, derived from the data root directory.

Each subdirectory of the data root is one build, named after its entry. The
directory listing is the only source of truth: nothing is cached, so a crash
can never leave an in-memory registry out of sync with disk.

A directory counts as INSTALLED only when it holds the install marker and a
`bin` directory. Anything else (an interrupted copy, a hand-made directory)
is listed as FAILED instead of being trusted.
"""

import logging
import os
import tomllib
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path

import tomlkit

from llvmenv.core.entry import SYSTEM_BUILD_NAME, Entry
from llvmenv.core.errors import BuildInProgress, BuildNotFound, CannotRemoveSystem
from llvmenv.core.locking import (
    LockUnavailable,
    exclusive_lock,
    hidden_dirs,
    lock_path_for,
    make_hidden_dir,
    remove_tree,
)

logger = logging.getLogger(__name__)

INSTALL_MARKER = ".llvmenv-build.toml"
SYSTEM_PREFIX = Path("/usr")
STAGING_PREFIX = "staging"
RETIRED_PREFIX = "retired"


class BuildState(Enum):
    NOT_BUILT = "not-built"
    BUILDING = "building"
    INSTALLED = "installed"
    FAILED = "failed"


@dataclass(frozen=True)
class BuildMetadata:
    """Contents of the install marker written when a build lands."""

    entry: str
    kind: str
    source: str
    built_at: str
    build_type: str
    generator: str

    @staticmethod
    def for_entry(entry: Entry) -> "BuildMetadata":
        return BuildMetadata(
            entry=entry.name,
            kind=entry.kind_label,
            source=entry.source,
            built_at=datetime.now(UTC).isoformat(timespec="seconds"),
            build_type=entry.settings.build_type.value,
            generator=entry.settings.generator.value,
        )


@dataclass(frozen=True)
class Build:
    name: str
    install_path: Path
    state: BuildState
    metadata: BuildMetadata | None = None

    @property
    def is_system(self) -> bool:
        return self.name == SYSTEM_BUILD_NAME

    @property
    def bin_dir(self) -> Path:
        return self.install_path / "bin"


def write_install_marker(directory: Path, metadata: BuildMetadata) -> None:
    doc = tomlkit.document()
    doc.add(tomlkit.comment("Written by llvmenv when this build was installed"))
    doc["entry"] = metadata.entry
    doc["kind"] = metadata.kind
    doc["source"] = metadata.source
    doc["built_at"] = metadata.built_at
    doc["build_type"] = metadata.build_type
    doc["generator"] = metadata.generator
    (directory / INSTALL_MARKER).write_text(tomlkit.dumps(doc), encoding="utf-8")


def read_install_marker(directory: Path) -> BuildMetadata | None:
    """Read the install marker, or None when it is missing or unreadable."""
    marker = directory / INSTALL_MARKER
    try:
        data = tomllib.loads(marker.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, tomllib.TOMLDecodeError):
        return None

    fields = ("entry", "kind", "source", "built_at", "build_type", "generator")
    if not all(isinstance(data.get(key), str) for key in fields):
        return None
    return BuildMetadata(**{key: data[key] for key in fields})


def classify(directory: Path) -> tuple[BuildState, BuildMetadata | None]:
    metadata = read_install_marker(directory)
    if metadata is None or not (directory / "bin").is_dir():
        return BuildState.FAILED, metadata
    return BuildState.INSTALLED, metadata


class BuildRegistry:
    """Read-through view of the builds under a data root, plus `system`."""

    def __init__(self, data_root: Path, system_prefix: Path = SYSTEM_PREFIX) -> None:
        self._data_root = data_root
        self._system_prefix = system_prefix

    @property
    def data_root(self) -> Path:
        return self._data_root

    def system_build(self) -> Build:
        return Build(
            name=SYSTEM_BUILD_NAME,
            install_path=self._system_prefix,
            state=BuildState.INSTALLED,
        )

    def install_path_for(self, name: str) -> Path:
        return self._data_root / name

    def _load(self, directory: Path) -> Build:
        state, metadata = classify(directory)
        return Build(name=directory.name, install_path=directory, state=state, metadata=metadata)

    def get(self, name: str) -> Build:
        """Look up a build by name.

        Raises:
            BuildNotFound: If no directory exists for `name`
        """
        if name == SYSTEM_BUILD_NAME:
            return self.system_build()
        if not name or name.startswith(".") or "/" in name:
            raise BuildNotFound(name)

        directory = self.install_path_for(name)
        if not directory.is_dir():
            raise BuildNotFound(name)
        return self._load(directory)

    def exists(self, name: str) -> bool:
        try:
            self.get(name)
        except BuildNotFound:
            return False
        return True

    def status(self, name: str) -> BuildState:
        """State of `name`, including builds that do not exist yet.

        NOT_BUILT when nothing is on disk, BUILDING while a staging directory
        for the name exists without a final directory.
        """
        if name == SYSTEM_BUILD_NAME:
            return BuildState.INSTALLED
        directory = self.install_path_for(name)
        if directory.is_dir():
            return classify(directory)[0]
        if hidden_dirs(self._data_root, f"{STAGING_PREFIX}-{name}"):
            return BuildState.BUILDING
        return BuildState.NOT_BUILT

    def remove(self, name: str) -> None:
        """Delete a build directory.

        The directory is first renamed out of the way, so a concurrent prefix
        resolution sees either the whole build or none of it.

        Raises:
            CannotRemoveSystem: For the `system` pseudo-build
            BuildNotFound: If the build does not exist
            BuildInProgress: If a build of the same name is running
        """
        if name == SYSTEM_BUILD_NAME:
            raise CannotRemoveSystem()
        build = self.get(name)

        try:
            with exclusive_lock(lock_path_for(self._data_root, name), blocking=False):
                retired = make_hidden_dir(self._data_root, f"{RETIRED_PREFIX}-{name}")
                os.replace(build.install_path, retired / name)
                logger.info("Removing build %s", build.install_path)
                remove_tree(retired)
        except LockUnavailable:
            raise BuildInProgress(name) from None

    def adopt(self, name: str, staged: Path) -> Build:
        """Move a finished tree into place as build `name`.

        The caller holds the per-name lock. An existing build is renamed
        aside first and restored if the move fails, and deleted only once
        the new tree has landed.

        Raises:
            OSError: If the tree cannot be moved into the data root
        """
        install_path = self.install_path_for(name)
        if not install_path.exists():
            os.replace(staged, install_path)
            return self.get(name)

        retired = make_hidden_dir(self._data_root, f"{RETIRED_PREFIX}-{name}")
        os.replace(install_path, retired / name)
        try:
            os.replace(staged, install_path)
        except OSError:
            os.replace(retired / name, install_path)
            remove_tree(retired)
            raise
        logger.info("Replaced previous build of '%s'", name)
        remove_tree(retired)
        return self.get(name)

    # Keep last: shadows the builtin `list` for the rest of the class body.
    def list(self) -> list[Build]:
        """`system` followed by every build directory in name order."""
        builds = [self.system_build()]
        if not self._data_root.is_dir():
            return builds
        for child in sorted(self._data_root.iterdir(), key=lambda p: p.name):
            if child.name.startswith(".") or not child.is_dir():
                continue
            if child.name == SYSTEM_BUILD_NAME:
                continue
            builds.append(self._load(child))
        return builds
