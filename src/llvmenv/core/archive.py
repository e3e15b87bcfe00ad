"""Pack installed builds into tarballs and unpack them into a data root.

An archive holds exactly one top-level directory, named after the build,
with the install marker inside. Expansion goes through a staging directory
and BuildRegistry.adopt, so a half-extracted archive never shows up as a build.
"""

import logging
import tarfile
from pathlib import Path

from llvmenv.core.build_registry import (
    INSTALL_MARKER,
    Build,
    BuildRegistry,
    BuildState,
)
from llvmenv.core.entry import validate_entry_name
from llvmenv.core.errors import (
    ArchiveError,
    BuildExists,
    BuildInProgress,
    InvalidEntry,
)
from llvmenv.core.locking import (
    LockUnavailable,
    exclusive_lock,
    lock_path_for,
    make_hidden_dir,
    remove_tree,
)

logger = logging.getLogger(__name__)

ARCHIVE_SUFFIX = ".tar.xz"
UNPACK_PREFIX = "unpack"


def archive_build(build: Build, dest_dir: Path) -> Path:
    """Write `<dest_dir>/<name>.tar.xz` containing the build directory.

    Raises:
        ArchiveError: For `system` or a build that is not installed
    """
    if build.is_system:
        raise ArchiveError("The 'system' build cannot be archived")
    if build.state is not BuildState.INSTALLED:
        raise ArchiveError(f"Build '{build.name}' is not installed ({build.state.value})")

    dest_dir.mkdir(parents=True, exist_ok=True)
    target = dest_dir / f"{build.name}{ARCHIVE_SUFFIX}"
    part = target.with_name(target.name + ".part")
    logger.info("Packing %s into %s", build.install_path, target)
    try:
        with tarfile.open(part, "w:xz") as tar:
            tar.add(build.install_path, arcname=build.name)
        part.replace(target)
    finally:
        if part.exists():
            part.unlink()
    return target


def _single_build_dir(staging: Path, archive: Path) -> Path:
    children = list(staging.iterdir())
    if len(children) != 1 or not children[0].is_dir():
        raise ArchiveError(f"{archive} must contain exactly one top-level directory")
    tree = children[0]
    try:
        validate_entry_name(tree.name)
    except InvalidEntry as e:
        raise ArchiveError(f"{archive}: {e.message}") from e
    if not (tree / INSTALL_MARKER).is_file():
        raise ArchiveError(f"{archive} does not contain an llvmenv build")
    return tree


def expand_archive(archive: Path, builds: BuildRegistry, *, force: bool) -> Build:
    """Unpack an archive made by archive_build into the data root.

    Args:
        archive: Path to the tarball
        builds: Registry of the data root to expand into
        force: Replace an existing build of the same name

    Returns:
        The newly installed Build

    Raises:
        ArchiveError: If the archive is unreadable or does not hold one build
        BuildExists: If the build already exists and force is False
        BuildInProgress: If a build of the same name is running
    """
    if not archive.is_file():
        raise ArchiveError(f"Archive {archive} does not exist")

    staging = make_hidden_dir(builds.data_root, UNPACK_PREFIX)
    try:
        logger.info("Unpacking %s", archive)
        try:
            with tarfile.open(archive, "r:*") as tar:
                tar.extractall(staging, filter="data")
        except (tarfile.TarError, EOFError) as e:
            raise ArchiveError(f"Cannot read {archive}: {e}") from e

        tree = _single_build_dir(staging, archive)
        name = tree.name
        try:
            with exclusive_lock(lock_path_for(builds.data_root, name), blocking=False):
                if builds.exists(name) and not force:
                    raise BuildExists(name)
                try:
                    build = builds.adopt(name, tree)
                except OSError as e:
                    raise ArchiveError(f"Cannot install '{name}': {e}") from e
        except LockUnavailable:
            raise BuildInProgress(name) from None
    finally:
        remove_tree(staging)

    logger.info("Expanded '%s' into %s", build.name, build.install_path)
    return build
