"""Scoped locks and scratch directories.

Both helpers are context managers so cleanup runs on every exit path,
including KeyboardInterrupt raised while a fetch or compile is running.
"""

import fcntl
import logging
import shutil
import tempfile
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

logger = logging.getLogger(__name__)

LOCKS_DIR = ".locks"


def lock_path_for(data_root: Path, name: str) -> Path:
    return data_root / LOCKS_DIR / f"{name}.lock"


class LockUnavailable(Exception):
    """Raised by exclusive_lock when the lock is held and blocking is off."""


@contextmanager
def exclusive_lock(path: Path, *, blocking: bool) -> Generator[None]:
    """Hold an exclusive flock on `path` for the duration of the block.

    The lock file itself is left in place; only the lock is released.

    Args:
        path: Lock file to create/open
        blocking: Wait for the lock instead of failing immediately

    Raises:
        LockUnavailable: If the lock is held elsewhere and blocking is False
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a") as handle:
        flags = fcntl.LOCK_EX if blocking else fcntl.LOCK_EX | fcntl.LOCK_NB
        try:
            fcntl.flock(handle.fileno(), flags)
        except BlockingIOError:
            raise LockUnavailable(str(path)) from None
        logger.debug("Acquired lock %s", path)
        try:
            yield
        finally:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
            logger.debug("Released lock %s", path)


@contextmanager
def scratch_directory(parent: Path, prefix: str, *, keep: bool) -> Generator[Path]:
    """Create a temporary working directory and remove it on exit.

    Args:
        parent: Directory to create the scratch dir in
        prefix: Name prefix (usually the entry name)
        keep: Leave the directory in place for debugging

    Yields:
        Path to the new, empty directory
    """
    parent.mkdir(parents=True, exist_ok=True)
    path = Path(tempfile.mkdtemp(prefix=f"{prefix}-", dir=parent))
    logger.debug("Created scratch directory %s", path)
    try:
        yield path
    finally:
        if keep:
            logger.info("Keeping build tree at %s", path)
        else:
            remove_tree(path)


def remove_tree(path: Path) -> None:
    """Remove a directory tree if it exists; symlinks are unlinked, not followed."""
    if path.is_symlink() or path.is_file():
        path.unlink()
    elif path.exists():
        shutil.rmtree(path)


def make_hidden_dir(parent: Path, prefix: str) -> Path:
    """Create a uniquely named dot-directory, ignored by the build registry scan."""
    parent.mkdir(parents=True, exist_ok=True)
    return Path(tempfile.mkdtemp(prefix=f".{prefix}-", dir=parent))


def hidden_dirs(parent: Path, prefix: str) -> list[Path]:
    """Directories that make_hidden_dir(parent, prefix) created.

    The random suffix mkdtemp appends never contains "-", so for prefix
    "staging-llvm" this matches ".staging-llvm-x1y2" but not
    ".staging-llvm-main-x1y2", which belongs to "staging-llvm-main".
    """
    if not parent.is_dir():
        return []
    head = f".{prefix}-"
    return [
        child
        for child in parent.iterdir()
        if child.name.startswith(head) and "-" not in child.name[len(head) :]
    ]


def relative_to_anchor(path: Path) -> Path:
    """Strip the filesystem anchor so `path` can be joined under DESTDIR."""
    return Path(*path.parts[1:]) if path.is_absolute() else path

