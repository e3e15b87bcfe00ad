"""Fake Fetcher that materializes a tiny source tree instead of downloading."""

from pathlib import Path

from llvmenv.core.entry import EntryKind, Local
from llvmenv.core.errors import FetchError, FetchFailure
from llvmenv.core.fetcher import Fetcher


class FakeFetcher(Fetcher):
    """In-memory fake of source retrieval.

    Remote kinds produce `dest/llvm/CMakeLists.txt` (the llvm-project layout).
    Local kinds return their path unchanged, like the real fetcher.

    Args:
        failure: When set, every fetch raises FetchError with this reason
        interrupt: When True, fetch raises KeyboardInterrupt after creating dest
        os_error: When set, every fetch raises this error, as a full disk would
    """

    def __init__(
        self,
        *,
        failure: FetchFailure | None = None,
        interrupt: bool = False,
        os_error: OSError | None = None,
    ) -> None:
        self._failure = failure
        self._interrupt = interrupt
        self._os_error = os_error
        self._fetched: list[EntryKind] = []
        self._discarded: list[EntryKind] = []

    @property
    def fetched(self) -> list[EntryKind]:
        return self._fetched

    @property
    def discarded(self) -> list[EntryKind]:
        return self._discarded

    def fetch(self, kind: EntryKind, dest: Path) -> Path:
        self._fetched.append(kind)
        if self._failure is not None:
            raise FetchError(self._failure, "simulated failure")
        if self._os_error is not None:
            raise self._os_error
        if isinstance(kind, Local):
            return kind.path

        (dest / "llvm").mkdir(parents=True)
        (dest / "llvm" / "CMakeLists.txt").write_text("project(LLVM)\n", encoding="utf-8")
        if self._interrupt:
            raise KeyboardInterrupt
        return dest

    def discard(self, kind: EntryKind) -> None:
        self._discarded.append(kind)
