"""Registry of build entries keyed by name.

Architecture:
- EntryStore: Abstract persistence interface
- FilesystemEntryStore: entry.toml in the config dir (tomllib read, tomlkit write)
- InMemoryEntryStore: Test implementation
- EntryRegistry: list/get/find/upsert/remove/seed on top of a store

Re-registering an existing name silently replaces the whole entry.
"""

import tomllib
from abc import ABC, abstractmethod
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

import tomlkit
from tomlkit.items import Table

from llvmenv.core.entry import (
    Entry,
    entry_to_table,
    is_version_requirement,
    parse_entry,
    parse_version_name,
    requirement_matches,
    validate_entry_name,
)
from llvmenv.core.errors import CorruptRegistry, EntryNotFound, InvalidEntry
from llvmenv.core.locking import exclusive_lock


class EntryStore(ABC):
    """Abstract persistence for the full set of entries."""

    @abstractmethod
    def load(self) -> list[Entry]:
        """Load every entry, in persisted order.

        Raises:
            CorruptRegistry: If persisted data is unreadable or malformed
        """
        ...

    @abstractmethod
    def save(self, entries: list[Entry]) -> None:
        """Persist exactly `entries`, in order."""
        ...

    @abstractmethod
    @contextmanager
    def locked(self) -> Generator[None]:
        """Serialize a read-modify-write cycle against other processes."""
        ...

    @abstractmethod
    def path(self) -> Path:
        """Location of the persisted document (for messages)."""
        ...


class FilesystemEntryStore(EntryStore):
    """Entries stored as TOML tables in a single file."""

    def __init__(self, path: Path) -> None:
        self._path = path

    def path(self) -> Path:
        return self._path

    def _lock_path(self) -> Path:
        return self._path.with_name(self._path.name + ".lock")

    @contextmanager
    def locked(self) -> Generator[None]:
        with exclusive_lock(self._lock_path(), blocking=True):
            yield

    def load(self) -> list[Entry]:
        if not self._path.exists():
            return []

        try:
            data = tomllib.loads(self._path.read_text(encoding="utf-8"))
        except (tomllib.TOMLDecodeError, UnicodeDecodeError) as e:
            raise CorruptRegistry(self._path, str(e)) from e

        entries: list[Entry] = []
        for name, table in data.items():
            if not isinstance(table, dict):
                raise CorruptRegistry(self._path, f"'{name}' is not a table")
            try:
                entries.append(parse_entry(name, table))
            except InvalidEntry as e:
                raise CorruptRegistry(self._path, e.message + f" (entry '{name}')") from e
        return entries

    def save(self, entries: list[Entry]) -> None:
        """Write entries, keeping comments and layout of unchanged tables."""
        if self._path.exists():
            doc = tomlkit.parse(self._path.read_text(encoding="utf-8"))
        else:
            doc = tomlkit.document()

        names = {entry.name for entry in entries}
        for key in list(doc.keys()):
            if key not in names:
                del doc[key]

        for entry in entries:
            existing = doc.get(entry.name)
            if existing is not None and _same_entry(entry, existing.unwrap()):
                continue
            if existing is not None:
                doc[entry.name] = _toml_table(entry)
            else:
                doc.add(entry.name, _toml_table(entry))

        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        tmp_path.write_text(tomlkit.dumps(doc), encoding="utf-8")
        tmp_path.replace(self._path)


def _same_entry(entry: Entry, table: object) -> bool:
    if not isinstance(table, dict):
        return False
    try:
        return parse_entry(entry.name, table) == entry
    except InvalidEntry:
        return False


def _toml_table(entry: Entry) -> Table:
    table = tomlkit.table()
    for key, value in entry_to_table(entry).items():
        if key == "option":
            options = tomlkit.table()
            for option_key, option_value in value.items():
                options.add(option_key, option_value)
            table.add("option", options)
        else:
            table.add(key, value)
    return table


class InMemoryEntryStore(EntryStore):
    """Test implementation holding entries in a list."""

    def __init__(self, entries: list[Entry] | None = None) -> None:
        self._entries = list(entries or [])
        self._save_count = 0

    @property
    def save_count(self) -> int:
        """Number of save() calls (for test assertions)."""
        return self._save_count

    def path(self) -> Path:
        return Path("/fake/llvmenv/entry.toml")

    @contextmanager
    def locked(self) -> Generator[None]:
        yield

    def load(self) -> list[Entry]:
        return list(self._entries)

    def save(self, entries: list[Entry]) -> None:
        self._entries = list(entries)
        self._save_count += 1


class EntryRegistry:
    """Name-keyed entries, loaded eagerly from a store.

    Mutations re-read the store under its lock before writing, so concurrent
    processes never lose each other's changes.
    """

    def __init__(self, store: EntryStore) -> None:
        self._store = store
        self._entries = store.load()

    @property
    def store(self) -> EntryStore:
        return self._store

    def get(self, name: str) -> Entry:
        for entry in self._entries:
            if entry.name == name:
                return entry
        raise EntryNotFound(name)

    def find(self, query: str) -> Entry:
        """Look up by exact name, falling back to a version requirement.

        For a requirement such as "17" or "~16.0", the entry with the highest
        version-shaped name that satisfies it wins.

        Raises:
            EntryNotFound: If neither lookup matches
        """
        for entry in self._entries:
            if entry.name == query:
                return entry

        if not is_version_requirement(query):
            raise EntryNotFound(query)

        best: tuple[tuple[int, int, int], Entry] | None = None
        for entry in self._entries:
            version = parse_version_name(entry.name)
            if version is None or not requirement_matches(query, version):
                continue
            if best is None or version > best[0]:
                best = (version, entry)

        if best is None:
            raise EntryNotFound(query)
        return best[1]

    def upsert(self, entry: Entry) -> None:
        """Insert `entry`, replacing any entry with the same name in place."""
        validate_entry_name(entry.name)
        with self._store.locked():
            entries = self._store.load()
            for index, existing in enumerate(entries):
                if existing.name == entry.name:
                    entries[index] = entry
                    break
            else:
                entries.append(entry)
            self._store.save(entries)
            self._entries = entries

    def remove(self, name: str) -> None:
        with self._store.locked():
            entries = self._store.load()
            remaining = [entry for entry in entries if entry.name != name]
            if len(remaining) == len(entries):
                raise EntryNotFound(name)
            self._store.save(remaining)
            self._entries = remaining

    def seed(self, entries: list[Entry]) -> list[str]:
        """Add the given entries whose names are not yet registered.

        Returns:
            Names that were added, in order
        """
        with self._store.locked():
            current = self._store.load()
            known = {entry.name for entry in current}
            added = [entry for entry in entries if entry.name not in known]
            if added:
                current.extend(added)
                self._store.save(current)
            self._entries = current
        return [entry.name for entry in added]

    # Keep last: shadows the builtin `list` for the rest of the class body.
    def list(self) -> list[Entry]:
        return list(self._entries)
