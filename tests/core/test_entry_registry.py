"""Tests for EntryRegistry over in-memory and TOML-file stores."""

from pathlib import Path

import pytest

from llvmenv.core.entry import Entry, RemoteArchive, RemoteVcs, official_releases
from llvmenv.core.entry_registry import EntryRegistry, FilesystemEntryStore, InMemoryEntryStore
from llvmenv.core.errors import CorruptRegistry, EntryNotFound, InvalidEntry
from tests.test_utils.builds import archive_entry


def test_list_preserves_insertion_order() -> None:
    """Test that entries come back in the order they were registered."""
    registry = EntryRegistry(InMemoryEntryStore())
    for name in ["zeta", "alpha", "mid"]:
        registry.upsert(archive_entry(name))

    assert [entry.name for entry in registry.list()] == ["zeta", "alpha", "mid"]


def test_get_missing_raises_entry_not_found() -> None:
    """Test that unknown names raise EntryNotFound."""
    registry = EntryRegistry(InMemoryEntryStore())
    with pytest.raises(EntryNotFound):
        registry.get("nope")


def test_upsert_replaces_existing_entry_in_place() -> None:
    """Test that re-registering a name silently replaces the entry."""
    store = InMemoryEntryStore([archive_entry("a"), archive_entry("b")])
    registry = EntryRegistry(store)

    replacement = Entry(name="a", kind=RemoteVcs(url="https://example.com/llvm.git"))
    registry.upsert(replacement)

    assert registry.list() == [replacement, archive_entry("b")]
    assert store.save_count == 1


def test_upsert_rejects_system() -> None:
    """Test that the reserved name cannot be registered."""
    registry = EntryRegistry(InMemoryEntryStore())
    entry = Entry(name="system", kind=RemoteArchive(url="https://example.com/a.tar.xz"))
    with pytest.raises(InvalidEntry):
        registry.upsert(entry)


def test_remove() -> None:
    """Test removal and removal of a missing name."""
    registry = EntryRegistry(InMemoryEntryStore([archive_entry("a")]))
    registry.remove("a")
    assert registry.list() == []
    with pytest.raises(EntryNotFound):
        registry.remove("a")


def test_seed_adds_only_missing_entries() -> None:
    """Test that seeding keeps user entries that share a release name."""
    custom = Entry(name="17.0.2", kind=RemoteVcs(url="https://example.com/fork.git"))
    registry = EntryRegistry(InMemoryEntryStore([custom]))

    added = registry.seed(official_releases())

    assert "17.0.2" not in added
    assert "18.1.0" in added
    assert registry.get("17.0.2") == custom
    assert registry.seed(official_releases()) == []


def test_find_prefers_exact_name_then_highest_matching_version() -> None:
    """Test version-requirement lookup."""
    registry = EntryRegistry(InMemoryEntryStore(official_releases()))

    assert registry.find("16.0.0").name == "16.0.0"
    assert registry.find("16").name == "16.0.6"
    assert registry.find("~17.0").name == "17.0.2"
    assert registry.find("^12.0.1").name == "12.0.1"
    with pytest.raises(EntryNotFound):
        registry.find("9")
    with pytest.raises(EntryNotFound):
        registry.find("llvm-main")


def test_filesystem_store_round_trip(tmp_path: Path) -> None:
    """Test that entries written to entry.toml load back identically."""
    path = tmp_path / "entry.toml"
    registry = EntryRegistry(FilesystemEntryStore(path))
    registry.seed(official_releases()[:3])
    main = RemoteVcs(url="https://x/llvm.git", revision="main")
    registry.upsert(Entry(name="llvm-main", kind=main))

    reloaded = EntryRegistry(FilesystemEntryStore(path))
    assert reloaded.list() == registry.list()


def test_filesystem_store_keeps_comments_and_order_on_replace(tmp_path: Path) -> None:
    """Test that replacing an entry keeps the file's comments and table order."""
    path = tmp_path / "entry.toml"
    path.write_text(
        "# my toolchains\n"
        "[first]\n"
        'url = "https://example.com/first.tar.xz"\n'
        "\n"
        "[second]\n"
        'url = "https://example.com/second.tar.xz"\n',
        encoding="utf-8",
    )
    registry = EntryRegistry(FilesystemEntryStore(path))

    registry.upsert(Entry(name="first", kind=RemoteVcs(url="https://example.com/first.git")))

    content = path.read_text(encoding="utf-8")
    assert content.startswith("# my toolchains")
    assert content.index("[first]") < content.index("[second]")
    assert [entry.name for entry in EntryRegistry(FilesystemEntryStore(path)).list()] == [
        "first",
        "second",
    ]


def test_filesystem_store_missing_file_is_empty(tmp_path: Path) -> None:
    """Test that a missing entry.toml is an empty registry."""
    assert EntryRegistry(FilesystemEntryStore(tmp_path / "entry.toml")).list() == []


def test_corrupt_toml_is_a_hard_failure(tmp_path: Path) -> None:
    """Test that a syntax error raises CorruptRegistry instead of loading partially."""
    path = tmp_path / "entry.toml"
    path.write_text('[ok]\nurl = "https://x/a.tar.gz"\n[broken\n', encoding="utf-8")

    with pytest.raises(CorruptRegistry) as exc_info:
        EntryRegistry(FilesystemEntryStore(path))
    assert exc_info.value.path == path


def test_invalid_entry_in_file_is_corrupt_registry(tmp_path: Path) -> None:
    """Test that a schema violation in one table fails the whole load."""
    path = tmp_path / "entry.toml"
    path.write_text(
        '[ok]\nurl = "https://x/a.tar.gz"\n\n[bad]\npath = "/src"\nurl = "https://x/b.tar.gz"\n',
        encoding="utf-8",
    )

    with pytest.raises(CorruptRegistry) as exc_info:
        EntryRegistry(FilesystemEntryStore(path))
    assert "entry 'bad'" in exc_info.value.reason


def test_mutations_reread_the_file_under_lock(tmp_path: Path) -> None:
    """Test that a second registry instance does not lose the first one's change."""
    path = tmp_path / "entry.toml"
    first = EntryRegistry(FilesystemEntryStore(path))
    second = EntryRegistry(FilesystemEntryStore(path))

    first.upsert(archive_entry("a"))
    second.upsert(archive_entry("b"))

    assert [entry.name for entry in EntryRegistry(FilesystemEntryStore(path)).list()] == ["a", "b"]
