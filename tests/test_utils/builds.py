"""Helpers for laying out data roots and contexts in tests."""

from pathlib import Path

from llvmenv.core.build_registry import BuildMetadata, write_install_marker
from llvmenv.core.context import LlvmenvContext
from llvmenv.core.entry import Entry, RemoteArchive
from llvmenv.core.global_config import GlobalConfig


def config_in(tmp_path: Path, *, rust_binding: bool = False) -> GlobalConfig:
    """GlobalConfig rooted in tmp_path."""
    return GlobalConfig(
        data_root=tmp_path / "data",
        cache_root=tmp_path / "cache",
        rust_binding=rust_binding,
        default_jobs=None,
    )


def archive_entry(name: str) -> Entry:
    return Entry(name=name, kind=RemoteArchive(url=f"https://example.com/{name}.tar.xz"))


def install_build(data_root: Path, name: str) -> Path:
    """Create an INSTALLED build directory the way the orchestrator leaves it."""
    build_dir = data_root / name
    (build_dir / "bin").mkdir(parents=True)
    (build_dir / "bin" / "clang").write_text("#!/bin/sh\n", encoding="utf-8")
    write_install_marker(build_dir, BuildMetadata.for_entry(archive_entry(name)))
    return build_dir


def filesystem_context(tmp_path: Path, **kwargs) -> LlvmenvContext:
    """Test context whose data/cache/config dirs live under tmp_path."""
    kwargs.setdefault("global_config", config_in(tmp_path))
    kwargs.setdefault("config_dir", tmp_path / "config")
    kwargs.setdefault("cwd", tmp_path / "work")
    return LlvmenvContext.for_test(**kwargs)
