"""Entries describe how to obtain and compile LLVM/Clang.

Entries live in <config_dir>/entry.toml, one table per entry:

    [llvm-main]
    url = "https://github.com/llvm/llvm-project.git"
    revision = "main"
    target = ["X86"]
    generator = "Ninja"

    [llvm-main.option]
    LLVM_ENABLE_PROJECTS = "clang;lld"

    [my-local-llvm]
    path = "~/src/llvm-project"

An entry is *local* when it has a `path` and *remote* when it has a `url`.
Remote URLs are classified into archives and version-control repositories
by their file extension unless `kind` says otherwise.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from urllib.parse import urldefrag, urlparse

from llvmenv.core.errors import InvalidEntry

SYSTEM_BUILD_NAME = "system"

ARCHIVE_EXTENSIONS = (".tar.gz", ".tar.xz", ".tar.bz2", ".tgz", ".txz")

OFFICIAL_RELEASE_URL = (
    "https://github.com/llvm/llvm-project/archive/refs/tags/llvmorg-{version}.tar.gz"
)

OFFICIAL_RELEASES = (
    "18.1.0",
    "17.0.2",
    "17.0.0",
    "16.0.6",
    "16.0.0",
    "15.0.7",
    "15.0.0",
    "14.0.6",
    "14.0.0",
    "13.0.0",
    "12.0.1",
    "12.0.0",
    "11.1.0",
    "11.0.0",
    "10.0.1",
    "10.0.0",
)

_ENTRY_KEYS = frozenset(
    {
        "url",
        "path",
        "kind",
        "revision",
        "branch",
        "sha256",
        "target",
        "generator",
        "build_type",
        "option",
        "extra_args",
    }
)


class CMakeGenerator(Enum):
    """CMake generator selection (the -G option)."""

    PLATFORM = "Platform"
    MAKEFILE = "Makefile"
    NINJA = "Ninja"
    VISUAL_STUDIO = "VisualStudio"
    VISUAL_STUDIO_WIN64 = "VisualStudioWin64"

    @staticmethod
    def parse(value: str) -> "CMakeGenerator":
        """Parse a generator name case-insensitively.

        Raises:
            ValueError: If the name is not a supported generator
        """
        match value.lower():
            case "platform":
                return CMakeGenerator.PLATFORM
            case "makefile" | "makefiles" | "make":
                return CMakeGenerator.MAKEFILE
            case "ninja":
                return CMakeGenerator.NINJA
            case "visualstudio" | "vs":
                return CMakeGenerator.VISUAL_STUDIO
            case "visualstudiowin64" | "vs64":
                return CMakeGenerator.VISUAL_STUDIO_WIN64
        raise ValueError(f"Unsupported CMake generator: {value}")

    def configure_args(self) -> list[str]:
        match self:
            case CMakeGenerator.PLATFORM:
                return []
            case CMakeGenerator.MAKEFILE:
                return ["-G", "Unix Makefiles"]
            case CMakeGenerator.NINJA:
                return ["-G", "Ninja"]
            case CMakeGenerator.VISUAL_STUDIO:
                return ["-G", "Visual Studio 15 2017"]
            case CMakeGenerator.VISUAL_STUDIO_WIN64:
                return ["-G", "Visual Studio 15 2017 Win64", "-Thost=x64"]

    def build_args(self, jobs: int, build_type: "BuildType") -> list[str]:
        """Arguments appended to `cmake --build <dir>`."""
        match self:
            case CMakeGenerator.VISUAL_STUDIO | CMakeGenerator.VISUAL_STUDIO_WIN64:
                return ["--config", build_type.value]
            case CMakeGenerator.MAKEFILE | CMakeGenerator.NINJA:
                return ["--", "-j", str(jobs)]
            case CMakeGenerator.PLATFORM:
                return []


class BuildType(Enum):
    """Value of CMAKE_BUILD_TYPE."""

    DEBUG = "Debug"
    RELEASE = "Release"
    REL_WITH_DEB_INFO = "RelWithDebInfo"
    MIN_SIZE_REL = "MinSizeRel"

    @staticmethod
    def parse(value: str) -> "BuildType":
        for build_type in BuildType:
            if build_type.value.lower() == value.lower():
                return build_type
        raise ValueError(f"Unsupported build type: {value}")


@dataclass(frozen=True)
class RemoteArchive:
    url: str
    sha256: str | None = None


@dataclass(frozen=True)
class RemoteVcs:
    url: str
    revision: str | None = None


@dataclass(frozen=True)
class Local:
    path: Path


EntryKind = RemoteArchive | RemoteVcs | Local


@dataclass(frozen=True)
class BuildSettings:
    """How an entry is configured; options and extra_args are forwarded verbatim."""

    generator: CMakeGenerator = CMakeGenerator.PLATFORM
    build_type: BuildType = BuildType.RELEASE
    targets: tuple[str, ...] = ()
    options: tuple[tuple[str, str], ...] = ()
    extra_args: tuple[str, ...] = ()


@dataclass(frozen=True)
class Entry:
    """A named, immutable build recipe."""

    name: str
    kind: EntryKind
    settings: BuildSettings = field(default_factory=BuildSettings)

    @property
    def source(self) -> str:
        """URL or path the source comes from (for display)."""
        match self.kind:
            case RemoteArchive(url=url) | RemoteVcs(url=url):
                return url
            case Local(path=path):
                return str(path)

    @property
    def kind_label(self) -> str:
        match self.kind:
            case RemoteArchive():
                return "archive"
            case RemoteVcs():
                return "git"
            case Local():
                return "local"


def validate_entry_name(name: str) -> None:
    """Ensure a name can key the registry and name a build directory.

    Raises:
        InvalidEntry: If the name is empty, reserved, or not a single path component
    """
    if not name or not name.strip():
        raise InvalidEntry(name, "name must not be empty")
    if name == SYSTEM_BUILD_NAME:
        raise InvalidEntry(name, f"'{SYSTEM_BUILD_NAME}' is reserved for the system toolchain")
    if name.startswith("."):
        raise InvalidEntry(name, "name must not start with '.'")
    if "/" in name or "\\" in name:
        raise InvalidEntry(name, "name must not contain path separators")


def classify_url(name: str, url: str, *, kind: str | None = None) -> EntryKind:
    """Decide whether a URL points at an archive or a git repository.

    A fragment (`...#release/17.x`) selects the revision of a repository.

    Args:
        name: Entry name (for error messages)
        url: Remote URL from the entry
        kind: Explicit "archive" or "git" to skip detection

    Returns:
        RemoteArchive or RemoteVcs
    """
    parsed = urlparse(url)
    if not parsed.scheme or not (parsed.netloc or parsed.scheme == "file"):
        raise InvalidEntry(name, f"invalid URL: {url}")

    if kind is not None:
        match kind.lower():
            case "archive" | "tar":
                return RemoteArchive(url=url)
            case "git" | "vcs":
                base, fragment = urldefrag(url)
                return RemoteVcs(url=base, revision=fragment or None)
        raise InvalidEntry(name, f"unknown kind '{kind}' (expected 'archive' or 'git')")

    filename = parsed.path.rsplit("/", 1)[-1]
    if filename.endswith(ARCHIVE_EXTENSIONS):
        return RemoteArchive(url=url)

    base, fragment = urldefrag(url)
    return RemoteVcs(url=base, revision=fragment or None)


def _string_list(name: str, data: dict, key: str) -> tuple[str, ...]:
    value = data.get(key, [])
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise InvalidEntry(name, f"'{key}' must be a list of strings")
    return tuple(value)


def parse_entry(name: str, data: dict) -> Entry:
    """Normalize one TOML table into an Entry.

    Args:
        name: Table key
        data: Table contents

    Returns:
        The parsed Entry

    Raises:
        InvalidEntry: If the table is not a valid entry description
    """
    validate_entry_name(name)
    if not isinstance(data, dict):
        raise InvalidEntry(name, "entry must be a table")

    unknown = sorted(set(data) - _ENTRY_KEYS)
    if unknown:
        raise InvalidEntry(name, f"unknown keys: {', '.join(unknown)}")

    url = data.get("url")
    path = data.get("path")
    if url is not None and path is not None:
        raise InvalidEntry(name, "only one of 'url' or 'path' is allowed")
    if url is None and path is None:
        raise InvalidEntry(name, "one of 'url' or 'path' is required")

    kind: EntryKind
    if path is not None:
        if not isinstance(path, str):
            raise InvalidEntry(name, "'path' must be a string")
        kind = Local(path=Path(path).expanduser())
    else:
        if not isinstance(url, str):
            raise InvalidEntry(name, "'url' must be a string")
        kind = classify_url(name, url, kind=data.get("kind"))
        revision = data.get("revision", data.get("branch"))
        if revision is not None:
            if not isinstance(kind, RemoteVcs):
                raise InvalidEntry(name, "'revision' only applies to git entries")
            kind = RemoteVcs(url=kind.url, revision=str(revision))
        sha256 = data.get("sha256")
        if sha256 is not None:
            if not isinstance(kind, RemoteArchive):
                raise InvalidEntry(name, "'sha256' only applies to archive entries")
            kind = RemoteArchive(url=kind.url, sha256=str(sha256).lower())

    try:
        generator = CMakeGenerator.parse(str(data.get("generator", "Platform")))
        build_type = BuildType.parse(str(data.get("build_type", "Release")))
    except ValueError as e:
        raise InvalidEntry(name, str(e)) from e

    option = data.get("option", {})
    if not isinstance(option, dict):
        raise InvalidEntry(name, "'option' must be a table")
    options = tuple((str(k), _option_value(v)) for k, v in option.items())

    settings = BuildSettings(
        generator=generator,
        build_type=build_type,
        targets=_string_list(name, data, "target"),
        options=options,
        extra_args=_string_list(name, data, "extra_args"),
    )
    return Entry(name=name, kind=kind, settings=settings)


def _option_value(value: object) -> str:
    if isinstance(value, bool):
        return "ON" if value else "OFF"
    return str(value)


def entry_to_table(entry: Entry) -> dict:
    """Inverse of parse_entry: the TOML table that describes `entry`."""
    table: dict = {}
    match entry.kind:
        case RemoteArchive(url=url, sha256=sha256):
            table["url"] = url
            if not url.endswith(ARCHIVE_EXTENSIONS):
                table["kind"] = "archive"
            if sha256 is not None:
                table["sha256"] = sha256
        case RemoteVcs(url=url, revision=revision):
            table["url"] = url
            if url.endswith(ARCHIVE_EXTENSIONS):
                table["kind"] = "git"
            if revision is not None:
                table["revision"] = revision
        case Local(path=path):
            table["path"] = str(path)

    settings = entry.settings
    if settings.targets:
        table["target"] = list(settings.targets)
    if settings.generator is not CMakeGenerator.PLATFORM:
        table["generator"] = settings.generator.value
    if settings.build_type is not BuildType.RELEASE:
        table["build_type"] = settings.build_type.value
    if settings.extra_args:
        table["extra_args"] = list(settings.extra_args)
    if settings.options:
        table["option"] = dict(settings.options)
    return table


def official_entry(version: str) -> Entry:
    """Entry for an official LLVM release tarball."""
    return Entry(
        name=version,
        kind=RemoteArchive(url=OFFICIAL_RELEASE_URL.format(version=version)),
        settings=BuildSettings(options=(("LLVM_ENABLE_PROJECTS", "clang"),)),
    )


def official_releases() -> list[Entry]:
    return [official_entry(version) for version in OFFICIAL_RELEASES]


# ============================================================================
# Version requirements
# ============================================================================

_VERSION_NAME = re.compile(r"^(\d+)\.(\d+)\.(\d+)$")
_REQUIREMENT = re.compile(r"^([=^~])?(\d+)(?:\.(\d+))?(?:\.(\d+))?$")


def parse_version_name(name: str) -> tuple[int, int, int] | None:
    """Parse an entry name like "17.0.6" into a version tuple."""
    match = _VERSION_NAME.match(name)
    if match is None:
        return None
    return (int(match.group(1)), int(match.group(2)), int(match.group(3)))


def requirement_matches(query: str, version: tuple[int, int, int]) -> bool:
    """Check a version against a requirement like "17", "~17.0" or "=17.0.6".

    Bare and "=" requirements match every version sharing the given
    components. "^" pins the major version, "~" pins major and minor; both
    accept any version at or above the one given.
    """
    match = _REQUIREMENT.match(query.strip())
    if match is None:
        return False

    op = match.group(1) or "="
    given = [int(g) for g in match.groups()[1:] if g is not None]

    match op:
        case "=":
            return list(version[: len(given)]) == given
        case "^":
            return version[0] == given[0] and list(version) >= given
        case "~":
            pinned = given[:2]
            return list(version[: len(pinned)]) == pinned and list(version) >= given
    return False


def is_version_requirement(query: str) -> bool:
    return _REQUIREMENT.match(query.strip()) is not None
