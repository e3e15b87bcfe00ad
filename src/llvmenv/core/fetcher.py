"""Materialize an entry's source tree on the local filesystem.

Architecture:
- Fetcher: Abstract interface
- RealFetcher: httpx downloads + tar extraction, git clones, local paths

Downloaded archives are cached under <cache_root>/archives, keyed by a digest
of the URL, so rebuilding a release does not download it again. Partial
downloads are written to a `.part` file and renamed only once complete.
"""

import hashlib
import logging
import re
import tarfile
from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath
from urllib.parse import urlparse

import httpx

from llvmenv.core.entry import EntryKind, Local, RemoteArchive, RemoteVcs
from llvmenv.core.errors import FetchError, FetchFailure
from llvmenv.core.subprocess_utils import run_subprocess_with_context

logger = logging.getLogger(__name__)

_COMMIT_SHA = re.compile(r"^[0-9a-f]{7,40}$")


class DownloadProgress(ABC):
    """Receives progress of one download at a time."""

    @abstractmethod
    def start(self, description: str, total: int | None) -> None: ...

    @abstractmethod
    def advance(self, amount: int) -> None: ...

    @abstractmethod
    def finish(self) -> None:
        """Called once per started download, on success and on failure."""
        ...


class Fetcher(ABC):
    """Abstract interface for obtaining source trees."""

    @abstractmethod
    def fetch(self, kind: EntryKind, dest: Path) -> Path:
        """Materialize the source described by `kind`.

        Args:
            kind: Entry kind describing the source
            dest: Empty directory the source may be placed in

        Returns:
            Path to the source tree (dest for remote kinds, the entry's own
            path for local ones)

        Raises:
            FetchError: On network, missing source or verification failure
        """
        ...

    @abstractmethod
    def discard(self, kind: EntryKind) -> None:
        """Drop any cached download for `kind`."""
        ...


def archive_filename(url: str) -> str:
    name = PurePosixPath(urlparse(url).path).name
    if not name:
        raise FetchError(FetchFailure.NOT_FOUND, f"URL has no file name: {url}")
    return name


def archive_cache_name(url: str) -> str:
    """Cache file name for `url`: a short URL digest, then the file name.

    Entries whose URLs end in the same file name (`main.tar.gz`) still get
    separate cache files.
    """
    digest = hashlib.sha256(url.encode("utf-8")).hexdigest()[:16]
    return f"{digest}-{archive_filename(url)}"


def sha256_of(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            digest.update(chunk)
    return digest.hexdigest()


def extract_stripped(archive: Path, dest: Path) -> None:
    """Extract a tarball into `dest`, dropping its single top-level directory.

    Raises:
        FetchError: If the file is not a readable tar archive, has unsafe
            members, or cannot be written into `dest`
    """
    try:
        dest.mkdir(parents=True, exist_ok=True)
        with tarfile.open(archive, "r:*") as tar:
            members = []
            for member in tar.getmembers():
                parts = PurePosixPath(member.name).parts
                if len(parts) <= 1:
                    continue
                member.name = str(PurePosixPath(*parts[1:]))
                if member.islnk():
                    link_parts = PurePosixPath(member.linkname).parts
                    member.linkname = str(PurePosixPath(*link_parts[1:]))
                members.append(member)
            tar.extractall(dest, members=members, filter="data")
    except (tarfile.TarError, EOFError) as e:
        raise FetchError(FetchFailure.VERIFY, f"cannot extract {archive.name}: {e}") from e
    except OSError as e:
        raise FetchError(
            FetchFailure.VERIFY, f"cannot extract {archive.name} into {dest}: {e}"
        ) from e


class RealFetcher(Fetcher):
    """Production fetcher using httpx for archives and git for repositories."""

    def __init__(
        self,
        cache_root: Path,
        *,
        client: httpx.Client | None = None,
        progress: DownloadProgress | None = None,
    ) -> None:
        self._cache_root = cache_root
        self._client = client
        self._progress = progress

    def fetch(self, kind: EntryKind, dest: Path) -> Path:
        match kind:
            case RemoteArchive():
                return self._fetch_archive(kind, dest)
            case RemoteVcs():
                return self._fetch_vcs(kind, dest)
            case Local(path=path):
                if not path.is_dir():
                    raise FetchError(FetchFailure.NOT_FOUND, f"local source {path} does not exist")
                logger.info("Using local source %s", path)
                return path

    def discard(self, kind: EntryKind) -> None:
        if isinstance(kind, RemoteArchive):
            cached = self._archive_path(kind.url)
            if cached.exists():
                logger.info("Removing cached archive %s", cached)
                cached.unlink()

    def _archive_path(self, url: str) -> Path:
        return self._cache_root / "archives" / archive_cache_name(url)

    def _fetch_archive(self, archive: RemoteArchive, dest: Path) -> Path:
        cached = self._archive_path(archive.url)
        if cached.exists():
            logger.info("Using cached archive %s", cached)
        else:
            self._download(archive.url, cached)

        if archive.sha256 is not None:
            actual = sha256_of(cached)
            if actual != archive.sha256:
                cached.unlink()
                raise FetchError(
                    FetchFailure.VERIFY,
                    f"checksum mismatch for {archive.url}: expected {archive.sha256}, got {actual}",
                )

        logger.info("Unpacking %s", cached.name)
        extract_stripped(cached, dest)
        return dest

    def _download(self, url: str, target: Path) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        part = target.with_name(target.name + ".part")
        client = self._client if self._client is not None else _default_client()
        logger.info("Downloading %s", url)
        try:
            with client.stream("GET", url) as response:
                if response.status_code == 404:
                    raise FetchError(FetchFailure.NOT_FOUND, f"{url} returned 404")
                if response.is_error:
                    raise FetchError(
                        FetchFailure.NETWORK, f"{url} returned HTTP {response.status_code}"
                    )
                total = int(response.headers.get("Content-Length", "0")) or None
                self._write_body(response, part, archive_filename(url), total)
            part.replace(target)
        except httpx.HTTPError as e:
            raise FetchError(FetchFailure.NETWORK, f"cannot download {url}: {e}") from e
        finally:
            if part.exists():
                part.unlink()
            if self._client is None:
                client.close()

    def _write_body(
        self, response: httpx.Response, part: Path, description: str, total: int | None
    ) -> None:
        progress = self._progress
        if progress is not None:
            progress.start(description, total)
        try:
            with part.open("wb") as f:
                for chunk in response.iter_bytes():
                    f.write(chunk)
                    if progress is not None:
                        progress.advance(len(chunk))
        finally:
            if progress is not None:
                progress.finish()

    def _fetch_vcs(self, vcs: RemoteVcs, dest: Path) -> Path:
        revision = vcs.revision
        pinned_commit = revision is not None and _COMMIT_SHA.match(revision) is not None

        cmd = ["git", "clone", "-q"]
        if not pinned_commit:
            cmd += ["--depth", "1"]
            if revision is not None:
                cmd += ["--branch", revision]
        cmd += [vcs.url, str(dest)]

        logger.info("Cloning %s", vcs.url)
        try:
            run_subprocess_with_context(cmd, f"clone {vcs.url}")
            if pinned_commit:
                assert revision is not None
                run_subprocess_with_context(
                    ["git", "-C", str(dest), "checkout", "-q", revision],
                    f"check out {revision}",
                )
        except RuntimeError as e:
            raise FetchError(FetchFailure.NETWORK, str(e)) from e
        return dest


def _default_client() -> httpx.Client:
    return httpx.Client(follow_redirects=True, timeout=httpx.Timeout(30.0, read=300.0))
