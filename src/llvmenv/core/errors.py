"""Exception taxonomy for llvmenv operations.

Core modules raise these; only the CLI layer turns them into styled messages
and exit codes. Resolution failures share the ResolutionError base so shell
integration can tell "no active build" apart from a broken build.
"""

from enum import Enum
from pathlib import Path


class LlvmenvError(Exception):
    """Base class for all llvmenv domain errors."""


class NotFoundError(LlvmenvError):
    """A named entry or build does not exist."""

    def __init__(self, kind: str, name: str) -> None:
        self.name = name
        super().__init__(f"{kind} '{name}' not found")


class EntryNotFound(NotFoundError):
    def __init__(self, name: str) -> None:
        super().__init__("Entry", name)


class BuildNotFound(NotFoundError):
    def __init__(self, name: str) -> None:
        super().__init__("Build", name)


class InvalidEntry(LlvmenvError):
    """An entry description cannot be turned into an Entry."""

    def __init__(self, name: str, message: str) -> None:
        self.name = name
        self.message = message
        super().__init__(f"Invalid entry '{name}': {message}")


class CorruptRegistry(LlvmenvError):
    """Persisted entry data is unreadable or malformed.

    Raised instead of silently dropping entries. The registry stays unusable
    until the file is fixed.
    """

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Entry registry {path} is corrupt: {reason}")


class FetchFailure(Enum):
    NETWORK = "network"
    NOT_FOUND = "not-found"
    VERIFY = "verify"


class FetchError(LlvmenvError):
    """Source retrieval failed."""

    def __init__(self, reason: FetchFailure, message: str) -> None:
        self.reason = reason
        super().__init__(f"{reason.value}: {message}")


class BuildStage(Enum):
    """Stages of the build pipeline, in execution order."""

    FETCH = "fetch"
    CONFIGURE = "configure"
    COMPILE = "compile"
    INSTALL = "install"
    REGISTER = "register"


class BuildFailed(LlvmenvError):
    """A pipeline stage failed; carries the stage and the captured output tail."""

    def __init__(
        self,
        name: str,
        stage: BuildStage,
        cause: str,
        output_tail: list[str] | None = None,
    ) -> None:
        self.name = name
        self.stage = stage
        self.cause = cause
        self.output_tail = output_tail or []
        super().__init__(f"Build of '{name}' failed during {stage.value}: {cause}")


class BuildInProgress(LlvmenvError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Another build of '{name}' is in progress")


class BuildExists(LlvmenvError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Build '{name}' already exists")


class CannotRemoveSystem(LlvmenvError):
    def __init__(self) -> None:
        super().__init__("The 'system' build cannot be removed")


class VersionQueryError(LlvmenvError):
    def __init__(self, name: str, message: str) -> None:
        self.name = name
        super().__init__(f"Cannot determine version of build '{name}': {message}")


class ResolutionError(LlvmenvError):
    """Base for failures to determine the active build."""


class UnknownBuild(ResolutionError):
    """The selected build name does not refer to an existing build."""

    def __init__(self, name: str, source: Path | None) -> None:
        self.name = name
        self.source = source
        message = f"Build '{name}' does not exist"
        if source is not None:
            message += f" (set by {source})"
        super().__init__(message)


class NoActiveBuild(ResolutionError):
    def __init__(self) -> None:
        super().__init__(
            "No active build: no .llvmenv override was found and no global build is set"
        )


class InvalidOverride(ResolutionError):
    def __init__(self, path: Path) -> None:
        self.path = path
        super().__init__(f"Override file {path} does not name a build")


class ArchiveError(LlvmenvError):
    """A build cannot be packed, or an archive does not hold a build."""
