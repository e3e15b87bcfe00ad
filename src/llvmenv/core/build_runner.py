"""External build process execution.

This module abstracts the cmake invocations (and other tool calls) made while
building, so orchestration can be tested with a fake that never spawns.

Architecture:
- BuildRunner: Abstract interface
- RealBuildRunner: subprocess-based implementation with output passthrough
"""

import logging
import os
import shutil
import subprocess
import sys
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import TextIO

from llvmenv.core.subprocess_utils import run_subprocess_with_context

logger = logging.getLogger(__name__)

OUTPUT_TAIL_LINES = 40


@dataclass(frozen=True)
class CommandOutcome:
    """Result of an external command; success is decided by exit code only."""

    exit_code: int
    output_tail: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.exit_code == 0


class BuildRunner(ABC):
    """Abstract interface for running external tools."""

    @abstractmethod
    def run(
        self,
        cmd: Sequence[str],
        *,
        cwd: Path,
        env: Mapping[str, str] | None = None,
    ) -> CommandOutcome:
        """Run a command, passing its output through to the user.

        Args:
            cmd: Command and arguments
            cwd: Working directory
            env: Variables added on top of the inherited environment

        Returns:
            CommandOutcome with exit code and the last lines of output

        Raises:
            OSError: If the process cannot be spawned
        """
        ...

    @abstractmethod
    def capture(self, cmd: Sequence[str]) -> str:
        """Run a command and return its stdout.

        Raises:
            RuntimeError: If the command fails or cannot be found
        """
        ...

    @abstractmethod
    def which(self, tool: str) -> str | None:
        """Locate a tool on PATH."""
        ...


class RealBuildRunner(BuildRunner):
    """Production implementation using subprocess."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream

    def run(
        self,
        cmd: Sequence[str],
        *,
        cwd: Path,
        env: Mapping[str, str] | None = None,
    ) -> CommandOutcome:
        stream = self._stream if self._stream is not None else sys.stderr
        child_env = dict(os.environ)
        if env:
            child_env.update(env)

        logger.debug("Running: %s (cwd=%s)", " ".join(cmd), cwd)
        tail: deque[str] = deque(maxlen=OUTPUT_TAIL_LINES)
        process = subprocess.Popen(
            list(cmd),
            cwd=cwd,
            env=child_env,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            encoding="utf-8",
            errors="replace",
        )
        try:
            assert process.stdout is not None
            for line in process.stdout:
                stream.write(line)
                tail.append(line.rstrip("\n"))
            exit_code = process.wait()
        except BaseException:
            process.kill()
            process.wait()
            raise

        logger.debug("Exit code %d: %s", exit_code, cmd[0])
        return CommandOutcome(exit_code=exit_code, output_tail=list(tail))

    def capture(self, cmd: Sequence[str]) -> str:
        result = run_subprocess_with_context(cmd, f"run {Path(cmd[0]).name}")
        return result.stdout

    def which(self, tool: str) -> str | None:
        return shutil.which(tool)
