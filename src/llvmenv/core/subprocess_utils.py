"""Run short-lived helper commands (git, llvm-config) with readable failures."""

import subprocess
from collections.abc import Sequence
from pathlib import Path


def run_subprocess_with_context(
    cmd: Sequence[str],
    operation_context: str,
    cwd: Path | None = None,
) -> subprocess.CompletedProcess[str]:
    """Run `cmd`, capturing its output, and fail with context attached.

    Args:
        cmd: Command and arguments to execute
        operation_context: What the command does, phrased to follow "Failed to"
        cwd: Working directory for command execution

    Returns:
        CompletedProcess with decoded stdout and stderr

    Raises:
        RuntimeError: If the command exits non-zero or its binary is missing
    """
    cmd_str = " ".join(str(arg) for arg in cmd)
    try:
        return subprocess.run(
            list(cmd),
            cwd=cwd,
            capture_output=True,
            text=True,
            encoding="utf-8",
            check=True,
        )
    except subprocess.CalledProcessError as e:
        lines = [
            f"Failed to {operation_context}",
            f"Command: {cmd_str}",
            f"Exit code: {e.returncode}",
        ]
        if e.stderr and e.stderr.strip():
            lines.append(f"stderr: {e.stderr.strip()}")
        raise RuntimeError("\n".join(lines)) from e
    except FileNotFoundError as e:
        raise RuntimeError(
            f"Command not found while trying to {operation_context}: {cmd[0]}"
        ) from e
