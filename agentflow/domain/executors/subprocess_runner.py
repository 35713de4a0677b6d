"""Shared subprocess plumbing for CLI-backed executors."""

import asyncio
import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path

from agentflow.domain.errors import ExecutorError

logger = logging.getLogger(__name__)

# Error excerpts stored on failed results
ERROR_EXCERPT_LEN = 500


@dataclass
class CapturedRun:
    stdout: str
    stderr: str
    exit_code: int
    duration_ms: int

    def error_excerpt(self) -> str | None:
        """stderr (or stdout when stderr is empty) for a failed run."""
        if self.exit_code == 0:
            return None
        return (self.stderr or self.stdout)[:ERROR_EXCERPT_LEN]


async def spawn_capture(
    binary: str,
    args: list[str],
    input_text: str,
    cwd: Path,
    timeout_ms: int,
) -> CapturedRun:
    """Run ``binary`` with the prompt on stdin and capture its output.

    Raises:
        ExecutorError: If the binary cannot be started or exceeds timeout_ms
    """
    start = time.monotonic()
    env = {**os.environ, "NO_COLOR": "1"}

    try:
        process = await asyncio.create_subprocess_exec(
            binary,
            *args,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(cwd),
            env=env,
        )
    except (FileNotFoundError, PermissionError) as e:
        raise ExecutorError(f"Cannot start '{binary}': {e}") from e

    try:
        stdout_data, stderr_data = await asyncio.wait_for(
            process.communicate(input_text.encode("utf-8")),
            timeout=timeout_ms / 1000,
        )
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        raise ExecutorError(f"Runner timed out after {timeout_ms / 1000:g}s")

    stderr = stderr_data.decode("utf-8", errors="replace") if stderr_data else ""
    if stderr:
        logger.debug(f"{binary} stderr: {stderr[:ERROR_EXCERPT_LEN]}")

    return CapturedRun(
        stdout=stdout_data.decode("utf-8", errors="replace") if stdout_data else "",
        stderr=stderr,
        exit_code=process.returncode if process.returncode is not None else 1,
        duration_ms=int((time.monotonic() - start) * 1000),
    )
