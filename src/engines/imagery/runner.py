"""
Transform Tool Runner

Executes a transform command as a child process and waits for it.
Any non-zero exit, failure to start, or timeout becomes an ExternalToolError
carrying the command and captured output.
"""

import asyncio
import subprocess
from dataclasses import dataclass
from typing import List, Optional

from src.core.exceptions import ExternalToolError
from src.core.logging import get_logger

logger = get_logger(__name__)


@dataclass
class CommandResult:
    """Outcome of a successful transform command."""
    command: List[str]
    returncode: int
    stdout: str
    stderr: str


def _decode(data: Optional[bytes]) -> str:
    return data.decode("utf-8", errors="replace") if data else ""


class CommandRunner:
    """Runs transform commands with an optional timeout (seconds)."""

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout or None

    async def run(self, command: List[str]) -> CommandResult:
        logger.debug("transform_command_starting", command=command)

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE
            )
        except OSError as e:
            raise ExternalToolError(
                f"Unable to start transform tool: {command[0]}",
                command=command,
                cause=e
            ) from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            await self._kill(process)
            timeout_error = TimeoutError(f"Transform tool exceeded {self.timeout}s")
            raise ExternalToolError(
                f"Transform tool timed out after {self.timeout}s",
                command=command,
                cause=timeout_error
            ) from timeout_error
        except asyncio.CancelledError:
            await self._kill(process)
            raise

        result = CommandResult(
            command=command,
            returncode=process.returncode,
            stdout=_decode(stdout),
            stderr=_decode(stderr)
        )

        if result.returncode != 0:
            cause = subprocess.CalledProcessError(
                result.returncode, command, result.stdout, result.stderr
            )
            raise ExternalToolError(
                f"Transform tool exited with status {result.returncode}",
                command=command,
                stdout=result.stdout,
                stderr=result.stderr,
                returncode=result.returncode,
                cause=cause
            ) from cause

        return result

    @staticmethod
    async def _kill(process: asyncio.subprocess.Process):
        try:
            process.kill()
        except ProcessLookupError:
            return
        await process.wait()
