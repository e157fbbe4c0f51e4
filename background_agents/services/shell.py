"""Bounded-time execution of external commands for concrete agents."""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Optional

from background_agents.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT = 30.0  # seconds


class CommandTimeoutError(Exception):
    """The command did not finish within its time limit and was killed."""

    def __init__(self, command: str, timeout: float) -> None:
        super().__init__(f"Command timed out after {timeout:g}s: {command}")
        self.command = command
        self.timeout = timeout


class CommandFailedError(Exception):
    """The command exited with a non-zero status."""

    def __init__(self, result: "CommandResult") -> None:
        super().__init__(
            f"Command exited with {result.returncode}: {result.command}"
            + (f"\n{result.stderr.strip()[:500]}" if result.stderr.strip() else "")
        )
        self.result = result


@dataclass(slots=True)
class CommandResult:
    command: str
    returncode: int
    stdout: str
    stderr: str
    duration: float

    @property
    def ok(self) -> bool:
        return self.returncode == 0


async def run_command(
    command: str,
    *,
    cwd: Optional[str] = None,
    timeout: float = DEFAULT_TIMEOUT,
    check: bool = False,
) -> CommandResult:
    """Run ``command`` through the shell, killing it once ``timeout`` expires."""
    started = time.monotonic()
    process = await asyncio.create_subprocess_shell(
        command,
        cwd=cwd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        logger.warning("command_timeout", command=command, timeout=timeout)
        raise CommandTimeoutError(command, timeout) from None
    except asyncio.CancelledError:
        # The owning agent is stopping; do not leave the child behind.
        if process.returncode is None:
            process.kill()
            await process.wait()
        raise

    result = CommandResult(
        command=command,
        returncode=process.returncode if process.returncode is not None else -1,
        stdout=stdout.decode(errors="replace"),
        stderr=stderr.decode(errors="replace"),
        duration=time.monotonic() - started,
    )
    logger.debug("command_finished", command=command, returncode=result.returncode, duration=result.duration)
    if check and not result.ok:
        raise CommandFailedError(result)
    return result
