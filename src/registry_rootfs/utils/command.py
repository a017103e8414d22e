"""Async subprocess helper with consistent logging."""

import asyncio
import logging
import shlex
from dataclasses import dataclass
from typing import Sequence

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    argv: list[str]
    returncode: int
    stdout: str
    stderr: str


def format_argv(argv: Sequence[str]) -> str:
    return " ".join(shlex.quote(a) for a in argv)


async def run_command(
    argv: Sequence[str],
    *,
    check: bool = True,
    cwd: str | None = None,
) -> CommandResult:
    """Run a command and wait for it.

    The child process is killed if the awaiting task is cancelled.

    Args:
        argv: Program and arguments
        check: Raise when the exit status is non-zero
        cwd: Working directory for the child

    Returns:
        CommandResult with captured output

    Raises:
        OSError: If the program cannot be started
        RuntimeError: If ``check`` is set and the command fails
    """
    argv_list = list(argv)
    logger.info("CMD %s", format_argv(argv_list))

    proc = await asyncio.create_subprocess_exec(
        *argv_list,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        cwd=cwd,
    )

    try:
        stdout_b, stderr_b = await proc.communicate()
    except asyncio.CancelledError:
        logger.warning("Cancelled, killing %s", argv_list[0])
        proc.kill()
        await proc.wait()
        raise

    stdout = stdout_b.decode("utf-8", errors="replace")
    stderr = stderr_b.decode("utf-8", errors="replace")

    if stdout:
        logger.debug("STDOUT %s", stdout.strip())
    if stderr:
        logger.debug("STDERR %s", stderr.strip())

    if check and proc.returncode != 0:
        raise RuntimeError(
            f"Command failed ({proc.returncode}): {format_argv(argv_list)}\n{stderr}"
        )

    return CommandResult(
        argv=argv_list, returncode=proc.returncode, stdout=stdout, stderr=stderr
    )
