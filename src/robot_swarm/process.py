"""External process helpers.

The Appium servers, the test engine and the report engine all run as
external processes. These helpers launch them with asyncio and route their
output either to the console (verbose) or to a log file.
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Sequence

logger = logging.getLogger(__name__)


def build_env(pythonpath: Path | None = None) -> dict[str, str]:
    """Return the environment for a child process.

    Args:
        pythonpath: Directory prepended to PYTHONPATH, if any.
    """
    env = dict(os.environ)
    if pythonpath is not None:
        existing = env.get("PYTHONPATH")
        env["PYTHONPATH"] = (
            f"{pythonpath}{os.pathsep}{existing}" if existing else str(pythonpath)
        )
    return env


async def launch(
    command: Sequence[str],
    *,
    log_path: Path | None = None,
    verbose: bool = False,
    env: dict[str, str] | None = None,
    cwd: Path | None = None,
) -> asyncio.subprocess.Process:
    """Start a process without waiting for it.

    Output goes to the console when verbose, to ``log_path`` when given,
    and is discarded otherwise.

    Args:
        command: Program and arguments.
        log_path: File that receives stdout and stderr (appended).
        verbose: Inherit the console instead of logging to a file.
        env: Child environment. Defaults to the current environment.
        cwd: Working directory of the child.

    Returns:
        The running process.

    Raises:
        OSError: If the program cannot be executed.
    """
    logger.debug("Launching: %s", " ".join(command))

    if verbose:
        return await asyncio.create_subprocess_exec(*command, env=env, cwd=cwd)

    if log_path is None:
        return await asyncio.create_subprocess_exec(
            *command,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
            env=env,
            cwd=cwd,
        )

    log_path.parent.mkdir(parents=True, exist_ok=True)
    # The child keeps its own descriptor once spawned.
    with open(log_path, "ab") as log_file:
        return await asyncio.create_subprocess_exec(
            *command,
            stdout=log_file,
            stderr=asyncio.subprocess.STDOUT,
            env=env,
            cwd=cwd,
        )


async def run_command(
    command: Sequence[str],
    *,
    log_path: Path | None = None,
    verbose: bool = False,
    env: dict[str, str] | None = None,
    cwd: Path | None = None,
    timeout: float | None = None,
) -> int:
    """Run a process to completion and return its exit code.

    Args:
        command: Program and arguments.
        log_path: File that receives stdout and stderr (appended).
        verbose: Inherit the console instead of logging to a file.
        env: Child environment. Defaults to the current environment.
        cwd: Working directory of the child.
        timeout: Seconds to wait before killing the process. None waits forever.

    Returns:
        The process exit code.

    Raises:
        OSError: If the program cannot be executed.
        asyncio.TimeoutError: If the timeout expired. The process is killed first.
    """
    proc = await launch(command, log_path=log_path, verbose=verbose, env=env, cwd=cwd)
    try:
        if timeout is None:
            return await proc.wait()
        return await asyncio.wait_for(proc.wait(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("Process %s timed out after %ss, killing it", command[0], timeout)
        if proc.returncode is None:
            proc.kill()
        await proc.wait()
        raise
