"""Async subprocess utilities.

Provides non-blocking subprocess execution for gateway implementations,
so probing the host or installing a package never stalls the event loop.

Example:
    >>> from mcp_conductor.utils.async_subprocess import run_command
    >>> stdout, stderr, code = await run_command("npm", "--version", check=False)
    >>> if code == 0:
    ...     print(stdout)

Thread Safety:
    Safe to call concurrently from multiple async tasks. Each call creates an
    independent subprocess with no shared state.
"""

import asyncio
import subprocess


async def run_command(
    *args: str,
    check: bool = True,
    timeout: float | None = None,
) -> tuple[str, str, int]:
    """Run a command asynchronously without shell interpolation.

    Args:
        *args: Command and arguments as separate strings.
        check: If True (default), raise CalledProcessError when the command
            returns a non-zero exit code.
        timeout: Maximum seconds to wait. The process is killed and
            TimeoutError raised when exceeded. None waits indefinitely.

    Returns:
        Tuple of (stdout, stderr, return_code) with output decoded as UTF-8
        (invalid bytes replaced).

    Raises:
        subprocess.CalledProcessError: If check=True and command returns non-zero.
        TimeoutError: If timeout is exceeded.
        FileNotFoundError: If the command executable is not found.
        PermissionError: If the executable cannot be executed.
    """
    process = await asyncio.create_subprocess_exec(
        *args,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )

    try:
        stdout_bytes, stderr_bytes = await asyncio.wait_for(
            process.communicate(),
            timeout=timeout,
        )
    except TimeoutError:
        process.kill()
        await process.wait()
        raise

    stdout = (stdout_bytes or b"").decode("utf-8", errors="replace")
    stderr = (stderr_bytes or b"").decode("utf-8", errors="replace")

    if check and process.returncode != 0:
        raise subprocess.CalledProcessError(
            process.returncode,
            args,
            stdout,
            stderr,
        )

    return stdout, stderr, process.returncode or 0
