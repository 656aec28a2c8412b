"""Local command execution helper."""

import asyncio
import logging

logger = logging.getLogger(__name__)


async def run_shell_cmd(command, input=None, timeout=600):
    """Run a local command and return (returncode, stdout, stderr).

    Args:
        command: list of command arguments
        input: optional text fed to the command's stdin
        timeout: maximum seconds to wait for the command

    Returns:
        (returncode, stdout, stderr) tuple
    """
    logger.debug(f"Running local command: {' '.join(command)}")
    try:
        proc = await asyncio.create_subprocess_exec(
            *command,
            stdin=asyncio.subprocess.PIPE if input is not None else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError:
        logger.error(f"Error: '{command[0]}' not found. Is it installed and on PATH?")
        return 127, "", f"'{command[0]}' not found"

    try:
        stdout_bytes, stderr_bytes = await asyncio.wait_for(
            proc.communicate(input.encode() if input is not None else None),
            timeout=timeout,
        )
    except TimeoutError:
        logger.error(f"Command timed out after {timeout}s: {' '.join(command)}")
        proc.kill()
        await proc.wait()
        return 1, "", f"timed out after {timeout}s"
    stderr = stderr_bytes.decode(errors="replace") if stderr_bytes else ""
    try:
        stdout = stdout_bytes.decode() if stdout_bytes else ""
    except UnicodeDecodeError as e:
        logger.error(f"Output of {command[0]} is not valid UTF-8: {e}")
        return 1, "", f"output is not valid UTF-8: {e}\n{stderr}".rstrip()
    return proc.returncode, stdout, stderr
