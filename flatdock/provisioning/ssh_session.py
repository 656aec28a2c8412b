"""SSH session into the rescue system: connect with retry, upload, run commands.

Rescue systems present a fresh host key on every boot, so host key checking
is off unless explicitly enabled in the config.
"""

import asyncio
import logging
import os
from dataclasses import dataclass

import paramiko

from flatdock.errors import (
    CommandFailed,
    ConnectionExhausted,
    SSHAuthError,
    SSHConnectFailed,
    UploadFailed,
)

logger = logging.getLogger(__name__)

RESCUE_USER = "root"
CONNECT_TIMEOUT = 10
DEFAULT_CONNECT_RETRIES = 30
DEFAULT_RETRY_DELAY = 10
REBOOT_COMMAND = "reboot now"


@dataclass
class SSHAuth:
    """Explicit private key, or None to authenticate through ssh-agent."""

    pkey: paramiko.PKey | None = None

    @property
    def uses_agent(self) -> bool:
        return self.pkey is None


def load_ssh_auth(private_key_path=None):
    """Build SSH authentication before any connection attempt.

    Raises:
        SSHAuthError: the key file can't be loaded, or no key path is given
            and the agent holds no keys.
    """
    if private_key_path:
        path = os.path.expanduser(private_key_path)
        try:
            return SSHAuth(pkey=paramiko.PKey.from_path(path))
        except (OSError, ValueError, paramiko.SSHException, paramiko.pkey.UnknownKeyType) as e:
            raise SSHAuthError(f"error loading ssh private key {path}: {e}") from e

    agent = paramiko.Agent()
    try:
        keys = agent.get_keys()
    finally:
        agent.close()
    if not keys:
        raise SSHAuthError("no ssh_key_private_path configured and ssh-agent holds no keys")
    return SSHAuth()


def _is_retryable(exc):
    """Network-layer failures (rescue system not listening yet) are retryable."""
    return isinstance(exc, (OSError, EOFError))


def _drain(stream, command, level):
    for raw_line in stream:
        line = raw_line.decode("utf-8", errors="replace").rstrip("\r\n")
        logger.log(level, f"{command} - {line}")


class RescueSession:
    """A connected SSH session to the rescue system."""

    def __init__(self, client: paramiko.SSHClient, address: str):
        self._client = client
        self.address = address

    @classmethod
    def connect(cls, host, auth: SSHAuth, username=RESCUE_USER, port=22, host_key_checking=False, timeout=CONNECT_TIMEOUT):
        """Open a session (blocking). Exceptions propagate unclassified."""
        client = paramiko.SSHClient()
        if host_key_checking:
            client.load_system_host_keys()
            client.set_missing_host_key_policy(paramiko.RejectPolicy())
        else:
            client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            client.connect(
                hostname=host,
                port=port,
                username=username,
                pkey=auth.pkey,
                allow_agent=auth.uses_agent,
                look_for_keys=False,
                timeout=timeout,
                banner_timeout=timeout,
                auth_timeout=timeout,
            )
        except Exception:
            client.close()
            raise
        return cls(client, f"{username}@{host}")

    def _put(self, local_path, remote_path):
        sftp = self._client.open_sftp()
        try:
            sftp.put(local_path, remote_path)
        finally:
            sftp.close()

    async def upload(self, local_path, remote_path):
        """Copy a local file to *remote_path* via SFTP.

        Raises:
            UploadFailed: on any local or remote error.
        """
        logger.info(f"Uploading {local_path} -> {self.address}:{remote_path}")
        try:
            await asyncio.to_thread(self._put, local_path, remote_path)
        except (OSError, paramiko.SSHException) as e:
            raise UploadFailed(f"error uploading {local_path} to {self.address}:{remote_path}: {e}") from e

    def _start(self, command):
        transport = self._client.get_transport()
        if transport is None or not transport.is_active():
            raise paramiko.SSHException(f"session to {self.address} is not active")
        channel = transport.open_session()
        channel.exec_command(command)
        return channel, channel.makefile("rb"), channel.makefile_stderr("rb")

    async def run(self, command):
        """Run *command*, logging its output line by line as it arrives.

        stdout and stderr are drained concurrently with the exit status wait.

        Returns:
            The exit status, or -1 if the channel closed without one.
        """
        channel, stdout, stderr = await asyncio.to_thread(self._start, command)
        try:
            _, _, status = await asyncio.gather(
                asyncio.to_thread(_drain, stdout, command, logging.INFO),
                asyncio.to_thread(_drain, stderr, command, logging.ERROR),
                asyncio.to_thread(channel.recv_exit_status),
            )
        finally:
            channel.close()
        return status

    def close(self):
        if self._client is not None:
            self._client.close()
            self._client = None
            logger.info(f"SSH connection to {self.address} closed.")


async def connect_with_retry(connect, address, retries=DEFAULT_CONNECT_RETRIES, retry_delay=DEFAULT_RETRY_DELAY, sleep=asyncio.sleep):
    """Call *connect* until it returns a session.

    Args:
        connect: async callable returning a connected session.
        address: used in log and error messages.
        retries: total number of attempts.
        retry_delay: seconds between attempts after a retryable failure.

    Raises:
        SSHConnectFailed: a non-retryable error (e.g. authentication).
        ConnectionExhausted: every attempt failed with a network error.
    """
    last_error = None
    for attempt in range(1, retries + 1):
        try:
            session = await connect()
        except Exception as e:
            if not _is_retryable(e):
                raise SSHConnectFailed(f"unretriable error while establishing ssh connection to {address}: {e}") from e
            last_error = e
            logger.warning(f"Retrying network error ({attempt}/{retries}): {e}")
            if attempt < retries:
                await sleep(retry_delay)
            continue
        logger.info(f"SSH connection to {address} established (attempt {attempt}).")
        return session
    raise ConnectionExhausted(address, retries, last_error)


async def run_commands(session, commands):
    """Run *commands* in order; the first failure aborts the rest.

    Raises:
        CommandFailed: a command exited non-zero or the session broke.
    """
    for command in commands:
        logger.info(f"Running command '{command}'")
        try:
            status = await session.run(command)
        except (paramiko.SSHException, OSError, EOFError) as e:
            raise CommandFailed(command, cause=e) from e
        if status != 0:
            raise CommandFailed(command, exit_status=status)


async def reboot(session):
    """Reboot the remote machine. Never fatal.

    A successful reboot usually severs the session before an exit status
    arrives, so a dropped connection is expected. A real non-zero exit is
    reported as a warning.
    """
    logger.info("Rebooting into the installed system...")
    try:
        status = await session.run(REBOOT_COMMAND)
    except (paramiko.SSHException, OSError, EOFError) as e:
        logger.info(f"Reboot command lost the connection, VM probably rebooted anyways: {e}")
        return
    if status == -1:
        logger.info("Connection closed by reboot.")
    elif status != 0:
        logger.warning(f"Reboot command exited with status {status}; the server may not have rebooted.")
