"""SSH shell sessions with pty allocation and host-key auto-approval for lab devices."""

from __future__ import annotations

import logging
import socket
import time
from typing import Optional

import paramiko
from typeguard import typechecked

from . import SSH_PORT, CONNECTION_TIMEOUT, PTY_TERM, PTY_WIDTH, PTY_HEIGHT
from .exceptions import SSHConnectionError, SSHTimeoutError

logger = logging.getLogger("netshell_config.connection")


class SSHSession:
    """Raw byte streams of an interactive shell plus the connection behind them.

    Created by ``SSHConnectionManager.open_shell`` and owned by exactly one
    device transport.  ``close()`` may be called any number of times.
    """

    def __init__(
        self,
        client: paramiko.SSHClient,
        channel: paramiko.Channel,
        target: str,
    ) -> None:
        self.client = client
        self.channel = channel
        self.target = target
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def read(self, size: int) -> bytes:
        """Block until output is available; ``b""`` means the stream ended."""
        return self.channel.recv(size)

    def write(self, text: str) -> int:
        data = text.encode("utf-8")
        self.channel.sendall(data)
        return len(data)

    def writeln(self, command: str) -> int:
        """Send *command* terminated the way a terminal sends ENTER."""
        return self.write(command + "\r")

    def close(self) -> None:
        if self._closed:
            logger.debug("[SHELL] close() called on already-closed session to %s", self.target)
            return
        self._closed = True
        logger.debug("[SHELL] Closing session to %s", self.target)
        try:
            self.channel.close()
        except Exception as exc:
            logger.warning("[SHELL] Error closing channel to %s: %s", self.target, exc)
        try:
            self.client.close()
        except Exception as exc:
            logger.warning("[SHELL] Error closing connection to %s: %s", self.target, exc)


@typechecked
class SSHConnectionManager:
    """Dials a device and opens interactive shell sessions on it."""

    def __init__(
        self,
        hostname: str,
        username: str,
        password: str,
        port: int = SSH_PORT,
        timeout: float = CONNECTION_TIMEOUT,
    ) -> None:
        """Initialize SSH connection manager.

        Args:
            hostname: IP address or hostname of the device
            username: SSH username
            password: SSH password
            port: SSH port (default: 22)
            timeout: Connection timeout in seconds (default: 30)
        """
        self.hostname = hostname
        self.username = username
        self.password = password
        self.port = port
        self.timeout = timeout
        self.ssh_client: Optional[paramiko.SSHClient] = None

    @property
    def target(self) -> str:
        return f"{self.username}@{self.hostname}:{self.port}"

    def _get_ssh_client(self) -> paramiko.SSHClient:
        """Get or create SSH client with auto-approval policy."""
        if self.ssh_client is None:
            self.ssh_client = paramiko.SSHClient()
            self.ssh_client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

        return self.ssh_client

    def connect(self, context: str) -> None:
        """Establish the SSH connection.

        Args:
            context: Description of the purpose of this connection,
                embedded into error messages.

        Raises:
            SSHConnectionError: If connection fails
            SSHTimeoutError: If connection times out
        """
        logger.info(
            "[CONNECT] [%s] Attempting SSH connection to %s (timeout=%.0fs) ...",
            context, self.target, self.timeout,
        )
        start_time = time.time()

        try:
            client = self._get_ssh_client()

            client.connect(
                hostname=self.hostname,
                port=self.port,
                username=self.username,
                password=self.password,
                timeout=self.timeout,
                banner_timeout=self.timeout,
                auth_timeout=self.timeout,
                allow_agent=False,
                look_for_keys=False,
            )

            elapsed = time.time() - start_time
            logger.info(
                "[CONNECT] [%s] Successfully connected to %s in %.2fs",
                context, self.target, elapsed,
            )

        except socket.timeout as e:
            elapsed = time.time() - start_time
            msg = (
                f"[{context}] Connection to {self.hostname}:{self.port} timed out "
                f"after {elapsed:.1f}s (limit {self.timeout}s)"
            )
            logger.error("[CONNECT] TIMEOUT — %s", msg)
            raise SSHTimeoutError(msg) from e
        except paramiko.AuthenticationException as e:
            msg = f"[{context}] Authentication failed for {self.target}: {e}"
            logger.error("[CONNECT] AUTH FAILED — %s", msg)
            raise SSHConnectionError(msg) from e
        except paramiko.SSHException as e:
            elapsed = time.time() - start_time
            msg = f"[{context}] SSH error connecting to {self.hostname}:{self.port}: {e}"
            logger.error("[CONNECT] SSH ERROR after %.2fs — %s", elapsed, msg)
            raise SSHConnectionError(msg) from e
        except OSError as e:
            elapsed = time.time() - start_time
            msg = f"[{context}] OS/network error connecting to {self.hostname}:{self.port}: {e}"
            logger.error("[CONNECT] OS ERROR after %.2fs — %s", elapsed, msg)
            raise SSHConnectionError(msg) from e

    def is_connected(self) -> bool:
        """Check if SSH connection is active."""
        if self.ssh_client is None:
            return False
        transport = self.ssh_client.get_transport()
        return transport is not None and transport.is_active()

    def open_shell(
        self,
        context: str,
        term: str = PTY_TERM,
        width: int = PTY_WIDTH,
        height: int = PTY_HEIGHT,
    ) -> SSHSession:
        """Open a session, request a pty and start the remote shell.

        Network operating systems refuse to start their CLI without a
        terminal, so the pty request is mandatory.

        Raises:
            SSHConnectionError: If not connected, or if the session, pty or
                shell request fails.  The connection is closed on failure.
        """
        if not self.is_connected():
            msg = f"[{context}] Cannot open shell: not connected to {self.hostname}:{self.port}"
            logger.error("[SHELL] %s", msg)
            raise SSHConnectionError(msg)

        transport = self._get_ssh_client().get_transport()
        channel: Optional[paramiko.Channel] = None
        step = "session"
        try:
            channel = transport.open_session(timeout=self.timeout)
            step = "pty request"
            channel.get_pty(term=term, width=width, height=height)
            step = "shell"
            channel.invoke_shell()
        except (paramiko.SSHException, OSError) as e:
            msg = f"[{context}] {step} failed on {self.hostname}:{self.port}: {e}"
            logger.error("[SHELL] %s", msg)
            if channel is not None:
                channel.close()
            self.disconnect()
            raise SSHConnectionError(msg) from e

        logger.info(
            "[SHELL] [%s] Interactive shell started on %s (term=%s %dx%d)",
            context, self.target, term, width, height,
        )
        session = SSHSession(self._get_ssh_client(), channel, self.target)
        # the session owns the client from here on
        self.ssh_client = None
        return session

    def disconnect(self) -> None:
        """Close SSH connection if open."""
        was_connected = self.is_connected()

        if self.ssh_client is not None:
            try:
                self.ssh_client.close()
            except Exception as exc:
                logger.warning("[DISCONNECT] Error closing connection to %s: %s", self.target, exc)
            finally:
                self.ssh_client = None

        if was_connected:
            logger.info("[DISCONNECT] Disconnected from %s", self.target)
        else:
            logger.debug("[DISCONNECT] disconnect() called on already-closed connection to %s", self.target)
