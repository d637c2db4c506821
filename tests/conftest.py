"""Pytest configuration: path setup, logging and in-process device shells."""

import logging
import os
import socket
import sys
import threading
import time
from typing import Dict, List, Optional

import pytest

# ---------------------------------------------------------------------------
# Path setup: ensure the package is importable regardless of installation
# ---------------------------------------------------------------------------
_SRC_DIR = os.path.join(os.path.dirname(__file__), os.pardir, "src")
_SRC_DIR = os.path.normpath(_SRC_DIR)
if _SRC_DIR not in sys.path:
    sys.path.insert(0, _SRC_DIR)

# ---------------------------------------------------------------------------
# Logging: route all library log output to the console so pytest -s shows it
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.DEBUG,
    format="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
    datefmt="%H:%M:%S",
)
# Quiet down paramiko's own noisy transport-level debug logs
logging.getLogger("paramiko").setLevel(logging.WARNING)

try:
    import paramiko
except ImportError:  # the networked test modules skip themselves
    paramiko = None

# ---------------------------------------------------------------------------
# Test-only credentials (used by the in-process SSH server, never real hosts)
# ---------------------------------------------------------------------------
TEST_HOST = "127.0.0.1"
TEST_USER = "testuser"
TEST_PASS = "testpass"
TEST_USERS = {TEST_USER: TEST_PASS}
TEST_CREDENTIALS = {"vr-sros": (TEST_USER, TEST_PASS), "srl": (TEST_USER, TEST_PASS)}

_HOST_KEY = None


def _host_key():
    """One RSA key for every server; generating it is the slow part."""
    global _HOST_KEY
    if _HOST_KEY is None:
        _HOST_KEY = paramiko.RSAKey.generate(2048)
    return _HOST_KEY


def free_port() -> int:
    """A local port nothing listens on."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind((TEST_HOST, 0))
        return s.getsockname()[1]


# ═══════════════════════════════════════════════════════════════════════════
#  EMULATED DEVICE SHELLS
# ═══════════════════════════════════════════════════════════════════════════

class FakeDeviceShell:
    """Line-oriented emulation of an SR OS or SR Linux CLI on a pty.

    Every command is echoed, followed by its output, a blank line and a
    two-line prompt (context line, then ``name# ``), like the real shells.

    Args:
        name: Device name shown in the prompt.
        dialect: ``"vr-sros"`` or ``"srl"``.
        responses: Output per command.
        silent: Commands that get no echo, no output and no prompt.
        hangup: Command on which the shell closes the channel.
    """

    BANNER = "\r\n Emulated network OS\r\n All rights reserved.\r\n"

    def __init__(
        self,
        name: str,
        dialect: str,
        responses: Optional[Dict[str, str]] = None,
        silent: tuple = (),
        hangup: str = "logout",
    ) -> None:
        self.name = name
        self.dialect = dialect
        self.responses = dict(responses or {})
        self.silent = silent
        self.hangup = hangup
        self.commands: List[str] = []
        self.context = "[/]" if dialect == "vr-sros" else "--{ running }--[  ]--"

    def prompt(self) -> str:
        if self.dialect == "vr-sros":
            return f"\r\n{self.context}\r\nA:admin@{self.name}# "
        return f"\r\n{self.context}\r\nA:{self.name}# "

    def handle(self, command: str) -> Optional[str]:
        """Return everything the shell prints for *command* (None: nothing)."""
        self.commands.append(command)
        if command in self.silent:
            return None

        output = self.responses.get(command, "")
        if self.dialect == "vr-sros":
            if command == "/configure global":
                self.context = "[gl:/configure]"
        else:
            if command == "enter candidate":
                self.context = "--{ candidate shared default }--[  ]--"
            elif command == "commit now":
                output = output or "All changes have been committed. Leaving candidate mode."
                self.context = "--{ running }--[  ]--"

        text = command + "\r\n"
        if output:
            text += output.replace("\n", "\r\n") + "\r\n"
        return text + self.prompt()

    def serve(self, channel) -> None:
        channel.sendall((self.BANNER + self.prompt()).encode())
        buf = ""
        while True:
            data = channel.recv(1024)
            if not data:
                break
            buf += data.decode("utf-8", errors="replace")
            while "\r" in buf:
                line, buf = buf.split("\r", 1)
                line = line.strip("\n")
                if line == self.hangup:
                    self.commands.append(line)
                    channel.close()
                    return
                reply = self.handle(line)
                if reply is not None:
                    channel.sendall(reply.encode())


class _ShellServerInterface(paramiko.ServerInterface if paramiko else object):
    """Accepts password auth, a pty and a shell."""

    def __init__(self, users: Dict[str, str]) -> None:
        self.users = users
        self.shell_event = threading.Event()
        self.pty_term: Optional[str] = None

    def get_allowed_auths(self, username: str) -> str:
        return "password"

    def check_auth_password(self, username: str, password: str) -> int:
        if self.users.get(username) == password:
            return paramiko.AUTH_SUCCESSFUL
        return paramiko.AUTH_FAILED

    def check_channel_request(self, kind: str, chanid: int) -> int:
        if kind == "session":
            return paramiko.OPEN_SUCCEEDED
        return paramiko.OPEN_FAILED_ADMINISTRATIVELY_PROHIBITED

    def check_channel_pty_request(
        self, channel, term, width, height, pixelwidth, pixelheight, modes,
    ) -> bool:
        self.pty_term = term.decode() if isinstance(term, bytes) else term
        return True

    def check_channel_shell_request(self, channel) -> bool:
        self.shell_event.set()
        return True


class DeviceShellServer:
    """
    In-process SSH server on an OS-assigned port serving a ``FakeDeviceShell``.

    Usage:
        srv = DeviceShellServer("node1", "vr-sros")
        srv.start()
        ...               # connect to 127.0.0.1:srv.port
        srv.stop()
    """

    def __init__(
        self,
        name: str = "node1",
        dialect: str = "vr-sros",
        users: Optional[Dict[str, str]] = None,
        **shell_options,
    ) -> None:
        self.name = name
        self.dialect = dialect
        self.users = users or dict(TEST_USERS)
        self.shell_options = shell_options
        self.shells: List[FakeDeviceShell] = []
        self.pty_terms: List[Optional[str]] = []
        self._server_socket: Optional[socket.socket] = None
        self._running = False
        self._accept_thread: Optional[threading.Thread] = None
        self._transports: list = []
        self._lock = threading.Lock()

    @property
    def port(self) -> int:
        if self._server_socket is None:
            raise RuntimeError("Server not started")
        return self._server_socket.getsockname()[1]

    @property
    def commands(self) -> List[str]:
        """Commands received by the most recent shell."""
        return self.shells[-1].commands if self.shells else []

    def start(self) -> None:
        self._server_socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._server_socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._server_socket.settimeout(1.0)
        self._server_socket.bind((TEST_HOST, 0))
        self._server_socket.listen(5)
        self._running = True
        self._accept_thread = threading.Thread(target=self._accept_loop, daemon=True)
        self._accept_thread.start()

    def stop(self) -> None:
        self._running = False
        with self._lock:
            for t in list(self._transports):
                try:
                    t.close()
                except Exception:
                    pass
            self._transports.clear()
        if self._server_socket:
            try:
                self._server_socket.close()
            except Exception:
                pass
            self._server_socket = None
        if self._accept_thread:
            self._accept_thread.join(timeout=5)
            self._accept_thread = None

    def _accept_loop(self) -> None:
        while self._running:
            try:
                client_sock, _ = self._server_socket.accept()  # type: ignore[union-attr]
            except socket.timeout:
                continue
            except OSError:
                break
            threading.Thread(
                target=self._handle_client, args=(client_sock,), daemon=True
            ).start()

    def _handle_client(self, client_sock: socket.socket) -> None:
        transport = None
        try:
            transport = paramiko.Transport(client_sock)
            transport.add_server_key(_host_key())
            server_if = _ShellServerInterface(users=self.users)
            transport.start_server(server=server_if)
            with self._lock:
                self._transports.append(transport)

            channel = transport.accept(10)
            if channel is None or not server_if.shell_event.wait(10):
                return
            self.pty_terms.append(server_if.pty_term)
            shell = FakeDeviceShell(self.name, self.dialect, **self.shell_options)
            self.shells.append(shell)
            shell.serve(channel)
        except Exception:
            pass
        finally:
            if transport:
                with self._lock:
                    if transport in self._transports:
                        self._transports.remove(transport)
                # let the last bytes reach the client before tearing down
                time.sleep(0.05)
                try:
                    transport.close()
                except Exception:
                    pass

    def __enter__(self) -> "DeviceShellServer":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()


# ═══════════════════════════════════════════════════════════════════════════
#  FIXTURES
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def device_server():
    """Factory fixture: start emulated device shells, stop them after the test."""
    if paramiko is None:
        pytest.skip("paramiko is not installed")
    servers: List[DeviceShellServer] = []

    def _start(name: str = "node1", dialect: str = "vr-sros", **shell_options) -> DeviceShellServer:
        srv = DeviceShellServer(name=name, dialect=dialect, **shell_options)
        srv.start()
        servers.append(srv)
        return srv

    yield _start

    for srv in servers:
        srv.stop()
