"""Command/response correlation and configuration transactions over a device shell."""

from __future__ import annotations

import dataclasses
import logging
import queue
from typing import List, Optional

import paramiko
from typeguard import typechecked

from . import CONTINUATION_TIMEOUT
from .connection import SSHConnectionManager, SSHSession
from .demux import DeliveryQueue, DeliveryQueueClosed, StreamDemultiplexer
from .exceptions import SSHConnectionError, SSHSessionClosedError
from .kinds import ShellKind
from .types import ConfigSnippet, Reply, TransportOptions, strip_output

logger = logging.getLogger("netshell_config.transport")


@dataclasses.dataclass(frozen=True)
class WriteResult:
    """Outcome of writing one snippet.

    Attributes:
        lines: Command lines sent (blank, comment and bracket lines excluded).
        bytes_sent: Characters in those lines, after trimming.
        commit: Reply to the commit command, ``None`` for read-only snippets.
    """
    lines: int = 0
    bytes_sent: int = 0
    commit: Optional[Reply] = None


class Transport:
    """Interface every configuration transport implements."""

    def connect(self, host: str) -> None:
        raise NotImplementedError

    def write(self, snippet: ConfigSnippet) -> WriteResult:
        raise NotImplementedError

    def close(self) -> None:
        raise NotImplementedError


@typechecked
class SSHTransport(Transport):
    """Configuration transport over an interactive SSH shell.

    Holds the per-device session state: the prompt delimiter, the dialect,
    the delivery queue fed by the background reader and the login banner.
    An instance serves one device and is never shared between threads other
    than its own reader.

    Example::

        with SSHTransport(SRLKind(), "admin", "admin") as transport:
            transport.connect("172.20.20.2")
            transport.write(snippet)
    """

    def __init__(
        self,
        kind: ShellKind,
        username: str,
        password: str,
        options: TransportOptions = TransportOptions(),
    ) -> None:
        self.kind = kind
        self.username = username
        self.password = password
        self.options = options
        self.port = options.port
        self.prompt_char = options.prompt_char
        self.debug = options.debug
        self.host = ""
        self.login_message = Reply()
        self._session: Optional[SSHSession] = None
        self._delivery: Optional[DeliveryQueue] = None
        self._reader: Optional[StreamDemultiplexer] = None

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def connect(self, host: str) -> None:
        """Open the shell on *host*, start the reader and read the login banner.

        Raises:
            SSHConnectionError: Missing credentials, or the dial, session,
                pty or shell request failed.
        """
        if not self.username or not self.password:
            raise SSHConnectionError(f"require auth credentials to connect to {host}")
        if not self.prompt_char:
            self.prompt_char = "#"
        if not self.port:
            self.port = 22

        self.host = host
        context = f"shell on {host}:{self.port}"
        manager = SSHConnectionManager(
            hostname=host,
            username=self.username,
            password=self.password,
            port=self.port,
            timeout=self.options.connect_timeout,
        )
        try:
            manager.connect(context=context)
        except SSHConnectionError:
            manager.disconnect()
            raise
        session = manager.open_shell(context=context)
        logger.info("[CONNECT] Connected to %s:%d", host, self.port)
        try:
            self.attach(session)
        except SSHConnectionError:
            self.close()
            raise

    def attach(self, session: SSHSession) -> None:
        """Take ownership of an open shell and start reading it."""
        self._session = session
        self._delivery = DeliveryQueue()
        self._reader = StreamDemultiplexer(
            read=session.read,
            parse_prompt=lambda fragment: self.kind.parse_prompt(self, fragment),
            delivery=self._delivery,
            prompt_char=lambda: self.prompt_char,
            name=self.host,
        )
        self._reader.start()

        # Everything up to the first prompt
        self.login_message = self.run("", self.options.login_timeout)
        if self.options.show_login_message:
            logger.info(self.login_message.format(f"{self.host} login message"))

    def close(self) -> None:
        """Stop delivering replies and close the connection.  Safe to repeat."""
        if self._delivery is not None:
            self._delivery.close(discard_pending=True)
        if self._session is not None:
            self._session.close()
        if self._reader is not None:
            self._reader.join(timeout=2)
            self._reader = None

    @property
    def closed(self) -> bool:
        return self._delivery is None or self._delivery.closed

    def __enter__(self) -> SSHTransport:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        self.close()

    # ------------------------------------------------------------------
    # Command correlation
    # ------------------------------------------------------------------

    def run(self, command: str = "", timeout: float = 5) -> Reply:
        """Send *command* and wait for the output that ends in its prompt.

        With an empty *command* nothing is sent and the next confirmed
        prompt is returned; this is how the login banner is read.

        A receive that waits longer than *timeout* ends the call with an
        empty ``Reply``.  The device may still run the command.  Output
        held while waiting is bounded by ``options.max_history_chars``;
        past it the first ``max_history_chars`` characters are returned.

        Raises:
            SSHSessionClosedError: The output stream ended before a prompt.
        """
        if self._delivery is None:
            raise SSHSessionClosedError(f"not connected, cannot run {command!r}")
        if command:
            try:
                self._session.writeln(command)
            except (OSError, paramiko.SSHException) as e:
                msg = f"cannot send {command!r} to {self.host}: {e}"
                logger.error("[RUN] %s", msg)
                raise SSHSessionClosedError(msg) from e

        history = ""
        while True:
            try:
                reply = self._delivery.get(timeout)
            except queue.Empty:
                logger.warning("[RUN] [%s] timeout waiting for prompt: %s", self.host, command)
                return Reply()
            except DeliveryQueueClosed:
                msg = f"session to {self.host} closed while waiting for prompt: {command!r}"
                logger.error("[RUN] %s", msg)
                raise SSHSessionClosedError(msg) from None

            if self.debug:
                logger.debug("[RUN] [%s]\n%s", self.host, reply.describe())

            if reply.is_partial:
                # the device is sending, the rest should follow quickly
                history += reply.result
                timeout = min(timeout, CONTINUATION_TIMEOUT)
                if len(history) > self.options.max_history_chars:
                    logger.warning(
                        "[RUN] [%s] %d characters without a prompt after %r, giving up",
                        self.host, len(history), command,
                    )
                    return Reply(result=strip_output(history[:self.options.max_history_chars]))
                continue
            if reply.is_empty:
                logger.debug("[RUN] [%s] received empty reply", self.host)
                continue

            text = strip_output(history + reply.result)
            history = ""

            echo = command
            if self.prompt_char and command not in text:
                # splitting the stream removed the delimiter from the echo
                echo = command.replace(self.prompt_char, "")

            if text.startswith(echo):
                text = strip_output(text[len(echo):])
            elif echo not in text:
                # echo may still be on its way
                if len(text) > self.options.max_history_chars:
                    logger.warning(
                        "[RUN] [%s] no echo of %r in %d characters, giving up on the echo",
                        self.host, command, len(text),
                    )
                    return Reply(result=text[:self.options.max_history_chars], prompt=reply.prompt)
                history = text
                continue

            result = Reply(result=text, prompt=reply.prompt)
            if self.debug:
                logger.debug("[RUN] [%s] %r ->\n%s", self.host, command, result.describe())
            return result

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def write(self, snippet: ConfigSnippet) -> WriteResult:
        """Apply *snippet* inside a dialect-specific transaction.

        Blank lines and ``#`` comments are skipped; a snippet with nothing
        else is not sent at all.  Device output for a line
        is logged but never fails the snippet; only session errors do.

        Raises:
            SSHConnectionError: The session failed.
        """
        lines = [line.strip() for line in snippet.lines]
        lines = [line for line in lines if line and not line.startswith("#")]
        if not lines:
            return WriteResult()

        node = snippet.target_node.short_name
        transaction = snippet.is_transaction

        self.kind.config_start(self, node, transaction)

        count, size = 0, 0
        for line in lines:
            if transaction and self.kind.is_transaction_line(line):
                logger.debug("[WRITE] [%s] skipping %r, transaction already open", node, line)
                continue
            count += 1
            size += len(line)
            reply = self.run(line, self.options.command_timeout)
            if reply.result:
                logger.info(reply.format(node))

        commit: Optional[Reply] = None
        if transaction:
            commit = self.kind.config_commit(self)
            logger.info(commit.format(f"[COMMIT] {snippet} - {count} lines {size} bytes"))

        return WriteResult(lines=count, bytes_sent=size, commit=commit)


def write_config(transport: Transport, host: str, snippets: List[ConfigSnippet]) -> List[WriteResult]:
    """Connect, write every snippet in order and always close the transport."""
    transport.connect(host)
    try:
        return [transport.write(snippet) for snippet in snippets]
    finally:
        transport.close()
