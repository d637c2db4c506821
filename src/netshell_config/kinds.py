"""Per-vendor shell dialects: transaction bracketing and prompt detection.

Each dialect is stateless.  It drives the session through the transport it
is handed and only touches that transport's state (the prompt delimiter).
New device families are supported by subclassing ``ShellKind`` and
registering the class in ``SHELL_KINDS``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, Tuple, Type

from .exceptions import UnsupportedKindError
from .types import Reply

if TYPE_CHECKING:
    from .transport import SSHTransport

logger = logging.getLogger("netshell_config.kinds")


def parse_prompt_no_spaces(fragment: str, prompt_char: str, lines: int) -> Reply:
    """Split *fragment* into output and prompt if its last line looks like a prompt.

    *fragment* is the text up to (not including) a delimiter.  Its last line
    is a prompt only if it holds no whitespace; a prompt may span *lines*
    lines, e.g. a context banner above the ``name#`` line.  Anything else
    comes back unchanged as a partial reply.
    """
    n = fragment.rfind("\n")
    if n < 0:
        return Reply(result=fragment, prompt="")
    last_line = fragment[n + 1:].rstrip("\r")
    if " " in last_line or "\t" in last_line:
        return Reply(result=fragment, prompt="")

    for _ in range(lines - 1):
        n = fragment.rfind("\n", 0, n)
        if n < 0:
            n = 0
            break

    prompt = fragment[n:].lstrip("\r\n")
    return Reply(result=fragment[:n], prompt=prompt + prompt_char)


class ShellKind:
    """Base dialect.

    Attributes:
        name: Device kind this dialect serves.
        prompt_lines: Number of lines that make up the prompt.
        transaction_lines: Snippet lines that would re-open the transaction
            ``config_start`` already opened; the driver skips them.
    """

    name = ""
    prompt_lines = 1
    transaction_lines: Tuple[str, ...] = ()

    def config_start(self, transport: SSHTransport, node: str, transaction: bool) -> None:
        """Prepare the session for a snippet."""
        raise NotImplementedError

    def config_commit(self, transport: SSHTransport) -> Reply:
        raise NotImplementedError

    def parse_prompt(self, transport: SSHTransport, fragment: str) -> Reply:
        return parse_prompt_no_spaces(fragment, transport.prompt_char, self.prompt_lines)

    def is_transaction_line(self, line: str) -> bool:
        return line in self.transaction_lines

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class SROSKind(ShellKind):
    """Nokia SR OS MD-CLI: global configuration, discard, commit."""

    name = "vr-sros"
    prompt_lines = 2
    transaction_lines = ("/configure global", "configure global")

    def config_start(self, transport: SSHTransport, node: str, transaction: bool) -> None:
        transport.prompt_char = "#"
        if transaction:
            reply = transport.run("/configure global", 5)
            if reply.result:
                logger.info(reply.format(node))
            reply = transport.run("discard", 1)
            if reply.result:
                logger.info(reply.format(f"{node} discard"))
        else:
            transport.run("/environment more false", 5)

    def config_commit(self, transport: SSHTransport) -> Reply:
        return transport.run("commit", transport.options.commit_timeout)


class SRLKind(ShellKind):
    """Nokia SR Linux: candidate datastore, discard stay, commit now."""

    name = "srl"
    prompt_lines = 2
    transaction_lines = ("enter candidate",)

    def config_start(self, transport: SSHTransport, node: str, transaction: bool) -> None:
        transport.prompt_char = "#"
        if transaction:
            transport.run("enter candidate", 5)
            transport.run("discard stay", 2)

    def config_commit(self, transport: SSHTransport) -> Reply:
        return transport.run("commit now", transport.options.commit_timeout)


SHELL_KINDS: Dict[str, Type[ShellKind]] = {
    SROSKind.name: SROSKind,
    SRLKind.name: SRLKind,
}


def get_shell_kind(kind: str) -> ShellKind:
    """Return a dialect instance for device *kind*.

    Raises:
        UnsupportedKindError: No dialect is registered for *kind*.
    """
    try:
        return SHELL_KINDS[kind]()
    except KeyError:
        raise UnsupportedKindError(
            f"no shell transport implemented for kind: {kind} "
            f"(supported: {', '.join(sorted(SHELL_KINDS))})"
        ) from None
