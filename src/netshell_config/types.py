"""Type definitions for NetShell Config."""

from __future__ import annotations

import dataclasses
from typing import Any, Dict, List, Optional, Tuple

from . import (
    SSH_PORT,
    PROMPT_CHAR,
    CONNECTION_TIMEOUT,
    LOGIN_TIMEOUT,
    COMMAND_TIMEOUT,
    COMMIT_TIMEOUT,
    MAX_HISTORY_CHARS,
)

# Credentials
Credentials = Tuple[str, str]  # (username, password)

_WHITESPACE = " \n\r\t"


@dataclasses.dataclass(frozen=True)
class Reply:
    """One prompt-delimited piece of device output.

    A non-empty ``prompt`` marks a confirmed prompt boundary and ``result``
    holds the output before it.  An empty ``prompt`` with a non-empty
    ``result`` is a partial fragment; the device is still sending.
    """
    result: str = ""
    prompt: str = ""

    @property
    def is_prompt(self) -> bool:
        return self.prompt != ""

    @property
    def is_partial(self) -> bool:
        return self.prompt == "" and self.result != ""

    @property
    def is_empty(self) -> bool:
        return self.prompt == "" and self.result == ""

    def format(self, message: str) -> str:
        """Return *message* followed by the result, one ``  | `` line each."""
        if not self.result:
            return message
        sep = "\n  | "
        return message + sep + sep.join(self.result.split("\n"))

    def describe(self) -> str:
        return f"*RESULT: {self.result!r}\n*PROMPT: {self.prompt!r}"


@dataclasses.dataclass(frozen=True)
class Node:
    """A target device as described by the inventory."""
    short_name: str
    long_name: str
    address: str
    kind: str
    labels: Dict[str, str] = dataclasses.field(default_factory=dict)
    variables: Dict[str, Any] = dataclasses.field(default_factory=dict)
    port: Optional[int] = None

    @property
    def transport_kind(self) -> str:
        return self.labels.get("config.transport", "ssh")


@dataclasses.dataclass(frozen=True)
class Endpoint:
    """One side of a link: a node and its interface."""
    node: Node
    interface: str


@dataclasses.dataclass(frozen=True)
class Link:
    """A point-to-point link between two nodes, with link-level variables."""
    a: Endpoint
    b: Endpoint
    variables: Dict[str, Any] = dataclasses.field(default_factory=dict)

    def __str__(self) -> str:
        return f"{self.a.node.short_name}:{self.a.interface} <-> {self.b.node.short_name}:{self.b.interface}"


@dataclasses.dataclass(frozen=True)
class Inventory:
    name: str
    nodes: List[Node]
    links: List[Link] = dataclasses.field(default_factory=list)


@dataclasses.dataclass(frozen=True)
class ConfigSnippet:
    """Ordered command lines rendered from one template for one device."""
    target_node: Node
    template_name: str
    lines: Tuple[str, ...] = ()

    @property
    def is_transaction(self) -> bool:
        # show- templates only read state
        return not self.template_name.startswith("show-")

    def format(self, limit: int) -> str:
        """Header plus the first *limit* lines, used for print-only runs."""
        header = f"{self.target_node.short_name} {self.template_name}: {len(self.lines)} lines"
        shown: List[str] = [f"  {line}" for line in self.lines[:limit]]
        if len(self.lines) > limit:
            shown.append(f"  ... ({len(self.lines) - limit} more)")
        return "\n".join([header] + shown)

    def __str__(self) -> str:
        return f"{self.target_node.short_name}/{self.template_name}"


@dataclasses.dataclass(frozen=True)
class TransportOptions:
    """Per-run session settings shared by every device transport.

    Attributes:
        port: SSH port, unless a node sets its own.
        prompt_char: Initial prompt delimiter; dialects may override it.
        debug: Log every raw reply at DEBUG level.
        show_login_message: Log the login banner captured at connect time.
        connect_timeout: Dial/authentication timeout in seconds.
        login_timeout: Wait for the first prompt after the shell starts.
        command_timeout: Per-line wait for a prompt.
        commit_timeout: Wait for the commit prompt.
        max_history_chars: Bound on unmatched output held while waiting for
            a command echo.
    """
    port: int = SSH_PORT
    prompt_char: str = PROMPT_CHAR
    debug: bool = False
    show_login_message: bool = False
    connect_timeout: float = CONNECTION_TIMEOUT
    login_timeout: float = LOGIN_TIMEOUT
    command_timeout: float = COMMAND_TIMEOUT
    commit_timeout: float = COMMIT_TIMEOUT
    max_history_chars: int = MAX_HISTORY_CHARS


def strip_output(text: str) -> str:
    """Trim the whitespace a terminal wraps around command output."""
    return text.strip(_WHITESPACE)
