"""Concurrent fan-out of configuration snippets, one isolated session per device."""

from __future__ import annotations

import dataclasses
import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Dict, List, Mapping, Optional

from tqdm import tqdm
from typeguard import typechecked

from . import DEFAULT_CREDENTIALS
from .exceptions import UnknownTransportError, UnsupportedKindError
from .kinds import get_shell_kind
from .transport import SSHTransport, write_config
from .types import ConfigSnippet, Credentials, Node, TransportOptions

logger = logging.getLogger("netshell_config.dispatcher")


@dataclasses.dataclass(frozen=True)
class DeviceResult:
    """What happened on one device.

    Attributes:
        node: The device.
        ok: True when every snippet was written.
        error: Why the device failed, if it did.
        lines: Command lines sent across all snippets.
        elapsed_seconds: Wall-clock time of the device task.
    """
    node: Node
    ok: bool
    error: Optional[str] = None
    lines: int = 0
    elapsed_seconds: float = 0.0


@dataclasses.dataclass(frozen=True)
class DispatchSummary:
    results: List[DeviceResult]

    @property
    def failed(self) -> List[DeviceResult]:
        return [r for r in self.results if not r.ok]

    @property
    def ok(self) -> bool:
        return not self.failed


def group_by_node(snippets: List[ConfigSnippet]) -> Dict[str, List[ConfigSnippet]]:
    """Merge snippets per target device, keeping their order."""
    groups: Dict[str, List[ConfigSnippet]] = {}
    for snippet in snippets:
        groups.setdefault(snippet.target_node.long_name, []).append(snippet)
    return groups


def new_ssh_transport(
    node: Node,
    options: TransportOptions,
    credentials: Mapping[str, Credentials] = DEFAULT_CREDENTIALS,
) -> SSHTransport:
    """Build the shell transport for *node* from its kind.

    Raises:
        UnsupportedKindError: No dialect or no credentials for the kind.
    """
    kind = get_shell_kind(node.kind)
    if node.kind not in credentials:
        raise UnsupportedKindError(f"no default credentials for kind: {node.kind}")
    username, password = credentials[node.kind]
    if node.port:
        options = dataclasses.replace(options, port=node.port)
    return SSHTransport(kind, username, password, options)


@typechecked
class ConfigDispatcher:
    """Writes each device's snippets in its own thread and waits for all of them.

    A failure on one device is logged and recorded in the summary; it never
    stops the other devices.
    """

    def __init__(
        self,
        options: TransportOptions = TransportOptions(),
        credentials: Optional[Mapping[str, Credentials]] = None,
        show_progress: bool = False,
    ) -> None:
        self.options = options
        self.credentials = dict(DEFAULT_CREDENTIALS if credentials is None else credentials)
        self.show_progress = show_progress

    def dispatch(self, snippets: List[ConfigSnippet]) -> DispatchSummary:
        """Configure every device targeted by *snippets*.

        Blocks until each device task has finished, successfully or not.
        """
        groups = group_by_node(snippets)
        if not groups:
            logger.info("[DISPATCH] Nothing to send")
            return DispatchSummary(results=[])

        logger.info("[DISPATCH] Configuring %d devices", len(groups))
        with ThreadPoolExecutor(
            max_workers=len(groups), thread_name_prefix="device",
        ) as executor, tqdm(
            total=len(groups), desc="Configuring devices", unit="device",
            disable=not self.show_progress,
        ) as progress:
            futures = [
                executor.submit(self._configure_device, group)
                for group in groups.values()
            ]
            for _ in as_completed(futures):
                progress.update(1)

        results = [future.result() for future in futures]
        failed = [r for r in results if not r.ok]
        logger.info(
            "[DISPATCH] Done: %d ok, %d failed%s",
            len(results) - len(failed), len(failed),
            "" if not failed else " (" + ", ".join(r.node.short_name for r in failed) + ")",
        )
        return DispatchSummary(results=results)

    def _open_transport(self, node: Node) -> SSHTransport:
        transport_kind = node.transport_kind
        if transport_kind != "ssh":
            raise UnknownTransportError(f"Unknown transport: {transport_kind}")
        return new_ssh_transport(node, self.options, self.credentials)

    def _configure_device(self, snippets: List[ConfigSnippet]) -> DeviceResult:
        """Device task.  Never raises; every error becomes a failed result."""
        node = snippets[0].target_node
        start_time = time.monotonic()
        try:
            transport = self._open_transport(node)
            written = write_config(transport, node.address, snippets)
        except Exception as exc:
            elapsed = time.monotonic() - start_time
            logger.error("[DISPATCH] [%s] %s: %s", node.short_name, type(exc).__name__, exc)
            return DeviceResult(node=node, ok=False, error=str(exc), elapsed_seconds=elapsed)

        elapsed = time.monotonic() - start_time
        lines = sum(w.lines for w in written)
        logger.info(
            "[DISPATCH] [%s] %d snippets, %d lines in %.2fs",
            node.short_name, len(snippets), lines, elapsed,
        )
        return DeviceResult(node=node, ok=True, lines=lines, elapsed_seconds=elapsed)
