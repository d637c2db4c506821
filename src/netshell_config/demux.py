"""Background reader that turns a raw terminal stream into prompt-bounded replies.

The demultiplexer owns nothing but a text buffer.  It reads whatever the
device sends, cuts the text on the prompt delimiter and lets the device
dialect decide whether each cut is a real prompt.  Replies go, in order,
to a ``DeliveryQueue`` that the command correlator consumes.
"""

from __future__ import annotations

import codecs
import logging
import queue
import threading
from typing import Callable, List, Optional

import paramiko

from . import READ_CHUNK_SIZE, PROMPT_CHAR
from .types import Reply

logger = logging.getLogger("netshell_config.demux")

_CLOSED = object()


class DeliveryQueueClosed(Exception):
    """The producer side has closed; no further replies will arrive."""


class DeliveryQueue:
    """Unbounded single-producer/single-consumer queue of ``Reply`` values.

    ``put`` never blocks.  Once closed, pending replies are still handed out
    (unless discarded) and every later ``get`` raises ``DeliveryQueueClosed``.
    """

    def __init__(self) -> None:
        self._queue: "queue.Queue[object]" = queue.Queue()
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def put(self, reply: Reply) -> bool:
        """Publish *reply*; returns False when the queue is already closed."""
        with self._lock:
            if self._closed:
                return False
            self._queue.put(reply)
            return True

    def get(self, timeout: float) -> Reply:
        """Wait up to *timeout* seconds for the next reply.

        Raises:
            queue.Empty: Nothing arrived in time.
            DeliveryQueueClosed: The queue is closed and drained.
        """
        item = self._queue.get(timeout=timeout)
        if item is _CLOSED:
            # leave the marker for the next caller
            self._queue.put(_CLOSED)
            raise DeliveryQueueClosed()
        return item  # type: ignore[return-value]

    def close(self, discard_pending: bool = False) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            if discard_pending:
                while True:
                    try:
                        self._queue.get_nowait()
                    except queue.Empty:
                        break
            self._queue.put(_CLOSED)


class StreamDemultiplexer:
    """Segments a shell's output stream into ``Reply`` values.

    Args:
        read: Blocking reader returning up to *n* bytes, ``b""`` at end of stream.
        parse_prompt: Dialect hook deciding whether a segment ends in a prompt.
        delivery: Queue receiving the replies.
        prompt_char: Returns the current delimiter; dialects may change it
            while the session runs.
        chunk_size: Maximum bytes per read.
        encoding: Encoding of the terminal stream.
    """

    def __init__(
        self,
        read: Callable[[int], bytes],
        parse_prompt: Callable[[str], Reply],
        delivery: DeliveryQueue,
        prompt_char: Callable[[], str] = lambda: PROMPT_CHAR,
        chunk_size: int = READ_CHUNK_SIZE,
        encoding: str = "utf-8",
        name: str = "",
    ) -> None:
        self._read = read
        self._parse_prompt = parse_prompt
        self.delivery = delivery
        self._prompt_char = prompt_char
        self.chunk_size = chunk_size
        self.encoding = encoding
        self.name = name
        self.buffer = ""
        self._thread: Optional[threading.Thread] = None

    def feed(self, text: str) -> List[Reply]:
        """Add decoded *text* and publish every reply it completes.

        Only the buffer's final, unterminated segment is held back, so the
        replies produced do not depend on how the stream was chunked.
        """
        self.buffer += text
        delimiter = self._prompt_char()
        if delimiter not in self.buffer:
            return []

        *segments, self.buffer = self.buffer.split(delimiter)
        replies = [self._parse_prompt(segment) for segment in segments]
        for reply in replies:
            self.delivery.put(reply)
        return replies

    def flush(self) -> Reply:
        """Publish whatever is buffered as a final fragment."""
        reply = Reply(result=self.buffer, prompt="")
        self.buffer = ""
        self.delivery.put(reply)
        return reply

    def run(self) -> None:
        """Read until the stream ends, then flush and close the queue."""
        decoder = codecs.getincrementaldecoder(self.encoding)("replace")
        reason = "end of stream"
        try:
            while True:
                chunk = self._read(self.chunk_size)
                if not chunk:
                    break
                logger.debug("[DEMUX] [%s] +%d bytes", self.name, len(chunk))
                self.feed(decoder.decode(chunk, False))
            self.feed(decoder.decode(b"", True))
        except (OSError, EOFError, paramiko.SSHException) as exc:
            reason = f"{type(exc).__name__}: {exc}"
        logger.debug("[DEMUX] [%s] Reader closing: %s", self.name, reason)
        self.flush()
        self.delivery.close()

    def start(self) -> threading.Thread:
        """Run the reader in a daemon thread for the lifetime of the session."""
        self._thread = threading.Thread(
            target=self.run, name=f"demux-{self.name}", daemon=True,
        )
        self._thread.start()
        return self._thread

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)
