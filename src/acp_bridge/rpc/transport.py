"""Newline-delimited JSON transport over an asyncio stream pair."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from typing import Final

from pydantic import BaseModel

from acp_bridge.rpc.protocol import LOG_PREVIEW_CHARS, decode_line, encode_message
from acp_bridge.types import JsonValue

logger = logging.getLogger(__name__)

MAX_LINE_SIZE: Final = 10_485_760
"""Stream buffer limit for a single framed line (10 MB)."""

MessageCallback = Callable[[JsonValue], None]


class LineTransport:
    """Frames JSON messages as lines on a reader/writer pair.

    The read side runs as a single task that hands every decoded value to a
    callback in arrival order. Partial lines spanning several reads are
    buffered by :meth:`asyncio.StreamReader.readline`.

    Args:
        reader: Stream carrying agent output (e.g. the agent's stdout).
        writer: Stream carrying host output (e.g. the agent's stdin).
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        self._reader = reader
        self._writer = writer
        self._read_task: asyncio.Task[None] | None = None

    @property
    def reading(self) -> bool:
        """True while the read loop is attached."""
        return self._read_task is not None and not self._read_task.done()

    @property
    def read_task(self) -> asyncio.Task[None] | None:
        return self._read_task

    def start(self, on_message: MessageCallback) -> None:
        """Start delivering decoded messages to *on_message*.

        Must be called from a running event loop. Calling it while already
        reading is a no-op.
        """
        if self.reading:
            return
        self._read_task = asyncio.get_running_loop().create_task(
            self._read_loop(on_message), name="acp-bridge-reader"
        )

    def detach(self) -> None:
        """Stop the read loop; no further messages are delivered."""
        if self._read_task is not None:
            self._read_task.cancel()
            self._read_task = None
            logger.debug("Transport reader detached")

    async def send(self, message: BaseModel | Mapping[str, object]) -> None:
        """Encode *message* as one line and write it.

        Raises:
            TypeError: If the message is not JSON-serializable. Nothing is
                written in that case.
            ConnectionError: If the underlying stream is closed.
        """
        data = encode_message(message)
        logger.debug("Sending: %s", data[:LOG_PREVIEW_CHARS].decode("utf-8", "replace"))
        self._writer.write(data)
        await self._writer.drain()

    async def close(self) -> None:
        """Detach the reader and close the write side."""
        self.detach()
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except (ConnectionError, OSError):
            pass

    async def _read_loop(self, on_message: MessageCallback) -> None:
        while True:
            try:
                raw = await self._reader.readline()
            except ValueError:
                # Line exceeded the reader's limit; the buffer has been discarded.
                logger.warning("Dropping line exceeding the stream buffer limit")
                continue
            except (ConnectionError, OSError) as exc:
                logger.debug("Transport read failed: %s", exc)
                break

            if not raw:
                logger.debug("Transport reached EOF")
                break

            line = raw.strip()
            if not line:
                continue

            value = decode_line(line)
            if value is None:
                continue

            try:
                on_message(value)
            except Exception:
                logger.error("Error handling inbound message", exc_info=True)
