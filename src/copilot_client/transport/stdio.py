"""Stdio transport to the completion agent.

Wraps the agent's two pipes (stdout for inbound, stdin for outbound) into a
single channel carrying framed JSON-RPC messages. Faults are surfaced as
events; the transport never retries or reconnects.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from typing import Any

from copilot_client.errors import FramingError, MessageDecodeError, TransportClosedError
from copilot_client.logging import TRACE
from copilot_client.transport.framing import (
    DEFAULT_MAX_MESSAGE_SIZE,
    encode_message,
    read_message,
)

_log = logging.getLogger("copilot_client.transport")

MessageHandler = Callable[[dict[str, Any]], None]
ErrorHandler = Callable[[Exception], None]
CloseHandler = Callable[[Exception | None], None]


class StdioTransport:
    """Duplex message channel over a StreamReader/StreamWriter pair.

    Events:
        error: a fault reading, decoding, or dispatching an inbound message.
        close: the channel is unusable (EOF, fatal framing fault, write
            failure, or an explicit close). Fired at most once, with the
            causing exception or None.

    Write faults are raised to the writer as TransportClosedError and close
    the transport.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        *,
        max_message_size: int = DEFAULT_MAX_MESSAGE_SIZE,
    ) -> None:
        self._reader = reader
        self._writer = writer
        self._max_message_size = max_message_size
        self._write_lock = asyncio.Lock()
        self._read_task: asyncio.Task[None] | None = None
        self._closed = False
        self._error_handlers: list[ErrorHandler] = []
        self._close_handlers: list[CloseHandler] = []

    @classmethod
    def from_process(cls, process: asyncio.subprocess.Process, **kwargs: Any) -> StdioTransport:
        """Create transport from subprocess stdin/stdout."""
        if process.stdin is None or process.stdout is None:
            raise ValueError("Process must have stdin and stdout pipes")
        return cls(reader=process.stdout, writer=process.stdin, **kwargs)

    @property
    def closed(self) -> bool:
        return self._closed

    def on_error(self, handler: ErrorHandler) -> None:
        self._error_handlers.append(handler)

    def on_close(self, handler: CloseHandler) -> None:
        self._close_handlers.append(handler)

    def start(self, on_message: MessageHandler) -> None:
        """Start delivering inbound messages to on_message, in arrival order."""
        if self._read_task is not None:
            raise RuntimeError("Transport already started")
        if self._closed:
            raise TransportClosedError("Transport is closed")
        self._read_task = asyncio.create_task(
            self._read_loop(on_message), name="copilot-transport-reader"
        )

    async def write_message(self, msg: dict[str, Any]) -> None:
        """Write one framed message. Frames never interleave.

        Raises:
            TransportClosedError: The transport is closed or the write failed.
            FramingError: The message is not JSON-serializable.
        """
        if self._closed:
            raise TransportClosedError("Transport is closed")

        frame = encode_message(msg)

        async with self._write_lock:
            if self._closed:
                raise TransportClosedError("Transport is closed")
            try:
                self._writer.write(frame)
                await self._writer.drain()
            except (OSError, RuntimeError) as e:
                error = TransportClosedError(f"Failed to write to agent: {e}")
                self._mark_closed(error)
                raise error from e

        _log.log(TRACE, "-> %s", msg)

    async def close(self) -> None:
        """Close both directions. Safe to call more than once."""
        self._mark_closed(None)

        task = self._read_task
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        if not self._writer.is_closing():
            self._writer.close()
        with contextlib.suppress(OSError, RuntimeError):
            await self._writer.wait_closed()

    async def _read_loop(self, on_message: MessageHandler) -> None:
        reason: Exception | None = None
        try:
            while True:
                try:
                    msg = await read_message(self._reader, max_message_size=self._max_message_size)
                except MessageDecodeError as e:
                    # Frame fully consumed; the stream is still aligned.
                    self._emit_error(e)
                    continue

                if msg is None:
                    _log.debug("Agent closed its output stream")
                    break

                _log.log(TRACE, "<- %s", msg)
                try:
                    on_message(msg)
                except Exception as e:
                    _log.exception("Message handler failed")
                    self._emit_error(e)
        except (FramingError, OSError) as e:
            reason = e
            self._emit_error(e)
        self._mark_closed(reason)

    def _emit_error(self, error: Exception) -> None:
        for handler in list(self._error_handlers):
            handler(error)

    def _mark_closed(self, reason: Exception | None) -> None:
        if self._closed:
            return
        self._closed = True
        for handler in list(self._close_handlers):
            handler(reason)
