"""JSON-RPC endpoint: request/response correlation over a transport."""

from __future__ import annotations

import asyncio
import inspect
import itertools
import logging
from collections.abc import Awaitable, Callable
from typing import Any, cast

from copilot_client.errors import JsonRpcError, TransportClosedError
from copilot_client.logging import get_logger
from copilot_client.protocols import DiagnosticSink
from copilot_client.rpc.messages import (
    INTERNAL_ERROR,
    METHOD_NOT_FOUND,
    JsonRpcMessage,
    RequestId,
)
from copilot_client.transport.stdio import StdioTransport

NotificationHandler = Callable[[Any], Awaitable[None] | None]
RequestHandler = Callable[[Any], Awaitable[Any] | Any]


class JsonRpcEndpoint:
    """Correlates outgoing requests with agent responses.

    Every request gets a fresh integer id and a future in the pending map.
    The future is settled exactly once: by the matching response, or by
    abandon_all() when the transport closes or the session is disposed.
    A caller that stops awaiting leaves its entry registered until one of
    those happens.
    """

    def __init__(self, transport: StdioTransport, *, sink: DiagnosticSink | None = None) -> None:
        self._transport = transport
        self._sink: DiagnosticSink = sink if sink is not None else get_logger("rpc")
        self._ids = itertools.count(1)
        self._pending: dict[RequestId, asyncio.Future[Any]] = {}
        self._notification_handlers: dict[str, NotificationHandler] = {}
        self._request_handlers: dict[str, RequestHandler] = {}
        self._tasks: set[asyncio.Task[Any]] = set()
        self._started = False

        transport.on_error(self._on_transport_error)
        transport.on_close(self._on_transport_close)

    @property
    def transport(self) -> StdioTransport:
        return self._transport

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def start(self) -> None:
        """Begin reading from the transport. Idempotent."""
        if self._started:
            return
        self._started = True
        self._transport.start(self._dispatch)

    def on_notification(self, method: str, handler: NotificationHandler) -> None:
        """Register a handler for agent notifications of the given method."""
        self._notification_handlers[method] = handler

    def on_request(self, method: str, handler: RequestHandler) -> None:
        """Register a handler answering agent-to-client requests."""
        self._request_handlers[method] = handler

    async def request(self, method: str, params: Any = None) -> Any:
        """Send a request and wait for its correlated result.

        Raises:
            JsonRpcError: The agent answered with an error.
            TransportClosedError: The transport closed before a response.
            StaleSessionError: The session was disposed while waiting.
        """
        request_id = next(self._ids)
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future

        try:
            await self._transport.write_message(
                JsonRpcMessage.request(request_id, method, params).to_dict()
            )
        except BaseException:
            self._discard(request_id, future)
            raise

        return await future

    async def notify(self, method: str, params: Any = None) -> None:
        """Send a notification. No response is expected."""
        await self._transport.write_message(JsonRpcMessage.notification(method, params).to_dict())

    def abandon_all(self, error: Exception) -> int:
        """Reject every pending request with error. Returns how many were rejected."""
        pending, self._pending = self._pending, {}
        count = 0
        for future in pending.values():
            if not future.done():
                future.set_exception(error)
                count += 1
        return count

    async def close(self, error: Exception) -> None:
        """Abandon pending requests, stop handler tasks, close the transport."""
        self.abandon_all(error)
        for task in list(self._tasks):
            task.cancel()
        await self._transport.close()

    # -------------------------------------------------------------------------
    # Inbound
    # -------------------------------------------------------------------------

    def _dispatch(self, raw: dict[str, Any]) -> None:
        msg = JsonRpcMessage.from_dict(raw)
        if msg.method is not None and not isinstance(msg.method, str):
            self._sink.log(logging.WARNING, f"Dropping malformed JSON-RPC message: {raw!r}")
        elif msg.is_response():
            self._handle_response(cast(RequestId, msg.id), msg)
        elif msg.is_request():
            self._spawn(self._handle_request(cast(RequestId, msg.id), cast(str, msg.method), msg))
        elif msg.is_notification():
            self._handle_notification(cast(str, msg.method), msg.params)
        else:
            self._sink.log(logging.WARNING, f"Dropping malformed JSON-RPC message: {raw!r}")

    def _handle_response(self, request_id: RequestId, msg: JsonRpcMessage) -> None:
        if not isinstance(request_id, (int, str)):
            self._sink.log(logging.WARNING, f"Dropping response with invalid id {request_id!r}")
            return
        future = self._pending.pop(request_id, None)
        if future is None:
            self._sink.log(
                logging.WARNING, f"Dropping response for unknown request id {request_id!r}"
            )
            return
        if future.done():
            # Caller stopped waiting.
            return
        if msg.error is not None:
            future.set_exception(JsonRpcError.from_dict(msg.error))
        else:
            future.set_result(msg.result)

    def _handle_notification(self, method: str, params: Any) -> None:
        handler = self._notification_handlers.get(method)
        if handler is None:
            self._sink.log(logging.DEBUG, f"Unhandled notification: {method}")
            return
        try:
            result = handler(params)
        except Exception as e:
            self._sink.log(logging.ERROR, f"Notification handler for {method} failed: {e}")
            return
        if inspect.isawaitable(result):
            self._spawn(self._await_notification(method, result))

    async def _await_notification(self, method: str, pending: Awaitable[None]) -> None:
        try:
            await pending
        except Exception as e:
            self._sink.log(logging.ERROR, f"Notification handler for {method} failed: {e}")

    async def _handle_request(
        self, request_id: RequestId, method: str, msg: JsonRpcMessage
    ) -> None:
        handler = self._request_handlers.get(method)
        if handler is None:
            reply = JsonRpcMessage.error_response(
                request_id, METHOD_NOT_FOUND, f"Method not found: {method}"
            )
        else:
            try:
                result = handler(msg.params)
                if inspect.isawaitable(result):
                    result = await result
                reply = JsonRpcMessage.response(request_id, result)
            except JsonRpcError as e:
                reply = JsonRpcMessage.error_response(request_id, e.code, e.message, e.data)
            except Exception as e:
                self._sink.log(logging.ERROR, f"Request handler for {method} failed: {e}")
                reply = JsonRpcMessage.error_response(request_id, INTERNAL_ERROR, str(e))

        try:
            await self._transport.write_message(reply.to_dict())
        except TransportClosedError as e:
            self._sink.log(logging.WARNING, f"Could not answer {method}: {e}")

    def _spawn(self, coro: Awaitable[Any]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # -------------------------------------------------------------------------
    # Transport events
    # -------------------------------------------------------------------------

    def _on_transport_error(self, error: Exception) -> None:
        self._sink.log(logging.ERROR, f"Error in JSON-RPC transport: {error}")

    def _on_transport_close(self, reason: Exception | None) -> None:
        message = "Agent transport closed" + (f": {reason}" if reason else "")
        abandoned = self.abandon_all(TransportClosedError(message))
        if abandoned:
            self._sink.log(logging.WARNING, f"{message}; rejected {abandoned} pending request(s)")

    def _discard(self, request_id: RequestId, future: asyncio.Future[Any]) -> None:
        self._pending.pop(request_id, None)
        if future.done() and not future.cancelled():
            # Retrieve so asyncio does not warn about an unobserved exception.
            future.exception()
        else:
            future.cancel()
