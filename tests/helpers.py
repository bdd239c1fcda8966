"""Test utilities: an in-memory Copilot agent speaking LSP-framed JSON-RPC."""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from collections.abc import Callable
from typing import Any

from copilot_client.errors import JsonRpcError
from copilot_client.rpc.endpoint import JsonRpcEndpoint
from copilot_client.session.client import CopilotClient
from copilot_client.transport.framing import encode_message, read_message
from copilot_client.transport.stdio import StdioTransport

BASE_PATH = "/home/user/vault"
USER_CODE = "ABCD-1234"

Handler = Callable[[Any], Any]


class PipeWriter:
    """Stand-in for asyncio.StreamWriter that feeds bytes into a StreamReader."""

    def __init__(self, target: asyncio.StreamReader) -> None:
        self._target = target
        self._closing = False
        self.broken = False
        # When set, drain() waits on it, holding the transport write lock
        self.gate: asyncio.Event | None = None

    def write(self, data: bytes) -> None:
        if self.broken or self._closing:
            raise BrokenPipeError("pipe closed by peer")
        self._target.feed_data(data)

    async def drain(self) -> None:
        if self.gate is not None:
            await self.gate.wait()
        if self.broken:
            raise ConnectionResetError("pipe closed by peer")

    def is_closing(self) -> bool:
        return self._closing

    def close(self) -> None:
        if not self._closing:
            self._closing = True
            self._target.feed_eof()

    async def wait_closed(self) -> None:
        return None


class RecordingSink:
    """DiagnosticSink that keeps every record."""

    def __init__(self) -> None:
        self.records: list[tuple[int, str]] = []

    def log(self, level: int, msg: str) -> None:
        self.records.append((level, msg))

    def at(self, level: int) -> list[str]:
        return [msg for lvl, msg in self.records if lvl == level]

    @property
    def errors(self) -> list[str]:
        return self.at(logging.ERROR)


def _sign_in_confirm(params: dict[str, Any]) -> dict[str, Any]:
    if params.get("userCode") != USER_CODE:
        raise JsonRpcError(code=1001, message="Invalid user code")
    return {"status": "OK", "user": "octocat"}


def default_handlers() -> dict[str, Handler]:
    return {
        "initialize": lambda params: {
            "capabilities": {"textDocumentSync": {"openClose": True, "change": 2}},
            "serverInfo": {"name": "fake-copilot", "version": "1.0.0"},
        },
        "checkStatus": lambda params: {"status": "NotSignedIn"},
        "setEditorInfo": lambda params: "OK",
        "signInInitiate": lambda params: {
            "status": "PromptUserDeviceFlow",
            "userCode": USER_CODE,
            "verificationUri": "https://github.com/login/device",
            "expiresIn": 899,
            "interval": 5,
        },
        "signInConfirm": _sign_in_confirm,
        "signOut": lambda params: {"status": "NotSignedIn"},
        "getCompletionsCycling": lambda params: {
            "completions": [
                {
                    "uuid": "c-1",
                    "text": "hello world",
                    "displayText": "world",
                    "position": params["doc"]["position"],
                    "docVersion": params["doc"]["version"],
                }
            ]
        },
    }


class FakeAgent:
    """In-memory agent.

    Reads what the client writes, records every message, and answers requests
    with the handler registered for the method (sync or async). A handler may
    raise JsonRpcError to produce an error response.
    """

    def __init__(self) -> None:
        self.client_reader = asyncio.StreamReader()
        self._agent_reader = asyncio.StreamReader()
        self.client_writer = PipeWriter(self._agent_reader)
        self._agent_writer = PipeWriter(self.client_reader)
        self.handlers: dict[str, Handler] = default_handlers()
        self.received: list[dict[str, Any]] = []
        self._serve_task: asyncio.Task[None] | None = None
        self._tasks: set[asyncio.Task[Any]] = set()

    # --- wiring ---

    def transport(self) -> StdioTransport:
        return StdioTransport(self.client_reader, self.client_writer)  # type: ignore[arg-type]

    def endpoint(self, sink: Any = None) -> JsonRpcEndpoint:
        return JsonRpcEndpoint(self.transport(), sink=sink)

    def client(self, **kwargs: Any) -> CopilotClient:
        sink = kwargs.pop("sink", None)
        kwargs.setdefault("base_path", BASE_PATH)
        kwargs.setdefault("process_id", 4242)
        return CopilotClient(self.endpoint(sink), sink=sink, **kwargs)

    def start(self) -> None:
        self._serve_task = asyncio.create_task(self._serve())

    async def stop(self) -> None:
        tasks = [t for t in [self._serve_task, *self._tasks] if t is not None]
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    # --- agent side ---

    async def _serve(self) -> None:
        while True:
            msg = await read_message(self._agent_reader)
            if msg is None:
                return
            self.received.append(msg)
            if "method" in msg and "id" in msg:
                task = asyncio.create_task(self._answer(msg))
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)

    async def _answer(self, msg: dict[str, Any]) -> None:
        handler = self.handlers.get(msg["method"])
        reply: dict[str, Any] = {"jsonrpc": "2.0", "id": msg["id"]}
        if handler is None:
            reply["error"] = {"code": -32601, "message": f"Method not found: {msg['method']}"}
        else:
            try:
                result = handler(msg.get("params"))
                if inspect.isawaitable(result):
                    result = await result
                reply["result"] = result
            except JsonRpcError as e:
                reply["error"] = {"code": e.code, "message": e.message}
        with contextlib.suppress(BrokenPipeError):
            self.send(reply)

    def send(self, msg: dict[str, Any]) -> None:
        """Send a message from the agent to the client."""
        self._agent_writer.write(encode_message(msg))

    def send_raw(self, data: bytes) -> None:
        self.client_reader.feed_data(data)

    def close_output(self) -> None:
        """Agent closes its stdout (the client sees EOF)."""
        self._agent_writer.close()

    def break_input(self) -> None:
        """Agent's stdin goes away; client writes start failing."""
        self.client_writer.broken = True

    # --- assertions ---

    def methods(self) -> list[str]:
        return [m["method"] for m in self.received if "method" in m]

    def messages_for(self, method: str) -> list[dict[str, Any]]:
        return [m for m in self.received if m.get("method") == method]

    async def wait_for(self, method: str, count: int = 1, timeout: float = 1.0) -> None:
        async def _poll() -> None:
            while len(self.messages_for(method)) < count:
                await asyncio.sleep(0.001)

        await asyncio.wait_for(_poll(), timeout=timeout)


async def eventually(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    """Wait until predicate() is true, yielding to the loop between checks."""

    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.001)

    await asyncio.wait_for(_poll(), timeout=timeout)
