"""Session orchestrator for the Copilot completion agent.

One CopilotClient owns one JSON-RPC endpoint for the lifetime of a host
session. It runs the handshake, then exposes document sync, completions and
auth until dispose().

Failure policy by operation:
- setup(): any handshake failure propagates and the session is FAILED
- open_document() / did_change() / sync_document(): logged, return False
- completion(): logged, returns an empty CompletionList
- check_status() / set_editor_info() / auth: propagate to the caller
- dispose(): never raises; a second call is a no-op
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any

from copilot_client.errors import CopilotClientError, StaleSessionError
from copilot_client.logging import VERBOSE, get_logger
from copilot_client.protocols import (
    ActiveDocumentProvider,
    DiagnosticSink,
    InMemoryVersionCache,
    VersionCache,
)
from copilot_client.rpc.endpoint import JsonRpcEndpoint
from copilot_client.session.auth import AuthFlow
from copilot_client.session.completions import CompletionRequester
from copilot_client.session.documents import DocumentSynchronizer
from copilot_client.session.state import (
    AuthState,
    HandshakeStateMachine,
    HandshakeStep,
    SessionState,
)
from copilot_client.transport.stdio import StdioTransport
from copilot_client.types import (
    CompletionList,
    DidChangeTextDocumentParams,
    DidOpenTextDocumentParams,
    EditorIdentity,
    GetCompletionsParams,
    InitializeParams,
    InitializeResult,
    NameAndVersion,
    SignInInitiateResult,
    StatusResult,
)

# Identity reported to the agent. Fixed, not user-configurable.
CLIENT_INFO = NameAndVersion(name="ObsidianCopilot", version="0.0.1")
EDITOR_INFO = NameAndVersion(name="obsidian", version="0.0.1")
EDITOR_PLUGIN_INFO = NameAndVersion(name="obsidian-copilot", version="0.0.1")
CLIENT_CAPABILITIES: dict[str, Any] = {"copilot": {"openURL": True}}

# LSP MessageType -> logging level
_MESSAGE_TYPE_LEVELS = {
    1: logging.ERROR,
    2: logging.WARNING,
    3: VERBOSE,
    4: logging.DEBUG,
}


def editor_identity() -> EditorIdentity:
    return EditorIdentity(editor_info=EDITOR_INFO, editor_plugin_info=EDITOR_PLUGIN_INFO)


class CopilotClient:
    """Client session with a running Copilot agent.

    Args:
        endpoint: JSON-RPC endpoint over the agent's stdio. Not yet started.
        base_path: Filesystem root that document paths are relative to.
        version_cache: Per-path document version counter.
        process_id: Agent process id, reported in initialize.
        active_document: Host accessor for the focused document, if any.
        sink: Diagnostic sink. Defaults to the "copilot_client.session" logger.
    """

    def __init__(
        self,
        endpoint: JsonRpcEndpoint,
        *,
        base_path: str | Path,
        version_cache: VersionCache | None = None,
        process_id: int | None = None,
        active_document: ActiveDocumentProvider | None = None,
        sink: DiagnosticSink | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._base_path = str(base_path).rstrip("/") or "/"
        self._version_cache = version_cache if version_cache is not None else InMemoryVersionCache()
        self._process_id = process_id
        self._active_document = active_document
        self._sink: DiagnosticSink = sink if sink is not None else get_logger("session")
        self._handshake = HandshakeStateMachine()

        guard = self._handshake.require_ready
        self._documents = DocumentSynchronizer(
            endpoint,
            base_path=self._base_path,
            version_cache=self._version_cache,
            sink=self._sink,
            guard=guard,
        )
        self._completions = CompletionRequester(endpoint, sink=self._sink, guard=guard)
        self._auth = AuthFlow(endpoint, sink=self._sink, guard=guard)

        self.initialize_result: InitializeResult | None = None
        self.status: StatusResult | None = None

        endpoint.on_notification("window/logMessage", self._on_log_message)
        endpoint.on_notification("statusNotification", self._on_status_notification)

    @classmethod
    def from_process(
        cls,
        process: asyncio.subprocess.Process,
        *,
        base_path: str | Path,
        version_cache: VersionCache | None = None,
        active_document: ActiveDocumentProvider | None = None,
        sink: DiagnosticSink | None = None,
    ) -> CopilotClient:
        """Build a client over a spawned agent's stdin/stdout."""
        transport = StdioTransport.from_process(process)
        endpoint = JsonRpcEndpoint(transport, sink=sink)
        return cls(
            endpoint,
            base_path=base_path,
            version_cache=version_cache,
            process_id=process.pid,
            active_document=active_document,
            sink=sink,
        )

    @property
    def state(self) -> SessionState:
        return self._handshake.state

    @property
    def auth_state(self) -> AuthState:
        return self._auth.state

    @property
    def endpoint(self) -> JsonRpcEndpoint:
        return self._endpoint

    @property
    def documents(self) -> DocumentSynchronizer:
        return self._documents

    @property
    def root_uri(self) -> str:
        return f"file://{self._base_path}"

    # -------------------------------------------------------------------------
    # Handshake
    # -------------------------------------------------------------------------

    async def setup(self) -> None:
        """Run the handshake: initialize, initialized, checkStatus, setEditorInfo.

        Each step waits for the previous one to finish. Any failure propagates
        and leaves the session FAILED; do not use it afterwards.
        """
        self._handshake.begin()
        try:
            self._endpoint.start()
        except Exception:
            self._handshake.fail()
            raise

        with self._handshake.step(HandshakeStep.INITIALIZE):
            result = await self._endpoint.request("initialize", self._initialize_params().to_wire())
            self.initialize_result = InitializeResult.model_validate(result or {})

        with self._handshake.step(HandshakeStep.INITIALIZED):
            await self._endpoint.notify("initialized", {})

        with self._handshake.step(HandshakeStep.CHECK_STATUS):
            await self._request_status()

        with self._handshake.step(HandshakeStep.SET_EDITOR_INFO):
            await self._endpoint.request("setEditorInfo", editor_identity().to_wire())

        self._sink.log(logging.INFO, f"Copilot session ready ({self.auth_state.status.value})")
        await self._open_active_document()

    def _initialize_params(self) -> InitializeParams:
        return InitializeParams(
            process_id=self._process_id,
            capabilities=CLIENT_CAPABILITIES,
            client_info=CLIENT_INFO,
            root_uri=self.root_uri,
            initialization_options=editor_identity(),
        )

    async def _request_status(self) -> StatusResult:
        result = StatusResult.model_validate(
            await self._endpoint.request("checkStatus", {"localChecksOnly": False})
        )
        self.status = result
        self._auth.update_from_status(result)
        return result

    async def _open_active_document(self) -> None:
        if self._active_document is None:
            return
        try:
            document = self._active_document.get_active_document()
        except Exception as e:
            self._sink.log(logging.ERROR, f"Error in openDocument: {e}")
            return
        if document is None:
            return
        await self._documents.open_document(
            self._documents.open_params(
                document.path, document.text, language_id=document.language_id
            )
        )

    # -------------------------------------------------------------------------
    # Steady state
    # -------------------------------------------------------------------------

    async def check_status(self) -> StatusResult:
        """Ask the agent whether it is signed in. Refreshes auth_state."""
        self._handshake.require_ready("check status")
        return await self._request_status()

    async def set_editor_info(self) -> None:
        """Re-assert editor identity, then reopen the active document."""
        self._handshake.require_ready("set editor info")
        await self._endpoint.request("setEditorInfo", editor_identity().to_wire())
        await self._open_active_document()

    async def initiate_sign_in(self) -> SignInInitiateResult:
        return await self._auth.initiate_sign_in()

    async def confirm_sign_in(self, code: str) -> StatusResult:
        return await self._auth.confirm_sign_in(code)

    async def sign_out(self) -> StatusResult:
        return await self._auth.sign_out()

    async def open_document(self, params: DidOpenTextDocumentParams | dict[str, Any]) -> bool:
        return await self._documents.open_document(params)

    async def did_change(self, params: DidChangeTextDocumentParams | dict[str, Any]) -> bool:
        return await self._documents.did_change(params)

    async def sync_document(self, path: str, text: str, **kwargs: Any) -> bool:
        return await self._documents.sync(path, text, **kwargs)

    async def completion(self, params: GetCompletionsParams | dict[str, Any]) -> CompletionList:
        return await self._completions.completion(params)

    # -------------------------------------------------------------------------
    # Teardown
    # -------------------------------------------------------------------------

    async def dispose(self) -> None:
        """Tell the agent to exit and release the endpoint.

        Pending requests are rejected with StaleSessionError. Calling this
        again is a no-op.
        """
        if not self._handshake.dispose():
            return

        try:
            await self._endpoint.notify("exit")
        except CopilotClientError as e:
            self._sink.log(logging.WARNING, f"Could not send exit to agent: {e}")

        await self._endpoint.close(StaleSessionError("Session has been disposed"))
        self._sink.log(logging.INFO, "Copilot session disposed")

    async def __aenter__(self) -> CopilotClient:
        await self.setup()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.dispose()

    # -------------------------------------------------------------------------
    # Agent notifications
    # -------------------------------------------------------------------------

    def _on_log_message(self, params: Any) -> None:
        params = params or {}
        level = _MESSAGE_TYPE_LEVELS.get(params.get("type"), logging.DEBUG)
        self._sink.log(level, f"[agent] {params.get('message', '')}")

    def _on_status_notification(self, params: Any) -> None:
        params = params or {}
        status = params.get("status") or params.get("kind") or "unknown"
        message = params.get("message") or ""
        self._sink.log(logging.DEBUG, f"[agent status] {status} {message}".rstrip())
