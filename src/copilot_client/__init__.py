"""copilot-client - session client for the Copilot completion agent.

Speaks JSON-RPC over the agent's stdio: runs the handshake, mirrors the
active document, requests completions, and drives sign-in.

    process = await asyncio.create_subprocess_exec(
        "node", "agent.js", "--stdio",
        stdin=asyncio.subprocess.PIPE, stdout=asyncio.subprocess.PIPE,
    )
    client = CopilotClient.from_process(process, base_path="/home/me/notes")
    await client.setup()
    completions = await client.completion(params)
    await client.dispose()
"""

from copilot_client.errors import (
    CopilotClientError,
    JsonRpcError,
    SessionNotReadyError,
    StaleSessionError,
    TransportClosedError,
)
from copilot_client.protocols import ActiveDocument, InMemoryVersionCache
from copilot_client.session import AuthState, AuthStatus, CopilotClient, SessionState
from copilot_client.types import CompletionList, GetCompletionsParams

__all__ = [
    "ActiveDocument",
    "AuthState",
    "AuthStatus",
    "CompletionList",
    "CopilotClient",
    "CopilotClientError",
    "GetCompletionsParams",
    "InMemoryVersionCache",
    "JsonRpcError",
    "SessionNotReadyError",
    "SessionState",
    "StaleSessionError",
    "TransportClosedError",
]

__version__ = "0.1.0"
