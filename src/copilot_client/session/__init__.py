"""Session orchestration: handshake, document sync, completions, auth."""

from copilot_client.session.auth import AuthFlow
from copilot_client.session.client import CopilotClient
from copilot_client.session.completions import CompletionRequester
from copilot_client.session.documents import DocumentMirror, DocumentSynchronizer
from copilot_client.session.state import (
    AuthState,
    AuthStatus,
    HandshakeStateMachine,
    HandshakeStep,
    SessionState,
)

__all__ = [
    "AuthFlow",
    "AuthState",
    "AuthStatus",
    "CompletionRequester",
    "CopilotClient",
    "DocumentMirror",
    "DocumentSynchronizer",
    "HandshakeStateMachine",
    "HandshakeStep",
    "SessionState",
]
