"""Exception hierarchy for the Copilot session client."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

# JSON-RPC "Internal error", same value as rpc.messages.INTERNAL_ERROR
_INTERNAL_ERROR = -32603


class CopilotClientError(Exception):
    """Base class for all client errors."""


# -----------------------------------------------------------------------------
# Transport
# -----------------------------------------------------------------------------


class TransportError(CopilotClientError):
    """Fault in the byte stream to or from the agent."""


class FramingError(TransportError):
    """Error in LSP message framing.

    Raised when:
    - Content-Length header is missing
    - Content-Length value is not a valid integer
    - Content-Length value is negative or too large
    - Header format is malformed
    - The stream ends in the middle of a frame
    """


class MessageDecodeError(FramingError):
    """A complete frame was read but its body is not a JSON-RPC object.

    The stream is still aligned on a frame boundary, so reading can continue.
    """


class TransportClosedError(TransportError):
    """The transport has been closed and can no longer carry messages."""


# -----------------------------------------------------------------------------
# JSON-RPC
# -----------------------------------------------------------------------------


@dataclass
class JsonRpcError(CopilotClientError):
    """Error response returned by the agent for a request."""

    code: int
    message: str
    data: Any = None

    def __str__(self) -> str:
        return f"JSON-RPC error {self.code}: {self.message}"

    @classmethod
    def from_dict(cls, error: Any) -> JsonRpcError:
        """Build from a response's ``error`` member, whatever shape it has.

        Anything that is not ``{"code": int, "message": ...}`` becomes an
        internal error (-32603) carrying the raw value, so a waiting caller
        is always settled.
        """
        if not isinstance(error, dict):
            return cls(code=_INTERNAL_ERROR, message=str(error), data=error)
        code = error.get("code")
        if not isinstance(code, int) or isinstance(code, bool):
            return cls(
                code=_INTERNAL_ERROR,
                message=f"Malformed error response: {error!r}",
                data=error,
            )
        return cls(
            code=code,
            message=str(error.get("message", "Unknown error")),
            data=error.get("data"),
        )


# -----------------------------------------------------------------------------
# Session
# -----------------------------------------------------------------------------


class SessionError(CopilotClientError):
    """Operation is not valid in the session's current state."""


class HandshakeOrderError(SessionError):
    """A handshake step was attempted out of sequence."""


class SessionNotReadyError(SessionError):
    """Operation issued before the handshake completed, or after it failed."""


class StaleSessionError(SessionError):
    """Operation issued on a session that has been disposed."""


class DocumentVersionError(CopilotClientError):
    """A document update carried a version lower than the one already synced."""
