"""Transport layer: LSP framing over the agent's stdio."""

from copilot_client.transport.framing import (
    decode_body,
    encode_message,
    parse_headers,
    read_message,
)
from copilot_client.transport.stdio import StdioTransport

__all__ = [
    "StdioTransport",
    "decode_body",
    "encode_message",
    "parse_headers",
    "read_message",
]
