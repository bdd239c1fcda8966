"""LSP base-protocol framing for the agent's stdio streams.

The Copilot agent speaks JSON-RPC wrapped in the same header block the
Language Server Protocol uses:

    Content-Length: <length>\r\n
    [Content-Type: <type>]\r\n
    \r\n
    <json-rpc-message>

Content-Length counts the bytes of the UTF-8 encoded body. Header names are
matched case-insensitively.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

from copilot_client.errors import FramingError, MessageDecodeError

HEADER_ENCODING = "ascii"
CONTENT_ENCODING = "utf-8"
CRLF = b"\r\n"

DEFAULT_MAX_MESSAGE_SIZE = 32 * 1024 * 1024


def parse_headers(header_bytes: bytes) -> dict[str, str]:
    """Parse a header block into a dict keyed by lowercase header name.

    Args:
        header_bytes: Raw header lines without the terminating blank line.

    Returns:
        Mapping of lowercase header names to stripped values.

    Raises:
        FramingError: If a line is malformed or Content-Length is missing,
            not an integer, or negative.

    Example:
        >>> parse_headers(b"Content-Length: 42\\r\\nContent-Type: application/json")
        {'content-length': '42', 'content-type': 'application/json'}
    """
    if not header_bytes:
        raise FramingError("Empty header block")

    try:
        header_text = header_bytes.decode(HEADER_ENCODING)
    except UnicodeDecodeError as e:
        raise FramingError(f"Header contains non-ASCII characters: {e}") from e

    headers: dict[str, str] = {}
    for line in header_text.split("\r\n"):
        if not line:
            continue
        name, sep, value = line.partition(":")
        if not sep:
            raise FramingError(f"Malformed header line (no colon): {line!r}")
        name = name.strip()
        if not name:
            raise FramingError(f"Empty header name in line: {line!r}")
        headers[name.lower()] = value.strip()

    if "content-length" not in headers:
        raise FramingError("Missing required Content-Length header")

    try:
        length = int(headers["content-length"])
    except ValueError as e:
        raise FramingError(f"Invalid Content-Length value: {headers['content-length']!r}") from e
    if length < 0:
        raise FramingError(f"Negative Content-Length: {length}")

    return headers


def encode_message(msg: dict[str, Any]) -> bytes:
    """Serialize a JSON-RPC message into a complete frame (header + body)."""
    try:
        body = json.dumps(msg, separators=(",", ":"), ensure_ascii=False).encode(CONTENT_ENCODING)
    except (TypeError, ValueError) as e:
        raise FramingError(f"Message cannot be serialized to JSON: {e}") from e
    header = f"Content-Length: {len(body)}\r\n\r\n".encode(HEADER_ENCODING)
    return header + body


def decode_body(body: bytes) -> dict[str, Any]:
    """Decode a frame body into a JSON-RPC object.

    Raises:
        MessageDecodeError: If the body is not UTF-8 JSON or not an object.
    """
    try:
        message = json.loads(body.decode(CONTENT_ENCODING))
    except UnicodeDecodeError as e:
        raise MessageDecodeError(f"Invalid UTF-8 in message body: {e}") from e
    except json.JSONDecodeError as e:
        raise MessageDecodeError(f"Invalid JSON in message body: {e}") from e

    if not isinstance(message, dict):
        raise MessageDecodeError(
            f"JSON-RPC message must be an object, got {type(message).__name__}"
        )
    return message


async def read_message(
    reader: asyncio.StreamReader,
    *,
    max_message_size: int = DEFAULT_MAX_MESSAGE_SIZE,
) -> dict[str, Any] | None:
    """Read one framed message from the stream.

    Returns:
        The decoded message, or None on a clean EOF between frames.

    Raises:
        FramingError: The stream is no longer aligned on a frame boundary.
        MessageDecodeError: The frame was consumed but its body is unusable.
    """
    header_bytes = b""

    while True:
        try:
            line = await reader.readuntil(CRLF)
        except asyncio.IncompleteReadError as e:
            if header_bytes == b"" and not e.partial:
                return None
            raise FramingError("Unexpected EOF while reading headers") from e
        except asyncio.LimitOverrunError as e:
            raise FramingError(f"Header line too long: {e}") from e

        if line == CRLF:
            break
        header_bytes += line

    headers = parse_headers(header_bytes.removesuffix(CRLF))
    content_length = int(headers["content-length"])

    if content_length > max_message_size:
        raise FramingError(f"Message size {content_length} exceeds maximum {max_message_size}")

    try:
        body = await reader.readexactly(content_length)
    except asyncio.IncompleteReadError as e:
        raise FramingError(
            f"Incomplete message body: expected {content_length} bytes, got {len(e.partial)}"
        ) from e

    return decode_body(body)
