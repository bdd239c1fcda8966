"""JSON-RPC 2.0 envelope used on the agent's stdio."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

JSONRPC_VERSION = "2.0"

# Standard JSON-RPC error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

RequestId = int | str


@dataclass
class JsonRpcMessage:
    """Parsed JSON-RPC message.

    A message with a method is a request (with id) or a notification (without).
    A message with an id and no method is a response, whose ``result`` may
    legitimately be null.
    """

    jsonrpc: str = JSONRPC_VERSION
    id: RequestId | None = None
    method: str | None = None
    params: Any = None
    result: Any = None
    error: Any = None

    def is_request(self) -> bool:
        return self.method is not None and self.id is not None

    def is_notification(self) -> bool:
        return self.method is not None and self.id is None

    def is_response(self) -> bool:
        return self.method is None and self.id is not None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        d: dict[str, Any] = {"jsonrpc": self.jsonrpc}
        if self.id is not None:
            d["id"] = self.id
        if self.method is not None:
            d["method"] = self.method
            if self.params is not None:
                d["params"] = self.params
        elif self.error is not None:
            d["error"] = self.error
        else:
            d["result"] = self.result
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JsonRpcMessage:
        return cls(
            jsonrpc=data.get("jsonrpc", JSONRPC_VERSION),
            id=data.get("id"),
            method=data.get("method"),
            params=data.get("params"),
            result=data.get("result"),
            error=data.get("error"),
        )

    @classmethod
    def request(cls, id: RequestId, method: str, params: Any = None) -> JsonRpcMessage:
        return cls(id=id, method=method, params=params)

    @classmethod
    def notification(cls, method: str, params: Any = None) -> JsonRpcMessage:
        return cls(method=method, params=params)

    @classmethod
    def response(cls, id: RequestId, result: Any = None) -> JsonRpcMessage:
        return cls(id=id, result=result)

    @classmethod
    def error_response(
        cls, id: RequestId, code: int, message: str, data: Any = None
    ) -> JsonRpcMessage:
        error: dict[str, Any] = {"code": code, "message": message}
        if data is not None:
            error["data"] = data
        return cls(id=id, error=error)
