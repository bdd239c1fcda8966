"""JSON-RPC request/response correlation on top of the transport."""

from copilot_client.rpc.endpoint import JsonRpcEndpoint
from copilot_client.rpc.messages import JsonRpcMessage

__all__ = [
    "JsonRpcEndpoint",
    "JsonRpcMessage",
]
