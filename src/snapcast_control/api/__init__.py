"""JSON-RPC transport for the Snapcast control protocol over TCP.

The caller-facing handle lives in ``snapcast_control.api.client``; the
session engine in ``snapcast_control.api.connection``.
"""

from snapcast_control.api.protocol import (
    JsonRpcError,
    JsonRpcNotification,
    JsonRpcRequest,
    JsonRpcResult,
    ValidMessage,
)

__all__ = [
    "JsonRpcRequest",
    "JsonRpcResult",
    "JsonRpcNotification",
    "JsonRpcError",
    "ValidMessage",
]
