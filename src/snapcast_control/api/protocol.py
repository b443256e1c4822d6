"""JSON-RPC protocol types for Snapcast communication."""

import uuid
from dataclasses import dataclass, field
from typing import Any, Union

JSONRPC_VERSION = "2.0"

# Standard JSON-RPC 2.0 error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

_ERROR_NAMES = {
    PARSE_ERROR: "Parse error",
    INVALID_REQUEST: "Invalid request",
    METHOD_NOT_FOUND: "Method not found",
    INVALID_PARAMS: "Invalid params",
    INTERNAL_ERROR: "Internal error",
}


@dataclass(frozen=True, slots=True)
class JsonRpcRequest:
    """A JSON-RPC 2.0 request.

    Attributes:
        method: Method name to call.
        params: Method parameters (dict or list).
        id: Unique request identifier, generated when omitted.
    """

    method: str
    params: dict[str, Any] | list[Any] | None = None
    id: uuid.UUID = field(default_factory=uuid.uuid4)

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        result: dict[str, Any] = {
            "id": str(self.id),
            "jsonrpc": JSONRPC_VERSION,
            "method": self.method,
        }
        if self.params is not None:
            result["params"] = self.params
        return result

    def param(self, name: str, default: Any = None) -> Any:
        """Return a named parameter, or ``default`` if absent."""
        if isinstance(self.params, dict):
            return self.params.get(name, default)
        return default

    @classmethod
    def call(
        cls,
        method: str,
        params: dict[str, Any] | list[Any] | None = None,
    ) -> "JsonRpcRequest":
        """Create a method call request with a fresh id."""
        return cls(method=method, params=params)


@dataclass(frozen=True, slots=True)
class JsonRpcError:
    """A JSON-RPC 2.0 error.

    Attributes:
        code: Error code.
        message: Error message.
        data: Additional error data.
    """

    code: int
    message: str
    data: Any = None

    @property
    def name(self) -> str:
        """Return the standard name for the error code, if any."""
        return _ERROR_NAMES.get(self.code, "Unknown error")

    def __str__(self) -> str:
        """Return error message representation."""
        if self.data:
            return f"[{self.code}] {self.message}: {self.data}"
        return f"[{self.code}] {self.message}"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "JsonRpcError":
        """Create an error from its JSON object.

        Raises:
            ValueError: If ``code`` or ``message`` are missing or mistyped.
        """
        code = data.get("code")
        message = data.get("message")
        if not isinstance(code, int) or isinstance(code, bool):
            raise ValueError("error object has no integer 'code'")
        if not isinstance(message, str):
            raise ValueError("error object has no string 'message'")
        return cls(code=code, message=message, data=data.get("data"))


@dataclass(frozen=True, slots=True)
class JsonRpcResult:
    """A reply to a request this client sent.

    Attributes:
        id: Identifier of the originating request.
        request: The request this result answers.
        result: Result data (None if error).
        error: Error data (None if success).
    """

    id: uuid.UUID
    request: JsonRpcRequest
    result: Any = None
    error: JsonRpcError | None = None

    @property
    def method(self) -> str:
        """Return the method of the originating request."""
        return self.request.method

    @property
    def is_success(self) -> bool:
        """Return True if response indicates success."""
        return self.error is None


@dataclass(frozen=True, slots=True)
class JsonRpcNotification:
    """A JSON-RPC 2.0 notification (server-initiated message).

    Attributes:
        method: Notification method name.
        params: Notification parameters.
    """

    method: str
    params: dict[str, Any] | list[Any] | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "JsonRpcNotification":
        """Create notification from JSON dict."""
        return cls(
            method=data.get("method", ""),
            params=data.get("params"),
        )


ValidMessage = Union[JsonRpcResult, JsonRpcNotification]
