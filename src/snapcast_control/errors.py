"""Error types raised or reported by the Snapcast client."""

import enum
from typing import Any


class ConnectError(ConnectionError):
    """The initial connection could not be established in time."""


class SendError(ConnectionError):
    """A request could not be written to the server."""


class RequestIdCollision(SendError):
    """A request id is already waiting for its result."""


class PayloadError(ValueError):
    """A message payload does not have the shape its method requires."""


class ClientErrorKind(enum.Enum):
    """Why an inbound frame could not be delivered as a message."""

    DECODE = "decode"
    CLASSIFICATION = "classification"
    UNKNOWN_REQUEST_ID = "unknown_request_id"
    PAYLOAD = "payload"


class ClientError(Exception):
    """One inbound frame that could not be routed.

    Client errors are delivered inside ``recv()`` batches rather than
    raised; they never end the receive loop.

    Attributes:
        kind: Failure category.
        raw: The frame text or decoded document that failed.
    """

    def __init__(self, kind: ClientErrorKind, message: str, raw: Any = None) -> None:
        """Initialize the error.

        Args:
            kind: Failure category.
            message: Human-readable description.
            raw: The offending frame or document.
        """
        super().__init__(message)
        self.kind = kind
        self.raw = raw

    def __repr__(self) -> str:
        """Return a debug representation."""
        return f"ClientError({self.kind.name}, {str(self)!r})"

    def __eq__(self, other: object) -> bool:
        """Compare by kind, message, and raw payload."""
        if not isinstance(other, ClientError):
            return NotImplemented
        return (self.kind, str(self), self.raw) == (other.kind, str(other), other.raw)

    def __hash__(self) -> int:
        """Hash by kind and message."""
        return hash((self.kind, str(self)))
