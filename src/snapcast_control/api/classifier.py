"""Routing of inbound documents to results, notifications, or errors."""

import json
import logging
import uuid
from typing import Any

from snapcast_control.api.protocol import (
    JsonRpcError,
    JsonRpcNotification,
    JsonRpcRequest,
    JsonRpcResult,
    ValidMessage,
)
from snapcast_control.errors import ClientError, ClientErrorKind, RequestIdCollision

logger = logging.getLogger(__name__)


class PendingRequests:
    """Requests written to the socket that have not been answered yet.

    Only the session engine touches the table, so it needs no locking.
    """

    def __init__(self) -> None:
        """Initialize an empty table."""
        self._requests: dict[uuid.UUID, JsonRpcRequest] = {}

    def __len__(self) -> int:
        """Return the number of outstanding requests."""
        return len(self._requests)

    def __contains__(self, request_id: object) -> bool:
        """Return True if ``request_id`` is outstanding."""
        return request_id in self._requests

    def register(self, request: JsonRpcRequest) -> None:
        """Mark ``request`` as outstanding.

        Raises:
            RequestIdCollision: If a request with the same id is outstanding.
        """
        if request.id in self._requests:
            raise RequestIdCollision(f"Request id {request.id} is already pending")
        self._requests[request.id] = request

    def resolve(self, request_id: uuid.UUID) -> JsonRpcRequest | None:
        """Remove and return the outstanding request, or None if unknown."""
        return self._requests.pop(request_id, None)

    def clear(self) -> int:
        """Drop every outstanding request.

        Returns:
            The number of requests that were abandoned.
        """
        count = len(self._requests)
        self._requests.clear()
        return count


def _parse_id(raw_id: Any) -> uuid.UUID | None:
    if not isinstance(raw_id, str):
        return None
    try:
        return uuid.UUID(raw_id)
    except ValueError:
        return None


def classify(document: Any, pending: PendingRequests) -> ValidMessage | ClientError:
    """Classify one decoded JSON document.

    A document with an ``id`` and no ``method`` is a result; one with a
    ``method`` and no ``id`` is a notification. Results resolve their
    request in ``pending``.

    Args:
        document: The decoded JSON value.
        pending: Table of outstanding requests.

    Returns:
        A result, a notification, or a ClientError describing the frame.
    """
    if not isinstance(document, dict):
        return ClientError(
            ClientErrorKind.CLASSIFICATION, "Message is not a JSON object", document
        )

    has_id = "id" in document
    has_method = "method" in document

    if has_method and not has_id:
        method = document["method"]
        if not isinstance(method, str) or not method:
            return ClientError(
                ClientErrorKind.CLASSIFICATION, "Notification method is not a string", document
            )
        return JsonRpcNotification.from_dict(document)

    if not has_id or has_method:
        return ClientError(
            ClientErrorKind.CLASSIFICATION,
            "Message is neither a result nor a notification",
            document,
        )

    request_id = _parse_id(document["id"])
    if request_id is None:
        return ClientError(
            ClientErrorKind.CLASSIFICATION,
            f"Result id {document['id']!r} is not a request id",
            document,
        )
    if "result" not in document and "error" not in document:
        return ClientError(
            ClientErrorKind.CLASSIFICATION, f"Result {request_id} has no result or error", document
        )

    # A malformed reply leaves its request pending
    error: JsonRpcError | None = None
    raw_error = document.get("error")
    if raw_error is not None:
        if not isinstance(raw_error, dict):
            return ClientError(
                ClientErrorKind.CLASSIFICATION,
                f"Result {request_id} has a malformed error",
                document,
            )
        try:
            error = JsonRpcError.from_dict(raw_error)
        except ValueError as e:
            return ClientError(
                ClientErrorKind.CLASSIFICATION, f"Result {request_id}: {e}", document
            )

    request = pending.resolve(request_id)
    if request is None:
        return ClientError(
            ClientErrorKind.UNKNOWN_REQUEST_ID,
            f"Result {request_id} does not match any pending request",
            document,
        )

    return JsonRpcResult(
        id=request_id,
        request=request,
        result=document.get("result"),
        error=error,
    )


def parse_frame(frame: str, pending: PendingRequests) -> ValidMessage | ClientError:
    """Decode one frame of text and classify it."""
    try:
        document = json.loads(frame)
    except (ValueError, RecursionError) as e:
        logger.warning("Discarding undecodable frame: %s", e)
        return ClientError(ClientErrorKind.DECODE, f"Invalid JSON: {e}", frame)
    return classify(document, pending)
