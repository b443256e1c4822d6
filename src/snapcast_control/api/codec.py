"""Newline-delimited framing for the Snapcast control protocol.

Snapcast speaks JSON-RPC over a raw TCP socket. Each message is one JSON
document terminated by a newline (the server sends ``\\r\\n``).
"""

import json
import logging
from collections.abc import Iterator
from typing import Any

logger = logging.getLogger(__name__)

FRAME_DELIMITER = b"\n"


class FrameError(Exception):
    """Raised when the byte stream cannot be split into text frames."""


class FrameDecoder:
    """Incremental frame splitter for one connection.

    Bytes are buffered until a delimiter arrives, so a frame split across
    several reads is reassembled. Create a new decoder per connection.

    Example:
        decoder = FrameDecoder()
        for frame in decoder.feed(chunk):
            document = json.loads(frame)
    """

    def __init__(self) -> None:
        """Initialize with an empty buffer."""
        self._buffer = bytearray()

    @property
    def pending(self) -> int:
        """Return the number of buffered bytes not yet forming a frame."""
        return len(self._buffer)

    def feed(self, data: bytes) -> Iterator[str]:
        """Buffer ``data`` and yield every complete frame it finishes.

        Frames are yielded lazily so a caller can act on the ones before a
        corrupt frame. Blank frames are skipped.

        Args:
            data: Raw bytes read from the socket.

        Yields:
            Decoded frame text without the line terminator.

        Raises:
            FrameError: If a complete frame is not valid UTF-8.
        """
        self._buffer.extend(data)
        while True:
            index = self._buffer.find(FRAME_DELIMITER)
            if index < 0:
                return
            raw = bytes(self._buffer[:index])
            del self._buffer[: index + 1]

            try:
                text = raw.decode("utf-8")
            except UnicodeDecodeError as e:
                raise FrameError(f"Frame is not valid UTF-8: {e}") from e

            text = text.strip()
            if not text:
                continue
            logger.debug("Received frame with length %d", len(text))
            yield text

    def reset(self) -> None:
        """Drop any partially received frame."""
        self._buffer.clear()


def encode_frame(document: dict[str, Any]) -> bytes:
    """Serialize a JSON document as one wire frame."""
    return json.dumps(document, separators=(",", ":")).encode("utf-8") + FRAME_DELIMITER
