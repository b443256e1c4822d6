"""Session engine: socket lifecycle, receive loop, and reconnection.

One background task owns the TCP connection. It reads chunks from the
socket, splits them into frames, classifies every frame, folds messages
into the state store, and queues the outcome of each read as a Batch.
When the connection drops it clears in-flight requests and the state,
tells status listeners, and reconnects with capped exponential backoff
until the session is closed.
"""

import asyncio
import enum
import logging
from collections.abc import Callable, Iterator, Sequence
from contextlib import suppress
from dataclasses import dataclass

from snapcast_control.api.classifier import PendingRequests, parse_frame
from snapcast_control.api.codec import FrameDecoder, FrameError, encode_frame
from snapcast_control.api.protocol import (
    JsonRpcNotification,
    JsonRpcRequest,
    JsonRpcResult,
    ValidMessage,
)
from snapcast_control.core.state import StateStore
from snapcast_control.errors import (
    ClientError,
    ClientErrorKind,
    ConnectError,
    PayloadError,
    SendError,
)
from snapcast_control.models.server import DEFAULT_CONTROL_PORT
from snapcast_control.models.server_state import ServerState

logger = logging.getLogger(__name__)


class ConnectionStatus(enum.Enum):
    """Connection transitions delivered to status listeners."""

    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    RECONNECT_FAILED = "reconnect_failed"


class SessionState(enum.Enum):
    """Current phase of the session engine."""

    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    RECONNECT_FAILED = "reconnect_failed"
    CLOSED = "closed"


@dataclass(frozen=True, slots=True)
class ReconnectPolicy:
    """Connection timing.

    Attributes:
        initial_delay: Seconds to wait after the first failed attempt.
        max_delay: Upper bound for the delay between attempts.
        multiplier: Factor applied to the delay after each failure.
        connect_timeout: Seconds allowed for a single connection attempt.
        exit_if_first_connect_fails: Give up on ``open`` as soon as the very
            first attempt fails instead of retrying until its timeout.
    """

    initial_delay: float = 2.0
    max_delay: float = 30.0
    multiplier: float = 2.0
    connect_timeout: float = 10.0
    exit_if_first_connect_fails: bool = True

    def __post_init__(self) -> None:
        """Validate the timing values."""
        if self.initial_delay < 0 or self.max_delay < self.initial_delay:
            raise ValueError("Delays must satisfy 0 <= initial_delay <= max_delay")
        if self.multiplier < 1:
            raise ValueError("multiplier must be at least 1")
        if self.connect_timeout <= 0:
            raise ValueError("connect_timeout must be positive")

    def delays(self) -> Iterator[float]:
        """Yield the wait before each successive reconnection attempt."""
        delay = self.initial_delay
        while True:
            yield delay
            delay = min(delay * self.multiplier, self.max_delay)


@dataclass(frozen=True, slots=True)
class Batch:
    """Messages delivered together by one ``recv()``.

    Attributes:
        messages: Results, notifications and client errors in wire order.
        state: Snapshot taken right after the last message was folded.
    """

    messages: tuple[ValidMessage | ClientError, ...]
    state: ServerState

    def __len__(self) -> int:
        """Return the number of messages."""
        return len(self.messages)

    def __iter__(self) -> Iterator[ValidMessage | ClientError]:
        """Iterate over the messages in arrival order."""
        return iter(self.messages)

    @property
    def results(self) -> list[JsonRpcResult]:
        """Return only the results."""
        return [m for m in self.messages if isinstance(m, JsonRpcResult)]

    @property
    def notifications(self) -> list[JsonRpcNotification]:
        """Return only the notifications."""
        return [m for m in self.messages if isinstance(m, JsonRpcNotification)]

    @property
    def errors(self) -> list[ClientError]:
        """Return only the client errors."""
        return [m for m in self.messages if isinstance(m, ClientError)]

    @classmethod
    def merge(cls, batches: Sequence["Batch"]) -> "Batch":
        """Join consecutive batches, keeping the newest snapshot."""
        if len(batches) == 1:
            return batches[0]
        messages = tuple(m for batch in batches for m in batch.messages)
        return cls(messages=messages, state=batches[-1].state)


StatusListener = Callable[[ConnectionStatus], None]


class SessionEngine:
    """Persistent connection to a Snapcast server.

    Status listeners run synchronously on the engine task, in the order
    they were registered. They must not block: the same task drives the
    receive loop and reconnection timing.

    Example:
        engine = SessionEngine("192.168.1.100")
        engine.on_status_change(print)
        await engine.open(timeout=10.0)
        await engine.send(JsonRpcRequest.call("Server.GetStatus"))
        batch = await engine.recv()
    """

    _READ_CHUNK_SIZE: int = 64 * 1024

    def __init__(
        self,
        host: str,
        port: int = DEFAULT_CONTROL_PORT,
        policy: ReconnectPolicy | None = None,
        read_chunk_size: int = _READ_CHUNK_SIZE,
    ) -> None:
        """Initialize the engine without connecting.

        Args:
            host: Server hostname or IP address.
            port: JSON-RPC control port (default 1705).
            policy: Reconnection timing, defaults to ReconnectPolicy().
            read_chunk_size: Maximum bytes requested per socket read.
        """
        self._host = host
        self._port = port
        self._policy = policy or ReconnectPolicy()
        self._read_chunk_size = read_chunk_size

        self._pending = PendingRequests()
        self._store = StateStore()
        self._batches: asyncio.Queue[Batch | None] = asyncio.Queue()
        self._listeners: list[StatusListener] = []

        self._state = SessionState.CONNECTING
        self._writer: asyncio.StreamWriter | None = None
        self._task: asyncio.Task[None] | None = None
        self._first_connect: asyncio.Future[None] | None = None
        self._ever_connected = False
        self._closed = False

    @property
    def host(self) -> str:
        """Return server host."""
        return self._host

    @property
    def port(self) -> int:
        """Return server port."""
        return self._port

    @property
    def address(self) -> str:
        """Return the server address (host:port)."""
        return f"{self._host}:{self._port}"

    @property
    def policy(self) -> ReconnectPolicy:
        """Return the reconnection policy."""
        return self._policy

    @property
    def state(self) -> SessionState:
        """Return the current engine phase."""
        return self._state

    @property
    def is_connected(self) -> bool:
        """Return True if a connection is established."""
        return self._state is SessionState.CONNECTED

    @property
    def is_closed(self) -> bool:
        """Return True once ``close()`` has been called."""
        return self._closed

    @property
    def pending_count(self) -> int:
        """Return the number of requests awaiting a result."""
        return len(self._pending)

    def snapshot(self) -> ServerState:
        """Return the current state snapshot."""
        return self._store.snapshot()

    def on_status_change(self, listener: StatusListener) -> Callable[[], None]:
        """Register a listener for connection transitions.

        Args:
            listener: Called with each ConnectionStatus.

        Returns:
            A callable that unregisters the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            with suppress(ValueError):
                self._listeners.remove(listener)

        return unsubscribe

    def on_connect(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register a callback for every CONNECTED transition."""
        return self._on_transition(ConnectionStatus.CONNECTED, callback)

    def on_disconnect(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register a callback for every DISCONNECTED transition."""
        return self._on_transition(ConnectionStatus.DISCONNECTED, callback)

    def on_reconnect_failed(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register a callback for every RECONNECT_FAILED transition."""
        return self._on_transition(ConnectionStatus.RECONNECT_FAILED, callback)

    def _on_transition(
        self, wanted: ConnectionStatus, callback: Callable[[], None]
    ) -> Callable[[], None]:
        def listener(status: ConnectionStatus) -> None:
            if status is wanted:
                callback()

        return self.on_status_change(listener)

    async def open(self, timeout: float | None = None) -> None:
        """Start the engine and wait for the first connection.

        Args:
            timeout: Seconds to wait for the first connection, or None to
                wait as long as the policy keeps retrying.

        Raises:
            ConnectError: If no connection was made in time, or the first
                attempt failed with ``exit_if_first_connect_fails`` set.
            RuntimeError: If the engine was already started.
        """
        if self._task is not None or self._closed:
            raise RuntimeError("Session engine already started")

        self._first_connect = asyncio.get_running_loop().create_future()
        self._task = asyncio.create_task(self._run(), name=f"snapcast-session-{self.address}")
        self._task.add_done_callback(self._on_task_done)

        try:
            await asyncio.wait_for(self._first_connect, timeout=timeout)
        except TimeoutError as e:
            await self.close()
            raise ConnectError(f"Timed out connecting to {self.address}") from e
        except ConnectError:
            await self.close()
            raise

    async def close(self) -> None:
        """Stop the engine and release the socket.

        Idempotent. Pending ``recv()`` calls return None.
        """
        if self._closed:
            return
        self._closed = True
        was_connected = self._state is SessionState.CONNECTED

        if self._task:
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
            self._task = None

        await self._drop_connection()
        self._state = SessionState.CLOSED
        if was_connected:
            self._emit(ConnectionStatus.DISCONNECTED)

        if self._first_connect and not self._first_connect.done():
            self._first_connect.set_exception(ConnectError(f"Session to {self.address} closed"))

        # Wake every waiter; queued batches are discarded
        while not self._batches.empty():
            self._batches.get_nowait()
        self._batches.put_nowait(None)
        logger.info("Session to %s closed", self.address)

    async def send(self, request: JsonRpcRequest) -> None:
        """Write one request to the server.

        The request stays in the pending table until its result arrives or
        the connection is lost.

        Args:
            request: The request to send.

        Raises:
            SendError: If the session is closed, not connected, or the
                write fails.
            RequestIdCollision: If the request id is already pending.
        """
        if self._closed:
            raise SendError("Session is closed")
        writer = self._writer
        if self._state is not SessionState.CONNECTED or writer is None:
            raise SendError(f"Not connected to {self.address}")

        self._pending.register(request)
        try:
            writer.write(encode_frame(request.to_dict()))
            await writer.drain()
        except OSError as e:
            self._pending.resolve(request.id)
            # The receive loop sees EOF and runs the disconnect transition
            writer.close()
            raise SendError(f"Failed to send {request.method} to {self.address}: {e}") from e
        logger.debug("Sent %s (%s)", request.method, request.id)

    async def recv(self) -> Batch | None:
        """Wait for the next batch of inbound messages.

        Every batch already queued behind the first one is merged into it.

        Returns:
            The next non-empty batch, or None once the engine is closed.
        """
        if self._closed:
            return None

        batches: list[Batch] = []
        item = await self._batches.get()
        while item is not None:
            batches.append(item)
            try:
                item = self._batches.get_nowait()
            except asyncio.QueueEmpty:
                break

        if item is None:
            # Leave the end-of-stream marker for other waiters
            self._batches.put_nowait(None)
            return None
        return Batch.merge(batches)

    # Background task

    async def _run(self) -> None:
        """Connect, receive until the connection drops, and reconnect."""
        delays = self._policy.delays()

        while not self._closed:
            self._state = SessionState.CONNECTING
            try:
                reader, writer = await asyncio.wait_for(
                    asyncio.open_connection(self._host, self._port),
                    timeout=self._policy.connect_timeout,
                )
            except (OSError, TimeoutError) as e:
                if not self._connect_failed(e):
                    return
                await asyncio.sleep(next(delays))
                continue

            delays = self._policy.delays()
            self._writer = writer
            self._ever_connected = True
            self._state = SessionState.CONNECTED
            self._emit(ConnectionStatus.CONNECTED)
            if self._first_connect and not self._first_connect.done():
                self._first_connect.set_result(None)

            try:
                await self._receive_loop(reader)
            except (OSError, asyncio.IncompleteReadError, FrameError) as e:
                logger.warning("Connection to %s failed: %s", self.address, e)

            await self._drop_connection()
            self._state = SessionState.DISCONNECTED
            self._emit(ConnectionStatus.DISCONNECTED)

    def _connect_failed(self, error: Exception) -> bool:
        """Record a failed connection attempt.

        Returns:
            False if the engine should stop retrying.
        """
        if self._ever_connected:
            self._state = SessionState.RECONNECT_FAILED
            self._emit(ConnectionStatus.RECONNECT_FAILED)
            logger.debug("Reconnect to %s failed: %s", self.address, error)
            return True

        logger.warning("Failed to connect to %s: %s", self.address, error)
        self._state = SessionState.DISCONNECTED
        if self._policy.exit_if_first_connect_fails:
            if self._first_connect and not self._first_connect.done():
                self._first_connect.set_exception(
                    ConnectError(f"Failed to connect to {self.address}: {error}")
                )
            return False
        return True

    async def _receive_loop(self, reader: asyncio.StreamReader) -> None:
        """Read until EOF, queueing one batch per read."""
        decoder = FrameDecoder()
        while True:
            data = await reader.read(self._read_chunk_size)
            if not data:
                logger.warning("Server %s closed the connection", self.address)
                return

            messages: list[ValidMessage | ClientError] = []
            try:
                for frame in decoder.feed(data):
                    messages.append(self._process_frame(frame))
            finally:
                # Frames before a corrupt one are still delivered
                if messages:
                    self._batches.put_nowait(Batch(tuple(messages), self._store.snapshot()))

    def _process_frame(self, frame: str) -> ValidMessage | ClientError:
        """Classify one frame and fold it into the state."""
        message = parse_frame(frame, self._pending)
        if isinstance(message, ClientError):
            logger.warning("Undeliverable frame from %s: %s", self.address, message)
            return message
        try:
            self._store.apply(message)
        except PayloadError as e:
            logger.warning("Cannot fold %s from %s: %s", message.method, self.address, e)
            return ClientError(ClientErrorKind.PAYLOAD, f"{message.method}: {e}", message)
        return message

    async def _drop_connection(self) -> None:
        """Close the socket and forget everything tied to it."""
        writer, self._writer = self._writer, None
        if writer:
            try:
                writer.close()
                await asyncio.wait_for(writer.wait_closed(), timeout=1.0)
            except (OSError, TimeoutError):
                pass

        abandoned = self._pending.clear()
        if abandoned:
            logger.info("Abandoned %d pending request(s) to %s", abandoned, self.address)
        self._store.clear()

    def _emit(self, status: ConnectionStatus) -> None:
        """Deliver a status transition to every listener."""
        level = logging.INFO if status is ConnectionStatus.CONNECTED else logging.WARNING
        logger.log(level, "Connection to %s: %s", self.address, status.value)
        for listener in list(self._listeners):
            try:
                listener(status)
            except Exception:
                logger.exception("Status listener %r failed", listener)

    def _on_task_done(self, task: "asyncio.Task[None]") -> None:
        """End the session if the background task died unexpectedly.

        The engine is left closed. Listeners see DISCONNECTED if a
        connection was up and every ``recv()`` returns None.
        """
        if task.cancelled():
            return
        error = task.exception()
        if error is None:
            return

        logger.error("Session task for %s crashed", self.address, exc_info=error)
        was_connected = self._state is SessionState.CONNECTED
        self._closed = True
        self._state = SessionState.CLOSED

        writer, self._writer = self._writer, None
        if writer:
            writer.close()
        self._pending.clear()
        self._store.clear()
        if was_connected:
            self._emit(ConnectionStatus.DISCONNECTED)

        if self._first_connect and not self._first_connect.done():
            self._first_connect.set_exception(ConnectError(f"Session to {self.address} crashed"))
        self._batches.put_nowait(None)
