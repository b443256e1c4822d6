"""QThread worker for running async SnapcastClient in a Qt application.

Qt widgets must run in the main thread, but the SnapcastClient uses asyncio.
This worker runs the asyncio event loop in a background thread and bridges
events to the main thread via Qt signals.
"""

import asyncio
import logging
from typing import Any

from PySide6.QtCore import QThread, Signal

from snapcast_control.api.client import DEFAULT_OPEN_TIMEOUT, SnapcastClient
from snapcast_control.api.connection import Batch, ConnectionStatus, ReconnectPolicy
from snapcast_control.models.server import DEFAULT_CONTROL_PORT

logger = logging.getLogger(__name__)


class SnapcastWorker(QThread):
    """Background thread worker for the Snapcast TCP client.

    Runs the async SnapcastClient in a QThread so the main Qt thread
    stays responsive. Emits Qt signals when events occur.

    Example:
        worker = SnapcastWorker("192.168.1.100", 1705)
        worker.status_changed.connect(lambda s: print(f"Status: {s}"))
        worker.state_changed.connect(lambda state: print(f"State: {state}"))
        worker.error_occurred.connect(lambda e: print(f"Error: {e}"))
        worker.start()
    """

    # Connection state signal
    status_changed = Signal(object)  # ConnectionStatus

    # Data signals
    batch_received = Signal(object)  # Batch
    state_changed = Signal(object)  # ServerState

    # Error signal
    error_occurred = Signal(object)  # Exception

    def __init__(
        self,
        host: str,
        port: int = DEFAULT_CONTROL_PORT,
        policy: ReconnectPolicy | None = None,
        timeout: float = DEFAULT_OPEN_TIMEOUT,
    ) -> None:
        """Initialize the worker.

        Args:
            host: Server hostname or IP.
            port: TCP port (default 1705).
            policy: Reconnection timing.
            timeout: Seconds to wait for the first connection.
        """
        super().__init__()
        self._host = host
        self._port = port
        self._policy = policy
        self._timeout = timeout
        self._client: SnapcastClient | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._should_run = True
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def host(self) -> str:
        """Return server host."""
        return self._host

    @property
    def port(self) -> int:
        """Return server port."""
        return self._port

    @property
    def is_connected(self) -> bool:
        """Return True if client is connected."""
        return self._client is not None and self._client.is_connected

    def stop(self) -> None:
        """Signal the worker to stop (called from main thread)."""
        self._should_run = False
        if self._client and self._loop and self._loop.is_running():
            asyncio.run_coroutine_threadsafe(self._client.close(), self._loop)

    def call(self, verb: str, *args: Any) -> None:
        """Invoke a client verb from the main thread.

        Errors are emitted via error_occurred signal.

        Args:
            verb: Name of a SnapcastClient method, e.g. "group_set_mute".
            *args: Arguments for the verb.
        """
        if self._loop and self._loop.is_running() and self._client:
            asyncio.run_coroutine_threadsafe(self._safe_call(verb, *args), self._loop)

    def request_status(self) -> None:
        """Request a full status update from the server.

        Thread-safe call from main thread.
        """
        self.call("server_get_status")

    def set_client_volume(self, client_id: str, volume: int, muted: bool) -> None:
        """Set client volume.

        Thread-safe call from main thread.
        """
        self.call("client_set_volume", client_id, volume, muted)

    def set_client_mute(self, client_id: str, muted: bool) -> None:
        """Set client mute state only (without changing volume)."""
        self.call("client_set_mute", client_id, muted)

    def set_client_latency(self, client_id: str, latency: int) -> None:
        """Set client latency offset."""
        self.call("client_set_latency", client_id, latency)

    def rename_client(self, client_id: str, name: str) -> None:
        """Rename a client."""
        self.call("client_set_name", client_id, name)

    def set_group_mute(self, group_id: str, muted: bool) -> None:
        """Set group mute state."""
        self.call("group_set_mute", group_id, muted)

    def set_group_stream(self, group_id: str, stream_id: str) -> None:
        """Set group audio stream."""
        self.call("group_set_stream", group_id, stream_id)

    def rename_group(self, group_id: str, name: str) -> None:
        """Rename a group."""
        self.call("group_set_name", group_id, name)

    async def _safe_call(self, verb: str, *args: Any) -> None:
        """Run a client verb with error handling."""
        if not self._client or not self._client.is_connected:
            return
        try:
            await getattr(self._client, verb)(*args)
        except Exception as e:
            self.error_occurred.emit(e)

    def run(self) -> None:
        """Run the worker thread (entry point)."""
        self._loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self._loop)

        try:
            self._loop.run_until_complete(self._session())
        except Exception as e:
            self.error_occurred.emit(e)
        finally:
            if self._client:
                self._loop.run_until_complete(self._client.close())
            self._loop.close()
            self._loop = None
            self._client = None

    async def _session(self) -> None:
        """Open the client and forward batches until it is closed."""
        if not self._should_run:
            return

        client = SnapcastClient(self._host, self._port, self._policy)
        client.on_status_change(self._on_status)
        self._client = client

        try:
            await client.open(self._timeout)
        except ConnectionError as e:
            if self._should_run:
                self.error_occurred.emit(e)
            return

        while self._should_run:
            batch = await client.recv()
            if batch is None:
                break
            self._on_batch(batch)

    def _on_status(self, status: ConnectionStatus) -> None:
        """Handle a connection transition on the worker loop."""
        self.status_changed.emit(status)
        if status is ConnectionStatus.CONNECTED:
            # The state store starts empty on every connection
            if self._loop:
                task = self._loop.create_task(self._safe_call("server_get_status"))
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)
        elif self._client:
            self.state_changed.emit(self._client.state())

    def _on_batch(self, batch: Batch) -> None:
        """Forward a received batch and the state it produced."""
        self.batch_received.emit(batch)
        self.state_changed.emit(batch.state)
