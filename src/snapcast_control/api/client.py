"""Snapcast JSON-RPC API client over TCP.

Snapcast uses raw TCP sockets with JSON-RPC, not WebSocket.
Each message is a JSON-RPC request/response delimited by newlines.

Requests are fire-and-forget: every verb returns the id of the request
it wrote, and the matching result arrives later through ``recv()``.
"""

import logging
import uuid
from collections.abc import Callable
from typing import Any

from snapcast_control.api.connection import (
    Batch,
    ConnectionStatus,
    ReconnectPolicy,
    SessionEngine,
    StatusListener,
)
from snapcast_control.api.protocol import JsonRpcRequest
from snapcast_control.models.server import DEFAULT_CONTROL_PORT, Server
from snapcast_control.models.server_state import ServerState

logger = logging.getLogger(__name__)

# Stream.Control commands and the parameter each one requires
STREAM_COMMANDS: dict[str, str | None] = {
    "play": None,
    "pause": None,
    "playPause": None,
    "stop": None,
    "next": None,
    "previous": None,
    "seek": "offset",
    "setPosition": "position",
}

# Stream.SetProperty properties
STREAM_PROPERTIES = frozenset({"loopStatus", "shuffle", "volume", "mute", "rate"})

DEFAULT_OPEN_TIMEOUT = 30.0


class SnapcastClient:
    """Async TCP client for Snapcast JSON-RPC API.

    Wraps a SessionEngine that stays connected, reconnecting on its own
    when the server goes away.

    Example:
        async with await open_client("192.168.1.100") as client:
            await client.server_get_status()
            batch = await client.recv()
            print(f"Connected to {client.state().host}")
    """

    def __init__(
        self,
        host: str,
        port: int = DEFAULT_CONTROL_PORT,
        policy: ReconnectPolicy | None = None,
    ) -> None:
        """Initialize the client without connecting.

        Args:
            host: Server hostname or IP address.
            port: TCP port (default 1705).
            policy: Reconnection timing.
        """
        self._engine = SessionEngine(host, port, policy)

    @property
    def host(self) -> str:
        """Return server host."""
        return self._engine.host

    @property
    def port(self) -> int:
        """Return server port."""
        return self._engine.port

    @property
    def is_connected(self) -> bool:
        """Return True if connected to server."""
        return self._engine.is_connected

    @property
    def engine(self) -> SessionEngine:
        """Return the underlying session engine."""
        return self._engine

    async def __aenter__(self) -> "SnapcastClient":
        """Enter async context."""
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Exit async context (close)."""
        await self.close()

    async def open(self, timeout: float | None = DEFAULT_OPEN_TIMEOUT) -> None:
        """Connect and start the background session.

        Raises:
            ConnectError: If the server cannot be reached in time.
        """
        await self._engine.open(timeout)

    async def close(self) -> None:
        """Close the connection and stop reconnecting."""
        await self._engine.close()

    def state(self) -> ServerState:
        """Return the current state snapshot."""
        return self._engine.snapshot()

    async def recv(self) -> Batch | None:
        """Wait for the next batch of messages, or None after close."""
        return await self._engine.recv()

    def on_status_change(self, listener: StatusListener) -> Callable[[], None]:
        """Register a connection status listener.

        Returns:
            A callable that unregisters the listener.
        """
        return self._engine.on_status_change(listener)

    def on_connect(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register a callback run on every (re)connection."""
        return self._engine.on_connect(callback)

    def on_disconnect(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register a callback run whenever the connection is lost."""
        return self._engine.on_disconnect(callback)

    def on_reconnect_failed(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register a callback run after each failed reconnection attempt."""
        return self._engine.on_reconnect_failed(callback)

    async def send(
        self,
        method: str,
        params: dict[str, Any] | list[Any] | None = None,
    ) -> uuid.UUID:
        """Send a JSON-RPC request.

        Args:
            method: Method name.
            params: Method parameters.

        Returns:
            The id of the request; its result arrives through ``recv()``.

        Raises:
            SendError: If not connected or the write fails.
        """
        request = JsonRpcRequest.call(method, params)
        await self._engine.send(request)
        return request.id

    # Client

    async def client_get_status(self, client_id: str) -> uuid.UUID:
        """Request one client's status (Client.GetStatus)."""
        return await self.send("Client.GetStatus", {"id": client_id})

    async def client_set_volume(
        self,
        client_id: str,
        percent: int,
        muted: bool = False,
    ) -> uuid.UUID:
        """Set client volume (Client.SetVolume).

        Args:
            client_id: ID of the client.
            percent: Volume 0-100.
            muted: Whether client is muted.
        """
        return await self.send(
            "Client.SetVolume",
            {"id": client_id, "volume": {"percent": percent, "muted": muted}},
        )

    async def client_set_mute(self, client_id: str, muted: bool) -> uuid.UUID:
        """Set client mute state only (Client.SetVolume with muted only).

        Sends only the muted flag so the volume is left unchanged.

        Args:
            client_id: ID of the client.
            muted: Whether client is muted.
        """
        return await self.send("Client.SetVolume", {"id": client_id, "volume": {"muted": muted}})

    async def client_set_latency(self, client_id: str, latency: int) -> uuid.UUID:
        """Set client latency offset (Client.SetLatency).

        Args:
            client_id: ID of the client.
            latency: Latency offset in milliseconds.
        """
        return await self.send("Client.SetLatency", {"id": client_id, "latency": latency})

    async def client_set_name(self, client_id: str, name: str) -> uuid.UUID:
        """Set client name (Client.SetName)."""
        return await self.send("Client.SetName", {"id": client_id, "name": name})

    # Group

    async def group_get_status(self, group_id: str) -> uuid.UUID:
        """Request one group's status (Group.GetStatus)."""
        return await self.send("Group.GetStatus", {"id": group_id})

    async def group_set_mute(self, group_id: str, mute: bool) -> uuid.UUID:
        """Set group mute state (Group.SetMute)."""
        return await self.send("Group.SetMute", {"id": group_id, "mute": mute})

    async def group_set_stream(self, group_id: str, stream_id: str) -> uuid.UUID:
        """Set group audio stream (Group.SetStream)."""
        return await self.send("Group.SetStream", {"id": group_id, "stream_id": stream_id})

    async def group_set_clients(self, group_id: str, clients: list[str]) -> uuid.UUID:
        """Set the clients of a group (Group.SetClients).

        Args:
            group_id: ID of the group.
            clients: IDs of every client the group should contain.
        """
        return await self.send("Group.SetClients", {"id": group_id, "clients": list(clients)})

    async def group_set_name(self, group_id: str, name: str) -> uuid.UUID:
        """Set group name (Group.SetName)."""
        return await self.send("Group.SetName", {"id": group_id, "name": name})

    # Server

    async def server_get_rpc_version(self) -> uuid.UUID:
        """Request the JSON-RPC version (Server.GetRPCVersion)."""
        return await self.send("Server.GetRPCVersion")

    async def server_get_status(self) -> uuid.UUID:
        """Request the full server status (Server.GetStatus)."""
        return await self.send("Server.GetStatus")

    async def server_delete_client(self, client_id: str) -> uuid.UUID:
        """Remove a disconnected client from the server (Server.DeleteClient)."""
        return await self.send("Server.DeleteClient", {"id": client_id})

    # Stream

    async def stream_add_stream(self, stream_uri: str) -> uuid.UUID:
        """Add a stream (Stream.AddStream).

        Args:
            stream_uri: Stream URI, e.g. ``pipe:///tmp/snapfifo?name=Radio``.
        """
        return await self.send("Stream.AddStream", {"streamUri": stream_uri})

    async def stream_remove_stream(self, stream_id: str) -> uuid.UUID:
        """Remove a stream (Stream.RemoveStream)."""
        return await self.send("Stream.RemoveStream", {"id": stream_id})

    async def stream_control(
        self,
        stream_id: str,
        command: str,
        params: dict[str, Any] | None = None,
    ) -> uuid.UUID:
        """Control playback of a stream (Stream.Control).

        Args:
            stream_id: ID of the stream.
            command: One of STREAM_COMMANDS.
            params: Command parameters; ``seek`` needs ``offset`` and
                ``setPosition`` needs ``position`` (both in seconds).

        Raises:
            ValueError: If the command is unknown or misses its parameter.
        """
        if command not in STREAM_COMMANDS:
            raise ValueError(f"Unknown stream command: {command}")
        required = STREAM_COMMANDS[command]
        if required is not None and (params is None or required not in params):
            raise ValueError(f"Stream command {command} requires '{required}'")

        payload: dict[str, Any] = {"id": stream_id, "command": command}
        if params is not None:
            payload["params"] = params
        return await self.send("Stream.Control", payload)

    async def stream_set_property(self, stream_id: str, prop: str, value: Any) -> uuid.UUID:
        """Set a stream property (Stream.SetProperty).

        Args:
            stream_id: ID of the stream.
            prop: One of STREAM_PROPERTIES.
            value: New value for the property.

        Raises:
            ValueError: If the property is unknown.
        """
        if prop not in STREAM_PROPERTIES:
            raise ValueError(f"Unknown stream property: {prop}")
        return await self.send(
            "Stream.SetProperty", {"id": stream_id, "property": prop, "value": value}
        )


async def open_client(
    address: str | Server,
    policy: ReconnectPolicy | None = None,
    initial_connect_timeout: float | None = DEFAULT_OPEN_TIMEOUT,
    on_status_change: Callable[[ConnectionStatus], None] | None = None,
) -> SnapcastClient:
    """Connect to a Snapcast server.

    Args:
        address: ``host``, ``host:port`` or a Server.
        policy: Reconnection timing.
        initial_connect_timeout: Seconds to wait for the first connection.
        on_status_change: Listener registered before connecting, so it
            also sees the first Connected transition.

    Returns:
        A connected client.

    Raises:
        ConnectError: If the server cannot be reached in time.
    """
    server = address if isinstance(address, Server) else Server.parse(address)
    client = SnapcastClient(server.host, server.port, policy)
    if on_status_change is not None:
        client.on_status_change(on_status_change)
    logger.info("Connecting to %s", server.address)
    await client.open(initial_connect_timeout)
    return client
