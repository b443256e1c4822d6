"""Test fixtures for snapcast_control tests."""

import asyncio
import json
import os
from collections.abc import AsyncGenerator, Callable
from typing import Any

import pytest
import pytest_asyncio

from snapcast_control.api.connection import ReconnectPolicy

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

ClientFactory = Callable[..., dict[str, Any]]


def _client_payload(
    client_id: str,
    name: str = "",
    percent: int = 50,
    muted: bool = False,
    connected: bool = True,
    ip: str = "192.168.1.10",
    latency: int = 0,
) -> dict[str, Any]:
    """Return a client object as Snapserver sends it."""
    return {
        "id": client_id,
        "connected": connected,
        "config": {
            "instance": 1,
            "latency": latency,
            "name": name,
            "volume": {"muted": muted, "percent": percent},
        },
        "host": {
            "arch": "x86_64",
            "ip": ip,
            "mac": "00:11:22:33:44:55",
            "name": f"{client_id}-host",
            "os": "Linux",
        },
        "lastSeen": {"sec": 1700000000, "usec": 250},
        "snapclient": {"name": "Snapclient", "protocolVersion": 2, "version": "0.27.0"},
    }


def _status_payload() -> dict[str, Any]:
    """Return a Server.GetStatus result."""
    return {
        "server": {
            "groups": [
                {
                    "id": "g1",
                    "name": "Downstairs",
                    "stream_id": "s1",
                    "muted": False,
                    "clients": [
                        _client_payload("c1", "Living Room", 75, ip="192.168.1.10"),
                        _client_payload("c2", "Kitchen", 50, muted=True, ip="192.168.1.11"),
                    ],
                },
                {
                    "id": "g2",
                    "name": "Bedroom",
                    "stream_id": "s2",
                    "muted": True,
                    "clients": [
                        _client_payload("c3", "", 30, connected=False, ip="192.168.1.12"),
                    ],
                },
            ],
            "server": {
                "host": {
                    "arch": "aarch64",
                    "ip": "192.168.1.2",
                    "mac": "aa:bb:cc:dd:ee:ff",
                    "name": "raspy",
                    "os": "Raspbian",
                },
                "snapserver": {
                    "controlProtocolVersion": 1,
                    "name": "Snapserver",
                    "protocolVersion": 1,
                    "version": "0.27.0",
                },
            },
            "streams": [
                {
                    "id": "s1",
                    "status": "playing",
                    "uri": {
                        "fragment": "",
                        "host": "",
                        "path": "/tmp/snapfifo",
                        "query": {"name": "Spotify", "codec": "flac"},
                        "raw": "pipe:///tmp/snapfifo?name=Spotify",
                        "scheme": "pipe",
                    },
                    "properties": {
                        "canControl": True,
                        "metadata": {"title": "Song", "artist": ["A", "B"], "album": "LP"},
                    },
                },
                {
                    "id": "s2",
                    "status": "idle",
                    "uri": {
                        "fragment": "",
                        "host": "",
                        "path": "/tmp/airfifo",
                        "query": {"name": "AirPlay"},
                        "raw": "airplay:///tmp/airfifo?name=AirPlay",
                        "scheme": "airplay",
                    },
                },
            ],
        }
    }


@pytest.fixture
def make_client() -> ClientFactory:
    """Return a factory for client payloads."""
    return _client_payload


@pytest.fixture
def status_payload() -> dict[str, Any]:
    """Return a Server.GetStatus result payload."""
    return _status_payload()


@pytest.fixture
def fast_policy() -> ReconnectPolicy:
    """Return a reconnect policy with short delays for tests."""
    return ReconnectPolicy(initial_delay=0.05, max_delay=0.2, connect_timeout=1.0)


class FakeSnapserver:
    """In-process TCP server speaking newline-delimited JSON.

    Requests from the client are collected in ``requests``. The test
    decides what to send back.
    """

    def __init__(self) -> None:
        self.host = "127.0.0.1"
        self.port = 0
        self.connections = 0
        self.requests: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        self._server: asyncio.Server | None = None
        self._writers: list[asyncio.StreamWriter] = []

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    async def start(self) -> None:
        """Listen, reusing the previous port after a restart."""
        self._server = await asyncio.start_server(self._handle, self.host, self.port)
        self.port = self._server.sockets[0].getsockname()[1]

    async def stop(self) -> None:
        """Stop listening and drop every connection."""
        server, self._server = self._server, None
        if server:
            server.close()
        await self.drop()
        if server:
            await server.wait_closed()

    async def drop(self) -> None:
        """Close every client connection from the server side."""
        writers, self._writers = self._writers, []
        for writer in writers:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                pass

    async def send(self, document: dict[str, Any]) -> None:
        """Send one JSON document to every connected client."""
        await self.send_raw(json.dumps(document).encode() + b"\r\n")

    async def send_raw(self, data: bytes) -> None:
        """Send raw bytes to every connected client."""
        for writer in self._writers:
            writer.write(data)
            await writer.drain()

    async def next_request(self, timeout: float = 2.0) -> dict[str, Any]:
        """Return the next request the client wrote."""
        return await asyncio.wait_for(self.requests.get(), timeout=timeout)

    async def reply(self, request: dict[str, Any], result: Any) -> None:
        """Answer a request with a result."""
        await self.send({"id": request["id"], "jsonrpc": "2.0", "result": result})

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self.connections += 1
        self._writers.append(writer)
        try:
            while line := await reader.readline():
                await self.requests.put(json.loads(line))
        except ConnectionError:
            pass
        finally:
            if writer in self._writers:
                self._writers.remove(writer)
            writer.close()


@pytest_asyncio.fixture
async def fake_server() -> AsyncGenerator[FakeSnapserver, None]:
    """Provide a running fake Snapserver on an ephemeral port."""
    server = FakeSnapserver()
    await server.start()
    yield server
    await server.stop()


async def wait_until(predicate: Callable[[], bool], timeout: float = 3.0) -> None:
    """Poll ``predicate`` until it holds or fail the test."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail("Condition not met in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def until() -> Callable[..., Any]:
    """Return the ``wait_until`` helper."""
    return wait_until
