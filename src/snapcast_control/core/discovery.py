"""mDNS/Zeroconf discovery for Snapcast servers."""

from __future__ import annotations

import logging
import socket
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from zeroconf import ServiceBrowser, ServiceInfo, ServiceListener, Zeroconf

from snapcast_control.models.server import Server

logger = logging.getLogger(__name__)

# Snapcast mDNS service type (advertised by snapserver)
SNAPCAST_SERVICE_TYPE = "_snapcast._tcp.local."

# The mDNS service advertises the streaming port; the JSON-RPC control port is +1
CONTROL_PORT_OFFSET = 1
DEFAULT_STREAM_PORT = 1704


@dataclass(frozen=True, slots=True)
class DiscoveredServer:
    """A Snapcast server announced over mDNS.

    Attributes:
        name: Advertised server name.
        host: First advertised address.
        port: JSON-RPC control port.
        addresses: Every advertised address.
        hostname: FQDN from mDNS (e.g., "raspy.local").
    """

    name: str
    host: str
    port: int
    addresses: tuple[str, ...] = ()
    hostname: str = ""

    @property
    def display_name(self) -> str:
        """Return a display-friendly name."""
        suffix = f".{SNAPCAST_SERVICE_TYPE}"
        name = self.name[: -len(suffix)] if self.name.endswith(suffix) else self.name
        return name or self.hostname or self.host

    def to_server(self) -> Server:
        """Return the connection endpoint for this server."""
        return Server(name=self.display_name, host=self.host, port=self.port)


def parse_addresses(packed: Iterable[bytes]) -> list[str]:
    """Convert packed IPv4/IPv6 addresses to strings, skipping bad ones."""
    addresses: list[str] = []
    for addr in packed:
        family = socket.AF_INET6 if len(addr) == 16 else socket.AF_INET  # noqa: PLR2004
        try:
            addresses.append(socket.inet_ntop(family, addr))
        except (OSError, ValueError) as e:
            logger.debug("Could not parse address %r: %s", addr, e)
    return addresses


def server_from_info(name: str, info: ServiceInfo) -> DiscoveredServer | None:
    """Build a DiscoveredServer from resolved service info.

    Returns:
        The server, or None if the service has no usable address.
    """
    addresses = parse_addresses(info.addresses)
    if not addresses:
        logger.debug("No addresses found for service: %s", name)
        return None

    # Prefer server name from properties, fall back to mDNS name
    server_name = ""
    properties: dict[Any, Any] = info.properties or {}
    name_bytes = properties.get(b"name")
    if name_bytes:
        server_name = name_bytes.decode("utf-8", errors="replace")

    streaming_port = info.port or DEFAULT_STREAM_PORT
    hostname = info.server.rstrip(".") if info.server else ""

    return DiscoveredServer(
        name=server_name or name,
        host=addresses[0],
        port=streaming_port + CONTROL_PORT_OFFSET,
        addresses=tuple(addresses),
        hostname=hostname,
    )


class SnapcastServiceListener(ServiceListener):
    """Collects Snapcast services announced on the network.

    Zeroconf calls the listener from its own thread, so the server table
    is guarded by a lock.
    """

    def __init__(
        self,
        on_found: Callable[[DiscoveredServer], None] | None = None,
        on_removed: Callable[[str], None] | None = None,
    ) -> None:
        """Initialize the listener.

        Args:
            on_found: Callback when a server is discovered.
            on_removed: Callback when a server is removed.
        """
        self._on_found = on_found
        self._on_removed = on_removed
        self._servers: dict[str, DiscoveredServer] = {}
        self._lock = threading.Lock()

    @property
    def servers(self) -> list[DiscoveredServer]:
        """Return list of discovered servers."""
        with self._lock:
            return list(self._servers.values())

    def add_service(self, zc: Zeroconf, type_: str, name: str) -> None:
        """Handle service discovery."""
        info = zc.get_service_info(type_, name)
        if info is None:
            logger.debug("Could not get info for service: %s", name)
            return
        server = server_from_info(name, info)
        if server is None:
            return

        logger.info(
            "Discovered Snapcast server: %s at %s:%d", server.name, server.host, server.port
        )
        with self._lock:
            self._servers[name] = server
        if self._on_found:
            self._on_found(server)

    def remove_service(self, zc: Zeroconf, type_: str, name: str) -> None:  # noqa: ARG002
        """Handle service removal."""
        with self._lock:
            removed = self._servers.pop(name, None)
        if removed is not None:
            logger.info("Snapcast server removed: %s", name)
            if self._on_removed:
                self._on_removed(name)

    def update_service(self, zc: Zeroconf, type_: str, name: str) -> None:
        """Handle service update (re-add to refresh info)."""
        self.add_service(zc, type_, name)


class ServerDiscovery:
    """Discovers Snapcast servers on the local network via mDNS.

    Example:
        # Blocking discovery (find first server)
        server = ServerDiscovery.discover_one(timeout=5.0)
        if server:
            client = await open_client(server.to_server())

        # Background discovery with callbacks
        with ServerDiscovery() as discovery:
            discovery.start(on_found=lambda s: print(f"Found: {s.name}"))
            ...
    """

    def __init__(self) -> None:
        """Initialize the discovery service."""
        self._zeroconf: Zeroconf | None = None
        self._browser: ServiceBrowser | None = None
        self._listener: SnapcastServiceListener | None = None

    def __enter__(self) -> ServerDiscovery:
        """Enter context."""
        return self

    def __exit__(self, *args: object) -> None:
        """Exit context (stop browsing)."""
        self.stop()

    @property
    def is_running(self) -> bool:
        """Return True while browsing."""
        return self._zeroconf is not None

    @property
    def servers(self) -> list[DiscoveredServer]:
        """Return list of currently discovered servers."""
        if self._listener:
            return self._listener.servers
        return []

    def start(
        self,
        on_found: Callable[[DiscoveredServer], None] | None = None,
        on_removed: Callable[[str], None] | None = None,
    ) -> None:
        """Start background discovery.

        Args:
            on_found: Callback when a server is discovered.
            on_removed: Callback when a server is removed.
        """
        if self._zeroconf is not None:
            return

        self._zeroconf = Zeroconf()
        self._listener = SnapcastServiceListener(on_found=on_found, on_removed=on_removed)
        self._browser = ServiceBrowser(self._zeroconf, SNAPCAST_SERVICE_TYPE, self._listener)
        logger.debug("Started mDNS discovery for Snapcast servers")

    def stop(self) -> None:
        """Stop background discovery."""
        if self._browser:
            self._browser.cancel()
            self._browser = None

        if self._zeroconf:
            self._zeroconf.close()
            self._zeroconf = None

        self._listener = None
        logger.debug("Stopped mDNS discovery")

    @staticmethod
    def discover_one(timeout: float = 5.0) -> DiscoveredServer | None:
        """Discover and return the first Snapcast server found.

        Args:
            timeout: Maximum time to wait in seconds.

        Returns:
            First discovered server, or None if no server found.
        """
        found: list[DiscoveredServer] = []
        found_event = threading.Event()

        def on_found(server: DiscoveredServer) -> None:
            if not found:
                found.append(server)
                found_event.set()

        with ServerDiscovery() as discovery:
            discovery.start(on_found=on_found)
            found_event.wait(timeout=timeout)

        return found[0] if found else None

    @staticmethod
    def discover_all(timeout: float = 5.0) -> list[DiscoveredServer]:
        """Discover all Snapcast servers within timeout.

        Args:
            timeout: Time to wait for discovery in seconds.

        Returns:
            List of discovered servers.
        """
        with ServerDiscovery() as discovery:
            discovery.start()
            threading.Event().wait(timeout=timeout)
            return discovery.servers
