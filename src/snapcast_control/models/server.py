"""Server endpoint and server-reported details."""

from dataclasses import dataclass
from typing import Any

from snapcast_control.models._payload import as_int, require_dict

DEFAULT_CONTROL_PORT = 1705


@dataclass(frozen=True, slots=True)
class Server:
    """Snapcast server connection info.

    Snapcast uses raw TCP sockets with JSON-RPC, NOT WebSocket.

    Attributes:
        name: Human-readable name for this server.
        host: Server hostname or IP address.
        port: TCP control port (default 1705).
    """

    name: str
    host: str
    port: int = DEFAULT_CONTROL_PORT

    @property
    def address(self) -> str:
        """Return the server address (host:port)."""
        return f"{self.host}:{self.port}"

    @classmethod
    def parse(cls, address: str) -> "Server":
        """Parse ``host`` or ``host:port`` into a server.

        Raises:
            ValueError: If the port is not a number.
        """
        host, sep, port = address.rpartition(":")
        if not sep or "]" in port:
            return cls(name=address, host=address)
        host = host.strip("[]")
        return cls(name=host, host=host, port=int(port))


@dataclass(frozen=True, slots=True)
class ServerInfo:
    """Details the server reports about itself.

    Attributes:
        host_name: Hostname of the machine running snapserver.
        host_ip: IP address of that machine.
        host_mac: MAC address of that machine.
        host_os: Operating system of that machine.
        host_arch: CPU architecture of that machine.
        snapserver_name: Name of the server binary.
        version: Snapserver version string.
        protocol_version: Stream protocol version.
        control_protocol_version: JSON-RPC control protocol version.
    """

    host_name: str = ""
    host_ip: str = ""
    host_mac: str = ""
    host_os: str = ""
    host_arch: str = ""
    snapserver_name: str = ""
    version: str = ""
    protocol_version: int = 0
    control_protocol_version: int = 0

    @classmethod
    def from_dict(cls, data: Any) -> "ServerInfo":
        """Build from the ``{"host": ..., "snapserver": ...}`` object.

        Raises:
            PayloadError: If the object has the wrong shape.
        """
        raw = require_dict(data, "server info")
        host = require_dict(raw.get("host", {}), "server host")
        snapserver = require_dict(raw.get("snapserver", {}), "snapserver")
        return cls(
            host_name=str(host.get("name", "")),
            host_ip=str(host.get("ip", "")),
            host_mac=str(host.get("mac", "")),
            host_os=str(host.get("os", "")),
            host_arch=str(host.get("arch", "")),
            snapserver_name=str(snapserver.get("name", "")),
            version=str(snapserver.get("version", "")),
            protocol_version=as_int(snapserver.get("protocolVersion")),
            control_protocol_version=as_int(snapserver.get("controlProtocolVersion")),
        )
