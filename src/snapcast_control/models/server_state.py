"""ServerState model representing complete server snapshot."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from snapcast_control.models.client import Client
from snapcast_control.models.group import Group
from snapcast_control.models.server import ServerInfo
from snapcast_control.models.source import Source


@dataclass(frozen=True, slots=True)
class ServerState:
    """Complete snapshot of server state at a point in time.

    Snapshots are never modified. The state store builds a new one for
    every change and swaps it in whole.

    Attributes:
        server: Details reported by the server, None until known.
        groups: Groups keyed by id.
        clients: Clients keyed by id.
        sources: Audio sources/streams keyed by id.
    """

    server: ServerInfo | None = None
    groups: Mapping[str, Group] = field(default_factory=lambda: MappingProxyType({}))
    clients: Mapping[str, Client] = field(default_factory=lambda: MappingProxyType({}))
    sources: Mapping[str, Source] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def version(self) -> str:
        """Return the snapserver version, or empty string."""
        return self.server.version if self.server else ""

    @property
    def host(self) -> str:
        """Return the server's hostname (as reported by server)."""
        return self.server.host_name if self.server else ""

    @property
    def mac(self) -> str:
        """Return the server's MAC address (as reported by server)."""
        return self.server.host_mac if self.server else ""

    @property
    def is_empty(self) -> bool:
        """Return True if nothing has been learned from the server."""
        return self.server is None and not (self.groups or self.clients or self.sources)

    @property
    def group_count(self) -> int:
        """Return number of groups."""
        return len(self.groups)

    @property
    def client_count(self) -> int:
        """Return number of clients."""
        return len(self.clients)

    @property
    def source_count(self) -> int:
        """Return number of sources."""
        return len(self.sources)

    def get_client(self, client_id: str) -> Client | None:
        """Return client by ID or None if not found."""
        return self.clients.get(client_id)

    def get_group(self, group_id: str) -> Group | None:
        """Return group by ID or None if not found."""
        return self.groups.get(group_id)

    def get_source(self, source_id: str) -> Source | None:
        """Return source by ID or None if not found."""
        return self.sources.get(source_id)

    def clients_for_group(self, group_id: str) -> list[Client]:
        """Return the known clients of a group, in group order."""
        group = self.groups.get(group_id)
        if group is None:
            return []
        return [self.clients[cid] for cid in group.client_ids if cid in self.clients]

    def group_for_client(self, client_id: str) -> Group | None:
        """Return the group containing a client, or None."""
        for group in self.groups.values():
            if client_id in group.client_ids:
                return group
        return None
