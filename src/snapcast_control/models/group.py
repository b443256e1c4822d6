"""Group model for clients sharing an audio source."""

from dataclasses import dataclass
from typing import Any

from snapcast_control.models._payload import require_dict, require_list, require_str


@dataclass(frozen=True, slots=True)
class Group:
    """A group of clients sharing an audio source.

    Attributes:
        id: Unique group identifier from server.
        name: Human-readable group name.
        stream_id: ID of the current audio source/stream.
        muted: Whether group audio is muted.
        client_ids: IDs of the clients in this group, in server order.
    """

    id: str
    name: str = ""
    stream_id: str = ""
    muted: bool = False
    client_ids: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Any) -> "Group":
        """Build a group from its protocol object.

        Raises:
            PayloadError: If the object is not a group.
        """
        raw = require_dict(data, "group")
        clients = require_list(raw, "clients", "group")
        return cls(
            id=require_str(raw, "id", "group"),
            name=str(raw.get("name", "")),
            stream_id=str(raw.get("stream_id", "")),
            muted=bool(raw.get("muted", False)),
            client_ids=tuple(
                require_str(require_dict(c, "group client"), "id", "client") for c in clients
            ),
        )

    @property
    def stream(self) -> str:
        """Alias for stream_id."""
        return self.stream_id

    @property
    def client_count(self) -> int:
        """Return the number of clients in this group."""
        return len(self.client_ids)

    @property
    def is_empty(self) -> bool:
        """Return True if group has no clients."""
        return len(self.client_ids) == 0
