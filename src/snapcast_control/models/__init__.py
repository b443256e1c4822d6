"""Data models for Snapcast server, clients, groups, and sources."""

from snapcast_control.models.client import Client
from snapcast_control.models.group import Group
from snapcast_control.models.server import Server, ServerInfo
from snapcast_control.models.server_state import ServerState
from snapcast_control.models.source import Source, SourceStatus

__all__ = [
    "Client",
    "Group",
    "Server",
    "ServerInfo",
    "ServerState",
    "Source",
    "SourceStatus",
]
