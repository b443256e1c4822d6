"""Central state store folding server messages into snapshots.

The StateStore holds the current server state as an immutable
ServerState. Every message that changes something produces a brand new
snapshot which replaces the old one in a single assignment, so readers
on any thread always see a complete state.

Only the session engine's receive loop calls ``apply``.

Example:
    store = StateStore()
    store.apply(notification)
    state = store.snapshot()
    print(state.get_client("c1"))
"""

import logging
from collections.abc import Callable
from dataclasses import replace
from types import MappingProxyType
from typing import Any

from snapcast_control.api.protocol import JsonRpcNotification, JsonRpcResult, ValidMessage
from snapcast_control.errors import PayloadError
from snapcast_control.models._payload import (
    as_int,
    finite_int,
    require_dict,
    require_list,
    require_str,
)
from snapcast_control.models.client import Client
from snapcast_control.models.group import Group
from snapcast_control.models.server import ServerInfo
from snapcast_control.models.server_state import ServerState
from snapcast_control.models.source import Source

logger = logging.getLogger(__name__)


class _Draft:
    """Mutable working copy of a snapshot while one message is folded."""

    def __init__(self, state: ServerState) -> None:
        self.server = state.server
        self.groups: dict[str, Group] = dict(state.groups)
        self.clients: dict[str, Client] = dict(state.clients)
        self.sources: dict[str, Source] = dict(state.sources)

    def freeze(self) -> ServerState:
        return ServerState(
            server=self.server,
            groups=MappingProxyType(self.groups),
            clients=MappingProxyType(self.clients),
            sources=MappingProxyType(self.sources),
        )

    # Upserts

    def upsert_server(self, payload: Any) -> None:
        """Replace everything with a full ``{"server": {...}}`` payload."""
        body = require_dict(require_dict(payload, "server status").get("server"), "server")
        groups = [Group.from_dict(g) for g in require_list(body, "groups", "server")]
        clients = [
            Client.from_dict(c)
            for g in require_list(body, "groups", "server")
            for c in require_list(require_dict(g, "group"), "clients", "group")
        ]
        sources = [Source.from_dict(s) for s in require_list(body, "streams", "server")]

        self.server = ServerInfo.from_dict(body.get("server", {}))
        self.groups = {g.id: g for g in groups}
        self.clients = {c.id: c for c in clients}
        self.sources = {s.id: s for s in sources}

    def upsert_client(self, data: Any) -> None:
        client = Client.from_dict(data)
        self.clients[client.id] = client

    def upsert_group(self, data: Any) -> None:
        group = Group.from_dict(data)
        self.groups[group.id] = group
        for c in require_list(require_dict(data, "group"), "clients", "group"):
            self.upsert_client(c)

    def upsert_source(self, data: Any) -> None:
        source = Source.from_dict(data)
        self.sources[source.id] = source

    # Partial updates; unknown ids are ignored

    def update_client(self, client_id: str, **changes: Any) -> None:
        client = self.clients.get(client_id)
        if client is None:
            logger.debug("Ignoring update for unknown client %s", client_id)
            return
        self.clients[client_id] = replace(client, **changes)

    def update_group(self, group_id: str, **changes: Any) -> None:
        group = self.groups.get(group_id)
        if group is None:
            logger.debug("Ignoring update for unknown group %s", group_id)
            return
        self.groups[group_id] = replace(group, **changes)


def _params(payload: Any, what: str) -> dict[str, Any]:
    return require_dict(payload, what)


def _target_id(result: JsonRpcResult) -> str:
    """Return the entity id a Set* request was addressed to."""
    params = result.request.params
    if not isinstance(params, dict) or not isinstance(params.get("id"), str):
        raise PayloadError(f"{result.method} request has no target id")
    return str(params["id"])


def _volume_changes(value: Any, what: str) -> dict[str, Any]:
    """Volume arrives as ``{"percent", "muted"}`` or a bare percent."""
    if isinstance(value, bool):
        raise PayloadError(f"{what} volume must be a number or object")
    if isinstance(value, (int, float)):
        return {"volume": finite_int(value, f"{what} volume")}
    volume = require_dict(value, f"{what} volume")
    changes: dict[str, Any] = {}
    if "percent" in volume:
        changes["volume"] = as_int(volume["percent"], 100)
    if "muted" in volume:
        changes["muted"] = bool(volume["muted"])
    return changes


def _require_bool(data: dict[str, Any], key: str, what: str) -> bool:
    value = data.get(key)
    if not isinstance(value, bool):
        raise PayloadError(f"{what} has no boolean '{key}'")
    return value


def _require_int(data: dict[str, Any], key: str, what: str) -> int:
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise PayloadError(f"{what} has no number '{key}'")
    return finite_int(value, f"{what} '{key}'")


# Result folding


def _fold_server_status(draft: _Draft, result: JsonRpcResult) -> None:
    draft.upsert_server(result.result)


def _fold_client_status(draft: _Draft, result: JsonRpcResult) -> None:
    draft.upsert_client(_params(result.result, "client status").get("client"))


def _fold_client_volume(draft: _Draft, result: JsonRpcResult) -> None:
    body = _params(result.result, result.method)
    draft.update_client(_target_id(result), **_volume_changes(body.get("volume"), result.method))


def _fold_client_latency(draft: _Draft, result: JsonRpcResult) -> None:
    body = _params(result.result, result.method)
    draft.update_client(_target_id(result), latency=_require_int(body, "latency", result.method))


def _fold_client_name(draft: _Draft, result: JsonRpcResult) -> None:
    body = _params(result.result, result.method)
    draft.update_client(_target_id(result), name=require_str(body, "name", result.method))


def _fold_group_status(draft: _Draft, result: JsonRpcResult) -> None:
    draft.upsert_group(_params(result.result, "group status").get("group"))


def _fold_group_mute(draft: _Draft, result: JsonRpcResult) -> None:
    body = _params(result.result, result.method)
    draft.update_group(_target_id(result), muted=_require_bool(body, "mute", result.method))


def _fold_group_stream(draft: _Draft, result: JsonRpcResult) -> None:
    body = _params(result.result, result.method)
    draft.update_group(_target_id(result), stream_id=require_str(body, "stream_id", result.method))


def _fold_group_name(draft: _Draft, result: JsonRpcResult) -> None:
    body = _params(result.result, result.method)
    draft.update_group(_target_id(result), name=require_str(body, "name", result.method))


def _fold_stream_added(draft: _Draft, result: JsonRpcResult) -> None:
    stream_id = require_str(_params(result.result, result.method), "id", result.method)
    if stream_id not in draft.sources:
        draft.sources[stream_id] = Source.placeholder(stream_id)


def _fold_stream_removed(draft: _Draft, result: JsonRpcResult) -> None:
    stream_id = require_str(_params(result.result, result.method), "id", result.method)
    draft.sources.pop(stream_id, None)


# Recognized results that carry no state
_INERT_RESULTS = frozenset({"Server.GetRPCVersion", "Stream.Control", "Stream.SetProperty"})

_RESULT_FOLDERS: dict[str, Callable[[_Draft, JsonRpcResult], None]] = {
    "Server.GetStatus": _fold_server_status,
    "Server.DeleteClient": _fold_server_status,
    "Group.SetClients": _fold_server_status,
    "Client.GetStatus": _fold_client_status,
    "Client.SetVolume": _fold_client_volume,
    "Client.SetLatency": _fold_client_latency,
    "Client.SetName": _fold_client_name,
    "Group.GetStatus": _fold_group_status,
    "Group.SetMute": _fold_group_mute,
    "Group.SetStream": _fold_group_stream,
    "Group.SetName": _fold_group_name,
    "Stream.AddStream": _fold_stream_added,
    "Stream.RemoveStream": _fold_stream_removed,
}


# Notification folding


def _on_client_connect(draft: _Draft, params: dict[str, Any]) -> None:
    draft.upsert_client(params.get("client"))


def _on_client_disconnect(draft: _Draft, params: dict[str, Any]) -> None:
    draft.clients.pop(require_str(params, "id", "Client.OnDisconnect"), None)


def _on_client_volume(draft: _Draft, params: dict[str, Any]) -> None:
    what = "Client.OnVolumeChanged"
    draft.update_client(
        require_str(params, "id", what), **_volume_changes(params.get("volume"), what)
    )


def _on_client_latency(draft: _Draft, params: dict[str, Any]) -> None:
    what = "Client.OnLatencyChanged"
    draft.update_client(
        require_str(params, "id", what), latency=_require_int(params, "latency", what)
    )


def _on_client_name(draft: _Draft, params: dict[str, Any]) -> None:
    what = "Client.OnNameChanged"
    draft.update_client(require_str(params, "id", what), name=require_str(params, "name", what))


def _on_group_mute(draft: _Draft, params: dict[str, Any]) -> None:
    what = "Group.OnMute"
    draft.update_group(require_str(params, "id", what), muted=_require_bool(params, "mute", what))


def _on_group_stream(draft: _Draft, params: dict[str, Any]) -> None:
    what = "Group.OnStreamChanged"
    draft.update_group(
        require_str(params, "id", what), stream_id=require_str(params, "stream_id", what)
    )


def _on_group_name(draft: _Draft, params: dict[str, Any]) -> None:
    what = "Group.OnNameChanged"
    draft.update_group(require_str(params, "id", what), name=require_str(params, "name", what))


def _on_server_update(draft: _Draft, params: dict[str, Any]) -> None:
    draft.upsert_server(params)


def _on_stream_update(draft: _Draft, params: dict[str, Any]) -> None:
    draft.upsert_source(params.get("stream"))


def _on_stream_properties(draft: _Draft, params: dict[str, Any]) -> None:
    what = "Stream.OnProperties"
    stream_id = require_str(params, "id", what)
    properties = require_dict(params.get("properties"), f"{what} properties")
    source = draft.sources.get(stream_id)
    if source is None or not source.is_fetched:
        logger.debug("Ignoring properties for unfetched stream %s", stream_id)
        return
    draft.sources[stream_id] = source.with_properties(properties)


_NOTIFICATION_FOLDERS: dict[str, Callable[[_Draft, dict[str, Any]], None]] = {
    "Client.OnConnect": _on_client_connect,
    "Client.OnDisconnect": _on_client_disconnect,
    "Client.OnVolumeChanged": _on_client_volume,
    "Client.OnLatencyChanged": _on_client_latency,
    "Client.OnNameChanged": _on_client_name,
    "Group.OnMute": _on_group_mute,
    "Group.OnStreamChanged": _on_group_stream,
    "Group.OnNameChanged": _on_group_name,
    "Server.OnUpdate": _on_server_update,
    "Stream.OnUpdate": _on_stream_update,
    "Stream.OnProperties": _on_stream_properties,
}


class StateStore:
    """Single-writer store of the latest server snapshot.

    ``snapshot()`` is safe to call from any thread; the returned
    ServerState never changes after it is handed out.
    """

    def __init__(self) -> None:
        """Initialize the state store with empty state."""
        self._state = ServerState()

    def snapshot(self) -> ServerState:
        """Return the current point-in-time snapshot."""
        return self._state

    def clear(self) -> None:
        """Forget everything, e.g. after the connection was lost."""
        self._state = ServerState()

    def apply(self, message: ValidMessage) -> bool:
        """Fold one classified message into the state.

        Error results and unrecognized methods leave the state alone.

        Args:
            message: A result or notification from the receive loop.

        Returns:
            True if the message was folded into a new snapshot.

        Raises:
            PayloadError: If the payload cannot be folded. The snapshot is
                left exactly as it was.
        """
        if isinstance(message, JsonRpcNotification):
            notification_folder = _NOTIFICATION_FOLDERS.get(message.method)
            if notification_folder is None:
                logger.debug("No state effect for notification %s", message.method)
                return False
            draft = _Draft(self._state)
            notification_folder(draft, _params(message.params, f"{message.method} params"))
        else:
            if not message.is_success:
                return False
            result_folder = _RESULT_FOLDERS.get(message.method)
            if result_folder is None:
                if message.method not in _INERT_RESULTS:
                    logger.debug("No state effect for result of %s", message.method)
                return False
            draft = _Draft(self._state)
            result_folder(draft, message)

        self._state = draft.freeze()
        return True
