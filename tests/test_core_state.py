"""Tests for StateStore folding."""

from typing import Any

import pytest

from snapcast_control.api.protocol import (
    JsonRpcError,
    JsonRpcNotification,
    JsonRpcRequest,
    JsonRpcResult,
)
from snapcast_control.core.state import StateStore
from snapcast_control.errors import PayloadError
from snapcast_control.models.source import SourceStatus


def result(method: str, params: Any, payload: Any) -> JsonRpcResult:
    """Build a successful result for a request."""
    request = JsonRpcRequest.call(method, params)
    return JsonRpcResult(id=request.id, request=request, result=payload)


def notify(method: str, params: Any) -> JsonRpcNotification:
    """Build a notification."""
    return JsonRpcNotification(method=method, params=params)


@pytest.fixture
def store() -> StateStore:
    """Return a fresh StateStore for each test."""
    return StateStore()


@pytest.fixture
def loaded(store: StateStore, status_payload: dict[str, Any]) -> StateStore:
    """Return a StateStore holding the full status payload."""
    assert store.apply(result("Server.GetStatus", None, status_payload))
    return store


class TestStateStoreBasics:
    """Test initial state and snapshot behavior."""

    def test_initial_state_empty(self, store: StateStore) -> None:
        """Test a new store knows nothing."""
        state = store.snapshot()
        assert state.is_empty
        assert state.server is None
        assert state.client_count == 0

    def test_snapshot_is_stable(self, loaded: StateStore) -> None:
        """Test a snapshot taken earlier is not changed by later folds."""
        before = loaded.snapshot()
        loaded.apply(notify("Client.OnNameChanged", {"id": "c1", "name": "Den"}))

        assert before.clients["c1"].name == "Living Room"
        assert loaded.snapshot().clients["c1"].name == "Den"
        assert loaded.snapshot() is not before

    def test_snapshot_is_read_only(self, loaded: StateStore) -> None:
        """Test snapshot mappings refuse mutation."""
        with pytest.raises(TypeError):
            loaded.snapshot().clients["x"] = loaded.snapshot().clients["c1"]  # type: ignore[index]

    def test_clear(self, loaded: StateStore) -> None:
        """Test clear forgets everything."""
        loaded.clear()
        assert loaded.snapshot().is_empty


class TestResultFolding:
    """Test results for requests we sent."""

    def test_server_get_status(self, loaded: StateStore) -> None:
        """Test a full status replaces the state."""
        state = loaded.snapshot()
        assert state.host == "raspy"
        assert state.version == "0.27.0"
        assert set(state.groups) == {"g1", "g2"}
        assert set(state.clients) == {"c1", "c2", "c3"}
        assert set(state.sources) == {"s1", "s2"}
        assert state.groups["g1"].client_ids == ("c1", "c2")
        assert state.clients["c2"].muted
        assert not state.clients["c3"].connected
        assert state.sources["s1"].is_playing

    def test_server_get_status_replaces(
        self, loaded: StateStore, status_payload: dict[str, Any]
    ) -> None:
        """Test entities missing from a new status are dropped."""
        status_payload["server"]["groups"] = status_payload["server"]["groups"][:1]
        loaded.apply(result("Server.GetStatus", None, status_payload))
        assert set(loaded.snapshot().clients) == {"c1", "c2"}
        assert set(loaded.snapshot().groups) == {"g1"}

    def test_client_set_volume(self, loaded: StateStore) -> None:
        """Test a volume result updates the addressed client."""
        loaded.apply(
            result(
                "Client.SetVolume",
                {"id": "c1", "volume": {"percent": 20, "muted": True}},
                {"volume": {"percent": 20, "muted": True}},
            )
        )
        client = loaded.snapshot().clients["c1"]
        assert client.volume == 20
        assert client.muted

    def test_client_set_volume_mute_only(self, loaded: StateStore) -> None:
        """Test a mute-only volume result keeps the percent."""
        loaded.apply(
            result(
                "Client.SetVolume",
                {"id": "c1", "volume": {"muted": True}},
                {"volume": {"muted": True}},
            )
        )
        client = loaded.snapshot().clients["c1"]
        assert client.volume == 75
        assert client.muted

    def test_client_set_latency(self, loaded: StateStore) -> None:
        """Test a latency result updates the client."""
        loaded.apply(result("Client.SetLatency", {"id": "c2", "latency": 40}, {"latency": 40}))
        assert loaded.snapshot().clients["c2"].latency == 40

    def test_client_set_name(self, loaded: StateStore) -> None:
        """Test a name result updates the client."""
        loaded.apply(result("Client.SetName", {"id": "c3", "name": "Attic"}, {"name": "Attic"}))
        assert loaded.snapshot().clients["c3"].display_name == "Attic"

    def test_client_get_status(self, loaded: StateStore, make_client: Any) -> None:
        """Test a client status result upserts the client."""
        loaded.apply(
            result("Client.GetStatus", {"id": "c4"}, {"client": make_client("c4", "Garage", 10)})
        )
        assert loaded.snapshot().clients["c4"].name == "Garage"

    def test_group_results(self, loaded: StateStore) -> None:
        """Test group Set* results update the addressed group."""
        loaded.apply(result("Group.SetMute", {"id": "g1", "mute": True}, {"mute": True}))
        loaded.apply(
            result("Group.SetStream", {"id": "g1", "stream_id": "s2"}, {"stream_id": "s2"})
        )
        loaded.apply(result("Group.SetName", {"id": "g1", "name": "Ground"}, {"name": "Ground"}))

        group = loaded.snapshot().groups["g1"]
        assert group.muted
        assert group.stream_id == "s2"
        assert group.name == "Ground"

    def test_group_get_status_upserts_clients(
        self, loaded: StateStore, make_client: Any
    ) -> None:
        """Test a group status result also upserts its clients."""
        group = {
            "id": "g3",
            "name": "Patio",
            "stream_id": "s1",
            "muted": False,
            "clients": [make_client("c9", "Patio Speaker", 60)],
        }
        loaded.apply(result("Group.GetStatus", {"id": "g3"}, {"group": group}))

        state = loaded.snapshot()
        assert state.groups["g3"].client_ids == ("c9",)
        assert state.clients["c9"].volume == 60
        assert state.group_for_client("c9") is state.groups["g3"]

    def test_set_clients_takes_full_status(
        self, loaded: StateStore, status_payload: dict[str, Any]
    ) -> None:
        """Test Group.SetClients folds the returned server status."""
        status_payload["server"]["groups"][0]["name"] = "Moved"
        loaded.apply(
            result("Group.SetClients", {"id": "g1", "clients": ["c1"]}, status_payload)
        )
        assert loaded.snapshot().groups["g1"].name == "Moved"

    def test_add_stream_inserts_placeholder(self, loaded: StateStore) -> None:
        """Test an added stream exists but has not been fetched."""
        loaded.apply(result("Stream.AddStream", {"streamUri": "pipe:///tmp/x"}, {"id": "s3"}))
        source = loaded.snapshot().sources["s3"]
        assert source.status is SourceStatus.UNKNOWN
        assert not source.is_fetched

    def test_add_stream_keeps_known(self, loaded: StateStore) -> None:
        """Test adding a stream that is already known keeps its details."""
        before = loaded.snapshot().sources["s1"]
        loaded.apply(result("Stream.AddStream", {"streamUri": "x"}, {"id": "s1"}))
        assert loaded.snapshot().sources["s1"] == before

    def test_remove_stream(self, loaded: StateStore) -> None:
        """Test a removed stream is forgotten."""
        loaded.apply(result("Stream.RemoveStream", {"id": "s2"}, {"id": "s2"}))
        assert "s2" not in loaded.snapshot().sources

    @pytest.mark.parametrize(
        "method", ["Server.GetRPCVersion", "Stream.Control", "Stream.SetProperty", "Foo.Bar"]
    )
    def test_results_without_state(self, loaded: StateStore, method: str) -> None:
        """Test results that carry no state leave the snapshot alone."""
        before = loaded.snapshot()
        assert not loaded.apply(result(method, {"id": "s1"}, "ok"))
        assert loaded.snapshot() is before

    def test_error_result_is_ignored(self, loaded: StateStore) -> None:
        """Test an error result never changes state."""
        before = loaded.snapshot()
        request = JsonRpcRequest.call("Client.SetName", {"id": "c1", "name": "X"})
        error = JsonRpcResult(
            id=request.id, request=request, error=JsonRpcError(-32603, "Internal error")
        )
        assert not loaded.apply(error)
        assert loaded.snapshot() is before

    def test_update_unknown_client_is_noop(self, loaded: StateStore) -> None:
        """Test a partial update to an unknown id changes nothing."""
        before = loaded.snapshot()
        loaded.apply(result("Client.SetLatency", {"id": "ghost", "latency": 1}, {"latency": 1}))
        assert loaded.snapshot().clients == before.clients


class TestNotificationFolding:
    """Test server-initiated notifications."""

    def test_client_connect(self, loaded: StateStore, make_client: Any) -> None:
        """Test OnConnect upserts the client."""
        loaded.apply(notify("Client.OnConnect", {"id": "c5", "client": make_client("c5", "New")}))
        assert loaded.snapshot().clients["c5"].name == "New"

    def test_client_disconnect_removes(self, loaded: StateStore) -> None:
        """Test OnDisconnect removes the client."""
        loaded.apply(notify("Client.OnDisconnect", {"id": "c2", "client": {"id": "c2"}}))
        assert "c2" not in loaded.snapshot().clients
        assert [c.id for c in loaded.snapshot().clients_for_group("g1")] == ["c1"]

    def test_client_volume(self, loaded: StateStore) -> None:
        """Test OnVolumeChanged updates volume and mute."""
        loaded.apply(
            notify(
                "Client.OnVolumeChanged", {"id": "c1", "volume": {"percent": 36, "muted": False}}
            )
        )
        assert loaded.snapshot().clients["c1"].volume == 36

    def test_client_volume_bare_percent(self, loaded: StateStore) -> None:
        """Test a volume given as a bare number."""
        loaded.apply(notify("Client.OnVolumeChanged", {"id": "c1", "volume": 12}))
        assert loaded.snapshot().clients["c1"].volume == 12

    def test_client_latency_and_name(self, loaded: StateStore) -> None:
        """Test latency and name notifications."""
        loaded.apply(notify("Client.OnLatencyChanged", {"id": "c1", "latency": -5}))
        loaded.apply(notify("Client.OnNameChanged", {"id": "c1", "name": "Lounge"}))
        client = loaded.snapshot().clients["c1"]
        assert client.latency == -5
        assert client.name == "Lounge"

    def test_group_notifications(self, loaded: StateStore) -> None:
        """Test group mute, stream and name notifications."""
        loaded.apply(notify("Group.OnMute", {"id": "g2", "mute": False}))
        loaded.apply(notify("Group.OnStreamChanged", {"id": "g2", "stream_id": "s1"}))
        loaded.apply(notify("Group.OnNameChanged", {"id": "g2", "name": "Upstairs"}))
        group = loaded.snapshot().groups["g2"]
        assert not group.muted
        assert group.stream_id == "s1"
        assert group.name == "Upstairs"

    def test_server_update(self, store: StateStore, status_payload: dict[str, Any]) -> None:
        """Test Server.OnUpdate carries a full server status."""
        assert store.apply(notify("Server.OnUpdate", status_payload))
        assert store.snapshot().client_count == 3

    def test_stream_update(self, loaded: StateStore) -> None:
        """Test Stream.OnUpdate replaces the stream."""
        stream = {
            "id": "s2",
            "status": "playing",
            "uri": {"raw": "airplay:///", "scheme": "airplay", "query": {"name": "AirPlay"}},
            "properties": {},
        }
        loaded.apply(notify("Stream.OnUpdate", {"id": "s2", "stream": stream}))
        source = loaded.snapshot().sources["s2"]
        assert source.is_playing
        assert source.is_fetched

    def test_stream_properties_on_fetched(self, loaded: StateStore) -> None:
        """Test OnProperties updates a stream whose properties are known."""
        properties = {"metadata": {"title": "Next", "artist": "C"}}
        loaded.apply(notify("Stream.OnProperties", {"id": "s1", "properties": properties}))
        source = loaded.snapshot().sources["s1"]
        assert source.properties == properties
        assert source.display_now_playing == "Next - C"

    def test_stream_properties_on_unfetched_ignored(self, loaded: StateStore) -> None:
        """Test OnProperties is ignored for a stream never fetched."""
        loaded.apply(notify("Stream.OnProperties", {"id": "s2", "properties": {"canPlay": True}}))
        loaded.apply(notify("Stream.OnProperties", {"id": "s9", "properties": {"canPlay": True}}))
        state = loaded.snapshot()
        assert not state.sources["s2"].is_fetched
        assert "s9" not in state.sources

    def test_stream_properties_on_placeholder_ignored(self, loaded: StateStore) -> None:
        """Test OnProperties does not fill in a just-added stream."""
        loaded.apply(result("Stream.AddStream", {"streamUri": "x"}, {"id": "s3"}))
        loaded.apply(notify("Stream.OnProperties", {"id": "s3", "properties": {"canPlay": True}}))
        assert loaded.snapshot().sources["s3"].properties is None

    def test_unknown_notification(self, loaded: StateStore) -> None:
        """Test unknown notifications are ignored."""
        before = loaded.snapshot()
        assert not loaded.apply(notify("Server.OnSomethingNew", {"id": "x"}))
        assert loaded.snapshot() is before


class TestPayloadErrors:
    """Test that unfoldable payloads leave the state untouched."""

    @pytest.mark.parametrize(
        ("method", "params"),
        [
            ("Client.OnVolumeChanged", {"id": "c1"}),
            ("Client.OnVolumeChanged", {"id": "c1", "volume": True}),
            ("Client.OnLatencyChanged", {"id": "c1", "latency": "slow"}),
            ("Client.OnNameChanged", {"name": "no id"}),
            ("Group.OnMute", {"id": "g1", "mute": "yes"}),
            ("Client.OnConnect", {"id": "c5"}),
            ("Stream.OnProperties", {"id": "s1", "properties": []}),
            ("Group.OnMute", ["g1", True]),
            ("Client.OnLatencyChanged", {"id": "c1", "latency": float("inf")}),
            ("Client.OnVolumeChanged", {"id": "c1", "volume": float("nan")}),
            ("Client.OnVolumeChanged", {"id": "c1", "volume": {"percent": float("-inf")}}),
        ],
    )
    def test_bad_notification(
        self, loaded: StateStore, method: str, params: Any
    ) -> None:
        """Test a malformed notification raises and keeps the snapshot."""
        before = loaded.snapshot()
        with pytest.raises(PayloadError):
            loaded.apply(notify(method, params))
        assert loaded.snapshot() is before

    def test_bad_status_keeps_state(self, loaded: StateStore) -> None:
        """Test a malformed full status does not half-replace the state."""
        before = loaded.snapshot()
        bad = {"server": {"groups": [{"id": "g1", "clients": [{"no": "id"}]}], "streams": []}}
        with pytest.raises(PayloadError):
            loaded.apply(result("Server.GetStatus", None, bad))
        assert loaded.snapshot() is before

    def test_non_finite_client_keeps_state(self, loaded: StateStore, make_client: Any) -> None:
        """Test a client object with a NaN volume is rejected."""
        before = loaded.snapshot()
        client = make_client("c5", "New", percent=float("nan"))
        with pytest.raises(PayloadError):
            loaded.apply(notify("Client.OnConnect", {"id": "c5", "client": client}))
        assert loaded.snapshot() is before

    def test_non_finite_result_keeps_state(self, loaded: StateStore) -> None:
        """Test an infinite latency in a result is rejected."""
        before = loaded.snapshot()
        with pytest.raises(PayloadError):
            loaded.apply(
                result("Client.SetLatency", {"id": "c1", "latency": 5}, {"latency": float("inf")})
            )
        assert loaded.snapshot() is before

    def test_result_without_target_id(self, loaded: StateStore) -> None:
        """Test a Set* result whose request had no id cannot be folded."""
        with pytest.raises(PayloadError):
            loaded.apply(result("Client.SetName", {"name": "X"}, {"name": "X"}))


class TestFoldOrder:
    """Test the snapshot depends only on message order."""

    def test_same_messages_same_state(self, status_payload: dict[str, Any]) -> None:
        """Test folding one message at a time matches folding them together."""
        messages = [
            result("Server.GetStatus", None, status_payload),
            notify("Client.OnVolumeChanged", {"id": "c1", "volume": {"percent": 5, "muted": True}}),
            notify("Group.OnMute", {"id": "g2", "mute": False}),
            notify("Client.OnDisconnect", {"id": "c3"}),
        ]
        first, second = StateStore(), StateStore()
        for message in messages:
            first.apply(message)
        snapshots = [second.snapshot()]
        for message in messages:
            second.apply(message)
            snapshots.append(second.snapshot())

        assert first.snapshot() == second.snapshot()
        assert len({id(s) for s in snapshots}) == len(snapshots)
