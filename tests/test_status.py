import pytest

from core import devices
from core.status import (
    StatusTracker, UnitView, CLIENT_FLOWS, STANDALONE_FLOWS, SERVER_FLOWS, LOADING, SUCCESS, PROGRESS,
    client_tracker, standalone_tracker, server_location_tracker, client_view, server_view, standalone_view,
    is_unit_busy, recording_client, client_disabled, server_mode_label, transfer_progress,
)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class FakeActions:
    def __init__(self, fail=()):
        self.calls = []
        self.fail = fail

    def _call(self, name, *args):
        self.calls.append((name,) + args)
        if name in self.fail:
            raise RuntimeError(f"{name} failed")

    def set_idle(self):
        self._call("set_idle")

    def clear_active(self):
        self._call("clear_active")

    def disconnect(self):
        self._call("disconnect")

    def clear_location_flag(self):
        self._call("clear_location_flag")

    def complete_record(self, key):
        self._call("complete_record", key)


def view(mode_type="idle", schedule_key="", **kwargs):
    kwargs.setdefault("active_status", {"status": "idle", "progress": 0})
    return UnitView(mode={"type": mode_type, "schedule_key": schedule_key}, **kwargs)


def tracker(flows=CLIENT_FLOWS, actions=None, clock=None):
    return StatusTracker("server1:client1", flows, actions or FakeActions(), {}, window=5, clock=clock or FakeClock())


# --- Tracker ---

def test_idle_unit_shows_nothing():
    assert tracker().evaluate(view()).show is False


def test_connect_flow_from_pending_to_reset():
    clock, actions = FakeClock(), FakeActions()
    t = tracker(actions=actions, clock=clock)

    card = t.evaluate(view("connect"))
    assert (card.show, card.message, card.kind) == (True, "Connecting...", LOADING)

    card = t.evaluate(view("connect", connection_status=True))
    assert (card.message, card.kind) == ("Successfully connected", SUCCESS)

    clock.now += 4.9
    assert t.evaluate(view("connect", connection_status=True)).kind == SUCCESS
    assert actions.calls == []

    clock.now += 0.2
    card = t.evaluate(view("connect", connection_status=True))
    assert actions.calls == [("set_idle",), ("disconnect",)]
    assert t.active_flows() == []
    assert card.show is False


def test_begin_shows_pending_before_mode_is_read():
    t = tracker()
    t.begin("instant")
    card = t.evaluate(view("instant"))
    assert (card.message, card.kind) == ("Connecting...", PROGRESS)


def test_cancel_withdraws_pending_card():
    t = tracker()
    t.begin("connect")
    t.cancel("connect")
    assert t.active_flows() == []


def test_pending_flow_dropped_when_mode_moves_on():
    t = tracker()
    t.evaluate(view("connect"))
    assert t.evaluate(view("idle")).show is False
    assert t.active_flows() == []


def test_flow_ignores_modes_targeting_other_clients():
    t = tracker()
    assert t.evaluate(view("connect", targeted=False)).show is False


def test_success_outranks_pending():
    t = tracker()
    records = {"2025-12-23T16:56:00": {"status": "recording", "duration_sec": 60}}
    card = t.evaluate(view("client_location", location_updated=True, records=records))
    assert t.active_flows() == ["location", "recording"]
    assert (card.message, card.kind) == ("Location updated", SUCCESS)


def test_transmit_flow_completes_record():
    clock, actions = FakeClock(), FakeActions()
    t = tracker(actions=actions, clock=clock)
    key = "2025-12-23T16:56:00"

    card = t.evaluate(view("transmit_scheduled", key))
    assert (card.message, card.kind) == ("Transmitting...", PROGRESS)

    done = view("transmit_scheduled", key, active_status={"status": "completed", "progress": 100})
    assert t.evaluate(done).message == "Schedule transmission completed"
    clock.now += 5
    t.evaluate(done)
    assert actions.calls[:3] == [("complete_record", key), ("set_idle",), ("clear_active",)]


def test_reset_errors_are_logged_not_raised():
    clock, actions = FakeClock(), FakeActions(fail=("set_idle",))
    t = tracker(actions=actions, clock=clock)
    t.evaluate(view("connect", connection_status=True))
    clock.now += 10
    t.evaluate(view("idle", connection_status=True))
    assert ("disconnect",) in actions.calls


def test_scheduled_recording_flow():
    t = tracker()
    key = "2025-12-23T16:56:00"
    records = {key: {"status": "recording", "duration_sec": 600}}
    assert t.evaluate(view(records=records)).message == "Recording"

    records = {key: {"status": "ready_to_transmit", "duration_sec": 600}}
    assert t.evaluate(view(records=records)).message == "Ready to transmit"


def test_standalone_recording_message():
    t = tracker(flows=STANDALONE_FLOWS)
    records = {"2025-12-23T16:56:00": {"status": "recording", "duration_sec": 600}}
    card = t.evaluate(view(records=records))
    assert card.message == "Recording scheduled for 2025-12-23 at 16:56 (10 min)"


def test_server_location_flow_message():
    t = tracker(flows=SERVER_FLOWS)
    assert t.evaluate(view("server_location")).message == "Getting Location..."
    card = t.evaluate(view("server_location", location_updated=True, location_name="Hill"))
    assert (card.message, card.kind) == ("Server location updated: Hill", SUCCESS)


def test_memory_survives_new_tracker():
    memory = {}
    first = StatusTracker("u", CLIENT_FLOWS, FakeActions(), memory, window=5, clock=FakeClock())
    first.begin("connect")
    second = StatusTracker("u", CLIENT_FLOWS, FakeActions(), memory, window=5, clock=FakeClock())
    assert second.active_flows() == ["connect"]


def test_tracker_with_real_store(server_with_client):
    server_id, client_id = server_with_client
    clock = FakeClock()
    t = client_tracker(server_id, client_id, {}, window=5, clock=clock)

    devices.connect_client(server_id, client_id)
    snapshot = devices.get_server_snapshot(server_id)
    assert t.evaluate(client_view(snapshot, client_id)).message == "Connecting..."

    devices.set_server_connection_status(server_id, True)
    snapshot = devices.get_server_snapshot(server_id)
    assert t.evaluate(client_view(snapshot, client_id)).kind == SUCCESS

    clock.now += 6
    t.evaluate(client_view(snapshot, client_id))
    snapshot = devices.get_server_snapshot(server_id)
    assert snapshot["mode"]["type"] == "idle"
    assert snapshot["connection_status"] is False


def test_views_from_snapshots(server_with_client, standalone):
    snapshot = devices.get_server_snapshot("server1")
    assert client_view(snapshot, "client1").targeted is False
    assert server_view(snapshot).location_name == "Not set"
    assert standalone_view(devices.get_standalone_snapshot(standalone)).targeted is True


# --- Busy Rules & Labels ---

def test_is_unit_busy():
    assert is_unit_busy({"type": "idle"}) is False
    assert is_unit_busy({"type": "connect"}) is True
    assert is_unit_busy(None) is False


def _server(mode_type="idle", records=None):
    return {
        "mode": {"type": mode_type, "target_client_id": "client1"},
        "clients": {
            "client1": {"scheduled_records": records or {}},
            "client2": {"scheduled_records": {}},
        },
    }


def test_recording_client_locks_only_itself():
    server = _server(records={"k": {"status": "recording"}})
    assert recording_client(server) == "client1"
    assert client_disabled(server, "client1") is True
    assert client_disabled(server, "client2") is False


def test_busy_server_locks_every_client():
    server = _server("instant")
    assert client_disabled(server, "client1") is True
    assert client_disabled(server, "client2") is True


@pytest.mark.parametrize("mode_type, expected", [
    ("idle", None),
    ("server_location", "Getting Location..."),
    ("client_location", "Location: client1"),
    ("connect", "Connecting: client1"),
    ("instant", "Instant: client1"),
    ("schedule", "Schedule: client1"),
    ("transmit_scheduled", "Schedule_TX: client1"),
])
def test_server_mode_label(mode_type, expected):
    assert server_mode_label({"type": mode_type, "target_client_id": "client1"}) == expected


def test_server_mode_label_recording_and_location_feedback():
    assert server_mode_label({"type": "idle"}, recording="client2") == "Schedule_Rec: client2"
    assert server_mode_label({"type": "connect"}, location_feedback=True) == "Location updated"


def test_transfer_progress_caption():
    fraction, caption = transfer_progress({
        "progress": 50, "total_files": 4, "received_files": 2,
        "total_size_bytes": 2 * 1024 * 1024, "transferred_bytes": 1024 * 1024,
    })
    assert fraction == 0.5
    assert caption == "50% · 2/4 files · 1.0 MB / 2.0 MB"
    assert transfer_progress({"progress": 150})[0] == 1.0


# --- Expiry Writes Against The Store ---

def test_standalone_upload_flow_completes_record(standalone, report_transfer):
    key = "2025-12-23T16:56:00"
    devices.schedule_standalone_record(standalone, 600, key)
    devices.upload_scheduled_record(standalone, key)
    clock = FakeClock()
    t = standalone_tracker(standalone, {}, window=5, clock=clock)

    card = t.evaluate(standalone_view(devices.get_standalone_snapshot(standalone)))
    assert (card.message, card.kind) == ("Uploading...", PROGRESS)

    report_transfer(standalone, status="completed", progress=100)
    card = t.evaluate(standalone_view(devices.get_standalone_snapshot(standalone)))
    assert (card.message, card.kind) == ("Schedule Uploading Completed", SUCCESS)

    clock.now += 6
    t.evaluate(standalone_view(devices.get_standalone_snapshot(standalone)))

    snapshot = devices.get_standalone_snapshot(standalone)
    assert snapshot["scheduled_records"][key]["status"] == "completed"
    assert snapshot["mode"]["type"] == "idle"
    assert snapshot["active_status"]["status"] == "idle"
    assert t.active_flows() == []


def test_server_location_flow_resets_store(server_with_client, report_transfer):
    server_id, _ = server_with_client
    devices.request_server_location(server_id)
    clock = FakeClock()
    t = server_location_tracker(server_id, {}, window=5, clock=clock)

    assert t.evaluate(server_view(devices.get_server_snapshot(server_id))).message == "Getting Location..."

    report_transfer(server_id, server_location_name="Hill", location_updated=True, status="completed", progress=100)
    card = t.evaluate(server_view(devices.get_server_snapshot(server_id)))
    assert (card.message, card.kind) == ("Server location updated: Hill", SUCCESS)

    clock.now += 6
    assert t.evaluate(server_view(devices.get_server_snapshot(server_id))).show is False

    snapshot = devices.get_server_snapshot(server_id)
    assert snapshot["mode"]["type"] == "idle"
    assert snapshot["active_status"]["status"] == "idle"
    assert snapshot["active_status"]["progress"] == 0
    assert snapshot["server_info"]["location_updated"] is False
    assert snapshot["server_info"]["server_location_name"] == "Hill"
