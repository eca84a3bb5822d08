from datetime import date, datetime, time

import pytest

from core import devices
from core.predictions import save_prediction, get_prediction


# --- Input Helpers ---

def test_parse_location_incomplete_form_returns_none():
    assert devices.parse_location("", "1", "2") is None
    assert devices.parse_location("Ridge", "", "2") is None
    assert devices.parse_location("Ridge", "1", None) is None


def test_parse_location_converts_numbers():
    assert devices.parse_location(" Ridge ", "51.5", "-0.12") == {
        "location_name": "Ridge", "lat": 51.5, "long": -0.12
    }


@pytest.mark.parametrize("lat, long", [("abc", "1"), ("91", "0"), ("0", "-181")])
def test_parse_location_rejects_bad_coordinates(lat, long):
    with pytest.raises(ValueError, match="valid latitude and longitude"):
        devices.parse_location("Ridge", lat, long)


def test_minutes_to_seconds():
    assert devices.minutes_to_seconds("5") == 300
    for bad in ("", "0", "-2", "five"):
        with pytest.raises(ValueError, match="valid duration"):
            devices.minutes_to_seconds(bad)


def test_build_schedule_key():
    assert devices.build_schedule_key(date(2025, 12, 23), time(16, 56)) == "2025-12-23T16:56:00"
    assert devices.build_schedule_key("2025-12-23", "08:05") == "2025-12-23T08:05:00"
    with pytest.raises(ValueError, match="both date and time"):
        devices.build_schedule_key(date(2025, 12, 23), None)


# --- Create / Delete ---

def test_create_server_defaults():
    assert devices.create_server("Server 2") == "server2"
    snapshot = devices.get_server_snapshot("server2")
    assert snapshot["name"] == "Server 2"
    assert snapshot["mode"]["type"] == "idle"
    assert snapshot["server_info"]["server_location_name"] == "Not set"
    assert snapshot["server_info"]["location_updated"] is False
    assert snapshot["connection_status"] is False
    assert snapshot["clients"] == {}


def test_create_server_twice_fails():
    devices.create_server(1)
    with pytest.raises(ValueError, match="already exists"):
        devices.create_server("1")


def test_create_client_with_location(server_with_client):
    devices.create_client("server1", 2, {"location_name": "Barn", "lat": 1.0, "long": 2.0})
    clients = devices.list_clients("server1")
    assert [c["client_id"] for c in clients] == ["client1", "client2"]
    assert clients[1]["client_info"]["location_name"] == "Barn"


def test_create_client_on_missing_server():
    with pytest.raises(LookupError):
        devices.create_client("server9", 1)


def test_servers_listed_numerically():
    for n in (10, 2, 1):
        devices.create_server(n)
    assert [s["server_id"] for s in devices.list_servers()] == ["server1", "server2", "server10"]


def test_delete_server_removes_clients_and_predictions(server_with_client):
    server_id, client_id = server_with_client
    save_prediction(server_id, client_id, "1014", "Pipistrellus", 88.0)
    assert devices.delete_server(server_id) is True
    assert devices.get_server_snapshot(server_id) is None
    devices.create_server(1)
    devices.create_client(server_id, 1)
    assert get_prediction(server_id, client_id, "1014") is None


def test_delete_missing_unit_is_not_an_error():
    assert devices.delete_server("server5") is False
    assert devices.delete_standalone("standalone5") is False
    assert devices.delete_client("server5", "client1") is False


def test_delete_client_keeps_server(server_with_client):
    server_id, client_id = server_with_client
    assert devices.delete_client(server_id, client_id) is True
    assert devices.get_server_snapshot(server_id)["clients"] == {}


def test_delete_all_unit_data(server_with_client, standalone):
    devices.delete_all_unit_data()
    assert devices.list_servers() == []
    assert devices.list_standalones() == []
    assert devices.dashboard_stats() == {"servers": 0, "clients": 0, "standalones": 0, "connected": 0}


# --- Commands ---

def test_client_commands_write_server_mode(server_with_client):
    server_id, client_id = server_with_client

    devices.connect_client(server_id, client_id)
    mode = devices.get_server_snapshot(server_id)["mode"]
    assert mode["type"] == "connect"
    assert mode["target_client_id"] == client_id

    devices.instant_record_client(server_id, client_id, 300)
    mode = devices.get_server_snapshot(server_id)["mode"]
    assert (mode["type"], mode["duration_sec"]) == ("instant", 300)

    devices.request_client_location(server_id, client_id)
    assert devices.get_server_snapshot(server_id)["mode"]["type"] == "client_location"

    devices.request_server_location(server_id)
    assert devices.get_server_snapshot(server_id)["mode"]["type"] == "server_location"


def test_command_leaves_hardware_fields_alone(server_with_client, report_transfer):
    server_id, client_id = server_with_client
    report_transfer(server_id, status="uploading", progress=40)
    devices.set_server_connection_status(server_id, True)
    devices.connect_client(server_id, client_id)
    snapshot = devices.get_server_snapshot(server_id)
    assert snapshot["active_status"]["progress"] == 40
    assert snapshot["connection_status"] is True


def test_schedule_client_record_adds_pending_record(server_with_client):
    server_id, client_id = server_with_client
    key = "2025-12-23T16:56:00"
    devices.schedule_client_record(server_id, client_id, 600, key)
    snapshot = devices.get_server_snapshot(server_id)
    assert snapshot["mode"]["type"] == "schedule"
    assert snapshot["mode"]["schedule_key"] == key
    record = snapshot["clients"][client_id]["scheduled_records"][key]
    assert record["duration_sec"] == 600
    assert record["status"] == "pending"

    devices.set_client_record_status(server_id, client_id, key, "scheduled")
    devices.schedule_client_record(server_id, client_id, 120, key)
    record = devices.get_client_snapshot(server_id, client_id)["scheduled_records"][key]
    assert (record["duration_sec"], record["status"]) == (120, "pending")


def test_transmit_scheduled_record(server_with_client):
    server_id, client_id = server_with_client
    devices.transmit_scheduled_record(server_id, client_id, "2025-12-23T16:56:00")
    mode = devices.get_server_snapshot(server_id)["mode"]
    assert mode["type"] == "transmit_scheduled"
    assert mode["schedule_key"] == "2025-12-23T16:56:00"


def test_standalone_commands(standalone):
    devices.connect_standalone(standalone)
    assert devices.get_standalone_snapshot(standalone)["mode"]["type"] == "connect"
    devices.request_standalone_location(standalone)
    assert devices.get_standalone_snapshot(standalone)["mode"]["type"] == "location"
    devices.instant_record_standalone(standalone, 60)
    assert devices.get_standalone_snapshot(standalone)["mode"]["duration_sec"] == 60

    key = "2026-01-02T03:04:00"
    devices.schedule_standalone_record(standalone, 180, key)
    snapshot = devices.get_standalone_snapshot(standalone)
    assert snapshot["scheduled_records"][key]["status"] == "pending"

    devices.upload_scheduled_record(standalone, key)
    mode = devices.get_standalone_snapshot(standalone)["mode"]
    assert (mode["type"], mode["schedule_key"]) == ("upload_scheduled", key)


def test_command_on_missing_unit_raises():
    with pytest.raises(LookupError):
        devices.connect_client("server3", "client1")
    with pytest.raises(LookupError):
        devices.connect_standalone("standalone3")


def test_record_status_on_missing_record(server_with_client, standalone):
    with pytest.raises(LookupError):
        devices.set_client_record_status("server1", "client1", "2025-01-01T00:00:00", "completed")
    with pytest.raises(LookupError):
        devices.set_standalone_record_status(standalone, "2025-01-01T00:00:00", "completed")


# --- Locations & Resets ---

def test_update_server_location_sets_flag(server_with_client):
    devices.update_server_location("server1", {"location_name": "Hill", "lat": 10.0, "long": 20.0})
    info = devices.get_server_snapshot("server1")["server_info"]
    assert info["server_location_name"] == "Hill"
    assert info["location_updated"] is True


def test_update_client_and_standalone_location(server_with_client, standalone):
    location = {"location_name": "Pond", "lat": 3.0, "long": 4.0}
    devices.update_client_location("server1", "client1", location)
    devices.update_standalone_location(standalone, location)
    assert devices.get_client_snapshot("server1", "client1")["client_info"]["lat"] == 3.0
    assert devices.get_standalone_snapshot(standalone)["standaloneinfo"]["location_name"] == "Pond"


def test_reset_server_keeps_clients_and_records(server_with_client, report_transfer):
    server_id, client_id = server_with_client
    devices.schedule_client_record(server_id, client_id, 60, "2025-12-23T16:56:00")
    report_transfer(server_id, status="uploading", progress=55, total_files=3)
    devices.set_server_connection_status(server_id, True)

    devices.reset_server(server_id)

    snapshot = devices.get_server_snapshot(server_id)
    assert snapshot["mode"]["type"] == "idle"
    assert snapshot["mode"]["target_client_id"] == ""
    assert snapshot["active_status"]["status"] == "idle"
    assert snapshot["active_status"]["progress"] == 0
    assert snapshot["connection_status"] is False
    assert "2025-12-23T16:56:00" in snapshot["clients"][client_id]["scheduled_records"]


def test_reset_client_clears_server_state_and_keeps_client_data(server_with_client, report_transfer):
    server_id, client_id = server_with_client
    devices.update_client_location(server_id, client_id, {"location_name": "Barn", "lat": 1.5, "long": 2.5})
    devices.schedule_client_record(server_id, client_id, 60, "2025-12-23T16:56:00")
    report_transfer(server_id, status="uploading", progress=55, total_files=3, received_files=1,
                    connection_status=True)

    devices.reset_client(server_id, client_id)

    snapshot = devices.get_server_snapshot(server_id)
    assert snapshot["mode"]["type"] == "idle"
    assert snapshot["connection_status"] is False
    assert snapshot["active_status"] == {
        "status": "idle", "progress": 0, "total_files": 0, "received_files": 0,
        "total_size_bytes": 0, "transferred_bytes": 0,
    }
    client = snapshot["clients"][client_id]
    assert client["client_info"]["location_name"] == "Barn"
    assert client["scheduled_records"]["2025-12-23T16:56:00"]["status"] == "pending"


def test_refresh_server_data_touches_updated_at(server_with_client, report_transfer):
    server_id, _ = server_with_client
    report_transfer(server_id, mode_updated_at=datetime(2020, 1, 1))
    assert devices.get_server_snapshot(server_id)["mode"]["updated_at"] == "2020-01-01T00:00:00"

    devices.refresh_server_data(server_id)

    mode = devices.get_server_snapshot(server_id)["mode"]
    assert datetime.fromisoformat(mode["updated_at"]) > datetime(2020, 1, 1)
    assert mode["type"] == "idle"


def test_reset_standalone(standalone, report_transfer):
    devices.instant_record_standalone(standalone, 60)
    report_transfer(standalone, status="uploading", progress=10)
    devices.reset_standalone(standalone)
    snapshot = devices.get_standalone_snapshot(standalone)
    assert snapshot["mode"]["type"] == "idle"
    assert snapshot["active_status"]["progress"] == 0


def test_backfill_counts_only_missing_flags(server_with_client):
    assert devices.backfill_location_updated_flag() == 0


def test_dashboard_stats(server_with_client, standalone):
    devices.set_server_connection_status("server1", True)
    assert devices.dashboard_stats() == {"servers": 1, "clients": 1, "standalones": 1, "connected": 1}
