"""
devices.py — Recording Unit Store, Commands & Snapshots
--------------------------------------------------------

This module is the only writer of unit state on the dashboard side. It handles:

- Creating, deleting and resetting servers, clients and standalones
- Issuing remote commands by writing the unit's "mode" (the hardware polls it)
- Acknowledgement writes that return a unit to idle after a command finishes
- Location edits and the `location_updated` feedback flag
- Plain-dict snapshots shaped like the hardware's view of the data

Commands only touch the fields they name plus `updated_at`; everything else
on the unit is left as the hardware last wrote it. Nothing here enforces
"one command at a time"; the UI disables buttons while a unit is busy.

Dependencies:
- SQLAlchemy ORM

Author: Matt Scardino
Project: Bat Monitoring Dashboard
"""

import logging
from datetime import datetime, date, time
from functools import wraps
from sqlalchemy.orm import selectinload
from db.db import session_scope, SessionLocal
from db.device_model import Server, Client, Standalone, ScheduledRecord
from db.prediction_model import Prediction
from tools.identifiers import (
    normalize_server_id, normalize_client_id, normalize_standalone_id, display_name, unit_sort_key
)

logger = logging.getLogger("devices")

IDLE = "idle"
INVALID_LOCATION = "Please enter valid latitude and longitude"
INVALID_DURATION = "Please enter a valid duration in minutes"
MISSING_SCHEDULE = "Please select both date and time"


def logged_write(action):
    """
    Log a failed store write with its action name and re-raise it for the UI.
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except Exception as e:
                logger.error(f"Error {action} {args}: {e}")
                raise
        return wrapper
    return decorator


# --- Input Helpers ---

def parse_location(name, lat, long):
    """
    Validate a location form. Returns None when the form is left incomplete,
    raises ValueError when coordinates are not numbers in range.
    """
    name = (name or "").strip()
    if not name or lat in (None, "") or long in (None, ""):
        return None
    try:
        lat_value = float(lat)
        long_value = float(long)
    except (TypeError, ValueError):
        raise ValueError(INVALID_LOCATION)
    if not (-90 <= lat_value <= 90 and -180 <= long_value <= 180):
        raise ValueError(INVALID_LOCATION)
    return {"location_name": name, "lat": lat_value, "long": long_value}


def minutes_to_seconds(value) -> int:
    try:
        minutes = int(str(value).strip())
    except (TypeError, ValueError):
        raise ValueError(INVALID_DURATION)
    if minutes <= 0:
        raise ValueError(INVALID_DURATION)
    return minutes * 60


def build_schedule_key(schedule_date, schedule_time) -> str:
    """
    Build the record key "YYYY-MM-DDTHH:MM:00" from a date and a time (objects or strings).
    """
    if not schedule_date or not schedule_time:
        raise ValueError(MISSING_SCHEDULE)
    date_part = schedule_date.isoformat() if isinstance(schedule_date, date) else str(schedule_date)
    time_part = schedule_time.strftime("%H:%M") if isinstance(schedule_time, time) else str(schedule_time)[:5]
    return f"{date_part}T{time_part}:00"


# --- Snapshots ---

def _iso(value):
    return value.isoformat() if value else None


def _records(records):
    return {
        r.schedule_key: {
            "duration_sec": r.duration_sec,
            "status": r.status,
            "created_at": _iso(r.created_at),
        }
        for r in sorted(records, key=lambda r: r.schedule_key)
    }


def _client_snapshot(client: Client):
    return {
        "client_id": client.client_id,
        "name": display_name(client.client_id),
        "client_info": {
            "lat": client.lat,
            "long": client.long,
            "location_name": client.location_name,
            "location_updated": bool(client.location_updated),
        },
        "scheduled_records": _records(client.scheduled_records),
    }


def _server_snapshot(server: Server):
    clients = sorted(server.clients, key=lambda c: unit_sort_key(c.client_id))
    return {
        "server_id": server.server_id,
        "name": display_name(server.server_id),
        "server_info": {
            "server_lat": server.server_lat,
            "server_long": server.server_long,
            "server_location_name": server.server_location_name,
            "location_updated": bool(server.location_updated),
        },
        "mode": {
            "type": server.mode_type or IDLE,
            "target_client_id": server.mode_target_client_id or "",
            "duration_sec": server.mode_duration_sec or 0,
            "schedule_key": server.mode_schedule_key or "",
            "updated_at": _iso(server.mode_updated_at),
        },
        "active_status": {
            "status": server.status or IDLE,
            "progress": server.progress or 0,
            "total_files": server.total_files or 0,
            "received_files": server.received_files or 0,
            "total_size_bytes": server.total_size_bytes or 0,
            "transferred_bytes": server.transferred_bytes or 0,
        },
        "connection_status": bool(server.connection_status),
        "clients": {c.client_id: _client_snapshot(c) for c in clients},
    }


def _standalone_snapshot(unit: Standalone):
    return {
        "standalone_id": unit.standalone_id,
        "name": display_name(unit.standalone_id),
        "standaloneinfo": {
            "lat": unit.lat,
            "long": unit.long,
            "location_name": unit.location_name,
            "location_updated": bool(unit.location_updated),
        },
        "mode": {
            "type": unit.mode_type or IDLE,
            "duration_sec": unit.mode_duration_sec or 0,
            "schedule_key": unit.mode_schedule_key or "",
            "updated_at": _iso(unit.mode_updated_at),
        },
        "active_status": {
            "status": unit.status or IDLE,
            "progress": unit.progress or 0,
            "total_files": unit.total_files or 0,
            "total_size_bytes": unit.total_size_bytes or 0,
        },
        "connection_status": bool(unit.connection_status),
        "scheduled_records": _records(unit.scheduled_records),
    }


def _server_query(session):
    return session.query(Server).options(
        selectinload(Server.clients).selectinload(Client.scheduled_records)
    )


def get_server_snapshot(server_id):
    with SessionLocal() as session:
        server = _server_query(session).filter(Server.server_id == server_id).first()
        return _server_snapshot(server) if server else None


def list_servers():
    with SessionLocal() as session:
        servers = _server_query(session).all()
        snapshots = [_server_snapshot(s) for s in servers]
    return sorted(snapshots, key=lambda s: unit_sort_key(s["server_id"]))


def list_clients(server_id):
    snapshot = get_server_snapshot(server_id)
    return list(snapshot["clients"].values()) if snapshot else []


def get_client_snapshot(server_id, client_id):
    snapshot = get_server_snapshot(server_id)
    if not snapshot:
        return None
    return snapshot["clients"].get(client_id)


def get_standalone_snapshot(standalone_id):
    with SessionLocal() as session:
        unit = (
            session.query(Standalone)
            .options(selectinload(Standalone.scheduled_records))
            .filter(Standalone.standalone_id == standalone_id)
            .first()
        )
        return _standalone_snapshot(unit) if unit else None


def list_standalones():
    with SessionLocal() as session:
        units = session.query(Standalone).options(selectinload(Standalone.scheduled_records)).all()
        snapshots = [_standalone_snapshot(u) for u in units]
    return sorted(snapshots, key=lambda s: unit_sort_key(s["standalone_id"]))


def dashboard_stats():
    """
    Header counters: servers, clients, standalones, and how many servers report a connection.
    """
    with SessionLocal() as session:
        return {
            "servers": session.query(Server).count(),
            "clients": session.query(Client).count(),
            "standalones": session.query(Standalone).count(),
            "connected": session.query(Server).filter(Server.connection_status.is_(True)).count(),
        }


# --- Lookups Inside A Session ---

def _get_server(session, server_id) -> Server:
    server = session.get(Server, server_id)
    if server is None:
        raise LookupError(f"{server_id} not found")
    return server


def _get_client(session, server_id, client_id) -> Client:
    client = session.query(Client).filter_by(server_id=server_id, client_id=client_id).first()
    if client is None:
        raise LookupError(f"{server_id}/{client_id} not found")
    return client


def _get_standalone(session, standalone_id) -> Standalone:
    unit = session.get(Standalone, standalone_id)
    if unit is None:
        raise LookupError(f"{standalone_id} not found")
    return unit


def _upsert_record(session, schedule_key, duration_sec, client=None, standalone=None):
    query = session.query(ScheduledRecord).filter_by(schedule_key=schedule_key)
    if client is not None:
        record = query.filter_by(client_pk=client.client_pk).first()
    else:
        record = query.filter_by(standalone_id=standalone.standalone_id).first()
    if record is None:
        record = ScheduledRecord(schedule_key=schedule_key, client=client, standalone=standalone)
        session.add(record)
    record.duration_sec = duration_sec
    record.status = "pending"
    record.created_at = datetime.now()
    return record


# --- Create / Delete ---

@logged_write("creating server")
def create_server(server_num, location=None):
    server_id = normalize_server_id(server_num)
    with session_scope() as session:
        if session.get(Server, server_id) is not None:
            raise ValueError(f"{display_name(server_id)} already exists")
        server = Server(server_id=server_id, mode_type=IDLE, mode_updated_at=datetime.now())
        if location:
            server.server_location_name = location["location_name"]
            server.server_lat = location["lat"]
            server.server_long = location["long"]
        session.add(server)
    logger.info(f"Created {server_id}")
    return server_id


@logged_write("creating client")
def create_client(server_id, client_num, location=None):
    client_id = normalize_client_id(client_num)
    with session_scope() as session:
        server = _get_server(session, server_id)
        if any(c.client_id == client_id for c in server.clients):
            raise ValueError(f"{display_name(client_id)} already exists on {display_name(server_id)}")
        client = Client(client_id=client_id)
        if location:
            client.location_name = location["location_name"]
            client.lat = location["lat"]
            client.long = location["long"]
        server.clients.append(client)
    logger.info(f"Created {server_id}/{client_id}")
    return client_id


@logged_write("creating standalone")
def create_standalone(standalone_num, location=None):
    standalone_id = normalize_standalone_id(standalone_num)
    with session_scope() as session:
        if session.get(Standalone, standalone_id) is not None:
            raise ValueError(f"{display_name(standalone_id)} already exists")
        unit = Standalone(standalone_id=standalone_id, mode_type=IDLE, mode_updated_at=datetime.now())
        if location:
            unit.location_name = location["location_name"]
            unit.lat = location["lat"]
            unit.long = location["long"]
        session.add(unit)
    logger.info(f"Created {standalone_id}")
    return standalone_id


def _delete_unit(model, unit_id):
    with session_scope() as session:
        unit = session.get(model, unit_id)
        if unit is None:
            logger.warning(f"{unit_id} does not exist, nothing to delete")
            return False
        session.delete(unit)

    with SessionLocal() as session:
        if session.get(model, unit_id) is not None:
            raise RuntimeError(f"{unit_id} still exists after deletion")
    logger.info(f"Deleted {unit_id}")
    return True


@logged_write("deleting server")
def delete_server(server_id):
    return _delete_unit(Server, server_id)


@logged_write("deleting standalone")
def delete_standalone(standalone_id):
    return _delete_unit(Standalone, standalone_id)


@logged_write("deleting client")
def delete_client(server_id, client_id):
    with session_scope() as session:
        client = session.query(Client).filter_by(server_id=server_id, client_id=client_id).first()
        if client is None:
            logger.warning(f"{server_id}/{client_id} does not exist, nothing to delete")
            return False
        session.delete(client)
    logger.info(f"Deleted {server_id}/{client_id}")
    return True


@logged_write("deleting all unit data")
def delete_all_unit_data():
    """
    Remove every unit, record and prediction. Table structure is kept.
    """
    with session_scope() as session:
        for model in (Prediction, ScheduledRecord, Client, Server, Standalone):
            session.query(model).delete(synchronize_session=False)
    logger.warning("All unit data deleted")


# --- Mode / Status Primitives ---

def _idle_server(server: Server):
    server.mode_type = IDLE
    server.mode_target_client_id = ""
    server.mode_duration_sec = 0
    server.mode_schedule_key = ""
    server.mode_updated_at = datetime.now()


def _zero_server_status(server: Server):
    server.status = IDLE
    server.progress = 0
    server.total_files = 0
    server.received_files = 0
    server.total_size_bytes = 0
    server.transferred_bytes = 0


def _idle_standalone(unit: Standalone):
    unit.mode_type = IDLE
    unit.mode_duration_sec = 0
    unit.mode_schedule_key = ""
    unit.mode_updated_at = datetime.now()


def _zero_standalone_status(unit: Standalone):
    unit.status = IDLE
    unit.progress = 0
    unit.total_files = 0
    unit.total_size_bytes = 0


# --- Resets ---

@logged_write("resetting server")
def reset_server(server_id):
    """
    Return a server to idle and disconnected. Locations, clients, scheduled
    records and predictions are kept.
    """
    with session_scope() as session:
        server = _get_server(session, server_id)
        _idle_server(server)
        _zero_server_status(server)
        server.connection_status = False
        if server.location_updated is None:
            server.location_updated = False
        for client in server.clients:
            if client.location_updated is None:
                client.location_updated = False
    logger.info(f"Reset {server_id}")


@logged_write("resetting client")
def reset_client(server_id, client_id):
    """
    Reset the server-side command state for one client. The client's own data is kept.
    """
    with session_scope() as session:
        client = _get_client(session, server_id, client_id)
        if client.location_updated is None:
            client.location_updated = False
        server = client.server
        _idle_server(server)
        _zero_server_status(server)
        server.connection_status = False
    logger.info(f"Reset {server_id}/{client_id}")


@logged_write("resetting standalone")
def reset_standalone(standalone_id):
    with session_scope() as session:
        unit = _get_standalone(session, standalone_id)
        _idle_standalone(unit)
        _zero_standalone_status(unit)
        unit.connection_status = False
        if unit.location_updated is None:
            unit.location_updated = False
    logger.info(f"Reset {standalone_id}")


@logged_write("refreshing server")
def refresh_server_data(server_id):
    """
    Touch the mode timestamp so the hardware and open dashboards re-read the server.
    """
    with session_scope() as session:
        _get_server(session, server_id).mode_updated_at = datetime.now()


@logged_write("backfilling location flags")
def backfill_location_updated_flag(server_id=None):
    """
    Set a missing `location_updated` flag to False on one server (and its clients) or on all units.
    Returns the number of rows changed.
    """
    changed = 0
    with session_scope() as session:
        query = session.query(Server)
        if server_id:
            query = query.filter(Server.server_id == server_id)
        for server in query.all():
            if server.location_updated is None:
                server.location_updated = False
                changed += 1
            for client in server.clients:
                if client.location_updated is None:
                    client.location_updated = False
                    changed += 1
        if not server_id:
            for unit in session.query(Standalone).filter(Standalone.location_updated.is_(None)).all():
                unit.location_updated = False
                changed += 1
    logger.info(f"Backfilled location_updated on {changed} units")
    return changed


# --- Location Edits ---

@logged_write("updating server location")
def update_server_location(server_id, location):
    """
    Manual server location edit. Sets `location_updated`, which the dashboard
    reports as a completed location update.
    """
    with session_scope() as session:
        server = _get_server(session, server_id)
        server.server_location_name = location["location_name"]
        server.server_lat = location["lat"]
        server.server_long = location["long"]
        server.location_updated = True


@logged_write("updating client location")
def update_client_location(server_id, client_id, location):
    with session_scope() as session:
        client = _get_client(session, server_id, client_id)
        client.location_name = location["location_name"]
        client.lat = location["lat"]
        client.long = location["long"]


@logged_write("updating standalone location")
def update_standalone_location(standalone_id, location):
    with session_scope() as session:
        unit = _get_standalone(session, standalone_id)
        unit.location_name = location["location_name"]
        unit.lat = location["lat"]
        unit.long = location["long"]


# --- Server Commands ---

def _server_command(server_id, mode_type, **fields):
    with session_scope() as session:
        server = _get_server(session, server_id)
        server.mode_type = mode_type
        for name, value in fields.items():
            setattr(server, f"mode_{name}", value)
        server.mode_updated_at = datetime.now()
    logger.info(f"{server_id} mode -> {mode_type} {fields}")


@logged_write("requesting server location")
def request_server_location(server_id):
    _server_command(server_id, "server_location")


@logged_write("requesting client location")
def request_client_location(server_id, client_id):
    _server_command(server_id, "client_location", target_client_id=client_id)


@logged_write("connecting client")
def connect_client(server_id, client_id):
    _server_command(server_id, "connect", target_client_id=client_id)


@logged_write("starting instant recording")
def instant_record_client(server_id, client_id, duration_sec):
    _server_command(server_id, "instant", target_client_id=client_id, duration_sec=int(duration_sec))


@logged_write("scheduling client recording")
def schedule_client_record(server_id, client_id, duration_sec, schedule_key):
    """
    Set the schedule mode and add (or overwrite) the client's pending record for `schedule_key`.
    """
    with session_scope() as session:
        client = _get_client(session, server_id, client_id)
        server = client.server
        server.mode_type = "schedule"
        server.mode_target_client_id = client_id
        server.mode_duration_sec = int(duration_sec)
        server.mode_schedule_key = schedule_key
        server.mode_updated_at = datetime.now()
        _upsert_record(session, schedule_key, int(duration_sec), client=client)
    logger.info(f"{server_id}/{client_id} scheduled {schedule_key} ({duration_sec}s)")


@logged_write("transmitting scheduled recording")
def transmit_scheduled_record(server_id, client_id, schedule_key):
    _server_command(server_id, "transmit_scheduled", target_client_id=client_id, schedule_key=schedule_key)


# --- Standalone Commands ---

def _standalone_command(standalone_id, mode_type, **fields):
    with session_scope() as session:
        unit = _get_standalone(session, standalone_id)
        unit.mode_type = mode_type
        for name, value in fields.items():
            setattr(unit, f"mode_{name}", value)
        unit.mode_updated_at = datetime.now()
    logger.info(f"{standalone_id} mode -> {mode_type} {fields}")


@logged_write("requesting standalone location")
def request_standalone_location(standalone_id):
    _standalone_command(standalone_id, "location")


@logged_write("connecting standalone")
def connect_standalone(standalone_id):
    _standalone_command(standalone_id, "connect")


@logged_write("starting standalone instant recording")
def instant_record_standalone(standalone_id, duration_sec):
    _standalone_command(standalone_id, "instant", duration_sec=int(duration_sec))


@logged_write("scheduling standalone recording")
def schedule_standalone_record(standalone_id, duration_sec, schedule_key):
    with session_scope() as session:
        unit = _get_standalone(session, standalone_id)
        unit.mode_type = "schedule"
        unit.mode_duration_sec = int(duration_sec)
        unit.mode_schedule_key = schedule_key
        unit.mode_updated_at = datetime.now()
        _upsert_record(session, schedule_key, int(duration_sec), standalone=unit)
    logger.info(f"{standalone_id} scheduled {schedule_key} ({duration_sec}s)")


@logged_write("uploading scheduled recording")
def upload_scheduled_record(standalone_id, schedule_key):
    _standalone_command(standalone_id, "upload_scheduled", schedule_key=schedule_key)


# --- Acknowledgement Writes ---

@logged_write("setting server idle")
def set_server_mode_idle(server_id):
    with session_scope() as session:
        _idle_server(_get_server(session, server_id))


@logged_write("clearing server active status")
def clear_server_active_status(server_id):
    with session_scope() as session:
        _zero_server_status(_get_server(session, server_id))


@logged_write("setting server connection")
def set_server_connection_status(server_id, connected):
    with session_scope() as session:
        _get_server(session, server_id).connection_status = bool(connected)


@logged_write("setting server location flag")
def set_server_location_updated(server_id, flag):
    with session_scope() as session:
        _get_server(session, server_id).location_updated = bool(flag)


@logged_write("setting client location flag")
def set_client_location_updated(server_id, client_id, flag):
    with session_scope() as session:
        _get_client(session, server_id, client_id).location_updated = bool(flag)


@logged_write("setting client record status")
def set_client_record_status(server_id, client_id, schedule_key, status):
    with session_scope() as session:
        client = _get_client(session, server_id, client_id)
        record = session.query(ScheduledRecord).filter_by(client_pk=client.client_pk, schedule_key=schedule_key).first()
        if record is None:
            raise LookupError(f"No scheduled record {schedule_key} for {server_id}/{client_id}")
        record.status = status


@logged_write("setting standalone idle")
def set_standalone_mode_idle(standalone_id):
    with session_scope() as session:
        _idle_standalone(_get_standalone(session, standalone_id))


@logged_write("clearing standalone active status")
def clear_standalone_active_status(standalone_id):
    with session_scope() as session:
        _zero_standalone_status(_get_standalone(session, standalone_id))


@logged_write("setting standalone connection")
def set_standalone_connection_status(standalone_id, connected):
    with session_scope() as session:
        _get_standalone(session, standalone_id).connection_status = bool(connected)


@logged_write("setting standalone location flag")
def set_standalone_location_updated(standalone_id, flag):
    with session_scope() as session:
        _get_standalone(session, standalone_id).location_updated = bool(flag)


@logged_write("setting standalone record status")
def set_standalone_record_status(standalone_id, schedule_key, status):
    with session_scope() as session:
        record = session.query(ScheduledRecord).filter_by(standalone_id=standalone_id, schedule_key=schedule_key).first()
        if record is None:
            raise LookupError(f"No scheduled record {schedule_key} for {standalone_id}")
        record.status = status
