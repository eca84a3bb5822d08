"""
status.py — Command Feedback State Machines
--------------------------------------------

The hardware acknowledges commands by writing fields (connection flag,
location flag, transfer status, scheduled record status). This module turns
those fields into the status card shown on a client or standalone card:

- A flow starts when the unit's mode names it (or optimistically via `begin`)
- The flow completes when the acknowledging field appears; a success card is shown
- After the success window the dashboard writes the unit back to idle

Flow state lives in a plain dict (Streamlit session state in the app) so a
success window survives reruns and page switches.

Author: Matt Scardino
Project: Bat Monitoring Dashboard
"""

import time
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional, Tuple
from config.settings import SUCCESS_WINDOW_SEC
from core import devices
from tools.sensor_utils import format_bytes

logger = logging.getLogger("status")

LOADING = "loading"
SUCCESS = "success"
PROGRESS = "progress"


@dataclass
class StatusCard:
    show: bool = False
    message: str = ""
    kind: str = LOADING


HIDDEN = StatusCard()


@dataclass
class UnitView:
    """
    The fields a status flow watches, read from one unit snapshot.
    `targeted` is True when the current mode addresses this unit.
    """
    mode: dict
    active_status: dict
    connection_status: bool = False
    location_updated: bool = False
    location_name: str = ""
    records: dict = field(default_factory=dict)
    targeted: bool = True

    @property
    def mode_type(self):
        return self.mode.get("type") or "idle"


def client_view(server_snapshot, client_id) -> UnitView:
    client = server_snapshot["clients"].get(client_id) or {}
    info = client.get("client_info") or {}
    mode = server_snapshot["mode"]
    return UnitView(
        mode=mode,
        active_status=server_snapshot["active_status"],
        connection_status=server_snapshot["connection_status"],
        location_updated=bool(info.get("location_updated")),
        location_name=info.get("location_name", ""),
        records=client.get("scheduled_records") or {},
        targeted=mode.get("target_client_id") == client_id,
    )


def standalone_view(snapshot) -> UnitView:
    info = snapshot["standaloneinfo"]
    return UnitView(
        mode=snapshot["mode"],
        active_status=snapshot["active_status"],
        connection_status=snapshot["connection_status"],
        location_updated=bool(info.get("location_updated")),
        location_name=info.get("location_name", ""),
        records=snapshot.get("scheduled_records") or {},
    )


def server_view(snapshot) -> UnitView:
    info = snapshot["server_info"]
    return UnitView(
        mode=snapshot["mode"],
        active_status=snapshot["active_status"],
        connection_status=snapshot["connection_status"],
        location_updated=bool(info.get("location_updated")),
        location_name=info.get("server_location_name", ""),
    )


# --- Acknowledgement Writers ---

class ClientActions:
    def __init__(self, server_id, client_id):
        self.server_id = server_id
        self.client_id = client_id

    def set_idle(self):
        devices.set_server_mode_idle(self.server_id)

    def clear_active(self):
        devices.clear_server_active_status(self.server_id)

    def disconnect(self):
        devices.set_server_connection_status(self.server_id, False)

    def clear_location_flag(self):
        devices.set_client_location_updated(self.server_id, self.client_id, False)

    def complete_record(self, schedule_key):
        devices.set_client_record_status(self.server_id, self.client_id, schedule_key, "completed")


class StandaloneActions:
    def __init__(self, standalone_id):
        self.standalone_id = standalone_id

    def set_idle(self):
        devices.set_standalone_mode_idle(self.standalone_id)

    def clear_active(self):
        devices.clear_standalone_active_status(self.standalone_id)

    def disconnect(self):
        devices.set_standalone_connection_status(self.standalone_id, False)

    def clear_location_flag(self):
        devices.set_standalone_location_updated(self.standalone_id, False)

    def complete_record(self, schedule_key):
        devices.set_standalone_record_status(self.standalone_id, schedule_key, "completed")


class ServerActions:
    def __init__(self, server_id):
        self.server_id = server_id

    def set_idle(self):
        devices.set_server_mode_idle(self.server_id)

    def clear_active(self):
        devices.clear_server_active_status(self.server_id)

    def clear_location_flag(self):
        devices.set_server_location_updated(self.server_id, False)


# --- Flow Definitions ---

@dataclass(frozen=True)
class Flow:
    name: str
    start: Callable[[UnitView], Optional[str]]
    completed: Callable[[UnitView, str], bool]
    reset: Tuple[str, ...]
    pending: str
    success: str
    pending_kind: str = LOADING


def mode_start(mode_type):
    def start(view):
        if view.targeted and view.mode_type == mode_type:
            return view.mode.get("schedule_key") or ""
        return None
    return start


def record_start(status):
    def start(view):
        for key, record in sorted(view.records.items()):
            if isinstance(record, dict) and record.get("status") == status:
                return key
        return None
    return start


def server_location_start(view):
    if view.mode_type == "server_location" or view.location_updated:
        return ""
    return None


def connected(view, key):
    return view.connection_status


def location_reported(view, key):
    return view.location_updated


def transfer_completed(view, key):
    return view.active_status.get("status") == "completed"


def record_reached(status):
    def completed(view, key):
        record = view.records.get(key)
        return isinstance(record, dict) and record.get("status") == status
    return completed


CLIENT_FLOWS = (
    Flow("connect", mode_start("connect"), connected, ("set_idle", "disconnect"),
         "Connecting...", "Successfully connected"),
    Flow("location", mode_start("client_location"), location_reported, ("set_idle", "clear_location_flag"),
         "Getting location...", "Location updated"),
    Flow("instant", mode_start("instant"), transfer_completed, ("set_idle", "clear_active"),
         "Connecting...", "Successfully recorded and uploaded to DB", PROGRESS),
    Flow("schedule", mode_start("schedule"), record_reached("scheduled"), ("set_idle",),
         "Scheduling", "Successfully Scheduled"),
    Flow("recording", record_start("recording"), record_reached("ready_to_transmit"), ("set_idle",),
         "Recording", "Ready to transmit"),
    Flow("transmit", mode_start("transmit_scheduled"), transfer_completed,
         ("complete_record", "set_idle", "clear_active"),
         "Transmitting...", "Schedule transmission completed", PROGRESS),
)

STANDALONE_FLOWS = (
    Flow("connect", mode_start("connect"), connected, ("set_idle", "disconnect"),
         "Connecting...", "Successfully connected"),
    Flow("location", mode_start("location"), location_reported, ("set_idle", "clear_location_flag"),
         "Getting location...", "Location updated"),
    Flow("instant", mode_start("instant"), transfer_completed, ("set_idle", "clear_active"),
         "Recording...", "Successfully recorded and uploaded", PROGRESS),
    Flow("schedule", mode_start("schedule"), record_reached("scheduled"), ("set_idle",),
         "Scheduling...", "Successfully Scheduled"),
    Flow("recording", record_start("recording"), record_reached("ready_to_upload"), ("set_idle",),
         "Recording scheduled for {date} at {time} ({minutes} min)", "Ready to Upload"),
    Flow("upload", mode_start("upload_scheduled"), transfer_completed,
         ("complete_record", "set_idle", "clear_active"),
         "Uploading...", "Schedule Uploading Completed", PROGRESS),
)

SERVER_FLOWS = (
    Flow("server_location", server_location_start, location_reported,
         ("set_idle", "clear_active", "clear_location_flag"),
         "Getting Location...", "Server location updated: {location_name}"),
)


def _message(template, view, key):
    date_part, _, time_part = (key or "").partition("T")
    record = view.records.get(key) or {}
    minutes = int((record.get("duration_sec") or 0) // 60)
    return template.format(
        date=date_part, time=time_part[:5], minutes=minutes, location_name=view.location_name
    )


# --- Tracker ---

class StatusTracker:
    """
    Evaluates one unit's flows against a fresh view on every rerun.

    `memory` maps "{unit}:{flow}" to {"key", "success_at"}; `clock` returns seconds.
    """

    def __init__(self, unit_key, flows, actions, memory, window=SUCCESS_WINDOW_SEC, clock=time.time):
        self.unit_key = unit_key
        self.flows = flows
        self.actions = actions
        self.memory = memory
        self.window = window
        self.clock = clock

    def _slot(self, flow):
        return f"{self.unit_key}:{flow.name}"

    def _flow(self, name):
        for flow in self.flows:
            if flow.name == name:
                return flow
        raise KeyError(name)

    def begin(self, flow_name, schedule_key=""):
        """
        Show the pending card right after a command write, before the next read.
        """
        self.memory[self._slot(self._flow(flow_name))] = {"key": schedule_key, "success_at": None}

    def cancel(self, flow_name):
        self.memory.pop(self._slot(self._flow(flow_name)), None)

    def active_flows(self):
        return [f.name for f in self.flows if self._slot(f) in self.memory]

    def _expire(self, flow, entry):
        for action in flow.reset:
            try:
                if action == "complete_record":
                    self.actions.complete_record(entry["key"])
                else:
                    getattr(self.actions, action)()
            except Exception as e:
                logger.error(f"{self.unit_key}: reset '{action}' after {flow.name} failed: {e}")
        self.memory.pop(self._slot(flow), None)
        logger.info(f"{self.unit_key}: {flow.name} flow finished")

    def evaluate(self, view: UnitView) -> StatusCard:
        now = self.clock()

        for flow in self.flows:
            slot = self._slot(flow)
            key = flow.start(view)
            entry = self.memory.get(slot)

            if entry is None:
                if key is None:
                    continue
                entry = self.memory[slot] = {"key": key, "success_at": None}
            elif key and not entry.get("key"):
                entry["key"] = key

            if entry["success_at"] is None:
                if flow.completed(view, entry["key"]):
                    entry["success_at"] = now
                    logger.info(f"{self.unit_key}: {flow.name} completed")
                elif key is None:
                    # mode moved on without an acknowledgement
                    self.memory.pop(slot, None)
                    continue

            if entry["success_at"] is not None and now - entry["success_at"] >= self.window:
                self._expire(flow, entry)

        for flow in self.flows:
            entry = self.memory.get(self._slot(flow))
            if entry and entry["success_at"] is not None:
                return StatusCard(True, _message(flow.success, view, entry["key"]), SUCCESS)

        for flow in self.flows:
            entry = self.memory.get(self._slot(flow))
            if entry:
                return StatusCard(True, _message(flow.pending, view, entry["key"]), flow.pending_kind)

        return HIDDEN


def client_tracker(server_id, client_id, memory, **kwargs):
    return StatusTracker(f"{server_id}:{client_id}", CLIENT_FLOWS, ClientActions(server_id, client_id), memory, **kwargs)


def standalone_tracker(standalone_id, memory, **kwargs):
    return StatusTracker(standalone_id, STANDALONE_FLOWS, StandaloneActions(standalone_id), memory, **kwargs)


def server_location_tracker(server_id, memory, **kwargs):
    return StatusTracker(server_id, SERVER_FLOWS, ServerActions(server_id), memory, **kwargs)


# --- Busy Rules & Labels ---

def is_unit_busy(mode) -> bool:
    return (mode or {}).get("type", "idle") != "idle"


def recording_client(server_snapshot):
    """
    The client whose scheduled record is currently recording, if any.
    """
    for client_id, client in server_snapshot["clients"].items():
        for record in (client.get("scheduled_records") or {}).values():
            if isinstance(record, dict) and record.get("status") == "recording":
                return client_id
    return None


def client_disabled(server_snapshot, client_id) -> bool:
    """
    A recording client is locked on its own; any other command locks every client.
    """
    recording = recording_client(server_snapshot)
    if recording == client_id:
        return True
    return is_unit_busy(server_snapshot["mode"])


def server_mode_label(mode, recording=None, location_feedback=False):
    """
    Badge text for a server header, or None when the server is idle.
    """
    mode_type = (mode or {}).get("type", "idle")
    target = (mode or {}).get("target_client_id") or ""
    if location_feedback:
        return "Location updated"
    labels = {
        "server_location": "Getting Location...",
        "client_location": f"Location: {target}",
        "connect": f"Connecting: {target}",
        "instant": f"Instant: {target}",
        "schedule": f"Schedule: {target}",
        "transmit_scheduled": f"Schedule_TX: {target}",
    }
    if mode_type in labels:
        return labels[mode_type]
    if recording:
        return f"Schedule_Rec: {recording}"
    return None


def transfer_progress(active_status):
    """
    (fraction 0..1, caption) for a progress status card.
    """
    progress = max(0, min(100, int(active_status.get("progress") or 0)))
    total_files = active_status.get("total_files") or 0
    caption = f"{progress}%"
    if total_files:
        received = active_status.get("received_files")
        if received is not None:
            caption += f" · {received}/{total_files} files"
        else:
            caption += f" · {total_files} files"
    total_bytes = active_status.get("total_size_bytes") or 0
    if total_bytes:
        transferred = active_status.get("transferred_bytes")
        if transferred is not None:
            caption += f" · {format_bytes(transferred)} / {format_bytes(total_bytes)}"
        else:
            caption += f" · {format_bytes(total_bytes)}"
    return progress / 100, caption
