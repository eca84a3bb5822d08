"""
ui_widgets.py — Shared Streamlit Components
-------------------------------------------

Rendering helpers used by more than one page:
- Status cards with transfer progress
- Colored status badges
- Location forms and Folium location maps
- Scheduled recordings table with pagination and the Transmit/Upload action
- Data history (recording folders) with the sequential prediction job

Dependencies:
- Streamlit for UI
- Folium + streamlit-folium for maps

Author: Matt Scardino
Project: Bat Monitoring Dashboard
"""

import logging
import folium
import streamlit as st
from streamlit_folium import st_folium
from config.settings import API_BASE_URL, HISTORY_PAGE_SIZE, SCHEDULED_PAGE_SIZE
from core.devices import parse_location, minutes_to_seconds, build_schedule_key
from core.predictions import (
    open_folder_job, close_folder_job, cancel_jobs, folder_job_key, WAITING, REPREDICTING, ERROR
)
from core.records import scheduled_record_rows, paginate, status_badge_color, can_transmit
from core.status import StatusCard, PROGRESS, SUCCESS, transfer_progress
from tools.api_client import BatApiClient
from tools.identifiers import bat_number_from_file, parse_folder_date
from tools.sensor_utils import format_bytes

logger = logging.getLogger("ui")


@st.cache_resource
def get_api():
    return BatApiClient(API_BASE_URL)


def status_memory():
    """
    Flow memory for status trackers, shared by every page in this browser session.
    """
    if "status_memory" not in st.session_state:
        st.session_state.status_memory = {}
    return st.session_state.status_memory


def prediction_jobs():
    if "prediction_jobs" not in st.session_state:
        st.session_state.prediction_jobs = {}
    return st.session_state.prediction_jobs


@st.cache_data(ttl=60, show_spinner=False)
def client_folders(server_num, client_num):
    return get_api().list_client_folders(server_num, client_num)


@st.cache_data(ttl=60, show_spinner=False)
def standalone_folders(standalone_num):
    return get_api().list_standalone_folders(standalone_num)


def send_command(tracker, flow_name, command, *args, schedule_key=""):
    """
    Write a command and show its pending card at once; the card is withdrawn if the write fails.
    """
    tracker.begin(flow_name, schedule_key)
    try:
        command(*args)
    except Exception as e:
        tracker.cancel(flow_name)
        st.error(f"Command failed: {e}")
        return False
    st.rerun()


# --- Status Display ---

def status_badge(status):
    color = status_badge_color(status)
    return (
        f"<span style='background-color:{color}22;color:{color};border:1px solid {color}66;"
        f"padding:2px 8px;border-radius:999px;font-size:0.75rem;font-weight:600'>{status}</span>"
    )


def render_status_card(card: StatusCard, active_status=None):
    if not card.show:
        return
    if card.kind == SUCCESS:
        st.success(card.message, icon="✅")
    elif card.kind == PROGRESS:
        st.info(card.message, icon="📡")
        fraction, caption = transfer_progress(active_status or {})
        st.progress(fraction, text=caption)
    else:
        st.info(card.message, icon="⏳")


# --- Location ---

def location_inputs(key_prefix, name="", lat="", long=""):
    """
    Name / latitude / longitude inputs; returns the raw values for `parse_location`.
    """
    name_value = st.text_input("Location name", value=name, key=f"{key_prefix}_name")
    col1, col2 = st.columns(2)
    with col1:
        lat_value = st.text_input("Latitude", value=str(lat), key=f"{key_prefix}_lat")
    with col2:
        long_value = st.text_input("Longitude", value=str(long), key=f"{key_prefix}_long")
    return name_value, lat_value, long_value


def location_editor(key_prefix, info, on_save, name_field="location_name", lat_field="lat", long_field="long"):
    """
    Form for a manual location edit. `on_save(location)` writes it.
    """
    with st.form(f"{key_prefix}_location_form"):
        current_name = info.get(name_field) or ""
        raw = location_inputs(
            key_prefix,
            "" if current_name == "Not set" else current_name,
            info.get(lat_field) or "",
            info.get(long_field) or "",
        )
        if st.form_submit_button("💾 Save location"):
            try:
                location = parse_location(*raw)
            except ValueError as e:
                st.error(str(e))
                return
            if location is None:
                st.warning("Enter a location name, latitude and longitude.")
                return
            try:
                on_save(location)
            except Exception as e:
                st.error(f"Failed to update location: {e}")
                return
            st.success("Location saved.")
            st.rerun()


def location_link(lat, long, name):
    if not lat and not long:
        return f"📍 {name or 'Not set'}"
    return f"📍 [{name}](https://www.google.com/maps?q={lat},{long}) ({lat:.5f}, {long:.5f})"


def command_inputs(key_prefix, disabled, on_instant, on_schedule):
    """
    Duration / date / time inputs for Instant and Schedule recordings.
    Callbacks receive seconds (and the schedule key); validation errors are shown inline.
    """
    tab1, tab2 = st.tabs(["⚡ Instant", "📅 Schedule"])
    with tab1:
        minutes = st.text_input("Duration (minutes)", key=f"{key_prefix}_inst_min", disabled=disabled)
        if st.button("Start Instant Recording", key=f"{key_prefix}_inst_go", disabled=disabled):
            try:
                seconds = minutes_to_seconds(minutes)
            except ValueError as e:
                st.error(str(e))
            else:
                on_instant(seconds)
    with tab2:
        col1, col2, col3 = st.columns(3)
        with col1:
            day = st.date_input("Date", value=None, key=f"{key_prefix}_sch_date", disabled=disabled)
        with col2:
            at = st.time_input("Time", value=None, key=f"{key_prefix}_sch_time", disabled=disabled)
        with col3:
            sched_minutes = st.text_input("Duration (minutes)", key=f"{key_prefix}_sch_min", disabled=disabled)
        if st.button("Schedule Recording", key=f"{key_prefix}_sch_go", disabled=disabled):
            try:
                schedule_key = build_schedule_key(day, at)
                seconds = minutes_to_seconds(sched_minutes)
            except ValueError as e:
                st.error(str(e))
            else:
                on_schedule(seconds, schedule_key)


def confirm_delete(key, label, on_confirm):
    """
    Two-step delete: the first click arms a confirmation, the second performs it.
    """
    armed_key = f"confirm_{key}"
    if not st.session_state.get(armed_key):
        if st.button("🗑️ Delete", key=f"{key}_arm"):
            st.session_state[armed_key] = True
            st.rerun()
        return
    st.warning(f"Delete {label}? This cannot be undone.")
    col1, col2 = st.columns(2)
    if col1.button("Yes, delete", key=f"{key}_yes", type="primary"):
        st.session_state[armed_key] = False
        try:
            on_confirm()
        except Exception as e:
            st.error(f"Delete failed: {e}")
            return
        st.rerun()
    if col2.button("Cancel", key=f"{key}_no"):
        st.session_state[armed_key] = False
        st.rerun()


def location_map(lat, long, name, key, height=220):
    if not lat and not long:
        st.caption("No location reported yet.")
        return
    fmap = folium.Map(location=[lat, long], zoom_start=13)
    folium.Marker([lat, long], tooltip=name, popup=name).add_to(fmap)
    st_folium(fmap, height=height, use_container_width=True, key=key, returned_objects=[])


# --- Scheduled Recordings ---

def scheduled_records_table(records, key_prefix, on_action, standalone=False, disabled=False):
    """
    Paginated scheduled recordings with a Transmit (client) / Upload (standalone) button per row.
    `on_action(schedule_key)` is called when the button is pressed.
    """
    rows = scheduled_record_rows(records)
    if not rows:
        st.caption("No scheduled records yet.")
        return

    page_key = f"{key_prefix}_sched_page"
    page = st.session_state.get(page_key, 0)
    page_rows, total_pages = paginate(rows, page, SCHEDULED_PAGE_SIZE)
    action_label = "Upload" if standalone else "Transmit"

    header = st.columns([3, 2, 1, 2, 1.5])
    for col, title in zip(header, ["Schedule ID", "Date / Time", "Duration", "Status", ""]):
        col.markdown(f"**{title}**")

    for row in page_rows:
        cols = st.columns([3, 2, 1, 2, 1.5])
        cols[0].write(row["schedule_key"])
        cols[1].write(f"{row['date']} {row['time']}")
        cols[2].write(f"{row['duration_min']} min")
        cols[3].markdown(status_badge(row["status"]), unsafe_allow_html=True)
        enabled = can_transmit(row["status"], standalone=standalone, disabled=disabled)
        if cols[4].button(action_label, key=f"{key_prefix}_act_{row['schedule_key']}", disabled=not enabled):
            on_action(row["schedule_key"])

    if total_pages > 1:
        pager(page_key, min(page, total_pages - 1), total_pages)


def pager(page_key, page, total_pages):
    col1, col2, col3 = st.columns([1, 2, 1])
    with col1:
        if st.button("◀ Prev", key=f"{page_key}_prev", disabled=page <= 0):
            st.session_state[page_key] = page - 1
            st.rerun()
    with col2:
        st.caption(f"Page {page + 1} of {total_pages}")
    with col3:
        if st.button("Next ▶", key=f"{page_key}_next", disabled=page >= total_pages - 1):
            st.session_state[page_key] = page + 1
            st.rerun()


# --- Data History ---

def _prediction_label(entry):
    if entry.processing:
        return f"⏳ {entry.predicted_species}"
    if entry.predicted_species == ERROR:
        return f"❌ Error{': ' + entry.error if entry.error else ''}"
    if entry.predicted_species == WAITING:
        return "🕒 Waiting"
    return f"🦇 {entry.predicted_species} ({entry.confidence or 0:.1f}%)"


def folder_load_failures():
    if "folder_load_failures" not in st.session_state:
        st.session_state.folder_load_failures = {}
    return st.session_state.folder_load_failures


def claim_prediction_jobs(page):
    """
    Record the page being shown and stop prediction jobs started on any other page.
    """
    st.session_state.active_page = page
    return cancel_jobs(prediction_jobs(), keep_owner=page)


def folder_predictions(target, folder, key_prefix):
    """
    Files of one recording folder with their predictions. The first visit starts a
    background job that predicts uncached files one at a time.
    """
    failures = folder_load_failures()
    job = open_folder_job(prediction_jobs(), failures, target, folder["name"], get_api(),
                          owner=st.session_state.get("active_page"))

    if job is None:
        job_key = folder_job_key(target, folder["name"])
        st.error(f"Processing failed: {failures.get(job_key)}")
        if st.button("🔄 Retry", key=f"{key_prefix}_retry"):
            failures.pop(job_key, None)
            st.rerun()
        return

    entries = job.entries
    done = sum(1 for e in entries if not e.needs_prediction)
    st.caption(f"{done}/{len(entries)} files predicted" + (" · running" if job.running else ""))

    if job.running and st.button("⏹ Stop predictions", key=f"{key_prefix}_stop"):
        job.cancel()
    elif not job.running and any(e.needs_prediction for e in entries):
        if st.button("▶ Resume predictions", key=f"{key_prefix}_resume"):
            job.start()

    for entry in entries:
        cols = st.columns([3, 1, 3, 1, 1])
        cols[0].write(entry.file_name)
        cols[1].caption(format_bytes(entry.size))
        cols[2].write(_prediction_label(entry))
        if cols[3].button("🔁", key=f"{key_prefix}_re_{entry.file_id}", help="Re-predict",
                          disabled=job.running or entry.processing):
            with st.spinner(REPREDICTING):
                job.repredict(entry.file_id)
            st.rerun()
        if target.standalone:
            continue
        if cols[4].button("🔎", key=f"{key_prefix}_bat_{entry.file_id}", help="Open BAT details"):
            open_bat_details(target, folder, entry)


def open_bat_details(target, folder, entry):
    st.session_state.bat_details = {
        "bat_id": bat_number_from_file(entry.file_name),
        "server_num": target.server_num,
        "client_num": target.client_num,
        "folder_name": folder["name"],
        "file_name": entry.file_name,
        "prediction": {
            "species": entry.predicted_species,
            "confidence": entry.confidence,
            "all_species": entry.species,
        },
    }
    st.switch_page("app/bat_details_ui.py")


def data_history(target, folders, key_prefix):
    """
    Paginated recording folders of one unit; expanding a folder shows its predictions.
    """
    if not folders:
        st.caption("No recordings found.")
        return

    page_key = f"{key_prefix}_hist_page"
    page = st.session_state.get(page_key, 0)
    page_folders, total_pages = paginate(folders, page, HISTORY_PAGE_SIZE)

    for folder in page_folders:
        date, time = folder.get("date"), folder.get("time")
        if not date:
            date, time = parse_folder_date(target.timestamp(folder["name"]))
        title = f"📁 {folder['name']} · {date or ''} {time or ''} · " \
                f"{folder['file_count']} files · {folder['total_size']}"
        open_key = f"{key_prefix}_open_{folder['name']}"
        if st.toggle(title, key=open_key):
            with st.container(border=True):
                folder_predictions(target, folder, f"{key_prefix}_{folder['name']}")
        else:
            close_folder_job(prediction_jobs(), folder_load_failures(), target, folder["name"])

    if total_pages > 1:
        pager(page_key, min(page, total_pages - 1), total_pages)
