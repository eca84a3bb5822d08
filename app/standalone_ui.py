"""
standalone_ui.py — Standalone Recorder Dashboard
-------------------------------------------------

Standalone recorders have their own uplink, so commands go straight to the
unit instead of through a server. Each card offers:

- Connect, Get Location, Instant and Scheduled recordings
- Upload of finished scheduled recordings (ready_to_upload)
- Scheduled recordings table and data history with species predictions
- Location edit, map, reset and delete

Dependencies:
- Streamlit for UI
- Folium for location maps

Author: Matt Scardino
Project: Bat Monitoring Dashboard
"""

import streamlit as st
from config.settings import MAX_UNITS, REFRESH_INTERVAL_SEC
from core import devices
from core.predictions import StandaloneFolder
from core.status import standalone_tracker, standalone_view, is_unit_busy
from tools.identifiers import available_unit_numbers, display_name, extract_unit_num
from tools.ui_widgets import (
    status_memory, render_status_card, location_inputs, location_editor, location_link, location_map,
    command_inputs, confirm_delete, send_command, scheduled_records_table, data_history, standalone_folders
)


# --- Add Standalone ---
with st.expander("➕ Add Standalone"):
    existing = [s["standalone_id"] for s in devices.list_standalones()]
    numbers = available_unit_numbers(existing, MAX_UNITS)
    if not numbers:
        st.info("All standalone slots are in use.")
    else:
        with st.form("add_standalone_form", clear_on_submit=True):
            number = st.selectbox("Standalone number", numbers, format_func=lambda n: f"Standalone {n}")
            st.caption("Location (optional)")
            raw_location = location_inputs("add_standalone")
            if st.form_submit_button("Add Standalone"):
                try:
                    location = devices.parse_location(*raw_location)
                    standalone_id = devices.create_standalone(number, location)
                except ValueError as e:
                    st.error(str(e))
                except Exception as e:
                    st.error(f"Failed to add standalone: {e}")
                else:
                    st.success(f"{display_name(standalone_id)} added.")
                    st.rerun()


@st.fragment(run_every=REFRESH_INTERVAL_SEC)
def standalone_card(standalone_id):
    unit = devices.get_standalone_snapshot(standalone_id)
    if unit is None:
        st.warning(f"{display_name(standalone_id)} no longer exists.")
        return

    info = unit["standaloneinfo"]
    busy = is_unit_busy(unit["mode"])
    tracker = standalone_tracker(standalone_id, status_memory())
    card = tracker.evaluate(standalone_view(unit))
    key = standalone_id

    with st.container(border=True):
        head1, head2 = st.columns([3, 1])
        head1.subheader(f"🎙️ {unit['name']}")
        head2.markdown("🟢 Connected" if unit["connection_status"] else "🔴 Offline")
        st.markdown(location_link(info["lat"], info["long"], info["location_name"]))

        render_status_card(card, unit["active_status"])

        b1, b2 = st.columns(2)
        if b1.button("🔗 Connect", key=f"{key}_connect", disabled=busy, use_container_width=True):
            send_command(tracker, "connect", devices.connect_standalone, standalone_id)
        if b2.button("📍 Get Location", key=f"{key}_locate", disabled=busy, use_container_width=True):
            send_command(tracker, "location", devices.request_standalone_location, standalone_id)

        command_inputs(
            key,
            busy,
            lambda seconds: send_command(tracker, "instant", devices.instant_record_standalone,
                                         standalone_id, seconds),
            lambda seconds, schedule_key: send_command(tracker, "schedule", devices.schedule_standalone_record,
                                                       standalone_id, seconds, schedule_key,
                                                       schedule_key=schedule_key),
        )

        with st.expander("📅 Scheduled Recordings"):
            scheduled_records_table(
                unit["scheduled_records"],
                key,
                lambda schedule_key: send_command(tracker, "upload", devices.upload_scheduled_record,
                                                  standalone_id, schedule_key, schedule_key=schedule_key),
                standalone=True,
                disabled=busy,
            )

        with st.expander("📂 Data History"):
            folders = standalone_folders(extract_unit_num(standalone_id))
            data_history(StandaloneFolder(standalone_id), folders, key)

        with st.expander("⚙️ Standalone Settings"):
            if st.toggle("Show map", key=f"{key}_map_on"):
                location_map(info["lat"], info["long"], info["location_name"], key=f"{key}_map")
            location_editor(f"{key}_edit", info,
                            lambda location: devices.update_standalone_location(standalone_id, location))
            s1, s2 = st.columns(2)
            with s1:
                if st.button("♻️ Reset Standalone", key=f"{key}_reset"):
                    try:
                        devices.reset_standalone(standalone_id)
                    except Exception as e:
                        st.error(f"Reset failed: {e}")
                    else:
                        st.rerun()
            with s2:
                confirm_delete(f"{key}_del", unit["name"], lambda: devices.delete_standalone(standalone_id))


# --- Standalone Cards ---
units = devices.list_standalones()
if not units:
    st.info("No standalone recorders yet. Add one above to get started.")
for snapshot in units:
    standalone_card(snapshot["standalone_id"])
