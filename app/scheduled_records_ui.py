"""
scheduled_records_ui.py — Scheduled Recordings (Full View)
----------------------------------------------------------

Full-page table of one unit's scheduled recordings, for clients and
standalone recorders alike. Search covers every column, clicking a column
header sorts by it (click again to reverse) and the current view can be
downloaded as CSV.

Author: Matt Scardino
Project: Bat Monitoring Dashboard
"""

import streamlit as st
from core import devices
from core.records import (
    CSV_COLUMNS, scheduled_record_rows, filter_rows, sort_rows, next_sort, records_to_csv, status_badge_color
)

st.title("📅 Scheduled Recordings")

# --- Unit Selection ---
units = {}
for server in devices.list_servers():
    for client_id, client in server["clients"].items():
        units[f"{server['name']} · {client['name']}"] = client["scheduled_records"]
for standalone in devices.list_standalones():
    units[standalone["name"]] = standalone["scheduled_records"]

if not units:
    st.info("No clients or standalone recorders yet.")
    st.stop()

unit_label = st.selectbox("Unit", list(units))
rows = scheduled_record_rows(units[unit_label])

if "records_sort" not in st.session_state:
    st.session_state.records_sort = (None, "asc")
sort_key, direction = st.session_state.records_sort

query = st.text_input("Search", placeholder="Search all columns...", label_visibility="collapsed")
view = sort_rows(filter_rows(rows, query), sort_key, direction)

# --- Table ---
header = st.columns(len(CSV_COLUMNS))
for col, (field, title) in zip(header, CSV_COLUMNS.items()):
    arrow = (" ▲" if direction == "asc" else " ▼") if field == sort_key else " ↕"
    if col.button(f"{title}{arrow}", key=f"sort_{field}", use_container_width=True):
        st.session_state.records_sort = next_sort(sort_key, direction, field)
        st.rerun()

if not view:
    st.caption("No scheduled recordings match." if rows else "No scheduled recordings for this unit.")
for row in view:
    cells = st.columns(len(CSV_COLUMNS))
    cells[0].write(row["schedule_key"])
    cells[1].write(row["date"])
    cells[2].write(row["time"])
    cells[3].write(str(row["duration_min"]))
    cells[4].markdown(
        f"<span style='background:{status_badge_color(row['status'])};color:white;padding:2px 8px;"
        f"border-radius:6px;font-size:0.8rem'>{row['status']}</span>",
        unsafe_allow_html=True,
    )

st.download_button(
    "⬇️ Download CSV",
    data=records_to_csv(view),
    file_name=f"scheduled_recordings_{unit_label.replace(' ', '_').replace('·', '')}.csv",
    mime="text/csv",
    disabled=not view,
)
