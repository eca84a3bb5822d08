"""
batch_history_ui.py — Batch Audio Folders
-----------------------------------------

Lists every BAT recording folder known to the backend and runs a whole folder
through the species model in one request.

Features:
- Search by folder name, server number or client number
- Show/Hide calls per folder; results are kept for the session
- Top species badges (+N for the rest), peak frequency, duration and intensity

Dependencies:
- Streamlit for UI
- pandas for the results table

Author: Matt Scardino
Project: Bat Monitoring Dashboard
"""

import logging
from datetime import datetime
import pandas as pd
import streamlit as st
from core.records import filter_folders, species_badges
from tools.ui_widgets import get_api

logger = logging.getLogger("batch_history")

api = get_api()

if "batch_results" not in st.session_state:
    st.session_state.batch_results = {}
if "batch_expanded" not in st.session_state:
    st.session_state.batch_expanded = set()


@st.cache_data(ttl=60, show_spinner="Loading folders...")
def load_folders():
    return get_api().list_batch_folders()


def badge_html(audio):
    top, remaining = species_badges(audio)
    parts = [
        f"<span style='background:#0891b233;border:1px solid #06b6d455;border-radius:999px;"
        f"padding:2px 8px;margin:2px;font-size:0.75rem;display:inline-block'>"
        f"<b>{sp.get('species')}</b> {float(sp.get('confidence') or 0):.1f}%</span>"
        for sp in top
    ]
    if remaining > 0:
        parts.append(f"<span style='background:#0891b2;color:white;border-radius:999px;padding:2px 8px;"
                     f"font-size:0.75rem;font-weight:700'>+{remaining}</span>")
    return "".join(parts)


def format_measure(value, unit, digits=1):
    try:
        return f"{float(value):.{digits}f} {unit}" if value else "N/A"
    except (TypeError, ValueError):
        return "N/A"


def toggle_folder(folder):
    folder_id = folder["id"]
    expanded = st.session_state.batch_expanded
    if folder_id in expanded:
        expanded.discard(folder_id)
        return
    if folder_id not in st.session_state.batch_results:
        with st.spinner(f"Processing {folder['name']}..."):
            result = api.batch_process_folder(folder["server_num"], folder["client_num"], folder["timestamp"])
        if not result.get("success"):
            logger.error(f"Batch processing of {folder['name']} failed: {result.get('message')}")
            st.error(f"Processing failed: {result.get('message') or 'Unknown error'}")
            return
        st.session_state.batch_results[folder_id] = result.get("results") or []
    expanded.add(folder_id)


st.title("📦 Batch Audio Folders")

response = load_folders()
if not response.get("success", True):
    st.error(f"Error loading folders: {response.get('message')}")
folders = response.get("folders") or []
st.caption(f"{len(folders)} folder{'' if len(folders) == 1 else 's'} found")

query = st.text_input("Search", placeholder="Search folders by name, server, or client...",
                      label_visibility="collapsed")
visible = filter_folders(folders, query)

for folder in visible:
    folder_id = folder["id"]
    with st.container(border=True):
        col1, col2 = st.columns([4, 1])
        modified = folder.get("modified_date")
        try:
            shown_date = datetime.fromisoformat(str(modified).replace("Z", "+00:00")).strftime("%Y-%m-%d")
        except ValueError:
            shown_date = modified or "-"
        col1.markdown(f"**📁 {folder['name']}**")
        col1.caption(f"Server {folder['server_num']} • Client {folder['client_num']} • {shown_date}")
        is_open = folder_id in st.session_state.batch_expanded
        if col2.button("🔼 Hide Calls" if is_open else "🔽 Show Calls", key=f"batch_{folder_id}",
                       use_container_width=True):
            toggle_folder(folder)
            st.rerun()

        if is_open:
            results = st.session_state.batch_results.get(folder_id) or []
            if not results:
                st.caption("No audio files in this folder.")
                continue
            for audio in results:
                params = audio.get("call_parameters") or {}
                c1, c2, c3, c4, c5 = st.columns([2, 4, 1, 1, 1])
                c1.write(audio.get("file_name", ""))
                c2.markdown(badge_html(audio), unsafe_allow_html=True)
                c3.write(format_measure(params.get("peak_frequency"), "kHz"))
                c4.write(format_measure(audio.get("duration"), "s", 2))
                c5.write(format_measure(params.get("intensity"), "dB"))
            summary = pd.DataFrame([
                {"File": a.get("file_name"), "Species detected": a.get("species_count") or 0} for a in results
            ])
            with st.expander("Summary"):
                st.dataframe(summary, hide_index=True, use_container_width=True)

if folders and not visible:
    st.info("No folders found matching your search criteria")
