"""
main.py — Bat Monitoring Dashboard Entry Point
----------------------------------------------

Run with:  streamlit run main.py

Configures logging, creates the database tables, checks the prediction backend
and routes to the dashboard pages.

Author: Matt Scardino
Project: Bat Monitoring Dashboard
"""

import logging
import streamlit as st
from config.logging_setup import configure_logging
from config.settings import API_BASE_URL, ENVIRONMENT
from db.db import init_db
from tools.ui_widgets import get_api, claim_prediction_jobs

configure_logging()
logger = logging.getLogger("bat_monitor")

st.set_page_config(
    page_title="Bat Monitoring Dashboard",
    page_icon="🦇",
    layout="wide"
)


@st.cache_resource
def startup():
    init_db()
    logger.info(f"Database ready ({ENVIRONMENT})")
    return True


@st.cache_data(ttl=30, show_spinner=False)
def backend_online():
    return get_api().check_health()


startup()

with st.sidebar:
    st.markdown("### 🦇 Bat Monitor")
    if backend_online():
        st.success("Prediction backend online")
    else:
        st.warning(f"Prediction backend unreachable at {API_BASE_URL}")

pages = {
    "Monitoring": [
        st.Page("app/dashboard_ui.py", title="Servers & Clients", icon="🖥️", default=True),
        st.Page("app/standalone_ui.py", title="Standalone Recorders", icon="🎙️"),
        st.Page("app/scheduled_records_ui.py", title="Scheduled Recordings", icon="📅"),
    ],
    "Recordings": [
        st.Page("app/batch_history_ui.py", title="Batch Audio Folders", icon="📦"),
        st.Page("app/bat_details_ui.py", title="BAT Details", icon="🦇"),
    ],
    "Admin": [
        st.Page("tools/reset.py", title="Maintenance", icon="🧹"),
        st.Page("appendix/project.py", title="About", icon="📘"),
    ],
}

page = st.navigation(pages)
claim_prediction_jobs(page.title)
page.run()
