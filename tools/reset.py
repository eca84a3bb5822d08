"""
reset.py — Maintenance & Data Reset Utility
-------------------------------------------

⚠️ USE WITH EXTREME CAUTION ⚠️

This Streamlit module collects the maintenance operations that do not belong on the
operator dashboard:

✅ Backfills missing location_updated flags on older units
✅ Removes cached predictions stored under malformed keys (per client)
✅ Resets every server and standalone to idle / disconnected
✅ Deletes all units, scheduled records and cached predictions (schema kept)

Requirements:
- SQLAlchemy (through core.devices / core.predictions)
- Streamlit UI

Author: Matt Scardino
Project: Bat Monitoring Dashboard
"""

import logging
import streamlit as st
from core import devices
from core.predictions import cleanup_invalid_predictions

logger = logging.getLogger("maintenance")

st.write("⚠️ Use caution — destructive operations ahead.")

col1, col2, col3, col4 = st.columns([1, 1, 1, 1])

# --- Button Controls ---
with col1:
    backfill_clicked = st.button("🏷️ Backfill Location Flags")
with col2:
    cleanup_clicked = st.button("🧽 Clean Up Predictions")
with col3:
    reset_clicked = st.button("♻️ Reset All Units")
with col4:
    confirm_wipe = st.checkbox("I understand this deletes everything")
    wipe_clicked = st.button("🔥 Delete All Unit Data", disabled=not confirm_wipe)


# --- Backfill location_updated Flags ---
if backfill_clicked:
    try:
        changed = devices.backfill_location_updated_flag()
    except Exception as e:
        st.error(f"❌ Backfill failed: {e}")
    else:
        st.success(f"✅ location_updated set on {changed} unit(s).")


# --- Remove Malformed Prediction Keys ---
if cleanup_clicked:
    servers = devices.list_servers()
    if not servers:
        st.warning("⚠️ No servers found.")
    for server in servers:
        for client_id in server["clients"]:
            try:
                removed = cleanup_invalid_predictions(server["server_id"], client_id)
            except Exception as e:
                logger.error(f"Prediction cleanup failed for {server['server_id']}/{client_id}: {e}")
                st.error(f"❌ {server['name']} / {client_id}: {e}")
                continue
            if removed:
                st.success(f"✅ {server['name']} / {client_id}: removed {', '.join(removed)}")
            else:
                st.info(f"{server['name']} / {client_id}: nothing to clean up.")


# --- Reset Every Unit To Idle ---
if reset_clicked:
    failures = 0
    for server in devices.list_servers():
        try:
            devices.reset_server(server["server_id"])
        except Exception as e:
            failures += 1
            st.error(f"❌ {server['name']}: {e}")
    for unit in devices.list_standalones():
        try:
            devices.reset_standalone(unit["standalone_id"])
        except Exception as e:
            failures += 1
            st.error(f"❌ {unit['name']}: {e}")
    if not failures:
        st.success("✅ All units reset to idle.")


# --- Delete All Unit Data (Preserve Schema) ---
if wipe_clicked:
    try:
        devices.delete_all_unit_data()
    except Exception as e:
        st.error(f"❌ Delete failed: {e}")
    else:
        st.session_state.pop("status_memory", None)
        st.session_state.pop("prediction_jobs", None)
        st.session_state.pop("folder_load_failures", None)
        st.success("✅ All servers, clients, standalones and predictions deleted.")
