"""
project.py — Bat Monitoring Dashboard Overview & Documentation
--------------------------------------------------------------

This Streamlit module presents an overview of the Bat Monitoring Dashboard in
expandable sections:

- Project goals
- Hardware topology and command workflow
- Species prediction
- User guide
- Current limitations

Dependencies:
- Streamlit for UI rendering

Author: Matt Scardino
Project: Bat Monitoring Dashboard
"""

import streamlit as st

# --- Project Overview Section ---
with st.expander("🔍 Project Overview"):
    st.write("""
    This dashboard controls a network of acoustic bat recorders in the field and reviews what they capture.

    - **Why This Project?**
      - Recorders sit at remote sites; visiting them to start recordings is slow.
      - Commands, locations and upload progress are shared through one database the hardware also reads.
      - Every recording is run through a species model so surveys can be reviewed without listening to each file.
    """)

# --- Hardware & Workflow Section ---
with st.expander("📊 Hardware & Command Workflow"):
    st.write("""
    1. **Servers** relay commands to up to ten **clients** each; **standalone** recorders have their own uplink.
    2. The dashboard writes a command into the unit's mode (connect, location, instant, schedule, transmit/upload).
    3. The hardware acts on it, reports progress in its active status and sets the mode back to idle.
    4. Status cards follow each command from the pending message to a success message shown for a few seconds.
    5. Scheduled recordings move from *scheduled* to *ready_to_transmit* / *ready_to_upload*, and to *completed* once sent.
    """)

# --- Species Prediction Section ---
with st.expander("🤖 Species Prediction"):
    st.write("""
    - Recordings arrive in timestamped folders (`SERVER1_CLIENT2_23122025_1656`).
    - Opening a folder's predictions lists its audio files and reuses any cached result.
    - Uncached files are sent to the prediction backend one at a time; the run can be stopped and resumed.
    - Each result keeps the full ranked species list, cached per folder and file.
    - The Batch page runs a whole folder in one request for a quick survey.
    """)

# --- User Guide Section ---
with st.expander("📖 User Guide"):
    st.write("""
    1. Add a server (and its clients) or a standalone recorder, optionally with a location.
    2. Use **Connect** and **Get Location** to check a unit is reachable.
    3. Start an **Instant** recording or **Schedule** one for a date and time.
    4. When a scheduled recording is ready, press **Transmit** (client) or **Upload** (standalone).
    5. Open **Data History** to predict species, and 🔎 to inspect a single recording.
    6. Use **Maintenance** for resets and clean-ups.
    """)

# --- Current Limitations Section ---
with st.expander("⚠️ Current Limitations"):
    st.write("""
    - Unit state is polled every few seconds rather than pushed.
    - A stopped prediction run finishes the file it is working on before it halts.
    - Prediction accuracy depends on the backend model and recording quality.
    - There is no user login; anyone who can open the dashboard can send commands.
    """)
