"""
bat_details_ui.py — BAT Recording Details
-----------------------------------------

Detail view for one BAT recording (spectrogram, camera frame, audio, sensor log)
together with its predicted species.

Features:
- Spectrogram with brightness / contrast / saturation adjustment
- Camera image and audio player streamed from the backend
- Environmental readings parsed from sensor.txt
- Predicted species with reference image and ranked species chart
- Call parameters and recorder metadata returned by the backend

The prediction is taken from the data history when opened from there, else from
the cache, else requested from the backend and cached.

Dependencies:
- Streamlit for UI
- Plotly for the species chart
- Pillow (through tools.sensor_utils) for spectrogram adjustment

Author: Matt Scardino
Project: Bat Monitoring Dashboard
"""

import logging
from datetime import datetime
import pandas as pd
import plotly.express as px
import streamlit as st
from core.predictions import get_prediction, save_prediction, ERROR
from tools.sensor_utils import parse_sensor_text, adjust_spectrogram
from tools.ui_widgets import get_api

logger = logging.getLogger("bat_details")

api = get_api()
context = st.session_state.get("bat_details") or {}


@st.cache_data(ttl=120, show_spinner=False)
def known_recordings():
    return get_api().list_all_bat_folders().get("folders") or []


# --- Recording Selection ---
with st.sidebar:
    st.header("Recording")
    recordings = known_recordings()
    if recordings:
        picked = st.selectbox("Known recordings", [None] + recordings,
                              format_func=lambda f: "-" if f is None else f["name"])
        if picked:
            context = {"bat_id": picked["bat_id"], "server_num": picked["server_num"],
                       "client_num": picked["client_num"]}
    bat_id = st.text_input("BAT ID", value=str(context.get("bat_id", "")))
    server_num = st.text_input("Server #", value=str(context.get("server_num") or "1"))
    client_num = st.text_input("Client #", value=str(context.get("client_num") or "1"))
    if context.get("folder_name"):
        st.caption(f"Folder: {context['folder_name']}")

if not bat_id:
    st.info("Open a recording from a Data History list, or enter a BAT ID in the sidebar.")
    st.stop()

server_id, client_id = f"server{server_num}", f"client{client_num}"


@st.cache_data(ttl=300, show_spinner="Loading recording files...")
def load_bat_files(bat_id, server_num, client_num):
    return get_api().fetch_bat_files(bat_id, server_num, client_num)


@st.cache_data(ttl=300, show_spinner=False)
def load_file(file_id, file_name):
    return get_api().fetch_file_bytes(file_id, file_name)


def resolve_prediction():
    """
    Prediction for this recording plus the backend's call parameters and metadata when fetched fresh.
    """
    same_recording = str(context.get("bat_id")) == bat_id
    known = context.get("prediction") or {}
    if same_recording and known.get("all_species") and known.get("species") != ERROR:
        return known, {}

    cached = None
    if same_recording and context.get("folder_name"):
        cached = get_prediction(server_id, client_id, bat_id, context["folder_name"])
    cached = cached or get_prediction(server_id, client_id, bat_id)
    if cached and cached.get("species"):
        return cached, {}

    with st.spinner("🤖 Predicting species..."):
        result = api.predict_species(bat_id, server_num, client_num)
    if not result.get("success") or not result.get("species"):
        return None, result

    prediction = {
        "species": result["species"],
        "confidence": result.get("confidence") or 0,
        "all_species": result.get("all_species") or [],
    }
    frequency = (result.get("call_parameters") or {}).get("peak_frequency")
    try:
        save_prediction(server_id, client_id, bat_id, prediction["species"], prediction["confidence"],
                        datetime.now().strftime("%d/%m/%Y"), f"{frequency} kHz" if frequency else None,
                        prediction["all_species"])
    except Exception as e:
        logger.error(f"Caching prediction for BAT {bat_id} failed: {e}")
    return prediction, result


st.title(f"🦇 BAT {bat_id}")
st.caption(f"Server {server_num} · Client {client_num}")

files_response = load_bat_files(bat_id, server_num, client_num)
if not files_response.get("success"):
    st.error(f"Failed to load BAT files: {files_response.get('message') or 'Unknown error'}")
files = files_response.get("files") or {}

left, right = st.columns([3, 2])

# --- Spectrogram ---
with left:
    st.subheader("Spectrogram")
    spectrogram = files.get("spectrogram")
    if spectrogram:
        raw = load_file(spectrogram["id"], spectrogram["name"])
        c1, c2, c3 = st.columns(3)
        brightness = c1.slider("Brightness", 50, 200, 100, format="%d%%")
        contrast = c2.slider("Contrast", 50, 200, 100, format="%d%%")
        saturation = c3.slider("Saturation", 0, 200, 100, format="%d%%")
        if raw:
            try:
                st.image(adjust_spectrogram(raw, brightness, contrast, saturation), use_container_width=True)
            except Exception as e:
                logger.error(f"Spectrogram for BAT {bat_id} could not be rendered: {e}")
                st.image(api.file_url(spectrogram["id"], spectrogram["name"]), use_container_width=True)
        else:
            st.warning("Spectrogram could not be downloaded.")
    else:
        st.caption("No spectrogram for this recording.")

    audio = files.get("audio")
    if audio:
        st.subheader("Audio")
        st.audio(api.file_url(audio["id"], audio["name"]))

# --- Camera & Sensors ---
with right:
    camera = files.get("camera")
    if camera:
        st.subheader("Camera")
        st.image(api.file_url(camera["id"], camera["name"]), use_container_width=True)

    st.subheader("Environment")
    sensor = files.get("sensor")
    if sensor:
        text = api.fetch_file_text(sensor["id"], sensor["name"])
        if text is None:
            st.warning("Failed to parse sensor data")
        else:
            readings = parse_sensor_text(text)
            m1, m2 = st.columns(2)
            m1.metric("Temperature", f"{readings['temperature']} °C" if readings.get("temperature") else "N/A")
            m2.metric("Humidity", f"{readings['humidity']} %" if readings.get("humidity") else "N/A")
            m3, m4 = st.columns(2)
            m3.metric("Pressure", f"{readings['pressure']} hPa" if readings.get("pressure", 0) > 0 else "N/A")
            m4.metric("Light Level", f"{readings['light_level']} lux" if readings.get("light_level", 0) > 0 else "N/A")
    else:
        st.caption("No sensor log for this recording.")

# --- Species Prediction ---
st.divider()
st.subheader("Predicted Species")
prediction, details = resolve_prediction()

if prediction is None:
    st.error(f"Species prediction failed: {details.get('message') or 'Unknown error'}")
else:
    col1, col2 = st.columns([1, 2])
    with col1:
        st.image(api.species_image_url(prediction["species"]), caption=prediction["species"],
                 use_container_width=True)
    with col2:
        st.metric(prediction["species"], f"{prediction.get('confidence') or 0:.1f}% confidence")
        ranked = [sp for sp in prediction.get("all_species") or [] if sp.get("species")]
        if len(ranked) > 1:
            frame = pd.DataFrame(ranked)[["species", "confidence"]]
            fig = px.bar(frame, x="confidence", y="species", orientation="h",
                         labels={"confidence": "Confidence (%)", "species": ""})
            fig.update_layout(yaxis={"categoryorder": "total ascending"}, height=60 + 40 * len(frame),
                              margin={"l": 0, "r": 0, "t": 10, "b": 0})
            st.plotly_chart(fig, use_container_width=True)

# --- Call Parameters & Metadata ---
call_parameters = details.get("call_parameters") if details else None
metadata = details.get("metadata") if details else None
if call_parameters:
    with st.expander("📊 Call Parameters", expanded=True):
        params = {k.replace("_", " ").title(): v for k, v in call_parameters.items() if v not in (None, "")}
        st.dataframe(pd.DataFrame(params.items(), columns=["Parameter", "Value"]).astype(str),
                     hide_index=True, use_container_width=True)
if metadata:
    with st.expander("📋 Recorder Metadata"):
        fields = {k.replace("_", " ").title(): v for k, v in metadata.items() if k != "raw_metadata" and v}
        st.dataframe(pd.DataFrame(fields.items(), columns=["Field", "Value"]).astype(str),
                     hide_index=True, use_container_width=True)
        if metadata.get("raw_metadata"):
            st.json(metadata["raw_metadata"])
