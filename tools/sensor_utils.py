"""
sensor_utils.py — Recording Side-Data Helpers
---------------------------------------------

Helpers for the BAT details view:
- Parse the recorder's sensor.txt (temperature, humidity, pressure, light)
- Apply brightness / contrast / saturation to a spectrogram image with Pillow
- Human-readable byte sizes for transfer progress

Author: Matt Scardino
Project: Bat Monitoring Dashboard
"""

import io
import re
from PIL import Image, ImageEnhance

LEADING_FLOAT = re.compile(r"^[-+]?\d*\.?\d+(?:[eE][-+]?\d+)?")

SENSOR_FIELDS = (
    ("temperature", re.compile(r".*[Tt]emp(?:erature)?:"), re.compile(r"°?C|celsius", re.IGNORECASE)),
    ("humidity", re.compile(r"[Hh]umidity:"), re.compile(r"%")),
    ("pressure", re.compile(r"[Pp]ressure:"), re.compile(r"hPa|Pa|pascal", re.IGNORECASE)),
    ("light_level", re.compile(r"[Ll]ight:"), re.compile(r"lux|lx", re.IGNORECASE)),
)


def leading_float(text) -> float:
    """
    Number at the start of `text` ("21.5 extra" -> 21.5); 0.0 when there is none.
    """
    match = LEADING_FLOAT.match((text or "").strip())
    return float(match.group(0)) if match else 0.0


def parse_sensor_text(text):
    """
    Parse sensor.txt lines such as "Client1 Temp: 21.5°C" or "Pressure: 1013 hPa".
    Only fields present in the file are returned.
    """
    data = {}
    for line in (text or "").splitlines():
        for name, label, units in SENSOR_FIELDS:
            parts = label.split(line, maxsplit=1)
            if len(parts) < 2:
                continue
            value = units.sub("", parts[1]).strip()
            data[name] = leading_float(value)
            break
    return data


def adjust_spectrogram(image_bytes, brightness=100, contrast=100, saturation=100):
    """
    Return PNG bytes of the spectrogram with percentage adjustments (100 = unchanged).
    """
    image = Image.open(io.BytesIO(image_bytes)).convert("RGB")
    if brightness != 100:
        image = ImageEnhance.Brightness(image).enhance(brightness / 100)
    if contrast != 100:
        image = ImageEnhance.Contrast(image).enhance(contrast / 100)
    if saturation != 100:
        image = ImageEnhance.Color(image).enhance(saturation / 100)

    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def format_bytes(size) -> str:
    size = size or 0
    if size == 0:
        return "0 B"
    mb = size / 1024 / 1024
    if mb >= 1:
        return f"{mb:.1f} MB"
    return f"{size / 1024:.1f} KB"
