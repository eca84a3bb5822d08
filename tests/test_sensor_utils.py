import io

import pytest
from PIL import Image

from tools.sensor_utils import leading_float, parse_sensor_text, adjust_spectrogram, format_bytes

SENSOR_TXT = """Client1 Temp: 21.5°C
Humidity: 64.2%
Pressure: 1013.25 hPa
Light: 120 lux
"""


def test_leading_float():
    assert leading_float("21.5 extra") == 21.5
    assert leading_float("-3") == -3.0
    assert leading_float("n/a") == 0.0
    assert leading_float(None) == 0.0


def test_parse_sensor_text():
    assert parse_sensor_text(SENSOR_TXT) == {
        "temperature": 21.5, "humidity": 64.2, "pressure": 1013.25, "light_level": 120.0,
    }


def test_parse_sensor_text_partial():
    assert parse_sensor_text("Temperature: 18 C\nnoise line") == {"temperature": 18.0}
    assert parse_sensor_text("") == {}


def _png(color=(100, 50, 200)):
    buffer = io.BytesIO()
    Image.new("RGB", (4, 4), color).save(buffer, format="PNG")
    return buffer.getvalue()


def test_adjust_spectrogram_unchanged_at_100():
    out = Image.open(io.BytesIO(adjust_spectrogram(_png())))
    assert out.format == "PNG"
    assert out.getpixel((0, 0)) == (100, 50, 200)


def test_adjust_spectrogram_brightness_and_saturation():
    darker = Image.open(io.BytesIO(adjust_spectrogram(_png(), brightness=50)))
    assert darker.getpixel((0, 0)) == (50, 25, 100)
    grey = Image.open(io.BytesIO(adjust_spectrogram(_png(), saturation=0)))
    r, g, b = grey.getpixel((0, 0))
    assert r == g == b


@pytest.mark.parametrize("size, expected", [
    (0, "0 B"), (None, "0 B"), (512, "0.5 KB"), (1536, "1.5 KB"), (5 * 1024 * 1024, "5.0 MB"),
])
def test_format_bytes(size, expected):
    assert format_bytes(size) == expected
