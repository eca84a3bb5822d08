import io

import pandas as pd
import pytest

from core.records import (
    scheduled_record_rows, filter_rows, sort_rows, next_sort, paginate, records_to_csv,
    status_badge_color, can_transmit, species_badges, filter_folders, DEFAULT_STATUS_COLOR,
)

RECORDS = {
    "2025-12-23T16:56:00": {"duration_sec": 600, "status": "ready_to_transmit"},
    "2025-12-24T08:00:00": {"duration_sec": 90, "status": "scheduled"},
    "_lock": True,
    "2025-12-22T21:30:00": {"duration_sec": 1800, "status": "completed"},
}


def test_rows_newest_first_without_markers():
    rows = scheduled_record_rows(RECORDS)
    assert [r["schedule_key"] for r in rows] == [
        "2025-12-24T08:00:00", "2025-12-23T16:56:00", "2025-12-22T21:30:00"
    ]
    assert rows[0] == {
        "schedule_key": "2025-12-24T08:00:00", "date": "2025-12-24", "time": "08:00",
        "duration_min": 1, "status": "scheduled",
    }


def test_rows_of_empty_records():
    assert scheduled_record_rows(None) == []


def test_filter_rows_searches_every_column():
    rows = scheduled_record_rows(RECORDS)
    assert [r["status"] for r in filter_rows(rows, "READY")] == ["ready_to_transmit"]
    assert [r["duration_min"] for r in filter_rows(rows, "30")] == [30]
    assert [r["time"] for r in filter_rows(rows, "21:30")] == ["21:30"]
    assert filter_rows(rows, "  ") == rows


def test_sort_rows():
    rows = scheduled_record_rows(RECORDS)
    assert [r["duration_min"] for r in sort_rows(rows, "duration_min")] == [1, 10, 30]
    assert [r["status"] for r in sort_rows(rows, "status", "desc")][0] == "scheduled"
    assert sort_rows(rows) == rows


def test_next_sort_toggles_direction():
    assert next_sort(None, "asc", "date") == ("date", "asc")
    assert next_sort("date", "asc", "date") == ("date", "desc")
    assert next_sort("date", "desc", "date") == ("date", "asc")
    assert next_sort("date", "asc", "status") == ("status", "asc")


@pytest.mark.parametrize("page, expected_items, expected_pages", [
    (0, [1, 2, 3, 4, 5], 3),
    (2, [11, 12], 3),
    (7, [11, 12], 3),
    (-1, [1, 2, 3, 4, 5], 3),
])
def test_paginate(page, expected_items, expected_pages):
    assert paginate(range(1, 13), page, 5) == (expected_items, expected_pages)


def test_paginate_empty():
    assert paginate([], 0, 5) == ([], 1)


def test_records_to_csv():
    data = records_to_csv(scheduled_record_rows(RECORDS))
    assert data.startswith(b"\xef\xbb\xbf")
    frame = pd.read_csv(io.BytesIO(data), encoding="utf-8-sig")
    assert list(frame.columns) == ["Schedule ID", "Date", "Time", "Duration (min)", "Status"]
    assert len(frame) == 3


def test_status_badge_color():
    assert status_badge_color("completed") == "#a855f7"
    assert status_badge_color("pending") == DEFAULT_STATUS_COLOR


def test_can_transmit():
    assert can_transmit("ready_to_transmit") is True
    assert can_transmit("ready_to_transmit", disabled=True) is False
    assert can_transmit("ready_to_transmit", standalone=True) is False
    assert can_transmit("ready_to_upload", standalone=True) is True


def test_species_badges_counts_remaining():
    audio = {"top_species": [{"species": f"s{i}", "confidence": 1} for i in range(7)], "species_count": 9}
    top, remaining = species_badges(audio)
    assert [s["species"] for s in top] == ["s0", "s1", "s2", "s3", "s4"]
    assert remaining == 4
    assert species_badges({"top_species": [{"species": "a"}]}) == ([{"species": "a"}], 0)


def test_filter_folders():
    folders = [
        {"name": "SERVER1_CLIENT2_23122025_1656", "server_num": "1", "client_num": "2"},
        {"name": "SERVER3_CLIENT4_01012026_0000", "server_num": "3", "client_num": "4"},
    ]
    assert len(filter_folders(folders, "")) == 2
    assert [f["server_num"] for f in filter_folders(folders, "client4")] == ["3"]
    assert [f["server_num"] for f in filter_folders(folders, "2")] == ["1", "3"]
