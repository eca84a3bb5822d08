"""
records.py — Scheduled Recording Tables
---------------------------------------

Table helpers shared by the client card, the standalone card and the
full-page scheduled recordings view: row building, search, sort,
pagination, status badge colors and CSV export.

Dependencies:
- pandas for CSV export

Author: Matt Scardino
Project: Bat Monitoring Dashboard
"""

import math
import pandas as pd

CSV_COLUMNS = {
    "schedule_key": "Schedule ID",
    "date": "Date",
    "time": "Time",
    "duration_min": "Duration (min)",
    "status": "Status",
}

STATUS_COLORS = {
    "scheduled": "#eab308",
    "recording": "#3b82f6",
    "ready_to_transmit": "#22c55e",
    "ready_to_upload": "#22c55e",
    "transmitting": "#f97316",
    "uploading": "#f97316",
    "completed": "#a855f7",
}
DEFAULT_STATUS_COLOR = "#6b7280"


def scheduled_record_rows(records):
    """
    Flatten a {schedule_key: record} mapping into table rows, newest first.
    Keys starting with "_" are markers, not records.
    """
    rows = []
    for key, record in (records or {}).items():
        if key.startswith("_") or not isinstance(record, dict):
            continue
        date_part, _, time_part = key.partition("T")
        rows.append({
            "schedule_key": key,
            "date": date_part,
            "time": time_part[:5],
            "duration_min": int((record.get("duration_sec") or 0) // 60),
            "status": record.get("status") or "unknown",
        })
    return sorted(rows, key=lambda r: r["schedule_key"], reverse=True)


def filter_rows(rows, query):
    """
    Case-insensitive substring search over every visible column.
    """
    q = (query or "").strip().lower()
    if not q:
        return list(rows)
    return [
        row for row in rows
        if q in row["schedule_key"].lower()
        or q in row["date"].lower()
        or q in row["time"].lower()
        or q in str(row["duration_min"])
        or q in row["status"].lower()
    ]


def sort_rows(rows, key=None, direction="asc"):
    if not key:
        return list(rows)
    return sorted(rows, key=lambda r: r[key], reverse=(direction == "desc"))


def next_sort(current_key, current_direction, clicked_key):
    """
    Clicking the active ascending column flips it to descending; anything else sorts ascending.
    """
    if current_key == clicked_key and current_direction == "asc":
        return clicked_key, "desc"
    return clicked_key, "asc"


def paginate(items, page, size):
    """
    Return (items on page, total pages). `page` is zero-based and clamped into range.
    """
    items = list(items)
    total_pages = max(1, math.ceil(len(items) / size)) if size > 0 else 1
    page = min(max(page, 0), total_pages - 1)
    start = page * size
    return items[start:start + size], total_pages


def records_to_csv(rows) -> bytes:
    """
    CSV bytes with a UTF-8 BOM so spreadsheet tools detect the encoding.
    """
    frame = pd.DataFrame(list(rows), columns=list(CSV_COLUMNS))
    frame = frame.rename(columns=CSV_COLUMNS)
    return frame.to_csv(index=False).encode("utf-8-sig")


def status_badge_color(status) -> str:
    return STATUS_COLORS.get(status, DEFAULT_STATUS_COLOR)


def can_transmit(status, standalone=False, disabled=False) -> bool:
    """
    Transmit (client) or Upload (standalone) is offered only for a finished recording.
    """
    ready = "ready_to_upload" if standalone else "ready_to_transmit"
    return status == ready and not disabled


def species_badges(audio_result, limit=5):
    """
    The first `limit` species of one batch result and how many more were detected.
    """
    top = list(audio_result.get("top_species") or audio_result.get("all_species") or [])[:limit]
    count = audio_result.get("species_count") or len(top)
    return top, max(0, count - limit)


def filter_folders(folders, query):
    """
    Batch folder search over folder name, server number and client number.
    """
    q = (query or "").strip().lower()
    if not q:
        return list(folders)
    return [
        f for f in folders
        if q in (f.get("name") or "").lower()
        or q in str(f.get("server_num") or "")
        or q in str(f.get("client_num") or "")
    ]
