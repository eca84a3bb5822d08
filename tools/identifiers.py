"""
identifiers.py — Unit ID and Folder Name Helpers
------------------------------------------------

Units are stored as "server1", "client2", "standalone3" but arrive from the UI
and the backend in several shapes ("Server 1", "1", "SERVER1_CLIENT1_..."). These
helpers normalize them and pull timestamps and bat numbers out of folder and file names.

Author: Matt Scardino
Project: Bat Monitoring Dashboard
"""

import re

UNIT_PREFIXES = ("server", "client", "standalone")


def extract_unit_num(value) -> str:
    """
    Return the first run of digits in a unit reference, "1" when there is none.
    "server1" -> "1", "Client 12" -> "12", "" -> "1"
    """
    if not value:
        return "1"
    match = re.search(r"(\d+)", str(value))
    return match.group(1) if match else "1"


def normalize_server_id(value) -> str:
    return f"server{extract_unit_num(value)}"


def normalize_client_id(value) -> str:
    return f"client{extract_unit_num(value)}"


def normalize_standalone_id(value) -> str:
    return f"standalone{extract_unit_num(value)}"


def display_name(unit_id: str) -> str:
    """
    "server1" -> "Server 1". Unknown shapes are returned unchanged.
    """
    match = re.fullmatch(r"([a-z]+?)(\d+)", unit_id or "")
    if not match:
        return unit_id
    return f"{match.group(1).capitalize()} {match.group(2)}"


def unit_sort_key(unit_id: str):
    """
    Sort units numerically ("server2" before "server10"); ids without digits go last.
    """
    match = re.search(r"(\d+)", unit_id or "")
    return (0, int(match.group(1))) if match else (1, unit_id)


def available_unit_numbers(existing_ids, limit: int):
    """
    Unit numbers 1..limit not already taken by one of `existing_ids`.
    """
    taken = set()
    for unit_id in existing_ids:
        match = re.search(r"(\d+)", unit_id or "")
        if match:
            taken.add(int(match.group(1)))
    return [n for n in range(1, limit + 1) if n not in taken]


def extract_timestamp(folder_name: str) -> str:
    """
    Client folders: "server1_client1_23122025_1656" -> "23122025_1656"
    """
    parts = (folder_name or "").lower().split("_")
    return "_".join(parts[2:])


def extract_standalone_timestamp(folder_name: str) -> str:
    """
    Standalone folders: "standalone1_23122025_1656" -> "23122025_1656"
    """
    parts = (folder_name or "").lower().split("_")
    return "_".join(parts[1:])


def bat_number_from_file(file_name: str) -> str:
    """
    "bat_1014.wav" -> "1014"; anything else keeps its name minus ".wav".
    """
    match = re.search(r"bat_(\d+)", file_name or "", re.IGNORECASE)
    if match:
        return match.group(1)
    return (file_name or "").replace(".wav", "")


def bat_number_from_id(bat_id: str) -> str:
    """
    Storage key for a bat id: "bat_1014.wav" -> "1014", "1014" -> "1014".
    """
    return (bat_id or "").replace(".wav", "").replace("bat_", "")


def parse_folder_date(timestamp: str):
    """
    Split "23122025_1656" into ("23/12/2025", "16:56"). Returns (None, None) when unparsable.
    """
    match = re.fullmatch(r"(\d{2})(\d{2})(\d{4})_(\d{2})(\d{2})", timestamp or "")
    if not match:
        return None, None
    day, month, year, hour, minute = match.groups()
    return f"{day}/{month}/{year}", f"{hour}:{minute}"
