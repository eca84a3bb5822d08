"""
predictions.py — Species Prediction Cache & Folder Prediction Service
----------------------------------------------------------------------

This module stores the backend's species predictions and drives the per-folder
prediction loop shared by every view that shows a recording folder.

Storage shape (per owner):
- folder rows: folder timestamp -> bat number -> rank -> (species, confidence)
- legacy rows: bat id -> single (species, confidence, date, frequency)

Folder workflow:
1. `load_folder_audio` merges cached predictions with the backend's file listing
2. `run_sequential_predictions` predicts the uncached files one at a time
3. Each successful prediction is written back so the next load is served from cache

The loop can be cancelled between files through a `threading.Event`, which the
pages set when a folder is closed or the user switches page;
`PredictionJob` runs it on a background thread so the Streamlit page can keep
rerunning while results arrive.

Dependencies:
- SQLAlchemy ORM
- requests (through tools.api_client)

Author: Matt Scardino
Project: Bat Monitoring Dashboard
"""

import re
import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Callable, List, Optional
from db.db import session_scope, SessionLocal
from db.device_model import Client, Standalone
from db.prediction_model import Prediction
from tools.identifiers import (
    extract_unit_num, normalize_server_id, normalize_client_id, normalize_standalone_id,
    extract_timestamp, extract_standalone_timestamp, bat_number_from_file, bat_number_from_id
)

logger = logging.getLogger("predictions")

WAITING = "Waiting"
PROCESSING = "Processing..."
REPREDICTING = "Re-predicting..."
ERROR = "Error"


# --- Owner Resolution ---

def _client_pk(session, server_id, client_id):
    client = (
        session.query(Client)
        .filter_by(server_id=normalize_server_id(server_id), client_id=normalize_client_id(client_id))
        .first()
    )
    return client.client_pk if client else None


def _owner_filter(session, server_id=None, client_id=None, standalone_id=None):
    """
    Column filter for one owner, or None when the owner does not exist.
    """
    if standalone_id:
        unit_id = normalize_standalone_id(standalone_id)
        if session.get(Standalone, unit_id) is None:
            return None
        return {"standalone_id": unit_id}
    pk = _client_pk(session, server_id, client_id)
    return {"client_pk": pk} if pk else None


def _valid_species(all_species):
    """
    Keep entries with a species name and a numeric confidence, paired with their original index.
    """
    ranked = []
    for index, sp in enumerate(all_species or []):
        if not isinstance(sp, dict):
            continue
        confidence = sp.get("confidence")
        if sp.get("species") and isinstance(confidence, (int, float)) and not isinstance(confidence, bool):
            ranked.append((index, sp["species"], float(confidence)))
    return ranked


def _summary(rows):
    """
    {species, confidence, all_species} from rank-ordered rows.
    """
    all_species = [{"species": r.species, "confidence": r.confidence} for r in rows]
    return {
        "species": all_species[0]["species"] if all_species else "Unknown",
        "confidence": all_species[0]["confidence"] if all_species else 0,
        "all_species": all_species,
    }


# --- Save ---

def _save(owner_label, bat_id, species, confidence, date, frequency, all_species, folder_timestamp, **owner):
    if not bat_id or not all(owner.values()):
        logger.error(f"Missing required parameters for prediction save: {owner_label} bat={bat_id}")
        return False

    with session_scope() as session:
        owner_filter = _owner_filter(session, **owner)
        if owner_filter is None:
            logger.error(f"Cannot save prediction, unknown unit {owner_label}")
            return False

        if folder_timestamp and all_species:
            bat_number = bat_number_from_id(bat_id)
            if not bat_number:
                logger.error(f"Could not extract bat number from {bat_id}")
                return False

            ranked = _valid_species(all_species)
            if not ranked:
                logger.warning(f"No valid species data to save for {owner_label} {folder_timestamp}/{bat_number}")
                return False

            session.query(Prediction).filter_by(
                folder_timestamp=folder_timestamp, bat_number=bat_number, **owner_filter
            ).delete(synchronize_session=False)
            for rank, name, conf in ranked:
                session.add(Prediction(
                    folder_timestamp=folder_timestamp, bat_number=bat_number,
                    rank=rank, species=name, confidence=conf, **owner_filter
                ))
            logger.info(f"Saved {len(ranked)} species for {owner_label} {folder_timestamp}/{bat_number}")
            return True

        if species and isinstance(confidence, (int, float)):
            session.query(Prediction).filter(
                Prediction.folder_timestamp.is_(None), Prediction.bat_number == bat_id
            ).filter_by(**owner_filter).delete(synchronize_session=False)
            session.add(Prediction(
                bat_number=bat_id, rank=0, species=species, confidence=float(confidence),
                prediction_date=date or None, frequency=str(frequency) if frequency else None,
                **owner_filter
            ))
            logger.info(f"Saved single prediction for {owner_label} {bat_id}")
            return True

    logger.warning(f"No prediction data to save for {owner_label} {bat_id}")
    return False


def save_prediction(server_id, client_id, bat_id, species=None, confidence=None, date=None,
                    frequency=None, all_species=None, folder_timestamp=None):
    """
    Store a client prediction. With a folder timestamp and a species list the ranked
    list replaces the file's previous result; otherwise a single legacy row is written.
    Returns True when something was written.
    """
    return _save(f"{server_id}/{client_id}", bat_id, species, confidence, date, frequency,
                 all_species, folder_timestamp, server_id=server_id, client_id=client_id)


def save_standalone_prediction(standalone_id, bat_id, species=None, confidence=None, date=None,
                               frequency=None, all_species=None, folder_timestamp=None):
    return _save(standalone_id, bat_id, species, confidence, date, frequency,
                 all_species, folder_timestamp, standalone_id=standalone_id)


# --- Read ---

def _folder_predictions(folder_timestamp, **owner):
    with SessionLocal() as session:
        owner_filter = _owner_filter(session, **owner)
        if owner_filter is None:
            return {}
        rows = (
            session.query(Prediction)
            .filter_by(folder_timestamp=folder_timestamp, **owner_filter)
            .order_by(Prediction.bat_number, Prediction.rank)
            .all()
        )

    grouped = {}
    for row in rows:
        grouped.setdefault(row.bat_number, []).append(row)
    predictions = {f"bat_{bat_number}.wav": _summary(bat_rows) for bat_number, bat_rows in grouped.items()}
    logger.info(f"Loaded {len(predictions)} predictions for {folder_timestamp}")
    return predictions


def get_folder_predictions(server_id, client_id, folder_timestamp):
    """
    Cached predictions of one client folder, keyed by file name ("bat_1014.wav").
    """
    return _folder_predictions(folder_timestamp, server_id=server_id, client_id=client_id)


def get_standalone_folder_predictions(standalone_id, folder_timestamp):
    return _folder_predictions(folder_timestamp, standalone_id=standalone_id)


def get_prediction(server_id, client_id, bat_id, folder_name=None):
    """
    One file's prediction. `folder_name` may be a full folder name or just its timestamp;
    without it the legacy row for `bat_id` is returned. None when nothing is stored.
    """
    with SessionLocal() as session:
        owner_filter = _owner_filter(session, server_id=server_id, client_id=client_id)
        if owner_filter is None:
            return None
        query = session.query(Prediction).filter_by(**owner_filter)
        if folder_name:
            timestamp = extract_timestamp(folder_name) if folder_name.lower().startswith("server") else folder_name
            query = query.filter_by(folder_timestamp=timestamp, bat_number=bat_number_from_id(bat_id))
        else:
            query = query.filter(Prediction.folder_timestamp.is_(None), Prediction.bat_number == bat_id)
        rows = query.order_by(Prediction.rank).all()

    return _summary(rows) if rows else None


def _prediction_index(**owner):
    with SessionLocal() as session:
        owner_filter = _owner_filter(session, **owner)
        if owner_filter is None:
            return {}
        rows = (
            session.query(Prediction)
            .filter_by(**owner_filter)
            .order_by(Prediction.folder_timestamp, Prediction.bat_number, Prediction.rank)
            .all()
        )

    grouped = {}
    for row in rows:
        grouped.setdefault((row.folder_timestamp, row.bat_number), []).append(row)

    index = {}
    for (folder_timestamp, bat_number), bat_rows in grouped.items():
        summary = _summary(bat_rows)
        if folder_timestamp is None:
            index[f"{bat_number}.wav"] = summary
            index[bat_number] = summary
        else:
            index[f"bat_{bat_number}.wav"] = summary
            index[f"bat_{bat_number}"] = summary
            index[bat_number] = summary
    return index


def get_prediction_index(server_id, client_id):
    """
    Every prediction of a client flattened for quick lookup by "bat_N.wav", "bat_N" or "N".
    Legacy rows are keyed by "{id}.wav" and "{id}".
    """
    return _prediction_index(server_id=server_id, client_id=client_id)


def get_standalone_prediction_index(standalone_id):
    return _prediction_index(standalone_id=standalone_id)


# --- Cleanup ---

INVALID_KEYS = ("undefined", "null", "")
BAT_TIMESTAMP_KEY = re.compile(r"^\d{8}_\d{4}_\d+$")
BARE_NUMBER_KEY = re.compile(r"^\d+_\d+$|^\d+$")
FOLDER_TIMESTAMP = re.compile(r"^\d{8}_\d{4}$")


def is_invalid_folder_key(key) -> bool:
    if key in INVALID_KEYS or BAT_TIMESTAMP_KEY.match(key):
        return True
    if FOLDER_TIMESTAMP.match(key):
        return False
    return bool(BARE_NUMBER_KEY.match(key))


def is_invalid_legacy_key(key) -> bool:
    if key in INVALID_KEYS or BAT_TIMESTAMP_KEY.match(key):
        return True
    if key.startswith("server") or key.startswith("bat_"):
        return False
    return bool(BARE_NUMBER_KEY.match(key))


def cleanup_invalid_predictions(server_id, client_id):
    """
    Remove predictions stored under malformed keys ("undefined", "null",
    "23122025_1656_1034" style bat-in-folder keys, bare numeric legacy ids).
    Valid folder timestamps ("23122025_1656") are kept. Returns the removed keys.
    """
    removed = set()
    with session_scope() as session:
        owner_filter = _owner_filter(session, server_id=server_id, client_id=client_id)
        if owner_filter is None:
            logger.info(f"No predictions to clean up for {server_id}/{client_id}")
            return []
        for row in session.query(Prediction).filter_by(**owner_filter).all():
            if row.folder_timestamp is None:
                invalid = is_invalid_legacy_key(row.bat_number)
                key = row.bat_number
            else:
                invalid = is_invalid_folder_key(row.folder_timestamp)
                key = row.folder_timestamp
            if invalid:
                removed.add(key)
                session.delete(row)

    if removed:
        logger.info(f"Cleaned up {len(removed)} invalid prediction keys for {server_id}/{client_id}: {sorted(removed)}")
    else:
        logger.info(f"No invalid predictions found for {server_id}/{client_id}")
    return sorted(removed)


# --- Folder Targets ---

@dataclass(frozen=True)
class ClientFolder:
    """
    A client's recordings: folders named "server{n}_client{m}_{timestamp}".
    """
    server_id: str
    client_id: str
    standalone = False

    @property
    def server_num(self):
        return extract_unit_num(self.server_id)

    @property
    def client_num(self):
        return extract_unit_num(self.client_id)

    @property
    def label(self):
        return f"{normalize_server_id(self.server_id)}/{normalize_client_id(self.client_id)}"

    def timestamp(self, folder_name):
        return extract_timestamp(folder_name)

    def payload(self, timestamp):
        return {"server_num": self.server_num, "client_num": self.client_num, "folder_timestamp": timestamp}

    def cached_predictions(self, timestamp):
        return get_folder_predictions(self.server_id, self.client_id, timestamp)

    def save(self, bat_number, species, timestamp, frequency=""):
        return save_prediction(
            self.server_id, self.client_id, bat_number, species[0]["species"], species[0]["confidence"],
            datetime.now().isoformat(), frequency, species, timestamp
        )


@dataclass(frozen=True)
class StandaloneFolder:
    """
    A standalone's recordings: folders named "standalone{n}_{timestamp}".
    """
    standalone_id: str
    standalone = True

    @property
    def standalone_num(self):
        return extract_unit_num(self.standalone_id)

    @property
    def label(self):
        return normalize_standalone_id(self.standalone_id)

    def timestamp(self, folder_name):
        return extract_standalone_timestamp(folder_name)

    def payload(self, timestamp):
        return {"standalone_num": self.standalone_num, "folder_timestamp": timestamp}

    def cached_predictions(self, timestamp):
        return get_standalone_folder_predictions(self.standalone_id, timestamp)

    def save(self, bat_number, species, timestamp, frequency=""):
        return save_standalone_prediction(
            self.standalone_id, bat_number, species[0]["species"], species[0]["confidence"],
            datetime.now().isoformat(), frequency, species, timestamp
        )


@dataclass
class FolderAudioEntry:
    file_id: str
    file_name: str
    size: int = 0
    species: list = field(default_factory=list)
    predicted_species: str = WAITING
    confidence: float = 0
    processing: bool = False
    from_cache: bool = False
    needs_prediction: bool = True
    error: Optional[str] = None


@dataclass
class LoadedFolder:
    timestamp: str
    entries: List[FolderAudioEntry]
    unit_nums: dict


# --- Folder Service ---

def load_folder_audio(target, folder_name, api) -> LoadedFolder:
    """
    List a folder's audio files and attach cached predictions.
    Cached files are ready immediately; the rest are marked "Waiting".
    Raises `requests.HTTPError` when the backend listing fails.
    """
    timestamp = target.timestamp(folder_name)
    logger.info(f"Loading folder {folder_name} for {target.label} (timestamp {timestamp})")

    cached = {}
    try:
        cached = target.cached_predictions(timestamp)
    except Exception as e:
        logger.warning(f"Could not load cached predictions for {folder_name}: {e}")

    data = api.list_folder_files(target.payload(timestamp), standalone=target.standalone)

    entries = []
    for file in data.get("files") or []:
        existing = cached.get(file.get("file_name"))
        if existing and existing.get("all_species"):
            all_species = existing["all_species"]
            entries.append(FolderAudioEntry(
                file_id=file.get("file_id"),
                file_name=file.get("file_name"),
                size=file.get("size") or 0,
                species=all_species,
                predicted_species=existing.get("species") or all_species[0].get("species") or "Unknown",
                confidence=existing.get("confidence") or all_species[0].get("confidence") or 0,
                from_cache=True,
                needs_prediction=False,
            ))
        else:
            entries.append(FolderAudioEntry(
                file_id=file.get("file_id"),
                file_name=file.get("file_name"),
                size=file.get("size") or 0,
            ))

    cached_count = sum(1 for e in entries if e.from_cache)
    logger.info(f"Loaded {len(entries)} files ({cached_count} cached, {len(entries) - cached_count} waiting)")
    unit_nums = {k: v for k, v in target.payload(timestamp).items() if k != "folder_timestamp"}
    return LoadedFolder(timestamp=timestamp, entries=entries, unit_nums=unit_nums)


def predict_audio(target, audio: FolderAudioEntry, timestamp, api) -> FolderAudioEntry:
    """
    Predict one file and cache the ranked species list. A failed cache write is only logged.
    Raises `requests.HTTPError` when the backend rejects the request.
    """
    logger.info(f"Predicting {audio.file_name} for {target.label} ({timestamp})")
    payload = dict(target.payload(timestamp), file_id=audio.file_id, file_name=audio.file_name)
    result = api.predict_folder_audio(payload, standalone=target.standalone)

    raw_species = result.get("species") or []
    species = [{"species": name, "confidence": confidence} for _, name, confidence in _valid_species(raw_species)]
    succeeded = bool(result.get("success")) and len(species) > 0

    if succeeded:
        bat_number = bat_number_from_file(audio.file_name)
        frequency = (result.get("call_parameters") or {}).get("peak_freq") or ""
        try:
            target.save(bat_number, species, timestamp, frequency)
        except Exception as e:
            logger.error(f"Saving prediction for {audio.file_name} failed: {e}")
        error = None
    elif result.get("success"):
        logger.warning(f"No valid species data for {audio.file_name}")
        error = "No valid species data"
    else:
        error = result.get("message") or "Prediction failed"

    return FolderAudioEntry(
        file_id=audio.file_id,
        file_name=audio.file_name,
        size=audio.size,
        species=species,
        predicted_species=species[0]["species"] if succeeded else ERROR,
        confidence=species[0]["confidence"] if succeeded else 0,
        processing=False,
        from_cache=False,
        needs_prediction=False,
        error=error,
    )


def needs_prediction_run(entries) -> bool:
    """
    False while a file is processing or when every file already has a result.
    """
    if any(e.processing for e in entries):
        return False
    return any(e.needs_prediction for e in entries)


def run_sequential_predictions(entries, predict: Callable, cancel_event: Optional[threading.Event] = None,
                               on_update: Optional[Callable] = None):
    """
    Predict every entry that needs it, strictly one at a time.

    `predict(entry)` returns the finished entry. `on_update(entries)` is called with
    a fresh list after each state change. Setting `cancel_event` stops the loop before
    the next file; a request already in flight is allowed to finish.
    """
    entries = list(entries)

    def publish():
        if on_update:
            on_update(list(entries))

    for index, entry in enumerate(list(entries)):
        if not entry.needs_prediction:
            continue
        if cancel_event is not None and cancel_event.is_set():
            logger.info("Prediction loop cancelled")
            break

        entries[index] = replace(entry, processing=True, predicted_species=PROCESSING)
        publish()

        try:
            entries[index] = predict(entry)
        except Exception as e:
            logger.error(f"Prediction for {entry.file_name} failed: {e}")
            entries[index] = replace(
                entry, processing=False, needs_prediction=False, predicted_species=ERROR, error=str(e)
            )
        publish()

    return entries


def repredict(target, entries, file_id, timestamp, api, on_update=None):
    """
    Run one file through the backend again, replacing its cached result.
    """
    entries = list(entries)
    for index, entry in enumerate(entries):
        if entry.file_id != file_id:
            continue
        entries[index] = replace(entry, processing=True, predicted_species=REPREDICTING)
        if on_update:
            on_update(list(entries))
        try:
            entries[index] = predict_audio(target, entry, timestamp, api)
        except Exception as e:
            logger.error(f"Re-prediction for {entry.file_name} failed: {e}")
            entries[index] = replace(entry, processing=False, predicted_species=ERROR, error=str(e))
        break
    return entries


class PredictionJob:
    """
    Background thread running `run_sequential_predictions` for one folder.
    The page reads `entries` on each rerun; `cancel()` stops before the next file.
    """

    def __init__(self, target, loaded: LoadedFolder, api, owner=None):
        self.target = target
        self.timestamp = loaded.timestamp
        self.owner = owner
        self.api = api
        self.cancel_event = threading.Event()
        self._lock = threading.Lock()
        self._entries = list(loaded.entries)
        self._thread = None

    @property
    def entries(self):
        with self._lock:
            return list(self._entries)

    @property
    def running(self):
        return self._thread is not None and self._thread.is_alive()

    def _publish(self, entries):
        with self._lock:
            self._entries = entries

    def _run(self):
        run_sequential_predictions(
            self.entries,
            lambda entry: predict_audio(self.target, entry, self.timestamp, self.api),
            self.cancel_event,
            self._publish,
        )

    def start(self):
        if self.running or not needs_prediction_run(self.entries):
            return False
        self.cancel_event.clear()
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()
        return True

    def cancel(self):
        self.cancel_event.set()

    def repredict(self, file_id):
        if self.running:
            return False
        self._publish(repredict(self.target, self.entries, file_id, self.timestamp, self.api))
        return True


def folder_job_key(target, folder_name):
    return f"{target.label}:{folder_name}"


def open_folder_job(jobs, failures, target, folder_name, api, owner=None):
    """
    The prediction job of an opened folder, created and started on first open.

    A folder whose listing failed is remembered in `failures` and not requested
    again until that entry is cleared (Retry, or closing the folder).
    """
    key = folder_job_key(target, folder_name)
    if key in jobs:
        return jobs[key]
    if key in failures:
        return None
    try:
        loaded = load_folder_audio(target, folder_name, api)
    except Exception as e:
        logger.error(f"Loading folder {folder_name} failed: {e}")
        failures[key] = str(e)
        return None
    job = jobs[key] = PredictionJob(target, loaded, api, owner)
    job.start()
    return job


def close_folder_job(jobs, failures, target, folder_name):
    """
    Stop the prediction loop of a folder the user has closed.
    """
    key = folder_job_key(target, folder_name)
    failures.pop(key, None)
    job = jobs.get(key)
    if job is not None and job.running:
        logger.info(f"Folder {key} closed, stopping predictions")
        job.cancel()


def cancel_jobs(jobs, keep_owner=None):
    """
    Cancel every job not owned by `keep_owner`. Returns the keys of jobs that were running.
    """
    stopped = []
    for key, job in jobs.items():
        if job.owner == keep_owner:
            continue
        if job.running:
            stopped.append(key)
        job.cancel()
    if stopped:
        logger.info(f"Stopped predictions for {', '.join(stopped)}")
    return stopped
