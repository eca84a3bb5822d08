"""
api_client.py — Prediction Backend REST Client
-----------------------------------------------

Thin wrapper around the external bat-analysis backend. The backend owns the
recordings (spectrograms, camera images, sensor logs, audio), species inference
and call-parameter extraction; this client only moves JSON over HTTP.

Conventions:
- Listing/info calls log failures and return `{"success": False, "message": ...}`
- Bodies that are not JSON objects count as failures (`ValueError`)
- Folder file listing and per-file prediction raise `requests.HTTPError` so the
  prediction loop can mark the individual file as failed

Dependencies:
- requests

Author: Matt Scardino
Project: Bat Monitoring Dashboard
"""

import re
import logging
from urllib.parse import quote
import requests
from config.settings import API_BASE_URL, HEADERS, REQUEST_TIMEOUT, PREDICT_TIMEOUT

logger = logging.getLogger("bat_api")

BAT_FOLDER_PATTERN = re.compile(r"SERVER(\d+)_CLIENT(\d+)_(\d+)")


def failure(message, **extra):
    result = {"success": False, "message": message}
    result.update(extra)
    return result


def json_object(response):
    """
    Decoded response body; raises ValueError unless it is a JSON object.
    """
    data = response.json()
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
    return data


class BatApiClient:
    def __init__(self, base_url=API_BASE_URL, timeout=REQUEST_TIMEOUT, predict_timeout=PREDICT_TIMEOUT):
        self.base_url = base_url.rstrip("/")
        self.api_url = f"{self.base_url}/api"
        self.timeout = timeout
        self.predict_timeout = predict_timeout
        self.headers = dict(HEADERS)

    # --- Internal Helpers ---

    def _get(self, path, params=None, timeout=None):
        response = requests.get(f"{self.api_url}{path}", params=params, headers=self.headers,
                                timeout=timeout or self.timeout)
        response.raise_for_status()
        return response

    def _post(self, path, payload, timeout=None):
        response = requests.post(f"{self.api_url}{path}", json=payload, headers=self.headers,
                                 timeout=timeout or self.timeout)
        response.raise_for_status()
        return response

    # --- Health ---

    def check_health(self) -> bool:
        """
        True only when the backend answers `{"success": true}`.
        """
        try:
            data = json_object(self._get("/health"))
            return data.get("success") is True
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Backend health check failed: {e}")
            return False

    # --- BAT Folders & Files ---

    def list_all_bat_folders(self):
        """
        List raw BAT folders and keep only names shaped like SERVER{n}_CLIENT{n}_{batId}.
        """
        try:
            data = json_object(self._get("/debug/folders"))
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Error fetching BAT folders: {e}")
            return failure(str(e), total_folders=0, folders=[])

        folders = []
        for folder in data.get("folders") or []:
            if not isinstance(folder, dict):
                continue
            match = BAT_FOLDER_PATTERN.search(folder.get("name", ""))
            if not match:
                continue
            folders.append({
                "id": folder.get("id"),
                "name": folder.get("name"),
                "modified_date": folder.get("modifiedDate"),
                "server_num": match.group(1),
                "client_num": match.group(2),
                "bat_id": match.group(3),
            })
        return {"success": bool(data.get("success")), "total_folders": len(folders), "folders": folders}

    def fetch_bat_files(self, bat_id, server_num, client_num):
        """
        File descriptors (spectrogram, camera, sensor, audio, other) for one BAT recording.
        """
        try:
            return json_object(self._get(f"/bat/{bat_id}/files", params={"server": server_num, "client": client_num}))
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Error fetching bat files for {bat_id}: {e}")
            return failure(str(e))

    def file_url(self, file_id, file_name) -> str:
        return f"{self.api_url}/file/{file_id}?name={quote(file_name or '', safe='')}"

    def fetch_file_bytes(self, file_id, file_name):
        """
        Raw bytes of a stored file, or None when it cannot be downloaded.
        """
        try:
            response = requests.get(self.file_url(file_id, file_name), headers=self.headers, timeout=self.timeout)
            response.raise_for_status()
            return response.content
        except requests.RequestException as e:
            logger.error(f"Error downloading {file_name}: {e}")
            return None

    def fetch_file_text(self, file_id, file_name):
        content = self.fetch_file_bytes(file_id, file_name)
        if content is None:
            return None
        return content.decode("utf-8", errors="replace")

    # --- Predictions ---

    def predict_species(self, bat_id, server_num, client_num):
        """
        Predict species for a BAT recording; a leading "BAT" is stripped from the id.
        """
        clean_id = re.sub(r"^BAT", "", str(bat_id), flags=re.IGNORECASE)
        try:
            response = self._get(f"/predict/{clean_id}", params={"server": server_num, "client": client_num},
                                 timeout=self.predict_timeout)
            return json_object(response)
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Error predicting species for {bat_id}: {e}")
            return failure(str(e))

    def species_image_url(self, species_name) -> str:
        return f"{self.api_url}/species-image/{quote(species_name or '', safe='')}"

    def predict_folder_audio(self, payload, standalone=False):
        """
        Predict one audio file inside a recording folder. Raises on non-2xx responses.
        """
        path = "/standalone/audio/predict" if standalone else "/audio/predict"
        return json_object(self._post(path, payload, timeout=self.predict_timeout))

    # --- Folder Listings ---

    def list_folder_files(self, payload, standalone=False):
        """
        Audio files of one recording folder. Raises on non-2xx responses.
        """
        path = "/standalone/folder/files" if standalone else "/folder/files"
        return json_object(self._post(path, payload))

    def list_client_folders(self, server_num, client_num):
        return self._folder_listing(f"/folders/{server_num}/{client_num}")

    def list_standalone_folders(self, standalone_num):
        return self._folder_listing(f"/standalone/folders/{standalone_num}")

    def _folder_listing(self, path):
        """
        Recording folders of one unit, newest first as returned by the backend. Empty on failure.
        """
        try:
            data = json_object(self._get(path))
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Error fetching folders from {path}: {e}")
            return []

        if not data.get("success") or not data.get("folders"):
            logger.warning(f"No folders in response for {path}")
            return []

        return [{
            "id": folder.get("id"),
            "name": folder.get("name"),
            "folder_id": folder.get("folder_id"),
            "timestamp": folder.get("timestamp"),
            "date": folder.get("date"),
            "time": folder.get("time"),
            "file_count": folder.get("file_count") or 0,
            "total_size": folder.get("total_size_formatted") or "0 B",
            "modified_date": folder.get("modified_date"),
        } for folder in data["folders"] if isinstance(folder, dict)]

    # --- Batch Processing ---

    def list_batch_folders(self):
        try:
            return json_object(self._get("/folders/list"))
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Error listing folders: {e}")
            return failure(str(e), total_folders=0, folders=[])

    def batch_process_folder(self, server_num, client_num, folder_timestamp):
        """
        Run the backend over every audio file of a folder in one request.
        """
        payload = {"server_num": server_num, "client_num": client_num, "folder_timestamp": folder_timestamp}
        try:
            return json_object(self._post("/batch/folder", payload, timeout=self.predict_timeout))
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Error in batch folder processing: {e}")
            return failure(str(e), folder_name="", total_files=0, processed=0, results=[])
