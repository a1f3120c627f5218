"""
Static reference data: FIR and TRACON boundaries, airport coordinates and
the fleet registry.

Files live under REFERENCE_DATA_DIR:
- firs.geojson: FeatureCollection, properties {id, callsign_prefix}
- tracons.geojson: FeatureCollection, properties {id, prefix (str or list)}
- airports.geojson: FeatureCollection of Points, properties {icao}
- fleet.json: list of {registration, ...}

A top-level "version" key marks a dataset version; without one the file's
modification time is used. Files are re-read only when that marker changes.
"""

import os
import json
import logging
import threading
from typing import Any, Dict, Iterable, List, Optional, Tuple

logger = logging.getLogger(__name__)

REFERENCE_DATA_DIR = os.getenv("REFERENCE_DATA_DIR", "/app/static")

DATASET_FILES = {
    "fir": "firs.geojson",
    "tracon": "tracons.geojson",
    "airports": "airports.geojson",
    "fleet": "fleet.json",
}


class ReferenceDataStore:
    """File-backed reference data with version-checked reloads."""

    def __init__(self, data_dir: str = REFERENCE_DATA_DIR):
        self.data_dir = data_dir
        self._lock = threading.RLock()
        self._loaded: Dict[str, Tuple[float, Any]] = {}
        self._airports: Dict[str, Tuple[float, float]] = {}
        self._airports_mtime: Optional[float] = None
        self._fleet: Dict[str, str] = {}
        self._fleet_mtime: Optional[float] = None

    def _path(self, kind: str) -> str:
        return os.path.join(self.data_dir, DATASET_FILES[kind])

    def _load(self, kind: str) -> Optional[Tuple[float, Any]]:
        """(mtime, parsed JSON) for a dataset, re-reading only when the file changed."""
        path = self._path(kind)
        try:
            mtime = os.path.getmtime(path)
        except OSError:
            logger.warning(f"Reference file missing: {path}")
            return None

        with self._lock:
            cached = self._loaded.get(kind)
            if cached is not None and cached[0] == mtime:
                return cached

            try:
                with open(path) as f:
                    data = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                logger.error(f"Failed to load reference file {path}: {e}")
                return cached

            self._loaded[kind] = (mtime, data)
            logger.info(f"Loaded reference data {kind} from {path}")
            return self._loaded[kind]

    def get_version(self, kind: str) -> Optional[str]:
        """Version marker of a dataset, or None when it is unavailable."""
        loaded = self._load(kind)
        if loaded is None:
            return None
        mtime, data = loaded
        if isinstance(data, dict) and data.get("version") is not None:
            return str(data["version"])
        return str(mtime)

    def get_features(self, kind: str) -> Optional[List[dict]]:
        loaded = self._load(kind)
        if loaded is None:
            return None
        data = loaded[1]
        if not isinstance(data, dict):
            return None
        return data.get("features", [])

    def get_airports(self, icaos: Iterable[str]) -> Dict[str, Tuple[float, float]]:
        """Batched coordinate lookup. Unknown codes are simply absent from the result."""
        loaded = self._load("airports")
        if loaded is None:
            return {}

        mtime, data = loaded
        with self._lock:
            if self._airports_mtime != mtime:
                index = {}
                for feature in data.get("features", []):
                    props = feature.get("properties", {})
                    code = props.get("icao") or props.get("code")
                    coords = (feature.get("geometry") or {}).get("coordinates")
                    if code and coords:
                        lon, lat = coords[0], coords[1]
                        index[code] = (lat, lon)
                self._airports = index
                self._airports_mtime = mtime

            return {icao: self._airports[icao] for icao in icaos if icao in self._airports}

    def lookup_registration(self, registration: str) -> Optional[str]:
        """Registered spelling of an aircraft registration, or None."""
        loaded = self._load("fleet")
        if loaded is None:
            return None

        mtime, data = loaded
        with self._lock:
            if self._fleet_mtime != mtime:
                entries = data.get("aircraft", []) if isinstance(data, dict) else data
                self._fleet = {
                    entry["registration"].upper(): entry["registration"]
                    for entry in entries
                    if entry.get("registration")
                }
                self._fleet_mtime = mtime

            return self._fleet.get(registration.upper())
