"""
Weather text cache.

Downloads the gzipped METAR and TAF XML caches, keeps `station -> raw text`
maps and swaps them in one assignment under a lock. A failed refresh keeps
the previous map.
"""

import os
import io
import gzip
import logging
import threading
import xml.etree.ElementTree as ET
from datetime import datetime, timedelta
from typing import Dict, Optional, Tuple

import requests

from ingestion.httpclient import HTTP_TIMEOUT_SECONDS, fetch
from ingestion.metrics import WEATHER_REFRESHES

logger = logging.getLogger(__name__)

METAR_URL = os.getenv("METAR_URL", "https://aviationweather.gov/data/cache/metars.cache.xml.gz")
TAF_URL = os.getenv("TAF_URL", "https://aviationweather.gov/data/cache/tafs.cache.xml.gz")
WEATHER_REFRESH_SECONDS = int(os.getenv("WEATHER_REFRESH_SECONDS", "600"))


def parse_weather_xml(xml_content: bytes, tag: str) -> Dict[str, str]:
    """Map station_id -> raw_text for every <tag> element (METAR or TAF)."""
    root = ET.fromstring(xml_content)
    reports = {}
    for report in root.findall(f".//{tag}"):
        station = report.findtext("station_id")
        raw_text = report.findtext("raw_text")
        if station and raw_text:
            reports[station] = raw_text
    return reports


class WeatherCache:
    """Time-boxed METAR/TAF cache."""

    def __init__(
        self,
        metar_url: str = METAR_URL,
        taf_url: str = TAF_URL,
        interval_seconds: int = WEATHER_REFRESH_SECONDS,
        timeout: int = HTTP_TIMEOUT_SECONDS,
    ):
        self.metar_url = metar_url
        self.taf_url = taf_url
        self.interval = timedelta(seconds=interval_seconds)
        self.timeout = timeout
        self.session = requests.Session()

        self._metars: Dict[str, str] = {}
        self._tafs: Dict[str, str] = {}
        self._lock = threading.RLock()
        self.last_refresh: Optional[datetime] = None

        self.running = False
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def _download(self, url: str, tag: str) -> Optional[Dict[str, str]]:
        response = fetch(self.session, url, f"weather_{tag.lower()}", self.timeout)
        if response is None:
            WEATHER_REFRESHES.labels(feed=tag, status="fetch_failed").inc()
            return None

        try:
            with gzip.GzipFile(fileobj=io.BytesIO(response.content)) as f:
                xml_content = f.read()
            reports = parse_weather_xml(xml_content, tag)
        except (OSError, EOFError, ET.ParseError) as e:
            WEATHER_REFRESHES.labels(feed=tag, status="parse_failed").inc()
            logger.error(f"Failed to parse {tag} cache: {e}")
            return None

        WEATHER_REFRESHES.labels(feed=tag, status="success").inc()
        return reports

    def refresh(self, now: Optional[datetime] = None) -> bool:
        """
        Download both feeds. Each map is replaced only if its feed succeeded.

        Returns:
            True if both feeds were refreshed
        """
        metars = self._download(self.metar_url, "METAR")
        tafs = self._download(self.taf_url, "TAF")

        with self._lock:
            if metars is not None:
                self._metars = metars
            if tafs is not None:
                self._tafs = tafs
            self.last_refresh = now or datetime.now().astimezone()

        logger.info(
            f"Weather cache: {len(self._metars)} METARs, {len(self._tafs)} TAFs"
            + ("" if metars is not None and tafs is not None else " (stale feeds kept)")
        )
        return metars is not None and tafs is not None

    def refresh_if_due(self, now: datetime) -> bool:
        """Refresh when the interval has elapsed. Returns True if a refresh ran."""
        if self.last_refresh is not None and now - self.last_refresh < self.interval:
            return False
        self.refresh(now)
        return True

    def snapshot(self) -> Tuple[Dict[str, str], Dict[str, str]]:
        """Current (metars, tafs) pair. Maps are replaced on refresh, never mutated."""
        with self._lock:
            return self._metars, self._tafs

    def get_metar(self, icao: str) -> Optional[str]:
        with self._lock:
            return self._metars.get(icao)

    def get_taf(self, icao: str) -> Optional[str]:
        with self._lock:
            return self._tafs.get(icao)

    def _refresh_loop(self):
        while self.running:
            self.refresh()
            if self._stop_event.wait(self.interval.total_seconds()):
                break

    def start(self):
        """Refresh in a background thread instead of from the cycle loop."""
        if self.running:
            logger.warning("Weather cache already running")
            return

        self.running = True
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._refresh_loop, daemon=True)
        self._thread.start()
        logger.info("Weather cache started")

    def stop(self):
        if not self.running:
            return

        self.running = False
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=5.0)
        logger.info("Weather cache stopped")
