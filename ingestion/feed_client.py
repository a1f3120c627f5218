"""
Network feed client.

Pulls the data document and the transceivers document, joins them into one
snapshot and validates it against the feed contract. A snapshot whose
update timestamp is not newer than the last one returned is skipped.
"""

import os
import logging
from datetime import datetime
from typing import Optional

import requests

from contracts.validation import FeedSnapshot, validate_feed_snapshot
from ingestion.httpclient import HTTP_TIMEOUT_SECONDS, fetch
from ingestion.metrics import FEED_SKIPPED

logger = logging.getLogger(__name__)

VATSIM_DATA_URL = os.getenv("VATSIM_DATA_URL", "https://data.vatsim.net/v3/vatsim-data.json")
VATSIM_TRANSCEIVERS_URL = os.getenv(
    "VATSIM_TRANSCEIVERS_URL", "https://data.vatsim.net/v3/transceivers-data.json"
)


class VatsimFeedClient:
    """Client for the network data and transceivers documents."""

    def __init__(
        self,
        data_url: str = VATSIM_DATA_URL,
        transceivers_url: str = VATSIM_TRANSCEIVERS_URL,
        timeout: int = HTTP_TIMEOUT_SECONDS,
    ):
        self.data_url = data_url
        self.transceivers_url = transceivers_url
        self.timeout = timeout
        self.session = requests.Session()
        self.last_update: Optional[datetime] = None

    def _get_json(self, url: str, source: str):
        response = fetch(self.session, url, source, self.timeout)
        if response is None:
            return None
        try:
            return response.json()
        except ValueError as e:
            FEED_SKIPPED.labels(reason="invalid_json").inc()
            logger.error(f"{source} returned invalid JSON: {e}")
            return None

    def fetch_snapshot(self) -> Optional[FeedSnapshot]:
        """
        Fetch and validate the next snapshot.

        Returns:
            FeedSnapshot, or None when the fetch failed, the document is
            invalid or it has not changed since the last call.
        """
        data = self._get_json(self.data_url, "vatsim_data")
        if data is None:
            return None

        transceivers = self._get_json(self.transceivers_url, "vatsim_transceivers")
        if transceivers is None:
            logger.warning("No transceiver data this cycle, continuing without it")
            transceivers = []

        is_valid, snapshot, error = validate_feed_snapshot({**data, "transceivers": transceivers})
        if not is_valid:
            FEED_SKIPPED.labels(reason="invalid_snapshot").inc()
            logger.warning(f"Invalid feed snapshot: {error}")
            return None

        update_timestamp = snapshot.general.update_timestamp
        if self.last_update is not None and update_timestamp <= self.last_update:
            FEED_SKIPPED.labels(reason="not_updated").inc()
            logger.debug(f"Feed not updated since {self.last_update.isoformat()}")
            return None

        self.last_update = update_timestamp
        return snapshot
