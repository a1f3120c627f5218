"""
ATC bookings client.
"""

import os
import logging
from datetime import datetime, timedelta
from typing import List, Optional

import requests

from ingestion.httpclient import HTTP_TIMEOUT_SECONDS, fetch

logger = logging.getLogger(__name__)

BOOKINGS_URL = os.getenv("BOOKINGS_URL", "https://atc-bookings.vatsim.net/api/booking")
BOOKINGS_REFRESH_SECONDS = int(os.getenv("BOOKINGS_REFRESH_SECONDS", "600"))


class BookingsClient:
    """Fetches the booking list at most once per interval."""

    def __init__(
        self,
        url: str = BOOKINGS_URL,
        interval_seconds: int = BOOKINGS_REFRESH_SECONDS,
        timeout: int = HTTP_TIMEOUT_SECONDS,
    ):
        self.url = url
        self.interval = timedelta(seconds=interval_seconds)
        self.timeout = timeout
        self.session = requests.Session()
        self.last_update: Optional[datetime] = None
        self.last_attempt: Optional[datetime] = None

    def fetch_if_due(self, now: datetime) -> Optional[List[dict]]:
        """
        A failed fetch counts as an attempt and is retried after the interval.

        Returns:
            Raw booking dicts, or None when not due or the fetch failed
        """
        if self.last_attempt is not None and now - self.last_attempt < self.interval:
            return None
        self.last_attempt = now

        response = fetch(self.session, self.url, "bookings", self.timeout)
        if response is None:
            return None

        try:
            bookings = response.json()
        except ValueError as e:
            logger.error(f"Invalid bookings response: {e}")
            return None

        if not isinstance(bookings, list):
            logger.error(f"Unexpected bookings payload: {type(bookings).__name__}")
            return None

        self.last_update = now
        logger.info(f"Fetched {len(bookings)} bookings")
        return bookings
