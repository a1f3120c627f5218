"""
Upcoming network events for the dashboard.
"""

import os
import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import requests

from ingestion.httpclient import HTTP_TIMEOUT_SECONDS, fetch

logger = logging.getLogger(__name__)

EVENTS_URL = os.getenv("EVENTS_URL", "https://my.vatsim.net/api/v2/events/latest")
EVENTS_REFRESH_SECONDS = int(os.getenv("EVENTS_REFRESH_SECONDS", "3600"))
EVENTS_WINDOW_DAYS = 3


def filter_upcoming(events: List[dict], now: datetime) -> List[dict]:
    """Events starting between today 00:00Z and three days later."""
    today = now.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
    until = today + timedelta(days=EVENTS_WINDOW_DAYS)

    upcoming = []
    for event in events:
        try:
            start = datetime.fromisoformat(event["start_time"].replace("Z", "+00:00"))
        except (KeyError, AttributeError, ValueError):
            continue
        if start.tzinfo is None:
            start = start.replace(tzinfo=timezone.utc)
        if today <= start < until:
            upcoming.append(event)
    return upcoming


class EventsCache:
    """Hourly refreshed event list. A failed refresh keeps the previous list."""

    def __init__(
        self,
        url: str = EVENTS_URL,
        interval_seconds: int = EVENTS_REFRESH_SECONDS,
        timeout: int = HTTP_TIMEOUT_SECONDS,
    ):
        self.url = url
        self.interval = timedelta(seconds=interval_seconds)
        self.timeout = timeout
        self.session = requests.Session()
        self.events: List[dict] = []
        self.last_attempt: Optional[datetime] = None

    def get_events(self, now: datetime) -> List[dict]:
        if self.last_attempt is not None and now - self.last_attempt < self.interval:
            return self.events
        self.last_attempt = now

        response = fetch(self.session, self.url, "events", self.timeout)
        if response is None:
            return self.events

        try:
            events = response.json().get("data", [])
        except (ValueError, AttributeError) as e:
            logger.error(f"Invalid events response: {e}")
            return self.events

        self.events = filter_upcoming(events, now)
        logger.info(f"Events refreshed: {len(self.events)} upcoming")
        return self.events
