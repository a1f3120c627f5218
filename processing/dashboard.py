"""
Dashboard statistics derived from the fused snapshot.
"""

import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Protocol, Tuple

from contracts.constants import FACILITY_FSS, FACILITY_OBSERVER
from contracts.validation import FeedSnapshot
from processing.records import ControllerRecord, PilotRecord

logger = logging.getLogger(__name__)

TOP_N = 5
HISTORY_INTERVAL = timedelta(minutes=10)
HISTORY_RETENTION = timedelta(days=7)


class EventsSource(Protocol):
    def get_events(self, now: datetime) -> List[dict]: ...


def _traffic(row: dict) -> int:
    return row["departures"] + row["arrivals"]


def _ranked(counts: Dict[str, int], reverse: bool) -> List[dict]:
    ordered = sorted(counts.items(), key=lambda item: item[1], reverse=reverse)
    return [{"key": key, "count": count} for key, count in ordered[:TOP_N]]


def compute_stats(
    snapshot: FeedSnapshot,
    pilots: Iterable[PilotRecord],
    controllers: Iterable[ControllerRecord],
) -> dict:
    """Unique user counts and top-5 busiest/quietest tables."""
    controllers = list(controllers)

    airports: Dict[str, Dict[str, int]] = {}
    routes: Counter = Counter()
    aircraft: Counter = Counter()
    for pilot in pilots:
        fp = pilot.flight_plan
        if fp is None:
            continue
        dep = airports.setdefault(fp.departure.icao, {"departures": 0, "arrivals": 0})
        dep["departures"] += 1
        arr = airports.setdefault(fp.arrival.icao, {"departures": 0, "arrivals": 0})
        arr["arrivals"] += 1
        routes[f"{fp.departure.icao}-{fp.arrival.icao}"] += 1
        if fp.aircraft_short:
            aircraft[fp.aircraft_short] += 1

    airport_rows = [
        {"icao": icao, "departures": c["departures"], "arrivals": c["arrivals"]}
        for icao, c in airports.items()
    ]
    connections = {c.callsign: c.connections for c in controllers}

    return {
        "pilots": len({p.cid for p in snapshot.pilots}),
        "controllers": len({c.cid for c in controllers}),
        "supervisors": len({
            c.cid for c in snapshot.controllers
            if c.facility in (FACILITY_OBSERVER, FACILITY_FSS)
        }),
        "busiest_airports": sorted(airport_rows, key=_traffic, reverse=True)[:TOP_N],
        "quietest_airports": sorted(airport_rows, key=_traffic)[:TOP_N],
        "busiest_routes": _ranked(routes, reverse=True),
        "quietest_routes": _ranked(routes, reverse=False),
        "busiest_aircraft": _ranked(aircraft, reverse=True),
        "rarest_aircraft": _ranked(aircraft, reverse=False),
        "busiest_controllers": _ranked(connections, reverse=True),
        "quietest_controllers": _ranked(connections, reverse=False),
    }


class DashboardHistory:
    """User count samples, one per 10 minutes, kept for 7 days."""

    def __init__(self, interval: timedelta = HISTORY_INTERVAL, retention: timedelta = HISTORY_RETENTION):
        self.interval = interval
        self.retention = retention
        self.samples: List[Tuple[datetime, Dict[str, int]]] = []
        self.last_sample: Optional[datetime] = None

    def record(self, now: datetime, pilots: int, controllers: int) -> bool:
        """Add a sample if the interval has elapsed. Returns True when one was added."""
        if self.last_sample is not None and now - self.last_sample < self.interval:
            return False

        self.last_sample = now
        self.samples.append((now, {"pilots": pilots, "controllers": controllers}))

        cutoff = now - self.retention
        self.samples = [(t, v) for t, v in self.samples if t >= cutoff]
        return True

    def to_list(self) -> List[dict]:
        return [{"t": t.isoformat(), "v": dict(v)} for t, v in self.samples]


class DashboardAggregator:
    """Combines stats, history and upcoming events into the dashboard payload."""

    def __init__(self, events: Optional[EventsSource] = None):
        self.events = events
        self.history = DashboardHistory()

    def update(
        self,
        snapshot: FeedSnapshot,
        pilots: Iterable[PilotRecord],
        controllers: Iterable[ControllerRecord],
        now: datetime,
    ) -> dict:
        controllers = list(controllers)
        stats = compute_stats(snapshot, pilots, controllers)
        self.history.record(now, len(snapshot.pilots), len(controllers))
        events = self.events.get_events(now) if self.events is not None else []

        return {
            "stats": stats,
            "history": self.history.to_list(),
            "events": events,
        }
