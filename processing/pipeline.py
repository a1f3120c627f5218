"""
Fusion Pipeline

One cycle:
1. Refresh sector prefix tables if the reference version moved
2. Refresh weather if due (unless the cache runs its own thread)
3. Pilot fusion against the previous cycle's records
4. Controller mapping, connection counting and sector merging
5. Airport aggregation with cached weather
6. Deltas for pilots, controllers and airports against the previous views
7. Dashboard statistics
8. Swap the caches

All per-cycle state lives on the FusionPipeline instance. The caches are
replaced in one step at the end, so a cycle that raises leaves the previous
state untouched.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from contracts.constants import FAMILY_AIRPORTS, FAMILY_CONTROLLERS, FAMILY_PILOTS
from contracts.validation import FeedSnapshot
from ingestion.events import EventsCache
from ingestion.reference import ReferenceDataStore
from ingestion.weather import WeatherCache
from processing.airports import aggregate_airports, airport_view
from processing.bookings import map_bookings
from processing.controllers import fuse_controllers
from processing.dashboard import DashboardAggregator
from processing.delta import Delta, compute_delta
from processing.metrics import CYCLE_DURATION, CYCLES_TOTAL, DELTA_ITEMS, FUSED_ENTITIES
from processing.pilots import PilotFusion, pilot_short
from processing.records import AirportRecord, ControllerRecord, MergedController, PilotRecord
from processing.sectors import SectorPrefixTables, merge_controllers, merged_view

logger = logging.getLogger(__name__)

FAMILY_KEYS = {
    FAMILY_PILOTS: "id",
    FAMILY_CONTROLLERS: "id",
    FAMILY_AIRPORTS: "icao",
}


@dataclass
class CycleResult:
    """Everything one cycle produced."""
    timestamp: datetime
    pilots: Dict[str, PilotRecord]
    controllers: List[ControllerRecord]
    merged: Dict[str, MergedController]
    airports: Dict[str, AirportRecord]
    deltas: Dict[str, Delta] = field(default_factory=dict)
    dashboard: Optional[dict] = None


class FusionPipeline:
    """Owns the caches carried from one cycle to the next."""

    def __init__(
        self,
        reference: Optional[ReferenceDataStore] = None,
        weather: Optional[WeatherCache] = None,
        events: Optional[EventsCache] = None,
    ):
        self.reference = reference
        self.weather = weather
        self.tables = SectorPrefixTables()
        self.fusion = PilotFusion(airports=reference, registry=reference)
        self.dashboard = DashboardAggregator(events)

        self._pilots: Dict[str, PilotRecord] = {}
        self._views: Dict[str, List[dict]] = {family: [] for family in FAMILY_KEYS}
        self._cycle_lock = threading.Lock()
        self._closed = False

    @property
    def previous_pilots(self) -> Dict[str, PilotRecord]:
        return self._pilots

    def previous_views(self, family: str) -> List[dict]:
        return self._views[family]

    def run_cycle(self, snapshot: FeedSnapshot, now: Optional[datetime] = None) -> CycleResult:
        """
        Fuse one snapshot. Cycles never overlap; a second caller waits.

        Raises:
            RuntimeError: the pipeline was shut down
            DuplicateIdentityError: the snapshot repeats an identity
        """
        now = now or datetime.now(timezone.utc)

        with self._cycle_lock:
            if self._closed:
                raise RuntimeError("Pipeline is shut down")

            try:
                with CYCLE_DURATION.time():
                    result = self._run(snapshot, now)
            except Exception:
                CYCLES_TOTAL.labels(status="failed").inc()
                raise

            CYCLES_TOTAL.labels(status="success").inc()
            return result

    def _run(self, snapshot: FeedSnapshot, now: datetime) -> CycleResult:
        if self.reference is not None:
            self.tables.refresh(self.reference)
        if self.weather is not None and not self.weather.running:
            self.weather.refresh_if_due(now)

        pilots = self.fusion.fuse(snapshot, self._pilots, now)
        controllers = fuse_controllers(snapshot, pilots.values())
        merged = merge_controllers(controllers, self.tables)
        airports = aggregate_airports(pilots.values(), self.weather)

        views = {
            FAMILY_PILOTS: [pilot_short(p) for p in pilots.values()],
            FAMILY_CONTROLLERS: [merged_view(m) for m in merged.values()],
            FAMILY_AIRPORTS: [airport_view(a) for a in airports.values()],
        }
        deltas = {
            family: compute_delta(self._views[family], views[family], key)
            for family, key in FAMILY_KEYS.items()
        }
        dashboard = self.dashboard.update(snapshot, pilots.values(), controllers, now)

        # Swap
        self._pilots = pilots
        self._views = views

        for family, delta in deltas.items():
            FUSED_ENTITIES.labels(family=family).set(len(views[family]))
            DELTA_ITEMS.labels(family=family, kind="added").inc(len(delta.added))
            DELTA_ITEMS.labels(family=family, kind="updated").inc(len(delta.updated))
            DELTA_ITEMS.labels(family=family, kind="deleted").inc(len(delta.deleted))

        logger.info(
            f"Cycle {now.isoformat()}: {len(pilots)} pilots, {len(controllers)} controllers "
            f"({len(merged)} sectors), {len(airports)} airports"
        )

        return CycleResult(
            timestamp=now,
            pilots=pilots,
            controllers=controllers,
            merged=merged,
            airports=airports,
            deltas=deltas,
            dashboard=dashboard,
        )

    def map_bookings(self, bookings: List[dict]) -> List[dict]:
        """Resolve raw bookings with the current sector tables."""
        if self.reference is not None:
            self.tables.refresh(self.reference)
        return map_bookings(bookings, self.tables)

    def shutdown(self):
        """Stop background work and drop the caches."""
        with self._cycle_lock:
            if self._closed:
                return
            self._closed = True
            if self.weather is not None:
                self.weather.stop()
            self._pilots = {}
            self._views = {family: [] for family in FAMILY_KEYS}
        logger.info("Fusion pipeline shut down")
