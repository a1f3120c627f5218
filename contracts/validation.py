"""
Validation library for radarfuse message contracts.

Provides Pydantic models for the network feed that enters the pipeline and
for the envelopes the pipeline publishes. All services should use these
models to validate messages before processing.
"""

import re
from typing import Optional, Literal, List, Dict, Any
from datetime import datetime
from pydantic import BaseModel, Field, ValidationError, field_validator
from contracts.constants import (
    SCHEMA_VERSION,
    MESSAGE_TYPE_DELTA,
    MESSAGE_TYPE_DASHBOARD,
    MESSAGE_TYPE_BOOKINGS,
    PROVIDER_VATSIM,
    PROVIDER_RADARFUSE,
)


_EXTRA_FRACTION = re.compile(r"(\.\d{6})\d+")


def _parse_iso(v):
    """Parse ISO 8601 datetime string (trailing Z and 7-digit fractions allowed)."""
    if isinstance(v, str):
        return datetime.fromisoformat(_EXTRA_FRACTION.sub(r"\1", v.replace("Z", "+00:00")))
    return v


# ============================================================================
# Network Feed (inbound)
# ============================================================================

class FeedFlightPlan(BaseModel):
    """Filed flight plan as reported by the network."""
    flight_rules: str = "I"
    aircraft: str = ""
    aircraft_faa: str = ""
    aircraft_short: str = ""
    departure: str = ""
    cruise_tas: str = "0"
    altitude: str = "0"
    arrival: str = ""
    alternate: str = ""
    deptime: str = "0000"
    enroute_time: str = "0000"
    fuel_time: str = "0000"
    remarks: str = ""
    route: str = ""
    revision_id: int = 0
    assigned_transponder: str = "0000"


class FeedPilot(BaseModel):
    """Connected pilot."""
    cid: int
    name: str = ""
    callsign: str
    server: str = ""
    pilot_rating: int = 0
    military_rating: int = 0
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    altitude: float = 0
    groundspeed: float = Field(0, ge=0, description="Ground speed in knots")
    transponder: str = "2000"
    heading: float = 0
    qnh_i_hg: float = 29.92
    qnh_mb: float = 1013
    flight_plan: Optional[FeedFlightPlan] = None
    logon_time: datetime
    last_updated: datetime

    @field_validator("logon_time", "last_updated", mode="before")
    @classmethod
    def parse_timestamps(cls, v):
        return _parse_iso(v)


class FeedController(BaseModel):
    """Connected controller session."""
    cid: int
    name: str = ""
    callsign: str
    frequency: str = "199.998"
    facility: int = 0
    rating: int = 0
    server: str = ""
    visual_range: int = 0
    text_atis: Optional[List[str]] = None
    logon_time: datetime
    last_updated: datetime

    @field_validator("logon_time", "last_updated", mode="before")
    @classmethod
    def parse_timestamps(cls, v):
        return _parse_iso(v)


class FeedAtis(FeedController):
    """ATIS broadcast session."""
    atis_code: Optional[str] = None


class FeedTransceiver(BaseModel):
    """Radio transceiver position. Frequency in Hz, heights in metres."""
    id: int = 0
    frequency: int
    latDeg: float
    lonDeg: float
    heightMslM: float = 0.0
    heightAglM: float = 0.0


class FeedTransceiverEntry(BaseModel):
    """All transceivers belonging to one callsign."""
    callsign: str
    transceivers: List[FeedTransceiver] = Field(default_factory=list)


class FeedGeneral(BaseModel):
    version: int = 3
    update_timestamp: datetime
    connected_clients: int = 0
    unique_users: int = 0

    @field_validator("update_timestamp", mode="before")
    @classmethod
    def parse_update_timestamp(cls, v):
        return _parse_iso(v)


class FeedSnapshot(BaseModel):
    """One full network snapshot, delivered whole once per cycle."""
    general: FeedGeneral
    pilots: List[FeedPilot] = Field(default_factory=list)
    controllers: List[FeedController] = Field(default_factory=list)
    atis: List[FeedAtis] = Field(default_factory=list)
    transceivers: List[FeedTransceiverEntry] = Field(default_factory=list)

    def transceivers_by_callsign(self) -> Dict[str, List[FeedTransceiver]]:
        """Index transceivers by callsign (first entry wins)."""
        index: Dict[str, List[FeedTransceiver]] = {}
        for entry in self.transceivers:
            index.setdefault(entry.callsign, entry.transceivers)
        return index


# ============================================================================
# Published Envelopes (outbound)
# ============================================================================

class SourceInfo(BaseModel):
    """Source information for envelope."""
    provider: Literal["vatsim", "radarfuse-processing"]


class EntityDelta(BaseModel):
    """Changeset for one entity family."""
    added: List[Dict[str, Any]] = Field(default_factory=list)
    updated: List[Dict[str, Any]] = Field(default_factory=list)
    deleted: List[str] = Field(default_factory=list)

    @field_validator("updated")
    @classmethod
    def validate_updated(cls, v: list) -> list:
        """An update carrying only its identity is not an update."""
        for patch in v:
            if len(patch) < 2:
                raise ValueError(f"Empty patch in updated list: {patch}")
        return v


class DeltaPayload(BaseModel):
    pilots: EntityDelta
    controllers: EntityDelta
    airports: EntityDelta
    timestamp: datetime

    @field_validator("timestamp", mode="before")
    @classmethod
    def parse_timestamp(cls, v):
        return _parse_iso(v)


class DeltaEnvelope(BaseModel):
    """Envelope for the delta topic."""
    schema_version: Literal[1] = SCHEMA_VERSION
    type: Literal["delta"] = MESSAGE_TYPE_DELTA
    produced_at: datetime
    source: SourceInfo
    payload: DeltaPayload

    @field_validator("produced_at", mode="before")
    @classmethod
    def parse_produced_at(cls, v):
        return _parse_iso(v)


class RankedEntry(BaseModel):
    """One row of a top-N dashboard table."""
    key: str
    count: int = Field(ge=0)


class DashboardStats(BaseModel):
    pilots: int = Field(ge=0)
    controllers: int = Field(ge=0)
    supervisors: int = Field(ge=0)
    busiest_airports: List[Dict[str, Any]]
    quietest_airports: List[Dict[str, Any]]
    busiest_routes: List[RankedEntry]
    quietest_routes: List[RankedEntry]
    busiest_aircraft: List[RankedEntry]
    rarest_aircraft: List[RankedEntry]
    busiest_controllers: List[RankedEntry]
    quietest_controllers: List[RankedEntry]


class DashboardPayload(BaseModel):
    stats: DashboardStats
    history: List[Dict[str, Any]] = Field(default_factory=list)
    events: List[Dict[str, Any]] = Field(default_factory=list)


class DashboardEnvelope(BaseModel):
    """Envelope for the dashboard topic."""
    schema_version: Literal[1] = SCHEMA_VERSION
    type: Literal["dashboard"] = MESSAGE_TYPE_DASHBOARD
    produced_at: datetime
    source: SourceInfo
    payload: DashboardPayload

    @field_validator("produced_at", mode="before")
    @classmethod
    def parse_produced_at(cls, v):
        return _parse_iso(v)


class BookingEntry(BaseModel):
    id: str
    facility: int
    callsign: str
    type: Optional[str] = None
    start: str
    end: str


class BookingsEnvelope(BaseModel):
    """Envelope for the bookings topic."""
    schema_version: Literal[1] = SCHEMA_VERSION
    type: Literal["bookings"] = MESSAGE_TYPE_BOOKINGS
    produced_at: datetime
    source: SourceInfo
    payload: List[BookingEntry]

    @field_validator("produced_at", mode="before")
    @classmethod
    def parse_produced_at(cls, v):
        return _parse_iso(v)


# ============================================================================
# Validation Functions
# ============================================================================

def validate_feed_snapshot(data: dict) -> tuple[bool, Optional[FeedSnapshot], Optional[str]]:
    """
    Validate a raw network data document.

    Returns:
        (is_valid, snapshot_or_none, error_message_or_none)
    """
    try:
        snapshot = FeedSnapshot(**data)
        return True, snapshot, None
    except (ValidationError, TypeError) as e:
        return False, None, str(e)


def validate_delta_envelope(data: dict) -> tuple[bool, Optional[DeltaEnvelope], Optional[str]]:
    """
    Validate DeltaEnvelope.

    Returns:
        (is_valid, envelope_or_none, error_message_or_none)
    """
    try:
        envelope = DeltaEnvelope(**data)
        return True, envelope, None
    except (ValidationError, TypeError) as e:
        return False, None, str(e)


def validate_dashboard_envelope(data: dict) -> tuple[bool, Optional[DashboardEnvelope], Optional[str]]:
    """
    Validate DashboardEnvelope.

    Returns:
        (is_valid, envelope_or_none, error_message_or_none)
    """
    try:
        envelope = DashboardEnvelope(**data)
        return True, envelope, None
    except (ValidationError, TypeError) as e:
        return False, None, str(e)


def validate_bookings_envelope(data: dict) -> tuple[bool, Optional[BookingsEnvelope], Optional[str]]:
    """
    Validate BookingsEnvelope.

    Returns:
        (is_valid, envelope_or_none, error_message_or_none)
    """
    try:
        envelope = BookingsEnvelope(**data)
        return True, envelope, None
    except (ValidationError, TypeError) as e:
        return False, None, str(e)
