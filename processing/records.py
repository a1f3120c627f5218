"""
Long records held in the fusion cache between cycles.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, List


class FlightPhase(str, Enum):
    """Flight phases, declared in their only legal order."""
    BOARDING = "Boarding"
    TAXI_OUT = "Taxi Out"
    CLIMB = "Climb"
    CRUISE = "Cruise"
    DESCENT = "Descent"
    TAXI_IN = "Taxi In"
    ON_BLOCK = "On Block"


@dataclass
class AirportRef:
    """Airport referenced by a flight plan. Coordinates are resolved lazily."""
    icao: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    @property
    def resolved(self) -> bool:
        return self.latitude is not None and self.longitude is not None


@dataclass
class FlightPlan:
    flight_rules: str
    ac_reg: Optional[str]
    departure: AirportRef
    arrival: AirportRef
    alternate: AirportRef
    filed_tas: int
    filed_altitude: int
    enroute_time: int  # seconds
    fuel_time: int  # seconds
    deptime: str
    remarks: str
    route: str
    revision_id: int
    aircraft_short: str = ""


@dataclass
class TimesBlock:
    """Scheduled, estimated and actual block times for one flight."""
    sched_off_block: datetime
    off_block: datetime
    lift_off: datetime
    touch_down: datetime
    sched_on_block: datetime
    on_block: datetime
    state: FlightPhase
    stop_counter: int = 0


@dataclass
class PilotRecord:
    id: str
    cid: int
    callsign: str
    latitude: float
    longitude: float
    altitude_agl: int
    altitude_ms: int
    groundspeed: float
    vertical_speed: int
    heading: float
    transponder: str
    frequency: int  # kHz
    qnh_i_hg: float
    qnh_mb: float
    name: str
    server: str
    pilot_rating: str
    military_rating: str
    aircraft: str
    flight_plan: Optional[FlightPlan]
    times: Optional[TimesBlock]
    logon_time: datetime
    timestamp: datetime


@dataclass
class ControllerRecord:
    """Raw controller or ATIS session."""
    callsign: str
    frequency: int  # kHz
    facility: int
    atis: Optional[List[str]]
    connections: int
    cid: int
    name: str
    rating: int
    server: str
    visual_range: int
    logon_time: datetime
    timestamp: datetime


@dataclass
class MergedController:
    """Logical sector made of one or more raw sessions."""
    id: str
    facility: str
    controllers: List[ControllerRecord] = field(default_factory=list)


@dataclass
class TrafficBlock:
    traffic_count: int = 0
    flights_delayed: int = 0
    average_delay: int = 0


@dataclass
class AirportRecord:
    icao: str
    dep_traffic: TrafficBlock = field(default_factory=TrafficBlock)
    arr_traffic: TrafficBlock = field(default_factory=TrafficBlock)
    busiest_departure: str = "-"
    busiest_arrival: str = "-"
    unique_departures: int = 0
    unique_arrivals: int = 0
    metar: Optional[str] = None
    taf: Optional[str] = None


def iso(value: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime for the published views."""
    return value.isoformat() if value is not None else None
