"""
Builders shared by the unit tests.
"""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from contracts.validation import FeedSnapshot
from processing.records import AirportRef, FlightPhase, FlightPlan, PilotRecord, TimesBlock

NOW = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)

# Frankfurt and Heathrow
EDDF = (50.0333, 8.5706)
EGLL = (51.4706, -0.4619)


def feed_flight_plan(**overrides) -> dict:
    plan = {
        "flight_rules": "I",
        "aircraft_short": "A320",
        "departure": "EDDF",
        "arrival": "EGLL",
        "alternate": "EGKK",
        "cruise_tas": "450",
        "altitude": "36000",
        "deptime": "1200",
        "enroute_time": "0100",
        "fuel_time": "0300",
        "remarks": "/V/",
        "route": "SOBRA Y180 DIK",
        "revision_id": 1,
    }
    plan.update(overrides)
    return plan


def feed_pilot(**overrides) -> dict:
    pilot = {
        "cid": 1000001,
        "name": "Test Pilot",
        "callsign": "DLH1",
        "server": "GERMANY",
        "pilot_rating": 1,
        "military_rating": 0,
        "latitude": EDDF[0],
        "longitude": EDDF[1],
        "altitude": 364,
        "groundspeed": 0,
        "transponder": "2000",
        "heading": 250,
        "qnh_i_hg": 29.92,
        "qnh_mb": 1013,
        "flight_plan": feed_flight_plan(),
        "logon_time": "2026-10-19T11:00:00Z",
        "last_updated": NOW.isoformat(),
    }
    pilot.update(overrides)
    return pilot


def feed_controller(**overrides) -> dict:
    controller = {
        "cid": 2000001,
        "name": "Test Controller",
        "callsign": "EDDF_TWR",
        "frequency": "119.900",
        "facility": 4,
        "rating": 3,
        "server": "GERMANY",
        "visual_range": 50,
        "text_atis": None,
        "logon_time": "2026-10-19T10:00:00Z",
        "last_updated": NOW.isoformat(),
    }
    controller.update(overrides)
    return controller


def transceiver_entry(callsign: str, frequency_khz: int, lat: float, lon: float, **extra) -> dict:
    transceiver = {"frequency": frequency_khz * 1000, "latDeg": lat, "lonDeg": lon}
    transceiver.update(extra)
    return {"callsign": callsign, "transceivers": [transceiver]}


def make_snapshot(pilots=(), controllers=(), atis=(), transceivers=(), updated: datetime = NOW) -> FeedSnapshot:
    return FeedSnapshot(**{
        "general": {"update_timestamp": updated.isoformat()},
        "pilots": list(pilots),
        "controllers": list(controllers),
        "atis": list(atis),
        "transceivers": list(transceivers),
    })


def make_plan(dep=EDDF, arr=EGLL, enroute_time=3600, **overrides) -> FlightPlan:
    plan = dict(
        flight_rules="IFR",
        ac_reg=None,
        departure=AirportRef("EDDF", *dep) if dep else AirportRef("EDDF"),
        arrival=AirportRef("EGLL", *arr) if arr else AirportRef("EGLL"),
        alternate=AirportRef("EGKK"),
        filed_tas=450,
        filed_altitude=36000,
        enroute_time=enroute_time,
        fuel_time=10800,
        deptime="1200",
        remarks="",
        route="DCT",
        revision_id=1,
        aircraft_short="A320",
    )
    plan.update(overrides)
    return FlightPlan(**plan)


def make_pilot(**overrides) -> PilotRecord:
    pilot = dict(
        id="1000001_DLH1_1792407600",
        cid=1000001,
        callsign="DLH1",
        latitude=EDDF[0],
        longitude=EDDF[1],
        altitude_agl=0,
        altitude_ms=364,
        groundspeed=0,
        vertical_speed=0,
        heading=250,
        transponder="2000",
        frequency=122800,
        qnh_i_hg=29.92,
        qnh_mb=1013,
        name="Test Pilot",
        server="GERMANY",
        pilot_rating="PPL",
        military_rating="M0",
        aircraft="A320",
        flight_plan=make_plan(),
        times=None,
        logon_time=NOW - timedelta(hours=1),
        timestamp=NOW,
    )
    pilot.update(overrides)
    return PilotRecord(**pilot)


def make_times(state: FlightPhase, sched_off_block: datetime = NOW, enroute=timedelta(hours=1), **overrides) -> TimesBlock:
    taxi = timedelta(minutes=10)
    times = dict(
        sched_off_block=sched_off_block,
        off_block=sched_off_block,
        lift_off=sched_off_block + taxi,
        touch_down=sched_off_block + taxi + enroute,
        sched_on_block=sched_off_block + taxi + enroute + taxi,
        on_block=sched_off_block + taxi + enroute + taxi,
        state=state,
    )
    times.update(overrides)
    return TimesBlock(**times)


class FakeReference:
    """In-memory stand-in for ReferenceDataStore."""

    def __init__(self, airports=None, fleet=(), firs=(), tracons=(), version="1"):
        self.airports = airports or {}
        self.fleet = {reg.upper(): reg for reg in fleet}
        self.features = {"fir": list(firs), "tracon": list(tracons)}
        self.version = version
        self.airport_calls = []

    def get_version(self, kind):
        return self.version

    def get_features(self, kind):
        return self.features[kind]

    def get_airports(self, icaos):
        icaos = list(icaos)
        self.airport_calls.append(icaos)
        return {icao: self.airports[icao] for icao in icaos if icao in self.airports}

    def lookup_registration(self, registration):
        return self.fleet.get(registration.upper())


def fir_feature(sector_id: str, prefix: str = "") -> dict:
    return {"type": "Feature", "properties": {"id": sector_id, "callsign_prefix": prefix}, "geometry": None}


def tracon_feature(sector_id: str, prefix) -> dict:
    return {"type": "Feature", "properties": {"id": sector_id, "prefix": prefix}, "geometry": None}


@pytest.fixture
def reference():
    return FakeReference(
        airports={"EDDF": EDDF, "EGLL": EGLL},
        fleet=["D-AIPC"],
        firs=[fir_feature("EDGG"), fir_feature("EDWW", "EDWW"), fir_feature("EGTT", "LON")],
        tracons=[tracon_feature("FRA", ["EDDF"]), tracon_feature("ESSEX", "EGSS_F")],
    )
