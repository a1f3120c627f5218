"""
Pilot fusion.

Maps feed pilots to long records, merges them over the previous cycle's
records, resolves missing airport coordinates in one batched lookup and
runs the flight phase state machine.
"""

import logging
import re
from dataclasses import replace
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Protocol, Set, Tuple

from contracts.validation import FeedFlightPlan, FeedPilot, FeedSnapshot, FeedTransceiver
from processing.delta import DuplicateIdentityError
from processing.flight_phase import advance_times, calculate_vertical_speed, init_times
from processing.metrics import AIRPORT_LOOKUPS
from processing.records import AirportRef, FlightPlan, PilotRecord, iso

logger = logging.getLogger(__name__)

METERS_TO_FEET = 3.28084
DEFAULT_AIRCRAFT = "A320"
DEFAULT_FREQUENCY_KHZ = 122800

PILOT_RATINGS = {0: "NEW", 1: "PPL", 3: "IR", 7: "CMEL", 15: "ATPL", 31: "FI", 63: "FE"}
MILITARY_RATINGS = {0: "M0", 1: "M1", 3: "M2", 7: "M3", 15: "M4"}

REGISTRATION_PATTERN = re.compile(r"REG/([A-Z0-9]+)", re.IGNORECASE)


class RegistrationLookup(Protocol):
    def lookup_registration(self, registration: str) -> Optional[str]: ...


class AirportLookup(Protocol):
    def get_airports(self, icaos: Iterable[str]) -> Dict[str, Tuple[float, float]]: ...


def pilot_id(cid: int, callsign: str, logon_time: datetime) -> str:
    """Identity of one connection: the same cid can reconnect under a new session."""
    return f"{cid}_{callsign}_{int(logon_time.timestamp())}"


def parse_hhmm_seconds(value: str) -> int:
    """"0325" -> 12300 seconds. Malformed input yields 0."""
    try:
        return int(value[0:2]) * 3600 + int(value[2:4]) * 60
    except (ValueError, TypeError):
        return 0


def _to_int(value: str) -> int:
    try:
        return int(value)
    except (ValueError, TypeError):
        return 0


def extract_registration(remarks: str, registry: Optional[RegistrationLookup] = None) -> Optional[str]:
    """
    Pull `REG/<token>` out of flight plan remarks and normalize it.

    The registry is asked for the raw token first, then for hyphenated
    variants with the hyphen after 1, 2, 3 ... characters. Without a match
    the raw token is returned uppercased.
    """
    match = REGISTRATION_PATTERN.search(remarks or "")
    if not match:
        return None

    token = match.group(1).upper()
    if registry is None:
        return token

    candidates = [token] + [f"{token[:i]}-{token[i:]}" for i in range(1, len(token))]
    for candidate in candidates:
        found = registry.lookup_registration(candidate)
        if found:
            return found

    return token


def map_flight_plan(
    fp: Optional[FeedFlightPlan],
    registry: Optional[RegistrationLookup] = None,
) -> Optional[FlightPlan]:
    if fp is None:
        return None

    return FlightPlan(
        flight_rules="IFR" if fp.flight_rules == "I" else "VFR",
        ac_reg=extract_registration(fp.remarks, registry),
        departure=AirportRef(fp.departure),
        arrival=AirportRef(fp.arrival),
        alternate=AirportRef(fp.alternate),
        filed_tas=_to_int(fp.cruise_tas),
        filed_altitude=_to_int(fp.altitude),
        enroute_time=parse_hhmm_seconds(fp.enroute_time),
        fuel_time=parse_hhmm_seconds(fp.fuel_time),
        deptime=fp.deptime,
        remarks=fp.remarks,
        route=fp.route,
        revision_id=fp.revision_id,
        aircraft_short=fp.aircraft_short,
    )


def map_pilot(
    pilot: FeedPilot,
    transceivers: List[FeedTransceiver],
    registry: Optional[RegistrationLookup] = None,
) -> PilotRecord:
    """Fresh long record from feed data alone (no history, no times)."""
    transceiver = transceivers[0] if transceivers else None

    if transceiver and transceiver.heightAglM:
        altitude_agl = round(transceiver.heightAglM * METERS_TO_FEET)
    else:
        altitude_agl = round(pilot.altitude)
    if transceiver and transceiver.heightMslM:
        altitude_ms = round(transceiver.heightMslM * METERS_TO_FEET)
    else:
        altitude_ms = round(pilot.altitude)

    aircraft = DEFAULT_AIRCRAFT
    if pilot.flight_plan and pilot.flight_plan.aircraft_short:
        aircraft = pilot.flight_plan.aircraft_short

    return PilotRecord(
        id=pilot_id(pilot.cid, pilot.callsign, pilot.logon_time),
        cid=pilot.cid,
        callsign=pilot.callsign,
        latitude=pilot.latitude,
        longitude=pilot.longitude,
        altitude_agl=altitude_agl,
        altitude_ms=altitude_ms,
        groundspeed=pilot.groundspeed,
        vertical_speed=0,
        heading=pilot.heading,
        transponder=pilot.transponder,
        frequency=transceiver.frequency // 1000 if transceiver else DEFAULT_FREQUENCY_KHZ,
        qnh_i_hg=pilot.qnh_i_hg,
        qnh_mb=pilot.qnh_mb,
        name=pilot.name,
        server=pilot.server,
        pilot_rating=PILOT_RATINGS.get(pilot.pilot_rating, "NEW"),
        military_rating=MILITARY_RATINGS.get(pilot.military_rating, "M0"),
        aircraft=aircraft,
        flight_plan=map_flight_plan(pilot.flight_plan, registry),
        times=None,
        logon_time=pilot.logon_time,
        timestamp=pilot.last_updated,
    )


def _carry_coordinates(new: AirportRef, old: AirportRef) -> AirportRef:
    if new.icao == old.icao and old.resolved:
        return AirportRef(new.icao, old.latitude, old.longitude)
    return new


def merge_pilot(cached: PilotRecord, fresh: PilotRecord) -> PilotRecord:
    """
    Refresh a cached record with this cycle's feed data.

    Overwritten: position, altitudes, groundspeed, heading, transponder,
    frequency, QNH, server and timestamp. Preserved: identity, ratings,
    aircraft, flight plan and times. A new flight plan revision replaces the
    plan (keeping resolved coordinates of unchanged airports) but keeps the
    existing times: scheduled times never change once set and the phase
    only moves forward through advance_times.
    """
    merged = replace(
        cached,
        latitude=fresh.latitude,
        longitude=fresh.longitude,
        altitude_agl=fresh.altitude_agl,
        altitude_ms=fresh.altitude_ms,
        groundspeed=fresh.groundspeed,
        heading=fresh.heading,
        transponder=fresh.transponder,
        frequency=fresh.frequency,
        qnh_i_hg=fresh.qnh_i_hg,
        qnh_mb=fresh.qnh_mb,
        server=fresh.server,
        timestamp=fresh.timestamp,
    )

    old_plan, new_plan = cached.flight_plan, fresh.flight_plan
    if new_plan is None:
        return merged

    if old_plan is None or old_plan.revision_id != new_plan.revision_id:
        if old_plan is not None:
            new_plan = replace(
                new_plan,
                departure=_carry_coordinates(new_plan.departure, old_plan.departure),
                arrival=_carry_coordinates(new_plan.arrival, old_plan.arrival),
                alternate=_carry_coordinates(new_plan.alternate, old_plan.alternate),
            )
        merged = replace(merged, flight_plan=new_plan, aircraft=fresh.aircraft)

    return merged


def _times_view(pilot: PilotRecord) -> Optional[dict]:
    times = pilot.times
    if times is None:
        return None
    return {
        "sched_off_block": iso(times.sched_off_block),
        "off_block": iso(times.off_block),
        "lift_off": iso(times.lift_off),
        "touch_down": iso(times.touch_down),
        "sched_on_block": iso(times.sched_on_block),
        "on_block": iso(times.on_block),
        "state": times.state.value,
    }


def pilot_short(pilot: PilotRecord) -> dict:
    """Downstream view of a pilot, diffed and published every cycle."""
    fp = pilot.flight_plan
    return {
        "id": pilot.id,
        "cid": pilot.cid,
        "callsign": pilot.callsign,
        "latitude": pilot.latitude,
        "longitude": pilot.longitude,
        "altitude_agl": pilot.altitude_agl,
        "altitude_ms": pilot.altitude_ms,
        "groundspeed": pilot.groundspeed,
        "vertical_speed": pilot.vertical_speed,
        "heading": pilot.heading,
        "aircraft": pilot.aircraft,
        "transponder": pilot.transponder,
        "frequency": pilot.frequency,
        "flight_rules": fp.flight_rules if fp else None,
        "ac_reg": fp.ac_reg if fp else None,
        "departure": fp.departure.icao if fp else None,
        "arrival": fp.arrival.icao if fp else None,
        "times": _times_view(pilot),
    }


class PilotFusion:
    """Produces this cycle's pilot collection from a snapshot and the previous one."""

    def __init__(
        self,
        airports: Optional[AirportLookup] = None,
        registry: Optional[RegistrationLookup] = None,
    ):
        self.airports = airports
        self.registry = registry

    def fuse(
        self,
        snapshot: FeedSnapshot,
        previous: Dict[str, PilotRecord],
        now: datetime,
    ) -> Dict[str, PilotRecord]:
        """
        Args:
            snapshot: Validated feed snapshot
            previous: Last cycle's records keyed by pilot id (not modified)
            now: Cycle time (UTC)

        Returns:
            New records keyed by pilot id, one per feed pilot

        Raises:
            DuplicateIdentityError: two feed pilots share an identity
        """
        transceivers = snapshot.transceivers_by_callsign()
        fused: Dict[str, PilotRecord] = {}

        for feed_pilot in snapshot.pilots:
            fresh = map_pilot(feed_pilot, transceivers.get(feed_pilot.callsign, []), self.registry)
            if fresh.id in fused:
                raise DuplicateIdentityError(f"Duplicate pilot identity {fresh.id}")

            cached = previous.get(fresh.id)
            record = merge_pilot(cached, fresh) if cached else fresh
            record.vertical_speed = calculate_vertical_speed(record, cached)
            fused[record.id] = record

        self._resolve_airports(fused.values())

        for record in fused.values():
            if record.times is None:
                record.times = init_times(record, now)
            else:
                record.times = advance_times(record, record.times, now)

        return fused

    def _resolve_airports(self, records: Iterable[PilotRecord]) -> None:
        """Fill missing departure/arrival coordinates with a single lookup."""
        pending: List[PilotRecord] = []
        icaos: Set[str] = set()
        for record in records:
            fp = record.flight_plan
            if fp is None:
                continue
            missing = [ref.icao for ref in (fp.departure, fp.arrival) if ref.icao and not ref.resolved]
            if missing:
                pending.append(record)
                icaos.update(missing)

        if not icaos or self.airports is None:
            return

        found = self.airports.get_airports(sorted(icaos))
        AIRPORT_LOOKUPS.labels(result="hit").inc(len(found))
        AIRPORT_LOOKUPS.labels(result="miss").inc(len(icaos) - len(found))
        logger.debug(f"Airport lookup: {len(found)}/{len(icaos)} resolved")

        for record in pending:
            fp = record.flight_plan
            record.flight_plan = replace(
                fp,
                departure=self._resolved(fp.departure, found),
                arrival=self._resolved(fp.arrival, found),
            )

    @staticmethod
    def _resolved(ref: AirportRef, found: Dict[str, Tuple[float, float]]) -> AirportRef:
        if ref.resolved or ref.icao not in found:
            return ref
        latitude, longitude = found[ref.icao]
        return AirportRef(ref.icao, latitude, longitude)
