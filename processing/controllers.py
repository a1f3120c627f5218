"""
Controller mapping and frequency based connection counting.
"""

import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Optional

from contracts.constants import FACILITY_ATIS, FACILITY_OBSERVER
from contracts.validation import FeedController, FeedSnapshot, FeedTransceiver
from processing.geo import haversine_nm
from processing.records import ControllerRecord, PilotRecord

logger = logging.getLogger(__name__)

DEFAULT_FREQUENCY_KHZ = 122800


def parse_frequency_khz(text: str) -> int:
    """"121.700" -> 121700. Unparseable input falls back to 122800."""
    try:
        return round(float(text) * 1000)
    except (ValueError, TypeError):
        return DEFAULT_FREQUENCY_KHZ


def _to_record(session: FeedController, facility: int) -> ControllerRecord:
    return ControllerRecord(
        callsign=session.callsign,
        frequency=parse_frequency_khz(session.frequency),
        facility=facility,
        atis=session.text_atis,
        connections=0,
        cid=session.cid,
        name=session.name,
        rating=session.rating,
        server=session.server,
        visual_range=session.visual_range,
        logon_time=session.logon_time,
        timestamp=session.last_updated,
    )


def map_controllers(snapshot: FeedSnapshot) -> List[ControllerRecord]:
    """Controller sessions of the snapshot, observers excluded."""
    return [
        _to_record(session, session.facility)
        for session in snapshot.controllers
        if session.facility != FACILITY_OBSERVER
    ]


def map_atis(snapshot: FeedSnapshot) -> List[ControllerRecord]:
    return [_to_record(session, FACILITY_ATIS) for session in snapshot.atis]


def _matching_transceiver(
    transceivers: List[FeedTransceiver], frequency_khz: int
) -> Optional[FeedTransceiver]:
    for transceiver in transceivers:
        if transceiver.frequency // 1000 == frequency_khz:
            return transceiver
    return None


def assign_connections(
    controllers: List[ControllerRecord],
    pilots: Iterable[PilotRecord],
    transceivers: Dict[str, List[FeedTransceiver]],
) -> None:
    """
    Count the pilots each controller session serves, in place.

    A frequency with a single session gets every pilot tuned to it. On a
    shared frequency each pilot goes to the session whose transceiver on that
    frequency is nearest; sessions without such a transceiver are not
    candidates, and the first candidate wins ties. When no session qualifies
    the pilot is counted against the first session on the frequency.
    """
    controllers_by_freq: Dict[int, List[ControllerRecord]] = defaultdict(list)
    for controller in controllers:
        controllers_by_freq[controller.frequency].append(controller)

    pilots_by_freq: Dict[int, List[PilotRecord]] = defaultdict(list)
    for pilot in pilots:
        pilots_by_freq[pilot.frequency].append(pilot)

    for frequency, sessions in controllers_by_freq.items():
        tuned = pilots_by_freq.get(frequency, [])
        if len(sessions) == 1:
            sessions[0].connections = len(tuned)
            continue

        positions = []
        for session in sessions:
            transceiver = _matching_transceiver(transceivers.get(session.callsign, []), frequency)
            if transceiver is not None:
                positions.append((session, transceiver.latDeg, transceiver.lonDeg))

        for pilot in tuned:
            closest = sessions[0]
            min_dist = float("inf")
            for session, lat, lon in positions:
                dist = haversine_nm(pilot.latitude, pilot.longitude, lat, lon)
                if dist < min_dist:
                    min_dist = dist
                    closest = session
            closest.connections += 1


def fuse_controllers(
    snapshot: FeedSnapshot, pilots: Iterable[PilotRecord]
) -> List[ControllerRecord]:
    """Controllers with connection counts, followed by ATIS sessions."""
    controllers = map_controllers(snapshot)
    assign_connections(controllers, pilots, snapshot.transceivers_by_callsign())
    controllers.extend(map_atis(snapshot))
    return controllers


def controller_short(controller: ControllerRecord) -> dict:
    return {
        "callsign": controller.callsign,
        "frequency": controller.frequency,
        "facility": controller.facility,
        "atis": controller.atis,
        "connections": controller.connections,
    }
