"""
Map ATC bookings to the sector ids used by merged controllers.
"""

import logging
from typing import Iterable, List

from contracts.constants import (
    FACILITY_APPROACH,
    FACILITY_CENTER,
    FACILITY_DELIVERY,
    FACILITY_GROUND,
    FACILITY_TOWER,
)
from processing.sectors import SectorPrefixTables, reduce_callsign

logger = logging.getLogger(__name__)

AIRPORT_SUFFIXES = ("_TWR", "_GND", "_DEL", "_ATIS")
TRACON_SUFFIXES = ("_APP", "_DEP")

AIRPORT_FACILITIES = {
    "TWR": FACILITY_TOWER,
    "GND": FACILITY_GROUND,
    "DEL": FACILITY_DELIVERY,
}


def airport_facility(callsign: str) -> int:
    suffix = callsign.split("_")[-1].upper()
    return AIRPORT_FACILITIES.get(suffix, FACILITY_TOWER)


def map_bookings(bookings: Iterable[dict], tables: SectorPrefixTables) -> List[dict]:
    """
    Resolve each booking to a sector code and facility.

    Airport positions use the first callsign segment, approach/departure
    positions the TRACON table with the first segment as fallback, anything
    else the FIR table. Bookings without a FIR match are dropped.
    """
    parsed = []
    for booking in bookings:
        callsign = booking.get("callsign", "").upper()
        levels = reduce_callsign(callsign)

        if callsign.endswith(AIRPORT_SUFFIXES):
            sector_id = levels[-1]
            facility = airport_facility(callsign)
        elif callsign.endswith(TRACON_SUFFIXES):
            sector_id = tables.find_prefix_match(levels, FACILITY_APPROACH) or levels[-1]
            facility = FACILITY_APPROACH
        else:
            sector_id = tables.find_prefix_match(levels, FACILITY_CENTER)
            facility = FACILITY_CENTER

        if not sector_id:
            logger.debug(f"Booking {callsign} has no sector match")
            continue

        parsed.append({
            "id": sector_id,
            "facility": facility,
            "callsign": booking.get("callsign", ""),
            "type": booking.get("type"),
            "start": booking.get("start", ""),
            "end": booking.get("end", ""),
        })

    return parsed
