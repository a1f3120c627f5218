"""
Sector merging.

Raw controller sessions are grouped into logical sectors. FIR and TRACON
sessions are matched against callsign prefix tables built from the boundary
reference data; airport positions group by the first callsign segment.
"""

import logging
from typing import Dict, Iterable, List, Optional, Protocol

from contracts.constants import FACILITY_APPROACH, FACILITY_CENTER, SECTOR_AIRPORT, SECTOR_FIR, SECTOR_TRACON
from processing.controllers import controller_short
from processing.metrics import SECTOR_MISSES
from processing.records import ControllerRecord, MergedController

logger = logging.getLogger(__name__)


class BoundaryStore(Protocol):
    def get_version(self, kind: str) -> Optional[str]: ...

    def get_features(self, kind: str) -> Optional[List[dict]]: ...


def reduce_callsign(callsign: str) -> List[str]:
    """"EDGG_N_CTR" -> ["EDGG_N_CTR", "EDGG_N", "EDGG"]"""
    parts = callsign.split("_")
    return ["_".join(parts[:i]) for i in range(len(parts), 0, -1)]


class SectorPrefixTables:
    """Callsign prefix -> sector id tables, rebuilt when the reference version changes."""

    def __init__(self):
        self.fir_prefixes: Dict[str, str] = {}
        self.tracon_prefixes: Dict[str, str] = {}
        self.fir_version: Optional[str] = None
        self.tracon_version: Optional[str] = None

    def refresh(self, store: BoundaryStore) -> bool:
        """Reload the tables whose version marker moved. Returns True if anything was rebuilt."""
        rebuilt = False

        fir_version = store.get_version(SECTOR_FIR)
        if fir_version != self.fir_version:
            features = store.get_features(SECTOR_FIR)
            if features is not None:
                self.fir_prefixes = self._build_fir_table(features)
                self.fir_version = fir_version
                rebuilt = True
                logger.info(f"FIR prefixes rebuilt: {len(self.fir_prefixes)} entries (version {fir_version})")

        tracon_version = store.get_version(SECTOR_TRACON)
        if tracon_version != self.tracon_version:
            features = store.get_features(SECTOR_TRACON)
            if features is not None:
                self.tracon_prefixes = self._build_tracon_table(features)
                self.tracon_version = tracon_version
                rebuilt = True
                logger.info(f"TRACON prefixes rebuilt: {len(self.tracon_prefixes)} entries (version {tracon_version})")

        return rebuilt

    @staticmethod
    def _build_fir_table(features: Iterable[dict]) -> Dict[str, str]:
        table = {}
        for feature in features:
            props = feature["properties"]
            sector_id = props["id"]
            prefix = props.get("callsign_prefix", "")
            # An empty prefix means controllers log on with the FIR id itself
            table[prefix or sector_id] = sector_id
        return table

    @staticmethod
    def _build_tracon_table(features: Iterable[dict]) -> Dict[str, str]:
        table = {}
        for feature in features:
            props = feature["properties"]
            prefixes = props.get("prefix", [])
            if isinstance(prefixes, str):
                prefixes = [prefixes]
            for prefix in prefixes:
                table[prefix] = props["id"]
        return table

    def find_prefix_match(self, levels: List[str], facility: int) -> Optional[str]:
        """First (longest) callsign level registered in the FIR or TRACON table."""
        lookup = self.fir_prefixes if facility == FACILITY_CENTER else self.tracon_prefixes
        for level in levels:
            match = lookup.get(level)
            if match:
                return match
        return None


def sector_for(controller: ControllerRecord, tables: SectorPrefixTables) -> Optional[tuple]:
    """(group id, sector kind) for one session, or None on a table miss."""
    levels = reduce_callsign(controller.callsign)

    if controller.facility == FACILITY_CENTER:
        kind = SECTOR_FIR
        code = tables.find_prefix_match(levels, controller.facility)
    elif controller.facility == FACILITY_APPROACH:
        kind = SECTOR_TRACON
        code = tables.find_prefix_match(levels, controller.facility)
    else:
        kind = SECTOR_AIRPORT
        code = levels[-1]

    if not code:
        SECTOR_MISSES.labels(sector=kind).inc()
        logger.debug(f"No {kind} sector for {controller.callsign}")
        return None

    return f"{kind}_{code}", kind


def merge_controllers(
    controllers: Iterable[ControllerRecord], tables: SectorPrefixTables
) -> Dict[str, MergedController]:
    """Group sessions by sector id, in first-seen order. Membership is rebuilt every cycle."""
    merged: Dict[str, MergedController] = {}
    for controller in controllers:
        sector = sector_for(controller, tables)
        if sector is None:
            continue

        group_id, kind = sector
        group = merged.get(group_id)
        if group is None:
            group = merged[group_id] = MergedController(id=group_id, facility=kind)
        group.controllers.append(controller)

    return merged


def merged_view(group: MergedController) -> dict:
    return {
        "id": group.id,
        "facility": group.facility,
        "controllers": [controller_short(c) for c in group.controllers],
    }
