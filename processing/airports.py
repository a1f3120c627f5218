"""
Airport traffic aggregation.

Airport records are rebuilt from scratch every cycle out of the fused pilot
collection; nothing is carried over between cycles.
"""

from collections import defaultdict
from dataclasses import asdict
from typing import Dict, Iterable, Optional, Protocol, Tuple

from processing.records import AirportRecord, PilotRecord, TrafficBlock

MAX_DELAY_MINUTES = 120


class WeatherSource(Protocol):
    def snapshot(self) -> Tuple[Dict[str, str], Dict[str, str]]: ...


def _clamp_delay(minutes: float) -> float:
    return min(max(minutes, 0), MAX_DELAY_MINUTES)


def departure_delay(pilot: PilotRecord) -> float:
    """Minutes between best-known and scheduled off-block, clamped to [0, 120]."""
    times = pilot.times
    if times is None or times.off_block is None:
        return 0
    return _clamp_delay((times.off_block - times.sched_off_block).total_seconds() / 60)


def arrival_delay(pilot: PilotRecord) -> float:
    """Minutes between best-known and scheduled on-block, clamped to [0, 120]."""
    times = pilot.times
    if times is None or times.on_block is None:
        return 0
    return _clamp_delay((times.on_block - times.sched_on_block).total_seconds() / 60)


def _fold_delay(block: TrafficBlock, delay: float) -> None:
    block.traffic_count += 1
    if delay != 0:
        block.flights_delayed += 1
        n = block.flights_delayed
        block.average_delay = round((block.average_delay * (n - 1) + delay) / n)


def aggregate_airports(
    pilots: Iterable[PilotRecord],
    weather: Optional[WeatherSource] = None,
) -> Dict[str, AirportRecord]:
    """
    One record per airport used as departure or arrival, keyed by ICAO.

    Weather is read from a single cache snapshot taken before aggregation, so
    every airport of the cycle sees the same weather generation.
    """
    metars, tafs = weather.snapshot() if weather is not None else ({}, {})

    airports: Dict[str, AirportRecord] = {}
    routes: Dict[str, Dict[str, int]] = defaultdict(lambda: defaultdict(int))

    for pilot in pilots:
        fp = pilot.flight_plan
        if fp is None:
            continue

        dep, arr = fp.departure.icao, fp.arrival.icao
        if dep:
            if dep not in airports:
                airports[dep] = AirportRecord(icao=dep)
            _fold_delay(airports[dep].dep_traffic, departure_delay(pilot))
        if arr:
            if arr not in airports:
                airports[arr] = AirportRecord(icao=arr)
            _fold_delay(airports[arr].arr_traffic, arrival_delay(pilot))

        if not dep or not arr:
            continue

        route = f"{dep}-{arr}"
        routes[dep][route] += 1
        routes[arr][route] += 1

    for icao, counts in routes.items():
        record = airports[icao]
        busiest_dep_count = busiest_arr_count = 0
        for route, count in counts.items():
            route_dep, route_arr = route.split("-", 1)
            if route_dep == icao:
                record.unique_departures += 1
                if count > busiest_dep_count:
                    record.busiest_departure, busiest_dep_count = route, count
            elif route_arr == icao:
                record.unique_arrivals += 1
                if count > busiest_arr_count:
                    record.busiest_arrival, busiest_arr_count = route, count

    for record in airports.values():
        record.metar = metars.get(record.icao)
        record.taf = tafs.get(record.icao)

    return airports


def airport_view(record: AirportRecord) -> dict:
    return {
        "icao": record.icao,
        "dep_traffic": asdict(record.dep_traffic),
        "arr_traffic": asdict(record.arr_traffic),
        "busiest": {"departure": record.busiest_departure, "arrival": record.busiest_arrival},
        "unique": {"departures": record.unique_departures, "arrivals": record.unique_arrivals},
        "metar": record.metar,
        "taf": record.taf,
    }
