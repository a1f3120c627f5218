"""
Unit tests for airport aggregation.
"""

import gzip
from datetime import timedelta
from unittest.mock import MagicMock

from conftest import NOW, make_pilot, make_plan, make_times
from ingestion.weather import WeatherCache
from processing.airports import _fold_delay, aggregate_airports, airport_view, arrival_delay, departure_delay
from processing.records import AirportRef, FlightPhase, TrafficBlock


class FakeWeather:
    def __init__(self, metars=None, tafs=None):
        self.metars = metars or {}
        self.tafs = tafs or {}

    def snapshot(self):
        return self.metars, self.tafs


def flight(dep, arr, times=None, callsign="DLH1"):
    plan = make_plan(departure=AirportRef(dep), arrival=AirportRef(arr))
    return make_pilot(id=f"1_{callsign}_0", callsign=callsign, flight_plan=plan, times=times)


class TestDelays:

    def test_departure_delay_minutes(self):
        times = make_times(FlightPhase.BOARDING, off_block=NOW + timedelta(minutes=30))
        assert departure_delay(make_pilot(times=times)) == 30

    def test_clamped_to_two_hours(self):
        times = make_times(FlightPhase.DESCENT, on_block=NOW + timedelta(hours=6))
        assert arrival_delay(make_pilot(times=times)) == 120

    def test_early_is_zero(self):
        times = make_times(FlightPhase.BOARDING, off_block=NOW - timedelta(minutes=15))
        assert departure_delay(make_pilot(times=times)) == 0

    def test_no_times(self):
        assert departure_delay(make_pilot()) == 0
        assert arrival_delay(make_pilot()) == 0

    def test_running_average(self):
        block = TrafficBlock()
        for delay in (10, 0, 20, 25):
            _fold_delay(block, delay)

        assert block.traffic_count == 4
        assert block.flights_delayed == 3
        assert block.average_delay == 18


class TestAggregateAirports:

    def setup_method(self):
        self.pilots = [
            flight("EDDF", "EGLL", callsign="A"),
            flight("EDDF", "EGLL", callsign="B"),
            flight("EDDF", "LFPG", callsign="C"),
            flight("EGLL", "EDDF", callsign="D"),
        ]

    def test_traffic_counts(self):
        airports = aggregate_airports(self.pilots)

        assert set(airports) == {"EDDF", "EGLL", "LFPG"}
        assert airports["EDDF"].dep_traffic.traffic_count == 3
        assert airports["EDDF"].arr_traffic.traffic_count == 1
        assert airports["LFPG"].dep_traffic.traffic_count == 0
        assert airports["LFPG"].arr_traffic.traffic_count == 1

    def test_busiest_and_unique_routes(self):
        airports = aggregate_airports(self.pilots)

        eddf = airports["EDDF"]
        assert eddf.busiest_departure == "EDDF-EGLL"
        assert eddf.busiest_arrival == "EGLL-EDDF"
        assert eddf.unique_departures == 2
        assert eddf.unique_arrivals == 1

        lfpg = airports["LFPG"]
        assert lfpg.busiest_departure == "-"
        assert lfpg.busiest_arrival == "EDDF-LFPG"

    def test_delays_are_aggregated(self):
        late = make_times(FlightPhase.BOARDING, off_block=NOW + timedelta(minutes=20),
                          on_block=NOW + timedelta(hours=1, minutes=40))
        airports = aggregate_airports([flight("EDDF", "EGLL", times=late), flight("EDDF", "EGLL", callsign="B")])

        assert airports["EDDF"].dep_traffic == TrafficBlock(traffic_count=2, flights_delayed=1, average_delay=20)
        assert airports["EGLL"].arr_traffic == TrafficBlock(traffic_count=2, flights_delayed=1, average_delay=20)

    def test_pilots_without_plan_are_skipped(self):
        assert aggregate_airports([make_pilot(flight_plan=None)]) == {}

    def test_missing_arrival_still_counts_departure(self):
        airports = aggregate_airports([flight("EDDF", ""), flight("", "EGLL", callsign="B")])

        assert set(airports) == {"EDDF", "EGLL"}
        assert airports["EDDF"].dep_traffic.traffic_count == 1
        assert airports["EDDF"].arr_traffic.traffic_count == 0
        assert airports["EGLL"].arr_traffic.traffic_count == 1
        assert airports["EDDF"].unique_departures == 0
        assert airports["EDDF"].busiest_departure == "-"

    def test_weather_attached(self):
        weather = FakeWeather(metars={"EDDF": "EDDF 191150Z 25010KT CAVOK"}, tafs={"EGLL": "TAF EGLL 191100Z"})
        airports = aggregate_airports([flight("EDDF", "EGLL")], weather)

        assert airports["EDDF"].metar == "EDDF 191150Z 25010KT CAVOK"
        assert airports["EDDF"].taf is None
        assert airports["EGLL"].metar is None
        assert airports["EGLL"].taf == "TAF EGLL 191100Z"

    def test_refresh_during_aggregation_does_not_mix_generations(self):
        def gzipped(tag, text):
            reports = "".join(
                f"<{tag}><station_id>{icao}</station_id><raw_text>{text}</raw_text></{tag}>"
                for icao in ("EDDF", "EGLL")
            )
            return gzip.compress(f"<response><data>{reports}</data></response>".encode())

        def serve(generation):
            def get(url, timeout=None):
                response = MagicMock(status_code=200)
                tag = "METAR" if url == "metar" else "TAF"
                response.content = gzipped(tag, f"{tag} {generation}")
                return response
            cache.session.get.side_effect = get

        cache = WeatherCache(metar_url="metar", taf_url="taf")
        cache.session = MagicMock()
        serve("gen1")
        cache.refresh(NOW)

        take_snapshot = cache.snapshot

        def snapshot_then_refresh():
            maps = take_snapshot()
            serve("gen2")
            cache.refresh(NOW)
            return maps

        cache.snapshot = snapshot_then_refresh
        airports = aggregate_airports([flight("EDDF", "EGLL")], cache)

        assert {icao: (a.metar, a.taf) for icao, a in airports.items()} == {
            "EDDF": ("METAR gen1", "TAF gen1"),
            "EGLL": ("METAR gen1", "TAF gen1"),
        }
        assert cache.get_metar("EGLL") == "METAR gen2"

    def test_view(self):
        view = airport_view(aggregate_airports(self.pilots)["EGLL"])

        assert view["icao"] == "EGLL"
        assert view["dep_traffic"] == {"traffic_count": 1, "flights_delayed": 0, "average_delay": 0}
        assert view["busiest"] == {"departure": "EGLL-EDDF", "arrival": "EDDF-EGLL"}
        assert view["unique"] == {"departures": 1, "arrivals": 1}
