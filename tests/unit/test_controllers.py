"""
Unit tests for controller mapping and connection counting.
"""

from conftest import EDDF, feed_controller, make_pilot, make_snapshot, transceiver_entry
from processing.controllers import (
    assign_connections,
    controller_short,
    fuse_controllers,
    map_atis,
    map_controllers,
    parse_frequency_khz,
)

# One arc minute of latitude is one nautical mile
NM = 1 / 60


def pilot_on(frequency, lat=EDDF[0], lon=EDDF[1], callsign="DLH1"):
    return make_pilot(id=f"1_{callsign}_0", callsign=callsign, frequency=frequency, latitude=lat, longitude=lon)


class TestParseFrequency:

    def test_valid(self):
        assert parse_frequency_khz("121.700") == 121700
        assert parse_frequency_khz("118.275") == 118275

    def test_fallback(self):
        assert parse_frequency_khz("") == 122800
        assert parse_frequency_khz("n/a") == 122800


class TestMapping:

    def test_observers_excluded(self):
        snapshot = make_snapshot(controllers=[
            feed_controller(),
            feed_controller(cid=3, callsign="DLH_OBS", facility=0, frequency="199.998"),
        ])
        assert [c.callsign for c in map_controllers(snapshot)] == ["EDDF_TWR"]

    def test_atis_facility(self):
        snapshot = make_snapshot(atis=[
            feed_controller(callsign="EDDF_ATIS", frequency="118.025", text_atis=["INFO Q"], atis_code="Q"),
        ])
        atis = map_atis(snapshot)
        assert atis[0].facility == -1
        assert atis[0].frequency == 118025
        assert atis[0].atis == ["INFO Q"]

    def test_short_view(self):
        record = map_controllers(make_snapshot(controllers=[feed_controller()]))[0]
        assert controller_short(record) == {
            "callsign": "EDDF_TWR",
            "frequency": 119900,
            "facility": 4,
            "atis": None,
            "connections": 0,
        }


class TestAssignConnections:

    def test_shared_frequency_goes_to_nearest_transceiver(self):
        """Two ground sessions on 121.700, transceivers 5 nm and 40 nm from the pilot."""
        snapshot = make_snapshot(
            controllers=[
                feed_controller(cid=1, callsign="EDDF_N_GND", frequency="121.700", facility=3),
                feed_controller(cid=2, callsign="EDDF_GND", frequency="121.700", facility=3),
            ],
            transceivers=[
                transceiver_entry("EDDF_N_GND", 121700, EDDF[0] + 40 * NM, EDDF[1]),
                transceiver_entry("EDDF_GND", 121700, EDDF[0] + 5 * NM, EDDF[1]),
            ],
        )
        controllers = fuse_controllers(snapshot, [pilot_on(121700)])

        counts = {c.callsign: c.connections for c in controllers}
        assert counts == {"EDDF_N_GND": 0, "EDDF_GND": 1}

    def test_total_connections_match_tuned_pilots(self):
        snapshot = make_snapshot(
            controllers=[
                feed_controller(cid=1, callsign="EDDF_N_GND", frequency="121.700", facility=3),
                feed_controller(cid=2, callsign="EDDF_GND", frequency="121.700", facility=3),
                feed_controller(cid=3, callsign="EDDF_TWR", frequency="119.900"),
            ],
            transceivers=[
                transceiver_entry("EDDF_N_GND", 121700, EDDF[0] + 40 * NM, EDDF[1]),
                transceiver_entry("EDDF_GND", 121700, EDDF[0], EDDF[1]),
            ],
        )
        pilots = [
            pilot_on(121700, callsign="A"),
            pilot_on(121700, lat=EDDF[0] + 39 * NM, callsign="B"),
            pilot_on(119900, callsign="C"),
            pilot_on(122800, callsign="D"),
        ]
        controllers = fuse_controllers(snapshot, pilots)

        counts = {c.callsign: c.connections for c in controllers}
        assert counts == {"EDDF_N_GND": 1, "EDDF_GND": 1, "EDDF_TWR": 1}

    def test_tie_goes_to_first_session(self):
        snapshot = make_snapshot(
            controllers=[
                feed_controller(cid=1, callsign="EDDF_N_GND", frequency="121.700", facility=3),
                feed_controller(cid=2, callsign="EDDF_S_GND", frequency="121.700", facility=3),
            ],
            transceivers=[
                transceiver_entry("EDDF_N_GND", 121700, EDDF[0] + 10 * NM, EDDF[1]),
                transceiver_entry("EDDF_S_GND", 121700, EDDF[0] - 10 * NM, EDDF[1]),
            ],
        )
        for _ in range(3):
            controllers = map_controllers(snapshot)
            assign_connections(controllers, [pilot_on(121700)], snapshot.transceivers_by_callsign())
            assert [c.connections for c in controllers] == [1, 0]

    def test_session_without_matching_transceiver_is_not_a_candidate(self):
        snapshot = make_snapshot(
            controllers=[
                feed_controller(cid=1, callsign="EDDF_N_GND", frequency="121.700", facility=3),
                feed_controller(cid=2, callsign="EDDF_GND", frequency="121.700", facility=3),
            ],
            transceivers=[
                transceiver_entry("EDDF_N_GND", 121700, EDDF[0] + 40 * NM, EDDF[1]),
                transceiver_entry("EDDF_GND", 121900, EDDF[0], EDDF[1]),
            ],
        )
        controllers = fuse_controllers(snapshot, [pilot_on(121700)])
        assert [c.connections for c in controllers] == [1, 0]

    def test_no_candidates_counts_against_first_session(self):
        snapshot = make_snapshot(controllers=[
            feed_controller(cid=1, callsign="EDDF_N_GND", frequency="121.700", facility=3),
            feed_controller(cid=2, callsign="EDDF_GND", frequency="121.700", facility=3),
        ])
        controllers = fuse_controllers(snapshot, [pilot_on(121700), pilot_on(121700, callsign="X")])
        assert [c.connections for c in controllers] == [2, 0]

    def test_single_session_needs_no_transceiver(self):
        snapshot = make_snapshot(controllers=[feed_controller()])
        controllers = fuse_controllers(snapshot, [pilot_on(119900), pilot_on(119900, callsign="B")])
        assert controllers[0].connections == 2

    def test_atis_appended_after_controllers(self):
        snapshot = make_snapshot(
            controllers=[feed_controller()],
            atis=[feed_controller(callsign="EDDF_ATIS", frequency="118.025")],
        )
        controllers = fuse_controllers(snapshot, [])
        assert [(c.callsign, c.facility) for c in controllers] == [("EDDF_TWR", 4), ("EDDF_ATIS", -1)]
