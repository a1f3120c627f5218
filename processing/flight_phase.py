"""
Flight phase state machine.

Each pilot with a flight plan carries a TimesBlock whose `state` walks
Boarding -> Taxi Out -> Climb -> Cruise -> Descent -> Taxi In -> On Block.
Once per cycle the current kinematics are turned into at most one
PhaseEvent, and the (state, event) pair is looked up in TRANSITIONS to get
the next state and the timestamp update to apply.
"""

import math
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

from processing.geo import haversine_nm
from processing.records import FlightPhase, PilotRecord, TimesBlock

TAXI_TIME = timedelta(minutes=10)
GATE_HOLD_PUSH = timedelta(minutes=5)
SCHEDULE_ROUNDING_SECONDS = 5 * 60
MAX_STOP_CYCLES = 5

# Initial estimation thresholds (ft/min, ft)
INIT_CLIMB_VS = 500
INIT_LEVEL_VS = 100
INIT_DESCENT_VS = -500
GROUND_AGL_FT = 200

# Transition thresholds (ft/min, ft)
LIFT_OFF_VS = 100
LEVEL_OFF_VS = 500
TOP_OF_DESCENT_VS = -500
TOUCHDOWN_VS = -100
TOUCHDOWN_AGL_FT = 200

# Touchdown heuristic
ROUTE_INFLATION = 1.1
APPROACH_SPEED_KT = 100
DECELERATION_KT_PER_S = 1.0
DESCENT_RATE_FT_PER_S = 25.0


class PhaseEvent(str, Enum):
    GATE_HOLD = "gate_hold"
    PUSHBACK = "pushback"
    LIFT_OFF = "lift_off"
    LEVEL_OFF = "level_off"
    TOP_OF_DESCENT = "top_of_descent"
    TOUCHDOWN = "touchdown"
    TAXIING = "taxiing"
    STOPPED = "stopped"
    PARKED = "parked"


class InvalidTransitionError(ValueError):
    """Raised when an event is detected that the transition table does not cover."""


def calculate_vertical_speed(current: PilotRecord, previous: Optional[PilotRecord]) -> int:
    """Vertical speed in ft/min between two samples; 0 when under a second apart."""
    if previous is None:
        return 0

    diff_seconds = (current.timestamp - previous.timestamp).total_seconds()
    if diff_seconds < 1:
        return 0

    delta_feet = current.altitude_ms - previous.altitude_ms
    return round(delta_feet / diff_seconds * 60)


def round_to_five_minutes(value: datetime) -> datetime:
    ts = value.timestamp()
    rounded = math.floor(ts / SCHEDULE_ROUNDING_SECONDS + 0.5) * SCHEDULE_ROUNDING_SECONDS
    return datetime.fromtimestamp(rounded, tz=timezone.utc)


def parse_deptime(deptime: str, now: datetime) -> Optional[datetime]:
    """"0020" -> 00:20Z on the current UTC day."""
    try:
        hours = int(deptime[0:2])
        minutes = int(deptime[2:4])
    except (ValueError, TypeError):
        return None

    if not (0 <= hours < 24 and 0 <= minutes < 60):
        return None

    return now.astimezone(timezone.utc).replace(hour=hours, minute=minutes, second=0, microsecond=0)


def _enroute(pilot: PilotRecord) -> timedelta:
    return timedelta(seconds=pilot.flight_plan.enroute_time if pilot.flight_plan else 0)


def estimate_initial_phase(pilot: PilotRecord) -> FlightPhase:
    """Best guess of the current phase for a flight seen without history."""
    fp = pilot.flight_plan
    if fp is None or not fp.departure.resolved or not fp.arrival.resolved:
        return FlightPhase.CRUISE

    dist_dep = haversine_nm(pilot.latitude, pilot.longitude, fp.departure.latitude, fp.departure.longitude)
    dist_arr = haversine_nm(pilot.latitude, pilot.longitude, fp.arrival.latitude, fp.arrival.longitude)
    closer_to_departure = dist_dep <= dist_arr
    on_ground = pilot.altitude_agl < GROUND_AGL_FT
    vs = pilot.vertical_speed

    if pilot.groundspeed == 0 and closer_to_departure:
        return FlightPhase.BOARDING
    if on_ground and pilot.groundspeed > 0 and closer_to_departure:
        return FlightPhase.TAXI_OUT
    if on_ground and pilot.groundspeed > 0 and not closer_to_departure:
        return FlightPhase.TAXI_IN
    if vs > INIT_CLIMB_VS:
        return FlightPhase.CLIMB
    if abs(vs) < INIT_LEVEL_VS:
        return FlightPhase.CRUISE
    if vs < INIT_DESCENT_VS:
        return FlightPhase.DESCENT
    return FlightPhase.CRUISE


def estimate_touchdown(pilot: PilotRecord, now: datetime) -> Optional[datetime]:
    """
    Estimate touchdown from two competing remaining-time figures.

    Route figure: the unflown share of the planned enroute time, where progress
    is distance from departure over the great-circle route inflated for
    non-direct routing. Energy figure: time to slow to approach speed plus time
    to descend the current height above ground. The larger one wins.
    """
    fp = pilot.flight_plan
    if fp is None or not fp.departure.resolved or not fp.arrival.resolved:
        return None

    total = haversine_nm(
        fp.departure.latitude, fp.departure.longitude, fp.arrival.latitude, fp.arrival.longitude
    ) * ROUTE_INFLATION
    flown = haversine_nm(fp.departure.latitude, fp.departure.longitude, pilot.latitude, pilot.longitude)
    progress = min(flown / total, 1.0) if total > 0 else 1.0
    route_remaining = (1 - progress) * fp.enroute_time

    decel_seconds = max(pilot.groundspeed - APPROACH_SPEED_KT, 0) / DECELERATION_KT_PER_S
    descent_seconds = max(pilot.altitude_agl, 0) / DESCENT_RATE_FT_PER_S
    energy_remaining = decel_seconds + descent_seconds

    return now + timedelta(seconds=max(route_remaining, energy_remaining))


def init_times(pilot: PilotRecord, now: datetime) -> Optional[TimesBlock]:
    """Create the TimesBlock for a flight plan seen for the first time."""
    fp = pilot.flight_plan
    if fp is None:
        return None

    enroute = _enroute(pilot)
    sched_off_block = round_to_five_minutes(parse_deptime(fp.deptime, now) or now)
    sched_on_block = round_to_five_minutes(sched_off_block + TAXI_TIME + enroute + TAXI_TIME)

    lift_off = sched_off_block + TAXI_TIME
    touch_down = lift_off + enroute
    times = TimesBlock(
        sched_off_block=sched_off_block,
        off_block=sched_off_block,
        lift_off=lift_off,
        touch_down=touch_down,
        sched_on_block=sched_on_block,
        on_block=touch_down + TAXI_TIME,
        state=estimate_initial_phase(pilot),
    )

    if times.state in (FlightPhase.CLIMB, FlightPhase.CRUISE, FlightPhase.DESCENT):
        return _reestimate_touchdown(times, pilot, now)
    if times.state == FlightPhase.TAXI_IN:
        return _touchdown(times, pilot, now)
    return times


# ============================================
# Transition side effects
# ============================================

def _hold_at_gate(times: TimesBlock, pilot: PilotRecord, now: datetime) -> TimesBlock:
    off_block = now + GATE_HOLD_PUSH
    lift_off = off_block + TAXI_TIME
    touch_down = lift_off + _enroute(pilot)
    return replace(
        times, off_block=off_block, lift_off=lift_off, touch_down=touch_down,
        on_block=touch_down + TAXI_TIME,
    )


def _pushback(times: TimesBlock, pilot: PilotRecord, now: datetime) -> TimesBlock:
    lift_off = now + TAXI_TIME
    touch_down = lift_off + _enroute(pilot)
    return replace(
        times, off_block=now, lift_off=lift_off, touch_down=touch_down,
        on_block=touch_down + TAXI_TIME,
    )


def _lift_off(times: TimesBlock, pilot: PilotRecord, now: datetime) -> TimesBlock:
    touch_down = now + _enroute(pilot)
    return replace(times, lift_off=now, touch_down=touch_down, on_block=touch_down + TAXI_TIME)


def _reestimate_touchdown(times: TimesBlock, pilot: PilotRecord, now: datetime) -> TimesBlock:
    touch_down = estimate_touchdown(pilot, now) or times.touch_down
    return replace(times, touch_down=touch_down, on_block=touch_down + TAXI_TIME)


def _touchdown(times: TimesBlock, pilot: PilotRecord, now: datetime) -> TimesBlock:
    return replace(times, touch_down=now, on_block=now + TAXI_TIME)


def _reset_stop_counter(times: TimesBlock, pilot: PilotRecord, now: datetime) -> TimesBlock:
    return replace(times, stop_counter=0)


def _count_stop(times: TimesBlock, pilot: PilotRecord, now: datetime) -> TimesBlock:
    return replace(times, stop_counter=times.stop_counter + 1)


def _park(times: TimesBlock, pilot: PilotRecord, now: datetime) -> TimesBlock:
    return replace(times, on_block=now)


SideEffect = Callable[[TimesBlock, PilotRecord, datetime], TimesBlock]

TRANSITIONS: Dict[Tuple[FlightPhase, PhaseEvent], Tuple[FlightPhase, SideEffect]] = {
    (FlightPhase.BOARDING, PhaseEvent.GATE_HOLD): (FlightPhase.BOARDING, _hold_at_gate),
    (FlightPhase.BOARDING, PhaseEvent.PUSHBACK): (FlightPhase.TAXI_OUT, _pushback),
    (FlightPhase.TAXI_OUT, PhaseEvent.LIFT_OFF): (FlightPhase.CLIMB, _lift_off),
    (FlightPhase.CLIMB, PhaseEvent.LEVEL_OFF): (FlightPhase.CRUISE, _reestimate_touchdown),
    (FlightPhase.CRUISE, PhaseEvent.TOP_OF_DESCENT): (FlightPhase.DESCENT, _reestimate_touchdown),
    (FlightPhase.DESCENT, PhaseEvent.TOUCHDOWN): (FlightPhase.TAXI_IN, _touchdown),
    (FlightPhase.TAXI_IN, PhaseEvent.TAXIING): (FlightPhase.TAXI_IN, _reset_stop_counter),
    (FlightPhase.TAXI_IN, PhaseEvent.STOPPED): (FlightPhase.TAXI_IN, _count_stop),
    (FlightPhase.TAXI_IN, PhaseEvent.PARKED): (FlightPhase.ON_BLOCK, _park),
}


def detect_event(pilot: PilotRecord, times: TimesBlock, now: datetime) -> Optional[PhaseEvent]:
    """Turn the current kinematics into the single event relevant to the current phase."""
    state = times.state
    gs = pilot.groundspeed
    vs = pilot.vertical_speed

    if state == FlightPhase.BOARDING:
        if gs > 0:
            return PhaseEvent.PUSHBACK
        if now > times.sched_off_block:
            return PhaseEvent.GATE_HOLD
    elif state == FlightPhase.TAXI_OUT:
        if vs > LIFT_OFF_VS:
            return PhaseEvent.LIFT_OFF
    elif state == FlightPhase.CLIMB:
        if vs < LEVEL_OFF_VS:
            return PhaseEvent.LEVEL_OFF
    elif state == FlightPhase.CRUISE:
        if vs < TOP_OF_DESCENT_VS:
            return PhaseEvent.TOP_OF_DESCENT
    elif state == FlightPhase.DESCENT:
        if vs > TOUCHDOWN_VS and pilot.altitude_agl < TOUCHDOWN_AGL_FT:
            return PhaseEvent.TOUCHDOWN
    elif state == FlightPhase.TAXI_IN:
        if gs > 0:
            return PhaseEvent.TAXIING
        if times.stop_counter > MAX_STOP_CYCLES:
            return PhaseEvent.PARKED
        return PhaseEvent.STOPPED

    return None


def advance_times(pilot: PilotRecord, times: TimesBlock, now: datetime) -> TimesBlock:
    """Apply at most one transition to a cached TimesBlock."""
    event = detect_event(pilot, times, now)
    if event is None:
        return times

    try:
        next_state, effect = TRANSITIONS[(times.state, event)]
    except KeyError:
        raise InvalidTransitionError(f"No transition for {times.state.value} on {event.value}")

    updated = effect(times, pilot, now)
    return replace(updated, state=next_state)
