"""
radarfuse Contracts Package

Provides shared constants and validation for message contracts.
"""

from contracts.constants import *
from contracts.validation import (
    FeedSnapshot,
    FeedPilot,
    FeedFlightPlan,
    FeedController,
    FeedAtis,
    FeedTransceiver,
    FeedTransceiverEntry,
    DeltaEnvelope,
    DashboardEnvelope,
    BookingsEnvelope,
    validate_feed_snapshot,
    validate_delta_envelope,
    validate_dashboard_envelope,
    validate_bookings_envelope,
)

__all__ = [
    # Constants
    "SCHEMA_VERSION",
    "KAFKA_TOPIC_DELTA",
    "KAFKA_TOPIC_DASHBOARD",
    "KAFKA_TOPIC_BOOKINGS",
    "MESSAGE_TYPE_DELTA",
    "MESSAGE_TYPE_DASHBOARD",
    "MESSAGE_TYPE_BOOKINGS",
    # Models
    "FeedSnapshot",
    "FeedPilot",
    "FeedFlightPlan",
    "FeedController",
    "FeedAtis",
    "FeedTransceiver",
    "FeedTransceiverEntry",
    "DeltaEnvelope",
    "DashboardEnvelope",
    "BookingsEnvelope",
    # Validators
    "validate_feed_snapshot",
    "validate_delta_envelope",
    "validate_dashboard_envelope",
    "validate_bookings_envelope",
]
