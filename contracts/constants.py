"""
Shared constants for radarfuse services.

This module provides a single source of truth for:
- Kafka topic names
- Message types
- Schema versions
- Network facility codes

All services should import from this module to ensure consistency.
"""

# Schema version
SCHEMA_VERSION = 1

# Kafka Topic Names
KAFKA_TOPIC_DELTA = "vatsim.delta"
KAFKA_TOPIC_DASHBOARD = "vatsim.dashboard"
KAFKA_TOPIC_BOOKINGS = "vatsim.bookings"

# Message Types
MESSAGE_TYPE_DELTA = "delta"
MESSAGE_TYPE_DASHBOARD = "dashboard"
MESSAGE_TYPE_BOOKINGS = "bookings"

# Entity families carried in a delta
FAMILY_PILOTS = "pilots"
FAMILY_CONTROLLERS = "controllers"
FAMILY_AIRPORTS = "airports"

# Facility codes reported by the network
FACILITY_ATIS = -1
FACILITY_OBSERVER = 0
FACILITY_FSS = 1
FACILITY_DELIVERY = 2
FACILITY_GROUND = 3
FACILITY_TOWER = 4
FACILITY_APPROACH = 5
FACILITY_CENTER = 6

# Merged sector kinds
SECTOR_AIRPORT = "airport"
SECTOR_TRACON = "tracon"
SECTOR_FIR = "fir"

# Data Providers
PROVIDER_VATSIM = "vatsim"
PROVIDER_RADARFUSE = "radarfuse-processing"
