"""
radarfuse Ingestion Package

Clients for the network feed, weather, events, bookings and static
reference data.
"""
