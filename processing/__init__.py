"""
radarfuse Processing Package

Per-cycle fusion of pilots, controllers and airports, delta computation and
publishing.
"""
