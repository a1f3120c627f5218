"""
Prometheus metrics for outbound HTTP fetches.
"""

from prometheus_client import Counter, Histogram

FETCHES_TOTAL = Counter(
    'ingestion_fetches_total',
    'HTTP fetch attempts',
    ['source', 'status']
)

FETCH_LATENCY = Histogram(
    'ingestion_fetch_latency_seconds',
    'HTTP fetch duration',
    ['source']
)

FETCH_ERRORS = Counter(
    'ingestion_fetch_errors_total',
    'HTTP fetch errors',
    ['source', 'error_type']
)

FEED_SKIPPED = Counter(
    'ingestion_feed_skipped_total',
    'Feed documents skipped',
    ['reason']
)

WEATHER_REFRESHES = Counter(
    'ingestion_weather_refreshes_total',
    'Weather cache refreshes',
    ['feed', 'status']
)
