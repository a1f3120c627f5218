"""
Prometheus metrics for the processing service.
"""

from prometheus_client import Counter, Gauge, Histogram

CYCLES_TOTAL = Counter(
    'processing_cycles_total',
    'Fusion cycles by outcome',
    ['status']
)

CYCLE_DURATION = Histogram(
    'processing_cycle_duration_seconds',
    'Wall time of one fusion cycle',
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

FUSED_ENTITIES = Gauge(
    'processing_fused_entities',
    'Entities in the fused snapshot',
    ['family']
)

DELTA_ITEMS = Counter(
    'processing_delta_items_total',
    'Items emitted in deltas',
    ['family', 'kind']
)

AIRPORT_LOOKUPS = Counter(
    'processing_airport_lookups_total',
    'Airport coordinate lookups',
    ['result']
)

SECTOR_MISSES = Counter(
    'processing_sector_misses_total',
    'Controller sessions without a matching sector prefix',
    ['sector']
)

MESSAGES_PUBLISHED = Counter(
    'processing_messages_published_total',
    'Envelopes delivered to Kafka',
    ['topic']
)
