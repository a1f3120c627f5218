"""
Kafka publisher for deltas, dashboard and bookings envelopes.
"""

import os
import json
import logging
from datetime import datetime, timezone
from typing import List, Optional

from confluent_kafka import Producer

from contracts.constants import (
    KAFKA_TOPIC_BOOKINGS,
    KAFKA_TOPIC_DASHBOARD,
    KAFKA_TOPIC_DELTA,
    MESSAGE_TYPE_BOOKINGS,
    MESSAGE_TYPE_DASHBOARD,
    MESSAGE_TYPE_DELTA,
    PROVIDER_RADARFUSE,
    SCHEMA_VERSION,
)
from contracts.validation import (
    validate_bookings_envelope,
    validate_dashboard_envelope,
    validate_delta_envelope,
)
from processing.metrics import MESSAGES_PUBLISHED
from processing.pipeline import CycleResult

logger = logging.getLogger(__name__)

REDPANDA_BROKER = os.getenv("REDPANDA_BROKER", "redpanda:9092")
# Use constants from contracts, but allow override via env
TOPIC_DELTA = os.getenv("KAFKA_TOPIC_DELTA", KAFKA_TOPIC_DELTA)
TOPIC_DASHBOARD = os.getenv("KAFKA_TOPIC_DASHBOARD", KAFKA_TOPIC_DASHBOARD)
TOPIC_BOOKINGS = os.getenv("KAFKA_TOPIC_BOOKINGS", KAFKA_TOPIC_BOOKINGS)


def delivery_callback(err, msg):
    """Callback for delivery confirmation."""
    if err:
        logger.error(f"Delivery failed: {err}")
    else:
        MESSAGES_PUBLISHED.labels(topic=msg.topic()).inc()


def _envelope(message_type: str, payload, produced_at: Optional[datetime] = None) -> dict:
    return {
        "schema_version": SCHEMA_VERSION,
        "type": message_type,
        "produced_at": (produced_at or datetime.now(timezone.utc)).isoformat(),
        "source": {
            "provider": PROVIDER_RADARFUSE
        },
        "payload": payload,
    }


class DeltaPublisher:
    """Validates envelopes and produces them to their topics."""

    def __init__(self, producer: Optional[Producer] = None, broker: str = REDPANDA_BROKER):
        self.producer = producer or Producer({
            "bootstrap.servers": broker,
            "client.id": "radarfuse-processor",
            "acks": "all",
            "retries": 3,
            "retry.backoff.ms": 1000
        })

    def _produce(self, topic: str, key: str, envelope_dict: dict) -> bool:
        try:
            self.producer.produce(
                topic,
                key=key.encode(),
                value=json.dumps(envelope_dict),
                callback=delivery_callback
            )
            self.producer.poll(0)  # Trigger delivery callbacks
            return True
        except BufferError as e:
            logger.error(f"Producer queue full, dropping {topic} message: {e}")
        except Exception as e:
            logger.error(f"Error publishing to {topic}: {e}", exc_info=True)
        return False

    def publish_delta(self, result: CycleResult) -> bool:
        """
        Publish the three deltas of a cycle as one DeltaEnvelope.

        Returns:
            True if an envelope was handed to the producer
        """
        if all(delta.is_empty() for delta in result.deltas.values()):
            logger.debug("Empty delta, nothing to publish")
            return False

        payload = {family: delta.to_dict() for family, delta in result.deltas.items()}
        payload["timestamp"] = result.timestamp.isoformat()
        envelope_dict = _envelope(MESSAGE_TYPE_DELTA, payload, result.timestamp)

        is_valid, _, error = validate_delta_envelope(envelope_dict)
        if not is_valid:
            logger.error(f"Invalid delta envelope: {error}")
            return False

        return self._produce(TOPIC_DELTA, MESSAGE_TYPE_DELTA, envelope_dict)

    def publish_dashboard(self, dashboard: dict, produced_at: Optional[datetime] = None) -> bool:
        envelope_dict = _envelope(MESSAGE_TYPE_DASHBOARD, dashboard, produced_at)

        is_valid, _, error = validate_dashboard_envelope(envelope_dict)
        if not is_valid:
            logger.error(f"Invalid dashboard envelope: {error}")
            return False

        return self._produce(TOPIC_DASHBOARD, MESSAGE_TYPE_DASHBOARD, envelope_dict)

    def publish_bookings(self, bookings: List[dict], produced_at: Optional[datetime] = None) -> bool:
        envelope_dict = _envelope(MESSAGE_TYPE_BOOKINGS, bookings, produced_at)

        is_valid, _, error = validate_bookings_envelope(envelope_dict)
        if not is_valid:
            logger.error(f"Invalid bookings envelope: {error}")
            return False

        return self._produce(TOPIC_BOOKINGS, MESSAGE_TYPE_BOOKINGS, envelope_dict)

    def close(self, timeout: float = 10.0):
        """Flush outstanding messages."""
        remaining = self.producer.flush(timeout)
        if remaining:
            logger.warning(f"{remaining} messages still queued at shutdown")
