#!/usr/bin/env python3
"""
Create the radarfuse Kafka topics.

- vatsim.delta: append-only, short retention (subscribers only need the tail)
- vatsim.dashboard: compacted, latest dashboard per key
- vatsim.bookings: compacted, latest booking list per key
"""

import os
import sys
import time
import logging
from typing import Dict, Iterable, List

from confluent_kafka.admin import AdminClient, ConfigResource, NewTopic

from contracts.constants import KAFKA_TOPIC_BOOKINGS, KAFKA_TOPIC_DASHBOARD, KAFKA_TOPIC_DELTA

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

REDPANDA_BROKER = os.getenv("REDPANDA_BROKER", "redpanda:9092")
DELTA_RETENTION_MS = str(60 * 60 * 1000)

TOPICS: Dict[str, dict] = {
    os.getenv("KAFKA_TOPIC_DELTA", KAFKA_TOPIC_DELTA): {
        "num_partitions": 1,
        "replication_factor": 1,
        "config": {
            "cleanup.policy": "delete",
            "retention.ms": DELTA_RETENTION_MS,
        }
    },
    os.getenv("KAFKA_TOPIC_DASHBOARD", KAFKA_TOPIC_DASHBOARD): {
        "num_partitions": 1,
        "replication_factor": 1,
        "config": {
            "cleanup.policy": "compact",
            "retention.ms": "-1",
        }
    },
    os.getenv("KAFKA_TOPIC_BOOKINGS", KAFKA_TOPIC_BOOKINGS): {
        "num_partitions": 1,
        "replication_factor": 1,
        "config": {
            "cleanup.policy": "compact",
            "retention.ms": "-1",
        }
    },
}


def missing_topics(existing: Iterable[str]) -> List[NewTopic]:
    """NewTopic specs for every configured topic not yet on the broker."""
    existing = set(existing)
    return [
        NewTopic(
            name,
            num_partitions=settings["num_partitions"],
            replication_factor=settings["replication_factor"],
            config=settings["config"]
        )
        for name, settings in TOPICS.items()
        if name not in existing
    ]


def wait_for_broker(admin_client: AdminClient, max_retries: int = 30, retry_delay: int = 2) -> bool:
    logger.info(f"Waiting for broker at {REDPANDA_BROKER}...")

    for attempt in range(1, max_retries + 1):
        try:
            admin_client.list_topics(timeout=5)
            logger.info("Broker is available")
            return True
        except Exception as e:
            logger.debug(f"Broker not ready (attempt {attempt}/{max_retries}): {e}")
            time.sleep(retry_delay)

    logger.error(f"Broker not available after {max_retries} attempts")
    return False


def create_topics(admin_client: AdminClient) -> bool:
    try:
        existing = admin_client.list_topics(timeout=10).topics.keys()
    except Exception as e:
        logger.error(f"Failed to list topics: {e}")
        return False

    to_create = missing_topics(existing)
    if not to_create:
        logger.info("All topics already exist")
        return True

    futures = admin_client.create_topics(to_create, request_timeout=30)
    ok = True
    for name, future in futures.items():
        try:
            future.result()
            logger.info(f"Created topic '{name}'")
        except Exception as e:
            logger.error(f"Failed to create topic '{name}': {e}")
            ok = False
    return ok


def verify_topic_configs(admin_client: AdminClient):
    for name, settings in TOPICS.items():
        resource = ConfigResource(ConfigResource.Type.TOPIC, name)
        try:
            config = admin_client.describe_configs([resource], request_timeout=10)[resource].result()
        except Exception as e:
            logger.warning(f"Could not verify config for '{name}': {e}")
            continue

        policy = config["cleanup.policy"].value
        expected = settings["config"]["cleanup.policy"]
        if policy != expected:
            logger.warning(f"Topic '{name}' cleanup.policy={policy} (expected {expected})")


def main():
    logger.info("=" * 50)
    logger.info("radarfuse Topic Initialization")
    logger.info("=" * 50)

    admin_client = AdminClient({
        "bootstrap.servers": REDPANDA_BROKER,
        "client.id": "radarfuse-topic-init"
    })

    if not wait_for_broker(admin_client):
        sys.exit(1)
    if not create_topics(admin_client):
        sys.exit(1)
    verify_topic_configs(admin_client)

    logger.info("Topic initialization complete")


if __name__ == "__main__":
    main()
