#!/usr/bin/env python3
"""
Entry point for the radarfuse processing service.

Pulls the feed on a fixed schedule, runs one fusion cycle per new snapshot
and publishes deltas, dashboard and bookings.
"""

import os
import sys
import time
import signal
import logging
import threading
from datetime import datetime, timezone

from prometheus_client import start_http_server

from ingestion.bookings import BookingsClient
from ingestion.events import EventsCache
from ingestion.feed_client import VatsimFeedClient
from ingestion.reference import ReferenceDataStore
from ingestion.weather import WeatherCache
from processing.kafka_publisher import DeltaPublisher
from processing.pipeline import FusionPipeline

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

logging.basicConfig(
    level=LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    stream=sys.stdout
)

logger = logging.getLogger(__name__)

# Prometheus metrics server port (matching prometheus/prometheus.yml scrape config)
METRICS_PORT = int(os.getenv("METRICS_PORT", "8080"))
FETCH_INTERVAL = int(os.getenv("FETCH_INTERVAL_SECONDS", "15"))


def start_metrics_server():
    """Start Prometheus metrics server in background thread."""
    try:
        start_http_server(METRICS_PORT)
        logger.info(f"Prometheus metrics server started on port {METRICS_PORT}")
    except Exception as e:
        logger.error(f"Failed to start metrics server: {e}")


def run_once(
    client: VatsimFeedClient,
    pipeline: FusionPipeline,
    publisher: DeltaPublisher,
    bookings: BookingsClient,
) -> bool:
    """One scheduled tick. Returns True if a cycle ran."""
    now = datetime.now(timezone.utc)

    raw_bookings = bookings.fetch_if_due(now)
    if raw_bookings is not None:
        publisher.publish_bookings(pipeline.map_bookings(raw_bookings), now)

    snapshot = client.fetch_snapshot()
    if snapshot is None:
        return False

    result = pipeline.run_cycle(snapshot, now)
    publisher.publish_delta(result)
    publisher.publish_dashboard(result.dashboard, now)
    return True


def main():
    logger.info("=" * 50)
    logger.info("radarfuse Processing - Starting")
    logger.info(f"Fetch interval: {FETCH_INTERVAL}s")
    logger.info("=" * 50)

    metrics_thread = threading.Thread(target=start_metrics_server, daemon=True)
    metrics_thread.start()

    weather = WeatherCache()
    weather.start()

    pipeline = FusionPipeline(
        reference=ReferenceDataStore(),
        weather=weather,
        events=EventsCache(),
    )
    client = VatsimFeedClient()
    bookings = BookingsClient()
    publisher = DeltaPublisher()

    stop = threading.Event()

    def handle_signal(signum, frame):
        logger.info(f"Received signal {signum}, shutting down...")
        stop.set()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    while not stop.is_set():
        started = time.monotonic()
        try:
            run_once(client, pipeline, publisher, bookings)
        except Exception as e:
            logger.error(f"Cycle failed, retrying next tick: {e}", exc_info=True)

        elapsed = time.monotonic() - started
        stop.wait(max(FETCH_INTERVAL - elapsed, 0))

    pipeline.shutdown()
    publisher.close()
    logger.info("radarfuse Processing - Stopped")


if __name__ == "__main__":
    main()
