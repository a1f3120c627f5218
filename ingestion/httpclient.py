"""
Shared GET helper for the ingestion clients.
"""

import logging
import os
from typing import Optional

import requests

from ingestion.metrics import FETCH_ERRORS, FETCH_LATENCY, FETCHES_TOTAL

logger = logging.getLogger(__name__)

HTTP_TIMEOUT_SECONDS = int(os.getenv("HTTP_TIMEOUT_SECONDS", "30"))


def fetch(
    session: requests.Session,
    url: str,
    source: str,
    timeout: int = HTTP_TIMEOUT_SECONDS,
) -> Optional[requests.Response]:
    """
    GET a URL. Returns the response on HTTP 200, None on any failure.

    Failures are logged and counted, never raised.
    """
    try:
        with FETCH_LATENCY.labels(source=source).time():
            response = session.get(url, timeout=timeout)

        if response.status_code == 200:
            FETCHES_TOTAL.labels(source=source, status="success").inc()
            return response

        FETCHES_TOTAL.labels(source=source, status="error").inc()
        FETCH_ERRORS.labels(source=source, error_type=f"http_{response.status_code}").inc()
        logger.error(f"{source} fetch failed: HTTP {response.status_code}")
        return None

    except requests.exceptions.Timeout:
        FETCHES_TOTAL.labels(source=source, status="timeout").inc()
        FETCH_ERRORS.labels(source=source, error_type="timeout").inc()
        logger.error(f"{source} fetch timeout")
        return None

    except requests.exceptions.RequestException as e:
        FETCHES_TOTAL.labels(source=source, status="connection_error").inc()
        FETCH_ERRORS.labels(source=source, error_type="connection").inc()
        logger.error(f"{source} connection error: {e}")
        return None
