"""Retry helper for network operations with exponential backoff."""

from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

import httpcore
import httpx

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_ERRORS = (
    httpx.ConnectError,
    httpx.ReadTimeout,
    httpx.WriteTimeout,
    httpx.PoolTimeout,
    httpx.RemoteProtocolError,
    httpcore.RemoteProtocolError,
    ConnectionError,
    TimeoutError,
)


def retry_on_network_error(
    func: Callable[[], T],
    max_retries: int = 3,
    initial_delay: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Retry a function on network/protocol errors with exponential backoff.

    Args:
        func: Callable to retry (should take no arguments)
        max_retries: Maximum number of attempts
        initial_delay: Initial delay in seconds (doubles each retry)
        sleep: Sleep function, replaceable in tests

    Returns:
        Function result

    Raises:
        Exception: Last network error if all retries fail, or any
            non-network error immediately

    Example:
        rows = retry_on_network_error(
            lambda: client.table("contacts").select("id").execute(),
            max_retries=3,
        )
    """
    delay = initial_delay

    for attempt in range(max_retries):
        try:
            return func()
        except RETRYABLE_ERRORS as e:
            if attempt >= max_retries - 1:
                logger.error("Network error after %d attempts: %s", max_retries, e)
                raise
            logger.warning(
                "Network error (attempt %d/%d): %s. Retrying in %.1fs...",
                attempt + 1,
                max_retries,
                e,
                delay,
            )
            sleep(delay)
            delay *= 2

    raise RuntimeError("retry_on_network_error called with max_retries < 1")
