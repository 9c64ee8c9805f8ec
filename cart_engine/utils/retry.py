# cart_engine/utils/retry.py
import logging

import redis
import requests
from tenacity import before_sleep_log, retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from cart_engine.utils.logging import get_logger

logger = get_logger(__name__)

#tylko bledy transportu - 404 z katalogu albo WRONGTYPE z redisa nie zniknie po ponowieniu
_HTTP_TRANSIENT = (requests.ConnectionError, requests.Timeout)
_REDIS_TRANSIENT = (redis.ConnectionError, redis.TimeoutError)


def _transient_retry(exceptions, multiplier: float, max_wait: float, attempts: int = 3):
    return retry(
        reraise=True,
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=multiplier, min=multiplier, max=max_wait),
        retry=retry_if_exception_type(exceptions),
        before_sleep=before_sleep_log(logger, logging.WARNING),
    )


def http_retry():
    """Odczyty katalogu po HTTP."""
    return _transient_retry(_HTTP_TRANSIENT, multiplier=0.3, max_wait=3)


def redis_retry():
    return _transient_retry(_REDIS_TRANSIENT, multiplier=0.2, max_wait=2)
