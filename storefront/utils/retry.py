# storefront/utils/retry.py
import logging

import redis
import requests
from tenacity import before_sleep_log, retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from storefront.utils import settings
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


def http_retry(
    attempts: int = settings.PRODUCT_SERVICE_RETRY_ATTEMPTS,
    backoff: float = settings.PRODUCT_SERVICE_RETRY_BACKOFF_SECONDS,
):
    """Retry catalog calls on transport errors. HTTP error statuses are not retried."""
    return retry(
        reraise=True,
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=backoff, min=backoff, max=backoff * 10),
        retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout)),
        before_sleep=before_sleep_log(logger, logging.WARNING),
    )


def redis_retry(
    attempts: int = settings.EVENT_CLAIM_RETRY_ATTEMPTS,
    backoff: float = settings.EVENT_CLAIM_RETRY_BACKOFF_SECONDS,
):
    return retry(
        reraise=True,
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=backoff, min=backoff, max=backoff * 5),
        retry=retry_if_exception_type((redis.ConnectionError, redis.TimeoutError)),
        before_sleep=before_sleep_log(logger, logging.WARNING),
    )
