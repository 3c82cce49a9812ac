# storefront/utils/retry.py
import logging

import redis
import requests
import stripe
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from storefront.utils.settings import RETRY_ATTEMPTS
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

# błędy Redisa, po których ponowienie ma sens (ResponseError i tak się powtórzy)
TRANSIENT_REDIS_ERRORS = (redis.ConnectionError, redis.TimeoutError)

# odmowa Stripe (CardError, InvalidRequestError) się nie zmieni, sieć i limit mogą
TRANSIENT_STRIPE_ERRORS = (stripe.APIConnectionError, stripe.RateLimitError)


#tenacity retry, po RETRY_ATTEMPTS próbach wyjątek leci dalej (reraise)
def http_retry(attempts: int | None = None):
    return retry(
        reraise=True,
        stop=stop_after_attempt(attempts or RETRY_ATTEMPTS),
        wait=wait_exponential(multiplier=0.3, min=0.3, max=3),
        retry=retry_if_exception_type(requests.RequestException),
        before_sleep=before_sleep_log(logger, logging.WARNING),
    )


def redis_retry(attempts: int | None = None):
    return retry(
        reraise=True,
        stop=stop_after_attempt(attempts or RETRY_ATTEMPTS),
        wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
        retry=retry_if_exception_type(TRANSIENT_REDIS_ERRORS),
        before_sleep=before_sleep_log(logger, logging.WARNING),
    )


def gateway_retry(attempts: int | None = None):
    # ponowienie jest bezpieczne tylko z tym samym idempotency_key
    return retry(
        reraise=True,
        stop=stop_after_attempt(attempts or RETRY_ATTEMPTS),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        retry=retry_if_exception_type(TRANSIENT_STRIPE_ERRORS),
        before_sleep=before_sleep_log(logger, logging.WARNING),
    )
