import logging
import time

from django.conf import settings

from .exceptions import TransientAdapterError

logger = logging.getLogger(__name__)


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Delay before retry number ``attempt`` (0-based): base * 2**attempt, capped."""
    return min(base_delay * (2 ** attempt), max_delay)


def call_with_retry(fn, *args, attempts=None, base_delay=None, max_delay=None, sleep=time.sleep, **kwargs):
    """
    Call an adapter method, retrying transient failures with capped exponential backoff.

    Permanent failures and any other exception propagate immediately. The
    last transient error is re-raised once attempts are used up.
    """
    config = settings.ADAPTER_RETRY
    attempts = attempts or config['ATTEMPTS']
    base_delay = config['BASE_DELAY'] if base_delay is None else base_delay
    max_delay = config['MAX_DELAY'] if max_delay is None else max_delay

    for attempt in range(attempts):
        try:
            return fn(*args, **kwargs)
        except TransientAdapterError as e:
            if attempt + 1 >= attempts:
                raise
            delay = backoff_delay(attempt, base_delay, max_delay)
            logger.warning(f"{getattr(fn, '__qualname__', fn)} failed ({e}); retry {attempt + 1} in {delay}s")
            sleep(delay)
