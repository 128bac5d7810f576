"""
Outbound HTTP for payment and shipping adapters.

Every call carries a bounded timeout; failures are mapped onto the
transient/permanent adapter error split used by the retry helpers.
"""

import logging

import requests
from django.conf import settings

from .exceptions import PermanentAdapterError, TransientAdapterError

logger = logging.getLogger(__name__)

TRANSIENT_STATUS_CODES = {429}


def request_json(session: requests.Session, method: str, url: str, timeout=None, **kwargs):
    """
    Send a request and return the decoded JSON body.

    Raises:
        TransientAdapterError: timeout, connection error, HTTP 5xx or 429
        PermanentAdapterError: any other HTTP error, or a non-JSON body
    """
    timeout = timeout or settings.ADAPTER_TIMEOUT_SECONDS
    try:
        response = session.request(method, url, timeout=timeout, **kwargs)
    except requests.exceptions.Timeout as e:
        raise TransientAdapterError(f"{method} {url} timed out after {timeout}s") from e
    except requests.exceptions.ConnectionError as e:
        raise TransientAdapterError(f"{method} {url} connection failed: {e}") from e
    except requests.exceptions.RequestException as e:
        raise PermanentAdapterError(f"{method} {url} failed: {e}") from e

    status = response.status_code
    if status >= 500 or status in TRANSIENT_STATUS_CODES:
        raise TransientAdapterError(f"{method} {url} returned HTTP {status}", status_code=status)
    if status >= 400:
        logger.warning(f"{method} {url} rejected with HTTP {status}: {response.text[:500]}")
        raise PermanentAdapterError(f"{method} {url} returned HTTP {status}", status_code=status)

    try:
        return response.json()
    except ValueError as e:
        raise PermanentAdapterError(f"{method} {url} returned a non-JSON body") from e
