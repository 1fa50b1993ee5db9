"""
HTTP helpers shared by the providers and the downloader.

Transient failures (connection errors, timeouts, HTTP 429 and 5xx) are retried
with exponential backoff: 1s, 2s, 4s, ... Anything else is raised at once.
"""
import time
from typing import Callable, Optional

import requests

from rotator.state import RETRY_BASE_DELAY, TRANSIENT_STATUS_CODES
from logging_config import get_logger

logger = get_logger(__name__)


def is_transient(error: Exception) -> bool:
    if isinstance(error, (requests.exceptions.ConnectionError, requests.exceptions.Timeout)):
        return True
    if isinstance(error, requests.exceptions.HTTPError) and error.response is not None:
        return error.response.status_code in TRANSIENT_STATUS_CODES
    return False


def request_with_retry(
    session: requests.Session,
    method: str,
    url: str,
    *,
    timeout: float = 15,
    retries: int = 3,
    sleep: Callable[[float], None] = time.sleep,
    **kwargs,
) -> requests.Response:
    """
    Perform an HTTP request, retrying transient failures up to `retries` times.

    Returns:
        The successful response (status < 400)

    Raises:
        requests.exceptions.RequestException: the last error once retries are
        exhausted, or immediately for a non-transient error (e.g. 404)
    """
    last_error: Optional[Exception] = None
    for attempt in range(retries + 1):
        try:
            response = session.request(method, url, timeout=timeout, **kwargs)
            response.raise_for_status()
            return response
        except requests.exceptions.RequestException as e:
            if not is_transient(e):
                raise
            last_error = e
            if attempt < retries:
                delay = RETRY_BASE_DELAY * (2 ** attempt)
                logger.debug(f"Transient error for {_safe_url(url)} ({e}); retry {attempt + 1}/{retries} in {delay:.0f}s")
                sleep(delay)
    raise last_error


def get_with_retry(session: requests.Session, url: str, **kwargs) -> requests.Response:
    return request_with_retry(session, "GET", url, **kwargs)


def _safe_url(url: str) -> str:
    # Keep API keys out of the logs
    return url.split("?", 1)[0]
