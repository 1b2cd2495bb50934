"""HTTP client for the marketplace API with timeout, retry and exponential backoff."""

from __future__ import annotations

import logging
import time
from typing import Any

import requests

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15
DEFAULT_RETRIES = 3
BACKOFF_BASE = 2.0

# Client errors that will not succeed on retry (bad token, bad params).
_NO_RETRY_STATUSES = {400, 401, 403, 404}


class NetworkError(Exception):
    """Raised on unrecoverable HTTP / connectivity failures."""


class ParseError(Exception):
    """Raised when response content cannot be parsed."""


def _backoff(attempt: int) -> float:
    return BACKOFF_BASE ** attempt


def _auth_headers(token: str | None, headers: dict[str, str] | None) -> dict[str, str]:
    merged = {"Accept": "application/json"}
    if token:
        merged["Authorization"] = token
    if headers:
        merged.update(headers)
    return merged


def get(
    url: str,
    *,
    token: str | None = None,
    timeout: int = DEFAULT_TIMEOUT,
    retries: int = DEFAULT_RETRIES,
    headers: dict[str, str] | None = None,
    params: dict[str, Any] | None = None,
    session: requests.Session | None = None,
) -> requests.Response:
    """GET with retry/backoff. Raises NetworkError on final failure."""
    client = session or requests.Session()
    all_headers = _auth_headers(token, headers)
    last_exc: Exception | None = None

    for attempt in range(retries):
        try:
            resp = client.get(url, timeout=timeout, headers=all_headers, params=params)
            resp.raise_for_status()
            return resp
        except requests.exceptions.Timeout as exc:
            last_exc = exc
            logger.warning("Timeout on attempt %d/%d: %s", attempt + 1, retries, url)
        except requests.exceptions.ConnectionError as exc:
            last_exc = exc
            logger.warning("Connection error on attempt %d/%d: %s", attempt + 1, retries, url)
        except requests.exceptions.HTTPError as exc:
            last_exc = exc
            status = exc.response.status_code if exc.response is not None else None
            logger.warning(
                "HTTP %s on attempt %d/%d: %s", status or "?", attempt + 1, retries, url,
            )
            if status in _NO_RETRY_STATUSES:
                break

        if attempt < retries - 1:
            wait = _backoff(attempt)
            logger.debug("Backing off %.1fs before retry…", wait)
            time.sleep(wait)

    raise NetworkError(f"Failed to GET {url}: {last_exc}") from last_exc


def get_json(url: str, **kwargs: Any) -> Any:
    """GET ``url`` and decode the body as JSON."""
    resp = get(url, **kwargs)
    try:
        return resp.json()
    except ValueError as exc:
        raise ParseError(f"Response from {url} is not valid JSON") from exc
