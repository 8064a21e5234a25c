"""Shared HTTP helpers used by remote manifest sources.

Encapsulates retry/backoff and request error handling so source
implementations avoid duplicating try/except blocks. Retrying transient
failures is a transport concern; callers above this layer never retry.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional, Tuple

import requests

from constants import Constants
from common.logging_utils import extra_context, is_debug_enabled, safe_url, Timer

logger = logging.getLogger(__name__)


class HttpFetchError(Exception):
    """Raised when every attempt to GET a URL failed at the transport level."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"GET {safe_url(url)} failed: {reason}")
        self.url = url
        self.reason = reason


def robust_get(
    url: str,
    *,
    context: str,
    headers: Optional[Dict[str, str]] = None,
    retries: int = Constants.HTTP_RETRY_MAX,
    timeout: float = Constants.REQUEST_TIMEOUT,
    **kwargs: Any
) -> Tuple[int, bytes]:
    """Perform a GET request with timeout, retries and DEBUG traces.

    Server errors (5xx), timeouts and connection errors are retried with
    exponential backoff. Any other status is returned to the caller as-is.

    Args:
        url: Target URL.
        context: Human-readable source tag for logs (e.g., "central").
        headers: Optional request headers.
        retries: Maximum number of attempts.
        timeout: Per-attempt timeout in seconds.
        **kwargs: Passed through to requests.get.

    Returns:
        Tuple of (status_code, body_bytes).

    Raises:
        HttpFetchError: When all attempts failed without a usable response.
    """
    safe_target = safe_url(url)
    last_exception = "no attempts made"
    attempts = max(1, int(retries))

    for attempt in range(attempts):
        if attempt:
            time.sleep(Constants.HTTP_RETRY_BASE_DELAY_SEC * (2 ** (attempt - 1)))
        with Timer() as t:
            try:
                if is_debug_enabled(logger):
                    logger.debug(
                        "HTTP request",
                        extra=extra_context(
                            event="http_request",
                            component="http_client",
                            action="GET",
                            target=safe_target,
                            context=context,
                            attempt=attempt + 1
                        )
                    )
                response = requests.get(url, timeout=timeout, headers=headers, **kwargs)
            except requests.Timeout:
                last_exception = "timeout"
                if is_debug_enabled(logger):
                    logger.debug(
                        "HTTP timeout",
                        extra=extra_context(
                            event="http_exception",
                            component="http_client",
                            action="GET",
                            outcome="timeout",
                            attempt=attempt + 1,
                            target=safe_target
                        )
                    )
                continue
            except requests.RequestException as exc:  # includes ConnectionError
                last_exception = str(exc)
                if is_debug_enabled(logger):
                    logger.debug(
                        "HTTP request exception",
                        extra=extra_context(
                            event="http_exception",
                            component="http_client",
                            action="GET",
                            outcome="request_exception",
                            attempt=attempt + 1,
                            target=safe_target
                        )
                    )
                continue

            if response.status_code >= 500:
                last_exception = f"HTTP {response.status_code}"
                logger.warning(
                    "HTTP server error, retrying",
                    extra=extra_context(
                        event="http_response",
                        component="http_client",
                        outcome="server_error",
                        status_code=response.status_code,
                        attempt=attempt + 1,
                        target=safe_target
                    )
                )
                continue

            if is_debug_enabled(logger):
                logger.debug(
                    "HTTP response ok",
                    extra=extra_context(
                        event="http_response",
                        component="http_client",
                        action="GET",
                        outcome="success",
                        status_code=response.status_code,
                        duration_ms=t.duration_ms(),
                        target=safe_target
                    )
                )
            return response.status_code, response.content

    raise HttpFetchError(url, f"{last_exception} after {attempts} attempts")
