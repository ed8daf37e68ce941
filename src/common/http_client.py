"""Shared HTTP helpers used by the registry client.

Encapsulates common request/timeout error handling so callers avoid
duplicating try/except blocks. Failures are raised as RegistryError rather
than terminating the process; no retry is attempted.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Optional

import requests

from constants import Constants
from common.errors import PackageNotFoundError, RegistryError
from common.logging_utils import extra_context, is_debug_enabled, safe_url, Timer

logger = logging.getLogger(__name__)


def safe_get(
    url: str,
    *,
    context: str,
    session: Optional[requests.Session] = None,
    **kwargs: Any,
) -> requests.Response:
    """Perform a GET request with consistent error handling and DEBUG traces.

    Args:
        url: Target URL.
        context: Human-readable source tag for logs (e.g., "npm registry").
        session: Optional session to issue the request with.
        **kwargs: Passed through to requests.get.

    Returns:
        requests.Response: The HTTP response object.

    Raises:
        RegistryError: On timeouts and connection errors.
    """
    safe_target = safe_url(url)
    getter = session.get if session is not None else requests.get
    with Timer() as t:
        if is_debug_enabled(logger):
            logger.debug(
                "HTTP request",
                extra=extra_context(
                    event="http_request",
                    component="http_client",
                    action="GET",
                    target=safe_target,
                    context=context,
                ),
            )
        try:
            res = getter(url, timeout=Constants.REQUEST_TIMEOUT, **kwargs)
        except requests.Timeout as exc:
            logger.error(
                "%s request timed out after %s seconds",
                context,
                Constants.REQUEST_TIMEOUT,
            )
            raise RegistryError(
                f"{context} request timed out after {Constants.REQUEST_TIMEOUT} seconds",
                url=safe_target,
            ) from exc
        except requests.RequestException as exc:  # includes ConnectionError
            logger.error("%s connection error: %s", context, exc)
            raise RegistryError(f"{context} connection error: {exc}", url=safe_target) from exc
        if is_debug_enabled(logger):
            logger.debug(
                "HTTP response",
                extra=extra_context(
                    event="http_response",
                    component="http_client",
                    action="GET",
                    status_code=res.status_code,
                    duration_ms=t.duration_ms(),
                    target=safe_target,
                    context=context,
                ),
            )
        return res


def get_json(
    url: str,
    *,
    context: str,
    session: Optional[requests.Session] = None,
    **kwargs: Any,
) -> Any:
    """GET ``url`` and decode the JSON body.

    Raises:
        PackageNotFoundError: On HTTP 404.
        RegistryError: On any other non-2xx status, transport failure or invalid JSON.
    """
    res = safe_get(url, context=context, session=session, **kwargs)
    safe_target = safe_url(url)
    if res.status_code == 404:
        logger.warning(
            "HTTP 404 received",
            extra=extra_context(
                event="http_response",
                outcome="not_found",
                status_code=404,
                target=safe_target,
            ),
        )
        raise PackageNotFoundError(f"{context}: not found", url=safe_target, status_code=404)
    if not 200 <= res.status_code < 300:
        raise RegistryError(
            f"{context}: unexpected status code {res.status_code}",
            url=safe_target,
            status_code=res.status_code,
        )
    try:
        return json.loads(res.text)
    except json.JSONDecodeError as exc:
        if is_debug_enabled(logger):
            logger.debug(
                "JSON decode error",
                extra=extra_context(
                    event="parse",
                    component="http_client",
                    action="get_json",
                    outcome="json_decode_error",
                    status_code=res.status_code,
                    target=safe_target,
                ),
            )
        raise RegistryError(f"{context}: invalid JSON response", url=safe_target) from exc
