"""
HTTP helpers.

This module centralizes the minimal HTTP client logic used by ingestion clients
(report store, push transport, geocoder).

Design goals:
- Small surface area (GET JSON, POST JSON).
- Deterministic defaults (timeout + User-Agent).
- Raise on non-2xx so callers can decide how to fail (background paths log and drop).
"""

from __future__ import annotations

from typing import Any

import httpx


DEFAULT_USER_AGENT = "vibewatch/0.1.0 (+https://local)"


def get_json(
    url: str,
    *,
    params: dict[str, Any] | list[tuple[str, Any]] | None = None,
    headers: dict[str, str] | None = None,
    timeout_seconds: float = 15,
) -> Any:
    """GET `url` and return the decoded JSON response.

    Raises:
        httpx.HTTPError: On transport errors or non-2xx status codes.
        ValueError: If the response body is not valid JSON.
    """
    request_headers = {"User-Agent": DEFAULT_USER_AGENT}
    if headers:
        request_headers.update(headers)

    with httpx.Client(timeout=timeout_seconds) as client:
        resp = client.get(url, params=params, headers=request_headers)
        resp.raise_for_status()
        return resp.json()


def post_json(
    url: str,
    *,
    payload: Any,
    headers: dict[str, str] | None = None,
    timeout_seconds: float = 15,
) -> Any:
    """POST `payload` as a JSON body and return the decoded JSON response (or None if empty).

    Used by the push transport to invoke the fan-out function.

    Raises:
        httpx.HTTPError: On transport errors or non-2xx status codes.
        ValueError: If a non-empty response body is not valid JSON.
    """
    request_headers = {"User-Agent": DEFAULT_USER_AGENT}
    if headers:
        request_headers.update(headers)

    with httpx.Client(timeout=timeout_seconds) as client:
        resp = client.post(url, json=payload, headers=request_headers)
        resp.raise_for_status()
        if not resp.content:
            return None
        return resp.json()
