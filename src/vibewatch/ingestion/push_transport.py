"""
Push fan-out transport.

The device-token registry and delivery live behind a remote function; we only ask it to
notify every subscribed device within a radius of a report.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from vibewatch.config.settings import Settings
from vibewatch.core.http import post_json
from vibewatch.domain.models import GeoPoint, Report, report_to_row

logger = logging.getLogger(__name__)


class PushTransport(Protocol):
    def send_nearby(self, report: Report, center: GeoPoint, radius_km: float) -> Any: ...


class HttpPushTransport:
    """POSTs `{report, location, radius}` to the configured push function URL."""

    def __init__(self, settings: Settings):
        self._settings = settings

    def _require_url(self) -> str:
        url = self._settings.push.url
        if not url:
            raise RuntimeError("Push transport is not configured. Set VIBEWATCH_PUSH_URL.")
        return url

    def send_nearby(self, report: Report, center: GeoPoint, radius_km: float) -> Any:
        """Request fan-out and return the function's JSON result.

        Raises:
            httpx.HTTPError: On transport errors or non-2xx status codes.
        """
        headers: dict[str, str] = {}
        if self._settings.push.api_key:
            headers["Authorization"] = f"Bearer {self._settings.push.api_key}"

        result = post_json(
            self._require_url(),
            payload={
                "report": report_to_row(report),
                "location": [center.lat, center.lon],
                "radius": radius_km,
            },
            headers=headers,
            timeout_seconds=self._settings.app.http_timeout_seconds,
        )
        logger.info("Push fan-out requested for report %s (radius=%.1fkm)", report.id, radius_km)
        return result
