"""
Reverse geocoding client (Nominatim).

Only used to put a human label on clusters formed by text grouping; clustering and
notification decisions never depend on it.
"""

from __future__ import annotations

import logging
from typing import Protocol

from vibewatch.config.settings import Settings
from vibewatch.core.http import get_json

logger = logging.getLogger(__name__)


class Geocoder(Protocol):
    def reverse_geocode(self, lat: float, lon: float) -> str | None: ...


class NominatimGeocoder:
    """Reverse geocodes a coordinate to a short place label via the Nominatim JSON API."""

    def __init__(self, settings: Settings):
        self._settings = settings

    def reverse_geocode(self, lat: float, lon: float) -> str | None:
        cfg = self._settings.geocoding
        logger.info("Reverse geocoding lat=%.4f lon=%.4f", lat, lon)
        payload = get_json(
            cfg.base_url,
            params={
                "lat": lat,
                "lon": lon,
                "format": "jsonv2",
                "zoom": cfg.zoom,
                "accept-language": cfg.language,
            },
            timeout_seconds=self._settings.app.http_timeout_seconds,
        )
        if not isinstance(payload, dict):
            return None

        address = payload.get("address") or {}
        for key in ("neighbourhood", "suburb", "quarter", "city_district", "city", "town", "village"):
            value = address.get(key)
            if value:
                return str(value)
        name = payload.get("display_name")
        return str(name).split(",")[0].strip() if name else None
