"""
Report clustering for dashboards.

Clusters are recomputed wholesale from a snapshot; nothing here is incremental or
persisted, and cluster IDs are not stable across runs.

Grouping rule (order-dependent, kept as-is for compatibility with existing dashboards):
- Reports with coordinates AND a non-empty location name are processed in input order.
  Each unprocessed report seeds a new cluster that absorbs every other unprocessed
  report within `max_distance_km` of the *seed*. The centroid is not refined, so two
  reports closer than the radius can still land in different clusters.
- Reports without coordinates but with a location name are grouped by exact name and
  placed at the user's location (skipped when no user location is known).
- Reports without a usable location name are never clustered.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Sequence

from vibewatch.clustering.vibes import analyze_vibes
from vibewatch.config.settings import Settings
from vibewatch.core.geo import haversine_km
from vibewatch.core.time import utc_now
from vibewatch.domain.models import Cluster, GeoPoint, Report
from vibewatch.ingestion.geocoder import Geocoder

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


def _centroid(members: Sequence[Report]) -> GeoPoint:
    lat = sum(r.coordinates.lat for r in members) / len(members)
    lon = sum(r.coordinates.lon for r in members) / len(members)
    return GeoPoint(lat=lat, lon=lon)


def _build_cluster(
    cluster_id: str,
    members: list[Report],
    *,
    center: GeoPoint,
    location_name: str,
    distance_km: float,
    text_grouped: bool = False,
) -> Cluster:
    summary = analyze_vibes(members)
    return Cluster(
        id=cluster_id,
        center=center,
        members=members,
        location_name=location_name,
        dominant_vibe=summary.dominant_vibe,
        top_vibes=summary.top_vibes,
        distance_from_user=distance_km,
        text_grouped=text_grouped,
    )


def cluster_reports(
    reports: Sequence[Report],
    user_location: GeoPoint | None,
    max_distance_km: float = 1.0,
    *,
    now: datetime | None = None,
) -> list[Cluster]:
    """Group `reports` into clusters sorted by distance from the user, then by size.

    Raises:
        ValueError: If `max_distance_km` is negative.
    """
    if max_distance_km < 0:
        raise ValueError(f"max_distance_km must be >= 0, got {max_distance_km}")
    if not reports:
        return []

    stamp = int((now or utc_now()).timestamp() * 1000)
    processed: set[int] = set()
    clusters: list[Cluster] = []

    geo_reports = [r for r in reports if r.coordinates is not None]
    text_reports = [r for r in reports if r.coordinates is None]

    candidates = [r for r in geo_reports if r.has_location_name]
    for seed in candidates:
        if seed.id in processed:
            continue
        members = [seed]
        processed.add(seed.id)
        for other in candidates:
            if other.id in processed:
                continue
            if haversine_km(seed.coordinates, other.coordinates) <= max_distance_km:
                members.append(other)
                processed.add(other.id)

        center = _centroid(members)
        distance = haversine_km(user_location, center) if user_location is not None else 0.0
        clusters.append(
            _build_cluster(
                f"cluster_coord_{seed.id}_{stamp}",
                members,
                center=center,
                location_name=seed.location_name,
                distance_km=distance,
            )
        )

    groups: dict[str, list[Report]] = {}
    for report in text_reports:
        if report.id in processed or not report.has_location_name:
            continue
        groups.setdefault(report.location_name, []).append(report)
        processed.add(report.id)

    if user_location is not None:
        for name, members in groups.items():
            clusters.append(
                _build_cluster(
                    f"cluster_location_{_WHITESPACE.sub('_', name)}_{stamp}",
                    members,
                    center=user_location,
                    location_name=name,
                    distance_km=0.0,
                    text_grouped=True,
                )
            )
    elif groups:
        logger.debug("Skipping %d text-only location groups (no user location).", len(groups))

    clusters.sort(key=lambda c: (c.distance_from_user, -c.report_count))
    return clusters


def label_text_clusters(clusters: list[Cluster], geocoder: Geocoder) -> list[Cluster]:
    """Attach a reverse-geocoded `display_name` to text-grouped clusters.

    Geocoder failures leave the cluster unlabeled; they never fail the dashboard.
    """
    labels: dict[tuple[float, float], str | None] = {}
    out: list[Cluster] = []
    for cluster in clusters:
        if not cluster.text_grouped:
            out.append(cluster)
            continue
        key = (cluster.center.lat, cluster.center.lon)
        if key not in labels:
            try:
                labels[key] = geocoder.reverse_geocode(cluster.center.lat, cluster.center.lon)
            except Exception as exc:
                logger.warning("Reverse geocoding failed for %.4f,%.4f: %s", key[0], key[1], str(exc))
                labels[key] = None
        out.append(cluster.model_copy(update={"display_name": labels[key]}) if labels[key] else cluster)
    return out


class ClusterBuilder:
    """Clusters snapshots with the configured radius."""

    def __init__(self, settings: Settings, geocoder: Geocoder | None = None):
        self._max_distance_km = float(settings.clustering.max_distance_km)
        self._geocoder = geocoder

    def build(self, reports: Sequence[Report], user_location: GeoPoint | None) -> list[Cluster]:
        # Copy-on-read: callers may keep mutating their own list.
        clusters = cluster_reports(list(reports), user_location, self._max_distance_km)
        if self._geocoder is not None:
            clusters = label_text_clusters(clusters, self._geocoder)
        return clusters
