from datetime import datetime, timezone

import pytest

from vibewatch.clustering.builder import ClusterBuilder, cluster_reports, label_text_clusters
from vibewatch.config.settings import Settings
from vibewatch.domain.models import EmergencyReport, GeoPoint, VibeReport

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
USER = GeoPoint(lat=30.0, lon=31.0)

# ~0.8 km per 0.0072 degrees of latitude.
STEP = 0.0072


def _report(report_id: int, *, lat=None, lon=31.0, name="Downtown", category="calm"):
    coords = GeoPoint(lat=lat, lon=lon) if lat is not None else None
    return VibeReport(
        id=report_id,
        category=category,
        coordinates=coords,
        location_name=name,
        created_at=NOW,
    )


def test_empty_input_yields_no_clusters():
    assert cluster_reports([], USER) == []


def test_reports_within_radius_share_a_cluster():
    reports = [_report(1, lat=30.0), _report(2, lat=30.0045)]

    clusters = cluster_reports(reports, USER, 1.0, now=NOW)

    assert len(clusters) == 1
    assert clusters[0].report_count == 2
    assert clusters[0].location_name == "Downtown"
    assert clusters[0].center.lat == pytest.approx(30.00225)


def test_reports_beyond_radius_are_split():
    reports = [_report(1, lat=30.0), _report(2, lat=30.018)]

    clusters = cluster_reports(reports, USER, 1.0, now=NOW)

    assert len(clusters) == 2
    assert all(c.report_count == 1 for c in clusters)


def test_membership_is_measured_from_the_seed_only():
    a = _report(1, lat=30.0)
    b = _report(2, lat=30.0 + STEP)
    c = _report(3, lat=30.0 + 2 * STEP)

    clusters = cluster_reports([a, b, c], USER, 1.0, now=NOW)

    assert [[m.id for m in cl.members] for cl in clusters] == [[1, 2], [3]]


def test_every_clusterable_report_lands_in_exactly_one_cluster():
    reports = [_report(i, lat=30.0 + i * 0.003) for i in range(10)]

    clusters = cluster_reports(reports, USER, 1.0, now=NOW)
    member_ids = [m.id for cl in clusters for m in cl.members]

    assert sorted(member_ids) == list(range(10))


def test_reports_without_usable_location_are_never_clustered():
    reports = [
        _report(1, lat=30.0),
        _report(2, lat=30.001, name="   "),
        _report(3, lat=30.002, name=None),
        _report(4, name=None),
    ]

    clusters = cluster_reports(reports, USER, 1.0, now=NOW)

    assert [[m.id for m in cl.members] for cl in clusters] == [[1]]


def test_text_only_reports_group_by_exact_name_at_user_location():
    reports = [
        _report(1, name="Main Square"),
        _report(2, name="Main Square", category="crowded"),
        _report(3, name="main square"),
    ]

    clusters = cluster_reports(reports, USER, 1.0, now=NOW)

    assert [c.report_count for c in clusters] == [2, 1]
    first = clusters[0]
    assert first.text_grouped
    assert first.center == USER
    assert first.distance_from_user == 0.0
    assert first.id == f"cluster_location_Main_Square_{int(NOW.timestamp() * 1000)}"


def test_text_only_reports_need_a_user_location():
    reports = [_report(1, lat=30.0), _report(2, name="Main Square")]

    clusters = cluster_reports(reports, None, 1.0, now=NOW)

    assert len(clusters) == 1
    assert not clusters[0].text_grouped
    assert clusters[0].distance_from_user == 0.0


def test_clusters_sort_by_distance_then_size():
    far = _report(1, lat=30.05)
    near_a = _report(2, lat=30.01)
    near_b = _report(3, lat=30.0101)

    clusters = cluster_reports([far, near_a, near_b], USER, 1.0, now=NOW)

    assert [c.members[0].id for c in clusters] == [2, 1]
    assert clusters[0].distance_from_user < clusters[1].distance_from_user


def test_cluster_ids_use_the_seed_id():
    clusters = cluster_reports([_report(7, lat=30.0)], USER, 1.0, now=NOW)

    assert clusters[0].id == f"cluster_coord_7_{int(NOW.timestamp() * 1000)}"


def test_cluster_vibes_include_emergencies():
    reports = [
        _report(1, lat=30.0, category="dangerous"),
        EmergencyReport(
            id=2,
            coordinates=GeoPoint(lat=30.0001, lon=31.0),
            location_name="Downtown",
            created_at=NOW,
        ),
        _report(3, lat=30.0002, category="dangerous"),
    ]

    clusters = cluster_reports(reports, USER, 1.0, now=NOW)

    assert clusters[0].dominant_vibe.category == "dangerous"
    assert clusters[0].dominant_vibe.count == 2
    assert [v.category for v in clusters[0].top_vibes] == ["emergency"]


def test_negative_radius_is_rejected():
    with pytest.raises(ValueError, match="max_distance_km"):
        cluster_reports([_report(1, lat=30.0)], USER, -1.0)


class _FakeGeocoder:
    def __init__(self, label=None, error=None):
        self.label = label
        self.error = error
        self.calls = []

    def reverse_geocode(self, lat, lon):
        self.calls.append((lat, lon))
        if self.error is not None:
            raise self.error
        return self.label


def test_label_text_clusters_only_touches_text_groups():
    clusters = cluster_reports([_report(1, lat=30.0), _report(2, name="Main Square")], USER, 1.0, now=NOW)
    geocoder = _FakeGeocoder(label="Old Town")

    labeled = label_text_clusters(clusters, geocoder)

    by_text = {c.text_grouped: c for c in labeled}
    assert by_text[True].display_name == "Old Town"
    assert by_text[False].display_name is None
    assert geocoder.calls == [(30.0, 31.0)]


def test_label_text_clusters_ignores_geocoder_failures():
    clusters = cluster_reports([_report(1, name="Main Square")], USER, 1.0, now=NOW)

    labeled = label_text_clusters(clusters, _FakeGeocoder(error=RuntimeError("rate limited")))

    assert labeled[0].display_name is None


def test_cluster_builder_uses_configured_radius():
    settings = Settings.model_validate({"clustering": {"max_distance_km": 3.0}})
    reports = [_report(1, lat=30.0), _report(2, lat=30.018)]

    clusters = ClusterBuilder(settings).build(reports, USER)

    assert len(clusters) == 1
    assert clusters[0].report_count == 2


def test_duplicate_ids_are_clustered_once():
    reports = [_report(1, lat=30.0), _report(1, lat=30.05), _report(2, lat=30.05)]

    clusters = cluster_reports(reports, USER, 1.0, now=NOW)

    assert [[m.id for m in cl.members] for cl in clusters] == [[1], [2]]
