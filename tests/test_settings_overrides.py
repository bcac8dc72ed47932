from __future__ import annotations

import pytest

# The real loader, so tests run against the packaged default config structure.
from vibewatch.config.settings import get_settings

from vibewatch.config.overrides import apply_settings_overrides


def test_apply_settings_overrides_returns_same_object_when_none():
    settings = get_settings()

    out = apply_settings_overrides(settings, None)

    # Identity is intentional: the helper returns early without rebuilding the model.
    assert out is settings


def test_apply_settings_overrides_can_override_notification_preferences():
    settings = get_settings()

    overrides = {"notifications": {"radius_km": 2.5, "cooldown_seconds": 120}}
    out = apply_settings_overrides(settings, overrides)

    assert out.notifications.radius_km == 2.5
    assert out.notifications.cooldown_seconds == 120
    # The shared cached settings must stay untouched (no cross-user leakage).
    assert settings.notifications.radius_km == 5.0
    assert settings.notifications.cooldown_seconds == 30


def test_apply_settings_overrides_rejects_secrets_with_clear_path():
    settings = get_settings()

    overrides = {"push": {"api_key": "stolen"}}

    with pytest.raises(ValueError, match=r"push\.api_key"):
        apply_settings_overrides(settings, overrides)


def test_apply_settings_overrides_rejects_wrong_value_shapes_for_restricted_subtrees():
    settings = get_settings()

    with pytest.raises(ValueError, match=r"settings_overrides key 'notifications' must be a mapping"):
        apply_settings_overrides(settings, {"notifications": 1})


def test_apply_settings_overrides_revalidates_ranges():
    settings = get_settings()

    with pytest.raises(ValueError):
        apply_settings_overrides(settings, {"notifications": {"radius_km": -1}})


def test_default_settings_match_documented_defaults():
    settings = get_settings()

    assert settings.clustering.max_distance_km == 1.0
    assert settings.notifications.cooldown_granularity == "global"
    assert settings.area_summary.interval_seconds == 1800
    assert settings.area_summary.min_reports == 3
    assert settings.push.fanout_radius_km == 5.0
    assert settings.realtime.reconnect.base_delay_seconds == 5
