from __future__ import annotations


# Overrides come from user preference payloads (dict-like objects), so typing stays loose
# and shape problems are reported with clear dotted paths.
from typing import Any, Mapping

from vibewatch.config.settings import Settings

"""
Per-user settings overrides (safe subset).

A connected user can tune their own notification preferences (radius, cooldown,
area-summary thresholds) without touching the server configuration. This module:
- validates the override payload against a whitelist,
- deep-merges the safe subset onto current settings,
- re-validates with Pydantic to ensure types/ranges remain correct.

Security note:
We do NOT allow overriding secrets (store/push API keys) or any URL.
"""

# Which parts of the global Settings object a user preference payload may touch.
#
# How to read this structure:
# - A value of True means "allow any keys under this subtree".
# - A nested dict means "only allow the listed keys, recursively".
ALLOWED_SETTINGS_OVERRIDES_TREE: dict[str, Any] = {
    "clustering": True,
    "notifications": {
        "radius_km": True,
        "cooldown_seconds": True,
        "cooldown_granularity": True,
        "notify_on_unknown_location": True,
    },
    "area_summary": {
        "enabled": True,
        "lookback_hours": True,
        "min_reports": True,
    },
    # Only the fan-out radius; push URL and key stay server-side.
    "push": {"fanout_radius_km": True},
}


def _deep_merge(base: dict[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    # New dict so the caller's `base` (often a cached settings dump) is never mutated.
    merged: dict[str, Any] = dict(base)
    for key, override_value in override.items():
        if isinstance(override_value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = _deep_merge(dict(merged[key]), override_value)
            continue
        merged[key] = override_value
    return merged


def _filter_overrides(
    overrides: Mapping[str, Any],
    *,
    allowed_tree: Mapping[str, Any],
    path: tuple[str, ...] = (),
) -> dict[str, Any]:
    filtered: dict[str, Any] = {}
    for key, value in overrides.items():
        if key not in allowed_tree:
            dotted_path = ".".join((*path, key))
            raise ValueError(
                f"settings_overrides contains a disallowed key: '{dotted_path}'"
            )

        allowed = allowed_tree[key]
        if allowed is True:
            filtered[key] = value
            continue

        # Restricted subtree: the value must be a mapping we can recurse into.
        if not isinstance(value, Mapping):
            dotted_path = ".".join((*path, key))
            raise ValueError(
                f"settings_overrides key '{dotted_path}' must be a mapping"
            )

        filtered[key] = _filter_overrides(
            value, allowed_tree=allowed, path=(*path, key)
        )
    return filtered


def apply_settings_overrides(
    settings: Settings, overrides: Mapping[str, Any] | None
) -> Settings:
    """Return a new `Settings` with the whitelisted `overrides` applied.

    Raises:
        ValueError: On a disallowed key, a wrong value shape, or values that fail validation.
    """
    if not overrides:
        return settings

    safe_overrides = _filter_overrides(
        overrides, allowed_tree=ALLOWED_SETTINGS_OVERRIDES_TREE
    )
    merged_payload = _deep_merge(settings.model_dump(mode="python"), safe_overrides)
    return Settings.model_validate(merged_payload)
