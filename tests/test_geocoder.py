import vibewatch.ingestion.geocoder as geocoder
from vibewatch.config.settings import Settings
from vibewatch.ingestion.geocoder import NominatimGeocoder


def test_reverse_geocode_prefers_neighbourhood_labels(monkeypatch):
    captured = {}

    def fake_get_json(url, *, params=None, headers=None, timeout_seconds=15):
        captured.update(url=url, params=params)
        return {
            "display_name": "Zamalek, Cairo, Egypt",
            "address": {"suburb": "Zamalek", "city": "Cairo"},
        }

    monkeypatch.setattr(geocoder, "get_json", fake_get_json)

    label = NominatimGeocoder(Settings()).reverse_geocode(30.06, 31.22)

    assert label == "Zamalek"
    assert captured["params"]["lat"] == 30.06
    assert captured["params"]["format"] == "jsonv2"
    assert captured["params"]["zoom"] == 16


def test_reverse_geocode_falls_back_to_display_name(monkeypatch):
    monkeypatch.setattr(geocoder, "get_json", lambda url, **kwargs: {"display_name": "Harbor Road, Port"})

    assert NominatimGeocoder(Settings()).reverse_geocode(30.0, 31.0) == "Harbor Road"


def test_reverse_geocode_handles_empty_payload(monkeypatch):
    monkeypatch.setattr(geocoder, "get_json", lambda url, **kwargs: [])

    assert NominatimGeocoder(Settings()).reverse_geocode(30.0, 31.0) is None
