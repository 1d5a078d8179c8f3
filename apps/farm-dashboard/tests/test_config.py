from __future__ import annotations

import json

from farm_dashboard.config import Settings, TtnSettings, get_settings


def test_defaults(tmp_path):
    settings = get_settings()
    assert settings.farm_name == "My Farm"
    assert settings.ttn.credentials_configured is False
    assert settings.firebase.configured is False
    assert settings.data_path.exists()


def test_mapping_file_merges_with_inline_entries(tmp_path):
    mapping_file = tmp_path / "sensors.json"
    mapping_file.write_text(
        json.dumps(
            {
                "soil-01": {"name": "From File", "type": "moisture"},
                "pir-02": {"name": "Barn Door", "type": "pir", "location": "Barn"},
            }
        ),
        encoding="utf-8",
    )
    settings = Settings(
        sensor_mappings_path=str(mapping_file),
        sensor_mappings={"soil-01": {"name": "Inline", "type": "soil_moisture"}},
    )
    assert settings.sensor_mappings["soil-01"].name == "Inline"
    assert settings.sensor_mappings["pir-02"].type == "motion"
    assert settings.sensor_mappings["pir-02"].location == "Barn"


def test_unreadable_mapping_file_is_ignored(tmp_path):
    bad = tmp_path / "sensors.json"
    bad.write_text("[1, 2, 3]", encoding="utf-8")
    assert Settings(sensor_mappings_path=str(bad)).sensor_mappings == {}
    assert Settings(sensor_mappings_path=str(tmp_path / "missing.json")).sensor_mappings == {}


def test_nested_env_configures_ttn(monkeypatch):
    monkeypatch.setenv("FARM_TTN__ENABLED", "true")
    monkeypatch.setenv("FARM_TTN__APPLICATION_ID", "farm-app")
    monkeypatch.setenv("FARM_TTN__API_KEY", "NNSXS.secret")
    monkeypatch.setenv("FARM_TTN__TENANT", "eu1")
    ttn = Settings().ttn
    assert ttn.credentials_configured
    assert ttn.uplink_topic == "v3/farm-app@eu1/devices/+/up"


def test_broker_override_without_websockets():
    ttn = TtnSettings(broker_url="mqtts://eu1.cloud.thethings.network:8883")
    assert ttn.broker_host == "eu1.cloud.thethings.network"
    assert ttn.broker_port == 8883
    assert ttn.uses_tls
    assert not ttn.uses_websockets


def test_sync_intervals_are_clamped():
    settings = Settings(sync_interval_seconds=0.01, sync_retry_interval_seconds=10**9)
    assert settings.sync_interval_seconds == 1.0
    assert settings.sync_retry_interval_seconds == 86400.0
