"""Runtime configuration for the farm dashboard."""
from __future__ import annotations

import json
import logging
import re
from functools import lru_cache
from pathlib import Path
from typing import Dict, Literal, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DeviceType = Literal["motion", "soil_moisture", "temperature", "generic"]

DEVICE_TYPES = ("motion", "soil_moisture", "temperature", "generic")
DEVICE_TYPE_ALIASES = {
    # Labels seen in TTN device names and older mapping files.
    "pir": "motion",
    "motion_sensor": "motion",
    "occupancy": "motion",
    "moisture": "soil_moisture",
    "soil": "soil_moisture",
    "soilmoisture": "soil_moisture",
    "temp": "temperature",
    "air_temperature": "temperature",
    "unknown": "generic",
}

MIN_INTERVAL_SECONDS = 1.0
MAX_INTERVAL_SECONDS = 86400.0


def normalize_device_type(device_type: str | None) -> str:
    if not device_type:
        return "generic"
    cleaned = device_type.strip().lower()
    cleaned = cleaned.replace("-", "_").replace(" ", "_")
    cleaned = re.sub(r"[^a-z0-9_]+", "_", cleaned).strip("_")
    cleaned = DEVICE_TYPE_ALIASES.get(cleaned, cleaned)
    return cleaned if cleaned in DEVICE_TYPES else "generic"


def _clamp_interval_seconds(value: float, *, field: str) -> float:
    try:
        parsed = float(value)
    except Exception as exc:
        raise ValueError(f"{field} must be a number") from exc
    if parsed != parsed:  # NaN
        raise ValueError(f"{field} must be a real number")
    return max(MIN_INTERVAL_SECONDS, min(parsed, MAX_INTERVAL_SECONDS))


class Thresholds(BaseModel):
    """Acceptable range for a device's primary value."""

    model_config = ConfigDict(frozen=True)

    min: float
    max: float

    @model_validator(mode="after")
    def _check_order(self):
        if self.min > self.max:
            raise ValueError(f"thresholds.min ({self.min}) must not exceed thresholds.max ({self.max})")
        return self


class DeviceMapping(BaseModel):
    """Static description of one LoRaWAN device, keyed by its TTN device id."""

    model_config = ConfigDict(frozen=True)

    name: str
    type: DeviceType = Field(default="generic", description="motion, soil_moisture, temperature or generic")
    unit: str = ""
    location: str = "Unknown"
    thresholds: Optional[Thresholds] = None

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value):
        return normalize_device_type(value if isinstance(value, str) else None)

    @classmethod
    def fallback(cls, device_id: str) -> "DeviceMapping":
        return cls(name=device_id, type="generic", location="Unknown")


class TtnSettings(BaseModel):
    """The Things Network MQTT integration."""

    enabled: bool = Field(default=False, description="Enable the TTN uplink subscription")
    tenant: str = Field(default="nam1", description="TTN cluster/tenant, e.g. nam1 or eu1")
    application_id: str = ""
    api_key: SecretStr | None = Field(default=None, description="API key with 'Read application traffic' rights")
    broker_url: Optional[str] = Field(
        default=None,
        description="Broker URL override (defaults to wss://<tenant>.cloud.thethings.network:8884/mqtt)",
    )
    reconnect_period_seconds: float = Field(default=5.0, gt=0, description="Fixed delay between reconnect attempts")
    connect_timeout_seconds: float = Field(default=30.0, gt=0, description="Bound on a single connect attempt")
    keepalive_seconds: int = Field(default=60, ge=5)
    auto_connect: bool = Field(default=True, description="Connect as soon as the dashboard starts")

    @property
    def username(self) -> str:
        return f"{self.application_id}@{self.tenant}"

    @property
    def uplink_topic(self) -> str:
        return f"v3/{self.username}/devices/+/up"

    @property
    def credentials_configured(self) -> bool:
        if not self.enabled or not self.application_id:
            return False
        return bool(self.api_key and self.api_key.get_secret_value().strip())

    @property
    def resolved_broker_url(self) -> str:
        return self.broker_url or f"wss://{self.tenant}.cloud.thethings.network:8884/mqtt"

    @property
    def broker_scheme(self) -> str:
        return _parsed_url(self.resolved_broker_url).scheme or "wss"

    @property
    def broker_host(self) -> str:
        return _parsed_url(self.resolved_broker_url).hostname or f"{self.tenant}.cloud.thethings.network"

    @property
    def broker_port(self) -> int:
        port = _parsed_url(self.resolved_broker_url).port
        if port:
            return port
        return {"mqtt": 1883, "mqtts": 8883, "ws": 80, "wss": 443}.get(self.broker_scheme, 8884)

    @property
    def websocket_path(self) -> str:
        return _parsed_url(self.resolved_broker_url).path or "/mqtt"

    @property
    def uses_websockets(self) -> bool:
        return self.broker_scheme in {"ws", "wss"}

    @property
    def uses_tls(self) -> bool:
        return self.broker_scheme in {"wss", "mqtts"}


class FirebaseSettings(BaseModel):
    """Optional Firebase Realtime Database mirror for documents."""

    enabled: bool = False
    database_url: Optional[str] = Field(default=None, description="e.g. https://<project>-default-rtdb.firebaseio.com")
    auth_token: SecretStr | None = Field(default=None, description="Database secret or ID token passed as ?auth=")
    request_timeout_seconds: float = Field(default=10.0, gt=0)

    @property
    def configured(self) -> bool:
        return bool(self.enabled and self.database_url)


class Settings(BaseSettings):
    """Environment driven settings for the farm dashboard."""

    farm_name: str = "My Farm"
    location: str = "West Pasco, Washington, US"
    service_name: str = "farm-dashboard"
    service_version: str = "0.1.0"
    log_level: str = "INFO"
    otel_enabled: bool = False
    otel_exporter_otlp_endpoint: str = "http://127.0.0.1:4317"
    otel_exporter_otlp_headers: Optional[str] = None
    otel_sample_ratio: float = Field(default=1.0, ge=0.0, le=1.0)
    data_dir: str = Field(default="storage", description="Root directory for the local key-value store")
    sensor_mappings: Dict[str, DeviceMapping] = Field(default_factory=dict)
    sensor_mappings_path: Optional[str] = Field(default=None, description="JSON file of device id -> mapping")
    ttn: TtnSettings = Field(default_factory=TtnSettings)
    firebase: FirebaseSettings = Field(default_factory=FirebaseSettings)
    sync_interval_seconds: float = 300.0
    sync_retry_interval_seconds: float = 60.0
    max_chat_history: int = Field(default=50, ge=2)
    chat_reply_delay_seconds: float = Field(default=1.0, ge=0)

    model_config = SettingsConfigDict(
        env_prefix="FARM_",
        env_file=".env",
        env_nested_delimiter="__",
        extra="ignore",
    )

    @field_validator("sync_interval_seconds")
    @classmethod
    def _clamp_sync(cls, value: float) -> float:
        return _clamp_interval_seconds(value, field="sync_interval_seconds")

    @field_validator("sync_retry_interval_seconds")
    @classmethod
    def _clamp_sync_retry(cls, value: float) -> float:
        return _clamp_interval_seconds(value, field="sync_retry_interval_seconds")

    @model_validator(mode="after")
    def _load_mapping_file(self):
        if not self.sensor_mappings_path:
            return self
        path = Path(self.sensor_mappings_path)
        if not path.exists():
            logging.getLogger(__name__).warning("Sensor mapping file %s does not exist", path)
            return self
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise ValueError("mapping file must contain a JSON object")
            from_file = {str(key): DeviceMapping.model_validate(value) for key, value in data.items()}
        except Exception as exc:
            logging.getLogger(__name__).warning("Unable to load sensor mappings %s: %s", path, exc)
            return self
        from_file.update(self.sensor_mappings)
        self.sensor_mappings = from_file
        return self

    @property
    def data_path(self) -> Path:
        path = Path(self.data_dir)
        path.mkdir(parents=True, exist_ok=True)
        return path


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


@lru_cache(maxsize=32)
def _parsed_url(url: str):
    return urlparse(url)
