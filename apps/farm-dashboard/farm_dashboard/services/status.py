"""Derive dashboard card state from a cached Reading.

Each device type is a profile that knows which payload fields carry its
primary value and how to classify it. Profiles are picked once from the
mapping's ``type`` tag; ``evaluate`` is a pure function of the reading and
the current time.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Tuple

from farm_dashboard.config import DeviceMapping, Thresholds
from farm_dashboard.models import DisplayState, ExtraField, Reading

OFFLINE_AFTER_MINUTES = 30
# Gauge position when the reading carries no range information.
NO_RANGE_PERCENTAGE = 50.0
# Gauge position when min == max and the range has no width.
DEGENERATE_RANGE_PERCENTAGE = 50.0


def is_numeric(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


@dataclass(frozen=True)
class Classification:
    status: str
    label: str
    percentage: float


class DeviceProfile:
    type_tag = "generic"
    candidates: Tuple[str, ...] = ()
    default_unit = ""

    def extract(self, payload: Mapping[str, Any]) -> Tuple[float, Optional[str]]:
        """Return the primary value and the payload key it came from."""

        for key in self.candidates:
            value = payload.get(key)
            if is_numeric(value):
                return float(value), key
        return 0.0, None

    def unit(self, mapping: DeviceMapping) -> str:
        return mapping.unit or self.default_unit

    def classify(self, payload: Mapping[str, Any], value: float, thresholds: Optional[Thresholds]) -> Classification:
        if thresholds is None:
            return Classification("good", "Good", NO_RANGE_PERCENTAGE)
        if value < thresholds.min:
            status, label = "alert", "Low"
        elif value > thresholds.max:
            status, label = "alert", "High"
        else:
            status, label = "good", "Good"
        return Classification(status, label, range_percentage(value, thresholds))


class MotionProfile(DeviceProfile):
    # Display unit follows the shared rule: a mapping unit, when set, replaces "triggers".
    type_tag = "motion"
    candidates = ("trigger_count", "digital_pb14")
    default_unit = "triggers"

    def classify(self, payload: Mapping[str, Any], value: float, thresholds: Optional[Thresholds]) -> Classification:
        if motion_detected(payload):
            return Classification("alert", "Motion Detected", 100.0)
        return Classification("good", "No Motion", 0.0)


class SoilMoistureProfile(DeviceProfile):
    type_tag = "soil_moisture"
    candidates = ("moisture", "humidity", "value")
    default_unit = "%"


class TemperatureProfile(DeviceProfile):
    type_tag = "temperature"
    candidates = ("temperature", "temp", "value")
    default_unit = "°F"


class GenericProfile(DeviceProfile):
    type_tag = "generic"

    def extract(self, payload: Mapping[str, Any]) -> Tuple[float, Optional[str]]:
        for key, value in payload.items():
            if is_numeric(value):
                return float(value), key
        return 0.0, None


PROFILES = {
    profile.type_tag: profile
    for profile in (MotionProfile(), SoilMoistureProfile(), TemperatureProfile(), GenericProfile())
}


def profile_for(mapping: DeviceMapping) -> DeviceProfile:
    return PROFILES.get(mapping.type, PROFILES["generic"])


def motion_detected(payload: Mapping[str, Any]) -> bool:
    pir = payload.get("pir_triggered")
    triggered = pir is True or (is_numeric(pir) and pir != 0)
    return triggered or payload.get("motion") == "detected"


def range_percentage(value: float, thresholds: Thresholds) -> float:
    span = thresholds.max - thresholds.min
    if span == 0:
        return DEGENERATE_RANGE_PERCENTAGE
    return min(100.0, max(0.0, (value - thresholds.min) * 100.0 / span))


def minutes_since(last_update: datetime, now: datetime) -> int:
    if last_update.tzinfo is None:
        last_update = last_update.replace(tzinfo=timezone.utc)
    return math.floor((now - last_update).total_seconds() / 60)


def time_ago_label(minutes_ago: int) -> str:
    if minutes_ago < 1:
        return "Just now"
    if minutes_ago == 1:
        return "1 minute ago"
    if minutes_ago < 60:
        return f"{minutes_ago} minutes ago"
    return f"{minutes_ago // 60} hours ago"


def evaluate(reading: Reading, now: datetime | None = None) -> DisplayState:
    now = now or datetime.now(timezone.utc)
    mapping = reading.mapping
    profile = profile_for(mapping)
    value, source_key = profile.extract(reading.payload)
    classification = profile.classify(reading.payload, value, mapping.thresholds)
    minutes_ago = minutes_since(reading.last_update, now)
    extras = [
        ExtraField(key=key, value=float(raw), unit=mapping.unit)
        for key, raw in reading.payload.items()
        if key != source_key and is_numeric(raw)
    ]
    return DisplayState(
        value=value,
        display_unit=profile.unit(mapping),
        status=classification.status,
        status_label=classification.label,
        percentage=classification.percentage,
        online=minutes_ago < OFFLINE_AFTER_MINUTES,
        minutes_ago=minutes_ago,
        time_ago_label=time_ago_label(minutes_ago),
        extra_fields=extras,
    )


def sensor_card(reading: Reading, now: datetime | None = None) -> dict:
    """JSON shape consumed by the dashboard page and the change stream."""

    state = evaluate(reading, now)
    mapping = reading.mapping
    return {
        "device_id": reading.device_id,
        "name": mapping.name,
        "type": mapping.type,
        "location": mapping.location,
        "value": state.value,
        "unit": state.display_unit,
        "status": state.status,
        "status_label": state.status_label,
        "percentage": state.percentage,
        "online": state.online,
        "minutes_ago": state.minutes_ago,
        "time_ago": state.time_ago_label,
        "last_update": reading.last_update.isoformat(),
        "extra_fields": [{"key": f.key, "value": f.value, "unit": f.unit} for f in state.extra_fields],
    }
