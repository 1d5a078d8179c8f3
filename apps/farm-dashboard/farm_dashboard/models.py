"""Domain records shared by the sensor pipeline."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from farm_dashboard.config import DeviceMapping

Scalar = Union[bool, int, float, str, None]


@dataclass(frozen=True)
class RawFrame:
    """One uplink as delivered by the broker, before normalization."""

    device_id: Optional[str]
    payload: Optional[Dict[str, Any]]
    received_at: Optional[datetime]
    topic: Optional[str] = None


@dataclass(frozen=True)
class NormalizationFailure:
    reason: str
    topic: Optional[str] = None


class Reading(BaseModel):
    """Latest normalized state for a single device."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    device_id: str = Field(alias="deviceId")
    mapping: DeviceMapping
    payload: Dict[str, Any]
    received_at: Optional[datetime] = Field(default=None, alias="receivedAt")
    last_update: datetime = Field(alias="lastUpdate")

    def to_snapshot(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


@dataclass(frozen=True)
class ExtraField:
    key: str
    value: float
    unit: str


@dataclass(frozen=True)
class DisplayState:
    """Render-ready summary of a Reading at a given instant."""

    value: float
    display_unit: str
    status: str
    status_label: str
    percentage: float
    online: bool
    minutes_ago: int
    time_ago_label: str
    extra_fields: List[ExtraField] = field(default_factory=list)

    @property
    def alert(self) -> bool:
        return self.status == "alert"
