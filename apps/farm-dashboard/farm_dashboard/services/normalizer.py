"""Decode TTN uplinks and turn them into cached Readings."""
from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional, Union

from farm_dashboard.config import DeviceMapping
from farm_dashboard.models import NormalizationFailure, RawFrame, Reading

logger = logging.getLogger(__name__)

# TTN stamps uplinks with nanosecond precision; datetime keeps microseconds.
_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


def parse_timestamp(raw: object) -> Optional[datetime]:
    if not isinstance(raw, str) or not raw.strip():
        return None
    text = _FRACTION_RE.sub(r"\1", raw.strip()).replace("Z", "+00:00")
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_uplink(message: bytes | str, *, topic: str | None = None) -> Optional[RawFrame]:
    """Decode a TTN v3 uplink document; returns None when it is not JSON."""

    if isinstance(message, bytes):
        text = message.decode("utf-8", errors="replace")
    else:
        text = message
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        logger.warning("Dropping undecodable uplink on %s: %s", topic, exc)
        return None
    if not isinstance(data, dict):
        logger.warning("Dropping uplink on %s: top-level value is not an object", topic)
        return None

    ids = data.get("end_device_ids")
    device_id = ids.get("device_id") if isinstance(ids, dict) else None
    uplink = data.get("uplink_message")
    payload = uplink.get("decoded_payload") if isinstance(uplink, dict) else None
    return RawFrame(
        device_id=device_id if isinstance(device_id, str) and device_id else None,
        payload=payload if isinstance(payload, dict) else None,
        received_at=parse_timestamp(data.get("received_at")),
        topic=topic,
    )


def normalize(
    frame: RawFrame,
    mappings: Mapping[str, DeviceMapping],
    *,
    now: Callable[[], datetime] | None = None,
) -> Union[Reading, NormalizationFailure]:
    """Resolve a frame against the mapping table.

    Unknown devices are never rejected; they get a generic fallback mapping.
    The payload is carried through unmodified.
    """

    if not frame.device_id:
        return NormalizationFailure("missing device identifier", topic=frame.topic)
    if frame.payload is None:
        return NormalizationFailure("missing decoded payload", topic=frame.topic)

    mapping = mappings.get(frame.device_id) or DeviceMapping.fallback(frame.device_id)
    clock = now or (lambda: datetime.now(timezone.utc))
    return Reading(
        device_id=frame.device_id,
        mapping=mapping,
        payload=dict(frame.payload),
        received_at=frame.received_at,
        last_update=frame.received_at or clock(),
    )


class IngestPipeline:
    """Raw broker message -> RawFrame -> Reading -> cache."""

    def __init__(self, mappings: Mapping[str, DeviceMapping], cache: Any):
        self.mappings = mappings
        self.cache = cache
        self.accepted = 0
        self.dropped = 0

    def handle_message(self, topic: str, message: bytes | str) -> Optional[Reading]:
        frame = parse_uplink(message, topic=topic)
        if frame is None:
            self.dropped += 1
            return None
        result = normalize(frame, self.mappings)
        if isinstance(result, NormalizationFailure):
            self.dropped += 1
            logger.info("Dropping uplink on %s: %s", topic, result.reason)
            return None
        self.cache.put(result)
        self.accepted += 1
        logger.debug(
            "Sensor data received from %s",
            result.device_id,
            extra={"device_id": result.device_id, "payload": result.payload},
        )
        return result
