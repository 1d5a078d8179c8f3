#!/usr/bin/env python3
"""Publish TTN v3 shaped uplinks to a local broker for dashboard development.

Point the dashboard at the same broker with e.g.
FARM_TTN__BROKER_URL=mqtt://127.0.0.1:1883 FARM_TTN__ENABLED=true
FARM_TTN__APPLICATION_ID=farm-app FARM_TTN__API_KEY=dev
"""
from __future__ import annotations

import json
import math
import os
import random
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List

import paho.mqtt.client as mqtt


@dataclass(frozen=True)
class SimDevice:
    device_id: str
    kind: str
    base: float
    amplitude: float
    period: float
    phase: float


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_float(key: str, default: float) -> float:
    value = os.getenv(key)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_list(key: str) -> List[str]:
    value = os.getenv(key, "")
    return [entry.strip() for entry in value.split(",") if entry.strip()]


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _build_devices(seed: int) -> List[SimDevice]:
    rng = random.Random(seed)
    kinds = _env_list("TTN_SIM_DEVICE_KINDS") or ["soil_moisture", "temperature", "motion"]
    bases = {"soil_moisture": 35.0, "temperature": 62.0, "motion": 0.0}
    devices: List[SimDevice] = []
    for idx, kind in enumerate(kinds):
        devices.append(
            SimDevice(
                device_id=f"sim-{kind.replace('_', '-')}-{idx + 1}",
                kind=kind,
                base=bases.get(kind, 10.0),
                amplitude=2.0 + rng.random() * 10.0,
                period=60.0 + rng.random() * 240.0,
                phase=rng.random() * math.tau,
            )
        )
    return devices


def _decoded_payload(device: SimDevice, elapsed: float, triggers: Dict[str, int], rng: random.Random) -> dict:
    wave = device.base + device.amplitude * math.sin((elapsed / device.period) + device.phase)
    battery = round(3.3 + rng.random() * 0.3, 2)
    if device.kind == "motion":
        triggered = rng.random() < 0.2
        if triggered:
            triggers[device.device_id] = triggers.get(device.device_id, 0) + 1
        return {"pir_triggered": triggered, "trigger_count": triggers.get(device.device_id, 0), "battery": battery}
    if device.kind == "soil_moisture":
        return {"moisture": round(wave, 1), "battery": battery}
    if device.kind == "temperature":
        return {"temperature": round(wave, 1), "humidity": round(45 + rng.random() * 20, 1), "battery": battery}
    return {"value": round(wave, 3), "battery": battery}


def _uplink(app_id: str, device: SimDevice, payload: dict, frame_counter: int) -> dict:
    return {
        "end_device_ids": {"device_id": device.device_id, "application_ids": {"application_id": app_id}},
        "received_at": _timestamp(),
        "uplink_message": {"f_port": 2, "f_cnt": frame_counter, "decoded_payload": payload},
    }


def main() -> None:
    mqtt_host = os.getenv("MQTT_HOST", "127.0.0.1")
    mqtt_port = _env_int("MQTT_PORT", 1883)
    mqtt_keepalive = _env_int("MQTT_KEEPALIVE", 60)
    app_id = os.getenv("TTN_SIM_APPLICATION_ID", "farm-app")
    tenant = os.getenv("TTN_SIM_TENANT", "nam1")
    interval = _env_float("TTN_SIM_INTERVAL", 10.0)
    seed = _env_int("TTN_SIM_SEED", 42)

    devices = _build_devices(seed)
    rng = random.Random(seed)
    triggers: Dict[str, int] = {}
    client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=f"ttn-uplink-sim-{seed}")

    def _on_connect(_client, _userdata, _flags, reason_code, _properties):
        if reason_code == 0:
            print(f"[ttn-sim] connected to MQTT at {mqtt_host}:{mqtt_port}")
        else:
            print(f"[ttn-sim] MQTT connection failed: {reason_code}")

    def _on_disconnect(_client, _userdata, _flags, reason_code, _properties):
        if reason_code != 0:
            print("[ttn-sim] MQTT disconnected unexpectedly")

    client.on_connect = _on_connect
    client.on_disconnect = _on_disconnect

    while True:
        try:
            client.connect(mqtt_host, mqtt_port, mqtt_keepalive)
            break
        except OSError as exc:
            print(f"[ttn-sim] MQTT connect failed: {exc}")
            time.sleep(2)

    client.loop_start()
    start = time.monotonic()
    frame_counter = 0
    try:
        while True:
            elapsed = time.monotonic() - start
            frame_counter += 1
            for device in devices:
                payload = _decoded_payload(device, elapsed, triggers, rng)
                topic = f"v3/{app_id}@{tenant}/devices/{device.device_id}/up"
                client.publish(topic, json.dumps(_uplink(app_id, device, payload, frame_counter)), qos=0)
            time.sleep(interval)
    except KeyboardInterrupt:
        print("[ttn-sim] shutting down")
    finally:
        client.loop_stop()
        client.disconnect()


if __name__ == "__main__":
    main()
