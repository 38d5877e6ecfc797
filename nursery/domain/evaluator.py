"""Threshold evaluation.

Everything here is a pure function of its arguments: no clock reads, no
logging, no shared state. A value sitting exactly on a bound is *not* an
alert; only values strictly outside ``[min, max]`` are (sound only has an
upper bound).
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Mapping

from .errors import DataSourceError
from .models import (
    SENSORS,
    Alert,
    ConnectionStatus,
    Direction,
    SensorReading,
    SensorSnapshot,
    SensorType,
)
from .preferences import SensorToggles, Thresholds
from ..core.timeutil import parse_iso


def direction(sensor: SensorType, value: float, thresholds: Thresholds) -> Direction:
    low, high = thresholds.bounds(sensor)
    if value > high:
        return Direction.too_high
    if low is not None and value < low:
        return Direction.too_low
    return Direction.none


def is_alert(sensor: SensorType, value: float, thresholds: Thresholds) -> bool:
    return direction(sensor, value, thresholds) is not Direction.none


def breached_threshold(sensor: SensorType, value: float, thresholds: Thresholds) -> float:
    """The bound a value is compared against: the minimum when too low, otherwise the maximum."""
    low, high = thresholds.bounds(sensor)
    if low is not None and direction(sensor, value, thresholds) is Direction.too_low:
        return low
    return high


def evaluate(
    sensor: SensorType,
    value: float,
    thresholds: Thresholds,
    timestamp: datetime,
) -> SensorReading:
    return SensorReading(
        value=value,
        timestamp=timestamp,
        is_alert=is_alert(sensor, value, thresholds),
    )


def coerce_value(raw: Any) -> float:
    """Coerce a payload field to one decimal place; missing or null becomes 0."""
    if raw is None:
        return 0.0
    if isinstance(raw, bool):
        raise DataSourceError(f"Expected a number, got {raw!r}")
    try:
        value = float(raw)
    except (TypeError, ValueError) as exc:
        raise DataSourceError(f"Expected a number, got {raw!r}") from exc
    if not math.isfinite(value):
        raise DataSourceError(f"Expected a finite number, got {raw!r}")
    return round(value, 1)


def _connection_status(raw: Any) -> ConnectionStatus:
    try:
        return ConnectionStatus(raw)
    except ValueError:
        return ConnectionStatus.connected


def build_snapshot(
    payload: Mapping[str, Any],
    thresholds: Thresholds,
    now: datetime,
) -> SensorSnapshot:
    """Turn a raw data-source payload into an evaluated snapshot."""
    synced_at = now
    last_sync = payload.get("lastSync")
    if last_sync:
        try:
            synced_at = parse_iso(str(last_sync))
        except ValueError:
            synced_at = now

    readings = {
        sensor: evaluate(sensor, coerce_value(payload.get(sensor.value)), thresholds, synced_at)
        for sensor in SENSORS
    }
    return SensorSnapshot(
        temperature=readings[SensorType.temperature],
        humidity=readings[SensorType.humidity],
        sound=readings[SensorType.sound],
        connection_status=_connection_status(payload.get("connectionStatus")),
        last_sync_time=synced_at,
    )


def placeholder_snapshot(now: datetime) -> SensorSnapshot:
    zero = SensorReading(value=0.0, timestamp=now, is_alert=False)
    return SensorSnapshot(
        temperature=zero,
        humidity=zero,
        sound=zero,
        connection_status=ConnectionStatus.disconnected,
        last_sync_time=now,
    )


def collect_alerts(
    snapshot: SensorSnapshot,
    thresholds: Thresholds,
    toggles: SensorToggles,
) -> list[Alert]:
    """Alerting sensors in fixed temperature, humidity, sound order."""
    alerts: list[Alert] = []
    for sensor in SENSORS:
        reading = snapshot.reading(sensor)
        if not toggles.enabled(sensor) or not reading.is_alert:
            continue
        alerts.append(
            Alert(
                sensor=sensor,
                value=reading.value,
                threshold=breached_threshold(sensor, reading.value, thresholds),
                direction=direction(sensor, reading.value, thresholds),
            )
        )
    return alerts
