"""Human-readable alert text."""

from __future__ import annotations

from typing import Iterable

from .models import UNITS, Alert, Direction, SensorType

_LABELS = {
    SensorType.temperature: "Temperature",
    SensorType.humidity: "Humidity",
    SensorType.sound: "Sound level",
}

DEFAULT_TITLE = "Baby Monitor Alert"


def _num(value: float) -> str:
    return f"{value:g}"


def alert_title(sensor: SensorType, value: float) -> str:
    name = "Sound" if sensor is SensorType.sound else _LABELS[sensor]
    return f"{name} Alert: {_num(value)}{UNITS[sensor]}"


def alert_detail(alert: Alert) -> str:
    unit = UNITS[alert.sensor]
    if alert.direction is Direction.too_low:
        return f"Below minimum threshold ({_num(alert.threshold)}{unit})"
    if alert.direction is Direction.none:
        return f"Within threshold ({_num(alert.threshold)}{unit})"
    return f"Above maximum threshold ({_num(alert.threshold)}{unit})"


def _fragment(alert: Alert) -> str:
    unit = UNITS[alert.sensor]
    if alert.direction is Direction.too_low:
        bound = "below minimum"
    elif alert.direction is Direction.none:
        bound = "within threshold"
    else:
        bound = "above maximum"
    return (
        f"{_LABELS[alert.sensor]} ({_num(alert.value)}{unit}) "
        f"{bound} ({_num(alert.threshold)}{unit})."
    )


def compose_message(alerts: Iterable[Alert]) -> str:
    """One compound message covering every alerting sensor."""
    fragments = [_fragment(a) for a in alerts]
    return "Alert: " + " ".join(fragments)


def compose_title(alerts: list[Alert]) -> str:
    if len(alerts) == 1:
        return alert_title(alerts[0].sensor, alerts[0].value)
    return DEFAULT_TITLE
