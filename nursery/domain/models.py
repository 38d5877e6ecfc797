from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class SensorType(str, Enum):
    temperature = "temperature"
    humidity = "humidity"
    sound = "sound"


SENSORS: tuple[SensorType, ...] = (SensorType.temperature, SensorType.humidity, SensorType.sound)

UNITS = {
    SensorType.temperature: "°C",
    SensorType.humidity: "%",
    SensorType.sound: " dB",
}


class ConnectionStatus(str, Enum):
    connected = "connected"
    disconnected = "disconnected"
    weak = "weak"


class Direction(str, Enum):
    too_high = "too_high"
    too_low = "too_low"
    none = "none"


@dataclass(frozen=True)
class SensorReading:
    value: float
    timestamp: datetime
    is_alert: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "value": self.value,
            "timestamp": self.timestamp.isoformat(),
            "is_alert": self.is_alert,
        }


@dataclass(frozen=True)
class SensorSnapshot:
    temperature: SensorReading
    humidity: SensorReading
    sound: SensorReading
    connection_status: ConnectionStatus
    last_sync_time: datetime

    def reading(self, sensor: SensorType) -> SensorReading:
        return getattr(self, sensor.value)

    def to_dict(self) -> dict[str, Any]:
        return {
            "temperature": self.temperature.to_dict(),
            "humidity": self.humidity.to_dict(),
            "sound": self.sound.to_dict(),
            "connection_status": self.connection_status.value,
            "last_sync_time": self.last_sync_time.isoformat(),
        }


@dataclass(frozen=True)
class HistorySummary:
    count: int
    average: Optional[float]
    maximum: Optional[float]
    alert_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "average": _fmt(self.average),
            "maximum": _fmt(self.maximum),
            "alert_count": self.alert_count,
        }


def _fmt(value: Optional[float]) -> str:
    return "N/A" if value is None else f"{value:.1f}"


@dataclass(frozen=True)
class DeliveryResult:
    delivered: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class ActiveNotification:
    id: str
    sensor: SensorType
    value: float
    threshold: float
    title: str
    message: str
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "sensor": self.sensor.value,
            "value": self.value,
            "threshold": self.threshold,
            "title": self.title,
            "message": self.message,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class Alert:
    """One alerting sensor within a dispatch cycle."""

    sensor: SensorType
    value: float
    threshold: float
    direction: Direction


@dataclass(frozen=True)
class AcquisitionUpdate:
    """What subscribers of the scheduler receive after each fetch attempt."""

    snapshot: SensorSnapshot
    ok: bool
    consecutive_failures: int = 0
    error: Optional[str] = None
