from __future__ import annotations
from collections import deque
from typing import Deque, Dict

from .models import SENSORS, HistorySummary, SensorReading, SensorSnapshot, SensorType


class HistoryBuffer:
    """Per-sensor bounded FIFO of readings; oldest entries are evicted first."""

    def __init__(self, capacity: int = 144) -> None:
        if capacity < 1:
            raise ValueError("History capacity must be at least 1")
        self.capacity = capacity
        self._series: Dict[SensorType, Deque[SensorReading]] = self._empty()

    def _empty(self) -> Dict[SensorType, Deque[SensorReading]]:
        return {sensor: deque(maxlen=self.capacity) for sensor in SENSORS}

    def append(self, sensor: SensorType, reading: SensorReading) -> None:
        self._series[sensor].append(reading)

    def append_snapshot(self, snapshot: SensorSnapshot) -> None:
        for sensor in SENSORS:
            self.append(sensor, snapshot.reading(sensor))

    def reset(self) -> None:
        # Swap in fresh buffers in one assignment so no reader sees a half-cleared set
        self._series = self._empty()

    def readings(self, sensor: SensorType) -> list[SensorReading]:
        return list(self._series[sensor])

    def summary(self, sensor: SensorType) -> HistorySummary:
        values = [r.value for r in self._series[sensor]]
        alerts = sum(1 for r in self._series[sensor] if r.is_alert)
        if not values:
            return HistorySummary(count=0, average=None, maximum=None, alert_count=0)
        return HistorySummary(
            count=len(values),
            average=sum(values) / float(len(values)),
            maximum=max(values),
            alert_count=alerts,
        )

    def view(self) -> dict:
        series = self._series
        return {
            sensor.value: {
                "readings": [r.to_dict() for r in series[sensor]],
                "summary": self.summary(sensor).to_dict(),
            }
            for sensor in SENSORS
        }
