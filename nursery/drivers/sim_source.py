from __future__ import annotations
import math
import random
from dataclasses import dataclass, asdict
from threading import Lock
from typing import Any, Dict, Literal, Mapping, Optional

from ..core.timeutil import now_utc
from ..domain.errors import DataSourceError
from ..domain.models import SENSORS, SensorType
from ..domain.preferences import CloudConfig


PatternType = Literal["manual", "sine", "step", "ramp", "random"]


@dataclass
class PatternConfig:
    type: PatternType = "manual"
    baseline: float = 0.0
    amplitude: float = 0.0
    period_s: float = 600.0
    noise: float = 0.0
    step_low: float = 0.0
    step_high: float = 0.0
    step_period_s: float = 120.0
    ramp_min: float = 0.0
    ramp_max: float = 0.0
    ramp_period_s: float = 600.0


_BASELINES = {
    SensorType.temperature: 24.0,
    SensorType.humidity: 45.0,
    SensorType.sound: 35.0,
}


class SimulatedDataSource:
    """Development stand-in for the cloud endpoint.

    Each sensor is either pinned to a manual value or follows a waveform.
    Disabling the source makes every fetch fail, which is how outages are
    rehearsed without a network.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._enabled = True
        self._manual: Dict[SensorType, float] = dict(_BASELINES)
        self._patterns: Dict[SensorType, PatternConfig] = {
            s: PatternConfig(baseline=_BASELINES[s]) for s in SENSORS
        }
        self._t0 = now_utc()

    def enable(self) -> None:
        with self._lock:
            self._enabled = True

    def disable(self) -> None:
        with self._lock:
            self._enabled = False

    def set_manual(self, values: Mapping[SensorType, float]) -> None:
        with self._lock:
            for sensor, value in values.items():
                self._manual[sensor] = float(value)
                self._patterns[sensor].type = "manual"

    def set_pattern(self, sensor: SensorType, cfg: PatternConfig) -> None:
        with self._lock:
            self._patterns[sensor] = cfg

    def status(self) -> dict:
        with self._lock:
            return {
                "enabled": self._enabled,
                "manual": {s.value: v for s, v in self._manual.items()},
                "patterns": {s.value: asdict(p) for s, p in self._patterns.items()},
            }

    def _pattern_value(self, sensor: SensorType, t: float) -> float:
        p = self._patterns[sensor]
        if p.type == "manual":
            return self._manual[sensor]

        if p.type == "sine":
            v = p.baseline + p.amplitude * math.sin(2 * math.pi * t / max(p.period_s, 1.0))
        elif p.type == "step":
            phase = (t % max(p.step_period_s, 1.0)) / max(p.step_period_s, 1.0)
            v = p.step_high if phase >= 0.5 else p.step_low
        elif p.type == "ramp":
            phase = (t % max(p.ramp_period_s, 1.0)) / max(p.ramp_period_s, 1.0)
            v = p.ramp_min + (p.ramp_max - p.ramp_min) * phase
        elif p.type == "random":
            v = p.baseline + random.uniform(-p.amplitude, p.amplitude)
        else:
            v = p.baseline

        if p.noise > 0:
            v += random.uniform(-p.noise, p.noise)
        return max(0.0, v)

    async def fetch(self, config: Optional[CloudConfig] = None) -> Mapping[str, Any]:
        ts = now_utc()
        with self._lock:
            if not self._enabled:
                raise DataSourceError("Simulated sensor disabled")
            t = (ts - self._t0).total_seconds()
            payload: Dict[str, Any] = {s.value: self._pattern_value(s, t) for s in SENSORS}
        payload["lastSync"] = ts.isoformat()
        payload["connectionStatus"] = "connected"
        return payload
