from __future__ import annotations
from pydantic import BaseModel, Field
from typing import Optional, Literal

from ..domain.models import SensorType
from ..domain.preferences import NotificationChannel


class RangeIn(BaseModel):
    min: Optional[float] = None
    max: Optional[float] = None


class SoundIn(BaseModel):
    max: Optional[float] = None


class ThresholdsUpdateRequest(BaseModel):
    temperature: Optional[RangeIn] = None
    humidity: Optional[RangeIn] = None
    sound: Optional[SoundIn] = None


class CloudConfigUpdateRequest(BaseModel):
    endpoint: Optional[str] = None
    device_id: Optional[str] = None
    api_key: Optional[str] = None
    refresh_interval_ms: Optional[int] = None


class SensorTogglesIn(BaseModel):
    temperature: Optional[bool] = None
    humidity: Optional[bool] = None
    sound: Optional[bool] = None


class NotificationSettingsUpdateRequest(BaseModel):
    enabled: Optional[bool] = None
    channel: Optional[NotificationChannel] = None
    per_sensor_enabled: Optional[SensorTogglesIn] = None
    contact: Optional[str] = None
    cooldown_minutes: Optional[float] = None


class SendTestRequest(BaseModel):
    channel: Optional[NotificationChannel] = None


class TriggerAlertRequest(BaseModel):
    sensor: SensorType
    value: float
    message: Optional[str] = None


class SimManualRequest(BaseModel):
    temperature: Optional[float] = Field(default=None, ge=0)
    humidity: Optional[float] = Field(default=None, ge=0)
    sound: Optional[float] = Field(default=None, ge=0)


class SimPatternRequest(BaseModel):
    sensor: SensorType
    type: Literal["manual", "sine", "step", "ramp", "random"]
    baseline: float = 0
    amplitude: float = 0
    period_s: float = 600
    noise: float = 0
    step_low: float = 0
    step_high: float = 0
    step_period_s: float = 120
    ramp_min: float = 0
    ramp_max: float = 0
    ramp_period_s: float = 600
