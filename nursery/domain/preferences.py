"""User-editable configuration: thresholds, cloud connection and notification settings.

All models are frozen. Updates build a complete new instance through
:func:`merge_update`, so readers only ever see a whole, validated structure.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional, TypeVar

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .errors import InvalidConfigError
from .models import SensorType


class NotificationChannel(str, Enum):
    app = "app"
    browser = "browser"
    email = "email"
    sms = "sms"
    none = "none"


CONTACT_CHANNELS = frozenset({NotificationChannel.email, NotificationChannel.sms})


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class SensorRange(_Frozen):
    min: float
    max: float

    @model_validator(mode="after")
    def _check_order(self) -> "SensorRange":
        if self.min >= self.max:
            raise ValueError(f"minimum ({self.min}) must be less than maximum ({self.max})")
        return self


class SoundLimit(_Frozen):
    max: float


class Thresholds(_Frozen):
    temperature: SensorRange = SensorRange(min=18, max=30)
    humidity: SensorRange = SensorRange(min=30, max=60)
    sound: SoundLimit = SoundLimit(max=50)

    def bounds(self, sensor: SensorType) -> tuple[Optional[float], float]:
        """Return (min, max) for a sensor; sound has no lower bound."""
        if sensor is SensorType.sound:
            return None, self.sound.max
        rng: SensorRange = getattr(self, sensor.value)
        return rng.min, rng.max


class CloudConfig(_Frozen):
    endpoint: str
    device_id: str = "baby-monitor-01"
    api_key: str = ""
    refresh_interval_ms: int = Field(default=5000, ge=1000)

    @field_validator("endpoint")
    @classmethod
    def _check_endpoint(cls, value: str) -> str:
        candidate = value.strip()
        try:
            url = httpx.URL(candidate)
        except (httpx.InvalidURL, TypeError) as exc:
            raise ValueError(f"invalid endpoint URL: {value!r}") from exc
        if url.scheme not in ("http", "https") or not url.host:
            raise ValueError(f"invalid endpoint URL: {value!r}")
        return candidate


class SensorToggles(_Frozen):
    temperature: bool = True
    humidity: bool = True
    sound: bool = True

    def enabled(self, sensor: SensorType) -> bool:
        return bool(getattr(self, sensor.value))


class NotificationSettings(_Frozen):
    enabled: bool = False
    channel: NotificationChannel = NotificationChannel.app
    per_sensor_enabled: SensorToggles = SensorToggles()
    contact: str = ""
    cooldown_minutes: float = Field(default=1, ge=0)
    last_notified_at: Optional[datetime] = None

    @model_validator(mode="after")
    def _check_contact(self) -> "NotificationSettings":
        if self.channel in CONTACT_CHANNELS and not self.contact.strip():
            kind = "email address" if self.channel is NotificationChannel.email else "phone number"
            raise ValueError(f"a contact {kind} is required for {self.channel.value} notifications")
        return self


class NotificationLogEntry(_Frozen):
    id: str
    timestamp: datetime
    channel: NotificationChannel
    sensor: SensorType
    value: float
    threshold: float
    contact: str = ""
    delivered: bool = False
    error: Optional[str] = None


M = TypeVar("M", bound=BaseModel)


def describe_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        msg = err.get("msg", "invalid value")
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(parts)


def _deep_merge(base: dict[str, Any], updates: Mapping[str, Any]) -> dict[str, Any]:
    out = dict(base)
    for key, value in updates.items():
        if isinstance(value, Mapping) and isinstance(out.get(key), dict):
            out[key] = _deep_merge(out[key], value)
        else:
            out[key] = value
    return out


def merge_update(current: M, updates: Mapping[str, Any]) -> M:
    """Validate `updates` applied on top of `current` and return the new model.

    Raises InvalidConfigError and leaves `current` untouched on any problem.
    """
    data = _deep_merge(current.model_dump(), updates)
    try:
        return type(current).model_validate(data)
    except ValidationError as exc:
        raise InvalidConfigError(describe_validation_error(exc)) from exc


def parse_model(model: type[M], data: Any) -> M:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise InvalidConfigError(describe_validation_error(exc)) from exc
