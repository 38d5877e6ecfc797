from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, TypeVar

from pydantic import BaseModel

from ..domain.errors import InvalidConfigError
from ..domain.interfaces import Repository
from ..domain.preferences import (
    CloudConfig,
    NotificationSettings,
    Thresholds,
    merge_update,
    parse_model,
)
from .sqlite_repo import CLOUD_CONFIG_KEY, NOTIFICATION_SETTINGS_KEY, THRESHOLDS_KEY

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


@dataclass(frozen=True)
class CloudConfigChange:
    previous: CloudConfig
    current: CloudConfig

    @property
    def endpoint_changed(self) -> bool:
        return self.previous.endpoint != self.current.endpoint


class ConfigStore:
    """Owns thresholds, cloud connection and notification settings.

    Every mutation validates a complete replacement first, swaps it in with a
    single assignment and then writes it through to the repository. An
    invalid update raises InvalidConfigError and the previous value stays.
    """

    def __init__(self, repo: Repository, default_cloud: CloudConfig) -> None:
        self._repo = repo
        self._default_cloud = default_cloud
        self._thresholds = Thresholds()
        self._cloud = default_cloud
        self._notifications = NotificationSettings()

    @property
    def thresholds(self) -> Thresholds:
        return self._thresholds

    @property
    def cloud_config(self) -> CloudConfig:
        return self._cloud

    @property
    def notification_settings(self) -> NotificationSettings:
        return self._notifications

    async def load(self) -> None:
        self._thresholds = await self._load(THRESHOLDS_KEY, Thresholds, Thresholds())
        self._cloud = await self._load(CLOUD_CONFIG_KEY, CloudConfig, self._default_cloud)
        self._notifications = await self._load(
            NOTIFICATION_SETTINGS_KEY, NotificationSettings, NotificationSettings()
        )
        logger.info(
            "Configuration loaded (device=%s interval_ms=%s notifications=%s/%s)",
            self._cloud.device_id,
            self._cloud.refresh_interval_ms,
            "on" if self._notifications.enabled else "off",
            self._notifications.channel.value,
            extra={"endpoint": self._cloud.endpoint},
        )

    async def _load(self, key: str, model: type[M], default: M) -> M:
        raw = await self._repo.get_value(key)
        if raw is None:
            return default
        try:
            return parse_model(model, raw)
        except InvalidConfigError as e:
            logger.warning("Stored %s is invalid, using defaults: %s", key, e)
            return default

    async def _save(self, key: str, value: BaseModel) -> None:
        await self._repo.set_value(key, value.model_dump(mode="json"))

    async def update_thresholds(self, updates: Mapping[str, Any]) -> Thresholds:
        new = merge_update(self._thresholds, updates)
        self._thresholds = new
        await self._save(THRESHOLDS_KEY, new)
        logger.info("Thresholds updated: %s", new.model_dump())
        return new

    async def reset_thresholds(self) -> Thresholds:
        self._thresholds = Thresholds()
        await self._save(THRESHOLDS_KEY, self._thresholds)
        logger.info("Thresholds reset to defaults")
        return self._thresholds

    async def update_cloud_config(self, updates: Mapping[str, Any]) -> CloudConfigChange:
        previous = self._cloud
        new = merge_update(previous, updates)
        self._cloud = new
        await self._save(CLOUD_CONFIG_KEY, new)
        logger.info(
            "Cloud configuration updated (device=%s interval_ms=%s)",
            new.device_id,
            new.refresh_interval_ms,
            extra={"endpoint": new.endpoint},
        )
        return CloudConfigChange(previous=previous, current=new)

    async def update_notification_settings(self, updates: Mapping[str, Any]) -> NotificationSettings:
        new = merge_update(self._notifications, updates)
        self._notifications = new
        await self._save(NOTIFICATION_SETTINGS_KEY, new)
        logger.info(
            "Notification settings updated (enabled=%s cooldown_min=%s)",
            new.enabled,
            new.cooldown_minutes,
            extra={"channel": new.channel.value},
        )
        return new

    async def mark_notified(self, at: datetime) -> NotificationSettings:
        new = self._notifications.model_copy(update={"last_notified_at": at})
        self._notifications = new
        await self._save(NOTIFICATION_SETTINGS_KEY, new)
        return new
