from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Mapping, Optional, Sequence
from uuid import uuid4

from ..core.timeutil import Clock, now_utc
from ..domain.errors import ChannelNotReadyError, InvalidConfigError
from ..domain.evaluator import breached_threshold, collect_alerts, direction
from ..domain.interfaces import Channel, Permission, PermissionedChannel, Repository
from ..domain.messages import alert_detail, alert_title, compose_message, compose_title
from ..domain.models import ActiveNotification, Alert, DeliveryResult, Direction, SensorSnapshot, SensorType
from ..domain.preferences import (
    CONTACT_CHANNELS,
    NotificationChannel,
    NotificationLogEntry,
    NotificationSettings,
    parse_model,
)
from ..storage.config_store import ConfigStore
from ..storage.sqlite_repo import NOTIFICATION_LOGS_KEY
from .notification_queue import ActiveNotificationQueue

logger = logging.getLogger(__name__)

TEST_TITLE = "Test Notification"
TEST_MESSAGE = "This is a test notification from your Baby Monitor app."
_TEST_ALERT = Alert(sensor=SensorType.temperature, value=25.0, threshold=30.0, direction=Direction.none)
_BROWSER_FALLBACK = "Browser notifications not permitted; delivered in-app instead"


class DispatchState(str, Enum):
    idle = "idle"
    evaluating = "evaluating"
    suppressed = "suppressed"
    dispatching = "dispatching"


class DispatchOutcome(str, Enum):
    disabled = "disabled"
    clear = "clear"
    suppressed = "suppressed"
    dispatched = "dispatched"


@dataclass(frozen=True)
class DispatchReport:
    outcome: DispatchOutcome
    alerts: tuple[Alert, ...] = ()
    entries: tuple[NotificationLogEntry, ...] = ()


@dataclass(frozen=True)
class SendTestResult:
    success: bool
    channel: NotificationChannel
    error: Optional[str] = None


class AlertDispatcher:
    """Cooldown-gated routing of alerts to the configured notification channel.

    One ``last_notified_at`` (kept in the notification settings) gates every
    sensor together. Each cycle sends a single compound message and writes one
    audit-log entry per alerting sensor. The cooldown starts at the dispatch
    attempt, whether or not the channel managed to deliver.
    """

    def __init__(
        self,
        store: ConfigStore,
        channels: Mapping[NotificationChannel, Channel],
        queue: ActiveNotificationQueue,
        repo: Repository,
        clock: Clock = now_utc,
        log_limit: int = 100,
    ) -> None:
        self._store = store
        self._channels = dict(channels)
        self._queue = queue
        self._repo = repo
        self._clock = clock
        self._log_limit = log_limit
        self._logs: List[NotificationLogEntry] = []
        self._state = DispatchState.idle
        self._lock = asyncio.Lock()

    @property
    def state(self) -> DispatchState:
        return self._state

    @property
    def queue(self) -> ActiveNotificationQueue:
        return self._queue

    def logs(self) -> List[NotificationLogEntry]:
        return list(self._logs)

    def browser_permission(self) -> Permission:
        browser = self._channels.get(NotificationChannel.browser)
        if browser is None:
            return Permission.denied
        if isinstance(browser, PermissionedChannel):
            return browser.permission
        return Permission.granted

    async def request_browser_permission(self) -> Permission:
        browser = self._channels.get(NotificationChannel.browser)
        if browser is None:
            return Permission.denied
        if isinstance(browser, PermissionedChannel):
            return await browser.request_permission()
        return Permission.granted

    # --- audit log ---

    async def load_logs(self) -> None:
        raw = await self._repo.get_value(NOTIFICATION_LOGS_KEY)
        entries: List[NotificationLogEntry] = []
        for item in raw if isinstance(raw, list) else []:
            try:
                entries.append(parse_model(NotificationLogEntry, item))
            except InvalidConfigError as e:
                logger.warning("Skipping unreadable notification log entry: %s", e)
        self._logs = entries[: self._log_limit]

    async def clear_logs(self) -> None:
        self._logs = []
        self._queue.clear()
        await self._repo.set_value(NOTIFICATION_LOGS_KEY, [])
        logger.info("Notification logs cleared")

    async def _append_logs(self, entries: Sequence[NotificationLogEntry]) -> None:
        self._logs = [*entries, *self._logs][: self._log_limit]
        await self._repo.set_value(
            NOTIFICATION_LOGS_KEY, [e.model_dump(mode="json") for e in self._logs]
        )

    # --- periodic cycle ---

    def _in_cooldown(self, settings: NotificationSettings, now: datetime) -> bool:
        last = settings.last_notified_at
        if last is None:
            return False
        return now - last < timedelta(minutes=settings.cooldown_minutes)

    async def handle_snapshot(self, snapshot: SensorSnapshot) -> DispatchReport:
        async with self._lock:
            settings = self._store.notification_settings
            if not settings.enabled or settings.channel is NotificationChannel.none:
                return DispatchReport(DispatchOutcome.disabled)

            self._state = DispatchState.evaluating
            try:
                alerts = collect_alerts(snapshot, self._store.thresholds, settings.per_sensor_enabled)
                if not alerts:
                    return DispatchReport(DispatchOutcome.clear)

                now = self._clock()
                if self._in_cooldown(settings, now):
                    self._state = DispatchState.suppressed
                    logger.debug(
                        "Alert suppressed by cooldown (last=%s cooldown_min=%s)",
                        settings.last_notified_at,
                        settings.cooldown_minutes,
                    )
                    return DispatchReport(DispatchOutcome.suppressed, alerts=tuple(alerts))

                self._state = DispatchState.dispatching
                await self._store.mark_notified(now)
                entries = await self._dispatch(
                    alerts,
                    settings.channel,
                    compose_title(alerts),
                    compose_message(alerts),
                    settings.contact,
                )
                return DispatchReport(DispatchOutcome.dispatched, tuple(alerts), tuple(entries))
            finally:
                self._state = DispatchState.idle

    # --- explicit triggers ---

    async def trigger(self, sensor: SensorType, value: float, message: Optional[str] = None) -> DispatchReport:
        """Push a manual alert for one sensor through the configured channel, bypassing the cooldown."""
        async with self._lock:
            settings = self._store.notification_settings
            if not settings.enabled or settings.channel is NotificationChannel.none:
                return DispatchReport(DispatchOutcome.disabled)
            thresholds = self._store.thresholds
            alert = Alert(
                sensor=sensor,
                value=value,
                threshold=breached_threshold(sensor, value, thresholds),
                direction=direction(sensor, value, thresholds),
            )
            entries = await self._dispatch(
                [alert],
                settings.channel,
                compose_title([alert]),
                message or compose_message([alert]),
                settings.contact,
            )
            return DispatchReport(DispatchOutcome.dispatched, (alert,), tuple(entries))

    async def send_test(self, channel: Optional[NotificationChannel] = None) -> SendTestResult:
        """Send a fixed sample alert, ignoring cooldown and current readings.

        Raises ChannelNotReadyError when the channel cannot be used as configured.
        """
        settings = self._store.notification_settings
        target = channel or settings.channel

        if target is NotificationChannel.none:
            raise ChannelNotReadyError("Notifications are turned off; choose a channel to test.")
        if target in CONTACT_CHANNELS and not settings.contact.strip():
            kind = "email address" if target is NotificationChannel.email else "phone number"
            raise ChannelNotReadyError(
                f"Please provide a valid {kind} for test {target.value} notifications."
            )
        if target is NotificationChannel.browser and self.browser_permission() is not Permission.granted:
            raise ChannelNotReadyError(
                "You need to grant notification permission to receive browser notifications."
            )

        async with self._lock:
            entries = await self._dispatch([_TEST_ALERT], target, TEST_TITLE, TEST_MESSAGE, settings.contact)
        entry = entries[0]
        return SendTestResult(success=entry.delivered, channel=target, error=entry.error)

    # --- delivery ---

    async def _deliver(
        self, channel: NotificationChannel, title: str, body: str, contact: str, alerts: Sequence[Alert]
    ) -> DeliveryResult:
        deliverer = self._channels.get(channel)
        if deliverer is None:
            return DeliveryResult(delivered=False, error=f"No {channel.value} channel configured")
        meta = {"contact": contact, "sensors": [a.sensor.value for a in alerts]}
        try:
            return await deliverer.deliver(title, body, meta)
        except Exception as e:
            logger.exception("Channel delivery raised", extra={"channel": channel.value})
            return DeliveryResult(delivered=False, error=str(e) or type(e).__name__)

    async def _dispatch(
        self,
        alerts: Sequence[Alert],
        channel: NotificationChannel,
        title: str,
        body: str,
        contact: str,
    ) -> List[NotificationLogEntry]:
        target = channel
        annotation: Optional[str] = None
        if channel is NotificationChannel.browser and self.browser_permission() is not Permission.granted:
            target = NotificationChannel.app
            annotation = _BROWSER_FALLBACK
            logger.warning("Browser permission missing, falling back to in-app alert", extra={"channel": channel.value})

        result = await self._deliver(target, title, body, contact, alerts)
        error = result.error
        if annotation:
            error = annotation if result.delivered else f"{annotation}; {result.error}"

        now = self._clock()
        entries = [
            NotificationLogEntry(
                id=uuid4().hex,
                timestamp=now,
                channel=channel,
                sensor=a.sensor,
                value=a.value,
                threshold=a.threshold,
                contact=contact,
                delivered=result.delivered,
                error=error,
            )
            for a in alerts
        ]

        if target is NotificationChannel.app:
            for alert, entry in zip(alerts, entries):
                self._queue.push(
                    ActiveNotification(
                        id=entry.id,
                        sensor=alert.sensor,
                        value=alert.value,
                        threshold=alert.threshold,
                        title=alert_title(alert.sensor, alert.value),
                        message=alert_detail(alert),
                        created_at=now,
                    )
                )

        for entry in entries:
            ctx = {
                "sensor": entry.sensor.value,
                "value": entry.value,
                "threshold": entry.threshold,
                "channel": entry.channel.value,
            }
            if entry.delivered:
                logger.info("Notification delivered", extra=ctx)
            else:
                logger.warning("Notification not delivered: %s", entry.error, extra=ctx)

        await self._append_logs(entries)
        return entries
