from __future__ import annotations
import asyncio
import logging
from typing import Any, Mapping, Optional

from ..core.config import Settings
from ..core.timeutil import Clock, now_utc
from ..domain.history import HistoryBuffer
from ..domain.interfaces import Channel, DataSource, Permission, Repository
from ..domain.preferences import CloudConfig, NotificationChannel, Thresholds
from ..drivers.channels import AppChannel, BrowserChannel, EmailChannel, SmsChannel
from ..drivers.cloud_source import CloudDataSource
from ..drivers.sim_source import SimulatedDataSource
from ..storage.config_store import ConfigStore
from ..storage.sqlite_repo import SQLiteRepository
from .acquisition import AcquisitionScheduler
from .dispatcher import AlertDispatcher
from .notification_queue import ActiveNotificationQueue

logger = logging.getLogger(__name__)


class MonitorService:
    """Owns the whole acquisition/evaluation/alerting pipeline for one device.

    Two periodic tasks run independently: the acquisition loop inside the
    scheduler, and a slower loop that recomputes the cached history view.
    """

    def __init__(
        self,
        repo: Repository,
        store: ConfigStore,
        history: HistoryBuffer,
        scheduler: AcquisitionScheduler,
        dispatcher: AlertDispatcher,
        source: DataSource,
        history_refresh_seconds: float = 60.0,
    ) -> None:
        self.repo = repo
        self.store = store
        self.history = history
        self.scheduler = scheduler
        self.dispatcher = dispatcher
        self.source = source
        self._history_refresh_s = history_refresh_seconds

        self._history_task: Optional[asyncio.Task] = None
        self._history_stop = asyncio.Event()
        self.history_view: dict = history.view()

    @property
    def queue(self) -> ActiveNotificationQueue:
        return self.dispatcher.queue

    async def start(self) -> None:
        await self.repo.init()
        await self.store.load()
        await self.dispatcher.load_logs()
        await self.scheduler.start(self.store.cloud_config.refresh_interval_ms)

        self._history_stop = asyncio.Event()
        self._history_task = asyncio.create_task(
            self._history_loop(self._history_stop), name="history_refresh_loop"
        )

    async def stop(self) -> None:
        await self.scheduler.stop()
        task, self._history_task = self._history_task, None
        self._history_stop.set()
        if task is not None:
            await task
        self.queue.clear()

    def refresh_history_view(self) -> dict:
        self.history_view = self.history.view()
        return self.history_view

    async def _history_loop(self, stop: asyncio.Event) -> None:
        while not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), timeout=self._history_refresh_s)
            except asyncio.TimeoutError:
                try:
                    self.refresh_history_view()
                except Exception as e:
                    logger.exception("History refresh failed: %s", e)

    async def update_thresholds(self, updates: Mapping[str, Any]) -> Thresholds:
        return await self.store.update_thresholds(updates)

    async def reset_thresholds(self) -> Thresholds:
        return await self.store.reset_thresholds()

    async def update_cloud_config(self, updates: Mapping[str, Any]) -> CloudConfig:
        """Apply new connection settings, restart the timer and fetch right away."""
        change = await self.store.update_cloud_config(updates)
        if change.endpoint_changed:
            self.history.reset()
            self.refresh_history_view()
            logger.info("Endpoint changed, history cleared", extra={"endpoint": change.current.endpoint})

        if self.scheduler.running:
            await self.scheduler.reconfigure(change.current.refresh_interval_ms)
        await self.scheduler.reset_connection()
        return change.current


def build_channels(cfg: Settings) -> dict[NotificationChannel, Channel]:
    return {
        NotificationChannel.app: AppChannel(),
        NotificationChannel.browser: BrowserChannel(
            permission=Permission(cfg.browser_permission),
            grant_on_request=cfg.browser_grant_on_request,
        ),
        NotificationChannel.email: EmailChannel(),
        NotificationChannel.sms: SmsChannel(),
    }


def build_source(cfg: Settings) -> DataSource:
    if cfg.source_mode.lower() == "cloud":
        return CloudDataSource(timeout=cfg.http_timeout_seconds)
    # default to sim
    return SimulatedDataSource()


def build_monitor(
    cfg: Settings,
    repo: Optional[Repository] = None,
    source: Optional[DataSource] = None,
    channels: Optional[Mapping[NotificationChannel, Channel]] = None,
    clock: Clock = now_utc,
) -> MonitorService:
    repo = repo or SQLiteRepository(cfg.sqlite_path)
    source = source or build_source(cfg)
    default_cloud = CloudConfig(
        endpoint=cfg.default_endpoint,
        device_id=cfg.default_device_id,
        api_key=cfg.default_api_key,
        refresh_interval_ms=cfg.default_refresh_interval_ms,
    )
    store = ConfigStore(repo, default_cloud)
    history = HistoryBuffer(capacity=cfg.history_capacity)
    queue = ActiveNotificationQueue(
        base_ms=cfg.toast_base_ms,
        stagger_ms=cfg.toast_stagger_ms,
        max_visible=cfg.toast_max_visible,
    )
    dispatcher = AlertDispatcher(
        store=store,
        channels=channels if channels is not None else build_channels(cfg),
        queue=queue,
        repo=repo,
        clock=clock,
        log_limit=cfg.notification_log_limit,
    )
    scheduler = AcquisitionScheduler(
        source=source,
        store=store,
        history=history,
        dispatcher=dispatcher,
        clock=clock,
        failure_threshold=cfg.failure_threshold,
    )
    return MonitorService(
        repo=repo,
        store=store,
        history=history,
        scheduler=scheduler,
        dispatcher=dispatcher,
        source=source,
        history_refresh_seconds=cfg.history_refresh_seconds,
    )
