from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

import pytest

from nursery.domain.history import HistoryBuffer
from nursery.domain.interfaces import Permission
from nursery.domain.preferences import CloudConfig, NotificationChannel
from nursery.drivers.channels import BrowserChannel
from nursery.services.acquisition import AcquisitionScheduler
from nursery.services.dispatcher import AlertDispatcher
from nursery.services.notification_queue import ActiveNotificationQueue
from nursery.storage.config_store import ConfigStore
from nursery.storage.sqlite_repo import SQLiteRepository

from .fakes import TEST_ENDPOINT, FakeClock, RecordingChannel, ScriptedSource


@dataclass
class Rig:
    repo: SQLiteRepository
    store: ConfigStore
    clock: FakeClock
    queue: ActiveNotificationQueue
    channels: Dict[NotificationChannel, Any]
    dispatcher: AlertDispatcher
    history: HistoryBuffer
    source: ScriptedSource
    scheduler: AcquisitionScheduler


RigFactory = Callable[..., Awaitable[Rig]]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def build_rig(tmp_path, clock) -> RigFactory:
    """Async factory for a fully wired, initialised pipeline."""

    async def _build(
        source: Optional[ScriptedSource] = None,
        notifications: Optional[Mapping[str, Any]] = None,
        browser_permission: Permission = Permission.granted,
        capacity: int = 144,
    ) -> Rig:
        repo = SQLiteRepository(str(tmp_path / "nursery.db"))
        await repo.init()
        store = ConfigStore(repo, CloudConfig(endpoint=TEST_ENDPOINT))
        await store.load()
        if notifications:
            await store.update_notification_settings(notifications)

        queue = ActiveNotificationQueue()
        channels: Dict[NotificationChannel, Any] = {
            NotificationChannel.app: RecordingChannel("app"),
            NotificationChannel.browser: BrowserChannel(permission=browser_permission, grant_on_request=False),
            NotificationChannel.email: RecordingChannel("email"),
            NotificationChannel.sms: RecordingChannel("sms"),
        }
        dispatcher = AlertDispatcher(store, channels, queue, repo, clock=clock)
        await dispatcher.load_logs()
        history = HistoryBuffer(capacity=capacity)
        source = source or ScriptedSource()
        scheduler = AcquisitionScheduler(source, store, history, dispatcher, clock=clock)
        return Rig(repo, store, clock, queue, channels, dispatcher, history, source, scheduler)

    return _build
