from __future__ import annotations
import asyncio
import logging
from dataclasses import replace
from typing import Callable, List, Optional

from ..core.timeutil import Clock, now_utc
from ..domain.evaluator import build_snapshot, placeholder_snapshot
from ..domain.history import HistoryBuffer
from ..domain.interfaces import DataSource
from ..domain.models import AcquisitionUpdate, ConnectionStatus, SensorSnapshot
from ..storage.config_store import ConfigStore
from .dispatcher import AlertDispatcher


logger = logging.getLogger(__name__)

CONNECTIVITY_ERROR = "Cannot connect to sensors. Please check your connection and API settings."

Subscriber = Callable[[AcquisitionUpdate], None]


class AcquisitionScheduler:
    """Periodic fetch loop with a single in-flight slot.

    A tick that fires while the previous fetch is still running is skipped,
    never queued. Successful snapshots go to the history buffer and then to
    the dispatcher; failures only reach subscribers, carrying the last good
    snapshot marked disconnected.
    """

    def __init__(
        self,
        source: DataSource,
        store: ConfigStore,
        history: HistoryBuffer,
        dispatcher: Optional[AlertDispatcher] = None,
        clock: Clock = now_utc,
        failure_threshold: int = 3,
    ) -> None:
        self._source = source
        self._store = store
        self._history = history
        self._dispatcher = dispatcher
        self._clock = clock
        self._failure_threshold = failure_threshold

        self._task: Optional[asyncio.Task] = None
        self._stop = asyncio.Event()
        self._inflight: Optional[asyncio.Task] = None
        self._interval_ms: Optional[int] = None
        self._subscribers: List[Subscriber] = []
        self._last_good: Optional[SensorSnapshot] = None

        self.snapshot: Optional[SensorSnapshot] = None
        self.consecutive_failures = 0
        self.error: Optional[str] = None
        self.skipped_ticks = 0

    @property
    def running(self) -> bool:
        return self._task is not None

    @property
    def interval_ms(self) -> Optional[int]:
        return self._interval_ms

    @property
    def busy(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    async def start(self, interval_ms: int, immediate: bool = True) -> None:
        if interval_ms < 1:
            raise ValueError("Refresh interval must be positive")
        if self.running:
            await self._cancel_timer()
        self._interval_ms = interval_ms
        self._stop = asyncio.Event()
        self._task = asyncio.create_task(
            self._run(self._stop, interval_ms / 1000.0, immediate), name="acquisition_loop"
        )

    async def reconfigure(self, interval_ms: int) -> None:
        """Restart the timer with a new interval; an in-flight fetch is left alone."""
        await self.start(interval_ms, immediate=False)

    async def stop(self) -> None:
        await self._cancel_timer()
        inflight, self._inflight = self._inflight, None
        if inflight is not None and not inflight.done():
            await inflight

    async def _cancel_timer(self) -> None:
        task, self._task = self._task, None
        self._stop.set()
        if task is not None:
            await task

    async def _run(self, stop: asyncio.Event, interval_s: float, immediate: bool) -> None:
        logger.info("Acquisition loop started (interval_ms=%d)", int(interval_s * 1000))
        if immediate:
            self.tick()
        while not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval_s)
            except asyncio.TimeoutError:
                self.tick()
        logger.info("Acquisition loop stopped")

    def tick(self) -> bool:
        """Start a fetch unless one is already running. Returns whether one started."""
        if self.busy:
            self.skipped_ticks += 1
            logger.debug("Tick skipped, previous fetch still in flight")
            return False
        self._inflight = asyncio.create_task(self.fetch_once(), name="acquisition_fetch")
        return True

    async def refresh_now(self) -> Optional[SensorSnapshot]:
        """Fetch immediately (or join the fetch already running) and return the published snapshot."""
        self.tick()
        if self._inflight is not None:
            await self._inflight
        return self.snapshot

    async def reset_connection(self) -> Optional[SensorSnapshot]:
        """Clear the failure state and fetch with the current cloud config.

        A fetch still running for an earlier config is awaited first, so the
        returned snapshot never comes from a request made before the change.
        """
        inflight = self._inflight
        if inflight is not None and not inflight.done():
            await inflight
        self.consecutive_failures = 0
        self.error = None
        return await self.refresh_now()

    async def fetch_once(self) -> Optional[AcquisitionUpdate]:
        config = self._store.cloud_config
        try:
            payload = await self._source.fetch(config)
            snapshot = build_snapshot(payload, self._store.thresholds, self._clock())
        except Exception as e:
            if self._store.cloud_config.endpoint != config.endpoint:
                logger.info("Discarding failure from previous endpoint: %s", e, extra={"endpoint": config.endpoint})
                return None
            return self._record_failure(e, config.endpoint)

        if self._store.cloud_config.endpoint != config.endpoint:
            # Endpoint changed while this fetch was out; its data belongs to the old series
            logger.info("Discarding reading from previous endpoint", extra={"endpoint": config.endpoint})
            return None

        if self.consecutive_failures:
            logger.info("Sensor connection restored after %d failed fetches", self.consecutive_failures)
        self.consecutive_failures = 0
        self.error = None
        self._last_good = snapshot
        self.snapshot = snapshot
        self._history.append_snapshot(snapshot)

        update = AcquisitionUpdate(snapshot=snapshot, ok=True)
        self._publish(update)

        if self._dispatcher is not None:
            try:
                await self._dispatcher.handle_snapshot(snapshot)
            except Exception as e:
                logger.exception("Alert dispatch failed: %s", e)
        return update

    def _record_failure(self, exc: Exception, endpoint: str) -> AcquisitionUpdate:
        self.consecutive_failures += 1
        if self.consecutive_failures >= self._failure_threshold:
            self.error = CONNECTIVITY_ERROR
        logger.warning(
            "Sensor fetch failed: %s",
            exc,
            extra={"endpoint": endpoint, "failures": self.consecutive_failures},
        )

        base = self._last_good or placeholder_snapshot(self._clock())
        snapshot = replace(base, connection_status=ConnectionStatus.disconnected)
        self.snapshot = snapshot

        update = AcquisitionUpdate(
            snapshot=snapshot,
            ok=False,
            consecutive_failures=self.consecutive_failures,
            error=self.error,
        )
        self._publish(update)
        return update

    def _publish(self, update: AcquisitionUpdate) -> None:
        for callback in list(self._subscribers):
            try:
                callback(update)
            except Exception as e:
                logger.exception("Snapshot subscriber failed: %s", e)
