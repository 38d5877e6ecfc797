from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from ..core.config import settings
from ..core.timeutil import now_local
from ..domain.errors import ChannelNotReadyError, InvalidConfigError
from ..domain.models import SENSORS, SensorType
from ..drivers.sim_source import PatternConfig, SimulatedDataSource
from ..services.monitor import MonitorService
from .schemas import (
    CloudConfigUpdateRequest,
    NotificationSettingsUpdateRequest,
    SendTestRequest,
    SimManualRequest,
    SimPatternRequest,
    ThresholdsUpdateRequest,
    TriggerAlertRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# --- Dependency getters ---
# Defined here as placeholders; create_app() wires the real ones via app.dependency_overrides.
def get_monitor() -> MonitorService:  # overridden in main
    raise RuntimeError("Monitor dependency not configured")


def get_sim_source() -> SimulatedDataSource:  # overridden in main
    raise RuntimeError("Simulated data source dependency not configured")


def _invalid(exc: InvalidConfigError) -> HTTPException:
    return HTTPException(status_code=422, detail=str(exc))


@router.get("/health")
async def health():
    return {"status": "ok"}


@router.get("/live")
async def get_live(svc: MonitorService = Depends(get_monitor)):
    sched = svc.scheduler
    snap = sched.snapshot
    return {
        "app": settings.app_name,
        "now_local": now_local().isoformat(),
        "snapshot": snap.to_dict() if snap else None,
        "error": sched.error,
        "consecutive_failures": sched.consecutive_failures,
        "skipped_ticks": sched.skipped_ticks,
        "refresh_interval_ms": sched.interval_ms,
        "dispatch_state": svc.dispatcher.state.value,
    }


# --- History ---
@router.get("/history")
async def get_history(fresh: bool = False, svc: MonitorService = Depends(get_monitor)):
    view = svc.refresh_history_view() if fresh else svc.history_view
    return {"capacity": svc.history.capacity, "sensors": view}


@router.get("/history/summary")
async def get_history_summary(fresh: bool = False, svc: MonitorService = Depends(get_monitor)):
    view = svc.refresh_history_view() if fresh else svc.history_view
    return {sensor: data["summary"] for sensor, data in view.items()}


# --- Thresholds ---
@router.get("/thresholds")
async def get_thresholds(svc: MonitorService = Depends(get_monitor)):
    return svc.store.thresholds.model_dump()


@router.put("/thresholds")
async def update_thresholds(req: ThresholdsUpdateRequest, svc: MonitorService = Depends(get_monitor)):
    try:
        updated = await svc.update_thresholds(req.model_dump(exclude_none=True))
    except InvalidConfigError as e:
        raise _invalid(e) from e
    return updated.model_dump()


@router.post("/thresholds/reset")
async def reset_thresholds(svc: MonitorService = Depends(get_monitor)):
    return (await svc.reset_thresholds()).model_dump()


# --- Cloud connection ---
@router.get("/cloud")
async def get_cloud_config(svc: MonitorService = Depends(get_monitor)):
    return svc.store.cloud_config.model_dump()


@router.put("/cloud")
async def update_cloud_config(req: CloudConfigUpdateRequest, svc: MonitorService = Depends(get_monitor)):
    try:
        updated = await svc.update_cloud_config(req.model_dump(exclude_none=True))
    except InvalidConfigError as e:
        raise _invalid(e) from e
    return updated.model_dump()


# --- Notifications ---
@router.get("/notifications/settings")
async def get_notification_settings(svc: MonitorService = Depends(get_monitor)):
    return svc.store.notification_settings.model_dump(mode="json")


@router.put("/notifications/settings")
async def update_notification_settings(
    req: NotificationSettingsUpdateRequest,
    svc: MonitorService = Depends(get_monitor),
):
    try:
        updated = await svc.store.update_notification_settings(req.model_dump(exclude_none=True))
    except InvalidConfigError as e:
        raise _invalid(e) from e
    return updated.model_dump(mode="json")


@router.get("/notifications/logs")
async def get_notification_logs(svc: MonitorService = Depends(get_monitor)):
    return {"rows": [e.model_dump(mode="json") for e in svc.dispatcher.logs()]}


@router.delete("/notifications/logs")
async def clear_notification_logs(svc: MonitorService = Depends(get_monitor)):
    await svc.dispatcher.clear_logs()
    return {"ok": True}


@router.get("/notifications/active")
async def get_active_notifications(svc: MonitorService = Depends(get_monitor)):
    queue = svc.queue
    return {
        "visible": [n.to_dict() for n in queue.visible()],
        "total": len(queue.entries()),
        "dismiss_after_ms": queue.scheduled_delays(),
    }


@router.delete("/notifications/active/{notification_id}")
async def dismiss_active_notification(notification_id: str, svc: MonitorService = Depends(get_monitor)):
    if not svc.queue.dismiss(notification_id):
        raise HTTPException(status_code=404, detail=f"Notification {notification_id!r} not found")
    return {"ok": True}


@router.post("/notifications/test")
async def send_test_notification(
    req: Optional[SendTestRequest] = None,
    svc: MonitorService = Depends(get_monitor),
):
    try:
        result = await svc.dispatcher.send_test(req.channel if req else None)
    except ChannelNotReadyError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    return {"ok": result.success, "channel": result.channel.value, "error": result.error}


@router.post("/notifications/trigger")
async def trigger_alert(req: TriggerAlertRequest, svc: MonitorService = Depends(get_monitor)):
    report = await svc.dispatcher.trigger(req.sensor, req.value, req.message)
    return {
        "outcome": report.outcome.value,
        "entries": [e.model_dump(mode="json") for e in report.entries],
    }


@router.get("/notifications/browser/permission")
async def get_browser_permission(svc: MonitorService = Depends(get_monitor)):
    return {"permission": svc.dispatcher.browser_permission().value}


@router.post("/notifications/browser/permission")
async def request_browser_permission(svc: MonitorService = Depends(get_monitor)):
    permission = await svc.dispatcher.request_browser_permission()
    return {"permission": permission.value}


# --- Simulation endpoints ---
@router.get("/sim/status")
async def sim_status(source: SimulatedDataSource = Depends(get_sim_source)):
    return source.status()


@router.post("/sim/enable")
async def sim_enable(source: SimulatedDataSource = Depends(get_sim_source)):
    source.enable()
    return {"ok": True, "enabled": True}


@router.post("/sim/disable")
async def sim_disable(source: SimulatedDataSource = Depends(get_sim_source)):
    source.disable()
    return {"ok": True, "enabled": False}


@router.post("/sim/manual")
async def sim_set_manual(req: SimManualRequest, source: SimulatedDataSource = Depends(get_sim_source)):
    values = {s: getattr(req, s.value) for s in SENSORS if getattr(req, s.value) is not None}
    source.set_manual(values)
    return {"ok": True, "manual": {s.value: v for s, v in values.items()}}


@router.post("/sim/pattern")
async def sim_set_pattern(req: SimPatternRequest, source: SimulatedDataSource = Depends(get_sim_source)):
    data = req.model_dump()
    sensor = SensorType(data.pop("sensor"))
    cfg = PatternConfig(**data)
    source.set_pattern(sensor, cfg)
    return {"ok": True, "sensor": sensor.value, "pattern": cfg.__dict__}
