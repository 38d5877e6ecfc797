import pytest

from nursery.domain.errors import ChannelNotReadyError
from nursery.domain.evaluator import build_snapshot
from nursery.domain.interfaces import Permission
from nursery.domain.models import DeliveryResult, SensorType
from nursery.domain.preferences import NotificationChannel
from nursery.services.dispatcher import (
    TEST_MESSAGE,
    TEST_TITLE,
    AlertDispatcher,
    DispatchOutcome,
    DispatchState,
)

from .fakes import CALM, HOT


def _snapshot(rig, payload):
    return build_snapshot(payload, rig.store.thresholds, rig.clock())


@pytest.mark.asyncio
async def test_disabled_notifications_send_nothing(build_rig):
    rig = await build_rig()
    report = await rig.dispatcher.handle_snapshot(_snapshot(rig, HOT))

    assert report.outcome is DispatchOutcome.disabled
    assert rig.channels[NotificationChannel.app].calls == []
    assert rig.dispatcher.logs() == []


@pytest.mark.asyncio
async def test_no_alerts_is_clear(build_rig):
    rig = await build_rig(notifications={"enabled": True})
    report = await rig.dispatcher.handle_snapshot(_snapshot(rig, CALM))
    assert report.outcome is DispatchOutcome.clear
    assert rig.store.notification_settings.last_notified_at is None


@pytest.mark.asyncio
async def test_cooldown_suppresses_then_releases(build_rig):
    rig = await build_rig(notifications={"enabled": True, "cooldown_minutes": 1})
    app = rig.channels[NotificationChannel.app]

    first = await rig.dispatcher.handle_snapshot(_snapshot(rig, HOT))
    assert first.outcome is DispatchOutcome.dispatched
    assert len(app.calls) == 1
    assert rig.store.notification_settings.last_notified_at == rig.clock()

    rig.clock.advance(10)
    second = await rig.dispatcher.handle_snapshot(_snapshot(rig, HOT))
    assert second.outcome is DispatchOutcome.suppressed
    assert len(app.calls) == 1
    assert len(rig.dispatcher.logs()) == 1

    rig.clock.advance(51)
    third = await rig.dispatcher.handle_snapshot(_snapshot(rig, HOT))
    assert third.outcome is DispatchOutcome.dispatched
    assert len(app.calls) == 2
    assert len(rig.dispatcher.logs()) == 2
    assert rig.dispatcher.state is DispatchState.idle


@pytest.mark.asyncio
async def test_compound_message_with_entry_per_sensor(build_rig):
    rig = await build_rig(notifications={"enabled": True})
    payload = {"temperature": 31.2, "humidity": 70, "sound": 65}

    report = await rig.dispatcher.handle_snapshot(_snapshot(rig, payload))

    calls = rig.channels[NotificationChannel.app].calls
    assert len(calls) == 1
    title, body, meta = calls[0]
    assert title == "Baby Monitor Alert"
    assert body == (
        "Alert: Temperature (31.2°C) above maximum (30°C). "
        "Humidity (70%) above maximum (60%). "
        "Sound level (65 dB) above maximum (50 dB)."
    )
    assert meta["sensors"] == ["temperature", "humidity", "sound"]

    logs = rig.dispatcher.logs()
    assert [e.sensor for e in logs] == [SensorType.temperature, SensorType.humidity, SensorType.sound]
    assert [e.threshold for e in logs] == [30, 60, 50]
    assert all(e.delivered and e.channel is NotificationChannel.app for e in logs)
    assert len(report.entries) == 3

    visible = rig.queue.visible()
    assert len(visible) == 3
    assert visible[0].title == "Sound Alert: 65 dB"


@pytest.mark.asyncio
async def test_below_minimum_message(build_rig):
    rig = await build_rig(notifications={"enabled": True})
    await rig.dispatcher.handle_snapshot(_snapshot(rig, {"temperature": 16.5, "humidity": 45, "sound": 10}))

    title, body, _ = rig.channels[NotificationChannel.app].calls[0]
    assert title == "Temperature Alert: 16.5°C"
    assert body == "Alert: Temperature (16.5°C) below minimum (18°C)."
    assert rig.queue.visible()[0].message == "Below minimum threshold (18°C)"


@pytest.mark.asyncio
async def test_disabled_sensor_does_not_alert(build_rig):
    rig = await build_rig(
        notifications={"enabled": True, "per_sensor_enabled": {"temperature": False}}
    )
    report = await rig.dispatcher.handle_snapshot(_snapshot(rig, HOT))
    assert report.outcome is DispatchOutcome.clear


@pytest.mark.asyncio
async def test_failed_delivery_still_starts_cooldown(build_rig):
    rig = await build_rig(
        notifications={"enabled": True, "channel": "email", "contact": "parent@example.com"}
    )
    email = rig.channels[NotificationChannel.email]
    email.result = DeliveryResult(delivered=False, error="mailbox unavailable")

    report = await rig.dispatcher.handle_snapshot(_snapshot(rig, HOT))
    assert report.outcome is DispatchOutcome.dispatched
    entry = rig.dispatcher.logs()[0]
    assert entry.delivered is False
    assert entry.error == "mailbox unavailable"
    assert entry.contact == "parent@example.com"
    assert rig.queue.entries() == []

    rig.clock.advance(10)
    again = await rig.dispatcher.handle_snapshot(_snapshot(rig, HOT))
    assert again.outcome is DispatchOutcome.suppressed
    assert len(email.calls) == 1


@pytest.mark.asyncio
async def test_channel_exception_is_logged_as_failure(build_rig):
    rig = await build_rig(notifications={"enabled": True, "channel": "sms", "contact": "+60123456789"})
    rig.channels[NotificationChannel.sms].raises = RuntimeError("gateway down")

    await rig.dispatcher.handle_snapshot(_snapshot(rig, HOT))
    entry = rig.dispatcher.logs()[0]
    assert entry.delivered is False
    assert entry.error == "gateway down"
    assert rig.store.notification_settings.last_notified_at == rig.clock()


@pytest.mark.asyncio
async def test_browser_without_permission_falls_back_to_app(build_rig):
    rig = await build_rig(
        notifications={"enabled": True, "channel": "browser"},
        browser_permission=Permission.default,
    )
    await rig.dispatcher.handle_snapshot(_snapshot(rig, HOT))

    assert len(rig.channels[NotificationChannel.app].calls) == 1
    entry = rig.dispatcher.logs()[0]
    assert entry.channel is NotificationChannel.browser
    assert entry.delivered is True
    assert "in-app" in entry.error
    assert len(rig.queue.entries()) == 1


@pytest.mark.asyncio
async def test_browser_with_permission_uses_browser(build_rig):
    rig = await build_rig(notifications={"enabled": True, "channel": "browser"})
    await rig.dispatcher.handle_snapshot(_snapshot(rig, HOT))

    browser = rig.channels[NotificationChannel.browser]
    assert len(browser.outbox) == 1
    assert rig.channels[NotificationChannel.app].calls == []
    assert rig.dispatcher.logs()[0].error is None
    assert rig.queue.entries() == []


@pytest.mark.asyncio
async def test_request_browser_permission_is_final(build_rig):
    rig = await build_rig(browser_permission=Permission.default)
    assert rig.dispatcher.browser_permission() is Permission.default
    # grant_on_request=False in the rig
    assert await rig.dispatcher.request_browser_permission() is Permission.denied
    assert await rig.dispatcher.request_browser_permission() is Permission.denied


@pytest.mark.asyncio
async def test_log_keeps_newest_hundred(build_rig):
    rig = await build_rig(notifications={"enabled": True})
    for i in range(150):
        await rig.dispatcher.trigger(SensorType.sound, float(60 + i))

    logs = rig.dispatcher.logs()
    assert len(logs) == 100
    assert logs[0].value == 209.0
    assert logs[-1].value == 110.0

    reloaded = AlertDispatcher(rig.store, rig.channels, rig.queue, rig.repo, clock=rig.clock)
    await reloaded.load_logs()
    assert [e.id for e in reloaded.logs()] == [e.id for e in logs]


@pytest.mark.asyncio
async def test_trigger_bypasses_cooldown_but_not_enabled(build_rig):
    rig = await build_rig()
    report = await rig.dispatcher.trigger(SensorType.temperature, 35.0)
    assert report.outcome is DispatchOutcome.disabled

    await rig.store.update_notification_settings({"enabled": True})
    await rig.dispatcher.handle_snapshot(_snapshot(rig, HOT))
    report = await rig.dispatcher.trigger(SensorType.humidity, 20.0, message="Check the humidifier")
    assert report.outcome is DispatchOutcome.dispatched
    assert report.entries[0].threshold == 30
    assert rig.channels[NotificationChannel.app].calls[-1][1] == "Check the humidifier"


@pytest.mark.asyncio
async def test_clear_logs_also_clears_active(build_rig):
    rig = await build_rig(notifications={"enabled": True})
    await rig.dispatcher.handle_snapshot(_snapshot(rig, HOT))
    assert rig.queue.entries()

    await rig.dispatcher.clear_logs()
    assert rig.dispatcher.logs() == []
    assert rig.queue.entries() == []
    assert await rig.repo.get_value("notificationLogs") == []


@pytest.mark.asyncio
async def test_send_test_uses_fixed_sample(build_rig):
    rig = await build_rig()
    result = await rig.dispatcher.send_test()

    assert result.success
    assert result.channel is NotificationChannel.app
    title, body, _ = rig.channels[NotificationChannel.app].calls[0]
    assert (title, body) == (TEST_TITLE, TEST_MESSAGE)
    entry = rig.dispatcher.logs()[0]
    assert (entry.sensor, entry.value, entry.threshold) == (SensorType.temperature, 25.0, 30.0)
    # a test message leaves the cooldown alone
    assert rig.store.notification_settings.last_notified_at is None


@pytest.mark.asyncio
async def test_send_test_validates_channel(build_rig):
    rig = await build_rig(browser_permission=Permission.denied)

    with pytest.raises(ChannelNotReadyError):
        await rig.dispatcher.send_test(NotificationChannel.none)
    with pytest.raises(ChannelNotReadyError, match="email address"):
        await rig.dispatcher.send_test(NotificationChannel.email)
    with pytest.raises(ChannelNotReadyError, match="phone number"):
        await rig.dispatcher.send_test(NotificationChannel.sms)
    with pytest.raises(ChannelNotReadyError, match="permission"):
        await rig.dispatcher.send_test(NotificationChannel.browser)
    assert rig.dispatcher.logs() == []


@pytest.mark.asyncio
async def test_send_test_to_email_contact(build_rig):
    rig = await build_rig(notifications={"channel": "email", "contact": "parent@example.com"})
    result = await rig.dispatcher.send_test()

    assert result.success
    assert result.channel is NotificationChannel.email
    assert rig.channels[NotificationChannel.email].calls[0][2]["contact"] == "parent@example.com"


@pytest.mark.asyncio
async def test_trigger_within_range_is_not_worded_as_breach(build_rig):
    rig = await build_rig(notifications={"enabled": True})
    await rig.dispatcher.trigger(SensorType.sound, 20.0)

    title, body, _ = rig.channels[NotificationChannel.app].calls[0]
    assert title == "Sound Alert: 20 dB"
    assert body == "Alert: Sound level (20 dB) within threshold (50 dB)."
    assert rig.queue.visible()[0].message == "Within threshold (50 dB)"
