"""Notification channel collaborators.

Email and SMS are mocks that log what would be sent: real delivery needs a
provider account and is outside this service. Each channel keeps a short
outbox of what it accepted so the UI and tests can inspect it.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Deque, Mapping

from ..core.timeutil import now_utc
from ..domain.interfaces import Permission
from ..domain.models import DeliveryResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SentMessage:
    title: str
    body: str
    contact: str
    sent_at: datetime


class _OutboxChannel:
    name = "base"

    def __init__(self, outbox_size: int = 50) -> None:
        self.outbox: Deque[SentMessage] = deque(maxlen=outbox_size)

    def _record(self, title: str, body: str, meta: Mapping[str, Any]) -> DeliveryResult:
        self.outbox.appendleft(
            SentMessage(title=title, body=body, contact=str(meta.get("contact", "")), sent_at=now_utc())
        )
        return DeliveryResult(delivered=True)


class AppChannel(_OutboxChannel):
    """In-app toast. The active-notification stack is fed by the dispatcher."""

    name = "app"

    async def deliver(self, title: str, body: str, meta: Mapping[str, Any]) -> DeliveryResult:
        logger.info("In-app alert: %s - %s", title, body, extra={"channel": self.name})
        return self._record(title, body, meta)


class BrowserChannel(_OutboxChannel):
    """OS-level push; needs an explicit permission grant before delivering."""

    name = "browser"

    def __init__(
        self,
        permission: Permission = Permission.default,
        grant_on_request: bool = True,
        outbox_size: int = 50,
    ) -> None:
        super().__init__(outbox_size)
        self._permission = permission
        self._grant_on_request = grant_on_request

    @property
    def permission(self) -> Permission:
        return self._permission

    async def request_permission(self) -> Permission:
        # A decision already made by the user is final
        if self._permission is Permission.default:
            self._permission = Permission.granted if self._grant_on_request else Permission.denied
            logger.info("Browser notification permission %s", self._permission.value)
        return self._permission

    async def deliver(self, title: str, body: str, meta: Mapping[str, Any]) -> DeliveryResult:
        if self._permission is not Permission.granted:
            return DeliveryResult(delivered=False, error="Browser notifications not permitted")
        logger.info("Push notification: %s - %s", title, body, extra={"channel": self.name})
        return self._record(title, body, meta)


class EmailChannel(_OutboxChannel):
    name = "email"

    async def deliver(self, title: str, body: str, meta: Mapping[str, Any]) -> DeliveryResult:
        contact = str(meta.get("contact") or "")
        if not contact:
            return DeliveryResult(delivered=False, error="No email address configured")
        logger.info("MOCK: Sending email to %s: %s", contact, body, extra={"channel": self.name})
        return self._record(title, body, meta)


class SmsChannel(_OutboxChannel):
    name = "sms"

    async def deliver(self, title: str, body: str, meta: Mapping[str, Any]) -> DeliveryResult:
        contact = str(meta.get("contact") or "")
        if not contact:
            return DeliveryResult(delivered=False, error="No phone number configured")
        logger.info("MOCK: Sending SMS to %s: %s", contact, body, extra={"channel": self.name})
        return self._record(title, body, meta)
