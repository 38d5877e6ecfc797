from __future__ import annotations
from enum import Enum
from typing import Any, Mapping, Optional, Protocol, runtime_checkable
from .models import DeliveryResult
from .preferences import CloudConfig


class Permission(str, Enum):
    granted = "granted"
    denied = "denied"
    default = "default"


@runtime_checkable
class DataSource(Protocol):
    async def fetch(self, config: CloudConfig) -> Mapping[str, Any]:
        """Return the raw JSON payload. Raise on any failure."""
        ...


@runtime_checkable
class Channel(Protocol):
    name: str

    async def deliver(self, title: str, body: str, meta: Mapping[str, Any]) -> DeliveryResult:
        ...


@runtime_checkable
class PermissionedChannel(Channel, Protocol):
    @property
    def permission(self) -> Permission:
        ...

    async def request_permission(self) -> Permission:
        ...


@runtime_checkable
class Repository(Protocol):
    async def init(self) -> None:
        ...

    async def get_value(self, key: str) -> Optional[Any]:
        ...

    async def set_value(self, key: str, value: Any) -> None:
        ...
