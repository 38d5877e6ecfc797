from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

import httpx

from ..core.timeutil import now_ms
from ..domain.errors import DataSourceError
from ..domain.preferences import CloudConfig

logger = logging.getLogger(__name__)


class CloudDataSource:
    """Fetches the latest readings from the remote sensor endpoint."""

    def __init__(
        self,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._timeout = timeout
        self._transport = transport

    async def fetch(self, config: CloudConfig) -> Mapping[str, Any]:
        params = {"deviceId": config.device_id, "t": str(now_ms())}
        headers = {"Content-Type": "application/json"}
        if config.api_key:
            headers["Authorization"] = f"Bearer {config.api_key}"

        logger.debug("Fetching readings for %s", config.device_id, extra={"endpoint": config.endpoint})
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.get(config.endpoint, params=params, headers=headers)
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as e:
            raise DataSourceError(
                f"Cloud API error: {e.response.status_code} {e.response.reason_phrase}"
            ) from e
        except httpx.HTTPError as e:
            raise DataSourceError(f"Error fetching from cloud: {e}") from e
        except ValueError as e:
            raise DataSourceError(f"Cloud API returned invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise DataSourceError(f"Cloud API returned {type(data).__name__}, expected an object")
        return data
