from __future__ import annotations
import json
import logging
import aiosqlite
from datetime import datetime, timezone
from typing import Any, Optional

logger = logging.getLogger(__name__)

# Keys of the durable key-value entries
NOTIFICATION_SETTINGS_KEY = "notificationSettings"
NOTIFICATION_LOGS_KEY = "notificationLogs"
THRESHOLDS_KEY = "thresholds"
CLOUD_CONFIG_KEY = "cloudConfig"
# Owned by the vaccination tracker; shares the table but is never read here
VACCINATION_SCHEDULE_KEY = "vaccinationSchedule"


class SQLiteRepository:
    """JSON values stored under string keys, written through on every change."""

    def __init__(self, path: str) -> None:
        self._path = path

    async def init(self) -> None:
        async with aiosqlite.connect(self._path) as db:
            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            await db.commit()

    async def get_value(self, key: str) -> Optional[Any]:
        """Decoded value for `key`, or None when missing or not valid JSON."""
        async with aiosqlite.connect(self._path) as db:
            cur = await db.execute("SELECT value FROM kv_store WHERE key = ?", (key,))
            row = await cur.fetchone()
        if row is None:
            return None
        try:
            return json.loads(row[0])
        except json.JSONDecodeError:
            logger.warning("Stored value for %s is not valid JSON, ignoring it", key)
            return None

    async def set_value(self, key: str, value: Any) -> None:
        now = datetime.now(timezone.utc).isoformat()
        async with aiosqlite.connect(self._path) as db:
            await db.execute(
                "INSERT INTO kv_store(key, value, updated_at) VALUES (?, ?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at",
                (key, json.dumps(value), now),
            )
            await db.commit()
