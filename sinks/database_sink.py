"""
Database sink for persisting activation events to SQLite.
"""

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from core.interfaces import Sink
from core.models import Event
from core.infra.db import Database


logger = logging.getLogger(__name__)

ACTIVATION_ID = "activationId"


def _find_record(fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Locate the activation record at top level or one level down (``target``)."""
    if ACTIVATION_ID in fields:
        return fields
    for value in fields.values():
        if isinstance(value, dict) and ACTIVATION_ID in value:
            return value
    return None


class DatabaseSink(Sink):
    """Sink that persists events to an ``activation_events`` table.

    Activations are upserted by activation id, so a record delivered twice
    across a restart lands in the same row. Events without an activation id
    (request failures) are appended under a generated key.
    """

    name = "DatabaseSink"

    def __init__(self, db_path: str = "activations.db", table: str = "activation_events"):
        self.db = Database(db_path)
        self.table = table
        self._initialized = False

    async def _ensure_initialized(self) -> None:
        if self._initialized:
            return
        await self.db.ensure_table(f"""
            CREATE TABLE IF NOT EXISTS {self.table} (
                event_key TEXT PRIMARY KEY,
                activation_id TEXT,
                name TEXT,
                namespace TEXT,
                start_ms INTEGER,
                end_ms INTEGER,
                tags TEXT,
                payload TEXT NOT NULL,
                stored_at TEXT NOT NULL
            )
        """)
        self._initialized = True

    def _row(self, event: Event) -> Dict[str, Any]:
        record = _find_record(event.fields) or {}
        activation_id = record.get(ACTIVATION_ID)
        return {
            "event_key": str(activation_id) if activation_id is not None else f"event:{uuid.uuid4().hex}",
            "activation_id": activation_id,
            "name": record.get("name"),
            "namespace": record.get("namespace"),
            "start_ms": record.get("start"),
            "end_ms": record.get("end"),
            "tags": json.dumps(event.tags),
            "payload": json.dumps(event.to_dict(), default=str),
            "stored_at": datetime.now(timezone.utc).isoformat(),
        }

    async def handle(self, event: Event) -> None:
        """Persist one event."""
        await self._ensure_initialized()
        await self.db.upsert(self.table, self._row(event), "event_key")
        logger.debug(f"Stored event in {self.table}")

    async def close(self) -> None:
        await self.db.close()
        self._initialized = False
