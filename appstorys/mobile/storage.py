"""Offline Outbox for the AppStorys SDK.

Durable staging for records that could not be delivered live:
- Append-only queues for analytics events and CSAT responses
- Single-slot, last-writer-wins user-attribute snapshot
- Key/value persistence (SQLite table or in-memory)

Persistence failures are logged and swallowed; losing an analytics
record must never break the host UI.
"""

import json
import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..core.exceptions import StorageError
from .models import PendingCsatResponse, PendingEvent, PendingUserAttributes

logger = logging.getLogger(__name__)

PENDING_EVENTS_KEY = "appstorys_pending_events"
PENDING_CSAT_KEY = "appstorys_pending_csat_responses"
PENDING_USER_ATTRIBUTES_KEY = "appstorys_pending_user_attributes"


# Key-Value Backends


class KeyValueStore(ABC):
    """String-keyed persistence with last-write-wins semantics."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Read a value, or None when absent."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Write a value, replacing any previous one."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove a key. Returns True if it existed."""

    def close(self) -> None:
        """Release backend resources."""


class InMemoryKeyValueStore(KeyValueStore):
    """Process-local key/value store."""

    def __init__(self):
        self._data: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None


class SQLiteKeyValueStore(KeyValueStore):
    """Key/value store persisted in a single SQLite table.

    Survives process restarts. One connection is shared across threads
    and guarded by a lock.
    """

    def __init__(self, database_path: Union[str, Path]):
        """Initialize store.

        Args:
            database_path: SQLite file path (":memory:" for a throwaway store)
        """
        self.database_path = str(database_path)
        self._db: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()

    def initialize(self) -> None:
        """Open the database and create the table."""
        with self._lock:
            self._connect()

    def _connect(self) -> sqlite3.Connection:
        if self._db is not None:
            return self._db

        try:
            if self.database_path != ":memory:":
                Path(self.database_path).parent.mkdir(parents=True, exist_ok=True)

            db = sqlite3.connect(self.database_path, check_same_thread=False)
            db.execute(
                """
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT
                )
            """
            )
            db.commit()
        except (sqlite3.Error, OSError) as e:
            raise StorageError(f"Failed to open {self.database_path}", original_error=e)

        self._db = db
        logger.info(f"Outbox storage initialized: {self.database_path}")
        return db

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            try:
                row = (
                    self._connect()
                    .execute("SELECT value FROM kv_store WHERE key = ?", (key,))
                    .fetchone()
                )
            except sqlite3.Error as e:
                raise StorageError(f"Failed to read {key}", key=key, original_error=e)
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        with self._lock:
            try:
                db = self._connect()
                db.execute(
                    "INSERT OR REPLACE INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)",
                    (key, value, datetime.now().isoformat()),
                )
                db.commit()
            except sqlite3.Error as e:
                raise StorageError(f"Failed to write {key}", key=key, original_error=e)

    def delete(self, key: str) -> bool:
        with self._lock:
            try:
                db = self._connect()
                cursor = db.execute("DELETE FROM kv_store WHERE key = ?", (key,))
                db.commit()
            except sqlite3.Error as e:
                raise StorageError(f"Failed to delete {key}", key=key, original_error=e)
        return cursor.rowcount > 0

    def close(self) -> None:
        """Close storage."""
        with self._lock:
            if self._db:
                self._db.close()
                self._db = None
        logger.info("Outbox storage closed")


# Outbox


class OfflineOutbox:
    """Durable staging area for undelivered records.

    Drains never clear; callers clear a queue only after the whole
    drained batch was re-delivered.
    """

    def __init__(self, store: KeyValueStore):
        """Initialize outbox.

        Args:
            store: Key/value persistence backend
        """
        self.store = store
        self._lock = threading.RLock()

    # Serialization helpers

    def _read_list(self, key: str) -> List[Dict[str, Any]]:
        raw = self.store.get(key)
        if raw is None:
            return []
        try:
            items = json.loads(raw)
        except ValueError as e:
            logger.warning(f"Discarding unreadable outbox data for {key}: {e}")
            return []
        if not isinstance(items, list):
            logger.warning(f"Discarding malformed outbox data for {key}")
            return []
        return items

    def _append(self, key: str, item: Dict[str, Any]) -> None:
        items = self._read_list(key)
        items.append(item)
        self.store.set(key, json.dumps(items, default=str))

    def _clear(self, key: str, label: str) -> None:
        with self._lock:
            try:
                self.store.delete(key)
            except StorageError as e:
                logger.error(f"Failed to clear pending {label}: {e}")
                return
        logger.info(f"Pending {label} cleared")

    def _remove_delivered(self, key: str, delivered: List[Dict[str, Any]], label: str) -> int:
        """Drop the stored prefix covering an acknowledged batch.

        Records appended after the batch was drained stay queued. Malformed
        entries inside the prefix go with it.
        """
        with self._lock:
            try:
                items = self._read_list(key)
                expected = json.loads(json.dumps(delivered, default=str))

                cut = 0
                for entry in expected:
                    index = next(
                        (i for i in range(cut, len(items)) if items[i] == entry),
                        None,
                    )
                    if index is None:
                        break
                    cut = index + 1

                remaining = items[cut:]
                if remaining:
                    self.store.set(key, json.dumps(remaining, default=str))
                else:
                    self.store.delete(key)
            except (StorageError, TypeError, ValueError) as e:
                logger.error(f"Failed to remove delivered {label}: {e}")
                return 0

        logger.info(f"Removed {cut} delivered {label}, {len(remaining)} still pending")
        return cut

    # Events

    def enqueue_event(self, record: PendingEvent) -> bool:
        """Append an event. Returns False if it could not be persisted."""
        with self._lock:
            try:
                self._append(PENDING_EVENTS_KEY, record.to_dict())
            except (StorageError, TypeError, ValueError) as e:
                logger.error(f"Failed to queue event {record.event}: {e}")
                return False
        logger.info(f"Event saved for retry: {record.event}")
        return True

    def drain_events(self) -> List[PendingEvent]:
        """Read all pending events in insertion order without clearing."""
        with self._lock:
            try:
                items = self._read_list(PENDING_EVENTS_KEY)
            except StorageError as e:
                logger.error(f"Failed to read pending events: {e}")
                return []

        events = []
        for item in items:
            try:
                events.append(PendingEvent.from_dict(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed pending event: {e}")
        return events

    def clear_events(self) -> None:
        self._clear(PENDING_EVENTS_KEY, "events")

    def remove_events(self, delivered: List[PendingEvent]) -> int:
        """Remove a replayed batch, keeping events queued since it was drained."""
        return self._remove_delivered(
            PENDING_EVENTS_KEY, [record.to_dict() for record in delivered], "events"
        )

    # CSAT responses

    def enqueue_csat(self, record: PendingCsatResponse) -> bool:
        """Append a CSAT response. Returns False if it could not be persisted."""
        with self._lock:
            try:
                self._append(PENDING_CSAT_KEY, record.to_dict())
            except (StorageError, TypeError, ValueError) as e:
                logger.error(f"Failed to queue CSAT response {record.csat_id}: {e}")
                return False
        logger.info("CSAT response queued for retry")
        return True

    def drain_csat(self) -> List[PendingCsatResponse]:
        """Read all pending CSAT responses in insertion order without clearing."""
        with self._lock:
            try:
                items = self._read_list(PENDING_CSAT_KEY)
            except StorageError as e:
                logger.error(f"Failed to read pending CSAT responses: {e}")
                return []

        responses = []
        for item in items:
            try:
                responses.append(PendingCsatResponse.from_dict(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed pending CSAT response: {e}")
        return responses

    def clear_csat(self) -> None:
        self._clear(PENDING_CSAT_KEY, "CSAT responses")

    def remove_csat(self, delivered: List[PendingCsatResponse]) -> int:
        """Remove a replayed batch, keeping responses queued since it was drained."""
        return self._remove_delivered(
            PENDING_CSAT_KEY, [record.to_dict() for record in delivered], "CSAT responses"
        )

    # User attributes

    def set_pending_user_attributes(self, record: PendingUserAttributes) -> bool:
        """Replace the pending attribute snapshot. Returns False on failure."""
        with self._lock:
            try:
                self.store.set(
                    PENDING_USER_ATTRIBUTES_KEY,
                    json.dumps(record.to_dict(), default=str),
                )
            except (StorageError, TypeError, ValueError) as e:
                logger.error(f"Failed to queue user attributes: {e}")
                return False
        logger.info("User attributes queued for sync")
        return True

    def take_pending_user_attributes(self) -> Optional[PendingUserAttributes]:
        """Read the pending attribute snapshot without clearing it."""
        with self._lock:
            try:
                raw = self.store.get(PENDING_USER_ATTRIBUTES_KEY)
            except StorageError as e:
                logger.error(f"Failed to read pending user attributes: {e}")
                return None

        if raw is None:
            return None
        try:
            return PendingUserAttributes.from_dict(json.loads(raw))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Discarding malformed pending user attributes: {e}")
            return None

    def clear_pending_user_attributes(self) -> None:
        self._clear(PENDING_USER_ATTRIBUTES_KEY, "user attributes")

    def remove_pending_user_attributes(self, delivered: PendingUserAttributes) -> bool:
        """Clear the snapshot only if it is still the one that was delivered."""
        with self._lock:
            if self.take_pending_user_attributes() != delivered:
                logger.debug("Pending user attributes replaced during sync, keeping newer snapshot")
                return False
            self.clear_pending_user_attributes()
        return True

    # Introspection

    def pending_counts(self) -> Dict[str, int]:
        """Get the number of records waiting in each queue."""
        return {
            "events": len(self.drain_events()),
            "csat": len(self.drain_csat()),
            "user_attributes": 0 if self.take_pending_user_attributes() is None else 1,
        }

    def clear_all(self) -> None:
        """Drop every pending record."""
        self.clear_events()
        self.clear_csat()
        self.clear_pending_user_attributes()
