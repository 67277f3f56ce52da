"""Versioned key-value persistence for VoxShop state.

Every persisted value is wrapped in a JSON envelope ``{"version", "value"}``
and written under a fixed key. Reading never raises: unreadable,
malformed or unmigratable data falls back to the slot's default and, where
the data was actually corrupt, a :class:`StorageError` is reported through
the slot's warning callback. Writes are debounced and batched
last-write-wins per key.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from collections.abc import Callable
from functools import partial
from typing import TYPE_CHECKING, Any, Generic, Protocol, TypeVar

from pydantic import TypeAdapter, ValidationError

from voxshop.db import get_connection, init_db
from voxshop.migrations import LISTS_STORAGE_VERSION, MigrationError, migrate_lists
from voxshop.models import (
    AppState,
    GroceryList,
    HistoryEntry,
    Staple,
    StorageError,
    StorageErrorType,
    TodoFilter,
)

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger(__name__)

T = TypeVar("T")

LISTS_KEY = "vox-todo:todos"
FILTER_KEY = "vox-todo:filter"
TTS_KEY = "vox-todo:tts"
VOICE_KEY = "vox-todo:voice"
ACTIVE_LIST_KEY = "vox-todo:active-list"
STAPLES_KEY = "vox-todo:staples"
HISTORY_KEY = "vox-todo:item-history"

PREFERENCES_STORAGE_VERSION = LISTS_STORAGE_VERSION
STAPLES_STORAGE_VERSION = 1
HISTORY_STORAGE_VERSION = 1

DEFAULT_DEBOUNCE_MS = 250

READ_ERROR_MESSAGE = "Unable to read saved data. Starting fresh."
WRITE_ERROR_MESSAGE = "Unable to save changes to storage."
QUOTA_ERROR_MESSAGE = "Storage is full. Clear space or delete old items."
CLEAR_ERROR_MESSAGE = "Unable to clear saved data."

StorageErrorCallback = Callable[[StorageError], None]


class StorageBackendError(Exception):
    """Raised by a key-value store when an operation fails."""


class StorageQuotaError(StorageBackendError):
    """Raised by a key-value store when it has run out of space."""


# ---------------------------------------------------------------------------
# Key-value stores
# ---------------------------------------------------------------------------


class KeyValueStore(Protocol):
    """A byte store addressed by string keys."""

    def get(self, key: str) -> bytes | None:
        """Return the stored bytes, or None when the key is absent."""
        ...

    def set(self, key: str, data: bytes) -> None:
        """Store bytes under a key, replacing any previous value."""
        ...

    def delete(self, key: str) -> None:
        """Remove a key; missing keys are ignored."""
        ...

    def keys(self) -> list[str]:
        """Return every stored key."""
        ...


class MemoryStore:
    """In-process key-value store.

    Args:
        max_bytes: Optional capacity across all values. Writes that would
            exceed it raise :class:`StorageQuotaError`.
    """

    def __init__(self, max_bytes: int | None = None) -> None:
        """Initialize an empty store.

        Args:
            max_bytes: Optional total capacity in bytes.
        """
        self._data: dict[str, bytes] = {}
        self._max_bytes = max_bytes
        self._lock = threading.Lock()

    def get(self, key: str) -> bytes | None:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, data: bytes) -> None:
        with self._lock:
            if self._max_bytes is not None:
                used = sum(len(v) for k, v in self._data.items() if k != key)
                if used + len(data) > self._max_bytes:
                    raise StorageQuotaError(
                        f"Writing {key!r} would exceed {self._max_bytes} bytes"
                    )
            self._data[key] = data

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._data)


class SqliteStore:
    """Key-value store backed by the ``kv_store`` table.

    Each call opens its own connection, so the store can be used from the
    debounced writer thread.

    Args:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: str) -> None:
        """Initialize the store and ensure the schema exists.

        Args:
            db_path: Path to the SQLite database file.
        """
        self._db_path = db_path
        init_db(db_path)

    @property
    def db_path(self) -> str:
        """Return the database path."""
        return self._db_path

    def _run(self, operation: str, sql: str, params: tuple[Any, ...] = ()) -> list[Any]:
        """Execute one statement, translating sqlite errors.

        Args:
            operation: Short description used in error messages.
            sql: SQL statement.
            params: Statement parameters.

        Returns:
            Fetched rows.

        Raises:
            StorageQuotaError: If the database or disk is full.
            StorageBackendError: For any other sqlite failure.
        """
        try:
            conn = get_connection(self._db_path)
        except sqlite3.Error as err:
            raise StorageBackendError(f"Cannot open {self._db_path}: {err}") from err
        try:
            rows = conn.execute(sql, params).fetchall()
            conn.commit()
            return rows
        except sqlite3.OperationalError as err:
            if "full" in str(err).lower():
                raise StorageQuotaError(f"{operation} failed: {err}") from err
            raise StorageBackendError(f"{operation} failed: {err}") from err
        except sqlite3.Error as err:
            raise StorageBackendError(f"{operation} failed: {err}") from err
        finally:
            conn.close()

    def get(self, key: str) -> bytes | None:
        rows = self._run("read", "SELECT value FROM kv_store WHERE key = ?", (key,))
        if not rows:
            return None
        value = rows[0]["value"]
        return value.encode("utf-8") if isinstance(value, str) else bytes(value)

    def set(self, key: str, data: bytes) -> None:
        self._run(
            "write",
            "INSERT INTO kv_store (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value, "
            "updated_at = CURRENT_TIMESTAMP",
            (key, data),
        )

    def delete(self, key: str) -> None:
        self._run("delete", "DELETE FROM kv_store WHERE key = ?", (key,))

    def keys(self) -> list[str]:
        rows = self._run("list", "SELECT key FROM kv_store ORDER BY key")
        return [row["key"] for row in rows]


# ---------------------------------------------------------------------------
# Versioned slots
# ---------------------------------------------------------------------------


class StorageSlot(Generic[T]):
    """One versioned value stored under a fixed key.

    Args:
        store: Backing key-value store.
        key: Storage key.
        initial: Default returned when nothing usable is stored.
        version: Current schema version of the value.
        value_type: Type used to validate and serialize the value.
        migrate: Optional ``(old_value, old_version) -> new_value``.
        on_error: Callback receiving non-fatal storage errors.
    """

    def __init__(
        self,
        store: KeyValueStore,
        key: str,
        initial: T,
        version: int,
        value_type: Any,
        *,
        migrate: Callable[[Any, int], Any] | None = None,
        on_error: StorageErrorCallback | None = None,
    ) -> None:
        """Initialize the slot."""
        self.key = key
        self.initial = initial
        self.version = version
        self.on_error = on_error
        self._store = store
        self._adapter: TypeAdapter[T] = TypeAdapter(value_type)
        self._migrate = migrate
        self._write_error_reported = False

    @property
    def can_migrate(self) -> bool:
        """Return whether older versions of this value can be upgraded."""
        return self._migrate is not None

    def _report(self, error_type: StorageErrorType, message: str) -> None:
        if self.on_error is not None:
            self.on_error(StorageError(type=error_type, message=message))

    def encode(self, value: T) -> bytes:
        """Serialize a value into its JSON envelope."""
        payload = self._adapter.dump_python(
            value, mode="json", by_alias=True, exclude_none=True
        )
        return json.dumps({"version": self.version, "value": payload}).encode("utf-8")

    def read(self) -> T:
        """Load the stored value, migrating older versions.

        Returns:
            The stored value, or ``initial`` when nothing usable is stored.
        """
        try:
            raw = self._store.get(self.key)
        except StorageBackendError:
            logger.exception("Failed to read %s", self.key)
            self._report(StorageErrorType.READ, READ_ERROR_MESSAGE)
            return self.initial
        if not raw:
            return self.initial

        try:
            envelope = json.loads(raw)
        except (UnicodeDecodeError, json.JSONDecodeError):
            logger.warning("Stored value for %s is not valid JSON", self.key)
            self._report(StorageErrorType.READ, READ_ERROR_MESSAGE)
            return self.initial

        if not isinstance(envelope, dict) or "value" not in envelope:
            return self.initial

        stored_version = envelope.get("version")
        if not isinstance(stored_version, int) or isinstance(stored_version, bool):
            stored_version = 0
        value = envelope["value"]

        try:
            if stored_version == self.version:
                return self._adapter.validate_python(value)
            if self._migrate is None:
                logger.debug(
                    "No migration for %s version %d, using default",
                    self.key,
                    stored_version,
                )
                return self.initial
            return self._adapter.validate_python(self._migrate(value, stored_version))
        except (ValidationError, MigrationError) as err:
            logger.warning("Discarding stored value for %s: %s", self.key, err)
            self._report(StorageErrorType.READ, READ_ERROR_MESSAGE)
            return self.initial

    def write(self, value: T) -> bool:
        """Persist a value.

        A failure is reported once; later failures stay quiet until a
        write succeeds again.

        Returns:
            True if the value was stored.
        """
        data = self.encode(value)
        try:
            self._store.set(self.key, data)
        except StorageQuotaError as err:
            logger.warning("Storage quota exceeded writing %s: %s", self.key, err)
            self._report_write(StorageErrorType.QUOTA, QUOTA_ERROR_MESSAGE)
            return False
        except StorageBackendError as err:
            logger.warning("Failed to write %s: %s", self.key, err)
            self._report_write(StorageErrorType.WRITE, WRITE_ERROR_MESSAGE)
            return False
        self._write_error_reported = False
        return True

    def _report_write(self, error_type: StorageErrorType, message: str) -> None:
        if self._write_error_reported:
            return
        self._write_error_reported = True
        self._report(error_type, message)

    def clear(self) -> None:
        """Delete the stored value."""
        try:
            self._store.delete(self.key)
        except StorageBackendError as err:
            logger.warning("Failed to clear %s: %s", self.key, err)
            self._report(StorageErrorType.WRITE, CLEAR_ERROR_MESSAGE)


# ---------------------------------------------------------------------------
# Debounced writes
# ---------------------------------------------------------------------------


class DebouncedWriter:
    """Batches writes per key and runs them after a quiet period.

    Each ``schedule`` call restarts the timer. Only the latest write for a
    key survives. ``flush`` runs pending writes immediately and waits for
    any write already in progress.

    Args:
        delay_ms: Quiet period in milliseconds; 0 or less writes at once.
    """

    def __init__(self, delay_ms: int = DEFAULT_DEBOUNCE_MS) -> None:
        """Initialize the writer.

        Args:
            delay_ms: Quiet period in milliseconds.
        """
        self._delay = delay_ms / 1000
        self._pending: dict[str, Callable[[], object]] = {}
        self._timer: threading.Timer | None = None
        self._lock = threading.RLock()

    @property
    def pending_keys(self) -> list[str]:
        """Return the keys with a write waiting."""
        with self._lock:
            return list(self._pending)

    def schedule(self, key: str, write: Callable[[], object]) -> None:
        """Queue a write for ``key``, replacing any queued one."""
        if self._delay <= 0:
            write()
            return
        with self._lock:
            self._pending[key] = write
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self._delay, self.flush)
            self._timer.daemon = True
            self._timer.start()

    def flush(self) -> None:
        """Run every pending write now."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            pending, self._pending = self._pending, {}
            for write in pending.values():
                write()

    def discard(self) -> None:
        """Drop pending writes without running them."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._pending = {}


# ---------------------------------------------------------------------------
# Application state
# ---------------------------------------------------------------------------


class StateStore:
    """Loads and saves :class:`AppState` field by field.

    Args:
        store: Backing key-value store.
        debounce_ms: Quiet period before writes reach the store.
        on_error: Callback receiving non-fatal storage errors.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        debounce_ms: int = DEFAULT_DEBOUNCE_MS,
        on_error: StorageErrorCallback | None = None,
    ) -> None:
        """Initialize slots for every persisted field."""
        self._store = store
        self._writer = DebouncedWriter(debounce_ms)
        slot = partial(StorageSlot, store, on_error=on_error)
        self._slots: dict[str, StorageSlot[Any]] = {
            "lists": slot(
                LISTS_KEY,
                (),
                LISTS_STORAGE_VERSION,
                tuple[GroceryList, ...],
                migrate=migrate_lists,
            ),
            "filter": slot(
                FILTER_KEY, TodoFilter.ALL, PREFERENCES_STORAGE_VERSION, TodoFilter
            ),
            "tts_enabled": slot(TTS_KEY, False, PREFERENCES_STORAGE_VERSION, bool),
            "voice_preference": slot(
                VOICE_KEY, "auto", PREFERENCES_STORAGE_VERSION, str
            ),
            "active_list_id": slot(
                ACTIVE_LIST_KEY, "", PREFERENCES_STORAGE_VERSION, str
            ),
            "staples": slot(
                STAPLES_KEY, (), STAPLES_STORAGE_VERSION, tuple[Staple, ...]
            ),
            "history": slot(
                HISTORY_KEY, (), HISTORY_STORAGE_VERSION, tuple[HistoryEntry, ...]
            ),
        }

    @property
    def store(self) -> KeyValueStore:
        """Return the backing key-value store."""
        return self._store

    def set_error_callback(self, on_error: StorageErrorCallback | None) -> None:
        """Route storage errors from every slot to ``on_error``."""
        for slot in self._slots.values():
            slot.on_error = on_error

    def slots(self) -> Iterator[StorageSlot[Any]]:
        """Iterate over every persisted slot."""
        return iter(self._slots.values())

    def load(self) -> AppState:
        """Read every persisted field into a fresh state."""
        values = {field: slot.read() for field, slot in self._slots.items()}
        return AppState(**values)

    def save(self, previous: AppState | None, current: AppState) -> None:
        """Schedule writes for the fields that changed.

        Args:
            previous: State before the change, or None to save every field.
            current: State to persist.
        """
        for field, slot in self._slots.items():
            value = getattr(current, field)
            if previous is not None and getattr(previous, field) == value:
                continue
            self._writer.schedule(slot.key, partial(slot.write, value))

    def flush(self) -> None:
        """Write every pending change now."""
        self._writer.flush()

    def close(self) -> None:
        """Flush pending writes."""
        self.flush()

    def clear(self) -> None:
        """Drop pending writes and delete every persisted field."""
        self._writer.discard()
        for slot in self._slots.values():
            slot.clear()
