"""Tests for voxshop.storage module."""

from __future__ import annotations

import json
from datetime import UTC
from typing import TYPE_CHECKING

import pytest

from voxshop.history import record_item
from voxshop.models import (
    AppState,
    GroceryList,
    HistoryInput,
    Item,
    StorageError,
    StorageErrorType,
    TodoFilter,
)
from voxshop.storage import (
    FILTER_KEY,
    HISTORY_KEY,
    LISTS_KEY,
    QUOTA_ERROR_MESSAGE,
    READ_ERROR_MESSAGE,
    TTS_KEY,
    DebouncedWriter,
    MemoryStore,
    SqliteStore,
    StateStore,
    StorageBackendError,
    StorageQuotaError,
    StorageSlot,
)

if TYPE_CHECKING:
    from pathlib import Path


class FlakyStore(MemoryStore):
    """MemoryStore that can be told to fail every operation."""

    def __init__(self) -> None:
        super().__init__()
        self.fail = False

    def get(self, key: str) -> bytes | None:
        if self.fail:
            raise StorageBackendError("backend down")
        return super().get(key)

    def set(self, key: str, data: bytes) -> None:
        if self.fail:
            raise StorageBackendError("backend down")
        super().set(key, data)

    def delete(self, key: str) -> None:
        if self.fail:
            raise StorageBackendError("backend down")
        super().delete(key)


@pytest.fixture()
def errors() -> list[StorageError]:
    """Collect reported storage errors."""
    return []


@pytest.fixture()
def store() -> MemoryStore:
    """Create an empty memory store."""
    return MemoryStore()


@pytest.fixture()
def db_path(tmp_path: Path) -> str:
    """Create a temporary database path."""
    return str(tmp_path / "test.db")


def _envelope(version: object, value: object) -> bytes:
    return json.dumps({"version": version, "value": value}).encode("utf-8")


# ---------------------------------------------------------------------------
# Key-value stores
# ---------------------------------------------------------------------------


class TestMemoryStore:
    """Tests for MemoryStore."""

    def test_set_get_delete(self, store: MemoryStore) -> None:
        """Test the basic byte operations."""
        assert store.get("a") is None
        store.set("a", b"1")
        assert store.get("a") == b"1"
        store.delete("a")
        assert store.get("a") is None

    def test_delete_missing_is_ignored(self, store: MemoryStore) -> None:
        """Test deleting an absent key does nothing."""
        store.delete("nope")

    def test_keys_sorted(self, store: MemoryStore) -> None:
        """Test keys are returned sorted."""
        store.set("b", b"")
        store.set("a", b"")
        assert store.keys() == ["a", "b"]

    def test_quota(self) -> None:
        """Test writes past capacity raise StorageQuotaError."""
        store = MemoryStore(max_bytes=4)
        store.set("a", b"12")
        with pytest.raises(StorageQuotaError):
            store.set("b", b"123")
        assert store.get("b") is None

    def test_quota_counts_replacement(self) -> None:
        """Test replacing a key does not count its old value."""
        store = MemoryStore(max_bytes=4)
        store.set("a", b"1234")
        store.set("a", b"abcd")
        assert store.get("a") == b"abcd"


class TestSqliteStore:
    """Tests for SqliteStore."""

    def test_round_trip(self, db_path: str) -> None:
        """Test values survive a new store on the same file."""
        SqliteStore(db_path).set("k", b'{"version": 1}')
        reopened = SqliteStore(db_path)
        assert reopened.get("k") == b'{"version": 1}'
        assert reopened.db_path == db_path

    def test_upsert(self, db_path: str) -> None:
        """Test setting a key twice replaces the value."""
        store = SqliteStore(db_path)
        store.set("k", b"1")
        store.set("k", b"2")
        assert store.get("k") == b"2"
        assert store.keys() == ["k"]

    def test_missing_and_delete(self, db_path: str) -> None:
        """Test absent keys read as None and delete removes keys."""
        store = SqliteStore(db_path)
        assert store.get("k") is None
        store.set("k", b"1")
        store.delete("k")
        assert store.get("k") is None
        assert store.keys() == []


# ---------------------------------------------------------------------------
# Slots
# ---------------------------------------------------------------------------


class TestStorageSlot:
    """Tests for StorageSlot reads and writes."""

    def _slot(
        self, store: MemoryStore, errors: list[StorageError], **kwargs: object
    ) -> StorageSlot[TodoFilter]:
        return StorageSlot(
            store,
            FILTER_KEY,
            TodoFilter.ALL,
            3,
            TodoFilter,
            on_error=errors.append,
            **kwargs,  # type: ignore[arg-type]
        )

    def test_empty_returns_initial(
        self, store: MemoryStore, errors: list[StorageError]
    ) -> None:
        """Test a missing key reads as the default without errors."""
        assert self._slot(store, errors).read() is TodoFilter.ALL
        assert errors == []

    def test_write_then_read(
        self, store: MemoryStore, errors: list[StorageError]
    ) -> None:
        """Test a written value reads back."""
        slot = self._slot(store, errors)
        assert slot.write(TodoFilter.ACTIVE) is True
        assert json.loads(store.get(FILTER_KEY) or b"") == {
            "version": 3,
            "value": "active",
        }
        assert slot.read() is TodoFilter.ACTIVE

    def test_invalid_json_reports_read_error(
        self, store: MemoryStore, errors: list[StorageError]
    ) -> None:
        """Test corrupt bytes fall back and report a read error."""
        store.set(FILTER_KEY, b"{not json")
        assert self._slot(store, errors).read() is TodoFilter.ALL
        assert errors == [
            StorageError(type=StorageErrorType.READ, message=READ_ERROR_MESSAGE)
        ]

    def test_invalid_value_reports_read_error(
        self, store: MemoryStore, errors: list[StorageError]
    ) -> None:
        """Test a value failing validation falls back with a read error."""
        store.set(FILTER_KEY, _envelope(3, "sideways"))
        assert self._slot(store, errors).read() is TodoFilter.ALL
        assert len(errors) == 1

    def test_not_an_envelope_is_silent(
        self, store: MemoryStore, errors: list[StorageError]
    ) -> None:
        """Test JSON without an envelope falls back quietly."""
        store.set(FILTER_KEY, b'"active"')
        assert self._slot(store, errors).read() is TodoFilter.ALL
        assert errors == []

    def test_old_version_without_migration_is_silent(
        self, store: MemoryStore, errors: list[StorageError]
    ) -> None:
        """Test an old version with no migration uses the default."""
        store.set(FILTER_KEY, _envelope(2, "active"))
        assert self._slot(store, errors).read() is TodoFilter.ALL
        assert errors == []

    def test_migration_applied(
        self, store: MemoryStore, errors: list[StorageError]
    ) -> None:
        """Test an old version is passed through the migration."""
        store.set(FILTER_KEY, _envelope(1, "ACTIVE"))
        slot = self._slot(
            store, errors, migrate=lambda value, version: value.lower()
        )
        assert slot.read() is TodoFilter.ACTIVE

    def test_can_migrate(
        self, store: MemoryStore, errors: list[StorageError]
    ) -> None:
        """Test the slot reports whether it has a migration."""
        assert self._slot(store, errors).can_migrate is False
        slot = self._slot(store, errors, migrate=lambda value, version: value)
        assert slot.can_migrate is True

    def test_backend_read_failure(self, errors: list[StorageError]) -> None:
        """Test a failing backend reports a read error."""
        flaky = FlakyStore()
        flaky.fail = True
        assert self._slot(flaky, errors).read() is TodoFilter.ALL
        assert errors[0].type is StorageErrorType.READ

    def test_quota_reported_once(self, errors: list[StorageError]) -> None:
        """Test repeated quota failures are reported a single time."""
        slot = self._slot(MemoryStore(max_bytes=5), errors)
        assert slot.write(TodoFilter.ACTIVE) is False
        assert slot.write(TodoFilter.COMPLETED) is False
        assert errors == [
            StorageError(type=StorageErrorType.QUOTA, message=QUOTA_ERROR_MESSAGE)
        ]

    def test_write_error_reported_again_after_success(
        self, errors: list[StorageError]
    ) -> None:
        """Test a successful write re-arms the error report."""
        flaky = FlakyStore()
        slot = self._slot(flaky, errors)
        flaky.fail = True
        slot.write(TodoFilter.ACTIVE)
        slot.write(TodoFilter.ACTIVE)
        flaky.fail = False
        assert slot.write(TodoFilter.ACTIVE) is True
        flaky.fail = True
        slot.write(TodoFilter.ACTIVE)
        assert [error.type for error in errors] == [
            StorageErrorType.WRITE,
            StorageErrorType.WRITE,
        ]

    def test_clear(self, store: MemoryStore, errors: list[StorageError]) -> None:
        """Test clear removes the stored value."""
        slot = self._slot(store, errors)
        slot.write(TodoFilter.ACTIVE)
        slot.clear()
        assert store.get(FILTER_KEY) is None


# ---------------------------------------------------------------------------
# Debounced writer
# ---------------------------------------------------------------------------


class TestDebouncedWriter:
    """Tests for DebouncedWriter."""

    def test_zero_delay_writes_immediately(self) -> None:
        """Test a zero delay bypasses the queue."""
        calls: list[str] = []
        writer = DebouncedWriter(0)
        writer.schedule("a", lambda: calls.append("a"))
        assert calls == ["a"]
        assert writer.pending_keys == []

    def test_writes_wait_for_flush(self) -> None:
        """Test writes are held until flushed."""
        calls: list[str] = []
        writer = DebouncedWriter(60_000)
        writer.schedule("a", lambda: calls.append("a"))
        assert calls == []
        assert writer.pending_keys == ["a"]
        writer.flush()
        assert calls == ["a"]
        assert writer.pending_keys == []

    def test_last_write_wins(self) -> None:
        """Test only the latest write per key runs."""
        calls: list[str] = []
        writer = DebouncedWriter(60_000)
        writer.schedule("a", lambda: calls.append("first"))
        writer.schedule("a", lambda: calls.append("second"))
        writer.schedule("b", lambda: calls.append("other"))
        writer.flush()
        assert calls == ["second", "other"]

    def test_discard(self) -> None:
        """Test discarded writes never run."""
        calls: list[str] = []
        writer = DebouncedWriter(60_000)
        writer.schedule("a", lambda: calls.append("a"))
        writer.discard()
        writer.flush()
        assert calls == []


# ---------------------------------------------------------------------------
# State store
# ---------------------------------------------------------------------------


class TestStateStore:
    """Tests for StateStore."""

    def test_load_defaults(self, store: MemoryStore) -> None:
        """Test an empty store loads the default state."""
        assert StateStore(store).load() == AppState()

    def test_save_and_load(self, store: MemoryStore) -> None:
        """Test every field round-trips through the store."""
        state = AppState(
            lists=(GroceryList(id="l1", name="Home", items=(Item(text="milk"),)),),
            active_list_id="l1",
            filter=TodoFilter.COMPLETED,
            tts_enabled=True,
            voice_preference="Samantha",
        )
        writer = StateStore(store, debounce_ms=0)
        writer.save(None, state)
        assert StateStore(store).load() == state

    def test_save_only_changed_fields(self, store: MemoryStore) -> None:
        """Test unchanged fields are not rewritten."""
        state_store = StateStore(store, debounce_ms=0)
        previous = AppState()
        state_store.save(previous, previous.model_copy(update={"tts_enabled": True}))
        assert store.keys() == [TTS_KEY]

    def test_debounced_until_flush(self, store: MemoryStore) -> None:
        """Test writes reach the store only after flush."""
        state_store = StateStore(store, debounce_ms=60_000)
        state_store.save(None, AppState(tts_enabled=True))
        assert store.keys() == []
        state_store.close()
        assert TTS_KEY in store.keys()

    def test_clear(self, store: MemoryStore) -> None:
        """Test clear deletes stored fields and pending writes."""
        state_store = StateStore(store, debounce_ms=0)
        state_store.save(None, AppState(tts_enabled=True))
        delayed = StateStore(store, debounce_ms=60_000)
        delayed.save(None, AppState(filter=TodoFilter.ACTIVE))
        delayed.clear()
        delayed.flush()
        assert store.keys() == []

    def test_legacy_lists_migrated(
        self, store: MemoryStore, errors: list[StorageError]
    ) -> None:
        """Test version 1 todos load as the default list."""
        store.set(LISTS_KEY, _envelope(1, [{"text": "3 eggs", "completed": False}]))
        state = StateStore(store, on_error=errors.append).load()
        assert len(state.lists) == 1
        assert state.lists[0].name == "My List"
        item = state.lists[0].items[0]
        assert (item.text, item.quantity, item.unit) == ("eggs", 3, "count")
        assert errors == []

    def test_unversioned_lists_migrated(self, store: MemoryStore) -> None:
        """Test an envelope without a version is migrated from the start."""
        store.set(LISTS_KEY, json.dumps({"value": [{"text": "milk"}]}).encode())
        state = StateStore(store).load()
        assert state.lists[0].items[0].text == "milk"

    def test_future_lists_version_falls_back(
        self, store: MemoryStore, errors: list[StorageError]
    ) -> None:
        """Test data from a newer release is replaced by the default."""
        store.set(LISTS_KEY, _envelope(99, []))
        state = StateStore(store, on_error=errors.append).load()
        assert state.lists == ()
        assert [error.type for error in errors] == [StorageErrorType.READ]

    def test_naive_timestamps_loaded_as_utc(
        self, store: MemoryStore, errors: list[StorageError]
    ) -> None:
        """Test timestamps saved without an offset load as UTC."""
        store.set(
            HISTORY_KEY,
            _envelope(1, [{"name": "milk", "lastAddedAt": "2024-01-01T00:00:00"}]),
        )
        item = {"id": "a", "text": "milk", "createdAt": "2024-01-01T00:00:00"}
        grocery_list = {"id": "l1", "name": "Home", "items": [item]}
        store.set(LISTS_KEY, _envelope(3, [grocery_list]))
        state = StateStore(store, on_error=errors.append).load()

        assert errors == []
        assert state.history[0].last_added_at.tzinfo is UTC
        assert state.lists[0].items[0].created_at.tzinfo is UTC
        history = record_item(state.history, HistoryInput(name="eggs"))
        assert [entry.name for entry in history] == ["eggs", "milk"]

    def test_error_callback_can_be_replaced(
        self, store: MemoryStore, errors: list[StorageError]
    ) -> None:
        """Test set_error_callback reroutes errors from every slot."""
        store.set(HISTORY_KEY, b"not json")
        state_store = StateStore(store)
        state_store.set_error_callback(errors.append)
        state_store.load()
        assert len(errors) == 1
