"""Tests for voxshop.models module."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from pydantic import TypeAdapter, ValidationError

from voxshop.models import (
    AddCommand,
    AppState,
    Category,
    CategorySource,
    EditCommand,
    Feedback,
    GroceryList,
    HistoryEntry,
    Item,
    Severity,
    TodoFilter,
    UnknownCommand,
    VoiceCommand,
    as_utc,
    new_id,
    normalize_text,
    utcnow,
)

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestHelpers:
    """Tests for id, clock and normalization helpers."""

    def test_new_id_unique(self) -> None:
        """Test ids are distinct."""
        assert new_id() != new_id()

    def test_utcnow_is_aware(self) -> None:
        """Test the clock returns UTC datetimes."""
        assert utcnow().tzinfo is UTC

    def test_normalize_text(self) -> None:
        """Test trimming and lower-casing."""
        assert normalize_text("  Whole Milk ") == "whole milk"

    def test_as_utc_naive(self) -> None:
        """Test a naive timestamp is read as UTC."""
        assert as_utc(datetime(2024, 5, 1, 12, 0)) == NOW

    def test_as_utc_aware_unchanged(self) -> None:
        """Test an aware timestamp is returned as is."""
        assert as_utc(NOW) is NOW


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


class TestItem:
    """Tests for the Item model."""

    def test_defaults(self) -> None:
        """Test a new item is needed with an automatic category."""
        item = Item(text="milk")
        assert item.completed is False
        assert item.category is None
        assert item.category_source is CategorySource.AUTO
        assert item.quantity is None

    def test_text_trimmed(self) -> None:
        """Test surrounding whitespace is removed."""
        assert Item(text="  eggs ").text == "eggs"

    def test_blank_text_rejected(self) -> None:
        """Test blank text fails validation."""
        with pytest.raises(ValidationError, match="cannot be empty"):
            Item(text="   ")

    def test_frozen(self) -> None:
        """Test items are immutable."""
        item = Item(text="milk")
        with pytest.raises(ValidationError):
            item.completed = True  # type: ignore[misc]

    def test_json_uses_camel_case(self) -> None:
        """Test serialized keys are camelCase and None is omitted."""
        item = Item(
            id="a",
            text="milk",
            category=Category.DAIRY,
            created_at=NOW,
            updated_at=NOW,
        )
        data = item.to_json_data()
        assert data == {
            "id": "a",
            "text": "milk",
            "category": "dairy",
            "categorySource": "auto",
            "completed": False,
            "createdAt": "2024-05-01T12:00:00Z",
            "updatedAt": "2024-05-01T12:00:00Z",
        }

    def test_validates_from_camel_case(self) -> None:
        """Test stored camelCase data loads back."""
        item = Item.model_validate(
            {"id": "a", "text": "milk", "categorySource": "manual", "createdAt": NOW}
        )
        assert item.category_source is CategorySource.MANUAL
        assert item.created_at == NOW


class TestTimestamps:
    """Tests for timestamp validation on stored records."""

    def test_item_naive_timestamps(self) -> None:
        """Test naive item timestamps load as UTC."""
        item = Item.model_validate(
            {"text": "milk", "createdAt": "2024-05-01T12:00:00", "updatedAt": NOW}
        )
        assert item.created_at == NOW
        assert item.created_at.tzinfo is UTC

    def test_history_naive_timestamp(self) -> None:
        """Test a naive history timestamp loads as UTC."""
        entry = HistoryEntry.model_validate(
            {"name": "milk", "lastAddedAt": "2024-05-01T12:00:00"}
        )
        assert entry.last_added_at == NOW


class TestFeedback:
    """Tests for the Feedback model."""

    def test_title_optional(self) -> None:
        """Test feedback without a title omits it on the wire."""
        feedback = Feedback(message="Done", severity=Severity.SUCCESS)
        assert feedback.to_json_data() == {"message": "Done", "severity": "success"}


# ---------------------------------------------------------------------------
# Voice commands
# ---------------------------------------------------------------------------


class TestVoiceCommand:
    """Tests for the discriminated command union."""

    def test_discriminated_by_type(self) -> None:
        """Test the type field selects the command class."""
        adapter: TypeAdapter[VoiceCommand] = TypeAdapter(VoiceCommand)
        command = adapter.validate_python({"type": "edit", "target": "a", "text": "b"})
        assert isinstance(command, EditCommand)
        assert command.target == "a"

    def test_defaults_type(self) -> None:
        """Test each command carries its own type tag."""
        assert AddCommand(text="milk").type == "add"
        assert UnknownCommand(raw="sing").type == "unknown"


# ---------------------------------------------------------------------------
# App state
# ---------------------------------------------------------------------------


class TestAppState:
    """Tests for AppState helpers."""

    def test_defaults(self) -> None:
        """Test the empty state's preferences."""
        state = AppState()
        assert state.filter is TodoFilter.ALL
        assert state.tts_enabled is False
        assert state.voice_preference == "auto"
        assert state.active_list is None
        assert state.items == ()

    def test_active_list_falls_back_to_first(self) -> None:
        """Test an unknown active id resolves to the first list."""
        first = GroceryList(id="l1", name="Home")
        second = GroceryList(id="l2", name="Costco")
        state = AppState(lists=(first, second), active_list_id="missing")
        assert state.active_list is first

    def test_active_list_skips_archived_lists(self) -> None:
        """Test the fallback is the first list that is not archived."""
        archived = GroceryList(id="l1", name="Old", is_archived=True)
        open_list = GroceryList(id="l2", name="Home")
        state = AppState(lists=(archived, open_list), active_list_id="missing")
        assert state.active_list is open_list

    def test_active_list_none_when_all_archived(self) -> None:
        """Test there is no fallback when every list is archived."""
        archived = GroceryList(id="l1", name="Old", is_archived=True)
        state = AppState(lists=(archived,), active_list_id="missing")
        assert state.active_list is None
        assert state.items == ()

    def test_active_list_by_id(self) -> None:
        """Test the active id selects its list."""
        first = GroceryList(id="l1", name="Home")
        second = GroceryList(id="l2", name="Costco", items=(Item(text="rice"),))
        state = AppState(lists=(first, second), active_list_id="l2")
        assert state.active_list is second
        assert [item.text for item in state.items] == ["rice"]

    def test_with_active_items(self) -> None:
        """Test replacing items touches only the active list."""
        first = GroceryList(id="l1", name="Home", updated_at=NOW)
        second = GroceryList(id="l2", name="Costco", updated_at=NOW)
        state = AppState(lists=(first, second), active_list_id="l2")
        later = datetime(2024, 5, 2, tzinfo=UTC)

        updated = state.with_active_items((Item(text="rice"),), now=later)

        assert updated.lists[0] is first
        assert [item.text for item in updated.lists[1].items] == ["rice"]
        assert updated.lists[1].updated_at == later
        assert state.lists[1].items == ()

    def test_with_active_items_without_lists(self) -> None:
        """Test an empty state is returned unchanged."""
        state = AppState()
        assert state.with_active_items((Item(text="rice"),)) is state
