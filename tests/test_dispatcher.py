"""Tests for voxshop.dispatcher module."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from voxshop.dispatcher import (
    HELP_MESSAGE,
    CommandDispatcher,
    resolve_command_item_name,
)
from voxshop.models import (
    AppState,
    Category,
    CategorySource,
    GroceryList,
    Item,
    Severity,
    TodoFilter,
    UnknownCommand,
)

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


def _state(*items: Item) -> AppState:
    return AppState(
        lists=(GroceryList(id="l1", name="My List", items=items),),
        active_list_id="l1",
    )


@pytest.fixture()
def dispatcher() -> CommandDispatcher:
    """Create a dispatcher with a small history limit."""
    return CommandDispatcher(history_limit=5)


class TestResolveCommandItemName:
    """Tests for resolve_command_item_name."""

    def test_strips_quantity(self) -> None:
        """Test the quantity phrase is removed."""
        assert resolve_command_item_name("2 gallons of milk") == "milk"

    def test_plain_name_unchanged(self) -> None:
        """Test text without quantity is returned as is."""
        assert resolve_command_item_name("milk") == "milk"


class TestInformationalCommands:
    """Tests for commands that do not touch items."""

    def test_unknown(self, dispatcher: CommandDispatcher) -> None:
        """Test an unrecognized transcript is quoted back."""
        state = _state()
        result = dispatcher.handle_transcript("sing a song", state, now=NOW)
        assert result.state is state
        assert result.feedback.message == 'Command not recognized: "sing a song"'
        assert result.feedback.severity is Severity.WARNING

    def test_help(self, dispatcher: CommandDispatcher) -> None:
        """Test help returns the phrase list."""
        result = dispatcher.handle_transcript("help", _state(), now=NOW)
        assert result.feedback.message == HELP_MESSAGE
        assert result.feedback.severity is Severity.INFO

    def test_count(self, dispatcher: CommandDispatcher) -> None:
        """Test count reports active and total items."""
        state = _state(
            Item(id="a", text="milk"),
            Item(id="b", text="eggs", completed=True),
        )
        result = dispatcher.handle_transcript("how many items", state, now=NOW)
        assert result.feedback.message == "You have 1 items left out of 2."

    @pytest.mark.parametrize(
        ("transcript", "expected", "label"),
        [
            ("show all", TodoFilter.ALL, "all"),
            ("show needed", TodoFilter.ACTIVE, "needed"),
            ("show picked up", TodoFilter.COMPLETED, "picked up"),
        ],
    )
    def test_filter(
        self,
        dispatcher: CommandDispatcher,
        transcript: str,
        expected: TodoFilter,
        label: str,
    ) -> None:
        """Test filter commands update the state filter."""
        result = dispatcher.handle_transcript(transcript, _state(), now=NOW)
        assert result.state.filter is expected
        assert result.feedback.message == f"Showing {label} items."

    def test_dispatch_classified_command(self, dispatcher: CommandDispatcher) -> None:
        """Test dispatch accepts an already parsed command."""
        result = dispatcher.dispatch(UnknownCommand(raw="x"), "x", _state(), now=NOW)
        assert result.feedback.severity is Severity.WARNING


class TestItemCommands:
    """Tests for commands that change items."""

    def test_add(self, dispatcher: CommandDispatcher) -> None:
        """Test add parses quantity and records history."""
        result = dispatcher.handle_transcript("add 2 gallons of milk", _state(), now=NOW)
        items = result.state.items
        assert len(items) == 1
        assert items[0].text == "milk"
        assert items[0].quantity == 2
        assert result.feedback.message == "Added to list: 2 gallons milk"
        assert [entry.name for entry in result.state.history] == ["milk"]
        assert result.state.active_list is not None
        assert result.state.active_list.updated_at == NOW

    def test_add_duplicate_leaves_state(self, dispatcher: CommandDispatcher) -> None:
        """Test a rejected add returns the same state."""
        state = _state(Item(id="a", text="milk"))
        result = dispatcher.handle_transcript("add milk", state, now=NOW)
        assert result.state is state
        assert result.feedback.severity is Severity.WARNING

    def test_history_limit_applied(self) -> None:
        """Test the history ledger is capped at the configured size."""
        dispatcher = CommandDispatcher(history_limit=2)
        state = _state()
        for name in ("milk", "eggs", "bread"):
            state = dispatcher.handle_transcript(f"add {name}", state, now=NOW).state
        assert len(state.history) == 2

    def test_add_huge_number(self, dispatcher: CommandDispatcher) -> None:
        """Test an overflowing leading number is kept in the item name."""
        digits = "9" * 400
        result = dispatcher.handle_transcript(f"add {digits} eggs", _state(), now=NOW)
        assert result.feedback.severity is Severity.SUCCESS
        assert [item.text for item in result.state.items] == [f"{digits} eggs"]
        assert result.state.items[0].quantity is None

    def test_delete_by_name(self, dispatcher: CommandDispatcher) -> None:
        """Test delete removes matching items, ignoring quantity words."""
        state = _state(Item(id="a", text="milk"), Item(id="b", text="eggs"))
        result = dispatcher.handle_transcript("delete 2 gallons of milk", state, now=NOW)
        assert [item.text for item in result.state.items] == ["eggs"]
        assert result.feedback.message == 'Removed 1 item(s) named "milk".'

    def test_delete_missing(self, dispatcher: CommandDispatcher) -> None:
        """Test deleting an absent item reports an error."""
        state = _state(Item(id="a", text="milk"))
        result = dispatcher.handle_transcript("delete bread", state, now=NOW)
        assert result.state is state
        assert result.feedback.severity is Severity.ERROR

    def test_complete(self, dispatcher: CommandDispatcher) -> None:
        """Test complete marks the item picked up."""
        state = _state(Item(id="a", text="milk"), Item(id="b", text="eggs"))
        result = dispatcher.handle_transcript("got milk", state, now=NOW)
        assert [item.text for item in result.state.items] == ["eggs", "milk"]
        assert result.state.items[1].completed is True

    def test_clear_completed(self, dispatcher: CommandDispatcher) -> None:
        """Test clear removes picked-up items."""
        state = _state(
            Item(id="a", text="milk"),
            Item(id="b", text="eggs", completed=True),
        )
        result = dispatcher.handle_transcript("clear completed", state, now=NOW)
        assert [item.text for item in result.state.items] == ["milk"]

    def test_move(self, dispatcher: CommandDispatcher) -> None:
        """Test move reorders within the local group."""
        state = _state(
            Item(id="a", text="apples", category=Category.PRODUCE),
            Item(id="b", text="bananas", category=Category.PRODUCE),
        )
        result = dispatcher.handle_transcript("move bananas up", state, now=NOW)
        assert [item.text for item in result.state.items] == ["bananas", "apples"]
        assert result.feedback.message == 'Moved "bananas" up.'

    def test_move_missing(self, dispatcher: CommandDispatcher) -> None:
        """Test moving an absent item reports an error."""
        result = dispatcher.handle_transcript("move bread up", _state(), now=NOW)
        assert result.feedback.message == "Item not found."
        assert result.feedback.severity is Severity.ERROR


class TestEditCommand:
    """Tests for spoken edits."""

    def test_edit_reinfers_category(self, dispatcher: CommandDispatcher) -> None:
        """Test an auto category is inferred again from the new name."""
        state = _state(Item(id="a", text="milk", category=Category.DAIRY))
        result = dispatcher.handle_transcript("change milk to bread", state, now=NOW)
        item = result.state.items[0]
        assert item.text == "bread"
        assert item.category is Category.BAKERY
        assert result.feedback.message == 'Updated "milk" to "bread".'

    def test_edit_keeps_manual_category(self, dispatcher: CommandDispatcher) -> None:
        """Test a manually picked category survives a spoken edit."""
        state = _state(
            Item(
                id="a",
                text="milk",
                category=Category.FROZEN,
                category_source=CategorySource.MANUAL,
            )
        )
        result = dispatcher.handle_transcript("edit milk to oat milk", state, now=NOW)
        item = result.state.items[0]
        assert item.text == "oat milk"
        assert item.category is Category.FROZEN
        assert item.category_source is CategorySource.MANUAL

    def test_edit_missing(self, dispatcher: CommandDispatcher) -> None:
        """Test editing an absent item reports an error."""
        result = dispatcher.handle_transcript("change eggs to bread", _state(), now=NOW)
        assert result.feedback.message == "Item not found."
