"""Pydantic models and enums for VoxShop.

This is the shared type system. Every record that crosses a module
boundary is defined here: list items, grocery lists, history entries,
staples, voice commands, suggestion matches, feedback and the
application state snapshot.

All records are frozen. Mutations always build a new object (usually via
``model_copy(update=...)``) so that state snapshots can be shared freely.
Stored and exported JSON uses camelCase keys.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import StrEnum
from typing import Annotated, Literal

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class Category(StrEnum):
    """Grocery store aisle categories, in display order."""

    PRODUCE = "produce"
    DAIRY = "dairy"
    MEAT = "meat"
    FROZEN = "frozen"
    PANTRY = "pantry"
    BAKERY = "bakery"
    BEVERAGES = "beverages"
    HOUSEHOLD = "household"
    OTHER = "other"


class CategorySource(StrEnum):
    """Whether an item's category was inferred or picked by the user."""

    AUTO = "auto"
    MANUAL = "manual"


class TodoFilter(StrEnum):
    """Which items the list view shows."""

    ALL = "all"
    ACTIVE = "active"
    COMPLETED = "completed"


class MoveDirection(StrEnum):
    """Direction of a move within a local group."""

    UP = "up"
    DOWN = "down"


class Severity(StrEnum):
    """Severity of a user-facing feedback message."""

    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class SuggestionSource(StrEnum):
    """Where a suggestion candidate came from."""

    LIST = "list"
    HISTORY = "history"
    STAPLE = "staple"


class MatchReason(StrEnum):
    """Which scoring tier produced a suggestion match."""

    EXACT = "exact"
    PREFIX = "prefix"
    INCLUDES = "includes"
    FUZZY = "fuzzy"


class StorageErrorType(StrEnum):
    """Kind of persistence failure."""

    READ = "read"
    WRITE = "write"
    QUOTA = "quota"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def new_id() -> str:
    """Return a fresh opaque identifier."""
    return uuid.uuid4().hex


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(tz=UTC)


def as_utc(value: datetime) -> datetime:
    """Treat a naive timestamp as UTC so it compares with aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]


def normalize_text(text: str) -> str:
    """Normalize a name for equality and dedup checks.

    Args:
        text: Raw item or list name.

    Returns:
        The trimmed, lower-cased name.
    """
    return text.strip().lower()


class VoxModel(BaseModel):
    """Base for all VoxShop records: frozen, camelCase on the wire."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_json_data(self) -> dict[str, object]:
        """Dump the model as JSON-ready data with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# List records
# ---------------------------------------------------------------------------


class Item(VoxModel):
    """A single entry on a shopping list."""

    id: str = Field(default_factory=new_id)
    text: str
    quantity: float | None = None
    unit: str | None = None
    category: Category | None = None
    category_source: CategorySource = CategorySource.AUTO
    completed: bool = False
    created_at: UtcDatetime = Field(default_factory=utcnow)
    updated_at: UtcDatetime = Field(default_factory=utcnow)

    @field_validator("text")
    @classmethod
    def _text_not_blank(cls, v: str) -> str:
        """Trim item text and reject blank values.

        Args:
            v: Raw text value.

        Returns:
            Trimmed text.

        Raises:
            ValueError: If the text is empty after trimming.
        """
        cleaned = v.strip()
        if not cleaned:
            raise ValueError("Item text cannot be empty")
        return cleaned


class GroceryList(VoxModel):
    """A named, ordered collection of items."""

    id: str = Field(default_factory=new_id)
    name: str
    items: tuple[Item, ...] = ()
    created_at: UtcDatetime = Field(default_factory=utcnow)
    updated_at: UtcDatetime = Field(default_factory=utcnow)
    is_archived: bool = False


class HistoryInput(VoxModel):
    """An item name to record in the history ledger."""

    name: str
    quantity: float | None = None
    unit: str | None = None
    category: Category | None = None


class HistoryEntry(VoxModel):
    """Recency/frequency record of a previously added item."""

    name: str
    quantity: float | None = None
    unit: str | None = None
    category: Category | None = None
    last_added_at: UtcDatetime
    count: int = 1


class Staple(VoxModel):
    """A saved item template that can be re-added to any list."""

    id: str = Field(default_factory=new_id)
    name: str
    quantity: float | None = None
    unit: str | None = None
    category: Category | None = None


# ---------------------------------------------------------------------------
# Parser results
# ---------------------------------------------------------------------------


class QuantityParseResult(VoxModel):
    """Name, quantity and unit extracted from free item text."""

    name: str
    quantity: float | None = None
    unit: str | None = None
    has_quantity: bool = False


class SuggestionCandidate(VoxModel):
    """A name that can be offered as a suggestion."""

    name: str
    quantity: float | None = None
    unit: str | None = None
    source: SuggestionSource | None = None


class SuggestionMatch(VoxModel):
    """A scored suggestion candidate."""

    candidate: SuggestionCandidate
    score: float
    reason: MatchReason


# ---------------------------------------------------------------------------
# Voice commands
# ---------------------------------------------------------------------------


class AddCommand(VoxModel):
    """Add an item."""

    type: Literal["add"] = "add"
    text: str


class DeleteCommand(VoxModel):
    """Delete every item with a given name."""

    type: Literal["delete"] = "delete"
    text: str


class CompleteCommand(VoxModel):
    """Mark every item with a given name as picked up."""

    type: Literal["complete"] = "complete"
    text: str


class EditCommand(VoxModel):
    """Rename an item."""

    type: Literal["edit"] = "edit"
    target: str
    text: str


class MoveCommand(VoxModel):
    """Move an item within its local group."""

    type: Literal["move"] = "move"
    text: str
    direction: MoveDirection


class FilterCommand(VoxModel):
    """Change the list filter."""

    type: Literal["filter"] = "filter"
    filter: TodoFilter


class ClearCompletedCommand(VoxModel):
    """Remove all picked-up items."""

    type: Literal["clearCompleted"] = "clearCompleted"


class CountCommand(VoxModel):
    """Report how many items are left."""

    type: Literal["count"] = "count"


class HelpCommand(VoxModel):
    """List the supported phrases."""

    type: Literal["help"] = "help"


class UnknownCommand(VoxModel):
    """A transcript that matched no rule."""

    type: Literal["unknown"] = "unknown"
    raw: str


VoiceCommand = Annotated[
    AddCommand
    | DeleteCommand
    | CompleteCommand
    | EditCommand
    | MoveCommand
    | FilterCommand
    | ClearCompletedCommand
    | CountCommand
    | HelpCommand
    | UnknownCommand,
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------------
# Feedback and state
# ---------------------------------------------------------------------------


class Feedback(VoxModel):
    """A human-readable outcome message."""

    message: str
    severity: Severity
    title: str | None = None


class StorageError(VoxModel):
    """A non-fatal persistence failure."""

    type: StorageErrorType
    message: str


class AppState(VoxModel):
    """Complete snapshot of lists and preferences."""

    lists: tuple[GroceryList, ...] = ()
    active_list_id: str = ""
    filter: TodoFilter = TodoFilter.ALL
    tts_enabled: bool = False
    voice_preference: str = "auto"
    staples: tuple[Staple, ...] = ()
    history: tuple[HistoryEntry, ...] = ()

    @property
    def active_list(self) -> GroceryList | None:
        """Return the active list, falling back to the first open list."""
        for grocery_list in self.lists:
            if grocery_list.id == self.active_list_id:
                return grocery_list
        return next((gl for gl in self.lists if not gl.is_archived), None)

    @property
    def items(self) -> tuple[Item, ...]:
        """Return the items of the active list."""
        active = self.active_list
        return active.items if active is not None else ()

    def with_active_items(
        self, items: tuple[Item, ...], now: datetime | None = None
    ) -> AppState:
        """Return a copy with the active list's items replaced.

        Args:
            items: New item sequence for the active list.
            now: Timestamp for the list's ``updated_at``.

        Returns:
            New AppState; unchanged if there is no active list.
        """
        active = self.active_list
        if active is None:
            return self
        updated = active.model_copy(
            update={"items": tuple(items), "updated_at": now or utcnow()}
        )
        lists = tuple(
            updated if grocery_list.id == active.id else grocery_list
            for grocery_list in self.lists
        )
        return self.model_copy(update={"lists": lists})
