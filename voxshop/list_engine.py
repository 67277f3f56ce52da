"""List engine: item mutations, ordering and list management.

Every operation takes an immutable snapshot and returns a result object
holding the next snapshot plus optional feedback. Inputs are never
modified.

Ordering rules:
1. Lists keep the active/completed partition: all items still needed come
   first, followed by all picked-up items, each part in relative order.
2. New items join the end of the active part.
3. Moves are scoped to the item's local group, the items sharing its
   resolved category and completed flag.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

from voxshop.category_mapper import CATEGORY_ORDER, infer_category_from_name
from voxshop.models import (
    Category,
    CategorySource,
    Feedback,
    GroceryList,
    HistoryInput,
    Item,
    MoveDirection,
    Severity,
    TodoFilter,
    new_id,
    normalize_text,
    utcnow,
)
from voxshop.quantity_parser import build_item_label, parse_quantity_from_text

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from datetime import datetime

    from voxshop.models import Staple

logger = logging.getLogger(__name__)

DEFAULT_LIST_NAME = "My List"

ITEM_NOT_FOUND = "Item not found."

CategorySelection = Category | Literal["auto"]


@dataclass(frozen=True)
class ListResult:
    """Outcome of an item operation.

    Attributes:
        items: The next item sequence (the input when nothing changed).
        feedback: Message describing the outcome, if any.
        history_entries: Names to record in the item history.
        changed: Whether ``items`` differs from the input.
    """

    items: tuple[Item, ...]
    feedback: Feedback | None = None
    history_entries: tuple[HistoryInput, ...] = ()
    changed: bool = True


@dataclass(frozen=True)
class ListCounts:
    """Item tallies for a list."""

    active: int
    completed: int
    total: int


@dataclass(frozen=True)
class ListsResult:
    """Outcome of a list-collection operation."""

    lists: tuple[GroceryList, ...]
    active_list_id: str
    feedback: Feedback | None = None
    changed: bool = True


def _unchanged(
    items: Sequence[Item], message: str, severity: Severity = Severity.WARNING
) -> ListResult:
    """Build a no-op result carrying feedback."""
    return ListResult(
        items=tuple(items),
        feedback=Feedback(message=message, severity=severity),
        changed=False,
    )


def _index_of(items: Sequence[Item], item_id: str) -> int:
    """Return the position of an item id, or -1."""
    for index, item in enumerate(items):
        if item.id == item_id:
            return index
    return -1


# ---------------------------------------------------------------------------
# Ordering helpers
# ---------------------------------------------------------------------------


def resolve_category(item: Item) -> Category:
    """Return the item's category, inferring it when unset."""
    return item.category or infer_category_from_name(item.text)


def order_by_completion(items: Iterable[Item]) -> tuple[Item, ...]:
    """Stable-partition items into active followed by completed."""
    snapshot = tuple(items)
    active = [item for item in snapshot if not item.completed]
    completed = [item for item in snapshot if item.completed]
    return (*active, *completed)


def _insert_active(items: Sequence[Item], additions: Sequence[Item]) -> tuple[Item, ...]:
    """Insert new items at the end of the active partition."""
    active = [item for item in items if not item.completed]
    completed = [item for item in items if item.completed]
    return (*active, *additions, *completed)


def build_item(
    text: str,
    quantity: float | None = None,
    unit: str | None = None,
    category: Category | None = None,
    category_source: CategorySource = CategorySource.AUTO,
    now: datetime | None = None,
) -> Item:
    """Create a new, not yet completed item with a fresh id."""
    timestamp = now or utcnow()
    return Item(
        id=new_id(),
        text=text,
        quantity=quantity,
        unit=unit,
        category=category,
        category_source=category_source,
        completed=False,
        created_at=timestamp,
        updated_at=timestamp,
    )


# ---------------------------------------------------------------------------
# Item operations
# ---------------------------------------------------------------------------


def add_item(
    items: Sequence[Item],
    name: str,
    quantity: float | None = None,
    unit: str | None = None,
    category: Category | None = None,
    category_source: CategorySource = CategorySource.AUTO,
    *,
    now: datetime | None = None,
) -> ListResult:
    """Add an item unless one with the same normalized name exists.

    Args:
        items: Current items.
        name: Item name (quantity already stripped).
        quantity: Optional quantity.
        unit: Optional normalized unit.
        category: Explicit category; inferred from the name when None.
        category_source: Whether the category was user-picked.
        now: Timestamp for the new item.

    Returns:
        Result with the item appended to the active partition.
    """
    cleaned = name.strip()
    if not cleaned:
        return _unchanged(items, "Add an item before submitting.")

    normalized = normalize_text(cleaned)
    if any(normalize_text(item.text) == normalized for item in items):
        return _unchanged(items, "That item is already on your list.")

    resolved_category = category or infer_category_from_name(cleaned)
    new_item = build_item(
        cleaned, quantity, unit, resolved_category, category_source, now
    )
    label = build_item_label(new_item.text, new_item.quantity, new_item.unit)
    logger.debug("Adding item %r (%s)", label, resolved_category)
    return ListResult(
        items=_insert_active(items, [new_item]),
        feedback=Feedback(message=f"Added to list: {label}", severity=Severity.SUCCESS),
        history_entries=(
            HistoryInput(
                name=new_item.text,
                quantity=new_item.quantity,
                unit=new_item.unit,
                category=resolved_category,
            ),
        ),
    )


def add_from_text(
    items: Sequence[Item], text: str, *, now: datetime | None = None
) -> ListResult:
    """Add an item from free text such as ``"2 gallons of milk"``."""
    trimmed = text.strip()
    if not trimmed:
        return _unchanged(items, "Add an item before submitting.")

    parsed = parse_quantity_from_text(trimmed)
    name = (parsed.name if parsed.has_quantity else trimmed).strip()
    if not name:
        return _unchanged(items, "Add an item name with your quantity.")

    return add_item(
        items,
        name,
        quantity=parsed.quantity if parsed.has_quantity else None,
        unit=parsed.unit if parsed.has_quantity else None,
        category=infer_category_from_name(name),
        category_source=CategorySource.AUTO,
        now=now,
    )


def toggle_item(
    items: Sequence[Item], item_id: str, *, now: datetime | None = None
) -> ListResult:
    """Flip an item's completed flag and re-partition the list."""
    index = _index_of(items, item_id)
    if index < 0:
        return _unchanged(items, ITEM_NOT_FOUND, Severity.ERROR)

    target = items[index]
    completed = not target.completed
    updated = target.model_copy(
        update={"completed": completed, "updated_at": now or utcnow()}
    )
    next_items = [*items[:index], updated, *items[index + 1 :]]
    message = (
        f'Picked up "{target.text}".'
        if completed
        else f'Put "{target.text}" back on the list.'
    )
    return ListResult(
        items=order_by_completion(next_items),
        feedback=Feedback(message=message, severity=Severity.SUCCESS),
    )


def edit_item(
    items: Sequence[Item],
    item_id: str,
    text: str,
    category_selection: CategorySelection = "auto",
    *,
    now: datetime | None = None,
) -> ListResult:
    """Rename an item, re-parsing quantity from the new text.

    Args:
        items: Current items.
        item_id: Id of the item to edit.
        text: New text, optionally with a quantity prefix.
        category_selection: ``"auto"`` to re-infer the category, or a
            Category to pin it manually.
        now: Timestamp for ``updated_at``.

    Returns:
        Result with the edited item in place.
    """
    index = _index_of(items, item_id)
    if index < 0:
        return _unchanged(items, ITEM_NOT_FOUND, Severity.ERROR)

    trimmed = text.strip()
    if not trimmed:
        return _unchanged(items, "Item name cannot be empty.")

    target = items[index]
    parsed = parse_quantity_from_text(trimmed)
    if parsed.has_quantity:
        name = parsed.name.strip() or target.text
        quantity, unit = parsed.quantity, parsed.unit
    else:
        name = trimmed
        quantity, unit = target.quantity, target.unit

    if category_selection == "auto":
        category = infer_category_from_name(name)
        source = CategorySource.AUTO
    else:
        category = Category(category_selection)
        source = CategorySource.MANUAL

    updated = target.model_copy(
        update={
            "text": name,
            "quantity": quantity,
            "unit": unit,
            "category": category,
            "category_source": source,
            "updated_at": now or utcnow(),
        }
    )
    return ListResult(
        items=(*items[:index], updated, *items[index + 1 :]),
        feedback=Feedback(message=f"Updated item: {name}", severity=Severity.SUCCESS),
    )


def delete_item(items: Sequence[Item], item_id: str) -> ListResult:
    """Remove one item by id."""
    index = _index_of(items, item_id)
    if index < 0:
        return _unchanged(items, ITEM_NOT_FOUND, Severity.ERROR)

    target = items[index]
    return ListResult(
        items=(*items[:index], *items[index + 1 :]),
        feedback=Feedback(
            message=f'Removed "{target.text}" from the list.', severity=Severity.INFO
        ),
    )


def move_item(
    items: Sequence[Item], item_id: str, direction: MoveDirection | str
) -> ListResult:
    """Move an item one step within its local group.

    The local group is every item sharing the target's resolved category
    and completed flag. The item takes the position of its neighbour in
    that group; items of other groups keep their places.

    Args:
        items: Current items.
        item_id: Id of the item to move.
        direction: ``up`` or ``down``.

    Returns:
        Result with the reordered list, or a warning at the group edge.
    """
    direction = MoveDirection(direction)
    index = _index_of(items, item_id)
    if index < 0:
        return _unchanged(items, ITEM_NOT_FOUND, Severity.ERROR)

    target = items[index]
    target_category = resolve_category(target)
    group = [
        position
        for position, item in enumerate(items)
        if resolve_category(item) == target_category
        and item.completed == target.completed
    ]
    local_index = group.index(index)
    step = -1 if direction is MoveDirection.UP else 1
    next_local = local_index + step
    if next_local < 0 or next_local >= len(group):
        return _unchanged(items, f"Cannot move item {direction}.")

    swap_index = group[next_local]
    reordered = list(items)
    moved = reordered.pop(index)
    reordered.insert(swap_index, moved)
    return ListResult(
        items=order_by_completion(reordered),
        feedback=Feedback(
            message=f'Moved "{moved.text}" {direction}.', severity=Severity.SUCCESS
        ),
    )


# ---------------------------------------------------------------------------
# Bulk operations
# ---------------------------------------------------------------------------


def add_staples(
    items: Sequence[Item], staples: Sequence[Staple], *, now: datetime | None = None
) -> ListResult:
    """Add every staple whose name is not already on the list."""
    if not staples:
        return _unchanged(items, "Add staples first to use quick add.", Severity.INFO)

    existing = {normalize_text(item.text) for item in items}
    additions: list[Item] = []
    history: list[HistoryInput] = []
    for staple in staples:
        name = staple.name.strip()
        normalized = normalize_text(name)
        if not name or normalized in existing:
            continue
        category = staple.category or infer_category_from_name(name)
        new_item = build_item(
            name, staple.quantity, staple.unit, category, CategorySource.AUTO, now
        )
        additions.append(new_item)
        history.append(
            HistoryInput(
                name=new_item.text,
                quantity=new_item.quantity,
                unit=new_item.unit,
                category=category,
            )
        )
        existing.add(normalized)

    if not additions:
        return _unchanged(items, "Staples are already on your list.", Severity.INFO)

    plural = "" if len(additions) == 1 else "s"
    return ListResult(
        items=_insert_active(items, additions),
        feedback=Feedback(
            message=f"Added {len(additions)} staple{plural} to your list.",
            severity=Severity.SUCCESS,
        ),
        history_entries=tuple(history),
    )


def mark_all_complete(
    items: Sequence[Item], *, now: datetime | None = None
) -> ListResult:
    """Mark every item as picked up."""
    timestamp = now or utcnow()
    updated = [
        item
        if item.completed
        else item.model_copy(update={"completed": True, "updated_at": timestamp})
        for item in items
    ]
    return ListResult(
        items=order_by_completion(updated),
        feedback=Feedback(
            message="Marked everything as picked up.", severity=Severity.SUCCESS
        ),
    )


def clear_completed(items: Sequence[Item]) -> ListResult:
    """Drop every picked-up item."""
    return ListResult(
        items=tuple(item for item in items if not item.completed),
        feedback=Feedback(message="Cleared checked items.", severity=Severity.INFO),
    )


def delete_all(items: Sequence[Item]) -> ListResult:
    """Remove every item."""
    return ListResult(
        items=(),
        feedback=Feedback(message="Deleted all items.", severity=Severity.WARNING),
        changed=bool(items),
    )


# ---------------------------------------------------------------------------
# Name-based operations
# ---------------------------------------------------------------------------


def find_by_name(items: Sequence[Item], name: str) -> Item | None:
    """Return the first item whose normalized text equals ``name``."""
    wanted = normalize_text(name)
    for item in items:
        if normalize_text(item.text) == wanted:
            return item
    return None


def delete_by_name(items: Sequence[Item], name: str) -> ListResult:
    """Remove every item whose normalized text equals ``name``."""
    wanted = normalize_text(name)
    remaining = tuple(item for item in items if normalize_text(item.text) != wanted)
    removed = len(items) - len(remaining)
    if removed == 0:
        return _unchanged(items, ITEM_NOT_FOUND, Severity.ERROR)
    return ListResult(
        items=remaining,
        feedback=Feedback(
            message=f'Removed {removed} item(s) named "{name}".',
            severity=Severity.INFO,
        ),
    )


def complete_by_name(
    items: Sequence[Item], name: str, *, now: datetime | None = None
) -> ListResult:
    """Mark every item whose normalized text equals ``name`` as picked up."""
    wanted = normalize_text(name)
    matches = sum(1 for item in items if normalize_text(item.text) == wanted)
    if matches == 0:
        return _unchanged(items, ITEM_NOT_FOUND, Severity.ERROR)

    timestamp = now or utcnow()
    updated = [
        item.model_copy(update={"completed": True, "updated_at": timestamp})
        if normalize_text(item.text) == wanted
        else item
        for item in items
    ]
    return ListResult(
        items=order_by_completion(updated),
        feedback=Feedback(
            message=f'Picked up {matches} item(s) named "{name}".',
            severity=Severity.SUCCESS,
        ),
    )


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------


def filter_items(items: Sequence[Item], todo_filter: TodoFilter) -> tuple[Item, ...]:
    """Return the items visible under a filter."""
    todo_filter = TodoFilter(todo_filter)
    if todo_filter is TodoFilter.ACTIVE:
        return tuple(item for item in items if not item.completed)
    if todo_filter is TodoFilter.COMPLETED:
        return tuple(item for item in items if item.completed)
    return tuple(items)


def count_items(items: Sequence[Item]) -> ListCounts:
    """Tally active, completed and total items."""
    completed = sum(1 for item in items if item.completed)
    return ListCounts(
        active=len(items) - completed, completed=completed, total=len(items)
    )


def group_by_category(items: Sequence[Item]) -> dict[Category, list[Item]]:
    """Bucket items by resolved category in display order.

    Every category is present in the result, possibly with no items.
    """
    groups: dict[Category, list[Item]] = {category: [] for category in CATEGORY_ORDER}
    for item in items:
        groups[resolve_category(item)].append(item)
    return groups


def move_meta(items: Sequence[Item]) -> dict[str, tuple[int, int]]:
    """Map each item id to its (index, total) inside its local group."""
    meta: dict[str, tuple[int, int]] = {}
    for group in group_by_category(items).values():
        active = [item for item in group if not item.completed]
        completed = [item for item in group if item.completed]
        for part in (active, completed):
            for index, item in enumerate(part):
                meta[item.id] = (index, len(part))
    return meta


# ---------------------------------------------------------------------------
# List collection
# ---------------------------------------------------------------------------


def build_list(
    name: str, items: Sequence[Item] = (), *, now: datetime | None = None
) -> GroceryList:
    """Create a new grocery list."""
    timestamp = now or utcnow()
    return GroceryList(
        id=new_id(),
        name=name,
        items=tuple(items),
        created_at=timestamp,
        updated_at=timestamp,
        is_archived=False,
    )


def _open_lists(lists: Sequence[GroceryList]) -> list[GroceryList]:
    return [grocery_list for grocery_list in lists if not grocery_list.is_archived]


def _lists_unchanged(
    lists: Sequence[GroceryList], active_list_id: str, message: str
) -> ListsResult:
    return ListsResult(
        lists=tuple(lists),
        active_list_id=active_list_id,
        feedback=Feedback(message=message, severity=Severity.WARNING),
        changed=False,
    )


def _name_taken(
    lists: Sequence[GroceryList], name: str, exclude_id: str | None = None
) -> bool:
    wanted = normalize_text(name)
    return any(
        normalize_text(grocery_list.name) == wanted
        for grocery_list in lists
        if grocery_list.id != exclude_id
    )


def ensure_default_list(
    lists: Sequence[GroceryList], active_list_id: str
) -> ListsResult:
    """Guarantee an open list exists and the active id points at one.

    Creates ``My List`` when there is no open list and repairs a stale
    active id. ``changed`` is False when nothing needed fixing.
    """
    open_lists = _open_lists(lists)
    if not open_lists:
        new_list = build_list(DEFAULT_LIST_NAME)
        return ListsResult(lists=(*lists, new_list), active_list_id=new_list.id)

    if any(grocery_list.id == active_list_id for grocery_list in open_lists):
        return ListsResult(lists=tuple(lists), active_list_id=active_list_id, changed=False)

    return ListsResult(lists=tuple(lists), active_list_id=open_lists[0].id)


def create_list(
    lists: Sequence[GroceryList],
    active_list_id: str,
    name: str,
    *,
    now: datetime | None = None,
) -> ListsResult:
    """Create a list with a unique name and make it active."""
    trimmed = name.strip()
    if not trimmed:
        return _lists_unchanged(lists, active_list_id, "Give your list a name.")
    if _name_taken(lists, trimmed):
        return _lists_unchanged(lists, active_list_id, "That list name already exists.")

    new_list = build_list(trimmed, now=now)
    return ListsResult(
        lists=(new_list, *lists),
        active_list_id=new_list.id,
        feedback=Feedback(message=f"Created list: {trimmed}", severity=Severity.SUCCESS),
    )


def rename_list(
    lists: Sequence[GroceryList],
    active_list_id: str,
    list_id: str,
    name: str,
    *,
    now: datetime | None = None,
) -> ListsResult:
    """Rename a list, keeping names unique among lists."""
    if not any(grocery_list.id == list_id for grocery_list in lists):
        return _lists_unchanged(lists, active_list_id, "List not found.")

    trimmed = name.strip()
    if not trimmed:
        return _lists_unchanged(lists, active_list_id, "List name cannot be empty.")
    if _name_taken(lists, trimmed, exclude_id=list_id):
        return _lists_unchanged(lists, active_list_id, "That list name already exists.")

    timestamp = now or utcnow()
    renamed = tuple(
        grocery_list.model_copy(update={"name": trimmed, "updated_at": timestamp})
        if grocery_list.id == list_id
        else grocery_list
        for grocery_list in lists
    )
    return ListsResult(
        lists=renamed,
        active_list_id=active_list_id,
        feedback=Feedback(
            message=f"Renamed list to {trimmed}.", severity=Severity.SUCCESS
        ),
    )


def delete_list(
    lists: Sequence[GroceryList], active_list_id: str, list_id: str
) -> ListsResult:
    """Delete a list; the last open list can never be deleted."""
    target = next((gl for gl in lists if gl.id == list_id), None)
    if target is None:
        return _lists_unchanged(lists, active_list_id, "List not found.")

    open_lists = _open_lists(lists)
    if not target.is_archived and len(open_lists) <= 1:
        return _lists_unchanged(lists, active_list_id, "You need at least one list.")

    remaining = tuple(gl for gl in lists if gl.id != list_id)
    next_active = active_list_id
    if active_list_id == list_id:
        next_active = _open_lists(remaining)[0].id
    return ListsResult(
        lists=remaining,
        active_list_id=next_active,
        feedback=Feedback(message=f"Deleted list: {target.name}", severity=Severity.INFO),
    )


def switch_list(
    lists: Sequence[GroceryList], active_list_id: str, list_id: str
) -> ListsResult:
    """Make another open list active."""
    target = next((gl for gl in _open_lists(lists) if gl.id == list_id), None)
    if target is None:
        return _lists_unchanged(lists, active_list_id, "List not found.")
    return ListsResult(
        lists=tuple(lists),
        active_list_id=list_id,
        feedback=Feedback(message=f"Switched to {target.name}.", severity=Severity.INFO),
        changed=list_id != active_list_id,
    )
