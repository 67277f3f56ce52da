"""Item history: a capped recency/frequency ledger of added items."""

from __future__ import annotations

from typing import TYPE_CHECKING

from voxshop.models import HistoryEntry, normalize_text, utcnow

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime

    from voxshop.models import HistoryInput

DEFAULT_HISTORY_LIMIT = 20


def record_item(
    history: Sequence[HistoryEntry],
    item: HistoryInput,
    *,
    max_items: int = DEFAULT_HISTORY_LIMIT,
    now: datetime | None = None,
) -> tuple[HistoryEntry, ...]:
    """Record one added item.

    An existing entry with the same normalized name is bumped: its count
    increases, its timestamp refreshes and missing details are filled in
    from the new input. The ledger keeps only the ``max_items`` most
    recently touched entries.

    Args:
        history: Current history entries.
        item: The item that was added.
        max_items: Maximum number of entries kept.
        now: Timestamp of the addition.

    Returns:
        New history, most recent first.
    """
    name = item.name.strip()
    if not name:
        return tuple(history)

    timestamp = now or utcnow()
    normalized = normalize_text(name)
    entries = list(history)
    for index, existing in enumerate(entries):
        if normalize_text(existing.name) == normalized:
            entries[index] = existing.model_copy(
                update={
                    "name": name,
                    "quantity": item.quantity
                    if item.quantity is not None
                    else existing.quantity,
                    "unit": item.unit if item.unit is not None else existing.unit,
                    "category": item.category
                    if item.category is not None
                    else existing.category,
                    "last_added_at": timestamp,
                    "count": existing.count + 1,
                }
            )
            break
    else:
        entries.append(
            HistoryEntry(
                name=name,
                quantity=item.quantity,
                unit=item.unit,
                category=item.category,
                last_added_at=timestamp,
                count=1,
            )
        )

    return recent_items(entries)[:max_items]


def recent_items(history: Sequence[HistoryEntry]) -> tuple[HistoryEntry, ...]:
    """Entries ordered by most recent addition."""
    return tuple(sorted(history, key=lambda entry: entry.last_added_at, reverse=True))


def frequent_items(history: Sequence[HistoryEntry]) -> tuple[HistoryEntry, ...]:
    """Entries ordered by add count, then recency."""
    return tuple(
        sorted(
            history,
            key=lambda entry: (entry.count, entry.last_added_at),
            reverse=True,
        )
    )


def quick_add_sections(
    history: Sequence[HistoryEntry], limit: int = 8
) -> dict[str, tuple[HistoryEntry, ...]]:
    """Build the quick-add shortcuts offered above the input box.

    ``Recent`` holds the latest additions; ``Frequent`` holds entries added
    more than once, most common first.
    """
    frequent = tuple(entry for entry in frequent_items(history) if entry.count > 1)
    return {
        "Recent": recent_items(history)[:limit],
        "Frequent": frequent[:limit],
    }
