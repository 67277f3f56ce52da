"""Versioned migrations for stored shopping lists.

Stored data for the lists key has gone through three shapes:

* version 1: a flat array of todo records with free-form text,
* version 2: the same array with quantity, unit and category split out,
* version 3: an array of named grocery lists, each holding its items.

Migrations work on plain JSON data (dicts and lists, camelCase keys) and
produce JSON data that the storage layer then validates into models. Each
step moves exactly one version forward; :func:`run_migrations` applies the
chain in order.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from voxshop.category_mapper import infer_category_from_name
from voxshop.list_engine import DEFAULT_LIST_NAME
from voxshop.models import Category, CategorySource, new_id, utcnow
from voxshop.quantity_parser import parse_quantity_from_text

logger = logging.getLogger(__name__)

LISTS_STORAGE_VERSION = 3

_VALID_CATEGORIES = {category.value for category in Category}

MigrationStep = Callable[[Any], Any]


class MigrationError(Exception):
    """Raised when stored data cannot be brought to the current version."""


def _is_number(value: object) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


def _id_or_new(value: object) -> str:
    return value if isinstance(value, str) and value else new_id()


def _timestamp_or(value: object, fallback: str) -> Any:
    if _is_number(value) or (isinstance(value, str) and value):
        return value
    return fallback


def migrate_todos(value: Any) -> list[dict[str, Any]]:
    """Normalize a raw array of todo records.

    Records without usable text are dropped. A quantity phrase left in
    the text is split out, unknown categories are re-inferred from the
    name, and missing ids and timestamps are filled in.

    Args:
        value: Raw decoded JSON, expected to be a list of dicts.

    Returns:
        Normalized item records with camelCase keys.
    """
    if not isinstance(value, list):
        return []

    now = utcnow().isoformat()
    items: list[dict[str, Any]] = []
    for todo in value:
        if not isinstance(todo, dict):
            continue
        raw_text = todo.get("text")
        text = raw_text.strip() if isinstance(raw_text, str) else ""
        if not text:
            continue

        parsed = parse_quantity_from_text(text)
        resolved_text = parsed.name if parsed.has_quantity and parsed.name else text

        category = todo.get("category")
        existing_category = (
            category
            if isinstance(category, str) and category in _VALID_CATEGORIES
            else None
        )
        manual = (
            todo.get("categorySource") == CategorySource.MANUAL
            and existing_category is not None
        )

        quantity = todo.get("quantity")
        if not _is_number(quantity):
            quantity = parsed.quantity if parsed.has_quantity else None
        unit = todo.get("unit")
        if not isinstance(unit, str):
            unit = parsed.unit if parsed.has_quantity else None

        record: dict[str, Any] = {
            "id": _id_or_new(todo.get("id")),
            "text": resolved_text,
            "category": (
                existing_category or infer_category_from_name(resolved_text).value
            ),
            "categorySource": (
                CategorySource.MANUAL.value if manual else CategorySource.AUTO.value
            ),
            "completed": bool(todo.get("completed")),
            "createdAt": _timestamp_or(todo.get("createdAt"), now),
            "updatedAt": _timestamp_or(todo.get("updatedAt"), now),
        }
        if quantity is not None:
            record["quantity"] = quantity
        if unit is not None:
            record["unit"] = unit
        items.append(record)
    return items


def _normalize_list(record: dict[str, Any], now: str) -> dict[str, Any]:
    """Normalize one stored grocery-list record."""
    name = record.get("name")
    cleaned = name.strip() if isinstance(name, str) else ""
    raw_items = record.get("items")
    return {
        "id": _id_or_new(record.get("id")),
        "name": cleaned or DEFAULT_LIST_NAME,
        "items": migrate_todos(raw_items if isinstance(raw_items, list) else []),
        "createdAt": _timestamp_or(record.get("createdAt"), now),
        "updatedAt": _timestamp_or(record.get("updatedAt"), now),
        "isArchived": bool(record.get("isArchived")),
    }


def _upgrade_1_to_2(value: Any) -> Any:
    """Split quantities and categories out of flat todo records."""
    return migrate_todos(value)


def _upgrade_2_to_3(value: Any) -> Any:
    """Wrap flat todos into a default list, or normalize list records."""
    if not isinstance(value, list) or not value:
        return []

    now = utcnow().isoformat()
    records = [entry for entry in value if isinstance(entry, dict)]
    lists = [entry for entry in records if "items" in entry]
    if lists and len(lists) == len(value):
        return [_normalize_list(entry, now) for entry in lists]

    todos = [entry for entry in records if "text" in entry]
    if todos:
        return [
            {
                "id": new_id(),
                "name": DEFAULT_LIST_NAME,
                "items": migrate_todos(todos),
                "createdAt": now,
                "updatedAt": now,
                "isArchived": False,
            }
        ]
    return []


LIST_MIGRATIONS: dict[int, MigrationStep] = {
    1: _upgrade_1_to_2,
    2: _upgrade_2_to_3,
}


def run_migrations(
    value: Any,
    from_version: int,
    to_version: int,
    steps: dict[int, MigrationStep],
) -> Any:
    """Apply single-version steps until ``to_version`` is reached.

    Args:
        value: Raw decoded JSON stored at ``from_version``.
        from_version: Stored version; 0 is treated as 1.
        to_version: Target version.
        steps: Map of version to the step that upgrades from it.

    Returns:
        JSON data at ``to_version``.

    Raises:
        MigrationError: If the stored version is newer than the target or
            a step is missing or fails.
    """
    version = max(from_version, 1)
    if version > to_version:
        raise MigrationError(
            f"Stored version {from_version} is newer than supported {to_version}"
        )

    while version < to_version:
        step = steps.get(version)
        if step is None:
            raise MigrationError(f"No migration from version {version}")
        logger.debug("Migrating stored data from version %d", version)
        try:
            value = step(value)
        except (KeyError, TypeError, ValueError, AttributeError) as err:
            raise MigrationError(
                f"Migration from version {version} failed: {err}"
            ) from err
        version += 1
    return value


def migrate_lists(value: Any, version: int) -> Any:
    """Bring stored lists data to :data:`LISTS_STORAGE_VERSION`.

    Args:
        value: Raw decoded JSON.
        version: Version the data was stored at.

    Returns:
        List records at the current version.

    Raises:
        MigrationError: If the data cannot be migrated.
    """
    migrated = run_migrations(value, version, LISTS_STORAGE_VERSION, LIST_MIGRATIONS)
    logger.info("Migrated stored lists from version %d", version)
    return migrated
