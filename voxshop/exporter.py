"""Export a shopping list as plain text, a markdown checklist or JSON."""

from __future__ import annotations

import json
from enum import StrEnum
from typing import TYPE_CHECKING

from voxshop.quantity_parser import build_item_label

if TYPE_CHECKING:
    from collections.abc import Sequence

    from voxshop.models import Item


class ExportFormat(StrEnum):
    """Supported export formats."""

    PLAIN = "plain"
    MARKDOWN = "markdown"
    JSON = "json"


def export_list(
    items: Sequence[Item],
    fmt: ExportFormat | str = ExportFormat.PLAIN,
    include_checked: bool = True,
) -> str:
    """Render items for sharing.

    Args:
        items: Items in list order.
        fmt: ``plain`` (one label per line), ``markdown`` (``- [x] label``
            checklist) or ``json`` (pretty-printed array of item records).
        include_checked: Whether picked-up items are included.

    Returns:
        The rendered text; empty when no items remain after filtering.

    Raises:
        ValueError: If ``fmt`` is not a supported format.
    """
    fmt = ExportFormat(fmt)
    selected = [item for item in items if include_checked or not item.completed]

    if fmt is ExportFormat.MARKDOWN:
        return "\n".join(
            f"- [{'x' if item.completed else ' '}] "
            f"{build_item_label(item.text, item.quantity, item.unit)}"
            for item in selected
        )

    if fmt is ExportFormat.JSON:
        return json.dumps([item.to_json_data() for item in selected], indent=2)

    return "\n".join(
        build_item_label(item.text, item.quantity, item.unit) for item in selected
    )
