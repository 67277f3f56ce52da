"""Quantity and unit extraction from free item text.

Turns phrases like ``"2 gallons of milk"`` or ``"3 eggs"`` into a name,
a numeric quantity and a normalized unit. Unit words form a closed set;
an unrecognized word after a number is treated as part of the name.
"""

from __future__ import annotations

import math
import re

from voxshop.models import QuantityParseResult

COUNT_UNIT = "count"

_UNIT_ALIASES: dict[str, str] = {
    "lb": "lbs",
    "lbs": "lbs",
    "pound": "lbs",
    "pounds": "lbs",
    "oz": "oz",
    "ounce": "oz",
    "ounces": "oz",
    "gal": "gallons",
    "gallon": "gallons",
    "gallons": "gallons",
    "count": "count",
    "ct": "count",
    "cts": "count",
    "dozen": "dozen",
    "doz": "dozen",
    "bunch": "bunch",
    "bunches": "bunch",
    "bag": "bag",
    "bags": "bag",
    "box": "box",
    "boxes": "box",
}

_WITH_UNIT_RE = re.compile(
    r"^([0-9]*\.?[0-9]+)\s*([a-zA-Z]+)\s*(?:of\s+)?(.+)?$", re.IGNORECASE
)
_WITH_COUNT_RE = re.compile(r"^([0-9]*\.?[0-9]+)\s+(?:of\s+)?(.+)$", re.IGNORECASE)
_LEADING_FILLER_RE = re.compile(r"^(of|a|an)\s+", re.IGNORECASE)


def normalize_unit(unit: str | None) -> str | None:
    """Map a unit word to its canonical spelling.

    Args:
        unit: Raw unit word (any case), or None.

    Returns:
        Canonical unit string, or None if the word is not a known unit.
    """
    if not unit:
        return None
    return _UNIT_ALIASES.get(unit.lower())


def _clean_name(value: str) -> str:
    """Strip a single leading ``of``/``a``/``an`` token."""
    return _LEADING_FILLER_RE.sub("", value, count=1).strip()


def parse_quantity_from_text(text: str) -> QuantityParseResult:
    """Extract quantity, unit and name from item text.

    Tries ``<number><unit> [of] <name>`` first, then
    ``<number> [of] <name>`` (unit ``count``), and otherwise returns the
    text unchanged with no quantity.

    Args:
        text: Raw item text, e.g. ``"2 lbs of apples"``.

    Returns:
        Parse result; ``has_quantity`` tells whether a number was found.
    """
    raw = text.strip()
    if not raw:
        return QuantityParseResult(name="", has_quantity=False)

    with_unit = _WITH_UNIT_RE.match(raw)
    if with_unit and math.isfinite(float(with_unit.group(1))):
        unit = normalize_unit(with_unit.group(2))
        if unit is not None:
            return QuantityParseResult(
                name=_clean_name(with_unit.group(3) or ""),
                quantity=float(with_unit.group(1)),
                unit=unit,
                has_quantity=True,
            )

    with_count = _WITH_COUNT_RE.match(raw)
    if with_count and math.isfinite(float(with_count.group(1))):
        return QuantityParseResult(
            name=_clean_name(with_count.group(2)),
            quantity=float(with_count.group(1)),
            unit=COUNT_UNIT,
            has_quantity=True,
        )

    return QuantityParseResult(name=raw, has_quantity=False)


def _format_number(value: float) -> str:
    """Render whole numbers without a trailing ``.0``."""
    if not math.isfinite(value):
        return f"{value:g}"
    if value == int(value):
        return str(int(value))
    return f"{value:g}"


def format_quantity(quantity: float | None, unit: str | None = None) -> str:
    """Render a quantity and unit for display.

    Args:
        quantity: Numeric quantity, or None.
        unit: Unit string, or None.

    Returns:
        ``""`` without a quantity, the bare number for counts or unknown
        units, else ``"<quantity> <unit>"``.
    """
    if quantity is None:
        return ""
    normalized = normalize_unit(unit)
    if normalized is None or normalized == COUNT_UNIT:
        return _format_number(quantity)
    return f"{_format_number(quantity)} {normalized}"


def build_item_label(
    name: str, quantity: float | None = None, unit: str | None = None
) -> str:
    """Prefix a name with its formatted quantity, e.g. ``"2 gallons milk"``."""
    quantity_label = format_quantity(quantity, unit)
    return f"{quantity_label} {name}" if quantity_label else name
