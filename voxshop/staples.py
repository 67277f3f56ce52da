"""Staples: saved item templates that can be re-added to any list."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from voxshop.category_mapper import infer_category_from_name
from voxshop.models import Feedback, Severity, Staple, new_id, normalize_text
from voxshop.quantity_parser import build_item_label, parse_quantity_from_text

if TYPE_CHECKING:
    from collections.abc import Sequence


@dataclass(frozen=True)
class StaplesResult:
    """Outcome of a staple operation."""

    staples: tuple[Staple, ...]
    feedback: Feedback | None = None
    changed: bool = True


def save_staple(staples: Sequence[Staple], text: str) -> StaplesResult:
    """Save a staple from free text, updating one with the same name.

    Args:
        staples: Current staples.
        text: Staple text, optionally with a quantity, e.g. ``"2 lbs rice"``.

    Returns:
        Result with the saved staple.
    """
    trimmed = text.strip()
    if not trimmed:
        return StaplesResult(
            staples=tuple(staples),
            feedback=Feedback(
                message="Add a staple before submitting.", severity=Severity.WARNING
            ),
            changed=False,
        )

    parsed = parse_quantity_from_text(trimmed)
    name = (parsed.name if parsed.has_quantity else trimmed).strip()
    if not name:
        return StaplesResult(
            staples=tuple(staples),
            feedback=Feedback(
                message="Add a staple name with your quantity.",
                severity=Severity.WARNING,
            ),
            changed=False,
        )

    quantity = parsed.quantity if parsed.has_quantity else None
    unit = parsed.unit if parsed.has_quantity else None
    category = infer_category_from_name(name)
    normalized = normalize_text(name)

    updated: list[Staple] = []
    found = False
    for staple in staples:
        if not found and normalize_text(staple.name) == normalized:
            found = True
            updated.append(
                staple.model_copy(
                    update={
                        "name": name,
                        "quantity": quantity if parsed.has_quantity else staple.quantity,
                        "unit": unit if parsed.has_quantity else staple.unit,
                        "category": category,
                    }
                )
            )
        else:
            updated.append(staple)
    if not found:
        updated.append(
            Staple(id=new_id(), name=name, quantity=quantity, unit=unit, category=category)
        )

    return StaplesResult(
        staples=tuple(updated),
        feedback=Feedback(
            message=f"Saved staple: {build_item_label(name, quantity, unit)}",
            severity=Severity.SUCCESS,
        ),
    )


def remove_staple(staples: Sequence[Staple], staple_id: str) -> StaplesResult:
    """Remove a staple by id."""
    remaining = tuple(staple for staple in staples if staple.id != staple_id)
    if len(remaining) == len(staples):
        return StaplesResult(
            staples=tuple(staples),
            feedback=Feedback(message="Staple not found.", severity=Severity.ERROR),
            changed=False,
        )
    return StaplesResult(
        staples=remaining,
        feedback=Feedback(message="Removed staple.", severity=Severity.INFO),
    )
