"""Routes classified voice commands to list operations.

The dispatcher is stateless per call: it receives a command, the raw
transcript and the current :class:`AppState`, and returns the next state
with a feedback message. It never raises; every failure path returns the
unchanged state plus a warning or error message.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from voxshop import list_engine
from voxshop.history import DEFAULT_HISTORY_LIMIT, record_item
from voxshop.models import (
    AddCommand,
    CategorySource,
    ClearCompletedCommand,
    CompleteCommand,
    CountCommand,
    DeleteCommand,
    EditCommand,
    Feedback,
    FilterCommand,
    HelpCommand,
    MoveCommand,
    Severity,
    TodoFilter,
    UnknownCommand,
    utcnow,
)
from voxshop.quantity_parser import parse_quantity_from_text
from voxshop.voice_command_parser import parse_voice_command

if TYPE_CHECKING:
    from datetime import datetime

    from voxshop.list_engine import ListResult
    from voxshop.models import AppState, VoiceCommand

logger = logging.getLogger(__name__)

HELP_MESSAGE = (
    "Try: add, add 2 gallons of milk, got, delete, edit, move, "
    "clear checked, show all/active/picked up."
)

_FILTER_LABELS: dict[TodoFilter, str] = {
    TodoFilter.ALL: "all",
    TodoFilter.ACTIVE: "needed",
    TodoFilter.COMPLETED: "picked up",
}


@dataclass(frozen=True)
class DispatchResult:
    """Next state and the message to show for one command."""

    state: AppState
    feedback: Feedback


def resolve_command_item_name(text: str) -> str:
    """Strip a quantity phrase from a spoken item reference.

    ``"2 gallons of milk"`` resolves to ``"milk"``; text without a
    quantity is returned unchanged.
    """
    parsed = parse_quantity_from_text(text)
    if parsed.has_quantity:
        return parsed.name or text
    return text


class CommandDispatcher:
    """Applies voice commands to application state.

    Args:
        history_limit: Maximum number of item-history entries kept.
    """

    def __init__(self, history_limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        """Initialize the dispatcher.

        Args:
            history_limit: Maximum number of item-history entries kept.
        """
        self._history_limit = history_limit

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def handle_transcript(
        self, transcript: str, state: AppState, *, now: datetime | None = None
    ) -> DispatchResult:
        """Parse a transcript and dispatch the resulting command.

        Args:
            transcript: Final recognized speech or typed command.
            state: Current application state.
            now: Timestamp for any mutation.

        Returns:
            Next state and feedback.
        """
        command = parse_voice_command(transcript)
        logger.debug("Parsed %r as %s", transcript, command.type)
        return self.dispatch(command, transcript, state, now=now)

    def dispatch(
        self,
        command: VoiceCommand,
        transcript: str,
        state: AppState,
        *,
        now: datetime | None = None,
    ) -> DispatchResult:
        """Apply one classified command.

        Args:
            command: The classified command.
            transcript: The transcript it came from, quoted back for
                unrecognized commands.
            state: Current application state.
            now: Timestamp for any mutation.

        Returns:
            Next state and feedback.
        """
        timestamp = now or utcnow()

        if isinstance(command, UnknownCommand):
            return self._reply(
                state, f'Command not recognized: "{transcript}"', Severity.WARNING
            )

        if isinstance(command, HelpCommand):
            return self._reply(state, HELP_MESSAGE, Severity.INFO)

        if isinstance(command, CountCommand):
            counts = list_engine.count_items(state.items)
            return self._reply(
                state,
                f"You have {counts.active} items left out of {counts.total}.",
                Severity.INFO,
            )

        if isinstance(command, FilterCommand):
            next_state = state.model_copy(update={"filter": command.filter})
            return self._reply(
                next_state,
                f"Showing {_FILTER_LABELS[command.filter]} items.",
                Severity.INFO,
            )

        if isinstance(command, ClearCompletedCommand):
            return self._apply(state, list_engine.clear_completed(state.items), timestamp)

        if isinstance(command, AddCommand):
            return self._apply(
                state,
                list_engine.add_from_text(state.items, command.text, now=timestamp),
                timestamp,
            )

        if isinstance(command, DeleteCommand):
            name = resolve_command_item_name(command.text)
            return self._apply(
                state, list_engine.delete_by_name(state.items, name), timestamp
            )

        if isinstance(command, CompleteCommand):
            name = resolve_command_item_name(command.text)
            return self._apply(
                state,
                list_engine.complete_by_name(state.items, name, now=timestamp),
                timestamp,
            )

        if isinstance(command, EditCommand):
            return self._edit(state, command, timestamp)

        if isinstance(command, MoveCommand):
            name = resolve_command_item_name(command.text)
            match = list_engine.find_by_name(state.items, name)
            if match is None:
                return self._reply(state, list_engine.ITEM_NOT_FOUND, Severity.ERROR)
            return self._apply(
                state,
                list_engine.move_item(state.items, match.id, command.direction),
                timestamp,
            )

        # Unreachable while VoiceCommand stays a closed union.
        return self._reply(  # pragma: no cover
            state, f'Command not recognized: "{transcript}"', Severity.WARNING
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _edit(
        self, state: AppState, command: EditCommand, timestamp: datetime
    ) -> DispatchResult:
        """Rename the first item matching the command target.

        A manually chosen category stays pinned; otherwise the category is
        inferred again from the new name.
        """
        match = list_engine.find_by_name(
            state.items, resolve_command_item_name(command.target)
        )
        if match is None:
            return self._reply(state, list_engine.ITEM_NOT_FOUND, Severity.ERROR)

        if match.category_source is CategorySource.MANUAL and match.category is not None:
            selection: list_engine.CategorySelection = match.category
        else:
            selection = "auto"

        result = list_engine.edit_item(
            state.items, match.id, command.text, selection, now=timestamp
        )
        if result.changed:
            renamed = next(item for item in result.items if item.id == match.id)
            result = list_engine.ListResult(
                items=result.items,
                feedback=Feedback(
                    message=f'Updated "{match.text}" to "{renamed.text}".',
                    severity=Severity.SUCCESS,
                ),
            )
        return self._apply(state, result, timestamp)

    def _apply(
        self, state: AppState, result: ListResult, timestamp: datetime
    ) -> DispatchResult:
        """Fold a list-engine result into the application state."""
        next_state = state
        if result.changed:
            next_state = state.with_active_items(result.items, timestamp)
        history = next_state.history
        for entry in result.history_entries:
            history = record_item(
                history, entry, max_items=self._history_limit, now=timestamp
            )
        if history is not next_state.history:
            next_state = next_state.model_copy(update={"history": history})

        feedback = result.feedback or Feedback(message="Done.", severity=Severity.INFO)
        return DispatchResult(state=next_state, feedback=feedback)

    @staticmethod
    def _reply(state: AppState, message: str, severity: Severity) -> DispatchResult:
        """Return the state with a plain feedback message."""
        return DispatchResult(
            state=state, feedback=Feedback(message=message, severity=severity)
        )
