"""ShoppingSession: the single owner of VoxShop state.

A session loads persisted state, applies every user action through the
list engine or the command dispatcher, pushes the resulting feedback to
subscribers (and speaks it when text-to-speech is on) and schedules the
changed fields for persistence. Presentation layers such as the CLI and
the Flask API read :attr:`ShoppingSession.state` and call the action
methods; they never mutate state directly.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from voxshop import list_engine, staples
from voxshop.config import Config
from voxshop.dispatcher import CommandDispatcher
from voxshop.exporter import ExportFormat, export_list
from voxshop.history import quick_add_sections, record_item
from voxshop.models import (
    AppState,
    Feedback,
    Severity,
    TodoFilter,
    utcnow,
)
from voxshop.speech import UNSUPPORTED_MESSAGE, RecognitionSession, speak_text
from voxshop.storage import StateStore
from voxshop.suggestion_matcher import (
    build_candidates,
    did_you_mean,
    suggest_for_input,
)

if TYPE_CHECKING:
    from datetime import datetime
    from types import TracebackType

    from voxshop.list_engine import CategorySelection, ListResult, ListsResult
    from voxshop.models import (
        HistoryEntry,
        Item,
        StorageError,
        SuggestionCandidate,
        SuggestionMatch,
    )
    from voxshop.speech import SpeechRecognizer, SpeechSynthesizer
    from voxshop.staples import StaplesResult
    from voxshop.storage import KeyValueStore

logger = logging.getLogger(__name__)

FeedbackListener = Callable[[Feedback], None]

STORAGE_FEEDBACK_TITLE = "Storage"


class ShoppingSession:
    """Stateful facade over the shopping-list operations.

    Args:
        store: Key-value store holding persisted state.
        config: Application configuration; defaults apply when None.
        synthesizer: Optional speech output engine.
        recognizer: Optional speech input engine.
    """

    def __init__(
        self,
        store: KeyValueStore,
        config: Config | None = None,
        *,
        synthesizer: SpeechSynthesizer | None = None,
        recognizer: SpeechRecognizer | None = None,
    ) -> None:
        """Load persisted state and make sure an open list exists."""
        self._config = config or Config()
        self._listeners: list[FeedbackListener] = []
        self._synthesizer = synthesizer
        self._recognition = RecognitionSession(recognizer)
        self._dispatcher = CommandDispatcher(self._config.history_limit)
        self.last_feedback: Feedback | None = None
        self.storage_error: StorageError | None = None
        self.interim_transcript = ""
        self.final_transcript = ""
        self._state = AppState()

        self._state_store = StateStore(
            store,
            debounce_ms=self._config.persist_debounce_ms,
            on_error=self._on_storage_error,
        )
        loaded = self._state_store.load()
        self._state = loaded
        self._commit(self._with_default_list(loaded))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def __enter__(self) -> ShoppingSession:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def flush(self) -> None:
        """Write pending state changes now."""
        self._state_store.flush()

    def close(self) -> None:
        """Stop listening and flush every pending write."""
        self._recognition.stop()
        self._state_store.close()

    # ------------------------------------------------------------------
    # State access
    # ------------------------------------------------------------------

    @property
    def state(self) -> AppState:
        """Return the current immutable state snapshot."""
        return self._state

    @property
    def items(self) -> tuple[Item, ...]:
        """Return the items of the active list."""
        return self._state.items

    @property
    def visible_items(self) -> tuple[Item, ...]:
        """Return the active list's items under the current filter."""
        return list_engine.filter_items(self._state.items, self._state.filter)

    @property
    def counts(self) -> list_engine.ListCounts:
        """Return item tallies for the active list."""
        return list_engine.count_items(self._state.items)

    @property
    def is_listening(self) -> bool:
        """Return whether a recognition session is active."""
        return self._recognition.is_listening

    def grouped_items(self) -> dict[str, list[Item]]:
        """Return the visible items grouped by category, skipping empty groups."""
        return {
            category.value: group
            for category, group in list_engine.group_by_category(
                self.visible_items
            ).items()
            if group
        }

    def quick_add(self) -> dict[str, tuple[HistoryEntry, ...]]:
        """Return the recent and frequent quick-add shortcuts."""
        return quick_add_sections(self._state.history)

    # ------------------------------------------------------------------
    # Feedback
    # ------------------------------------------------------------------

    def subscribe(self, listener: FeedbackListener) -> Callable[[], None]:
        """Register a feedback listener.

        Args:
            listener: Called with every feedback message.

        Returns:
            A callable that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _push(self, feedback: Feedback | None) -> Feedback | None:
        """Publish feedback to listeners and speak it when enabled."""
        if feedback is None:
            return None
        self.last_feedback = feedback
        for listener in list(self._listeners):
            listener(feedback)
        if self._state.tts_enabled:
            speak_text(
                self._synthesizer,
                feedback.message,
                self._state.voice_preference,
                self._config.speech_lang,
            )
        return feedback

    def _on_storage_error(self, error: StorageError) -> None:
        self.storage_error = error
        self._push(
            Feedback(
                message=error.message,
                severity=Severity.WARNING,
                title=STORAGE_FEEDBACK_TITLE,
            )
        )

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------

    def _commit(self, next_state: AppState) -> None:
        previous, self._state = self._state, next_state
        if previous is not next_state:
            self._state_store.save(previous, next_state)

    @staticmethod
    def _with_default_list(state: AppState) -> AppState:
        result = list_engine.ensure_default_list(state.lists, state.active_list_id)
        if not result.changed:
            return state
        return state.model_copy(
            update={"lists": result.lists, "active_list_id": result.active_list_id}
        )

    def _apply_items(
        self, result: ListResult, now: datetime | None = None
    ) -> Feedback | None:
        """Fold an item operation into the state and publish its feedback."""
        timestamp = now or utcnow()
        state = self._state
        if result.changed:
            state = state.with_active_items(result.items, timestamp)
        if result.history_entries:
            history = state.history
            for entry in result.history_entries:
                history = record_item(
                    history,
                    entry,
                    max_items=self._config.history_limit,
                    now=timestamp,
                )
            state = state.model_copy(update={"history": history})
        self._commit(state)
        return self._push(result.feedback)

    def _apply_lists(self, result: ListsResult) -> Feedback | None:
        if result.changed:
            self._commit(
                self._state.model_copy(
                    update={
                        "lists": result.lists,
                        "active_list_id": result.active_list_id,
                    }
                )
            )
        return self._push(result.feedback)

    def _apply_staples(self, result: StaplesResult) -> Feedback | None:
        if result.changed:
            self._commit(self._state.model_copy(update={"staples": result.staples}))
        return self._push(result.feedback)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def handle_transcript(self, transcript: str) -> Feedback:
        """Classify a spoken or typed command and apply it.

        Args:
            transcript: Final transcript or typed command text.

        Returns:
            The feedback for the command.
        """
        result = self._dispatcher.handle_transcript(transcript, self._state)
        self._commit(result.state)
        self._push(result.feedback)
        return result.feedback

    def start_listening(self) -> bool:
        """Start a recognition session whose final transcripts become commands.

        Returns:
            False when speech recognition is unavailable.
        """
        def on_interim(text: str) -> None:
            self.interim_transcript = text.strip()

        def on_final(text: str) -> None:
            self.final_transcript = text
            self.interim_transcript = ""
            self.handle_transcript(text)

        def on_error(message: str) -> None:
            self._push(Feedback(message=message, severity=Severity.ERROR))

        self.interim_transcript = ""
        self.final_transcript = ""
        if not self._recognition.start(on_interim, on_final, on_error):
            self._push(Feedback(message=UNSUPPORTED_MESSAGE, severity=Severity.WARNING))
            return False
        return True

    def stop_listening(self) -> None:
        """Stop the active recognition session."""
        self._recognition.stop()
        self.interim_transcript = ""

    # ------------------------------------------------------------------
    # Item actions
    # ------------------------------------------------------------------

    def add_text(self, text: str) -> Feedback | None:
        """Add an item from free text such as ``"2 gallons of milk"``."""
        now = utcnow()
        return self._apply_items(
            list_engine.add_from_text(self._state.items, text, now=now), now
        )

    def toggle_item(self, item_id: str) -> Feedback | None:
        """Flip an item between needed and picked up."""
        return self._apply_items(list_engine.toggle_item(self._state.items, item_id))

    def edit_item(
        self,
        item_id: str,
        text: str,
        category: CategorySelection = "auto",
    ) -> Feedback | None:
        """Rename an item and optionally pin its category."""
        return self._apply_items(
            list_engine.edit_item(self._state.items, item_id, text, category)
        )

    def delete_item(self, item_id: str) -> Feedback | None:
        """Remove one item."""
        return self._apply_items(list_engine.delete_item(self._state.items, item_id))

    def move_item(self, item_id: str, direction: str) -> Feedback | None:
        """Move an item up or down within its local group."""
        return self._apply_items(
            list_engine.move_item(self._state.items, item_id, direction)
        )

    def add_all_staples(self) -> Feedback | None:
        """Add every staple not already on the active list."""
        return self._apply_items(
            list_engine.add_staples(self._state.items, self._state.staples)
        )

    def mark_all_complete(self) -> Feedback | None:
        """Mark every item on the active list as picked up."""
        return self._apply_items(list_engine.mark_all_complete(self._state.items))

    def clear_completed(self) -> Feedback | None:
        """Remove every picked-up item from the active list."""
        return self._apply_items(list_engine.clear_completed(self._state.items))

    def delete_all(self) -> Feedback | None:
        """Remove every item from the active list."""
        return self._apply_items(list_engine.delete_all(self._state.items))

    # ------------------------------------------------------------------
    # List actions
    # ------------------------------------------------------------------

    def create_list(self, name: str) -> Feedback | None:
        """Create a list and make it active."""
        return self._apply_lists(
            list_engine.create_list(self._state.lists, self._state.active_list_id, name)
        )

    def rename_list(self, list_id: str, name: str) -> Feedback | None:
        """Rename a list."""
        return self._apply_lists(
            list_engine.rename_list(
                self._state.lists, self._state.active_list_id, list_id, name
            )
        )

    def delete_list(self, list_id: str) -> Feedback | None:
        """Delete a list, keeping at least one."""
        return self._apply_lists(
            list_engine.delete_list(
                self._state.lists, self._state.active_list_id, list_id
            )
        )

    def switch_list(self, list_id: str) -> Feedback | None:
        """Make another list active."""
        return self._apply_lists(
            list_engine.switch_list(
                self._state.lists, self._state.active_list_id, list_id
            )
        )

    # ------------------------------------------------------------------
    # Staples
    # ------------------------------------------------------------------

    def save_staple(self, text: str) -> Feedback | None:
        """Save a staple from free text."""
        return self._apply_staples(staples.save_staple(self._state.staples, text))

    def remove_staple(self, staple_id: str) -> Feedback | None:
        """Remove a staple."""
        return self._apply_staples(staples.remove_staple(self._state.staples, staple_id))

    # ------------------------------------------------------------------
    # Preferences
    # ------------------------------------------------------------------

    def set_filter(self, todo_filter: TodoFilter | str) -> None:
        """Change which items the list view shows."""
        self._commit(self._state.model_copy(update={"filter": TodoFilter(todo_filter)}))

    def set_tts_enabled(self, enabled: bool) -> None:
        """Turn spoken feedback on or off."""
        self._commit(self._state.model_copy(update={"tts_enabled": enabled}))

    def set_voice_preference(self, preference: str) -> None:
        """Choose the synthesis voice by URI or name, or ``"auto"``."""
        self._commit(
            self._state.model_copy(update={"voice_preference": preference or "auto"})
        )

    # ------------------------------------------------------------------
    # Suggestions and export
    # ------------------------------------------------------------------

    def suggestions(self, query: str) -> list[SuggestionMatch]:
        """Return autocomplete matches for partial input."""
        return suggest_for_input(query, self._candidates())

    def did_you_mean(self, query: str) -> SuggestionMatch | None:
        """Return a likely correction for misspelled input."""
        return did_you_mean(query, self._candidates())

    def _candidates(self) -> list[SuggestionCandidate]:
        return build_candidates(
            self._state.items, self._state.history, self._state.staples
        )

    def export(
        self, fmt: ExportFormat | str = ExportFormat.PLAIN, include_checked: bool = True
    ) -> str:
        """Render the active list for sharing."""
        return export_list(self._state.items, fmt, include_checked)

    def clear_all_data(self) -> Feedback | None:
        """Delete every persisted value and start over with an empty list."""
        self._state_store.clear()
        fresh = self._with_default_list(AppState())
        self._state = fresh
        self._state_store.save(None, fresh)
        logger.info("Cleared all local data")
        return self._push(Feedback(message="Local data cleared.", severity=Severity.INFO))
