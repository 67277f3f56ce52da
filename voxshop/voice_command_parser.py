"""Rule-based classification of spoken or typed commands.

Each transcript is matched against a fixed sequence of patterns and the
first match wins. The order matters because the patterns overlap:
``"clear completed"`` must be caught before the generic ``"delete X"``
rule, and ``"move X up"`` before ``"add"``-style catch-alls.
"""

from __future__ import annotations

import re

from voxshop.models import (
    AddCommand,
    ClearCompletedCommand,
    CompleteCommand,
    CountCommand,
    DeleteCommand,
    EditCommand,
    FilterCommand,
    HelpCommand,
    MoveCommand,
    MoveDirection,
    TodoFilter,
    UnknownCommand,
    VoiceCommand,
)

_HELP_RE = re.compile(r"^(help|what can i say|commands|voice commands)$", re.IGNORECASE)
_COUNT_RE = re.compile(
    r"^(how many|count|number of)\s+(items|list|tasks|todos)?$", re.IGNORECASE
)
_CLEAR_COMPLETED_RE = re.compile(
    r"^(clear|remove|delete)\s+(completed|done|checked|picked up|picked)"
    r"(\s+items|\s+tasks|\s+todos|\s+list)?$",
    re.IGNORECASE,
)
_FILTER_RE = re.compile(
    r"^(show|filter)\s+(all|active|completed|picked up|picked|checked|need|needed)$",
    re.IGNORECASE,
)
_MOVE_RE = re.compile(r"^move\s+(.*)\s+(up|down)$", re.IGNORECASE)
_EDIT_RE = re.compile(r"^(edit|update|change)\s+(.*?)\s+(to|into)\s+(.*)$", re.IGNORECASE)
_ADD_RE = re.compile(r"^(add|create|new)\s+(.*)$", re.IGNORECASE)
_DELETE_RE = re.compile(r"^(delete|remove|discard)\s+(.*)$", re.IGNORECASE)
_COMPLETE_RE = re.compile(
    r"^(complete|finish|mark|got|picked up|pick up)\s+(.*)$", re.IGNORECASE
)
_COMPLETE_SUFFIX_RE = re.compile(r"\s+(done|complete|picked up|picked)$", re.IGNORECASE)
_EDGE_PUNCTUATION_RE = re.compile(r"^[\s\"']+|[\s\"']+$")

_FILTER_SYNONYMS: dict[str, TodoFilter] = {
    "picked up": TodoFilter.COMPLETED,
    "picked": TodoFilter.COMPLETED,
    "checked": TodoFilter.COMPLETED,
    "need": TodoFilter.ACTIVE,
    "needed": TodoFilter.ACTIVE,
}


def trim_punctuation(text: str) -> str:
    """Strip surrounding quote characters and whitespace."""
    return _EDGE_PUNCTUATION_RE.sub("", text).strip()


def parse_voice_command(transcript: str) -> VoiceCommand:
    """Classify a transcript into a voice command.

    Matching is case-insensitive and captured text is lower-cased. The
    function is total: every input yields exactly one command, with
    :class:`UnknownCommand` carrying the original transcript when no
    rule applies.

    Args:
        transcript: Raw recognized speech or typed text.

    Returns:
        The classified command.
    """
    raw = transcript.strip()
    if not raw:
        return UnknownCommand(raw=transcript)

    normalized = raw.lower()

    if _HELP_RE.match(normalized):
        return HelpCommand()

    if _COUNT_RE.match(normalized):
        return CountCommand()

    if _CLEAR_COMPLETED_RE.match(normalized):
        return ClearCompletedCommand()

    filter_match = _FILTER_RE.match(normalized)
    if filter_match:
        requested = filter_match.group(2)
        return FilterCommand(
            filter=_FILTER_SYNONYMS.get(requested, TodoFilter(requested))
        )

    move_match = _MOVE_RE.match(normalized)
    if move_match:
        return MoveCommand(
            text=trim_punctuation(move_match.group(1)),
            direction=MoveDirection(move_match.group(2)),
        )

    edit_match = _EDIT_RE.match(normalized)
    if edit_match:
        return EditCommand(
            target=trim_punctuation(edit_match.group(2)),
            text=trim_punctuation(edit_match.group(4)),
        )

    add_match = _ADD_RE.match(normalized)
    if add_match:
        return AddCommand(text=trim_punctuation(add_match.group(2)))

    delete_match = _DELETE_RE.match(normalized)
    if delete_match:
        return DeleteCommand(text=trim_punctuation(delete_match.group(2)))

    complete_match = _COMPLETE_RE.match(normalized)
    if complete_match:
        item_text = _COMPLETE_SUFFIX_RE.sub("", complete_match.group(2))
        return CompleteCommand(text=trim_punctuation(item_text))

    return UnknownCommand(raw=transcript)
