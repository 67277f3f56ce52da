"""Speech capability boundary: recognition input and synthesis output.

Recognition and synthesis engines live outside this package. They are
reached only through the two small protocols below, so a session can run
with a real engine, a test double, or no engine at all.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Protocol

logger = logging.getLogger(__name__)

DEFAULT_VOICE_NAME = "Samantha"

UNSUPPORTED_MESSAGE = "Speech recognition is not supported in this browser."

RECOGNITION_ERROR_MESSAGES: dict[str, str] = {
    "no-speech": "No speech detected. Try again.",
    "not-allowed": "Microphone access was denied. Check permissions.",
    "service-not-allowed": "Microphone access was blocked. Check permissions.",
    "audio-capture": "No microphone detected. Connect one and retry.",
    "network": "Network error while using speech recognition.",
    "aborted": "Voice recognition stopped.",
}

UNKNOWN_RECOGNITION_ERROR = "Voice recognition error occurred."

TranscriptCallback = Callable[[str], None]
ErrorCallback = Callable[[str], None]
StopCallback = Callable[[], None]


@dataclass(frozen=True)
class Voice:
    """A synthesis voice offered by the speech engine."""

    name: str
    voice_uri: str
    lang: str


class SpeechRecognizer(Protocol):
    """Produces transcripts from the microphone."""

    def start(
        self,
        on_interim: TranscriptCallback,
        on_final: TranscriptCallback,
        on_error: ErrorCallback,
    ) -> StopCallback:
        """Begin listening and return a callable that stops it."""
        ...


class SpeechSynthesizer(Protocol):
    """Speaks text aloud."""

    def voices(self) -> Sequence[Voice]:
        """Return the voices currently available."""
        ...

    def speak(self, text: str, voice_hint: Voice | None, lang: str) -> bool:
        """Speak ``text``, replacing any utterance in progress."""
        ...


def describe_recognition_error(code: str) -> str:
    """Map a recognition error code to a user-facing message."""
    return RECOGNITION_ERROR_MESSAGES.get(code, UNKNOWN_RECOGNITION_ERROR)


def resolve_voice(voices: Sequence[Voice], preference: str = "auto") -> Voice | None:
    """Pick the voice to speak with.

    An explicit preference matches a voice by URI or name. Otherwise, or
    when nothing matches, the default voice is used: Samantha when
    available, then the first English voice, then the first voice.

    Args:
        voices: Available voices.
        preference: ``"auto"`` or a voice URI or name.

    Returns:
        The chosen voice, or None when no voices exist.
    """
    if not voices:
        return None

    if preference and preference != "auto":
        for voice in voices:
            if preference in (voice.voice_uri, voice.name):
                return voice

    for voice in voices:
        if voice.name.lower() == DEFAULT_VOICE_NAME.lower():
            return voice
    for voice in voices:
        if voice.lang.lower().startswith("en"):
            return voice
    return voices[0]


def speak_text(
    synthesizer: SpeechSynthesizer | None,
    text: str,
    preference: str = "auto",
    lang: str = "en-US",
) -> bool:
    """Speak text through the synthesizer, if there is one.

    Args:
        synthesizer: Speech output engine, or None when unavailable.
        text: Text to speak.
        preference: Voice preference passed to :func:`resolve_voice`.
        lang: Language used when no voice can be resolved.

    Returns:
        True if the text was handed to the engine.
    """
    if synthesizer is None:
        return False
    voice = resolve_voice(synthesizer.voices(), preference)
    return synthesizer.speak(text, voice, voice.lang if voice else lang)


class RecognitionSession:
    """Owns the single active recognition session.

    Starting a new session stops any session already running.

    Args:
        recognizer: Speech input engine, or None when unavailable.
    """

    def __init__(self, recognizer: SpeechRecognizer | None) -> None:
        """Initialize the session holder."""
        self._recognizer = recognizer
        self._stop: StopCallback | None = None

    @property
    def supported(self) -> bool:
        """Return whether a recognizer is available."""
        return self._recognizer is not None

    @property
    def is_listening(self) -> bool:
        """Return whether a session is active."""
        return self._stop is not None

    def start(
        self,
        on_interim: TranscriptCallback,
        on_final: TranscriptCallback,
        on_error: Callable[[str], None],
    ) -> bool:
        """Start listening.

        Args:
            on_interim: Receives partial transcripts.
            on_final: Receives the trimmed final transcript.
            on_error: Receives the user-facing message for an error code.

        Returns:
            False when no recognizer is available.
        """
        if self._recognizer is None:
            return False
        self.stop()

        def handle_final(transcript: str) -> None:
            cleaned = transcript.strip()
            if cleaned:
                on_final(cleaned)

        def handle_error(code: str) -> None:
            logger.warning("Speech recognition error: %s", code)
            self._stop = None
            on_error(describe_recognition_error(code))

        self._stop = self._recognizer.start(on_interim, handle_final, handle_error)
        return True

    def stop(self) -> None:
        """Stop the active session, if any."""
        stop, self._stop = self._stop, None
        if stop is not None:
            stop()
