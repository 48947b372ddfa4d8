# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Boundary between a speech recognition source and the alignment tracker.

Recognition sources deliver partial and final results. Only final words
are aligned; bursts of final results arriving close together are coalesced
into one batch by a fixed-delay timer before they reach the tracker.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass

from .script_parser import normalize_word

logger = logging.getLogger(__name__)


@dataclass
class RecognitionResult:
    """Represents a recognition result from any speech source."""

    text: str
    is_partial: bool
    confidence: float = 1.0

    def __repr__(self) -> str:
        status: str = "partial" if self.is_partial else "final"
        return f"RecognitionResult({status}: '{self.text}')"


def extract_new_words(transcription: str, previous: str) -> list[str]:
    """
    Extract only the NEW words from a cumulative final transcription.

    For sources that repeat the whole utterance in each final result. When
    the transcription extends the previous one, only the extension is new;
    otherwise it is a new utterance.
    """
    current_words: list[str] = [
        w for w in transcription.split() if w.strip()]
    last_words: list[str] = [
        w for w in previous.split() if w.strip()]

    if not last_words:
        return current_words

    # Check if current starts with previous (common case)
    match_len: int = 0
    for i, (cur, last) in enumerate(zip(current_words, last_words, strict=False)):
        if normalize_word(cur) == normalize_word(last):
            match_len = i + 1
        else:
            break

    # Only a full-prefix match means the previous result was extended
    if match_len == len(last_words):
        return current_words[match_len:]

    return current_words


class FinalWordBatcher:
    """
    Coalesces final recognition results into word batches.

    Each new final result restarts a fixed debounce timer; when it fires,
    every word collected since the last batch is handed to the sink at once.
    Must be used from inside a running event loop.

    Usage:
        batcher = FinalWordBatcher(tracker.enqueue, debounce_ms=100)
        batcher.on_result(RecognitionResult("welcome to", is_partial=False))
    """

    def __init__(
        self,
        sink: Callable[[list[str]], object],
        debounce_ms: int = 100,
        cumulative: bool = False
    ) -> None:
        """
        Initialize the batcher.

        Args:
            sink: Called with each batch of words
            debounce_ms: Quiet period before a batch is handed over
            cumulative: The source repeats earlier words of the utterance in
                each final result, so only extensions are new. When False,
                every final result is new speech.
        """
        self.sink = sink
        self.debounce_ms = debounce_ms
        self.cumulative = cumulative
        self.last_transcription: str = ""
        self.pending: list[str] = []
        self._timer: asyncio.TimerHandle | None = None

    def on_result(self, result: RecognitionResult) -> None:
        """Accept a result from the recognition source."""
        if result.is_partial:
            return

        transcription: str = result.text.strip()
        if not transcription:
            return

        if self.cumulative:
            new_words: list[str] = extract_new_words(
                transcription, self.last_transcription)
        else:
            new_words = transcription.split()
        self.last_transcription = transcription
        if not new_words:
            return

        logger.debug("New final words: %s", new_words)
        self.pending.extend(new_words)
        self._restart_timer()

    def _restart_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.debounce_ms / 1000, self.flush)

    def flush(self) -> list[str]:
        """Hand any pending words to the sink now."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

        batch: list[str] = self.pending
        self.pending = []
        if batch:
            self.sink(batch)
        return batch

    def cancel(self) -> None:
        """Drop pending words without handing them over."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self.pending = []

    def reset(self) -> None:
        """Forget pending words and the previous transcription."""
        self.cancel()
        self.last_transcription = ""

    @property
    def has_pending(self) -> bool:
        """True if words are waiting for the debounce timer."""
        return bool(self.pending)
