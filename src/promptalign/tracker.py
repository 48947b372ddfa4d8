"""
Alignment tracking module that follows a speaker through a script.

Batches of finalized recognized words are queued and aligned one at a time
against the script. The cursor only moves forward during automatic
tracking; a manual jump may move it anywhere. Positions handed to the
display are translated from the original word space (attachments included)
to the display word space.
"""

import asyncio
import logging
import time
from collections import deque
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Literal

from . import debug_log
from .matcher import MatchResult, PerformanceStats, SegmentMatcher
from .position_map import INVALID_INDEX, PositionMapper
from .script_parser import Attachment, ParsedScript, parse_script

logger = logging.getLogger(__name__)

RejectReason = Literal['no-match', 'backward-jump', 'empty-script']

# Batches shorter than this are matched with the context in front first
SHORT_BATCH_WORDS: int = 3


@dataclass(frozen=True)
class AlignmentUpdate:
    """A cursor change, ready for a rendering layer."""
    display_position: int
    matched_display_indices: tuple[int, ...]
    original_position: int
    matched_indices: tuple[int, ...] = ()
    attachment: Attachment | None = None  # Attachment the reader sees next
    is_manual: bool = False


@dataclass(frozen=True)
class Rejection:
    """Diagnostic for a batch that did not move the cursor."""
    reason: RejectReason
    detail: str = ""


@dataclass
class PendingBatch:
    """A recognized batch waiting in the queue."""
    words: list[str]
    search_start: int | None  # None: start from the cursor at dequeue time
    generation: int


class AlignmentTracker:
    """
    Owns the cursor and aligns recognized batches against the script.

    Batches are processed strictly in arrival order by a single consumer,
    so each match sees the cursor left by the previous one. Matching may
    yield to the event loop; everything else here is synchronous.

    Usage:
        tracker = AlignmentTracker(script_text, on_alignment_update=render)
        await tracker.submit(["Welcome", "to", "our"])
        tracker.update_position(42)  # speaker clicked ahead
    """

    parsed_script: ParsedScript
    mapper: PositionMapper
    cursor: int
    context: deque[str]

    def __init__(
        self,
        script_text: str = "",
        matcher: SegmentMatcher | None = None,
        context_size: int = 30,
        context_reset_jump: int = 20,
        manual_grace_ms: int = 100,
        on_alignment_update: Callable[[AlignmentUpdate], None] | None = None,
        on_rejected: Callable[[Rejection], None] | None = None,
        clock: Callable[[], float] = time.monotonic
    ) -> None:
        """
        Initialize the tracker.

        Args:
            script_text: The full script text (may be empty until loaded)
            matcher: Segment matcher to use (default settings if None)
            context_size: Maximum unaligned words kept to enrich later batches
            context_reset_jump: Cursor moves larger than this clear the context
            manual_grace_ms: How long after a manual jump the backward check
                is suspended
            on_alignment_update: Called after every accepted cursor change
            on_rejected: Called with diagnostics for batches that did not
                move the cursor
            clock: Monotonic clock in seconds
        """
        self.matcher = matcher or SegmentMatcher()
        self.context_size = context_size
        self.context_reset_jump = context_reset_jump
        self.manual_grace_ms = manual_grace_ms
        self.on_alignment_update = on_alignment_update
        self.on_rejected = on_rejected
        self._clock = clock

        self._queue: deque[PendingBatch] = deque()
        self._processing: bool = False
        self._idle: asyncio.Event = asyncio.Event()
        self._idle.set()
        self._tasks: set[asyncio.Task[None]] = set()
        self._generation: int = 0
        self._grace_until: float | None = None

        self.context = deque(maxlen=context_size)
        self.load_script(script_text)

    @property
    def words(self) -> tuple[str, ...]:
        """The script in the original word space."""
        return self.parsed_script.original_words

    @property
    def is_processing(self) -> bool:
        """True while a batch is being aligned."""
        return self._processing

    @property
    def pending_batches(self) -> int:
        """Number of batches waiting in the queue."""
        return len(self._queue)

    @property
    def stats(self) -> PerformanceStats:
        """Search timing statistics from the matcher."""
        return self.matcher.stats

    def get_cursor(self) -> int:
        """Current position in the original word space."""
        return self.cursor

    def get_display_position(self) -> int:
        """Current position in the display word space."""
        return self._to_display(self.cursor)

    def load_script(self, script_text: str) -> None:
        """Replace the script and start again from the beginning."""
        self.parsed_script = parse_script(script_text)
        self.mapper = PositionMapper(self.parsed_script)
        self._invalidate()
        self.cursor = 0
        logger.info("Script loaded: %d words (%d displayed, %d attachments)",
                    self.parsed_script.total_original_words,
                    self.parsed_script.total_display_words,
                    len(self.parsed_script.attachments))

    def reset(self) -> None:
        """Reset tracking to the beginning of the script."""
        dropped: int = len(self._queue)
        self._invalidate()
        old_pos: int = self.cursor
        self.cursor = 0
        if dropped:
            logger.debug("Reset discarded %d queued batches", dropped)
        debug_log.log_position_update(old_pos, 0, [], "reset")

    def _invalidate(self) -> None:
        """Drop queued work and make in-flight results stale."""
        self._generation += 1
        self._queue.clear()
        self.context.clear()
        self._grace_until = None

    def update_position(self, original_index: int) -> None:
        """
        Move the cursor on the speaker's behalf (e.g. clicking ahead).

        The move is unconditional, backward included. The backward check is
        suspended for a short grace window so the next in-flight batch is
        not rejected against the old cursor.
        """
        original_index = max(0, min(original_index, len(self.words)))
        old_pos: int = self.cursor
        self.cursor = original_index
        self.context.clear()
        self._grace_until = self._clock() + self.manual_grace_ms / 1000

        logger.debug("Manual position update: %d -> %d", old_pos, original_index)
        debug_log.log_position_update(
            old_pos, original_index, self._words_between(old_pos, original_index), "manual")
        self._emit(original_index, (), is_manual=True)

    def _in_grace_window(self) -> bool:
        return self._grace_until is not None and self._clock() < self._grace_until

    async def submit(self, words: Sequence[str], search_start: int | None = None) -> None:
        """
        Queue a batch of finalized recognized words for alignment.

        If no batch is being processed, the queue is drained before this
        returns. Otherwise the batch waits for the running drain.

        Args:
            words: Recognized words, oldest first
            search_start: Original index to search from. Defaults to the
                cursor when the batch is dequeued.
        """
        batch_words: list[str] = [w for w in words if w.strip()]
        if not batch_words:
            return

        if self.parsed_script.is_empty:
            self._reject('empty-script', "No script words to match against")
            return

        self._queue.append(PendingBatch(
            words=batch_words,
            search_start=search_start,
            generation=self._generation,
        ))

        if self._processing:
            return

        await self._drain()

    def enqueue(self, words: Sequence[str], search_start: int | None = None) -> asyncio.Task[None]:
        """Push-callback form of submit() for use inside the running loop."""
        task: asyncio.Task[None] = asyncio.get_running_loop().create_task(
            self.submit(list(words), search_start))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_until_idle(self) -> None:
        """Wait until every queued batch has been processed."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))
        await self._idle.wait()

    async def _drain(self) -> None:
        """Process queued batches one at a time."""
        self._processing = True
        self._idle.clear()
        try:
            while self._queue:
                batch: PendingBatch = self._queue.popleft()
                try:
                    await self._process_batch(batch)
                except Exception as e:  # pylint: disable=broad-exception-caught
                    logger.error("Error processing batch %s: %s",
                                 batch.words, e, exc_info=True)
        finally:
            self._processing = False
            self._idle.set()

    def _candidates(self, words: list[str]) -> list[list[str]]:
        """
        Word lists to try, in order.

        The batch alone comes first; the context only leads when the batch
        is too short to be matched reliably on its own.
        """
        if not self.context:
            return [words]
        enriched: list[str] = list(self.context) + words
        if len(words) < SHORT_BATCH_WORDS:
            return [enriched, words]
        return [words, enriched]

    async def _process_batch(self, batch: PendingBatch) -> None:
        """Align one batch, advancing the cursor as far as its words allow."""
        remaining: list[str] = batch.words
        search_start: int | None = batch.search_start
        moved_from: int = self.cursor
        advanced: bool = False
        last_length: int = 0

        while remaining:
            match: MatchResult | None = None
            spoken: list[str] = remaining
            for spoken in self._candidates(remaining):
                start: int = self.cursor if search_start is None else search_start
                debug_log.log_batch(spoken, start)
                result: MatchResult = await self.matcher.find_best_match(
                    spoken, self.words, start)

                if batch.generation != self._generation:
                    logger.debug("Discarding stale result for %s", batch.words)
                    return
                if result.is_match:
                    match = result
                    break

            if match is None:
                break
            # Follow-up matches may only skip words when they and the match
            # before them both span several words.
            if advanced and match.distance > 0 and min(match.length, last_length) < 2:
                logger.debug("Not skipping ahead on a single-word match: %s", match)
                break
            if not self._apply_match(match):
                return

            advanced = True
            last_length = match.length
            search_start = None
            self.context.clear()
            remaining = spoken[match.length:]

        if not advanced:
            self.context.extend(remaining)
            self._reject('no-match', f"'{' '.join(batch.words)}' from {self.cursor}")
            return

        # Whatever did not align waits for the next batch, unless the cursor
        # moved so far that it no longer belongs here.
        if self.cursor - moved_from > self.context_reset_jump:
            logger.debug("Cursor jumped %d words, clearing context",
                         self.cursor - moved_from)
        else:
            self.context.extend(remaining)

    def _apply_match(self, match: MatchResult) -> bool:
        """
        Move the cursor to the end of a match if it does not go backward.

        Returns:
            True if the cursor was updated
        """
        new_position: int = match.end_index
        if new_position < self.cursor and not self._in_grace_window():
            logger.warning("Preventing backward jump: %d < %d", new_position, self.cursor)
            self._reject('backward-jump', f"{new_position} < {self.cursor}")
            return False

        old_pos: int = self.cursor
        # The cursor never rests inside an attachment.
        self.cursor = self.mapper.next_valid_original_index(new_position)

        debug_log.log_position_update(
            old_pos, self.cursor, self._words_between(old_pos, self.cursor), "match")
        self._emit(self.cursor, range(match.index, match.end_index))
        return True

    def _words_between(self, start: int, end: int) -> list[str]:
        low, high = sorted((start, end))
        return list(self.words[low:high])

    def _to_display(self, original_index: int) -> int:
        """Translate to display space, stepping out of attachments."""
        display_index: int = self.mapper.to_display_index(original_index)
        if display_index == INVALID_INDEX:
            display_index = self.mapper.to_display_index(
                self.mapper.next_valid_original_index(original_index))
        return display_index

    def _emit(self, original_position: int, matched: Iterable[int], is_manual: bool = False) -> None:
        """Send an AlignmentUpdate in display space."""
        matched_indices: tuple[int, ...] = tuple(matched)
        display_position: int = self._to_display(original_position)
        matched_display: tuple[int, ...] = tuple(
            d for d in (self.mapper.to_display_index(i) for i in matched_indices)
            if d != INVALID_INDEX
        )
        update = AlignmentUpdate(
            display_position=display_position,
            matched_display_indices=matched_display,
            original_position=original_position,
            matched_indices=matched_indices,
            attachment=self.mapper.upcoming_attachment(display_position),
            is_manual=is_manual,
        )
        if self.on_alignment_update:
            self.on_alignment_update(update)

    def _reject(self, reason: RejectReason, detail: str) -> None:
        """Report a batch that left the cursor unchanged."""
        logger.debug("Rejected (%s): %s", reason, detail)
        debug_log.log_rejection(reason, detail)
        if self.on_rejected:
            self.on_rejected(Rejection(reason=reason, detail=detail))
