# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Approximate segment matching of recognized words against the script.

Finds where a batch of spoken words best aligns with the script, searching
only forward from the current position. Scores use normalized Levenshtein
similarity between whole segments, so single misrecognized letters or words
are tolerated.

The search is a coroutine that yields to the event loop whenever it has
used up its time budget, so a long search never stalls the loop that also
serves the display.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

from rapidfuzz.distance import Levenshtein

from .script_parser import normalize_word

logger = logging.getLogger(__name__)

# Index of the explicit "no match" result
NO_MATCH: int = -1

# Segments whose character lengths differ by more than this factor
# are never similar enough to be worth an edit-distance computation.
MAX_LENGTH_RATIO: float = 3.0

YieldControl = Callable[[], Awaitable[None]]


@dataclass(frozen=True)
class MatchResult:
    """Where a spoken segment aligned in the script."""
    index: int
    score: float
    length: int
    raw_similarity: float
    distance: int

    @classmethod
    def no_match(cls) -> 'MatchResult':
        """The explicit no-match result."""
        return cls(index=NO_MATCH, score=0.0, length=0, raw_similarity=0.0, distance=0)

    @property
    def is_match(self) -> bool:
        """True unless this is the no-match result."""
        return self.index != NO_MATCH

    @property
    def end_index(self) -> int:
        """Original index just past the matched segment."""
        return self.index + self.length

    def __repr__(self) -> str:
        if not self.is_match:
            return "MatchResult(no match)"
        return (f"MatchResult(index={self.index}, length={self.length}, "
                f"score={self.score:.3f}, similarity={self.raw_similarity:.3f}, "
                f"distance={self.distance})")


@dataclass
class PerformanceStats:
    """Timing statistics across searches."""
    total_searches: int = 0
    total_time: float = 0.0
    max_search_time: float = 0.0
    total_yields: int = 0

    @property
    def average_time(self) -> float:
        """Average time per search in seconds."""
        return self.total_time / self.total_searches if self.total_searches else 0.0

    def to_dict(self) -> dict[str, float]:
        """Convert to dictionary for serialization."""
        return {
            "total_searches": self.total_searches,
            "total_time_ms": self.total_time * 1000,
            "average_time_ms": self.average_time * 1000,
            "max_search_time_ms": self.max_search_time * 1000,
            "total_yields": self.total_yields,
        }


async def yield_to_event_loop() -> None:
    """Give the event loop a chance to run other callbacks."""
    await asyncio.sleep(0)


def segment_similarity(spoken: str, script: str) -> float:
    """
    Similarity between two segments as 1 - (edit distance / longer length).

    Returns:
        1.0 for identical segments, 0.0 for segments with nothing in common
        or whose lengths are too different to compare
    """
    if spoken == script:
        return 1.0
    longer: int = max(len(spoken), len(script))
    shorter: int = min(len(spoken), len(script))
    if shorter == 0 or longer > shorter * MAX_LENGTH_RATIO:
        return 0.0
    return Levenshtein.normalized_similarity(spoken, script)


def join_segment(words: Sequence[str]) -> str:
    """Join words into a normalized segment string for comparison."""
    return ' '.join(w for w in (normalize_word(word) for word in words) if w)


class SegmentMatcher:
    """
    Finds the best forward alignment of spoken words in the script.

    Tries every segment length from the longest allowed down to one word,
    and every start position in a forward window whose width grows with
    the segment length. Each candidate must pass the threshold policy set
    by `precision`; the best adjusted score among passing candidates wins.
    """

    precision: float

    def __init__(
        self,
        precision: float = 65.0,
        max_segment_length: int = 12,
        max_lookahead: int = 25,
        base_window: int = 5,
        window_per_word: int = 2,
        distance_penalty: float = 0.05,
        single_word_margin: float = 0.2,
        single_word_max_distance: int = 3,
        high_similarity_max_distance: int = 25,
        good_similarity_max_distance: int = 20,
        default_max_distance: int = 15,
        early_exit_length: int = 8,
        max_processing_ms: float = 5.0,
        slow_search_ms: float = 20.0,
        yield_control: YieldControl | None = None
    ) -> None:
        """
        Initialize the matcher.

        Args:
            precision: Minimum similarity (0-100) for multi-word matches
            max_segment_length: Longest spoken segment tried
            max_lookahead: Widest forward search window in words
            base_window: Forward window for a zero-length segment
            window_per_word: Extra window width per segment word
            distance_penalty: Score deducted per word between the search
                start and the candidate
            single_word_margin: Extra similarity required of one-word matches
            single_word_max_distance: Farthest a one-word match may be
            high_similarity_max_distance: Farthest a >= 0.9 similarity match may be
            good_similarity_max_distance: Farthest a >= 0.8 similarity match may be
            default_max_distance: Farthest any other match may be
            early_exit_length: Stop once a perfect match this long is found
            max_processing_ms: Work allowed between yields to the event loop
            slow_search_ms: Searches slower than this are logged
            yield_control: Coroutine function awaited to yield (default:
                asyncio.sleep(0))
        """
        self.set_precision(precision)
        self.max_segment_length = max_segment_length
        self.max_lookahead = max_lookahead
        self.base_window = base_window
        self.window_per_word = window_per_word
        self.distance_penalty = distance_penalty
        self.single_word_margin = single_word_margin
        self.single_word_max_distance = single_word_max_distance
        self.high_similarity_max_distance = high_similarity_max_distance
        self.good_similarity_max_distance = good_similarity_max_distance
        self.default_max_distance = default_max_distance
        self.early_exit_length = early_exit_length
        self.max_processing_ms = max_processing_ms
        self.slow_search_ms = slow_search_ms
        self.yield_control: YieldControl = yield_control or yield_to_event_loop

        self.stats: PerformanceStats = PerformanceStats()

    def set_precision(self, precision: float) -> None:
        """Set the match precision, clamped to 0-100."""
        self.precision = max(0.0, min(100.0, float(precision)))

    def window_size(self, segment_length: int) -> int:
        """Forward search window for a segment length."""
        return min(self.max_lookahead,
                   self.base_window + self.window_per_word * segment_length)

    def min_similarity(self, segment_length: int) -> float:
        """Minimum raw similarity for a segment length."""
        base: float = self.precision / 100
        if segment_length == 1:
            return base + self.single_word_margin
        return base

    def max_distance(self, segment_length: int, similarity: float) -> int:
        """Farthest forward a match may land, by length and similarity."""
        if segment_length == 1:
            return self.single_word_max_distance
        if similarity >= 0.9:
            return self.high_similarity_max_distance
        if similarity >= 0.8:
            return self.good_similarity_max_distance
        return self.default_max_distance

    def length_bonus(self, segment_length: int) -> float:
        """Score bonus that favours longer, more reliable segments."""
        bonus: float = 0.1 if segment_length > 1 else 0.0
        if segment_length >= 6:
            bonus += 0.05
        if segment_length >= 10:
            bonus += 0.05
        return bonus

    def accepts(self, segment_length: int, similarity: float, distance: int) -> bool:
        """Apply the threshold policy to one candidate."""
        return (similarity >= self.min_similarity(segment_length)
                and distance <= self.max_distance(segment_length, similarity))

    async def find_best_match(
        self,
        spoken_words: Sequence[str],
        original_words: Sequence[str],
        search_start: int = 0
    ) -> MatchResult:
        """
        Find the best forward alignment of spoken words in the script.

        Args:
            spoken_words: Recognized words, oldest first
            original_words: The script in the original word space
            search_start: First script index that may be matched

        Returns:
            The best accepted MatchResult, or MatchResult.no_match()
        """
        started: float = time.perf_counter()
        slice_started: float = started
        budget: float = self.max_processing_ms / 1000
        search_start = max(0, search_start)

        best: MatchResult = MatchResult.no_match()
        longest: int = min(len(spoken_words), self.max_segment_length)

        for length in range(longest, 0, -1):
            spoken_segment: str = join_segment(spoken_words[:length])
            if not spoken_segment:
                continue

            search_end: int = min(search_start + self.window_size(length),
                                  len(original_words) - length + 1)

            for i in range(search_start, search_end):
                if time.perf_counter() - slice_started > budget:
                    await self.yield_control()
                    self.stats.total_yields += 1
                    slice_started = time.perf_counter()

                distance: int = i - search_start
                similarity: float = segment_similarity(
                    spoken_segment, join_segment(original_words[i:i + length]))
                if not self.accepts(length, similarity, distance):
                    continue

                score: float = (similarity
                                - distance * self.distance_penalty
                                + self.length_bonus(length))
                if not best.is_match or score > best.score:
                    best = MatchResult(
                        index=i,
                        score=score,
                        length=length,
                        raw_similarity=similarity,
                        distance=distance,
                    )

            if best.raw_similarity >= 1.0 and best.length >= self.early_exit_length:
                break

        self._record_search(time.perf_counter() - started)
        logger.debug("Best match for '%s' from %d: %r",
                     ' '.join(spoken_words), search_start, best)
        return best

    def _record_search(self, search_time: float) -> None:
        """Update performance statistics."""
        self.stats.total_searches += 1
        self.stats.total_time += search_time
        self.stats.max_search_time = max(self.stats.max_search_time, search_time)

        if search_time * 1000 > self.slow_search_ms:
            logger.warning("Slow search detected: %.2fms (avg: %.2fms)",
                           search_time * 1000, self.stats.average_time * 1000)
