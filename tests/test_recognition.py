"""Tests for the recognition boundary: new-word extraction and batching."""

import asyncio
from unittest import mock

import pytest

from promptalign.recognition import (
    FinalWordBatcher,
    RecognitionResult,
    extract_new_words,
)


class TestExtractNewWords:
    """Tests for extract_new_words."""

    def test_first_result_is_all_new(self) -> None:
        assert extract_new_words("welcome to our", "") == ["welcome", "to", "our"]

    def test_extension_of_previous_result(self) -> None:
        assert extract_new_words("welcome to our", "welcome to") == ["our"]

    def test_extension_ignores_case_and_punctuation(self) -> None:
        assert extract_new_words("Welcome, to our", "welcome to") == ["our"]

    def test_repeated_result_has_nothing_new(self) -> None:
        assert extract_new_words("welcome to", "welcome to") == []

    def test_new_utterance_is_all_new(self) -> None:
        assert extract_new_words("our presentation", "welcome to") == [
            "our", "presentation"]

    def test_partial_overlap_is_new_utterance(self) -> None:
        assert extract_new_words("welcome back", "welcome to") == ["welcome", "back"]


class TestRecognitionResult:
    """Tests for RecognitionResult."""

    def test_repr(self) -> None:
        assert repr(RecognitionResult("hi", is_partial=True)) == "RecognitionResult(partial: 'hi')"
        assert repr(RecognitionResult("hi", is_partial=False)) == "RecognitionResult(final: 'hi')"


class TestFinalWordBatcher:
    """Tests for debounced batching of final results."""

    @pytest.mark.asyncio
    async def test_partials_are_ignored(self) -> None:
        sink = mock.Mock()
        batcher = FinalWordBatcher(sink, debounce_ms=10)

        batcher.on_result(RecognitionResult("welcome", is_partial=True))

        assert not batcher.has_pending
        await asyncio.sleep(0.03)
        sink.assert_not_called()

    @pytest.mark.asyncio
    async def test_rapid_finals_are_coalesced(self) -> None:
        sink = mock.Mock()
        batcher = FinalWordBatcher(sink, debounce_ms=20)

        batcher.on_result(RecognitionResult("welcome to", is_partial=False))
        batcher.on_result(RecognitionResult("our", is_partial=False))
        batcher.on_result(RecognitionResult("presentation", is_partial=False))
        sink.assert_not_called()

        await asyncio.sleep(0.1)

        sink.assert_called_once_with(["welcome", "to", "our", "presentation"])
        assert not batcher.has_pending

    @pytest.mark.asyncio
    async def test_repeated_phrase_is_kept(self) -> None:
        """Each final result is new speech, even when it repeats the last one."""
        sink = mock.Mock()
        batcher = FinalWordBatcher(sink, debounce_ms=1000)

        batcher.on_result(RecognitionResult("thank you", is_partial=False))
        batcher.on_result(RecognitionResult("thank you very much", is_partial=False))

        assert batcher.flush() == ["thank", "you", "thank", "you", "very", "much"]

    @pytest.mark.asyncio
    async def test_cumulative_source_only_adds_extensions(self) -> None:
        sink = mock.Mock()
        batcher = FinalWordBatcher(sink, debounce_ms=20, cumulative=True)

        batcher.on_result(RecognitionResult("welcome to", is_partial=False))
        batcher.on_result(RecognitionResult("welcome to our", is_partial=False))
        batcher.on_result(RecognitionResult("presentation", is_partial=False))

        await asyncio.sleep(0.1)

        sink.assert_called_once_with(["welcome", "to", "our", "presentation"])

    @pytest.mark.asyncio
    async def test_separate_bursts_make_separate_batches(self) -> None:
        sink = mock.Mock()
        batcher = FinalWordBatcher(sink, debounce_ms=10)

        batcher.on_result(RecognitionResult("welcome to", is_partial=False))
        await asyncio.sleep(0.05)
        batcher.on_result(RecognitionResult("our presentation", is_partial=False))
        await asyncio.sleep(0.05)

        assert sink.call_args_list == [
            mock.call(["welcome", "to"]),
            mock.call(["our", "presentation"]),
        ]

    @pytest.mark.asyncio
    async def test_flush_hands_over_immediately(self) -> None:
        sink = mock.Mock()
        batcher = FinalWordBatcher(sink, debounce_ms=1000)

        batcher.on_result(RecognitionResult("welcome", is_partial=False))
        batch = batcher.flush()

        assert batch == ["welcome"]
        sink.assert_called_once_with(["welcome"])

    @pytest.mark.asyncio
    async def test_flush_with_nothing_pending(self) -> None:
        sink = mock.Mock()
        batcher = FinalWordBatcher(sink)

        assert batcher.flush() == []
        sink.assert_not_called()

    @pytest.mark.asyncio
    async def test_cancel_drops_pending_words(self) -> None:
        sink = mock.Mock()
        batcher = FinalWordBatcher(sink, debounce_ms=10)

        batcher.on_result(RecognitionResult("welcome", is_partial=False))
        batcher.cancel()
        await asyncio.sleep(0.03)

        sink.assert_not_called()

    @pytest.mark.asyncio
    async def test_reset_forgets_previous_transcription(self) -> None:
        sink = mock.Mock()
        batcher = FinalWordBatcher(sink, debounce_ms=1000, cumulative=True)

        batcher.on_result(RecognitionResult("welcome to", is_partial=False))
        batcher.reset()
        batcher.on_result(RecognitionResult("welcome to", is_partial=False))

        assert batcher.flush() == ["welcome", "to"]
