"""
Tests for the context buffer of recently recognized, unaligned words.
"""

import pytest

from promptalign.tracker import AlignmentTracker, AlignmentUpdate

NATO = ("alpha bravo charlie delta echo foxtrot golf hotel india juliet kilo "
        "lima mike november oscar papa quebec romeo sierra tango uniform "
        "victor whiskey xray yankee zulu")
WORDS = NATO.split()


class TestContextBuffer:
    """Unaligned words are kept to help match the next batch."""

    @pytest.mark.asyncio
    async def test_unmatched_batch_is_remembered(self) -> None:
        tracker = AlignmentTracker(NATO)

        await tracker.submit(["alfa"])

        assert list(tracker.context) == ["alfa"]

    @pytest.mark.asyncio
    async def test_context_completes_next_batch(self) -> None:
        """A misheard word too weak to match alone is matched with its neighbours."""
        updates: list[AlignmentUpdate] = []
        tracker = AlignmentTracker(NATO, on_alignment_update=updates.append)

        await tracker.submit(["alfa"])
        await tracker.submit(["bravo", "charlie"])

        assert tracker.cursor == 3
        assert updates[-1].matched_display_indices == (0, 1, 2)
        assert len(tracker.context) == 0

    @pytest.mark.asyncio
    async def test_falls_back_to_batch_alone(self) -> None:
        tracker = AlignmentTracker(NATO)

        await tracker.submit(["xyz"])
        await tracker.submit(["alpha", "bravo"])

        assert tracker.cursor == 2
        assert len(tracker.context) == 0

    @pytest.mark.asyncio
    async def test_stray_context_does_not_stretch_full_batch(self) -> None:
        """A batch that matches on its own is not lengthened by old words."""
        updates: list[AlignmentUpdate] = []
        tracker = AlignmentTracker(
            "Welcome to our presentation today we will discuss the plan",
            on_alignment_update=updates.append)

        await tracker.submit(["uh"])
        assert list(tracker.context) == ["uh"]

        await tracker.submit(["Welcome", "to", "our", "presentation"])

        assert tracker.cursor == 4
        assert updates[-1].matched_display_indices == (0, 1, 2, 3)
        assert len(tracker.context) == 0

    @pytest.mark.asyncio
    async def test_leftover_words_kept_after_small_move(self) -> None:
        tracker = AlignmentTracker(NATO)

        await tracker.submit(["alpha", "bravo", "pineapple"])

        assert tracker.cursor == 2
        assert list(tracker.context) == ["pineapple"]

    @pytest.mark.asyncio
    async def test_large_jump_clears_context(self) -> None:
        tracker = AlignmentTracker(NATO, context_reset_jump=20)

        await tracker.submit(WORDS[14:26] + ["pineapple"])

        assert tracker.cursor == 26
        assert len(tracker.context) == 0

    @pytest.mark.asyncio
    async def test_context_is_bounded(self) -> None:
        tracker = AlignmentTracker(NATO, context_size=3)

        await tracker.submit(["one", "two"])
        await tracker.submit(["three", "four"])

        assert list(tracker.context) == ["two", "three", "four"]
