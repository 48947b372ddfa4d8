"""
Tests for tracking through scripts with attachments.
"""

import pytest

from promptalign.tracker import AlignmentTracker, AlignmentUpdate

# Hello0 there1 [ATTACHMENT:img]2 chart3 data4 [/ATTACHMENT]5 world6 peace7 and8 goodwill9
SCRIPT = ("Hello there [ATTACHMENT:img] chart data [/ATTACHMENT] "
          "world peace and goodwill")


@pytest.fixture
def updates() -> list[AlignmentUpdate]:
    return []


@pytest.fixture
def tracker(updates: list[AlignmentUpdate]) -> AlignmentTracker:
    return AlignmentTracker(SCRIPT, on_alignment_update=updates.append)


class TestAttachmentSkipping:
    """The cursor never rests inside an attachment."""

    @pytest.mark.asyncio
    async def test_cursor_skips_attachment(
        self, tracker: AlignmentTracker, updates: list[AlignmentUpdate]
    ) -> None:
        await tracker.submit(["Hello", "there"])

        assert tracker.cursor == 6
        assert updates[-1].display_position == 2
        assert updates[-1].matched_display_indices == (0, 1)

    @pytest.mark.asyncio
    async def test_reading_continues_after_attachment(
        self, tracker: AlignmentTracker, updates: list[AlignmentUpdate]
    ) -> None:
        await tracker.submit(["Hello"])
        await tracker.submit(["there", "world"])

        assert tracker.cursor == 7
        assert [u.display_position for u in updates] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_upcoming_attachment_reported(
        self, tracker: AlignmentTracker, updates: list[AlignmentUpdate]
    ) -> None:
        await tracker.submit(["Hello", "there"])
        assert updates[-1].attachment is not None
        assert updates[-1].attachment.name == "img"

        await tracker.submit(["world", "peace"])
        assert updates[-1].display_position == 4
        assert updates[-1].attachment is None

    @pytest.mark.asyncio
    async def test_attachment_indices_omitted_from_display(
        self, tracker: AlignmentTracker, updates: list[AlignmentUpdate]
    ) -> None:
        tracker.update_position(2)

        await tracker.submit(["chart", "data"])

        assert tracker.cursor == 6
        assert updates[-1].matched_indices == (3, 4)
        assert updates[-1].matched_display_indices == ()

    def test_display_position_inside_attachment(self, tracker: AlignmentTracker) -> None:
        tracker.cursor = 3
        assert tracker.get_display_position() == 2
