# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Conversion between the original word space and the display word space.

The matcher and tracker work in original indices (attachment content
included). The display only numbers readable words, so every position
leaving the engine goes through a PositionMapper first.
"""

from bisect import bisect_left

from .script_parser import Attachment, ParsedScript

# Returned for original positions that have no display counterpart
# (positions inside an attachment).
INVALID_INDEX: int = -1


class PositionMapper:
    """
    Maps word indices between the original and display spaces of one script.

    Lookup tables are built once; the script is immutable, so the mapper
    is never updated, only replaced.
    """

    def __init__(self, parsed_script: ParsedScript) -> None:
        self.parsed_script: ParsedScript = parsed_script
        self.attachments: tuple[Attachment, ...] = parsed_script.attachments

        # original index -> display index (INVALID_INDEX inside attachments)
        self._display_of: list[int] = []
        # display index -> original index
        self._original_of: list[int] = []
        # original index -> containing attachment
        self._attachment_of: dict[int, Attachment] = {}
        # display index each attachment placeholder sits before
        self._attachment_anchors: list[int] = []

        for attachment in self.attachments:
            for i in range(attachment.start_index, attachment.end_index):
                self._attachment_of[i] = attachment

        for i in range(parsed_script.total_original_words):
            if i in self._attachment_of:
                self._display_of.append(INVALID_INDEX)
            else:
                self._display_of.append(len(self._original_of))
                self._original_of.append(i)

        for attachment in self.attachments:
            self._attachment_anchors.append(
                self._readable_words_before(attachment.start_index))

    def _readable_words_before(self, original_index: int) -> int:
        """Count readable words strictly before an original index."""
        return bisect_left(self._original_of, original_index)

    @property
    def original_length(self) -> int:
        """Number of words in the original space."""
        return len(self._display_of)

    @property
    def display_length(self) -> int:
        """Number of words in the display space."""
        return len(self._original_of)

    def to_display_index(self, original_index: int) -> int:
        """
        Convert an original word index to a display word index.

        Args:
            original_index: Index in the original word space

        Returns:
            The display index, INVALID_INDEX if the position lies inside an
            attachment, or the display length if past the end of the script
        """
        if original_index < 0:
            return 0
        if original_index >= self.original_length:
            return self.display_length
        return self._display_of[original_index]

    def to_original_index(self, display_index: int) -> int:
        """Convert a display word index back to its original word index."""
        if display_index < 0:
            return 0
        if display_index >= self.display_length:
            return self.original_length
        return self._original_of[display_index]

    def next_valid_original_index(self, original_index: int) -> int:
        """Skip past the attachment containing original_index, if any."""
        attachment: Attachment | None = self._attachment_of.get(original_index)
        if attachment is None:
            return original_index
        return attachment.end_index

    def attachment_at(self, original_index: int) -> Attachment | None:
        """Get the attachment containing an original index."""
        return self._attachment_of.get(original_index)

    def upcoming_attachment(self, display_position: int) -> Attachment | None:
        """
        Get the attachment the reader should see next.

        This is the first attachment whose placeholder sits at or after
        display_position, so an attachment stays current until the reader
        has passed it.
        """
        for attachment, anchor in zip(self.attachments, self._attachment_anchors):
            if anchor >= display_position:
                return attachment
        return None
