# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Script parsing module that handles the two word spaces of a script:
1. Original words - every whitespace-delimited token, including the content
   of inline attachments (what the matcher searches)
2. Display words - the readable words only, with each attachment collapsed
   to a single "[name]" placeholder (what the reader sees highlighted)

Attachments are marked up as:

    [ATTACHMENT:slide-3] Revenue chart, Q3 numbers [/ATTACHMENT]

They exist in the script but are never spoken aloud, so the cursor skips
over them.
"""

import re
from dataclasses import dataclass, field

# Paired attachment markup. Non-greedy so the first close marker wins.
ATTACHMENT_PATTERN: re.Pattern[str] = re.compile(
    r'\[ATTACHMENT:([^\]]+)\]([\s\S]*?)\[/ATTACHMENT\]'
)

_TOKEN_PATTERN: re.Pattern[str] = re.compile(r'\S+')


@dataclass(frozen=True)
class Attachment:
    """A non-readable region of the script.

    Covers original word indices [start_index, end_index), marker tokens
    included.
    """
    name: str
    content: str
    start_index: int
    end_index: int

    @property
    def placeholder(self) -> str:
        """Token shown in place of the attachment."""
        return f"[{self.name}]"

    def contains(self, original_index: int) -> bool:
        """Check whether an original word index falls inside this attachment."""
        return self.start_index <= original_index < self.end_index

    def __len__(self) -> int:
        return self.end_index - self.start_index


@dataclass(frozen=True)
class DisplayToken:
    """A token in the display script.

    Readable words carry their display word index. Placeholders carry the
    attachment they stand for and no word index.
    """
    text: str
    word_index: int | None = None
    attachment: Attachment | None = None

    @property
    def is_placeholder(self) -> bool:
        """True if this token stands in for an attachment."""
        return self.attachment is not None


@dataclass(frozen=True)
class ParsedScript:
    """Complete parsed representation of a script."""
    raw_text: str
    original_words: tuple[str, ...]
    attachments: tuple[Attachment, ...] = ()
    display_tokens: tuple[DisplayToken, ...] = field(default=(), compare=False)

    @property
    def display_words(self) -> list[str]:
        """Readable words in display order (the display word space)."""
        return [t.text for t in self.display_tokens if not t.is_placeholder]

    @property
    def total_original_words(self) -> int:
        """Return the number of words in the original word space."""
        return len(self.original_words)

    @property
    def total_display_words(self) -> int:
        """Return the number of words in the display word space."""
        return sum(1 for t in self.display_tokens if not t.is_placeholder)

    @property
    def is_empty(self) -> bool:
        """True if there is nothing to match against."""
        return not self.original_words


def normalize_word(word: str) -> str:
    """Normalize a word for matching (lowercase, strip punctuation).

    This is used for comparing spoken words to script words.
    """
    return re.sub(r'[^\w\s]', '', word.lower()).strip()


def tokenize(text: str) -> list[str]:
    """Split script text into original words on whitespace."""
    return text.split()


def find_attachments(text: str) -> list[Attachment]:
    """Locate well-formed attachment blocks and map them to word ranges.

    A block's range covers every whitespace token that overlaps its markup,
    so markers glued to neighbouring text still produce consistent indices.
    Unterminated markers never match and stay in the text as ordinary words.
    """
    spans: list[tuple[int, int]] = [
        (m.start(), m.end()) for m in _TOKEN_PATTERN.finditer(text)
    ]
    attachments: list[Attachment] = []
    first_free: int = 0

    for match in ATTACHMENT_PATTERN.finditer(text):
        covered: list[int] = [
            i for i, (start, end) in enumerate(spans[first_free:], start=first_free)
            if start < match.end() and end > match.start()
        ]
        if not covered:
            continue

        # Tokens already claimed by the previous block are skipped, which
        # keeps ranges non-overlapping when two blocks share a token.
        end_index: int = covered[-1] + 1
        attachments.append(Attachment(
            name=match.group(1).strip(),
            content=match.group(2).strip(),
            start_index=covered[0],
            end_index=end_index,
        ))
        first_free = end_index

    return attachments


def build_display_tokens(
    original_words: list[str] | tuple[str, ...],
    attachments: list[Attachment] | tuple[Attachment, ...]
) -> list[DisplayToken]:
    """Collapse each attachment range to its placeholder token."""
    tokens: list[DisplayToken] = []
    starts: dict[int, Attachment] = {a.start_index: a for a in attachments}
    word_index: int = 0
    i: int = 0

    while i < len(original_words):
        attachment: Attachment | None = starts.get(i)
        if attachment is not None:
            tokens.append(DisplayToken(
                text=attachment.placeholder, attachment=attachment))
            i = attachment.end_index
            continue
        tokens.append(DisplayToken(text=original_words[i], word_index=word_index))
        word_index += 1
        i += 1

    return tokens


def parse_script(text: str) -> ParsedScript:
    """Parse script text into original words, attachments and display tokens.

    Args:
        text: The raw script text, possibly containing attachment markup

    Returns:
        ParsedScript with both word spaces
    """
    original_words: list[str] = tokenize(text)
    attachments: list[Attachment] = find_attachments(text)
    display_tokens: list[DisplayToken] = build_display_tokens(
        original_words, attachments)

    return ParsedScript(
        raw_text=text,
        original_words=tuple(original_words),
        attachments=tuple(attachments),
        display_tokens=tuple(display_tokens),
    )


def display_text(text: str) -> str:
    """Get script text with each attachment block replaced by its placeholder."""
    return ATTACHMENT_PATTERN.sub(lambda m: f"[{m.group(1).strip()}]", text)
