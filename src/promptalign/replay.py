# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Debug tool for replaying a transcript through the alignment tracker.

This CLI tool takes a transcript file and a script file, feeds the
transcript to the tracker as recognized word batches, and writes a log of
every cursor move and rejection to help debug alignment issues.
"""

import argparse
import asyncio
import sys
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Literal, TextIO

from .matcher import SegmentMatcher
from .tracker import AlignmentTracker, AlignmentUpdate, Rejection

EventType = Literal["FORWARD_JUMP", "advance", "no_match", "backward_rejected"]

# Cursor moves larger than this are reported as jumps
FORWARD_JUMP_WORDS: int = 5


@dataclass
class ReplayEvent:
    """The outcome of one batch during transcript replay."""
    transcript_line: int
    batch: str
    position_before: int
    position_after: int
    script_word: str
    event_type: EventType
    details: str = ""


def load_transcript(path: Path) -> list[str]:
    """Load transcript file and extract transcript lines.

    Filters out metadata lines (starting with '===').
    Returns list of transcript text lines.
    """
    lines: list[str] = []
    with open(path, encoding='utf-8') as f:
        for line in f:
            stripped_line: str = line.strip()
            # Skip metadata lines and empty lines
            if stripped_line.startswith('===') or not stripped_line:
                continue
            lines.append(stripped_line)
    return lines


def load_script(path: Path) -> str:
    """Load script file content."""
    with open(path, encoding='utf-8') as f:
        return f.read()


def _batches(transcript_lines: list[str], word_by_word: bool) -> list[tuple[int, list[str]]]:
    """Split the transcript into (line number, words) batches."""
    batches: list[tuple[int, list[str]]] = []
    for line_num, line in enumerate(transcript_lines, start=1):
        words: list[str] = line.split()
        if word_by_word:
            batches.extend((line_num, [word]) for word in words)
        elif words:
            batches.append((line_num, words))
    return batches


def _classify(before: int, after: int, rejection: Rejection | None) -> EventType:
    if rejection is not None and rejection.reason == 'backward-jump':
        return "backward_rejected"
    if after > before + FORWARD_JUMP_WORDS:
        return "FORWARD_JUMP"
    if after > before:
        return "advance"
    return "no_match"


def _write_header(output: TextIO, tracker: AlignmentTracker, transcript_lines: list[str],
                  word_by_word: bool) -> None:
    mode: str = " (WORD-BY-WORD MODE)" if word_by_word else ""
    display_words: list[str] = tracker.parsed_script.display_words

    output.write("=" * 80 + "\n")
    output.write(f"TRANSCRIPT REPLAY LOG{mode}\n")
    output.write(f"Generated: {datetime.now().isoformat()}\n")
    output.write(f"Script words: {len(tracker.words)} "
                 f"({len(display_words)} displayed, "
                 f"{len(tracker.parsed_script.attachments)} attachments)\n")
    output.write(f"Transcript lines: {len(transcript_lines)}\n")
    output.write("=" * 80 + "\n\n")

    output.write("SCRIPT WORDS (display):\n")
    output.write("-" * 40 + "\n")
    for i, word in enumerate(display_words):
        output.write(f"  [{i:4d}] {word}\n")
    output.write("\n" + "=" * 80 + "\n\n")

    output.write("TRACKING LOG:\n")
    output.write("-" * 40 + "\n")


def _write_summary(output: TextIO, tracker: AlignmentTracker, events: list[ReplayEvent]) -> None:
    output.write("\n" + "=" * 80 + "\n")
    output.write("SUMMARY:\n")
    output.write("-" * 40 + "\n")

    by_type: dict[str, list[ReplayEvent]] = {}
    for e in events:
        by_type.setdefault(e.event_type, []).append(e)

    output.write(f"Total batches processed: {len(events)}\n")
    output.write(f"Final position: {tracker.get_display_position()} / "
                 f"{tracker.parsed_script.total_display_words}\n")
    output.write(f"Advances: {len(by_type.get('advance', []))}\n")
    output.write(f"Forward jumps: {len(by_type.get('FORWARD_JUMP', []))}\n")
    output.write(f"No match: {len(by_type.get('no_match', []))}\n")
    output.write(f"Backward jumps rejected: {len(by_type.get('backward_rejected', []))}\n")

    stats = tracker.stats
    output.write(f"Average search time: {stats.average_time * 1000:.2f}ms "
                 f"(max {stats.max_search_time * 1000:.2f}ms, "
                 f"{stats.total_yields} yields)\n")

    forward_jumps: list[ReplayEvent] = by_type.get('FORWARD_JUMP', [])
    if forward_jumps:
        output.write("\nForward jump events:\n")
        for e in forward_jumps:
            output.write(
                f"  Line {e.transcript_line}: \"{e.batch}\" -> position "
                f"{e.position_after} \"{e.script_word}\"\n"
            )


async def replay_transcript(
    transcript_lines: list[str],
    script_text: str,
    output: TextIO,
    verbose: bool = False,
    word_by_word: bool = False,
    matcher: SegmentMatcher | None = None
) -> list[ReplayEvent]:
    """Replay transcript through the tracker and log events.

    Args:
        transcript_lines: Lines of transcript text
        script_text: The script content
        output: File handle to write log output
        verbose: If True, log every batch. If False, only log jumps and
            rejected backward jumps.
        word_by_word: Submit one word per batch instead of one line
        matcher: Segment matcher to use (default settings if None)

    Returns:
        List of all replay events
    """
    updates: list[AlignmentUpdate] = []
    rejections: list[Rejection] = []
    tracker: AlignmentTracker = AlignmentTracker(
        script_text,
        matcher=matcher,
        on_alignment_update=updates.append,
        on_rejected=rejections.append,
    )
    display_words: list[str] = tracker.parsed_script.display_words
    events: list[ReplayEvent] = []

    _write_header(output, tracker, transcript_lines, word_by_word)

    current_line: int = 0
    for line_num, words in _batches(transcript_lines, word_by_word):
        if line_num != current_line:
            current_line = line_num
            line: str = transcript_lines[line_num - 1]
            line_display: str = f"--- Line {line_num}: \"{line[:60]}"
            line_display += '...' if len(line) > 60 else ''
            line_display += "\" ---"
            output.write(f"\n{line_display}\n")

        updates.clear()
        rejections.clear()
        position_before: int = tracker.get_display_position()

        await tracker.submit(words)

        position_after: int = tracker.get_display_position()
        rejection: Rejection | None = rejections[-1] if rejections else None
        event_type: EventType = _classify(position_before, position_after, rejection)
        script_word: str = (
            display_words[position_after]
            if position_after < len(display_words) else "<END>"
        )
        batch: str = " ".join(words)

        if event_type == "FORWARD_JUMP":
            output.write(f"  *** FORWARD JUMP at \"{batch}\" ***\n")
            output.write(f"      Position: {position_before} -> {position_after}\n")
            output.write(f"      Script word at new position: \"{script_word}\"\n")
        elif event_type == "backward_rejected":
            output.write(f"  *** BACKWARD JUMP REJECTED at \"{batch}\" ***\n")
            output.write(f"      {rejection.detail if rejection else ''}\n")
        elif verbose:
            marker: str = "*" if event_type == "advance" else " "
            output.write(
                f"  {marker} [{position_after:4d}] \"{batch}\" -> "
                f"\"{script_word}\" ({event_type})\n"
            )

        if updates and updates[-1].attachment is not None and verbose:
            output.write(f"      Upcoming attachment: {updates[-1].attachment.name}\n")

        events.append(ReplayEvent(
            transcript_line=line_num,
            batch=batch,
            position_before=position_before,
            position_after=position_after,
            script_word=script_word,
            event_type=event_type,
            details=rejection.detail if rejection else "",
        ))

    _write_summary(output, tracker, events)
    return events


def main() -> None:
    """CLI entry point for the transcript replay tool."""
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="Debug alignment by replaying a transcript through the tracker"
    )

    parser.add_argument(
        "transcript",
        type=Path,
        help="Path to transcript file"
    )

    parser.add_argument(
        "script",
        type=Path,
        help="Path to script file"
    )

    parser.add_argument(
        "-o", "--output",
        type=Path,
        default=None,
        help="Output log file path (default: stdout)"
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log every batch, not just jumps and rejections"
    )

    parser.add_argument(
        "-w", "--word-by-word",
        action="store_true",
        help="Submit the transcript one word at a time"
    )

    parser.add_argument(
        "-p", "--precision",
        type=float,
        default=65.0,
        help="Match precision 0-100 (default: 65)"
    )

    args: argparse.Namespace = parser.parse_args()

    # Validate inputs
    if not args.transcript.exists():
        print(
            f"Error: Transcript file not found: {args.transcript}", file=sys.stderr)
        sys.exit(1)

    if not args.script.exists():
        print(f"Error: Script file not found: {args.script}", file=sys.stderr)
        sys.exit(1)

    try:
        transcript_lines: list[str] = load_transcript(args.transcript)
        script_text: str = load_script(args.script)
    except OSError as e:
        print(f"Error loading files: {e}", file=sys.stderr)
        sys.exit(1)

    if not transcript_lines:
        print("Error: No transcript lines found", file=sys.stderr)
        sys.exit(1)

    matcher = SegmentMatcher(precision=args.precision)

    if args.output:
        with open(args.output, 'w', encoding='utf-8') as f:
            asyncio.run(replay_transcript(
                transcript_lines, script_text, f, args.verbose,
                args.word_by_word, matcher
            ))
        print(f"Debug log written to: {args.output}")
    else:
        asyncio.run(replay_transcript(
            transcript_lines, script_text, sys.stdout, args.verbose,
            args.word_by_word, matcher
        ))


if __name__ == "__main__":
    main()
