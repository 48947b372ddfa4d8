#!/usr/bin/env python3
# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Example script demonstrating how to profile the alignment tracker.

Feeds a script back to the tracker in five-word batches, then reports the
matcher's own timing statistics and a cProfile breakdown of the session.
"""

import asyncio
import cProfile
import pstats
import sys
from pathlib import Path

from promptalign.tracker import AlignmentTracker

SCRIPT_TEXT = """
Four score and seven years ago our fathers brought forth on this continent
a new nation, conceived in Liberty, and dedicated to the proposition that
all men are created equal.
[ATTACHMENT:map] Map of the battlefield at Gettysburg [/ATTACHMENT]
Now we are engaged in a great civil war, testing whether that nation, or
any nation so conceived and so dedicated, can long endure.
"""


async def simulate_session(tracker: AlignmentTracker, chunk_size: int = 5) -> None:
    """Read the script aloud in fixed-size batches, skipping attachments."""
    words = tracker.parsed_script.display_words
    for pos in range(0, len(words), chunk_size):
        await tracker.submit(words[pos:pos + chunk_size])

    # Simulate the speaker repeating an earlier sentence
    if len(words) > 30:
        await tracker.submit(words[20:30])


def main():
    """Run a profiled alignment session."""
    if len(sys.argv) > 1:
        script_text = Path(sys.argv[1]).read_text(encoding="utf-8")
    else:
        script_text = SCRIPT_TEXT

    print("=" * 80)
    print("ALIGNMENT PERFORMANCE PROFILING")
    print("=" * 80)

    tracker = AlignmentTracker(script_text)
    print(f"Script loaded: {len(tracker.words)} words "
          f"({tracker.parsed_script.total_display_words} displayed)")
    print()

    profiler = cProfile.Profile()
    profiler.enable()
    asyncio.run(simulate_session(tracker))
    profiler.disable()

    print("Matcher statistics:")
    for key, value in tracker.stats.to_dict().items():
        print(f"  {key}: {value:.3f}" if isinstance(value, float) else f"  {key}: {value}")
    print(f"Final display position: {tracker.get_display_position()} / "
          f"{tracker.parsed_script.total_display_words}")
    print()

    print("=" * 80)
    print("DETAILED cProfile ANALYSIS")
    print("=" * 80)
    pstats.Stats(profiler).sort_stats("cumulative").print_stats(20)


if __name__ == "__main__":
    main()
