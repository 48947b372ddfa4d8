"""
Debug logging for diagnosing alignment decisions.

Writes one log file:
- alignment.log: Recognized batches, cursor moves and rejected matches

Logging is disabled by default. Call enable() to turn it on.
"""

from datetime import datetime
from pathlib import Path
from typing import List

# Log files location (in project root)
LOG_DIR: Path = Path(__file__).parent.parent.parent / "logs"
ALIGNMENT_LOG: Path = LOG_DIR / "alignment.log"

# Global flag to control whether debug logging is enabled
_ENABLED: bool = False  # pylint: disable=invalid-name


def enable() -> None:
    """Enable debug logging."""
    global _ENABLED  # pylint: disable=global-statement
    _ENABLED = True


def disable() -> None:
    """Disable debug logging."""
    global _ENABLED  # pylint: disable=global-statement
    _ENABLED = False


def is_enabled() -> bool:
    """Check if debug logging is enabled."""
    return _ENABLED


def _ensure_log_dir() -> None:
    """Create log directory if it doesn't exist."""
    LOG_DIR.mkdir(exist_ok=True)


def _timestamp() -> str:
    """Get current timestamp."""
    return datetime.now().strftime("%H:%M:%S.%f")[:-3]


def _write(line: str) -> None:
    _ensure_log_dir()
    with open(ALIGNMENT_LOG, 'a', encoding='utf-8') as f:
        f.write(f"[{_timestamp()}] {line}\n")


def clear_logs() -> None:
    """Clear the log file for a fresh session."""
    if not _ENABLED:
        return
    _ensure_log_dir()
    with open(ALIGNMENT_LOG, 'w', encoding='utf-8') as f:
        f.write(
            f"=== New session started at {datetime.now().isoformat()} ===\n\n")


def log_batch(words: List[str], search_start: int) -> None:
    """
    Log a recognized batch as it is dequeued for matching.

    Args:
        words: The words being matched (context included)
        search_start: Original index the search starts from
    """
    if not _ENABLED:
        return
    _write(f"batch          from={search_start:4d} words={words}")


def log_position_update(
    old_pos: int,
    new_pos: int,
    words_in_range: List[str],
    reason: str
) -> None:
    """
    Log a cursor change.

    Args:
        old_pos: Previous cursor (original space)
        new_pos: New cursor (original space)
        words_in_range: The script words between old and new positions
        reason: Why the position changed (match, manual, reset)
    """
    if not _ENABLED:
        return
    _write(f"POSITION CHANGE: {old_pos} -> {new_pos} ({reason})")
    _ensure_log_dir()
    with open(ALIGNMENT_LOG, 'a', encoding='utf-8') as f:
        f.write(f"                 words: {words_in_range}\n")


def log_rejection(reason: str, detail: str) -> None:
    """Log a rejected batch (no-match, backward-jump, empty-script)."""
    if not _ENABLED:
        return
    _write(f"rejected {reason:15} {detail}")
