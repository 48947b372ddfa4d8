"""
promptalign - Follow a speaker through a script in real time.

Aligns batches of recognized speech against a script with approximate
segment matching and reports the reading position in display coordinates.
"""

__version__ = "0.1.0"

from .matcher import MatchResult, SegmentMatcher
from .position_map import PositionMapper
from .script_parser import Attachment, ParsedScript, parse_script
from .server import WebServer
from .threaded_tracker import ThreadedAlignmentTracker
from .tracker import AlignmentTracker, AlignmentUpdate, Rejection

__all__ = [
    "Attachment",
    "ParsedScript",
    "parse_script",
    "PositionMapper",
    "MatchResult",
    "SegmentMatcher",
    "AlignmentTracker",
    "AlignmentUpdate",
    "Rejection",
    "ThreadedAlignmentTracker",
    "WebServer",
]
