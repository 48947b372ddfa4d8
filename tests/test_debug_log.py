"""Tests for the debug_log module enable/disable functionality."""

from pathlib import Path
from unittest import mock

import pytest

from promptalign import debug_log


@pytest.fixture
def log_file(tmp_path: Path):
    """Redirect the alignment log into a temporary directory."""
    log_path = tmp_path / "alignment.log"
    with mock.patch.object(debug_log, "LOG_DIR", tmp_path), \
            mock.patch.object(debug_log, "ALIGNMENT_LOG", log_path):
        yield log_path


class TestDebugLogEnableDisable:
    """Test the enable/disable functionality of debug logging."""

    def setup_method(self):
        """Reset debug log state before each test."""
        debug_log.disable()

    def teardown_method(self):
        """Leave logging disabled for other tests."""
        debug_log.disable()

    def test_disabled_by_default(self):
        """Debug logging should be disabled by default."""
        assert not debug_log.is_enabled()

    def test_enable(self):
        """enable() should turn on debug logging."""
        debug_log.enable()
        assert debug_log.is_enabled()

    def test_disable(self):
        """disable() should turn off debug logging."""
        debug_log.enable()
        debug_log.disable()
        assert not debug_log.is_enabled()

    def test_functions_no_op_when_disabled(self):
        """Nothing touches the filesystem while disabled."""
        with mock.patch.object(debug_log, '_ensure_log_dir') as mock_ensure:
            debug_log.clear_logs()
            debug_log.log_batch(["word"], 0)
            debug_log.log_position_update(0, 1, ["word"], "match")
            debug_log.log_rejection("no-match", "detail")
            mock_ensure.assert_not_called()

    def test_clear_logs_writes_when_enabled(self, log_file: Path):
        """clear_logs() should start a fresh session file when enabled."""
        log_file.write_text("old content\n", encoding="utf-8")
        debug_log.enable()

        debug_log.clear_logs()

        content = log_file.read_text(encoding="utf-8")
        assert "New session started" in content
        assert "old content" not in content

    def test_log_batch_writes_when_enabled(self, log_file: Path):
        """log_batch() should write the search start and words."""
        debug_log.enable()

        debug_log.log_batch(["hello", "world"], 42)

        content = log_file.read_text(encoding="utf-8")
        assert "from=  42" in content
        assert "'hello', 'world'" in content

    def test_log_position_update_writes_when_enabled(self, log_file: Path):
        """log_position_update() should write the move and the words passed."""
        debug_log.enable()

        debug_log.log_position_update(3, 5, ["delta", "echo"], "match")

        content = log_file.read_text(encoding="utf-8")
        assert "POSITION CHANGE: 3 -> 5 (match)" in content
        assert "['delta', 'echo']" in content

    def test_log_rejection_writes_when_enabled(self, log_file: Path):
        """log_rejection() should write the reason."""
        debug_log.enable()

        debug_log.log_rejection("backward-jump", "4 < 10")

        assert "backward-jump" in log_file.read_text(encoding="utf-8")

    @pytest.mark.asyncio
    async def test_tracker_writes_when_enabled(self, log_file: Path):
        """The tracker logs batches and cursor moves."""
        from promptalign.tracker import AlignmentTracker

        debug_log.enable()
        tracker = AlignmentTracker("alpha bravo charlie")

        await tracker.submit(["alpha", "bravo"])
        await tracker.submit(["xyz"])

        content = log_file.read_text(encoding="utf-8")
        assert "POSITION CHANGE: 0 -> 2 (match)" in content
        assert "rejected no-match" in content
