# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Threaded host for AlignmentTracker.

Runs the tracker on a worker thread with its own event loop, so callers
that are not themselves asyncio code (or whose loop must never wait on a
search) can hand over recognized words without blocking.
"""

import asyncio
import contextlib
import logging
import queue
import threading
import time
from dataclasses import dataclass
from typing import Any

from .matcher import SegmentMatcher
from .tracker import AlignmentTracker, AlignmentUpdate, Rejection

logger = logging.getLogger(__name__)


def _put_dropping_oldest(target: queue.Queue[Any], item: Any) -> None:
    """Put an item on a bounded queue, discarding the oldest entry when full."""
    while True:
        try:
            target.put_nowait(item)
            return
        except queue.Full:
            with contextlib.suppress(queue.Empty):
                target.get_nowait()


@dataclass
class AlignmentRequest:
    """A batch of recognized words to align."""
    words: list[str]
    search_start: int | None
    timestamp: float
    request_id: int


@dataclass
class ControlCommand:
    """Control command for the worker thread."""
    command: str  # 'load_script', 'update_position', 'reset', 'shutdown'
    param: Any = None


class ThreadedAlignmentTracker:
    """
    Thread-safe wrapper around AlignmentTracker.

    Word batches and control commands share one queue, so a reset or
    manual jump is applied exactly between the batches it was issued
    between.

    Usage:
        tracker = ThreadedAlignmentTracker(script_text)
        tracker.submit_words(["Welcome", "to", "our"])

        update = tracker.get_latest_update(timeout=0.5)
        if update:
            send_to_ui(update.display_position)
    """

    def __init__(
        self,
        script_text: str = "",
        matcher_settings: dict[str, Any] | None = None,
        tracker_settings: dict[str, Any] | None = None,
        max_queue_size: int = 10,
        max_result_queue_size: int = 100
    ):
        """
        Initialize the threaded tracker.

        Args:
            script_text: The script text to track
            matcher_settings: Keyword arguments for SegmentMatcher
            tracker_settings: Keyword arguments for AlignmentTracker
            max_queue_size: Pending requests allowed before batches are dropped
            max_result_queue_size: Unread updates and rejections kept; the
                oldest is dropped when full
        """
        self.script_text = script_text
        self.matcher_settings = matcher_settings or {}
        self.tracker_settings = tracker_settings or {}
        self.max_queue_size = max_queue_size

        # Queues for communication
        self.request_queue: queue.Queue[AlignmentRequest | ControlCommand] = queue.Queue(
            maxsize=max_queue_size
        )
        self.result_queue: queue.Queue[AlignmentUpdate] = queue.Queue(
            maxsize=max_result_queue_size
        )
        self.rejection_queue: queue.Queue[Rejection] = queue.Queue(
            maxsize=max_result_queue_size
        )

        # Thread control
        self.worker_thread: threading.Thread | None = None
        self.shutdown_flag = threading.Event()
        self.started = threading.Event()

        # Cached state (thread-safe with lock)
        self.state_lock = threading.Lock()
        self.latest_update: AlignmentUpdate | None = None
        self.request_counter = 0

        self._start_worker()

        self.started.wait(timeout=5.0)
        if not self.started.is_set():
            raise RuntimeError("Worker thread failed to start")

    def _start_worker(self) -> None:
        """Start the worker thread."""
        self.worker_thread = threading.Thread(
            target=self._worker_loop,
            name="AlignmentWorker",
            daemon=True
        )
        self.worker_thread.start()

    def _worker_loop(self) -> None:
        """Main loop for the worker thread."""
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            # The tracker belongs to the worker thread and its loop
            tracker = AlignmentTracker(
                self.script_text,
                matcher=SegmentMatcher(**self.matcher_settings),
                on_alignment_update=self._publish_update,
                on_rejected=self._publish_rejection,
                **self.tracker_settings
            )

            logger.info("ThreadedAlignmentTracker worker started")
            self.started.set()

            while not self.shutdown_flag.is_set():
                try:
                    # Timeout so the shutdown flag is checked regularly
                    item = self.request_queue.get(timeout=0.1)
                except queue.Empty:
                    continue

                try:
                    if isinstance(item, ControlCommand):
                        self._handle_control_command(tracker, item)
                    elif isinstance(item, AlignmentRequest):
                        self._handle_alignment_request(loop, tracker, item)
                except Exception as e:  # pylint: disable=broad-exception-caught
                    logger.error("Error in worker loop: %s", e, exc_info=True)
                finally:
                    self.request_queue.task_done()

        finally:
            loop.close()
            logger.info("ThreadedAlignmentTracker worker stopped")

    def _handle_control_command(self, tracker: AlignmentTracker, cmd: ControlCommand) -> None:
        """Handle control commands."""
        if cmd.command == 'load_script':
            tracker.load_script(cmd.param)
            with self.state_lock:
                self.script_text = cmd.param
                self.latest_update = None

        elif cmd.command == 'update_position':
            tracker.update_position(cmd.param)
            logger.debug("Tracker moved to %d", cmd.param)

        elif cmd.command == 'reset':
            tracker.reset()
            with self.state_lock:
                self.latest_update = None
            logger.debug("Tracker reset")

        elif cmd.command == 'shutdown':
            self.shutdown_flag.set()

    def _handle_alignment_request(
        self,
        loop: asyncio.AbstractEventLoop,
        tracker: AlignmentTracker,
        req: AlignmentRequest
    ) -> None:
        """Align one batch on the worker's event loop."""
        start_time = time.perf_counter()
        loop.run_until_complete(tracker.submit(req.words, req.search_start))
        logger.debug("Request %d processed in %.2fms",
                     req.request_id, (time.perf_counter() - start_time) * 1000)

    def _publish_update(self, update: AlignmentUpdate) -> None:
        with self.state_lock:
            self.latest_update = update
        _put_dropping_oldest(self.result_queue, update)

    def _publish_rejection(self, rejection: Rejection) -> None:
        _put_dropping_oldest(self.rejection_queue, rejection)

    def _put_command(self, cmd: ControlCommand) -> None:
        try:
            self.request_queue.put_nowait(cmd)
        except queue.Full:
            logger.warning("Failed to queue %s command (queue full)", cmd.command)

    def submit_words(self, words: list[str], search_start: int | None = None) -> bool:
        """
        Submit a batch of recognized words (non-blocking).

        Returns:
            True if the batch was queued, False if it was dropped
        """
        with self.state_lock:
            self.request_counter += 1
            request_id = self.request_counter

        request = AlignmentRequest(
            words=list(words),
            search_start=search_start,
            timestamp=time.monotonic(),
            request_id=request_id
        )

        try:
            self.request_queue.put_nowait(request)
            return True
        except queue.Full:
            logger.warning("Backpressure: dropping batch %s (queue full)", words)
            return False

    def get_latest_update(self, timeout: float = 0) -> AlignmentUpdate | None:
        """
        Get the next alignment update.

        Args:
            timeout: How long to wait for an update (0 = don't wait)

        Returns:
            The oldest unread update, or None if none is available
        """
        try:
            if timeout > 0:
                return self.result_queue.get(timeout=timeout)
            return self.result_queue.get_nowait()
        except queue.Empty:
            return None

    def get_cached_update(self) -> AlignmentUpdate | None:
        """Get the most recent update without consuming from the queue."""
        with self.state_lock:
            return self.latest_update

    def get_rejections(self) -> list[Rejection]:
        """Drain and return the rejections reported so far."""
        rejections: list[Rejection] = []
        while True:
            try:
                rejections.append(self.rejection_queue.get_nowait())
            except queue.Empty:
                return rejections

    def load_script(self, script_text: str) -> None:
        """Replace the script."""
        self._put_command(ControlCommand(command='load_script', param=script_text))

    def update_position(self, original_index: int) -> None:
        """Move the cursor on the speaker's behalf (original word index)."""
        self._put_command(ControlCommand(command='update_position', param=original_index))

    def reset(self) -> None:
        """Reset tracker to the beginning."""
        self._put_command(ControlCommand(command='reset'))

    def wait_until_idle(self, timeout: float = 5.0) -> bool:
        """
        Block until every queued request has been handled.

        Returns:
            True if the queue drained within the timeout
        """
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if self.request_queue.unfinished_tasks == 0:
                return True
            time.sleep(0.01)
        return False

    def shutdown(self) -> None:
        """Shutdown the worker thread."""
        try:
            self.request_queue.put(ControlCommand(command='shutdown'), timeout=1.0)
        except queue.Full:
            pass

        self.shutdown_flag.set()

        if self.worker_thread and self.worker_thread.is_alive():
            self.worker_thread.join(timeout=2.0)

    def __del__(self) -> None:
        """Cleanup on deletion."""
        self.shutdown()
