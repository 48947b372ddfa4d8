"""
Main promptalign application.
Wires the alignment tracker to the web server and runs until interrupted.
"""

import argparse
import asyncio
import contextlib
import logging
import signal
from pathlib import Path

from . import debug_log
from .config import (
    DEFAULT_CONFIG,
    AlignmentSettings,
    Config,
    MatchingSettings,
    get_alignment_settings,
    get_config_path,
    get_matching_settings,
    load_config,
    save_config,
)
from .matcher import SegmentMatcher
from .server import WebServer
from .tracker import AlignmentTracker

logger = logging.getLogger(__name__)


class PromptAlignApp:
    """
    Main promptalign application that coordinates all components.
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 8000,
        script_path: Path | None = None,
        debounce_ms: int = 100,
        matching_settings: MatchingSettings | None = None,
        alignment_settings: AlignmentSettings | None = None
    ) -> None:
        self.host: str = host
        self.port: int = port
        self.script_path: Path | None = script_path
        self.debounce_ms: int = debounce_ms
        # type: ignore[assignment]
        self.matching_settings: MatchingSettings = (
            matching_settings or DEFAULT_CONFIG["matching"]
        )
        # type: ignore[assignment]
        self.alignment_settings: AlignmentSettings = (
            alignment_settings or DEFAULT_CONFIG["alignment"]
        )

        self.tracker: AlignmentTracker | None = None
        self.server: WebServer | None = None
        self.running: bool = False
        self._shutdown: asyncio.Event | None = None

    def _read_script(self) -> str:
        """Read the startup script, if one was given."""
        if self.script_path is None:
            return ""
        try:
            return self.script_path.read_text(encoding='utf-8')
        except OSError as e:
            print(f"Warning: Could not read script {self.script_path}: {e}")
            return ""

    async def start(self) -> None:
        """Start the application and serve until shutdown is requested."""
        print("Starting promptalign...")
        self._shutdown = asyncio.Event()

        self.tracker = AlignmentTracker(
            self._read_script(),
            matcher=SegmentMatcher(**self.matching_settings),
            **self.alignment_settings
        )

        print("Starting web server...")
        self.server = WebServer(
            tracker=self.tracker,
            host=self.host,
            port=self.port,
            debounce_ms=self.debounce_ms
        )
        await self.server.start()
        self.running = True

        print("\n✓ promptalign ready!")
        print(f"  Connect display clients to ws://{self.host}:{self.port}/ws")
        print("  Press Ctrl+C to stop\n")

        await self._shutdown.wait()

    def request_shutdown(self) -> None:
        """Ask start() to return. Must be called on the event loop thread."""
        self.running = False
        if self._shutdown is not None:
            self._shutdown.set()

    async def stop(self) -> None:
        """Stop the application."""
        print("\nStopping promptalign...")
        self.running = False

        if self.server:
            await self.server.stop()

        if self.tracker:
            stats = self.tracker.stats
            logger.info("Searches: %d, average %.2fms, max %.2fms",
                        stats.total_searches, stats.average_time * 1000,
                        stats.max_search_time * 1000)

        print("promptalign stopped.")


def main() -> None:
    """Main entry point."""
    # Configure logging - minimal console output
    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S"
    )

    # Load config first to use as defaults
    config: Config = load_config()
    matching: MatchingSettings = get_matching_settings(config)

    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="promptalign - Align live speech recognition to a script"
    )

    parser.add_argument(
        "--script", "-s",
        type=Path,
        default=config.get("script_path"),
        help="Script file to load at startup (default: from config)"
    )

    parser.add_argument(
        "--host",
        default=config.get("host", "127.0.0.1"),
        help="Web server host (default: from config or 127.0.0.1)"
    )

    parser.add_argument(
        "--port", "-p",
        type=int,
        default=config.get("port", 8000),
        help="Web server port (default: from config or 8000)"
    )

    parser.add_argument(
        "--precision",
        type=float,
        default=matching["precision"],
        help="Match precision 0-100 (default: from config or 65)"
    )

    parser.add_argument(
        "--debounce-ms",
        type=int,
        default=config.get("debounce_ms", 100),
        help="Delay for coalescing final recognition results (default: from config or 100)"
    )

    parser.add_argument(
        "--save-config",
        action="store_true",
        help="Save current CLI options to config file and exit"
    )

    parser.add_argument(
        "--debug-log",
        action="store_true",
        help="Enable debug logging to ./logs/"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Show informational log messages"
    )

    args: argparse.Namespace = parser.parse_args()

    if args.verbose:
        logging.getLogger("promptalign").setLevel(logging.INFO)

    matching["precision"] = args.precision

    if args.save_config:
        config["host"] = args.host
        config["port"] = args.port
        config["script_path"] = str(args.script) if args.script else None
        config["debounce_ms"] = args.debounce_ms
        config["matching"] = matching

        if save_config(config):
            print(f"Configuration saved to {get_config_path()}")
        return

    # Enable debug logging if requested
    if args.debug_log:
        debug_log.enable()
        debug_log.clear_logs()
        print("Debug logging enabled (logs will be saved to ./logs/)")

    app: PromptAlignApp = PromptAlignApp(
        host=args.host,
        port=args.port,
        script_path=Path(args.script) if args.script else None,
        debounce_ms=args.debounce_ms,
        matching_settings=matching,
        alignment_settings=get_alignment_settings(config)
    )

    # Handle shutdown gracefully
    loop: asyncio.AbstractEventLoop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def shutdown(sig: int, frame: object) -> None:
        """Handle shutdown signals (SIGINT, SIGTERM) gracefully."""
        print("\nReceived shutdown signal...")
        loop.call_soon_threadsafe(app.request_shutdown)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    try:
        loop.run_until_complete(app.start())
    except KeyboardInterrupt:
        app.running = False
    finally:
        # Ensure clean shutdown
        with contextlib.suppress(Exception):
            loop.run_until_complete(app.stop())
        # Cancel any remaining tasks
        pending: set[asyncio.Task[object]] = asyncio.all_tasks(loop)
        for task in pending:
            task.cancel()
        # Allow cancelled tasks to complete
        if pending:
            loop.run_until_complete(asyncio.gather(
                *pending, return_exceptions=True))
        loop.close()


if __name__ == "__main__":
    main()
