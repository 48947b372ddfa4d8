# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Web server for promptalign.
Accepts scripts, recognized words and navigation over a WebSocket and
pushes alignment updates back to every connected display.
"""

import asyncio
import contextlib
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from aiohttp import web

from .config import load_config, save_config, update_config_matching
from .recognition import FinalWordBatcher, RecognitionResult
from .tracker import AlignmentTracker, AlignmentUpdate, Rejection

logger = logging.getLogger(__name__)

MessageHandler = Callable[[web.WebSocketResponse, dict[str, Any]], Awaitable[None]]


def _int_field(data: dict[str, Any], key: str, default: int = 0) -> int:
    """Read an integer field from a client message."""
    value: object = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        return default
    try:
        return int(value)
    except ValueError:
        return default


def position_message(update: AlignmentUpdate) -> dict[str, object]:
    """Build the position broadcast for an alignment update."""
    return {
        "type": "position",
        "displayPosition": update.display_position,
        "matchedDisplayIndices": list(update.matched_display_indices),
        "originalPosition": update.original_position,
        "attachment": update.attachment.name if update.attachment else None,
        "isManual": update.is_manual,
    }


def rejection_message(rejection: Rejection) -> dict[str, object]:
    """Build the diagnostic broadcast for a rejected batch."""
    return {
        "type": "rejected",
        "reason": rejection.reason,
        "detail": rejection.detail,
    }


class WebServer:
    """
    Serves the alignment engine to display clients over WebSocket.

    The server is the script source, recognition source and display sink
    for one AlignmentTracker.
    """

    def __init__(
        self,
        tracker: AlignmentTracker | None = None,
        host: str = "127.0.0.1",
        port: int = 8000,
        debounce_ms: int = 100
    ) -> None:
        self.host: str = host
        self.port: int = port
        self.app: web.Application = web.Application()
        self.websockets: set[web.WebSocketResponse] = set()
        self.runner: web.AppRunner | None = None
        self._pending_sends: set[asyncio.Task[None]] = set()

        self.tracker: AlignmentTracker = tracker or AlignmentTracker()
        self.tracker.on_alignment_update = self._on_alignment_update
        self.tracker.on_rejected = self._on_rejected
        self.batcher: FinalWordBatcher = FinalWordBatcher(
            self.tracker.enqueue, debounce_ms=debounce_ms)

        self.script_text: str = self.tracker.parsed_script.raw_text

        self._setup_routes()

    def _setup_routes(self) -> None:
        """Set up HTTP routes."""
        self.app.router.add_get('/ws', self._handle_websocket)
        self.app.router.add_post('/script', self._handle_script_upload)
        self.app.router.add_get('/state', self._handle_get_state)

    def script_state(self) -> dict[str, object]:
        """Describe the loaded script for clients."""
        parsed = self.tracker.parsed_script
        return {
            "script": self.script_text,
            "displayTokens": [
                {
                    "text": token.text,
                    "wordIndex": token.word_index,
                    "attachment": token.attachment.name if token.attachment else None,
                }
                for token in parsed.display_tokens
            ],
            "attachments": [
                {
                    "name": a.name,
                    "content": a.content,
                    "startIndex": a.start_index,
                    "endIndex": a.end_index,
                }
                for a in parsed.attachments
            ],
            "totalWords": parsed.total_display_words,
        }

    def tracking_state(self) -> dict[str, object]:
        """Describe the current cursor for clients."""
        return {
            "cursor": self.tracker.get_cursor(),
            "displayPosition": self.tracker.get_display_position(),
            "precision": self.tracker.matcher.precision,
            "stats": self.tracker.stats.to_dict(),
        }

    async def _handle_websocket(self, request: web.Request) -> web.WebSocketResponse:
        """Handle WebSocket connections for real-time updates."""
        ws = web.WebSocketResponse()
        await ws.prepare(request)

        self.websockets.add(ws)
        logger.info("WebSocket connected. Total: %d", len(self.websockets))

        try:
            await ws.send_json({
                "type": "init",
                **self.script_state(),
                **self.tracking_state(),
            })

            async for msg in ws:
                if msg.type == web.WSMsgType.TEXT:
                    try:
                        data = json.loads(msg.data)
                    except json.JSONDecodeError:
                        logger.warning("Ignoring malformed WebSocket message")
                        continue
                    if isinstance(data, dict):
                        await self._handle_ws_message(ws, data)
                elif msg.type == web.WSMsgType.ERROR:
                    logger.error("WebSocket error: %s", ws.exception())
        finally:
            self.websockets.discard(ws)
            logger.info("WebSocket disconnected. Total: %d", len(self.websockets))

        return ws

    async def _handle_ws_message(self, ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        """Handle incoming WebSocket messages using dispatch pattern."""
        msg_type: object | None = data.get("type")
        if not msg_type:
            return

        handlers: dict[str, MessageHandler] = {
            "script": self._on_script_message,
            "words": self._on_words_message,
            "transcript": self._on_transcript_message,
            "jump_to": self._on_jump_to_message,
            "reset": self._on_reset_message,
            "settings": self._on_settings_message,
            "save_config": self._on_save_config_message,
        }

        handler: MessageHandler | None = handlers.get(str(msg_type))
        if handler:
            await handler(ws, data)
        else:
            logger.warning("Unhandled WebSocket message: %s", msg_type)

    async def load_script(self, script_text: str) -> None:
        """Replace the script and tell every client."""
        self.script_text = script_text
        self.batcher.reset()
        self.tracker.load_script(script_text)
        await self.broadcast({"type": "script_loaded", **self.script_state()})

    async def _on_script_message(self, _ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        """Handle script update message."""
        await self.load_script(str(data.get("text", "")))

    async def _on_words_message(self, _ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        """Handle a batch of already-final recognized words."""
        words: object = data.get("words", [])
        if not isinstance(words, list):
            logger.warning("Ignoring words message without a word list")
            return
        self.tracker.enqueue([str(w) for w in words])

    async def _on_transcript_message(self, _ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        """Handle a raw recognition result (partial or final)."""
        self.batcher.on_result(RecognitionResult(
            text=str(data.get("text", "")),
            is_partial=bool(data.get("isPartial", False)),
        ))

    async def _on_jump_to_message(self, _ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        """Handle jump to position message (display word index)."""
        display_index: int = _int_field(data, "wordIndex")
        self.batcher.cancel()
        self.tracker.update_position(
            self.tracker.mapper.to_original_index(display_index))

    async def _on_reset_message(self, _ws: web.WebSocketResponse, _data: dict[str, Any]) -> None:
        """Handle reset message."""
        self.batcher.reset()
        self.tracker.reset()
        await self.broadcast({"type": "reset", **self.tracking_state()})

    async def _on_settings_message(self, _ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        """Handle settings update message."""
        settings: object = data.get("settings", {})
        if isinstance(settings, dict) and "precision" in settings:
            try:
                self.tracker.matcher.set_precision(float(settings["precision"]))
            except (TypeError, ValueError):
                logger.warning("Ignoring invalid precision: %r", settings["precision"])
        await self.broadcast({
            "type": "settings_updated",
            "precision": self.tracker.matcher.precision,
        })

    async def _on_save_config_message(self, ws: web.WebSocketResponse, _data: dict[str, Any]) -> None:
        """Persist the current matcher settings to the config file."""
        try:
            config = load_config()
            config = update_config_matching(
                config, {"precision": self.tracker.matcher.precision})
            success: bool = save_config(config)
            await ws.send_json({
                "type": "config_saved",
                "success": success
            })
        except Exception as e:  # pylint: disable=broad-exception-caught
            logger.error("Failed to save config: %s", e)
            await ws.send_json({
                "type": "config_saved",
                "success": False,
                "error": str(e)
            })

    async def _handle_script_upload(self, request: web.Request) -> web.Response:
        """Handle script upload via POST."""
        try:
            data: dict[str, object] = await request.json()
        except json.JSONDecodeError:
            return web.json_response(
                {"status": "error", "message": "Invalid JSON"}, status=400)
        await self.load_script(str(data.get("text", "")))
        return web.json_response({
            "status": "ok",
            "totalWords": self.tracker.parsed_script.total_display_words,
        })

    async def _handle_get_state(self, _request: web.Request) -> web.Response:
        """Get current tracking state."""
        return web.json_response(self.tracking_state())

    def _on_alignment_update(self, update: AlignmentUpdate) -> None:
        self._schedule_broadcast(position_message(update))

    def _on_rejected(self, rejection: Rejection) -> None:
        self._schedule_broadcast(rejection_message(rejection))

    def _schedule_broadcast(self, message: dict[str, object]) -> None:
        """Broadcast from a synchronous tracker callback."""
        task = asyncio.get_running_loop().create_task(self.broadcast(message))
        self._pending_sends.add(task)
        task.add_done_callback(self._pending_sends.discard)

    async def broadcast(self, message: dict[str, object]) -> None:
        """Send a message to all connected WebSocket clients."""
        if not self.websockets:
            return

        dead: set[web.WebSocketResponse] = set()
        for ws in list(self.websockets):
            try:
                await ws.send_json(message)
            except (ConnectionError, ConnectionResetError, RuntimeError) as e:
                logger.warning("Error sending to WebSocket: %s", e)
                dead.add(ws)

        self.websockets -= dead

    async def start(self) -> None:
        """Start the web server."""
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        site: web.TCPSite = web.TCPSite(self.runner, self.host, self.port)
        await site.start()
        print(f"Web server running at http://{self.host}:{self.port}")

    async def stop(self) -> None:
        """Stop the web server."""
        self.batcher.cancel()
        # Close all WebSocket connections
        for ws in list(self.websockets):
            with contextlib.suppress(Exception):
                await ws.close()
        self.websockets.clear()

        if self.runner:
            await self.runner.cleanup()
