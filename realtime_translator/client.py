#!/usr/bin/env python3
"""
Realtime conversation service: the interface the controller relies on and a
websocket client implementing it.
"""

import asyncio
import base64
import copy
import json
import logging
from typing import Any, Callable, Dict, List, Optional, Protocol

from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from .conversation import RealtimeConversation
from .events import (
    ErrorEvent,
    EventBus,
    Handler,
    RealtimeEvent,
    SpeechStarted,
    new_event_id,
)
from .items import ConversationItem

logger = logging.getLogger(__name__)

DEFAULT_SESSION: Dict[str, Any] = {
    "modalities": ["text", "audio"],
    "instructions": "",
    "voice": "verse",
    "input_audio_format": "pcm16",
    "output_audio_format": "pcm16",
    "input_audio_transcription": None,
    "turn_detection": None,
    "tools": [],
    "tool_choice": "auto",
    "temperature": 0.8,
    "max_response_output_tokens": 4096,
}


class RealtimeConnectionError(ConnectionError):
    """The service could not be reached, or an operation needs a live connection."""


class Conversation(Protocol):
    def get_items(self) -> List[ConversationItem]: ...


class ConversationService(Protocol):
    """What the session controller needs from the remote service."""

    conversation: Conversation

    @property
    def is_connected(self) -> bool: ...

    async def connect(self) -> None: ...

    async def disconnect(self) -> None: ...

    async def reset(self) -> None: ...

    def update_session(self, **fields: Any) -> None: ...

    def send_user_message_content(self, parts: List[Dict[str, Any]]) -> None: ...

    def append_input_audio(self, frame: bytes) -> None: ...

    def on(self, name: str, handler: Handler) -> Callable[[], None]: ...

    def off(self, name: str, handler: Optional[Handler] = None) -> None: ...


class RealtimeClient:
    """Websocket client for the realtime conversation API.

    Server events are published on ``realtime.event`` and folded into
    ``conversation``; item changes are published on ``conversation.updated``.
    Outbound events go through a queue drained by a single sender task, so
    callers never wait on the socket.
    """

    def __init__(
        self,
        api_key: Optional[str],
        url: str = "wss://api.openai.com/v1/realtime",
        model: str = "gpt-4o-realtime-preview",
        connector=None,
    ):
        self.api_key = api_key
        self.url = url
        self.model = model
        self._connector = connector or ws_connect
        self.bus = EventBus()
        self.conversation = RealtimeConversation()
        self.session: Dict[str, Any] = copy.deepcopy(DEFAULT_SESSION)
        self._ws = None
        self._outbox: Optional[asyncio.Queue] = None
        self._receiver: Optional[asyncio.Task] = None
        self._sender: Optional[asyncio.Task] = None

    @classmethod
    def from_config(cls, config) -> "RealtimeClient":
        return cls(api_key=config.api_key, url=config.realtime_url, model=config.model)

    @property
    def is_connected(self) -> bool:
        return self._ws is not None

    # Subscriptions

    def on(self, name: str, handler: Handler) -> Callable[[], None]:
        return self.bus.on(name, handler)

    def off(self, name: str, handler: Optional[Handler] = None):
        self.bus.off(name, handler)

    # Lifecycle

    async def connect(self):
        if self.is_connected:
            raise RealtimeConnectionError("Already connected")
        if not self.api_key:
            raise RealtimeConnectionError("Missing API key")
        endpoint = f"{self.url}?model={self.model}"
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "OpenAI-Beta": "realtime=v1",
        }
        logger.info("Connecting to %s", endpoint)
        try:
            ws = await self._connector(endpoint, additional_headers=headers, max_size=None)
        except (OSError, WebSocketException, asyncio.TimeoutError) as e:
            raise RealtimeConnectionError(f"Could not connect to {endpoint}: {e}") from e
        self._ws = ws
        self._outbox = asyncio.Queue()
        self._receiver = asyncio.create_task(self._receive_loop(ws))
        self._sender = asyncio.create_task(self._send_loop(ws, self._outbox))
        logger.info("Connected")
        self.update_session()

    async def disconnect(self):
        ws, self._ws = self._ws, None
        for task in (self._receiver, self._sender):
            if task is not None and not task.done():
                task.cancel()
        for task in (self._receiver, self._sender):
            if task is not None:
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._receiver = self._sender = None
        self._outbox = None
        if ws is not None:
            try:
                await ws.close()
            except WebSocketException as e:
                logger.debug("Error while closing socket: %s", e)
            logger.info("Disconnected")
        self.conversation.clear()

    async def reset(self):
        """Disconnect, drop every handler and restore the default session."""
        await self.disconnect()
        self.bus.clear()
        self.session = copy.deepcopy(DEFAULT_SESSION)

    # Outbound

    def send(self, event_type: str, data: Optional[Dict[str, Any]] = None):
        if self._outbox is None:
            raise RealtimeConnectionError("Not connected")
        event = {"event_id": new_event_id(), "type": event_type}
        event.update(data or {})
        self._outbox.put_nowait(event)

    def update_session(self, **fields: Any):
        """Merge ``fields`` into the session; pushed immediately when connected."""
        for key, value in fields.items():
            if value is not None:
                self.session[key] = value
        if self.is_connected:
            self.send("session.update", {"session": copy.deepcopy(self.session)})

    def send_user_message_content(self, parts: List[Dict[str, Any]]):
        self.send("conversation.item.create", {
            "item": {"type": "message", "role": "user", "content": parts},
        })
        self.send("response.create")

    def append_input_audio(self, frame: bytes):
        if not self.is_connected:
            logger.debug("Dropping %d bytes of audio: not connected", len(frame))
            return
        if not frame:
            return
        self.send("input_audio_buffer.append", {
            "audio": base64.b64encode(frame).decode("ascii"),
        })

    async def _send_loop(self, ws, outbox: asyncio.Queue):
        while True:
            event = await outbox.get()
            await self.bus.dispatch("realtime.event", RealtimeEvent.client(event))
            try:
                await ws.send(json.dumps(event))
            except ConnectionClosed as e:
                logger.error("Failed to send %s: %s", event["type"], e)
                await self.bus.dispatch("error", {"type": "send_failed", "message": str(e)})
                return

    # Inbound

    async def _receive_loop(self, ws):
        error = None
        try:
            async for message in ws:
                await self._handle_message(message)
        except ConnectionClosed as e:
            error = e
        if self._ws is ws:
            self._ws = None
            self._outbox = None
            if self._sender is not None:
                self._sender.cancel()
        logger.warning("Connection closed%s", f": {error}" if error else "")
        await self.bus.dispatch("close", {"error": error})

    async def _handle_message(self, message):
        try:
            data = json.loads(message)
        except (TypeError, ValueError):
            logger.warning("Ignoring non-JSON message from server")
            return
        if not isinstance(data, dict):
            logger.warning("Ignoring unexpected message from server: %r", data)
            return
        realtime_event = RealtimeEvent.server(data)
        await self.bus.dispatch("realtime.event", realtime_event)
        await self._handle_server_event(realtime_event)

    async def _handle_server_event(self, realtime_event: RealtimeEvent):
        event = realtime_event.event
        if isinstance(event, ErrorEvent):
            await self.bus.dispatch("error", event.error)
            return
        if isinstance(event, SpeechStarted):
            await self.bus.dispatch("conversation.interrupted", event)
        update = self.conversation.process_event(event)
        if update is not None:
            await self.bus.dispatch("conversation.updated", update)
