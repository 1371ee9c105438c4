#!/usr/bin/env python3
"""
Typed realtime events and the event bus that carries them.
"""

import asyncio
import logging
import uuid
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Literal, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


class EventPayload(BaseModel):
    """Base of every realtime event; unknown fields are kept as-is."""

    model_config = ConfigDict(extra='allow')

    type: str
    event_id: Optional[str] = None


class UnknownEvent(EventPayload):
    """Any event type this client does not model explicitly."""


# Server events

class SessionCreated(EventPayload):
    session: Dict[str, Any] = Field(default_factory=dict)


class SessionUpdated(EventPayload):
    session: Dict[str, Any] = Field(default_factory=dict)


class ErrorEvent(EventPayload):
    error: Dict[str, Any] = Field(default_factory=dict)


class ConversationItemCreated(EventPayload):
    item: Dict[str, Any]
    previous_item_id: Optional[str] = None


class ConversationItemDeleted(EventPayload):
    item_id: str


class ConversationItemTruncated(EventPayload):
    item_id: str
    audio_end_ms: int = 0


class InputAudioTranscriptionCompleted(EventPayload):
    item_id: str
    transcript: str = ""


class SpeechStarted(EventPayload):
    item_id: Optional[str] = None
    audio_start_ms: Optional[int] = None


class SpeechStopped(EventPayload):
    item_id: Optional[str] = None
    audio_end_ms: Optional[int] = None


class OutputItemAdded(EventPayload):
    item: Dict[str, Any]


class OutputItemDone(EventPayload):
    item: Dict[str, Any]


class TextDelta(EventPayload):
    item_id: str
    delta: str = ""


class AudioDelta(EventPayload):
    item_id: str
    delta: str = ""


class AudioTranscriptDelta(EventPayload):
    item_id: str
    delta: str = ""


class ResponseDone(EventPayload):
    response: Dict[str, Any] = Field(default_factory=dict)


# Client events

class SessionUpdate(EventPayload):
    session: Dict[str, Any]


class InputAudioBufferAppend(EventPayload):
    audio: str


class ConversationItemCreate(EventPayload):
    item: Dict[str, Any]


class ResponseCreate(EventPayload):
    pass


EVENT_TYPES: Dict[str, Type[EventPayload]] = {
    "session.created": SessionCreated,
    "session.updated": SessionUpdated,
    "error": ErrorEvent,
    "conversation.item.created": ConversationItemCreated,
    "conversation.item.added": ConversationItemCreated,
    "conversation.item.deleted": ConversationItemDeleted,
    "conversation.item.truncated": ConversationItemTruncated,
    "conversation.item.input_audio_transcription.completed": InputAudioTranscriptionCompleted,
    "input_audio_buffer.speech_started": SpeechStarted,
    "input_audio_buffer.speech_stopped": SpeechStopped,
    "response.output_item.added": OutputItemAdded,
    "response.output_item.done": OutputItemDone,
    "response.text.delta": TextDelta,
    "response.output_text.delta": TextDelta,
    "response.audio.delta": AudioDelta,
    "response.output_audio.delta": AudioDelta,
    "response.audio_transcript.delta": AudioTranscriptDelta,
    "response.output_audio_transcript.delta": AudioTranscriptDelta,
    "response.done": ResponseDone,
    "session.update": SessionUpdate,
    "input_audio_buffer.append": InputAudioBufferAppend,
    "conversation.item.create": ConversationItemCreate,
    "response.create": ResponseCreate,
}


def parse_event(data: Dict[str, Any]) -> EventPayload:
    """Turn a raw event dict into its typed model.

    Types without a model, or payloads that do not match their model, come
    back as ``UnknownEvent`` with every field preserved.
    """
    event_type = str(data.get("type") or "unknown")
    model = EVENT_TYPES.get(event_type)
    if model is not None:
        try:
            return model.model_validate({**data, "type": event_type})
        except ValueError as e:
            logger.debug("Malformed %s event kept as unknown: %s", event_type, e)
    return UnknownEvent.model_validate({**data, "type": event_type})


def new_event_id() -> str:
    return f"evt_{uuid.uuid4().hex[:20]}"


class RealtimeEvent(BaseModel):
    """One observed event, as shown in the event log."""

    time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    source: Literal["client", "server"]
    count: Optional[int] = None
    event: EventPayload

    @property
    def type(self) -> str:
        return self.event.type

    @classmethod
    def server(cls, data: Dict[str, Any]) -> "RealtimeEvent":
        return cls(source="server", event=parse_event(data))

    @classmethod
    def client(cls, data: Dict[str, Any]) -> "RealtimeEvent":
        return cls(source="client", event=parse_event(data))


Handler = Callable[[Any], Union[None, Awaitable[None]]]


class EventBus:
    """Named channels with ordered, awaited handlers."""

    def __init__(self):
        self._handlers: Dict[str, List[Handler]] = defaultdict(list)

    def on(self, name: str, handler: Handler) -> Callable[[], None]:
        """Register ``handler`` for ``name``. Returns a function that unregisters it."""
        self._handlers[name].append(handler)

        def unsubscribe():
            self.off(name, handler)

        return unsubscribe

    def off(self, name: str, handler: Optional[Handler] = None):
        """Remove one handler, or every handler of ``name`` when none is given."""
        if handler is None:
            self._handlers.pop(name, None)
            return
        handlers = self._handlers.get(name, [])
        if handler in handlers:
            handlers.remove(handler)

    def clear(self):
        self._handlers.clear()

    def handler_count(self, name: Optional[str] = None) -> int:
        if name is not None:
            return len(self._handlers.get(name, []))
        return sum(len(h) for h in self._handlers.values())

    async def dispatch(self, name: str, payload: Any = None):
        """Run every handler of ``name`` in registration order.

        A failing handler is logged and does not stop the others.
        """
        for handler in list(self._handlers.get(name, [])):
            try:
                result = handler(payload)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception("Handler for %r failed", name)
