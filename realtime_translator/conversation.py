#!/usr/bin/env python3
"""
Server-side conversation state rebuilt from realtime events.
"""

import base64
import binascii
import logging
from typing import Any, Callable, Dict, List, Optional

from .events import (
    AudioDelta,
    AudioTranscriptDelta,
    ConversationItemCreated,
    ConversationItemDeleted,
    ConversationItemTruncated,
    EventPayload,
    InputAudioTranscriptionCompleted,
    OutputItemAdded,
    OutputItemDone,
    TextDelta,
)
from .items import ConversationItem, ConversationUpdate, FormattedContent

logger = logging.getLogger(__name__)

BYTES_PER_MS = 24000 * 2 // 1000  # pcm16 @ 24 kHz


def _formatted_from_content(content: List[Dict[str, Any]]) -> FormattedContent:
    text_parts = []
    transcript_parts = []
    for part in content or []:
        part_type = part.get("type")
        if part_type in ("text", "input_text", "output_text"):
            text_parts.append(part.get("text") or "")
        elif part_type in ("audio", "input_audio", "output_audio"):
            transcript_parts.append(part.get("transcript") or "")
    return FormattedContent(
        text="".join(text_parts) if text_parts else None,
        transcript="".join(transcript_parts) if transcript_parts else None,
    )


def _item_from_payload(payload: Dict[str, Any]) -> ConversationItem:
    role = payload.get("role") or "assistant"
    if role not in ("user", "assistant", "system"):
        role = "assistant"
    status = payload.get("status") or "in_progress"
    if status not in ("in_progress", "completed", "incomplete"):
        status = "in_progress"
    return ConversationItem(
        id=payload["id"],
        type=payload.get("type") or "message",
        role=role,
        status=status,
        formatted=_formatted_from_content(payload.get("content") or []),
    )


class RealtimeConversation:
    """Items of the current conversation, in first-seen order."""

    def __init__(self):
        self._items: Dict[str, ConversationItem] = {}
        self._order: List[str] = []
        self._handlers: Dict[type, Callable[[Any], Optional[ConversationUpdate]]] = {
            ConversationItemCreated: self._item_created,
            OutputItemAdded: self._output_item_added,
            OutputItemDone: self._output_item_done,
            ConversationItemDeleted: self._item_deleted,
            ConversationItemTruncated: self._item_truncated,
            InputAudioTranscriptionCompleted: self._transcription_completed,
            TextDelta: self._text_delta,
            AudioDelta: self._audio_delta,
            AudioTranscriptDelta: self._transcript_delta,
        }

    def get_items(self) -> List[ConversationItem]:
        return [self._items[item_id] for item_id in self._order]

    def get_item(self, item_id: str) -> Optional[ConversationItem]:
        return self._items.get(item_id)

    def clear(self):
        self._items.clear()
        self._order.clear()

    def process_event(self, event: EventPayload) -> Optional[ConversationUpdate]:
        """Apply a server event; returns the touched item, if any."""
        handler = self._handlers.get(type(event))
        if handler is None:
            return None
        return handler(event)

    def _upsert(self, payload: Dict[str, Any]) -> Optional[ConversationItem]:
        if not payload.get("id"):
            return None
        existing = self._items.get(payload["id"])
        incoming = _item_from_payload(payload)
        if existing is None:
            self._items[incoming.id] = incoming
            self._order.append(incoming.id)
            return incoming
        if payload.get("status"):
            existing.status = incoming.status
        if payload.get("role"):
            existing.role = incoming.role
        if incoming.formatted.has_text() and not existing.formatted.has_text():
            existing.formatted.text = incoming.formatted.text
        if incoming.formatted.transcript and not existing.formatted.transcript:
            existing.formatted.transcript = incoming.formatted.transcript
        return existing

    def _item_created(self, event: ConversationItemCreated):
        item = self._upsert(event.item)
        return ConversationUpdate(item=item) if item else None

    def _output_item_added(self, event: OutputItemAdded):
        item = self._upsert(event.item)
        return ConversationUpdate(item=item) if item else None

    def _output_item_done(self, event: OutputItemDone):
        item = self._upsert(event.item)
        if item is None:
            return None
        if not event.item.get("status"):
            item.status = "completed"
        return ConversationUpdate(item=item)

    def _item_deleted(self, event: ConversationItemDeleted):
        item = self._items.pop(event.item_id, None)
        if item is None:
            return None
        self._order.remove(event.item_id)
        return ConversationUpdate(item=item)

    def _item_truncated(self, event: ConversationItemTruncated):
        item = self._items.get(event.item_id)
        if item is None:
            return None
        end = event.audio_end_ms * BYTES_PER_MS
        if item.formatted.audio is not None:
            item.formatted.audio = item.formatted.audio[:end]
        item.formatted.transcript = ""
        item.formatted.file = None
        return ConversationUpdate(item=item)

    def _transcription_completed(self, event: InputAudioTranscriptionCompleted):
        item = self._items.get(event.item_id)
        if item is None:
            return None
        item.formatted.transcript = event.transcript or " "
        return ConversationUpdate(item=item, delta={"transcript": event.transcript})

    def _text_delta(self, event: TextDelta):
        item = self._items.get(event.item_id)
        if item is None:
            logger.debug("Text delta for unknown item %s", event.item_id)
            return None
        item.formatted.text = (item.formatted.text or "") + event.delta
        return ConversationUpdate(item=item, delta={"text": event.delta})

    def _audio_delta(self, event: AudioDelta):
        item = self._items.get(event.item_id)
        if item is None:
            logger.debug("Audio delta for unknown item %s", event.item_id)
            return None
        try:
            chunk = base64.b64decode(event.delta)
        except (binascii.Error, ValueError):
            logger.warning("Undecodable audio delta for item %s", event.item_id)
            return None
        item.formatted.audio = (item.formatted.audio or b"") + chunk
        return ConversationUpdate(item=item, delta={"audio": chunk})

    def _transcript_delta(self, event: AudioTranscriptDelta):
        item = self._items.get(event.item_id)
        if item is None:
            return None
        item.formatted.transcript = (item.formatted.transcript or "") + event.delta
        return ConversationUpdate(item=item, delta={"transcript": event.delta})
