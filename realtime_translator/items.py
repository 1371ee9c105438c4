#!/usr/bin/env python3
"""
Conversation items and the read-through store that publishes them.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Literal, Optional, Tuple

from pydantic import BaseModel, Field

from .audio import PlayableAudio, decode

logger = logging.getLogger(__name__)

Codec = Callable[[bytes, int, int], PlayableAudio]


class FormattedContent(BaseModel):
    """Accumulated content of an item. Absent values are ``None``."""

    text: Optional[str] = None
    audio: Optional[bytes] = None
    transcript: Optional[str] = None
    file: Optional[PlayableAudio] = None

    def has_text(self) -> bool:
        return self.text is not None and len(self.text) > 0

    def has_audio(self) -> bool:
        return self.audio is not None and len(self.audio) > 0

    def has_file(self) -> bool:
        return self.file is not None


class ConversationItem(BaseModel):
    """One turn of the conversation, identified by a stable id."""

    id: str
    type: str = "message"
    role: Literal["user", "assistant", "system"] = "assistant"
    status: Literal["in_progress", "completed", "incomplete"] = "in_progress"
    formatted: FormattedContent = Field(default_factory=FormattedContent)

    @property
    def is_completed(self) -> bool:
        return self.status == "completed"


class ConversationUpdate(BaseModel):
    """Payload of a ``conversation.updated`` notification."""

    item: ConversationItem
    delta: Optional[Dict[str, Any]] = None


class ConversationItemStore:
    """Read-through cache of the service's conversation.

    Every update re-reads the full item sequence from the service. Completed
    items carrying audio get a decoded ``formatted.file`` before the new
    sequence is published; an item is decoded once per audio payload.
    """

    def __init__(self, service, codec: Optional[Codec] = None, sample_rate: int = 24000):
        self.service = service
        self.codec = codec or decode
        self.sample_rate = sample_rate
        self._items: Tuple[ConversationItem, ...] = ()
        self._decoded: Dict[str, int] = {}
        self._epoch = 0

    @property
    def items(self) -> Tuple[ConversationItem, ...]:
        return self._items

    def __len__(self) -> int:
        return len(self._items)

    def refresh(self) -> Tuple[ConversationItem, ...]:
        """Publish the service's current items without decoding."""
        self._items = tuple(self.service.conversation.get_items())
        return self._items

    def _needs_decode(self, item: ConversationItem) -> bool:
        if not item.is_completed or not item.formatted.has_audio():
            return False
        audio_len = len(item.formatted.audio)
        return not item.formatted.has_file() or self._decoded.get(item.id) != audio_len

    async def update(self, item: Optional[ConversationItem] = None, delta: Optional[Dict[str, Any]] = None) -> bool:
        """Handle a conversation update. Returns False when a clear() raced it."""
        epoch = self._epoch
        items = list(self.service.conversation.get_items())
        for current in items:
            if not self._needs_decode(current):
                continue
            audio = current.formatted.audio
            file = await asyncio.to_thread(self.codec, audio, self.sample_rate, self.sample_rate)
            if epoch != self._epoch:
                logger.debug("Dropping stale update for %s", current.id)
                return False
            current.formatted.file = file
            self._decoded[current.id] = len(audio)
            logger.debug("Decoded %.2fs of audio for item %s", file.duration, current.id)
        if epoch != self._epoch:
            return False
        self._items = tuple(items)
        return True

    def clear(self):
        self._epoch += 1
        self._items = ()
        self._decoded.clear()
