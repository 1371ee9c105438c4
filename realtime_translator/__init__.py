#!/usr/bin/env python3
"""
Realtime Voice Translator
=========================

Live two-way voice session with a realtime conversational model that acts as
an interpreter: microphone audio streams out, model text (and optionally
audio) streams back, and translation pairs are mined from the replies.

Features
--------
1. Microphone capture @ 24 kHz mono using a sounddevice RawInputStream.
2. Websocket realtime client with server-side voice activity detection.
3. Event log that coalesces bursts of identical events for display.
4. Read-through conversation item store with one-time audio decoding.
5. Resilient extraction of ``{"source", "dest"}`` pairs from model text,
   retried on every delta until the text parses.
6. Clean shutdown on Ctrl+C.

Quick Start
-----------
```python
import asyncio
from realtime_translator import Config, RealtimeClient, SessionController

async def main():
    config = Config()
    controller = SessionController(RealtimeClient.from_config(config), config=config)
    controller.on("translations", lambda pairs: print(pairs[-1]))
    await controller.connect()
    try:
        await asyncio.sleep(60)
    finally:
        await controller.disconnect()
        await controller.teardown()

if __name__ == '__main__':
    asyncio.run(main())
```
"""

from .core import SessionController, ConnectionState, main
from .config import Config, SessionConfig, TurnDetection, build_instructions
from .audio import AudioCapture, AudioPlayer, DeviceError, PlayableAudio, decode, list_audio_devices
from .client import ConversationService, RealtimeClient, RealtimeConnectionError
from .conversation import RealtimeConversation
from .events import EventBus, EventPayload, RealtimeEvent, UnknownEvent, parse_event
from .event_log import EventLog
from .items import ConversationItem, ConversationItemStore, ConversationUpdate, FormattedContent
from .translation import (
    ParseFailure,
    ParsedTranslation,
    TranslationExtractor,
    TranslationPair,
    clean_translation_text,
    parse_translation_text,
)

__version__ = "1.0.0"
__all__ = [
    'SessionController',
    'ConnectionState',
    'main',
    'Config',
    'SessionConfig',
    'TurnDetection',
    'build_instructions',
    'AudioCapture',
    'AudioPlayer',
    'DeviceError',
    'PlayableAudio',
    'decode',
    'list_audio_devices',
    'ConversationService',
    'RealtimeClient',
    'RealtimeConnectionError',
    'RealtimeConversation',
    'EventBus',
    'EventPayload',
    'RealtimeEvent',
    'UnknownEvent',
    'parse_event',
    'EventLog',
    'ConversationItem',
    'ConversationItemStore',
    'ConversationUpdate',
    'FormattedContent',
    'ParseFailure',
    'ParsedTranslation',
    'TranslationExtractor',
    'TranslationPair',
    'clean_translation_text',
    'parse_translation_text',
]
