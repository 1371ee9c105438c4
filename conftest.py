"""
Shared fakes for the Realtime Voice Translator tests.
"""

import asyncio
import json
from types import SimpleNamespace
from typing import Any, Dict, List

import pytest

from realtime_translator.audio import PlayableAudio
from realtime_translator.config import Config
from realtime_translator.conversation import RealtimeConversation
from realtime_translator.events import EventBus, RealtimeEvent
from realtime_translator.items import ConversationItem, ConversationUpdate, FormattedContent


def make_item(item_id="item_1", role="assistant", status="in_progress", text=None, audio=None):
    return ConversationItem(
        id=item_id,
        role=role,
        status=status,
        formatted=FormattedContent(text=text, audio=audio),
    )


class FakeConversation:
    def __init__(self):
        self.items: List[ConversationItem] = []

    def get_items(self):
        return list(self.items)


class FakeService:
    """In-memory conversation service recording every call."""

    def __init__(self, fail_connect=None):
        self.bus = EventBus()
        self.conversation = FakeConversation()
        self.session: Dict[str, Any] = {}
        self.session_updates: List[Dict[str, Any]] = []
        self.messages: List[List[Dict[str, Any]]] = []
        self.audio: List[bytes] = []
        self.calls: List[str] = []
        self.fail_connect = fail_connect
        self.connect_gate = None
        self.is_connected = False

    def on(self, name, handler):
        return self.bus.on(name, handler)

    def off(self, name, handler=None):
        self.bus.off(name, handler)

    def update_session(self, **fields):
        self.session_updates.append(fields)
        self.session.update(fields)

    async def connect(self):
        self.calls.append("connect")
        if self.connect_gate is not None:
            await self.connect_gate.wait()
        if self.fail_connect is not None:
            raise self.fail_connect
        self.is_connected = True

    async def disconnect(self):
        self.calls.append("disconnect")
        self.is_connected = False
        self.conversation.items.clear()

    async def reset(self):
        self.calls.append("reset")
        await self.disconnect()
        self.bus.clear()

    def send_user_message_content(self, parts):
        self.calls.append("send_user_message_content")
        self.messages.append(parts)

    def append_input_audio(self, frame):
        self.audio.append(frame)

    async def emit_update(self, item, delta=None):
        if item.id not in [i.id for i in self.conversation.items]:
            self.conversation.items.append(item)
        await self.bus.dispatch("conversation.updated", ConversationUpdate(item=item, delta=delta))

    async def emit_event(self, data, source="server"):
        event = RealtimeEvent.server(data) if source == "server" else RealtimeEvent.client(data)
        await self.bus.dispatch("realtime.event", event)


class FakeCapture:
    """Stands in for AudioCapture, recording the lifecycle calls."""

    def __init__(self, device_error=None):
        self.calls: List[str] = []
        self.on_frame = None
        self.recording = False
        self.device_error = device_error
        self.device_name = "Fake Mic"

    async def begin(self, device=None):
        self.calls.append("begin")
        if self.device_error is not None:
            raise self.device_error

    async def record(self, on_frame):
        self.calls.append("record")
        self.on_frame = on_frame
        self.recording = True

    async def end(self):
        self.calls.append("end")
        self.recording = False
        self.on_frame = None

    def push(self, frame: bytes):
        if self.recording and self.on_frame is not None:
            self.on_frame(frame)


class FakeStream:
    def __init__(self, callback, **kwargs):
        self.callback = callback
        self.kwargs = kwargs
        self.active = False
        self.closed = False

    def start(self):
        self.active = True

    def stop(self):
        self.active = False

    def close(self):
        self.closed = True

    def feed(self, data: bytes, overflow=False):
        self.callback(data, len(data) // 2, None, SimpleNamespace(input_overflow=overflow))


class FakeSoundDevice:
    """Minimal sounddevice stand-in: device listing, input streams, playback."""

    class PortAudioError(Exception):
        pass

    def __init__(self, devices=None):
        self.devices = devices if devices is not None else [
            {"name": "Speakers", "max_input_channels": 0, "max_output_channels": 2},
            {"name": "Built-in Microphone", "max_input_channels": 1, "max_output_channels": 0},
        ]
        self.streams: List[FakeStream] = []
        self.played = []
        self.stopped = 0

    def query_devices(self, device=None, kind=None):
        if device is None and kind is None:
            return list(self.devices)
        inputs = [(i, d) for i, d in enumerate(self.devices) if d["max_input_channels"] > 0]
        if device is None:
            if not inputs:
                raise self.PortAudioError("Error querying device -1")
            return inputs[0][1]
        if not isinstance(device, int) or device >= len(self.devices):
            raise ValueError(f"No input device matching {device!r}")
        info = self.devices[device]
        if kind == "input" and info["max_input_channels"] <= 0:
            raise ValueError(f"Not an input device: {device}")
        return info

    def RawInputStream(self, **kwargs):
        stream = FakeStream(**kwargs)
        self.streams.append(stream)
        return stream

    def play(self, samples, samplerate, blocking=False):
        self.played.append((samples, samplerate))

    def stop(self):
        self.stopped += 1


class FakeWebSocket:
    """Async-iterable socket fed from a queue; records sent frames."""

    def __init__(self):
        self.sent: List[Dict[str, Any]] = []
        self.incoming: asyncio.Queue = asyncio.Queue()
        self.closed = False

    async def send(self, message):
        self.sent.append(json.loads(message))

    async def close(self):
        self.closed = True
        await self.incoming.put(None)

    def __aiter__(self):
        return self

    async def __anext__(self):
        message = await self.incoming.get()
        if message is None:
            raise StopAsyncIteration
        return message

    async def push(self, data):
        await self.incoming.put(json.dumps(data) if isinstance(data, dict) else data)

    def sent_types(self):
        return [event["type"] for event in self.sent]


class FakeConnector:
    def __init__(self, ws=None, error=None):
        self.ws = ws
        self.error = error
        self.calls = []

    async def __call__(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if self.error is not None:
            raise self.error
        return self.ws


async def settle(rounds=5):
    """Let queued callbacks and tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def config():
    return Config(api_key="test-key")


@pytest.fixture
def service():
    return FakeService()


@pytest.fixture
def capture():
    return FakeCapture()


@pytest.fixture
def fake_sd():
    return FakeSoundDevice()


@pytest.fixture
def conversation():
    return RealtimeConversation()


def counting_codec(calls):
    def codec(raw, source_rate, target_rate):
        calls.append(raw)
        return PlayableAudio(pcm=bytes(raw), sample_rate=target_rate)
    return codec
