#!/usr/bin/env python3
"""
Core session controller for the Realtime Voice Translator.
"""

import argparse
import asyncio
import enum
import logging
import sys
from typing import Any, Callable, List, Optional, Set, Tuple

from .audio import AudioCapture, AudioPlayer, DeviceError, list_audio_devices
from .client import ConversationService, RealtimeClient
from .config import Config, default_config
from .event_log import EventLog
from .events import EventBus, Handler, RealtimeEvent
from .items import ConversationItem, ConversationItemStore, ConversationUpdate
from .translation import TranslationExtractor, TranslationPair

logger = logging.getLogger(__name__)


class ConnectionState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class SessionController:
    """
    Orchestrates one live translation session.

    Owns the capture handle, the event log, the item store and the
    translation extractor, and wires them to the conversation service.
    Session configuration is applied once, at construction. UI code reads
    the snapshot properties and subscribes with ``on`` to the ``state``,
    ``events``, ``items`` and ``translations`` channels.
    """

    def __init__(
        self,
        service: ConversationService,
        capture: Optional[AudioCapture] = None,
        config: Optional[Config] = None,
        codec=None,
        player: Optional[AudioPlayer] = None,
    ):
        self.config = config or default_config
        self.service = service
        self.capture = capture or AudioCapture(self.config)
        self.player = player
        self.event_log = EventLog()
        self.item_store = ConversationItemStore(service, codec=codec, sample_rate=self.config.sample_rate)
        self.extractor = TranslationExtractor(retry_until_pair=self.config.retry_until_pair)
        self.state = ConnectionState.DISCONNECTED
        self._ui = EventBus()
        self._subscriptions: List[Callable[[], None]] = []
        self._generation = 0
        self._torn_down = False
        self._played: Set[str] = set()
        self._playback_tasks: Set[asyncio.Task] = set()

        self._apply_session_config()
        self._register_handlers()
        self.item_store.refresh()

    # Snapshots for the UI layer

    @property
    def is_connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    @property
    def items(self) -> Tuple[ConversationItem, ...]:
        return self.item_store.items

    @property
    def events(self) -> Tuple[RealtimeEvent, ...]:
        return self.event_log.snapshot()

    @property
    def translations(self) -> Tuple[TranslationPair, ...]:
        return self.extractor.translations

    def on(self, name: str, handler: Handler) -> Callable[[], None]:
        return self._ui.on(name, handler)

    # Setup

    def _apply_session_config(self):
        session = self.config.session_config()
        self.service.update_session(instructions=session.instructions)
        self.service.update_session(modalities=list(session.modalities))
        self.service.update_session(turn_detection=session.turn_detection.model_dump())
        if session.input_audio_transcription:
            self.service.update_session(input_audio_transcription=session.input_audio_transcription)

    def _register_handlers(self):
        handlers = [
            ("realtime.event", self._on_realtime_event),
            ("error", self._on_error),
            ("conversation.interrupted", self._on_interrupted),
            ("conversation.updated", self._on_conversation_updated),
            ("close", self._on_close),
        ]
        for name, handler in handlers:
            self._subscriptions.append(self.service.on(name, handler))

    # Lifecycle

    async def _set_state(self, state: ConnectionState):
        if state == self.state:
            return
        self.state = state
        logger.debug("Session state: %s", state.value)
        await self._ui.dispatch("state", state)

    async def connect(self):
        """Open the microphone, connect, greet the model and start streaming."""
        if self.state != ConnectionState.DISCONNECTED:
            logger.debug("connect() ignored in state %s", self.state.value)
            return
        self._generation += 1
        generation = self._generation
        await self._set_state(ConnectionState.CONNECTING)
        self.event_log.clear()
        self.item_store.refresh()
        await self._ui.dispatch("events", self.event_log)
        await self._ui.dispatch("items", self.items)

        try:
            await self.capture.begin(self.config.input_device)
        except DeviceError:
            logger.error("Microphone unavailable")
            if generation == self._generation:
                await self._set_state(ConnectionState.DISCONNECTED)
            raise
        if generation != self._generation:
            await self.capture.end()
            return

        try:
            await self.service.connect()
        except ConnectionError as e:
            logger.error("Connection failed: %s", e)
            await self.capture.end()
            if generation == self._generation:
                await self._set_state(
                    ConnectionState.CONNECTED if self.service.is_connected else ConnectionState.DISCONNECTED
                )
            raise
        if generation != self._generation:
            # disconnect() ran while we were connecting
            await self.service.disconnect()
            self._clear_session_state()
            return

        self.service.send_user_message_content([
            {"type": "input_text", "text": self.config.greeting},
        ])
        await self.capture.record(self._on_frame)
        await self._set_state(ConnectionState.CONNECTED)

    async def disconnect(self):
        """Stop streaming, close the connection and clear per-session state."""
        self._generation += 1
        await self._set_state(ConnectionState.DISCONNECTED)
        await self.capture.end()
        await self.service.disconnect()
        if self.player is not None:
            self.player.stop()
        self._clear_session_state()
        await self._ui.dispatch("events", self.event_log)
        await self._ui.dispatch("items", self.items)

    def _clear_session_state(self):
        self.event_log.clear()
        self.item_store.clear()

    async def teardown(self):
        """Release everything; always resets the service."""
        if self._torn_down:
            return
        self._torn_down = True
        self._generation += 1
        for unsubscribe in self._subscriptions:
            unsubscribe()
        self._subscriptions.clear()
        for task in list(self._playback_tasks):
            task.cancel()
        await self.capture.end()
        await self.service.reset()
        self.state = ConnectionState.DISCONNECTED
        self._ui.clear()

    # Service handlers

    def _on_frame(self, frame: bytes):
        self.service.append_input_audio(frame)

    async def _on_realtime_event(self, event: RealtimeEvent):
        self.event_log.ingest(event)
        await self._ui.dispatch("events", self.event_log)

    def _on_error(self, error: Any):
        logger.error("Realtime service error: %s", error)

    def _on_interrupted(self, event: Any):
        logger.info("Conversation interrupted")
        if self.player is not None:
            self.player.stop()

    def _on_close(self, payload: Any):
        error = (payload or {}).get("error")
        logger.warning("Service connection closed%s", f" ({error})" if error else "")

    async def _on_conversation_updated(self, update: ConversationUpdate):
        if self.state == ConnectionState.DISCONNECTED:
            return
        published = await self.item_store.update(update.item, update.delta)
        if not published:
            return
        await self._ui.dispatch("items", self.items)

        item = update.item
        pair = self.extractor.process(item)
        if pair is not None:
            await self._ui.dispatch("translations", self.translations)

        if self.player is not None and item.role == "assistant" and item.formatted.has_file():
            self._schedule_playback(item)

    def _schedule_playback(self, item: ConversationItem):
        if item.id in self._played:
            return
        self._played.add(item.id)
        task = asyncio.create_task(self.player.play(item.formatted.file))
        self._playback_tasks.add(task)
        task.add_done_callback(self._playback_tasks.discard)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Live voice translation over a realtime conversation API",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Set OPENAI_API_KEY in the environment or in a .env file.
Press Ctrl+C to disconnect and quit.
        """
    )
    parser.add_argument("--device", "-d", type=str, default=None,
                        help="Input device index or name (use --list-devices to see options)")
    parser.add_argument("--list-devices", action="store_true",
                        help="List available audio input devices and exit")
    parser.add_argument("--source-label", type=str, default=None,
                        help="Label of the spoken language, e.g. '🇨🇳 Chinese'")
    parser.add_argument("--source-text", type=str, default=None,
                        help="Native name of the spoken language, e.g. '中文'")
    parser.add_argument("--target", type=str, default=None,
                        help="Language to translate into (default: English)")
    parser.add_argument("--instructions", type=str, default=None,
                        help="Replace the generated interpreter instructions")
    parser.add_argument("--audio", action="store_true",
                        help="Also receive spoken translations")
    parser.add_argument("--play-audio", action="store_true",
                        help="Play spoken translations (implies --audio)")
    parser.add_argument("--transcribe-input", action="store_true",
                        help="Request transcripts of the user's speech")
    parser.add_argument("--log-level", type=str, default=None,
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser


def config_from_args(args: argparse.Namespace) -> Config:
    overrides = {}
    if args.device is not None:
        overrides["input_device"] = int(args.device) if args.device.isdigit() else args.device
    if args.source_label:
        overrides["source_language_label"] = args.source_label
    if args.source_text:
        overrides["source_language_text"] = args.source_text
    if args.target:
        overrides["target_language"] = args.target
    if args.instructions:
        overrides["instructions"] = args.instructions
    if args.audio or args.play_audio:
        overrides["modalities"] = ["text", "audio"]
    if args.play_audio:
        overrides["play_audio"] = True
    if args.transcribe_input:
        overrides["input_audio_transcription"] = True
    if args.log_level:
        overrides["log_level"] = args.log_level
    return Config(**overrides)


async def run(config: Config):
    """Run a session until cancelled (Ctrl+C)."""
    client = RealtimeClient.from_config(config)
    player = AudioPlayer() if config.play_audio else None
    controller = SessionController(client, config=config, player=player)

    def show_translation(translations):
        pair = translations[-1]
        print(f"{config.source_language_label} {pair.source}\n   ↳ {pair.dest}", flush=True)

    controller.on("translations", show_translation)

    print("Connecting…", flush=True)
    try:
        await controller.connect()
        print(f"🎤 Listening on {controller.capture.device_name}. Press Ctrl+C to stop.", flush=True)
        await asyncio.Event().wait()
    finally:
        await controller.disconnect()
        await controller.teardown()


def main(argv: Optional[List[str]] = None) -> int:
    """Command line entry point."""
    from dotenv import load_dotenv
    load_dotenv()

    args = build_parser().parse_args(argv)

    if args.list_devices:
        print("Available audio input devices:")
        for idx, name in list_audio_devices():
            print(f"  [{idx}] {name}")
        print("\nUse --device <index> to select a specific device.")
        return 0

    config = config_from_args(args)
    logging.basicConfig(
        level=getattr(logging, config.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if not config.api_key:
        print("Error: Missing OPENAI_API_KEY. Set it in .env or environment.")
        return 1

    try:
        asyncio.run(run(config))
    except KeyboardInterrupt:
        print("\nExiting…")
    except (DeviceError, ConnectionError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0
