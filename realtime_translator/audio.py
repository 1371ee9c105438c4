#!/usr/bin/env python3
"""
Microphone capture, PCM decoding and playback for the Realtime Voice Translator.
"""

import asyncio
import io
import logging
import threading
import wave
from pathlib import Path
from typing import Any, Callable, List, Optional, Tuple, Union

import numpy as np
from pydantic import BaseModel, ConfigDict

from .config import default_config

logger = logging.getLogger(__name__)

FrameCallback = Callable[[bytes], None]


class DeviceError(RuntimeError):
    """No usable input device, or the device could not be opened."""


def _load_sounddevice():
    # PortAudio is only required once a device is touched
    import sounddevice as sd
    return sd


def list_audio_devices(backend=None) -> List[Tuple[int, str]]:
    """List all available input devices. Returns list of (index, name) tuples."""
    sd = backend or _load_sounddevice()
    devices = []
    for idx, dev in enumerate(sd.query_devices()):
        if dev.get("max_input_channels", 0) > 0:
            devices.append((idx, str(dev.get("name", "Unknown"))))
    return devices


class PlayableAudio(BaseModel):
    """Decoded 16-bit mono PCM ready for playback or export."""

    model_config = ConfigDict(frozen=True)

    pcm: bytes
    sample_rate: int

    @property
    def frames(self) -> int:
        return len(self.pcm) // 2

    @property
    def duration(self) -> float:
        return self.frames / float(self.sample_rate)

    def samples(self) -> np.ndarray:
        """Float32 samples normalized to [-1, 1]."""
        return np.frombuffer(self.pcm, dtype=np.int16).astype(np.float32) / 32768.0

    def to_wav(self) -> bytes:
        buf = io.BytesIO()
        with wave.open(buf, "wb") as wav:
            wav.setnchannels(1)
            wav.setsampwidth(2)
            wav.setframerate(self.sample_rate)
            wav.writeframes(self.pcm)
        return buf.getvalue()

    def save(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        path.write_bytes(self.to_wav())
        return path


def resample(audio: np.ndarray, source_rate: int, target_rate: int) -> np.ndarray:
    """Linear resampling of a mono float array."""
    if source_rate == target_rate or len(audio) == 0:
        return audio
    target_length = int(round(len(audio) * float(target_rate) / float(source_rate)))
    src_positions = np.arange(len(audio), dtype=np.float64)
    dst_positions = np.linspace(0, len(audio) - 1, max(target_length, 1))
    return np.interp(dst_positions, src_positions, audio).astype(np.float32)


def decode(raw: bytes, source_rate: int = 24000, target_rate: int = 24000) -> PlayableAudio:
    """Decode raw 16-bit little-endian mono PCM into a playable clip at ``target_rate``."""
    if source_rate <= 0 or target_rate <= 0:
        raise ValueError("sample rates must be positive")
    usable = len(raw) - (len(raw) % 2)
    pcm = np.frombuffer(bytes(raw[:usable]), dtype='<i2')
    if source_rate != target_rate:
        audio = pcm.astype(np.float32) / 32768.0
        audio = resample(audio, source_rate, target_rate)
        pcm = (np.clip(audio, -1.0, 1.0) * 32767.0).astype('<i2')
    return PlayableAudio(pcm=pcm.tobytes(), sample_rate=target_rate)


class AudioCapture:
    """Continuous microphone capture delivering fixed-size PCM frames.

    ``begin`` opens the device, ``record`` starts delivering frames to a
    callback on the event loop, ``end`` stops delivery and releases the
    device. The PortAudio callback only copies the block and schedules the
    delivery; no frame reaches the consumer once ``end`` has started.
    """

    def __init__(self, config=None, backend=None):
        self.config = config or default_config
        self.sample_rate = self.config.sample_rate
        self.frame_samples = self.config.frame_samples
        self._backend = backend
        self._stream = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._on_frame: Optional[FrameCallback] = None
        self._recording = threading.Event()
        self._device_name: Optional[str] = None
        self.overflow_count = 0

    @property
    def is_open(self) -> bool:
        return self._stream is not None

    @property
    def is_recording(self) -> bool:
        return self._recording.is_set()

    @property
    def device_name(self) -> Optional[str]:
        return self._device_name

    def _sd(self):
        if self._backend is None:
            try:
                self._backend = _load_sounddevice()
            except OSError as e:
                raise DeviceError(f"Audio backend unavailable: {e}") from e
        return self._backend

    def _resolve_device(self, sd, device) -> Any:
        """Pick the input device; a string selects the first name containing it."""
        if isinstance(device, str):
            for idx, dev in enumerate(sd.query_devices()):
                if dev.get("max_input_channels", 0) <= 0:
                    continue
                if device.lower() in str(dev.get("name", "")).lower():
                    return idx
            raise DeviceError(f"No input device matching {device!r}")
        return device

    async def begin(self, device: Optional[Union[int, str]] = None):
        """Acquire the microphone at the configured rate (mono, int16)."""
        if self._stream is not None:
            return
        sd = self._sd()
        device = device if device is not None else self.config.input_device
        self._loop = asyncio.get_running_loop()
        try:
            device = self._resolve_device(sd, device)
            info = sd.query_devices(device, kind='input')
            self._device_name = str(info.get("name", "Unknown"))
            self._stream = sd.RawInputStream(
                samplerate=self.sample_rate,
                blocksize=self.frame_samples,
                device=device,
                channels=1,
                dtype='int16',
                callback=self._audio_callback,
            )
        except DeviceError:
            raise
        except Exception as e:
            self._stream = None
            raise DeviceError(f"Could not open input device: {e}") from e
        logger.info("Microphone ready: %s @ %d Hz", self._device_name, self.sample_rate)

    def _audio_callback(self, indata, frames, time_info, status):
        # PortAudio thread: copy and hand off, nothing else
        if status and getattr(status, "input_overflow", False):
            self.overflow_count += 1
        if not self._recording.is_set() or self._loop is None:
            return
        try:
            self._loop.call_soon_threadsafe(self._deliver, bytes(indata))
        except RuntimeError:
            # loop closed while the stream was still running
            pass

    def _deliver(self, frame: bytes):
        if not self._recording.is_set() or self._on_frame is None:
            return
        self._on_frame(frame)

    async def record(self, on_frame: FrameCallback):
        """Start delivering frames to ``on_frame``. It must not block."""
        if self._stream is None:
            raise DeviceError("Capture not started; call begin() first")
        self._on_frame = on_frame
        self._recording.set()
        if not getattr(self._stream, "active", False):
            self._stream.start()

    async def pause(self):
        """Stop delivering frames but keep the device open."""
        self._recording.clear()
        if self._stream is not None and getattr(self._stream, "active", False):
            await asyncio.to_thread(self._stream.stop)

    async def end(self):
        """Stop capture and release the device. Safe to call at any time."""
        self._recording.clear()
        self._on_frame = None
        stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            await asyncio.to_thread(self._close_stream, stream)
        finally:
            logger.info("Microphone released")

    @staticmethod
    def _close_stream(stream):
        try:
            stream.stop()
        finally:
            stream.close()

    decode = staticmethod(decode)


class AudioPlayer:
    """Plays decoded items on the default output device."""

    def __init__(self, backend=None):
        self._backend = backend

    def _sd(self):
        if self._backend is None:
            self._backend = _load_sounddevice()
        return self._backend

    async def play(self, file: PlayableAudio):
        sd = self._sd()
        samples = file.samples()
        if not len(samples):
            return
        await asyncio.to_thread(sd.play, samples, file.sample_rate, blocking=True)

    def stop(self):
        if self._backend is not None:
            self._backend.stop()
