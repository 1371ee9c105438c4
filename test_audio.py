"""
Tests for microphone capture and PCM decoding, using a fake sounddevice backend.
"""

import asyncio
import io
import wave

import numpy as np
import pytest

from conftest import FakeSoundDevice, settle
from realtime_translator.audio import (
    AudioCapture,
    AudioPlayer,
    DeviceError,
    PlayableAudio,
    decode,
    list_audio_devices,
)
from realtime_translator.config import Config


def pcm(values):
    return np.array(values, dtype='<i2').tobytes()


def test_decode_same_rate_keeps_samples():
    raw = pcm([0, 1000, -1000, 32767])
    clip = decode(raw, 24000, 24000)

    assert clip.pcm == raw
    assert clip.sample_rate == 24000
    assert clip.frames == 4


def test_decode_resamples_length():
    raw = pcm(np.zeros(2400, dtype=np.int16))
    clip = decode(raw, 24000, 16000)

    assert clip.sample_rate == 16000
    assert clip.frames == 1600
    assert clip.duration == pytest.approx(0.1)


def test_decode_ignores_trailing_odd_byte():
    clip = decode(pcm([5, 6]) + b"\x07", 24000, 24000)
    assert clip.frames == 2


def test_playable_audio_exports_wav():
    clip = PlayableAudio(pcm=pcm([0, 16384, -16384]), sample_rate=24000)
    with wave.open(io.BytesIO(clip.to_wav()), "rb") as wav:
        assert wav.getnchannels() == 1
        assert wav.getsampwidth() == 2
        assert wav.getframerate() == 24000
        assert wav.getnframes() == 3
    assert clip.samples()[1] == pytest.approx(0.5)


def test_list_audio_devices_only_inputs(fake_sd):
    assert list_audio_devices(fake_sd) == [(1, "Built-in Microphone")]


def test_begin_without_input_device_raises():
    capture = AudioCapture(Config(api_key="k"), backend=FakeSoundDevice(devices=[]))
    with pytest.raises(DeviceError):
        asyncio.run(capture.begin())


def test_begin_with_unknown_device_name_raises(fake_sd):
    capture = AudioCapture(Config(api_key="k"), backend=fake_sd)
    with pytest.raises(DeviceError):
        asyncio.run(capture.begin("usb headset"))


def test_begin_opens_mono_int16_stream(fake_sd):
    config = Config(api_key="k")
    capture = AudioCapture(config, backend=fake_sd)
    asyncio.run(capture.begin("built-in"))

    stream = fake_sd.streams[0]
    assert stream.kwargs["samplerate"] == 24000
    assert stream.kwargs["channels"] == 1
    assert stream.kwargs["dtype"] == "int16"
    assert stream.kwargs["blocksize"] == config.frame_samples
    assert stream.kwargs["device"] == 1
    assert capture.device_name == "Built-in Microphone"


def test_record_requires_begin(fake_sd):
    capture = AudioCapture(Config(api_key="k"), backend=fake_sd)
    with pytest.raises(DeviceError):
        asyncio.run(capture.record(lambda frame: None))


def test_frames_are_delivered_until_end(fake_sd):
    capture = AudioCapture(Config(api_key="k"), backend=fake_sd)
    frames = []

    async def scenario():
        await capture.begin()
        await capture.record(frames.append)
        stream = fake_sd.streams[0]
        stream.feed(b"\x01\x00")
        stream.feed(b"\x02\x00", overflow=True)
        await settle()
        stream.feed(b"\x03\x00")  # queued, not yet delivered
        await capture.end()
        stream.feed(b"\x04\x00")
        await settle()
        return stream

    stream = asyncio.run(scenario())
    assert frames == [b"\x01\x00", b"\x02\x00"]
    assert capture.overflow_count == 1
    assert stream.closed
    assert not capture.is_recording


def test_end_is_idempotent(fake_sd):
    capture = AudioCapture(Config(api_key="k"), backend=fake_sd)

    async def scenario():
        await capture.end()
        await capture.begin()
        await capture.end()
        await capture.end()

    asyncio.run(scenario())
    assert not capture.is_open


def test_player_plays_samples(fake_sd):
    player = AudioPlayer(backend=fake_sd)
    asyncio.run(player.play(PlayableAudio(pcm=pcm([0, 100]), sample_rate=24000)))

    samples, rate = fake_sd.played[0]
    assert rate == 24000
    assert len(samples) == 2
    player.stop()
    assert fake_sd.stopped == 1
