#!/usr/bin/env python3
"""
Configuration settings for the Realtime Voice Translator using Pydantic.
"""

import os
from typing import Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator


INSTRUCTIONS_TEMPLATE = """
You are a live interpreter sitting between two people. The speaker talks in {label} ({text}).
Rules:
- Translate every utterance you hear from {text} into {target}.
- Reply ONLY with a single JSON object: {{"source": "<what was said, in {text}>", "dest": "<the {target} translation>"}}
- Do not add commentary, greetings or explanations outside the JSON object.
- If nothing meaningful was said, reply with {{}}.
"""


def build_instructions(label: str, text: str, target: str = "English") -> str:
    """Render the interpreter prompt for a source language."""
    return INSTRUCTIONS_TEMPLATE.format(label=label, text=text, target=target).strip()


def load_api_key() -> Optional[str]:
    """Read the API key from the environment, ignoring blank values."""
    key = os.environ.get("OPENAI_API_KEY", "").strip()
    return key or None


class TurnDetection(BaseModel):
    """How the service decides the user stopped speaking."""

    model_config = ConfigDict(extra='allow')

    type: str = "server_vad"


class SessionConfig(BaseModel):
    """Session fields merged into the remote session once, before connecting."""

    instructions: str
    modalities: List[Literal["text", "audio"]]
    turn_detection: TurnDetection = Field(default_factory=TurnDetection)
    input_audio_transcription: Optional[Dict[str, Any]] = None

    def to_update(self) -> Dict[str, Any]:
        """Fields to send with ``session.update``."""
        return self.model_dump(exclude_none=True)


class Config(BaseModel):
    """
    Configuration class for the Realtime Voice Translator using Pydantic for validation.
    """

    model_config = ConfigDict(
        extra='forbid',
        validate_assignment=True,
        frozen=False,
    )

    # Service
    api_key: Optional[str] = Field(
        default_factory=load_api_key,
        description="API key for the realtime service (defaults to OPENAI_API_KEY)"
    )

    realtime_url: str = Field(
        default="wss://api.openai.com/v1/realtime",
        description="Websocket endpoint of the realtime service"
    )

    model: str = Field(
        default="gpt-4o-realtime-preview",
        description="Realtime model name"
    )

    # Audio Configuration
    sample_rate: int = Field(
        default=24000,
        description="Capture and playback sample rate in Hz",
        ge=8000,
        le=48000
    )

    frame_ms: int = Field(
        default=100,
        description="Milliseconds of audio per captured frame",
        ge=10,
        le=1000
    )

    input_device: Optional[Union[int, str]] = Field(
        default=None,
        description="Input device index or name substring (None = system default)"
    )

    # Languages / prompt
    source_language_label: str = Field(
        default="🇨🇳 Chinese",
        description="Human readable label of the spoken language"
    )

    source_language_text: str = Field(
        default="中文",
        description="Native name of the spoken language"
    )

    target_language: str = Field(
        default="English",
        description="Language the translations are produced in"
    )

    instructions: Optional[str] = Field(
        default=None,
        description="Override for the generated interpreter instructions"
    )

    # Session
    modalities: List[Literal["text", "audio"]] = Field(
        default=["text"],
        description="Modalities exchanged with the service"
    )

    turn_detection_type: str = Field(
        default="server_vad",
        description="Turn detection mode used by the service"
    )

    input_audio_transcription: bool = Field(
        default=False,
        description="Ask the service for transcripts of the user's audio"
    )

    greeting: str = Field(
        default="Hello!",
        description="Text message sent right after connecting"
    )

    # Extraction
    retry_until_pair: bool = Field(
        default=False,
        description="Keep retrying an item until it yields a translation pair, "
                    "instead of stopping after the first JSON that parses"
    )

    # Runtime
    play_audio: bool = Field(
        default=False,
        description="Play completed assistant audio through the default output device"
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level used by the command line runner"
    )

    @computed_field
    @property
    def frame_samples(self) -> int:
        """Number of audio samples per frame."""
        return int(self.sample_rate * self.frame_ms / 1000)

    @field_validator('modalities')
    @classmethod
    def validate_modalities(cls, v):
        """Ensure at least one modality, without duplicates."""
        if not v:
            raise ValueError("modalities cannot be empty")
        return list(dict.fromkeys(v))

    @field_validator('greeting', 'source_language_text')
    @classmethod
    def validate_not_blank(cls, v):
        if not v.strip():
            raise ValueError("value cannot be blank")
        return v

    def resolved_instructions(self) -> str:
        if self.instructions and self.instructions.strip():
            return self.instructions
        return build_instructions(
            self.source_language_label,
            self.source_language_text,
            self.target_language,
        )

    def session_config(self) -> SessionConfig:
        """Build the session configuration applied at controller construction."""
        return SessionConfig(
            instructions=self.resolved_instructions(),
            modalities=list(self.modalities),
            turn_detection=TurnDetection(type=self.turn_detection_type),
            input_audio_transcription=(
                {"model": "whisper-1"} if self.input_audio_transcription else None
            ),
        )


# Default configuration instance
default_config = Config()
