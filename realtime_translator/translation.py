#!/usr/bin/env python3
"""
Extraction of translation pairs from the model's free-form text replies.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set, Tuple, Union

from pydantic import BaseModel, ConfigDict

from .items import ConversationItem

logger = logging.getLogger(__name__)

FENCE_MARKERS = ("```json", "```")


class TranslationPair(BaseModel):
    """A source utterance and its translation."""

    model_config = ConfigDict(frozen=True)

    source: str
    dest: str


@dataclass(frozen=True)
class ParsedTranslation:
    """The cleaned text decoded to a JSON object."""

    data: Dict[str, Any]

    @property
    def pair(self) -> Optional[TranslationPair]:
        source = self.data.get("source")
        dest = self.data.get("dest")
        if isinstance(source, str) and isinstance(dest, str) and source and dest:
            return TranslationPair(source=source, dest=dest)
        return None


@dataclass(frozen=True)
class ParseFailure:
    """Why the cleaned text could not be decoded."""

    reason: str
    text: str


ParseResult = Union[ParsedTranslation, ParseFailure]


def clean_translation_text(text: str) -> str:
    """Strip code fences and fold newlines into spaces."""
    for marker in FENCE_MARKERS:
        text = text.replace(marker, "")
    return text.replace("\n", " ")


def parse_translation_text(text: str) -> ParseResult:
    """Decode model text into a JSON object, without raising."""
    cleaned = clean_translation_text(text)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        return ParseFailure(reason=f"{e.msg} at column {e.colno}", text=cleaned)
    if not isinstance(data, dict):
        return ParseFailure(reason=f"expected a JSON object, got {type(data).__name__}", text=cleaned)
    return ParsedTranslation(data=data)


class TranslationExtractor:
    """Mines translation pairs out of assistant items.

    Each item id is tried on every update until it succeeds once. By default
    an id succeeds on the first text that decodes to a JSON object, pair or
    not; with ``retry_until_pair`` it only succeeds once a pair is appended.
    """

    def __init__(self, retry_until_pair: bool = False):
        self.retry_until_pair = retry_until_pair
        self._translations: List[TranslationPair] = []
        self._succeeded: Set[str] = set()
        self.failures: Dict[str, ParseFailure] = {}

    @property
    def translations(self) -> Tuple[TranslationPair, ...]:
        return tuple(self._translations)

    def is_done(self, item_id: str) -> bool:
        return item_id in self._succeeded

    def should_process(self, item: ConversationItem) -> bool:
        return (
            item.role == "assistant"
            and item.formatted.has_text()
            and item.id not in self._succeeded
        )

    def process(self, item: ConversationItem) -> Optional[TranslationPair]:
        """Try to extract a pair from ``item``. Returns the appended pair, if any."""
        if not self.should_process(item):
            return None
        result = parse_translation_text(item.formatted.text)
        if isinstance(result, ParseFailure):
            self.failures[item.id] = result
            if item.is_completed:
                logger.warning("Failed to parse translation data for %s: %s", item.id, result.reason)
            else:
                logger.debug("Translation for %s not parseable yet: %s", item.id, result.reason)
            return None

        self.failures.pop(item.id, None)
        pair = result.pair
        if pair is None:
            logger.debug("Item %s parsed without source/dest: %s", item.id, result.data)
            if not self.retry_until_pair:
                self._succeeded.add(item.id)
            return None
        self._succeeded.add(item.id)
        self._translations.append(pair)
        logger.info("Translation: %s -> %s", pair.source, pair.dest)
        return pair
