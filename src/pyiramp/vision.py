"""Camera-based reading of the amplifier display.

The image is fetched over HTTP from a snapshot URL; text recognition is
delegated to a pluggable :class:`TextRecognizer` (any OCR engine).
Only the parsing of the recognized text lives here.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Protocol

import aiohttp

from pyiramp import _constants as const
from pyiramp.models.volume import VolumeReading

_logger = logging.getLogger(__name__)

_VOLUME_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"vol(?:ume)?\s*:?\s*(\d+)", re.IGNORECASE),
    re.compile(r"(\d+)\s*%"),
)

_SOURCE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"source\s*:?\s*([a-z0-9 ]+)", re.IGNORECASE),
    re.compile(r"input\s*:?\s*([a-z0-9 ]+)", re.IGNORECASE),
    re.compile(r"(video\s*\d+)", re.IGNORECASE),
)


def parse_volume(text: str) -> int | None:
    """Extract a ``0..100`` volume from display text (``"VOL: 45"``, ``"45%"``)."""
    for pattern in _VOLUME_PATTERNS:
        for match in pattern.finditer(text):
            volume = int(match.group(1))
            if const.VOLUME_MIN <= volume <= const.VOLUME_MAX:
                return volume
    return None


def parse_source(text: str) -> str | None:
    """Extract the input source name from display text."""
    for pattern in _SOURCE_PATTERNS:
        match = pattern.search(text)
        if match:
            source = match.group(1).strip()
            if source:
                return source
    return None


def is_expected_source(source: str, expected: str) -> bool:
    """Compare source names ignoring case and whitespace (``"VIDEO2"`` == ``"video 2"``)."""

    def _squash(value: str) -> str:
        return "".join(value.split()).lower()

    return _squash(expected) in _squash(source)


@dataclass(frozen=True)
class RecognizedText:
    text: str
    confidence: float
    """Engine confidence on a ``0..100`` scale."""


class TextRecognizer(Protocol):
    async def recognize(self, image: bytes) -> RecognizedText:
        ...


class CameraVolumeReader:
    """Fetch a camera snapshot and read volume and source from it."""

    def __init__(
        self,
        camera_url: str,
        recognizer: TextRecognizer,
        *,
        session: aiohttp.ClientSession | None = None,
        timeout: float = const.CAMERA_TIMEOUT,
    ) -> None:
        self._camera_url = camera_url
        self._recognizer = recognizer
        self._session = session
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    def bind_session(self, session: aiohttp.ClientSession) -> None:
        if self._session is None:
            self._session = session

    async def capture(self) -> bytes | None:
        """Download one snapshot. Returns ``None`` on any HTTP failure."""
        if self._session is None:
            _logger.error("Camera reader has no HTTP session")
            return None
        try:
            async with self._session.get(self._camera_url, timeout=self._timeout) as response:
                response.raise_for_status()
                return await response.read()
        except (aiohttp.ClientError, TimeoutError) as exc:
            _logger.error("Failed to capture screen from %s: %s", self._camera_url, exc)
            return None

    def interpret(self, recognized: RecognizedText) -> VolumeReading:
        _logger.debug("Recognized text: %r (confidence %.1f)", recognized.text, recognized.confidence)
        confidence = max(0.0, min(1.0, recognized.confidence / 100.0))
        return VolumeReading(
            volume=parse_volume(recognized.text),
            source=parse_source(recognized.text),
            confidence=confidence,
        )

    async def read(self) -> VolumeReading:
        """Capture and interpret one snapshot. Never raises."""
        image = await self.capture()
        if image is None:
            return VolumeReading()
        try:
            recognized = await self._recognizer.recognize(image)
        except Exception:
            _logger.error("Text recognition failed", exc_info=True)
            return VolumeReading()
        return self.interpret(recognized)
