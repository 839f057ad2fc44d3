"""Volume state and external volume reading models."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field, field_validator

from pyiramp.models._base import IrAmpBaseModel, utcnow


class VolumeState(IrAmpBaseModel):
    """Snapshot of the counted (open-loop) volume."""

    current: int = Field(default=50, ge=0, le=100)
    target: int = Field(default=50, ge=0, le=100)
    sync_in_progress: bool = False


class VolumeReading(IrAmpBaseModel):
    """A low-confidence reading of the amplifier display.

    ``confidence`` is normalised to ``0..1``. A reading without a
    volume still carries the detected input source, if any.
    """

    volume: int | None = Field(default=None, ge=0, le=100)
    source: str | None = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    observed_at: datetime = Field(default_factory=utcnow)

    @field_validator("source", mode="before")
    @classmethod
    def _strip_source(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip() or None
        return value

    @property
    def is_empty(self) -> bool:
        return self.volume is None and self.source is None
