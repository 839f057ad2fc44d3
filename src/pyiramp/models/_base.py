"""Base model and timestamp helpers shared by pyiramp models.

Every pyiramp record inherits from :class:`IrAmpBaseModel`, which is
frozen: state owners replace records wholesale instead of mutating them,
so snapshots handed to listeners never change under their feet.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict

# Threshold to distinguish seconds from milliseconds.
_MS_THRESHOLD = 1_000_000_000_000


def utcnow() -> datetime:
    return datetime.now(UTC)


def now_ms() -> int:
    """Current epoch timestamp in milliseconds."""
    return int(utcnow().timestamp() * 1000)


def parse_epoch_timestamp(value: Any) -> datetime | None:
    """Convert an epoch timestamp (seconds **or** milliseconds) to a UTC datetime.

    Returns ``None`` when the value is ``None``. Naive datetimes are
    assumed to be UTC.
    """
    if value is None:
        return value
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value
    ts = float(value)
    if ts >= _MS_THRESHOLD:
        ts /= 1000.0
    return datetime.fromtimestamp(ts, tz=UTC)


EpochTimestamp = Annotated[datetime | None, BeforeValidator(parse_epoch_timestamp)]
"""Annotated type that coerces epoch ints (seconds or ms) to UTC datetimes."""


class IrAmpBaseModel(BaseModel):
    """Base for pyiramp value records."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )
