"""Records exchanged with the external CEC listener."""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Literal

from pydantic import Field, field_validator

from pyiramp.models._base import EpochTimestamp, IrAmpBaseModel, now_ms, parse_epoch_timestamp, utcnow


class BridgeAction(enum.StrEnum):
    POWER = "power"
    VOLUME = "volume"
    MUTE = "mute"


class BridgeMessage(IrAmpBaseModel):
    """Inbound command written by the CEC listener.

    ``value`` is ``"on"``/``"off"`` for power and ``"up"``/``"down"`` for
    volume; mute carries any non-empty value (the listener sends
    ``"toggle"``).
    """

    action: BridgeAction
    value: str = Field(min_length=1)
    timestamp: EpochTimestamp = Field(default_factory=utcnow)

    @field_validator("value", mode="before")
    @classmethod
    def _normalize_value(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower()
        if isinstance(value, bool):
            return "on" if value else "off"
        if isinstance(value, int | float):
            return str(value)
        return value


class BridgeStateRecord(IrAmpBaseModel):
    """Outbound confirmed power state, as read by the CEC listener."""

    power: Literal["on", "off"]
    timestamp: int = Field(default_factory=now_ms, description="Epoch milliseconds.")
    source: str

    @classmethod
    def from_power(cls, is_on: bool, source: str) -> BridgeStateRecord:
        return cls(power="on" if is_on else "off", source=source)

    @property
    def is_on(self) -> bool:
        return self.power == "on"

    @property
    def written_at(self) -> datetime | None:
        return parse_epoch_timestamp(self.timestamp)
