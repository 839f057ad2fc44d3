"""Logical actuator commands."""

from __future__ import annotations

import enum


class AmpCommand(enum.StrEnum):
    """Logical IR commands understood by :class:`pyiramp.actuator.Actuator`.

    The payload behind each name is an opaque learned code taken from
    :class:`pyiramp.config.IrCommandCodes`.
    """

    POWER_ON = "power-on"
    POWER_OFF = "power-off"
    POWER_TOGGLE = "power-toggle"
    VOLUME_UP = "volume-up"
    VOLUME_DOWN = "volume-down"
    MUTE = "mute"
    SOURCE_TOGGLE = "source-toggle"
    HDMI_REDIRECT = "hdmi-redirect"

    @classmethod
    def for_power(cls, target: bool) -> AmpCommand:
        return cls.POWER_ON if target else cls.POWER_OFF
