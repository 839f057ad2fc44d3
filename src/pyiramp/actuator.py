"""Fire-and-forget IR actuator.

A successful :meth:`Actuator.send` only means the signal left the
blaster. It says nothing about what the amplifier did with it.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Protocol

from pyiramp.config import IrCommandCodes
from pyiramp.exceptions import IrAmpCommandNotConfiguredError
from pyiramp.models._base import utcnow
from pyiramp.models.commands import AmpCommand

_logger = logging.getLogger(__name__)


class IrTransmitter(Protocol):
    """Structural interface of an IR blaster.

    ``transmit`` raises on failure. Having a protocol here makes it easy
    to pass test doubles while keeping the Broadlink adapter concrete.
    """

    async def transmit(self, packet: bytes) -> None:
        ...


class Actuator:
    """Send logical commands as learned IR codes, one at a time."""

    def __init__(self, transmitter: IrTransmitter, codes: IrCommandCodes) -> None:
        self._transmitter = transmitter
        self._codes = codes
        # The blaster can only emit one signal at a time; asyncio.Lock
        # wakes waiters in FIFO order.
        self._lock = asyncio.Lock()
        self._last_sent_at: datetime | None = None

    @property
    def last_sent_at(self) -> datetime | None:
        return self._last_sent_at

    def resolve_code(self, command: AmpCommand) -> str:
        """Return the hex code for *command*.

        Raises :class:`IrAmpCommandNotConfiguredError` when nothing is
        configured, fallbacks included.
        """
        codes = self._codes
        code: str | None
        if command is AmpCommand.POWER_ON:
            code = codes.power_on or codes.power
        elif command is AmpCommand.POWER_OFF:
            code = codes.power_off or codes.power
        elif command is AmpCommand.POWER_TOGGLE:
            code = codes.power
        elif command is AmpCommand.VOLUME_UP:
            code = codes.volume_up
        elif command is AmpCommand.VOLUME_DOWN:
            code = codes.volume_down
        elif command is AmpCommand.MUTE:
            code = codes.mute
            if not code:
                _logger.warning("No mute code configured, using volume-down as fallback")
                code = codes.volume_down
        elif command is AmpCommand.SOURCE_TOGGLE:
            code = codes.source
        elif command is AmpCommand.HDMI_REDIRECT:
            code = codes.hdmi_redirect
        else:
            code = None
        if not code:
            raise IrAmpCommandNotConfiguredError(str(command))
        return code.strip()

    def resolves_to_toggle(self, command: AmpCommand) -> bool:
        """Whether a power command falls back to the ambiguous toggle code."""
        if command is AmpCommand.POWER_TOGGLE:
            return True
        if command is AmpCommand.POWER_ON:
            return not self._codes.power_on
        if command is AmpCommand.POWER_OFF:
            return not self._codes.power_off
        return False

    async def send(self, command: AmpCommand) -> bool:
        """Transmit *command*. Returns ``True`` when the signal was emitted."""
        try:
            code = self.resolve_code(command)
            packet = bytes.fromhex(code)
        except IrAmpCommandNotConfiguredError:
            _logger.warning("IR command %s is not configured, skipping", command)
            return False
        except ValueError:
            _logger.error("IR code for %s is not valid hex", command)
            return False

        async with self._lock:
            try:
                await self._transmitter.transmit(packet)
            except Exception:
                _logger.error("Failed to send IR command %s", command, exc_info=True)
                return False
            self._last_sent_at = utcnow()

        _logger.info("IR command sent: %s (%s...)", command, code[:16])
        return True
