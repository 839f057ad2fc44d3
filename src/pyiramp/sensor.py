"""Metering outlet power sensor.

The amplifier has no feedback channel, so the only ground truth for its
power state is the draw measured by the smart outlet it is plugged into.
"""

from __future__ import annotations

import logging
from typing import Protocol

from pyiramp.models._base import utcnow
from pyiramp.models.power import SensorReading

_logger = logging.getLogger(__name__)


class OutletDevice(Protocol):
    """Structural interface of a smart outlet.

    Implementations raise on transport failure; :class:`PowerSensor` is
    responsible for turning failures into a safe default.
    """

    async def relay_state(self) -> bool:
        ...

    async def power_watts(self) -> float | None:
        """Instantaneous draw in watts, or ``None`` when the outlet has no meter."""
        ...

    async def turn_on(self) -> None:
        ...


class PowerSensor:
    """Derive a boolean in-use signal from an outlet reading.

    ``in_use`` is ``power_watts > threshold`` when the outlet is metered,
    and the relay state otherwise. :meth:`read` never raises.
    """

    def __init__(
        self,
        device: OutletDevice,
        *,
        threshold: float = 1.0,
        power_monitoring: bool = True,
    ) -> None:
        self._device = device
        self._threshold = threshold
        self._power_monitoring = power_monitoring

    @property
    def threshold(self) -> float:
        return self._threshold

    async def read(self) -> SensorReading:
        """Read the outlet and derive the in-use state.

        Falls back from wattage to relay state, and from relay state to
        ``in_use=False``. The reading is stamped with the time the read
        started.
        """
        started = utcnow()
        if self._power_monitoring:
            try:
                watts = await self._device.power_watts()
            except Exception as exc:  # noqa: BLE001
                _logger.warning("Failed to read outlet power draw, using relay state: %s", exc)
            else:
                if watts is not None:
                    in_use = watts > self._threshold
                    _logger.debug(
                        "Outlet in use=%s power=%.2fW threshold=%.2fW",
                        in_use,
                        watts,
                        self._threshold,
                    )
                    return SensorReading(in_use=in_use, power_watts=watts, observed_at=started)
                _logger.debug("Outlet has no power meter, using relay state")

        try:
            relay_on = await self._device.relay_state()
        except Exception:
            _logger.error("Failed to read outlet state, assuming off", exc_info=True)
            return SensorReading(in_use=False, observed_at=started)
        _logger.debug("Outlet relay on=%s", relay_on)
        return SensorReading(in_use=bool(relay_on), observed_at=started)

    async def relay_on(self) -> bool:
        """Return the outlet relay state, ``False`` when unreadable."""
        try:
            return bool(await self._device.relay_state())
        except Exception:
            _logger.error("Failed to read outlet relay state", exc_info=True)
            return False

    async def energize(self) -> bool:
        """Switch the outlet relay on. Returns ``False`` on failure."""
        try:
            await self._device.turn_on()
        except Exception:
            _logger.error("Failed to switch outlet on", exc_info=True)
            return False
        _logger.info("Outlet switched on")
        return True
