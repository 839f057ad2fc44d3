"""TP-Link Kasa metering plug, via python-kasa."""

from __future__ import annotations

import logging

from kasa import Device, Discover, KasaException, Module

from pyiramp.exceptions import IrAmpTransportError

_logger = logging.getLogger(__name__)

_TRANSPORT_ERRORS = (KasaException, OSError, TimeoutError)


class KasaOutlet:
    """:class:`~pyiramp.sensor.OutletDevice` backed by a Kasa plug.

    The device is discovered lazily on first use and refreshed before
    every read.
    """

    def __init__(self, host: str, *, device: Device | None = None) -> None:
        self._host = host
        self._device = device

    async def _refresh(self) -> Device:
        try:
            if self._device is None:
                device = await Discover.discover_single(self._host)
                _logger.info("Kasa outlet found: %s (%s)", device.alias, device.model)
                if Module.Energy not in device.modules:
                    _logger.info("Outlet does not support power monitoring - will use relay state")
                self._device = device
            await self._device.update()
        except _TRANSPORT_ERRORS as exc:
            raise IrAmpTransportError(f"Kasa outlet {self._host} unreachable: {exc}", device=self._host) from exc
        return self._device

    async def relay_state(self) -> bool:
        device = await self._refresh()
        return bool(device.is_on)

    async def power_watts(self) -> float | None:
        device = await self._refresh()
        energy = device.modules.get(Module.Energy)
        if energy is None:
            return None
        watts = energy.current_consumption
        return float(watts) if watts is not None else None

    async def turn_on(self) -> None:
        device = await self._refresh()
        try:
            await device.turn_on()
        except _TRANSPORT_ERRORS as exc:
            raise IrAmpTransportError(f"Failed to switch Kasa outlet {self._host} on: {exc}", device=self._host) from exc

    async def close(self) -> None:
        """Disconnect the underlying device transport."""
        device, self._device = self._device, None
        if device is not None:
            await device.disconnect()
