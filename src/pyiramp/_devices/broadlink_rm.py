"""Broadlink RM IR blaster, via python-broadlink.

python-broadlink is synchronous; every device call runs in a worker
thread so the event loop keeps ticking while a pulse is emitted.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

import broadlink
from broadlink.exceptions import BroadlinkException, ReadError, StorageError

from pyiramp.exceptions import IrAmpTransportError

_logger = logging.getLogger(__name__)

_DISCOVERY_TIMEOUT = 5
_LEARN_POLL_INTERVAL = 1.0


def _normalize_mac(mac: str | bytes) -> str:
    if isinstance(mac, bytes):
        return mac.hex()
    return mac.replace(":", "").replace("-", "").lower()


class BroadlinkTransmitter:
    """:class:`~pyiramp.actuator.IrTransmitter` backed by a Broadlink RM."""

    def __init__(self, host: str, *, mac: str | None = None, device: Any | None = None) -> None:
        self._host = host
        self._mac = _normalize_mac(mac) if mac else None
        self._device = device
        self._lock = asyncio.Lock()

    def _connect(self) -> Any:
        if self._device is not None:
            return self._device
        if self._mac is None:
            device = broadlink.hello(self._host)
        else:
            found = broadlink.discover(timeout=_DISCOVERY_TIMEOUT, discover_ip_address=self._host)
            matches = [d for d in found if _normalize_mac(d.mac) == self._mac]
            if not matches:
                available = [(d.host[0], _normalize_mac(d.mac)) for d in found]
                raise IrAmpTransportError(
                    f"Broadlink device {self._mac} not found, available: {available}",
                    device=self._host,
                )
            device = matches[0]
        device.auth()
        _logger.info("Broadlink device found: %s %s", device.host[0], _normalize_mac(device.mac))
        self._device = device
        return device

    def _send_blocking(self, packet: bytes) -> None:
        try:
            self._connect().send_data(packet)
        except (BroadlinkException, OSError) as exc:
            # Force a fresh discovery/auth on the next pulse.
            self._device = None
            raise IrAmpTransportError(f"Broadlink send failed: {exc}", device=self._host) from exc

    async def transmit(self, packet: bytes) -> None:
        async with self._lock:
            await asyncio.to_thread(self._send_blocking, packet)

    def _learn_blocking(self, timeout: float) -> bytes | None:
        try:
            device = self._connect()
            device.enter_learning()
            deadline = time.monotonic() + timeout
            while time.monotonic() < deadline:
                time.sleep(_LEARN_POLL_INTERVAL)
                try:
                    return bytes(device.check_data())
                except (ReadError, StorageError):
                    continue
        except (BroadlinkException, OSError) as exc:
            raise IrAmpTransportError(f"Broadlink learning failed: {exc}", device=self._host) from exc
        return None

    async def learn(self, timeout: float = 10.0) -> str | None:
        """Enter learning mode and return the captured code as hex, or ``None`` on timeout."""
        _logger.info("Learning IR command... Press the button on your remote")
        async with self._lock:
            data = await asyncio.to_thread(self._learn_blocking, timeout)
        if data is None:
            _logger.warning("Learning timeout")
            return None
        code = data.hex()
        _logger.info("Learned command: %s", code)
        return code
