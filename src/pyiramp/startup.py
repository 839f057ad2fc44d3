"""Multi-stage power-on sequence."""

from __future__ import annotations

import asyncio
import logging

from pyiramp.actuator import Actuator
from pyiramp.config import PowerOnConfig, VolumeInitConfig
from pyiramp.models.commands import AmpCommand
from pyiramp.reconciler import PowerStateReconciler
from pyiramp.sensor import PowerSensor
from pyiramp.volume import VolumeController

_logger = logging.getLogger(__name__)


class StartupSequencer:
    """Power the amplifier on and bring it to a known volume.

    Stages, each optional except the power pulse:

    1. make sure the upstream outlet is energized, then let it settle;
    2. send power-on through the reconciler and wait for verification;
    3. redirect the TV input to the amplifier;
    4. run the volume baseline routine.
    """

    def __init__(
        self,
        reconciler: PowerStateReconciler,
        volume: VolumeController,
        actuator: Actuator,
        sensor: PowerSensor,
        *,
        power_on_config: PowerOnConfig | None = None,
        volume_init_config: VolumeInitConfig | None = None,
    ) -> None:
        self._reconciler = reconciler
        self._volume = volume
        self._actuator = actuator
        self._sensor = sensor
        self._power_on = power_on_config or PowerOnConfig()
        self._volume_init = volume_init_config or VolumeInitConfig()
        self._lock = asyncio.Lock()

    async def _ensure_outlet_energized(self) -> None:
        if await self._sensor.relay_on():
            _logger.debug("Outlet already energized")
            return
        _logger.info("Outlet is off, switching it on before power-on")
        if not await self._sensor.energize():
            _logger.warning("Could not energize outlet, sending power-on anyway")
            return
        _logger.info("Waiting %.1fs for the amplifier to settle", self._power_on.outlet_power_on_delay)
        await asyncio.sleep(self._power_on.outlet_power_on_delay)

    async def initialize_volume(self) -> bool:
        cfg = self._volume_init
        if not cfg.enabled:
            _logger.info("Volume initialization is disabled")
            return True
        _logger.info(
            "Volume initialization starting: maxSteps=%d, startupVolume=%d, delay=%.2fs",
            cfg.max_volume_steps,
            cfg.startup_volume,
            cfg.delay_between_steps,
        )
        return await self._volume.initialize(
            cfg.startup_volume,
            cfg.max_volume_steps,
            step_delay=cfg.delay_between_steps,
            settle_delay=cfg.floor_settle_delay,
        )

    async def power_on(self) -> bool:
        """Run the full power-on sequence.

        Returns ``True`` when the amplifier is confirmed on. The sequence
        is skipped entirely when the amplifier already is on.
        """
        async with self._lock:
            if self._reconciler.is_on and not self._reconciler.transitioning:
                _logger.info("Amplifier already on, skipping power-on sequence")
                return True

            if self._power_on.outlet_power_check:
                await self._ensure_outlet_energized()

            if not await self._reconciler.request_state(True):
                state = self._reconciler.state
                if not state.transitioning:
                    return state.is_on
            state = await self._reconciler.wait_settled()
            if not state.is_on:
                _logger.warning("Amplifier did not power on, skipping post power-on steps")
                return False

            if self._power_on.auto_hdmi_redirect:
                _logger.info("Sending HDMI redirect command...")
                if not await self._actuator.send(AmpCommand.HDMI_REDIRECT):
                    _logger.warning("HDMI redirect failed, continuing")

            if not await self.initialize_volume():
                _logger.warning("Volume initialization failed, counted volume may be off")
            return True

    async def power_off(self) -> bool:
        return await self._reconciler.request_state(False)
