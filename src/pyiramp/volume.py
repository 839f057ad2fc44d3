"""Open-loop volume control by step counting.

The amplifier only understands relative volume pulses and never reports
its level, so the controller keeps a counted volume that moves by exactly
one per confirmed pulse. An occasional camera reading of the display may
overwrite it when it is both confident and far enough off.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from pyiramp import _constants as const
from pyiramp.actuator import Actuator
from pyiramp.models.commands import AmpCommand
from pyiramp.models.volume import VolumeReading, VolumeState

_logger = logging.getLogger(__name__)

VolumeCallback = Callable[[int], None]


def _check_level(level: int, name: str = "volume") -> int:
    value = int(level)
    if not const.VOLUME_MIN <= value <= const.VOLUME_MAX:
        raise ValueError(f"{name} must be between {const.VOLUME_MIN} and {const.VOLUME_MAX}, got {value}")
    return value


class VolumeController:
    """Owner of the counted volume.

    Only one step sequence runs at a time (sync or initialization). A
    target set while a sequence runs is recorded and picked up by the
    running sync.
    """

    def __init__(
        self,
        actuator: Actuator,
        *,
        initial_volume: int = 50,
        step_delay: float = const.VOLUME_STEP_DELAY,
        confidence_threshold: float = 0.7,
        delta_threshold: int = 5,
        on_change: VolumeCallback | None = None,
    ) -> None:
        self._actuator = actuator
        initial = _check_level(initial_volume, "initial_volume")
        self._current = initial
        self._target = initial
        self._syncing = False
        # Set when a target arrives while a step sequence owns the volume.
        self._target_requested = False
        self._step_delay = step_delay
        self._confidence_threshold = confidence_threshold
        self._delta_threshold = delta_threshold
        self._on_change = on_change

    @property
    def current(self) -> int:
        return self._current

    @property
    def target(self) -> int:
        return self._target

    @property
    def sync_in_progress(self) -> bool:
        return self._syncing

    @property
    def state(self) -> VolumeState:
        return VolumeState(current=self._current, target=self._target, sync_in_progress=self._syncing)

    def _publish(self) -> None:
        if self._on_change is None:
            return
        try:
            self._on_change(self._current)
        except Exception:
            _logger.exception("Volume listener failed")

    async def _step(self, command: AmpCommand) -> bool:
        if not await self._actuator.send(command):
            return False
        delta = 1 if command is AmpCommand.VOLUME_UP else -1
        self._current = const.clamp_volume(self._current + delta)
        self._publish()
        return True

    # ------------------------------------------------------------------
    # Target tracking
    # ------------------------------------------------------------------

    async def set_target(self, level: int) -> None:
        """Record a new target and converge to it unless a sync already runs."""
        self._target = _check_level(level)
        _logger.info("Setting volume to: %d", self._target)
        if self._syncing:
            _logger.debug("Volume sync in progress, target recorded")
            self._target_requested = True
            return
        await self.sync()

    async def nudge(self, delta: int) -> None:
        """Move the target relative to the current target (clamped)."""
        await self.set_target(const.clamp_volume(self._target + delta))

    async def sync(self) -> int:
        """Step the counted volume toward the target.

        Returns the number of confirmed steps. A failed send aborts the
        sequence and leaves the counted volume at its last confirmed value.
        """
        if self._syncing:
            return 0
        self._syncing = True
        steps = 0
        _logger.info("Syncing volume from %d to %d", self._current, self._target)
        try:
            while self._current != self._target:
                command = AmpCommand.VOLUME_UP if self._target > self._current else AmpCommand.VOLUME_DOWN
                if steps:
                    await asyncio.sleep(self._step_delay)
                if not await self._step(command):
                    _logger.error(
                        "Volume step %s failed after %d step(s), stopping at %d",
                        command,
                        steps,
                        self._current,
                    )
                    break
                steps += 1
            else:
                _logger.info("Volume sync completed. Current volume: %d", self._current)
        finally:
            self._syncing = False
            self._target_requested = False
        return steps

    # ------------------------------------------------------------------
    # External corrections
    # ------------------------------------------------------------------

    def apply_observation(self, volume: int, confidence: float) -> bool:
        """Overwrite the counted volume from an external reading.

        Only readings more confident than the threshold and further off
        than the noise threshold are accepted, and never while a step
        sequence runs. Returns ``True`` when the counted volume changed.
        """
        if confidence <= self._confidence_threshold:
            _logger.debug("Ignoring volume reading %d (confidence %.2f)", volume, confidence)
            return False
        observed = _check_level(volume)
        if abs(observed - self._current) <= self._delta_threshold:
            return False
        if self._syncing:
            _logger.debug("Ignoring volume reading %d - volume sync in progress", observed)
            return False
        _logger.info("Volume reading mismatch. Observed: %d, counted: %d", observed, self._current)
        self._current = observed
        self._target = observed
        self._publish()
        return True

    def apply_reading(self, reading: VolumeReading) -> bool:
        if reading.volume is None:
            return False
        return self.apply_observation(reading.volume, reading.confidence)

    # ------------------------------------------------------------------
    # Baseline
    # ------------------------------------------------------------------

    async def initialize(
        self,
        startup_volume: int,
        max_steps: int,
        *,
        step_delay: float | None = None,
        settle_delay: float = const.VOLUME_FLOOR_SETTLE_DELAY,
    ) -> bool:
        """Bring the counted volume to a known baseline.

        Sends *max_steps* volume-down pulses to saturate the physical
        floor, pauses, then *min(startup_volume, max_steps)* volume-up
        pulses. A target set meanwhile is kept and synced to afterwards.
        Returns ``False`` if a pulse fails or another sequence is running.
        """
        startup = _check_level(startup_volume, "startup_volume")
        if self._syncing:
            _logger.warning("Volume sequence in progress, skipping volume initialization")
            return False
        delay = self._step_delay if step_delay is None else step_delay
        up_steps = min(startup, max_steps)

        self._syncing = True
        self._target_requested = False
        try:
            _logger.info("Sending %d volume down commands to reach minimum volume...", max_steps)
            for i in range(max_steps):
                if i:
                    await asyncio.sleep(delay)
                if not await self._step(AmpCommand.VOLUME_DOWN):
                    _logger.error("Failed to send volume down command %d/%d", i + 1, max_steps)
                    return False
            if self._current != const.VOLUME_MIN:
                self._current = const.VOLUME_MIN
                self._publish()

            _logger.info("Volume set to minimum, waiting %.1fs before setting startup volume...", settle_delay)
            await asyncio.sleep(settle_delay)

            _logger.info("Sending %d volume up commands to reach startup volume %d...", up_steps, startup)
            for i in range(up_steps):
                if i:
                    await asyncio.sleep(delay)
                if not await self._step(AmpCommand.VOLUME_UP):
                    _logger.error("Failed to send volume up command %d/%d", i + 1, up_steps)
                    return False
        finally:
            if not self._target_requested:
                self._target = self._current
            self._syncing = False

        _logger.info("Volume initialization completed - volume set to %d", self._current)
        if self._target_requested:
            self._target_requested = False
            _logger.info("Volume target %d requested during initialization", self._target)
            await self.sync()
        return True

    async def mute(self) -> bool:
        """Send the mute pulse. The counted volume is left unchanged."""
        return await self._actuator.send(AmpCommand.MUTE)
