"""Power state reconciliation.

The reconciler owns the single authoritative power state and mediates
between three imperfect views of it:

* the last command sent through the :class:`~pyiramp.actuator.Actuator`;
* the metering outlet read by the :class:`~pyiramp.sensor.PowerSensor`;
* requests relayed from the external CEC listener.

It is a two-state machine. ``Idle(is_on)`` accepts sensor corrections.
``Transitioning(target, ...)`` is entered when a power command is sent and
left only by the delayed verification read (or by a failed send). While
transitioning, sensor readings and periodic reconciliation are ignored:
the outlet takes real time to reflect a power change, and correcting
immediately would make the visible state flicker between the optimistic
and the stale value.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from pyiramp import _constants as const
from pyiramp.actuator import Actuator
from pyiramp.models._base import utcnow
from pyiramp.models.commands import AmpCommand
from pyiramp.models.power import PendingTransition, PowerState, SensorReading
from pyiramp.sensor import PowerSensor

_logger = logging.getLogger(__name__)

VisibleCallback = Callable[[bool], None]
ConfirmedCallback = Callable[[bool, str], None]


def _on_off(value: bool) -> str:
    return "ON" if value else "OFF"


@dataclass(frozen=True, slots=True)
class Idle:
    is_on: bool


@dataclass(frozen=True, slots=True)
class Transitioning:
    target: bool
    requested_at: datetime
    previous: bool


Phase = Idle | Transitioning


class PowerStateReconciler:
    """Owner of the amplifier's logical power state.

    Parameters
    ----------
    sensor : PowerSensor
        Ground truth, read after every transition and on every tick.
    actuator : Actuator
        IR command channel.
    verify_delay : float
        Seconds between a power command and its verification read.
    on_visible : callable, optional
        Called with the visible state every time it is (re)published,
        optimistic updates included.
    on_confirmed : callable, optional
        Called with ``(is_on, source)`` whenever a state is confirmed by
        the sensor. This is what feeds the outbound bridge.
    clock : callable, optional
        Source of timestamps.
    """

    def __init__(
        self,
        sensor: PowerSensor,
        actuator: Actuator,
        *,
        verify_delay: float = const.VERIFY_DELAY,
        on_visible: VisibleCallback | None = None,
        on_confirmed: ConfirmedCallback | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._sensor = sensor
        self._actuator = actuator
        self._verify_delay = verify_delay
        self._on_visible = on_visible
        self._on_confirmed = on_confirmed
        self._clock = clock

        self._phase: Phase = Idle(False)
        self._visible = False
        self._last_confirmed_at: datetime | None = None
        self._verification: asyncio.Task[None] | None = None
        # Serializes requests arriving in the same tick (local API and
        # bridge) so each one sees the phase left by the previous one.
        self._request_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # State access
    # ------------------------------------------------------------------

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def is_on(self) -> bool:
        """The visible state (optimistic while a transition is in flight)."""
        return self._visible

    @property
    def transitioning(self) -> bool:
        return isinstance(self._phase, Transitioning)

    @property
    def state(self) -> PowerState:
        phase = self._phase
        pending: PendingTransition | None = None
        if isinstance(phase, Transitioning):
            pending = PendingTransition(
                target=phase.target,
                requested_at=phase.requested_at,
                previous=phase.previous,
            )
        return PowerState(
            is_on=self._visible,
            last_confirmed_at=self._last_confirmed_at,
            pending=pending,
        )

    def _publish_visible(self, value: bool) -> None:
        self._visible = value
        if self._on_visible is None:
            return
        try:
            self._on_visible(value)
        except Exception:
            _logger.exception("Power state listener failed")

    def _confirm(self, value: bool, source: str) -> None:
        self._phase = Idle(value)
        self._last_confirmed_at = self._clock()
        self._publish_visible(value)
        if self._on_confirmed is None:
            return
        try:
            self._on_confirmed(value, source)
        except Exception:
            _logger.exception("Confirmed power state listener failed")

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def synchronize(self) -> bool:
        """Adopt the sensor state as the initial ground truth."""
        reading = await self._sensor.read()
        if self.transitioning:
            _logger.debug("Skipping initial synchronization - state change in progress")
            return self._visible
        _logger.info("Initial outlet state (in use): %s", reading.in_use)
        self._confirm(reading.in_use, "startup")
        return reading.in_use

    async def request_state(self, target: bool, *, origin: str = "local") -> bool:
        """Drive the amplifier to *target*.

        Returns ``True`` when a power command was transmitted and a
        verification is now scheduled. Returns ``False`` when nothing was
        sent, either because no change was needed or because the send
        failed (in which case the visible state has been reverted).
        """
        async with self._request_lock:
            phase = self._phase
            if isinstance(phase, Idle):
                if phase.is_on == target:
                    _logger.info("No state change needed - already %s", _on_off(target))
                    self._publish_visible(phase.is_on)
                    return False
                previous = phase.is_on
            else:
                if phase.target == target:
                    _logger.info("Transition to %s already in flight", _on_off(target))
                    self._publish_visible(target)
                    return False
                _logger.info(
                    "Superseding in-flight transition to %s with %s",
                    _on_off(phase.target),
                    _on_off(target),
                )
                if self._actuator.resolves_to_toggle(AmpCommand.for_power(target)):
                    _logger.warning("Only the power toggle code is configured, the amplifier may end up inverted")
                previous = phase.previous
                await self._cancel_verification()

            _logger.info("State change requested by %s: %s -> %s", origin, _on_off(self._visible), _on_off(target))
            restore = phase
            transition = Transitioning(target=target, requested_at=self._clock(), previous=previous)
            self._phase = transition
            self._publish_visible(target)

            sent = await self._actuator.send(AmpCommand.for_power(target))
            if not sent:
                _logger.error("Failed to send power command, reverting state")
                self._phase = restore
                if isinstance(restore, Transitioning):
                    self._publish_visible(restore.target)
                    self._schedule_verification(restore)
                else:
                    self._publish_visible(restore.is_on)
                return False

            _logger.info("Power command sent, verifying in %.1fs", self._verify_delay)
            self._schedule_verification(transition)
            return True

    async def request_from_bridge(self, target: bool) -> bool:
        """Handle a power request relayed by the CEC listener.

        When only the toggle code is configured the same pulse turns the
        amplifier both on and off, so a request for a state the outlet
        already reports is dropped instead of toggling it away.
        """
        reading = await self._sensor.read()
        if reading.in_use == target:
            _logger.info("Bridge requested %s but outlet already reports it, no command sent", _on_off(target))
            if isinstance(self._phase, Idle) and self._phase.is_on != target:
                self._apply_reading(reading, "bridge")
            else:
                self._publish_visible(self._visible)
            return False
        return await self.request_state(target, origin="bridge")

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def _schedule_verification(self, transition: Transitioning) -> None:
        task = self._verification
        if task is not None and not task.done():
            task.cancel()
        self._verification = asyncio.get_running_loop().create_task(
            self._verify_after_delay(transition),
            name="pyiramp-power-verify",
        )

    async def _cancel_verification(self) -> None:
        task = self._verification
        self._verification = None
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _verify_after_delay(self, transition: Transitioning) -> None:
        await asyncio.sleep(self._verify_delay)
        await self._verify(transition)

    async def _verify(self, transition: Transitioning) -> None:
        try:
            reading = await self._sensor.read()
        except Exception:
            _logger.exception("Error during state verification")
            if self._phase is transition:
                self._phase = Idle(self._visible)
            return
        finally:
            if self._verification is asyncio.current_task():
                self._verification = None

        if self._phase is not transition:
            _logger.debug("Verification superseded by a newer transition, ignoring")
            return

        if reading.in_use == transition.target:
            _logger.info("State change confirmed - outlet reports %s", _on_off(reading.in_use))
        else:
            _logger.warning(
                "State mismatch detected - outlet: %s, expected: %s. Correcting to outlet state",
                _on_off(reading.in_use),
                _on_off(transition.target),
            )
        self._confirm(reading.in_use, "verification")

    async def wait_settled(self) -> PowerState:
        """Wait until no transition is in flight and return the state."""
        while isinstance(self._phase, Transitioning):
            task = self._verification
            if task is not None and not task.done():
                await asyncio.wait({task})
            elif self._request_lock.locked():
                async with self._request_lock:
                    pass
            else:
                break
        return self.state

    # ------------------------------------------------------------------
    # Sensor-driven corrections
    # ------------------------------------------------------------------

    def _apply_reading(self, reading: SensorReading, source: str) -> bool:
        phase = self._phase
        if isinstance(phase, Transitioning):
            _logger.debug(
                "Ignoring %s reading (in use=%s) - transition to %s in flight",
                source,
                reading.in_use,
                _on_off(phase.target),
            )
            return False
        if self._last_confirmed_at is not None and reading.observed_at < self._last_confirmed_at:
            _logger.debug("Ignoring %s reading taken before the last confirmation", source)
            return False
        if reading.in_use == phase.is_on:
            self._last_confirmed_at = reading.observed_at
            _logger.debug("%s check - states match (%s)", source.capitalize(), _on_off(phase.is_on))
            return False
        _logger.info(
            "%s check - power state changed: %s -> %s",
            source.capitalize(),
            _on_off(phase.is_on),
            _on_off(reading.in_use),
        )
        self._confirm(reading.in_use, source)
        return True

    def handle_reading(self, reading: SensorReading) -> bool:
        """Apply a monitor reading. Returns ``True`` when the state changed."""
        return self._apply_reading(reading, "sensor")

    async def reconcile(self) -> bool:
        """Periodic drift check. Never fights an in-flight transition."""
        if self.transitioning:
            _logger.debug("Skipping periodic verification - state change in progress")
            return False
        reading = await self._sensor.read()
        # A transition may have started while the outlet was being read.
        return self._apply_reading(reading, "reconcile")

    async def close(self) -> None:
        await self._cancel_verification()
