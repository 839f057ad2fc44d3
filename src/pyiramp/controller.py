"""High-level async controller for an IR-driven amplifier."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import aiohttp

from pyiramp.actuator import Actuator, IrTransmitter
from pyiramp.bridge import ExternalBridge
from pyiramp.config import AmplifierConfig
from pyiramp.models.bridge import BridgeAction, BridgeMessage
from pyiramp.models.volume import VolumeReading
from pyiramp.reconciler import PowerStateReconciler
from pyiramp.sensor import OutletDevice, PowerSensor
from pyiramp.startup import StartupSequencer
from pyiramp.vision import CameraVolumeReader, TextRecognizer, is_expected_source
from pyiramp.volume import VolumeController

_logger = logging.getLogger(__name__)

Listener = Callable[[str, Any], None]


class AmplifierController:
    """Async controller composing sensor, actuator, bridge and state owners.

    Usage::

        async with AmplifierController(config, outlet=outlet, transmitter=blaster) as amp:
            await amp.set_power(True)
            await amp.set_volume(30)

    Entering the context synchronizes the power state with the outlet and
    starts the background timers: outlet monitor, periodic
    reconciliation, bridge watcher and (when a camera is configured)
    periodic volume reading.
    """

    def __init__(
        self,
        config: AmplifierConfig,
        *,
        outlet: OutletDevice,
        transmitter: IrTransmitter,
        recognizer: TextRecognizer | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._listeners: list[Listener] = []
        self._tasks: list[asyncio.Task[None]] = []
        self._source_correct: bool | None = None
        self._last_vision_check: float | None = None

        self._sensor = PowerSensor(
            outlet,
            threshold=config.power_threshold,
            power_monitoring=config.power_monitoring,
        )
        self._actuator = Actuator(transmitter, config.commands)
        self._bridge = ExternalBridge(
            config.bridge_inbound_path,
            config.bridge_outbound_path,
            source_name=config.bridge_source_name,
            poll_interval=config.bridge_poll_interval,
        )
        self._reconciler = PowerStateReconciler(
            self._sensor,
            self._actuator,
            verify_delay=config.verify_delay,
            on_visible=lambda value: self._emit("power", value),
            on_confirmed=self._on_power_confirmed,
        )
        self._volume = VolumeController(
            self._actuator,
            initial_volume=config.initial_volume,
            step_delay=config.volume_step_delay,
            confidence_threshold=config.vision_confidence_threshold,
            delta_threshold=config.vision_delta_threshold,
            on_change=lambda value: self._emit("volume", value),
        )
        self._sequencer = StartupSequencer(
            self._reconciler,
            self._volume,
            self._actuator,
            self._sensor,
            power_on_config=config.power_on,
            volume_init_config=config.volume_init,
        )
        self._volume_reader: CameraVolumeReader | None = None
        if config.camera_url and recognizer is not None:
            self._volume_reader = CameraVolumeReader(config.camera_url, recognizer, session=session)

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> AmplifierController:
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    @property
    def is_running(self) -> bool:
        return bool(self._tasks)

    async def start(self) -> None:
        """Synchronize with the outlet and start background timers."""
        if self.is_running:
            return
        if self._volume_reader is not None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            self._volume_reader.bind_session(self._http_session)

        await self._reconciler.synchronize()

        loop = asyncio.get_running_loop()
        cfg = self._config
        self._tasks = [
            loop.create_task(
                self._run_periodic("outlet monitor", cfg.sensor_poll_interval, self._monitor_tick),
                name="pyiramp-monitor",
            ),
            loop.create_task(
                self._run_periodic("periodic verification", cfg.reconcile_interval, self._reconciler.reconcile),
                name="pyiramp-reconcile",
            ),
        ]
        if self._volume_reader is not None:
            self._tasks.append(
                loop.create_task(
                    self._run_periodic(
                        "volume reading",
                        cfg.vision_check_interval,
                        self.refresh_volume,
                        immediate=True,
                    ),
                    name="pyiramp-vision",
                )
            )
        self._bridge.start(self.dispatch_bridge_message)
        _logger.info("Amplifier controller started (power %s)", "ON" if self._reconciler.is_on else "OFF")

    async def close(self) -> None:
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        await self._bridge.stop()
        await self._reconciler.close()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None

    async def _run_periodic(
        self,
        name: str,
        interval: float,
        tick: Callable[[], Awaitable[Any]],
        *,
        immediate: bool = False,
    ) -> None:
        if not immediate:
            await asyncio.sleep(interval)
        while True:
            try:
                await tick()
            except Exception:
                _logger.exception("Error during %s", name)
            await asyncio.sleep(interval)

    async def _monitor_tick(self) -> None:
        reading = await self._sensor.read()
        self._reconciler.handle_reading(reading)

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener(event, value)`` for ``"power"`` and ``"volume"``.

        Returns a callable that unregisters the listener.
        """
        self._listeners.append(listener)

        def _remove() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return _remove

    def _emit(self, event: str, value: Any) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, value)
            except Exception:
                _logger.exception("Listener failed for %s event", event)

    def _on_power_confirmed(self, is_on: bool, reason: str) -> None:
        _logger.debug("Power %s confirmed by %s", "ON" if is_on else "OFF", reason)
        self._bridge.publish_state(is_on)

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    @property
    def reconciler(self) -> PowerStateReconciler:
        return self._reconciler

    @property
    def volume(self) -> VolumeController:
        return self._volume

    @property
    def bridge(self) -> ExternalBridge:
        return self._bridge

    @property
    def actuator(self) -> Actuator:
        return self._actuator

    # ------------------------------------------------------------------
    # Power
    # ------------------------------------------------------------------

    async def set_power(self, on: bool) -> bool:
        """Turn the amplifier on (full startup sequence) or off."""
        if on:
            return await self._sequencer.power_on()
        return await self._sequencer.power_off()

    async def get_power(self) -> bool:
        """Read the outlet and return the visible power state.

        The reading is only adopted when no transition is in flight.
        """
        reading = await self._sensor.read()
        self._reconciler.handle_reading(reading)
        return self._reconciler.is_on

    # ------------------------------------------------------------------
    # Volume
    # ------------------------------------------------------------------

    async def set_volume(self, level: int) -> None:
        await self._volume.set_target(level)

    async def get_volume(self) -> int:
        """Return the counted volume, refreshing it from the camera when stale."""
        if self._volume_reader is not None:
            now = asyncio.get_running_loop().time()
            last = self._last_vision_check
            if last is None or now - last > self._config.vision_min_refresh:
                await self.refresh_volume()
        return self._volume.current

    async def mute(self) -> bool:
        return await self._volume.mute()

    @property
    def source_correct(self) -> bool | None:
        """Whether the display last showed the expected input (``None`` if unknown)."""
        return self._source_correct

    async def refresh_volume(self) -> VolumeReading | None:
        """Read the display once and apply the result."""
        if self._volume_reader is None:
            return None
        reading = await self._volume_reader.read()
        if reading.is_empty:
            return reading
        self._last_vision_check = asyncio.get_running_loop().time()
        self._volume.apply_reading(reading)
        if reading.source is not None:
            self._source_correct = is_expected_source(reading.source, self._config.expected_source)
            if not self._source_correct:
                _logger.warning(
                    "Source is not %s. Current source: %s",
                    self._config.expected_source.upper(),
                    reading.source,
                )
        return reading

    # ------------------------------------------------------------------
    # Bridge
    # ------------------------------------------------------------------

    async def dispatch_bridge_message(self, message: BridgeMessage) -> None:
        """Apply a command relayed by the CEC listener as a local request."""
        action, value = message.action, message.value
        if action is BridgeAction.POWER:
            if value == "on":
                await self._reconciler.request_from_bridge(True)
            elif value == "off":
                await self._reconciler.request_from_bridge(False)
            else:
                _logger.warning("Unknown bridge power value: %s", value)
        elif action is BridgeAction.VOLUME:
            if value == "up":
                await self._volume.nudge(+1)
            elif value == "down":
                await self._volume.nudge(-1)
            else:
                _logger.warning("Unknown bridge volume value: %s", value)
        elif action is BridgeAction.MUTE:
            await self._volume.mute()
