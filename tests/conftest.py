from __future__ import annotations

import asyncio
import dataclasses
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

import pytest

from pyiramp.actuator import Actuator
from pyiramp.config import IrCommandCodes
from pyiramp.sensor import PowerSensor

CODES = IrCommandCodes(
    power="a0",
    power_on="a1",
    power_off="a2",
    source="a3",
    volume_up="a4",
    volume_down="a5",
    mute="a6",
    hdmi_redirect="a7",
)

_NAME_BY_PACKET = {bytes.fromhex(code): name for name, code in dataclasses.asdict(CODES).items() if code}


@dataclass
class FakeAmplifier:
    """Amplifier plugged into a metering outlet, driven by an IR blaster.

    Implements both the outlet and the transmitter protocols. IR power
    pulses change ``on`` only while the outlet relay is energized and
    ``responsive`` is set.
    """

    relay: bool = True
    on: bool = False
    metered: bool = True
    responsive: bool = True
    on_watts: float = 40.0
    standby_watts: float = 0.5
    fail_sends: set[int] = field(default_factory=set)
    fail_reads: bool = False
    send_delay: float = 0.0
    sent: list[str] = field(default_factory=list)
    attempts: int = 0
    reads: int = 0
    active: int = 0
    max_active: int = 0

    # Outlet --------------------------------------------------------

    async def relay_state(self) -> bool:
        self.reads += 1
        if self.fail_reads:
            raise OSError("outlet unreachable")
        return self.relay

    async def power_watts(self) -> float | None:
        if not self.metered:
            return None
        self.reads += 1
        if self.fail_reads:
            raise OSError("outlet unreachable")
        if not self.relay:
            return 0.0
        return self.on_watts if self.on else self.standby_watts

    async def turn_on(self) -> None:
        self.relay = True

    # IR blaster ----------------------------------------------------

    async def transmit(self, packet: bytes) -> None:
        self.attempts += 1
        attempt = self.attempts
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.send_delay:
                await asyncio.sleep(self.send_delay)
            if attempt in self.fail_sends:
                raise OSError("IR blaster unreachable")
        finally:
            self.active -= 1
        name = _NAME_BY_PACKET[packet]
        self.sent.append(name)
        if not (self.responsive and self.relay):
            return
        if name == "power_on":
            self.on = True
        elif name == "power_off":
            self.on = False
        elif name == "power":
            self.on = not self.on


@pytest.fixture
def amp() -> FakeAmplifier:
    return FakeAmplifier()


@pytest.fixture
def sensor(amp: FakeAmplifier) -> PowerSensor:
    return PowerSensor(amp, threshold=3.0)


@pytest.fixture
def actuator(amp: FakeAmplifier) -> Actuator:
    return Actuator(amp, CODES)


async def wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise TimeoutError("condition not met in time")
        await asyncio.sleep(0.005)


@pytest.fixture(name="wait_for")
def wait_for_fixture() -> Callable[..., Awaitable[None]]:
    return wait_for


@pytest.fixture
def codes() -> IrCommandCodes:
    return CODES
