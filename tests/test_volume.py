from __future__ import annotations

import asyncio

import pytest

from pyiramp.models.volume import VolumeReading
from pyiramp.volume import VolumeController


def _controller(actuator, *, initial: int = 50, step_delay: float = 0.0, changes: list[int] | None = None):
    return VolumeController(
        actuator,
        initial_volume=initial,
        step_delay=step_delay,
        confidence_threshold=0.7,
        delta_threshold=5,
        on_change=changes.append if changes is not None else None,
    )


@pytest.mark.asyncio
async def test_sync_steps_down_one_pulse_per_unit(amp, actuator) -> None:
    changes: list[int] = []
    volume = _controller(actuator, changes=changes)

    await volume.set_target(30)

    assert amp.sent == ["volume_down"] * 20
    assert volume.current == 30
    assert changes == list(range(49, 29, -1))
    assert volume.state.sync_in_progress is False


@pytest.mark.asyncio
async def test_failed_step_aborts_at_last_confirmed_value(amp, actuator) -> None:
    amp.fail_sends = {11}
    volume = _controller(actuator)

    await volume.set_target(30)

    assert amp.attempts == 11
    assert amp.sent == ["volume_down"] * 10
    assert volume.current == 40
    assert volume.target == 30
    assert volume.sync_in_progress is False


@pytest.mark.asyncio
async def test_sync_steps_up(amp, actuator) -> None:
    volume = _controller(actuator, initial=10)

    assert await volume.sync() == 0
    await volume.set_target(13)

    assert amp.sent == ["volume_up"] * 3
    assert volume.current == 13


@pytest.mark.asyncio
async def test_target_set_during_sync_is_picked_up_without_second_sync(amp, actuator) -> None:
    amp.send_delay = 0.005
    volume = _controller(actuator, initial=50)

    first = asyncio.create_task(volume.set_target(45))
    await asyncio.sleep(0.012)
    assert volume.sync_in_progress is True

    await volume.set_target(47)  # returns immediately
    assert volume.target == 47
    await first

    assert volume.current == 47
    assert amp.max_active == 1


@pytest.mark.asyncio
async def test_target_out_of_range_is_rejected(actuator) -> None:
    volume = _controller(actuator)

    with pytest.raises(ValueError):
        await volume.set_target(101)
    with pytest.raises(ValueError):
        await volume.set_target(-1)


@pytest.mark.asyncio
async def test_nudge_is_clamped(amp, actuator) -> None:
    volume = _controller(actuator, initial=100)

    await volume.nudge(+1)
    await volume.nudge(-1)

    assert amp.sent == ["volume_down"]
    assert volume.current == 99


@pytest.mark.parametrize(
    ("observed", "confidence", "accepted"),
    [
        (80, 0.9, True),
        (80, 0.7, False),  # confidence must be strictly above threshold
        (55, 0.99, False),  # within noise band
        (56, 0.99, True),
        (44, 0.99, True),
    ],
)
def test_external_reading_thresholds(actuator, observed: int, confidence: float, accepted: bool) -> None:
    changes: list[int] = []
    volume = _controller(actuator, changes=changes)

    assert volume.apply_observation(observed, confidence) is accepted

    expected = observed if accepted else 50
    assert volume.current == expected
    assert volume.target == expected
    assert changes == ([observed] if accepted else [])


def test_reading_without_volume_is_ignored(actuator) -> None:
    volume = _controller(actuator)

    assert volume.apply_reading(VolumeReading(source="VIDEO 2", confidence=0.95)) is False
    assert volume.apply_reading(VolumeReading(volume=10, confidence=0.95)) is True
    assert volume.current == 10


@pytest.mark.asyncio
async def test_reading_ignored_while_syncing(amp, actuator) -> None:
    amp.send_delay = 0.005
    volume = _controller(actuator)

    task = asyncio.create_task(volume.set_target(40))
    await asyncio.sleep(0.012)
    assert volume.apply_observation(90, 0.99) is False
    await task

    assert volume.current == 40


@pytest.mark.asyncio
async def test_initialize_saturates_floor_then_climbs(amp, actuator) -> None:
    volume = _controller(actuator, initial=50)

    assert await volume.initialize(20, 30, step_delay=0.0, settle_delay=0.0) is True

    assert amp.sent == ["volume_down"] * 30 + ["volume_up"] * 20
    assert volume.current == 20
    assert volume.target == 20


@pytest.mark.asyncio
async def test_initialize_caps_climb_at_step_budget(amp, actuator) -> None:
    volume = _controller(actuator, initial=5)

    assert await volume.initialize(40, 10, step_delay=0.0, settle_delay=0.0) is True

    assert amp.sent.count("volume_down") == 10
    assert amp.sent.count("volume_up") == 10
    assert volume.current == 10


@pytest.mark.asyncio
async def test_initialize_aborts_on_failed_pulse(amp, actuator) -> None:
    amp.fail_sends = {3}
    volume = _controller(actuator, initial=50)

    assert await volume.initialize(20, 30, step_delay=0.0, settle_delay=0.0) is False

    assert amp.attempts == 3
    assert volume.current == 48
    assert volume.sync_in_progress is False


@pytest.mark.asyncio
async def test_mute_leaves_counted_volume(amp, actuator) -> None:
    volume = _controller(actuator)

    assert await volume.mute() is True

    assert amp.sent == ["mute"]
    assert volume.current == 50


@pytest.mark.asyncio
async def test_target_set_during_initialize_is_synced_afterwards(amp, actuator) -> None:
    amp.send_delay = 0.002
    volume = _controller(actuator, initial=50)

    routine = asyncio.create_task(volume.initialize(20, 30, step_delay=0.0, settle_delay=0.0))
    await asyncio.sleep(0.01)
    assert volume.sync_in_progress is True

    await volume.set_target(40)  # recorded, routine still owns the volume
    assert await routine is True

    assert volume.target == 40
    assert volume.current == 40
    assert amp.sent == ["volume_down"] * 30 + ["volume_up"] * 40


@pytest.mark.asyncio
async def test_initialize_without_new_target_keeps_baseline_as_target(amp, actuator) -> None:
    volume = _controller(actuator, initial=50)
    await volume.set_target(48)

    assert await volume.initialize(5, 10, step_delay=0.0, settle_delay=0.0) is True

    assert volume.target == 5
    assert volume.current == 5
