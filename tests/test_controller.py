from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from pyiramp import AmplifierController
from pyiramp.config import AmplifierConfig, IrCommandCodes, PowerOnConfig
from pyiramp.vision import RecognizedText


class _SnapshotResponse:
    async def __aenter__(self) -> _SnapshotResponse:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        return None

    def raise_for_status(self) -> None:
        return None

    async def read(self) -> bytes:
        return b"frame"


class _SnapshotSession:
    def get(self, url: str, **kwargs: Any) -> _SnapshotResponse:
        return _SnapshotResponse()

    async def close(self) -> None:
        raise AssertionError("injected session must not be closed by the controller")


class _DisplayText:
    def __init__(self, text: str) -> None:
        self.text = text

    async def recognize(self, image: bytes) -> RecognizedText:
        return RecognizedText(text=self.text, confidence=95.0)


def _config(tmp_path: Path, codes: IrCommandCodes, **overrides: Any) -> AmplifierConfig:
    values: dict[str, Any] = {
        "commands": codes,
        "power_threshold": 3.0,
        "sensor_poll_interval": 0.01,
        "reconcile_interval": 0.01,
        "verify_delay": 0.0,
        "volume_step_delay": 0.0,
        "bridge_inbound_path": str(tmp_path / "cec-to-amp.json"),
        "bridge_outbound_path": str(tmp_path / "amp-to-cec.json"),
        "bridge_poll_interval": 0.01,
        "bridge_source_name": "test",
    }
    values.update(overrides)
    return AmplifierConfig(**values)


def _write_command(config: AmplifierConfig, action: str, value: str) -> None:
    Path(config.bridge_inbound_path).write_text(json.dumps({"action": action, "value": value, "timestamp": 1}))


@pytest.mark.asyncio
async def test_start_publishes_initial_state(tmp_path, amp, codes) -> None:
    config = _config(tmp_path, codes)
    controller = AmplifierController(config, outlet=amp, transmitter=amp)

    await controller.start()
    try:
        assert controller.is_running
        record = controller.bridge.read_outbound()
        assert record is not None
        assert record.power == "off"
        assert record.source == "test"
        assert controller.bridge.is_running
    finally:
        await controller.close()

    assert not controller.is_running
    assert not controller.bridge.is_running


@pytest.mark.asyncio
async def test_bridge_power_command_turns_amplifier_on(tmp_path, amp, codes, wait_for) -> None:
    config = _config(tmp_path, codes)

    async with AmplifierController(config, outlet=amp, transmitter=amp) as controller:
        _write_command(config, "power", "on")

        await wait_for(lambda: (record := controller.bridge.read_outbound()) is not None and record.is_on)

        assert amp.on is True
        assert amp.sent == ["power_on"]
        assert not Path(config.bridge_inbound_path).exists()


@pytest.mark.asyncio
async def test_bridge_power_command_for_current_state_sends_nothing(tmp_path, amp, codes, wait_for) -> None:
    amp.on = True
    config = _config(tmp_path, codes)

    async with AmplifierController(config, outlet=amp, transmitter=amp):
        _write_command(config, "power", "on")
        await wait_for(lambda: not Path(config.bridge_inbound_path).exists())

    assert amp.attempts == 0


@pytest.mark.asyncio
async def test_bridge_volume_and_mute_commands(tmp_path, amp, codes, wait_for) -> None:
    config = _config(tmp_path, codes)

    async with AmplifierController(config, outlet=amp, transmitter=amp) as controller:
        _write_command(config, "volume", "up")
        await wait_for(lambda: controller.volume.current == 51)
        _write_command(config, "mute", "toggle")
        await wait_for(lambda: "mute" in amp.sent)

    assert amp.sent == ["volume_up", "mute"]


@pytest.mark.asyncio
async def test_malformed_bridge_command_is_discarded(tmp_path, amp, codes, wait_for) -> None:
    config = _config(tmp_path, codes)

    async with AmplifierController(config, outlet=amp, transmitter=amp):
        Path(config.bridge_inbound_path).write_text("{not json")
        await wait_for(lambda: not Path(config.bridge_inbound_path).exists())

    assert amp.attempts == 0


@pytest.mark.asyncio
async def test_set_power_runs_startup_sequence_and_notifies(tmp_path, amp, codes) -> None:
    config = _config(tmp_path, codes, power_on=PowerOnConfig(auto_hdmi_redirect=True))
    events: list[tuple[str, Any]] = []

    async with AmplifierController(config, outlet=amp, transmitter=amp) as controller:
        remove = controller.add_listener(lambda event, value: events.append((event, value)))

        assert await controller.set_power(True) is True
        assert await controller.get_power() is True
        remove()
        assert await controller.set_power(False) is True

    assert amp.sent == ["power_on", "hdmi_redirect", "power_off"]
    assert ("power", True) in events
    assert ("power", False) not in events


@pytest.mark.asyncio
async def test_monitor_adopts_manual_power_change(tmp_path, amp, codes, wait_for) -> None:
    config = _config(tmp_path, codes)

    async with AmplifierController(config, outlet=amp, transmitter=amp) as controller:
        amp.on = True  # original remote
        await wait_for(lambda: controller.reconciler.is_on)
        await wait_for(lambda: (record := controller.bridge.read_outbound()) is not None and record.is_on)

    assert amp.sent == []


@pytest.mark.asyncio
async def test_set_volume_steps_and_notifies(tmp_path, amp, codes) -> None:
    config = _config(tmp_path, codes)
    volumes: list[int] = []

    async with AmplifierController(config, outlet=amp, transmitter=amp) as controller:
        controller.add_listener(lambda event, value: volumes.append(value) if event == "volume" else None)
        await controller.set_volume(47)

        assert await controller.get_volume() == 47

    assert volumes == [49, 48, 47]
    assert amp.sent == ["volume_down"] * 3


@pytest.mark.asyncio
async def test_camera_reading_corrects_volume_and_checks_source(tmp_path, amp, codes, wait_for) -> None:
    config = _config(tmp_path, codes, camera_url="http://cam/snap.jpg", vision_check_interval=60.0)
    recognizer = _DisplayText("VOL: 72 SOURCE: VIDEO 1")

    async with AmplifierController(
        config,
        outlet=amp,
        transmitter=amp,
        recognizer=recognizer,
        session=_SnapshotSession(),  # type: ignore[arg-type]
    ) as controller:
        await wait_for(lambda: controller.volume.current == 72)
        assert controller.source_correct is False

        recognizer.text = "VOL: 72 SOURCE: VIDEO 2"
        reading = await controller.refresh_volume()

        assert reading is not None
        assert controller.source_correct is True


@pytest.mark.asyncio
async def test_get_volume_without_camera_returns_counted_volume(tmp_path, amp, codes) -> None:
    controller = AmplifierController(_config(tmp_path, codes, initial_volume=35), outlet=amp, transmitter=amp)

    assert await controller.get_volume() == 35
    assert await controller.refresh_volume() is None
    assert controller.source_correct is None
