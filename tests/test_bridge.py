from __future__ import annotations

import asyncio
import json
import os
import stat
from pathlib import Path

import pytest

from pyiramp import bridge as bridge_module
from pyiramp.bridge import ExternalBridge, parse_message
from pyiramp.exceptions import IrAmpBridgeError
from pyiramp.models.bridge import BridgeAction, BridgeMessage, BridgeStateRecord


@pytest.fixture
def bridge(tmp_path: Path) -> ExternalBridge:
    return ExternalBridge(
        tmp_path / "cec-to-amp.json",
        tmp_path / "state" / "amp-to-cec.json",
        source_name="local",
        poll_interval=0.01,
    )


def test_outbound_round_trip(bridge: ExternalBridge) -> None:
    written = bridge.publish_state(True)

    assert written is not None
    assert bridge.read_outbound() == written
    raw = json.loads(bridge.outbound_path.read_text())
    assert raw == {"power": "on", "timestamp": written.timestamp, "source": "local"}


def test_outbound_write_is_atomic_and_world_readable(bridge: ExternalBridge) -> None:
    bridge.publish_state(False, source="cec")

    mode = stat.S_IMODE(bridge.outbound_path.stat().st_mode)
    assert mode == 0o644
    assert not bridge.outbound_path.with_name("amp-to-cec.json.tmp").exists()
    record = bridge.read_outbound()
    assert record is not None
    assert record.is_on is False
    assert record.source == "cec"


def test_outbound_write_failure_is_not_raised(tmp_path: Path) -> None:
    target = tmp_path / "occupied"
    target.mkdir()
    (target / "child").write_text("x")
    bridge = ExternalBridge(tmp_path / "in.json", target)

    assert bridge.publish_state(True) is None
    assert not (tmp_path / "occupied.tmp").exists()


def test_read_outbound_missing_or_corrupt(bridge: ExternalBridge) -> None:
    assert bridge.read_outbound() is None
    bridge.outbound_path.parent.mkdir(parents=True)
    bridge.outbound_path.write_text("{not json")
    assert bridge.read_outbound() is None


def test_inbound_message_is_consumed_once(bridge: ExternalBridge) -> None:
    bridge.inbound_path.write_text(json.dumps({"action": "power", "value": "on"}))

    first = bridge.poll_once()
    second = bridge.poll_once()

    assert first is not None
    assert first.action is BridgeAction.POWER
    assert first.value == "on"
    assert second is None
    assert not bridge.inbound_path.exists()
    assert not bridge.consumed_path.exists()


def test_missing_or_empty_inbound_is_ignored(bridge: ExternalBridge) -> None:
    assert bridge.poll_once() is None
    bridge.inbound_path.write_text("   \n")
    assert bridge.poll_once() is None


@pytest.mark.parametrize(
    "payload",
    [
        "{broken",
        "[1, 2]",
        json.dumps({"action": "power"}),
        json.dumps({"value": "on"}),
        json.dumps({"action": "dance", "value": "now"}),
    ],
)
def test_malformed_inbound_is_discarded(bridge: ExternalBridge, payload: str) -> None:
    bridge.inbound_path.write_text(payload)

    assert bridge.poll_once() is None
    assert not bridge.inbound_path.exists()


def test_parse_message_errors() -> None:
    with pytest.raises(IrAmpBridgeError):
        parse_message("nope")
    with pytest.raises(IrAmpBridgeError):
        parse_message(json.dumps({"action": "volume", "value": ""}))

    message = parse_message(json.dumps({"action": "volume", "value": " UP ", "timestamp": 1767225600000}))
    assert message.value == "up"
    assert message.timestamp is not None
    assert message.timestamp.year == 2026


def test_parse_message_accepts_falsy_values() -> None:
    assert parse_message(json.dumps({"action": "power", "value": 0})).value == "0"
    assert parse_message(json.dumps({"action": "power", "value": False})).value == "off"
    with pytest.raises(IrAmpBridgeError, match="missing"):
        parse_message(json.dumps({"action": "power"}))


def test_command_written_while_previous_is_read_is_kept(
    bridge: ExternalBridge, monkeypatch: pytest.MonkeyPatch
) -> None:
    real_replace = os.replace

    def _replace_then_listener_writes(src, dst) -> None:
        real_replace(src, dst)
        if Path(src) == bridge.inbound_path:
            bridge.inbound_path.write_text(json.dumps({"action": "volume", "value": "up"}))

    monkeypatch.setattr(bridge_module.os, "replace", _replace_then_listener_writes)
    bridge.inbound_path.write_text(json.dumps({"action": "power", "value": "on"}))

    first = bridge.poll_once()
    monkeypatch.setattr(bridge_module.os, "replace", real_replace)
    second = bridge.poll_once()

    assert first is not None and first.action is BridgeAction.POWER
    assert second is not None and second.action is BridgeAction.VOLUME
    assert bridge.poll_once() is None


def test_inbound_is_truncated_when_it_cannot_be_moved(
    bridge: ExternalBridge, monkeypatch: pytest.MonkeyPatch
) -> None:
    def _denied(src, dst) -> None:
        raise PermissionError("read-only directory")

    monkeypatch.setattr(bridge_module.os, "replace", _denied)
    bridge.inbound_path.write_text(json.dumps({"action": "mute", "value": "toggle"}))

    message = bridge.poll_once()

    assert message is not None
    assert message.action is BridgeAction.MUTE
    assert bridge.inbound_path.read_text() == ""
    assert bridge.poll_once() is None


@pytest.mark.asyncio
async def test_run_dispatches_and_survives_dispatch_errors(bridge: ExternalBridge, wait_for) -> None:
    received: list[BridgeMessage] = []

    async def _dispatch(message: BridgeMessage) -> None:
        received.append(message)
        if message.action is BridgeAction.MUTE:
            raise RuntimeError("listener exploded")

    bridge.start(_dispatch)
    try:
        bridge.inbound_path.write_text(json.dumps({"action": "mute", "value": "toggle"}))
        await wait_for(lambda: len(received) == 1)
        await wait_for(lambda: not bridge.inbound_path.exists())
        bridge.inbound_path.write_text(json.dumps({"action": "volume", "value": "down"}))
        await wait_for(lambda: len(received) == 2)
        await asyncio.sleep(0.05)
    finally:
        await bridge.stop()

    assert [m.action for m in received] == [BridgeAction.MUTE, BridgeAction.VOLUME]
    assert not bridge.is_running


def test_state_record_from_power() -> None:
    record = BridgeStateRecord.from_power(True, "pyiramp")

    assert record.power == "on"
    assert record.is_on is True
    assert record.written_at is not None
