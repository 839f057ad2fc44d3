"""File mailbox shared with the external CEC listener.

Two independent single-record files:

* outbound (``amp-to-cec.json``): the confirmed power state, replaced
  atomically so the listener never parses a half-written file;
* inbound (``cec-to-amp.json``): one command written by the listener,
  moved aside before it is read, so it is consumed exactly once.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
from collections.abc import Awaitable, Callable
from pathlib import Path

from pydantic import ValidationError

from pyiramp import _constants as const
from pyiramp.exceptions import IrAmpBridgeError
from pyiramp.models.bridge import BridgeMessage, BridgeStateRecord

_logger = logging.getLogger(__name__)

BridgeDispatch = Callable[[BridgeMessage], Awaitable[None]]


def parse_message(text: str) -> BridgeMessage:
    """Parse one inbound record.

    Raises :class:`IrAmpBridgeError` on invalid JSON or a missing/invalid
    ``action`` or ``value``.
    """
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise IrAmpBridgeError(f"Invalid JSON in bridge record: {exc.msg}") from exc
    if not isinstance(payload, dict):
        raise IrAmpBridgeError("Bridge record is not a JSON object")
    if "action" not in payload or "value" not in payload:
        raise IrAmpBridgeError(f"Bridge record missing action or value: {payload!r}")
    try:
        return BridgeMessage.model_validate(payload)
    except ValidationError as exc:
        raise IrAmpBridgeError(f"Invalid bridge record {payload!r}: {exc.error_count()} error(s)") from exc


class ExternalBridge:
    """Half-duplex file channel pair with the CEC listener."""

    def __init__(
        self,
        inbound_path: str | os.PathLike[str] = const.DEFAULT_BRIDGE_INBOUND,
        outbound_path: str | os.PathLike[str] = const.DEFAULT_BRIDGE_OUTBOUND,
        *,
        source_name: str = const.DEFAULT_SOURCE_NAME,
        poll_interval: float = const.BRIDGE_POLL_INTERVAL,
    ) -> None:
        self._inbound = Path(inbound_path)
        self._outbound = Path(outbound_path)
        self._source_name = source_name
        self._poll_interval = poll_interval
        self._task: asyncio.Task[None] | None = None

    @property
    def inbound_path(self) -> Path:
        return self._inbound

    @property
    def outbound_path(self) -> Path:
        return self._outbound

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    def publish_state(self, is_on: bool, source: str | None = None) -> BridgeStateRecord | None:
        """Atomically publish the confirmed power state.

        Returns the written record, or ``None`` when the write failed.
        """
        record = BridgeStateRecord.from_power(is_on, source or self._source_name)
        tmp_path = self._outbound.with_name(self._outbound.name + ".tmp")
        try:
            self._outbound.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(record.model_dump(), indent=2), encoding="utf-8")
            os.chmod(tmp_path, const.BRIDGE_FILE_MODE)
            os.replace(tmp_path, self._outbound)
        except OSError:
            _logger.error("Failed to write bridge state file %s", self._outbound, exc_info=True)
            with contextlib.suppress(OSError):
                tmp_path.unlink()
            return None
        _logger.info("Amplifier state published to bridge: %s", record.power.upper())
        _logger.debug("Bridge state record: %s", record)
        return record

    def read_outbound(self) -> BridgeStateRecord | None:
        """Read back the last published record (``None`` if absent or unreadable)."""
        try:
            text = self._outbound.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        try:
            return BridgeStateRecord.model_validate_json(text)
        except ValidationError:
            _logger.warning("Outbound bridge file %s is not a valid state record", self._outbound)
            return None

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    @property
    def consumed_path(self) -> Path:
        return self._inbound.with_name(self._inbound.name + ".consumed")

    def _clear_inbound(self) -> None:
        # Truncating is more reliable than unlinking: the listener may
        # hold the directory with different privileges.
        try:
            self._inbound.write_text("", encoding="utf-8")
            _logger.debug("Bridge inbound file cleared")
            return
        except OSError as exc:
            _logger.warning("Could not clear bridge inbound file: %s", exc)
        try:
            self._inbound.unlink()
            _logger.debug("Bridge inbound file deleted")
        except OSError as exc:
            _logger.warning("Could not delete bridge inbound file (will be overwritten on next command): %s", exc)

    def _read_and_clear(self) -> str | None:
        try:
            text = self._inbound.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            _logger.error("Error reading bridge inbound file: %s", exc)
            return None
        if text.strip():
            self._clear_inbound()
        return text

    def _take_inbound(self) -> str | None:
        """Move the pending record aside, then read it.

        The listener writes a fresh inbound file for its next command, so
        nothing it writes after the move can be lost by clearing.
        """
        consumed = self.consumed_path
        try:
            if self._inbound.stat().st_size == 0:
                return None
            os.replace(self._inbound, consumed)
        except FileNotFoundError:
            return None
        except OSError as exc:
            _logger.debug("Could not move bridge inbound file, truncating instead: %s", exc)
            return self._read_and_clear()
        try:
            return consumed.read_text(encoding="utf-8")
        except OSError as exc:
            _logger.error("Error reading consumed bridge record: %s", exc)
            return None
        finally:
            with contextlib.suppress(OSError):
                consumed.unlink()

    def poll_once(self) -> BridgeMessage | None:
        """Consume the pending inbound command, if any.

        Malformed records are logged and discarded. Either way the
        record leaves the channel so nothing is applied twice.
        """
        text = self._take_inbound()
        if text is None or not text.strip():
            return None
        text = text.strip()

        try:
            message = parse_message(text)
        except IrAmpBridgeError as exc:
            _logger.warning("Discarding bridge record: %s", exc)
            _logger.debug("Raw bridge data: %s", text)
            return None

        _logger.info("Command received from bridge: %s=%s", message.action, message.value)
        return message

    async def run(self, dispatch: BridgeDispatch) -> None:
        """Poll the inbound channel forever, dispatching each command once."""
        _logger.info("Starting bridge watcher on %s", self._inbound)
        while True:
            message = self.poll_once()
            if message is not None:
                try:
                    await dispatch(message)
                except Exception:
                    _logger.exception("Error dispatching bridge command %s", message)
            await asyncio.sleep(self._poll_interval)

    def start(self, dispatch: BridgeDispatch) -> None:
        if self.is_running:
            _logger.warning("Bridge watcher already running")
            return
        self._task = asyncio.get_running_loop().create_task(self.run(dispatch), name="pyiramp-bridge")

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        _logger.info("Stopped bridge watcher")
