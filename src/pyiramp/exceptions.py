"""Custom exception hierarchy for pyiramp."""

from __future__ import annotations


class IrAmpError(Exception):
    """Base exception for all pyiramp errors."""


class IrAmpConfigError(IrAmpError):
    """Invalid or missing configuration."""


class IrAmpTransportError(IrAmpError):
    """Device-level failure (IR blaster, smart outlet or camera unreachable)."""

    def __init__(
        self,
        message: str,
        *,
        device: str = "",
    ) -> None:
        self.device = device
        super().__init__(message)


class IrAmpCommandNotConfiguredError(IrAmpError):
    """No learned IR code is configured for the requested logical command."""

    def __init__(self, command: str) -> None:
        self.command = command
        super().__init__(f"No IR code configured for command {command!r}")


class IrAmpBridgeError(IrAmpError):
    """Malformed or structurally incomplete record on the external bridge.

    Raised by the bridge parser; the poller catches it, logs a warning
    and discards the record.
    """
