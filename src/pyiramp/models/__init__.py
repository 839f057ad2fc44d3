"""Pydantic models for pyiramp state, readings and bridge records."""

from pyiramp.models.bridge import BridgeAction, BridgeMessage, BridgeStateRecord
from pyiramp.models.commands import AmpCommand
from pyiramp.models.power import PendingTransition, PowerState, SensorReading
from pyiramp.models.volume import VolumeReading, VolumeState

__all__ = [
    "AmpCommand",
    "BridgeAction",
    "BridgeMessage",
    "BridgeStateRecord",
    "PendingTransition",
    "PowerState",
    "SensorReading",
    "VolumeReading",
    "VolumeState",
]
