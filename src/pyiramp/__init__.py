"""pyiramp - Async state reconciliation for IR-controlled amplifiers."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pyiramp")
except PackageNotFoundError:
    __version__ = "0+local"
from pyiramp.actuator import Actuator, IrTransmitter
from pyiramp.bridge import ExternalBridge
from pyiramp.config import AmplifierConfig, IrCommandCodes, PowerOnConfig, VolumeInitConfig
from pyiramp.controller import AmplifierController
from pyiramp.exceptions import (
    IrAmpBridgeError,
    IrAmpCommandNotConfiguredError,
    IrAmpConfigError,
    IrAmpError,
    IrAmpTransportError,
)
from pyiramp.models import (
    AmpCommand,
    BridgeAction,
    BridgeMessage,
    BridgeStateRecord,
    PendingTransition,
    PowerState,
    SensorReading,
    VolumeReading,
    VolumeState,
)
from pyiramp.reconciler import PowerStateReconciler
from pyiramp.sensor import OutletDevice, PowerSensor
from pyiramp.startup import StartupSequencer
from pyiramp.volume import VolumeController

__all__ = [
    "__version__",
    "Actuator",
    "AmpCommand",
    "AmplifierConfig",
    "AmplifierController",
    "BridgeAction",
    "BridgeMessage",
    "BridgeStateRecord",
    "ExternalBridge",
    "IrAmpBridgeError",
    "IrAmpCommandNotConfiguredError",
    "IrAmpConfigError",
    "IrAmpError",
    "IrAmpTransportError",
    "IrCommandCodes",
    "IrTransmitter",
    "OutletDevice",
    "PendingTransition",
    "PowerOnConfig",
    "PowerSensor",
    "PowerState",
    "PowerStateReconciler",
    "SensorReading",
    "StartupSequencer",
    "VolumeController",
    "VolumeInitConfig",
    "VolumeReading",
    "VolumeState",
]
