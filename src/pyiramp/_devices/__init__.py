"""Adapters binding the outlet and IR protocols to real hardware."""

from __future__ import annotations

from pyiramp._devices.broadlink_rm import BroadlinkTransmitter
from pyiramp._devices.kasa_outlet import KasaOutlet
from pyiramp.config import AmplifierConfig
from pyiramp.exceptions import IrAmpConfigError


def build_devices(config: AmplifierConfig) -> tuple[KasaOutlet, BroadlinkTransmitter]:
    """Create the default outlet and IR blaster adapters from *config*."""
    if not config.outlet_host:
        raise IrAmpConfigError("outlet_host is required")
    if not config.ir_host:
        raise IrAmpConfigError("ir_host is required")
    return KasaOutlet(config.outlet_host), BroadlinkTransmitter(config.ir_host, mac=config.ir_mac)


__all__ = ["BroadlinkTransmitter", "KasaOutlet", "build_devices"]
