"""Power state and sensor reading models."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from pyiramp.models._base import IrAmpBaseModel, utcnow


class SensorReading(IrAmpBaseModel):
    """One derived reading of the metering outlet.

    Ephemeral: only ever compared against the current power state.
    """

    in_use: bool
    power_watts: float | None = Field(default=None, description="Instantaneous draw, if metered.")
    observed_at: datetime = Field(default_factory=utcnow)


class PendingTransition(IrAmpBaseModel):
    """A power change that has been commanded but not yet verified."""

    target: bool
    requested_at: datetime = Field(default_factory=utcnow)
    previous: bool = Field(description="Visible state before the request; restored if the send fails.")


class PowerState(IrAmpBaseModel):
    """Snapshot of the reconciler's authoritative power state."""

    is_on: bool = False
    last_confirmed_at: datetime | None = None
    pending: PendingTransition | None = None

    @property
    def transitioning(self) -> bool:
        return self.pending is not None
