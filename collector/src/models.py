"""
Pydantic model for a normalized gateway telemetry sample.

A Sample is one snapshot of the gateway taken during a single tick: grid
connectivity, battery state of charge and four instantaneous power flows.
Every flow is independently nullable so a partial upstream failure still
yields a usable record.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, model_validator


class Sample(BaseModel):
    """A single normalized telemetry sample from the gateway.

    Power values are whole watts. Sign conventions follow the gateway:
    positive grid power is import, negative is export; positive battery
    power is discharge, negative is charge.

    Attributes:
        ts: Epoch seconds of the tick that produced the sample.
        percentage: Battery state of charge, one decimal place, or None.
        grid_up: True when the gateway reports the grid as connected.
        grid_w: Grid (site meter) power in watts. Forced to 0 when the grid
            is down.
        solar_w: Solar production in watts.
        powerwall_w: Battery power in watts.
        home_w: Home load in watts.
    """

    ts: int
    percentage: float | None = None
    grid_up: bool = False
    grid_w: int | None = None
    solar_w: int | None = None
    powerwall_w: int | None = None
    home_w: int | None = None

    @model_validator(mode="after")
    def _zero_grid_when_down(self) -> Sample:
        """Grid flow is meaningless while disconnected; report it as 0."""
        if not self.grid_up:
            self.grid_w = 0
        return self

    def to_state_document(self) -> dict[str, Any]:
        """Return the JSON-ready "current state" document for this sample."""
        return {
            "grid": self.grid_w,
            "solar": self.solar_w,
            "powerwall": self.powerwall_w,
            "home": self.home_w,
            "grid_up": self.grid_up,
            "percentage": self.percentage,
            "last_updated": self.ts,
        }
