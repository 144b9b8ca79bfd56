"""
Builds one normalized Sample from three gateway API calls.

Each tick issues exactly three requests through the SessionClient, in this
order: grid status, state of charge, meter aggregates. A failed call only
blanks the fields it feeds; the other fields of the sample are still
reported.

The parsing helpers are pure functions so they can be tested without any
HTTP plumbing.

CHANGELOG:
- 2026-10-18: Null malformed numbers (oversized ints, out-of-range percentage)
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
import math
import time
from decimal import ROUND_HALF_EVEN, Decimal
from typing import TYPE_CHECKING, Any

from collector.src.models import Sample

if TYPE_CHECKING:
    from collector.src.session import SessionClient

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Gateway endpoints
# ---------------------------------------------------------------------------

GRID_STATUS_PATH = "/api/system_status/grid_status"
SOE_PATH = "/api/system_status/soe"
AGGREGATES_PATH = "/api/meters/aggregates"

GRID_CONNECTED = "SystemGridConnected"
"""Value of ``grid_status`` when the utility grid is connected."""

_FLOW_MAP: dict[str, str] = {
    "grid_w": "site",
    "solar_w": "solar",
    "powerwall_w": "battery",
    "home_w": "load",
}
"""Maps Sample field name -> meter name in the aggregates document."""

_ONE_DECIMAL = Decimal("0.1")

PERCENTAGE_RANGE: tuple[float, float] = (0.0, 100.0)
"""Valid state-of-charge range; anything outside is treated as malformed."""


# ---------------------------------------------------------------------------
# Pure parsing helpers
# ---------------------------------------------------------------------------


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        # JSON integers too large for a float
        return False


def round_percentage(value: float) -> float:
    """Round a state-of-charge value to one decimal place, half to even.

    Rounds the shortest decimal representation of *value* rather than its
    binary approximation, so ``50.05`` becomes ``50.0`` and ``50.15``
    becomes ``50.2`` on every call.
    """
    return float(Decimal(repr(value)).quantize(_ONE_DECIMAL, rounding=ROUND_HALF_EVEN))


def parse_grid_up(payload: Any) -> bool:
    """Return True iff *payload* reports the grid as connected."""
    if not isinstance(payload, dict):
        return False
    return payload.get("grid_status") == GRID_CONNECTED


def parse_percentage(payload: Any) -> float | None:
    """Extract the rounded state-of-charge percentage, or None."""
    if payload is None:
        return None
    value = payload.get("percentage") if isinstance(payload, dict) else None
    if not _is_number(value):
        logger.warning("State of charge response has no numeric percentage: %s", payload)
        return None
    lo, hi = PERCENTAGE_RANGE
    if not (lo <= value <= hi):
        logger.warning("State of charge %s outside valid range (%s, %s)", value, lo, hi)
        return None
    return round_percentage(value)


def parse_flows(payload: Any) -> dict[str, int | None]:
    """Extract the four instantaneous power flows from an aggregates document.

    Every flow is resolved independently: a missing meter, a missing
    ``instant_power`` field or a non-numeric value only nulls that flow.
    """
    flows: dict[str, int | None] = dict.fromkeys(_FLOW_MAP)
    if payload is None:
        return flows
    if not isinstance(payload, dict):
        logger.warning("Aggregates response is not a JSON object: %s", payload)
        return flows

    for field_name, meter_name in _FLOW_MAP.items():
        meter = payload.get(meter_name)
        value = meter.get("instant_power") if isinstance(meter, dict) else None
        if not _is_number(value):
            logger.warning("Aggregates: no instant_power for meter '%s'", meter_name)
            continue
        flows[field_name] = round(value)
    return flows


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def sample(client: SessionClient, *, ts: int | None = None) -> Sample:
    """Query the gateway and assemble one Sample.

    Args:
        client: Logged-in session client.
        ts: Epoch seconds to stamp the sample with. Defaults to now.

    Returns:
        A Sample; fields whose source call failed are None (grid power is 0
        whenever the grid is not reported as connected).
    """
    if ts is None:
        ts = int(time.time())

    grid_up = parse_grid_up(await client.fetch_json(GRID_STATUS_PATH))
    percentage = parse_percentage(await client.fetch_json(SOE_PATH))
    flows = parse_flows(await client.fetch_json(AGGREGATES_PATH))

    return Sample(ts=ts, percentage=percentage, grid_up=grid_up, **flows)
