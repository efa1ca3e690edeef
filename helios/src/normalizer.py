"""
Pure normalizer that converts raw system-data readings into a TelemetrySnapshot.

Applies unit scaling, grid-direction classification and the battery-flow
inference heuristic.  The device reports battery power directly, but it
under-reports near-zero battery activity more often than it misreports the
other three channels; when it claims idle while the energy balance implies
a real flow, the inferred value is trusted instead.  Reported, inferred and
effective values are all kept on the snapshot.

This module is pure: no I/O, no clock.  The fallback timestamp is passed in
by the caller.

CHANGELOG:
- 2026-10-18: Initial creation
- 2026-10-19: Round sub-kW magnitudes half up instead of to even

TODO:
- None
"""

from __future__ import annotations

import logging
import math
from datetime import datetime

from helios.src.models import (
    BatteryFlow,
    BatteryState,
    EnergyTotals,
    EvChargerState,
    GridFlow,
    GridState,
    Power,
    RawMeterData,
    RawSystemData,
    TelemetrySnapshot,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Thresholds
# ---------------------------------------------------------------------------

POWER_KW_THRESHOLD_W: float = 1000
"""Magnitudes at or above this are displayed in kW."""

BATTERY_REPORTED_IDLE_THRESHOLD_W: float = 20
"""Reported battery magnitude below this counts as "device claims idle"."""

MIN_INFERRED_FLOW_TO_OVERRIDE_W: float = 20
"""Inferred magnitude must reach this to override an idle report."""

GRID_IDLE_THRESHOLD_W: float = 50
"""Grid deadband: |power| <= this is neither import nor export."""


# ---------------------------------------------------------------------------
# Scalar helpers
# ---------------------------------------------------------------------------


def scale_power(watts: float) -> Power:
    """Express a power magnitude in W or kW.

    ``|watts| >= 1000`` gives kW rounded to 2 decimals, anything smaller
    gives whole watts rounded half up (2.5 W displays as 3 W).  The value
    is always a magnitude; direction is carried separately.
    """
    magnitude = abs(watts)
    if magnitude >= POWER_KW_THRESHOLD_W:
        return Power(value=round(magnitude / 1000, 2), unit="kW")
    return Power(value=math.floor(magnitude + 0.5), unit="W")


def infer_battery_flow(
    consumption_w: float, solar_w: float, grid_w: float
) -> float | None:
    """Battery flow implied by the energy balance.

    ``inferred = consumption - solar + grid`` with grid positive for export.
    Positive means discharging.  Returns ``None`` if any input is NaN.
    """
    inferred = consumption_w - solar_w + grid_w
    if math.isnan(inferred):
        return None
    return inferred


def effective_battery_flow(reported_w: float, inferred_w: float | None) -> float:
    """Choose the battery flow to trust.

    The inferred value replaces the reported one only when the device
    claims idle (``|reported| < 20 W``) and the energy balance shows a
    significant flow (``|inferred| >= 20 W``).
    """
    if inferred_w is None:
        return reported_w
    if (
        abs(reported_w) < BATTERY_REPORTED_IDLE_THRESHOLD_W
        and abs(inferred_w) >= MIN_INFERRED_FLOW_TO_OVERRIDE_W
    ):
        return inferred_w
    return reported_w


def classify_grid_flow(grid_w: float) -> GridFlow:
    """Export above +50 W, import below -50 W, idle in between (inclusive)."""
    if grid_w > GRID_IDLE_THRESHOLD_W:
        return GridFlow.EXPORTING
    if grid_w < -GRID_IDLE_THRESHOLD_W:
        return GridFlow.IMPORTING
    return GridFlow.IDLE


def classify_battery_flow(power_w: float) -> BatteryFlow:
    """Direction of an effective battery flow (negative = charging)."""
    if power_w < -BATTERY_REPORTED_IDLE_THRESHOLD_W:
        return BatteryFlow.CHARGING
    if power_w > BATTERY_REPORTED_IDLE_THRESHOLD_W:
        return BatteryFlow.DISCHARGING
    return BatteryFlow.IDLE


def _reading(value: float | None) -> float:
    """Missing readings count as 0 W."""
    if value is None or math.isnan(value):
        return 0.0
    return float(value)


def _timestamp_ms(device_time: str | None, now_ms: int) -> int:
    if device_time:
        try:
            return int(datetime.fromisoformat(device_time).timestamp() * 1000)
        except ValueError:
            logger.warning("Unparseable device time %r, using local clock", device_time)
    return now_ms


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def parse_daily_totals(raw: RawMeterData) -> EnergyTotals | None:
    """Extract today's cumulative totals from a meter-data payload."""
    today = raw.today
    if today is None:
        return None
    return EnergyTotals(
        solar=today.solar,
        grid_import=today.grid.import_kwh if today.grid else None,
        grid_export=today.grid.export_kwh if today.grid else None,
        battery_charge=today.battery.charge if today.battery else None,
        battery_discharge=today.battery.discharge if today.battery else None,
        consumption=today.consumption,
        ac_charge=today.ac_charge,
    )


def build_battery_state(
    *,
    percentage: float,
    reported_w: float,
    inferred_w: float | None,
    capacity_kwh: float | None,
) -> BatteryState:
    """Assemble a :class:`BatteryState` from one set of readings."""
    percentage = min(max(percentage, 0.0), 100.0)
    effective_w = effective_battery_flow(reported_w, inferred_w)
    if effective_w != reported_w:
        logger.debug(
            "Battery flow override: reported=%.0fW inferred=%.0fW",
            reported_w,
            effective_w,
        )

    capacity = capacity_kwh if capacity_kwh is not None and capacity_kwh > 0 else None
    energy = round(percentage / 100 * capacity, 2) if capacity is not None else None

    return BatteryState(
        percentage=percentage,
        reported_power_w=reported_w,
        inferred_power_w=inferred_w,
        power_w=effective_w,
        power=scale_power(effective_w),
        flow=classify_battery_flow(effective_w),
        energy_kwh=energy,
        capacity_kwh=round(capacity, 2) if capacity is not None else None,
    )


def normalize_system_data(
    raw: RawSystemData,
    *,
    capacity_kwh: float | None,
    ev_charger: EvChargerState,
    daily_totals: EnergyTotals | None,
    now_ms: int,
) -> TelemetrySnapshot:
    """Convert one system-data payload into a :class:`TelemetrySnapshot`.

    Args:
        raw: Validated system-data payload.
        capacity_kwh: Rated battery capacity from the device identity.
        ev_charger: EV state resolved during the same poll tick.
        daily_totals: Meter totals, or ``None`` when unavailable.
        now_ms: Fallback timestamp when the payload's ``time`` is unusable.

    Returns:
        A frozen snapshot whose power fields all derive from *raw*.
    """
    consumption_w = _reading(raw.consumption)
    solar_w = _reading(raw.solar.power if raw.solar else None)
    grid_w = _reading(raw.grid.power if raw.grid else None)
    reported_battery_w = _reading(raw.battery.power if raw.battery else None)
    percentage = _reading(raw.battery.percent if raw.battery else None)

    battery = build_battery_state(
        percentage=percentage,
        reported_w=reported_battery_w,
        inferred_w=infer_battery_flow(consumption_w, solar_w, grid_w),
        capacity_kwh=capacity_kwh,
    )

    grid = GridState(
        power_w=abs(grid_w),
        power=scale_power(grid_w),
        flow=classify_grid_flow(grid_w),
    )

    return TelemetrySnapshot(
        timestamp_ms=_timestamp_ms(raw.time, now_ms),
        home_consumption=scale_power(consumption_w),
        solar_generation=scale_power(solar_w),
        battery=battery,
        grid=grid,
        ev_charger=ev_charger,
        daily_totals=daily_totals,
        raw_home_consumption_w=consumption_w,
        raw_solar_w=solar_w,
        raw_grid_w=grid_w,
    )
