"""
EV charger status resolution.

Maps open-ended vendor status strings onto the closed :class:`EvStatus` set
(with an explicit ``UNRECOGNIZED`` variant that keeps the raw string), and
resolves live charger state through a two-endpoint fallback chain:

1. ``/ev-charger/{uuid}/status`` -- detailed status with session power.
   404 is expected on charger models that do not support it.
2. ``/ev-charger/{uuid}`` -- basic info, status only.

If both fail the charger is reported as unavailable.  This sub-call never
raises to its caller.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from helios.src.errors import ApiError, ApiNotFoundError
from helios.src.models import (
    EvChargerState,
    EvChargerStatus,
    EvStatus,
    RawEvCharger,
    RawEvChargerStatus,
)
from helios.src.normalizer import scale_power

if TYPE_CHECKING:
    from helios.src.client import CloudClient

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Vendor status mapping
# ---------------------------------------------------------------------------

_EXACT_STATUSES: dict[str, EvStatus] = {
    "available": EvStatus.DISCONNECTED,
    "preparing": EvStatus.PREPARING,
    "charging": EvStatus.CHARGING,
    "suspendedevse": EvStatus.PAUSED_CHARGER,
    "suspendedev": EvStatus.PAUSED_VEHICLE,
    "finishing": EvStatus.FINISHING,
    "reserved": EvStatus.RESERVED,
    "unavailable": EvStatus.UNAVAILABLE,
    "faulted": EvStatus.FAULTED,
}

IDLE_LIKE_STATUSES: tuple[str, ...] = (
    "eco",
    "eco+",
    "boost",
    "modbusslave",
    "vehicle connected",
    "standby",
    "paused",
    "plugged in",
    "idle",
    "connected",
    "stopped",
    "ready",
    "plugged_in_not_charging",
)
"""Substrings that collapse to IDLE_CONNECTED when no exact status matched."""


def map_ev_status(raw_status: str | None) -> EvChargerStatus:
    """Map a vendor status string onto the semantic status set.

    Total over all inputs: empty/missing gives ``UNKNOWN``, and any string
    not covered by the exact or idle-like rules gives ``UNRECOGNIZED`` with
    the original string preserved.
    """
    if not raw_status or not raw_status.strip():
        return EvChargerStatus(kind=EvStatus.UNKNOWN, raw=raw_status)

    key = raw_status.strip().lower()
    exact = _EXACT_STATUSES.get(key)
    if exact is not None:
        return EvChargerStatus(kind=exact, raw=raw_status)

    if any(idle in key for idle in IDLE_LIKE_STATUSES):
        return EvChargerStatus(kind=EvStatus.IDLE_CONNECTED, raw=raw_status)

    logger.warning("Unknown EV charger status from API: %r", raw_status)
    return EvChargerStatus(kind=EvStatus.UNRECOGNIZED, raw=raw_status)


def unavailable_ev_state(daily_total_kwh: float | None = None) -> EvChargerState:
    """The fixed state used when no charger data can be obtained."""
    return EvChargerState(
        power_w=None,
        power=None,
        status=EvChargerStatus(kind=EvStatus.UNAVAILABLE, raw="unavailable"),
        daily_total_kwh=daily_total_kwh,
    )


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


async def resolve_ev_status(
    client: CloudClient,
    ev_charger_id: str | None,
    *,
    daily_total_kwh: float | None = None,
) -> EvChargerState:
    """Resolve the charger's live state through the fallback chain.

    Args:
        client: Authenticated cloud client.
        ev_charger_id: Charger UUID, or ``None`` when no charger exists.
        daily_total_kwh: Today's charger energy, attached as-is.

    Returns:
        The resolved :class:`EvChargerState`; never raises.
    """
    if not ev_charger_id:
        return unavailable_ev_state(daily_total_kwh)

    try:
        detailed = await client.get_data(
            f"/ev-charger/{ev_charger_id}/status", RawEvChargerStatus
        )
    except ApiNotFoundError:
        logger.info(
            "Detailed EV status not supported for %s, falling back to basic info",
            ev_charger_id,
        )
    except ApiError as exc:
        logger.warning(
            "Detailed EV status fetch failed for %s, falling back: %s",
            ev_charger_id,
            exc,
        )
    else:
        return _state_from_detailed(detailed, daily_total_kwh)

    try:
        basic = await client.get_data(f"/ev-charger/{ev_charger_id}", RawEvCharger)
    except ApiError as exc:
        logger.warning(
            "Fallback EV basic info fetch also failed for %s, "
            "marking charger unavailable: %s",
            ev_charger_id,
            exc,
        )
        return unavailable_ev_state(daily_total_kwh)

    return EvChargerState(
        power_w=None,
        power=None,
        status=map_ev_status(basic.status),
        daily_total_kwh=daily_total_kwh,
    )


def _state_from_detailed(
    detailed: RawEvChargerStatus, daily_total_kwh: float | None
) -> EvChargerState:
    status = map_ev_status(detailed.status)
    session = detailed.charge_session

    power_w = session.power if session is not None else None
    if power_w is None and status.kind is EvStatus.CHARGING:
        # No session figure while charging: report unavailable, not 0 W.
        logger.debug("Charger reports charging without a charge session")

    return EvChargerState(
        power_w=power_w,
        power=scale_power(power_w) if power_w is not None else None,
        status=status,
        daily_total_kwh=daily_total_kwh,
        session_kwh_delivered=(
            round(session.kwh_delivered, 2)
            if session is not None and session.kwh_delivered is not None
            else None
        ),
    )
