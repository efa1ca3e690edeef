"""
Telemetry fetch: one poll tick's worth of remote calls assembled into a snapshot.

Runs the system-data/meter-data chain and the EV status chain concurrently,
and only builds the snapshot once both have settled so that every field
comes from the same fetch cycle.  When the mandatory system-data call fails
the EV task is cancelled with it.

CHANGELOG:
- 2026-10-18: Initial creation
- 2026-10-19: Cancel the EV status task when system data fails

TODO:
- None
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING

from helios.src.errors import ApiAuthError, ApiError, TelemetryFetchError
from helios.src.ev_status import resolve_ev_status
from helios.src.models import EnergyTotals, RawMeterData, RawSystemData
from helios.src.normalizer import normalize_system_data, parse_daily_totals

if TYPE_CHECKING:
    from helios.src.client import CloudClient
    from helios.src.models import DeviceIdentity, TelemetrySnapshot

logger = logging.getLogger(__name__)


async def _fetch_daily_totals(client: CloudClient, serial: str) -> EnergyTotals | None:
    """Optional meter-data call; any failure omits the totals."""
    try:
        meter = await client.get_data(
            f"/inverter/{serial}/meter-data/latest", RawMeterData
        )
    except ApiError as exc:
        logger.warning("Could not fetch daily meter data (optional): %s", exc)
        return None
    return parse_daily_totals(meter)


async def _fetch_inverter_readings(
    client: CloudClient, serial: str
) -> tuple[RawSystemData, EnergyTotals | None]:
    try:
        system = await client.get_data(
            f"/inverter/{serial}/system-data/latest", RawSystemData
        )
    except ApiAuthError:
        raise
    except ApiError as exc:
        raise TelemetryFetchError(
            f"Failed to fetch system data for inverter {serial}: {exc}"
        ) from exc

    totals = await _fetch_daily_totals(client, serial)
    return system, totals


async def fetch_snapshot(
    client: CloudClient,
    identity: DeviceIdentity,
) -> TelemetrySnapshot:
    """Fetch and normalize one real-time snapshot.

    Args:
        client: Client bound to the account's API key.
        identity: Resolved device identity (read-only, shared).

    Returns:
        A new :class:`TelemetrySnapshot`.

    Raises:
        TelemetryFetchError: The mandatory system-data call failed.
        ApiAuthError: The credentials were rejected; not wrapped so the
            caller can prompt for new credentials.
    """
    ev_task = asyncio.create_task(resolve_ev_status(client, identity.ev_charger_id))
    try:
        system, totals = await _fetch_inverter_readings(
            client, identity.inverter_serial
        )
    except BaseException:
        # The tick has failed; stop issuing EV requests for it.
        ev_task.cancel()
        raise
    ev_state = await ev_task

    if totals is not None and totals.ac_charge is not None:
        ev_state = ev_state.model_copy(update={"daily_total_kwh": totals.ac_charge})

    return normalize_system_data(
        system,
        capacity_kwh=identity.battery_capacity_kwh,
        ev_charger=ev_state,
        daily_totals=totals,
        now_ms=int(time.time() * 1000),
    )
