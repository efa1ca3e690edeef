"""
Account and energy-history calls.

- :func:`validate_api_key` -- cheap key check run before starting a session.
- :func:`get_account_details` -- ``/account`` payload.
- :func:`get_energy_flows` / :func:`summarize_energy_flows` -- aggregated
  energy flows between solar, grid, battery and home, reduced to per-window
  totals for the history view.

CHANGELOG:
- 2026-10-18: Initial creation
- 2026-10-19: Served by the dashboard account and history routes

TODO:
- None
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from datetime import date
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from helios.src.errors import ApiAuthError, ApiPayloadError
from helios.src.models import (
    AccountData,
    DailyEnergySummary,
    EnergyFlowEntry,
    EnergyFlowGrouping,
)

if TYPE_CHECKING:
    from helios.src.client import CloudClient

logger = logging.getLogger(__name__)

# Energy flow type ids as returned by the energy-flows endpoint.
SOLAR_TO_HOME = "0"
SOLAR_TO_BATTERY = "1"
SOLAR_TO_GRID = "2"
GRID_TO_HOME = "3"
GRID_TO_BATTERY = "4"
BATTERY_TO_HOME = "5"
BATTERY_TO_GRID = "6"


async def validate_api_key(client: CloudClient) -> bool:
    """Return ``False`` if the API rejects the key, ``True`` if it accepts it.

    Other failures (network, 5xx) propagate: they say nothing about the key.
    """
    try:
        await client.get_json("/communication-device")
    except ApiAuthError:
        return False
    return True


async def get_account_details(client: CloudClient) -> AccountData:
    """Fetch the account the API key belongs to."""
    return await client.get_data("/account", AccountData)


async def get_energy_flows(
    client: CloudClient,
    serial: str,
    start_time: str,
    end_time: str,
    grouping: EnergyFlowGrouping | int,
    types: Sequence[int | str] | None = None,
) -> list[EnergyFlowEntry]:
    """Fetch aggregated energy flows for an inverter.

    Args:
        client: Authenticated cloud client.
        serial: Inverter serial.
        start_time: ``"YYYY-MM-DD"`` or ``"YYYY-MM-DD HH:MM"``.
        end_time: Same format as *start_time*.
        grouping: Aggregation window.
        types: Optional subset of flow type ids; all types when omitted.

    Returns:
        One entry per aggregation window.  The endpoint returns ``data`` as
        either a list or an object keyed by index; both are accepted.
    """
    body: dict[str, Any] = {
        "start_time": start_time,
        "end_time": end_time,
        "grouping": int(grouping),
    }
    if types:
        body["types"] = [int(t) for t in types]

    logger.debug("Requesting energy flows for %s: %s", serial, body)
    payload = await client.post_json(f"/inverter/{serial}/energy-flows", body)
    data = payload.get("data") if isinstance(payload, dict) else None
    if isinstance(data, dict):
        data = list(data.values())
    if not isinstance(data, list):
        return []

    try:
        return [EnergyFlowEntry.model_validate(item) for item in data]
    except ValidationError as exc:
        raise ApiPayloadError(
            f"Unexpected energy-flows payload for {serial}: {exc.error_count()} error(s)"
        ) from exc


def summarize_energy_flows(
    entries: Iterable[EnergyFlowEntry],
) -> list[DailyEnergySummary]:
    """Reduce raw flow entries to per-window totals, sorted by day."""
    summaries: list[DailyEnergySummary] = []
    for entry in entries:
        flows = entry.data
        solar_to_home = flows.get(SOLAR_TO_HOME, 0.0)
        solar_to_battery = flows.get(SOLAR_TO_BATTERY, 0.0)
        solar_to_grid = flows.get(SOLAR_TO_GRID, 0.0)
        grid_to_home = flows.get(GRID_TO_HOME, 0.0)
        grid_to_battery = flows.get(GRID_TO_BATTERY, 0.0)
        battery_to_home = flows.get(BATTERY_TO_HOME, 0.0)
        battery_to_grid = flows.get(BATTERY_TO_GRID, 0.0)

        summaries.append(
            DailyEnergySummary(
                day=date.fromisoformat(entry.start_time.split(" ")[0]),
                solar_generation=round(solar_to_home + solar_to_battery + solar_to_grid, 2),
                grid_import=round(grid_to_home + grid_to_battery, 2),
                grid_export=round(solar_to_grid + battery_to_grid, 2),
                battery_charge=round(solar_to_battery + grid_to_battery, 2),
                battery_discharge=round(battery_to_home + battery_to_grid, 2),
                consumption=round(solar_to_home + grid_to_home + battery_to_home, 2),
                solar_to_home=round(solar_to_home, 2),
                solar_to_battery=round(solar_to_battery, 2),
                solar_to_grid=round(solar_to_grid, 2),
                battery_to_home=round(battery_to_home, 2),
                grid_to_home=round(grid_to_home, 2),
            )
        )

    summaries.sort(key=lambda s: s.day)
    return summaries
