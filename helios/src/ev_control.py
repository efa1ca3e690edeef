"""
EV charger control: commands, adjustable limits and charging-session history.

Commands are POSTed to ``/ev-charger/{uuid}/commands/{command}``; a GET on
the same path returns the command's current value.  A 2xx response alone
does not mean the charger accepted a command: the result carries the API's
own ``data.success`` flag, and callers re-read the setting to confirm.

Reads of the adjustable settings are soft: a setting the charger does not
report is ``None``.  Charging sessions are listed through the paginated
``/ev-charger/{uuid}/charging-sessions`` endpoint, newest first.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from datetime import date
from typing import TYPE_CHECKING, Any, TypeVar
from urllib.parse import urlencode

from pydantic import ValidationError

from helios.src.errors import ApiError
from helios.src.models import (
    ChargingSession,
    EvCommandLimit,
    EvCommandResult,
    EvCommandSettings,
)
from helios.src.pagination import PagedCollection

if TYPE_CHECKING:
    from helios.src.client import CloudClient

logger = logging.getLogger(__name__)

T = TypeVar("T")

START_CHARGE = "start-charge"
STOP_CHARGE = "stop-charge"
ADJUST_CHARGE_POWER_LIMIT = "adjust-charge-power-limit"
SET_PLUG_AND_GO = "set-plug-and-go"
SET_SESSION_ENERGY_LIMIT = "set-session-energy-limit"

SESSION_ENERGY_LIMIT_MIN_KWH = 0.1
SESSION_ENERGY_LIMIT_MAX_KWH = 250.0

CHARGING_SESSIONS_PAGE_SIZE = 10


def _command_path(ev_charger_id: str, command: str) -> str:
    return f"/ev-charger/{ev_charger_id}/commands/{command}"


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def _send_command(
    client: CloudClient,
    ev_charger_id: str,
    command: str,
    body: dict[str, Any] | None = None,
) -> EvCommandResult:
    payload = await client.post_json(_command_path(ev_charger_id, command), body)
    data = payload.get("data") if isinstance(payload, dict) else None
    if not isinstance(data, dict):
        data = {}
    message = data.get("message")

    result = EvCommandResult(
        command=command,
        success=data.get("success") is True,
        message=message if isinstance(message, str) else None,
    )
    if result.success:
        logger.info("EV command %s accepted for %s", command, ev_charger_id)
    else:
        logger.warning(
            "EV command %s sent to %s but not confirmed: %s",
            command,
            ev_charger_id,
            result.message or "no message",
        )
    return result


async def start_charge(client: CloudClient, ev_charger_id: str) -> EvCommandResult:
    """Ask the charger to start charging the connected vehicle."""
    return await _send_command(client, ev_charger_id, START_CHARGE)


async def stop_charge(client: CloudClient, ev_charger_id: str) -> EvCommandResult:
    """Ask the charger to stop the current charge."""
    return await _send_command(client, ev_charger_id, STOP_CHARGE)


async def set_charge_power_limit(
    client: CloudClient, ev_charger_id: str, limit: float
) -> EvCommandResult:
    """Set the charge power limit, in the unit the charger reports (amps).

    Raises:
        ValueError: *limit* is not positive.
    """
    if limit <= 0:
        raise ValueError(f"Charge power limit must be positive, got {limit}")
    return await _send_command(
        client, ev_charger_id, ADJUST_CHARGE_POWER_LIMIT, {"limit": limit}
    )


async def set_plug_and_go(
    client: CloudClient, ev_charger_id: str, enabled: bool
) -> EvCommandResult:
    """Enable or disable charging as soon as a vehicle is plugged in."""
    return await _send_command(
        client, ev_charger_id, SET_PLUG_AND_GO, {"enabled": enabled}
    )


async def set_session_energy_limit(
    client: CloudClient, ev_charger_id: str, limit_kwh: float
) -> EvCommandResult:
    """Cap the energy delivered in one session.

    Raises:
        ValueError: *limit_kwh* is outside 0.1-250 kWh.
    """
    if not SESSION_ENERGY_LIMIT_MIN_KWH <= limit_kwh <= SESSION_ENERGY_LIMIT_MAX_KWH:
        raise ValueError(
            "Session energy limit must be between "
            f"{SESSION_ENERGY_LIMIT_MIN_KWH} and {SESSION_ENERGY_LIMIT_MAX_KWH} kWh, "
            f"got {limit_kwh}"
        )
    return await _send_command(
        client, ev_charger_id, SET_SESSION_ENERGY_LIMIT, {"limit": limit_kwh}
    )


# ---------------------------------------------------------------------------
# Current command settings
# ---------------------------------------------------------------------------


async def get_charge_power_limit(
    client: CloudClient, ev_charger_id: str
) -> EvCommandLimit:
    return await client.get_data(
        _command_path(ev_charger_id, ADJUST_CHARGE_POWER_LIMIT), EvCommandLimit
    )


async def get_session_energy_limit(
    client: CloudClient, ev_charger_id: str
) -> EvCommandLimit:
    return await client.get_data(
        _command_path(ev_charger_id, SET_SESSION_ENERGY_LIMIT), EvCommandLimit
    )


async def get_plug_and_go(client: CloudClient, ev_charger_id: str) -> bool | None:
    """Current plug-and-go flag, or ``None`` for an unexpected payload.

    The endpoint returns either a bare boolean or ``{"enabled": bool}``.
    """
    payload = await client.get_json(_command_path(ev_charger_id, SET_PLUG_AND_GO))
    data = payload.get("data") if isinstance(payload, dict) else None
    if isinstance(data, bool):
        return data
    if isinstance(data, dict) and isinstance(data.get("enabled"), bool):
        return data["enabled"]
    logger.warning("Unexpected plug-and-go payload for %s: %r", ev_charger_id, payload)
    return None


async def _soft(what: str, call: Awaitable[T]) -> T | None:
    try:
        return await call
    except ApiError as exc:
        logger.warning("Could not read %s (optional): %s", what, exc)
        return None


async def get_command_settings(
    client: CloudClient, ev_charger_id: str
) -> EvCommandSettings:
    """Read every adjustable setting concurrently; each one may be absent."""
    power_limit, plug_and_go, energy_limit = await asyncio.gather(
        _soft("charge power limit", get_charge_power_limit(client, ev_charger_id)),
        _soft("plug and go", get_plug_and_go(client, ev_charger_id)),
        _soft("session energy limit", get_session_energy_limit(client, ev_charger_id)),
    )
    return EvCommandSettings(
        charge_power_limit=power_limit,
        plug_and_go=plug_and_go,
        session_energy_limit=energy_limit,
    )


# ---------------------------------------------------------------------------
# Charging sessions
# ---------------------------------------------------------------------------


def charging_sessions_path(
    ev_charger_id: str,
    start: date | None = None,
    end: date | None = None,
) -> str:
    """First-page path of the charging-session list, filtered by whole days.

    *start* covers from 00:00:00Z and *end* up to 23:59:59Z.
    """
    params: dict[str, Any] = {"page": 1, "pageSize": CHARGING_SESSIONS_PAGE_SIZE}
    if start is not None:
        params["start_time"] = f"{start.isoformat()}T00:00:00Z"
    if end is not None:
        params["end_time"] = f"{end.isoformat()}T23:59:59Z"
    return f"/ev-charger/{ev_charger_id}/charging-sessions?{urlencode(params)}"


def _started_sort_key(session: ChargingSession) -> float:
    if session.started_at is None:
        return float("-inf")
    return session.started_at.timestamp()


async def list_charging_sessions(
    client: CloudClient,
    ev_charger_id: str,
    start: date | None = None,
    end: date | None = None,
    *,
    max_pages: int | None = None,
) -> list[ChargingSession]:
    """List charging sessions, newest first.

    Args:
        client: Authenticated cloud client.
        ev_charger_id: Charger UUID.
        start: Only sessions from this day on.
        end: Only sessions up to the end of this day.
        max_pages: Stop after this many pages; all pages when ``None``.

    Returns:
        Sessions sorted by ``started_at`` descending; malformed records
        are skipped.
    """
    sessions: list[ChargingSession] = []
    pages_read = 0
    async for page in PagedCollection(
        client, charging_sessions_path(ev_charger_id, start, end)
    ):
        for record in page:
            try:
                sessions.append(ChargingSession.model_validate(record))
            except ValidationError:
                logger.warning("Skipping malformed charging session record: %r", record)
        pages_read += 1
        if max_pages is not None and pages_read >= max_pages:
            break

    sessions.sort(key=_started_sort_key, reverse=True)
    return sessions
