"""
Unit tests for EV charger control.

Tests verify:
- Each command POSTs to its own command path with the expected body.
- ``success`` mirrors the API's ``data.success``; a bare 2xx is sent but
  not confirmed.
- Out-of-range limits raise ValueError before any request.
- Current settings are read concurrently; a failed read gives None.
- Plug-and-go accepts a bare boolean or an ``enabled`` object.
- Charging sessions: date filters, pagination, newest first, page limit.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any

import pytest

from helios.src.client import DEFAULT_API_BASE_URL
from helios.src.errors import ApiAuthError
from helios.src.ev_control import (
    charging_sessions_path,
    get_command_settings,
    get_plug_and_go,
    list_charging_sessions,
    set_charge_power_limit,
    set_plug_and_go,
    set_session_energy_limit,
    start_charge,
    stop_charge,
)
from helios.src.models import EvCommandLimit

BASE = DEFAULT_API_BASE_URL
EV = "ev-1"
COMMANDS = f"/ev-charger/{EV}/commands"
SESSIONS_PAGE_1 = f"/ev-charger/{EV}/charging-sessions?page=1&pageSize=10"
SESSIONS_PAGE_2 = f"/ev-charger/{EV}/charging-sessions?page=2&pageSize=10"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _accepted(message: str = "Command sent") -> dict[str, Any]:
    return {"data": {"success": True, "message": message}}


def _session(session_id: int, started_at: str | None) -> dict[str, Any]:
    return {
        "id": session_id,
        "started_at": started_at,
        "finished_at": None,
        "kwh_delivered": 7.5,
        "status": "Finished",
    }


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


class TestCommands:
    @pytest.mark.asyncio
    async def test_start_charge(self, cloud, client) -> None:
        cloud.post(f"{COMMANDS}/start-charge", _accepted())

        result = await start_charge(client, EV)

        assert result.command == "start-charge"
        assert result.success is True
        assert result.message == "Command sent"
        request = cloud.calls("POST", f"{COMMANDS}/start-charge")[0]
        assert request.content == b""

    @pytest.mark.asyncio
    async def test_stop_charge(self, cloud, client) -> None:
        cloud.post(f"{COMMANDS}/stop-charge", _accepted())

        result = await stop_charge(client, EV)

        assert result.success is True
        assert len(cloud.calls("POST", f"{COMMANDS}/stop-charge")) == 1

    @pytest.mark.asyncio
    async def test_charge_power_limit_body(self, cloud, client) -> None:
        cloud.post(f"{COMMANDS}/adjust-charge-power-limit", _accepted())

        await set_charge_power_limit(client, EV, 16)

        request = cloud.calls("POST", f"{COMMANDS}/adjust-charge-power-limit")[0]
        assert cloud.body(request) == {"limit": 16}

    @pytest.mark.asyncio
    async def test_plug_and_go_body(self, cloud, client) -> None:
        cloud.post(f"{COMMANDS}/set-plug-and-go", _accepted())

        await set_plug_and_go(client, EV, False)

        request = cloud.calls("POST", f"{COMMANDS}/set-plug-and-go")[0]
        assert cloud.body(request) == {"enabled": False}

    @pytest.mark.asyncio
    async def test_session_energy_limit_body(self, cloud, client) -> None:
        cloud.post(f"{COMMANDS}/set-session-energy-limit", _accepted())

        await set_session_energy_limit(client, EV, 20.5)

        request = cloud.calls("POST", f"{COMMANDS}/set-session-energy-limit")[0]
        assert cloud.body(request) == {"limit": 20.5}

    @pytest.mark.asyncio
    async def test_refused_command_not_confirmed(
        self, cloud, client, caplog: pytest.LogCaptureFixture
    ) -> None:
        cloud.post(
            f"{COMMANDS}/start-charge",
            {"data": {"success": False, "message": "No vehicle connected"}},
        )

        with caplog.at_level(logging.WARNING):
            result = await start_charge(client, EV)

        assert result.success is False
        assert result.message == "No vehicle connected"
        assert "not confirmed" in caplog.text

    @pytest.mark.asyncio
    async def test_empty_response_not_confirmed(self, cloud, client) -> None:
        cloud.add("POST", f"{COMMANDS}/stop-charge", status=201)

        result = await stop_charge(client, EV)

        assert result.success is False
        assert result.message is None

    @pytest.mark.parametrize("limit", [0.0, 0.09, 250.1, -1])
    @pytest.mark.asyncio
    async def test_session_energy_limit_out_of_range(
        self, cloud, client, limit: float
    ) -> None:
        with pytest.raises(ValueError):
            await set_session_energy_limit(client, EV, limit)

        assert cloud.requests == []

    @pytest.mark.parametrize("limit", [0.1, 250])
    @pytest.mark.asyncio
    async def test_session_energy_limit_bounds_inclusive(
        self, cloud, client, limit: float
    ) -> None:
        cloud.post(f"{COMMANDS}/set-session-energy-limit", _accepted())

        result = await set_session_energy_limit(client, EV, limit)

        assert result.success is True

    @pytest.mark.asyncio
    async def test_non_positive_power_limit(self, cloud, client) -> None:
        with pytest.raises(ValueError):
            await set_charge_power_limit(client, EV, 0)

        assert cloud.requests == []

    @pytest.mark.asyncio
    async def test_auth_failure_propagates(self, cloud, client) -> None:
        cloud.post(f"{COMMANDS}/start-charge", {"error": "Unauthenticated."}, status=401)

        with pytest.raises(ApiAuthError):
            await start_charge(client, EV)


# ---------------------------------------------------------------------------
# Current settings
# ---------------------------------------------------------------------------


class TestCommandSettings:
    @pytest.mark.parametrize(
        ("payload", "expected"),
        [
            ({"data": True}, True),
            ({"data": {"enabled": False}}, False),
            ({"data": {"enabled": "yes"}}, None),
            ({"data": None}, None),
        ],
    )
    @pytest.mark.asyncio
    async def test_plug_and_go_shapes(
        self, cloud, client, payload: dict, expected: bool | None
    ) -> None:
        cloud.get(f"{COMMANDS}/set-plug-and-go", payload)

        assert await get_plug_and_go(client, EV) is expected

    @pytest.mark.asyncio
    async def test_all_settings(self, cloud, client) -> None:
        cloud.get(
            f"{COMMANDS}/adjust-charge-power-limit",
            {"data": {"value": 32, "unit": "A", "min": 6, "max": 32}},
        )
        cloud.get(f"{COMMANDS}/set-plug-and-go", {"data": {"enabled": True}})
        cloud.get(
            f"{COMMANDS}/set-session-energy-limit",
            {"data": {"value": 40, "unit": "kWh", "min": 0.1, "max": 250}},
        )

        settings = await get_command_settings(client, EV)

        assert settings.charge_power_limit == EvCommandLimit(
            value=32, unit="A", min=6, max=32
        )
        assert settings.plug_and_go is True
        assert settings.session_energy_limit is not None
        assert settings.session_energy_limit.value == 40

    @pytest.mark.asyncio
    async def test_failed_read_is_none(self, cloud, client) -> None:
        cloud.get(f"{COMMANDS}/set-plug-and-go", {"error": "boom"}, status=500)
        cloud.get(
            f"{COMMANDS}/set-session-energy-limit",
            {"data": {"value": 12, "unit": "kWh"}},
        )

        settings = await get_command_settings(client, EV)

        assert settings.plug_and_go is None
        assert settings.charge_power_limit is None
        assert settings.session_energy_limit is not None
        assert settings.session_energy_limit.value == 12


# ---------------------------------------------------------------------------
# Charging sessions
# ---------------------------------------------------------------------------


class TestChargingSessions:
    def test_path_without_dates(self) -> None:
        assert charging_sessions_path(EV) == SESSIONS_PAGE_1

    def test_path_with_whole_days(self) -> None:
        path = charging_sessions_path(EV, date(2026, 10, 1), date(2026, 10, 2))

        assert path == (
            f"{SESSIONS_PAGE_1}"
            "&start_time=2026-10-01T00%3A00%3A00Z"
            "&end_time=2026-10-02T23%3A59%3A59Z"
        )

    @pytest.mark.asyncio
    async def test_pages_merged_newest_first(self, cloud, client) -> None:
        cloud.get(
            SESSIONS_PAGE_1,
            {
                "data": [
                    _session(1, "2026-10-01T08:00:00Z"),
                    _session(3, "2026-10-03T08:00:00Z"),
                ],
                "links": {"next": f"{BASE}{SESSIONS_PAGE_2}"},
            },
        )
        cloud.get(
            SESSIONS_PAGE_2,
            {
                "data": [_session(2, "2026-10-02T08:00:00Z"), _session(4, None)],
                "links": {"next": None},
            },
        )

        sessions = await list_charging_sessions(client, EV)

        assert [s.id for s in sessions] == [3, 2, 1, 4]
        assert sessions[0].kwh_delivered == 7.5

    @pytest.mark.asyncio
    async def test_max_pages(self, cloud, client) -> None:
        cloud.get(
            SESSIONS_PAGE_1,
            {
                "data": [_session(1, "2026-10-01T08:00:00Z")],
                "links": {"next": f"{BASE}{SESSIONS_PAGE_2}"},
            },
        )

        sessions = await list_charging_sessions(client, EV, max_pages=1)

        assert [s.id for s in sessions] == [1]
        assert cloud.calls("GET", SESSIONS_PAGE_2) == []

    @pytest.mark.asyncio
    async def test_malformed_records_skipped(self, cloud, client) -> None:
        cloud.get(
            SESSIONS_PAGE_1,
            {
                "data": [
                    "garbage",
                    {"id": 9, "started_at": "not-a-time"},
                    _session(1, "2026-10-01T08:00:00Z"),
                ]
            },
        )

        sessions = await list_charging_sessions(client, EV)

        assert [s.id for s in sessions] == [1]

    @pytest.mark.asyncio
    async def test_date_filter_requested(self, cloud, client) -> None:
        path = charging_sessions_path(EV, date(2026, 10, 1), date(2026, 10, 1))
        cloud.get(path, {"data": []})

        assert await list_charging_sessions(
            client, EV, date(2026, 10, 1), date(2026, 10, 1)
        ) == []
        assert len(cloud.calls("GET", path)) == 1
