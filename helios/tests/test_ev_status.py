"""
Unit tests for EV charger status mapping and resolution.

Tests verify:
- Exact vendor statuses map case-insensitively onto the semantic set.
- Idle-like substrings collapse to IDLE_CONNECTED.
- Empty input is UNKNOWN; anything else is UNRECOGNIZED with the raw
  string kept as its label.
- The fallback chain: detailed status -> basic info -> unavailable, never
  raising to the caller.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging

import pytest

from helios.src.ev_status import map_ev_status, resolve_ev_status, unavailable_ev_state
from helios.src.models import EvStatus, Power

# ---------------------------------------------------------------------------
# map_ev_status
# ---------------------------------------------------------------------------


class TestMapEvStatus:
    @pytest.mark.parametrize(
        ("raw", "kind", "label"),
        [
            ("Available", EvStatus.DISCONNECTED, "Disconnected"),
            ("Preparing", EvStatus.PREPARING, "Preparing"),
            ("Charging", EvStatus.CHARGING, "Charging"),
            ("SuspendedEVSE", EvStatus.PAUSED_CHARGER, "Paused (Charger)"),
            ("SuspendedEV", EvStatus.PAUSED_VEHICLE, "Paused (Vehicle)"),
            ("Finishing", EvStatus.FINISHING, "Finishing"),
            ("Reserved", EvStatus.RESERVED, "Reserved"),
            ("Unavailable", EvStatus.UNAVAILABLE, "Unavailable"),
            ("Faulted", EvStatus.FAULTED, "Faulted"),
            ("  charging  ", EvStatus.CHARGING, "Charging"),
        ],
    )
    def test_exact_statuses(self, raw: str, kind: EvStatus, label: str) -> None:
        status = map_ev_status(raw)
        assert status.kind is kind
        assert status.label == label
        assert status.raw == raw

    @pytest.mark.parametrize(
        "raw", ["Eco+", "Boost", "Plugged In", "Vehicle Connected - Standby", "READY"]
    )
    def test_idle_like_statuses(self, raw: str) -> None:
        status = map_ev_status(raw)
        assert status.kind is EvStatus.IDLE_CONNECTED
        assert status.label == "Idle / Connected"

    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_empty_is_unknown(self, raw: str | None) -> None:
        status = map_ev_status(raw)
        assert status.kind is EvStatus.UNKNOWN
        assert status.label == "Status Unknown"

    def test_unrecognized_keeps_raw_string(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING):
            status = map_ev_status("Overheated")

        assert status.kind is EvStatus.UNRECOGNIZED
        assert status.raw == "Overheated"
        assert status.label == "Overheated"
        assert "Overheated" in caplog.text

    def test_label_serialized(self) -> None:
        assert map_ev_status("Charging").model_dump()["label"] == "Charging"


# ---------------------------------------------------------------------------
# resolve_ev_status
# ---------------------------------------------------------------------------


class TestResolveEvStatus:
    @pytest.mark.asyncio
    async def test_no_charger_makes_no_call(self, cloud, client) -> None:
        state = await resolve_ev_status(client, None, daily_total_kwh=1.5)

        assert state == unavailable_ev_state(1.5)
        assert state.status.label == "Unavailable"
        assert cloud.requests == []

    @pytest.mark.asyncio
    async def test_detailed_status_with_session(self, cloud, client) -> None:
        cloud.get(
            "/ev-charger/ev1/status",
            {
                "data": {
                    "status": "Charging",
                    "charge_session": {"power": 7200, "kwh_delivered": 12.3456},
                }
            },
        )

        state = await resolve_ev_status(client, "ev1")

        assert state.status.kind is EvStatus.CHARGING
        assert state.power_w == 7200
        assert state.power == Power(value=7.2, unit="kW")
        assert state.session_kwh_delivered == 12.35
        assert state.power_available

    @pytest.mark.asyncio
    async def test_charging_without_session_is_unavailable_power(
        self, cloud, client
    ) -> None:
        cloud.get("/ev-charger/ev1/status", {"data": {"status": "Charging"}})

        state = await resolve_ev_status(client, "ev1")

        assert state.status.kind is EvStatus.CHARGING
        assert state.power_w is None
        assert state.power is None
        assert not state.power_available

    @pytest.mark.asyncio
    async def test_detailed_404_falls_back_to_basic_info(self, cloud, client) -> None:
        cloud.get("/ev-charger/ev1", {"data": {"uuid": "ev1", "status": "Charging"}})

        state = await resolve_ev_status(client, "ev1")

        assert state.status.kind is EvStatus.CHARGING
        assert state.status.label == "Charging"
        assert state.power_w is None
        assert len(cloud.calls("GET", "/ev-charger/ev1/status")) == 1
        assert len(cloud.calls("GET", "/ev-charger/ev1")) == 1

    @pytest.mark.asyncio
    async def test_detailed_server_error_falls_back(self, cloud, client) -> None:
        cloud.get("/ev-charger/ev1/status", {"error": "boom"}, status=500)
        cloud.get("/ev-charger/ev1", {"data": {"status": "Available"}})

        state = await resolve_ev_status(client, "ev1")

        assert state.status.kind is EvStatus.DISCONNECTED

    @pytest.mark.asyncio
    async def test_both_fail_gives_unavailable(self, cloud, client) -> None:
        cloud.get("/ev-charger/ev1", {"error": "boom"}, status=500)

        state = await resolve_ev_status(client, "ev1", daily_total_kwh=3.0)

        assert state.status.kind is EvStatus.UNAVAILABLE
        assert state.daily_total_kwh == 3.0
        assert state.power_w is None

    @pytest.mark.asyncio
    async def test_auth_failure_is_soft(self, cloud, client) -> None:
        cloud.get("/ev-charger/ev1/status", {"error": "nope"}, status=403)
        cloud.get("/ev-charger/ev1", {"error": "nope"}, status=403)

        state = await resolve_ev_status(client, "ev1")

        assert state.status.kind is EvStatus.UNAVAILABLE
