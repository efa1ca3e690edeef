"""
Unit tests for the dashboard state's staleness and cancellation guards.

Tests verify:
- Only the most recently completed snapshot is shown; older ones are
  discarded.
- Results from a previous API key generation are discarded.
- Errors are recorded without dropping the last snapshot and cleared by
  the next success.
- The loading flag tracks outstanding fetches of the current generation.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

from helios.src.ev_status import unavailable_ev_state
from helios.src.models import DeviceIdentity, RawSystemData, TelemetrySnapshot
from helios.src.normalizer import normalize_system_data
from helios.src.state import DashboardState


def _snapshot(timestamp_ms: int, solar: float = 1000) -> TelemetrySnapshot:
    return normalize_system_data(
        RawSystemData.model_validate({"solar": {"power": solar}}),
        capacity_kwh=None,
        ev_charger=unavailable_ev_state(),
        daily_totals=None,
        now_ms=timestamp_ms,
    )


class TestSnapshotOrdering:
    def test_newer_snapshot_applied(self) -> None:
        state = DashboardState()
        first, second = state.begin_fetch(), state.begin_fetch()

        assert state.apply_snapshot(first, _snapshot(1000))
        assert state.apply_snapshot(second, _snapshot(2000, solar=50))

        assert state.snapshot is not None
        assert state.snapshot.timestamp_ms == 2000

    def test_out_of_order_snapshot_discarded(self) -> None:
        state = DashboardState()
        slow, fast = state.begin_fetch(), state.begin_fetch()

        assert state.apply_snapshot(fast, _snapshot(2000))
        assert not state.apply_snapshot(slow, _snapshot(1000))

        assert state.snapshot is not None
        assert state.snapshot.timestamp_ms == 2000
        assert not state.is_loading

    def test_equal_timestamp_applied(self) -> None:
        state = DashboardState()
        a, b = state.begin_fetch(), state.begin_fetch()
        state.apply_snapshot(a, _snapshot(1000, solar=1))

        assert state.apply_snapshot(b, _snapshot(1000, solar=2))
        assert state.snapshot is not None
        assert state.snapshot.raw_solar_w == 2


class TestGenerations:
    def test_reset_discards_in_flight_results(self) -> None:
        state = DashboardState()
        old = state.begin_fetch()

        generation = state.reset()

        assert generation == 1
        assert not state.apply_snapshot(old, _snapshot(5000))
        assert not state.apply_error(old, RuntimeError("late"))
        assert not state.apply_identity(old, DeviceIdentity(inverter_serial="OLD"))
        assert state.snapshot is None
        assert state.error is None
        assert state.identity is None

    def test_reset_clears_everything(self) -> None:
        state = DashboardState()
        ticket = state.begin_fetch()
        state.apply_identity(ticket, DeviceIdentity(inverter_serial="INV1"))
        ticket = state.begin_fetch()
        state.apply_snapshot(ticket, _snapshot(1000))
        state.begin_fetch()

        state.reset()

        assert state.identity is None
        assert state.snapshot is None
        assert not state.is_loading

    def test_current_generation_identity_applied(self) -> None:
        state = DashboardState()
        state.reset()
        ticket = state.begin_fetch()

        assert state.apply_identity(ticket, DeviceIdentity(inverter_serial="INV1"))
        assert state.identity == DeviceIdentity(inverter_serial="INV1")


class TestErrors:
    def test_error_keeps_last_snapshot(self) -> None:
        state = DashboardState()
        state.apply_snapshot(state.begin_fetch(), _snapshot(1000))

        assert state.apply_error(state.begin_fetch(), RuntimeError("cloud down"))

        assert state.error == "cloud down"
        assert state.snapshot is not None

    def test_success_clears_error(self) -> None:
        state = DashboardState()
        state.apply_error(state.begin_fetch(), RuntimeError("cloud down"))

        state.apply_snapshot(state.begin_fetch(), _snapshot(1000))

        assert state.error is None

    def test_empty_message_uses_type_name(self) -> None:
        state = DashboardState()
        state.apply_error(state.begin_fetch(), TimeoutError())
        assert state.error == "TimeoutError"


class TestLoadingFlag:
    def test_loading_until_all_fetches_finish(self) -> None:
        state = DashboardState()
        assert not state.is_loading

        a, b = state.begin_fetch(), state.begin_fetch()
        assert state.is_loading

        state.apply_snapshot(a, _snapshot(1000))
        assert state.is_loading

        state.apply_error(b, RuntimeError("x"))
        assert not state.is_loading
