"""
View-facing dashboard state with staleness and cancellation guards.

Polls may overlap, so results can complete out of order.  The state only
ever shows the most recently *completed* snapshot: a result is applied when
it belongs to the current credential generation and is not older than the
snapshot already shown.  Changing the API key bumps the generation, so
in-flight results for the old key are discarded instead of being merged
into the new session.

Single event loop, no locks: every method runs to completion between
awaits.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from helios.src.models import DeviceIdentity, TelemetrySnapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class FetchTicket:
    """Issued when a fetch starts; presented when its result is applied."""

    generation: int


class DashboardState:
    """Latest snapshot, error and loading flag for the current API key."""

    def __init__(self) -> None:
        self._generation = 0
        self._in_flight = 0
        self._identity: DeviceIdentity | None = None
        self._snapshot: TelemetrySnapshot | None = None
        self._error: str | None = None

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def identity(self) -> DeviceIdentity | None:
        return self._identity

    @property
    def snapshot(self) -> TelemetrySnapshot | None:
        """Most recently completed snapshot, kept across later errors."""
        return self._snapshot

    @property
    def error(self) -> str | None:
        """Message of the latest failure, cleared by the next success."""
        return self._error

    @property
    def is_loading(self) -> bool:
        return self._in_flight > 0

    # ------------------------------------------------------------------
    # Write side
    # ------------------------------------------------------------------

    def reset(self) -> int:
        """Forget everything about the previous key and start a new generation.

        Returns:
            The new generation number.
        """
        self._generation += 1
        self._in_flight = 0
        self._identity = None
        self._snapshot = None
        self._error = None
        logger.info("Dashboard state reset (generation %d)", self._generation)
        return self._generation

    def begin_fetch(self) -> FetchTicket:
        self._in_flight += 1
        return FetchTicket(generation=self._generation)

    def _finish(self, ticket: FetchTicket) -> bool:
        """Close out *ticket*; returns whether it is still current."""
        if ticket.generation != self._generation:
            logger.debug(
                "Discarding result from stale generation %d (current %d)",
                ticket.generation,
                self._generation,
            )
            return False
        self._in_flight = max(self._in_flight - 1, 0)
        return True

    def apply_snapshot(self, ticket: FetchTicket, snapshot: TelemetrySnapshot) -> bool:
        """Apply *snapshot* unless it is stale.

        Returns:
            ``True`` if the snapshot is now the one shown.
        """
        if not self._finish(ticket):
            return False
        current = self._snapshot
        if current is not None and snapshot.timestamp_ms < current.timestamp_ms:
            logger.debug(
                "Discarding out-of-order snapshot (ts=%d older than shown ts=%d)",
                snapshot.timestamp_ms,
                current.timestamp_ms,
            )
            return False
        self._snapshot = snapshot
        self._error = None
        return True

    def apply_identity(self, ticket: FetchTicket, identity: DeviceIdentity) -> bool:
        """Record the resolved identity unless the key changed meanwhile."""
        if not self._finish(ticket):
            return False
        self._identity = identity
        self._error = None
        return True

    def apply_error(self, ticket: FetchTicket, error: BaseException) -> bool:
        """Record a failed fetch unless it belongs to a previous key."""
        if not self._finish(ticket):
            return False
        self._error = str(error) or type(error).__name__
        return True
