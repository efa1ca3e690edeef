"""
Session lifecycle: one API key, one client, one resolved device identity.

``start`` swaps in a client for a new key, resets the dashboard state and
resolves the device identity once.  ``poll_once`` runs one poll tick and
applies its result through the state's staleness guards, so an overlapping
or superseded tick can never overwrite newer data.

CHANGELOG:
- 2026-10-18: Initial creation
- 2026-10-19: new_client for checking a candidate API key

TODO:
- None
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx

from helios.src.client import DEFAULT_API_BASE_URL, CloudClient
from helios.src.devices import resolve_device_identity
from helios.src.errors import ApiAuthError, HeliosError
from helios.src.telemetry import fetch_snapshot

if TYPE_CHECKING:
    from helios.src.models import DeviceIdentity, TelemetrySnapshot
    from helios.src.state import DashboardState

logger = logging.getLogger(__name__)


class Session:
    """Owns the client for the current API key and drives poll ticks.

    Args:
        state: Dashboard state shared with the view layer.
        base_url: Cloud API base URL.
        transport: Optional httpx transport passed to every client (tests).
    """

    def __init__(
        self,
        state: DashboardState,
        *,
        base_url: str = DEFAULT_API_BASE_URL,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._state = state
        self._base_url = base_url
        self._transport = transport
        self._client: CloudClient | None = None

    @property
    def state(self) -> DashboardState:
        return self._state

    @property
    def client(self) -> CloudClient | None:
        return self._client

    @property
    def identity(self) -> DeviceIdentity | None:
        return self._state.identity

    def new_client(self, api_key: str) -> CloudClient:
        """Build a client for *api_key* against this session's API base.

        The caller owns the returned client and must close it.
        """
        return CloudClient(api_key, self._base_url, transport=self._transport)

    async def start(self, api_key: str) -> DeviceIdentity | None:
        """Begin a session for *api_key* and resolve its devices.

        Results of any fetch still in flight for the previous key are
        discarded.

        Returns:
            The resolved identity, or ``None`` if another ``start`` superseded
            this one while it was resolving.

        Raises:
            DeviceDiscoveryError: No inverter could be identified.
            ApiError: The device list could not be fetched.
        """
        self._state.reset()
        client = self.new_client(api_key)
        previous, self._client = self._client, client
        if previous is not None:
            await previous.aclose()

        ticket = self._state.begin_fetch()
        try:
            identity = await resolve_device_identity(client)
        except Exception as exc:
            # A superseded start sees its client closed underneath it.
            if not self._state.apply_error(ticket, exc):
                logger.info("API key changed during device discovery; error discarded")
                return None
            raise

        if not self._state.apply_identity(ticket, identity):
            logger.info("API key changed during device discovery; result discarded")
            return None
        logger.info("Session started for inverter %s", identity.inverter_serial)
        return identity

    async def poll_once(self) -> TelemetrySnapshot | None:
        """Fetch one snapshot and apply it to the dashboard state.

        Never raises: failures are logged and recorded on the state.

        Returns:
            The snapshot if it was fetched and applied, otherwise ``None``.
        """
        client, identity = self._client, self._state.identity
        if client is None or identity is None:
            logger.debug("Poll skipped: no resolved device identity")
            return None

        ticket = self._state.begin_fetch()
        try:
            snapshot = await fetch_snapshot(client, identity)
        except ApiAuthError as exc:
            logger.error("Credentials rejected during poll: %s", exc)
            self._state.apply_error(ticket, exc)
            return None
        except HeliosError as exc:
            logger.warning("Poll failed: %s", exc)
            self._state.apply_error(ticket, exc)
            return None
        except Exception as exc:
            logger.error("Unexpected poll error", exc_info=True)
            self._state.apply_error(ticket, exc)
            return None

        if not self._state.apply_snapshot(ticket, snapshot):
            return None
        return snapshot

    async def close(self) -> None:
        """Close the current client, if any."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
