"""
Dashboard API: JSON view of the engine for the browser front end.

Serves the most recently completed snapshot and the resolved device
identity from the shared :class:`~helios.src.state.DashboardState`, runs
preset reconciliation on demand, activates a preset (write, then read back
and reconcile to confirm) and swaps the API key once the cloud accepts it.
It also exposes the account details, energy history and EV charger control
(commands, adjustable limits and charging sessions).

Routes under ``/v1`` require the dashboard bearer token when one is
configured.  Upstream failures map to HTTP statuses: credentials rejected
-> 401, device discovery failure -> 422 with its diagnostic payload, any
other cloud API failure -> 502.

CHANGELOG:
- 2026-10-18: Initial creation
- 2026-10-19: Account, history and EV charger routes; validate a new API
  key before swapping sessions

TODO:
- None
"""

from __future__ import annotations

import logging
from datetime import date
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any

from fastapi import APIRouter, Body, Depends, FastAPI, HTTPException, Query, Request
from pydantic import BaseModel, Field

from helios.src import ev_control
from helios.src.auth import DashboardAuth
from helios.src.errors import (
    ApiAuthError,
    ApiError,
    DeviceDiscoveryError,
    HeliosError,
    PresetStoreError,
)
from helios.src.history import (
    get_account_details,
    get_energy_flows,
    summarize_energy_flows,
    validate_api_key,
)
from helios.src.models import EnergyFlowGrouping, PresetId
from helios.src.presets import (
    activate_preset,
    confirm_active_preset,
    fetch_device_settings,
    find_active_preset,
    load_presets,
)

if TYPE_CHECKING:
    from helios.src.client import CloudClient
    from helios.src.models import DeviceIdentity
    from helios.src.session import Session

logger = logging.getLogger(__name__)


class ActivateRequest(BaseModel):
    id: str = Field(min_length=1)


class CredentialsRequest(BaseModel):
    api_key: str = Field(min_length=1)


class ChargePowerLimitRequest(BaseModel):
    limit: float = Field(gt=0)


class PlugAndGoRequest(BaseModel):
    enabled: bool


class SessionEnergyLimitRequest(BaseModel):
    limit: float = Field(
        ge=ev_control.SESSION_ENERGY_LIMIT_MIN_KWH,
        le=ev_control.SESSION_ENERGY_LIMIT_MAX_KWH,
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _http_error(exc: HeliosError) -> HTTPException:
    """Translate an engine error into the HTTP status the view expects."""
    if isinstance(exc, ApiAuthError):
        return HTTPException(status_code=401, detail=str(exc))
    if isinstance(exc, DeviceDiscoveryError):
        return HTTPException(
            status_code=422,
            detail={
                "message": str(exc),
                "devices_checked": exc.devices_checked,
                "device_serials": exc.device_serials,
            },
        )
    if isinstance(exc, PresetStoreError):
        return HTTPException(status_code=500, detail=str(exc))
    return HTTPException(status_code=502, detail=str(exc))


def _session(request: Request) -> Session:
    return request.app.state.session


def _ready(request: Request) -> tuple[CloudClient, DeviceIdentity]:
    session = _session(request)
    client, identity = session.client, session.identity
    if client is None or identity is None:
        raise HTTPException(status_code=503, detail="Device identity not resolved yet.")
    return client, identity


def _ev_ready(request: Request) -> tuple[CloudClient, str]:
    client, identity = _ready(request)
    if identity.ev_charger_id is None:
        raise HTTPException(
            status_code=404, detail="No EV charger registered for this account."
        )
    return client, identity.ev_charger_id


def _presets(request: Request) -> list[Any]:
    try:
        return load_presets(request.app.state.presets_path)
    except PresetStoreError as exc:
        raise _http_error(exc) from exc


async def _require_auth(request: Request) -> None:
    await request.app.state.auth.verify(request)


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

health_router = APIRouter(tags=["health"])
router = APIRouter(prefix="/v1", tags=["dashboard"], dependencies=[Depends(_require_auth)])


@health_router.get("/health")
async def health() -> dict[str, str]:
    """Return a simple liveness status; no authentication."""
    return {"status": "ok"}


@router.get("/realtime")
async def realtime(request: Request) -> dict:
    """Return the most recently completed snapshot plus loading/error flags.

    Raises:
        HTTPException: 404 if no snapshot has completed yet.
    """
    state = _session(request).state
    if state.snapshot is None:
        raise HTTPException(
            status_code=404,
            detail=state.error or "No snapshot available yet.",
        )
    return {
        "snapshot": state.snapshot.model_dump(mode="json"),
        "is_loading": state.is_loading,
        "error": state.error,
    }


@router.get("/device")
async def device(request: Request) -> dict:
    """Return the resolved device identity (503 until resolved)."""
    _, identity = _ready(request)
    return identity.model_dump(mode="json")


@router.get("/presets/{preset_id}/active")
async def active_preset(request: Request, preset_id: PresetId) -> dict:
    """Reconcile saved presets against the device's current settings.

    ``active`` is ``null`` when the device runs a configuration no saved
    preset represents.
    """
    client, identity = _ready(request)
    presets = _presets(request)
    try:
        device_settings = await fetch_device_settings(
            client, identity.inverter_serial, preset_id
        )
    except ApiError as exc:
        raise _http_error(exc) from exc

    active = find_active_preset(presets, device_settings, preset_id)
    return {
        "preset_id": preset_id.value,
        "active": active.model_dump(mode="json") if active else None,
        "device_settings": device_settings.model_dump(mode="json"),
    }


@router.post("/presets/{preset_id}/activate")
async def activate(
    request: Request,
    preset_id: PresetId,
    body: Annotated[ActivateRequest, Body()],
) -> dict:
    """Write a saved preset to the device, then read back and reconcile.

    ``confirmed`` is true only when the re-fetched device settings match
    the preset that was sent.

    Raises:
        HTTPException: 404 if no saved preset has that id for *preset_id*.
    """
    client, identity = _ready(request)
    presets = _presets(request)
    preset = next(
        (p for p in presets if p.id == body.id and p.preset_id is preset_id), None
    )
    if preset is None:
        raise HTTPException(
            status_code=404,
            detail=f"No saved {preset_id.value} preset with id '{body.id}'.",
        )

    try:
        await activate_preset(client, identity.inverter_serial, preset)
        active = await confirm_active_preset(
            client, identity.inverter_serial, presets, preset_id
        )
    except ApiError as exc:
        raise _http_error(exc) from exc

    confirmed = active is not None and active.id == preset.id
    if not confirmed:
        logger.warning(
            "Preset %r sent but device does not report it yet", preset.name
        )
    return {
        "confirmed": confirmed,
        "active": active.model_dump(mode="json") if active else None,
    }


@router.put("/credentials")
async def credentials(
    request: Request,
    body: Annotated[CredentialsRequest, Body()],
) -> dict:
    """Restart the session with a new API key and return the new identity.

    The key is checked against the cloud first; a rejected key leaves the
    current session running.
    """
    session = _session(request)
    try:
        async with session.new_client(body.api_key) as candidate:
            accepted = await validate_api_key(candidate)
    except HeliosError as exc:
        raise _http_error(exc) from exc
    if not accepted:
        logger.warning("New API key rejected by the cloud; keeping current session")
        raise HTTPException(status_code=401, detail="API key rejected.")

    try:
        identity = await session.start(body.api_key)
    except HeliosError as exc:
        raise _http_error(exc) from exc
    if identity is None:
        raise HTTPException(status_code=409, detail="Superseded by a newer API key.")
    return {"identity": identity.model_dump(mode="json")}


@router.get("/account")
async def account(request: Request) -> dict:
    """Return the account the current API key belongs to."""
    client = _session(request).client
    if client is None:
        raise HTTPException(status_code=503, detail="No API key configured yet.")
    try:
        details = await get_account_details(client)
    except ApiError as exc:
        raise _http_error(exc) from exc
    return details.model_dump(mode="json")


@router.get("/history")
async def history(
    request: Request,
    start: Annotated[date, Query()],
    end: Annotated[date, Query()],
    grouping: Annotated[int, Query(ge=0, le=4)] = EnergyFlowGrouping.DAILY.value,
) -> dict:
    """Energy flows between *start* and *end*, reduced to per-window totals.

    Raises:
        HTTPException: 422 if *end* is before *start*.
    """
    if end < start:
        raise HTTPException(status_code=422, detail="end must not be before start.")
    client, identity = _ready(request)
    window = EnergyFlowGrouping(grouping)
    try:
        entries = await get_energy_flows(
            client,
            identity.inverter_serial,
            start.isoformat(),
            end.isoformat(),
            window,
        )
    except ApiError as exc:
        raise _http_error(exc) from exc
    return {
        "grouping": window.name.lower(),
        "days": [
            summary.model_dump(mode="json")
            for summary in summarize_energy_flows(entries)
        ],
    }


# ---------------------------------------------------------------------------
# EV charger control
# ---------------------------------------------------------------------------


@router.post("/ev-charger/start")
async def ev_start(request: Request) -> dict:
    """Send the start-charge command; ``success`` is the charger's own answer."""
    client, ev_charger_id = _ev_ready(request)
    try:
        result = await ev_control.start_charge(client, ev_charger_id)
    except ApiError as exc:
        raise _http_error(exc) from exc
    return result.model_dump(mode="json")


@router.post("/ev-charger/stop")
async def ev_stop(request: Request) -> dict:
    client, ev_charger_id = _ev_ready(request)
    try:
        result = await ev_control.stop_charge(client, ev_charger_id)
    except ApiError as exc:
        raise _http_error(exc) from exc
    return result.model_dump(mode="json")


@router.get("/ev-charger/settings")
async def ev_settings(request: Request) -> dict:
    """Current charge power limit, plug-and-go flag and session energy limit."""
    client, ev_charger_id = _ev_ready(request)
    settings = await ev_control.get_command_settings(client, ev_charger_id)
    return settings.model_dump(mode="json")


@router.put("/ev-charger/charge-power-limit")
async def ev_charge_power_limit(
    request: Request,
    body: Annotated[ChargePowerLimitRequest, Body()],
) -> dict:
    client, ev_charger_id = _ev_ready(request)
    try:
        result = await ev_control.set_charge_power_limit(
            client, ev_charger_id, body.limit
        )
    except ApiError as exc:
        raise _http_error(exc) from exc
    return result.model_dump(mode="json")


@router.put("/ev-charger/plug-and-go")
async def ev_plug_and_go(
    request: Request,
    body: Annotated[PlugAndGoRequest, Body()],
) -> dict:
    client, ev_charger_id = _ev_ready(request)
    try:
        result = await ev_control.set_plug_and_go(client, ev_charger_id, body.enabled)
    except ApiError as exc:
        raise _http_error(exc) from exc
    return result.model_dump(mode="json")


@router.put("/ev-charger/session-energy-limit")
async def ev_session_energy_limit(
    request: Request,
    body: Annotated[SessionEnergyLimitRequest, Body()],
) -> dict:
    client, ev_charger_id = _ev_ready(request)
    try:
        result = await ev_control.set_session_energy_limit(
            client, ev_charger_id, body.limit
        )
    except ApiError as exc:
        raise _http_error(exc) from exc
    return result.model_dump(mode="json")


@router.get("/ev-charger/sessions")
async def ev_sessions(
    request: Request,
    start: Annotated[date | None, Query()] = None,
    end: Annotated[date | None, Query()] = None,
    pages: Annotated[int | None, Query(ge=1)] = None,
) -> dict:
    """Charging sessions, newest first, optionally limited to whole days."""
    client, ev_charger_id = _ev_ready(request)
    try:
        sessions = await ev_control.list_charging_sessions(
            client, ev_charger_id, start, end, max_pages=pages
        )
    except ApiError as exc:
        raise _http_error(exc) from exc
    return {"sessions": [s.model_dump(mode="json") for s in sessions]}


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(
    session: Session,
    *,
    presets_path: str | Path,
    dashboard_token: str = "",
) -> FastAPI:
    """Build the dashboard FastAPI application around an existing session.

    Args:
        session: Session whose state and client the routes read.
        presets_path: JSON file of locally saved presets.
        dashboard_token: Bearer token for ``/v1`` routes; empty disables auth.

    Returns:
        FastAPI: The configured application.
    """
    app = FastAPI(
        title="Helios Dashboard API",
        description="Real-time solar, battery and EV telemetry.",
        version="0.1.0",
    )
    app.state.session = session
    app.state.presets_path = Path(presets_path)
    app.state.auth = DashboardAuth(dashboard_token)

    app.include_router(health_router)
    app.include_router(router)
    return app
