"""
Helios daemon main loop: telemetry polling plus the dashboard API.

Runs two concurrent asyncio activities:
1. **Poll loop**: every POLL_INTERVAL_S starts one poll tick as its own
   task.  A tick fetches a snapshot for the resolved device identity and
   applies it through the dashboard state's staleness guards, so a slow
   tick overlapping the next one can never regress the view.
2. **Dashboard API** (optional): a uvicorn server hosting the FastAPI app
   from :mod:`helios.src.api` in the same event loop.

Startup resolves the device identity once; a discovery failure or rejected
API key is fatal and the process exits with status 1.  Graceful shutdown on
SIGTERM/SIGINT sets a shared asyncio.Event; in-flight ticks are awaited and
the client is closed before exit.

Structured JSON logging is used for all events.  A HealthWriter tracks
last_poll_ts, last_snapshot_ts and consecutive_failures.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import contextlib
import hashlib
import json
import logging
import signal
import sys
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import uvicorn

from helios.src.api import create_app
from helios.src.config import HeliosSettings
from helios.src.errors import ApiAuthError, ApiError, DeviceDiscoveryError
from helios.src.health import HealthWriter
from helios.src.session import Session
from helios.src.state import DashboardState

if TYPE_CHECKING:
    from fastapi import FastAPI

    from helios.src.models import TelemetrySnapshot

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Structured JSON logging setup
# ---------------------------------------------------------------------------


class _JsonFormatter(logging.Formatter):
    """Minimal JSON log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry)


def configure_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging on the root logger.

    Args:
        level: Root log level name (DEBUG, INFO, WARNING or ERROR).
    """
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_JsonFormatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _masked_token(value: str | None) -> str:
    """Return a short non-reversible token fingerprint for diagnostics."""
    if not value:
        return "empty"
    digest = hashlib.sha256(value.encode("utf-8")).hexdigest()[:10]
    return f"len={len(value)} sha256={digest}"


# ---------------------------------------------------------------------------
# Startup config logging
# ---------------------------------------------------------------------------


def log_config_summary(settings: HeliosSettings) -> None:
    """Log a config summary at startup with secrets masked."""
    logger.info(
        "Helios daemon starting with config: "
        "api_base_url=%s, poll_interval_s=%s, presets_path=%s, "
        "health_path=%s, dashboard_enabled=%s, dashboard_host=%s, "
        "dashboard_port=%s, log_level=%s, api_key_masked=%s, "
        "dashboard_token_masked=%s",
        settings.api_base_url,
        settings.poll_interval_s,
        settings.presets_path,
        settings.health_path,
        settings.dashboard_enabled,
        settings.dashboard_host,
        settings.dashboard_port,
        settings.log_level,
        _masked_token(settings.givenergy_api_key),
        _masked_token(settings.dashboard_token),
    )


# ---------------------------------------------------------------------------
# Single-iteration functions (easily testable)
# ---------------------------------------------------------------------------


async def _poll_once(*, session: Session, health: HealthWriter | None) -> None:
    """Run one poll tick and update the health file.

    Catches all exceptions so that the caller's loop is never broken.  A
    ``None`` result (failed, skipped or superseded tick) counts as a failure
    for health.

    Args:
        session: The active session.
        health: HealthWriter instance, or None to skip health writes.
    """
    snapshot: TelemetrySnapshot | None = None
    try:
        snapshot = await session.poll_once()
    except Exception:
        logger.error("Poll cycle error", exc_info=True)

    if snapshot is not None:
        logger.debug(
            "Poll success: solar=%sW home=%sW grid=%s battery=%s%%",
            snapshot.raw_solar_w,
            snapshot.raw_home_consumption_w,
            snapshot.grid.flow,
            snapshot.battery.percentage,
        )

    if health is not None:
        try:
            health.record_poll()
            if snapshot is not None:
                health.record_snapshot()
            else:
                health.record_failure()
        except OSError:
            logger.warning("Failed to write health file", exc_info=True)


# ---------------------------------------------------------------------------
# Loop runners
# ---------------------------------------------------------------------------


async def _poll_loop(
    *,
    session: Session,
    poll_interval_s: float,
    shutdown_event: asyncio.Event,
    health: HealthWriter | None,
) -> None:
    """Start a poll tick every poll_interval_s until shutdown_event is set.

    Ticks run as separate tasks so a slow cloud response does not stretch
    the cadence.  Outstanding ticks are awaited before returning.

    Args:
        session: The active session.
        poll_interval_s: Seconds between tick starts.
        shutdown_event: Event to signal graceful shutdown.
        health: HealthWriter instance, or None to skip health writes.
    """
    logger.info("Poll loop started (interval=%ss)", poll_interval_s)
    in_flight: set[asyncio.Task[None]] = set()
    while not shutdown_event.is_set():
        task = asyncio.create_task(_poll_once(session=session, health=health))
        in_flight.add(task)
        task.add_done_callback(in_flight.discard)
        # Use wait with timeout so we can check shutdown between ticks
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(
                shutdown_event.wait(),
                timeout=poll_interval_s,
            )
    if in_flight:
        await asyncio.gather(*in_flight)
    logger.info("Poll loop stopped")


async def _serve_dashboard(
    *,
    app: FastAPI,
    host: str,
    port: int,
    shutdown_event: asyncio.Event,
) -> None:
    """Serve the dashboard API until shutdown_event is set or uvicorn exits.

    Either side stopping stops the other.
    """
    config = uvicorn.Config(app, host=host, port=port, log_level="warning")
    server = uvicorn.Server(config)
    # Signals are handled by the daemon's own shutdown event
    server.install_signal_handlers = lambda: None  # type: ignore[method-assign]

    serve_task = asyncio.create_task(server.serve())
    stop_task = asyncio.create_task(shutdown_event.wait())
    logger.info("Dashboard API listening on %s:%s", host, port)
    try:
        await asyncio.wait({serve_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        server.should_exit = True
        shutdown_event.set()
        stop_task.cancel()
    await serve_task
    logger.info("Dashboard API stopped")


# ---------------------------------------------------------------------------
# Concurrent runner with graceful shutdown
# ---------------------------------------------------------------------------


async def run(
    *,
    session: Session,
    settings: HeliosSettings,
    shutdown_event: asyncio.Event,
    health: HealthWriter | None = None,
) -> None:
    """Run the poll loop and, when enabled, the dashboard API until shutdown.

    Args:
        session: A started session with a resolved device identity.
        settings: Loaded daemon settings.
        shutdown_event: Event to signal graceful shutdown.
        health: HealthWriter instance, or None to skip health writes.
    """
    activities = [
        _poll_loop(
            session=session,
            poll_interval_s=settings.poll_interval_s,
            shutdown_event=shutdown_event,
            health=health,
        )
    ]
    if settings.dashboard_enabled:
        app = create_app(
            session,
            presets_path=settings.presets_path,
            dashboard_token=settings.dashboard_token,
        )
        activities.append(
            _serve_dashboard(
                app=app,
                host=settings.dashboard_host,
                port=settings.dashboard_port,
                shutdown_event=shutdown_event,
            )
        )

    await asyncio.gather(*activities)
    logger.info("Shutdown complete")


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


async def async_main() -> int:
    """Async entrypoint: load config, resolve devices, run until shutdown.

    Returns:
        int: Process exit status; 1 if startup device resolution failed.
    """
    settings = HeliosSettings()
    configure_logging(settings.log_level)
    log_config_summary(settings)

    session = Session(DashboardState(), base_url=settings.api_base_url)
    try:
        try:
            await session.start(settings.givenergy_api_key)
        except ApiAuthError as exc:
            logger.error("GivEnergy API key rejected: %s", exc)
            return 1
        except DeviceDiscoveryError as exc:
            logger.error("Device discovery failed: %s", exc)
            return 1
        except ApiError as exc:
            logger.error("Could not reach the GivEnergy cloud: %s", exc)
            return 1

        shutdown_event = asyncio.Event()
        _install_signal_handlers(shutdown_event)

        await run(
            session=session,
            settings=settings,
            shutdown_event=shutdown_event,
            health=HealthWriter(settings.health_path),
        )
        return 0
    finally:
        await session.close()


def _install_signal_handlers(shutdown_event: asyncio.Event) -> None:
    """Route SIGTERM/SIGINT to the shutdown event."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda: _handle_signal(shutdown_event),
        )


def _handle_signal(shutdown_event: asyncio.Event) -> None:
    """Handle SIGTERM/SIGINT by setting the shutdown event.

    Args:
        shutdown_event: The event to set for graceful shutdown.
    """
    logger.info("Received shutdown signal, initiating graceful shutdown")
    shutdown_event.set()


def main() -> None:
    """Synchronous entrypoint for the Helios daemon."""
    sys.exit(asyncio.run(async_main()))


if __name__ == "__main__":
    main()
