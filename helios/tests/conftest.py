"""
Shared test fixtures for Helios tests.

Provides:
- Environment isolation: all Helios env vars are removed and the working
  directory moves to tmp_path so no .env file is picked up by BaseSettings.
- ``cloud``: an in-memory fake of the GivEnergy cloud API served through
  ``httpx.MockTransport``; tests register canned responses per path.
- ``client``: a CloudClient wired to ``cloud``.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from helios.src.client import DEFAULT_API_BASE_URL, CloudClient

# All HeliosSettings environment variable names, used for cleanup.
_ALL_HELIOS_ENV_VARS = (
    "GIVENERGY_API_KEY",
    "API_BASE_URL",
    "POLL_INTERVAL_S",
    "PRESETS_PATH",
    "HEALTH_PATH",
    "DASHBOARD_ENABLED",
    "DASHBOARD_HOST",
    "DASHBOARD_PORT",
    "DASHBOARD_TOKEN",
    "LOG_LEVEL",
)

Responder = Callable[[httpx.Request], httpx.Response]


class FakeCloud:
    """Route table for ``httpx.MockTransport`` keyed by method and path.

    Paths are relative to the API base and include the query string, e.g.
    ``"/communication-device?page=2"``.  Unregistered paths answer 404.
    """

    def __init__(self, base_url: str = DEFAULT_API_BASE_URL) -> None:
        self.base_url = base_url
        self.routes: dict[tuple[str, str], Responder] = {}
        self.requests: list[httpx.Request] = []

    def add(
        self,
        method: str,
        path: str,
        *,
        status: int = 200,
        json_body: Any = None,
        responder: Responder | None = None,
    ) -> None:
        """Register a canned response (or a responder callable) for a route."""
        if responder is None:

            def responder(request: httpx.Request) -> httpx.Response:
                if json_body is None:
                    return httpx.Response(status)
                return httpx.Response(status, json=json_body)

        self.routes[(method.upper(), path)] = responder

    def get(self, path: str, json_body: Any = None, *, status: int = 200) -> None:
        self.add("GET", path, status=status, json_body=json_body)

    def post(self, path: str, json_body: Any = None, *, status: int = 200) -> None:
        self.add("POST", path, status=status, json_body=json_body)

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        """Requests received for one route, in arrival order."""
        return [
            r for r in self.requests if r.method == method and self._path(r) == path
        ]

    def body(self, request: httpx.Request) -> Any:
        return json.loads(request.content)

    def _path(self, request: httpx.Request) -> str:
        return str(request.url)[len(self.base_url) :]

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        responder = self.routes.get((request.method, self._path(request)))
        if responder is None:
            return httpx.Response(404, json={"error": "Not Found"})
        return responder(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)


@pytest.fixture(autouse=True)
def _clean_helios_env(monkeypatch: pytest.MonkeyPatch, tmp_path: str) -> None:
    """Remove all Helios env vars and isolate from .env files before each test."""
    for var in _ALL_HELIOS_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def cloud() -> FakeCloud:
    """Empty fake cloud API; tests register the routes they need."""
    return FakeCloud()


@pytest.fixture()
def client(cloud: FakeCloud) -> CloudClient:
    """CloudClient routed to the fake cloud API."""
    return CloudClient("test-api-key", transport=cloud.transport)


@pytest.fixture()
def env_vars_required_only(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Set only the required environment variables (no optional ones)."""
    env = {"GIVENERGY_API_KEY": "ge-key-123"}
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return env


@pytest.fixture()
def env_vars_full(monkeypatch: pytest.MonkeyPatch, tmp_path: Any) -> dict[str, str]:
    """Set all required and optional environment variables for HeliosSettings."""
    env = {
        "GIVENERGY_API_KEY": "ge-key-123",
        "API_BASE_URL": "https://api.example.com/v1/",
        "POLL_INTERVAL_S": "30",
        "PRESETS_PATH": str(tmp_path / "presets.json"),
        "HEALTH_PATH": str(tmp_path / "health.json"),
        "DASHBOARD_ENABLED": "false",
        "DASHBOARD_HOST": "0.0.0.0",
        "DASHBOARD_PORT": "9090",
        "DASHBOARD_TOKEN": "dash-secret",
        "LOG_LEVEL": "debug",
    }
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return env
