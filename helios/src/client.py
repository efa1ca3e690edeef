"""
Authenticated async client for the GivEnergy cloud API.

Wraps a single ``httpx.AsyncClient`` that injects the bearer credential and
JSON headers on every request, and translates transport and HTTP failures
into the typed errors of :mod:`helios.src.errors`.  The client does not
interpret payloads beyond decoding JSON and, for :meth:`CloudClient.get_data`,
validating the ``data`` envelope against a pydantic model.

No retries are performed here: one attempt per call site, the next poll
tick is the retry mechanism.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from helios.src.errors import (
    ApiAuthError,
    ApiConnectionError,
    ApiNotFoundError,
    ApiPayloadError,
    ApiResponseError,
)

logger = logging.getLogger(__name__)

DEFAULT_API_BASE_URL = "https://api.givenergy.cloud/v1"
"""Base URL of the cloud API; pagination links are only followed under it."""

ModelT = TypeVar("ModelT", bound=BaseModel)


def _error_detail(response: httpx.Response) -> str:
    """Best-effort extraction of an error message from a JSON error body."""
    try:
        body = response.json()
    except ValueError:
        return ""
    if isinstance(body, dict):
        detail = body.get("error") or body.get("message")
        if isinstance(detail, str):
            return detail
    return ""


class CloudClient:
    """Async client bound to one API key.

    Args:
        api_key: Bearer credential for the cloud API.
        base_url: API base, without trailing slash.
        transport: Optional httpx transport, used by tests to inject an
            ``httpx.MockTransport``.

    Usage::

        async with CloudClient(api_key="...") as client:
            payload = await client.get_json("/communication-device")
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_API_BASE_URL,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._http = httpx.AsyncClient(
            headers={
                "Authorization": f"Bearer {api_key}",
                "Accept": "application/json",
                "Content-Type": "application/json",
            },
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        """API base URL with no trailing slash."""
        return self._base_url

    async def __aenter__(self) -> CloudClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP connection pool."""
        await self._http.aclose()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get_json(self, path: str) -> Any:
        """GET *path* and return the decoded JSON body."""
        return await self._request("GET", path)

    async def post_json(self, path: str, body: Any) -> Any:
        """POST *body* as JSON to *path* and return the decoded JSON body.

        An empty 2xx body decodes to ``None``.
        """
        return await self._request("POST", path, json=body)

    async def get_data(self, path: str, model: type[ModelT]) -> ModelT:
        """GET *path* and validate its ``data`` envelope against *model*.

        Raises:
            ApiPayloadError: If the body has no ``data`` object or it does
                not validate.
        """
        payload = await self.get_json(path)
        if not isinstance(payload, dict) or "data" not in payload:
            raise ApiPayloadError(f"Response from {path} has no 'data' envelope")
        try:
            return model.model_validate(payload["data"])
        except ValidationError as exc:
            raise ApiPayloadError(
                f"Unexpected payload shape from {path}: {exc.error_count()} error(s)"
            ) from exc

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        if not path.startswith("/"):
            path = "/" + path

        try:
            response = await self._http.request(method, self._base_url + path, **kwargs)
        except httpx.TransportError as exc:
            logger.debug("%s %s failed at transport level: %s", method, path, exc)
            raise ApiConnectionError(f"Network error calling {path}: {exc}") from exc

        logger.debug("%s %s -> %d", method, path, response.status_code)

        status = response.status_code
        if status in (401, 403):
            raise ApiAuthError(status, _error_detail(response))
        if status == 404:
            raise ApiNotFoundError(path)
        if status >= 400:
            raise ApiResponseError(status, _error_detail(response))

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise ApiPayloadError(f"Response from {path} is not valid JSON") from exc
