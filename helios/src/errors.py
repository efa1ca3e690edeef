"""
Error taxonomy for the Helios telemetry engine.

Every failure raised by this package derives from :class:`HeliosError`.
Remote-call failures derive from :class:`ApiError` so optional sub-fetches
can convert them into absent data with a single ``except ApiError``, while
:class:`ApiAuthError` stays distinguishable so the view layer can prompt for
new credentials instead of waiting for the next poll.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations


class HeliosError(Exception):
    """Base class for all engine errors."""


# ---------------------------------------------------------------------------
# Remote client errors
# ---------------------------------------------------------------------------


class ApiError(HeliosError):
    """A call to the cloud API did not produce usable data."""


class ApiConnectionError(ApiError):
    """Transport-level failure: network unreachable, timeout, protocol error."""


class ApiAuthError(ApiError):
    """The cloud API rejected the credentials (401/403)."""

    def __init__(self, status_code: int, detail: str = "") -> None:
        self.status_code = status_code
        self.detail = detail
        super().__init__(
            f"API rejected credentials ({status_code})"
            + (f": {detail}" if detail else "")
        )


class ApiNotFoundError(ApiError):
    """The endpoint returned 404.

    Expected for optional endpoints (EV charger list, detailed EV status).
    """

    def __init__(self, path: str) -> None:
        self.path = path
        self.status_code = 404
        super().__init__(f"API endpoint not found: {path}")


class ApiResponseError(ApiError):
    """Any other non-2xx HTTP status."""

    def __init__(self, status_code: int, detail: str = "") -> None:
        self.status_code = status_code
        self.detail = detail
        super().__init__(
            f"API request error: {status_code}. "
            f"Detail: {detail or 'No additional details from API.'}"
        )


class ApiPayloadError(ApiError):
    """A 2xx response whose body is not the expected JSON shape."""


# ---------------------------------------------------------------------------
# Engine errors
# ---------------------------------------------------------------------------


class DeviceDiscoveryError(HeliosError):
    """No communication device carried an inverter serial.

    Carries the diagnostic payload an operator needs: how many devices
    were examined and their own (dongle) serial numbers.
    """

    def __init__(self, devices_checked: int, device_serials: list[str]) -> None:
        self.devices_checked = devices_checked
        self.device_serials = list(device_serials)
        serials_text = ", ".join(self.device_serials) or "none"
        super().__init__(
            "Failed to identify a primary inverter. "
            f"Checked {devices_checked} communication device(s) "
            f"(dongle serials: [{serials_text}]). Ensure the API key has full "
            "permissions, the inverter is registered and online, and the "
            "dongle is connected to the inverter."
        )


class TelemetryFetchError(HeliosError):
    """The mandatory system-data call failed; no snapshot can be built."""


class PresetStoreError(HeliosError):
    """The local preset list could not be read."""
