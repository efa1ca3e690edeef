"""
Device resolver: identify the primary inverter, EV charger and battery capacity.

Walks the communication-device list to find the first record carrying an
inverter serial, derives the battery's rated capacity from the embedded
battery info, and independently walks the EV-charger list.  The EV traversal
runs as a concurrent task; its absence or failure is never fatal.

CHANGELOG:
- 2026-10-18: Initial creation
- 2026-10-19: Discovery diagnostics count every record, malformed ones too

TODO:
- None
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from helios.src.errors import ApiError, ApiNotFoundError, DeviceDiscoveryError
from helios.src.models import DeviceIdentity, RawCommunicationDevice, RawEvCharger
from helios.src.pagination import PagedCollection

if TYPE_CHECKING:
    from helios.src.client import CloudClient

logger = logging.getLogger(__name__)

COMMUNICATION_DEVICE_PATH = "/communication-device"
EV_CHARGER_PATH = "/ev-charger"


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


def _is_positive_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and value > 0
    )


def battery_capacity_kwh(info: Mapping[str, Any] | None) -> float | None:
    """Compute rated capacity (kWh) from inverter info.

    capacity = nominal_capacity (Ah) * nominal_voltage (V) / 1000, only when
    both values are numeric and strictly positive.

    Args:
        info: The ``inverter.info`` object of a communication device.

    Returns:
        Capacity in kWh, or ``None`` (never 0) when it cannot be computed.
    """
    battery = info.get("battery") if isinstance(info, Mapping) else None
    if not isinstance(battery, Mapping):
        logger.warning("Battery info missing from primary device; capacity unknown")
        return None

    capacity_ah = battery.get("nominal_capacity")
    voltage_v = battery.get("nominal_voltage")
    if not (_is_positive_number(capacity_ah) and _is_positive_number(voltage_v)):
        logger.warning(
            "Battery nominal capacity details missing or invalid "
            "(nominal_capacity=%r, nominal_voltage=%r); capacity unknown",
            capacity_ah,
            voltage_v,
        )
        return None

    return capacity_ah * voltage_v / 1000


def _record_serial(record: Any) -> str:
    """Dongle serial of a raw record, for diagnostics; malformed ones included."""
    serial = record.get("serial_number") if isinstance(record, Mapping) else None
    return serial if isinstance(serial, str) and serial else "unknown"


def _parse_devices(records: Sequence[Any]) -> list[RawCommunicationDevice]:
    devices: list[RawCommunicationDevice] = []
    for record in records:
        try:
            devices.append(RawCommunicationDevice.model_validate(record))
        except ValidationError:
            logger.warning("Skipping malformed communication device record: %r", record)
    return devices


def select_primary_device(
    devices: Sequence[RawCommunicationDevice],
) -> RawCommunicationDevice | None:
    """Return the first device whose inverter carries a non-empty serial."""
    for device in devices:
        if device.inverter is not None and device.inverter.serial:
            return device
    return None


# ---------------------------------------------------------------------------
# EV charger lookup (soft)
# ---------------------------------------------------------------------------


async def _find_ev_charger_id(client: CloudClient) -> str | None:
    """Walk the EV-charger list and return the first charger UUID.

    Never raises an :class:`ApiError`: 404 means no charger is registered,
    and any other failure is logged and treated as no charger.
    """
    try:
        records = await PagedCollection(client, EV_CHARGER_PATH).collect()
    except ApiNotFoundError:
        logger.info("EV charger list returned 404; no EV charger registered")
        return None
    except ApiError as exc:
        logger.warning(
            "Could not fetch EV charger list (optional), continuing without: %s", exc
        )
        return None

    for record in records:
        try:
            charger = RawEvCharger.model_validate(record)
        except ValidationError:
            logger.warning("Skipping malformed EV charger record: %r", record)
            continue
        if charger.uuid:
            return charger.uuid

    logger.info("No EV charger found for this account; EV data will be unavailable")
    return None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def resolve_device_identity(client: CloudClient) -> DeviceIdentity:
    """Resolve the account's device identifiers.

    The communication-device and EV-charger traversals run concurrently;
    pages within each traversal are sequential.

    Args:
        client: Client bound to the account's API key.

    Returns:
        The resolved :class:`DeviceIdentity`.

    Raises:
        DeviceDiscoveryError: No device carried an inverter serial.
        ApiError: The communication-device list could not be fetched;
            propagated unmodified.
    """
    ev_task = asyncio.create_task(_find_ev_charger_id(client))
    try:
        records = await PagedCollection(client, COMMUNICATION_DEVICE_PATH).collect()
        devices = _parse_devices(records)
        primary = select_primary_device(devices)
        if primary is None:
            error = DeviceDiscoveryError(
                devices_checked=len(records),
                device_serials=[_record_serial(r) for r in records],
            )
            logger.error("%s", error)
            raise error
    except BaseException:
        ev_task.cancel()
        raise

    assert primary.inverter is not None and primary.inverter.serial
    capacity = battery_capacity_kwh(primary.inverter.info)
    ev_charger_id = await ev_task

    identity = DeviceIdentity(
        inverter_serial=primary.inverter.serial,
        ev_charger_id=ev_charger_id,
        battery_capacity_kwh=capacity,
    )
    logger.info(
        "Resolved devices: inverter=%s, ev_charger=%s, battery_capacity_kwh=%s",
        identity.inverter_serial,
        identity.ev_charger_id,
        identity.battery_capacity_kwh,
    )
    return identity
