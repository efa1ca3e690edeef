"""
Pydantic models for device identity, telemetry snapshots and presets.

Two families live here:

- **Canonical models** produced by the engine and consumed by the view layer
  (``DeviceIdentity``, ``TelemetrySnapshot`` and its parts, ``NamedPreset``).
  Snapshot-side models are frozen: a snapshot is superseded wholesale by the
  next poll, never mutated.
- **Raw payload models** (``Raw*``) describing the subset of each cloud API
  response the engine reads.  Unknown keys are ignored; missing readings are
  ``None`` and defaulted by the normalizer.

CHANGELOG:
- 2026-10-18: Initial creation
- 2026-10-19: EV charger command and charging-session models

TODO:
- None
"""

from __future__ import annotations

import re
from datetime import date, datetime
from enum import IntEnum, StrEnum
from typing import Any, Literal

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
)

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class GridFlow(StrEnum):
    """Direction of grid power after applying the idle deadband."""

    IMPORTING = "importing"
    EXPORTING = "exporting"
    IDLE = "idle"


class BatteryFlow(StrEnum):
    """Direction of the effective battery flow."""

    CHARGING = "charging"
    DISCHARGING = "discharging"
    IDLE = "idle"


class EvStatus(StrEnum):
    """Closed semantic set for EV charger status.

    ``UNRECOGNIZED`` carries the vendor string verbatim on
    :class:`EvChargerStatus` so new vendor states remain visible.
    """

    DISCONNECTED = "disconnected"
    PREPARING = "preparing"
    CHARGING = "charging"
    PAUSED_CHARGER = "paused_charger"
    PAUSED_VEHICLE = "paused_vehicle"
    FINISHING = "finishing"
    RESERVED = "reserved"
    UNAVAILABLE = "unavailable"
    FAULTED = "faulted"
    IDLE_CONNECTED = "idle_connected"
    UNKNOWN = "unknown"
    UNRECOGNIZED = "unrecognized"


EV_STATUS_LABELS: dict[EvStatus, str] = {
    EvStatus.DISCONNECTED: "Disconnected",
    EvStatus.PREPARING: "Preparing",
    EvStatus.CHARGING: "Charging",
    EvStatus.PAUSED_CHARGER: "Paused (Charger)",
    EvStatus.PAUSED_VEHICLE: "Paused (Vehicle)",
    EvStatus.FINISHING: "Finishing",
    EvStatus.RESERVED: "Reserved",
    EvStatus.UNAVAILABLE: "Unavailable",
    EvStatus.FAULTED: "Faulted",
    EvStatus.IDLE_CONNECTED: "Idle / Connected",
    EvStatus.UNKNOWN: "Status Unknown",
}
"""Display label per status; UNRECOGNIZED displays its raw string."""


class PresetId(StrEnum):
    """Named operating modes that can be read from and written to the inverter."""

    TIMED_CHARGE = "timed-charge"
    TIMED_EXPORT = "timed-export"
    TIMED_DISCHARGE = "timed-discharge"


class EnergyFlowGrouping(IntEnum):
    """Aggregation window accepted by the energy-flows endpoint."""

    HALF_HOURLY = 0
    DAILY = 1
    MONTHLY = 2
    YEARLY = 3
    TOTAL = 4


# ---------------------------------------------------------------------------
# Canonical models: identity and snapshot
# ---------------------------------------------------------------------------


class DeviceIdentity(BaseModel):
    """Identifiers resolved once per API key.

    Attributes:
        inverter_serial: Serial of the primary inverter; key for every
            per-device call.
        ev_charger_id: UUID of the first registered EV charger, if any.
        battery_capacity_kwh: Rated battery capacity, ``None`` when the
            device info does not allow computing it.
    """

    model_config = ConfigDict(frozen=True)

    inverter_serial: str = Field(min_length=1)
    ev_charger_id: str | None = None
    battery_capacity_kwh: float | None = None


class Power(BaseModel):
    """A power magnitude in the unit chosen by its size."""

    model_config = ConfigDict(frozen=True)

    value: float
    unit: Literal["W", "kW"]


class BatteryState(BaseModel):
    """Battery reading with the reported, inferred and effective flows kept apart.

    Attributes:
        percentage: State of charge, 0-100.
        reported_power_w: Battery power as reported by the device
            (negative = charging).
        inferred_power_w: Flow derived from the energy balance, or ``None``
            when it could not be computed.
        power_w: Effective flow after the inference heuristic
            (negative = charging, positive = discharging).
        power: Magnitude of ``power_w`` in display units.
        flow: Direction of ``power_w``.
        energy_kwh: Stored energy, when capacity is known.
        capacity_kwh: Rated capacity, when known.
    """

    model_config = ConfigDict(frozen=True)

    percentage: float
    reported_power_w: float
    inferred_power_w: float | None
    power_w: float
    power: Power
    flow: BatteryFlow
    energy_kwh: float | None = None
    capacity_kwh: float | None = None


class GridState(BaseModel):
    """Grid power magnitude plus direction."""

    model_config = ConfigDict(frozen=True)

    power_w: float = Field(ge=0)
    power: Power
    flow: GridFlow


class EvChargerStatus(BaseModel):
    """Semantic EV status plus the vendor string it was mapped from."""

    model_config = ConfigDict(frozen=True)

    kind: EvStatus
    raw: str | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def label(self) -> str:
        """Human-readable status; the vendor string for unrecognized states."""
        if self.kind is EvStatus.UNRECOGNIZED:
            return self.raw or ""
        return EV_STATUS_LABELS[self.kind]


class EvChargerState(BaseModel):
    """EV charger reading.

    ``power_w`` is ``None`` when no live power figure exists (no charger,
    basic-info fallback, or no active charge session).
    """

    model_config = ConfigDict(frozen=True)

    power_w: float | None = None
    power: Power | None = None
    status: EvChargerStatus
    daily_total_kwh: float | None = None
    session_kwh_delivered: float | None = None

    @property
    def power_available(self) -> bool:
        return self.power_w is not None


class EnergyTotals(BaseModel):
    """Cumulative energy for the current day, in kWh."""

    model_config = ConfigDict(frozen=True)

    solar: float | None = None
    grid_import: float | None = None
    grid_export: float | None = None
    battery_charge: float | None = None
    battery_discharge: float | None = None
    consumption: float | None = None
    ac_charge: float | None = None


class TelemetrySnapshot(BaseModel):
    """One coherent real-time view of the installation.

    All instantaneous power fields come from a single system-data response.
    The ``raw_*`` fields keep the device readings the display values were
    derived from.
    """

    model_config = ConfigDict(frozen=True)

    timestamp_ms: int
    home_consumption: Power
    solar_generation: Power
    battery: BatteryState
    grid: GridState
    ev_charger: EvChargerState
    daily_totals: EnergyTotals | None = None
    raw_home_consumption_w: float
    raw_solar_w: float
    raw_grid_w: float


# ---------------------------------------------------------------------------
# Canonical models: presets
# ---------------------------------------------------------------------------

_HHMM_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")
_SHORT_HOUR_RE = re.compile(r"^\d:[0-5]\d$")


class Slot(BaseModel):
    """One time window of a preset.

    Accepts both the wire names (``start_time``) and the camelCase names
    used by local storage (``startTime``).
    """

    start_time: str = Field(validation_alias=AliasChoices("start_time", "startTime"))
    end_time: str = Field(validation_alias=AliasChoices("end_time", "endTime"))
    percent_limit: float | None = Field(
        default=None,
        ge=0,
        le=100,
        validation_alias=AliasChoices("percent_limit", "percentLimit"),
    )

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def _zero_padded_hhmm(cls, v: Any) -> Any:
        """Pad single-digit hours so lexicographic order is time order."""
        if isinstance(v, str):
            v = v.strip()
            if _SHORT_HOUR_RE.match(v):
                v = "0" + v
            if not _HHMM_RE.match(v):
                raise ValueError(f"time must be HH:MM, got {v!r}")
        return v


class PresetSettings(BaseModel):
    """Enabled flag plus ordered slots for one preset."""

    enabled: bool = False
    slots: list[Slot] = Field(default_factory=list)


class NamedPreset(BaseModel):
    """A user-authored preset owned by the local storage collaborator."""

    id: str
    preset_id: PresetId = Field(validation_alias=AliasChoices("preset_id", "presetId"))
    name: str
    settings: PresetSettings
    created_at: datetime | None = Field(
        default=None, validation_alias=AliasChoices("created_at", "createdAt")
    )
    updated_at: datetime | None = Field(
        default=None, validation_alias=AliasChoices("updated_at", "updatedAt")
    )


# ---------------------------------------------------------------------------
# Raw payload models
# ---------------------------------------------------------------------------


class RawInverter(BaseModel):
    serial: str | None = None
    firmware_version: Any = None
    info: dict[str, Any] | None = None


class RawCommunicationDevice(BaseModel):
    uuid: str | None = None
    serial_number: str | None = None
    type: str | None = None
    inverter: RawInverter | None = None


class RawEvCharger(BaseModel):
    uuid: str | None = None
    alias: str | None = None
    serial_number: str | None = None
    type: str | None = None
    status: str | None = None


class RawSolar(BaseModel):
    power: float | None = None
    arrays: list[dict[str, Any]] = Field(default_factory=list)


class RawGrid(BaseModel):
    power: float | None = None
    voltage: float | None = None
    current: float | None = None
    frequency: float | None = None


class RawBattery(BaseModel):
    percent: float | None = None
    power: float | None = None
    temperature: float | None = None


class RawSystemData(BaseModel):
    """``/inverter/{serial}/system-data/latest`` payload.

    Grid power is positive for export, negative for import.  Battery power
    is negative while charging.
    """

    time: str | None = None
    solar: RawSolar | None = None
    grid: RawGrid | None = None
    battery: RawBattery | None = None
    consumption: float | None = None

    @field_validator("consumption", mode="before")
    @classmethod
    def _unwrap_consumption(cls, v: Any) -> Any:
        # Some firmware nests the reading as {"power": W}.
        if isinstance(v, dict):
            return v.get("power")
        return v


class RawChargeSession(BaseModel):
    status: str | None = None
    power: float | None = None
    kwh_delivered: float | None = None
    start_time: str | None = None
    end_time: str | None = None


class RawEvChargerStatus(BaseModel):
    """``/ev-charger/{uuid}/status`` payload."""

    mode: str | None = None
    status: str | None = None
    charge_session: RawChargeSession | None = None
    vehicle_connected: bool | None = None


class RawMeterGrid(BaseModel):
    import_kwh: float | None = Field(default=None, alias="import")
    export_kwh: float | None = Field(default=None, alias="export")


class RawMeterBattery(BaseModel):
    charge: float | None = None
    discharge: float | None = None


class RawMeterToday(BaseModel):
    solar: float | None = None
    grid: RawMeterGrid | None = None
    battery: RawMeterBattery | None = None
    consumption: float | None = None
    ac_charge: float | None = None


class RawMeterData(BaseModel):
    """``/inverter/{serial}/meter-data/latest`` payload."""

    time: str | None = None
    today: RawMeterToday | None = None


# ---------------------------------------------------------------------------
# Account and history
# ---------------------------------------------------------------------------


class AccountData(BaseModel):
    """``/account`` payload; extra keys are kept as-is."""

    model_config = ConfigDict(extra="allow")

    id: int | None = None
    name: str | None = None
    role: str | None = None
    email: str | None = None


class EnergyFlowEntry(BaseModel):
    """One aggregation window returned by the energy-flows endpoint.

    ``data`` maps flow type id ("0".."6") to kWh.
    """

    start_time: str
    end_time: str
    data: dict[str, float] = Field(default_factory=dict)


class DailyEnergySummary(BaseModel):
    """Per-window totals derived from an :class:`EnergyFlowEntry`."""

    day: date
    solar_generation: float
    grid_import: float
    grid_export: float
    battery_charge: float
    battery_discharge: float
    consumption: float
    solar_to_home: float
    solar_to_battery: float
    solar_to_grid: float
    battery_to_home: float
    grid_to_home: float


# ---------------------------------------------------------------------------
# EV charger control
# ---------------------------------------------------------------------------


class EvCommandResult(BaseModel):
    """Outcome of an EV charger command as acknowledged by the cloud.

    ``success`` reflects the API's own ``data.success`` flag; a 2xx without
    it means the command was sent but not confirmed.
    """

    command: str
    success: bool = False
    message: str | None = None


class EvCommandLimit(BaseModel):
    """Current value and allowed range of a numeric charger command."""

    value: float | None = None
    unit: str | None = None
    min: float | None = None
    max: float | None = None


class EvCommandSettings(BaseModel):
    """Current values of the adjustable charger commands.

    Each field is ``None`` when the charger does not report it.
    """

    charge_power_limit: EvCommandLimit | None = None
    plug_and_go: bool | None = None
    session_energy_limit: EvCommandLimit | None = None


class ChargingSession(BaseModel):
    """One past or ongoing charge session; ``finished_at`` is None while ongoing."""

    id: int | str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    kwh_delivered: float | None = None
    status: str | None = None
