"""
Preset reconciliation: which locally saved preset is the device running?

Settings are compared after normalization: ``enabled`` coerced to bool,
``percent_limit`` coerced to float, slots sorted by zero-padded ``start_time``.
Two settings are equal iff their canonical JSON forms are identical.  No
match is a valid state (the device runs a configuration no saved preset
represents), reported as ``None``.

Activation is a one-way write.  Callers confirm adoption by re-fetching the
device settings and reconciling again (:func:`confirm_active_preset`); a 2xx
from the write alone proves nothing.

CHANGELOG:
- 2026-10-18: Initial creation
- 2026-10-19: Unparseable limits and non-mapping slots no longer raise;
  bool strings follow pydantic's false spellings

TODO:
- None
"""

from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import TypeAdapter, ValidationError

from helios.src.errors import PresetStoreError
from helios.src.models import NamedPreset, PresetId, PresetSettings

if TYPE_CHECKING:
    from helios.src.client import CloudClient

logger = logging.getLogger(__name__)

_PRESET_LIST = TypeAdapter(list[NamedPreset])

# Same false spellings pydantic accepts for bool fields.
_FALSE_STRINGS = frozenset({"", "0", "false", "f", "no", "n", "off"})


# ---------------------------------------------------------------------------
# Normalization and equality (pure)
# ---------------------------------------------------------------------------


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() not in _FALSE_STRINGS
    return bool(value)


def _coerce_limit(value: Any) -> float | str | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        # Kept verbatim: never equal to a numeric limit.
        return str(value)


def _slot_field(slot: Mapping[str, Any], snake: str, camel: str) -> Any:
    return slot[snake] if snake in slot else slot.get(camel)


def _padded_time(value: Any) -> str:
    text = str(value).strip()
    if len(text) == 4 and text[1] == ":":
        text = "0" + text
    return text


def _normalize_slot(slot: Any) -> dict[str, Any]:
    if not isinstance(slot, Mapping):
        return {"invalid": repr(slot)}
    return {
        "start_time": _padded_time(_slot_field(slot, "start_time", "startTime")),
        "end_time": _padded_time(_slot_field(slot, "end_time", "endTime")),
        "percent_limit": _coerce_limit(_slot_field(slot, "percent_limit", "percentLimit")),
    }


def normalize_settings(settings: PresetSettings | Mapping[str, Any]) -> dict[str, Any]:
    """Return the canonical, JSON-serializable form of preset settings.

    Accepts a :class:`PresetSettings` or a raw mapping (wire or camelCase
    slot keys).  Values that cannot be coerced are kept in a form that
    compares unequal to any valid setting, so reconciliation reports no
    match instead of raising.
    """
    if isinstance(settings, PresetSettings):
        settings = settings.model_dump()

    raw_slots = settings.get("slots")
    if raw_slots is None:
        raw_slots = []
    elif not isinstance(raw_slots, (list, tuple)):
        raw_slots = [raw_slots]

    slots = [_normalize_slot(slot) for slot in raw_slots]
    slots.sort(key=lambda s: (s.get("start_time", ""), json.dumps(s, sort_keys=True)))

    return {"enabled": _coerce_bool(settings.get("enabled")), "slots": slots}


def _canonical_json(settings: PresetSettings | Mapping[str, Any]) -> str:
    return json.dumps(normalize_settings(settings), sort_keys=True)


def settings_fingerprint(settings: PresetSettings | Mapping[str, Any]) -> str:
    """Stable sha256 hex digest of the normalized settings."""
    return hashlib.sha256(_canonical_json(settings).encode("utf-8")).hexdigest()


def settings_equal(
    a: PresetSettings | Mapping[str, Any],
    b: PresetSettings | Mapping[str, Any],
) -> bool:
    """Semantic equality after normalization; slot order is irrelevant."""
    return _canonical_json(a) == _canonical_json(b)


def find_active_preset(
    local_presets: Iterable[NamedPreset],
    device_settings: PresetSettings | Mapping[str, Any],
    preset_id: PresetId | str,
) -> NamedPreset | None:
    """Return the first local preset of *preset_id* matching the device.

    Args:
        local_presets: Read-only snapshot of the stored presets.
        device_settings: Settings the device currently reports.
        preset_id: Mode to reconcile; presets of other modes are ignored.

    Returns:
        The matching preset, or ``None`` when no saved preset matches.
    """
    preset_id = PresetId(preset_id)
    device_json = _canonical_json(device_settings)
    for preset in local_presets:
        if preset.preset_id is not preset_id:
            continue
        if _canonical_json(preset.settings) == device_json:
            return preset
    return None


# ---------------------------------------------------------------------------
# Device I/O
# ---------------------------------------------------------------------------


def _preset_path(serial: str, preset_id: PresetId | str) -> str:
    return f"/inverter/{serial}/presets/{PresetId(preset_id).value}"


async def fetch_device_settings(
    client: CloudClient, serial: str, preset_id: PresetId | str
) -> PresetSettings:
    """Read the settings the device currently runs for *preset_id*."""
    return await client.get_data(_preset_path(serial, preset_id), PresetSettings)


async def activate_preset(client: CloudClient, serial: str, preset: NamedPreset) -> None:
    """Write *preset*'s settings to the device.

    Does not update any local state and does not assume success; follow
    with :func:`confirm_active_preset`.
    """
    body = preset.settings.model_dump(mode="json")
    await client.post_json(_preset_path(serial, preset.preset_id), body)
    logger.info(
        "Sent preset %r (%s) to inverter %s", preset.name, preset.preset_id, serial
    )


async def confirm_active_preset(
    client: CloudClient,
    serial: str,
    local_presets: Sequence[NamedPreset],
    preset_id: PresetId | str,
) -> NamedPreset | None:
    """Re-fetch the device settings and reconcile them against *local_presets*."""
    device_settings = await fetch_device_settings(client, serial, preset_id)
    return find_active_preset(local_presets, device_settings, preset_id)


# ---------------------------------------------------------------------------
# Storage boundary (read-only)
# ---------------------------------------------------------------------------


def load_presets(path: str | Path) -> list[NamedPreset]:
    """Read the locally stored preset list.

    A missing file is an empty list.

    Raises:
        PresetStoreError: The file is unreadable or not a valid preset list.
    """
    path = Path(path)
    if not path.exists():
        return []
    try:
        return _PRESET_LIST.validate_json(path.read_bytes())
    except (OSError, ValidationError) as exc:
        raise PresetStoreError(f"Could not load presets from {path}: {exc}") from exc
