"""
Helios telemetry engine for GivEnergy solar, battery and EV installations.

Discovers the primary inverter and EV charger behind a GivEnergy cloud API
key, polls and normalizes real-time energy data into canonical snapshots,
reconciles saved presets against the device's live settings and serves the
result to a dashboard API.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""
