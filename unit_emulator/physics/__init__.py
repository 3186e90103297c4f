"""Deterministic climate helpers for the simulated unit."""

from unit_emulator.physics.climate import (
    air_quality,
    clamp,
    extract_humidity,
    frost_protection_temperature,
    heater_position,
    heater_power,
    humidity_wave,
    outdoor_temperature,
    relax_toward,
    round_to,
)

__all__ = [
    "air_quality",
    "clamp",
    "extract_humidity",
    "frost_protection_temperature",
    "heater_position",
    "heater_power",
    "humidity_wave",
    "outdoor_temperature",
    "relax_toward",
    "round_to",
]
