"""
Climate helpers for the simulated ventilation unit.

The emulator does not model thermodynamics. These functions produce
plausible, deterministic values from the simulated clock so that repeated
runs (and batched versus stepwise time advances) agree. All temperatures are
in °C and all times in seconds.

Usage:
    from unit_emulator.physics.climate import relax_toward, outdoor_temperature

    supply = relax_toward(current=19.5, target=20.0, elapsed=60, time_constant=120)
    outdoor = outdoor_temperature(clock_seconds=3600, base=2.0, swing=3.0)
"""

import math

from unit_emulator.core.constants import (
    AIR_QUALITY_BASE,
    AIR_QUALITY_SWING,
    FROST_BASE_TEMP,
    FROST_KW_GAIN,
    HEATER_KW_PER_DEGREE,
    HEATER_MAX_KW,
    HUMIDITY_BASE_AWAY,
    HUMIDITY_BASE_OCCUPIED,
    HUMIDITY_SWING,
    SECONDS_PER_DAY,
    SECONDS_PER_HOUR,
)


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def round_to(value: float, digits: int) -> float:
    return round(value, digits)


def relax_toward(current: float, target: float, elapsed: float, time_constant: float) -> float:
    """
    First-order approach of ``current`` toward ``target``.

    Uses the closed form T(t) = target + (T0 - target) * exp(-t / tau), so
    two advances of a and b seconds land on the same value as one advance
    of a + b seconds.

    Args:
        current: Present value
        target: Value approached as elapsed grows
        elapsed: Seconds elapsed (non-negative)
        time_constant: Time constant tau in seconds

    Returns:
        Value after ``elapsed`` seconds

    Example:
        >>> round(relax_toward(10.0, 20.0, 120.0, 120.0), 3)
        16.321
    """
    if elapsed <= 0 or time_constant <= 0:
        return current if elapsed <= 0 else target
    return target + (current - target) * math.exp(-elapsed / time_constant)


def outdoor_temperature(clock_seconds: float, base: float, swing: float) -> float:
    """Diurnal outdoor temperature, equal to ``base`` at clock zero."""
    phase = 2 * math.pi * (clock_seconds / SECONDS_PER_DAY)
    return clamp(base + swing * math.sin(phase), -20.0, 35.0)


def humidity_wave(clock_seconds: float) -> float:
    """Slow humidity oscillation around zero (percent points)."""
    return math.sin(clock_seconds / SECONDS_PER_HOUR) * HUMIDITY_SWING


def extract_humidity(clock_seconds: float, away: bool) -> float:
    base = HUMIDITY_BASE_AWAY if away else HUMIDITY_BASE_OCCUPIED
    return clamp(base + humidity_wave(clock_seconds), 20.0, 80.0)


def air_quality(clock_seconds: float, away: bool) -> float:
    """CO2-equivalent reading in ppm, lower while the home is empty."""
    occupancy = -80.0 if away else 120.0
    swing = (humidity_wave(clock_seconds) / HUMIDITY_SWING) * AIR_QUALITY_SWING
    return clamp(AIR_QUALITY_BASE - 50.0 + occupancy + swing, 450.0, 1200.0)


def heater_power(setpoint: float, supply_temp: float) -> float:
    """Electric heater power (kW) needed to close the supply deficit."""
    delta = max(0.0, setpoint - supply_temp)
    return clamp(round_to(delta * HEATER_KW_PER_DEGREE, 3), 0.0, HEATER_MAX_KW)


def heater_position(power_kw: float) -> float:
    """Heater output as percent of its rated power."""
    return round_to(power_kw / HEATER_MAX_KW * 100.0, 3)


def frost_protection_temperature(power_kw: float) -> float:
    return FROST_BASE_TEMP + power_kw * FROST_KW_GAIN
