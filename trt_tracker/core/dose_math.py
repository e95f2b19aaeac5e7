"""
Dose math: protocol configuration -> per-injection dose, volume and syringe units.

  mg_per_injection   = weekly_dose_mg / injections_per_week(protocol)
  volume_ml          = mg_per_injection / concentration_mg_per_ml
  units              = volume_ml * (syringe.total_units / syringe.volume_ml)

injections_per_week and days_between_injections are two independently
pinned lookup tables. They agree for every protocol (7 / days), but the
weekly table is the one that defines the declared weekly total.

Nothing in here raises on bad configuration: a zero concentration or
syringe volume yields inf/nan, and callers check configuration_errors()
or is_valid_calculation() before showing the numbers.
"""

import math
from dataclasses import dataclass

from trt_tracker.core.models import Protocol, ProtocolSettings, SyringeConfiguration


@dataclass(frozen=True)
class DoseCalculation:
    mg_per_injection: float
    volume_per_injection_ml: float
    units_per_injection: float
    injections_per_week: float


# ── Protocol tables ──────────────────────────────────────────────────

INJECTIONS_PER_WEEK = {
    Protocol.DAILY: 7.0,
    Protocol.E2D: 3.5,
    Protocol.E3D: 7.0 / 3.0,   # 2.333...
    Protocol.WEEKLY: 1.0,
}

DAYS_BETWEEN_INJECTIONS = {
    Protocol.DAILY: 1,
    Protocol.E2D: 2,
    Protocol.E3D: 3,
    Protocol.WEEKLY: 7,
}


def injections_per_week(protocol: Protocol) -> float:
    return INJECTIONS_PER_WEEK[Protocol(protocol)]


def days_between_injections(protocol: Protocol) -> int:
    return DAYS_BETWEEN_INJECTIONS[Protocol(protocol)]


def _div(numerator: float, denominator: float) -> float:
    """Float division with IEEE semantics instead of ZeroDivisionError."""
    if denominator == 0:
        if numerator == 0 or math.isnan(numerator):
            return math.nan
        return math.copysign(math.inf, numerator)
    return numerator / denominator


# ── Dose calculation ─────────────────────────────────────────────────

def calculate_dose(
    weekly_dose_mg: float,
    concentration_mg_per_ml: float,
    syringe: SyringeConfiguration,
    protocol: Protocol,
) -> DoseCalculation:
    """
    Split a weekly target into per-injection mg, mL and syringe units.

    Example: 700 mg/week, 200 mg/mL, 1 mL / 100 unit syringe, E2D
      -> 200 mg, 1.0 mL, 100 units, 3.5 injections/week
    """
    per_week = injections_per_week(protocol)
    mg = weekly_dose_mg / per_week
    volume = _div(mg, concentration_mg_per_ml)
    units = volume * syringe.units_per_ml
    return DoseCalculation(
        mg_per_injection=mg,
        volume_per_injection_ml=volume,
        units_per_injection=units,
        injections_per_week=per_week,
    )


def volume_from_fill(settings: ProtocolSettings) -> float:
    """Injection volume implied by how far the syringe is filled."""
    return settings.syringe.volume_ml * settings.syringe_fill_amount


def weekly_dose_mg(settings: ProtocolSettings) -> float:
    """
    Weekly total implied by a protocol entry's fill amount.
      weekly = syringe.volume * fill * concentration * injections_per_week
    """
    mg_per_injection = volume_from_fill(settings) * settings.concentration_mg_per_ml
    return mg_per_injection * injections_per_week(settings.protocol)


def is_valid_calculation(calc: DoseCalculation) -> bool:
    return all(
        math.isfinite(v)
        for v in (calc.mg_per_injection, calc.volume_per_injection_ml, calc.units_per_injection)
    )


def configuration_errors(settings: ProtocolSettings) -> list[str]:
    """Everything about a protocol entry that would make its doses meaningless."""
    errors = []
    if not settings.concentration_mg_per_ml > 0:
        errors.append(f"concentration must be > 0 (got {settings.concentration_mg_per_ml})")
    if not settings.syringe.volume_ml > 0:
        errors.append(f"syringe volume must be > 0 (got {settings.syringe.volume_ml})")
    if not settings.syringe.total_units > 0:
        errors.append(f"syringe units must be > 0 (got {settings.syringe.total_units})")
    if settings.syringe.dead_space_ml < 0:
        errors.append(f"syringe dead space must be >= 0 (got {settings.syringe.dead_space_ml})")
    if not 0 < settings.syringe_fill_amount <= 1:
        errors.append(f"syringe fill must be within (0, 1] (got {settings.syringe_fill_amount})")
    return errors


# ── Formatting ───────────────────────────────────────────────────────

def format_dose(value: float, unit: str) -> str:
    """
    mg -> 1 decimal, mL -> 3 decimals, units -> integer (half rounds up).
    Formatting goes through the binary float (0.9995 is stored just above it), so 0.9995 mL reads "1.000 mL".
    """
    if not math.isfinite(value):
        return f"-- {unit}"
    if unit == "mg":
        return f"{value:.1f} mg"
    if unit == "mL":
        return f"{value:.3f} mL"
    if unit == "units":
        return f"{math.floor(value + 0.5)} units"
    return f"{value} {unit}"
