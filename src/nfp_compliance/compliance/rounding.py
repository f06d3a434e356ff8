"""
Rounding Validator
===================
FDA rounding rules for serving-size quantities and declared nutrient values.

21 CFR 101.9(b)(7) / (b)(8) — serving size in g/mL and servings per container:
    value < 2        → nearest 0.1
    2 <= value < 5   → nearest 0.5
    value >= 5       → nearest whole unit

A value is "properly rounded" when it is within 0.01 of its rounded form,
which absorbs floating-point noise. Rounding is half-up (4.25 → 4.5), as on
a printed label, never banker's rounding.

21 CFR 101.9(c) — declared nutrient values (calories, fat, sodium, ...),
used when rendering the panel as it would be printed.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Mapping, Sequence

from nfp_compliance.compliance.models import RoundingBand
from nfp_compliance.utils.helpers import format_number

ROUNDING_TOLERANCE = 0.01

SERVING_ROUNDING_BANDS = (
    RoundingBand(lower=0, upper=2, increment=0.1),
    RoundingBand(lower=2, upper=5, increment=0.5, prefix="about"),
    RoundingBand(lower=5, upper=None, increment=1, prefix="about"),
)


@dataclass(frozen=True)
class RoundingCheck:
    is_valid: bool
    suggested_value: float


@dataclass(frozen=True)
class ServingsRoundingCheck:
    is_valid: bool
    suggested_value: float
    suggested_display: str


def round_half_up(value: float, increment: float) -> float:
    """Round to the nearest multiple of `increment`, halves away from zero."""
    step = Decimal(str(increment))
    steps = (Decimal(repr(float(value))) / step).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    return float(steps * step)


def _band_for(value: float, bands: Sequence[RoundingBand]) -> RoundingBand:
    for band in bands:
        if band.upper is None or value < band.upper:
            return band
    return bands[-1]


def round_serving_quantity(value: float, bands: Sequence[RoundingBand] = SERVING_ROUNDING_BANDS) -> float:
    """Round a gram/mL quantity or servings count to its 101.9(b) increment."""
    return round_half_up(value, _band_for(value, bands).increment)


def validate_gram_rounding(
    value: float,
    bands: Sequence[RoundingBand] = SERVING_ROUNDING_BANDS,
) -> RoundingCheck:
    """Check a serving size in g/mL against 21 CFR 101.9(b)(7). Never raises."""
    rounded = round_serving_quantity(value, bands)
    return RoundingCheck(
        is_valid=abs(value - rounded) < ROUNDING_TOLERANCE,
        suggested_value=rounded,
    )


def validate_servings_per_container_rounding(
    value: float,
    bands: Sequence[RoundingBand] = SERVING_ROUNDING_BANDS,
) -> ServingsRoundingCheck:
    """
    Check servings per container against 21 CFR 101.9(b)(8).

    The suggested display gets the band's prefix when the declared count
    had to be rounded, which for the FDA bands means "about" from 2
    servings up ("about 4.5", "about 8").
    """
    band = _band_for(value, bands)
    rounded = round_half_up(value, band.increment)
    is_valid = abs(value - rounded) < ROUNDING_TOLERANCE
    prefix = f"{band.prefix} " if band.prefix and not is_valid else ""
    return ServingsRoundingCheck(
        is_valid=is_valid,
        suggested_value=rounded,
        suggested_display=f"{prefix}{format_number(rounded)}",
    )


# ── Declared nutrient values (21 CFR 101.9(c)) ─────────


def round_calories(value: float) -> float:
    """<5 → 0; 5-50 → nearest 5; >50 → nearest 10."""
    if value < 5:
        return 0.0
    if value <= 50:
        return round_half_up(value, 5)
    return round_half_up(value, 10)


def round_fat(value: float) -> float:
    """Total, saturated and trans fat: <0.5 → 0; <5 → nearest 0.5; else nearest 1."""
    if value < 0.5:
        return 0.0
    if value < 5:
        return round_half_up(value, 0.5)
    return round_half_up(value, 1)


def round_cholesterol(value: float) -> float | str:
    """<2 → 0; 2-5 → "less than 5"; >5 → nearest 5."""
    if value < 2:
        return 0.0
    if value <= 5:
        return "less than 5"
    return round_half_up(value, 5)


def round_sodium(value: float) -> float:
    """<5 → 0; 5-140 → nearest 5; >140 → nearest 10."""
    if value < 5:
        return 0.0
    if value <= 140:
        return round_half_up(value, 5)
    return round_half_up(value, 10)


def round_carbs(value: float) -> float:
    """Carbohydrate, fiber, sugars and protein: <0.5 → 0; else nearest 1."""
    if value < 0.5:
        return 0.0
    return round_half_up(value, 1)


def round_vitamin_d(value: float) -> float:
    return round_half_up(value, 0.1)


def round_calcium_iron(value: float) -> float:
    return round_half_up(value, 1)


def round_potassium(value: float) -> float:
    return round_half_up(value, 5)


NUTRIENT_ROUNDERS: Mapping[str, Callable[[float], float | str]] = {
    "calories": round_calories,
    "total_fat": round_fat,
    "saturated_fat": round_fat,
    "trans_fat": round_fat,
    "cholesterol": round_cholesterol,
    "sodium": round_sodium,
    "total_carbohydrates": round_carbs,
    "dietary_fiber": round_carbs,
    "total_sugars": round_carbs,
    "added_sugars": round_carbs,
    "protein": round_carbs,
    "vitamin_d": round_vitamin_d,
    "calcium": round_calcium_iron,
    "iron": round_calcium_iron,
    "potassium": round_potassium,
}


def round_nutrient(nutrient: str, value: float) -> float | str:
    """Round one declared value; nutrients without an FDA rule are returned unchanged."""
    rounder = NUTRIENT_ROUNDERS.get(nutrient)
    return rounder(value) if rounder else value


def apply_fda_rounding(nutrition: Mapping[str, float]) -> dict[str, float | str]:
    """Round every value of a canonical nutrient map for display."""
    return {name: round_nutrient(name, value) for name, value in nutrition.items()}
