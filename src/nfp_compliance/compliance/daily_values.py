"""
FDA 2020 Daily Values (21 CFR 101.9(c)(8)(iv) and (c)(9)) for %DV calculations.
"""

from __future__ import annotations

from types import MappingProxyType

from nfp_compliance.compliance.rounding import round_half_up

DAILY_VALUES = MappingProxyType({
    "total_fat": 78.0,              # g
    "saturated_fat": 20.0,          # g
    "cholesterol": 300.0,           # mg
    "sodium": 2300.0,               # mg
    "total_carbohydrates": 275.0,   # g
    "dietary_fiber": 28.0,          # g
    "added_sugars": 50.0,           # g
    "protein": 50.0,                # g
    "vitamin_d": 20.0,              # mcg
    "calcium": 1300.0,              # mg
    "iron": 18.0,                   # mg
    "potassium": 4700.0,            # mg
})

NUTRIENT_UNITS = MappingProxyType({
    "calories": "kcal",
    "cholesterol": "mg",
    "sodium": "mg",
    "calcium": "mg",
    "iron": "mg",
    "potassium": "mg",
    "vitamin_d": "mcg",
})


def has_daily_value(nutrient: str) -> bool:
    return nutrient in DAILY_VALUES


def daily_value_percent(nutrient: str, amount: float) -> int:
    """
    %DV for an amount of a nutrient, rounded half-up to a whole percent.

    Nutrients without a Daily Value, and non-positive amounts, give 0.
    """
    daily_value = DAILY_VALUES.get(nutrient)
    if not daily_value or amount <= 0:
        return 0
    return int(round_half_up(amount / daily_value * 100, 1))


def nutrient_unit(nutrient: str) -> str:
    """Display unit for a canonical nutrient name (grams unless listed)."""
    return NUTRIENT_UNITS.get(nutrient, "g")
