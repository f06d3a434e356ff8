"""Tests for FDA rounding rules and Daily Value percentages."""

import pytest


@pytest.mark.parametrize("value,increment,expected", [
    (4.25, 0.5, 4.5),
    (4.2, 0.5, 4.0),
    (1.95, 0.1, 2.0),
    (0.35, 0.1, 0.4),
    (12.5, 1, 13.0),
    (47.5, 5, 50.0),
])
def test_round_half_up(value, increment, expected):
    """Halves always round up, never to even."""
    from nfp_compliance.compliance.rounding import round_half_up

    assert round_half_up(value, increment) == pytest.approx(expected)


def test_gram_rounding_below_two():
    """Below 2 g the increment is 0.1."""
    from nfp_compliance.compliance.rounding import validate_gram_rounding

    check = validate_gram_rounding(1.95)
    assert not check.is_valid
    assert check.suggested_value == pytest.approx(2.0)

    assert validate_gram_rounding(1.5).is_valid


def test_gram_rounding_two_to_five():
    """From 2 to 5 g the increment is 0.5."""
    from nfp_compliance.compliance.rounding import validate_gram_rounding

    check = validate_gram_rounding(4.25)
    assert not check.is_valid
    assert check.suggested_value == pytest.approx(4.5)
    assert validate_gram_rounding(3.5).is_valid


def test_gram_rounding_whole_units():
    """5 g and above round to whole units."""
    from nfp_compliance.compliance.rounding import validate_gram_rounding

    five = validate_gram_rounding(5)
    assert five.is_valid
    assert five.suggested_value == 5

    check = validate_gram_rounding(28.4)
    assert not check.is_valid
    assert check.suggested_value == 28


def test_gram_rounding_tolerates_float_noise():
    """Values within 0.01 of the rounded form count as rounded."""
    from nfp_compliance.compliance.rounding import validate_gram_rounding

    assert validate_gram_rounding(0.1 + 0.2).is_valid
    assert validate_gram_rounding(30.005).is_valid


def test_servings_display_prefix():
    """Rounded servings from 2 up are displayed with 'about'."""
    from nfp_compliance.compliance.rounding import validate_servings_per_container_rounding

    check = validate_servings_per_container_rounding(4.25)
    assert not check.is_valid
    assert check.suggested_value == pytest.approx(4.5)
    assert check.suggested_display == "about 4.5"

    check = validate_servings_per_container_rounding(7.6)
    assert check.suggested_display == "about 8"

    check = validate_servings_per_container_rounding(1.34)
    assert check.suggested_display == "1.3"


def test_servings_valid_has_no_prefix():
    from nfp_compliance.compliance.rounding import validate_servings_per_container_rounding

    check = validate_servings_per_container_rounding(8)
    assert check.is_valid
    assert check.suggested_display == "8"


def test_custom_rounding_bands():
    """Rounding bands can come from the rule catalog instead of the defaults."""
    from nfp_compliance.compliance.models import RoundingBand
    from nfp_compliance.compliance.rounding import round_serving_quantity

    bands = (RoundingBand(lower=0, upper=None, increment=10),)
    assert round_serving_quantity(44, bands) == 40
    assert round_serving_quantity(45, bands) == 50


@pytest.mark.parametrize("nutrient,value,expected", [
    ("calories", 4, 0),
    ("calories", 47, 45),
    ("calories", 52, 50),
    ("calories", 55, 60),
    ("total_fat", 0.4, 0),
    ("total_fat", 2.3, 2.5),
    ("saturated_fat", 6.5, 7),
    ("cholesterol", 1.5, 0),
    ("cholesterol", 3, "less than 5"),
    ("cholesterol", 23, 25),
    ("sodium", 4.9, 0),
    ("sodium", 142, 140),
    ("sodium", 145, 150),
    ("protein", 0.4, 0),
    ("protein", 2.5, 3),
    ("vitamin_d", 2.45, 2.5),
    ("potassium", 132, 130),
])
def test_round_nutrient(nutrient, value, expected):
    """Declared nutrient values follow 21 CFR 101.9(c) rounding."""
    from nfp_compliance.compliance.rounding import round_nutrient

    result = round_nutrient(nutrient, value)
    if isinstance(expected, str):
        assert result == expected
    else:
        assert result == pytest.approx(expected)


def test_apply_fda_rounding_passes_unknown_through():
    from nfp_compliance.compliance.rounding import apply_fda_rounding

    rounded = apply_fda_rounding({"calories": 147, "sodium": 3, "caffeine": 33.3})
    assert rounded == {"calories": 150.0, "sodium": 0.0, "caffeine": 33.3}


def test_daily_value_percent():
    """%DV is rounded half-up to a whole percent."""
    from nfp_compliance.compliance.daily_values import daily_value_percent

    assert daily_value_percent("sodium", 2300) == 100
    assert daily_value_percent("dietary_fiber", 4) == 14
    assert daily_value_percent("total_fat", 9.75) == 13
    assert daily_value_percent("calories", 200) == 0
    assert daily_value_percent("iron", 0) == 0


def test_nutrient_units():
    from nfp_compliance.compliance.daily_values import has_daily_value, nutrient_unit

    assert nutrient_unit("sodium") == "mg"
    assert nutrient_unit("vitamin_d") == "mcg"
    assert nutrient_unit("protein") == "g"
    assert has_daily_value("protein")
    assert not has_daily_value("total_sugars")
