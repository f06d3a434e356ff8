"""Tests for nutrient content claim matching and evaluation."""

import pytest


def _evaluate(catalog, racc_table, label, claim):
    from nfp_compliance.compliance.claims import evaluate_claim

    return evaluate_claim(catalog, label, claim, racc_table)


def _with(full_nutrients, **values):
    nutrients = dict(full_nutrients)
    nutrients.update(values)
    return nutrients


# ── Matching ───────────────────────────────────────────


def test_normalise_claim():
    from nfp_compliance.compliance.claims import normalise_claim

    assert normalise_claim("  Sodium-FREE! ") == "sodium free"
    assert normalise_claim("100% Juice") == "100% juice"


@pytest.mark.parametrize("claim,rule_id", [
    ("Sodium-Free", "claim-sodium-free"),
    ("Low Sodium", "claim-low-sodium"),
    ("Very Low Sodium", "claim-very-low-sodium"),
    ("Saturated Fat Free", "claim-saturated-fat-free"),
    ("Fat Free", "claim-fat-free"),
    ("Light in Sodium", "claim-light-sodium"),
    ("Lite", "claim-light-fat"),
    ("Contains no sodium", "claim-sodium-free"),
    ("Good source of fiber", "claim-good-source"),
    ("Healthy", "claim-healthy-2025"),
])
def test_longest_term_wins(catalog, claim, rule_id):
    """The longest whole-phrase term decides which rule a claim is checked against."""
    from nfp_compliance.compliance.claims import match_claim_rule

    rule, _term = match_claim_rule(catalog, claim)
    assert rule.id == rule_id


def test_terms_match_whole_phrases_only(catalog):
    from nfp_compliance.compliance.claims import match_claim_rule

    assert match_claim_rule(catalog, "Fat-Freedom Bar") is None
    assert match_claim_rule(catalog, "Made with love") is None


def test_unknown_claim(catalog, racc_table, make_label):
    """Unrecognised claims are informational, never errors."""
    result = _evaluate(catalog, racc_table, make_label(), "Made with love")
    assert result.rule_id == "unknown-claim"
    assert result.status == "warning"
    assert result.severity == "info"
    assert result.cfr_reference == ""
    assert result.details["claim_statement"] == "Made with love"


def test_empty_claims_skipped(catalog, racc_table, make_label):
    from nfp_compliance.compliance.claims import check_claims

    label = make_label(claim_statements=("", "  ", "!!"))
    assert check_claims(catalog, label, racc_table) == []


def test_one_result_per_claim_in_order(catalog, racc_table, make_label):
    from nfp_compliance.compliance.claims import check_claims

    label = make_label(claim_statements=("Low Fat", "Sodium Free", "Crunchy"))
    results = check_claims(catalog, label, racc_table)
    assert [r.rule_id for r in results] == ["claim-low-fat", "claim-sodium-free", "unknown-claim"]


# ── Ceiling claims ─────────────────────────────────────


@pytest.mark.parametrize("sodium,status", [
    (3, "pass"),
    (4.9, "pass"),
    (5.0, "fail"),
])
def test_sodium_free_is_strict(catalog, racc_table, make_label, full_nutrients, sodium, status):
    """'Free' means strictly below the limit."""
    label = make_label(nutrition_data=_with(full_nutrients, sodium=sodium))
    result = _evaluate(catalog, racc_table, label, "Sodium Free")
    assert result.status == status
    assert result.cfr_reference == "21 CFR 101.61(b)(1)"


@pytest.mark.parametrize("sodium,status", [
    (140, "pass"),
    (141, "fail"),
])
def test_low_sodium_is_inclusive(catalog, racc_table, make_label, full_nutrients, sodium, status):
    """'Low' means at or below the limit."""
    label = make_label(nutrition_data=_with(full_nutrients, sodium=sodium))
    assert _evaluate(catalog, racc_table, label, "Low Sodium").status == status


def test_low_fat_failure_details(catalog, racc_table, make_label):
    result = _evaluate(catalog, racc_table, make_label(), "Low Fat")
    assert result.status == "fail"
    assert result.severity == "error"
    assert result.details["value_per_racc"] == 7
    assert result.details["limit"] == 3
    assert result.details["comparison"] == "<="
    assert result.details["matched_term"] == "low fat"


def test_thresholds_apply_per_racc(catalog, racc_table, make_label, full_nutrients):
    """A 15 g serving of a 30 g RACC food is scaled up before comparison."""
    label = make_label(serving_size_g=15, nutrition_data=_with(full_nutrients, sodium=3))
    result = _evaluate(catalog, racc_table, label, "Sodium Free")
    assert result.status == "fail"
    assert result.details["value_per_racc"] == 6
    assert result.details["basis"] == "per RACC (30g)"


def test_thresholds_apply_per_serving_too(catalog, racc_table, make_label, full_nutrients):
    """A serving larger than the RACC must also meet the limit as labeled."""
    label = make_label(serving_size_g=60, nutrition_data=_with(full_nutrients, sodium=8))
    result = _evaluate(catalog, racc_table, label, "Sodium Free")
    assert result.status == "fail"
    assert result.details["value_per_racc"] == 4
    assert any("per labeled serving" in v for v in result.details["violations"])


def test_no_racc_uses_labeled_serving(catalog, racc_table, make_label):
    result = _evaluate(catalog, racc_table, make_label(racc_category_id=None), "Sodium Free")
    assert result.status == "pass"
    assert result.details["basis"] == "per labeled serving (no RACC basis)"


def test_co_limits(catalog, racc_table, make_label, full_nutrients):
    """'Saturated fat free' also caps trans fat."""
    label = make_label(nutrition_data=_with(full_nutrients, saturated_fat=0.2, trans_fat=0.6))
    result = _evaluate(catalog, racc_table, label, "Saturated Fat Free")
    assert result.status == "fail"
    assert any(v.startswith("trans_fat") for v in result.details["violations"])

    label = make_label(nutrition_data=_with(full_nutrients, saturated_fat=0.2, trans_fat=0))
    assert _evaluate(catalog, racc_table, label, "Saturated Fat Free").status == "pass"


def test_percent_calories_limit(catalog, racc_table, make_label, full_nutrients):
    """'Low saturated fat' also limits calories from saturated fat to 15%."""
    label = make_label(nutrition_data=_with(full_nutrients, saturated_fat=1, calories=140))
    assert _evaluate(catalog, racc_table, label, "Low Saturated Fat").status == "pass"

    label = make_label(nutrition_data=_with(full_nutrients, saturated_fat=1, calories=50))
    result = _evaluate(catalog, racc_table, label, "Low Saturated Fat")
    assert result.status == "fail"
    assert result.details["percent_calories"] == 18.0


def test_missing_nutrient_cannot_be_verified(catalog, racc_table, make_label, full_nutrients):
    del full_nutrients["sodium"]
    label = make_label(nutrition_data=full_nutrients)
    result = _evaluate(catalog, racc_table, label, "Sodium Free")
    assert result.status == "warning"
    assert result.severity == "warning"
    assert "cannot be verified" in result.message
    assert result.details["missing_nutrients"] == ["sodium"]


# ── Relative claims ────────────────────────────────────


@pytest.mark.parametrize("sodium,status", [
    (140, "pass"),
    (150, "pass"),
    (160, "fail"),
])
def test_reduced_sodium(catalog, racc_table, make_label, full_nutrients, sodium, status):
    """'Reduced' needs at least 25% less than the reference food."""
    label = make_label(
        nutrition_data=_with(full_nutrients, sodium=sodium),
        reference_food={"sodium": 200},
    )
    result = _evaluate(catalog, racc_table, label, "Reduced Sodium")
    assert result.status == status
    assert result.details["reference_value"] == 200


def test_reduction_without_reference(catalog, racc_table, make_label):
    result = _evaluate(catalog, racc_table, make_label(), "Reduced Fat")
    assert result.status == "warning"
    assert result.severity == "warning"
    assert result.details["missing_nutrients"] == ["reference food total_fat"]


def test_light_high_fat_reference(catalog, racc_table, make_label, full_nutrients):
    """A reference food with 50%+ calories from fat must have its fat halved."""
    reference = {"total_fat": 10, "calories": 150}

    label = make_label(nutrition_data=_with(full_nutrients, total_fat=5, calories=120), reference_food=reference)
    assert _evaluate(catalog, racc_table, label, "Light").status == "pass"

    label = make_label(nutrition_data=_with(full_nutrients, total_fat=6, calories=90), reference_food=reference)
    result = _evaluate(catalog, racc_table, label, "Light")
    assert result.status == "fail"
    assert result.details["reference_fat_calorie_percent"] == 60.0


def test_light_low_fat_reference(catalog, racc_table, make_label, full_nutrients):
    """Otherwise one-third fewer calories is enough."""
    reference = {"total_fat": 3, "calories": 150}
    label = make_label(nutrition_data=_with(full_nutrients, total_fat=3, calories=100), reference_food=reference)
    assert _evaluate(catalog, racc_table, label, "Lite").status == "pass"


# ── %DV claims ─────────────────────────────────────────


@pytest.mark.parametrize("fiber,status", [
    (4, "pass"),
    (1, "fail"),
    (6, "fail"),
])
def test_good_source_window(catalog, racc_table, make_label, full_nutrients, fiber, status):
    """'Good source' needs 10-19% DV per RACC."""
    label = make_label(nutrition_data=_with(full_nutrients, dietary_fiber=fiber))
    result = _evaluate(catalog, racc_table, label, "Good source of fiber")
    assert result.status == status
    assert result.details["nutrient"] == "dietary_fiber"


def test_high_in_protein(catalog, racc_table, make_label, full_nutrients):
    label = make_label(nutrition_data=_with(full_nutrients, protein=10))
    result = _evaluate(catalog, racc_table, label, "High in Protein")
    assert result.status == "pass"
    assert result.details["dv_percent"] == 20


def test_dv_claim_scaled_to_racc(catalog, racc_table, make_label, full_nutrients):
    label = make_label(serving_size_g=15, nutrition_data=_with(full_nutrients, dietary_fiber=2))
    result = _evaluate(catalog, racc_table, label, "Good source of fiber")
    assert result.status == "pass"
    assert result.details["dv_percent"] == 14


def test_dv_claim_must_name_nutrient(catalog, racc_table, make_label):
    result = _evaluate(catalog, racc_table, make_label(), "A good source of happiness")
    assert result.rule_id == "claim-good-source"
    assert result.status == "fail"
    assert result.severity == "error"


# ── Healthy ────────────────────────────────────────────


def test_healthy(catalog, racc_table, make_label, full_nutrients):
    result = _evaluate(catalog, racc_table, make_label(), "Healthy")
    assert result.status == "pass"
    assert result.details["compliance_deadline"] == "2028-02-25"

    label = make_label(nutrition_data=_with(full_nutrients, saturated_fat=5))
    result = _evaluate(catalog, racc_table, label, "Healthy")
    assert result.status == "fail"
    assert result.details["saturated_fat_dv"] == 25


# ── Distinct claims ────────────────────────────────────


@pytest.mark.parametrize("claim,rule_id", [
    ("Trans Fat Free", None),
    ("Low trans fat", None),
    ("Contains wheat", None),
    ("High fructose corn syrup", None),
    ("No Sugar Added", "claim-no-added-sugar"),
    ("Without added sugars", "claim-no-added-sugar"),
    ("Fat free, 0g trans fat", "claim-fat-free"),
    ("Contains 5g of protein", "claim-good-source"),
    ("High fiber", "claim-high"),
])
def test_distinct_claims_are_not_misread(catalog, claim, rule_id):
    """Statements that only share a word with a defined claim are not checked against it."""
    from nfp_compliance.compliance.claims import match_claim_rule

    match = match_claim_rule(catalog, claim)
    assert (match[0].id if match else None) == rule_id


def test_trans_fat_free_does_not_block(engine, make_label):
    report = engine.validate(make_label(claim_statements=("Trans Fat Free", "Contains wheat")))
    claims = [r for r in report.validation_results if r.rule_type == "nutrient_content_claim"]
    assert [r.rule_id for r in claims] == ["unknown-claim", "unknown-claim"]
    assert report.overall_status == "compliant"


@pytest.mark.parametrize("added_sugars,status", [
    (0, "pass"),
    (8, "fail"),
])
def test_no_added_sugar(catalog, racc_table, make_label, full_nutrients, added_sugars, status):
    label = make_label(nutrition_data=_with(full_nutrients, added_sugars=added_sugars))
    result = _evaluate(catalog, racc_table, label, "No Sugar Added")
    assert result.rule_id == "claim-no-added-sugar"
    assert result.status == status
    assert result.details["nutrient"] == "added_sugars"


# ── Meals and main dishes ──────────────────────────────


def _meal(make_label, full_nutrients, **values):
    return make_label(
        serving_size_g=250,
        racc_category_id="mixed-dishes-cup",
        meal_or_main_dish=True,
        nutrition_data=_with(full_nutrients, **values),
    )


@pytest.mark.parametrize("calories,status", [
    (280, "pass"),
    (300, "pass"),
    (320, "fail"),
])
def test_low_calorie_meal_per_100g(catalog, racc_table, make_label, full_nutrients, calories, status):
    """Meals and main dishes may claim 'low calorie' at 120 calories or less per 100 g."""
    result = _evaluate(catalog, racc_table, _meal(make_label, full_nutrients, calories=calories), "Low Calorie")
    assert result.status == status
    assert result.details["basis"] == "per 100g (meal or main dish)"
    assert result.details["limit"] == 120
    assert result.details["value_per_100g"] == pytest.approx(calories * 100 / 250)


def test_low_calorie_non_meal_uses_racc(catalog, racc_table, make_label, full_nutrients):
    label = make_label(
        serving_size_g=250,
        racc_category_id="mixed-dishes-cup",
        nutrition_data=_with(full_nutrients, calories=280),
    )
    result = _evaluate(catalog, racc_table, label, "Low Calorie")
    assert result.status == "fail"
    assert result.details["limit"] == 40
    assert "value_per_100g" not in result.details


def test_low_fat_meal_limits_calories_from_fat(catalog, racc_table, make_label, full_nutrients):
    """A low fat meal has at most 3 g fat per 100 g and 30% of calories from fat."""
    label = _meal(make_label, full_nutrients, total_fat=7, calories=280)
    result = _evaluate(catalog, racc_table, label, "Low Fat")
    assert result.status == "pass"
    assert result.details["percent_calories"] == 22.5

    label = _meal(make_label, full_nutrients, total_fat=7, calories=180)
    result = _evaluate(catalog, racc_table, label, "Low Fat")
    assert result.status == "fail"
    assert result.details["percent_calories"] == 35.0


def test_meal_claim_without_serving_size(catalog, racc_table, make_label):
    label = make_label(serving_size_g=None, meal_or_main_dish=True)
    result = _evaluate(catalog, racc_table, label, "Low Calorie")
    assert result.status == "warning"
    assert result.details["missing_nutrients"] == ["serving_size_g"]
