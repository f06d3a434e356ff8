"""
Mandatory Nutrients
====================
Checks that a label declares every nutrient 21 CFR 101.9(c) requires
for its format, in the prescribed units and display order.
"""

from __future__ import annotations

from nfp_compliance.compliance.labels import LabelData
from nfp_compliance.compliance.models import NutrientRequirement, ValidationResult
from nfp_compliance.compliance.rules import RuleCatalog
from nfp_compliance.utils.log import get_logger

logger = get_logger(__name__)


def nutrients_for_format(
    catalog: RuleCatalog,
    label_format: str,
    format_eligible: bool,
) -> tuple[NutrientRequirement, ...]:
    """
    The nutrients a label in `label_format` must declare, in display order.

    Only an eligible simplified label gets the reduced list; every other
    case, including an ineligible simplified label, needs the full panel.
    """
    rule = catalog.nutrient_rule("presence")
    if rule is None:
        return ()
    full = rule.requirements.nutrients

    if label_format == "simplified" and format_eligible:
        simplified = catalog.format_rule("simplified")
        if simplified is not None and simplified.requirements.allowed_nutrients:
            allowed = set(simplified.requirements.allowed_nutrients)
            return tuple(n for n in full if n.name in allowed)
    return full


def _check_presence(rule, label: LabelData, nutrients) -> ValidationResult:
    missing = [n for n in nutrients if n.mandatory and n.name not in label.nutrition_data]
    if not missing:
        return ValidationResult.for_rule(rule, "pass", "All mandatory nutrients are present")
    return ValidationResult.for_rule(
        rule,
        "fail",
        f"Missing mandatory nutrients: {', '.join(n.display for n in missing)}",
        details={
            "missing_nutrients": [n.display for n in missing],
            "missing_keys": [n.name for n in missing],
        },
    )


def _check_units(rule, label: LabelData, nutrients) -> ValidationResult:
    mismatched = {}
    for n in nutrients:
        declared = label.declared_units.get(n.name)
        if declared and declared != n.unit:
            mismatched[n.name] = {"declared": declared, "expected": n.unit}

    if not mismatched:
        return ValidationResult.for_rule(rule, "pass", "Declared nutrient units match the prescribed units")
    problems = ", ".join(f"{name} in {u['declared']} (expected {u['expected']})" for name, u in mismatched.items())
    return ValidationResult.for_rule(
        rule,
        "fail",
        f"Nutrients declared in the wrong unit: {problems}",
        details={"unit_mismatches": mismatched},
    )


def _check_order(rule, label: LabelData, nutrients) -> ValidationResult:
    if label.display_order is None:
        return ValidationResult.for_rule(
            rule,
            "warning",
            "Panel display order not supplied; nutrient order was not checked",
            severity="info",
        )

    required = {n.name for n in nutrients}
    shown = [name for name in dict.fromkeys(label.display_order) if name in required]
    expected = [n.name for n in nutrients if n.name in shown]
    if shown == expected:
        return ValidationResult.for_rule(rule, "pass", "Nutrients are displayed in the prescribed order")

    first_wrong = next(i for i, (a, b) in enumerate(zip(shown, expected)) if a != b)
    return ValidationResult.for_rule(
        rule,
        "fail",
        f"Nutrients are out of order: '{shown[first_wrong]}' appears where '{expected[first_wrong]}' is required",
        details={"expected_order": expected, "actual_order": shown},
    )


_CHECKS = {
    "presence": _check_presence,
    "units": _check_units,
    "order": _check_order,
}


def check_mandatory_nutrients(
    catalog: RuleCatalog,
    label: LabelData,
    nutrients: tuple[NutrientRequirement, ...],
) -> list[ValidationResult]:
    """Evaluate every mandatory_nutrients rule against the required list."""
    results = []
    for rule in catalog.by_type("mandatory_nutrients"):
        results.append(_CHECKS[rule.requirements.check](rule, label, nutrients))
    return results
