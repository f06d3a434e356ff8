"""
Format Eligibility
===================
Decides whether a label's declared NFP format is permitted for its
package size (21 CFR 101.9(d), (f), (j)(13)).

Eligibility comes entirely from each format rule's `applicable_to`
predicates; this module never picks a format for the label, it only
suggests one in the finding's details.
"""

from __future__ import annotations

from typing import Mapping

from nfp_compliance.compliance.labels import LabelData
from nfp_compliance.compliance.models import LABEL_FORMATS, ValidationResult
from nfp_compliance.compliance.rules import RuleCatalog
from nfp_compliance.utils.helpers import format_number
from nfp_compliance.utils.log import get_logger

logger = get_logger(__name__)

# Preferred order when suggesting a format: the fullest panel that fits
FORMAT_PREFERENCE = ("standard_vertical", "tabular", "linear", "simplified")


def eligible_formats(
    catalog: RuleCatalog,
    package_surface_area: float | None,
    flags: Mapping[str, bool] | None = None,
) -> frozenset[str]:
    """Formats whose rule's applicable_to predicates hold for this package."""
    return frozenset(
        rule.requirements.format_type
        for rule in catalog.by_type("format")
        if rule.applies(package_surface_area, flags)
    )


def recommend_format(eligible: frozenset[str]) -> str | None:
    """The preferred eligible format, or None when nothing fits."""
    for fmt in FORMAT_PREFERENCE:
        if fmt in eligible:
            return fmt
    return None


def _ordered(formats: frozenset[str]) -> list[str]:
    return [f for f in LABEL_FORMATS if f in formats]


def _area_text(area: float) -> str:
    return f"{format_number(area)} sq in"


def check_format(catalog: RuleCatalog, label: LabelData) -> list[ValidationResult]:
    """
    Check the label's declared format against its package surface area.

    Returns a single finding for the declared format, plus a nutrient
    finding when the label uses the simplified format.
    """
    rule = catalog.format_rule(label.format)
    if rule is None:
        logger.warning("No format rule in catalog for '%s'; skipping format check", label.format)
        return []

    area = label.package_surface_area
    eligible = eligible_formats(catalog, area, label.package_flags)
    details = {
        "declared_format": label.format,
        "package_surface_area": area,
        "eligible_formats": _ordered(eligible),
    }
    results: list[ValidationResult] = []

    if area is None:
        results.append(ValidationResult.for_rule(
            rule,
            "warning",
            f"Package surface area not provided; eligibility of the {rule.rule_name} could not be verified",
            severity="warning",
            details=details,
        ))
    elif label.format in eligible:
        results.append(ValidationResult.for_rule(
            rule,
            "pass",
            f"{rule.rule_name} is permitted for a package of {_area_text(area)}",
            details=details,
        ))
    else:
        recommendation = recommend_format(eligible)
        details["recommended_format"] = recommendation
        results.append(ValidationResult.for_rule(
            rule,
            "fail",
            f"{rule.rule_name} is not permitted for a package of {_area_text(area)}"
            + (f"; consider {recommendation}" if recommendation else ""),
            details=details,
        ))

    if label.format == "simplified" and label.format in eligible:
        results.append(_check_simplified_nutrients(rule, label))

    return results


def _check_simplified_nutrients(rule, label: LabelData) -> ValidationResult:
    allowed = rule.requirements.allowed_nutrients
    extra = [n for n in label.nutrition_data if n not in allowed]
    if extra:
        return ValidationResult.for_rule(
            rule,
            "fail",
            f"Simplified format may only declare {', '.join(allowed)}; found {', '.join(extra)}",
            details={"disallowed_nutrients": extra, "allowed_nutrients": list(allowed)},
        )
    return ValidationResult.for_rule(
        rule,
        "pass",
        "Simplified format declares only permitted nutrients",
        details={"allowed_nutrients": list(allowed)},
    )
