"""
Serving Size / RACC Validator
==============================
Validates a declared serving size against the FDA Reference Amount
Customarily Consumed for the product category (21 CFR 101.12 and
21 CFR 101.9(b)).

`validate_serving_size` produces the detailed validation bundle attached
to a report; `serving_size_results` turns the catalog's serving_size
rules into ValidationResults for the aggregator.

Volumes in mL are treated 1:1 with grams.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from nfp_compliance.compliance.labels import LabelData
from nfp_compliance.compliance.models import ComplianceRule, ValidationResult
from nfp_compliance.compliance.racc import RACCCategory, RACCTable
from nfp_compliance.compliance.rounding import (
    SERVING_ROUNDING_BANDS,
    round_half_up,
    round_serving_quantity,
    validate_gram_rounding,
    validate_servings_per_container_rounding,
)
from nfp_compliance.compliance.rules import RuleCatalog
from nfp_compliance.utils.helpers import format_number
from nfp_compliance.utils.log import get_logger

logger = get_logger(__name__)

# Percent-of-RACC window for the serving size itself (21 CFR 101.9(b)(2))
MIN_PERCENT_OF_RACC = 50.0
MAX_PERCENT_OF_RACC = 200.0

# Advisory "close to RACC" window used by check_serving_size_matches_racc
MATCH_MIN_PERCENT = 67.0
MATCH_MAX_PERCENT = 150.0

SINGLE_SERVING_MAX_RATIO = 2.0
DUAL_COLUMN_MAX_RATIO = 3.0

_EPSILON = 1e-9


@dataclass(frozen=True)
class ServingSizeMessage:
    type: str  # error, warning, info, success
    message: str
    rule_id: str
    cfr_reference: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data = {"type": self.type, "message": self.message, "rule_id": self.rule_id}
        if self.cfr_reference:
            data["cfr_reference"] = self.cfr_reference
        if self.details:
            data["details"] = dict(self.details)
        return data


@dataclass(frozen=True)
class ServingSizeValidation:
    is_valid: bool
    racc_category: RACCCategory | None
    suggested_serving_size: float | None
    suggested_household_measure: str | None
    messages: tuple[ServingSizeMessage, ...]
    single_serving_required: bool = False
    container_rule: str = "standard"  # single, dual, standard
    percent_of_racc: float | None = None
    racc_ratio: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "racc_category": self.racc_category.to_dict() if self.racc_category else None,
            "suggested_serving_size": self.suggested_serving_size,
            "suggested_household_measure": self.suggested_household_measure,
            "messages": [m.to_dict() for m in self.messages],
            "single_serving_required": self.single_serving_required,
            "container_rule": self.container_rule,
            "percent_of_racc": self.percent_of_racc,
            "racc_ratio": self.racc_ratio,
        }


@dataclass(frozen=True)
class RACCMatch:
    matches: bool
    percent_of_racc: float
    racc_amount: float
    message: str


@dataclass(frozen=True)
class ServingSizeRecommendation:
    serving_size: float
    servings_per_container: float
    household_measure: str
    label_statement: str
    is_single_serving: bool
    can_use_dual_column: bool


def container_rule_for(ratio: float) -> str:
    """Classify a container by total weight / RACC: single, dual or standard."""
    if ratio <= SINGLE_SERVING_MAX_RATIO:
        return "single"
    if ratio <= DUAL_COLUMN_MAX_RATIO:
        return "dual"
    return "standard"


def _percent_text(value: float) -> str:
    return f"{format_number(round_half_up(value, 1))}%"


def _suggested_serving_size(racc_grams: float, total_weight: float) -> float:
    if total_weight <= racc_grams * SINGLE_SERVING_MAX_RATIO:
        return validate_gram_rounding(total_weight).suggested_value
    return validate_gram_rounding(racc_grams).suggested_value


def validate_serving_size(
    serving_size_g: float,
    total_product_weight: float,
    racc_category_id: str,
    servings_per_container: float | None = None,
    *,
    racc_table: RACCTable,
    serving_size_household: str | None = None,
) -> ServingSizeValidation:
    """
    Validate a serving size against its RACC category.

    Never raises: an unknown category comes back as a single error
    message with is_valid False.
    """
    racc = racc_table.get(racc_category_id)
    if racc is None:
        return ServingSizeValidation(
            is_valid=False,
            racc_category=None,
            suggested_serving_size=None,
            suggested_household_measure=None,
            messages=(ServingSizeMessage(
                type="error",
                message=f'RACC category "{racc_category_id}" not found',
                rule_id="serving-size-racc-reference",
                cfr_reference="21 CFR 101.12(b)",
                details={"racc_category_id": racc_category_id},
            ),),
        )

    messages: list[ServingSizeMessage] = []
    is_valid = True
    racc_grams = racc.racc_grams
    percent = serving_size_g / racc_grams * 100
    ratio = total_product_weight / racc_grams
    container_rule = container_rule_for(ratio)

    if container_rule == "single":
        messages.append(ServingSizeMessage(
            type="info",
            message=f"Package contains {_percent_text(ratio * 100)} of RACC (200% or less). "
                    "Must be labeled as a single serving.",
            rule_id="serving-size-single-serving-container",
            cfr_reference="21 CFR 101.9(b)(6)",
            details={"total_to_racc_ratio": _percent_text(ratio * 100)},
        ))
    elif container_rule == "dual":
        messages.append(ServingSizeMessage(
            type="info",
            message=f"Package contains {_percent_text(ratio * 100)} of RACC. "
                    "May use dual-column format showing per-serving and per-container values.",
            rule_id="serving-size-dual-column",
            cfr_reference="21 CFR 101.9(b)(11)",
            details={"total_to_racc_ratio": _percent_text(ratio * 100)},
        ))

    racc_text = f"{format_number(racc_grams)}{racc.racc_unit}"
    if percent < MIN_PERCENT_OF_RACC - _EPSILON:
        messages.append(ServingSizeMessage(
            type="warning",
            message=f"Serving size ({format_number(serving_size_g)}g) is less than 50% of RACC ({racc_text}). "
                    "Consider increasing.",
            rule_id="serving-size-racc-range",
            cfr_reference="21 CFR 101.9(b)(2)",
            details={"percent_of_racc": _percent_text(percent)},
        ))
        is_valid = False
    elif percent > MAX_PERCENT_OF_RACC + _EPSILON:
        messages.append(ServingSizeMessage(
            type="warning",
            message=f"Serving size ({format_number(serving_size_g)}g) exceeds 200% of RACC ({racc_text}). "
                    "Consider decreasing.",
            rule_id="serving-size-racc-range",
            cfr_reference="21 CFR 101.9(b)(2)",
            details={"percent_of_racc": _percent_text(percent)},
        ))
        is_valid = False
    else:
        messages.append(ServingSizeMessage(
            type="success",
            message=f"Serving size ({format_number(serving_size_g)}g) is {_percent_text(percent)} of RACC "
                    f"({racc_text}), within acceptable range.",
            rule_id="serving-size-racc-range",
            cfr_reference="21 CFR 101.9(b)(2)",
            details={"percent_of_racc": _percent_text(percent)},
        ))

    gram_check = validate_gram_rounding(serving_size_g)
    if not gram_check.is_valid:
        messages.append(ServingSizeMessage(
            type="error",
            message=f"Serving size should be rounded to {format_number(gram_check.suggested_value)}g "
                    "per FDA rounding rules.",
            rule_id="serving-size-rounding-grams",
            cfr_reference="21 CFR 101.9(b)(7)",
            details={"current_value": serving_size_g, "suggested_value": gram_check.suggested_value},
        ))
        is_valid = False

    if servings_per_container:
        spc_check = validate_servings_per_container_rounding(servings_per_container)
        if not spc_check.is_valid:
            messages.append(ServingSizeMessage(
                type="error",
                message=f'Servings per container should be displayed as "{spc_check.suggested_display}" '
                        "per FDA rounding rules.",
                rule_id="serving-size-servings-per-container",
                cfr_reference="21 CFR 101.9(b)(8)",
                details={
                    "current_value": servings_per_container,
                    "suggested_value": spc_check.suggested_value,
                    "suggested_display": spc_check.suggested_display,
                },
            ))
            is_valid = False

    return ServingSizeValidation(
        is_valid=is_valid,
        racc_category=racc,
        suggested_serving_size=_suggested_serving_size(racc_grams, total_product_weight),
        suggested_household_measure=racc.household_measure or racc.label_statement or serving_size_household,
        messages=tuple(messages),
        single_serving_required=container_rule == "single",
        container_rule=container_rule,
        percent_of_racc=percent,
        racc_ratio=ratio,
    )


def check_serving_size_matches_racc(
    serving_size_g: float,
    racc_category_id: str,
    *,
    racc_table: RACCTable,
) -> RACCMatch:
    """Advisory check: is the serving within 67%-150% of the RACC?"""
    racc = racc_table.get(racc_category_id)
    if racc is None:
        return RACCMatch(matches=False, percent_of_racc=0.0, racc_amount=0.0, message="RACC category not found")

    percent = serving_size_g / racc.racc_grams * 100
    matches = MATCH_MIN_PERCENT <= percent <= MATCH_MAX_PERCENT
    if matches:
        message = f"Serving size is {_percent_text(percent)} of RACC - acceptable"
    elif percent < MATCH_MIN_PERCENT:
        message = f"Serving size is only {_percent_text(percent)} of RACC - may be too small"
    else:
        message = f"Serving size is {_percent_text(percent)} of RACC - may be too large"
    return RACCMatch(matches=matches, percent_of_racc=percent, racc_amount=racc.racc_grams, message=message)


def get_serving_size_recommendation(
    racc_category_id: str,
    total_product_weight: float,
    *,
    racc_table: RACCTable,
) -> ServingSizeRecommendation | None:
    """Recommended serving size and servings per container for a product, or None for an unknown category."""
    racc = racc_table.get(racc_category_id)
    if racc is None:
        return None

    racc_grams = racc.racc_grams
    container_rule = container_rule_for(total_product_weight / racc_grams)
    if container_rule == "single":
        serving, servings = total_product_weight, 1.0
    else:
        serving, servings = racc_grams, round_half_up(total_product_weight / racc_grams, 1)

    return ServingSizeRecommendation(
        serving_size=validate_gram_rounding(serving).suggested_value,
        servings_per_container=validate_servings_per_container_rounding(servings).suggested_value,
        household_measure=racc.household_measure or racc.label_statement,
        label_statement=racc.label_statement,
        is_single_serving=container_rule == "single",
        can_use_dual_column=container_rule == "dual",
    )


# ── Catalog-driven results ─────────────────────────────


def _unevaluated(rule: ComplianceRule, message: str, severity: str = "info") -> ValidationResult:
    return ValidationResult.for_rule(rule, "warning", message, severity=severity)


def _gram_rounding(rule: ComplianceRule, label: LabelData, _racc: RACCCategory | None) -> ValidationResult | None:
    if label.serving_size_g is None:
        return _unevaluated(rule, "Serving size in grams not declared; rounding could not be checked", "warning")
    value = label.serving_size_g
    check = validate_gram_rounding(value, rule.requirements.rounding_bands or SERVING_ROUNDING_BANDS)
    if check.is_valid:
        return ValidationResult.for_rule(rule, "pass", f"Serving size ({format_number(value)}g) is properly rounded")
    return ValidationResult.for_rule(
        rule,
        "fail",
        f"Serving size should be {format_number(check.suggested_value)}g, not {format_number(value)}g",
        details={"current": value, "expected": check.suggested_value},
    )


def _servings_rounding(rule: ComplianceRule, label: LabelData, _racc: RACCCategory | None) -> ValidationResult | None:
    if label.servings_per_container is None:
        return _unevaluated(rule, "Servings per container not declared; rounding could not be checked")
    value = label.servings_per_container
    check = validate_servings_per_container_rounding(value, rule.requirements.rounding_bands or SERVING_ROUNDING_BANDS)
    if check.is_valid:
        return ValidationResult.for_rule(
            rule, "pass", f"Servings per container ({format_number(value)}) is properly rounded"
        )
    return ValidationResult.for_rule(
        rule,
        "fail",
        f'Servings per container should be displayed as "{check.suggested_display}", not {format_number(value)}',
        details={"current": value, "expected": check.suggested_value, "suggested_display": check.suggested_display},
    )


def _racc_reference(rule: ComplianceRule, label: LabelData, racc: RACCCategory | None) -> ValidationResult | None:
    if label.racc_category_id is None:
        return _unevaluated(rule, "No RACC category supplied; serving size was not compared with a reference amount")
    if racc is None:
        return ValidationResult.for_rule(
            rule,
            "fail",
            f'RACC category "{label.racc_category_id}" not found',
            details={"racc_category_id": label.racc_category_id},
        )
    return ValidationResult.for_rule(
        rule,
        "pass",
        f"RACC category '{racc.id}': {format_number(racc.racc_amount)}{racc.racc_unit} ({racc.subcategory or racc.category})",
        details={"racc_category_id": racc.id, "racc_amount": racc.racc_amount, "racc_unit": racc.racc_unit},
    )


def _racc_ratio(racc: RACCCategory, label: LabelData) -> float | None:
    total = label.total_product_weight
    return None if total is None else total / racc.racc_grams


def _single_serving(rule: ComplianceRule, label: LabelData, racc: RACCCategory | None) -> ValidationResult | None:
    if racc is None:
        return None
    ratio = _racc_ratio(racc, label)
    if ratio is None:
        return _unevaluated(rule, "Product weight unknown; single-serving container rule could not be evaluated")
    max_ratio = rule.requirements.max_racc_ratio or SINGLE_SERVING_MAX_RATIO
    if ratio > max_ratio:
        return None

    details = {"total_to_racc_ratio": _percent_text(ratio * 100)}
    servings = round_serving_quantity(label.servings_per_container) if label.servings_per_container else 1.0
    if servings > 1:
        details["servings_per_container"] = label.servings_per_container
        return ValidationResult.for_rule(
            rule,
            "fail",
            f"Package contains {_percent_text(ratio * 100)} of RACC and must be labeled as a single serving, "
            f"not {format_number(servings)} servings",
            details=details,
        )
    return ValidationResult.for_rule(
        rule,
        "pass",
        f"Package contains {_percent_text(ratio * 100)} of RACC and is labeled as a single serving",
        details=details,
    )


def _dual_column(rule: ComplianceRule, label: LabelData, racc: RACCCategory | None) -> ValidationResult | None:
    if racc is None:
        return None
    ratio = _racc_ratio(racc, label)
    if ratio is None:
        return None
    reqs = rule.requirements
    low = reqs.min_racc_ratio if reqs.min_racc_ratio is not None else SINGLE_SERVING_MAX_RATIO
    high = reqs.max_racc_ratio if reqs.max_racc_ratio is not None else DUAL_COLUMN_MAX_RATIO
    if not low < ratio <= high:
        return None
    return ValidationResult.for_rule(
        rule,
        "pass",
        f"Package contains {_percent_text(ratio * 100)} of RACC; "
        "a dual-column format showing per-serving and per-container values may be used",
        details={"total_to_racc_ratio": _percent_text(ratio * 100)},
    )


def _racc_range(rule: ComplianceRule, label: LabelData, racc: RACCCategory | None) -> ValidationResult | None:
    if racc is None:
        return None
    if label.serving_size_g is None:
        return _unevaluated(rule, "Serving size in grams not declared; percent of RACC could not be evaluated")

    reqs = rule.requirements
    low = reqs.min_percent_of_racc if reqs.min_percent_of_racc is not None else MIN_PERCENT_OF_RACC
    high = reqs.max_percent_of_racc if reqs.max_percent_of_racc is not None else MAX_PERCENT_OF_RACC
    percent = label.serving_size_g / racc.racc_grams * 100
    details = {"percent_of_racc": round_half_up(percent, 0.1), "racc_amount": racc.racc_amount}
    serving = f"{format_number(label.serving_size_g)}g"
    racc_text = f"{format_number(racc.racc_amount)}{racc.racc_unit}"

    if percent < low - _EPSILON:
        return ValidationResult.for_rule(
            rule, "fail",
            f"Serving size ({serving}) is less than {format_number(low)}% of RACC ({racc_text}). Consider increasing.",
            details=details,
        )
    if percent > high + _EPSILON:
        return ValidationResult.for_rule(
            rule, "fail",
            f"Serving size ({serving}) exceeds {format_number(high)}% of RACC ({racc_text}). Consider decreasing.",
            details=details,
        )
    return ValidationResult.for_rule(
        rule, "pass",
        f"Serving size ({serving}) is {_percent_text(percent)} of RACC ({racc_text}), within acceptable range",
        details=details,
    )


_CHECKS = {
    "gram_rounding": _gram_rounding,
    "servings_rounding": _servings_rounding,
    "racc_reference": _racc_reference,
    "single_serving": _single_serving,
    "dual_column": _dual_column,
    "racc_range": _racc_range,
}


def serving_size_results(
    catalog: RuleCatalog,
    racc_table: RACCTable,
    label: LabelData,
) -> tuple[list[ValidationResult], ServingSizeValidation | None]:
    """
    Evaluate every serving_size rule in catalog order.

    Returns:
        (results, validation bundle). The bundle is None unless the label
        names a RACC category and declares a gram serving size.
    """
    racc = racc_table.get(label.racc_category_id) if label.racc_category_id else None
    results = []
    for rule in catalog.by_type("serving_size"):
        result = _CHECKS[rule.requirements.check](rule, label, racc)
        if result is not None:
            results.append(result)

    bundle = None
    if label.racc_category_id and label.serving_size_g is not None:
        bundle = validate_serving_size(
            label.serving_size_g,
            label.total_product_weight,
            label.racc_category_id,
            label.servings_per_container,
            racc_table=racc_table,
            serving_size_household=label.serving_size_household,
        )
    return results, bundle
