"""
Nutrient Content Claims
========================
Evaluates front-of-pack claims ("sodium free", "low fat", "good source
of fiber", "healthy", ...) against 21 CFR Part 101 Subpart D.

Each claim statement is matched to exactly one catalog rule: the one
whose recognised term is the longest whole-phrase match in the
normalised claim. Thresholds are applied per RACC, derived from the
per-serving label values, and also per labeled serving where the rule
asks for it. Meal products and main dishes use the rule's per-100 g
thresholds instead.
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Any, Callable

from nfp_compliance.compliance.daily_values import daily_value_percent
from nfp_compliance.compliance.labels import LabelData
from nfp_compliance.compliance.models import (
    CeilingClaim,
    ComplianceRule,
    DailyValueClaim,
    HealthyClaim,
    LightClaim,
    ReductionClaim,
    ValidationResult,
)
from nfp_compliance.compliance.racc import RACCTable
from nfp_compliance.compliance.rules import RuleCatalog
from nfp_compliance.utils.helpers import format_number
from nfp_compliance.utils.log import get_logger

logger = get_logger(__name__)

CALORIES_PER_GRAM_FAT = 9.0

# Phrases that name a nutrient inside a %DV claim ("good source of fiber")
NUTRIENT_PHRASES = {
    "protein": ("protein",),
    "vitamin_d": ("vitamin d",),
    "calcium": ("calcium",),
    "iron": ("iron",),
    "potassium": ("potassium",),
    "dietary_fiber": ("dietary fiber", "fiber", "fibre"),
}

_EPSILON = 1e-9


def normalise_claim(text: str) -> str:
    """Lowercase, hyphens and punctuation to spaces, whitespace collapsed."""
    return " ".join(re.sub(r"[^a-z0-9%]+", " ", text.lower()).split())


@lru_cache(maxsize=512)
def _phrase_pattern(phrase: str) -> re.Pattern:
    return re.compile(r"(?<![a-z0-9])" + re.escape(phrase) + r"(?![a-z0-9])")


def contains_phrase(text: str, phrase: str) -> bool:
    return _phrase_pattern(phrase).search(text) is not None


def strip_phrases(text: str, phrases: tuple[str, ...]) -> str:
    """Blank out whole-phrase occurrences so the words around them do not join up."""
    for phrase in phrases:
        text = _phrase_pattern(phrase).sub("|", text)
    return text


def match_claim_rule(catalog: RuleCatalog, claim: str) -> tuple[ComplianceRule, str] | None:
    """
    Find the claim rule for a claim statement.

    A rule's `exclude_terms` are removed from the claim before its terms
    are tried ("trans fat free" is not a fat free claim), and a %DV rule's
    `qualified_terms` only count when the claim also names one of its
    nutrients ("contains wheat" is not a good source claim).

    Returns:
        (rule, matched term), or None when no rule recognises the claim.
        The longest matching term wins; ties go to the earlier rule.
    """
    text = normalise_claim(claim)
    best: tuple[ComplianceRule, str] | None = None
    for rule in catalog.by_type("nutrient_content_claim"):
        reqs = rule.requirements
        candidate = strip_phrases(text, reqs.exclude_terms)
        for term in reqs.claim_terms:
            if not contains_phrase(candidate, term):
                continue
            if (
                isinstance(reqs, DailyValueClaim)
                and term in reqs.qualified_terms
                and not _named_nutrients(candidate, reqs.applicable_nutrients)
            ):
                continue
            if best is None or len(term) > len(best[1]):
                best = (rule, term)
    return best


# ── Helpers ────────────────────────────────────────────


class _Basis:
    """Conversion from per-serving label values to the per-RACC basis."""

    def __init__(self, label: LabelData, racc_table: RACCTable | None):
        racc = racc_table.get(label.racc_category_id) if racc_table and label.racc_category_id else None
        if racc is not None and label.serving_size_g:
            self.factor = racc.racc_grams / label.serving_size_g
            self.description = f"per RACC ({format_number(racc.racc_amount)}{racc.racc_unit})"
            self.per_racc = True
        else:
            self.factor = 1.0
            self.description = "per labeled serving (no RACC basis)"
            self.per_racc = False

    def __call__(self, per_serving: float) -> float:
        return per_serving * self.factor


class _Per100g(_Basis):
    """Meal products and main dishes are judged per 100 g of the labeled serving."""

    def __init__(self, serving_size_g: float):
        self.factor = 100.0 / serving_size_g
        self.description = "per 100g (meal or main dish)"
        self.per_racc = False


def _within(value: float, limit: float, inclusive: bool) -> bool:
    return value <= limit + _EPSILON if inclusive else value < limit


def _limit_text(limit: float, inclusive: bool, unit: str = "") -> str:
    unit = f" {unit}" if unit else ""
    return f"{'at most' if inclusive else 'less than'} {format_number(limit)}{unit}"


def _num(value: float) -> str:
    return format_number(round(value, 2))


def _unverifiable(rule: ComplianceRule, message: str, details: dict[str, Any]) -> ValidationResult:
    return ValidationResult.for_rule(rule, "warning", message, severity="warning", details=details)


def _verdict(rule: ComplianceRule, ok: bool, valid_text: str, invalid_text: str, details) -> ValidationResult:
    if ok:
        return ValidationResult.for_rule(
            rule, "pass", f'Claim "{rule.rule_name}" is valid: {valid_text}', details=details
        )
    return ValidationResult.for_rule(
        rule, "fail", f'Claim "{rule.rule_name}" is invalid: {invalid_text}', details=details
    )


# ── Evaluators ─────────────────────────────────────────


def _evaluate_ceiling(rule, reqs: CeilingClaim, label: LabelData, basis: _Basis, details) -> ValidationResult:
    limit, max_percent_calories = reqs.limit, reqs.max_percent_calories
    if label.meal_or_main_dish and reqs.meal_limit_per_100g is not None:
        if not label.serving_size_g:
            details["missing_nutrients"] = ["serving_size_g"]
            return _unverifiable(
                rule, f'Claim "{rule.rule_name}" cannot be verified: missing serving_size_g', details
            )
        basis = _Per100g(label.serving_size_g)
        details["basis"] = basis.description
        limit = reqs.meal_limit_per_100g
        if reqs.meal_max_percent_calories is not None:
            max_percent_calories = reqs.meal_max_percent_calories

    limits = [(reqs.nutrient, limit, reqs.inclusive, reqs.unit)]
    limits += [(c.nutrient, c.limit, c.inclusive, "") for c in reqs.co_limits]

    missing = [name for name, *_ in limits if label.value(name) is None]
    if max_percent_calories is not None and label.value("calories") is None:
        missing.append("calories")
    if missing:
        details["missing_nutrients"] = missing
        return _unverifiable(rule, f'Claim "{rule.rule_name}" cannot be verified: missing {", ".join(missing)}', details)

    violations = []
    for name, ceiling, inclusive, unit in limits:
        per_serving = label.value(name)
        scaled = basis(per_serving)
        if not _within(scaled, ceiling, inclusive):
            violations.append(f"{name} {_num(scaled)} {basis.description}, must be {_limit_text(ceiling, inclusive, unit)}")
        if reqs.per_serving and basis.per_racc and not _within(per_serving, ceiling, inclusive):
            violations.append(f"{name} {_num(per_serving)} per labeled serving, must be {_limit_text(ceiling, inclusive, unit)}")

    value = label.value(reqs.nutrient)
    details.update({
        "nutrient": reqs.nutrient,
        "value_per_serving": value,
        "value_per_100g" if isinstance(basis, _Per100g) else "value_per_racc": round(basis(value), 4),
        "limit": limit,
        "comparison": "<=" if reqs.inclusive else "<",
    })

    if max_percent_calories is not None:
        calories = label.value("calories")
        percent = value * CALORIES_PER_GRAM_FAT / calories * 100 if calories > 0 else 0.0
        details["percent_calories"] = round(percent, 1)
        if percent > max_percent_calories + _EPSILON:
            violations.append(
                f"{_num(percent)}% of calories from {reqs.nutrient}, must be at most {format_number(max_percent_calories)}%"
            )

    if violations:
        details["violations"] = violations
    unit = f" {reqs.unit}" if reqs.unit else ""
    return _verdict(
        rule,
        not violations,
        f"{_num(basis(value))}{unit} {basis.description} is {_limit_text(limit, reqs.inclusive, reqs.unit)}",
        "; ".join(violations),
        details,
    )


def _reduction_percent(reference: float, value: float) -> float:
    return (reference - value) / reference * 100


def _evaluate_reduction(rule, reqs: ReductionClaim, label: LabelData, basis: _Basis, details) -> ValidationResult:
    value = label.value(reqs.nutrient)
    reference = label.reference_food.get(reqs.nutrient)
    if value is None or reference is None:
        what = reqs.nutrient if value is None else f"reference food {reqs.nutrient}"
        details["missing_nutrients"] = [what]
        return _unverifiable(
            rule, f'Claim "{rule.rule_name}" cannot be verified: missing {what}', details
        )
    if reference <= 0:
        return _unverifiable(
            rule, f'Claim "{rule.rule_name}" cannot be verified: reference food declares no {reqs.nutrient}', details
        )

    reduction = _reduction_percent(reference, value)
    details.update({
        "nutrient": reqs.nutrient,
        "value": value,
        "reference_value": reference,
        "reduction_percentage": round(reduction, 1),
        "min_reduction_percentage": reqs.min_reduction_percentage,
    })
    return _verdict(
        rule,
        reduction >= reqs.min_reduction_percentage - _EPSILON,
        f"{_num(reduction)}% less {reqs.nutrient} than the reference food",
        f"{_num(reduction)}% less {reqs.nutrient} than the reference food "
        f"(requires at least {format_number(reqs.min_reduction_percentage)}%)",
        details,
    )


def _evaluate_light(rule, reqs: LightClaim, label: LabelData, basis: _Basis, details) -> ValidationResult:
    fat, calories = label.value(reqs.nutrient), label.value("calories")
    ref_fat = label.reference_food.get(reqs.nutrient)
    ref_calories = label.reference_food.get("calories")
    needed = {
        reqs.nutrient: fat,
        "calories": calories,
        f"reference food {reqs.nutrient}": ref_fat,
        "reference food calories": ref_calories,
    }
    missing = [name for name, v in needed.items() if v is None]
    if missing:
        details["missing_nutrients"] = missing
        return _unverifiable(rule, f'Claim "{rule.rule_name}" cannot be verified: missing {", ".join(missing)}', details)
    if ref_calories <= 0:
        return _unverifiable(rule, f'Claim "{rule.rule_name}" cannot be verified: reference food declares no calories', details)

    fat_calorie_percent = ref_fat * CALORIES_PER_GRAM_FAT / ref_calories * 100
    fat_reduction = _reduction_percent(ref_fat, fat) if ref_fat > 0 else 0.0
    calorie_reduction = _reduction_percent(ref_calories, calories)
    fat_ok = fat_reduction >= reqs.min_fat_reduction - _EPSILON
    calorie_ok = calorie_reduction >= reqs.min_calorie_reduction - _EPSILON

    high_fat_reference = fat_calorie_percent >= reqs.fat_calorie_threshold
    ok = fat_ok if high_fat_reference else (fat_ok or calorie_ok)
    details.update({
        "reference_fat_calorie_percent": round(fat_calorie_percent, 1),
        "fat_reduction_percentage": round(fat_reduction, 1),
        "calorie_reduction_percentage": round(calorie_reduction, 1),
    })

    if high_fat_reference:
        requirement = (
            f"reference food gets {_num(fat_calorie_percent)}% of calories from fat, "
            f"so fat must be reduced by at least {format_number(reqs.min_fat_reduction)}%"
        )
    else:
        requirement = (
            f"fat must be reduced by at least {format_number(reqs.min_fat_reduction)}% "
            f"or calories by at least {format_number(reqs.min_calorie_reduction)}%"
        )
    achieved = f"fat reduced {_num(fat_reduction)}%, calories reduced {_num(calorie_reduction)}%"
    return _verdict(rule, ok, achieved, f"{achieved}; {requirement}", details)


def _named_nutrients(text: str, applicable: tuple[str, ...]) -> list[str]:
    return [
        name for name in applicable
        if any(contains_phrase(text, phrase) for phrase in NUTRIENT_PHRASES.get(name, (name.replace("_", " "),)))
    ]


def _evaluate_daily_value(rule, reqs: DailyValueClaim, label: LabelData, basis: _Basis, details) -> ValidationResult:
    named = _named_nutrients(normalise_claim(details["claim_statement"]), reqs.applicable_nutrients)
    if not named:
        return ValidationResult.for_rule(
            rule,
            "fail",
            f'Claim "{rule.rule_name}" must name one of: {", ".join(reqs.applicable_nutrients)}',
            details=details,
        )

    nutrient = named[0]
    value = label.value(nutrient)
    details["nutrient"] = nutrient
    if value is None:
        details["missing_nutrients"] = [nutrient]
        return _unverifiable(rule, f'Claim "{rule.rule_name}" cannot be verified: missing {nutrient}', details)

    dv = daily_value_percent(nutrient, basis(value))
    details.update({"dv_percent": dv, "basis": basis.description})
    if reqs.max_dv_percentage is not None:
        required = f"{format_number(reqs.min_dv_percentage)}-{format_number(reqs.max_dv_percentage)}%"
        ok = reqs.min_dv_percentage <= dv <= reqs.max_dv_percentage
    else:
        required = f"at least {format_number(reqs.min_dv_percentage)}%"
        ok = dv >= reqs.min_dv_percentage
    details["required_dv"] = required
    return _verdict(
        rule,
        ok,
        f"{nutrient} provides {dv}% DV {basis.description} ({required})",
        f"{nutrient} provides {dv}% DV {basis.description} (requires {required})",
        details,
    )


def _evaluate_healthy(rule, reqs: HealthyClaim, label: LabelData, basis: _Basis, details) -> ValidationResult:
    missing = [n for n in reqs.dv_limits if label.value(n) is None]
    if missing:
        details["missing_nutrients"] = missing
        return _unverifiable(rule, f'Claim "{rule.rule_name}" cannot be verified: missing {", ".join(missing)}', details)

    violations = []
    for nutrient, limit in reqs.dv_limits.items():
        dv = daily_value_percent(nutrient, basis(label.value(nutrient)))
        details[f"{nutrient}_dv"] = dv
        if dv > limit:
            violations.append(f"{nutrient} {dv}% DV (max {format_number(limit)}%)")

    if reqs.compliance_deadline:
        details["compliance_deadline"] = reqs.compliance_deadline
    if violations:
        details["violations"] = violations
    return _verdict(
        rule,
        not violations,
        f"all nutrients within the %DV limits {basis.description}",
        ", ".join(violations),
        details,
    )


_EVALUATORS: dict[type, Callable[..., ValidationResult]] = {
    CeilingClaim: _evaluate_ceiling,
    ReductionClaim: _evaluate_reduction,
    LightClaim: _evaluate_light,
    DailyValueClaim: _evaluate_daily_value,
    HealthyClaim: _evaluate_healthy,
}


def unknown_claim_result(claim: str) -> ValidationResult:
    return ValidationResult(
        rule_id="unknown-claim",
        rule_name="Unknown Claim",
        rule_type="nutrient_content_claim",
        status="warning",
        message=f'Claim "{claim}" is not recognized as an FDA-defined nutrient content claim',
        severity="info",
        details={"claim_statement": claim},
    )


def evaluate_claim(
    catalog: RuleCatalog,
    label: LabelData,
    claim: str,
    racc_table: RACCTable | None = None,
) -> ValidationResult:
    """Evaluate one claim statement against its matching rule."""
    match = match_claim_rule(catalog, claim)
    if match is None:
        return unknown_claim_result(claim)

    rule, term = match
    basis = _Basis(label, racc_table)
    details: dict[str, Any] = {"claim_statement": claim, "matched_term": term, "basis": basis.description}
    return _EVALUATORS[type(rule.requirements)](rule, rule.requirements, label, basis, details)


def check_claims(
    catalog: RuleCatalog,
    label: LabelData,
    racc_table: RACCTable | None = None,
) -> list[ValidationResult]:
    """One finding per claim statement, in statement order."""
    results = []
    for claim in label.claim_statements:
        if not normalise_claim(claim):
            logger.debug("Skipping empty claim statement")
            continue
        results.append(evaluate_claim(catalog, label, claim, racc_table))
    return results
