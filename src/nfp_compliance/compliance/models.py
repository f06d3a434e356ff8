"""
Compliance Data Model
======================
Typed rule catalog entries and validation findings.

A rule's `requirements` is a tagged union: each rule_type has its own
frozen dataclass (claims have one per claim kind), so every checker
receives only the requirement shape it understands. `applicable_to`
is a tuple of predicates drawn from a closed set, evaluated by
`predicate_applies`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Literal, Mapping, Union

# ── Vocabulary ─────────────────────────────────────────

RULE_TYPES = ("format", "serving_size", "mandatory_nutrients", "nutrient_content_claim")
RULE_CATEGORIES = ("required", "conditional", "optional", "prohibited")
SEVERITIES = ("error", "warning", "info")
RESULT_STATUSES = ("pass", "fail", "warning")
LABEL_FORMATS = ("standard_vertical", "tabular", "linear", "simplified")

# Overall report states. The engine only ever emits the first three;
# "pending" / "not_validated" describe a caller's record before any run.
OVERALL_STATUSES = ("compliant", "warnings", "errors", "pending", "not_validated")

# Results of these rule types must always cite a regulation
CITED_RULE_TYPES = frozenset({"format", "serving_size", "mandatory_nutrients"})

RuleType = Literal["format", "serving_size", "mandatory_nutrients", "nutrient_content_claim"]
Severity = Literal["error", "warning", "info"]
ResultStatus = Literal["pass", "fail", "warning"]


def empty_mapping() -> Mapping[str, Any]:
    """A fresh read-only empty mapping, for use as a dataclass default_factory."""
    return MappingProxyType({})


# ── applicable_to predicates ───────────────────────────


@dataclass(frozen=True)
class SurfaceAreaRange:
    """Package surface area window in square inches, both bounds inclusive."""

    min: float | None = None
    max: float | None = None


@dataclass(frozen=True)
class FlagPredicate:
    """A boolean fact about the package supplied with the label data."""

    name: str
    expected: bool = True


Predicate = Union[SurfaceAreaRange, FlagPredicate]


def predicate_applies(
    predicate: Predicate,
    package_surface_area: float | None,
    flags: Mapping[str, bool] | None = None,
) -> bool:
    """
    Evaluate one applicable_to predicate against a label's package facts.

    Unknown facts leave the predicate unconstrained: an unspecified area
    satisfies any range, and an unspecified flag is assumed to hold.
    """
    if isinstance(predicate, SurfaceAreaRange):
        if package_surface_area is None:
            return True
        if predicate.min is not None and package_surface_area < predicate.min:
            return False
        if predicate.max is not None and package_surface_area > predicate.max:
            return False
        return True

    if isinstance(predicate, FlagPredicate):
        value = (flags or {}).get(predicate.name)
        if value is None:
            return True
        return bool(value) == predicate.expected

    raise TypeError(f"Unsupported predicate: {predicate!r}")


# ── Requirement variants ───────────────────────────────


@dataclass(frozen=True)
class FormatRequirements:
    format_type: str
    min_package_surface_area: float | None = None
    max_package_surface_area: float | None = None
    min_vertical_space: float | None = None
    font_sizes: Mapping[str, float] = field(default_factory=empty_mapping)
    allowed_nutrients: tuple[str, ...] = ()


@dataclass(frozen=True)
class RoundingBand:
    """One rounding band: values in [lower, upper) round to `increment`."""

    lower: float
    upper: float | None
    increment: float
    prefix: str = ""


@dataclass(frozen=True)
class ServingSizeRequirements:
    check: str  # gram_rounding, servings_rounding, racc_reference, single_serving, dual_column, racc_range
    rounding_bands: tuple[RoundingBand, ...] = ()
    min_percent_of_racc: float | None = None
    max_percent_of_racc: float | None = None
    min_racc_ratio: float | None = None
    max_racc_ratio: float | None = None


@dataclass(frozen=True)
class NutrientRequirement:
    name: str
    display: str
    unit: str
    mandatory: bool = True
    show_dv: bool = False
    indent_level: int = 0


@dataclass(frozen=True)
class MandatoryNutrientRequirements:
    check: str  # presence, units, order
    nutrients: tuple[NutrientRequirement, ...]


@dataclass(frozen=True)
class NutrientLimit:
    """An extra ceiling on a second nutrient (e.g. trans fat for 'saturated fat free')."""

    nutrient: str
    limit: float
    inclusive: bool = True


@dataclass(frozen=True)
class CeilingClaim:
    """'free' / 'low' claims: a per-RACC (and per-serving) ceiling."""

    claim_terms: tuple[str, ...]
    nutrient: str
    limit: float
    inclusive: bool  # False: strictly below the limit ("<5"), True: at or below ("<=140")
    per_serving: bool = True
    unit: str = ""
    co_limits: tuple[NutrientLimit, ...] = ()
    max_percent_calories: float | None = None
    meal_limit_per_100g: float | None = None  # meal products and main dishes, 101.13(l)/(m)
    meal_max_percent_calories: float | None = None
    exclude_terms: tuple[str, ...] = ()


@dataclass(frozen=True)
class ReductionClaim:
    """'reduced' / 'less' / 'light in sodium': relative to a reference food."""

    claim_terms: tuple[str, ...]
    nutrient: str
    min_reduction_percentage: float
    exclude_terms: tuple[str, ...] = ()


@dataclass(frozen=True)
class LightClaim:
    """'light' / 'lite': fat or calorie reduction depending on calories from fat."""

    claim_terms: tuple[str, ...]
    nutrient: str = "total_fat"
    fat_calorie_threshold: float = 50.0
    min_fat_reduction: float = 50.0
    min_calorie_reduction: float = 33.3
    exclude_terms: tuple[str, ...] = ()


@dataclass(frozen=True)
class DailyValueClaim:
    """'good source' / 'high': a %DV window for a named nutrient."""

    claim_terms: tuple[str, ...]
    min_dv_percentage: float
    max_dv_percentage: float | None = None
    applicable_nutrients: tuple[str, ...] = ()
    qualified_terms: tuple[str, ...] = ()  # only a claim when an applicable nutrient is named
    exclude_terms: tuple[str, ...] = ()


@dataclass(frozen=True)
class HealthyClaim:
    """'healthy' (2025 rule): %DV caps on several nutrients."""

    claim_terms: tuple[str, ...]
    dv_limits: Mapping[str, float]
    effective_date: str = ""
    compliance_deadline: str = ""
    exclude_terms: tuple[str, ...] = ()


ClaimRequirements = Union[CeilingClaim, ReductionClaim, LightClaim, DailyValueClaim, HealthyClaim]
Requirements = Union[FormatRequirements, ServingSizeRequirements, MandatoryNutrientRequirements, ClaimRequirements]


# ── Rule ───────────────────────────────────────────────


@dataclass(frozen=True)
class ComplianceRule:
    """One immutable catalog entry."""

    id: str
    rule_type: RuleType
    rule_category: str
    rule_name: str
    description: str
    requirements: Requirements
    cfr_reference: str
    severity: Severity
    applicable_to: tuple[Predicate, ...] = ()
    active: bool = True

    def applies(self, package_surface_area: float | None, flags: Mapping[str, bool] | None = None) -> bool:
        return all(predicate_applies(p, package_surface_area, flags) for p in self.applicable_to)


# ── Findings ───────────────────────────────────────────


@dataclass(frozen=True)
class ValidationResult:
    """One finding produced by evaluating one rule."""

    rule_id: str
    rule_name: str
    rule_type: str
    status: ResultStatus
    message: str
    severity: Severity
    cfr_reference: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.status not in RESULT_STATUSES:
            raise ValueError(f"{self.rule_id}: invalid status {self.status!r}")
        if self.severity not in SEVERITIES:
            raise ValueError(f"{self.rule_id}: invalid severity {self.severity!r}")
        if self.rule_type in CITED_RULE_TYPES and not self.cfr_reference:
            raise ValueError(f"{self.rule_id}: {self.rule_type} results must cite a regulation")

    @classmethod
    def for_rule(
        cls,
        rule: ComplianceRule,
        status: ResultStatus,
        message: str,
        severity: Severity | None = None,
        details: dict[str, Any] | None = None,
    ) -> ValidationResult:
        """Build a finding that inherits id, name, type, citation and severity from its rule."""
        return cls(
            rule_id=rule.id,
            rule_name=rule.rule_name,
            rule_type=rule.rule_type,
            status=status,
            message=message,
            severity=severity or rule.severity,
            cfr_reference=rule.cfr_reference,
            details=dict(details or {}),
        )

    @property
    def passed(self) -> bool:
        return self.status == "pass"

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "rule_id": self.rule_id,
            "rule_name": self.rule_name,
            "rule_type": self.rule_type,
            "status": self.status,
            "message": self.message,
            "severity": self.severity,
        }
        if self.cfr_reference:
            data["cfr_reference"] = self.cfr_reference
        if self.details:
            data["details"] = dict(self.details)
        return data


@dataclass(frozen=True)
class ValidationReport:
    """Outcome of validating one label against the full catalog."""

    overall_status: str
    validation_results: tuple[ValidationResult, ...]
    errors_count: int
    warnings_count: int
    validated_at: datetime
    label_format: str | None = None
    serving_size: Any = None  # ServingSizeValidation when a RACC category was evaluated

    @property
    def is_publishable(self) -> bool:
        """Errors block export/publication; warnings alone do not."""
        return self.errors_count == 0

    @property
    def failures(self) -> list[ValidationResult]:
        return [r for r in self.validation_results if not r.passed]

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "overall_status": self.overall_status,
            "validation_results": [r.to_dict() for r in self.validation_results],
            "errors_count": self.errors_count,
            "warnings_count": self.warnings_count,
            "validated_at": self.validated_at.isoformat(),
        }
        if self.label_format is not None:
            data["label_format"] = self.label_format
        if self.serving_size is not None:
            data["serving_size"] = self.serving_size.to_dict()
        return data
