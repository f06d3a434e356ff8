"""
Rule Catalog
=============
Loads the FDA NFP rule catalog from data/rules/*.yaml (or from database
style rows) into an immutable, typed RuleCatalog.

Every row is validated on the way in. A malformed entry raises
CatalogError naming the offending rule id, so a broken catalog never
reaches the engine.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Iterable, Iterator, Mapping

import yaml

from nfp_compliance.compliance.models import (
    CITED_RULE_TYPES,
    LABEL_FORMATS,
    RULE_CATEGORIES,
    RULE_TYPES,
    SEVERITIES,
    CeilingClaim,
    ClaimRequirements,
    ComplianceRule,
    DailyValueClaim,
    FlagPredicate,
    FormatRequirements,
    HealthyClaim,
    LightClaim,
    MandatoryNutrientRequirements,
    NutrientLimit,
    NutrientRequirement,
    Predicate,
    ReductionClaim,
    Requirements,
    RoundingBand,
    ServingSizeRequirements,
    SurfaceAreaRange,
)
from nfp_compliance.config import get_settings
from nfp_compliance.exceptions import CatalogError
from nfp_compliance.utils.log import get_logger

logger = get_logger(__name__)

SERVING_SIZE_CHECKS = (
    "gram_rounding",
    "servings_rounding",
    "racc_reference",
    "single_serving",
    "dual_column",
    "racc_range",
)
NUTRIENT_CHECKS = ("presence", "units", "order")
CLAIM_KINDS = ("ceiling", "reduction", "light", "daily_value", "healthy")

_COMPARISONS = {"<": False, "<=": True}


@dataclass(frozen=True)
class RuleCatalog:
    """
    The active rules, in catalog order, with an id index.

    Frozen and shared freely between threads; filtering returns tuples.
    """

    rules: tuple[ComplianceRule, ...]
    standard: str = ""
    version: str = ""
    _by_id: Mapping[str, ComplianceRule] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        index: dict[str, ComplianceRule] = {}
        for rule in self.rules:
            if rule.id in index:
                raise CatalogError(rule.id, "duplicate rule id")
            index[rule.id] = rule
        object.__setattr__(self, "rules", tuple(self.rules))
        object.__setattr__(self, "_by_id", MappingProxyType(index))

    def __iter__(self) -> Iterator[ComplianceRule]:
        return iter(self.rules)

    def __len__(self) -> int:
        return len(self.rules)

    def __contains__(self, rule_id: object) -> bool:
        return rule_id in self._by_id

    def get(self, rule_id: str) -> ComplianceRule | None:
        return self._by_id.get(rule_id)

    def by_type(self, rule_type: str) -> tuple[ComplianceRule, ...]:
        return tuple(r for r in self.rules if r.rule_type == rule_type)

    def format_rule(self, format_type: str) -> ComplianceRule | None:
        """The format rule whose requirements describe `format_type`."""
        for rule in self.by_type("format"):
            if rule.requirements.format_type == format_type:
                return rule
        return None

    def serving_size_rule(self, check: str) -> ComplianceRule | None:
        for rule in self.by_type("serving_size"):
            if rule.requirements.check == check:
                return rule
        return None

    def nutrient_rule(self, check: str) -> ComplianceRule | None:
        for rule in self.by_type("mandatory_nutrients"):
            if rule.requirements.check == check:
                return rule
        return None

    @classmethod
    def from_records(
        cls,
        rows: Iterable[Mapping[str, Any]],
        standard: str = "",
        version: str = "",
    ) -> RuleCatalog:
        """
        Build a catalog from persisted rule rows.

        `requirements` and `applicable_to` may be JSON strings (as stored in
        a database column) or already-decoded mappings. Rows with
        `active: false` are skipped.
        """
        rules = []
        for row in rows:
            rule = parse_rule(row)
            if rule.active:
                rules.append(rule)
            else:
                logger.debug("Skipping inactive rule %s", rule.id)
        return cls(rules=tuple(rules), standard=standard, version=version)


# ── Row parsing ────────────────────────────────────────


def _decode(value: Any, rule_id: str, what: str) -> Any:
    if isinstance(value, str):
        try:
            return json.loads(value)
        except json.JSONDecodeError as e:
            raise CatalogError(rule_id, f"{what} is not valid JSON ({e})") from e
    return value


def _require(data: Mapping[str, Any], key: str, rule_id: str, what: str = "requirements") -> Any:
    value = data.get(key)
    if value is None or value == "":
        raise CatalogError(rule_id, f"{what} is missing '{key}'")
    return value


def _number(value: Any, rule_id: str, what: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise CatalogError(rule_id, f"{what} must be a number, got {value!r}")
    return float(value)


def _optional_number(data: Mapping[str, Any], key: str, rule_id: str) -> float | None:
    value = data.get(key)
    return None if value is None else _number(value, rule_id, key)


def _phrases(terms: Any, rule_id: str, key: str) -> tuple[str, ...]:
    if isinstance(terms, str) or not all(isinstance(t, str) and t.strip() for t in terms):
        raise CatalogError(rule_id, f"{key} must be a list of non-empty strings")
    return tuple(" ".join(t.lower().replace("-", " ").split()) for t in terms)


def _terms(data: Mapping[str, Any], rule_id: str) -> tuple[str, ...]:
    return _phrases(_require(data, "claim_terms", rule_id), rule_id, "claim_terms")


def _exclusions(data: Mapping[str, Any], rule_id: str) -> tuple[str, ...]:
    return _phrases(data.get("exclude_terms") or (), rule_id, "exclude_terms")


def _inclusive(data: Mapping[str, Any], rule_id: str) -> bool:
    comparison = data.get("comparison", "<=")
    if comparison not in _COMPARISONS:
        raise CatalogError(rule_id, f"comparison must be '<' or '<=', got {comparison!r}")
    return _COMPARISONS[comparison]


def _parse_applicable_to(raw: Any, rule_id: str) -> tuple[Predicate, ...]:
    raw = _decode(raw, rule_id, "applicable_to")
    if not raw:
        return ()
    if not isinstance(raw, Mapping):
        raise CatalogError(rule_id, "applicable_to must be a mapping")

    predicates: list[Predicate] = []
    for key, value in raw.items():
        if key == "package_surface_area":
            if not isinstance(value, Mapping) or not set(value) <= {"min", "max"}:
                raise CatalogError(rule_id, "package_surface_area must be a mapping with 'min' and/or 'max'")
            predicates.append(SurfaceAreaRange(
                min=_optional_number(value, "min", rule_id),
                max=_optional_number(value, "max", rule_id),
            ))
        elif isinstance(value, bool):
            predicates.append(FlagPredicate(name=str(key), expected=value))
        else:
            raise CatalogError(rule_id, f"unsupported applicable_to predicate {key!r}: {value!r}")
    return tuple(predicates)


def _parse_format(req: Mapping[str, Any], rule_id: str) -> FormatRequirements:
    format_type = _require(req, "format_type", rule_id)
    if format_type not in LABEL_FORMATS:
        raise CatalogError(rule_id, f"unknown format_type {format_type!r}")
    font_sizes = req.get("font_sizes") or {}
    return FormatRequirements(
        format_type=format_type,
        min_package_surface_area=_optional_number(req, "min_package_surface_area", rule_id),
        max_package_surface_area=_optional_number(req, "max_package_surface_area", rule_id),
        min_vertical_space=_optional_number(req, "min_vertical_space", rule_id),
        font_sizes=MappingProxyType({str(k): _number(v, rule_id, f"font_sizes.{k}") for k, v in font_sizes.items()}),
        allowed_nutrients=tuple(req.get("allowed_nutrients") or ()),
    )


def _parse_rounding_bands(raw: Any, rule_id: str) -> tuple[RoundingBand, ...]:
    bands = []
    for entry in raw or ():
        bounds = _require(entry, "range", rule_id, "rounding rule")
        if not isinstance(bounds, (list, tuple)) or len(bounds) != 2:
            raise CatalogError(rule_id, f"rounding rule range must be [lower, upper], got {bounds!r}")
        lower, upper = bounds
        bands.append(RoundingBand(
            lower=_number(lower, rule_id, "range lower bound"),
            upper=None if upper is None else _number(upper, rule_id, "range upper bound"),
            increment=_number(_require(entry, "increment", rule_id, "rounding rule"), rule_id, "increment"),
            prefix=str(entry.get("prefix") or ""),
        ))
    return tuple(bands)


def _parse_serving_size(req: Mapping[str, Any], rule_id: str) -> ServingSizeRequirements:
    check = _require(req, "check", rule_id)
    if check not in SERVING_SIZE_CHECKS:
        raise CatalogError(rule_id, f"unknown serving_size check {check!r}")
    bands = _parse_rounding_bands(req.get("rounding_rules"), rule_id)
    if check in ("gram_rounding", "servings_rounding") and not bands:
        raise CatalogError(rule_id, f"{check} needs rounding_rules")
    return ServingSizeRequirements(
        check=check,
        rounding_bands=bands,
        min_percent_of_racc=_optional_number(req, "min_percent_of_racc", rule_id),
        max_percent_of_racc=_optional_number(req, "max_percent_of_racc", rule_id),
        min_racc_ratio=_optional_number(req, "min_racc_ratio", rule_id),
        max_racc_ratio=_optional_number(req, "max_racc_ratio", rule_id),
    )


def _parse_mandatory(req: Mapping[str, Any], rule_id: str) -> MandatoryNutrientRequirements:
    check = req.get("check", "presence")
    if check not in NUTRIENT_CHECKS:
        raise CatalogError(rule_id, f"unknown mandatory_nutrients check {check!r}")
    rows = _require(req, "nutrients_in_order", rule_id)
    nutrients = []
    for row in rows:
        name = _require(row, "name", rule_id, "nutrient entry")
        nutrients.append(NutrientRequirement(
            name=name,
            display=row.get("display") or name.replace("_", " ").title(),
            unit=_require(row, "unit", rule_id, f"nutrient '{name}'"),
            mandatory=bool(row.get("mandatory", True)),
            show_dv=bool(row.get("show_dv", False)),
            indent_level=int(row.get("indent_level", 0)),
        ))
    return MandatoryNutrientRequirements(check=check, nutrients=tuple(nutrients))


def _parse_ceiling(req: Mapping[str, Any], rule_id: str) -> CeilingClaim:
    co_limits = tuple(
        NutrientLimit(
            nutrient=_require(entry, "nutrient", rule_id, "co_limit"),
            limit=_number(_require(entry, "limit", rule_id, "co_limit"), rule_id, "co_limit limit"),
            inclusive=_inclusive(entry, rule_id),
        )
        for entry in req.get("co_limits") or ()
    )
    return CeilingClaim(
        claim_terms=_terms(req, rule_id),
        nutrient=_require(req, "nutrient", rule_id),
        limit=_number(_require(req, "limit", rule_id), rule_id, "limit"),
        inclusive=_inclusive(req, rule_id),
        per_serving=bool(req.get("per_serving", True)),
        unit=str(req.get("unit") or ""),
        co_limits=co_limits,
        max_percent_calories=_optional_number(req, "max_percent_calories", rule_id),
        meal_limit_per_100g=_optional_number(req, "meal_limit_per_100g", rule_id),
        meal_max_percent_calories=_optional_number(req, "meal_max_percent_calories", rule_id),
        exclude_terms=_exclusions(req, rule_id),
    )


def _parse_reduction(req: Mapping[str, Any], rule_id: str) -> ReductionClaim:
    return ReductionClaim(
        claim_terms=_terms(req, rule_id),
        nutrient=_require(req, "nutrient", rule_id),
        min_reduction_percentage=_number(
            _require(req, "min_reduction_percentage", rule_id), rule_id, "min_reduction_percentage"
        ),
        exclude_terms=_exclusions(req, rule_id),
    )


def _parse_light(req: Mapping[str, Any], rule_id: str) -> LightClaim:
    defaults = LightClaim(claim_terms=())
    return LightClaim(
        claim_terms=_terms(req, rule_id),
        nutrient=req.get("nutrient", defaults.nutrient),
        fat_calorie_threshold=_optional_number(req, "fat_calorie_threshold", rule_id) or defaults.fat_calorie_threshold,
        min_fat_reduction=_optional_number(req, "min_fat_reduction", rule_id) or defaults.min_fat_reduction,
        min_calorie_reduction=_optional_number(req, "min_calorie_reduction", rule_id) or defaults.min_calorie_reduction,
        exclude_terms=_exclusions(req, rule_id),
    )


def _parse_daily_value(req: Mapping[str, Any], rule_id: str) -> DailyValueClaim:
    nutrients = _require(req, "applicable_nutrients", rule_id)
    terms = _terms(req, rule_id)
    qualified = _phrases(req.get("qualified_terms") or (), rule_id, "qualified_terms")
    if not set(qualified) <= set(terms):
        raise CatalogError(rule_id, "qualified_terms must also be listed in claim_terms")
    return DailyValueClaim(
        claim_terms=terms,
        min_dv_percentage=_number(_require(req, "min_dv_percentage", rule_id), rule_id, "min_dv_percentage"),
        max_dv_percentage=_optional_number(req, "max_dv_percentage", rule_id),
        applicable_nutrients=tuple(nutrients),
        qualified_terms=qualified,
        exclude_terms=_exclusions(req, rule_id),
    )


def _parse_healthy(req: Mapping[str, Any], rule_id: str) -> HealthyClaim:
    limits = _require(req, "dv_limits", rule_id)
    return HealthyClaim(
        claim_terms=_terms(req, rule_id),
        dv_limits=MappingProxyType({str(k): _number(v, rule_id, f"dv_limits.{k}") for k, v in limits.items()}),
        effective_date=str(req.get("effective_date") or ""),
        compliance_deadline=str(req.get("compliance_deadline") or ""),
        exclude_terms=_exclusions(req, rule_id),
    )


_CLAIM_PARSERS: dict[str, Callable[[Mapping[str, Any], str], ClaimRequirements]] = {
    "ceiling": _parse_ceiling,
    "reduction": _parse_reduction,
    "light": _parse_light,
    "daily_value": _parse_daily_value,
    "healthy": _parse_healthy,
}


def _parse_claim(req: Mapping[str, Any], rule_id: str) -> ClaimRequirements:
    kind = _require(req, "kind", rule_id)
    if kind not in _CLAIM_PARSERS:
        raise CatalogError(rule_id, f"unknown claim kind {kind!r} (expected one of {', '.join(CLAIM_KINDS)})")
    return _CLAIM_PARSERS[kind](req, rule_id)


_REQUIREMENT_PARSERS: dict[str, Callable[[Mapping[str, Any], str], Requirements]] = {
    "format": _parse_format,
    "serving_size": _parse_serving_size,
    "mandatory_nutrients": _parse_mandatory,
    "nutrient_content_claim": _parse_claim,
}


def parse_rule(row: Mapping[str, Any]) -> ComplianceRule:
    """Validate one catalog row and turn it into a ComplianceRule."""
    if not isinstance(row, Mapping):
        raise CatalogError("<unknown>", f"rule row must be a mapping, got {type(row).__name__}")
    rule_id = row.get("id")
    if not rule_id or not isinstance(rule_id, str):
        raise CatalogError("<unknown>", f"rule row without an id: {dict(row)!r}")

    rule_type = _require(row, "rule_type", rule_id, "rule")
    if rule_type not in RULE_TYPES:
        raise CatalogError(rule_id, f"unknown rule_type {rule_type!r}")

    severity = _require(row, "severity", rule_id, "rule")
    if severity not in SEVERITIES:
        raise CatalogError(rule_id, f"unknown severity {severity!r}")

    rule_category = row.get("rule_category", "required")
    if rule_category not in RULE_CATEGORIES:
        raise CatalogError(rule_id, f"unknown rule_category {rule_category!r}")

    cfr_reference = str(row.get("cfr_reference") or "").strip()
    if rule_type in CITED_RULE_TYPES and not cfr_reference:
        raise CatalogError(rule_id, f"{rule_type} rules must carry a cfr_reference")

    requirements = _decode(_require(row, "requirements", rule_id, "rule"), rule_id, "requirements")
    if not isinstance(requirements, Mapping):
        raise CatalogError(rule_id, "requirements must be a mapping")

    try:
        parsed = _REQUIREMENT_PARSERS[rule_type](requirements, rule_id)
    except (TypeError, ValueError, AttributeError) as e:
        raise CatalogError(rule_id, f"malformed requirements ({e})") from e

    return ComplianceRule(
        id=rule_id,
        rule_type=rule_type,
        rule_category=rule_category,
        rule_name=str(_require(row, "rule_name", rule_id, "rule")),
        description=str(row.get("description") or ""),
        requirements=parsed,
        cfr_reference=cfr_reference,
        severity=severity,
        applicable_to=_parse_applicable_to(row.get("applicable_to"), rule_id),
        active=bool(row.get("active", True)),
    )


# ── Loading ────────────────────────────────────────────

_catalog_cache: dict[tuple[Path, tuple[str, ...]], RuleCatalog] = {}


def load_catalog(rule_files: list[str] | None = None, rules_dir: Path | None = None) -> RuleCatalog:
    """
    Load the rule catalog from YAML files.

    Args:
        rule_files: Specific rule files to load. Defaults to config list.
        rules_dir: Directory holding the files. Defaults to config path.

    Returns:
        A RuleCatalog of every active rule, in file order.

    Raises:
        CatalogError: a file is unreadable or an entry is malformed.
    """
    settings = get_settings()
    rules_dir = Path(rules_dir or settings.paths.rules_dir)
    if rule_files is None:
        rule_files = settings.compliance.rule_files

    cache_key = (rules_dir, tuple(rule_files))
    if cache_key in _catalog_cache:
        return _catalog_cache[cache_key]

    rows: list[Mapping[str, Any]] = []
    standard = version = ""

    for filename in rule_files:
        rule_path = rules_dir / filename
        if not rule_path.exists():
            logger.warning("Rule file not found: %s", rule_path)
            continue

        try:
            with open(rule_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise CatalogError(filename, f"invalid YAML ({e})") from e

        file_rows = data.get("rules", [])
        standard = standard or str(data.get("standard", filename))
        version = version or str(data.get("catalog_version", ""))
        rows.extend(file_rows)
        logger.info("Loaded %d rules from %s (%s)", len(file_rows), filename, data.get("standard", filename))

    if not rows:
        raise CatalogError(str(rules_dir), "no rules loaded")

    catalog = RuleCatalog.from_records(rows, standard=standard, version=version)
    _catalog_cache[cache_key] = catalog
    logger.info("Total active rules: %d", len(catalog))
    return catalog
