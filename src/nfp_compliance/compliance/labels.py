"""
Label Data
===========
The input record the engine validates, plus nutrient-key normalisation
and JSON / YAML label-file loading.

Nutrient keys are accepted in several spellings ("sodium", "sodium_mg",
"Sodium", "totalFat", "fiber") and normalised to the canonical snake_case
names used by the rule catalog. A unit suffix on a key is remembered in
`declared_units` so the mandatory-nutrient checker can verify it.
"""

from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

import yaml

from nfp_compliance.compliance.models import LABEL_FORMATS, empty_mapping
from nfp_compliance.exceptions import LabelDataError
from nfp_compliance.utils.log import get_logger

logger = get_logger(__name__)

# Canonical NFP nutrients in prescribed display order (21 CFR 101.9(c))
CANONICAL_NUTRIENTS = (
    "calories",
    "total_fat",
    "saturated_fat",
    "trans_fat",
    "cholesterol",
    "sodium",
    "total_carbohydrates",
    "dietary_fiber",
    "total_sugars",
    "added_sugars",
    "protein",
    "vitamin_d",
    "calcium",
    "iron",
    "potassium",
)

# Longest first so "_mg" wins over "_g"
_UNIT_SUFFIXES = ("_kcal", "_mcg", "_cal", "_mg", "_ug", "_g")

_UNIT_ALIASES = {"cal": "kcal", "ug": "mcg"}

_NUTRIENT_ALIASES = {
    "energy": "calories",
    "fat": "total_fat",
    "sat_fat": "saturated_fat",
    "carbs": "total_carbohydrates",
    "total_carbs": "total_carbohydrates",
    "carbohydrate": "total_carbohydrates",
    "carbohydrates": "total_carbohydrates",
    "total_carbohydrate": "total_carbohydrates",
    "fiber": "dietary_fiber",
    "fibre": "dietary_fiber",
    "dietary_fibre": "dietary_fiber",
    "sugar": "total_sugars",
    "sugars": "total_sugars",
    "total_sugar": "total_sugars",
    "includes_added_sugars": "added_sugars",
    "added_sugar": "added_sugars",
    "vitamin_d3": "vitamin_d",
}

_KNOWN_FIELDS = {
    "name",
    "nutrition_data",
    "serving_size_g",
    "serving_size_household",
    "servings_per_container",
    "format",
    "package_surface_area",
    "claim_statements",
    "racc_category_id",
    "total_product_weight_g",
    "reference_food",
    "display_order",
    "package_flags",
    "meal_or_main_dish",
}


def parse_nutrient_key(key: str) -> tuple[str, str | None]:
    """
    Split a nutrient key into (canonical name, declared unit or None).

    >>> parse_nutrient_key("sodium_mg")
    ('sodium', 'mg')
    >>> parse_nutrient_key("totalFat")
    ('total_fat', None)
    """
    name = re.sub(r"(?<=[a-z0-9])(?=[A-Z])", "_", key.strip())
    name = re.sub(r"[\s\-]+", "_", name).lower()

    unit = None
    if name not in _NUTRIENT_ALIASES and name not in CANONICAL_NUTRIENTS:
        for suffix in _UNIT_SUFFIXES:
            if name.endswith(suffix) and len(name) > len(suffix):
                unit = suffix[1:]
                name = name[: -len(suffix)]
                break

    name = _NUTRIENT_ALIASES.get(name, name)
    if unit is not None:
        unit = _UNIT_ALIASES.get(unit, unit)
    return name, unit


def canonical_nutrient(key: str) -> str:
    """Canonical nutrient name for any accepted key spelling."""
    return parse_nutrient_key(key)[0]


def _number(value: Any, what: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise LabelDataError(f"{what} must be a number, got {value!r}")
    value = float(value)
    if math.isnan(value) or math.isinf(value):
        raise LabelDataError(f"{what} must be finite, got {value!r}")
    return value


def _optional_number(value: Any, what: str, positive: bool = False) -> float | None:
    if value is None:
        return None
    number = _number(value, what)
    if positive and number <= 0:
        raise LabelDataError(f"{what} must be greater than zero, got {number!r}")
    return number


def _normalise_nutrients(raw: Mapping[str, Any], what: str) -> tuple[dict[str, float], dict[str, str]]:
    values: dict[str, float] = {}
    units: dict[str, str] = {}
    for key, value in raw.items():
        if value is None:
            continue
        name, unit = parse_nutrient_key(str(key))
        if name in values:
            raise LabelDataError(f"{what}: nutrient '{name}' declared more than once (key {key!r})")
        values[name] = _number(value, f"{what}['{key}']")
        if unit:
            units[name] = unit
    return values, units


@dataclass(frozen=True)
class LabelData:
    """
    One label record, per declared serving.

    Owned by the caller; the engine only reads it. Construction normalises
    nutrient keys and rejects malformed values with LabelDataError.
    """

    nutrition_data: Mapping[str, float] = field(default_factory=dict)
    serving_size_g: float | None = None
    serving_size_household: str | None = None
    servings_per_container: float | None = None
    format: str = "standard_vertical"
    package_surface_area: float | None = None
    claim_statements: tuple[str, ...] = ()
    racc_category_id: str | None = None
    total_product_weight_g: float | None = None
    reference_food: Mapping[str, float] = field(default_factory=empty_mapping)
    display_order: tuple[str, ...] | None = None
    package_flags: Mapping[str, bool] = field(default_factory=empty_mapping)
    meal_or_main_dish: bool = False
    declared_units: Mapping[str, str] = field(default_factory=empty_mapping, init=False)

    def __post_init__(self) -> None:
        if not isinstance(self.nutrition_data, Mapping):
            raise LabelDataError("nutrition_data must be a mapping of nutrient name to value")
        values, units = _normalise_nutrients(self.nutrition_data, "nutrition_data")
        object.__setattr__(self, "nutrition_data", MappingProxyType(values))
        object.__setattr__(self, "declared_units", MappingProxyType(units))

        reference, _ = _normalise_nutrients(self.reference_food or {}, "reference_food")
        object.__setattr__(self, "reference_food", MappingProxyType(reference))

        if self.format not in LABEL_FORMATS:
            raise LabelDataError(f"format must be one of {', '.join(LABEL_FORMATS)}, got {self.format!r}")

        object.__setattr__(self, "serving_size_g", _optional_number(self.serving_size_g, "serving_size_g", True))
        object.__setattr__(
            self,
            "servings_per_container",
            _optional_number(self.servings_per_container, "servings_per_container", True),
        )
        object.__setattr__(
            self,
            "package_surface_area",
            _optional_number(self.package_surface_area, "package_surface_area", True),
        )
        object.__setattr__(
            self,
            "total_product_weight_g",
            _optional_number(self.total_product_weight_g, "total_product_weight_g", True),
        )

        if isinstance(self.claim_statements, str):
            raise LabelDataError("claim_statements must be a list of claims, not a single string")
        object.__setattr__(self, "claim_statements", tuple(str(c) for c in (self.claim_statements or ())))

        if self.display_order is not None:
            object.__setattr__(
                self,
                "display_order",
                tuple(canonical_nutrient(str(n)) for n in self.display_order),
            )

        object.__setattr__(
            self,
            "package_flags",
            MappingProxyType({str(k): bool(v) for k, v in (self.package_flags or {}).items()}),
        )
        if not isinstance(self.meal_or_main_dish, bool):
            raise LabelDataError(f"meal_or_main_dish must be true or false, got {self.meal_or_main_dish!r}")

    @property
    def total_product_weight(self) -> float | None:
        """Net weight in grams; falls back to serving size x servings per container."""
        if self.total_product_weight_g is not None:
            return self.total_product_weight_g
        if self.serving_size_g is None:
            return None
        return self.serving_size_g * (self.servings_per_container or 1)

    def value(self, nutrient: str) -> float | None:
        return self.nutrition_data.get(canonical_nutrient(nutrient))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], default_format: str | None = None) -> LabelData:
        """
        Build LabelData from a decoded JSON / YAML mapping.

        `default_format` is used when the record does not declare a format.
        """
        if not isinstance(data, Mapping):
            raise LabelDataError(f"label data must be a mapping, got {type(data).__name__}")

        unknown = set(data) - _KNOWN_FIELDS
        if unknown:
            logger.debug("Ignoring unknown label fields: %s", ", ".join(sorted(unknown)))

        kwargs: dict[str, Any] = {k: data[k] for k in _KNOWN_FIELDS - {"name"} if data.get(k) is not None}
        if "claim_statements" in kwargs and not isinstance(kwargs["claim_statements"], str):
            kwargs["claim_statements"] = tuple(kwargs["claim_statements"])
        if "format" not in kwargs and default_format:
            kwargs["format"] = default_format
        if "display_order" in kwargs:
            kwargs["display_order"] = tuple(kwargs["display_order"])
        return cls(**kwargs)


def load_label_file(path: Path, default_format: str | None = None) -> tuple[str, LabelData]:
    """
    Load a label record from a .json / .yaml file.

    Returns:
        (label name, LabelData). The name is the file's "name" field,
        or the file stem when absent.
    """
    try:
        text = path.read_text(encoding="utf-8")
        if path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text)
    except (OSError, json.JSONDecodeError, yaml.YAMLError) as e:
        raise LabelDataError(f"{path.name}: cannot read label file ({e})") from e

    if not isinstance(data, Mapping):
        raise LabelDataError(f"{path.name}: label file must contain a mapping")

    try:
        label = LabelData.from_dict(data, default_format)
    except LabelDataError as e:
        raise LabelDataError(f"{path.name}: {e}") from e

    name = str(data.get("name") or path.stem)
    return name, label
