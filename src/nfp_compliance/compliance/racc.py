"""
RACC Table
===========
Reference Amounts Customarily Consumed (21 CFR 101.12(b)), keyed by
category id, with lookup helpers for the CLI and the serving-size
validator.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterable, Iterator, Mapping

import yaml

from nfp_compliance.config import get_settings
from nfp_compliance.exceptions import CatalogError
from nfp_compliance.utils.log import get_logger

logger = get_logger(__name__)

RACC_UNITS = ("g", "mL")


@dataclass(frozen=True)
class RACCCategory:
    id: str
    racc_amount: float
    racc_unit: str
    category: str
    subcategory: str = ""
    household_measure: str = ""
    label_statement: str = ""
    product_examples: tuple[str, ...] = ()
    notes: str = ""

    @property
    def racc_grams(self) -> float:
        """Reference amount in grams; mL is taken 1:1."""
        return self.racc_amount

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "racc_amount": self.racc_amount,
            "racc_unit": self.racc_unit,
            "category": self.category,
            "subcategory": self.subcategory,
            "household_measure": self.household_measure,
            "label_statement": self.label_statement,
            "product_examples": list(self.product_examples),
            "notes": self.notes,
        }


def parse_racc_row(row: Mapping[str, Any]) -> RACCCategory:
    """Validate one RACC row. Raises CatalogError naming the row id."""
    racc_id = row.get("id") if isinstance(row, Mapping) else None
    if not racc_id:
        raise CatalogError("<unknown>", f"RACC row without an id: {row!r}")

    amount = row.get("racc_amount")
    if isinstance(amount, bool) or not isinstance(amount, (int, float)) or amount <= 0:
        raise CatalogError(racc_id, f"racc_amount must be a positive number, got {amount!r}")

    unit = row.get("racc_unit", "g")
    if unit not in RACC_UNITS:
        raise CatalogError(racc_id, f"racc_unit must be one of {', '.join(RACC_UNITS)}, got {unit!r}")

    category = row.get("category")
    if not category:
        raise CatalogError(racc_id, "RACC row is missing 'category'")

    examples = row.get("product_examples") or ()
    if isinstance(examples, str):
        examples = [e.strip() for e in examples.split(",") if e.strip()]

    return RACCCategory(
        id=str(racc_id),
        racc_amount=float(amount),
        racc_unit=unit,
        category=str(category),
        subcategory=str(row.get("subcategory") or ""),
        household_measure=str(row.get("household_measure") or ""),
        label_statement=str(row.get("label_statement") or ""),
        product_examples=tuple(str(e) for e in examples),
        notes=str(row.get("notes") or ""),
    )


@dataclass(frozen=True)
class RACCTable:
    """Immutable RACC lookup table, in file order."""

    entries: tuple[RACCCategory, ...]
    _by_id: Mapping[str, RACCCategory] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        index: dict[str, RACCCategory] = {}
        for entry in self.entries:
            if entry.id in index:
                raise CatalogError(entry.id, "duplicate RACC category id")
            index[entry.id] = entry
        object.__setattr__(self, "entries", tuple(self.entries))
        object.__setattr__(self, "_by_id", MappingProxyType(index))

    def __iter__(self) -> Iterator[RACCCategory]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, racc_id: object) -> bool:
        return racc_id in self._by_id

    def get(self, racc_id: str) -> RACCCategory | None:
        return self._by_id.get(racc_id)

    def categories(self) -> list[str]:
        """Distinct top-level category names, in table order."""
        return list(dict.fromkeys(e.category for e in self.entries))

    def by_category(self, category: str) -> list[RACCCategory]:
        wanted = category.strip().lower()
        return [e for e in self.entries if e.category.lower() == wanted]

    def search(self, query: str) -> list[RACCCategory]:
        """Case-insensitive substring match on category, subcategory and product examples."""
        q = query.strip().lower()
        if not q:
            return list(self.entries)
        return [
            e for e in self.entries
            if q in e.category.lower()
            or q in e.subcategory.lower()
            or any(q in example.lower() for example in e.product_examples)
        ]

    @classmethod
    def from_records(cls, rows: Iterable[Mapping[str, Any]]) -> RACCTable:
        return cls(entries=tuple(parse_racc_row(row) for row in rows))


_table_cache: dict[tuple[Path, tuple[str, ...]], RACCTable] = {}


def load_racc_table(racc_files: list[str] | None = None, racc_dir: Path | None = None) -> RACCTable:
    """
    Load the RACC table from YAML files.

    Args:
        racc_files: Specific files to load. Defaults to config list.
        racc_dir: Directory holding the files. Defaults to config path.

    Raises:
        CatalogError: a file is unreadable or a row is malformed.
    """
    settings = get_settings()
    racc_dir = Path(racc_dir or settings.paths.racc_dir)
    if racc_files is None:
        racc_files = settings.compliance.racc_files

    cache_key = (racc_dir, tuple(racc_files))
    if cache_key in _table_cache:
        return _table_cache[cache_key]

    rows: list[Mapping[str, Any]] = []
    for filename in racc_files:
        path = racc_dir / filename
        if not path.exists():
            logger.warning("RACC file not found: %s", path)
            continue
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise CatalogError(filename, f"invalid YAML ({e})") from e

        file_rows = data.get("categories", [])
        rows.extend(file_rows)
        logger.info("Loaded %d RACC categories from %s", len(file_rows), filename)

    table = RACCTable.from_records(rows)
    _table_cache[cache_key] = table
    return table
