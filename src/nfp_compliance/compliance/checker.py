"""
Compliance Checker — Main Engine
==================================
Orchestrates the full compliance check for a single label record:

1. Format eligibility for the package size
2. Serving size, servings per container and RACC checks
3. Mandatory nutrients for the format (presence, units, order)
4. Nutrient content claims
5. Overall status from the collected findings

Evaluation is pure: the engine holds only the immutable catalog and
RACC table it was built with, so one engine can validate many labels
concurrently.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Iterable, Sequence

from nfp_compliance.compliance.claims import check_claims
from nfp_compliance.compliance.formats import check_format, eligible_formats
from nfp_compliance.compliance.labels import LabelData
from nfp_compliance.compliance.models import ValidationReport, ValidationResult
from nfp_compliance.compliance.nutrients import check_mandatory_nutrients, nutrients_for_format
from nfp_compliance.compliance.racc import RACCTable, load_racc_table
from nfp_compliance.compliance.rules import RuleCatalog, load_catalog
from nfp_compliance.compliance.scorer import derive_status
from nfp_compliance.compliance.serving_size import serving_size_results
from nfp_compliance.config import get_settings
from nfp_compliance.utils.log import get_logger, label_context

logger = get_logger(__name__)


class ComplianceEngine:
    """Validates labels against one rule catalog and RACC table."""

    def __init__(self, catalog: RuleCatalog, racc_table: RACCTable):
        self.catalog = catalog
        self.racc_table = racc_table

    @classmethod
    def from_settings(cls) -> ComplianceEngine:
        """Build an engine from the configured rule and RACC files."""
        return cls(load_catalog(), load_racc_table())

    def validate(self, label: LabelData) -> ValidationReport:
        """
        Run every rule family against a label.

        Returns:
            ValidationReport with results in dispatch order: format,
            serving size, mandatory nutrients, claims.
        """
        results: list[ValidationResult] = []

        format_results = check_format(self.catalog, label)
        results.extend(format_results)
        logger.debug("Format: %d results", len(format_results))

        serving_results, serving_bundle = serving_size_results(self.catalog, self.racc_table, label)
        results.extend(serving_results)
        logger.debug("Serving size: %d results", len(serving_results))

        format_eligible = label.format in eligible_formats(
            self.catalog, label.package_surface_area, label.package_flags
        )
        nutrients = nutrients_for_format(self.catalog, label.format, format_eligible)
        nutrient_results = check_mandatory_nutrients(self.catalog, label, nutrients)
        results.extend(nutrient_results)
        logger.debug("Mandatory nutrients: %d results (%d required)", len(nutrient_results), len(nutrients))

        claim_results = check_claims(self.catalog, label, self.racc_table)
        results.extend(claim_results)
        logger.debug("Claims: %d results", len(claim_results))

        summary = derive_status(results)
        logger.info(
            "Validated %s label: %s (%d errors, %d warnings, %d results)",
            label.format, summary.overall_status, summary.errors_count, summary.warnings_count, len(results),
        )

        return ValidationReport(
            overall_status=summary.overall_status,
            validation_results=tuple(results),
            errors_count=summary.errors_count,
            warnings_count=summary.warnings_count,
            validated_at=datetime.now(timezone.utc),
            label_format=label.format,
            serving_size=serving_bundle,
        )

    def validate_many(
        self,
        labels: Iterable[LabelData],
        max_workers: int | None = None,
        names: Sequence[str] | None = None,
    ) -> list[ValidationReport]:
        """
        Validate labels concurrently; reports come back in input order.

        `names` (one per label) tag each label's log records; labels are
        numbered "#1", "#2", ... when omitted.
        """
        labels = list(labels)
        if names is None:
            names = [f"#{i}" for i in range(1, len(labels) + 1)]
        elif len(names) != len(labels):
            raise ValueError(f"got {len(names)} names for {len(labels)} labels")
        if max_workers is None:
            max_workers = get_settings().processing.max_workers
        if max_workers <= 1 or len(labels) <= 1:
            return [self._validate_named(name, label) for name, label in zip(names, labels)]

        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            return list(pool.map(self._validate_named, names, labels))

    def _validate_named(self, name: str, label: LabelData) -> ValidationReport:
        with label_context(name):
            return self.validate(label)


def validate_label(
    label: LabelData,
    catalog: RuleCatalog | None = None,
    racc_table: RACCTable | None = None,
) -> ValidationReport:
    """Validate one label; the catalog and table default to the configured ones."""
    engine = ComplianceEngine(catalog or load_catalog(), racc_table or load_racc_table())
    return engine.validate(label)
