"""Compliance engine: rule catalog, RACC table, checkers and aggregator."""

from nfp_compliance.compliance.checker import ComplianceEngine, validate_label
from nfp_compliance.compliance.labels import LabelData, load_label_file
from nfp_compliance.compliance.models import ComplianceRule, ValidationReport, ValidationResult
from nfp_compliance.compliance.racc import RACCCategory, RACCTable, load_racc_table
from nfp_compliance.compliance.rules import RuleCatalog, load_catalog

__all__ = [
    "ComplianceEngine",
    "ComplianceRule",
    "LabelData",
    "RACCCategory",
    "RACCTable",
    "RuleCatalog",
    "ValidationReport",
    "ValidationResult",
    "load_catalog",
    "load_label_file",
    "load_racc_table",
    "validate_label",
]
