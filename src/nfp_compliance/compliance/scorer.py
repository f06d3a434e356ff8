"""
Compliance Scorer
==================
Derives a label's overall status from its findings.

Only non-passing results count. A single error-severity finding makes
the label "errors" regardless of how many warnings exist; info-severity
findings never affect the status.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from nfp_compliance.compliance.models import ValidationResult
from nfp_compliance.utils.log import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class StatusSummary:
    overall_status: str  # "compliant", "warnings", "errors"
    errors_count: int
    warnings_count: int


def derive_status(results: Iterable[ValidationResult]) -> StatusSummary:
    errors = warnings = 0
    for result in results:
        if result.passed:
            continue
        if result.severity == "error":
            errors += 1
        elif result.severity == "warning":
            warnings += 1

    if errors:
        status = "errors"
    elif warnings:
        status = "warnings"
    else:
        status = "compliant"
    return StatusSummary(overall_status=status, errors_count=errors, warnings_count=warnings)
