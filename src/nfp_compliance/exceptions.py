"""
Engine exceptions.

Only catalog construction and label-record parsing raise. Once a
catalog is loaded and a LabelData exists, every problem found while
evaluating a label is reported as a ValidationResult instead.
"""

from __future__ import annotations


class ComplianceError(Exception):
    """Base class for all nfp_compliance errors."""


class CatalogError(ComplianceError):
    """A rule or RACC entry is malformed. Raised at load time."""

    def __init__(self, entry_id: str, message: str):
        self.entry_id = entry_id
        super().__init__(f"{entry_id}: {message}")


class LabelDataError(ComplianceError, ValueError):
    """A label record could not be turned into LabelData."""
