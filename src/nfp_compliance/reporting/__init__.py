"""Reporting subpackage — Markdown / JSON / text report generation."""

from nfp_compliance.reporting.report import format_validation_report, generate_report, generate_summary_report

__all__ = ["format_validation_report", "generate_report", "generate_summary_report"]
