"""
Report Generator
==================
Generates plain-text, Markdown and JSON compliance reports, plus a
cross-label summary built from saved JSON reports.
"""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path

from nfp_compliance.compliance.daily_values import daily_value_percent, has_daily_value, nutrient_unit
from nfp_compliance.compliance.labels import CANONICAL_NUTRIENTS, LabelData
from nfp_compliance.compliance.models import NutrientRequirement, ValidationReport
from nfp_compliance.compliance.rounding import apply_fda_rounding, validate_servings_per_container_rounding
from nfp_compliance.compliance.rules import RuleCatalog
from nfp_compliance.config import get_settings
from nfp_compliance.utils.helpers import format_number, safe_filename
from nfp_compliance.utils.log import get_logger

logger = get_logger(__name__)

STATUS_ICONS = {"pass": "✅", "fail": "❌", "warning": "⚠️"}
TEXT_ICONS = {"pass": "✓", "fail": "✗", "warning": "•"}


def format_validation_report(report: ValidationReport) -> str:
    """Plain-text rendering of a report, one block per finding."""
    lines = [
        "",
        "Compliance Validation Report",
        f"Overall Status: {report.overall_status.upper()}",
        f"Errors: {report.errors_count} | Warnings: {report.warnings_count}",
        f"Validated: {report.validated_at.strftime('%Y-%m-%d %H:%M:%S %Z')}",
        "",
        "=" * 60,
    ]
    for result in report.validation_results:
        lines.append("")
        lines.append(f"{TEXT_ICONS[result.status]} [{result.severity.upper()}] {result.rule_name}")
        lines.append(f"  {result.message}")
        if result.cfr_reference:
            lines.append(f"  Reference: {result.cfr_reference}")
        if result.details:
            lines.append(f"  Details: {json.dumps(result.details, default=str)}")
    return "\n".join(lines) + "\n"


def _panel_nutrients(catalog: RuleCatalog | None) -> tuple[NutrientRequirement, ...]:
    rule = catalog.nutrient_rule("presence") if catalog else None
    if rule is not None:
        return rule.requirements.nutrients
    return tuple(
        NutrientRequirement(
            name=n,
            display=n.replace("_", " ").title(),
            unit=nutrient_unit(n),
            show_dv=has_daily_value(n),
        )
        for n in CANONICAL_NUTRIENTS
    )


def render_panel_outline(label: LabelData, catalog: RuleCatalog | None = None) -> list[str]:
    """The Nutrition Facts panel as it would be declared, with FDA rounding and %DV."""
    lines = ["```", "Nutrition Facts"]
    if label.servings_per_container is not None:
        spc = validate_servings_per_container_rounding(label.servings_per_container)
        display = spc.suggested_display if not spc.is_valid else format_number(label.servings_per_container)
        lines.append(f"{display} servings per container")
    if label.serving_size_g is not None:
        household = f"{label.serving_size_household} " if label.serving_size_household else ""
        lines.append(f"Serving size {household}({format_number(label.serving_size_g)}g)")
    lines.append("-" * 40)

    declared = apply_fda_rounding(label.nutrition_data)
    for nutrient in _panel_nutrients(catalog):
        value = label.nutrition_data.get(nutrient.name)
        if value is None:
            continue
        rounded = declared[nutrient.name]
        amount = rounded if isinstance(rounded, str) else format_number(rounded)
        unit = "" if nutrient.unit in ("", "kcal") else nutrient.unit
        row = f"{'  ' * nutrient.indent_level}{nutrient.display} {amount}{unit}"
        if nutrient.show_dv and has_daily_value(nutrient.name):
            row = f"{row:<34}{daily_value_percent(nutrient.name, value)}%"
        lines.append(row)

    lines.append("```")
    return lines


def _render_markdown(
    name: str,
    report: ValidationReport,
    label: LabelData | None,
    catalog: RuleCatalog | None,
) -> str:
    """Render a detailed Markdown compliance report."""
    lines: list[str] = [
        f"# Compliance Report: {name}",
        "",
        f"**Generated:** {datetime.now().strftime('%Y-%m-%d %H:%M')}",
        f"**Validated at:** {report.validated_at.isoformat()}",
        f"**Format:** {report.label_format or '—'}",
        "",
        "## Summary",
        "",
        "| Metric | Value |",
        "|--------|-------|",
        f"| **Status** | **{report.overall_status.upper()}** |",
        f"| Publishable | {'yes' if report.is_publishable else 'no'} |",
        f"| Rules evaluated | {len(report.validation_results)} |",
        f"| ✅ Passed | {sum(1 for r in report.validation_results if r.status == 'pass')} |",
        f"| ❌ Errors | {report.errors_count} |",
        f"| ⚠️ Warnings | {report.warnings_count} |",
        "",
        "## Rule-by-Rule Results",
        "",
        "| # | Status | Rule | CFR Ref | Severity | Message |",
        "|---|--------|------|---------|----------|---------|",
    ]
    for i, r in enumerate(report.validation_results, 1):
        lines.append(
            f"| {i} | {STATUS_ICONS[r.status]} | {r.rule_name} | {r.cfr_reference or '—'} | {r.severity} | {r.message} |"
        )
    lines.append("")

    if report.failures:
        lines.append("## Findings")
        lines.append("")
        for r in report.failures:
            lines.append(f"### {STATUS_ICONS[r.status]} {r.rule_name}")
            lines.append(f"- **Rule ID:** {r.rule_id}")
            if r.cfr_reference:
                lines.append(f"- **CFR Reference:** {r.cfr_reference}")
            lines.append(f"- **Severity:** {r.severity}")
            lines.append(f"- **Status:** {r.status}")
            lines.append(f"- **Message:** {r.message}")
            for key, value in r.details.items():
                lines.append(f"  - {key}: {value}")
            lines.append("")

    bundle = report.serving_size
    if bundle is not None:
        lines.append("## Serving Size / RACC")
        lines.append("")
        if bundle.racc_category is not None:
            racc = bundle.racc_category
            lines.append(f"- **RACC category:** {racc.id} ({format_number(racc.racc_amount)}{racc.racc_unit})")
            lines.append(f"- **Container:** {bundle.container_rule}")
        if bundle.suggested_serving_size is not None:
            lines.append(f"- **Suggested serving size:** {format_number(bundle.suggested_serving_size)}g")
        if bundle.suggested_household_measure:
            lines.append(f"- **Household measure:** {bundle.suggested_household_measure}")
        for message in bundle.messages:
            lines.append(f"- [{message.type}] {message.message}")
        lines.append("")

    if label is not None:
        lines.append("## Nutrition Facts Outline")
        lines.append("")
        lines.extend(render_panel_outline(label, catalog))
        lines.append("")

    return "\n".join(lines)


def _render_json(name: str, report: ValidationReport, label: LabelData | None) -> dict:
    data = {
        "label_name": name,
        "generated_at": datetime.now().isoformat(),
        "report": report.to_dict(),
    }
    if label is not None:
        data["nutrition_data"] = dict(label.nutrition_data)
    return data


def generate_report(
    name: str,
    report: ValidationReport,
    label: LabelData | None = None,
    output_dir: Path | None = None,
    output_format: str | None = None,
    catalog: RuleCatalog | None = None,
) -> list[Path]:
    """
    Write Markdown and/or JSON reports for one label.

    Returns: the written paths (markdown first).
    """
    settings = get_settings()
    if output_dir is None:
        output_dir = settings.paths.report_dir
    output_format = output_format or settings.report.output_format
    output_dir.mkdir(parents=True, exist_ok=True)

    safe_name = safe_filename(name)
    written: list[Path] = []

    if output_format in ("md", "both"):
        md_path = output_dir / f"report-{safe_name}.md"
        md_path.write_text(_render_markdown(name, report, label, catalog), encoding="utf-8")
        written.append(md_path)

    if output_format in ("json", "both"):
        json_path = output_dir / f"report-{safe_name}.json"
        json_path.write_text(
            json.dumps(_render_json(name, report, label), indent=2, ensure_ascii=False, default=str),
            encoding="utf-8",
        )
        written.append(json_path)

    logger.info("Reports: %s", ", ".join(p.name for p in written))
    return written


def generate_summary_report(
    json_files: list[Path],
    output_dir: Path | None = None,
) -> Path:
    """
    Generate a cross-label summary report (failure matrix) from saved JSON reports.
    Shows which labels fail which rules.
    """
    settings = get_settings()
    if output_dir is None:
        output_dir = settings.paths.report_dir
    output_dir.mkdir(parents=True, exist_ok=True)

    entries = []
    for path in json_files:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Skipping unreadable report %s: %s", path.name, e)
            continue
        if "report" not in data:
            logger.debug("Skipping %s: not a label report", path.name)
            continue
        entries.append((data.get("label_name", path.stem), data["report"]))

    out_path = output_dir / "summary-report.md"
    lines = [
        "# Cross-Label Compliance Summary",
        "",
        f"**Generated:** {datetime.now().strftime('%Y-%m-%d %H:%M')}",
        f"**Labels checked:** {len(entries)}",
        "",
        "## Overview",
        "",
        "| Label | Status | Errors | Warnings | Format |",
        "|-------|--------|--------|----------|--------|",
    ]
    for name, report in entries:
        lines.append(
            f"| {name[:40]} | {report['overall_status']} | {report['errors_count']} | "
            f"{report['warnings_count']} | {report.get('label_format', '—')} |"
        )
    lines.append("")

    failing_rules = sorted({
        r["rule_id"]
        for _, report in entries
        for r in report["validation_results"]
        if r["status"] != "pass"
    })
    if failing_rules:
        lines.append("## Failure Matrix")
        lines.append("")
        lines.append("| Rule |" + "|".join(name[:15] for name, _ in entries) + "|")
        lines.append("|------|" + "|".join("---" for _ in entries) + "|")
        for rule_id in failing_rules:
            cells = [rule_id[:40]]
            for _, report in entries:
                statuses = [r["status"] for r in report["validation_results"] if r["rule_id"] == rule_id]
                if not statuses:
                    cells.append("—")
                elif "fail" in statuses:
                    cells.append(STATUS_ICONS["fail"])
                elif "warning" in statuses:
                    cells.append(STATUS_ICONS["warning"])
                else:
                    cells.append(STATUS_ICONS["pass"])
            lines.append("| " + " | ".join(cells) + " |")

    out_path.write_text("\n".join(lines), encoding="utf-8")
    logger.info("Summary report: %s", out_path.name)
    return out_path
