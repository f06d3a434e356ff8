"""
NFP Compliance CLI
===================
Command-line interface for the Nutrition Facts Panel compliance engine.

Commands:
    validate      — Validate label files (JSON / YAML) against the FDA rule catalog
    rules         — List the rule catalog
    racc          — Search the RACC reference table
    serving-size  — Check a serving size against its RACC category
    report        — Generate a cross-label summary report
"""

from __future__ import annotations

import sys
from pathlib import Path

import click
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from nfp_compliance import __version__
from nfp_compliance.config import get_settings
from nfp_compliance.utils.helpers import LABEL_SUFFIXES, find_label_files, format_number
from nfp_compliance.utils.log import get_logger, label_context, setup_logging

logger = get_logger(__name__)
console = Console()

STATUS_COLORS = {
    "compliant": "green",
    "warnings": "yellow",
    "errors": "red",
}
SEVERITY_COLORS = {"error": "red", "warning": "yellow", "info": "dim"}


# ═══════════════════════════════════════════════════════
#  Root group
# ═══════════════════════════════════════════════════════
@click.group()
@click.version_option(version=__version__, prog_name="nfp-compliance")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.option("--log-file", is_flag=True, help="Also write logs to the configured log directory.")
def main(verbose: bool, log_file: bool):
    """FDA Nutrition Facts Panel compliance checker (21 CFR 101)."""
    settings = get_settings()
    log_path = None
    if log_file:
        settings.ensure_dirs()
        log_path = settings.paths.log_dir / "nfp-compliance.log"
    setup_logging("DEBUG" if verbose else settings.log_level, log_path)


# ═══════════════════════════════════════════════════════
#  VALIDATE — check label files for compliance
# ═══════════════════════════════════════════════════════
def _collect_label_files(paths: tuple[Path, ...], labels_dir: Path | None) -> list[Path]:
    files: list[Path] = []
    for p in paths:
        if p.is_file() and p.suffix.lower() in LABEL_SUFFIXES:
            files.append(p)
        elif p.is_dir():
            files.extend(find_label_files(p))

    if labels_dir:
        files.extend(find_label_files(labels_dir))

    if not files and not paths and not labels_dir:
        # Fall back to configured labels_dir
        configured = Path(get_settings().paths.labels_dir)
        if configured.exists():
            files = find_label_files(configured)

    return list(dict.fromkeys(files))


@main.command()
@click.argument("paths", nargs=-1, type=click.Path(exists=True, path_type=Path))
@click.option(
    "--labels-dir", "-d",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Directory of label files to validate (alternative to passing file paths).",
)
@click.option("--report/--no-report", default=True, help="Write Markdown / JSON reports.")
@click.option(
    "--format", "-f",
    type=click.Choice(["md", "json", "both"], case_sensitive=False),
    default=None,
    help="Report output format. Default: config.",
)
@click.option("--output-dir", "-o", type=click.Path(file_okay=False, path_type=Path), default=None,
              help="Report directory. Default: config.")
@click.option("--workers", "-w", type=int, default=None, help="Parallel workers. Default: config.")
def validate(
    paths: tuple[Path, ...],
    labels_dir: Path | None,
    report: bool,
    format: str | None,
    output_dir: Path | None,
    workers: int | None,
):
    """Validate label files against the FDA NFP rule catalog."""
    from nfp_compliance.compliance.checker import ComplianceEngine
    from nfp_compliance.compliance.labels import load_label_file
    from nfp_compliance.exceptions import ComplianceError
    from nfp_compliance.reporting.report import generate_report

    settings = get_settings()
    label_files = _collect_label_files(paths, labels_dir)
    if not label_files:
        console.print("[red]No label files found.[/red] Pass file paths or use --labels-dir.")
        sys.exit(1)

    try:
        engine = ComplianceEngine.from_settings()
    except ComplianceError as e:
        logger.error("Cannot load rule catalog: %s", e, exc_info=True)
        console.print(f"[red]Cannot load rule catalog:[/red] {e}")
        sys.exit(2)

    console.print(f"\n[bold]Validating {len(label_files)} label(s)…[/bold]\n")

    names: list[str] = []
    labels = []
    failed_files = 0
    with Progress(
        SpinnerColumn(),
        TextColumn("{task.description}"),
        BarColumn(),
        TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("Loading labels…", total=len(label_files))
        for path in label_files:
            progress.update(task, description=f"Loading {path.name}…")
            try:
                with label_context(path.name):
                    name, label = load_label_file(path, settings.compliance.default_format)
                names.append(name)
                labels.append(label)
            except ComplianceError as e:
                failed_files += 1
                logger.error("Failed to load %s: %s", path.name, e, exc_info=True)
                console.print(f"  [red]✗[/red] {path.name}: {e}")
            progress.advance(task)

    reports = engine.validate_many(labels, workers or settings.processing.max_workers, names=names)

    if report:
        out = output_dir or Path(settings.paths.report_dir)
        for name, label, result in zip(names, labels, reports):
            try:
                generate_report(name, result, label, out, format, catalog=engine.catalog)
            except OSError as e:
                logger.error("Failed to write report for %s: %s", name, e, exc_info=True)
                console.print(f"  [red]✗[/red] {name}: cannot write report ({e})")

    _print_results_table(names, reports)
    for name, result in zip(names, reports):
        _print_failures(name, result)

    blocked = sum(1 for r in reports if not r.is_publishable)
    console.print(
        f"\n[bold]Done.[/bold] Validated {len(reports)}/{len(label_files)} label(s); "
        f"{blocked} blocked from publication.\n"
    )
    if blocked or failed_files:
        sys.exit(1)


def _print_results_table(names, reports):
    """Display a rich summary table of results."""
    table = Table(title="Compliance Summary", show_lines=True)
    table.add_column("Label", style="bold")
    table.add_column("Format", style="cyan")
    table.add_column("Status", justify="center")
    table.add_column("Pass", justify="right", style="green")
    table.add_column("Errors", justify="right", style="red")
    table.add_column("Warnings", justify="right", style="yellow")
    table.add_column("Results", justify="right", style="dim")

    for name, r in zip(names, reports):
        color = STATUS_COLORS.get(r.overall_status, "dim")
        table.add_row(
            name,
            r.label_format or "-",
            f"[{color}]{r.overall_status.upper()}[/{color}]",
            str(sum(1 for v in r.validation_results if v.passed)),
            str(r.errors_count),
            str(r.warnings_count),
            str(len(r.validation_results)),
        )

    console.print()
    console.print(table)


def _print_failures(name, report):
    if not report.failures:
        return
    console.print(f"\n[bold]{name}[/bold]")
    for r in report.failures:
        color = SEVERITY_COLORS.get(r.severity, "dim")
        ref = f" [dim]({r.cfr_reference})[/dim]" if r.cfr_reference else ""
        console.print(f"  [{color}]{r.severity.upper():<7}[/{color}] {r.rule_id}: {r.message}{ref}")


# ═══════════════════════════════════════════════════════
#  RULES — list the catalog
# ═══════════════════════════════════════════════════════
@main.command()
@click.option(
    "--type", "-t", "rule_type",
    type=click.Choice(["format", "serving_size", "mandatory_nutrients", "nutrient_content_claim"]),
    default=None,
    help="Only list rules of this type.",
)
def rules(rule_type: str | None):
    """List the active compliance rules."""
    from nfp_compliance.compliance.rules import load_catalog

    catalog = load_catalog()
    selected = catalog.by_type(rule_type) if rule_type else catalog.rules

    table = Table(title=f"Rule Catalog {catalog.version}".strip(), show_lines=False)
    table.add_column("ID", style="bold")
    table.add_column("Type", style="cyan")
    table.add_column("Severity", justify="center")
    table.add_column("CFR Ref")
    table.add_column("Name")

    for rule in selected:
        color = SEVERITY_COLORS.get(rule.severity, "dim")
        table.add_row(
            rule.id,
            rule.rule_type,
            f"[{color}]{rule.severity}[/{color}]",
            rule.cfr_reference or "-",
            rule.rule_name,
        )

    console.print(table)
    console.print(f"[dim]{len(selected)} rule(s)[/dim]")


# ═══════════════════════════════════════════════════════
#  RACC — search the reference amount table
# ═══════════════════════════════════════════════════════
@main.command()
@click.argument("query", required=False, default="")
@click.option("--category", "-c", default=None, help="Only list entries in this top-level category.")
def racc(query: str, category: str | None):
    """Search RACC categories by name or product example."""
    from nfp_compliance.compliance.racc import load_racc_table

    table_data = load_racc_table()
    entries = table_data.search(query)
    if category:
        wanted = {e.id for e in table_data.by_category(category)}
        entries = [e for e in entries if e.id in wanted]

    if not entries:
        console.print(f"[yellow]No RACC categories match '{query or category}'.[/yellow]")
        console.print(f"[dim]Categories: {', '.join(table_data.categories())}[/dim]")
        sys.exit(1)

    table = Table(title="Reference Amounts Customarily Consumed", show_lines=True)
    table.add_column("ID", style="bold")
    table.add_column("RACC", justify="right")
    table.add_column("Category", style="cyan")
    table.add_column("Subcategory")
    table.add_column("Household")

    for e in entries:
        table.add_row(
            e.id,
            f"{format_number(e.racc_amount)} {e.racc_unit}",
            e.category,
            e.subcategory,
            e.household_measure,
        )
    console.print(table)


# ═══════════════════════════════════════════════════════
#  SERVING-SIZE — check one serving size against its RACC
# ═══════════════════════════════════════════════════════
@main.command("serving-size")
@click.argument("serving_g", type=float)
@click.argument("total_g", type=float)
@click.argument("category")
@click.option("--servings", "-s", type=float, default=None, help="Declared servings per container.")
def serving_size(serving_g: float, total_g: float, category: str, servings: float | None):
    """Validate SERVING_G against the RACC for CATEGORY, for a TOTAL_G product."""
    from nfp_compliance.compliance.racc import load_racc_table
    from nfp_compliance.compliance.serving_size import (
        get_serving_size_recommendation,
        validate_serving_size,
    )

    table = load_racc_table()
    result = validate_serving_size(serving_g, total_g, category, servings, racc_table=table)

    icons = {"error": "[red]✗[/red]", "warning": "[yellow]![/yellow]", "info": "[blue]i[/blue]", "success": "[green]✓[/green]"}
    console.print()
    if result.racc_category is not None:
        racc = result.racc_category
        console.print(
            f"[bold]{racc.id}[/bold]: RACC {format_number(racc.racc_amount)} {racc.racc_unit} "
            f"({racc.subcategory or racc.category})"
        )
    for message in result.messages:
        ref = f" [dim]({message.cfr_reference})[/dim]" if message.cfr_reference else ""
        console.print(f"  {icons.get(message.type, '-')} {message.message}{ref}")

    recommendation = get_serving_size_recommendation(category, total_g, racc_table=table)
    if recommendation is not None:
        console.print(
            f"\n[bold]Recommended:[/bold] {format_number(recommendation.serving_size)} g per serving, "
            f"{format_number(recommendation.servings_per_container)} serving(s) per container"
            f" — {recommendation.household_measure}"
        )
        if recommendation.can_use_dual_column:
            console.print("  [dim]Dual-column labeling may be used.[/dim]")

    status = "[green]VALID[/green]" if result.is_valid else "[red]NOT VALID[/red]"
    console.print(f"\n{status}\n")
    if not result.is_valid:
        sys.exit(1)


# ═══════════════════════════════════════════════════════
#  REPORT — generate cross-label summary
# ═══════════════════════════════════════════════════════
@main.command()
@click.option(
    "--output-dir", "-o",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Output directory for the summary report.",
)
@click.option(
    "--reports-dir", "-r",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Directory holding JSON label reports. Default: config.",
)
def report(output_dir: Path | None, reports_dir: Path | None):
    """Generate a cross-label summary report from existing validation results."""
    from nfp_compliance.reporting.report import generate_summary_report

    settings = get_settings()
    reports_dir = reports_dir or Path(settings.paths.report_dir)
    out = output_dir or reports_dir

    json_files = sorted(reports_dir.glob("report-*.json")) if reports_dir.exists() else []
    if not json_files:
        console.print(f"[yellow]No JSON report files found in {reports_dir}[/yellow]")
        console.print("[dim]Run 'nfp-compliance validate' first.[/dim]")
        sys.exit(1)

    console.print(f"\n[bold]Generating summary from {len(json_files)} report(s)…[/bold]\n")
    summary_path = generate_summary_report(json_files, out)
    console.print(f"[bold green]Summary report:[/bold green] {summary_path}\n")


if __name__ == "__main__":
    main()
