"""
Configuration loader.

Loads settings from config/settings.yaml and .env,
merges them, and provides a typed Settings object
accessible everywhere via `get_settings()`.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml
from dotenv import load_dotenv

# Project root = 2 levels up from src/nfp_compliance/
ROOT = Path(__file__).resolve().parent.parent.parent
CONFIG_DIR = ROOT / "config"
SETTINGS_FILE = CONFIG_DIR / "settings.yaml"

# Bundled catalog data ships inside the package
PACKAGE_DATA_DIR = Path(__file__).resolve().parent / "data"


@dataclass
class PathSettings:
    rules_dir: Path = field(default_factory=lambda: PACKAGE_DATA_DIR / "rules")
    racc_dir: Path = field(default_factory=lambda: PACKAGE_DATA_DIR / "racc")
    labels_dir: Path = field(default_factory=lambda: ROOT / "data" / "labels")
    output_dir: Path = field(default_factory=lambda: ROOT / "outputs")
    report_dir: Path = field(default_factory=lambda: ROOT / "outputs" / "reports")
    log_dir: Path = field(default_factory=lambda: ROOT / "outputs" / "logs")


@dataclass
class ComplianceSettings:
    rule_files: list[str] = field(default_factory=lambda: ["fda_nfp_rules.yaml"])
    racc_files: list[str] = field(default_factory=lambda: ["fda_racc.yaml"])
    default_format: str = "standard_vertical"


@dataclass
class ReportSettings:
    output_format: str = "both"  # "md", "json", "both"


@dataclass
class ProcessingSettings:
    max_workers: int = 4


@dataclass
class Settings:
    """Top-level settings object."""

    paths: PathSettings = field(default_factory=PathSettings)
    compliance: ComplianceSettings = field(default_factory=ComplianceSettings)
    report: ReportSettings = field(default_factory=ReportSettings)
    processing: ProcessingSettings = field(default_factory=ProcessingSettings)
    log_level: str = "INFO"

    def ensure_dirs(self) -> None:
        """Create all output directories if they don't exist."""
        for p in [
            self.paths.output_dir,
            self.paths.report_dir,
            self.paths.log_dir,
        ]:
            p.mkdir(parents=True, exist_ok=True)


# ── Singleton ─────────────────────────────────────────

_settings: Settings | None = None


def _load_yaml() -> dict:
    """Load the YAML config file."""
    if SETTINGS_FILE.exists():
        with open(SETTINGS_FILE, "r") as f:
            return yaml.safe_load(f) or {}
    return {}


def _resolve(value: str | Path) -> Path:
    """Relative paths in settings.yaml are relative to the project root."""
    p = Path(value)
    return p if p.is_absolute() else ROOT / p


def get_settings() -> Settings:
    """Get the global Settings instance (lazy-loaded singleton)."""
    global _settings
    if _settings is not None:
        return _settings

    # Load .env
    load_dotenv(ROOT / ".env")

    # Load YAML
    raw = _load_yaml()

    # Build settings from YAML with .env overrides
    paths_raw = raw.get("paths", {})
    paths = PathSettings(**{k: _resolve(v) for k, v in paths_raw.items()}) if paths_raw else PathSettings()
    if os.getenv("NFP_RULES_DIR"):
        paths.rules_dir = _resolve(os.environ["NFP_RULES_DIR"])
    if os.getenv("NFP_RACC_DIR"):
        paths.racc_dir = _resolve(os.environ["NFP_RACC_DIR"])

    comp_raw = raw.get("compliance", {})
    compliance = ComplianceSettings(
        rule_files=comp_raw.get("rule_files", ["fda_nfp_rules.yaml"]),
        racc_files=comp_raw.get("racc_files", ["fda_racc.yaml"]),
        default_format=comp_raw.get("default_format", "standard_vertical"),
    )

    report_raw = raw.get("report", {})
    report = ReportSettings(
        output_format=report_raw.get("output_format", "both"),
    )

    proc_raw = raw.get("processing", {})
    processing = ProcessingSettings(
        max_workers=int(os.getenv("MAX_WORKERS", proc_raw.get("max_workers", 4))),
    )

    log_raw = raw.get("logging", {})

    _settings = Settings(
        paths=paths,
        compliance=compliance,
        report=report,
        processing=processing,
        log_level=os.getenv("LOG_LEVEL", log_raw.get("level", "INFO")),
    )

    return _settings


def reset_settings() -> None:
    """Drop the cached Settings so the next get_settings() reloads them."""
    global _settings
    _settings = None


def get_root() -> Path:
    """Get the project root directory."""
    return ROOT
