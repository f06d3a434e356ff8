"""
Shared helper functions.
"""

from __future__ import annotations

import re
from pathlib import Path

LABEL_SUFFIXES = (".json", ".yaml", ".yml")


def safe_filename(name: str) -> str:
    """Convert an arbitrary string to a filesystem-safe filename."""
    return re.sub(r"[^\w\-]", "_", name).strip("_")


def find_label_files(directory: Path) -> list[Path]:
    """Recursively find all label data files (JSON / YAML) in a directory."""
    return sorted(p for p in directory.rglob("*") if p.is_file() and p.suffix.lower() in LABEL_SUFFIXES)


def format_number(value: float) -> str:
    """Render a number without a trailing '.0' (8.0 -> '8', 4.5 -> '4.5')."""
    if float(value).is_integer():
        return str(int(value))
    return f"{value:g}"
