"""Pytest configuration and shared fixtures."""

import sys
from pathlib import Path

import pytest

# Add project root and src to path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT / "src"))


@pytest.fixture
def project_root():
    return ROOT


@pytest.fixture
def sample_labels(project_root):
    """Return the sample label files shipped under data/labels."""
    labels_dir = project_root / "data" / "labels"
    if labels_dir.exists():
        return sorted(p for p in labels_dir.iterdir() if p.suffix in (".json", ".yaml", ".yml"))
    return []


@pytest.fixture(scope="session")
def catalog():
    from nfp_compliance.compliance.rules import load_catalog

    return load_catalog()


@pytest.fixture(scope="session")
def racc_table():
    from nfp_compliance.compliance.racc import load_racc_table

    return load_racc_table()


@pytest.fixture(scope="session")
def engine(catalog, racc_table):
    from nfp_compliance.compliance.checker import ComplianceEngine

    return ComplianceEngine(catalog, racc_table)


@pytest.fixture
def full_nutrients():
    """A complete 15-nutrient panel for one 30 g cookie serving."""
    return {
        "calories": 140,
        "total_fat": 7,
        "saturated_fat": 3.5,
        "trans_fat": 0,
        "cholesterol": 10,
        "sodium": 3,
        "total_carbohydrates": 19,
        "dietary_fiber": 1,
        "total_sugars": 9,
        "added_sugars": 8,
        "protein": 2,
        "vitamin_d": 0,
        "calcium": 10,
        "iron": 0.8,
        "potassium": 40,
    }


@pytest.fixture
def make_label(full_nutrients):
    """Build a LabelData with a full panel; keyword arguments override any field."""
    from nfp_compliance.compliance.labels import LabelData

    def _make(**overrides):
        fields = {
            "nutrition_data": dict(full_nutrients),
            "serving_size_g": 30,
            "servings_per_container": 8,
            "format": "standard_vertical",
            "package_surface_area": 50,
            "racc_category_id": "bakery-cookies",
        }
        fields.update(overrides)
        return LabelData(**fields)

    return _make
