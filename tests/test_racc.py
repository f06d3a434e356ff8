"""Tests for the RACC reference table."""

import pytest


def test_load_racc_table(racc_table):
    assert len(racc_table) >= 50
    cookies = racc_table.get("bakery-cookies")
    assert cookies.racc_amount == 30
    assert cookies.racc_unit == "g"
    assert cookies.category == "Bakery Products"


def test_volume_categories(racc_table):
    """Beverage RACCs are in mL and compare 1:1 with grams."""
    soda = racc_table.get("beverages-soft-drinks")
    assert soda.racc_unit == "mL"
    assert soda.racc_grams == 360


def test_racc_ids_unique_and_positive(racc_table):
    ids = [e.id for e in racc_table]
    assert len(ids) == len(set(ids))
    assert all(e.racc_amount > 0 for e in racc_table)


def test_search(racc_table):
    """Search matches category, subcategory and product examples."""
    ids = {e.id for e in racc_table.search("granola")}
    assert "snacks-bars" in ids

    assert {e.id for e in racc_table.search("COOKIES")} >= {"bakery-cookies"}
    assert racc_table.search("zzz-no-such-food") == []
    assert len(racc_table.search("")) == len(racc_table)


def test_categories(racc_table):
    categories = racc_table.categories()
    assert "Bakery Products" in categories
    assert len(categories) == len(set(categories))
    assert all(e.category == "Beverages" for e in racc_table.by_category("beverages"))


def test_from_records_parses_comma_examples():
    from nfp_compliance.compliance.racc import RACCTable

    table = RACCTable.from_records([{
        "id": "test-pickles",
        "racc_amount": 30,
        "category": "Vegetables",
        "product_examples": "dill pickles, sweet pickles",
    }])
    entry = table.get("test-pickles")
    assert entry.racc_unit == "g"
    assert entry.product_examples == ("dill pickles", "sweet pickles")
    assert entry.to_dict()["product_examples"] == ["dill pickles", "sweet pickles"]


@pytest.mark.parametrize("row,fragment", [
    ({"racc_amount": 30, "category": "Snacks"}, "without an id"),
    ({"id": "x", "racc_amount": 0, "category": "Snacks"}, "positive number"),
    ({"id": "x", "racc_amount": "30", "category": "Snacks"}, "positive number"),
    ({"id": "x", "racc_amount": 30, "racc_unit": "oz", "category": "Snacks"}, "racc_unit"),
    ({"id": "x", "racc_amount": 30}, "category"),
])
def test_malformed_racc_rows(row, fragment):
    from nfp_compliance.compliance.racc import parse_racc_row
    from nfp_compliance.exceptions import CatalogError

    with pytest.raises(CatalogError, match=fragment):
        parse_racc_row(row)


def test_duplicate_racc_ids():
    from nfp_compliance.compliance.racc import RACCTable
    from nfp_compliance.exceptions import CatalogError

    row = {"id": "dup", "racc_amount": 30, "category": "Snacks"}
    with pytest.raises(CatalogError, match="duplicate"):
        RACCTable.from_records([row, row])
