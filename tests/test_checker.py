"""Tests for the compliance engine, status derivation and result model."""

import json

import pytest


def _result(status="fail", severity="error", rule_type="nutrient_content_claim", **kwargs):
    from nfp_compliance.compliance.models import ValidationResult

    fields = {
        "rule_id": "test-rule",
        "rule_name": "Test Rule",
        "rule_type": rule_type,
        "status": status,
        "message": "test",
        "severity": severity,
    }
    fields.update(kwargs)
    return ValidationResult(**fields)


# ── Status derivation ──────────────────────────────────


def test_single_error_forces_errors():
    from nfp_compliance.compliance.scorer import derive_status

    results = [_result(severity="warning")] * 3 + [_result(severity="error")]
    summary = derive_status(results)
    assert summary.overall_status == "errors"
    assert summary.errors_count == 1
    assert summary.warnings_count == 3


def test_warnings_only():
    from nfp_compliance.compliance.scorer import derive_status

    summary = derive_status([_result(status="warning", severity="warning"), _result(status="pass")])
    assert summary.overall_status == "warnings"
    assert summary.errors_count == 0


def test_passes_and_info_do_not_count():
    """Passing results and info findings never affect the status."""
    from nfp_compliance.compliance.scorer import derive_status

    summary = derive_status([
        _result(status="pass", severity="error"),
        _result(status="warning", severity="info"),
        _result(status="fail", severity="info"),
    ])
    assert summary.overall_status == "compliant"
    assert summary.errors_count == 0
    assert summary.warnings_count == 0


def test_empty_results_are_compliant():
    from nfp_compliance.compliance.scorer import derive_status

    assert derive_status([]).overall_status == "compliant"


def test_result_validation():
    with pytest.raises(ValueError, match="status"):
        _result(status="maybe")
    with pytest.raises(ValueError, match="severity"):
        _result(severity="critical")
    with pytest.raises(ValueError, match="cite"):
        _result(rule_type="format")
    assert _result(rule_type="format", cfr_reference="21 CFR 101.9(d)").cfr_reference


# ── Engine ─────────────────────────────────────────────


def test_end_to_end_compliant_label(engine, full_nutrients):
    """A 30 g cookie serving on a 45 sq in package claiming 'sodium free' is compliant."""
    from nfp_compliance.compliance.labels import LabelData

    nutrients = dict(full_nutrients)
    del nutrients["sodium"]
    nutrients["sodium_mg"] = 3
    label = LabelData(
        serving_size_g=30,
        package_surface_area=45,
        format="standard_vertical",
        racc_category_id="bakery-cookies",
        nutrition_data=nutrients,
        claim_statements=("sodium free",),
    )

    report = engine.validate(label)
    by_rule = {r.rule_id: r for r in report.validation_results}

    assert by_rule["nfp-format-standard"].status == "pass"
    assert by_rule["serving-size-racc-range"].status == "pass"
    assert by_rule["serving-size-racc-range"].details["percent_of_racc"] == 100
    assert by_rule["claim-sodium-free"].status == "pass"
    assert report.serving_size.percent_of_racc == pytest.approx(100)
    assert report.overall_status == "compliant"
    assert report.errors_count == 0
    assert report.is_publishable


def test_results_in_dispatch_order(engine, make_label):
    """Format, then serving size, then mandatory nutrients, then claims."""
    report = engine.validate(make_label(claim_statements=("Low Fat",)))
    order = {"format": 0, "serving_size": 1, "mandatory_nutrients": 2, "nutrient_content_claim": 3}
    ranks = [order[r.rule_type] for r in report.validation_results]
    assert ranks == sorted(ranks)
    assert ranks[0] == 0 and ranks[-1] == 3


def test_validation_is_idempotent(engine, make_label):
    label = make_label(servings_per_container=2.3, claim_statements=("Low Fat", "Sodium Free"))
    first = engine.validate(label)
    second = engine.validate(label)
    assert first.validation_results == second.validation_results
    assert first.errors_count == second.errors_count
    assert first.warnings_count == second.warnings_count


def test_ineligible_format_still_checks_nutrients(engine, make_label):
    """Format ineligibility does not suppress the mandatory nutrient checks."""
    report = engine.validate(make_label(package_surface_area=28))
    types = [r.rule_type for r in report.validation_results]
    assert types.count("mandatory_nutrients") == 3
    assert report.overall_status == "errors"


def test_ineligible_simplified_needs_full_panel(engine):
    from nfp_compliance.compliance.labels import LabelData

    label = LabelData(
        format="simplified",
        package_surface_area=20,
        nutrition_data={"calories": 0, "total_fat": 0, "sodium": 10, "total_carbohydrates": 0, "protein": 0},
    )
    report = engine.validate(label)
    presence = next(r for r in report.validation_results if r.rule_id == "mandatory-nutrients-standard")
    assert presence.status == "fail"
    assert "Potassium" in presence.details["missing_nutrients"]


def test_warnings_do_not_block(engine, make_label):
    report = engine.validate(make_label(package_surface_area=None))
    assert report.overall_status == "warnings"
    assert report.warnings_count == 1
    assert report.is_publishable


def test_report_to_dict_is_json_serialisable(engine, make_label):
    report = engine.validate(make_label(claim_statements=("Low Fat",)))
    data = report.to_dict()
    assert data["overall_status"] == report.overall_status
    assert data["label_format"] == "standard_vertical"
    assert data["serving_size"]["racc_category"]["id"] == "bakery-cookies"
    assert len(data["validation_results"]) == len(report.validation_results)
    json.dumps(data)


def test_validate_many_preserves_order(engine, make_label):
    labels = [
        make_label(package_surface_area=50),
        make_label(package_surface_area=28),
        make_label(package_surface_area=None),
    ]
    reports = engine.validate_many(labels, max_workers=3)
    assert [r.overall_status for r in reports] == ["compliant", "errors", "warnings"]


def test_validate_label_uses_configured_catalog(make_label):
    from nfp_compliance.compliance.checker import validate_label

    report = validate_label(make_label())
    assert report.overall_status == "compliant"


def test_sample_labels(engine, project_root):
    from nfp_compliance.compliance.labels import load_label_file

    labels_dir = project_root / "data" / "labels"
    expected = {
        "granola-bar.json": "compliant",
        "sparkling-water-can.json": "compliant",
        "butter-cookies-snack-pack.yaml": "errors",
    }
    for filename, status in expected.items():
        _name, label = load_label_file(labels_dir / filename)
        assert engine.validate(label).overall_status == status, filename
