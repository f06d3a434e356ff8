"""Tests for logging setup and per-label log context."""

import logging

import pytest


class _Collector(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


@pytest.fixture
def collector():
    """A handler on the package logger that stamps records the way setup_logging does."""
    from nfp_compliance.utils.log import LabelContextFilter

    handler = _Collector()
    handler.addFilter(LabelContextFilter())
    logger = logging.getLogger("nfp_compliance")
    previous = logger.level
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    yield handler
    logger.removeHandler(handler)
    logger.setLevel(previous)


def test_get_logger_is_namespaced():
    from nfp_compliance.utils.log import get_logger

    assert get_logger("checker").name == "nfp_compliance.checker"
    assert get_logger("nfp_compliance.cli").name == "nfp_compliance.cli"


def test_label_context_nests_and_restores(collector):
    from nfp_compliance.utils.log import current_label, get_logger, label_context

    logger = get_logger("test")
    logger.info("outside")
    with label_context("granola-bar.json"):
        logger.info("outer")
        with label_context("cookies.yaml"):
            logger.info("inner")
        logger.info("outer again")
    assert current_label() == "-"

    assert [r.label for r in collector.records] == [
        "-", "granola-bar.json", "cookies.yaml", "granola-bar.json",
    ]


def test_validate_many_tags_records_per_label(engine, make_label, collector):
    """Concurrent validations log under their own label names."""
    labels = [make_label(), make_label(package_surface_area=28)]
    engine.validate_many(labels, max_workers=2, names=["Good Cookies", "Bad Cookies"])

    summaries = [r for r in collector.records if r.getMessage().startswith("Validated ")]
    by_label = {r.label: r.getMessage() for r in summaries}
    assert set(by_label) == {"Good Cookies", "Bad Cookies"}
    assert "compliant" in by_label["Good Cookies"]
    assert "errors" in by_label["Bad Cookies"]


def test_validate_many_numbers_unnamed_labels(engine, make_label, collector):
    engine.validate_many([make_label(), make_label()], max_workers=1)
    labels = {r.label for r in collector.records if r.getMessage().startswith("Validated ")}
    assert labels == {"#1", "#2"}


def test_validate_many_rejects_mismatched_names(engine, make_label):
    with pytest.raises(ValueError, match="names"):
        engine.validate_many([make_label()], names=["a", "b"])


def test_setup_logging_formats_label(monkeypatch, tmp_path):
    from nfp_compliance.utils import log

    monkeypatch.setattr(log, "_configured", False)
    logger = logging.getLogger("nfp_compliance")
    before, level = list(logger.handlers), logger.level
    log_file = tmp_path / "logs" / "run.log"
    try:
        log.setup_logging("INFO", log_file)
        with log.label_context("sparkling-water-can.json"):
            log.get_logger("test").info("checked")
        for handler in logger.handlers:
            handler.flush()
        assert "| sparkling-water-can.json | checked" in log_file.read_text(encoding="utf-8")
    finally:
        for handler in logger.handlers[:]:
            if handler not in before:
                handler.close()
                logger.removeHandler(handler)
        logger.setLevel(level)
