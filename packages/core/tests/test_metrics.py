"""Tests for ReviewMetrics."""

import logging

from prwarden_core.metrics import METADATA_UNIT, ReviewMetrics
from prwarden_core.models import Category, Issue, Severity


class _Clock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


def _issue(severity):
    return Issue(
        title="t",
        severity=severity,
        category=Category.STYLE,
        file_path="a.py",
        line=1,
        rationale="",
        recommendation="",
        fingerprint=f"fp-{severity.value}",
    )


class TestReviewMetrics:
    def test_totals(self):
        metrics = ReviewMetrics(clock=_Clock())
        metrics.record("a.py", [_issue(Severity.ERROR), _issue(Severity.WARN), _issue(Severity.INFO)], 120)
        metrics.record("b.py", [], 30)
        metrics.record_failure("c.py", 5)
        metrics.record(METADATA_UNIT, [_issue(Severity.WARN)], 40)

        assert metrics.files_reviewed == 2
        assert metrics.total_issues == 4
        assert metrics.failed_units == ["c.py"]
        unit = metrics.units[0]
        assert (unit.errors, unit.warnings) == (1, 1)

    def test_elapsed_uses_clock(self):
        clock = _Clock()
        metrics = ReviewMetrics(clock=clock)
        started = metrics.start_timer()
        clock.now += 1.5
        assert metrics.elapsed_ms(started) == 1500

    def test_total_duration_frozen_by_finish(self):
        clock = _Clock()
        metrics = ReviewMetrics(clock=clock)
        clock.now += 2
        metrics.finish()
        clock.now += 10
        assert metrics.total_duration_ms == 2000

    def test_slowest_orders_by_duration(self):
        metrics = ReviewMetrics(clock=_Clock())
        for name, ms in [("a", 10), ("b", 50), ("c", 30)]:
            metrics.record(name, [], ms)
        assert [u.name for u in metrics.slowest(2)] == ["b", "c"]

    def test_log_summary(self, caplog):
        metrics = ReviewMetrics(clock=_Clock())
        metrics.record("a.py", [_issue(Severity.ERROR)], 10)
        metrics.record_failure("b.py")
        with caplog.at_level(logging.INFO, logger="prwarden_core.metrics"):
            metrics.log_summary()
        assert "1 file(s) reviewed, 1 issue(s), 1 failed unit(s)" in caplog.text
