"""Tests for IssuePlanner: budgets, normalisation, concurrency and isolation."""

import threading
import time

import pytest

from prwarden_core.errors import MalformedIssueError
from prwarden_core.fingerprint import compute_fingerprint
from prwarden_core.metrics import METADATA_UNIT
from prwarden_core.models import Category, FileDiff, PullRequestMetadata, RawIssue, Severity
from prwarden_core.planner import (
    HYGIENE_ISSUE_ID,
    IssuePlanner,
    PlannerLimits,
    metadata_needs_attention,
    parse_category,
    parse_severity,
    to_issue,
)

GOOD_METADATA = PullRequestMetadata(title="Add login", description="Adds the login form.", commit_messages=["add login"])


def _diff(path, text="+x = 1", content_hash=None):
    return FileDiff(path=path, diff_text=text, content_hash=content_hash or f"hash-{path}")


def _raw(title="Problem", severity="warn", category="correctness", line=1, id="", **kwargs):
    return RawIssue(id=id, title=title, severity=severity, category=category, line=line, **kwargs)


class _StubModel:
    """Returns canned issues per path; records calls."""

    def __init__(self, per_file=None, metadata_issues=None, fail_paths=(), metadata_error=None, delay=0.0):
        self.per_file = per_file or {}
        self.metadata_issues = metadata_issues or []
        self.fail_paths = set(fail_paths)
        self.metadata_error = metadata_error
        self.delay = delay
        self.file_calls: list[str] = []
        self.metadata_calls: list[PullRequestMetadata] = []
        self.thread_names: set[str] = set()
        self._lock = threading.Lock()

    def review_file(self, policy, diff, language):
        with self._lock:
            self.file_calls.append(diff.path)
            self.thread_names.add(threading.current_thread().name)
        if self.delay:
            time.sleep(self.delay)
        if diff.path in self.fail_paths:
            raise RuntimeError(f"model exploded on {diff.path}")
        return list(self.per_file.get(diff.path, []))

    def review_metadata(self, policy, metadata, language):
        self.metadata_calls.append(metadata)
        if self.metadata_error:
            raise self.metadata_error
        return list(self.metadata_issues)


def _plan(model, diffs, iteration=1, metadata=GOOD_METADATA, **limits):
    return IssuePlanner(model, PlannerLimits(**limits)).plan(diffs, iteration, metadata, "policy", "en")


# ---------------------------------------------------------------------------
# Field normalisation
# ---------------------------------------------------------------------------


class TestParsing:
    def test_severity_is_case_insensitive(self):
        assert parse_severity("ERROR") is Severity.ERROR
        assert parse_severity(" Warn ") is Severity.WARN

    def test_unknown_severity_defaults_to_info(self):
        assert parse_severity("critical") is Severity.INFO

    def test_unknown_category_defaults_to_style(self):
        assert parse_category("vibes") is Category.STYLE
        assert parse_category("Security") is Category.SECURITY

    def test_to_issue_requires_title(self):
        with pytest.raises(MalformedIssueError):
            to_issue(_raw(title="   "), "fp")

    def test_to_issue_bad_line_becomes_zero(self):
        assert to_issue(_raw(line="abc"), "fp").line == 0
        assert to_issue(_raw(line=-4), "fp").line == 0
        assert to_issue(_raw(line="7"), "fp").line == 7

    def test_to_issue_uses_default_path(self):
        assert to_issue(_raw(), "fp", default_path="a.py").file_path == "a.py"

    def test_to_issue_huge_or_infinite_line_becomes_zero(self):
        assert to_issue(_raw(line=float("inf")), "fp").line == 0
        assert to_issue(_raw(line=float("nan")), "fp").line == 0

    @pytest.mark.parametrize("value", [{"code": "x = 1"}, 42, True, ["x"], "   "])
    def test_non_text_fix_example_is_dropped(self, value):
        assert to_issue(_raw(fix_example=value), "fp").fix_example is None

    def test_text_fix_example_is_kept(self):
        assert to_issue(_raw(fix_example="x = 1\n"), "fp").fix_example == "x = 1\n"

    def test_from_dict_drops_non_text_fix_example(self):
        raw = RawIssue.from_dict({"title": "Bug", "fixExample": {"code": "x = 1"}})
        assert raw.fix_example is None
        assert RawIssue.from_dict({"title": "Bug", "fix_example": "y()"}).fix_example == "y()"


class TestMetadataNeedsAttention:
    def test_complete_metadata(self):
        assert not metadata_needs_attention(GOOD_METADATA)

    @pytest.mark.parametrize(
        "metadata",
        [
            PullRequestMetadata(title="", description="d", commit_messages=["m"]),
            PullRequestMetadata(title="t", description="  ", commit_messages=["m"]),
            PullRequestMetadata(title="t", description="d", commit_messages=["", " "]),
            PullRequestMetadata(title="t", description="d", commit_messages=[]),
        ],
    )
    def test_blank_fields(self, metadata):
        assert metadata_needs_attention(metadata)


# ---------------------------------------------------------------------------
# Planning
# ---------------------------------------------------------------------------


class TestPlan:
    def test_counts_and_fingerprints(self):
        model = _StubModel(
            per_file={
                "a.py": [_raw("Null deref", "error", line=3, id="E1"), _raw("Naming", "warn", line=5)],
                "b.py": [_raw("Typo", "info")],
            }
        )
        result = _plan(model, [_diff("a.py"), _diff("b.py")], iteration=7)

        assert result.error_count == 1
        assert result.warning_count == 1
        assert [i.title for i in result.issues] == ["Null deref", "Naming", "Typo"]
        first = result.issues[0]
        assert first.file_path == "a.py"
        assert first.fingerprint == compute_fingerprint("a.py", 3, "E1", "Null deref", 7, "hash-a.py")

    def test_fingerprints_are_stable_across_runs(self):
        model = _StubModel(per_file={"a.py": [_raw("x", line=2)]})
        first = _plan(model, [_diff("a.py")])
        second = _plan(model, [_diff("a.py")])
        assert [i.fingerprint for i in first.issues] == [i.fingerprint for i in second.issues]

    def test_fingerprint_uses_diff_path_not_model_path(self):
        model = _StubModel(per_file={"a.py": [_raw("x", file="elsewhere.py")]})
        issue = _plan(model, [_diff("a.py")]).issues[0]
        assert issue.fingerprint == compute_fingerprint("a.py", 1, "", "x", 1, "hash-a.py")

    def test_fingerprint_ignores_title_whitespace(self):
        padded = _plan(_StubModel(per_file={"a.py": [_raw("Bug  ", line=2)]}), [_diff("a.py")]).issues[0]
        plain = _plan(_StubModel(per_file={"a.py": [_raw("Bug", line=2)]}), [_diff("a.py")]).issues[0]
        assert padded.fingerprint == plain.fingerprint
        assert padded.fingerprint == compute_fingerprint("a.py", 2, "", "Bug", 1, "hash-a.py")

    def test_metadata_fingerprint_ignores_title_whitespace(self):
        model = _StubModel(metadata_issues=[_raw(" Vague title ", id="M1")])
        issue = _plan(model, [], iteration=2).issues[0]
        assert issue.fingerprint == compute_fingerprint("", 0, "M1", "Vague title", 2, "")

    def test_should_approve_within_budget(self):
        model = _StubModel(per_file={"a.py": [_raw(f"w{n}", "warn") for n in range(3)]})
        result = _plan(model, [_diff("a.py")], warn_budget=3)
        assert result.warning_count == 3
        assert result.should_approve

    def test_should_not_approve_over_budget(self):
        model = _StubModel(per_file={"a.py": [_raw(f"w{n}", "warn") for n in range(4)]})
        assert not _plan(model, [_diff("a.py")], warn_budget=3).should_approve

    def test_single_error_blocks_approval(self):
        model = _StubModel(per_file={"a.py": [_raw("boom", "error")]})
        assert not _plan(model, [_diff("a.py")]).should_approve

    def test_empty_diff_list_only_reviews_metadata(self):
        model = _StubModel()
        result = _plan(model, [])
        assert result.issues == []
        assert result.should_approve
        assert len(model.metadata_calls) == 1


class TestBudgets:
    def test_max_files_to_review(self):
        model = _StubModel()
        diffs = [_diff(f"f{n}.py") for n in range(5)]
        result = _plan(model, diffs, max_files_to_review=2)
        assert sorted(model.file_calls) == ["f0.py", "f1.py"]
        assert result.reviewed_files == ["f0.py", "f1.py"]

    def test_large_diff_is_skipped(self):
        model = _StubModel()
        result = _plan(model, [_diff("big.py", "+" + "x" * 200), _diff("small.py")], max_diff_bytes=100)
        assert model.file_calls == ["small.py"]
        assert result.skipped_files == ["big.py"]

    def test_diff_size_measured_in_utf8_bytes(self):
        model = _StubModel()
        # 40 characters, 120 bytes
        result = _plan(model, [_diff("ja.py", "あ" * 40)], max_diff_bytes=100)
        assert result.skipped_files == ["ja.py"]

    def test_max_issues_per_file_truncates(self):
        model = _StubModel(per_file={"a.py": [_raw(f"t{n}", line=n) for n in range(10)]})
        result = _plan(model, [_diff("a.py")], max_issues_per_file=5)
        assert [i.title for i in result.issues] == ["t0", "t1", "t2", "t3", "t4"]

    def test_truncation_happens_after_dropping_malformed(self):
        raws = [_raw(""), _raw(""), _raw("a"), _raw("b"), _raw("c")]
        model = _StubModel(per_file={"a.py": raws})
        result = _plan(model, [_diff("a.py")], max_issues_per_file=2)
        assert [i.title for i in result.issues] == ["a", "b"]

    def test_commit_messages_capped(self):
        model = _StubModel()
        metadata = PullRequestMetadata("t", "d", [f"m{n}" for n in range(30)])
        _plan(model, [], metadata=metadata, max_commit_messages=20)
        assert len(model.metadata_calls[0].commit_messages) == 20


class TestIsolation:
    def test_failing_file_is_skipped(self):
        model = _StubModel(per_file={"ok.py": [_raw("fine")]}, fail_paths={"bad.py"})
        result = _plan(model, [_diff("bad.py"), _diff("ok.py")])
        assert [i.title for i in result.issues] == ["fine"]
        assert result.failed_files == ["bad.py"]
        assert result.reviewed_files == ["ok.py"]

    def test_malformed_issue_dropped_others_kept(self):
        model = _StubModel(per_file={"a.py": [_raw(""), _raw("kept")]})
        assert [i.title for i in _plan(model, [_diff("a.py")]).issues] == ["kept"]

    def test_metadata_review_failure_keeps_file_issues(self):
        model = _StubModel(per_file={"a.py": [_raw("fine")]}, metadata_error=RuntimeError("down"))
        assert [i.title for i in _plan(model, [_diff("a.py")]).issues] == ["fine"]

    def test_duplicate_fingerprints_collapse(self):
        model = _StubModel(per_file={"a.py": [_raw("same", line=4), _raw("same", line=4)]})
        assert len(_plan(model, [_diff("a.py")]).issues) == 1


    def test_infinite_metadata_line_does_not_abort_plan(self):
        model = _StubModel(metadata_issues=[_raw("Vague title", id="M1", line=float("inf"))])
        result = _plan(model, [])
        assert [i.title for i in result.issues] == ["Vague title"]

class TestConcurrency:
    def test_results_keep_input_order(self):
        per_file = {f"f{n}.py": [_raw(f"issue {n}")] for n in range(8)}
        model = _StubModel(per_file=per_file, delay=0.01)
        result = _plan(model, [_diff(p) for p in per_file], max_workers=4)
        assert [i.title for i in result.issues] == [f"issue {n}" for n in range(8)]

    def test_worker_count_is_bounded(self):
        model = _StubModel(per_file={}, delay=0.01)
        _plan(model, [_diff(f"f{n}.py") for n in range(10)], max_workers=2)
        assert len(model.thread_names) <= 2


class TestMetadataIssues:
    def test_hygiene_issue_for_blank_description(self):
        model = _StubModel()
        result = _plan(model, [], metadata=PullRequestMetadata("t", "", ["m"]))
        assert len(result.issues) == 1
        issue = result.issues[0]
        assert issue.issue_id == HYGIENE_ISSUE_ID
        assert issue.severity is Severity.WARN
        assert issue.file_path == "" and issue.line == 0

    def test_model_metadata_issues_are_not_line_specific(self):
        model = _StubModel(metadata_issues=[_raw("Vague title", file="x.py", line=9, id="M1")])
        issue = _plan(model, [], iteration=2).issues[0]
        assert issue.file_path == ""
        assert issue.line == 0
        assert issue.fingerprint == compute_fingerprint("", 0, "M1", "Vague title", 2, "")


class TestReviewMetrics:
    def test_records_every_review_unit(self):
        model = _StubModel(
            per_file={"a.py": [_raw("Null deref", "error"), _raw("Naming", "warn", line=2)]},
            fail_paths={"bad.py"},
            metadata_issues=[_raw("Vague title", id="M1")],
        )
        metrics = _plan(model, [_diff("a.py"), _diff("bad.py"), _diff("c.py")]).metrics

        by_name = {u.name: u for u in metrics.units}
        assert (by_name["a.py"].issues, by_name["a.py"].errors, by_name["a.py"].warnings) == (2, 1, 1)
        assert by_name["c.py"].issues == 0
        assert by_name[METADATA_UNIT].issues == 1
        assert metrics.files_reviewed == 2
        assert metrics.failed_units == ["bad.py"]
        assert metrics.total_issues == 3

    def test_metadata_failure_is_a_failed_unit(self):
        model = _StubModel(metadata_error=RuntimeError("down"))
        assert _plan(model, []).metrics.failed_units == [METADATA_UNIT]

    def test_truncated_issues_are_not_counted(self):
        model = _StubModel(per_file={"a.py": [_raw(f"i{n}", line=n + 1) for n in range(8)]})
        metrics = _plan(model, [_diff("a.py")], max_issues_per_file=3).metrics
        assert {u.name: u.issues for u in metrics.units}["a.py"] == 3

    def test_duration_is_measured(self):
        model = _StubModel(per_file={}, delay=0.02)
        metrics = _plan(model, [_diff("a.py")]).metrics
        assert {u.name: u.duration_ms for u in metrics.units}["a.py"] >= 10
        assert metrics.total_duration_ms >= 10
