"""Per-run review metrics.

Every review unit (one file, or the PR metadata) records how many issues it
produced, how long it took, and whether it failed. Units are recorded from
worker threads, so all writes go through a lock.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

from prwarden_core.models import Severity

logger = logging.getLogger(__name__)

METADATA_UNIT = "(pull request metadata)"


@dataclass(frozen=True)
class UnitMetric:
    name: str
    issues: int = 0
    errors: int = 0
    warnings: int = 0
    duration_ms: int = 0
    failed: bool = False


class ReviewMetrics:
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._started = clock()
        self._finished: float | None = None
        self._lock = threading.Lock()
        self._units: list[UnitMetric] = []

    def start_timer(self) -> float:
        return self._clock()

    def elapsed_ms(self, started: float) -> int:
        return int((self._clock() - started) * 1000)

    def record(self, name: str, issues=(), duration_ms: int = 0) -> None:
        issues = list(issues)
        unit = UnitMetric(
            name=name,
            issues=len(issues),
            errors=sum(1 for i in issues if i.severity is Severity.ERROR),
            warnings=sum(1 for i in issues if i.severity is Severity.WARN),
            duration_ms=duration_ms,
        )
        with self._lock:
            self._units.append(unit)
        logger.info(
            "Reviewed %s: %d issue(s) (E:%d/W:%d) in %dms",
            name,
            unit.issues,
            unit.errors,
            unit.warnings,
            duration_ms,
        )

    def record_failure(self, name: str, duration_ms: int = 0) -> None:
        with self._lock:
            self._units.append(UnitMetric(name=name, duration_ms=duration_ms, failed=True))

    def finish(self) -> None:
        if self._finished is None:
            self._finished = self._clock()

    @property
    def units(self) -> list[UnitMetric]:
        with self._lock:
            return list(self._units)

    @property
    def files_reviewed(self) -> int:
        return sum(1 for u in self.units if not u.failed and u.name != METADATA_UNIT)

    @property
    def failed_units(self) -> list[str]:
        return [u.name for u in self.units if u.failed]

    @property
    def total_issues(self) -> int:
        return sum(u.issues for u in self.units)

    @property
    def total_duration_ms(self) -> int:
        end = self._finished if self._finished is not None else self._clock()
        return int((end - self._started) * 1000)

    def slowest(self, n: int = 5) -> list[UnitMetric]:
        return sorted(self.units, key=lambda u: u.duration_ms, reverse=True)[:n]

    def log_summary(self) -> None:
        reviewed = self.files_reviewed
        logger.info(
            "Review metrics: %d file(s) reviewed, %d issue(s), %d failed unit(s), %dms total (avg %dms/file)",
            reviewed,
            self.total_issues,
            len(self.failed_units),
            self.total_duration_ms,
            self.total_duration_ms // reviewed if reviewed else 0,
        )
        for unit in self.slowest():
            logger.debug(
                "  %s: %dms, %d issue(s)%s", unit.name, unit.duration_ms, unit.issues, " (failed)" if unit.failed else ""
            )
