from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional

from apscheduler.schedulers.background import BackgroundScheduler

from .directory import BranchDirectory, DirectoryError
from .fetch_cycle import BranchOutcome, FetchCycle
from .models import Branch

logger = logging.getLogger("punchgate.scheduler")

JOB_ID = "fleet_pass"


@dataclass
class PassSummary:
    started_at: datetime
    duration_ms: float = 0.0
    outcomes: List[BranchOutcome] = field(default_factory=list)
    directory_error: Optional[str] = None

    @property
    def failed(self) -> List[BranchOutcome]:
        return [o for o in self.outcomes if not o.ok]

    @property
    def forwarded(self) -> int:
        return sum(o.forwarded for o in self.outcomes)


class FleetScheduler:
    """Runs a fetch cycle for every branch, then again every ``interval_s``.

    A pass that is still running when the next tick fires is not doubled up;
    that tick is skipped.
    """

    def __init__(
        self,
        *,
        directory: BranchDirectory,
        cycle: FetchCycle,
        interval_s: float = 5.0,
        max_workers: int = 1,
        on_pass_complete: Callable[[PassSummary], None] | None = None,
    ) -> None:
        self.directory = directory
        self.cycle = cycle
        self.interval_s = float(interval_s)
        self.max_workers = max(1, int(max_workers))
        self.on_pass_complete = on_pass_complete
        self._scheduler: BackgroundScheduler | None = None

    def run_once(self) -> PassSummary:
        summary = PassSummary(started_at=datetime.now(timezone.utc))
        start = time.perf_counter()
        try:
            try:
                branches = self.directory.list_branches()
            except DirectoryError as exc:
                logger.error("branch directory unavailable; skipping this pass: %s", exc)
                summary.directory_error = str(exc)
                return summary
            except Exception as exc:
                logger.exception("branch directory failed; skipping this pass")
                summary.directory_error = repr(exc)
                return summary

            summary.outcomes = self._run_branches(branches)
            return summary
        finally:
            summary.duration_ms = (time.perf_counter() - start) * 1000.0
            self._report(summary)

    def _run_branches(self, branches: List[Branch]) -> List[BranchOutcome]:
        if self.max_workers == 1 or len(branches) <= 1:
            return [self.cycle.run(b) for b in branches]
        workers = min(self.max_workers, len(branches))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="punchgate-branch") as pool:
            return list(pool.map(self.cycle.run, branches))

    def _report(self, summary: PassSummary) -> None:
        if summary.directory_error is None:
            logger.info(
                "fleet pass complete branches=%s forwarded=%s failed=%s duration_ms=%.0f",
                len(summary.outcomes),
                summary.forwarded,
                len(summary.failed),
                summary.duration_ms,
                extra={
                    "fields": {
                        "outcomes": {o.branch_id: o.status for o in summary.outcomes},
                    }
                },
            )
        if self.on_pass_complete is not None:
            try:
                self.on_pass_complete(summary)
            except Exception:
                logger.exception("pass-complete callback failed")

    def _tick(self) -> None:
        try:
            self.run_once()
        except Exception:
            logger.exception("fleet pass failed")

    def start(self) -> None:
        if self._scheduler is not None:
            return
        scheduler = BackgroundScheduler(timezone="UTC")
        scheduler.add_job(
            func=self._tick,
            trigger="interval",
            seconds=self.interval_s,
            id=JOB_ID,
            max_instances=1,
            replace_existing=True,
            coalesce=True,
            next_run_time=datetime.now(timezone.utc),
        )
        scheduler.start()
        self._scheduler = scheduler
        logger.info("Scheduler started (poll_interval_s=%s max_workers=%s)", self.interval_s, self.max_workers)

    def shutdown(self, *, wait: bool = True) -> None:
        scheduler, self._scheduler = self._scheduler, None
        if scheduler is not None:
            scheduler.shutdown(wait=wait)
            logger.info("Scheduler stopped")

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def run_until(self, stop: threading.Event) -> None:
        """Run passes on the timer until ``stop`` is set."""

        self.start()
        try:
            stop.wait()
        finally:
            self.shutdown(wait=True)
