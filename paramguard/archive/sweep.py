"""
ParamGuard Retention Sweep

Finds archived records whose retention window has elapsed and either
purges them (``auto_remove``) or reports them for manual confirmation.

Sweeps are idempotent: a second run purges nothing the first run already
purged. A failure on one record is recorded and the sweep moves on.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, auto
from typing import Any, Dict, Iterable, List, Optional

from .exceptions import ArchiveError
from .lifecycle import LifecycleEngine
from .models import RecordState
from .retention import is_eligible_for_purge


logger = logging.getLogger(__name__)


class SweepAction(Enum):
    """What happened to an eligible record."""
    PURGED = auto()
    PENDING_CONFIRMATION = auto()
    FAILED = auto()


@dataclass
class SweepOutcome:
    record_id: int
    action: SweepAction
    error: Optional[str] = None
    # The original exception, unchanged, for FAILED outcomes
    exception: Optional[ArchiveError] = field(default=None, repr=False, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "record_id": self.record_id,
            "action": self.action.name,
            "error": self.error,
        }


@dataclass
class SweepReport:
    """Result of a sweep run."""
    started_at: datetime
    dry_run: bool
    outcomes: List[SweepOutcome] = field(default_factory=list)
    retained_count: int = 0
    completed_at: Optional[datetime] = None

    def _ids(self, action: SweepAction) -> List[int]:
        return [o.record_id for o in self.outcomes if o.action == action]

    @property
    def purged_ids(self) -> List[int]:
        return self._ids(SweepAction.PURGED)

    @property
    def pending_ids(self) -> List[int]:
        return self._ids(SweepAction.PENDING_CONFIRMATION)

    @property
    def failed_ids(self) -> List[int]:
        return self._ids(SweepAction.FAILED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "dry_run": self.dry_run,
            "retained_count": self.retained_count,
            "purged": len(self.purged_ids),
            "pending": len(self.pending_ids),
            "failed": len(self.failed_ids),
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


class SweepCoordinator:
    """Applies the retention policy across all archived records."""

    def __init__(self, engine: LifecycleEngine):
        self._engine = engine

    def sweep(self, dry_run: bool = False) -> SweepReport:
        """
        Run one sweep.

        Args:
            dry_run: Report eligible records without purging, regardless
                of ``auto_remove``

        Returns:
            SweepReport with one outcome per eligible record
        """
        settings = self._engine.get_retention_settings()
        now = self._engine.now()
        report = SweepReport(started_at=now, dry_run=dry_run)
        purge = settings.auto_remove and not dry_run

        for summary in self._engine.list_by_state(RecordState.ARCHIVED):
            if not is_eligible_for_purge(summary.archived_at, settings.retention_period, now):
                report.retained_count += 1
                continue

            if not purge:
                report.outcomes.append(
                    SweepOutcome(summary.record_id, SweepAction.PENDING_CONFIRMATION)
                )
                continue

            report.outcomes.append(self._purge_one(summary.record_id))

        report.completed_at = self._engine.now()
        logger.info(
            f"Sweep complete: purged={len(report.purged_ids)}, "
            f"pending={len(report.pending_ids)}, failed={len(report.failed_ids)}, "
            f"retained={report.retained_count}"
        )
        return report

    def purge_confirmed(self, record_ids: Iterable[int]) -> SweepReport:
        """Purge records a user confirmed from an earlier report."""
        report = SweepReport(started_at=self._engine.now(), dry_run=False)
        for record_id in record_ids:
            report.outcomes.append(self._purge_one(record_id))
        report.completed_at = self._engine.now()
        return report

    def _purge_one(self, record_id: int) -> SweepOutcome:
        try:
            self._engine.purge(record_id, force=False)
        except ArchiveError as e:
            logger.error(
                f"Sweep failed to purge record {record_id}: {type(e).__name__}: {e}"
            )
            return SweepOutcome(
                record_id, SweepAction.FAILED, error=type(e).__name__, exception=e
            )
        return SweepOutcome(record_id, SweepAction.PURGED)


class PeriodicSweeper:
    """
    Runs sweeps on a background thread.

    Opt-in; the engine itself never starts one.
    """

    def __init__(self, coordinator: SweepCoordinator, interval: float = 3600):
        """
        Initialize periodic sweeper.

        Args:
            coordinator: Sweep coordinator to drive
            interval: Seconds between sweeps
        """
        self._coordinator = coordinator
        self._interval = interval

        self._running = False
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self.last_report: Optional[SweepReport] = None

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            return

        self._running = True
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._sweep_loop, daemon=True)
        self._thread.start()
        logger.info("Periodic sweeper started")

    def stop(self) -> None:
        if not self._running:
            return

        self._running = False
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=5)
        logger.info("Periodic sweeper stopped")

    def _sweep_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.last_report = self._coordinator.sweep()
            except Exception as e:
                logger.error(f"Periodic sweep error: {e}")

            self._stop_event.wait(self._interval)
