from __future__ import annotations

import logging
from datetime import datetime, timezone
from threading import Lock
from time import monotonic
from typing import Callable, Optional

from credsweep.common.models import ScanSummary

logger = logging.getLogger(__name__)


class ScanAggregator:
    """Thread-safe accumulator for per-run scan statistics."""

    def __init__(self, clock: Callable[[], float] = monotonic) -> None:
        self._clock = clock
        self._lock = Lock()
        self._started = clock()
        self._started_at = datetime.now(timezone.utc)
        self._summary: Optional[ScanSummary] = None

        self._candidates = 0
        self._scanned = 0
        self._skipped_large = 0
        self._unreadable = 0
        self._enumeration_errors = 0
        self._matched_files = 0
        self._matches = 0

    def begin(self) -> None:
        """Restart the clock; called when scanning actually starts."""

        with self._lock:
            self._started = self._clock()
            self._started_at = datetime.now(timezone.utc)

    def on_file_enumerated(self) -> None:
        with self._lock:
            if self._accepting("file_enumerated"):
                self._candidates += 1

    def on_file_skipped_large(self) -> None:
        with self._lock:
            if self._accepting("file_skipped_large"):
                self._skipped_large += 1

    def on_file_unreadable(self) -> None:
        with self._lock:
            if self._accepting("file_unreadable"):
                self._unreadable += 1

    def on_enumeration_error(self) -> None:
        with self._lock:
            if self._accepting("enumeration_error"):
                self._enumeration_errors += 1

    def on_file_scanned(self, match_count: int) -> None:
        if match_count < 0:
            raise ValueError(f"match_count must be >= 0, got {match_count}")
        with self._lock:
            if not self._accepting("file_scanned"):
                return
            self._scanned += 1
            if match_count:
                self._matched_files += 1
                self._matches += match_count

    @property
    def finalized(self) -> bool:
        with self._lock:
            return self._summary is not None

    def finalize(self) -> ScanSummary:
        """Freeze the counters into a summary; later calls return the same one."""

        with self._lock:
            if self._summary is not None:
                return self._summary
            elapsed = self._clock() - self._started
            throughput = self._scanned / elapsed if elapsed > 0 else float(self._scanned)
            self._summary = ScanSummary(
                candidate_file_count=self._candidates,
                scanned_file_count=self._scanned,
                skipped_large_count=self._skipped_large,
                unreadable_count=self._unreadable,
                enumeration_error_count=self._enumeration_errors,
                matched_file_count=self._matched_files,
                total_match_count=self._matches,
                started_at=self._started_at,
                finished_at=datetime.now(timezone.utc),
                elapsed_seconds=max(elapsed, 0.0),
                throughput_files_per_second=throughput,
            )
            return self._summary

    def _accepting(self, event: str) -> bool:
        if self._summary is None:
            return True
        logger.warning("Ignoring %s event after the scan summary was finalized", event)
        return False
