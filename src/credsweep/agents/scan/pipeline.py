from __future__ import annotations

import logging
import os
import uuid
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Deque, Dict, Iterator, Optional, Sequence

from credsweep.common.config import Settings
from credsweep.common.config_loader import ConfigError, load_settings
from credsweep.common.errors import ConfigurationError, EnumerationError
from credsweep.common.logging import extra_logger
from credsweep.common.models import (
    CandidateFile,
    CompiledPattern,
    FileResult,
    LineResult,
    MatchRecord,
    PathLike,
    ScanOutcome,
    ScanReport,
    ScanRequest,
    ScanStatus,
    ScanSummary,
    WindowedMatch,
)
from credsweep.services.aggregator import ScanAggregator
from credsweep.services.content_scanner import ContentScanner
from credsweep.services.context import window_for
from credsweep.services.enumerator import enumerate_files
from credsweep.services.patterns import compile_keywords

logger = logging.getLogger(__name__)


class ScanAgent:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        env: Optional[str] = None,
        scanner: Optional[ContentScanner] = None,
    ) -> None:
        try:
            self._settings = settings or load_settings(env=env)
        except ConfigError as exc:
            logger.error("Configuration loading failed: %s", exc)
            raise

        self._scanner = scanner or ContentScanner(self._settings.retry, encoding=self._settings.scan.encoding)

    @property
    def settings(self) -> Settings:
        return self._settings

    def build_request(
        self,
        root: PathLike,
        keywords: Optional[Sequence[str]] = None,
        include: Optional[Sequence[str]] = None,
        exclude: Optional[Sequence[str]] = None,
        case_sensitive: Optional[bool] = None,
        max_context: Optional[int] = None,
        max_file_size_bytes: Optional[int] = None,
        follow_symlinks: Optional[bool] = None,
    ) -> ScanRequest:
        """Merge explicit overrides over the configured scan defaults."""

        defaults = self._settings.scan
        return ScanRequest(
            root=Path(root),
            keywords=tuple(keywords) if keywords is not None else tuple(defaults.keywords),
            include=tuple(include) if include is not None else tuple(defaults.include),
            exclude=tuple(exclude) if exclude is not None else tuple(defaults.exclude),
            case_sensitive=defaults.case_sensitive if case_sensitive is None else case_sensitive,
            max_context=defaults.max_context if max_context is None else max_context,
            max_file_size_bytes=defaults.max_file_size_bytes if max_file_size_bytes is None else max_file_size_bytes,
            follow_symlinks=defaults.follow_symlinks if follow_symlinks is None else follow_symlinks,
        )

    def start(self, request: ScanRequest, run_id: Optional[str] = None) -> "ScanRun":
        """Validate ``request`` and return a lazy run; no file is read yet."""

        pattern = compile_keywords(request.keywords, request.case_sensitive)
        if not request.root.exists():
            raise ConfigurationError(f"Root path does not exist: {request.root}")
        if not request.root.is_dir():
            raise ConfigurationError(f"Root path is not a directory: {request.root}")
        try:
            with os.scandir(request.root):
                pass
        except OSError as exc:
            raise ConfigurationError(f"Root path is not readable: {request.root} ({exc})") from exc

        return ScanRun(
            request=request,
            pattern=pattern,
            scanner=self._scanner,
            workers=self._settings.concurrency.workers,
            run_id=run_id or str(uuid.uuid4()),
        )

    def run(self, request: ScanRequest, run_id: Optional[str] = None) -> ScanReport:
        scan_run = self.start(request, run_id=run_id)
        results = list(scan_run)
        return ScanReport(results=results, summary=scan_run.summary)


class ScanRun:
    """Single-use stream of per-file results for one scan request.

    Only files with at least one match are yielded. The summary becomes
    available once the stream is exhausted or closed.
    """

    def __init__(
        self,
        request: ScanRequest,
        pattern: CompiledPattern,
        scanner: ContentScanner,
        workers: int = 1,
        run_id: Optional[str] = None,
        aggregator: Optional[ScanAggregator] = None,
    ) -> None:
        self.request = request
        self.pattern = pattern
        self.run_id = run_id or str(uuid.uuid4())
        self._scanner = scanner
        self._workers = max(1, workers)
        self._aggregator = aggregator or ScanAggregator()
        self._started = False
        self._log = extra_logger(__name__, run_id=self.run_id)

    @property
    def summary(self) -> Optional[ScanSummary]:
        if not self._aggregator.finalized:
            return None
        return self._aggregator.finalize()

    def __iter__(self) -> Iterator[FileResult]:
        if self._started:
            raise RuntimeError("A scan run can only be iterated once")
        self._started = True
        return self._stream()

    def _stream(self) -> Iterator[FileResult]:
        self._aggregator.begin()
        self._log.info("Scanning %s for %d keyword(s)", self.request.root, len(self.pattern.keywords))
        candidates = self._candidates()
        try:
            if self._workers > 1:
                yield from self._stream_parallel(candidates)
            else:
                for candidate in candidates:
                    result = self._process(candidate)
                    if result is not None:
                        yield result
        finally:
            candidates.close()
            summary = self._aggregator.finalize()
            self._log.info(
                "Scan finished: %d scanned, %d skipped-large, %d unreadable, %d match(es)",
                summary.scanned_file_count,
                summary.skipped_large_count,
                summary.unreadable_count,
                summary.total_match_count,
            )

    def _stream_parallel(self, candidates: Iterator[CandidateFile]) -> Iterator[FileResult]:
        max_inflight = self._workers * 2
        pending: Deque[Future] = deque()
        executor = ThreadPoolExecutor(max_workers=self._workers, thread_name_prefix="credsweep")
        try:
            for candidate in candidates:
                pending.append(executor.submit(self._process, candidate))
                while len(pending) >= max_inflight:
                    result = pending.popleft().result()
                    if result is not None:
                        yield result
            while pending:
                result = pending.popleft().result()
                if result is not None:
                    yield result
        finally:
            # submitted scans run to completion so every counted candidate gets an outcome
            executor.shutdown(wait=True)

    def _candidates(self) -> Iterator[CandidateFile]:
        for candidate in enumerate_files(
            self.request.root,
            include=self.request.include,
            exclude=self.request.exclude,
            follow_symlinks=self.request.follow_symlinks,
            on_error=self._on_enumeration_error,
        ):
            self._aggregator.on_file_enumerated()
            yield candidate

    def _on_enumeration_error(self, error: EnumerationError) -> None:
        self._aggregator.on_enumeration_error()

    def _process(self, candidate: CandidateFile) -> Optional[FileResult]:
        outcome = self._scanner.scan(candidate, self.pattern, self.request.max_file_size_bytes)
        self._record(outcome)
        if outcome.status is not ScanStatus.SCANNED or not outcome.records:
            return None
        return FileResult(
            path=candidate.path,
            size=candidate.size,
            lines=tuple(self._line_result(record) for record in outcome.records),
        )

    def _record(self, outcome: ScanOutcome) -> None:
        if outcome.status is ScanStatus.SKIPPED_LARGE:
            self._aggregator.on_file_skipped_large()
        elif outcome.status is ScanStatus.UNREADABLE:
            self._log.debug("Unreadable file %s: %s", outcome.candidate.path, outcome.reason)
            self._aggregator.on_file_unreadable()
        else:
            self._aggregator.on_file_scanned(outcome.match_count)

    def _line_result(self, record: MatchRecord) -> LineResult:
        return LineResult(
            line_number=record.line_number,
            line=record.line,
            matches=tuple(
                WindowedMatch(
                    window=window_for(record.line, match, self.request.max_context),
                    text=match.text,
                    offset=match.start,
                    length=match.length,
                )
                for match in record.matches
            ),
        )


def serialize_file_result(result: FileResult) -> Dict[str, object]:
    return {
        "path": str(result.path),
        "size": result.size,
        "match_count": result.match_count,
        "lines": [
            {
                "line_number": line.line_number,
                "line": line.line,
                "matches": [
                    {
                        "text": match.text,
                        "offset": match.offset,
                        "length": match.length,
                        "context": {
                            "start": match.window.start,
                            "end": match.window.end,
                            "text": match.window.text,
                            "truncated_prefix": match.window.truncated_prefix,
                            "truncated_suffix": match.window.truncated_suffix,
                            "match_offset": match.window.match_offset,
                        },
                    }
                    for match in line.matches
                ],
            }
            for line in result.lines
        ],
    }


def serialize_summary(summary: ScanSummary) -> Dict[str, object]:
    return {
        "candidate_file_count": summary.candidate_file_count,
        "scanned_file_count": summary.scanned_file_count,
        "skipped_large_count": summary.skipped_large_count,
        "unreadable_count": summary.unreadable_count,
        "enumeration_error_count": summary.enumeration_error_count,
        "matched_file_count": summary.matched_file_count,
        "total_match_count": summary.total_match_count,
        "started_at": summary.started_at.isoformat(),
        "finished_at": summary.finished_at.isoformat(),
        "elapsed_seconds": round(summary.elapsed_seconds, 6),
        "throughput_files_per_second": round(summary.throughput_files_per_second, 3),
    }
