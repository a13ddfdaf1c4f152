from __future__ import annotations

import logging
import os
from typing import Iterable, List, Optional, Tuple

from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential_jitter

from credsweep.common.config import RetrySettings
from credsweep.common.errors import FileSizeSkip, UnreadableFile
from credsweep.common.models import CandidateFile, CompiledPattern, MatchRecord, ScanOutcome, ScanStatus

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (InterruptedError, BlockingIOError, TimeoutError)


class RetryableReadError(RuntimeError):
    """Internal marker for retry-eligible read failures."""


class ContentScanner:
    """Line oriented keyword matcher for a single candidate file."""

    def __init__(self, retry: Optional[RetrySettings] = None, encoding: str = "utf-8") -> None:
        self._retry = retry or RetrySettings()
        self._encoding = encoding
        # utf-8-sig drops a leading BOM so line 1 offsets are not shifted
        self._decode_as = "utf-8-sig" if encoding.lower().replace("_", "-") in ("utf-8", "utf8") else encoding

    def scan(self, candidate: CandidateFile, pattern: CompiledPattern, max_size: int) -> ScanOutcome:
        if candidate.size > max_size:
            logger.debug("Skipping %s: %d bytes exceeds %d", candidate.path, candidate.size, max_size)
            return ScanOutcome(candidate=candidate, status=ScanStatus.SKIPPED_LARGE)

        retryer = Retrying(
            reraise=True,
            stop=stop_after_attempt(self._retry.max_attempts),
            wait=wait_exponential_jitter(initial=self._retry.base, max=self._retry.max_sleep),
            retry=retry_if_exception_type(RetryableReadError),
        )

        try:
            records = retryer(self._read_once, candidate, pattern, max_size)
        except FileSizeSkip as exc:
            logger.debug("Skipping %s", exc)
            return ScanOutcome(candidate=candidate, status=ScanStatus.SKIPPED_LARGE)
        except UnreadableFile as exc:
            logger.info("%s", exc, extra={"path": candidate.path, "status": ScanStatus.UNREADABLE.value})
            return ScanOutcome(candidate=candidate, status=ScanStatus.UNREADABLE, reason=exc.reason)
        except RetryableReadError as exc:
            logger.warning(
                "Read retries exhausted for %s: %s",
                candidate.path,
                exc,
                extra={"path": candidate.path, "status": ScanStatus.UNREADABLE.value},
            )
            return ScanOutcome(candidate=candidate, status=ScanStatus.UNREADABLE, reason=str(exc))

        return ScanOutcome(candidate=candidate, status=ScanStatus.SCANNED, records=records)

    def _read_once(self, candidate: CandidateFile, pattern: CompiledPattern, max_size: int) -> Tuple[MatchRecord, ...]:
        try:
            with open(candidate.path, "r", encoding=self._decode_as, errors="strict", newline=None) as handle:
                size = os.fstat(handle.fileno()).st_size
                if size > max_size:
                    raise FileSizeSkip(candidate.path, size, max_size)
                return tuple(match_lines(candidate, handle, pattern))
        except TRANSIENT_ERRORS as exc:
            raise RetryableReadError(f"transient error: {exc}") from exc
        except UnicodeDecodeError as exc:
            raise UnreadableFile(candidate.path, f"not valid {self._encoding} text ({exc.reason})") from exc
        except LookupError as exc:
            raise UnreadableFile(candidate.path, f"unknown encoding {self._encoding}") from exc
        except OSError as exc:
            raise UnreadableFile(candidate.path, exc.strerror or str(exc)) from exc


def match_lines(candidate: CandidateFile, lines: Iterable[str], pattern: CompiledPattern) -> List[MatchRecord]:
    """Match each line, returning one record per line with at least one hit.

    Lines containing NUL characters mark the file as binary and raise
    ``UnreadableFile``.
    """

    records: List[MatchRecord] = []
    for line_number, raw in enumerate(lines, start=1):
        line = raw[:-1] if raw.endswith("\n") else raw
        if "\x00" in line:
            raise UnreadableFile(candidate.path, "binary content")
        matches = tuple(pattern.finditer(line))
        if matches:
            records.append(MatchRecord(path=candidate.path, line_number=line_number, line=line, matches=matches))
    return records
