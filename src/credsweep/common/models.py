from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Tuple, Union

from credsweep.common.errors import ConfigurationError

DEFAULT_MAX_CONTEXT = 40
DEFAULT_MAX_FILE_SIZE = 1024 * 1024


def _as_tuple(values: Optional[Sequence[str]]) -> Tuple[str, ...]:
    if values is None:
        return ()
    if isinstance(values, str):
        return (values,)
    return tuple(values)


@dataclass(frozen=True)
class ScanRequest:
    """Immutable description of a single scan run."""

    root: Path
    keywords: Tuple[str, ...]
    include: Tuple[str, ...] = ()
    exclude: Tuple[str, ...] = ()
    case_sensitive: bool = False
    max_context: int = DEFAULT_MAX_CONTEXT
    max_file_size_bytes: int = DEFAULT_MAX_FILE_SIZE
    follow_symlinks: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "root", Path(self.root))
        object.__setattr__(self, "keywords", _as_tuple(self.keywords))
        object.__setattr__(self, "include", _as_tuple(self.include))
        object.__setattr__(self, "exclude", _as_tuple(self.exclude))

        if not self.keywords:
            raise ConfigurationError("At least one keyword is required")
        if any(not keyword.strip() for keyword in self.keywords):
            raise ConfigurationError("Keywords must not be blank")
        if self.max_context < 0:
            raise ConfigurationError(f"max_context must be >= 0, got {self.max_context}")
        if self.max_file_size_bytes <= 0:
            raise ConfigurationError(f"max_file_size_bytes must be > 0, got {self.max_file_size_bytes}")


@dataclass(frozen=True)
class KeywordMatch:
    start: int
    length: int
    text: str

    @property
    def end(self) -> int:
        return self.start + self.length


@dataclass(frozen=True)
class CompiledPattern:
    """Single alternation matcher built from a keyword set."""

    regex: "re.Pattern[str]"
    keywords: Tuple[str, ...]
    case_sensitive: bool

    def finditer(self, line: str) -> Iterator[KeywordMatch]:
        for found in self.regex.finditer(line):
            yield KeywordMatch(start=found.start(), length=found.end() - found.start(), text=found.group(0))


@dataclass(frozen=True)
class CandidateFile:
    path: Path
    size: int
    relative_path: str = ""


@dataclass(frozen=True)
class MatchRecord:
    path: Path
    line_number: int
    line: str
    matches: Tuple[KeywordMatch, ...]


@dataclass(frozen=True)
class ContextWindow:
    start: int
    end: int
    truncated_prefix: bool
    truncated_suffix: bool
    text: str
    match_offset: int
    match_length: int

    @property
    def matched_text(self) -> str:
        return self.text[self.match_offset : self.match_offset + self.match_length]


@dataclass(frozen=True)
class WindowedMatch:
    window: ContextWindow
    text: str
    offset: int
    length: int


@dataclass(frozen=True)
class LineResult:
    line_number: int
    line: str
    matches: Tuple[WindowedMatch, ...]


@dataclass(frozen=True)
class FileResult:
    path: Path
    size: int
    lines: Tuple[LineResult, ...]

    @property
    def match_count(self) -> int:
        return sum(len(line.matches) for line in self.lines)


class ScanStatus(str, Enum):
    SCANNED = "scanned"
    SKIPPED_LARGE = "skipped_large"
    UNREADABLE = "unreadable"


@dataclass(frozen=True)
class ScanOutcome:
    candidate: CandidateFile
    status: ScanStatus
    records: Tuple[MatchRecord, ...] = ()
    reason: Optional[str] = None

    @property
    def match_count(self) -> int:
        return sum(len(record.matches) for record in self.records)


@dataclass(frozen=True)
class ScanSummary:
    candidate_file_count: int
    scanned_file_count: int
    skipped_large_count: int
    unreadable_count: int
    enumeration_error_count: int
    matched_file_count: int
    total_match_count: int
    started_at: datetime
    finished_at: datetime
    elapsed_seconds: float
    throughput_files_per_second: float


PathLike = Union[str, Path]


@dataclass
class ScanReport:
    results: List[FileResult] = field(default_factory=list)
    summary: Optional[ScanSummary] = None
