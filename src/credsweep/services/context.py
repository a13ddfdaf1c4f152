from __future__ import annotations

from credsweep.common.errors import ConfigurationError
from credsweep.common.models import ContextWindow, KeywordMatch

TRUNCATION_MARKER = "..."


def extract_context(line: str, start: int, length: int, max_context: int) -> ContextWindow:
    """Compute the context window around a match on ``line``.

    Offsets are code point indexes into the decoded line. The width on each
    side is ``min(max_context, len(line) // 3)``.
    """

    if max_context < 0:
        raise ConfigurationError(f"max_context must be >= 0, got {max_context}")
    line_length = len(line)
    end = start + length
    if start < 0 or length < 0 or end > line_length:
        raise ValueError(f"Match [{start}, {end}) is outside a line of length {line_length}")

    width = min(max_context, line_length // 3)
    context_start = max(0, start - width)
    context_end = min(line_length, end + width)

    return ContextWindow(
        start=context_start,
        end=context_end,
        truncated_prefix=context_start > 0,
        truncated_suffix=context_end < line_length,
        text=line[context_start:context_end],
        match_offset=start - context_start,
        match_length=length,
    )


def window_for(line: str, match: KeywordMatch, max_context: int) -> ContextWindow:
    return extract_context(line, match.start, match.length, max_context)


def render_window(window: ContextWindow, marker: str = TRUNCATION_MARKER) -> str:
    prefix = marker if window.truncated_prefix else ""
    suffix = marker if window.truncated_suffix else ""
    return f"{prefix}{window.text}{suffix}"
