from __future__ import annotations

import logging
import re
from typing import Iterable, Sequence, Tuple

from credsweep.common.errors import ConfigurationError
from credsweep.common.models import CompiledPattern

logger = logging.getLogger(__name__)


def compile_keywords(keywords: Sequence[str], case_sensitive: bool = False) -> CompiledPattern:
    """Compile literal keywords into a single alternation matcher.

    Keywords are escaped, deduplicated and ordered longest first so the
    resulting matcher does not depend on input order and prefers the longest
    keyword when two start at the same position.
    """

    if isinstance(keywords, str):
        keywords = (keywords,)
    ordered = _normalize(keywords)
    alternation = "|".join(re.escape(keyword) for keyword in ordered)
    flags = 0 if case_sensitive else re.IGNORECASE
    try:
        regex = re.compile(alternation, flags)
    except re.error as exc:  # pragma: no cover - escaped literals always compile
        raise ConfigurationError(f"Could not compile keywords: {exc}") from exc

    logger.debug("Compiled %d keyword(s), case_sensitive=%s", len(ordered), case_sensitive)
    return CompiledPattern(regex=regex, keywords=ordered, case_sensitive=case_sensitive)


def _normalize(keywords: Iterable[str]) -> Tuple[str, ...]:
    unique = set()
    for keyword in keywords:
        if not isinstance(keyword, str):
            raise ConfigurationError(f"Keywords must be strings, got {type(keyword).__name__}")
        if not keyword.strip():
            raise ConfigurationError("Keywords must not be blank")
        unique.add(keyword)
    if not unique:
        raise ConfigurationError("At least one keyword is required")
    return tuple(sorted(unique, key=lambda keyword: (-len(keyword), keyword)))
