from __future__ import annotations

import logging
import os
from fnmatch import fnmatch
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Sequence, Set, Tuple

from credsweep.common.errors import EnumerationError
from credsweep.common.models import CandidateFile

logger = logging.getLogger(__name__)

ErrorCallback = Callable[[EnumerationError], None]


def enumerate_files(
    root: Path,
    include: Sequence[str] = (),
    exclude: Sequence[str] = (),
    follow_symlinks: bool = False,
    on_error: Optional[ErrorCallback] = None,
) -> Iterator[CandidateFile]:
    """Lazily walk ``root`` yielding regular files admitted by the glob filters.

    Entries are visited in name order. Failures on individual entries are
    reported through ``on_error`` and never stop the walk. Symbolic links are
    skipped unless ``follow_symlinks`` is set, in which case directories are
    tracked by device and inode so a link cycle is entered at most once.
    """

    root_path = Path(root)
    if root_path.is_file():
        try:
            size = root_path.stat().st_size
        except OSError as exc:
            _report(root_path, exc, on_error)
            return
        if _admitted(root_path.name, root_path.name, include, exclude):
            yield CandidateFile(path=root_path, size=size, relative_path=root_path.name)
        return

    visited: Set[Tuple[int, int]] = set()
    if follow_symlinks:
        try:
            stat = root_path.stat()
        except OSError as exc:
            _report(root_path, exc, on_error)
            return
        visited.add((stat.st_dev, stat.st_ino))

    stack: List[Path] = [root_path]
    while stack:
        directory = stack.pop()
        try:
            with os.scandir(directory) as iterator:
                entries = sorted(iterator, key=lambda item: item.name)
        except OSError as exc:
            _report(directory, exc, on_error)
            continue

        subdirectories: List[Path] = []
        for entry in entries:
            entry_path = Path(entry.path)
            relative = entry_path.relative_to(root_path).as_posix()
            try:
                if entry.is_symlink() and not follow_symlinks:
                    logger.debug("Skipping symbolic link %s", entry_path)
                    continue
                if entry.is_dir(follow_symlinks=follow_symlinks):
                    if _matches_any(relative, entry.name, exclude):
                        logger.debug("Pruning excluded directory %s", entry_path)
                        continue
                    if follow_symlinks:
                        stat = entry.stat(follow_symlinks=True)
                        key = (stat.st_dev, stat.st_ino)
                        if key in visited:
                            logger.debug("Skipping already visited directory %s", entry_path)
                            continue
                        visited.add(key)
                    subdirectories.append(entry_path)
                    continue
                if not entry.is_file(follow_symlinks=follow_symlinks):
                    continue
                if not _admitted(relative, entry.name, include, exclude):
                    continue
                size = entry.stat(follow_symlinks=follow_symlinks).st_size
            except OSError as exc:
                _report(entry_path, exc, on_error)
                continue
            yield CandidateFile(path=entry_path, size=size, relative_path=relative)

        stack.extend(reversed(subdirectories))


def _admitted(relative: str, name: str, include: Sequence[str], exclude: Sequence[str]) -> bool:
    if include and not _matches_any(relative, name, include):
        return False
    return not _matches_any(relative, name, exclude)


def _matches_any(relative: str, name: str, patterns: Sequence[str]) -> bool:
    return any(fnmatch(relative, pattern) or fnmatch(name, pattern) for pattern in patterns)


def _report(path: Path, exc: OSError, on_error: Optional[ErrorCallback]) -> None:
    error = EnumerationError(path, exc)
    logger.warning("%s", error)
    if on_error is not None:
        on_error(error)
