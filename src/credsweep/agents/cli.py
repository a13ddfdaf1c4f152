from __future__ import annotations

import argparse
import json
import re
import sys
import uuid
from pathlib import Path
from typing import Optional, Sequence, TextIO

from credsweep.agents.scan.pipeline import ScanAgent, serialize_file_result, serialize_summary
from credsweep.common.config_loader import ConfigError, load_settings
from credsweep.common.errors import ConfigurationError
from credsweep.common.logging import configure_logging
from credsweep.common.models import FileResult, ScanSummary
from credsweep.services.context import render_window

_SIZE_PATTERN = re.compile(r"^\s*(\d+)\s*([kmg]?)(?:i?b)?\s*$", re.IGNORECASE)
_SIZE_UNITS = {"": 1, "k": 1024, "m": 1024 ** 2, "g": 1024 ** 3}


def _byte_size(value: str) -> int:
    match = _SIZE_PATTERN.match(value)
    if not match:
        raise argparse.ArgumentTypeError(f"Invalid size '{value}' (expected e.g. 4096, 512K, 1MB)")
    size = int(match.group(1)) * _SIZE_UNITS[match.group(2).lower()]
    if size <= 0:
        raise argparse.ArgumentTypeError(f"Size must be positive, got '{value}'")
    return size


def _non_negative_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Invalid integer '{value}'") from exc
    if number < 0:
        raise argparse.ArgumentTypeError(f"Value must be >= 0, got {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="credsweep",
        description="Scan a directory tree for keywords that may indicate exposed credentials.",
    )
    parser.add_argument("path", type=Path, help="Root directory to scan.")
    parser.add_argument(
        "-k",
        "--keyword",
        dest="keywords",
        action="append",
        help="Keyword to search for (repeatable). Defaults to the configured keyword list.",
    )
    parser.add_argument("--include", action="append", metavar="GLOB", help="Only scan files matching GLOB (repeatable).")
    parser.add_argument("--exclude", action="append", metavar="GLOB", help="Skip files and directories matching GLOB (repeatable).")
    parser.add_argument("-C", "--context", dest="max_context", type=_non_negative_int, help="Maximum context characters on each side of a match.")
    parser.add_argument("--case-sensitive", action="store_true", default=None, help="Match keywords case-sensitively.")
    parser.add_argument("--max-size", dest="max_file_size_bytes", type=_byte_size, help="Skip files larger than SIZE (e.g. 1MB).")
    parser.add_argument("--workers", type=int, help="Number of parallel scan workers.")
    parser.add_argument("--follow-symlinks", action="store_true", default=None, help="Follow symbolic links while walking.")
    parser.add_argument("--no-summary", action="store_true", help="Do not print the scan summary.")
    parser.add_argument("--format", choices=["json", "text"], help="Output format.")
    parser.add_argument("--pretty", action="store_true", help="Pretty-print JSON output.")
    parser.add_argument("--output", type=Path, help="Write results to this file instead of stdout.")
    parser.add_argument("--config", type=Path, help="Path to a settings YAML file.")
    parser.add_argument("--env", help="Environment override (matches config/env/<env>.yml).")
    parser.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings(env=args.env, config_path=args.config)
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 1

    configure_logging(
        level=args.log_level or settings.observability.log_level,
        json_logs=settings.observability.json_logs,
    )

    if args.workers is not None:
        if args.workers < 1:
            print("Configuration error: --workers must be >= 1", file=sys.stderr)
            return 1
        settings = settings.model_copy(
            update={"concurrency": settings.concurrency.model_copy(update={"workers": args.workers})}
        )

    output_format = args.format or settings.output.format
    pretty = args.pretty or settings.output.pretty
    show_summary = settings.output.show_summary and not args.no_summary

    agent = ScanAgent(settings=settings)
    try:
        request = agent.build_request(
            args.path,
            keywords=args.keywords,
            include=args.include,
            exclude=args.exclude,
            case_sensitive=args.case_sensitive,
            max_context=args.max_context,
            max_file_size_bytes=args.max_file_size_bytes,
            follow_symlinks=args.follow_symlinks,
        )
        scan_run = agent.start(request, run_id=str(uuid.uuid4()))
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 1

    if args.output:
        with args.output.expanduser().open("w", encoding="utf-8") as handle:
            _emit(scan_run, handle, output_format, pretty, show_summary)
    else:
        _emit(scan_run, sys.stdout, output_format, pretty, show_summary)
    return 0


def _emit(scan_run, stream: TextIO, output_format: str, pretty: bool, show_summary: bool) -> None:
    indent = 2 if pretty else None
    for result in scan_run:
        if output_format == "json":
            print(json.dumps(serialize_file_result(result), ensure_ascii=False, indent=indent), file=stream)
        else:
            _write_text_result(result, stream)

    summary = scan_run.summary
    if not show_summary or summary is None:
        return
    if output_format == "json":
        print(json.dumps({"summary": serialize_summary(summary)}, ensure_ascii=False, indent=indent), file=stream)
    else:
        _write_text_summary(summary, stream)


def _write_text_result(result: FileResult, stream: TextIO) -> None:
    for line in result.lines:
        for match in line.matches:
            print(f"{result.path}:{line.line_number}:{match.offset + 1}: {render_window(match.window)}", file=stream)


def _write_text_summary(summary: ScanSummary, stream: TextIO) -> None:
    print("", file=stream)
    print(f"Candidates:         {summary.candidate_file_count}", file=stream)
    print(f"Scanned:            {summary.scanned_file_count}", file=stream)
    print(f"Skipped (size):     {summary.skipped_large_count}", file=stream)
    print(f"Unreadable:         {summary.unreadable_count}", file=stream)
    print(f"Walk errors:        {summary.enumeration_error_count}", file=stream)
    print(f"Files with matches: {summary.matched_file_count}", file=stream)
    print(f"Total matches:      {summary.total_match_count}", file=stream)
    print(f"Elapsed:            {summary.elapsed_seconds:.3f}s ({summary.throughput_files_per_second:.1f} files/s)", file=stream)


if __name__ == "__main__":
    sys.exit(main())
