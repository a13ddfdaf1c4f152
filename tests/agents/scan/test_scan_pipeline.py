from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from credsweep.agents.scan.pipeline import ScanAgent, ScanRun, serialize_file_result, serialize_summary
from credsweep.common.config import Settings
from credsweep.common.errors import ConfigurationError
from credsweep.common.models import ScanRequest
from credsweep.services.aggregator import ScanAggregator
from credsweep.services.content_scanner import ContentScanner
from credsweep.services.patterns import compile_keywords

ONE_MB = 1024 * 1024


def build_agent(workers: int = 1) -> ScanAgent:
    settings = Settings.model_validate(
        {
            "scan": {"exclude": []},
            "concurrency": {"workers": workers},
            "retry": {"max_attempts": 2, "base": 0.001, "max_sleep": 0.001},
        }
    )
    return ScanAgent(settings=settings)


@pytest.fixture
def credentials_tree(tmp_path: Path, write_file) -> Path:
    write_file(tmp_path / "a.txt", "user=admin password=hunter2")
    with (tmp_path / "b.bin").open("wb") as handle:
        handle.truncate(5 * ONE_MB)
    return tmp_path


def test_reference_scenario(credentials_tree: Path) -> None:
    agent = build_agent()
    request = agent.build_request(
        credentials_tree,
        keywords=["password"],
        case_sensitive=False,
        max_context=10,
        max_file_size_bytes=ONE_MB,
    )

    report = agent.run(request)

    assert len(report.results) == 1
    result = report.results[0]
    assert result.path == credentials_tree / "a.txt"
    assert result.size == len("user=admin password=hunter2")
    (line,) = result.lines
    assert line.line_number == 1
    (match,) = line.matches
    assert (match.text, match.offset, match.length) == ("password", 11, 8)
    assert match.window.text == "er=admin password=hunter2"
    assert match.window.matched_text == "password"

    summary = report.summary
    assert summary.candidate_file_count == 2
    assert summary.scanned_file_count == 1
    assert summary.skipped_large_count == 1
    assert summary.unreadable_count == 0
    assert summary.matched_file_count == 1
    assert summary.total_match_count == 1


def test_empty_keywords_fail_before_any_file_is_touched(credentials_tree: Path) -> None:
    agent = build_agent()

    with pytest.raises(ConfigurationError):
        agent.build_request(credentials_tree, keywords=[])


@pytest.mark.parametrize(
    "overrides",
    [{"max_context": -1}, {"max_file_size_bytes": 0}, {"keywords": ["  "]}],
)
def test_invalid_requests_are_configuration_errors(tmp_path: Path, overrides) -> None:
    with pytest.raises(ConfigurationError):
        build_agent().build_request(tmp_path, **overrides)


def test_missing_root_is_a_configuration_error(tmp_path: Path) -> None:
    agent = build_agent()
    request = ScanRequest(root=tmp_path / "missing", keywords=("password",))

    with pytest.raises(ConfigurationError):
        agent.start(request)


def test_unlistable_root_is_a_configuration_error(tmp_path: Path, monkeypatch) -> None:
    real_scandir = os.scandir

    def denied_scandir(path):
        if Path(path) == tmp_path:
            raise PermissionError(13, "Permission denied", str(path))
        return real_scandir(path)

    monkeypatch.setattr("credsweep.agents.scan.pipeline.os.scandir", denied_scandir)
    agent = build_agent()

    with pytest.raises(ConfigurationError, match="not readable"):
        agent.start(agent.build_request(tmp_path, keywords=["password"]))


def test_file_root_is_a_configuration_error(tmp_path: Path, write_file) -> None:
    target = write_file(tmp_path / "file.txt", "password")

    with pytest.raises(ConfigurationError):
        build_agent().start(ScanRequest(root=target, keywords=("password",)))


def test_request_defaults_come_from_settings(tmp_path: Path) -> None:
    request = build_agent().build_request(tmp_path)

    assert "password" in request.keywords
    assert request.max_context == 40
    assert request.exclude == ()


def test_recovered_conditions_are_all_counted(tmp_path: Path, write_file) -> None:
    write_file(tmp_path / "ok.txt", "token=1\nsecret=2 token=3\n")
    write_file(tmp_path / "clean.txt", "hello\n")
    write_file(tmp_path / "bad.txt", b"password=\xff\xfe\n")
    write_file(tmp_path / "big.txt", "x" * 200)
    agent = build_agent()
    request = agent.build_request(tmp_path, keywords=["token", "secret", "password"], max_file_size_bytes=100)

    report = agent.run(request)
    summary = report.summary

    assert [result.path.name for result in report.results] == ["ok.txt"]
    assert report.results[0].match_count == 3
    assert summary.candidate_file_count == 4
    assert summary.scanned_file_count == 2
    assert summary.skipped_large_count == 1
    assert summary.unreadable_count == 1
    assert (
        summary.scanned_file_count + summary.skipped_large_count + summary.unreadable_count
        == summary.candidate_file_count
    )


def test_enumeration_errors_do_not_abort_the_run(tmp_path: Path, write_file, monkeypatch) -> None:
    write_file(tmp_path / "locked" / "inner.txt", "password")
    write_file(tmp_path / "open" / "visible.txt", "password")
    real_scandir = os.scandir

    def guarded_scandir(path):
        if Path(path).name == "locked":
            raise PermissionError(13, "Permission denied", str(path))
        return real_scandir(path)

    monkeypatch.setattr("credsweep.services.enumerator.os.scandir", guarded_scandir)
    agent = build_agent()

    report = agent.run(agent.build_request(tmp_path, keywords=["password"]))

    assert [result.path.name for result in report.results] == ["visible.txt"]
    assert report.summary.enumeration_error_count == 1
    assert report.summary.candidate_file_count == 1


def test_parallel_workers_produce_the_same_results(tmp_path: Path, write_file) -> None:
    for index in range(30):
        body = "password\n" * (index % 3) + "filler\n"
        write_file(tmp_path / f"dir{index % 4}" / f"file{index:02d}.txt", body)

    sequential = build_agent(workers=1)
    parallel = build_agent(workers=4)
    seq_report = sequential.run(sequential.build_request(tmp_path, keywords=["password"]))
    par_report = parallel.run(parallel.build_request(tmp_path, keywords=["password"]))

    assert [result.path for result in par_report.results] == [result.path for result in seq_report.results]
    assert par_report.summary.total_match_count == seq_report.summary.total_match_count == 30
    assert par_report.summary.scanned_file_count == 30


def test_matches_are_ordered_within_a_file(tmp_path: Path, write_file) -> None:
    write_file(tmp_path / "multi.txt", "token password\n\npassword token token\n")
    agent = build_agent(workers=3)

    (result,) = agent.run(agent.build_request(tmp_path, keywords=["password", "token"])).results

    assert [line.line_number for line in result.lines] == [1, 3]
    assert [match.offset for match in result.lines[1].matches] == [0, 9, 15]


@pytest.mark.parametrize("workers", [1, 4])
def test_stopping_early_still_finalizes_summary(tmp_path: Path, write_file, workers: int) -> None:
    for index in range(20):
        write_file(tmp_path / f"f{index:02d}.txt", "password")
    agent = build_agent(workers=workers)
    scan_run = agent.start(agent.build_request(tmp_path, keywords=["password"]))

    assert scan_run.summary is None
    stream = iter(scan_run)
    next(stream)
    stream.close()

    summary = scan_run.summary
    assert summary is not None
    assert 1 <= summary.candidate_file_count < 20
    assert summary.enumeration_error_count == 0
    assert (
        summary.scanned_file_count + summary.skipped_large_count + summary.unreadable_count
        == summary.candidate_file_count
    )


def test_elapsed_time_is_measured_from_iteration(tmp_path: Path, write_file) -> None:
    write_file(tmp_path / "a.txt", "password")
    readings = iter([0.0, 100.0, 101.0])
    scan_run = ScanRun(
        request=ScanRequest(root=tmp_path, keywords=("password",)),
        pattern=compile_keywords(["password"]),
        scanner=ContentScanner(),
        aggregator=ScanAggregator(clock=lambda: next(readings)),
    )

    list(scan_run)

    assert scan_run.summary.elapsed_seconds == pytest.approx(1.0)


def test_run_can_only_be_iterated_once(tmp_path: Path) -> None:
    agent = build_agent()
    scan_run = agent.start(agent.build_request(tmp_path, keywords=["password"]))
    list(scan_run)

    with pytest.raises(RuntimeError):
        iter(scan_run)


def test_serializers_produce_json(credentials_tree: Path) -> None:
    agent = build_agent()
    report = agent.run(agent.build_request(credentials_tree, keywords=["password"], max_context=10, max_file_size_bytes=ONE_MB))

    payload = serialize_file_result(report.results[0])
    summary = serialize_summary(report.summary)

    assert json.loads(json.dumps(payload))["lines"][0]["matches"][0]["context"]["truncated_prefix"] is True
    assert payload["match_count"] == 1
    assert summary["skipped_large_count"] == 1
    json.dumps(summary)
