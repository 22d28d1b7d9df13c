"""
Unit tests for forge_common.models.

Tests the build domain objects: immutability, serialization and the log
window invariant.
"""

import dataclasses
from datetime import UTC, datetime, timedelta, timezone

import pytest

from forge_common.errors import InvalidRangeError
from forge_common.models import (
    BuildFailed,
    BuildJob,
    BuildOptions,
    BuildSpec,
    BuildState,
    BuildSucceeded,
    ExitInfo,
    LocalSource,
    LogEntry,
    LogQuery,
    RemoteSource,
    format_time,
)


class TestBuildSpec:
    """Test suite for BuildSpec and BuildOptions."""

    def test_options_defaults_are_off(self):
        """Every option defaults to off / empty."""
        options = BuildOptions()

        assert options.to_dict() == {
            "print_dockerfile": False,
            "tags": [],
            "labels": [],
            "quiet": False,
            "no_cache": False,
            "inline_cache": False,
            "platforms": [],
            "use_current_dir": False,
            "no_error_without_start": False,
            "verbose": False,
            "cache_key": None,
            "cache_from": None,
            "out_dir": None,
            "incremental_cache_image": None,
        }

    def test_spec_is_immutable(self):
        """Assigning to a normalized spec fails."""
        spec = BuildSpec(source=RemoteSource("https://github.com/a/b.git"), image_name="img1")

        with pytest.raises(dataclasses.FrozenInstanceError):
            spec.image_name = "other"  # type: ignore[misc]
        with pytest.raises(dataclasses.FrozenInstanceError):
            spec.options.no_cache = True  # type: ignore[misc]

    def test_image_ref_uses_first_tag(self):
        spec = BuildSpec(
            source=LocalSource("/src"),
            image_name="img1",
            options=BuildOptions(tags=("v1", "latest")),
        )
        assert spec.image_ref == "img1:v1"

    def test_image_ref_defaults_to_latest(self):
        spec = BuildSpec(source=LocalSource("/src"), image_name="img1")
        assert spec.image_ref == "img1:latest"

    def test_to_dict_describes_source(self):
        remote = BuildSpec(source=RemoteSource("https://github.com/a/b.git"), image_name="img1")
        local = BuildSpec(source=LocalSource("/src"), image_name="img1")

        assert remote.to_dict()["source"] == {
            "kind": "remote",
            "location": "https://github.com/a/b.git",
        }
        assert local.to_dict()["source"] == {"kind": "local", "location": "/src"}


class TestBuildState:
    """Test suite for BuildState."""

    def test_terminal_states(self):
        assert BuildState.SUCCEEDED.is_terminal
        assert BuildState.FAILED.is_terminal
        assert not BuildState.QUEUED.is_terminal
        assert not BuildState.RUNNING.is_terminal

    def test_active_states(self):
        assert BuildState.QUEUED.is_active
        assert BuildState.RUNNING.is_active
        assert not BuildState.SUCCEEDED.is_active


class TestExitInfo:
    """Test suite for ExitInfo."""

    def test_from_success(self):
        info = ExitInfo.from_outcome(
            BuildSucceeded(image_ref="img1:v1", duration=2.5, output_tail="done\n")
        )

        assert info.exit_code == 0
        assert info.image_ref == "img1:v1"
        assert info.duration == 2.5
        assert info.output_tail == "done\n"

    def test_from_failure_keeps_dockerfile(self):
        info = ExitInfo.from_outcome(
            BuildFailed(exit_code=2, error_excerpt="boom\n", duration=1.0, dockerfile="FROM x\n")
        )

        assert info.exit_code == 2
        assert info.output_tail == "boom\n"
        assert info.image_ref is None
        assert info.dockerfile == "FROM x\n"


class TestBuildJobView:
    """Test suite for job snapshots."""

    def test_view_to_dict_formats_times_as_utc(self):
        created = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)
        job = BuildJob(
            job_id="job-1",
            image_name="img1",
            spec=BuildSpec(source=LocalSource("/src"), image_name="img1"),
            created_at=created,
        )

        data = job.view().to_dict()

        assert data["job_id"] == "job-1"
        assert data["state"] == "queued"
        assert data["created_at"] == "2024-01-01T12:00:00Z"
        assert data["started_at"] is None
        assert data["exit_info"] is None

    def test_view_is_a_snapshot(self):
        job = BuildJob(
            job_id="job-1",
            image_name="img1",
            spec=BuildSpec(source=LocalSource("/src"), image_name="img1"),
            created_at=datetime.now(UTC),
        )
        view = job.view()

        job.state = BuildState.RUNNING

        assert view.state == BuildState.QUEUED

    def test_summary_dict_carries_exit_code(self):
        job = BuildJob(
            job_id="job-1",
            image_name="img1",
            spec=BuildSpec(source=LocalSource("/src"), image_name="img1"),
            created_at=datetime.now(UTC),
            state=BuildState.FAILED,
            exit_info=ExitInfo(exit_code=1),
        )

        summary = job.view().to_summary_dict()

        assert summary["state"] == "failed"
        assert summary["exit_code"] == 1
        assert "spec" not in summary


class TestLogQuery:
    """Test suite for the log window invariant."""

    def test_accepts_equal_bounds(self):
        moment = datetime(2024, 1, 1, tzinfo=UTC)
        query = LogQuery("c1", moment, moment)

        assert query.matches(LogEntry(timestamp=moment, text="x"))

    def test_rejects_inverted_range(self):
        start = datetime(2024, 1, 2, tzinfo=UTC)
        with pytest.raises(InvalidRangeError):
            LogQuery("c1", start, start - timedelta(seconds=1))

    def test_rejects_naive_timestamps(self):
        with pytest.raises(InvalidRangeError):
            LogQuery("c1", datetime(2024, 1, 1), datetime(2024, 1, 2))

    def test_bounds_compare_across_offsets(self):
        """Offsets are honored when comparing entries to the window."""
        start = datetime(2024, 1, 1, 0, 0, tzinfo=UTC)
        end = datetime(2024, 1, 1, 1, 0, tzinfo=UTC)
        query = LogQuery("c1", start, end)
        plus_two = timezone(timedelta(hours=2))

        inside = LogEntry(timestamp=datetime(2024, 1, 1, 2, 30, tzinfo=plus_two), text="x")
        outside = LogEntry(timestamp=datetime(2024, 1, 1, 3, 30, tzinfo=plus_two), text="y")

        assert query.matches(inside)
        assert not query.matches(outside)


def test_format_time_none():
    assert format_time(None) is None
