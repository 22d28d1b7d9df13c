"""
Data models for build orchestration.

These models represent the domain objects used throughout the application,
independent of the HTTP layer and the external build engine.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from .errors import InvalidRangeError


def format_time(value: datetime | None) -> str | None:
    """Render a timezone-aware timestamp as RFC 3339 with a Z suffix for UTC."""
    if value is None:
        return None
    return value.isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class RemoteSource:
    """Source fetched from a remote git repository."""

    url: str

    @property
    def location(self) -> str:
        return self.url


@dataclass(frozen=True)
class LocalSource:
    """Source read from a directory on the build host."""

    path: str

    @property
    def location(self) -> str:
        return self.path


Source = RemoteSource | LocalSource


@dataclass(frozen=True)
class BuildOptions:
    """
    Options forwarded to the build engine.

    Every field has an explicit default; unset booleans leave the matching
    engine flag out of the invocation. Collection fields are tuples so that
    a normalized BuildOptions can be shared without copying.
    """

    print_dockerfile: bool = False
    tags: tuple[str, ...] = ()
    labels: tuple[str, ...] = ()
    quiet: bool = False
    no_cache: bool = False
    inline_cache: bool = False
    platforms: tuple[str, ...] = ()
    use_current_dir: bool = False
    no_error_without_start: bool = False
    verbose: bool = False
    cache_key: str | None = None
    cache_from: str | None = None
    out_dir: str | None = None
    incremental_cache_image: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert options to dictionary format (for API responses)."""
        return {
            "print_dockerfile": self.print_dockerfile,
            "tags": list(self.tags),
            "labels": list(self.labels),
            "quiet": self.quiet,
            "no_cache": self.no_cache,
            "inline_cache": self.inline_cache,
            "platforms": list(self.platforms),
            "use_current_dir": self.use_current_dir,
            "no_error_without_start": self.no_error_without_start,
            "verbose": self.verbose,
            "cache_key": self.cache_key,
            "cache_from": self.cache_from,
            "out_dir": self.out_dir,
            "incremental_cache_image": self.incremental_cache_image,
        }


@dataclass(frozen=True)
class BuildSpec:
    """
    Normalized, immutable description of a single build request.

    Produced by forge_builder.normalizer.normalize and shared read-only by
    the registry, the controller and the invoker.
    """

    source: Source
    image_name: str
    env_vars: tuple[str, ...] = ()
    options: BuildOptions = field(default_factory=BuildOptions)

    @property
    def image_ref(self) -> str:
        """Image reference the build produces (first tag, or the implicit latest)."""
        tag = self.options.tags[0] if self.options.tags else "latest"
        return f"{self.image_name}:{tag}"

    def to_dict(self) -> dict[str, Any]:
        """Convert spec to dictionary format (for API responses)."""
        return {
            "source": {
                "kind": "remote" if isinstance(self.source, RemoteSource) else "local",
                "location": self.source.location,
            },
            "image_name": self.image_name,
            "env_vars": list(self.env_vars),
            "options": self.options.to_dict(),
        }


class BuildState(str, Enum):
    """Build job lifecycle states."""

    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (BuildState.SUCCEEDED, BuildState.FAILED)

    @property
    def is_active(self) -> bool:
        return self in (BuildState.QUEUED, BuildState.RUNNING)


@dataclass(frozen=True)
class BuildSucceeded:
    """The engine exited with status 0."""

    image_ref: str
    duration: float
    output_tail: str = ""
    dockerfile: str | None = None


@dataclass(frozen=True)
class BuildFailed:
    """
    The build did not produce an image.

    exit_code is None when the engine never ran (launch failure or an
    unexpected error in the build task).
    """

    exit_code: int | None
    error_excerpt: str
    duration: float = 0.0
    dockerfile: str | None = None


BuildOutcome = BuildSucceeded | BuildFailed


@dataclass(frozen=True)
class ExitInfo:
    """Terminal details recorded on a job when its build finishes."""

    exit_code: int | None = None
    output_tail: str = ""
    image_ref: str | None = None
    duration: float | None = None
    dockerfile: str | None = None
    error: str | None = None

    @classmethod
    def from_outcome(cls, outcome: BuildOutcome) -> "ExitInfo":
        """Create exit info from a build outcome."""
        if isinstance(outcome, BuildSucceeded):
            return cls(
                exit_code=0,
                output_tail=outcome.output_tail,
                image_ref=outcome.image_ref,
                duration=outcome.duration,
                dockerfile=outcome.dockerfile,
            )
        return cls(
            exit_code=outcome.exit_code,
            output_tail=outcome.error_excerpt,
            duration=outcome.duration,
            dockerfile=outcome.dockerfile,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "exit_code": self.exit_code,
            "output_tail": self.output_tail,
            "image_ref": self.image_ref,
            "duration": self.duration,
            "dockerfile": self.dockerfile,
            "error": self.error,
        }


@dataclass
class BuildJob:
    """
    A tracked build, owned exclusively by the JobRegistry.

    Jobs progress through states: queued -> running -> succeeded | failed
    A queued job that can never start goes straight to failed.
    """

    job_id: str
    image_name: str
    spec: BuildSpec
    created_at: datetime
    state: BuildState = BuildState.QUEUED
    started_at: datetime | None = None
    ended_at: datetime | None = None
    exit_info: ExitInfo | None = None

    def view(self) -> "BuildJobView":
        """Take an immutable snapshot of the job."""
        return BuildJobView(
            job_id=self.job_id,
            image_name=self.image_name,
            spec=self.spec,
            state=self.state,
            created_at=self.created_at,
            started_at=self.started_at,
            ended_at=self.ended_at,
            exit_info=self.exit_info,
        )


@dataclass(frozen=True)
class BuildJobView:
    """Read-only snapshot of a BuildJob handed out to callers."""

    job_id: str
    image_name: str
    spec: BuildSpec
    state: BuildState
    created_at: datetime
    started_at: datetime | None = None
    ended_at: datetime | None = None
    exit_info: ExitInfo | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert job to dictionary format (for API responses)."""
        return {
            "job_id": self.job_id,
            "image_name": self.image_name,
            "state": self.state.value,
            "created_at": format_time(self.created_at),
            "started_at": format_time(self.started_at),
            "ended_at": format_time(self.ended_at),
            "exit_info": self.exit_info.to_dict() if self.exit_info else None,
            "spec": self.spec.to_dict(),
        }

    def to_summary_dict(self) -> dict[str, Any]:
        """Convert job to summary format (without spec and output, for listings)."""
        return {
            "job_id": self.job_id,
            "image_name": self.image_name,
            "state": self.state.value,
            "started_at": format_time(self.started_at),
            "ended_at": format_time(self.ended_at),
            "exit_code": self.exit_info.exit_code if self.exit_info else None,
        }


@dataclass(frozen=True)
class LogEntry:
    """A single timestamped line from a container's log stream."""

    timestamp: datetime
    text: str
    source: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"timestamp": format_time(self.timestamp), "text": self.text}


@dataclass(frozen=True)
class LogQuery:
    """A container id and the inclusive window of log entries to return."""

    container_id: str
    start_time: datetime
    end_time: datetime

    def __post_init__(self) -> None:
        if self.start_time.tzinfo is None or self.end_time.tzinfo is None:
            raise InvalidRangeError("start_time and end_time must carry a timezone offset")
        if self.start_time > self.end_time:
            raise InvalidRangeError(
                f"start_time {format_time(self.start_time)} is after "
                f"end_time {format_time(self.end_time)}"
            )

    def matches(self, entry: LogEntry) -> bool:
        return self.start_time <= entry.timestamp <= self.end_time
