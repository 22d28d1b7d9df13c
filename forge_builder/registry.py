"""
In-memory registry of build jobs.

The registry is the single shared mutable resource of the orchestrator. All
reads and writes go through one lock, and admission is a single
check-then-insert critical section so two requests for the same image name
can never both be admitted.
"""

import logging
import threading
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from forge_common.errors import AlreadyBuildingError, InvalidTransitionError, UnknownJobError
from forge_common.models import BuildJob, BuildJobView, BuildSpec, BuildState, ExitInfo

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 256
DEFAULT_TTL_SECONDS = 3600.0


def utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class JobHandle:
    """Reference to an admitted job, held by whoever executes it."""

    image_name: str
    job_id: str
    spec: BuildSpec


class JobRegistry:
    """
    Lock-guarded table of build jobs keyed by image name.

    Only the most recent job per image name is kept. Terminal jobs are
    evicted oldest-first (by ended_at) once the table holds more than
    `capacity` jobs, and dropped once they are older than `ttl` seconds.
    Queued and running jobs are never evicted.
    """

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        ttl: float | None = DEFAULT_TTL_SECONDS,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Initialize the registry.

        Args:
            capacity: Number of jobs above which terminal jobs are evicted
            ttl: Seconds a terminal job is retained, or None to keep it
                 until capacity eviction
            clock: Source of timezone-aware timestamps
        """
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self.ttl = ttl
        self._clock = clock
        self._jobs: dict[str, BuildJob] = {}
        self._lock = threading.Lock()

    def admit(self, image_name: str, spec: BuildSpec) -> JobHandle:
        """
        Register a new queued job for an image name.

        Raises:
            AlreadyBuildingError: If a job for image_name is queued or running
        """
        with self._lock:
            self._prune_expired()

            current = self._jobs.get(image_name)
            if current is not None and current.state.is_active:
                raise AlreadyBuildingError(image_name, current.job_id)

            job = BuildJob(
                job_id=str(uuid.uuid4()),
                image_name=image_name,
                spec=spec,
                created_at=self._clock(),
            )
            # Re-insert so dict order tracks admission order
            self._jobs.pop(image_name, None)
            self._jobs[image_name] = job
            self._evict_over_capacity()

        logger.info(f"Admitted build {job.job_id} for image {image_name}")
        return JobHandle(image_name=image_name, job_id=job.job_id, spec=spec)

    def mark_running(self, handle: JobHandle) -> BuildJobView:
        """Move a queued job to running. Repeating it while running is a no-op."""
        with self._lock:
            job = self._get(handle)
            if job.state == BuildState.RUNNING:
                return job.view()
            self._check_transition(job, BuildState.RUNNING, (BuildState.QUEUED,))
            job.state = BuildState.RUNNING
            job.started_at = self._clock()
            return job.view()

    def mark_succeeded(self, handle: JobHandle, exit_info: ExitInfo) -> BuildJobView:
        """Move a running job to succeeded."""
        return self._finish(handle, BuildState.SUCCEEDED, exit_info, (BuildState.RUNNING,))

    def mark_failed(self, handle: JobHandle, exit_info: ExitInfo) -> BuildJobView:
        """Move a queued or running job to failed."""
        return self._finish(
            handle, BuildState.FAILED, exit_info, (BuildState.QUEUED, BuildState.RUNNING)
        )

    def status(self, image_name: str) -> BuildJobView | None:
        """Snapshot of the latest job for an image name, if any."""
        with self._lock:
            self._prune_expired()
            job = self._jobs.get(image_name)
            return job.view() if job else None

    def view(self, handle: JobHandle) -> BuildJobView:
        """Snapshot of the job a handle refers to."""
        with self._lock:
            return self._get(handle).view()

    def list_jobs(self) -> list[BuildJobView]:
        """Snapshots of all held jobs, oldest admission first."""
        with self._lock:
            self._prune_expired()
            return [job.view() for job in self._jobs.values()]

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def _finish(
        self,
        handle: JobHandle,
        target: BuildState,
        exit_info: ExitInfo,
        allowed: tuple[BuildState, ...],
    ) -> BuildJobView:
        with self._lock:
            job = self._get(handle)
            self._check_transition(job, target, allowed)
            job.state = target
            job.ended_at = self._clock()
            job.exit_info = exit_info
            view = job.view()
            self._evict_over_capacity()
            return view

    def _get(self, handle: JobHandle) -> BuildJob:
        job = self._jobs.get(handle.image_name)
        if job is None or job.job_id != handle.job_id:
            raise UnknownJobError(handle.job_id)
        return job

    @staticmethod
    def _check_transition(
        job: BuildJob, target: BuildState, allowed: tuple[BuildState, ...]
    ) -> None:
        if job.state not in allowed:
            logger.error(
                f"Rejected transition of job {job.job_id} from {job.state.value} to {target.value}"
            )
            raise InvalidTransitionError(job.job_id, job.state.value, target.value)

    def _prune_expired(self) -> None:
        if self.ttl is None:
            return
        cutoff = self._clock() - timedelta(seconds=self.ttl)
        expired = [
            name
            for name, job in self._jobs.items()
            if job.state.is_terminal and job.ended_at is not None and job.ended_at < cutoff
        ]
        for name in expired:
            logger.debug(f"Expiring job {self._jobs[name].job_id} for image {name}")
            del self._jobs[name]

    def _evict_over_capacity(self) -> None:
        while len(self._jobs) > self.capacity:
            terminal = [job for job in self._jobs.values() if job.state.is_terminal]
            if not terminal:
                # Only active jobs left; they are never evicted
                return
            oldest = min(terminal, key=lambda job: job.ended_at or job.created_at)
            logger.debug(f"Evicting job {oldest.job_id} for image {oldest.image_name}")
            del self._jobs[oldest.image_name]
