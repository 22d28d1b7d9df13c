"""
Build controller tying admission, execution and completion together.

Builds run as asyncio tasks outside the registry lock. When a build finishes
its task does not touch the registry; it puts a completion message on a
queue, and a single completion loop applies the terminal transition and
records the build history. Every admitted job therefore reaches a terminal
state exactly once, whichever way the caller waits for it.
"""

import asyncio
import contextlib
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace

from forge_common.errors import LaunchError, StateError
from forge_common.models import (
    BuildFailed,
    BuildJobView,
    BuildOutcome,
    BuildSpec,
    BuildSucceeded,
    ExitInfo,
)
from forge_persistence.sqlite_history import SQLiteBuildHistory

from .invoker import BuildInvoker
from .registry import JobHandle, JobRegistry

logger = logging.getLogger(__name__)

INTERRUPTED_MESSAGE = "Build interrupted by server shutdown"


@dataclass(frozen=True)
class BuildCompletion:
    """Message sent from a finished build task to the completion loop."""

    handle: JobHandle
    outcome: BuildOutcome
    error: Exception | None = None


class BuildController:
    """
    Accepts build specs and drives their jobs to a terminal state.

    This controller runs a completion loop that:
    1. Receives completion messages from build tasks
    2. Applies the terminal transition to the registry
    3. Records the result in the build history, when one is configured
    """

    def __init__(
        self,
        registry: JobRegistry | None = None,
        invoker: BuildInvoker | None = None,
        history: SQLiteBuildHistory | None = None,
        max_concurrent_builds: int | None = None,
    ):
        """
        Initialize the build controller.

        Args:
            registry: Job registry shared with the HTTP handlers
            invoker: Build engine invoker
            history: Optional build history store
            max_concurrent_builds: Ceiling on simultaneously running builds
                                   across all image names, None for unbounded
        """
        self.registry = registry or JobRegistry()
        self.invoker = invoker or BuildInvoker()
        self.history = history
        self.max_concurrent_builds = max_concurrent_builds

        self._slots = (
            asyncio.Semaphore(max_concurrent_builds)
            if max_concurrent_builds and max_concurrent_builds > 0
            else None
        )
        # None is the shutdown sentinel
        self._completions: asyncio.Queue[
            tuple[BuildCompletion, asyncio.Future | None] | None
        ] = asyncio.Queue()
        self._builds: dict[asyncio.Task, tuple[JobHandle, asyncio.Future | None]] = {}
        self._running = False
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the completion loop."""
        if self._running:
            logger.warning("Build controller already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info("Build controller started")

    async def stop(self, timeout: float | None = 30.0) -> None:
        """
        Stop the controller.

        In-flight builds get `timeout` seconds to finish. Builds still
        running after that are cancelled, which terminates their engine
        process, and their jobs are marked failed.
        """
        if not self._running:
            return

        logger.info("Stopping build controller...")

        interrupted: list[tuple[JobHandle, asyncio.Future | None]] = []
        if self._builds:
            logger.info(f"Waiting for {len(self._builds)} in-flight builds")
            _, pending = await asyncio.wait(set(self._builds), timeout=timeout)
            interrupted = [self._builds[task] for task in pending]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        # The loop applies everything queued ahead of the sentinel, then exits
        self._running = False
        await self._completions.put(None)
        if self._task:
            await self._task
            self._task = None

        for handle, done in interrupted:
            logger.warning(f"Build {handle.job_id} for image {handle.image_name} interrupted by shutdown")
            completion = BuildCompletion(
                handle=handle,
                outcome=BuildFailed(exit_code=None, error_excerpt=""),
                error=RuntimeError(INTERRUPTED_MESSAGE),
            )
            await self._process(completion, done)

        logger.info("Build controller stopped")

    async def submit(self, spec: BuildSpec, wait: bool = False) -> BuildJobView:
        """
        Admit a build and start it.

        Args:
            spec: Normalized build spec
            wait: If True, return only once the build reached a terminal state

        Returns:
            Snapshot of the job: queued (wait=False) or terminal (wait=True)

        Raises:
            AlreadyBuildingError: If a build for the same image is in progress
            LaunchError: If wait=True and the build engine could not be started
            RuntimeError: If the controller has not been started
        """
        if not self._running:
            raise RuntimeError("Build controller not running")

        handle = self.registry.admit(spec.image_name, spec)
        view = self.registry.view(handle)

        done = asyncio.get_running_loop().create_future() if wait else None
        task = asyncio.create_task(
            self._run_build(handle, done), name=f"build-{handle.job_id}"
        )
        self._builds[task] = (handle, done)
        task.add_done_callback(self._forget)

        if done is None:
            return view

        # A cancelled request must not cancel the build itself
        view, completion = await asyncio.shield(done)
        if isinstance(completion.error, LaunchError):
            raise completion.error
        return view

    def status(self, image_name: str) -> BuildJobView | None:
        return self.registry.status(image_name)

    def list_jobs(self) -> list[BuildJobView]:
        return self.registry.list_jobs()

    def _forget(self, task: asyncio.Task) -> None:
        self._builds.pop(task, None)

    async def _run_build(self, handle: JobHandle, done: asyncio.Future | None) -> None:
        """Wait for a build slot, run the build and hand the result to the loop."""
        slot = self._slots if self._slots is not None else contextlib.nullcontext()
        async with slot:
            completion = await self._execute(handle)
        await self._completions.put((completion, done))

    async def _execute(self, handle: JobHandle) -> BuildCompletion:
        started = time.monotonic()
        try:
            view = self.registry.mark_running(handle)
            logger.info(f"Build {handle.job_id} for image {handle.image_name} started")
            await self._record(self.history.record_started if self.history else None, view)

            outcome = await self.invoker.invoke(handle.spec)
            return BuildCompletion(handle=handle, outcome=outcome)

        except LaunchError as e:
            logger.error(f"Build {handle.job_id} for image {handle.image_name} could not start: {e}")
            return BuildCompletion(
                handle=handle,
                outcome=BuildFailed(
                    exit_code=None, error_excerpt=str(e), duration=time.monotonic() - started
                ),
                error=e,
            )
        except Exception as e:
            logger.error(f"Unexpected error in build {handle.job_id}: {e}", exc_info=True)
            return BuildCompletion(
                handle=handle,
                outcome=BuildFailed(
                    exit_code=None,
                    error_excerpt=f"Internal error: {e}",
                    duration=time.monotonic() - started,
                ),
                error=e,
            )

    async def _run_loop(self) -> None:
        """Main completion loop."""
        while True:
            item = await self._completions.get()
            if item is None:
                break
            completion, done = item
            await self._process(completion, done)

    async def _process(self, completion: BuildCompletion, done: asyncio.Future | None) -> None:
        try:
            view = await self._apply(completion)
        except StateError as e:
            logger.error(f"Error applying completion of job {completion.handle.job_id}: {e}", exc_info=True)
            if done is not None and not done.done():
                done.set_exception(e)
            return

        if done is not None and not done.done():
            done.set_result((view, completion))

    async def _apply(self, completion: BuildCompletion) -> BuildJobView:
        """Apply a completion message to the registry and the history."""
        handle, outcome = completion.handle, completion.outcome

        exit_info = ExitInfo.from_outcome(outcome)
        if completion.error is not None:
            exit_info = replace(exit_info, error=str(completion.error))

        if isinstance(outcome, BuildSucceeded):
            view = self.registry.mark_succeeded(handle, exit_info)
            logger.info(
                f"Build {handle.job_id} for image {handle.image_name} succeeded "
                f"in {outcome.duration:.1f}s ({outcome.image_ref})"
            )
        else:
            view = self.registry.mark_failed(handle, exit_info)
            logger.info(
                f"Build {handle.job_id} for image {handle.image_name} failed "
                f"with exit code {outcome.exit_code}"
            )

        await self._record(self.history.record_finished if self.history else None, view)
        return view

    async def _record(
        self, write: Callable[[BuildJobView], Awaitable[None]] | None, view: BuildJobView
    ) -> None:
        if write is None:
            return
        try:
            await write(view)
        except Exception as e:
            # History is best effort; the registry stays authoritative
            logger.error(f"Failed to record build history for job {view.job_id}: {e}", exc_info=True)
