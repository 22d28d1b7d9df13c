"""
Build engine invocation.

Translates a BuildSpec into a command line for the external build engine
(nixpacks by default), runs it, streams its combined output and reports the
outcome. Remote sources are cloned with git into a temporary directory first.
"""

import asyncio
import contextlib
import logging
import tempfile
import time
from collections import deque
from dataclasses import dataclass
from pathlib import Path

from forge_common.errors import LaunchError
from forge_common.models import BuildFailed, BuildOutcome, BuildSpec, BuildSucceeded, RemoteSource

from .streams import iter_lines

logger = logging.getLogger(__name__)

DEFAULT_ENGINE = "nixpacks"
DEFAULT_GIT_BINARY = "git"
DEFAULT_OUTPUT_TAIL_LINES = 50


@dataclass(frozen=True)
class ProcessResult:
    """Exit status and captured output of a finished child process."""

    returncode: int
    tail: str
    output: str | None = None


def build_engine_args(engine: str, spec: BuildSpec, source_dir: str) -> list[str]:
    """
    Map a BuildSpec onto the engine's command line.

    Every option maps to exactly one flag. Booleans are emitted only when
    set; tags, labels, platforms and env vars expand to one flag per
    element in their original order.
    """
    options = spec.options
    args = [engine, "build", source_dir, "--name", spec.image_name]

    for env in spec.env_vars:
        args += ["--env", env]
    for tag in options.tags:
        args += ["--tag", tag]
    for label in options.labels:
        args += ["--label", label]
    for platform in options.platforms:
        args += ["--platform", platform]

    flags = (
        (options.print_dockerfile, "--print-dockerfile"),
        (options.quiet, "--quiet"),
        (options.no_cache, "--no-cache"),
        (options.inline_cache, "--inline-cache"),
        (options.use_current_dir, "--current-dir"),
        (options.no_error_without_start, "--no-error-without-start"),
        (options.verbose, "--verbose"),
    )
    args += [flag for enabled, flag in flags if enabled]

    values = (
        ("--cache-key", options.cache_key),
        ("--cache-from", options.cache_from),
        ("--out", options.out_dir),
        ("--incremental-cache-image", options.incremental_cache_image),
    )
    for flag, value in values:
        if value is not None:
            args += [flag, value]

    return args


class BuildInvoker:
    """
    Runs the external build engine for one BuildSpec at a time.

    The invoker holds no shared state; the controller may run several
    invocations concurrently.
    """

    def __init__(
        self,
        engine: str = DEFAULT_ENGINE,
        git_binary: str = DEFAULT_GIT_BINARY,
        output_tail_lines: int = DEFAULT_OUTPUT_TAIL_LINES,
    ):
        """
        Initialize the invoker.

        Args:
            engine: Build engine executable
            git_binary: git executable used to fetch remote sources
            output_tail_lines: Lines of output kept for failure reports
        """
        self.engine = engine
        self.git_binary = git_binary
        self.output_tail_lines = output_tail_lines

    async def invoke(self, spec: BuildSpec) -> BuildOutcome:
        """
        Build the image described by spec.

        Returns:
            BuildSucceeded if the engine exited with status 0, BuildFailed otherwise

        Raises:
            LaunchError: If git or the build engine cannot be started
        """
        started = time.monotonic()

        if isinstance(spec.source, RemoteSource):
            with tempfile.TemporaryDirectory(prefix="forge_build_") as temp_dir:
                checkout = Path(temp_dir) / "source"
                logger.info(f"Cloning {spec.source.url} for image {spec.image_name}")
                clone = await self._run(
                    [self.git_binary, "clone", "--depth", "1", spec.source.url, str(checkout)]
                )
                if clone.returncode != 0:
                    return BuildFailed(
                        exit_code=clone.returncode,
                        error_excerpt=f"git clone failed:\n{clone.tail}",
                        duration=time.monotonic() - started,
                    )
                return await self._build(spec, str(checkout), started)

        return await self._build(spec, spec.source.path, started)

    async def _build(self, spec: BuildSpec, source_dir: str, started: float) -> BuildOutcome:
        args = build_engine_args(self.engine, spec, source_dir)
        logger.info(f"Running build engine for image {spec.image_name}: {' '.join(args)}")

        result = await self._run(args, keep_output=spec.options.print_dockerfile)
        duration = time.monotonic() - started

        if result.returncode == 0:
            return BuildSucceeded(
                image_ref=spec.image_ref,
                duration=duration,
                output_tail=result.tail,
                dockerfile=result.output,
            )
        return BuildFailed(
            exit_code=result.returncode,
            error_excerpt=result.tail,
            duration=duration,
            dockerfile=result.output,
        )

    async def _run(self, args: list[str], keep_output: bool = False) -> ProcessResult:
        """
        Run a child process to completion, draining its combined output.

        The child is always waited for; if the caller is cancelled while the
        child is still alive it is terminated first.
        """
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            raise LaunchError(args[0], str(e)) from e

        assert process.stdout is not None, (
            "stdout should be available when PIPE is specified"
        )

        tail: deque[str] = deque(maxlen=self.output_tail_lines)
        output: list[str] | None = [] if keep_output else None

        try:
            async for line in iter_lines(process.stdout):
                text = line.decode(errors="replace")
                logger.debug(f"[{Path(args[0]).name}] {text.rstrip()}")
                tail.append(text)
                if output is not None:
                    output.append(text)

            await process.wait()
        finally:
            if process.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    process.terminate()
                await process.wait()

        return ProcessResult(
            returncode=process.returncode,
            tail="".join(tail),
            output="".join(output) if output is not None else None,
        )
