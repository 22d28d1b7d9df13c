"""
Container runtime adapter.

Thin wrapper over the docker CLI for the read-only operations the log reader
needs: checking that a container exists and streaming its timestamped logs.
"""

import asyncio
import contextlib
from collections.abc import AsyncGenerator

from forge_common.errors import LaunchError

from .streams import iter_lines

DEFAULT_DOCKER_BINARY = "docker"


class ContainerRuntime:
    """
    Queries containers through the docker CLI.

    Containers are started outside of forge; this class never creates,
    stops or removes them.
    """

    def __init__(self, docker_binary: str = DEFAULT_DOCKER_BINARY):
        """
        Initialize the runtime adapter.

        Args:
            docker_binary: docker executable (or a compatible CLI such as podman)
        """
        self.docker_binary = docker_binary

    async def _spawn(self, *args: str, merge_stderr: bool = False) -> asyncio.subprocess.Process:
        try:
            return await asyncio.create_subprocess_exec(
                self.docker_binary,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT if merge_stderr else asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise LaunchError(self.docker_binary, str(e)) from e

    async def container_exists(self, container_id: str) -> bool:
        """
        Check whether the runtime knows a container.

        Args:
            container_id: Container ID or name

        Returns:
            True if `docker inspect` finds the container
        """
        process = await self._spawn("inspect", "--type", "container", "--format", "{{.Id}}", container_id)
        stdout, _ = await process.communicate()
        return process.returncode == 0 and bool(stdout.strip())

    async def stream_logs(
        self, container_id: str, timestamps: bool = True
    ) -> AsyncGenerator[str, None]:
        """
        Stream the existing logs of a container.

        Args:
            container_id: Container ID or name
            timestamps: Prefix each line with its RFC 3339 timestamp

        Yields:
            Log lines as strings, stdout and stderr interleaved
        """
        args = ["logs"]
        if timestamps:
            args.append("--timestamps")
        args.append(container_id)

        process = await self._spawn(*args, merge_stderr=True)

        assert process.stdout is not None

        try:
            async for line in iter_lines(process.stdout):
                yield line.decode(errors="replace")
            await process.wait()
        finally:
            # Clean up process if still running
            if process.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    process.terminate()
                await process.wait()
