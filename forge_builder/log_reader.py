"""
Windowed container log retrieval.

Reads a container's timestamped log stream from the container runtime and
yields only the entries whose timestamp falls inside [start_time, end_time].
Every call re-queries the runtime; nothing is cached.
"""

import logging
import re
from collections.abc import AsyncIterator
from datetime import datetime

from forge_common.errors import ContainerNotFoundError
from forge_common.models import LogEntry, LogQuery

from .container_runtime import ContainerRuntime

logger = logging.getLogger(__name__)

# RFC 3339 with optional fraction of any precision (docker emits nanoseconds)
TIMESTAMP_PATTERN = re.compile(
    r"^(?P<date>\d{4}-\d{2}-\d{2})[Tt ](?P<time>\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<fraction>\d+))?(?P<offset>[Zz]|[+-]\d{2}:\d{2})$"
)


def parse_timestamp(value: str) -> datetime:
    """
    Parse an RFC 3339 timestamp into a timezone-aware datetime.

    Fractions finer than microseconds are truncated.

    Raises:
        ValueError: If the value is not an RFC 3339 timestamp with an offset
    """
    match = TIMESTAMP_PATTERN.match(value.strip())
    if match is None:
        raise ValueError(f"Not an RFC 3339 timestamp: {value!r}")

    fraction = (match["fraction"] or "")[:6].ljust(6, "0")
    offset = "+00:00" if match["offset"] in ("Z", "z") else match["offset"]
    return datetime.fromisoformat(f"{match['date']}T{match['time']}.{fraction}{offset}")


def parse_log_line(line: str, source: str = "") -> LogEntry | None:
    """
    Split a `docker logs --timestamps` line into a LogEntry.

    Returns:
        LogEntry, or None if the line does not start with a timestamp
    """
    line = line.rstrip("\r\n")
    stamp, _, text = line.partition(" ")
    try:
        timestamp = parse_timestamp(stamp)
    except ValueError:
        return None
    return LogEntry(timestamp=timestamp, text=text, source=source)


class LogWindowReader:
    """Returns the part of a container's log stream inside a time window."""

    def __init__(self, runtime: ContainerRuntime | None = None):
        self.runtime = runtime or ContainerRuntime()

    async def read_logs(
        self, container_id: str, start_time: datetime, end_time: datetime
    ) -> AsyncIterator[LogEntry]:
        """
        Open a log window on a container.

        The window is validated before the runtime is queried, and the
        container is looked up before the iterator is returned, so both
        errors surface from this call rather than from iteration.

        Args:
            container_id: Container ID or name
            start_time: Inclusive lower bound (timezone-aware)
            end_time: Inclusive upper bound (timezone-aware)

        Returns:
            Lazy, single-use async iterator of entries in original order

        Raises:
            InvalidRangeError: If start_time > end_time or either is naive
            ContainerNotFoundError: If the runtime does not know the container
            LaunchError: If the container runtime cannot be started
        """
        query = LogQuery(container_id=container_id, start_time=start_time, end_time=end_time)

        if not container_id or not await self.runtime.container_exists(container_id):
            raise ContainerNotFoundError(container_id)

        return self._entries(query)

    async def _entries(self, query: LogQuery) -> AsyncIterator[LogEntry]:
        skipped = 0
        async for line in self.runtime.stream_logs(query.container_id, timestamps=True):
            entry = parse_log_line(line, source=query.container_id)
            if entry is None:
                skipped += 1
                continue
            if query.matches(entry):
                yield entry

        if skipped:
            logger.warning(
                f"Skipped {skipped} log lines without a timestamp from container {query.container_id}"
            )
