"""
Unit tests for forge_builder.log_reader.
"""

from datetime import UTC, datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from forge_builder.log_reader import LogWindowReader, parse_log_line, parse_timestamp
from forge_common.errors import ContainerNotFoundError, InvalidRangeError


class FakeRuntime:
    """Container runtime serving canned log lines."""

    def __init__(self, containers: dict[str, list[str]]):
        self.containers = containers
        self.streams_opened = 0
        self.container_exists = AsyncMock(side_effect=lambda cid: cid in self.containers)

    async def stream_logs(self, container_id, timestamps=True):
        self.streams_opened += 1
        for line in self.containers[container_id]:
            yield line


LINES = [
    "2024-01-01T00:00:00.000000000Z booting\n",
    "2024-01-01T10:00:00.123456789Z first\n",
    "2024-01-01T11:00:00Z second\n",
    "not a timestamped line\n",
    "2024-01-01T12:00:00.000000000Z third with  spaces\n",
    "2024-01-02T00:00:00.000000000Z later\n",
]


def t(hour: int, minute: int = 0) -> datetime:
    return datetime(2024, 1, 1, hour, minute, tzinfo=UTC)


async def collect(iterator):
    return [entry async for entry in iterator]


@pytest.fixture
def runtime():
    return FakeRuntime({"web": LINES, "quiet": []})


@pytest.fixture
def reader(runtime):
    return LogWindowReader(runtime=runtime)


class TestReadLogs:
    """Test suite for LogWindowReader.read_logs."""

    @pytest.mark.asyncio
    async def test_returns_entries_inside_window_in_order(self, reader):
        entries = await collect(await reader.read_logs("web", t(10), t(12)))

        assert [entry.text for entry in entries] == ["first", "second", "third with  spaces"]
        assert entries[0].timestamp == datetime(2024, 1, 1, 10, 0, 0, 123456, tzinfo=UTC)
        assert all(entry.source == "web" for entry in entries)

    @pytest.mark.asyncio
    async def test_bounds_are_inclusive(self, reader):
        entries = await collect(await reader.read_logs("web", t(11), t(11)))

        assert [entry.text for entry in entries] == ["second"]

    @pytest.mark.asyncio
    async def test_window_with_no_entries(self, reader):
        entries = await collect(await reader.read_logs("web", t(5), t(6)))

        assert entries == []

    @pytest.mark.asyncio
    async def test_empty_log(self, reader):
        entries = await collect(await reader.read_logs("quiet", t(0), t(23)))

        assert entries == []

    @pytest.mark.asyncio
    async def test_window_in_other_offset(self, reader):
        plus_two = timezone(timedelta(hours=2))
        start = datetime(2024, 1, 1, 12, 0, tzinfo=plus_two)
        end = datetime(2024, 1, 1, 13, 0, tzinfo=plus_two)

        entries = await collect(await reader.read_logs("web", start, end))

        assert [entry.text for entry in entries] == ["first", "second"]

    @pytest.mark.asyncio
    async def test_inverted_range_is_rejected_before_lookup(self, reader, runtime):
        with pytest.raises(InvalidRangeError):
            await reader.read_logs("does-not-exist", t(12), t(10))

        runtime.container_exists.assert_not_called()

    @pytest.mark.asyncio
    async def test_naive_bounds_are_rejected(self, reader):
        with pytest.raises(InvalidRangeError):
            await reader.read_logs("web", datetime(2024, 1, 1), datetime(2024, 1, 2))

    @pytest.mark.asyncio
    async def test_unknown_container(self, reader):
        with pytest.raises(ContainerNotFoundError) as exc_info:
            await reader.read_logs("does-not-exist", t(0), t(23))

        assert exc_info.value.container_id == "does-not-exist"

    @pytest.mark.asyncio
    async def test_empty_container_id(self, reader, runtime):
        with pytest.raises(ContainerNotFoundError):
            await reader.read_logs("", t(0), t(23))

        runtime.container_exists.assert_not_called()

    @pytest.mark.asyncio
    async def test_stream_is_lazy(self, reader, runtime):
        iterator = await reader.read_logs("web", t(0), t(23))
        assert runtime.streams_opened == 0

        await collect(iterator)
        assert runtime.streams_opened == 1

    @pytest.mark.asyncio
    async def test_each_call_requeries_runtime(self, reader, runtime):
        await collect(await reader.read_logs("web", t(0), t(23)))
        runtime.containers["web"] = LINES + ["2024-01-01T13:00:00Z appended\n"]

        entries = await collect(await reader.read_logs("web", t(13), t(13)))

        assert [entry.text for entry in entries] == ["appended"]
        assert runtime.streams_opened == 2


class TestParseTimestamp:
    """Test suite for parse_timestamp and parse_log_line."""

    def test_nanoseconds_are_truncated(self):
        value = parse_timestamp("2024-01-01T12:00:00.123456789Z")
        assert value == datetime(2024, 1, 1, 12, 0, 0, 123456, tzinfo=UTC)

    def test_without_fraction(self):
        assert parse_timestamp("2024-01-01T12:00:00Z") == t(12)

    def test_short_fraction(self):
        value = parse_timestamp("2024-01-01T12:00:00.5Z")
        assert value.microsecond == 500000

    def test_offset(self):
        value = parse_timestamp("2024-01-01T14:00:00+02:00")
        assert value == t(12)

    @pytest.mark.parametrize(
        "value",
        ["", "yesterday", "2024-01-01", "2024-01-01T12:00:00", "2024-13-01T00:00:00Z"],
    )
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            parse_timestamp(value)

    def test_parse_log_line(self):
        entry = parse_log_line("2024-01-01T12:00:00Z hello world\n", source="web")

        assert entry.timestamp == t(12)
        assert entry.text == "hello world"
        assert entry.source == "web"

    def test_parse_log_line_without_text(self):
        entry = parse_log_line("2024-01-01T12:00:00Z\n")
        assert entry.text == ""

    def test_parse_log_line_without_timestamp(self):
        assert parse_log_line("plain output\n") is None
