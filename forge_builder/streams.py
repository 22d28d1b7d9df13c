"""
Line reading for child process output.

Reads fixed-size chunks and splits them into lines, so a line longer than
the StreamReader buffer limit does not make the read fail.
"""

import asyncio
from collections.abc import AsyncGenerator

CHUNK_SIZE = 64 * 1024
MAX_LINE_BYTES = 1024 * 1024


async def iter_lines(
    stream: asyncio.StreamReader, max_line_bytes: int = MAX_LINE_BYTES
) -> AsyncGenerator[bytes, None]:
    """
    Yield the lines of a stream until EOF.

    Lines keep their trailing newline; the last line may lack one. A line
    longer than max_line_bytes is cut to that length and the rest of it
    is dropped.

    Args:
        stream: Stream to read, usually a child's stdout
        max_line_bytes: Longest line yielded
    """
    buffer = b""
    truncated = False

    while True:
        chunk = await stream.read(CHUNK_SIZE)
        if not chunk:
            break

        *lines, buffer = (buffer + chunk).split(b"\n")
        for line in lines:
            if truncated:
                # Remainder of a line that was already cut
                truncated = False
                continue
            yield line[:max_line_bytes] + b"\n"

        if truncated:
            buffer = b""
        elif len(buffer) > max_line_bytes:
            yield buffer[:max_line_bytes] + b"\n"
            buffer = b""
            truncated = True

    if buffer and not truncated:
        yield buffer[:max_line_bytes]
