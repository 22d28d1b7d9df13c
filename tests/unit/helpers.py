"""
Helpers shared by the unit tests.
"""

import asyncio
import stat
from collections.abc import Iterable
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

from forge_common.models import BuildOptions, BuildSpec, LocalSource, RemoteSource


def make_spec(
    name: str = "img1",
    path: str = "https://github.com/a/b.git",
    envs: Iterable[str] = (),
    **options,
) -> BuildSpec:
    """Build a BuildSpec without going through the normalizer."""
    source = RemoteSource(url=path) if "://" in path else LocalSource(path=path)
    return BuildSpec(
        source=source,
        image_name=name,
        env_vars=tuple(envs),
        options=BuildOptions(**options),
    )


def make_process(lines: Iterable[bytes] = (), returncode: int = 0) -> AsyncMock:
    """Create a mock asyncio subprocess that prints lines and exits."""
    process = AsyncMock()
    process.stdout = AsyncMock()
    process.stdout.read = AsyncMock(side_effect=[*lines, b""])
    process.returncode = returncode
    process.wait = AsyncMock(return_value=returncode)
    process.terminate = MagicMock()
    return process


def write_script(path: Path, body: str) -> Path:
    """Write an executable shell script."""
    path.write_text(body)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


async def wait_for_state(controller, image_name: str, states: Iterable[str], timeout: float = 5.0):
    """Poll the controller until the latest job of an image reaches one of states."""
    wanted = set(states)
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while True:
        view = controller.status(image_name)
        if view is not None and view.state.value in wanted:
            return view
        if loop.time() > deadline:
            raise AssertionError(f"{image_name} never reached {wanted}, last view: {view}")
        await asyncio.sleep(0.01)
