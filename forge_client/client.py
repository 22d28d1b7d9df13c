from datetime import datetime
from typing import Any

import requests

DEFAULT_SERVER_URL = "http://localhost:8084"


def _error_message(response: requests.Response) -> str:
    """Extract the server's error message from a failed response."""
    try:
        detail = response.json().get("detail")
    except ValueError:
        return response.text or response.reason
    if isinstance(detail, dict):
        return detail.get("message") or str(detail)
    return str(detail)


def _request(method: str, url: str, **kwargs: Any) -> Any:
    try:
        response = requests.request(method, url, **kwargs)
    except requests.exceptions.RequestException as e:
        raise RuntimeError(f"Error contacting forge server: {e}")

    if not response.ok:
        raise RuntimeError(f"{response.status_code}: {_error_message(response)}")
    return response.json()


def submit_build(
    path: str,
    name: str,
    envs: list[str] | None = None,
    build_options: dict[str, Any] | None = None,
    wait: bool = False,
    server_url: str = DEFAULT_SERVER_URL,
) -> dict[str, Any]:
    """
    Submit a build to the forge server.

    Args:
        path: Git repository URL or a directory on the server
        name: Image name
        envs: KEY=VALUE environment variables for the build
        build_options: Build options (tags, labels, platforms, flags)
        wait: Block until the build finished
        server_url: Base URL of the forge server

    Returns:
        Job dictionary (queued, or terminal when wait=True)

    Raises:
        RuntimeError: If submission fails due to network, validation or a
                      build already in progress for the image
    """
    body: dict[str, Any] = {"path": path, "name": name}
    if envs:
        body["envs"] = envs
    if build_options:
        body["build_options"] = build_options

    return _request(
        "POST",
        f"{server_url}/build",
        json=body,
        params={"wait": "true"} if wait else None,
        timeout=None if wait else 30,
    )


def get_build_status(name: str, server_url: str = DEFAULT_SERVER_URL) -> dict[str, Any]:
    """
    Get the latest build of an image.

    Raises:
        RuntimeError: If the request fails or no build is known
    """
    return _request("GET", f"{server_url}/builds/{name}", timeout=30)


def list_builds(server_url: str = DEFAULT_SERVER_URL) -> list[dict[str, Any]]:
    """List the builds the server holds in memory."""
    return _request("GET", f"{server_url}/builds", timeout=30)


def get_logs(
    container_id: str,
    start_time: datetime | str,
    end_time: datetime | str,
    server_url: str = DEFAULT_SERVER_URL,
) -> list[dict[str, Any]]:
    """
    Fetch a container's log entries within [start_time, end_time].

    Args:
        container_id: Container ID or name
        start_time: RFC 3339 string or timezone-aware datetime
        end_time: RFC 3339 string or timezone-aware datetime
        server_url: Base URL of the forge server

    Returns:
        List of {"timestamp", "text"} dictionaries in log order
    """
    params = {
        "container_id": container_id,
        "start_time": start_time.isoformat() if isinstance(start_time, datetime) else start_time,
        "end_time": end_time.isoformat() if isinstance(end_time, datetime) else end_time,
    }
    result = _request("GET", f"{server_url}/logs", params=params, timeout=300)
    return result["entries"]
