import json
import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import HTMLResponse, JSONResponse

from forge_builder.container_runtime import ContainerRuntime
from forge_builder.controller import BuildController
from forge_builder.invoker import BuildInvoker
from forge_builder.log_reader import LogWindowReader, parse_timestamp
from forge_builder.normalizer import normalize
from forge_builder.registry import JobRegistry
from forge_common.errors import (
    AlreadyBuildingError,
    ContainerNotFoundError,
    InvalidRangeError,
    LaunchError,
    ValidationError,
)
from forge_common.models import BuildJobView
from forge_persistence.sqlite_history import SQLiteBuildHistory

from .config import ServerConfig
from .webhook import build_request_from_push, verify_signature

logger = logging.getLogger(__name__)

# Set by the forge-server entrypoint; falls back to the environment
startup_config: ServerConfig | None = None

# Global instances (initialized at startup)
settings: ServerConfig | None = None
controller: BuildController | None = None
log_reader: LogWindowReader | None = None
history: SQLiteBuildHistory | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI app.

    Handles startup and shutdown events:
    - Startup: Open the build history (if configured), create the registry
      and start the build controller
    - Shutdown: Let in-flight builds finish, then close the history
    """
    global settings, controller, log_reader, history

    settings = startup_config or ServerConfig.from_env()

    if settings.db_path:
        history = SQLiteBuildHistory(settings.db_path)
        await history.initialize()
        logger.info(f"Build history: {settings.db_path}")

    controller = BuildController(
        registry=JobRegistry(capacity=settings.registry_capacity, ttl=settings.job_ttl),
        invoker=BuildInvoker(
            engine=settings.build_engine,
            git_binary=settings.git_binary,
            output_tail_lines=settings.output_tail_lines,
        ),
        history=history,
        max_concurrent_builds=settings.max_concurrent_builds,
    )
    await controller.start()

    log_reader = LogWindowReader(ContainerRuntime(docker_binary=settings.docker_binary))

    yield

    await controller.stop()
    if history:
        await history.close()

    controller = None
    log_reader = None
    history = None


app = FastAPI(title="forge", lifespan=lifespan)


def get_settings() -> ServerConfig:
    """
    Get the active server configuration.

    Raises:
        RuntimeError: If the server has not started
    """
    if settings is None:
        raise RuntimeError("Settings not initialized")
    return settings


def get_controller() -> BuildController:
    """
    Get the global build controller instance.

    Raises:
        RuntimeError: If controller is not initialized
    """
    if controller is None:
        raise RuntimeError("Build controller not initialized")
    return controller


def get_log_reader() -> LogWindowReader:
    """
    Get the global log window reader.

    Raises:
        RuntimeError: If log reader is not initialized
    """
    if log_reader is None:
        raise RuntimeError("Log reader not initialized")
    return log_reader


def get_history() -> SQLiteBuildHistory | None:
    """Get the build history store, or None when history is disabled."""
    return history


def error_detail(error: str, message: str, **extra: Any) -> dict[str, Any]:
    return {"error": error, "message": message, **extra}


async def read_json_body(request: Request) -> Any:
    """Decode a JSON request body, rejecting malformed input with 400."""
    body = await request.body()
    try:
        return json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise HTTPException(
            status_code=400, detail=error_detail("invalid_body", "Invalid request body")
        )


async def submit_raw_request(
    raw: Any, ctl: BuildController, wait: bool = False
) -> BuildJobView:
    """
    Normalize a raw build request and hand it to the controller.

    Raises:
        HTTPException: 400 on validation errors, 409 if the image is already
                       building, 500 if the build engine cannot be launched
    """
    try:
        spec = normalize(raw)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.to_dict())

    try:
        return await ctl.submit(spec, wait=wait)
    except AlreadyBuildingError as e:
        raise HTTPException(
            status_code=409,
            detail=error_detail(
                "already_building", e.message, image_name=e.image_name, job_id=e.job_id
            ),
        )
    except LaunchError as e:
        logger.error(f"Build engine could not be launched: {e}")
        raise HTTPException(status_code=500, detail=error_detail("launch_error", e.message))


USAGE_PAGE = """<!DOCTYPE html>
<html>
<style>
pre {
    background-color: #f5f5f5;
    padding: 3px;
}
</style>
<body>
<h1>forge</h1>

<h2>API</h2>
<p>/build</p>
<pre><code>curl -X POST -H "Content-Type: application/json" -d '{
    "path": "https://github.com/username/repo.git",
    "name": "image-name",
    "envs": ["KEY=value"],
    "build_options": {
        "print_dockerfile": false,
        "tags": ["v1.0", "latest"],
        "labels": [],
        "quiet": false,
        "no_cache": false,
        "inline_cache": false,
        "platforms": ["linux/amd64"],
        "use_current_dir": false,
        "no_error_without_start": false,
        "verbose": false
    }
}' http://localhost:8084/build</code></pre>

<p>/builds/&lt;image_name&gt;</p>
<pre><code>curl http://localhost:8084/builds/image-name</code></pre>

<p>/logs</p>
<pre><code>curl -X GET \\
    "http://localhost:8084/logs?container_id=&lt;container_id&gt;&amp;start_time=&lt;start_time&gt;&amp;end_time=&lt;end_time&gt;"</code></pre>
</body>
</html>
"""


@app.get("/", response_class=HTMLResponse)
async def usage() -> HTMLResponse:
    """Usage page describing the API."""
    return HTMLResponse(USAGE_PAGE)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """
    Health check endpoint.

    Returns:
        Dictionary with status="ok" if server is running
    """
    return {"status": "ok"}


@app.post("/build")
async def submit_build(
    request: Request,
    wait: bool = False,
    ctl: BuildController = Depends(get_controller),
) -> JSONResponse:
    """
    Submit a build.

    The request is validated and admitted synchronously. By default the
    build then runs in the background and the queued job is returned with
    202; poll /builds/{image_name} for the outcome. With ?wait=true the
    response is held until the build finished and returns the terminal job.

    Args:
        request: Body with path, name, envs and build_options
        wait: Block until the build finished
        ctl: Build controller (injected by dependency)

    Returns:
        Job snapshot (202 queued, or 200 terminal when waiting)

    Raises:
        HTTPException: 400 invalid body or request, 409 already building,
                       500 build engine could not be launched
    """
    raw = await read_json_body(request)
    view = await submit_raw_request(raw, ctl, wait=wait)
    return JSONResponse(status_code=200 if wait else 202, content=view.to_dict())


@app.get("/builds")
async def list_builds(
    ctl: BuildController = Depends(get_controller),
) -> list[dict[str, Any]]:
    """
    List the builds held in memory.

    Returns:
        List of job summaries, oldest admission first
    """
    return [view.to_summary_dict() for view in ctl.list_jobs()]


@app.get("/builds/{image_name:path}")
async def get_build_status(
    image_name: str,
    ctl: BuildController = Depends(get_controller),
) -> dict[str, Any]:
    """
    Get the latest build of an image.

    Raises:
        HTTPException: 404 if no build for image_name is held
    """
    view = ctl.status(image_name)
    if view is None:
        raise HTTPException(
            status_code=404,
            detail=error_detail("not_found", f"No build found for {image_name}"),
        )
    return view.to_dict()


@app.get("/logs")
async def get_logs(
    container_id: str,
    start_time: str,
    end_time: str,
    reader: LogWindowReader = Depends(get_log_reader),
) -> dict[str, Any]:
    """
    Get a container's log entries between two RFC 3339 timestamps (inclusive).

    Raises:
        HTTPException: 400 malformed timestamp or start_time after end_time,
                       404 unknown container, 500 container runtime unavailable
    """
    window = {}
    for name, value in (("start_time", start_time), ("end_time", end_time)):
        try:
            window[name] = parse_timestamp(value)
        except ValueError as e:
            raise HTTPException(
                status_code=400,
                detail=error_detail("malformed_timestamp", str(e), field=name),
            )

    try:
        entries = await reader.read_logs(container_id, window["start_time"], window["end_time"])
        items = [entry.to_dict() async for entry in entries]
    except InvalidRangeError as e:
        raise HTTPException(status_code=400, detail=error_detail("invalid_range", e.message))
    except ContainerNotFoundError as e:
        raise HTTPException(status_code=404, detail=error_detail("not_found", e.message))
    except LaunchError as e:
        logger.error(f"Container runtime unavailable: {e}")
        raise HTTPException(status_code=500, detail=error_detail("launch_error", e.message))

    return {"container_id": container_id, "entries": items}


@app.post("/webhook")
async def receive_webhook(
    request: Request,
    config: ServerConfig = Depends(get_settings),
    ctl: BuildController = Depends(get_controller),
) -> JSONResponse:
    """
    GitHub push webhook.

    Pushes to a branch with commits trigger a build of the repository.

    Raises:
        HTTPException: 404 if no webhook secret is configured, 403 on a
                       missing or wrong signature, 409 if already building
    """
    if not config.webhook_secret:
        raise HTTPException(
            status_code=404, detail=error_detail("not_found", "Webhook not configured")
        )

    body = await request.body()
    if not verify_signature(
        config.webhook_secret, body, request.headers.get("X-Hub-Signature-256")
    ):
        raise HTTPException(
            status_code=403, detail=error_detail("invalid_signature", "Invalid signature")
        )

    payload = await read_json_body(request)
    raw = build_request_from_push(payload)
    if raw is None:
        return JSONResponse(status_code=200, content={"triggered": False})

    view = await submit_raw_request(raw, ctl)
    return JSONResponse(
        status_code=202, content={"triggered": True, "job": view.to_summary_dict()}
    )


@app.get("/history")
async def build_history(
    image_name: str | None = None,
    limit: int = Query(50, ge=1, le=1000),
    store: SQLiteBuildHistory | None = Depends(get_history),
) -> list[dict[str, Any]]:
    """
    List recorded builds, newest first.

    Raises:
        HTTPException: 404 if build history is disabled
    """
    if store is None:
        raise HTTPException(
            status_code=404, detail=error_detail("not_found", "Build history is disabled")
        )
    records = await store.list_builds(image_name=image_name, limit=limit)
    return [record.to_dict() for record in records]
