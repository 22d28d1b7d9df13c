"""
Server configuration.

Settings come from environment variables; the forge-server command line
overrides them (see forge_server.__main__).

Environment variables:
- FORGE_HOST: Interface to bind (default: 0.0.0.0)
- FORGE_PORT: Port to listen on (default: 8084)
- FORGE_BUILD_ENGINE: Build engine executable (default: nixpacks)
- FORGE_GIT_BINARY: git executable for remote sources (default: git)
- FORGE_DOCKER_BINARY: Container runtime CLI for logs (default: docker)
- FORGE_MAX_CONCURRENT_BUILDS: Ceiling on simultaneous builds (default: unbounded)
- FORGE_REGISTRY_CAPACITY: Jobs kept in memory before eviction (default: 256)
- FORGE_JOB_TTL: Seconds finished jobs stay in memory (default: 3600)
- FORGE_OUTPUT_TAIL_LINES: Output lines kept per build (default: 50)
- FORGE_DB_PATH: SQLite build history path (default: unset, history disabled)
- FORGE_WEBHOOK_SECRET: GitHub webhook secret (default: unset, webhook disabled)
- FORGE_LOG_LEVEL: Logging level (default: INFO)
"""

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass

logger = logging.getLogger(__name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _get_int(
    env: Mapping[str, str], name: str, default: int | None, minimum: int = 1
) -> int | None:
    """Read an integer variable, falling back to the default when invalid."""
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"Invalid {name}={raw}, using default {default}")
        return default
    if value < minimum:
        logger.warning(f"Invalid {name}={value}, using default {default}")
        return default
    return value


def _get_float(
    env: Mapping[str, str], name: str, default: float | None
) -> float | None:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning(f"Invalid {name}={raw}, using default {default}")
        return default
    if value <= 0:
        logger.warning(f"Invalid {name}={value}, using default {default}")
        return default
    return value


@dataclass
class ServerConfig:
    """Runtime settings of the forge server."""

    host: str = "0.0.0.0"
    port: int = 8084
    build_engine: str = "nixpacks"
    git_binary: str = "git"
    docker_binary: str = "docker"
    max_concurrent_builds: int | None = None
    registry_capacity: int = 256
    job_ttl: float | None = 3600.0
    output_tail_lines: int = 50
    db_path: str | None = None
    webhook_secret: str | None = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "ServerConfig":
        """
        Build the configuration from environment variables.

        Args:
            env: Mapping to read instead of os.environ (useful for testing)
        """
        env = os.environ if env is None else env
        defaults = cls()

        log_level = env.get("FORGE_LOG_LEVEL", defaults.log_level).upper()
        if log_level not in LOG_LEVELS:
            logger.warning(f"Invalid FORGE_LOG_LEVEL={log_level}, using default INFO")
            log_level = defaults.log_level

        return cls(
            host=env.get("FORGE_HOST", defaults.host),
            port=_get_int(env, "FORGE_PORT", defaults.port),
            build_engine=env.get("FORGE_BUILD_ENGINE", defaults.build_engine),
            git_binary=env.get("FORGE_GIT_BINARY", defaults.git_binary),
            docker_binary=env.get("FORGE_DOCKER_BINARY", defaults.docker_binary),
            max_concurrent_builds=_get_int(env, "FORGE_MAX_CONCURRENT_BUILDS", None),
            registry_capacity=_get_int(env, "FORGE_REGISTRY_CAPACITY", defaults.registry_capacity),
            job_ttl=_get_float(env, "FORGE_JOB_TTL", defaults.job_ttl),
            output_tail_lines=_get_int(env, "FORGE_OUTPUT_TAIL_LINES", defaults.output_tail_lines),
            db_path=env.get("FORGE_DB_PATH") or None,
            webhook_secret=env.get("FORGE_WEBHOOK_SECRET") or None,
            log_level=log_level,
        )
