"""
Entrypoint for running the forge server.

Usage:
    python -m forge_server [OPTIONS]
    forge-server [OPTIONS]  (after pip install)

Every option can also be set through its environment variable (see
forge_server.config); command-line arguments override the environment.
"""

import argparse
import logging
import sys
from dataclasses import replace

import uvicorn

from forge_server import app as app_module
from forge_server.config import LOG_LEVELS, ServerConfig

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments
    """
    parser = argparse.ArgumentParser(
        description="forge - build container images from git repositories or local directories",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment Variables:
  FORGE_HOST                    Interface to bind (default: 0.0.0.0)
  FORGE_PORT                    Port to listen on (default: 8084)
  FORGE_BUILD_ENGINE            Build engine executable (default: nixpacks)
  FORGE_GIT_BINARY              git executable (default: git)
  FORGE_DOCKER_BINARY           Container runtime CLI (default: docker)
  FORGE_MAX_CONCURRENT_BUILDS   Ceiling on simultaneous builds (default: unbounded)
  FORGE_REGISTRY_CAPACITY       Jobs kept in memory (default: 256)
  FORGE_JOB_TTL                 Seconds finished jobs stay in memory (default: 3600)
  FORGE_OUTPUT_TAIL_LINES       Output lines kept per build (default: 50)
  FORGE_DB_PATH                 SQLite build history (default: disabled)
  FORGE_WEBHOOK_SECRET          GitHub webhook secret (default: webhook disabled)
  FORGE_LOG_LEVEL               Logging level (default: INFO)

Examples:
  # Run with default settings
  forge-server

  # Limit parallel builds and keep a build history
  forge-server --max-concurrent-builds 2 --db-path /var/lib/forge/builds.db

  # Enable debug logging (includes build engine output)
  forge-server --log-level DEBUG
        """,
    )

    parser.add_argument("--host", type=str, default=None, help="Interface to bind")
    parser.add_argument("--port", type=int, default=None, help="Port to listen on")
    parser.add_argument(
        "--build-engine", type=str, default=None, help="Build engine executable"
    )
    parser.add_argument(
        "--max-concurrent-builds",
        type=int,
        default=None,
        help="Ceiling on simultaneous builds across all images",
    )
    parser.add_argument(
        "--db-path", type=str, default=None, help="Path to the SQLite build history"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=LOG_LEVELS,
        help="Logging level (default: FORGE_LOG_LEVEL env or INFO)",
    )

    return parser.parse_args(argv)


def resolve_config(args: argparse.Namespace, base: ServerConfig | None = None) -> ServerConfig:
    """
    Merge command-line arguments over the environment configuration.

    Args:
        args: Parsed command-line arguments
        base: Configuration to start from (defaults to the environment)

    Returns:
        Effective server configuration
    """
    config = base or ServerConfig.from_env()
    overrides = {
        "host": args.host,
        "port": args.port,
        "build_engine": args.build_engine,
        "db_path": args.db_path,
        "log_level": args.log_level,
    }
    config = replace(config, **{k: v for k, v in overrides.items() if v is not None})

    if args.max_concurrent_builds is not None:
        limit = args.max_concurrent_builds
        if limit <= 0:
            logger.warning(f"Invalid max concurrent builds={limit}, using unbounded")
            limit = None
        config = replace(config, max_concurrent_builds=limit)
    return config


def main() -> int:
    """
    Main entrypoint for the server.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    args = parse_args()
    config = resolve_config(args)

    logging.basicConfig(
        level=getattr(logging, config.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    logger.info("Starting forge server")
    logger.info(f"  Listening on: {config.host}:{config.port}")
    logger.info(f"  Build engine: {config.build_engine}")
    logger.info(f"  Max concurrent builds: {config.max_concurrent_builds or 'unbounded'}")
    logger.info(f"  Build history: {config.db_path or '(disabled)'}")

    app_module.startup_config = config

    try:
        uvicorn.run(
            app_module.app,
            host=config.host,
            port=config.port,
            log_level=config.log_level.lower(),
        )
        return 0
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
