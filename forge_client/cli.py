import argparse
import json
import os
import sys
from datetime import datetime
from typing import Any

from .client import DEFAULT_SERVER_URL, get_build_status, get_logs, list_builds, submit_build


def get_server_url() -> str:
    """
    Get the forge server URL from environment variable or use default.

    Environment variables:
    - FORGE_SERVER_URL: Custom server URL
    """
    return os.environ.get("FORGE_SERVER_URL", DEFAULT_SERVER_URL)


def build_options_from_args(args: argparse.Namespace) -> dict[str, Any]:
    """Collect the build options given on the command line."""
    options: dict[str, Any] = {}
    for name in ("tags", "labels", "platforms"):
        values = getattr(args, name)
        if values:
            options[name] = values
    for name in (
        "print_dockerfile",
        "quiet",
        "no_cache",
        "inline_cache",
        "use_current_dir",
        "no_error_without_start",
        "verbose",
    ):
        if getattr(args, name):
            options[name] = True
    for name in ("cache_key", "cache_from", "out_dir", "incremental_cache_image"):
        value = getattr(args, name)
        if value is not None:
            options[name] = value
    return options


def resolve_source(path: str) -> str:
    """Make local directories absolute; leave repository URLs untouched."""
    if os.path.isdir(path):
        return os.path.abspath(path)
    return path


def main():
    """Main entry point for the forge CLI."""
    parser = argparse.ArgumentParser(description="forge - container image builder")
    subparsers = parser.add_subparsers(dest="command")

    # forge build PATH --name NAME [options]
    build_parser = subparsers.add_parser("build", help="Submit a build")
    build_parser.add_argument("path", help="Git repository URL or directory on the server")
    build_parser.add_argument("--name", required=True, help="Image name")
    build_parser.add_argument(
        "-e", "--env", dest="envs", action="append", default=[], help="KEY=VALUE (repeatable)"
    )
    build_parser.add_argument(
        "-t", "--tag", dest="tags", action="append", default=[], help="Image tag (repeatable)"
    )
    build_parser.add_argument(
        "-l", "--label", dest="labels", action="append", default=[], help="Image label (repeatable)"
    )
    build_parser.add_argument(
        "--platform", dest="platforms", action="append", default=[], help="os/arch (repeatable)"
    )
    build_parser.add_argument("--print-dockerfile", action="store_true")
    build_parser.add_argument("--quiet", action="store_true")
    build_parser.add_argument("--no-cache", action="store_true")
    build_parser.add_argument("--inline-cache", action="store_true")
    build_parser.add_argument("--current-dir", dest="use_current_dir", action="store_true")
    build_parser.add_argument("--no-error-without-start", action="store_true")
    build_parser.add_argument("--verbose", action="store_true")
    build_parser.add_argument("--cache-key")
    build_parser.add_argument("--cache-from")
    build_parser.add_argument("--out", dest="out_dir")
    build_parser.add_argument("--incremental-cache-image")
    build_parser.add_argument(
        "--wait", action="store_true", help="Wait for the build to finish"
    )
    build_parser.add_argument("--json", dest="json_mode", action="store_true")

    # forge status NAME [--json]
    status_parser = subparsers.add_parser("status", help="Show the latest build of an image")
    status_parser.add_argument("name", help="Image name")
    status_parser.add_argument("--json", dest="json_mode", action="store_true")

    # forge list [--json]
    list_parser = subparsers.add_parser("list", help="List builds")
    list_parser.add_argument("--json", dest="json_mode", action="store_true")

    # forge logs CONTAINER --start T --end T [--json]
    logs_parser = subparsers.add_parser("logs", help="Show container logs in a time window")
    logs_parser.add_argument("container_id", help="Container ID or name")
    logs_parser.add_argument("--start", required=True, help="RFC 3339 start time")
    logs_parser.add_argument("--end", required=True, help="RFC 3339 end time")
    logs_parser.add_argument("--json", dest="json_mode", action="store_true")

    args = parser.parse_args()
    server_url = get_server_url()

    try:
        if args.command == "build":
            job = submit_build(
                resolve_source(args.path),
                args.name,
                envs=args.envs,
                build_options=build_options_from_args(args),
                wait=args.wait,
                server_url=server_url,
            )
            if args.json_mode:
                print(json.dumps(job, indent=2))
            else:
                print_job(job)
            sys.exit(0 if job["state"] != "failed" else 1)

        elif args.command == "status":
            job = get_build_status(args.name, server_url=server_url)
            if args.json_mode:
                print(json.dumps(job, indent=2))
            else:
                print_job(job)
            sys.exit(0)

        elif args.command == "list":
            jobs = list_builds(server_url=server_url)
            if args.json_mode:
                print(json.dumps(jobs, indent=2))
                sys.exit(0)

            if not jobs:
                print("No builds found.")
                sys.exit(0)

            print(f"{'IMAGE':<32} {'STATE':<10} {'START TIME':<22} {'END TIME':<22} {'EXIT':<5}")
            print("-" * 95)
            for job in jobs:
                exit_code = job.get("exit_code")
                exit_text = "-" if exit_code is None else str(exit_code)
                print(
                    f"{job['image_name'][:32]:<32} {job['state']:<10} "
                    f"{format_time(job.get('started_at')):<22} "
                    f"{format_time(job.get('ended_at')):<22} "
                    f"{exit_text:<5}"
                )
            sys.exit(0)

        elif args.command == "logs":
            entries = get_logs(args.container_id, args.start, args.end, server_url=server_url)
            if args.json_mode:
                print(json.dumps(entries, indent=2))
            else:
                for entry in entries:
                    print(f"{entry['timestamp']} {entry['text']}")
            sys.exit(0)

    except RuntimeError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        print("\n\nStopped waiting. The build continues on the server.", file=sys.stderr)
        sys.exit(130)  # Standard exit code for SIGINT

    parser.print_help()
    sys.exit(1)


def print_job(job: dict[str, Any]) -> None:
    """Print a job in human-readable form."""
    print(f"Job ID:  {job['job_id']}")
    print(f"Image:   {job['image_name']}")
    print(f"State:   {job['state']}")
    print(f"Started: {format_time(job.get('started_at'))}")
    print(f"Ended:   {format_time(job.get('ended_at'))}")

    exit_info = job.get("exit_info")
    if exit_info:
        if exit_info.get("image_ref"):
            print(f"Ref:     {exit_info['image_ref']}")
        if exit_info.get("exit_code") is not None:
            print(f"Exit:    {exit_info['exit_code']}")
        if exit_info.get("error"):
            print(f"Error:   {exit_info['error']}")
        if job["state"] == "failed" and exit_info.get("output_tail"):
            print("\nOutput (tail):")
            print(exit_info["output_tail"], end="")
        if exit_info.get("dockerfile"):
            print("\nDockerfile:")
            print(exit_info["dockerfile"], end="")


def format_time(time_str: str | None) -> str:
    """Format ISO timestamp to human-readable format."""
    if not time_str:
        return "N/A"
    try:
        dt = datetime.fromisoformat(time_str.replace("Z", "+00:00"))
        return dt.strftime("%Y-%m-%d %H:%M:%S")
    except (ValueError, AttributeError):
        return time_str


if __name__ == "__main__":
    main()
