"""
Build request normalization.

Turns the loosely-typed JSON body of a build request into an immutable
BuildSpec, or raises the ValidationError subclass describing the first
problem found. Checks run in a fixed order: source, name, envs, options.
"""

import os
import re
from collections.abc import Callable, Iterable
from typing import Any
from urllib.parse import urlparse

from forge_common.errors import (
    EmptyNameError,
    InvalidOptionError,
    InvalidSourceError,
    MalformedEnvError,
    MalformedPlatformError,
    UnknownOptionError,
)
from forge_common.models import BuildOptions, BuildSpec, LocalSource, RemoteSource, Source

REQUEST_FIELDS = frozenset({"path", "name", "envs", "build_options"})

BOOLEAN_OPTIONS = (
    "print_dockerfile",
    "quiet",
    "no_cache",
    "inline_cache",
    "use_current_dir",
    "no_error_without_start",
    "verbose",
)
LIST_OPTIONS = ("tags", "labels", "platforms")
STRING_OPTIONS = ("cache_key", "cache_from", "out_dir", "incremental_cache_image")

# Wire names used by earlier clients
OPTION_ALIASES = {"platform": "platforms", "current_dir": "use_current_dir"}

REMOTE_SCHEMES = frozenset({"http", "https", "git", "ssh", "file"})

# user@host:owner/repo(.git)
SCP_LIKE_PATTERN = re.compile(r"^[A-Za-z0-9._-]+@[A-Za-z0-9.-]+:[^\s]+$")

# Image reference without tag or digest: optional registry host[:port], then
# lowercase path components separated by "/"
_COMPONENT = r"[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*"
IMAGE_NAME_PATTERN = re.compile(
    rf"^(?:[a-zA-Z0-9](?:[a-zA-Z0-9.-]*[a-zA-Z0-9])?(?::[0-9]+)?/)?"
    rf"{_COMPONENT}(?:/{_COMPONENT})*$"
)
MAX_IMAGE_NAME_LENGTH = 255

PLATFORM_PATTERN = re.compile(r"^[a-z0-9_]+/[a-z0-9_]+$")


def normalize(
    raw_request: Any, is_dir: Callable[[str], bool] = os.path.isdir
) -> BuildSpec:
    """
    Validate and canonicalize a raw build request.

    Args:
        raw_request: Decoded JSON body with path, name, envs and build_options
        is_dir: Predicate used to recognize local source directories

    Returns:
        Fully-resolved BuildSpec

    Raises:
        ValidationError: A subclass naming the first invalid field
    """
    if not isinstance(raw_request, dict):
        raise InvalidOptionError("Request body must be a JSON object")

    unknown = sorted(set(raw_request) - REQUEST_FIELDS)
    if unknown:
        raise UnknownOptionError(f"Unrecognized field: {unknown[0]}", field=unknown[0])

    source = _normalize_source(raw_request.get("path"), is_dir)
    image_name = _normalize_name(raw_request.get("name"))
    env_vars = _normalize_envs(raw_request.get("envs"))
    options = _normalize_options(raw_request.get("build_options"))

    return BuildSpec(
        source=source, image_name=image_name, env_vars=env_vars, options=options
    )


def _normalize_source(path: Any, is_dir: Callable[[str], bool]) -> Source:
    if not isinstance(path, str) or not path.strip():
        raise InvalidSourceError("path must be a repository URL or a directory", field="path")
    path = path.strip()

    if is_remote_url(path):
        return RemoteSource(url=path)
    if "://" not in path and is_dir(path):
        return LocalSource(path=os.path.normpath(path))

    raise InvalidSourceError(
        f"path is neither a repository URL nor an existing directory: {path}",
        field="path",
    )


def is_remote_url(value: str) -> bool:
    """Check whether a source location points at a remote git repository."""
    if SCP_LIKE_PATTERN.match(value):
        return True
    parsed = urlparse(value)
    if parsed.scheme not in REMOTE_SCHEMES:
        return False
    if parsed.scheme == "file":
        return bool(parsed.path)
    return bool(parsed.netloc) and bool(parsed.path.strip("/"))


def _normalize_name(name: Any) -> str:
    if not isinstance(name, str) or not name:
        raise EmptyNameError("name must be a non-empty image name", field="name")
    if len(name) > MAX_IMAGE_NAME_LENGTH or not IMAGE_NAME_PATTERN.match(name):
        raise EmptyNameError(f"name is not a valid image reference: {name}", field="name")
    return name


def _normalize_envs(envs: Any) -> tuple[str, ...]:
    if envs is None:
        return ()
    if not isinstance(envs, list):
        raise MalformedEnvError("envs must be a list of KEY=VALUE strings", field="envs")

    for entry in envs:
        if not isinstance(entry, str) or entry.count("=") != 1 or entry.startswith("="):
            raise MalformedEnvError(f"envs entry is not KEY=VALUE: {entry!r}", field="envs")
    return tuple(envs)


def _normalize_options(raw_options: Any) -> BuildOptions:
    if raw_options is None:
        return BuildOptions()
    if not isinstance(raw_options, dict):
        raise InvalidOptionError("build_options must be an object", field="build_options")

    options: dict[str, Any] = {}
    for key, value in raw_options.items():
        name = OPTION_ALIASES.get(key, key)
        field_name = f"build_options.{key}"

        if name not in BOOLEAN_OPTIONS + LIST_OPTIONS + STRING_OPTIONS:
            raise UnknownOptionError(f"Unrecognized build option: {key}", field=field_name)
        if name in options:
            raise InvalidOptionError(
                f"build option given under more than one name: {name}", field=field_name
            )

        if name in BOOLEAN_OPTIONS:
            if not isinstance(value, bool):
                raise InvalidOptionError(f"{key} must be true or false", field=field_name)
            options[name] = value
        elif name in LIST_OPTIONS:
            if name == "platforms":
                _check_platforms(value)
            options[name] = _normalize_list(value, field_name)
        elif value is not None:
            if not isinstance(value, str) or not value.strip():
                raise InvalidOptionError(f"{key} must be a non-empty string", field=field_name)
            options[name] = value

    return BuildOptions(**options)


def _check_platforms(value: Any) -> None:
    if not isinstance(value, list):
        return
    for platform in value:
        if isinstance(platform, str) and not PLATFORM_PATTERN.match(platform):
            raise MalformedPlatformError(
                f"platform must look like <os>/<arch>: {platform!r}",
                field="build_options.platforms",
            )


def _normalize_list(value: Any, field_name: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if not isinstance(value, list):
        raise InvalidOptionError(f"{field_name} must be a list of strings", field=field_name)
    for item in value:
        if not isinstance(item, str) or not item or any(c.isspace() for c in item):
            raise InvalidOptionError(
                f"{field_name} entries must be non-empty strings without whitespace",
                field=field_name,
            )
    return _dedupe(value)


def _dedupe(items: Iterable[str]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(items))
