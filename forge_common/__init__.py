"""
Forge Common module.

This module contains shared domain models and the error taxonomy used across
the forge components (builder, persistence, server, clients).

The common module has no dependencies on other forge_* modules, making it
a pure domain layer that can be imported by any component.
"""

from .errors import (
    AdmissionError,
    AlreadyBuildingError,
    ContainerNotFoundError,
    ForgeError,
    InvalidRangeError,
    LaunchError,
    LogError,
    StateError,
    ValidationError,
)
from .models import (
    BuildFailed,
    BuildJobView,
    BuildOptions,
    BuildSpec,
    BuildState,
    BuildSucceeded,
    ExitInfo,
    LocalSource,
    LogEntry,
    LogQuery,
    RemoteSource,
)

__all__ = [
    "AdmissionError",
    "AlreadyBuildingError",
    "BuildFailed",
    "BuildJobView",
    "BuildOptions",
    "BuildSpec",
    "BuildState",
    "BuildSucceeded",
    "ContainerNotFoundError",
    "ExitInfo",
    "ForgeError",
    "InvalidRangeError",
    "LaunchError",
    "LocalSource",
    "LogEntry",
    "LogError",
    "LogQuery",
    "RemoteSource",
    "StateError",
    "ValidationError",
]
