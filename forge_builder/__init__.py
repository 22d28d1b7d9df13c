"""
Forge Builder module.

This module contains the build-job lifecycle manager: request normalization,
the job registry, the build engine invoker and the controller that drives
jobs to completion, plus the container runtime adapter and the log window
reader used for diagnostics.
"""

from .container_runtime import ContainerRuntime
from .controller import BuildCompletion, BuildController
from .invoker import BuildInvoker, build_engine_args
from .log_reader import LogWindowReader, parse_timestamp
from .normalizer import normalize
from .registry import JobHandle, JobRegistry

__all__ = [
    "BuildCompletion",
    "BuildController",
    "BuildInvoker",
    "ContainerRuntime",
    "JobHandle",
    "JobRegistry",
    "LogWindowReader",
    "build_engine_args",
    "normalize",
    "parse_timestamp",
]
