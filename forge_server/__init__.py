"""
Forge Server module.

This module contains the HTTP surface of the build orchestrator (FastAPI),
its configuration and the GitHub webhook receiver.
"""

from .config import ServerConfig

__all__ = ["ServerConfig"]
