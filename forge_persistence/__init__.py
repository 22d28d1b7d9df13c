"""
Forge Persistence module.

This module contains the database implementation of the build history.
Currently supports SQLite.

The persistence layer depends on forge_common for domain models and is used
by the build controller, the server and the admin CLI.
"""

from .sqlite_history import BuildRecord, SQLiteBuildHistory

__all__ = ["BuildRecord", "SQLiteBuildHistory"]
