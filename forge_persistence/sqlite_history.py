"""
SQLite build history.

Records the start, end and status of every build in a build_data table so
outcomes remain queryable after the in-memory registry has evicted them.
Uses aiosqlite for async operations.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any

import aiosqlite

from forge_common.models import BuildJobView, format_time


@dataclass
class BuildRecord:
    """One row of the build_data table."""

    id: str
    image_name: str
    source: str
    status: str
    start_time: datetime | None = None
    end_time: datetime | None = None
    exit_code: int | None = None
    image_ref: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert record to dictionary format (for API responses)."""
        return {
            "id": self.id,
            "image_name": self.image_name,
            "source": self.source,
            "status": self.status,
            "start_time": format_time(self.start_time),
            "end_time": format_time(self.end_time),
            "exit_code": self.exit_code,
            "image_ref": self.image_ref,
        }


class SQLiteBuildHistory:
    """
    SQLite-based build history.

    Schema:
    - build_data table: one row per build, keyed by job ID
    """

    def __init__(self, db_path: str = "forge_builds.db"):
        """
        Initialize the history store.

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = db_path
        self._connection: aiosqlite.Connection | None = None

    async def _get_connection(self) -> aiosqlite.Connection:
        """Get or create database connection."""
        if self._connection is None:
            self._connection = await aiosqlite.connect(self.db_path)
        return self._connection

    async def initialize(self) -> None:
        """Create the build_data table if it doesn't exist."""
        conn = await self._get_connection()

        await conn.execute("""
            CREATE TABLE IF NOT EXISTS build_data (
                id TEXT PRIMARY KEY,
                image_name TEXT NOT NULL,
                source TEXT NOT NULL,
                status TEXT NOT NULL,
                start_time TEXT,
                end_time TEXT,
                exit_code INTEGER,
                image_ref TEXT
            )
        """)

        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_build_data_image_name
            ON build_data(image_name)
        """)

        await conn.commit()

    async def close(self) -> None:
        """Close the database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    async def record_started(self, job: BuildJobView) -> None:
        """
        Insert the row for a build that has started running.

        Args:
            job: Snapshot of the running job
        """
        conn = await self._get_connection()
        await conn.execute(
            """
            INSERT OR REPLACE INTO build_data (id, image_name, source, status, start_time)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                job.job_id,
                job.image_name,
                job.spec.source.location,
                job.state.value,
                (job.started_at or job.created_at).isoformat(),
            ),
        )
        await conn.commit()

    async def record_finished(self, job: BuildJobView) -> None:
        """
        Record the terminal state of a build.

        Inserts the row if the build never reached running (a job that
        failed while queued has no start row yet).

        Args:
            job: Snapshot of the terminal job
        """
        conn = await self._get_connection()
        exit_info = job.exit_info
        await conn.execute(
            """
            INSERT INTO build_data (id, image_name, source, status, start_time, end_time, exit_code, image_ref)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                status = excluded.status,
                end_time = excluded.end_time,
                exit_code = excluded.exit_code,
                image_ref = excluded.image_ref
            """,
            (
                job.job_id,
                job.image_name,
                job.spec.source.location,
                job.state.value,
                job.started_at.isoformat() if job.started_at else None,
                job.ended_at.isoformat() if job.ended_at else None,
                exit_info.exit_code if exit_info else None,
                exit_info.image_ref if exit_info else None,
            ),
        )
        await conn.commit()

    async def get(self, job_id: str) -> BuildRecord | None:
        """
        Retrieve the history row of a build.

        Args:
            job_id: Job ID of the build

        Returns:
            BuildRecord if found, None otherwise
        """
        conn = await self._get_connection()
        cursor = await conn.execute(
            "SELECT id, image_name, source, status, start_time, end_time, exit_code, image_ref "
            "FROM build_data WHERE id = ?",
            (job_id,),
        )
        row = await cursor.fetchone()
        return self._row_to_record(row) if row else None

    async def list_builds(
        self, image_name: str | None = None, limit: int = 50
    ) -> list[BuildRecord]:
        """
        List builds, newest first.

        Args:
            image_name: Only return builds of this image
            limit: Maximum number of rows

        Returns:
            List of BuildRecord objects
        """
        conn = await self._get_connection()
        query = (
            "SELECT id, image_name, source, status, start_time, end_time, exit_code, image_ref "
            "FROM build_data"
        )
        params: tuple[Any, ...] = ()
        if image_name is not None:
            query += " WHERE image_name = ?"
            params = (image_name,)
        query += " ORDER BY COALESCE(start_time, end_time) DESC LIMIT ?"
        params += (limit,)

        cursor = await conn.execute(query, params)
        rows = await cursor.fetchall()
        return [self._row_to_record(row) for row in rows]

    async def prune(self, older_than: datetime) -> int:
        """
        Delete finished builds that ended before a cutoff.

        Args:
            older_than: Timezone-aware cutoff timestamp

        Returns:
            Number of deleted rows
        """
        conn = await self._get_connection()
        cursor = await conn.execute(
            "DELETE FROM build_data WHERE end_time IS NOT NULL AND end_time < ?",
            (older_than.isoformat(),),
        )
        await conn.commit()
        return cursor.rowcount

    @staticmethod
    def _row_to_record(row: Any) -> BuildRecord:
        return BuildRecord(
            id=row[0],
            image_name=row[1],
            source=row[2],
            status=row[3],
            start_time=datetime.fromisoformat(row[4]) if row[4] else None,
            end_time=datetime.fromisoformat(row[5]) if row[5] else None,
            exit_code=row[6],
            image_ref=row[7],
        )
