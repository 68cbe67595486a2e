"""
JobStore: SQLite persistence for canonical job records, company health and
the rolling log of company errors.

Records are keyed by ``(company_id, url)``. Writes go through one asyncio lock
so the read-compare-write in ``upsert`` is atomic within the process; the
unique index and ``ON CONFLICT DO NOTHING`` cover writers in other processes.
"""

import asyncio
import json
import logging
from datetime import datetime
from enum import Enum
from typing import Iterable, List, Optional

import aiosqlite

from ingest.core.backoff import CompanyHealth, ErrorEntry
from ingest.core.models import Compensation, JobRecord

logger = logging.getLogger(__name__)


class UpsertResult(str, Enum):
    INSERTED = "inserted"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


JOB_COLUMNS = (
    "external_id, company_id, url, title, source, locations, compensation, "
    "description, requirements, department, first_seen_at, last_seen_at, removed_at"
)


def _ts(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _chunks(items: List[str], size: int = 500) -> Iterable[List[str]]:
    for i in range(0, len(items), size):
        yield items[i : i + size]


class JobStore:
    """
    SQLite-based storage for job postings.

    Usage:
        store = JobStore("jobs.db")
        await store.initialize()

        result = await store.upsert(record)
        current = await store.list_by_company("acme")
    """

    def __init__(self, db_path: str):
        """
        Args:
            db_path: Path to SQLite database. Use ":memory:" for in-memory.
        """
        self.db_path = db_path
        self._db: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()

    async def __aenter__(self) -> "JobStore":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def initialize(self) -> None:
        """Open the connection and create tables."""
        self._db = await aiosqlite.connect(self.db_path)
        self._db.row_factory = aiosqlite.Row

        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS jobs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                external_id TEXT NOT NULL UNIQUE,
                company_id TEXT NOT NULL,
                url TEXT NOT NULL,
                title TEXT NOT NULL,
                source TEXT NOT NULL,
                locations TEXT NOT NULL DEFAULT '[]',
                compensation TEXT,
                description TEXT,
                requirements TEXT,
                department TEXT,
                first_seen_at TIMESTAMP,
                last_seen_at TIMESTAMP,
                removed_at TIMESTAMP,
                UNIQUE (company_id, url)
            )
        """)

        await self._db.execute("""
            CREATE INDEX IF NOT EXISTS idx_jobs_company_active
            ON jobs(company_id, removed_at)
        """)

        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS company_health (
                company_id TEXT PRIMARY KEY,
                level INTEGER NOT NULL DEFAULT 0,
                consecutive_failures INTEGER NOT NULL DEFAULT 0,
                total_failures INTEGER NOT NULL DEFAULT 0,
                next_allowed_at TIMESTAMP,
                last_success_at TIMESTAMP,
                last_error TEXT
            )
        """)

        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS company_errors (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                company_id TEXT NOT NULL,
                occurred_at TIMESTAMP NOT NULL,
                error_type TEXT NOT NULL,
                message TEXT NOT NULL,
                url TEXT
            )
        """)

        await self._db.execute("""
            CREATE INDEX IF NOT EXISTS idx_company_errors_company
            ON company_errors(company_id, occurred_at)
        """)

        await self._db.commit()
        logger.info(f"JobStore initialized at {self.db_path}")

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    # --- reads ---

    def _row_to_record(self, row: aiosqlite.Row) -> JobRecord:
        compensation = row["compensation"]
        return JobRecord(
            external_id=row["external_id"],
            company_id=row["company_id"],
            url=row["url"],
            title=row["title"],
            source=row["source"],
            locations=json.loads(row["locations"] or "[]"),
            compensation=Compensation.from_dict(json.loads(compensation)) if compensation else None,
            description=row["description"],
            requirements=row["requirements"],
            department=row["department"],
            first_seen_at=_dt(row["first_seen_at"]),
            last_seen_at=_dt(row["last_seen_at"]),
            removed_at=_dt(row["removed_at"]),
        )

    async def list_by_company(
        self, company_id: str, include_removed: bool = False
    ) -> List[JobRecord]:
        query = f"SELECT {JOB_COLUMNS} FROM jobs WHERE company_id = ?"
        if not include_removed:
            query += " AND removed_at IS NULL"
        query += " ORDER BY id"
        async with self._db.execute(query, (company_id,)) as cursor:
            rows = await cursor.fetchall()
        return [self._row_to_record(r) for r in rows]

    async def get(self, external_id: str) -> Optional[JobRecord]:
        async with self._db.execute(
            f"SELECT {JOB_COLUMNS} FROM jobs WHERE external_id = ?", (external_id,)
        ) as cursor:
            row = await cursor.fetchone()
        return self._row_to_record(row) if row else None

    async def list_jobs(
        self, limit: int = 100, include_removed: bool = False
    ) -> List[JobRecord]:
        query = f"SELECT {JOB_COLUMNS} FROM jobs"
        if not include_removed:
            query += " WHERE removed_at IS NULL"
        query += " ORDER BY first_seen_at DESC, id DESC LIMIT ?"
        async with self._db.execute(query, (limit,)) as cursor:
            rows = await cursor.fetchall()
        return [self._row_to_record(r) for r in rows]

    # --- writes ---

    def _field_values(self, record: JobRecord) -> tuple:
        return (
            record.title,
            record.source,
            json.dumps(record.locations),
            json.dumps(record.compensation.to_dict()) if record.compensation else None,
            record.description,
            record.requirements,
            record.department,
        )

    async def upsert(self, record: JobRecord) -> UpsertResult:
        """
        Insert the record, or update the stored one for the same
        ``(company_id, url)``. A soft-removed posting that is listed again is
        re-activated and reported as inserted.
        """
        async with self._lock:
            async with self._db.execute(
                f"SELECT {JOB_COLUMNS} FROM jobs WHERE company_id = ? AND url = ?",
                (record.company_id, record.url),
            ) as cursor:
                row = await cursor.fetchone()

            seen_at = _ts(record.last_seen_at)
            if row is None:
                cursor = await self._db.execute(
                    f"""
                    INSERT INTO jobs ({JOB_COLUMNS})
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, NULL)
                    ON CONFLICT (company_id, url) DO NOTHING
                    """,
                    (record.external_id, record.company_id, record.url)
                    + self._field_values(record)
                    + (_ts(record.first_seen_at) or seen_at, seen_at),
                )
                await self._db.commit()
                if cursor.rowcount == 1:
                    return UpsertResult.INSERTED
                # Another process inserted it between our read and write
                logger.debug(f"Concurrent insert detected for {record.url}")
                return UpsertResult.UNCHANGED

            existing = self._row_to_record(row)
            if existing.removed_at is not None:
                result = UpsertResult.INSERTED
            elif record.differs_from(existing):
                result = UpsertResult.UPDATED
            else:
                result = UpsertResult.UNCHANGED

            if result == UpsertResult.UNCHANGED:
                await self._db.execute(
                    "UPDATE jobs SET last_seen_at = ? WHERE company_id = ? AND url = ?",
                    (seen_at, record.company_id, record.url),
                )
            else:
                await self._db.execute(
                    """
                    UPDATE jobs
                    SET title = ?, source = ?, locations = ?, compensation = ?,
                        description = ?, requirements = ?, department = ?,
                        last_seen_at = ?, removed_at = NULL
                    WHERE company_id = ? AND url = ?
                    """,
                    self._field_values(record)
                    + (seen_at, record.company_id, record.url),
                )
            await self._db.commit()
            return result

    async def touch(self, company_id: str, urls: List[str], seen_at: datetime) -> None:
        """Refresh last_seen_at for postings that are still listed."""
        if not urls:
            return
        async with self._lock:
            await self._db.executemany(
                "UPDATE jobs SET last_seen_at = ? WHERE company_id = ? AND url = ?",
                [(_ts(seen_at), company_id, url) for url in urls],
            )
            await self._db.commit()

    async def mark_removed(
        self,
        company_id: str,
        urls: List[str],
        removed_at: datetime,
        policy: str = "soft",
    ) -> int:
        """
        Retire postings no longer listed. ``soft`` stamps removed_at and keeps
        the row; ``hard`` deletes it. Returns how many rows changed.
        """
        if policy not in ("soft", "hard"):
            raise ValueError(f"Unknown retention policy: {policy!r}")
        if not urls:
            return 0

        changed = 0
        async with self._lock:
            for chunk in _chunks(list(urls)):
                placeholders = ", ".join("?" for _ in chunk)
                if policy == "hard":
                    query = f"DELETE FROM jobs WHERE company_id = ? AND url IN ({placeholders})"
                    params = (company_id, *chunk)
                else:
                    query = (
                        f"UPDATE jobs SET removed_at = ? WHERE company_id = ? "
                        f"AND removed_at IS NULL AND url IN ({placeholders})"
                    )
                    params = (_ts(removed_at), company_id, *chunk)
                cursor = await self._db.execute(query, params)
                changed += cursor.rowcount
            await self._db.commit()
        return changed

    async def purge_removed(self, before: datetime) -> int:
        """Hard-delete postings soft-removed before the given time."""
        async with self._lock:
            cursor = await self._db.execute(
                "DELETE FROM jobs WHERE removed_at IS NOT NULL AND removed_at < ?",
                (_ts(before),),
            )
            await self._db.commit()
        logger.info(f"Purged {cursor.rowcount} removed postings older than {before}")
        return cursor.rowcount

    # --- company health ---

    async def get_health(self, company_id: str) -> Optional[CompanyHealth]:
        async with self._db.execute(
            "SELECT * FROM company_health WHERE company_id = ?", (company_id,)
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None
        return CompanyHealth(
            company_id=row["company_id"],
            level=row["level"],
            consecutive_failures=row["consecutive_failures"],
            total_failures=row["total_failures"],
            next_allowed_at=_dt(row["next_allowed_at"]),
            last_success_at=_dt(row["last_success_at"]),
            last_error=row["last_error"],
        )

    async def save_health(self, health: CompanyHealth) -> None:
        async with self._lock:
            await self._db.execute(
                """
                INSERT OR REPLACE INTO company_health (
                    company_id, level, consecutive_failures, total_failures,
                    next_allowed_at, last_success_at, last_error
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    health.company_id,
                    health.level,
                    health.consecutive_failures,
                    health.total_failures,
                    _ts(health.next_allowed_at),
                    _ts(health.last_success_at),
                    health.last_error,
                ),
            )
            await self._db.commit()

    # --- company errors ---

    async def add_error(self, company_id: str, entry: ErrorEntry) -> None:
        async with self._lock:
            await self._db.execute(
                """
                INSERT INTO company_errors (company_id, occurred_at, error_type, message, url)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    company_id,
                    _ts(entry.occurred_at),
                    entry.error_type,
                    entry.message,
                    entry.url,
                ),
            )
            await self._db.commit()

    async def recent_errors(self, company_id: str, since: datetime) -> List[ErrorEntry]:
        """Errors logged for the company after ``since``, oldest first."""
        async with self._db.execute(
            """
            SELECT occurred_at, error_type, message, url FROM company_errors
            WHERE company_id = ? AND occurred_at > ?
            ORDER BY occurred_at, id
            """,
            (company_id, _ts(since)),
        ) as cursor:
            rows = await cursor.fetchall()
        return [
            ErrorEntry(
                occurred_at=_dt(row["occurred_at"]),
                error_type=row["error_type"],
                message=row["message"],
                url=row["url"],
            )
            for row in rows
        ]

    async def prune_errors(self, before: datetime) -> int:
        """Delete error log entries older than the given time."""
        async with self._lock:
            cursor = await self._db.execute(
                "DELETE FROM company_errors WHERE occurred_at <= ?", (_ts(before),)
            )
            await self._db.commit()
        if cursor.rowcount:
            logger.info(f"Pruned {cursor.rowcount} company errors older than {before}")
        return cursor.rowcount
