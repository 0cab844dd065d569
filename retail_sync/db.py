import json
import logging

import asyncpg

from retail_sync.errors import StorageError
from retail_sync.models import PendingSubmission

logger = logging.getLogger(__name__)

DB_POOL = None  # Pool of the current worker process

PENDING_TABLE = "pending_submissions"

SCHEMA_SQL = f"""
    CREATE TABLE IF NOT EXISTS {PENDING_TABLE} (
        id TEXT PRIMARY KEY,
        type TEXT NOT NULL,
        store_id TEXT NOT NULL,
        session_id TEXT NOT NULL,
        payload JSONB NOT NULL,
        created_at BIGINT NOT NULL,
        queued_at TIMESTAMPTZ DEFAULT now()
    );
    CREATE INDEX IF NOT EXISTS {PENDING_TABLE}_created_at_idx ON {PENDING_TABLE} (created_at);
"""


async def init_db_pool(dsn: str | None):
    """Creates the asyncpg pool for the local pending-submission store."""
    global DB_POOL
    if not dsn:
        logger.error("DATABASE_URL is not set. Cannot initialize DB Pool.")
        return None
    try:
        DB_POOL = await asyncpg.create_pool(
            dsn=dsn,
            min_size=1,
            max_size=10
        )
        await ensure_schema(DB_POOL)
        logger.info("Database connection pool initialized.")
    except Exception:
        logger.exception("Failed to initialize database connection pool")
        DB_POOL = None
    return DB_POOL


async def close_db_pool():
    """Closes the pool, if there is one."""
    global DB_POOL
    if DB_POOL:
        await DB_POOL.close()
        logger.info("Database connection pool closed.")
        DB_POOL = None


async def ensure_schema(pool):
    """Creates the pending_submissions table and its index if missing."""
    async with pool.acquire() as conn:
        await conn.execute(SCHEMA_SQL)


def _row_to_submission(row) -> PendingSubmission:
    payload = row["payload"]
    if isinstance(payload, str):
        payload = json.loads(payload)
    return PendingSubmission(
        id=row["id"],
        type=row["type"],
        store_id=row["store_id"],
        session_id=row["session_id"],
        payload=payload,
        created_at=row["created_at"],
    )


class PendingSubmissionStore:
    """Durable queue of submissions waiting for the hosted database.

    Every method goes to the table directly, nothing is cached in memory, so
    a returned enqueue() means the row is committed. Failures of the
    underlying database are raised as StorageError; they are never dropped.
    """

    def __init__(self, pool):
        self.pool = pool

    async def enqueue(self, submission: PendingSubmission) -> None:
        """Saves a submission under its id, replacing an entry with the same id."""
        payload = submission.payload.model_dump(mode="json")
        try:
            async with self.pool.acquire() as conn:
                await conn.execute(f"""
                    INSERT INTO {PENDING_TABLE} (id, type, store_id, session_id, payload, created_at)
                    VALUES ($1, $2, $3, $4, $5::jsonb, $6)
                    ON CONFLICT (id) DO UPDATE SET
                        type = EXCLUDED.type,
                        store_id = EXCLUDED.store_id,
                        session_id = EXCLUDED.session_id,
                        payload = EXCLUDED.payload,
                        created_at = EXCLUDED.created_at,
                        queued_at = now()
                """, submission.id, submission.type.value, submission.store_id,
                    submission.session_id, json.dumps(payload, ensure_ascii=False), submission.created_at)
        except Exception as e:
            logger.exception(f"Failed to save submission {submission.id} to {PENDING_TABLE}")
            raise StorageError(f"Failed to queue submission {submission.id}: {e}") from e
        logger.info(f"Submission {submission.id} queued for sync (store {submission.store_id})")

    async def dequeue(self, submission_id: str) -> None:
        """Removes a submission. Missing ids are ignored."""
        try:
            async with self.pool.acquire() as conn:
                await conn.execute(f"DELETE FROM {PENDING_TABLE} WHERE id = $1", submission_id)
        except Exception as e:
            logger.exception(f"Failed to remove submission {submission_id} from {PENDING_TABLE}")
            raise StorageError(f"Failed to remove submission {submission_id}: {e}") from e

    async def get(self, submission_id: str) -> PendingSubmission | None:
        """Loads one submission by id, None if it is not queued."""
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(f"""
                    SELECT id, type, store_id, session_id, payload, created_at
                    FROM {PENDING_TABLE}
                    WHERE id = $1
                """, submission_id)
        except Exception as e:
            raise StorageError(f"Failed to read submission {submission_id}: {e}") from e
        return _row_to_submission(row) if row else None

    async def list_all(self) -> list[PendingSubmission]:
        """Returns every queued submission, in no particular order.

        Rows that cannot be decoded are logged and skipped but stay in the
        table, so one broken row does not hide the rest of the queue.
        """
        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(f"""
                    SELECT id, type, store_id, session_id, payload, created_at
                    FROM {PENDING_TABLE}
                """)
        except Exception as e:
            logger.exception(f"Failed to read {PENDING_TABLE}")
            raise StorageError(f"Failed to list pending submissions: {e}") from e
        submissions = []
        for row in rows:
            try:
                submissions.append(_row_to_submission(row))
            except (ValueError, TypeError) as e:
                logger.error(f"Skipping undecodable pending submission {row['id']}: {e}")
        return submissions

    async def count(self) -> int:
        """Number of queued submissions, without reading payloads."""
        try:
            async with self.pool.acquire() as conn:
                return await conn.fetchval(f"SELECT count(*) FROM {PENDING_TABLE}")
        except Exception as e:
            raise StorageError(f"Failed to count pending submissions: {e}") from e

    async def clear(self) -> int:
        """Drops every queued submission. Administrative use only."""
        try:
            async with self.pool.acquire() as conn:
                removed = await conn.fetchval(f"""
                    WITH removed AS (DELETE FROM {PENDING_TABLE} RETURNING 1)
                    SELECT count(*) FROM removed
                """)
        except Exception as e:
            logger.exception(f"Failed to clear {PENDING_TABLE}")
            raise StorageError(f"Failed to clear pending submissions: {e}") from e
        logger.warning(f"Cleared {removed} pending submissions")
        return removed
