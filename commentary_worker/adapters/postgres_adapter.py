"""
Postgres adapter implementations for the job store, job source and asset cache.

Job records live in video_jobs; analysed source videos live in
processed_video_assets, one row per canonical identifier.
"""

import logging
from typing import Optional, Dict, Any

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from psycopg_pool import ConnectionPool

from .base import JobSourceAdapter, JobStore, AssetCacheStore
from ..errors import CacheStoreError
from ..models import VideoJob, Persona, CachedVideoAsset, JobPayload, QUEUED
from ..logging_setup import log_exception

logger = logging.getLogger("commentary_worker")

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS video_jobs (
    id TEXT PRIMARY KEY,
    source_video_url TEXT NOT NULL DEFAULT '',
    personas JSONB NOT NULL DEFAULT '[]'::jsonb,
    speaking_pace DOUBLE PRECISION NOT NULL DEFAULT 1.0,
    user_guidance TEXT,
    transcript_summary TEXT,
    status TEXT NOT NULL DEFAULT 'queued',
    error_message TEXT,
    status_message TEXT,
    result_refs JSONB NOT NULL DEFAULT '{}'::jsonb,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    started_at TIMESTAMPTZ,
    completed_at TIMESTAMPTZ,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
);
CREATE INDEX IF NOT EXISTS video_jobs_status_created_idx ON video_jobs (status, created_at);
CREATE TABLE IF NOT EXISTS processed_video_assets (
    source_video_identifier TEXT PRIMARY KEY,
    clipped_video_ref TEXT,
    audio_transcript TEXT,
    frame_descriptions TEXT,
    frame_refs JSONB NOT NULL DEFAULT '[]'::jsonb,
    processed_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    last_accessed_at TIMESTAMPTZ NOT NULL DEFAULT now()
);
"""

# Terminal rows are never updated again
TERMINAL_GUARD = "status NOT IN ('completed', 'failed')"


class PostgresAdapter:
    """Connection pool lifecycle shared by the Postgres adapters"""

    application_name = "commentary_worker"

    def __init__(self, database_url: str, pool_size: int = 5, timeout: int = 10):
        self.database_url = database_url
        self.pool_size = pool_size
        self.timeout = timeout
        self.pool = None

    def connect(self):
        """Initialize connection pool"""
        try:
            self.pool = ConnectionPool(
                self.database_url,
                min_size=1,
                max_size=self.pool_size,
                kwargs={
                    "connect_timeout": self.timeout,
                    "application_name": self.application_name
                }
            )
            logger.info(f"Postgres connection pool initialized for {self.application_name}")
        except Exception as e:
            log_exception(logger, f"Failed to connect to Postgres: {e}")
            raise

    def close(self):
        """Close connection pool"""
        if self.pool:
            self.pool.close()
            self.pool = None
            logger.info(f"Postgres connection pool closed for {self.application_name}")


def row_to_job(row: Dict[str, Any]) -> VideoJob:
    return VideoJob(
        id=row['id'],
        source_video_url=row['source_video_url'] or "",
        personas=[Persona.from_dict(p) for p in row['personas'] or []],
        speaking_pace=row['speaking_pace'],
        user_guidance=row['user_guidance'],
        transcript_summary=row['transcript_summary'],
        status=row['status'],
        error_message=row['error_message'],
        status_message=row['status_message'],
        result_refs=row['result_refs'] or {},
        created_at=row['created_at'],
        started_at=row['started_at'],
        completed_at=row['completed_at'],
        updated_at=row['updated_at'],
    )


class PostgresJobStore(PostgresAdapter, JobStore):
    """Postgres implementation of the job store"""

    application_name = "commentary_worker_jobs"

    def connect(self):
        super().connect()
        self._bootstrap_schema()

    def _bootstrap_schema(self):
        """Create tables if they do not exist"""
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(SCHEMA_SQL)
                conn.commit()
                logger.info("Postgres schema validated")

    def create_job(self, payload: JobPayload) -> VideoJob:
        job = payload.to_job()
        with self.pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute("""
                    INSERT INTO video_jobs
                        (id, source_video_url, personas, speaking_pace, user_guidance, transcript_summary, status)
                    VALUES (%s, %s, %s, %s, %s, %s, %s)
                    ON CONFLICT (id) DO NOTHING
                """, (
                    job.id, job.source_video_url, Jsonb([p.to_dict() for p in job.personas]),
                    job.speaking_pace, job.user_guidance, job.transcript_summary, QUEUED
                ))
                inserted = cur.rowcount == 1
                cur.execute("SELECT * FROM video_jobs WHERE id = %s", (job.id,))
                row = cur.fetchone()
                conn.commit()

        if inserted:
            logger.info(f"Job {job.id}: recorded as queued")
        else:
            logger.info(f"Job {job.id}: already recorded with status {row['status']}")
        return row_to_job(row)

    def get_job(self, job_id: str) -> Optional[VideoJob]:
        with self.pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute("SELECT * FROM video_jobs WHERE id = %s", (job_id,))
                row = cur.fetchone()
                return row_to_job(row) if row else None

    def mark_processing(self, job_id: str) -> bool:
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(f"""
                    UPDATE video_jobs
                    SET status = 'processing', started_at = COALESCE(started_at, now()), updated_at = now()
                    WHERE id = %s AND {TERMINAL_GUARD}
                """, (job_id,))
                updated = cur.rowcount == 1
                conn.commit()
                return updated

    def complete_job(self, job_id: str, result_refs: Dict[str, Any], status_message: Optional[str]) -> bool:
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(f"""
                    UPDATE video_jobs
                    SET status = 'completed', result_refs = %s, status_message = %s, error_message = NULL,
                        completed_at = now(), updated_at = now()
                    WHERE id = %s AND {TERMINAL_GUARD}
                """, (Jsonb(result_refs), status_message, job_id))
                updated = cur.rowcount == 1
                conn.commit()

        if updated:
            logger.info(f"Job {job_id}: completed")
        else:
            logger.warning(f"Job {job_id}: completion ignored, job missing or already terminal")
        return updated

    def fail_job(self, job_id: str, error: str, result_refs: Optional[Dict[str, Any]] = None) -> bool:
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(f"""
                    UPDATE video_jobs
                    SET status = 'failed', error_message = %s, result_refs = COALESCE(%s, result_refs),
                        completed_at = now(), updated_at = now()
                    WHERE id = %s AND {TERMINAL_GUARD}
                """, (error, Jsonb(result_refs) if result_refs else None, job_id))
                updated = cur.rowcount == 1
                conn.commit()

        if updated:
            logger.error(f"Job {job_id}: failed: {error}")
        else:
            logger.warning(f"Job {job_id}: failure ignored, job missing or already terminal")
        return updated

    def get_stats(self) -> Dict[str, Any]:
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT status, COUNT(*) FROM video_jobs GROUP BY status")
                job_counts = {row[0]: row[1] for row in cur.fetchall()}
                cur.execute("SELECT COUNT(*) FROM processed_video_assets")
                cached = cur.fetchone()[0]
                return {"jobs": job_counts, "cached_videos": cached}


class PostgresJobSourceAdapter(JobSourceAdapter):
    """Claims queued rows from video_jobs using the job store's pool"""

    def __init__(self, store: PostgresJobStore):
        self.store = store

    def connect(self):
        if self.store.pool is None:
            self.store.connect()

    def claim_job(self) -> Optional[VideoJob]:
        """Atomically claim the oldest queued job and set it to processing"""
        with self.store.pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute("""
                    WITH j AS (
                        SELECT id
                        FROM video_jobs
                        WHERE status = 'queued'
                        ORDER BY created_at
                        FOR UPDATE SKIP LOCKED
                        LIMIT 1
                    )
                    UPDATE video_jobs
                    SET status = 'processing', started_at = now(), updated_at = now()
                    FROM j
                    WHERE video_jobs.id = j.id
                    RETURNING video_jobs.*;
                """)
                row = cur.fetchone()
                conn.commit()

        if not row:
            return None

        logger.info(f"Claimed job {row['id']}")
        return row_to_job(row)

    def acknowledge(self, job: VideoJob) -> None:
        # The row itself carries the terminal status; nothing to release
        pass

    def close(self):
        pass


class PostgresAssetCache(PostgresAdapter, AssetCacheStore):
    """Postgres implementation of the asset cache"""

    application_name = "commentary_worker_cache"

    def get(self, identifier: str) -> Optional[CachedVideoAsset]:
        try:
            with self.pool.connection() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(
                        "SELECT * FROM processed_video_assets WHERE source_video_identifier = %s",
                        (identifier,)
                    )
                    row = cur.fetchone()
        except psycopg.Error as e:
            raise CacheStoreError(f"Cache lookup failed for {identifier}: {e}") from e

        if not row:
            return None

        return CachedVideoAsset(
            source_video_identifier=row['source_video_identifier'],
            clipped_video_ref=row['clipped_video_ref'],
            audio_transcript=row['audio_transcript'],
            frame_descriptions=row['frame_descriptions'],
            frame_refs=list(row['frame_refs'] or []),
            processed_at=row['processed_at'],
            last_accessed_at=row['last_accessed_at'],
        )

    def put_if_absent(self, asset: CachedVideoAsset) -> bool:
        try:
            with self.pool.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute("""
                        INSERT INTO processed_video_assets
                            (source_video_identifier, clipped_video_ref, audio_transcript,
                             frame_descriptions, frame_refs)
                        VALUES (%s, %s, %s, %s, %s)
                        ON CONFLICT (source_video_identifier) DO NOTHING
                    """, (
                        asset.source_video_identifier, asset.clipped_video_ref, asset.audio_transcript,
                        asset.frame_descriptions, Jsonb(list(asset.frame_refs))
                    ))
                    inserted = cur.rowcount == 1
                    conn.commit()
                    return inserted
        except psycopg.Error as e:
            raise CacheStoreError(f"Cache write failed for {asset.source_video_identifier}: {e}") from e

    def touch(self, identifier: str) -> None:
        try:
            with self.pool.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute("""
                        UPDATE processed_video_assets
                        SET last_accessed_at = now()
                        WHERE source_video_identifier = %s
                    """, (identifier,))
                    conn.commit()
        except psycopg.Error as e:
            raise CacheStoreError(f"Cache touch failed for {identifier}: {e}") from e
