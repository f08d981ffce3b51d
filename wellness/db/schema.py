"""
Table definitions

Each aggregate is stored as a JSONB document next to the columns that are
filtered, sorted or constrained on. `version` backs optimistic concurrency:
every update is `... WHERE version = %s` and bumps it by one.
"""
import logging

from wellness.db.connection import db

logger = logging.getLogger(__name__)

SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS wellness_sessions (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        session_type TEXT NOT NULL,
        status TEXT NOT NULL,
        start_time TIMESTAMPTZ NOT NULL,
        end_time TIMESTAMPTZ,
        achievements_pending BOOLEAN NOT NULL DEFAULT FALSE,
        document JSONB NOT NULL,
        version INTEGER NOT NULL DEFAULT 0,
        deleted_at TIMESTAMPTZ,
        created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_wellness_sessions_user_start
        ON wellness_sessions (user_id, start_time DESC)
        WHERE deleted_at IS NULL
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_wellness_sessions_user_status
        ON wellness_sessions (user_id, status)
    """,
    """
    CREATE TABLE IF NOT EXISTS user_points (
        user_id TEXT PRIMARY KEY,
        total INTEGER NOT NULL DEFAULT 0,
        document JSONB NOT NULL,
        version INTEGER NOT NULL DEFAULT 0,
        created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_user_points_total
        ON user_points (total DESC)
    """,
    """
    CREATE TABLE IF NOT EXISTS achievement_progress (
        id BIGSERIAL PRIMARY KEY,
        user_id TEXT NOT NULL,
        achievement_id TEXT NOT NULL,
        progress INTEGER NOT NULL DEFAULT 0 CHECK (progress BETWEEN 0 AND 100),
        completed BOOLEAN NOT NULL DEFAULT FALSE,
        earned_at TIMESTAMPTZ,
        created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
        UNIQUE (user_id, achievement_id)
    )
    """,
)


async def init_schema() -> None:
    """Create tables and indexes if missing"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            for statement in SCHEMA_STATEMENTS:
                await cur.execute(statement)
            await conn.commit()
    logger.info(f"Database schema ready ({len(SCHEMA_STATEMENTS)} statements)")
