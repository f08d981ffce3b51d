"""Achievement progress database queries"""
import logging
from datetime import datetime
from typing import Iterable, Optional

from wellness.db.connection import db

logger = logging.getLogger(__name__)

PROGRESS_COLUMNS = "user_id, achievement_id, progress, completed, earned_at"


async def insert_default_progress(user_id: str, achievement_ids: Iterable[str]) -> int:
    """
    Create zero-progress records for any achievements the user lacks

    Returns:
        Number of records created
    """
    created = 0
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            for achievement_id in achievement_ids:
                await cur.execute(
                    """
                    INSERT INTO achievement_progress (user_id, achievement_id, progress, completed)
                    VALUES (%s, %s, 0, FALSE)
                    ON CONFLICT (user_id, achievement_id) DO NOTHING
                    """,
                    (user_id, achievement_id)
                )
                created += cur.rowcount or 0
            await conn.commit()
    return created


async def get_user_progress(user_id: str) -> list[dict]:
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                f"""
                SELECT {PROGRESS_COLUMNS}
                FROM achievement_progress
                WHERE user_id = %s
                ORDER BY completed DESC, progress DESC, achievement_id
                """,
                (user_id,)
            )
            rows = await cur.fetchall()
            return [dict(row) for row in rows]


async def get_progress(user_id: str, achievement_id: str) -> Optional[dict]:
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                f"""
                SELECT {PROGRESS_COLUMNS}
                FROM achievement_progress
                WHERE user_id = %s AND achievement_id = %s
                """,
                (user_id, achievement_id)
            )
            row = await cur.fetchone()
            return dict(row) if row else None


async def upsert_progress(
    user_id: str,
    achievement_id: str,
    progress: int,
    completed: bool,
    earned_at: Optional[datetime]
) -> dict:
    """
    Write a progress record

    A completed record stays completed: the update never lowers progress
    or clears completion once set.
    """
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                f"""
                INSERT INTO achievement_progress (user_id, achievement_id, progress, completed, earned_at)
                VALUES (%s, %s, %s, %s, %s)
                ON CONFLICT (user_id, achievement_id) DO UPDATE
                SET progress = CASE WHEN achievement_progress.completed
                                    THEN achievement_progress.progress
                                    ELSE EXCLUDED.progress END,
                    completed = achievement_progress.completed OR EXCLUDED.completed,
                    earned_at = COALESCE(achievement_progress.earned_at, EXCLUDED.earned_at),
                    updated_at = CURRENT_TIMESTAMP
                RETURNING {PROGRESS_COLUMNS}
                """,
                (user_id, achievement_id, progress, completed, earned_at)
            )
            row = await cur.fetchone()
            await conn.commit()
            return dict(row)
