"""Points ledger database queries"""
import logging
from typing import Optional

import psycopg
from psycopg.types.json import Jsonb

from wellness.db.connection import db
from wellness.exceptions import ConcurrentModificationError, wrap_external_exception
from wellness.models.points import UserPoints

logger = logging.getLogger(__name__)


def _document(points: UserPoints) -> Jsonb:
    return Jsonb(points.model_dump(mode="json", exclude={"version"}))


async def get_user_points(user_id: str) -> Optional[dict]:
    """
    Get a user's ledger row

    Returns:
        {'user_id': str, 'total': int, 'document': dict, 'version': int} or None
    """
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                SELECT user_id, total, document, version
                FROM user_points
                WHERE user_id = %s
                """,
                (user_id,)
            )
            row = await cur.fetchone()
            return dict(row) if row else None


async def create_user_points(points: UserPoints) -> Optional[int]:
    """
    Insert a ledger for a user that has none yet

    Returns:
        0 on insert, None if another writer created it first
    """
    try:
        async with db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    INSERT INTO user_points (user_id, total, document, version)
                    VALUES (%s, %s, %s, 0)
                    ON CONFLICT (user_id) DO NOTHING
                    RETURNING version
                    """,
                    (points.user_id, points.total, _document(points))
                )
                row = await cur.fetchone()
                await conn.commit()
    except psycopg.Error as e:
        raise wrap_external_exception(e, operation="create_user_points", user_id=points.user_id) from e

    if row:
        logger.info(f"Created points ledger for user {points.user_id}")
        return row["version"]
    return None


async def update_user_points(points: UserPoints, expected_version: int) -> int:
    """
    Compare-and-swap write of a ledger

    Returns:
        The new version

    Raises:
        ConcurrentModificationError: another write landed first
    """
    try:
        async with db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    UPDATE user_points
                    SET total = %s,
                        document = %s,
                        version = version + 1,
                        updated_at = CURRENT_TIMESTAMP
                    WHERE user_id = %s AND version = %s
                    RETURNING version
                    """,
                    (points.total, _document(points), points.user_id, expected_version)
                )
                row = await cur.fetchone()
                await conn.commit()
    except psycopg.Error as e:
        raise wrap_external_exception(e, operation="update_user_points", user_id=points.user_id) from e

    if not row:
        raise ConcurrentModificationError(
            f"Points ledger for user {points.user_id} was modified concurrently",
            record_type="user_points",
            record_id=points.user_id,
            expected_version=expected_version,
            user_id=points.user_id
        )
    return row["version"]


async def get_points_leaderboard(limit: int = 10) -> list[dict]:
    """
    Top users by total points

    Returns:
        [{'user_id': str, 'total': int, 'rank': int}, ...]
    """
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                SELECT user_id, total, RANK() OVER (ORDER BY total DESC) AS rank
                FROM user_points
                ORDER BY total DESC, user_id
                LIMIT %s
                """,
                (limit,)
            )
            rows = await cur.fetchall()
            return [dict(row) for row in rows]
