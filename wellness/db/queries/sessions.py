"""Wellness session database queries"""
import logging
from typing import Optional

import psycopg
from psycopg.types.json import Jsonb

from wellness.db.connection import db
from wellness.exceptions import ConcurrentModificationError, wrap_external_exception
from wellness.models.session import WellnessSession

logger = logging.getLogger(__name__)

SESSION_COLUMNS = "id, user_id, session_type, status, document, version, deleted_at"


async def insert_session(session: WellnessSession) -> None:
    """Persist a newly started session at version 0"""
    try:
        async with db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    INSERT INTO wellness_sessions
                        (id, user_id, session_type, status, start_time, end_time,
                         achievements_pending, document, version)
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, 0)
                    """,
                    (
                        session.id,
                        session.user_id,
                        session.session_type,
                        session.status.value,
                        session.start_time,
                        session.end_time,
                        session.achievements_pending,
                        Jsonb(session.to_document()),
                    )
                )
                await conn.commit()
    except psycopg.Error as e:
        raise wrap_external_exception(
            e, operation="insert_session", user_id=session.user_id, context={"session_id": session.id}
        ) from e
    logger.info(f"Inserted {session.session_type} session {session.id}")


async def get_session(session_id: str, include_deleted: bool = False) -> Optional[dict]:
    """
    Get a session row

    Returns:
        {'id', 'user_id', 'session_type', 'status', 'document', 'version', 'deleted_at'}
        or None when missing (or soft-deleted, unless include_deleted)
    """
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            query = f"SELECT {SESSION_COLUMNS} FROM wellness_sessions WHERE id = %s"
            if not include_deleted:
                query += " AND deleted_at IS NULL"
            await cur.execute(query, (session_id,))
            row = await cur.fetchone()
            return dict(row) if row else None


async def update_session(session: WellnessSession, expected_version: int) -> int:
    """
    Write a session document if nobody else changed it since it was read

    Status, end time, history and the achievements flag go out in one
    statement, so they commit together or not at all.

    Returns:
        The new version

    Raises:
        ConcurrentModificationError: version moved on (or the row was deleted)
    """
    try:
        async with db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    UPDATE wellness_sessions
                    SET status = %s,
                        end_time = %s,
                        achievements_pending = %s,
                        document = %s,
                        version = version + 1,
                        updated_at = CURRENT_TIMESTAMP
                    WHERE id = %s AND version = %s AND deleted_at IS NULL
                    RETURNING version
                    """,
                    (
                        session.status.value,
                        session.end_time,
                        session.achievements_pending,
                        Jsonb(session.to_document()),
                        session.id,
                        expected_version,
                    )
                )
                row = await cur.fetchone()
                await conn.commit()
    except psycopg.Error as e:
        raise wrap_external_exception(
            e, operation="update_session", user_id=session.user_id, context={"session_id": session.id}
        ) from e

    if not row:
        raise ConcurrentModificationError(
            f"Session {session.id} was modified concurrently",
            record_type="session",
            record_id=session.id,
            expected_version=expected_version,
            user_id=session.user_id
        )
    return row["version"]


async def soft_delete_session(session_id: str, user_id: str) -> bool:
    """Mark a session deleted; returns False if it was missing or already deleted"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                UPDATE wellness_sessions
                SET deleted_at = CURRENT_TIMESTAMP,
                    version = version + 1,
                    updated_at = CURRENT_TIMESTAMP
                WHERE id = %s AND user_id = %s AND deleted_at IS NULL
                RETURNING id
                """,
                (session_id, user_id)
            )
            row = await cur.fetchone()
            await conn.commit()
            return row is not None


async def list_user_sessions(
    user_id: str,
    session_type: Optional[str] = None,
    status: Optional[str] = None,
    limit: int = 20,
    offset: int = 0
) -> list[dict]:
    """Non-deleted sessions for a user, newest first"""
    conditions = ["user_id = %s", "deleted_at IS NULL"]
    params: list = [user_id]
    if session_type:
        conditions.append("session_type = %s")
        params.append(session_type)
    if status:
        conditions.append("status = %s")
        params.append(status)
    params.extend([limit, offset])

    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                f"""
                SELECT {SESSION_COLUMNS}
                FROM wellness_sessions
                WHERE {' AND '.join(conditions)}
                ORDER BY start_time DESC
                LIMIT %s OFFSET %s
                """,
                tuple(params)
            )
            rows = await cur.fetchall()
            return [dict(row) for row in rows]


async def list_pending_achievement_sessions(limit: int = 100) -> list[dict]:
    """Completed sessions whose achievement forward has not succeeded yet"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                f"""
                SELECT {SESSION_COLUMNS}
                FROM wellness_sessions
                WHERE achievements_pending AND status = 'completed' AND deleted_at IS NULL
                ORDER BY end_time
                LIMIT %s
                """,
                (limit,)
            )
            rows = await cur.fetchall()
            return [dict(row) for row in rows]
