"""
Achievement catalog and progress

Definitions are built in; progress records live in the achievement_progress
table, one per (user, achievement). Progress is a 0-100 percentage; reaching
100 completes the achievement and records earned_at. Completion is sticky.
Deciding *when* progress moves is the decision service's job; this module
only stores it.
"""

from typing import List, Optional
import logging

from wellness.db.queries import achievements as achievement_queries
from wellness.exceptions import RecordNotFoundError
from wellness.models.achievement import (
    ACHIEVEMENT_DEFINITIONS,
    AchievementDefinition,
    AchievementProgress,
)
from wellness.utils.datetime_helpers import now_utc

logger = logging.getLogger(__name__)


def get_achievement_definitions(category: Optional[str] = None) -> List[AchievementDefinition]:
    definitions = list(ACHIEVEMENT_DEFINITIONS.values())
    if category:
        definitions = [d for d in definitions if d.category == category]
    return definitions


def get_achievement_definition(achievement_id: str) -> AchievementDefinition:
    """
    Raises:
        RecordNotFoundError: unknown achievement id
    """
    definition = ACHIEVEMENT_DEFINITIONS.get(achievement_id)
    if definition is None:
        raise RecordNotFoundError(
            f"Achievement '{achievement_id}' does not exist",
            record_type="Achievement",
            record_id=achievement_id
        )
    return definition


async def initialize_user_achievements(user_id: str) -> int:
    """
    Create zero-progress records for every catalog achievement

    Safe to call repeatedly; existing records are left alone.

    Returns:
        Number of records created
    """
    created = await achievement_queries.insert_default_progress(user_id, list(ACHIEVEMENT_DEFINITIONS))
    logger.info(f"Initialized {created} achievement progress records for user {user_id}")
    return created


async def get_user_progress(user_id: str) -> List[AchievementProgress]:
    rows = await achievement_queries.get_user_progress(user_id)
    return [AchievementProgress.model_validate(row) for row in rows]


async def update_progress(user_id: str, achievement_id: str, progress: int) -> AchievementProgress:
    """
    Set progress toward an achievement (clamped to 0-100)

    Returns:
        The stored record; unchanged if the achievement was already completed

    Raises:
        RecordNotFoundError: unknown achievement id
    """
    get_achievement_definition(achievement_id)

    row = await achievement_queries.get_progress(user_id, achievement_id)
    current = (
        AchievementProgress.model_validate(row)
        if row
        else AchievementProgress(user_id=user_id, achievement_id=achievement_id)
    )
    if current.completed:
        logger.debug(f"Achievement {achievement_id} already completed for user {user_id}")
        return current

    updated = current.with_progress(progress)
    stored = await achievement_queries.upsert_progress(
        user_id, achievement_id, updated.progress, updated.completed, updated.earned_at
    )
    if updated.completed:
        logger.info(f"User {user_id} completed achievement {achievement_id}")
    return AchievementProgress.model_validate(stored)


async def complete_achievement(user_id: str, achievement_id: str) -> AchievementProgress:
    """Mark an achievement completed regardless of current progress"""
    get_achievement_definition(achievement_id)
    stored = await achievement_queries.upsert_progress(user_id, achievement_id, 100, True, now_utc())
    logger.info(f"User {user_id} completed achievement {achievement_id}")
    return AchievementProgress.model_validate(stored)
