"""
Points and Leveling System

Manages point awards, achievement records and streak entries on the per-user
UserPoints ledger.

Levels:
- Level 1: below 1000 points
- Level 2: 1000-4999
- Level 3: 5000-9999
- Level 4: 10000 and up

Every write is a compare-and-swap on the ledger version. Point additions
commute, so a lost race is re-read and re-applied up to POINTS_WRITE_ATTEMPTS
times. The ledger is created on first award, by inserting the already
mutated ledger, so a rejected award never leaves an empty row behind.
"""

from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar
import logging

from wellness import config
from wellness.db.queries import points as points_queries
from wellness.exceptions import ConcurrentModificationError
from wellness.models.points import (
    AwardedAchievement,
    LEVEL_THRESHOLDS,
    UserPoints,
    calculate_level,
    points_to_next_level,
)
from wellness.resilience.metrics import record_points_awarded

logger = logging.getLogger(__name__)

T = TypeVar("T")


def calculate_level_from_points(total: int) -> Dict[str, Any]:
    """
    Level information for a points total

    Returns:
        {
            'current_level': int,
            'points_to_next_level': int or None at the top level,
            'next_level_threshold': int or None at the top level
        }
    """
    level = calculate_level(total)
    remaining = points_to_next_level(total)
    return {
        "current_level": level,
        "points_to_next_level": remaining,
        "next_level_threshold": LEVEL_THRESHOLDS[level - 1] if remaining is not None else None,
    }


def _from_row(row: dict) -> UserPoints:
    return UserPoints.model_validate({**row["document"], "version": row["version"]})


async def _load(user_id: str) -> Tuple[UserPoints, Optional[int]]:
    """Stored ledger and its version, or an unsaved empty ledger and None"""
    row = await points_queries.get_user_points(user_id)
    if row:
        ledger = _from_row(row)
        return ledger, ledger.version
    return UserPoints(user_id=user_id), None


async def _mutate_ledger(user_id: str, mutate: Callable[[UserPoints], T]) -> Tuple[UserPoints, T, int]:
    """
    Read, apply `mutate`, write; retry on version conflict

    Returns:
        (saved ledger, mutate's return value, total before the mutation)
    """
    attempts = max(1, config.POINTS_WRITE_ATTEMPTS)
    for attempt in range(1, attempts + 1):
        ledger, version = await _load(user_id)
        old_total = ledger.total
        # Raises before anything is written, including the first insert
        result = mutate(ledger)
        try:
            if version is None:
                created = await points_queries.create_user_points(ledger)
                if created is not None:
                    ledger.version = created
                    return ledger, result, old_total
                # Lost the creation race; the other writer's row is there now
                raise ConcurrentModificationError(
                    f"Points ledger for user {user_id} was created concurrently",
                    record_type="user_points",
                    record_id=user_id,
                    expected_version=0,
                )
            ledger.version = await points_queries.update_user_points(ledger, version)
            return ledger, result, old_total
        except ConcurrentModificationError:
            if attempt == attempts:
                raise
            logger.info(f"Points ledger for user {user_id} changed underneath us, retrying ({attempt}/{attempts})")

    raise RuntimeError("unreachable")


async def award_points(
    user_id: str,
    amount: int,
    source: str,
    description: str = ""
) -> Dict[str, Any]:
    """
    Credit points to a user (negative amounts debit)

    Args:
        user_id: Owning user
        amount: Points, finite whole number
        source: Source tag (session, achievement, streak, challenge, other)
        description: Human-readable description

    Returns:
        {
            'points_awarded': int,
            'new_total': int,
            'old_total': int,
            'leveled_up': bool,
            'new_level': int,
            'old_level': int,
            'points_to_next_level': int or None
        }

    Raises:
        ValidationError: amount is not a finite whole number
        ConcurrentModificationError: every write attempt lost a race
    """
    ledger, _, old_total = await _mutate_ledger(
        user_id, lambda points: points.add_points(amount, source, description)
    )
    old_level = calculate_level(old_total)
    new_level = ledger.level
    record_points_awarded(source, amount)

    logger.info(
        f"Awarded {amount} points to user {user_id} for {source}. "
        f"Total: {ledger.total}, Level: {new_level}"
    )
    if new_level > old_level:
        logger.info(f"User {user_id} leveled up from {old_level} to {new_level}!")

    return {
        "points_awarded": amount,
        "new_total": ledger.total,
        "old_total": old_total,
        "leveled_up": new_level > old_level,
        "new_level": new_level,
        "old_level": old_level,
        "points_to_next_level": ledger.points_to_next_level,
    }


async def award_achievement(
    user_id: str,
    achievement_id: str,
    name: Optional[str] = None,
    description: Optional[str] = None,
    points: Optional[int] = None
) -> Dict[str, Any]:
    """
    Record an achievement on the ledger and credit its points in one write

    Name, description and points default to the catalog definition.

    Raises:
        DuplicateAchievementError: already awarded (nothing is written)
        RecordNotFoundError: no catalog entry and no explicit name/points
    """
    if name is None or points is None:
        from wellness.gamification.catalog import get_achievement_definition
        definition = get_achievement_definition(achievement_id)
        name = name or definition.title
        description = description if description is not None else definition.description
        points = points if points is not None else definition.points

    record = AwardedAchievement(
        id=achievement_id,
        name=name,
        description=description or "",
        points=points,
    )

    def apply(ledger: UserPoints) -> None:
        ledger.add_achievement(record)
        if points:
            ledger.add_points(points, "achievement", f"Unlocked {name}")

    ledger, _, old_total = await _mutate_ledger(user_id, apply)
    record_points_awarded("achievement", points)
    logger.info(f"User {user_id} earned achievement {achievement_id} (+{points} points)")

    return {
        "achievement": record.model_dump(),
        "points_awarded": points,
        "new_total": ledger.total,
        "leveled_up": ledger.level > calculate_level(old_total),
        "new_level": ledger.level,
    }


async def update_user_streak(user_id: str, streak_type: str, count: int) -> Dict[str, Any]:
    """
    Set the current count of one streak type

    Returns:
        {'type': str, 'count': int, 'start_date': datetime, 'last_update_date': datetime}
    """
    _, streak, _ = await _mutate_ledger(user_id, lambda ledger: ledger.record_streak(streak_type, count))
    logger.info(f"User {user_id} {streak_type} streak: {count}")
    return streak.model_dump()


async def get_user_points(user_id: str) -> Dict[str, Any]:
    """
    Current points, level and recent activity; does not create a ledger

    Returns:
        {
            'user_id': str,
            'total': int,
            'current_level': int,
            'points_to_next_level': int or None,
            'achievements': list,
            'streaks': list,
            'recent': list (newest first)
        }
    """
    row = await points_queries.get_user_points(user_id)
    ledger = _from_row(row) if row else UserPoints(user_id=user_id)

    return {
        "user_id": user_id,
        "total": ledger.total,
        "current_level": ledger.level,
        "points_to_next_level": ledger.points_to_next_level,
        "achievements": [a.model_dump() for a in ledger.achievements],
        "streaks": [s.model_dump() for s in ledger.streaks],
        "recent": [entry.model_dump() for entry in ledger.recent],
    }


async def get_leaderboard(limit: int = 10) -> List[Dict[str, Any]]:
    """
    Top users by points

    Returns:
        [{'rank': int, 'user_id': str, 'total': int, 'level': int}, ...]
    """
    rows = await points_queries.get_points_leaderboard(limit)
    return [
        {
            "rank": row["rank"],
            "user_id": row["user_id"],
            "total": row["total"],
            "level": calculate_level(row["total"]),
        }
        for row in rows
    ]
