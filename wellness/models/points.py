"""
User points ledger

Level thresholds:
- Level 1: 0-999 points (negative totals included)
- Level 2: 1000-4999
- Level 3: 5000-9999
- Level 4: 10000+
"""
import logging
import math
from datetime import datetime
from numbers import Real
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from wellness.exceptions import DuplicateAchievementError, ValidationError
from wellness.utils.datetime_helpers import ensure_utc, now_utc

logger = logging.getLogger(__name__)

# Minimum total for levels 2, 3 and 4
LEVEL_THRESHOLDS = (1000, 5000, 10000)
MAX_LEVEL = len(LEVEL_THRESHOLDS) + 1

# Newest-first log of point awards kept on the ledger
RECENT_POINTS_LIMIT = 10


def calculate_level(total: int) -> int:
    """Level for a points total; monotonically non-decreasing"""
    level = 1
    for threshold in LEVEL_THRESHOLDS:
        if total >= threshold:
            level += 1
    return level


def points_to_next_level(total: int) -> Optional[int]:
    """Points still needed for the next level, None at the top level"""
    for threshold in LEVEL_THRESHOLDS:
        if total < threshold:
            return threshold - total
    return None


class AwardedAchievement(BaseModel):
    id: str = Field(..., min_length=1)
    name: str
    description: str = ""
    points: int = 0
    earned_at: datetime = Field(default_factory=now_utc)


class StreakRecord(BaseModel):
    type: str = Field(..., min_length=1)
    count: int = Field(0, ge=0)
    start_date: datetime = Field(default_factory=now_utc)
    last_update_date: datetime = Field(default_factory=now_utc)


class PointsEntry(BaseModel):
    points: int
    source: str = Field(..., min_length=1)
    description: str = ""
    timestamp: datetime = Field(default_factory=now_utc)


class UserPoints(BaseModel):
    """
    Per-user points ledger

    The store layer owns `version`; every other field is changed through the
    methods below so the recent log cap and achievement uniqueness hold.
    """
    user_id: str = Field(..., min_length=1)
    total: int = 0
    achievements: List[AwardedAchievement] = Field(default_factory=list)
    streaks: List[StreakRecord] = Field(default_factory=list)
    recent: List[PointsEntry] = Field(default_factory=list)
    version: int = Field(0, ge=0)

    @model_validator(mode="after")
    def _check_invariants(self) -> "UserPoints":
        seen = set()
        for achievement in self.achievements:
            if achievement.id in seen:
                raise ValueError(f"Duplicate achievement id '{achievement.id}'")
            seen.add(achievement.id)
        if len(self.recent) > RECENT_POINTS_LIMIT:
            self.recent = self.recent[:RECENT_POINTS_LIMIT]
        return self

    @property
    def level(self) -> int:
        return calculate_level(self.total)

    @property
    def points_to_next_level(self) -> Optional[int]:
        return points_to_next_level(self.total)

    def has_achievement(self, achievement_id: str) -> bool:
        return any(a.id == achievement_id for a in self.achievements)

    def add_points(
        self,
        amount: int,
        source: str,
        description: str = "",
        timestamp: Optional[datetime] = None
    ) -> "UserPoints":
        """
        Credit (or debit, when negative) points and log the award

        Raises:
            ValidationError: amount is not a finite whole number, or source is empty
        """
        if isinstance(amount, bool) or not isinstance(amount, Real) or not math.isfinite(amount):
            raise ValidationError(
                "Points amount must be a finite number",
                field="points",
                value=str(amount),
                user_id=self.user_id
            )
        if amount != int(amount):
            raise ValidationError(
                "Points amount must be a whole number",
                field="points",
                value=amount,
                user_id=self.user_id
            )
        amount = int(amount)
        if not source or not str(source).strip():
            raise ValidationError("Points source is required", field="source", user_id=self.user_id)

        entry = PointsEntry(
            points=amount,
            source=str(source).strip(),
            description=description or "",
            timestamp=ensure_utc(timestamp) or now_utc(),
        )
        self.total += amount
        self.recent.insert(0, entry)
        del self.recent[RECENT_POINTS_LIMIT:]
        logger.debug(f"User {self.user_id}: {amount:+} points from {entry.source} (total {self.total})")
        return self

    def add_achievement(self, achievement: AwardedAchievement) -> "UserPoints":
        """
        Record an awarded achievement; does not credit its points

        Raises:
            DuplicateAchievementError: an achievement with this id is already recorded
        """
        if self.has_achievement(achievement.id):
            raise DuplicateAchievementError(achievement.id, user_id=self.user_id)
        self.achievements.append(achievement)
        return self

    def record_streak(self, streak_type: str, count: int, at: Optional[datetime] = None) -> StreakRecord:
        """Upsert the streak entry for one streak type"""
        if count < 0:
            raise ValidationError("Streak count cannot be negative", field="count", value=count)
        at = ensure_utc(at) or now_utc()
        for streak in self.streaks:
            if streak.type == streak_type:
                if count <= 1 or count < streak.count:
                    streak.start_date = at
                streak.count = count
                streak.last_update_date = at
                return streak
        streak = StreakRecord(type=streak_type, count=count, start_date=at, last_update_date=at)
        self.streaks.append(streak)
        return streak

    def get_streak(self, streak_type: str) -> Optional[StreakRecord]:
        for streak in self.streaks:
            if streak.type == streak_type:
                return streak
        return None
