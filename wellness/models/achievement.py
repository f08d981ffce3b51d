"""Achievement catalog and per-user progress records"""
from datetime import datetime
from types import MappingProxyType
from typing import Mapping, Optional

from pydantic import BaseModel, Field, model_validator

from wellness.utils.datetime_helpers import now_utc


class AchievementDefinition(BaseModel):
    """
    One unlockable achievement

    `target` is the count the decision service must observe (sessions,
    streak days, group sessions...) before the achievement unlocks.
    """
    id: str
    title: str
    description: str
    points: int = Field(..., ge=0)
    target: int = Field(..., ge=1)
    category: str = "meditation"


class AchievementProgress(BaseModel):
    """Progress of one user toward one achievement, as a 0-100 percentage"""
    user_id: str = Field(..., min_length=1)
    achievement_id: str = Field(..., min_length=1)
    progress: int = Field(0, ge=0, le=100)
    completed: bool = False
    earned_at: Optional[datetime] = None

    @model_validator(mode="after")
    def _completion_consistency(self) -> "AchievementProgress":
        if self.progress >= 100:
            self.completed = True
        if self.completed:
            self.progress = 100
            if self.earned_at is None:
                self.earned_at = now_utc()
        return self

    def with_progress(self, progress: int, at: Optional[datetime] = None) -> "AchievementProgress":
        """
        New record with updated progress; completion is sticky

        Values outside 0-100 are clamped.
        """
        if self.completed:
            return self.model_copy()
        progress = max(0, min(100, int(progress)))
        completed = progress >= 100
        return AchievementProgress(
            user_id=self.user_id,
            achievement_id=self.achievement_id,
            progress=progress,
            completed=completed,
            earned_at=(at or now_utc()) if completed else None,
        )


def _define(id: str, title: str, description: str, target: int, points: int, category: str) -> AchievementDefinition:
    return AchievementDefinition(
        id=id, title=title, description=description, target=target, points=points, category=category
    )


ACHIEVEMENT_DEFINITIONS: Mapping[str, AchievementDefinition] = MappingProxyType({
    a.id: a for a in (
        # Practice timing
        _define("early_bird", "Early Bird", "Complete 5 sessions before 8 AM", 5, 100, "meditation"),
        _define("night_owl", "Night Owl", "Complete 5 sessions after 10 PM", 5, 100, "meditation"),
        _define("quick_zen", "Quick Zen", "Complete 10 sessions shorter than 5 minutes", 10, 100, "meditation"),
        _define("marathon_meditator", "Marathon Meditator", "Complete a session of 60 minutes or more", 1, 200,
                "meditation"),
        _define("balanced_practice", "Balanced Practice", "Practice 3 different session types", 3, 150,
                "meditation"),
        # Consistency
        _define("consistency_master", "Consistency Master", "Meditate at the same time of day for 7 days", 7, 150,
                "streak"),
        _define("week_warrior", "Week Warrior", "Keep a 7 day streak", 7, 200, "streak"),
        _define("monthly_master", "Monthly Master", "Keep a 30 day streak", 30, 500, "streak"),
        _define("zen_master", "Zen Master", "Complete 100 sessions", 100, 1000, "milestone"),
        # Mood
        _define("mood_lifter", "Mood Lifter", "Improve your mood in 10 sessions", 10, 150, "mood"),
        _define("zen_state", "Zen State", "Finish 5 sessions feeling peaceful", 5, 200, "mood"),
        _define("emotional_growth", "Emotional Growth", "Record mood before and after 20 sessions", 20, 300,
                "mood"),
        # Social
        _define("social_butterfly", "Social Butterfly", "Join 10 group sessions", 10, 200, "social"),
        _define("group_guide", "Group Guide", "Host 5 group sessions", 5, 300, "social"),
        _define("community_pillar", "Community Pillar", "Take part in 20 community sessions", 20, 400, "social"),
        _define("synchronized_souls", "Synchronized Souls", "Meditate with the same friend 3 times", 3, 250,
                "social"),
        _define("meditation_circle", "Meditation Circle", "Complete a group session with 5 or more people", 1, 150,
                "social"),
        _define("friend_zen", "Friend Zen", "Meditate with 5 different friends", 5, 200, "social"),
        _define("group_streak", "Group Streak", "Keep a 7 day group streak", 7, 350, "social"),
        _define("mindful_mentor", "Mindful Mentor", "Help 10 friends start their practice", 10, 400, "social"),
        _define("harmony_seeker", "Harmony Seeker", "Complete 15 group sessions with positive feedback", 15, 300,
                "social"),
        _define("zen_network", "Zen Network", "Connect with 30 meditation friends", 30, 500, "social"),
    )
})
