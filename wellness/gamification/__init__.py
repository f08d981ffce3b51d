"""
Gamification for wellness sessions

- Streak eligibility policies (completion ratio, completion + quality)
- Achievement notification hook (per session type strategies)
- Points ledger operations and levels
- Achievement catalog and per-user progress
"""

from wellness.gamification.eligibility import STREAK_POLICIES, get_streak_policy
from wellness.gamification.hooks import AchievementPayload, AchievementStrategy

__all__ = [
    "STREAK_POLICIES",
    "get_streak_policy",
    "AchievementPayload",
    "AchievementStrategy",
]
