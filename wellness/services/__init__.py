"""
Service Layer Package

- SessionService: session lifecycle, persistence and achievement dispatch
- AchievementDecisionClient: HTTP client for the achievement decision service
"""

from wellness.services.achievement_client import AchievementDecisionClient
from wellness.services.session_service import SESSION_TYPES, SessionService, TransitionResult

__all__ = [
    "AchievementDecisionClient",
    "SESSION_TYPES",
    "SessionService",
    "TransitionResult",
]
