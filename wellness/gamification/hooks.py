"""
Achievement notification hook

Each session type supplies an AchievementStrategy: whether a completed session
qualifies for achievement processing, and the payload forwarded to the
external decision service. The service decides which achievements unlock and
credits the points ledger; nothing here interprets its response.
"""
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Protocol, runtime_checkable

from pydantic import BaseModel, Field

from wellness import config
from wellness.gamification.eligibility import evaluate_all
from wellness.models.session import SessionStatus, WellnessSession

logger = logging.getLogger(__name__)


class AchievementPayload(BaseModel):
    """Data forwarded to the achievement decision service"""
    user_id: str
    session_id: str
    session_type: str
    duration: int = Field(..., ge=0, description="Effective duration in seconds")
    mood_improvement: int = 0
    streak_day: int = Field(0, ge=0)
    streak_maintained: bool = False
    streak_eligibility: Dict[str, bool] = Field(default_factory=dict)
    stress_reduction: int = Field(0, ge=0)
    focus_rating: Optional[int] = None
    interruptions: int = Field(0, ge=0)
    technique: Optional[str] = None
    completed_at: Optional[datetime] = None
    metrics: Dict[str, Any] = Field(default_factory=dict)


@runtime_checkable
class AchievementDecisionService(Protocol):
    """Anything that accepts a payload; may raise on failure"""

    async def process_achievements(self, payload: AchievementPayload) -> Any:
        ...


class AchievementStrategy:
    """
    Qualification + payload builder for one session type

    Args:
        session_type: identifier sent with the payload
        qualifier: extra predicate on top of "is completed"
        use_planned_duration: send the stored duration instead of the
            measured start-to-end time (for types that overwrite duration)
        metrics: builds type-specific extra metrics for the payload
    """

    def __init__(
        self,
        session_type: str,
        qualifier: Optional[Callable[[WellnessSession], bool]] = None,
        use_planned_duration: bool = False,
        metrics: Optional[Callable[[WellnessSession], Dict[str, Any]]] = None
    ):
        self.session_type = session_type
        self._qualifier = qualifier
        self.use_planned_duration = use_planned_duration
        self._metrics = metrics

    def qualifies(self, session: WellnessSession) -> bool:
        if session.status != SessionStatus.COMPLETED:
            return False
        if self._qualifier is None:
            return True
        return bool(self._qualifier(session))

    def effective_duration(self, session: WellnessSession) -> int:
        if self.use_planned_duration:
            return session.duration
        return session.get_actual_duration()

    def build_payload(self, session: WellnessSession) -> AchievementPayload:
        eligibility = evaluate_all(session)
        return AchievementPayload(
            user_id=session.user_id,
            session_id=session.id,
            session_type=self.session_type,
            duration=self.effective_duration(session),
            mood_improvement=session.mood_delta,
            streak_day=getattr(session, "streak_day", 0),
            streak_maintained=eligibility.get(config.STREAK_POLICY, False),
            streak_eligibility=eligibility,
            stress_reduction=session.stress_reduction,
            focus_rating=session.quality_rating,
            interruptions=session.interruptions,
            technique=session.technique_id,
            completed_at=session.end_time,
            metrics=self._metrics(session) if self._metrics else {},
        )

    def __repr__(self) -> str:
        return f"<AchievementStrategy {self.session_type}>"
