"""
Stress-tracked sessions

StressTrackedSession adds before/after stress levels (1-10) shared by the
stress management, breathing and PMR session types.
"""
import logging
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from wellness.exceptions import InvalidTransitionError, ValidationError
from wellness.gamification.hooks import AchievementStrategy
from wellness.models.session import SessionStatus, WellnessSession

logger = logging.getLogger(__name__)

STRESS_LEVEL_MIN = 1
STRESS_LEVEL_MAX = 10


class StressBand(str, Enum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"


def stress_band(level: int) -> StressBand:
    """Map a 1-10 stress level to a coarse band"""
    if level <= 3:
        return StressBand.LOW
    if level <= 7:
        return StressBand.MODERATE
    return StressBand.HIGH


def _strip_items(items: List[str], max_items: int, max_length: int, label: str) -> List[str]:
    cleaned = [item.strip() for item in items if item and item.strip()]
    if len(cleaned) > max_items:
        raise ValueError(f"Cannot have more than {max_items} {label}s")
    for item in cleaned:
        if len(item) > max_length:
            raise ValueError(f"{label.capitalize()} cannot be more than {max_length} characters")
    return cleaned


class StressTrackedSession(WellnessSession):
    """Session that records stress level before and after"""

    stress_level_before: Optional[int] = Field(None, ge=STRESS_LEVEL_MIN, le=STRESS_LEVEL_MAX)
    stress_level_after: Optional[int] = Field(None, ge=STRESS_LEVEL_MIN, le=STRESS_LEVEL_MAX)

    @property
    def stress_reduction(self) -> int:
        if self.stress_level_before is None or self.stress_level_after is None:
            return 0
        return max(0, self.stress_level_before - self.stress_level_after)

    def record_stress_after(self, level: int) -> None:
        """Set the closing stress level; allowed once the session has ended"""
        if not STRESS_LEVEL_MIN <= level <= STRESS_LEVEL_MAX:
            raise ValidationError(
                f"Stress level must be between {STRESS_LEVEL_MIN} and {STRESS_LEVEL_MAX}",
                field="stress_level_after",
                value=level
            )
        if not self.lifecycle.is_terminal:
            raise InvalidTransitionError(
                current_status=self.status.value,
                action="record stress level for",
                user_id=self.user_id
            )
        self.stress_level_after = level

    def _completion_updates(self) -> Dict[str, Any]:
        if self.stress_level_after is None and self.stress_level_before is not None:
            return {"stress_level_after": self.stress_level_before}
        return {}


class StressTechnique(str, Enum):
    DEEP_BREATHING = "deep_breathing"
    PROGRESSIVE_MUSCLE_RELAXATION = "progressive_muscle_relaxation"
    GUIDED_IMAGERY = "guided_imagery"
    MINDFULNESS = "mindfulness"
    BODY_SCAN = "body_scan"
    JOURNALING = "journaling"
    PHYSICAL_EXERCISE = "physical_exercise"
    OTHER = "other"


class SessionFeedback(BaseModel):
    """Post-session feedback on a stress management technique"""
    effectiveness_rating: Optional[int] = Field(None, ge=1, le=5)
    stress_reduction_rating: Optional[int] = Field(None, ge=1, le=5)
    comments: Optional[str] = Field(None, max_length=500)
    improvements: List[str] = Field(default_factory=list)

    @field_validator("comments", mode="before")
    @classmethod
    def _strip_comments(cls, v: Optional[str]) -> Optional[str]:
        if isinstance(v, str):
            return v.strip() or None
        return v

    @field_validator("improvements")
    @classmethod
    def _check_improvements(cls, v: List[str]) -> List[str]:
        return _strip_items(v, 5, 100, "improvement suggestion")

    @property
    def is_empty(self) -> bool:
        return not (
            self.effectiveness_rating
            or self.stress_reduction_rating
            or self.comments
            or self.improvements
        )


def _stress_metrics(session: "StressManagementSession") -> Dict[str, Any]:
    return {
        "stress_level_before": session.stress_level_before,
        "stress_level_after": session.stress_level_after,
        "triggers": list(session.triggers),
    }


class StressManagementSession(StressTrackedSession):
    """A session practising one stress management technique"""

    session_type: ClassVar[str] = "stress_management"
    allow_interruptions: ClassVar[bool] = True
    achievement_strategy: ClassVar[AchievementStrategy] = AchievementStrategy(
        "stress_management",
        metrics=_stress_metrics,
    )

    technique: StressTechnique
    stress_level_before: int = Field(..., ge=STRESS_LEVEL_MIN, le=STRESS_LEVEL_MAX)
    guided_session_id: Optional[str] = None
    triggers: List[str] = Field(default_factory=list)
    physical_symptoms: List[str] = Field(default_factory=list)
    emotional_symptoms: List[str] = Field(default_factory=list)
    effectiveness: Optional[int] = Field(None, ge=1, le=5)
    feedback: Optional[SessionFeedback] = None

    @field_validator("triggers")
    @classmethod
    def _check_triggers(cls, v: List[str]) -> List[str]:
        return _strip_items(v, 5, 100, "trigger")

    @field_validator("physical_symptoms", "emotional_symptoms")
    @classmethod
    def _check_symptoms(cls, v: List[str]) -> List[str]:
        return _strip_items(v, 10, 50, "symptom")

    @property
    def quality_rating(self) -> Optional[int]:
        return self.effectiveness

    @property
    def technique_id(self) -> Optional[str]:
        return self.technique.value

    def add_feedback(self, feedback: SessionFeedback) -> None:
        """
        Attach feedback to a completed session, once

        Raises:
            InvalidTransitionError: session is not completed
            ValidationError: meaningful feedback was already provided
        """
        if self.status != SessionStatus.COMPLETED:
            raise InvalidTransitionError(
                current_status=self.status.value,
                action="add feedback to",
                user_id=self.user_id
            )
        if self.feedback is not None and not self.feedback.is_empty:
            raise ValidationError(
                "Feedback has already been provided for this session",
                field="feedback",
                user_id=self.user_id
            )
        self.feedback = feedback
        logger.info(f"Feedback recorded for stress session {self.id}")
