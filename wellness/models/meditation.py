"""Meditation sessions"""
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional

from pydantic import Field, field_validator, model_validator

from wellness.gamification.hooks import AchievementStrategy
from wellness.models.session import WellnessSession


class MeditationKind(str, Enum):
    GUIDED = "guided"
    UNGUIDED = "unguided"
    TIMED = "timed"


MAX_TAG_LENGTH = 30


def _meditation_metrics(session: "MeditationSession") -> Dict[str, Any]:
    return {
        "meditation_id": session.meditation_id or session.guided_meditation_id,
        "kind": session.kind.value,
        "tags": list(session.tags),
    }


class MeditationSession(WellnessSession):
    """
    A single sitting of guided, unguided or timed meditation

    On completion the planned duration is replaced by the measured one,
    capped at max_duration.
    """

    session_type: ClassVar[str] = "meditation"
    overwrite_duration_on_complete: ClassVar[bool] = True
    achievement_strategy: ClassVar[AchievementStrategy] = AchievementStrategy(
        "meditation",
        use_planned_duration=True,
        metrics=_meditation_metrics,
    )

    title: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    kind: MeditationKind
    guided_meditation_id: Optional[str] = None
    meditation_id: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    focus_rating: Optional[int] = Field(None, ge=1, le=5)
    streak_day: int = Field(0, ge=0)

    @field_validator("title", "description", mode="before")
    @classmethod
    def _strip(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if isinstance(v, str) else v

    @field_validator("tags")
    @classmethod
    def _check_tags(cls, v: List[str]) -> List[str]:
        tags = [tag.strip() for tag in v if tag and tag.strip()]
        for tag in tags:
            if len(tag) > MAX_TAG_LENGTH:
                raise ValueError(f"Tag cannot be more than {MAX_TAG_LENGTH} characters")
        return tags

    @model_validator(mode="after")
    def _guided_needs_reference(self) -> "MeditationSession":
        if self.kind == MeditationKind.GUIDED and not self.guided_meditation_id:
            raise ValueError("Guided meditation ID is required for guided sessions")
        return self

    @property
    def quality_rating(self) -> Optional[int]:
        return self.focus_rating

    @property
    def technique_id(self) -> Optional[str]:
        return self.kind.value
