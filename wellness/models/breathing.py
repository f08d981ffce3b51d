"""Guided breathing sessions and the built-in breathing patterns"""
from datetime import datetime
from types import MappingProxyType
from typing import Any, ClassVar, Mapping, Optional, Union

from pydantic import BaseModel, Field, model_validator

from wellness.exceptions import InvalidTransitionError, ValidationError
from wellness.gamification.hooks import AchievementStrategy
from wellness.models.mood import Mood
from wellness.models.stress import StressTrackedSession


class BreathingPattern(BaseModel):
    """Phase lengths in seconds for one breathing cycle"""
    name: str
    inhale: int = Field(..., ge=1)
    hold: int = Field(0, ge=0)
    exhale: int = Field(..., ge=1)
    post_exhale_hold: int = Field(0, ge=0)
    cycles: int = Field(..., ge=1)

    @property
    def cycle_seconds(self) -> int:
        return self.inhale + self.hold + self.exhale + self.post_exhale_hold

    @property
    def total_seconds(self) -> int:
        return self.cycle_seconds * self.cycles


BREATHING_PATTERNS: Mapping[str, BreathingPattern] = MappingProxyType({
    "4-7-8": BreathingPattern(name="4-7-8", inhale=4, hold=7, exhale=8, cycles=4),
    "BOX_BREATHING": BreathingPattern(
        name="BOX_BREATHING", inhale=4, hold=4, exhale=4, post_exhale_hold=4, cycles=4
    ),
    "QUICK_BREATH": BreathingPattern(name="QUICK_BREATH", inhale=2, exhale=4, cycles=6),
})


def get_breathing_pattern(name: str) -> BreathingPattern:
    """
    Raises:
        ValidationError: unknown pattern name
    """
    pattern = BREATHING_PATTERNS.get(name)
    if pattern is None:
        raise ValidationError(
            f"Invalid breathing pattern '{name}'",
            field="pattern_name",
            value=name
        )
    return pattern


class BreathingSession(StressTrackedSession):
    """A run of one breathing pattern for a target number of cycles"""

    session_type: ClassVar[str] = "breathing"
    achievement_strategy: ClassVar[AchievementStrategy] = AchievementStrategy(
        "breathing",
        qualifier=lambda session: session.completed_cycles > 0,
        metrics=lambda session: {
            "pattern_name": session.pattern_name,
            "target_cycles": session.target_cycles,
            "completed_cycles": session.completed_cycles,
        },
    )

    pattern_name: str
    target_cycles: int = Field(..., ge=1)
    completed_cycles: int = Field(0, ge=0)

    @model_validator(mode="after")
    def _known_pattern(self) -> "BreathingSession":
        if self.pattern_name not in BREATHING_PATTERNS:
            raise ValueError(f"Invalid breathing pattern '{self.pattern_name}'")
        return self

    @classmethod
    def start_breathing_session(
        cls,
        user_id: str,
        pattern_name: str,
        mood_before: Union[Mood, str],
        stress_level_before: Optional[int] = None,
        start_time: Optional[datetime] = None,
        **fields: Any
    ) -> "BreathingSession":
        """Start a session sized from a built-in pattern"""
        pattern = get_breathing_pattern(pattern_name)
        return cls.start(
            user_id,
            start_time=start_time,
            pattern_name=pattern.name,
            target_cycles=pattern.cycles,
            duration=pattern.total_seconds,
            mood_before=mood_before,
            stress_level_before=stress_level_before,
            **fields
        )

    @property
    def pattern(self) -> BreathingPattern:
        return BREATHING_PATTERNS[self.pattern_name]

    @property
    def technique_id(self) -> Optional[str]:
        return self.pattern_name

    def record_cycles(self, completed_cycles: int) -> None:
        """Report how many full cycles the user got through"""
        if completed_cycles < 0:
            raise ValidationError(
                "Completed cycles cannot be negative",
                field="completed_cycles",
                value=completed_cycles
            )
        if self.lifecycle.is_terminal:
            raise InvalidTransitionError(
                current_status=self.status.value,
                action="record cycles for",
                user_id=self.user_id
            )
        self.completed_cycles = completed_cycles
        self.duration_completed = completed_cycles * self.pattern.cycle_seconds
