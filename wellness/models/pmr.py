"""Progressive muscle relaxation (PMR) sessions"""
import logging
from datetime import datetime
from typing import Any, ClassVar, List, Optional, Tuple, Union

from pydantic import BaseModel, Field, field_validator

from wellness.exceptions import InvalidTransitionError, ValidationError
from wellness.gamification.hooks import AchievementStrategy
from wellness.models.mood import Mood
from wellness.models.stress import StressTrackedSession

logger = logging.getLogger(__name__)


class MuscleGroup(BaseModel):
    name: str
    description: str
    order: int
    duration_seconds: int = Field(..., ge=1)


MUSCLE_GROUPS: Tuple[MuscleGroup, ...] = (
    MuscleGroup(name="hands_and_forearms", description="Clench your fists and flex your forearms",
                order=1, duration_seconds=30),
    MuscleGroup(name="biceps", description="Tense your biceps by pulling your forearms up toward your shoulders",
                order=2, duration_seconds=30),
    MuscleGroup(name="shoulders", description="Raise your shoulders toward your ears",
                order=3, duration_seconds=30),
    MuscleGroup(name="face", description="Scrunch your facial muscles, including forehead, eyes, and jaw",
                order=4, duration_seconds=30),
    MuscleGroup(name="chest_and_back", description="Take a deep breath and tighten your chest and upper back muscles",
                order=5, duration_seconds=30),
    MuscleGroup(name="abdomen", description="Tighten your abdominal muscles",
                order=6, duration_seconds=30),
    MuscleGroup(name="legs", description="Tense your thighs, calves, and feet",
                order=7, duration_seconds=45),
)

MUSCLE_GROUP_DURATIONS = {group.name: group.duration_seconds for group in MUSCLE_GROUPS}
PMR_TOTAL_SECONDS = sum(MUSCLE_GROUP_DURATIONS.values())


class PMRSession(StressTrackedSession):
    """Tense-and-release through the muscle groups in order"""

    session_type: ClassVar[str] = "pmr"
    achievement_strategy: ClassVar[AchievementStrategy] = AchievementStrategy(
        "pmr",
        qualifier=lambda session: len(session.completed_groups) > 0,
        metrics=lambda session: {
            "completed_groups": list(session.completed_groups),
            "total_groups": len(MUSCLE_GROUPS),
        },
    )

    completed_groups: List[str] = Field(default_factory=list)

    @field_validator("completed_groups")
    @classmethod
    def _check_groups(cls, v: List[str]) -> List[str]:
        unknown = [name for name in v if name not in MUSCLE_GROUP_DURATIONS]
        if unknown:
            raise ValueError(f"Invalid muscle group name: {', '.join(unknown)}")
        if len(set(v)) != len(v):
            raise ValueError("Muscle groups can only be completed once")
        return v

    @classmethod
    def start_pmr_session(
        cls,
        user_id: str,
        mood_before: Union[Mood, str],
        stress_level_before: Optional[int] = None,
        start_time: Optional[datetime] = None,
        **fields: Any
    ) -> "PMRSession":
        return cls.start(
            user_id,
            start_time=start_time,
            duration=PMR_TOTAL_SECONDS,
            mood_before=mood_before,
            stress_level_before=stress_level_before,
            **fields
        )

    @property
    def technique_id(self) -> Optional[str]:
        return "progressive_muscle_relaxation"

    def complete_muscle_group(self, name: str) -> None:
        """
        Mark one muscle group done

        Raises:
            ValidationError: unknown or already completed group
            InvalidTransitionError: session already ended
        """
        if name not in MUSCLE_GROUP_DURATIONS:
            raise ValidationError("Invalid muscle group name", field="completed_groups", value=name)
        if name in self.completed_groups:
            raise ValidationError("Muscle group already completed", field="completed_groups", value=name)
        if self.lifecycle.is_terminal:
            raise InvalidTransitionError(
                current_status=self.status.value,
                action="update muscle groups for",
                user_id=self.user_id
            )
        self.completed_groups.append(name)
        self.duration_completed += MUSCLE_GROUP_DURATIONS[name]
        logger.debug(f"PMR session {self.id}: {name} done ({len(self.completed_groups)}/{len(MUSCLE_GROUPS)})")
