"""Mood scale shared by all session types"""
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Union

from wellness.exceptions import ValidationError


class ValenceMood(str, Enum):
    """Mood on a negative-to-positive axis"""
    VERY_NEGATIVE = "very_negative"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"
    POSITIVE = "positive"
    VERY_POSITIVE = "very_positive"


class WellnessMood(str, Enum):
    """Mood on a stressed-to-peaceful axis"""
    STRESSED = "stressed"
    ANXIOUS = "anxious"
    NEUTRAL = "neutral"
    CALM = "calm"
    PEACEFUL = "peaceful"
    ENERGIZED = "energized"


Mood = Union[ValenceMood, WellnessMood]

MOOD_SCALE_MIN = 1
MOOD_SCALE_MAX = 5

# Both families collapse onto the same 1-5 scale by position
MOOD_VALUES: Mapping[str, int] = MappingProxyType({
    ValenceMood.VERY_NEGATIVE.value: 1,
    ValenceMood.NEGATIVE.value: 2,
    ValenceMood.NEUTRAL.value: 3,
    ValenceMood.POSITIVE.value: 4,
    ValenceMood.VERY_POSITIVE.value: 5,
    WellnessMood.STRESSED.value: 1,
    WellnessMood.ANXIOUS.value: 2,
    WellnessMood.CALM.value: 4,
    WellnessMood.PEACEFUL.value: 5,
    WellnessMood.ENERGIZED.value: 5,
})


def parse_mood(mood: Union[Mood, str]) -> Mood:
    """
    Coerce a mood name into its enum member

    Raises:
        ValidationError: if the name belongs to neither family
    """
    if isinstance(mood, (ValenceMood, WellnessMood)):
        return mood
    value = str(mood).strip().lower()
    for family in (WellnessMood, ValenceMood):
        try:
            return family(value)
        except ValueError:
            continue
    raise ValidationError(
        f"Unknown mood '{mood}'",
        field="mood",
        value=mood
    )


def mood_value(mood: Union[Mood, str]) -> int:
    """Position of a mood on the 1-5 scale"""
    return MOOD_VALUES[parse_mood(mood).value]


def mood_improvement(before: Union[Mood, str], after: Union[Mood, str]) -> int:
    """
    Change in mood from before to after

    Negative when mood got worse; callers wanting a non-negative metric clamp it.
    """
    return mood_value(after) - mood_value(before)
