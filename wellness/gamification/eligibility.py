"""
Streak eligibility policies

A policy decides whether a completed session counts toward the user's
consecutive-activity streak. Policies are read-only: they never touch
UserPoints.streaks; crediting streaks is left to the achievement decision
service, which receives every policy's verdict in the payload.

Policies:
- completion_ratio: completed and at least 80% of the planned time engaged
- completion_and_quality: the above plus a quality rating of at least 3
"""
import logging
from types import MappingProxyType
from typing import Dict, Mapping, Optional

from wellness import config
from wellness.exceptions import ValidationError
from wellness.models.session import SessionStatus, WellnessSession

logger = logging.getLogger(__name__)

MIN_COMPLETION_PERCENTAGE = 80
MIN_QUALITY_RATING = 3


class StreakEligibilityPolicy:
    """Base policy: subclasses implement is_eligible()"""

    name: str = ""

    def is_eligible(self, session: WellnessSession) -> bool:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.name}>"


class CompletionRatioPolicy(StreakEligibilityPolicy):
    name = "completion_ratio"

    def __init__(self, min_completion: int = MIN_COMPLETION_PERCENTAGE):
        self.min_completion = min_completion

    def is_eligible(self, session: WellnessSession) -> bool:
        return (
            session.status == SessionStatus.COMPLETED
            and session.completion_percentage >= self.min_completion
        )


class CompletionAndQualityPolicy(CompletionRatioPolicy):
    name = "completion_and_quality"

    def __init__(
        self,
        min_completion: int = MIN_COMPLETION_PERCENTAGE,
        min_quality: int = MIN_QUALITY_RATING
    ):
        super().__init__(min_completion)
        self.min_quality = min_quality

    def is_eligible(self, session: WellnessSession) -> bool:
        if not super().is_eligible(session):
            return False
        rating = session.quality_rating
        return rating is not None and rating >= self.min_quality


STREAK_POLICIES: Mapping[str, StreakEligibilityPolicy] = MappingProxyType({
    CompletionRatioPolicy.name: CompletionRatioPolicy(),
    CompletionAndQualityPolicy.name: CompletionAndQualityPolicy(),
})


def get_streak_policy(name: Optional[str] = None) -> StreakEligibilityPolicy:
    """
    Look up a policy by name, defaulting to the configured STREAK_POLICY

    Raises:
        ValidationError: unknown policy name
    """
    name = name or config.STREAK_POLICY
    policy = STREAK_POLICIES.get(name)
    if policy is None:
        raise ValidationError(
            f"Unknown streak policy '{name}'",
            field="streak_policy",
            value=name
        )
    return policy


def evaluate_all(session: WellnessSession) -> Dict[str, bool]:
    """Verdict of every named policy for one session"""
    return {name: policy.is_eligible(session) for name, policy in STREAK_POLICIES.items()}
