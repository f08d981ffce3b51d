"""
Wellness session lifecycle

A session holds a SessionLifecycle component by composition. The lifecycle is
the state machine shared by every session type: it owns the status, the
start/end timestamps and the append-only state history. Concrete session
types (meditation, stress management, breathing, PMR) add domain fields and
plug in an AchievementStrategy instead of overriding lifecycle methods.

Transitions:
    active      -> paused | interrupted* | completed | abandoned
    paused      -> active | abandoned
    interrupted -> active | abandoned
    completed, abandoned: terminal

    * only for session types with allow_interruptions
"""
import logging
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, ClassVar, Dict, List, Mapping, Optional, Tuple, Type, TypeVar, Union
from uuid import uuid4

import pydantic
from pydantic import BaseModel, Field, field_validator, model_validator

from wellness import config
from wellness.exceptions import (
    AchievementServiceError,
    InvalidTransitionError,
    NotImplementedBySessionTypeError,
    ValidationError,
)
from wellness.models.mood import Mood, mood_improvement, parse_mood
from wellness.utils.datetime_helpers import elapsed_seconds, ensure_utc, now_utc

if TYPE_CHECKING:
    from wellness.gamification.hooks import AchievementDecisionService, AchievementStrategy

logger = logging.getLogger(__name__)

S = TypeVar("S", bound="WellnessSession")


class SessionStatus(str, Enum):
    """Lifecycle status of a session"""
    ACTIVE = "active"
    PAUSED = "paused"
    INTERRUPTED = "interrupted"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


TERMINAL_STATUSES = frozenset({SessionStatus.COMPLETED, SessionStatus.ABANDONED})

# current status -> {target status: action name}
TRANSITIONS: Mapping[SessionStatus, Mapping[SessionStatus, str]] = MappingProxyType({
    SessionStatus.ACTIVE: MappingProxyType({
        SessionStatus.PAUSED: "pause",
        SessionStatus.INTERRUPTED: "interrupt",
        SessionStatus.COMPLETED: "complete",
        SessionStatus.ABANDONED: "abandon",
    }),
    SessionStatus.PAUSED: MappingProxyType({
        SessionStatus.ACTIVE: "resume",
        SessionStatus.ABANDONED: "abandon",
    }),
    SessionStatus.INTERRUPTED: MappingProxyType({
        SessionStatus.ACTIVE: "resume",
        SessionStatus.ABANDONED: "abandon",
    }),
    SessionStatus.COMPLETED: MappingProxyType({}),
    SessionStatus.ABANDONED: MappingProxyType({}),
})

ACTION_TARGETS: Mapping[str, SessionStatus] = MappingProxyType({
    "pause": SessionStatus.PAUSED,
    "resume": SessionStatus.ACTIVE,
    "interrupt": SessionStatus.INTERRUPTED,
    "complete": SessionStatus.COMPLETED,
    "abandon": SessionStatus.ABANDONED,
})


PROTECTED_FIELDS = frozenset({
    "id", "user_id", "lifecycle", "mood_after", "achievements_pending", "version", "created_at", "updated_at",
})


class StateHistoryEntry(BaseModel):
    """One accepted status change"""
    status: SessionStatus
    timestamp: datetime

    @field_validator("timestamp")
    @classmethod
    def _to_utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class SessionLifecycle(BaseModel):
    """State machine component held by every session"""
    status: SessionStatus = SessionStatus.ACTIVE
    start_time: datetime = Field(default_factory=now_utc)
    end_time: Optional[datetime] = None
    state_history: List[StateHistoryEntry] = Field(default_factory=list)
    allow_interruptions: bool = False

    @field_validator("start_time", "end_time")
    @classmethod
    def _to_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    @model_validator(mode="after")
    def _check_consistency(self) -> "SessionLifecycle":
        if not self.state_history:
            self.state_history.append(
                StateHistoryEntry(status=self.status, timestamp=self.start_time)
            )

        if self.status == SessionStatus.INTERRUPTED and not self.allow_interruptions:
            raise ValueError("interrupted status is not supported by this session type")

        stamps = [entry.timestamp for entry in self.state_history]
        if any(later < earlier for earlier, later in zip(stamps, stamps[1:])):
            raise ValueError("State history must be in chronological order")

        if self.end_time is not None:
            if self.end_time < self.start_time:
                raise ValueError("End time must not be before start time")
            if self.status not in TERMINAL_STATUSES:
                raise ValueError("end_time is only set when a session is completed or abandoned")
        elif self.status in TERMINAL_STATUSES:
            # Terminal record without an end time: close it at its last transition
            self.end_time = self.state_history[-1].timestamp
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def can_transition_to(self, target: Union[SessionStatus, str]) -> bool:
        """Whether the transition table allows moving to target from the current status"""
        try:
            target = SessionStatus(target)
        except ValueError:
            return False
        if target == SessionStatus.INTERRUPTED and not self.allow_interruptions:
            return False
        return target in TRANSITIONS[self.status]

    def transition(self, action: str, at: Optional[datetime] = None) -> StateHistoryEntry:
        """
        Apply a named transition

        Every check happens before the first assignment, so a rejected
        transition leaves status, end_time and history untouched.

        Raises:
            InvalidTransitionError: action not allowed from the current status
            ValidationError: terminal transition timestamped before start_time,
                or any transition timestamped before the previous one
        """
        target = ACTION_TARGETS.get(action)
        if target is None or not self.can_transition_to(target):
            raise InvalidTransitionError(current_status=self.status.value, action=action)

        at = ensure_utc(at) or now_utc()
        if target in TERMINAL_STATUSES and at < self.start_time:
            raise ValidationError(
                "End time must not be before start time",
                field="end_time",
                value=at.isoformat(),
            )
        previous = self.state_history[-1].timestamp
        if at < previous:
            raise ValidationError(
                f"Transition time must not be before the previous transition at {previous.isoformat()}",
                field="timestamp",
                value=at.isoformat(),
            )

        entry = StateHistoryEntry(status=target, timestamp=at)
        self.status = target
        if target in TERMINAL_STATUSES:
            self.end_time = at
        self.state_history.append(entry)
        return entry

    def get_actual_duration(self, now: Optional[datetime] = None) -> int:
        """Seconds from start to end (or to now while still running), floor-rounded"""
        end = self.end_time or ensure_utc(now) or now_utc()
        return elapsed_seconds(self.start_time, end)


class WellnessSession(BaseModel):
    """
    Base record for one timed attempt at a wellness activity

    Subclasses set the class-level knobs:
        session_type: identifier used in payloads and storage
        max_duration: ceiling for the planned duration, in seconds
        allow_interruptions: whether interrupt() is part of the lifecycle
        overwrite_duration_on_complete: replace planned duration with the actual one
        achievement_strategy: qualification + payload builder for the achievement hook
    """

    session_type: ClassVar[str] = "wellness"
    max_duration: ClassVar[int] = config.MAX_SESSION_DURATION_SECONDS
    allow_interruptions: ClassVar[bool] = False
    overwrite_duration_on_complete: ClassVar[bool] = False
    achievement_strategy: ClassVar[Optional["AchievementStrategy"]] = None

    id: str = Field(default_factory=lambda: str(uuid4()))
    user_id: str = Field(..., min_length=1)
    lifecycle: SessionLifecycle = Field(default_factory=SessionLifecycle)
    duration: int = Field(..., description="Planned duration in seconds")
    mood_before: Mood
    mood_after: Optional[Mood] = None
    notes: Optional[str] = Field(None, max_length=1000)
    duration_completed: int = Field(0, ge=0, description="Seconds actually engaged, may exceed duration")
    interruptions: int = Field(0, ge=0)
    achievements_pending: bool = False
    version: int = Field(0, ge=0)
    created_at: datetime = Field(default_factory=now_utc)
    updated_at: datetime = Field(default_factory=now_utc)

    @field_validator("user_id")
    @classmethod
    def _strip_user_id(cls, v: str) -> str:
        return v.strip()

    @field_validator("duration")
    @classmethod
    def _check_duration(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Session duration must be at least 1 second")
        if v > cls.max_duration:
            raise ValueError(f"Session duration cannot exceed {cls.max_duration} seconds")
        return v

    @field_validator("mood_before", "mood_after", mode="before")
    @classmethod
    def _parse_mood(cls, v: Any) -> Any:
        if v is None:
            return v
        return parse_mood(v)

    @field_validator("notes", mode="before")
    @classmethod
    def _strip_notes(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @model_validator(mode="after")
    def _sync_lifecycle(self) -> "WellnessSession":
        allowed = type(self).allow_interruptions
        if self.lifecycle.status == SessionStatus.INTERRUPTED and not allowed:
            raise ValueError(f"{self.session_type} sessions cannot be interrupted")
        self.lifecycle.allow_interruptions = allowed
        if self.mood_after is not None and self.lifecycle.status != SessionStatus.COMPLETED:
            raise ValueError("mood_after is only recorded on completed sessions")
        return self

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def start(cls: Type[S], user_id: str, start_time: Optional[datetime] = None, **fields: Any) -> S:
        """
        Create a new Active session

        Raises:
            ValidationError: if any field violates its constraints
        """
        lifecycle = SessionLifecycle(start_time=ensure_utc(start_time) or now_utc())
        session = cls.from_fields(user_id=user_id, lifecycle=lifecycle, **fields)
        logger.info(
            f"Started {cls.session_type} session {session.id} for user {user_id} "
            f"(planned {session.duration}s)"
        )
        return session

    @classmethod
    def from_fields(cls: Type[S], **fields: Any) -> S:
        """Validate raw fields, translating pydantic errors into ValidationError"""
        try:
            return cls.model_validate(fields)
        except pydantic.ValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(part) for part in first.get("loc", ())) or None
            raise ValidationError(
                first.get("msg", str(e)),
                field=field,
                value=first.get("input") if isinstance(first.get("input"), (str, int, float)) else None,
                cause=e,
            ) from e

    def with_updates(self: S, **fields: Any) -> S:
        """
        Validated copy with domain fields replaced

        Lifecycle, identity and bookkeeping fields only change through
        transitions and the store, so they are rejected here.
        """
        protected = PROTECTED_FIELDS & fields.keys()
        if protected:
            raise ValidationError(
                f"Cannot update {', '.join(sorted(protected))} directly",
                field=sorted(protected)[0],
                user_id=self.user_id
            )
        updated = type(self).from_fields(**{**self.model_dump(), **fields})
        updated.version = self.version
        return updated

    # ------------------------------------------------------------------
    # Lifecycle views
    # ------------------------------------------------------------------

    @property
    def status(self) -> SessionStatus:
        return self.lifecycle.status

    @property
    def start_time(self) -> datetime:
        return self.lifecycle.start_time

    @property
    def end_time(self) -> Optional[datetime]:
        return self.lifecycle.end_time

    @property
    def state_history(self) -> Tuple[StateHistoryEntry, ...]:
        return tuple(self.lifecycle.state_history)

    @property
    def is_completed(self) -> bool:
        return self.lifecycle.status == SessionStatus.COMPLETED

    @property
    def duration_minutes(self) -> int:
        return round(self.duration / 60)

    @property
    def completion_percentage(self) -> int:
        if not self.duration:
            return 0
        return max(0, min(100, round(100 * self.duration_completed / self.duration)))

    @property
    def quality_rating(self) -> Optional[int]:
        """Quality signal on a 1-5 scale, if the session type records one"""
        return None

    @property
    def technique_id(self) -> Optional[str]:
        """Technique identifier forwarded with achievement payloads"""
        return None

    @property
    def stress_reduction(self) -> int:
        return 0

    @property
    def mood_delta(self) -> int:
        if self.mood_before is None or self.mood_after is None:
            return 0
        return mood_improvement(self.mood_before, self.mood_after)

    def can_transition_to(self, status: Union[SessionStatus, str]) -> bool:
        return self.lifecycle.can_transition_to(status)

    def get_actual_duration(self, now: Optional[datetime] = None) -> int:
        return self.lifecycle.get_actual_duration(now)

    def is_streak_eligible(self, policy: Optional[str] = None) -> bool:
        """Whether this session counts toward a streak under the named policy"""
        from wellness.gamification.eligibility import get_streak_policy

        return get_streak_policy(policy).is_eligible(self)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def pause(self, at: Optional[datetime] = None) -> None:
        self._transition("pause", at)

    def resume(self, at: Optional[datetime] = None) -> None:
        self._transition("resume", at)

    def interrupt(self, at: Optional[datetime] = None) -> None:
        self._transition("interrupt", at)
        self.interruptions += 1

    def abandon(self, at: Optional[datetime] = None) -> None:
        self._transition("abandon", at)

    def complete(self, mood_after: Optional[Union[Mood, str]] = None, at: Optional[datetime] = None) -> None:
        """
        Move to completed, record the closing mood and mark achievements pending

        The achievement hook itself is async; the caller (normally
        SessionService) awaits process_achievements() after persisting.
        """
        parsed_mood = parse_mood(mood_after) if mood_after is not None else None
        completion = self._completion_updates()
        at = ensure_utc(at) or now_utc()
        measured = self._measured_duration(at)

        self._transition("complete", at)

        if parsed_mood is not None:
            self.mood_after = parsed_mood
        if measured is not None:
            self.duration = measured
        for name, value in completion.items():
            setattr(self, name, value)
        self.achievements_pending = True

    def _completion_updates(self) -> Dict[str, Any]:
        """Field defaults a session type fills in on completion"""
        return {}

    def _measured_duration(self, end: datetime) -> Optional[int]:
        """
        Duration to store on completion, or None to keep the planned one

        Elapsed time includes pauses, so it is capped at max_duration to keep
        the stored document loadable.
        """
        if not type(self).overwrite_duration_on_complete:
            return None
        actual = elapsed_seconds(self.start_time, end)
        if actual <= 0:
            return None
        if actual > type(self).max_duration:
            logger.info(
                f"{self.session_type} session {self.id} ran {actual}s, "
                f"recording the {type(self).max_duration}s maximum"
            )
        return min(actual, type(self).max_duration)

    def _transition(self, action: str, at: Optional[datetime]) -> None:
        try:
            entry = self.lifecycle.transition(action, at)
        except InvalidTransitionError as e:
            e.user_id = self.user_id
            e.context["session_id"] = self.id
            raise
        self.updated_at = entry.timestamp
        logger.info(
            f"{self.session_type} session {self.id} for user {self.user_id}: "
            f"{action} -> {entry.status.value}"
        )

    # ------------------------------------------------------------------
    # Achievement hook
    # ------------------------------------------------------------------

    async def process_achievements(self, service: "AchievementDecisionService") -> bool:
        """
        Forward this session to the achievement decision service

        No-op (returns False) when nothing is pending or the session type's
        qualification is not met. Clears the pending flag only after a
        successful forward so a failed call can be retried.

        Raises:
            NotImplementedBySessionTypeError: session type has no strategy
            AchievementServiceError: the downstream call failed
        """
        strategy = type(self).achievement_strategy
        if strategy is None:
            raise NotImplementedBySessionTypeError(self.session_type, user_id=self.user_id)

        if not self.achievements_pending:
            logger.debug(f"No pending achievements for session {self.id}")
            return False

        if not strategy.qualifies(self):
            logger.debug(f"Session {self.id} does not qualify for {strategy.session_type} achievements")
            self.achievements_pending = False
            return False

        payload = strategy.build_payload(self)
        try:
            await service.process_achievements(payload)
        except AchievementServiceError:
            raise
        except Exception as e:
            raise AchievementServiceError(
                f"Achievement processing failed for session {self.id}: {e}",
                session_id=self.id,
                user_id=self.user_id,
                operation="process_achievements",
                cause=e,
            ) from e

        self.achievements_pending = False
        logger.info(f"Forwarded {strategy.session_type} achievements for session {self.id}")
        return True

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    def to_document(self) -> Dict[str, Any]:
        """JSON-safe document for the store; version lives in its own column"""
        return self.model_dump(mode="json", exclude={"version"})
