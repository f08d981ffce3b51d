"""
SessionService - Wellness Session Business Logic

Every mutation is one read-modify-write of the session document guarded by
its version: load, check ownership, apply the transition on the model, write
with `WHERE version = expected`. A lost race raises
ConcurrentModificationError and is not retried here, because whether the
transition is still legal depends on the state the other writer left.

Completing a session commits the transition first, then forwards the
achievement payload. A forward failure never undoes the completion; it comes
back inside TransitionResult.achievement_error.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Type, Union

from wellness.db.queries import sessions as session_queries
from wellness.exceptions import (
    AchievementServiceError,
    AuthorizationError,
    ConcurrentModificationError,
    RecordNotFoundError,
    ValidationError,
)
from wellness.gamification.hooks import AchievementDecisionService
from wellness.models.breathing import BreathingSession
from wellness.models.meditation import MeditationSession
from wellness.models.mood import Mood
from wellness.models.pmr import PMRSession
from wellness.models.session import WellnessSession
from wellness.models.stress import SessionFeedback, StressManagementSession, StressTrackedSession
from wellness.resilience.metrics import record_session_transition

logger = logging.getLogger(__name__)

SESSION_TYPES: Mapping[str, Type[WellnessSession]] = MappingProxyType({
    cls.session_type: cls
    for cls in (MeditationSession, StressManagementSession, BreathingSession, PMRSession)
})


@dataclass
class TransitionResult:
    """Committed session plus the non-fatal outcome of the achievement forward"""
    session: WellnessSession
    achievements_forwarded: bool = False
    achievement_error: Optional[AchievementServiceError] = None

    @property
    def ok(self) -> bool:
        return self.achievement_error is None


def get_session_class(session_type: str) -> Type[WellnessSession]:
    """
    Raises:
        ValidationError: unknown session type
    """
    cls = SESSION_TYPES.get(session_type)
    if cls is None:
        raise ValidationError(
            f"Unknown session type '{session_type}'",
            field="session_type",
            value=session_type
        )
    return cls


def session_from_row(row: dict) -> WellnessSession:
    """
    Rebuild a session model from its stored row

    Raises:
        ValidationError: unknown type or a document that no longer validates
    """
    cls = get_session_class(row["session_type"])
    return cls.from_fields(**{**row["document"], "version": row["version"]})


class SessionService:
    """
    Service for wellness sessions.

    Responsibilities:
    - Starting sessions of each type
    - Lifecycle transitions with optimistic concurrency
    - Dispatching the achievement hook after completion
    - Soft delete and listing
    """

    def __init__(self, achievement_service: Optional[AchievementDecisionService] = None):
        """
        Args:
            achievement_service: Decision service to forward completions to;
                defaults to the HTTP client configured from the environment
        """
        if achievement_service is None:
            from wellness.services.achievement_client import AchievementDecisionClient
            achievement_service = AchievementDecisionClient()
        self.achievement_service = achievement_service
        logger.debug("SessionService initialized")

    # ==========================================
    # Start
    # ==========================================

    async def start_session(self, session_type: str, user_id: str, **fields: Any) -> WellnessSession:
        """
        Start and persist a session of any registered type

        Raises:
            ValidationError: unknown type or invalid fields
        """
        cls = get_session_class(session_type)
        session = cls.start(user_id, **fields)
        await session_queries.insert_session(session)
        return session

    async def start_breathing_session(
        self,
        user_id: str,
        pattern_name: str,
        mood_before: Union[Mood, str],
        stress_level_before: Optional[int] = None,
        **fields: Any
    ) -> BreathingSession:
        session = BreathingSession.start_breathing_session(
            user_id, pattern_name, mood_before, stress_level_before, **fields
        )
        await session_queries.insert_session(session)
        return session

    async def start_pmr_session(
        self,
        user_id: str,
        mood_before: Union[Mood, str],
        stress_level_before: Optional[int] = None,
        **fields: Any
    ) -> PMRSession:
        session = PMRSession.start_pmr_session(user_id, mood_before, stress_level_before, **fields)
        await session_queries.insert_session(session)
        return session

    # ==========================================
    # Read
    # ==========================================

    async def get_session(self, session_id: str, user_id: str) -> WellnessSession:
        """
        Load a session owned by user_id

        Raises:
            RecordNotFoundError: missing or soft-deleted
            AuthorizationError: owned by someone else
        """
        row = await session_queries.get_session(session_id)
        if not row:
            raise RecordNotFoundError(
                f"Session {session_id} not found",
                record_type="Session",
                record_id=session_id,
                user_id=user_id
            )
        if row["user_id"] != user_id:
            raise AuthorizationError(
                f"User {user_id} does not own session {session_id}",
                resource="this session",
                user_id=user_id
            )
        return session_from_row(row)

    async def list_sessions(
        self,
        user_id: str,
        session_type: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 20,
        offset: int = 0
    ) -> List[WellnessSession]:
        """User's sessions, newest first"""
        if session_type:
            get_session_class(session_type)
        rows = await session_queries.list_user_sessions(user_id, session_type, status, limit, offset)
        return [session_from_row(row) for row in rows]

    # ==========================================
    # Transitions
    # ==========================================

    async def pause_session(self, session_id: str, user_id: str, at: Optional[datetime] = None) -> WellnessSession:
        return await self._transition(session_id, user_id, "pause", lambda s: s.pause(at))

    async def resume_session(self, session_id: str, user_id: str, at: Optional[datetime] = None) -> WellnessSession:
        return await self._transition(session_id, user_id, "resume", lambda s: s.resume(at))

    async def interrupt_session(
        self, session_id: str, user_id: str, at: Optional[datetime] = None
    ) -> WellnessSession:
        return await self._transition(session_id, user_id, "interrupt", lambda s: s.interrupt(at))

    async def abandon_session(self, session_id: str, user_id: str, at: Optional[datetime] = None) -> WellnessSession:
        return await self._transition(session_id, user_id, "abandon", lambda s: s.abandon(at))

    async def complete_session(
        self,
        session_id: str,
        user_id: str,
        mood_after: Optional[Union[Mood, str]] = None,
        at: Optional[datetime] = None,
        **fields: Any
    ) -> TransitionResult:
        """
        Complete a session and forward it for achievements

        Args:
            mood_after: Closing mood
            at: Completion time (defaults to now)
            **fields: Final domain fields to record with the completion,
                e.g. duration_completed, focus_rating, stress_level_after

        Returns:
            TransitionResult; achievement_error is set if the forward failed

        Raises:
            InvalidTransitionError, ValidationError, ConcurrentModificationError:
                the completion itself was rejected and nothing was written
        """
        def apply(session: WellnessSession) -> WellnessSession:
            if fields:
                session = session.with_updates(**fields)
            session.complete(mood_after, at)
            return session

        session = await self._transition(session_id, user_id, "complete", apply)
        return await self._dispatch_achievements(session)

    async def retry_achievements(self, session_id: str, user_id: str) -> TransitionResult:
        """Re-send a completed session whose achievement forward failed"""
        session = await self.get_session(session_id, user_id)
        return await self._dispatch_achievements(session)

    async def retry_pending_achievements(self, limit: int = 100) -> int:
        """
        Sweep completed sessions still flagged as pending

        Returns:
            Number of sessions forwarded successfully
        """
        rows = await session_queries.list_pending_achievement_sessions(limit)
        forwarded = 0
        for row in rows:
            try:
                session = session_from_row(row)
            except ValidationError as e:
                logger.error(f"Skipping unreadable session {row.get('id')} in achievement sweep: {e.message}")
                continue
            result = await self._dispatch_achievements(session)
            if result.achievements_forwarded:
                forwarded += 1
        logger.info(f"Achievement retry sweep: {forwarded}/{len(rows)} sessions forwarded")
        return forwarded

    # ==========================================
    # Type-specific updates
    # ==========================================

    async def add_feedback(
        self,
        session_id: str,
        user_id: str,
        feedback: Union[SessionFeedback, Dict[str, Any]]
    ) -> StressManagementSession:
        if isinstance(feedback, dict):
            feedback = SessionFeedback.model_validate(feedback)
        return await self._mutate(
            session_id, user_id, "add_feedback",
            lambda s: self._require(s, StressManagementSession).add_feedback(feedback)
        )

    async def record_stress_after(self, session_id: str, user_id: str, level: int) -> StressTrackedSession:
        """Record the closing stress level on an ended stress-tracked session"""
        return await self._mutate(
            session_id, user_id, "record_stress_after",
            lambda s: self._require(s, StressTrackedSession).record_stress_after(level)
        )

    async def record_breathing_cycles(self, session_id: str, user_id: str, completed_cycles: int) -> BreathingSession:
        return await self._mutate(
            session_id, user_id, "record_cycles",
            lambda s: self._require(s, BreathingSession).record_cycles(completed_cycles)
        )

    async def complete_muscle_group(self, session_id: str, user_id: str, group: str) -> PMRSession:
        return await self._mutate(
            session_id, user_id, "complete_muscle_group",
            lambda s: self._require(s, PMRSession).complete_muscle_group(group)
        )

    # ==========================================
    # Delete
    # ==========================================

    async def delete_session(self, session_id: str, user_id: str) -> bool:
        """Soft-delete a session owned by user_id"""
        await self.get_session(session_id, user_id)
        deleted = await session_queries.soft_delete_session(session_id, user_id)
        if deleted:
            logger.info(f"Deleted session {session_id} for user {user_id}")
        return deleted

    # ==========================================
    # Internals
    # ==========================================

    @staticmethod
    def _require(session: WellnessSession, cls: Type[WellnessSession]) -> Any:
        if not isinstance(session, cls):
            raise ValidationError(
                f"Operation requires a {cls.session_type} session, got {session.session_type}",
                field="session_type",
                value=session.session_type,
                user_id=session.user_id
            )
        return session

    async def _mutate(
        self,
        session_id: str,
        user_id: str,
        operation: str,
        apply: Callable[[WellnessSession], Any]
    ) -> WellnessSession:
        """Load, apply an in-place change, write back at the read version"""
        session = await self.get_session(session_id, user_id)
        expected_version = session.version
        apply(session)
        session.version = await session_queries.update_session(session, expected_version)
        logger.debug(f"{operation} on session {session_id} saved at version {session.version}")
        return session

    async def _transition(
        self,
        session_id: str,
        user_id: str,
        action: str,
        apply: Callable[[WellnessSession], Optional[WellnessSession]]
    ) -> WellnessSession:
        session = await self.get_session(session_id, user_id)
        expected_version = session.version
        # apply may return a replacement (validated copy) or mutate in place
        session = apply(session) or session
        session.version = await session_queries.update_session(session, expected_version)
        record_session_transition(session.session_type, action)
        return session

    async def _dispatch_achievements(self, session: WellnessSession) -> TransitionResult:
        was_pending = session.achievements_pending
        try:
            forwarded = await session.process_achievements(self.achievement_service)
        except AchievementServiceError as e:
            logger.warning(f"Achievements for session {session.id} left pending: {e.message}")
            return TransitionResult(session=session, achievement_error=e)

        if was_pending and not session.achievements_pending:
            try:
                session.version = await session_queries.update_session(session, session.version)
            except ConcurrentModificationError as e:
                logger.warning(
                    f"Could not clear pending achievements on session {session.id}; "
                    f"a retry may forward it again: {e.message}"
                )
        return TransitionResult(session=session, achievements_forwarded=forwarded)
