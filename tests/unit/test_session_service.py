"""Unit tests for SessionService"""
import pytest
from datetime import timedelta
from unittest.mock import AsyncMock, patch

from wellness.exceptions import (
    AchievementServiceError,
    AuthorizationError,
    ConcurrentModificationError,
    InvalidTransitionError,
    RecordNotFoundError,
    ValidationError,
)
from wellness.models.breathing import BreathingSession
from wellness.models.meditation import MeditationSession
from wellness.models.pmr import PMRSession
from wellness.models.session import SessionStatus
from wellness.services.session_service import (
    SESSION_TYPES,
    SessionService,
    get_session_class,
    session_from_row,
)


QUERIES = "wellness.services.session_service.session_queries"


@pytest.fixture
def service(achievement_service):
    return SessionService(achievement_service=achievement_service)


def _conflict(session_id):
    return ConcurrentModificationError(
        "conflict", record_type="session", record_id=session_id, expected_version=0
    )


# ============================================================================
# Registry
# ============================================================================

class TestSessionRegistry:
    """Session type lookup and row decoding"""

    def test_registered_types(self):
        """Test all four session types are registered"""
        assert set(SESSION_TYPES) == {"meditation", "stress_management", "breathing", "pmr"}

    def test_unknown_type(self):
        """Test unknown session types raise ValidationError"""
        with pytest.raises(ValidationError):
            get_session_class("yoga")

    def test_row_round_trip(self, completed_meditation, as_session_row):
        """Test rows rebuild the right subclass with the column version"""
        session = session_from_row(as_session_row(completed_meditation, 7))
        assert isinstance(session, MeditationSession)
        assert session.version == 7
        assert session.status == SessionStatus.COMPLETED
        assert session.achievements_pending is True

    def test_unreadable_row_raises_validation_error(self, completed_meditation, as_session_row):
        """Test a stored document that no longer validates raises the project ValidationError"""
        row = as_session_row(completed_meditation, 2)
        row["document"]["duration"] = 10800

        with pytest.raises(ValidationError) as exc_info:
            session_from_row(row)
        assert exc_info.value.field == "duration"


# ============================================================================
# Start / read
# ============================================================================

class TestStartAndRead:
    """Starting, loading and ownership"""

    @pytest.mark.asyncio
    async def test_start_session(self, service, test_user_id, start_time):
        """Test a started session is inserted"""
        with patch(f"{QUERIES}.insert_session", new=AsyncMock()) as mock_insert:
            session = await service.start_session(
                "meditation", test_user_id,
                title="Lunch break", kind="timed", duration=300, mood_before="neutral", start_time=start_time
            )

        assert isinstance(session, MeditationSession)
        assert session.status == SessionStatus.ACTIVE
        mock_insert.assert_awaited_once_with(session)

    @pytest.mark.asyncio
    async def test_start_invalid_not_inserted(self, service, test_user_id):
        """Test validation failures never reach the store"""
        with patch(f"{QUERIES}.insert_session", new=AsyncMock()) as mock_insert:
            with pytest.raises(ValidationError):
                await service.start_session("meditation", test_user_id, title="x", kind="timed",
                                            duration=0, mood_before="calm")
        mock_insert.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_start_breathing_and_pmr(self, service, test_user_id):
        """Test the pattern and PMR helpers persist their sessions"""
        with patch(f"{QUERIES}.insert_session", new=AsyncMock()) as mock_insert:
            breathing = await service.start_breathing_session(test_user_id, "BOX_BREATHING", "anxious", 7)
            pmr = await service.start_pmr_session(test_user_id, "stressed")

        assert isinstance(breathing, BreathingSession)
        assert breathing.duration == 64
        assert isinstance(pmr, PMRSession)
        assert mock_insert.await_count == 2

    @pytest.mark.asyncio
    async def test_get_missing(self, service, test_user_id):
        """Test missing sessions raise RecordNotFoundError"""
        with patch(f"{QUERIES}.get_session", new=AsyncMock(return_value=None)):
            with pytest.raises(RecordNotFoundError):
                await service.get_session("nope", test_user_id)

    @pytest.mark.asyncio
    async def test_get_other_users_session(self, service, meditation, other_user_id, as_session_row):
        """Test sessions owned by someone else are not returned"""
        with patch(f"{QUERIES}.get_session", new=AsyncMock(return_value=as_session_row(meditation))):
            with pytest.raises(AuthorizationError):
                await service.get_session(meditation.id, other_user_id)

    @pytest.mark.asyncio
    async def test_list_sessions(self, service, meditation, test_user_id, as_session_row):
        """Test listing passes filters through"""
        with patch(f"{QUERIES}.list_user_sessions",
                   new=AsyncMock(return_value=[as_session_row(meditation)])) as mock_list:
            sessions = await service.list_sessions(test_user_id, session_type="meditation", limit=5)

        assert [s.id for s in sessions] == [meditation.id]
        mock_list.assert_awaited_once_with(test_user_id, "meditation", None, 5, 0)

    @pytest.mark.asyncio
    async def test_list_unknown_type(self, service, test_user_id):
        """Test an unknown type filter is rejected"""
        with pytest.raises(ValidationError):
            await service.list_sessions(test_user_id, session_type="yoga")


# ============================================================================
# Transitions
# ============================================================================

class TestTransitions:
    """Versioned writes around the state machine"""

    @pytest.mark.asyncio
    async def test_pause_writes_expected_version(self, service, meditation, test_user_id, as_session_row):
        """Test pause writes at the version it read"""
        with patch(f"{QUERIES}.get_session", new=AsyncMock(return_value=as_session_row(meditation, 3))), \
             patch(f"{QUERIES}.update_session", new=AsyncMock(return_value=4)) as mock_update:
            session = await service.pause_session(meditation.id, test_user_id)

        assert session.status == SessionStatus.PAUSED
        assert session.version == 4
        assert mock_update.await_args.args[1] == 3

    @pytest.mark.asyncio
    async def test_rejected_transition_not_written(self, service, meditation, test_user_id, as_session_row):
        """Test an illegal transition raises and writes nothing"""
        meditation.abandon()
        with patch(f"{QUERIES}.get_session", new=AsyncMock(return_value=as_session_row(meditation))), \
             patch(f"{QUERIES}.update_session", new=AsyncMock()) as mock_update:
            with pytest.raises(InvalidTransitionError):
                await service.resume_session(meditation.id, test_user_id)

        mock_update.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_conflict_surfaces(self, service, meditation, test_user_id, as_session_row):
        """Test a lost race raises ConcurrentModificationError without retrying"""
        update_mock = AsyncMock(side_effect=_conflict(meditation.id))
        with patch(f"{QUERIES}.get_session", new=AsyncMock(return_value=as_session_row(meditation))), \
             patch(f"{QUERIES}.update_session", new=update_mock):
            with pytest.raises(ConcurrentModificationError):
                await service.abandon_session(meditation.id, test_user_id)

        assert update_mock.await_count == 1

    @pytest.mark.asyncio
    async def test_interrupt_stress_session(self, service, make_stress_session, test_user_id, as_session_row):
        """Test interrupting a stress session"""
        session = make_stress_session()
        with patch(f"{QUERIES}.get_session", new=AsyncMock(return_value=as_session_row(session))), \
             patch(f"{QUERIES}.update_session", new=AsyncMock(return_value=1)):
            result = await service.interrupt_session(session.id, test_user_id)

        assert result.status == SessionStatus.INTERRUPTED
        assert result.interruptions == 1


# ============================================================================
# Completion and achievements
# ============================================================================

class TestCompleteSession:
    """complete_session() commits first, then forwards"""

    @pytest.mark.asyncio
    async def test_complete_forwards_and_clears(
        self, service, achievement_service, meditation, test_user_id, start_time, as_session_row
    ):
        """Test completion is written pending, forwarded, then cleared"""
        written = []

        async def fake_update(session, expected_version):
            written.append((session.status, session.achievements_pending, expected_version))
            return expected_version + 1

        with patch(f"{QUERIES}.get_session", new=AsyncMock(return_value=as_session_row(meditation, 0))), \
             patch(f"{QUERIES}.update_session", new=fake_update):
            result = await service.complete_session(
                meditation.id, test_user_id, "peaceful",
                at=start_time + timedelta(minutes=10), duration_completed=600, focus_rating=4
            )

        assert result.ok
        assert result.achievements_forwarded is True
        assert result.session.status == SessionStatus.COMPLETED
        assert result.session.focus_rating == 4
        assert result.session.achievements_pending is False
        assert written == [
            (SessionStatus.COMPLETED, True, 0),
            (SessionStatus.COMPLETED, False, 1),
        ]
        payload = achievement_service.process_achievements.await_args.args[0]
        assert payload.duration == 600
        assert payload.mood_improvement == 4

    @pytest.mark.asyncio
    async def test_service_failure_keeps_completion(
        self, meditation, test_user_id, as_session_row
    ):
        """Test a failing decision service leaves the completion committed and pending"""
        failing = AsyncMock()
        failing.process_achievements = AsyncMock(side_effect=RuntimeError("timeout"))
        service = SessionService(achievement_service=failing)

        with patch(f"{QUERIES}.get_session", new=AsyncMock(return_value=as_session_row(meditation))), \
             patch(f"{QUERIES}.update_session", new=AsyncMock(return_value=1)) as mock_update:
            result = await service.complete_session(meditation.id, test_user_id, "calm")

        assert not result.ok
        assert isinstance(result.achievement_error, AchievementServiceError)
        assert result.achievements_forwarded is False
        assert result.session.status == SessionStatus.COMPLETED
        assert result.session.achievements_pending is True
        assert mock_update.await_count == 1

    @pytest.mark.asyncio
    async def test_invalid_fields_rejected(self, service, meditation, test_user_id, as_session_row):
        """Test invalid completion fields abort before any write"""
        with patch(f"{QUERIES}.get_session", new=AsyncMock(return_value=as_session_row(meditation))), \
             patch(f"{QUERIES}.update_session", new=AsyncMock()) as mock_update:
            with pytest.raises(ValidationError):
                await service.complete_session(meditation.id, test_user_id, "calm", focus_rating=7)

        mock_update.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_clear_conflict_logged(self, service, meditation, test_user_id, as_session_row):
        """Test a conflict while clearing the flag does not fail the completion"""
        update_mock = AsyncMock(side_effect=[1, _conflict(meditation.id)])
        with patch(f"{QUERIES}.get_session", new=AsyncMock(return_value=as_session_row(meditation))), \
             patch(f"{QUERIES}.update_session", new=update_mock):
            result = await service.complete_session(meditation.id, test_user_id)

        assert result.ok
        assert result.achievements_forwarded is True
        assert update_mock.await_count == 2

    @pytest.mark.asyncio
    async def test_retry_achievements(self, service, achievement_service, completed_meditation, test_user_id,
                                      as_session_row):
        """Test a pending completion can be re-sent"""
        with patch(f"{QUERIES}.get_session",
                   new=AsyncMock(return_value=as_session_row(completed_meditation, 1))), \
             patch(f"{QUERIES}.update_session", new=AsyncMock(return_value=2)):
            result = await service.retry_achievements(completed_meditation.id, test_user_id)

        assert result.achievements_forwarded is True
        assert result.session.version == 2
        achievement_service.process_achievements.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_retry_pending_sweep(self, service, achievement_service, completed_meditation, make_meditation,
                                       start_time, as_session_row):
        """Test the sweep forwards every pending session and counts successes"""
        second = make_meditation()
        second.complete("calm", at=start_time + timedelta(minutes=5))
        rows = [as_session_row(completed_meditation), as_session_row(second)]
        achievement_service.process_achievements.side_effect = [
            {"unlocked": []},
            AchievementServiceError("down"),
        ]

        with patch(f"{QUERIES}.list_pending_achievement_sessions",
                   new=AsyncMock(return_value=rows)) as mock_list, \
             patch(f"{QUERIES}.update_session", new=AsyncMock(return_value=1)):
            forwarded = await service.retry_pending_achievements(limit=50)

        mock_list.assert_awaited_once_with(50)
        assert forwarded == 1
        assert achievement_service.process_achievements.await_count == 2

    @pytest.mark.asyncio
    async def test_sweep_skips_unreadable_rows(self, service, achievement_service, completed_meditation,
                                               make_meditation, start_time, as_session_row):
        """Test one bad stored session does not stop the sweep"""
        bad_row = as_session_row(completed_meditation)
        bad_row["document"]["duration"] = 10800
        good = make_meditation()
        good.complete("calm", at=start_time + timedelta(minutes=5))

        with patch(f"{QUERIES}.list_pending_achievement_sessions",
                   new=AsyncMock(return_value=[bad_row, as_session_row(good)])), \
             patch(f"{QUERIES}.update_session", new=AsyncMock(return_value=1)) as mock_update:
            forwarded = await service.retry_pending_achievements()

        assert forwarded == 1
        achievement_service.process_achievements.assert_awaited_once()
        payload = achievement_service.process_achievements.await_args.args[0]
        assert payload.session_id == good.id
        assert mock_update.await_args.args[0].id == good.id

    @pytest.mark.asyncio
    async def test_long_meditation_completes_and_reloads(self, service, meditation, test_user_id, start_time,
                                                         as_session_row):
        """Test a completion far past the duration ceiling is saved in a loadable state"""
        meditation.pause(start_time + timedelta(minutes=5))
        meditation.resume(start_time + timedelta(hours=3))

        with patch(f"{QUERIES}.get_session", new=AsyncMock(return_value=as_session_row(meditation))), \
             patch(f"{QUERIES}.update_session", new=AsyncMock(return_value=1)) as mock_update:
            result = await service.complete_session(
                meditation.id, test_user_id, "calm", at=start_time + timedelta(hours=3, minutes=5)
            )

        saved = mock_update.await_args_list[0].args[0]
        assert saved.duration == 7200
        assert session_from_row(as_session_row(saved, 1)).duration == 7200
        assert result.session.is_completed


# ============================================================================
# Type-specific updates and delete
# ============================================================================

class TestTypeSpecificUpdates:
    """Feedback, cycles, muscle groups"""

    @pytest.mark.asyncio
    async def test_add_feedback_from_dict(self, service, make_stress_session, test_user_id, as_session_row):
        """Test feedback dicts are validated and saved"""
        session = make_stress_session()
        session.complete("calm")
        with patch(f"{QUERIES}.get_session", new=AsyncMock(return_value=as_session_row(session))), \
             patch(f"{QUERIES}.update_session", new=AsyncMock(return_value=1)):
            result = await service.add_feedback(session.id, test_user_id, {"effectiveness_rating": 5})

        assert result.feedback.effectiveness_rating == 5

    @pytest.mark.asyncio
    async def test_wrong_session_type(self, service, meditation, test_user_id, as_session_row):
        """Test type-specific operations reject other session types"""
        with patch(f"{QUERIES}.get_session", new=AsyncMock(return_value=as_session_row(meditation))), \
             patch(f"{QUERIES}.update_session", new=AsyncMock()) as mock_update:
            with pytest.raises(ValidationError):
                await service.record_breathing_cycles(meditation.id, test_user_id, 3)

        mock_update.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_record_stress_after(self, service, make_stress_session, test_user_id, as_session_row):
        """Test the closing stress level is saved through the service"""
        session = make_stress_session()
        session.complete("calm")
        with patch(f"{QUERIES}.get_session", new=AsyncMock(return_value=as_session_row(session, 1))), \
             patch(f"{QUERIES}.update_session", new=AsyncMock(return_value=2)) as mock_update:
            result = await service.record_stress_after(session.id, test_user_id, 3)

        assert result.stress_level_after == 3
        assert result.stress_reduction == 5
        assert result.version == 2
        assert mock_update.await_args.args[1] == 1

    @pytest.mark.asyncio
    async def test_record_stress_after_requires_stress_tracking(self, service, meditation, test_user_id,
                                                                as_session_row):
        """Test sessions without stress levels reject a closing stress level"""
        with patch(f"{QUERIES}.get_session", new=AsyncMock(return_value=as_session_row(meditation))), \
             patch(f"{QUERIES}.update_session", new=AsyncMock()) as mock_update:
            with pytest.raises(ValidationError):
                await service.record_stress_after(meditation.id, test_user_id, 3)

        mock_update.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_breathing_cycles(self, service, test_user_id, as_session_row):
        """Test cycles are saved on breathing sessions"""
        session = BreathingSession.start_breathing_session(test_user_id, "QUICK_BREATH", "neutral")
        with patch(f"{QUERIES}.get_session", new=AsyncMock(return_value=as_session_row(session))), \
             patch(f"{QUERIES}.update_session", new=AsyncMock(return_value=1)):
            result = await service.record_breathing_cycles(session.id, test_user_id, 3)

        assert result.duration_completed == 18

    @pytest.mark.asyncio
    async def test_muscle_group(self, service, test_user_id, as_session_row):
        """Test muscle groups are saved on PMR sessions"""
        session = PMRSession.start_pmr_session(test_user_id, "anxious")
        with patch(f"{QUERIES}.get_session", new=AsyncMock(return_value=as_session_row(session))), \
             patch(f"{QUERIES}.update_session", new=AsyncMock(return_value=1)):
            result = await service.complete_muscle_group(session.id, test_user_id, "legs")

        assert result.completed_groups == ["legs"]

    @pytest.mark.asyncio
    async def test_delete(self, service, meditation, test_user_id, as_session_row):
        """Test soft delete after the ownership check"""
        with patch(f"{QUERIES}.get_session", new=AsyncMock(return_value=as_session_row(meditation))), \
             patch(f"{QUERIES}.soft_delete_session", new=AsyncMock(return_value=True)) as mock_delete:
            assert await service.delete_session(meditation.id, test_user_id) is True

        mock_delete.assert_awaited_once_with(meditation.id, test_user_id)
