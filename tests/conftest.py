"""Global test fixtures and utilities for wellness tests"""
import pytest
from unittest.mock import AsyncMock, MagicMock
from datetime import datetime, timedelta, timezone

from wellness.models.meditation import MeditationSession
from wellness.models.points import UserPoints
from wellness.models.stress import StressManagementSession


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def mock_db_cursor():
    """Mock database cursor with empty query results"""
    cursor = AsyncMock()
    cursor.fetchone = AsyncMock(return_value=None)
    cursor.fetchall = AsyncMock(return_value=[])
    cursor.execute = AsyncMock()
    cursor.rowcount = 0
    return cursor


@pytest.fixture
def mock_db_connection(mock_db_cursor):
    """Mock connection whose cursor() context yields mock_db_cursor"""
    conn = MagicMock()
    conn.cursor.return_value.__aenter__.return_value = mock_db_cursor
    conn.cursor.return_value.__aexit__.return_value = False
    conn.commit = AsyncMock()
    conn.rollback = AsyncMock()
    return conn


# ============================================================================
# User & Time Fixtures
# ============================================================================

@pytest.fixture
def test_user_id():
    """Standard test user ID"""
    return "user-123"


@pytest.fixture
def other_user_id():
    return "user-456"


@pytest.fixture
def start_time():
    """Fixed session start time"""
    return datetime(2024, 3, 1, 7, 0, 0, tzinfo=timezone.utc)


# ============================================================================
# Session Fixtures
# ============================================================================

@pytest.fixture
def make_meditation(test_user_id, start_time):
    """Factory for active meditation sessions"""
    def _make(**overrides):
        fields = {
            "title": "Morning sit",
            "kind": "unguided",
            "duration": 600,
            "mood_before": "stressed",
            "start_time": start_time,
        }
        fields.update(overrides)
        user_id = fields.pop("user_id", test_user_id)
        return MeditationSession.start(user_id, **fields)
    return _make


@pytest.fixture
def meditation(make_meditation):
    """Active 10 minute unguided meditation"""
    return make_meditation()


@pytest.fixture
def make_stress_session(test_user_id, start_time):
    """Factory for active stress management sessions"""
    def _make(**overrides):
        fields = {
            "technique": "deep_breathing",
            "stress_level_before": 8,
            "duration": 900,
            "mood_before": "anxious",
            "start_time": start_time,
        }
        fields.update(overrides)
        user_id = fields.pop("user_id", test_user_id)
        return StressManagementSession.start(user_id, **fields)
    return _make


@pytest.fixture
def completed_meditation(meditation, start_time):
    """Meditation completed after 10 minutes, fully engaged"""
    meditation.duration_completed = 600
    meditation.focus_rating = 4
    meditation.complete("peaceful", at=start_time + timedelta(minutes=10))
    return meditation


# ============================================================================
# Gamification Fixtures
# ============================================================================

@pytest.fixture
def achievement_service():
    """Achievement decision service double that accepts everything"""
    service = AsyncMock()
    service.process_achievements = AsyncMock(return_value={"unlocked": []})
    return service


@pytest.fixture
def empty_ledger(test_user_id):
    return UserPoints(user_id=test_user_id)


def ledger_row(ledger: UserPoints, version: int = 0) -> dict:
    """Row shape returned by the user_points queries"""
    return {
        "user_id": ledger.user_id,
        "total": ledger.total,
        "document": ledger.model_dump(mode="json", exclude={"version"}),
        "version": version,
    }


def session_row(session, version: int = 0) -> dict:
    """Row shape returned by the wellness_sessions queries"""
    return {
        "id": session.id,
        "user_id": session.user_id,
        "session_type": session.session_type,
        "status": session.status.value,
        "document": session.to_document(),
        "version": version,
        "deleted_at": None,
    }


@pytest.fixture
def as_ledger_row():
    return ledger_row


@pytest.fixture
def as_session_row():
    return session_row
