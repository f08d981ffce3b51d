"""Unit tests for the achievement catalog and progress records"""
import pytest
from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

from wellness.exceptions import RecordNotFoundError
from wellness.gamification import catalog
from wellness.models.achievement import ACHIEVEMENT_DEFINITIONS, AchievementProgress


EARNED = datetime(2024, 3, 2, 8, 0, tzinfo=timezone.utc)


def progress_row(user_id, achievement_id, progress=0, completed=False, earned_at=None):
    return {
        "user_id": user_id,
        "achievement_id": achievement_id,
        "progress": progress,
        "completed": completed,
        "earned_at": earned_at,
    }


# ============================================================================
# Definitions
# ============================================================================

class TestDefinitions:
    """Built-in catalog"""

    def test_catalog_size(self):
        """Test the catalog has all 22 achievements"""
        assert len(ACHIEVEMENT_DEFINITIONS) == 22

    def test_known_entries(self):
        """Test a few entries' targets and points"""
        early_bird = catalog.get_achievement_definition("early_bird")
        assert (early_bird.target, early_bird.points) == (5, 100)
        zen_master = catalog.get_achievement_definition("zen_master")
        assert (zen_master.target, zen_master.points) == (100, 1000)

    def test_filter_by_category(self):
        """Test category filter"""
        social = catalog.get_achievement_definitions("social")
        assert social
        assert all(d.category == "social" for d in social)
        assert len(catalog.get_achievement_definitions()) == 22

    def test_unknown_definition(self):
        """Test unknown ids raise RecordNotFoundError"""
        with pytest.raises(RecordNotFoundError):
            catalog.get_achievement_definition("moon_walker")


# ============================================================================
# AchievementProgress model
# ============================================================================

class TestAchievementProgress:
    """Completion bookkeeping on progress records"""

    def test_full_progress_completes(self, test_user_id):
        """Test progress 100 marks completion and earned_at"""
        record = AchievementProgress(user_id=test_user_id, achievement_id="zen_state", progress=100)
        assert record.completed is True
        assert record.earned_at is not None

    def test_completed_forces_full_progress(self, test_user_id):
        """Test completed records report 100"""
        record = AchievementProgress(user_id=test_user_id, achievement_id="zen_state", progress=40, completed=True)
        assert record.progress == 100

    def test_with_progress_clamps(self, test_user_id):
        """Test out-of-range values are clamped"""
        record = AchievementProgress(user_id=test_user_id, achievement_id="zen_state")
        assert record.with_progress(-5).progress == 0
        done = record.with_progress(150, at=EARNED)
        assert done.progress == 100
        assert done.completed is True
        assert done.earned_at == EARNED

    def test_completion_sticky(self, test_user_id):
        """Test completed records ignore later progress"""
        record = AchievementProgress(
            user_id=test_user_id, achievement_id="zen_state", completed=True, earned_at=EARNED
        )
        again = record.with_progress(10)
        assert again.completed is True
        assert again.progress == 100
        assert again.earned_at == EARNED


# ============================================================================
# Progress storage
# ============================================================================

class TestProgressStorage:
    """catalog functions over achievement_queries"""

    @pytest.mark.asyncio
    async def test_initialize(self, test_user_id):
        """Test all catalog ids are initialized"""
        with patch("wellness.gamification.catalog.achievement_queries.insert_default_progress",
                   new=AsyncMock(return_value=22)) as mock_insert:
            created = await catalog.initialize_user_achievements(test_user_id)

        assert created == 22
        user_id, ids = mock_insert.await_args.args
        assert user_id == test_user_id
        assert set(ids) == set(ACHIEVEMENT_DEFINITIONS)

    @pytest.mark.asyncio
    async def test_update_progress_new_record(self, test_user_id):
        """Test progress is stored for a user without a record"""
        stored = progress_row(test_user_id, "mood_lifter", 30)
        with patch("wellness.gamification.catalog.achievement_queries.get_progress",
                   new=AsyncMock(return_value=None)), \
             patch("wellness.gamification.catalog.achievement_queries.upsert_progress",
                   new=AsyncMock(return_value=stored)) as mock_upsert:
            result = await catalog.update_progress(test_user_id, "mood_lifter", 30)

        assert result.progress == 30
        assert result.completed is False
        mock_upsert.assert_awaited_once_with(test_user_id, "mood_lifter", 30, False, None)

    @pytest.mark.asyncio
    async def test_update_progress_completes(self, test_user_id):
        """Test reaching 100 stores completion with a timestamp"""
        stored = progress_row(test_user_id, "mood_lifter", 100, True, EARNED)
        with patch("wellness.gamification.catalog.achievement_queries.get_progress",
                   new=AsyncMock(return_value=progress_row(test_user_id, "mood_lifter", 90))), \
             patch("wellness.gamification.catalog.achievement_queries.upsert_progress",
                   new=AsyncMock(return_value=stored)) as mock_upsert:
            result = await catalog.update_progress(test_user_id, "mood_lifter", 100)

        assert result.completed is True
        args = mock_upsert.await_args.args
        assert args[2:4] == (100, True)
        assert args[4] is not None

    @pytest.mark.asyncio
    async def test_update_progress_already_completed(self, test_user_id):
        """Test completed achievements are not rewritten"""
        row = progress_row(test_user_id, "mood_lifter", 100, True, EARNED)
        with patch("wellness.gamification.catalog.achievement_queries.get_progress",
                   new=AsyncMock(return_value=row)), \
             patch("wellness.gamification.catalog.achievement_queries.upsert_progress",
                   new=AsyncMock()) as mock_upsert:
            result = await catalog.update_progress(test_user_id, "mood_lifter", 20)

        assert result.completed is True
        assert result.earned_at == EARNED
        mock_upsert.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_update_progress_unknown(self, test_user_id):
        """Test unknown achievements are rejected before any query"""
        with patch("wellness.gamification.catalog.achievement_queries.get_progress",
                   new=AsyncMock()) as mock_get:
            with pytest.raises(RecordNotFoundError):
                await catalog.update_progress(test_user_id, "moon_walker", 50)
        mock_get.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_complete_achievement(self, test_user_id):
        """Test forced completion"""
        stored = progress_row(test_user_id, "week_warrior", 100, True, EARNED)
        with patch("wellness.gamification.catalog.achievement_queries.upsert_progress",
                   new=AsyncMock(return_value=stored)):
            result = await catalog.complete_achievement(test_user_id, "week_warrior")
        assert result.completed is True

    @pytest.mark.asyncio
    async def test_get_user_progress(self, test_user_id):
        """Test rows are converted to models"""
        rows = [progress_row(test_user_id, "zen_state", 60), progress_row(test_user_id, "zen_master", 1)]
        with patch("wellness.gamification.catalog.achievement_queries.get_user_progress",
                   new=AsyncMock(return_value=rows)):
            result = await catalog.get_user_progress(test_user_id)
        assert [r.achievement_id for r in result] == ["zen_state", "zen_master"]
