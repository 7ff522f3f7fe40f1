"""
Tests for session scoping and pool sizing.
"""
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from canchaqr.core import database
from canchaqr.core.config import settings


def fake_factory(session):
    factory = MagicMock()
    factory.return_value.__aenter__ = AsyncMock(return_value=session)
    factory.return_value.__aexit__ = AsyncMock(return_value=False)
    return factory


class TestPoolOptions:

    def test_production_uses_configured_limits(self):
        options = database.pool_options("production")

        assert options["pool_size"] == settings.DB_POOL_SIZE
        assert options["max_overflow"] == settings.DB_MAX_OVERFLOW
        assert options["pool_recycle"] == settings.DB_POOL_RECYCLE
        assert options["pool_pre_ping"] is True

    def test_development_keeps_a_small_pool(self):
        assert database.pool_options("development") == {
            "pool_size": 2, "max_overflow": 5, "pool_pre_ping": True,
        }


class TestSessionScope:

    @pytest.mark.asyncio
    async def test_commits_when_block_succeeds(self, mock_db):
        with patch("canchaqr.core.database.AsyncSessionLocal", fake_factory(mock_db)):
            async with database.get_db_session() as db:
                assert db is mock_db

        mock_db.commit.assert_awaited_once()
        mock_db.rollback.assert_not_called()

    @pytest.mark.asyncio
    async def test_rolls_back_and_reraises(self, mock_db):
        with patch("canchaqr.core.database.AsyncSessionLocal", fake_factory(mock_db)):
            with pytest.raises(RuntimeError):
                async with database.get_db_session():
                    raise RuntimeError("lock timeout")

        mock_db.rollback.assert_awaited_once()
        mock_db.commit.assert_not_called()

    @pytest.mark.asyncio
    async def test_request_dependency_yields_one_session(self, mock_db):
        with patch("canchaqr.core.database.AsyncSessionLocal", fake_factory(mock_db)):
            dependency = database.get_db()
            assert await dependency.__anext__() is mock_db
            with pytest.raises(StopAsyncIteration):
                await dependency.__anext__()

        mock_db.commit.assert_awaited_once()
