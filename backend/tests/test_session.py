"""
Tests for the database unit of work.
"""

import pytest
from decimal import Decimal
from sqlalchemy import select, text

from exchange.core.config import DatabaseSettings
from exchange.core.exceptions import PersistenceError
from exchange.db.models import Balance
from exchange.db.session import Database


pytestmark = pytest.mark.integration


class TestTransaction:
    """Tests for Database.transaction."""

    @pytest.mark.asyncio
    async def test_storage_error_rolls_back(self, database, seed):
        with pytest.raises(PersistenceError) as exc:
            async with database.transaction() as session:
                balance = (await session.execute(select(Balance))).scalar_one()
                balance.amount = Decimal("0")
                await session.execute(text("SELECT * FROM no_such_table"))

        assert exc.value.code == "TRY_AGAIN"
        async with database.session() as session:
            balance = (await session.execute(select(Balance))).scalar_one()
        assert balance.amount == Decimal("1000")


class TestReadSession:
    """Tests for Database.session."""

    @pytest.mark.asyncio
    async def test_storage_error_asks_for_retry(self, database):
        with pytest.raises(PersistenceError) as exc:
            async with database.session() as session:
                await session.execute(text("SELECT * FROM no_such_table"))
        assert exc.value.code == "TRY_AGAIN"
        assert "no_such_table" not in exc.value.to_response()["error"]

    @pytest.mark.asyncio
    async def test_domain_errors_pass_through(self, database):
        with pytest.raises(KeyError):
            async with database.session():
                raise KeyError("asset")


class TestHealthCheck:
    """Tests for Database.health_check."""

    @pytest.mark.asyncio
    async def test_healthy(self, database):
        assert await database.health_check() is True

    @pytest.mark.asyncio
    async def test_unreachable(self, tmp_path):
        url = f"sqlite+aiosqlite:///{tmp_path}/missing/dir/exchange.db"
        db = Database(DatabaseSettings(url=url))
        try:
            assert await db.health_check() is False
        finally:
            await db.close()
