"""
Test configuration and shared fixtures for exchange engine tests.
"""

import pytest
import pytest_asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

from exchange.core.clock import FrozenClock
from exchange.core.config import DatabaseSettings, EngineSettings, TradingSettings
from exchange.db.models import Asset, Balance, MarketClass, Member
from exchange.db.session import Database
from exchange.services.alerts import AlertService
from exchange.services.ledger import FundsService
from exchange.services.order_engine import OrderEngine
from exchange.services.rate_engine import RateEngine
from exchange.services.settings_provider import SettingsProvider


START = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


# =============================================================================
# Event Bus Mock
# =============================================================================

@pytest.fixture
def mock_event_bus():
    """Create a mock event bus for testing."""
    bus = AsyncMock()
    bus.publish = AsyncMock(return_value=True)
    bus.connect = AsyncMock()
    bus.disconnect = AsyncMock()
    bus.channel = "info"
    return bus


# =============================================================================
# Time Fixtures
# =============================================================================

@pytest.fixture
def clock():
    """Clock pinned to a fixed moment."""
    return FrozenClock(START)


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest_asyncio.fixture
async def database():
    """Fresh in-memory database with all tables."""
    db = Database(DatabaseSettings(url="sqlite+aiosqlite:///:memory:"))
    await db.create_all()
    yield db
    await db.close()


@dataclass
class Seed:
    member: Member
    stock: Asset
    forex: Asset


@pytest_asyncio.fixture
async def seed(database, clock):
    """
    One member holding 1000 USD, a stock quoted at 100 with no spread and
    a USD-based forex pair at 0.9000.
    """
    async with database.transaction() as session:
        member = Member(email="trader@example.com")
        session.add(member)
        await session.flush()

        session.add(Balance(member_id=member.id, currency="USD", amount=Decimal("1000")))

        stock = Asset(
            market=MarketClass.STOCK,
            ticker="ACME",
            title="Acme Corp",
            decimal_scale=2,
            buy_spread=Decimal("0"),
            sell_spread=Decimal("0"),
            rate=Decimal("100"),
            rate_buy=Decimal("100"),
            rate_sell=Decimal("100"),
            updated=clock.timestamp(),
        )
        forex = Asset(
            market=MarketClass.FOREX,
            ticker="USDCHF",
            title="USD/CHF",
            fcs_id="13",
            decimal_scale=4,
            buy_spread=Decimal("0"),
            sell_spread=Decimal("0"),
            rate=Decimal("0.9000"),
            rate_buy=Decimal("0.9000"),
            rate_sell=Decimal("0.9000"),
            base_currency="USD",
            pip_decimals=4,
            updated=clock.timestamp(),
        )
        session.add_all([stock, forex])
        await session.flush()

    return Seed(member=member, stock=stock, forex=forex)


# =============================================================================
# Service Fixtures
# =============================================================================

@pytest.fixture
def trading_settings():
    """System defaults: 80% stop loss and 500% take profit protection."""
    return TradingSettings()


@pytest.fixture
def settings_provider(trading_settings):
    return SettingsProvider(trading_settings)


@pytest.fixture
def engine_settings():
    return EngineSettings(sample_throttle=10800, day_window=86400, sample_retention=7 * 86400)


@pytest.fixture
def order_engine(database, mock_event_bus, settings_provider, clock):
    return OrderEngine(database, mock_event_bus, settings_provider, clock)


@pytest.fixture
def alert_service(database, mock_event_bus, clock):
    return AlertService(database, mock_event_bus, clock)


@pytest.fixture
def rate_engine(database, mock_event_bus, order_engine, alert_service, engine_settings, clock):
    return RateEngine(database, mock_event_bus, order_engine, alert_service, engine_settings, clock)


@pytest.fixture
def funds(database, clock):
    return FundsService(database, clock)


@pytest.fixture
def mock_feed_router():
    """Feed router returning a fixed price for every asset."""
    router = MagicMock()
    router.fetch_price = AsyncMock(return_value="101.00")
    router.close = AsyncMock()
    return router


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests that use the in-memory database"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
