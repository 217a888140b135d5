"""
Exchange Trading Platform - Engine Process
Entry point for the rate polling worker and operator commands.

Service Architecture:
    MarketFeedRouter (Cryptonator / IEX / FCS)
        ↓
    RatePoller (bounded per-asset pool)
        ↓
    RateEngine (rate, spread, change, samples)
        ↓
    OrderEngine (activation, profit, SL/TP)  +  AlertService
        ↓
    SettlementLedger (balances, wallets, history)
        ↓
    EventBus (Redis pub/sub to dashboards)

Usage:
    exchange-poller init-db
    exchange-poller poll [--once]
    exchange-poller update-rate 12 101.25
    exchange-poller deposit 7 USD 1000
"""

from dataclasses import dataclass
from typing import Optional
import argparse
import asyncio
import signal
import sys

from loguru import logger

from exchange.core.clock import Clock
from exchange.core.config import Settings, get_settings
from exchange.core.events import EventBus
from exchange.core.exceptions import ExchangeError
from exchange.core.logging import setup_logging
from exchange.db.session import Database
from exchange.services.alerts import AlertService
from exchange.services.ledger import FundsService
from exchange.services.order_engine import OrderEngine
from exchange.services.price_feed import MarketFeedRouter
from exchange.services.rate_engine import RateEngine
from exchange.services.rate_poller import RatePoller
from exchange.services.settings_provider import SettingsProvider


# =============================================================================
# Service Registry
# =============================================================================

@dataclass
class Services:
    """Wired engine services for one process."""
    database: Database
    event_bus: EventBus
    orders: OrderEngine
    alerts: AlertService
    rates: RateEngine
    funds: FundsService
    poller: RatePoller
    feeds: MarketFeedRouter

    async def shutdown(self) -> None:
        await self.feeds.close()
        await self.event_bus.disconnect()
        await self.database.close()
        logger.info("Services stopped")


def build_services(settings: Optional[Settings] = None, clock: Optional[Clock] = None) -> Services:
    settings = settings or get_settings()
    clock = clock or Clock()

    database = Database(settings.db)
    event_bus = EventBus(settings.redis)
    provider = SettingsProvider(settings.trading, settings.feed)
    engine_config = settings.engine

    orders = OrderEngine(database, event_bus, provider, clock)
    alerts = AlertService(database, event_bus, clock)
    rates = RateEngine(database, event_bus, orders, alerts, engine_config, clock)
    feeds = MarketFeedRouter.default(settings.feed)
    poller = RatePoller(database, feeds, rates, provider, engine_config, clock)

    return Services(
        database=database,
        event_bus=event_bus,
        orders=orders,
        alerts=alerts,
        rates=rates,
        funds=FundsService(database, clock),
        poller=poller,
        feeds=feeds,
    )


# =============================================================================
# Commands
# =============================================================================

async def init_db(services: Services, args) -> int:
    await services.database.create_all()
    logger.info("Database schema created")
    return 0


async def poll(services: Services, args) -> int:
    if not await services.database.health_check():
        logger.error("Database unavailable, poller not started")
        return 1
    await services.event_bus.connect()
    if args.once:
        report = await services.poller.run_once()
        return 0 if not report.failed else 2

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    await services.poller.run_forever(stop_event)
    return 0


async def update_rate(services: Services, args) -> int:
    await services.event_bus.connect()
    result = await services.rates.update_rate(args.asset_id, args.price)
    logger.info(
        f"{result.ticker}: rate={result.rate} buy={result.rate_buy} sell={result.rate_sell} "
        f"change={result.change}% activated={result.activated} closed={result.closed}"
    )
    return 0


async def deposit(services: Services, args) -> int:
    balance = await services.funds.deposit(args.member_id, args.currency.upper(), args.amount)
    logger.info(f"Member {args.member_id} balance: {balance.amount} {balance.currency}")
    return 0


COMMANDS = {
    "init-db": init_db,
    "poll": poll,
    "update-rate": update_rate,
    "deposit": deposit,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Exchange engine worker",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    subparsers.add_parser("init-db", help="Create database tables")

    poll_parser = subparsers.add_parser("poll", help="Run the rate poller")
    poll_parser.add_argument("--once", action="store_true", help="Run a single pass and exit")

    rate_parser = subparsers.add_parser("update-rate", help="Apply a price to one asset")
    rate_parser.add_argument("asset_id", type=int)
    rate_parser.add_argument("price", type=str)

    deposit_parser = subparsers.add_parser("deposit", help="Credit a completed deposit")
    deposit_parser.add_argument("member_id", type=int)
    deposit_parser.add_argument("currency", type=str)
    deposit_parser.add_argument("amount", type=str)

    return parser


async def _run(args) -> int:
    services = build_services()
    try:
        return await COMMANDS[args.command](services, args)
    except ExchangeError as e:
        logger.error(f"{args.command} failed: {e.code}")
        return 1
    finally:
        await services.shutdown()


def run(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    setup_logging()
    return asyncio.run(_run(args))


if __name__ == "__main__":
    sys.exit(run())
