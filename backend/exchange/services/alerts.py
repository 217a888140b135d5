"""
Price Alerts
Exchange Trading Platform

Members set a target price on an asset; the rate engine fires the alert
once a tick reaches it from the side the rate started on.
"""

from typing import List, Optional

from loguru import logger

from exchange.core.clock import Clock
from exchange.core.events import AlertEvent, EventBus
from exchange.core.exceptions import NotFoundError, ValidationError
from exchange.db.models.alerts import Alert, AlertDirection, AlertStatus
from exchange.db.models.market import Asset
from exchange.db.repositories.accounts import MemberRepository
from exchange.db.repositories.alerts import AlertRepository
from exchange.db.repositories.market import AssetRepository
from exchange.db.session import Database
from exchange.services.pricing import parse_decimal


class AlertService:
    """Creates and fires member price alerts."""

    def __init__(self, database: Database, event_bus: EventBus, clock: Optional[Clock] = None):
        self.database = database
        self.event_bus = event_bus
        self.clock = clock or Clock()

    async def create_alert(self, member_id: int, asset_id: int, price) -> Alert:
        """
        Register an alert at `price`.

        A target above the current rate waits for the rate to rise to it
        (lower), one below waits for it to fall (higher).
        """
        target = parse_decimal(price)
        if target is None or target <= 0:
            raise ValidationError("ALERT_INVALID_PRICE")

        async with self.database.transaction() as session:
            asset = await AssetRepository(session).get(asset_id)
            if asset is None:
                raise NotFoundError("INVALID_ASSET")
            if await MemberRepository(session).get(member_id) is None:
                raise NotFoundError("INVALID_MEMBER")
            if target == asset.rate:
                raise ValidationError("ALERT_RATE_THE_SAME")

            direction = AlertDirection.LOWER if target > asset.rate else AlertDirection.HIGHER
            alert = await AlertRepository(session).add(
                Alert(
                    member_id=member_id,
                    asset_id=asset.id,
                    direction=direction,
                    price=target,
                    currency=asset.currency,
                    status=AlertStatus.ACTIVE,
                    created_at=self.clock.now(),
                )
            )

        logger.debug(f"Alert {alert.id} set: member={member_id} {asset.ticker} {direction.value} {target}")
        return alert

    async def fire_alerts(self, asset: Asset) -> List[int]:
        """Fire every active alert on `asset` crossed by its current rate."""
        fired = []
        async with self.database.transaction() as session:
            for alert in await AlertRepository(session).active_for_asset(asset.id):
                if not alert.crossed_by(asset.rate):
                    continue
                alert.status = AlertStatus.FIRED
                alert.fired_at = self.clock.now()
                fired.append(alert)

        for alert in fired:
            logger.info(f"Alert {alert.id} fired: {asset.ticker} {asset.rate} vs {alert.price}")
            await self.event_bus.publish(
                AlertEvent(member_id=alert.member_id, alert_id=alert.id, asset_id=asset.id, price=alert.price)
            )
        return [alert.id for alert in fired]

    async def mark_seen(self, member_id: int) -> int:
        """Acknowledge a member's fired alerts. Returns how many were marked."""
        async with self.database.transaction() as session:
            alerts = await AlertRepository(session).unseen_fired(member_id)
            now = self.clock.now()
            for alert in alerts:
                alert.seen_at = now
        return len(alerts)
