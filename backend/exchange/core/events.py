"""
Notification Fan-out - Redis Pub/Sub
Exchange Trading Platform

Engines publish rate ticks, trade state changes and fired alerts on a
single Redis channel that the member and admin dashboards subscribe to.

Publishing is fire-and-forget: a transport failure is logged and never
turns a committed trade into an error.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Union
import json
import uuid

from loguru import logger
import redis.asyncio as redis
from pydantic import BaseModel, ConfigDict, Field

from exchange.core.config import RedisSettings


# =============================================================================
# Event Types & Definitions
# =============================================================================

class EventType(str, Enum):
    """Notification kinds seen by dashboards."""
    RATE = "rate"
    TRADE = "trade"
    ALERT = "alert"


class BaseEvent(BaseModel):
    """Base event model with common fields."""

    model_config = ConfigDict(use_enum_values=True)

    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    event_type: EventType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    member_id: Optional[int] = None

    def to_payload(self) -> Dict[str, Any]:
        """Body written to the channel."""
        return self.model_dump(mode="json")


class RateEvent(BaseEvent):
    """An asset received a new rate."""
    event_type: EventType = EventType.RATE

    asset_id: int
    rate: Decimal
    rate_buy: Decimal
    rate_sell: Decimal
    change: Decimal
    sentiment: int = 0
    sentiment_type: str = ""


class TradeEvent(BaseEvent):
    """A member's trade changed state."""
    event_type: EventType = EventType.TRADE

    trade_id: Optional[int] = None
    value: str  # limit, closed, cancelled


class AlertEvent(BaseEvent):
    """A member's price alert fired."""
    event_type: EventType = EventType.ALERT

    alert_id: int
    asset_id: int
    price: Decimal


# =============================================================================
# Event Bus
# =============================================================================

class EventBus:
    """
    Redis pub/sub publisher for dashboard notifications.

    Usage:
        bus = EventBus()
        await bus.connect()
        await bus.publish(TradeEvent(member_id=7, value="limit"))
    """

    def __init__(self, config: Optional[RedisSettings] = None, client: Optional[redis.Redis] = None):
        self.config = config or RedisSettings()
        self.channel = self.config.channel
        self._redis: Optional[redis.Redis] = client

    async def connect(self) -> None:
        """Connect to Redis."""
        if self._redis is None:
            self._redis = redis.from_url(
                self.config.url,
                encoding="utf-8",
                decode_responses=True,
                socket_timeout=self.config.socket_timeout,
            )
            logger.info(f"Event bus connected to Redis: {self.config.host}:{self.config.port}")

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None
            logger.info("Event bus disconnected from Redis")

    async def publish(self, event: Union[BaseEvent, Dict[str, Any]]) -> bool:
        """
        Publish a notification.

        Returns False when the transport failed; the failure is logged.
        """
        payload = event.to_payload() if isinstance(event, BaseEvent) else event
        try:
            if not self._redis:
                await self.connect()
            await self._redis.publish(self.channel, json.dumps(payload))
        except (redis.RedisError, OSError) as e:
            logger.warning(f"Notification dropped ({payload.get('event_type')}): {e}")
            return False

        logger.debug(f"Published {payload.get('event_type')} -> {self.channel}")
        return True


__all__ = [
    "EventType",
    "BaseEvent",
    "RateEvent",
    "TradeEvent",
    "AlertEvent",
    "EventBus",
]
