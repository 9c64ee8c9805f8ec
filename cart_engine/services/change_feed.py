# cart_engine/services/change_feed.py
from typing import Callable

import redis

from cart_engine.data.redis_client import get_redis
from cart_engine.utils.logging import get_logger
from cart_engine.utils.retry import redis_retry

logger = get_logger(__name__)


class ChangeFeed:
    """
    Powiadomienia o zmianach w koszyku (redis pub/sub)
    tresc wiadomosci nie ma znaczenia, subskrybent i tak robi pelny refresh
    """

    def __init__(self, client: redis.Redis | None = None):
        self.redis = client or get_redis()

    @staticmethod
    def channel(owner_ref: str) -> str:
        return f"cart-changes:{owner_ref}"

    @redis_retry()
    def publish(self, owner_ref: str) -> int:
        logger.info(f"Publish change for {owner_ref}")
        return self.redis.publish(self.channel(owner_ref), "changed")

    def subscribe(self, owner_ref: str, on_change: Callable[[], object]):
        pubsub = self.redis.pubsub(ignore_subscribe_messages=True)
        pubsub.subscribe(**{self.channel(owner_ref): lambda message: on_change()})
        return pubsub
