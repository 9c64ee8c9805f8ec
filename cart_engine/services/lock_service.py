import redis

from cart_engine.data.redis_client import get_redis
from cart_engine.utils.logging import get_logger
from cart_engine.utils.retry import redis_retry

logger = get_logger(__name__)

#LUA porownaj i usun, atomicity
_RELEASE_LUA = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
else
    return 0
end
"""

#redis wykonuje skrypt lua atomowo, nie mozna wcisnac sie miedzy GET a DEL
#wiec lock zwolni tylko ten, kto go zalozyl


class LockService:
    """
    -lock na migracje koszyka goscia (jedna migracja na token sesji)
    -zwalnianie locka tylko przez wlasciciela
    -atomowosc przy pomocy lua
    """

    def __init__(self, client: redis.Redis | None = None):
        self.redis = client or get_redis()

    @staticmethod
    def migration_key(session_token: str) -> str:
        return f"guest_cart:{session_token}:migration:lock"

    @redis_retry()
    def acquire(self, key: str, owner: str, ttl: int) -> bool:
        logger.info(f"Acquire lock {key} for {owner}")
        #SET key owner NX EX ttl - jak klucz istnieje to nic nie rob i None
        return bool(self.redis.set(name=key, value=owner, nx=True, ex=ttl))

    @redis_retry()
    def release(self, key: str, owner: str) -> bool:
        logger.info(f"Release lock {key} for {owner}")
        res = self.redis.eval(_RELEASE_LUA, 1, key, owner)
        return bool(res)
