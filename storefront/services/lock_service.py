# storefront/services/lock_service.py
import redis

from storefront.utils.retry import redis_retry
from storefront.utils.settings import REDIS_URL
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

# compare-and-delete in one Lua call, so a guard is only released by the token that took it
_RELEASE_LUA = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
else
    return 0
end
"""


class LockService:
    """
    Per-identity checkout guard in Redis.

    Stops a double-submitted checkout for the same cart from running twice
    in parallel. Stock correctness does not depend on it; the inventory row
    lock does that.
    """

    def __init__(self, url: str | None = None, client: redis.Redis | None = None):
        self.redis = client or redis.Redis.from_url(
            url or REDIS_URL,
            decode_responses=True,
        )

    @staticmethod
    def _key(identity_key: str) -> str:
        return f"checkout:{identity_key}:lock"

    @redis_retry()
    def acquire_checkout_lock(self, identity_key: str, token: str, ttl: int) -> bool:
        key = self._key(identity_key)
        logger.info(f"Acquire lock {key} token {token}")
        # SET checkout:user:1:lock <token> NX EX <ttl>
        return bool(self.redis.set(name=key, value=token, nx=True, ex=ttl))

    @redis_retry()
    def release_checkout_lock(self, identity_key: str, token: str) -> bool:
        key = self._key(identity_key)
        logger.info(f"Release lock {key} token {token}")
        res = self.redis.eval(_RELEASE_LUA, 1, key, token)
        return bool(res)
