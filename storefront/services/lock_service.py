# storefront/services/lock_service.py
import redis

from storefront.utils.retry import redis_retry
from storefront.utils.settings import REDIS_URL, WEBHOOK_EVENT_TTL_SECONDS
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

# compare-and-delete in one atomic step: only the claimant can release
_RELEASE_LUA = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
else
    return 0
end
"""


class EventClaimService:
    """
    Claims processor event ids so a redelivered webhook is acknowledged
    without running the handlers again.

    Only a shortcut, the reconciler's conditional updates keep the order
    correct when a claim is lost or expires.
    """

    def __init__(self, url: str | None = None, ttl: int = WEBHOOK_EVENT_TTL_SECONDS):
        self.redis = redis.Redis.from_url(
            url or REDIS_URL,
            decode_responses=True,
        )
        self.ttl = ttl

    @staticmethod
    def _key(event_id: str) -> str:
        return f"webhook:event:{event_id}"

    @redis_retry()
    def claim_event(self, event_id: str, claimant: str) -> bool:
        key = self._key(event_id)
        logger.info(f"Claim {key} for {claimant}")
        #SET webhook:event:evt_1 "<claimant>" NX EX 86400
        return bool(self.redis.set(name=key, value=claimant, nx=True, ex=self.ttl))

    @redis_retry()
    def release_event(self, event_id: str, claimant: str) -> bool:
        key = self._key(event_id)
        logger.info(f"Release {key} for {claimant}")
        res = self.redis.eval(_RELEASE_LUA, 1, key, claimant)
        return bool(res)
