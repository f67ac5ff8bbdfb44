# gateway/core/redis.py
import redis.asyncio as redis
from gateway.core.config import Config

# redis://localhost:6379/0
redis_client = redis.from_url(
    Config.REDIS_URL,
    decode_responses=True,
    socket_connect_timeout=2
)

EXPIRY_SWEEP_LOCK_KEY = "gateway:expiry-sweeper"


async def acquire_lock(key: str, ttl_seconds: int) -> bool:
    """SET NX EX; True when this process now owns ``key``."""
    return bool(await redis_client.set(key, "1", nx=True, ex=ttl_seconds))
