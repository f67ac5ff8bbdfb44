from sqlalchemy import text
from gateway.api.payments.services.webhook_service import get_webhook_engine
from gateway.core.config import Config
from gateway.core.redis import EXPIRY_SWEEP_LOCK_KEY, redis_client
from gateway.db.main import async_engine
import psutil
import asyncio



async def check_database():
    try:
        async with asyncio.timeout(2):
            async with async_engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        return "up"
    except Exception:
        return "down"


async def check_redis():
    try:
        async with asyncio.timeout(2):
            await redis_client.ping()
        return "up"
    except Exception:
        return "down"


async def check_sweeper_lock():
    # ttl is -2 when no instance currently holds the lock
    if not Config.EXPIRY_SWEEP_ENABLED:
        return {"enabled": False, "held": False, "ttl_seconds": None}
    try:
        async with asyncio.timeout(2):
            ttl = await redis_client.ttl(EXPIRY_SWEEP_LOCK_KEY)
    except Exception:
        return {"enabled": True, "held": None, "ttl_seconds": None}
    return {
        "enabled": True,
        "held": ttl > 0,
        "ttl_seconds": ttl if ttl > 0 else None,
    }


def check_webhook_delivery():
    engine = get_webhook_engine()
    return {
        "in_flight": engine.in_flight,
        "max_attempts": engine.max_attempts,
        "base_delay_ms": engine.base_delay_ms,
    }


def check_disk():
    usage = psutil.disk_usage("/")
    return {
        "total_gb": round(usage.total / (1024 ** 3), 2),
        "used_gb": round(usage.used / (1024 ** 3), 2),
        "free_gb": round(usage.free / (1024 ** 3), 2),
        "usage_percent": usage.percent
    }


def check_memory():
    mem = psutil.virtual_memory()
    return {
        "total_gb": round(mem.total / (1024 ** 3), 2),
        "used_gb": round(mem.used / (1024 ** 3), 2),
        "available_gb": round(mem.available / (1024 ** 3), 2),
        "usage_percent": mem.percent
    }
