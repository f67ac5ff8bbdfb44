import asyncio

from redis.exceptions import RedisError

from gateway.api.payments.services.expiry_service import expire_pending_payments_service
from gateway.core.config import Config
from gateway.core.middlewares import logger
from gateway.core.redis import EXPIRY_SWEEP_LOCK_KEY, acquire_lock
from gateway.db.main import async_session_maker


async def run_expiry_sweep_once(session_maker=async_session_maker) -> list[str]:
    """One sweeper tick, skipped when another instance holds the lock."""
    try:
        if not await acquire_lock(EXPIRY_SWEEP_LOCK_KEY, Config.SWEEPER_LOCK_TTL_SECONDS):
            logger.debug("Expiry sweep skipped, lock held by another instance")
            return []
    except (RedisError, OSError) as exc:
        # conditional updates keep overlapping sweeps safe
        logger.warning(f"Sweeper lock unavailable, sweeping anyway: {exc}")

    async with session_maker() as session:
        return await expire_pending_payments_service(session)


async def expiry_sweeper_loop(interval: float = Config.EXPIRY_SWEEP_INTERVAL_SECONDS) -> None:
    logger.info(f"Expiry sweeper started interval={interval}s")
    while True:
        try:
            await run_expiry_sweep_once()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Expiry sweep crashed")
        await asyncio.sleep(interval)
