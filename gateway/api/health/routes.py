from fastapi import APIRouter
import asyncio
from gateway.api.health import (
    check_database,
    check_redis,
    check_sweeper_lock,
    check_webhook_delivery,
    check_disk,
    check_memory
)

health_router = APIRouter()
@health_router.get("/")
async def health_check():
    db_status, redis_status, sweeper = await asyncio.gather(
        check_database(),
        check_redis(),
        check_sweeper_lock()
    )

    disk = check_disk()
    memory = check_memory()

    # redis only backs the sweeper lock, so losing it degrades nothing critical
    status = "ok"
    if db_status == "down":
        status = "down"
    elif redis_status == "down":
        status = "degraded"

    return {
        "status": status,
        "checks": {
            "database": db_status,
            "redis": redis_status,
            "sweeper": sweeper,
            "webhooks": check_webhook_delivery(),
            "disk": disk,
            "memory": memory
        }
    }
