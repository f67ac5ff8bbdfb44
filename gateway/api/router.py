from fastapi import APIRouter
from gateway.api.health.routes import health_router
from gateway.api.merchants.routes import merchants_router
from gateway.api.payments.routes import payments_router
api_router = APIRouter()

api_router.include_router(health_router, prefix="/health", tags=["health"])
api_router.include_router(payments_router, prefix="/payments", tags=["payments"])
api_router.include_router(merchants_router, prefix="/merchants", tags=["merchants"])
