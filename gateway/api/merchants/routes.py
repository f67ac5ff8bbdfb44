from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from gateway.api.merchants.schemas import (
    ApiCredentialsResponse,
    ApiSecretResponse,
    WebhookSettingsRequest,
    WebhookSettingsResponse,
)
from gateway.api.merchants.services.merchant_service import (
    get_webhook_settings_service,
    issue_api_credentials_service,
    reveal_api_secret_service,
    update_webhook_settings_service,
)
from gateway.core.request_context import require_merchant
from gateway.db.main import get_session

merchants_router = APIRouter()


@merchants_router.post(
    "/api-keys",
    response_model=ApiCredentialsResponse,
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
)
async def issue_api_credentials(
    request: Request,
    session: AsyncSession = Depends(get_session),
):
    merchant_id = require_merchant(request)
    return await issue_api_credentials_service(merchant_id, session)


@merchants_router.post(
    "/api-keys/reveal",
    response_model=ApiSecretResponse,
    response_model_by_alias=True,
)
async def reveal_api_secret(
    request: Request,
    session: AsyncSession = Depends(get_session),
):
    merchant_id = require_merchant(request)
    return await reveal_api_secret_service(merchant_id, session)


@merchants_router.get(
    "/webhook",
    response_model=WebhookSettingsResponse,
    response_model_by_alias=True,
)
async def get_webhook_settings(
    request: Request,
    session: AsyncSession = Depends(get_session),
):
    merchant_id = require_merchant(request)
    return await get_webhook_settings_service(merchant_id, session)


@merchants_router.put(
    "/webhook",
    response_model=WebhookSettingsResponse,
    response_model_by_alias=True,
)
async def update_webhook_settings(
    request: Request,
    payload: WebhookSettingsRequest,
    session: AsyncSession = Depends(get_session),
):
    merchant_id = require_merchant(request)
    return await update_webhook_settings_service(merchant_id, payload, session)
