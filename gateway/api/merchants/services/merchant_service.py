from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from gateway.api.merchants.models import Merchant
from gateway.api.merchants.schemas import (
    ApiCredentialsResponse,
    ApiSecretResponse,
    WebhookSettingsRequest,
    WebhookSettingsResponse,
)
from gateway.api.payments.helpers import utcnow
from gateway.core.config import Config
from gateway.core.exceptions import MerchantNotFound, StateConflict
from gateway.core.messages import ErrorMessage
from gateway.core.middlewares import logger
from gateway.core.security import (
    decrypt_secret,
    encrypt_secret,
    generate_api_key,
    generate_api_secret,
    hash_api_key,
)


async def _get_merchant(session: AsyncSession, merchant_id: str) -> Merchant:
    merchant = (
        await session.execute(
            select(Merchant)
            .where(Merchant.id == merchant_id)
            .execution_options(populate_existing=True)
        )
    ).scalars().first()
    if not merchant:
        raise MerchantNotFound()
    return merchant


async def find_merchant_by_api_key(session: AsyncSession, api_key: str) -> Merchant | None:
    key_hash = hash_api_key(api_key, Config.API_KEY_SECRET)
    stmt = select(Merchant).where(Merchant.api_key_hash == key_hash, Merchant.is_active.is_(True))
    return (await session.execute(stmt)).scalars().first()


async def issue_api_credentials_service(
    merchant_id: str, session: AsyncSession
) -> ApiCredentialsResponse:
    """Rotate the merchant's key pair; the plaintext pair is returned only here."""
    merchant = await _get_merchant(session, merchant_id)

    api_key = generate_api_key()
    api_secret = generate_api_secret()
    merchant.api_key_hash = hash_api_key(api_key, Config.API_KEY_SECRET)
    merchant.api_secret_encrypted = encrypt_secret(api_secret, Config.API_KEY_SECRET)
    merchant.secret_revealed_at = None
    session.add(merchant)
    await session.commit()

    logger.info(f"API credentials rotated merchant={merchant_id}")
    return ApiCredentialsResponse(merchantId=merchant.id, apiKey=api_key, apiSecret=api_secret)


async def reveal_api_secret_service(merchant_id: str, session: AsyncSession) -> ApiSecretResponse:
    """The only decrypt path for stored secrets, and it works once per rotation."""
    merchant = await _get_merchant(session, merchant_id)
    if not merchant.api_secret_encrypted or merchant.secret_revealed_at is not None:
        raise StateConflict(ErrorMessage.SECRET_ALREADY_REVEALED)
    blob = merchant.api_secret_encrypted
    api_secret = decrypt_secret(blob, Config.API_KEY_SECRET)

    # claim the reveal only while it is still unclaimed for this exact secret
    stmt = (
        update(Merchant)
        .where(
            Merchant.id == merchant_id,
            Merchant.api_secret_encrypted == blob,
            Merchant.secret_revealed_at.is_(None),
        )
        .values(secret_revealed_at=utcnow(), updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    await session.commit()
    if result.rowcount == 0:
        logger.warning(f"Lost API secret reveal race merchant={merchant_id}")
        raise StateConflict(ErrorMessage.SECRET_ALREADY_REVEALED)

    logger.info(f"API secret revealed merchant={merchant_id}")
    return ApiSecretResponse(merchantId=merchant.id, apiSecret=api_secret)


async def get_webhook_settings_service(
    merchant_id: str, session: AsyncSession
) -> WebhookSettingsResponse:
    merchant = await _get_merchant(session, merchant_id)
    return WebhookSettingsResponse(merchantId=merchant.id, webhookUrl=merchant.webhook_url)


async def update_webhook_settings_service(
    merchant_id: str, payload: WebhookSettingsRequest, session: AsyncSession
) -> WebhookSettingsResponse:
    merchant = await _get_merchant(session, merchant_id)
    merchant.webhook_url = payload.webhook_url
    session.add(merchant)
    await session.commit()
    return WebhookSettingsResponse(merchantId=merchant.id, webhookUrl=merchant.webhook_url)
