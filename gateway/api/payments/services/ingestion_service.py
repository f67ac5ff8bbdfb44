from __future__ import annotations

import hashlib
import json
from decimal import Decimal

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from gateway.api.payments.models import InboundWebhookEvent
from gateway.api.payments.repository import PaymentRepository
from gateway.api.payments.schemas import (
    InboundStatusUpdate,
    InboundWebhookResponse,
    PaymentStatus,
)
from gateway.api.payments.services.payment_service import (
    confirm_payment_service,
    expire_payment_service,
    fail_payment_service,
)
from gateway.api.payments.services.webhook_service import WebhookDeliveryEngine
from gateway.core.config import Config
from gateway.core.exceptions import InvalidSignature, PaymentNotFound, ValidationException
from gateway.core.messages import ErrorMessage
from gateway.core.middlewares import logger
from gateway.core.security import canonical_json, verify_signature

INBOUND_STATUSES = (PaymentStatus.CONFIRMED, PaymentStatus.FAILED, PaymentStatus.EXPIRED)


def parse_inbound_update(raw_body: bytes | str) -> tuple[dict, InboundStatusUpdate]:
    try:
        data = json.loads(raw_body)
    except (TypeError, ValueError) as exc:
        raise ValidationException("Request body must be a JSON object") from exc
    if not isinstance(data, dict):
        raise ValidationException("Request body must be a JSON object")

    try:
        update = InboundStatusUpdate.model_validate(data)
    except ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ()))
        raise ValidationException(f"Invalid or missing {field}: {first.get('msg')}") from exc

    if update.status not in {status.value for status in INBOUND_STATUSES}:
        raise ValidationException(ErrorMessage.INVALID_INBOUND_STATUS)
    if update.status == PaymentStatus.CONFIRMED.value and not update.tx_hash:
        raise ValidationException("txHash is required for confirmed updates")
    return data, update


def inbound_event_id(data: dict) -> str:
    return hashlib.sha256(canonical_json(data).encode("utf-8")).hexdigest()


async def process_inbound_update_service(
    raw_body: bytes,
    signature: str | None,
    session: AsyncSession,
    webhook_engine: WebhookDeliveryEngine,
) -> InboundWebhookResponse:
    if Config.INBOUND_WEBHOOK_SECRET:
        body_str = raw_body.decode("utf-8", errors="replace")
        if not signature or not verify_signature(body_str, signature, Config.INBOUND_WEBHOOK_SECRET):
            raise InvalidSignature()

    data, update = parse_inbound_update(raw_body)
    event_id = inbound_event_id(data)
    repository = PaymentRepository(session)

    existing = await repository.get_inbound_event(event_id)
    if existing and existing.processed:
        logger.info(f"Duplicate inbound update ignored payment={update.payment_id}")
        return InboundWebhookResponse(status=existing.status, paymentId=update.payment_id, duplicate=True)

    payment = await repository.get_payment(update.payment_id)
    if not payment:
        raise PaymentNotFound()

    # same guarded transitions as the merchant API
    if update.status == PaymentStatus.CONFIRMED.value:
        amount = None if update.amount_received is None else Decimal(str(update.amount_received))
        await confirm_payment_service(
            update.payment_id,
            update.tx_hash,
            session,
            webhook_engine,
            amount_received=amount,
        )
    elif update.status == PaymentStatus.FAILED.value:
        await fail_payment_service(
            update.payment_id, session, webhook_engine, reason="inbound status update"
        )
    else:
        await expire_payment_service(update.payment_id, session)

    await repository.record_inbound_event(
        InboundWebhookEvent(
            event_id=event_id,
            payment_id=update.payment_id,
            status=update.status,
            payload={**data, "occurredAt": update.occurred_at.isoformat()},
            processed=True,
        )
    )
    logger.info(f"Inbound update applied payment={update.payment_id} status={update.status}")
    return InboundWebhookResponse(status=update.status, paymentId=update.payment_id)
