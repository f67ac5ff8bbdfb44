from __future__ import annotations

from datetime import timedelta
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from gateway.api.payments.helpers import (
    build_payment_link,
    generate_payment_address,
    generate_payment_id,
    utcnow,
)
from gateway.api.payments.models import Payment
from gateway.api.payments.repository import PaymentRepository
from gateway.api.payments.schemas import (
    CreatePaymentRequest,
    PaymentCurrency,
    PaymentMethod,
    PaymentNetwork,
    PaymentStatus,
)
from gateway.api.payments.services.webhook_service import WebhookDeliveryEngine
from gateway.core.config import Config
from gateway.core.exceptions import (
    AccessDenied,
    PaymentNotFound,
    StateConflict,
    ValidationException,
)
from gateway.core.messages import ErrorMessage
from gateway.core.middlewares import logger

# pending is the only state with outgoing edges
ALLOWED_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset(
        {PaymentStatus.CONFIRMED, PaymentStatus.FAILED, PaymentStatus.EXPIRED}
    ),
}


def _enum_value(enum_cls, value: Any, message: str) -> str:
    try:
        return enum_cls(value).value
    except ValueError as exc:
        raise ValidationException(message) from exc


def _positive_amount(value: Any) -> Decimal:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationException(ErrorMessage.INVALID_AMOUNT) from exc
    if not amount.is_finite() or amount <= 0:
        raise ValidationException(ErrorMessage.INVALID_AMOUNT)
    return amount


def _validate_create_request(payload: CreatePaymentRequest) -> dict[str, Any]:
    currency = _enum_value(PaymentCurrency, payload.currency, ErrorMessage.UNSUPPORTED_CURRENCY)
    network = _enum_value(PaymentNetwork, payload.network, ErrorMessage.UNSUPPORTED_NETWORK)
    method = _enum_value(
        PaymentMethod, payload.payment_method, ErrorMessage.UNSUPPORTED_PAYMENT_METHOD
    )

    amount = _positive_amount(payload.amount)

    if not payload.customer_reference or not str(payload.customer_reference).strip():
        raise ValidationException(ErrorMessage.CUSTOMER_REFERENCE_REQUIRED)

    return {
        "amount": amount,
        "currency": currency,
        "network": network,
        "payment_method": method,
    }


async def create_payment_service(
    merchant_id: str,
    payload: CreatePaymentRequest,
    session: AsyncSession,
) -> Payment:
    fields = _validate_create_request(payload)

    payment_id = generate_payment_id()
    now = utcnow()
    payment = Payment(
        id=payment_id,
        merchant_id=merchant_id,
        customer_reference=payload.customer_reference,
        status=PaymentStatus.PENDING.value,
        payment_address=generate_payment_address(fields["network"]),
        payment_link=build_payment_link(payment_id),
        expires_at=now + timedelta(minutes=Config.PAYMENT_TIMEOUT_MINUTES),
        callback_url=payload.callback_url,
        description=payload.description,
        extra_metadata=payload.metadata,
        created_at=now,
        updated_at=now,
        **fields,
    )
    await PaymentRepository(session).create_payment(payment)

    logger.info(
        f"Payment created payment={payment.id} merchant={merchant_id} "
        f"amount={payment.amount} currency={payment.currency}"
    )
    return payment


async def get_payment_service(payment_id: str, session: AsyncSession) -> Payment:
    payment = await PaymentRepository(session).get_payment(payment_id)
    if not payment:
        raise PaymentNotFound()
    return payment


async def get_merchant_payment_service(
    merchant_id: str, payment_id: str, session: AsyncSession
) -> Payment:
    payment = await get_payment_service(payment_id, session)
    if payment.merchant_id != merchant_id:
        raise AccessDenied()
    return payment


async def list_payments_service(merchant_id: str, session: AsyncSession) -> list[Payment]:
    return await PaymentRepository(session).list_payments_by_merchant(merchant_id)


async def transition_payment(
    session: AsyncSession,
    payment_id: str,
    target: PaymentStatus,
    patch: dict[str, Any] | None = None,
    *,
    current: Payment | None = None,
) -> Payment:
    """Move a pending payment into ``target``.

    This is the only code path that writes ``status``. The write is a
    conditional update on ``status == pending``; losing a race to another
    writer surfaces as ``StateConflict`` and changes nothing.
    """
    repository = PaymentRepository(session)
    payment = current or await repository.get_payment(payment_id)
    if not payment:
        raise PaymentNotFound()

    source = PaymentStatus(payment.status)
    if target not in ALLOWED_TRANSITIONS.get(source, frozenset()):
        logger.warning(
            f"Rejected transition payment={payment_id} {source.value} -> {target.value}"
        )
        raise StateConflict()

    updated = await repository.update_payment_conditional(
        payment_id,
        expected_status=source.value,
        patch={**(patch or {}), "status": target.value},
    )
    if updated is None:
        logger.warning(f"Lost transition race payment={payment_id} -> {target.value}")
        raise StateConflict()
    return updated


async def confirm_payment_service(
    payment_id: str,
    tx_hash: str,
    session: AsyncSession,
    webhook_engine: WebhookDeliveryEngine,
    amount_received: Decimal | None = None,
    merchant_id: str | None = None,
) -> Payment:
    if not tx_hash:
        raise ValidationException("txHash is required")

    payment = (
        await get_merchant_payment_service(merchant_id, payment_id, session)
        if merchant_id
        else await get_payment_service(payment_id, session)
    )
    received = payment.amount if amount_received is None else _positive_amount(amount_received)
    updated = await transition_payment(
        session,
        payment_id,
        PaymentStatus.CONFIRMED,
        {
            "tx_hash": tx_hash,
            "amount_received": received,
            "confirmed_at": utcnow(),
        },
        current=payment,
    )

    logger.info(f"Payment confirmed payment={payment_id} tx_hash={tx_hash}")
    webhook_engine.notify(updated)
    return updated


async def fail_payment_service(
    payment_id: str,
    session: AsyncSession,
    webhook_engine: WebhookDeliveryEngine,
    reason: str | None = None,
    merchant_id: str | None = None,
) -> Payment:
    payment = (
        await get_merchant_payment_service(merchant_id, payment_id, session)
        if merchant_id
        else await get_payment_service(payment_id, session)
    )
    updated = await transition_payment(
        session, payment_id, PaymentStatus.FAILED, current=payment
    )

    logger.warning(f"Payment failed payment={payment_id} reason={reason}")
    webhook_engine.notify(updated)
    return updated


async def expire_payment_service(payment_id: str, session: AsyncSession) -> Payment:
    # expiry is silent: merchants are not notified
    updated = await transition_payment(session, payment_id, PaymentStatus.EXPIRED)
    logger.info(f"Payment expired payment={payment_id} merchant={updated.merchant_id}")
    return updated
