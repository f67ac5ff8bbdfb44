from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from gateway.api.payments.helpers import isoformat, utcnow
from gateway.api.payments.models import Payment, WebhookLog
from gateway.api.payments.repository import PaymentRepository
from gateway.api.payments.schemas import (
    ConfirmPaymentRequest,
    CreatePaymentRequest,
    ExpirySweepResponse,
    FailPaymentRequest,
    InboundWebhookResponse,
    PaymentResponse,
    PaymentStatus,
    PaymentStatusResponse,
    WebhookLogResponse,
    WebhookVerifyRequest,
    WebhookVerifyResponse,
)
from gateway.api.payments.services.expiry_service import expire_pending_payments_service
from gateway.api.payments.services.ingestion_service import process_inbound_update_service
from gateway.api.payments.services.payment_service import (
    confirm_payment_service,
    create_payment_service,
    fail_payment_service,
    get_merchant_payment_service,
    list_payments_service,
)
from gateway.api.payments.services.webhook_service import (
    WebhookDeliveryEngine,
    get_webhook_engine,
    sign_webhook_payload,
)
from gateway.core.config import Config
from gateway.core.exceptions import ValidationException
from gateway.core.messages import ErrorMessage, SuccessMessage
from gateway.core.request_context import get_webhook_signature, require_merchant
from gateway.core.security import canonical_json, verify_signature
from gateway.db.main import get_session

payments_router = APIRouter()


def _to_payment_response(payment: Payment) -> PaymentResponse:
    data = payment.model_dump(exclude={"extra_metadata"})
    return PaymentResponse(**data, metadata=payment.extra_metadata)


def _to_status_response(payment: Payment) -> PaymentStatusResponse:
    return PaymentStatusResponse(**payment.model_dump(exclude={"extra_metadata"}))


def _to_log_response(entry: WebhookLog) -> WebhookLogResponse:
    return WebhookLogResponse(**entry.model_dump())


@payments_router.post(
    "/",
    response_model=PaymentResponse,
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
)
async def create_payment(
    request: Request,
    payload: CreatePaymentRequest,
    session: AsyncSession = Depends(get_session),
):
    merchant_id = require_merchant(request)
    payment = await create_payment_service(merchant_id, payload, session)
    return _to_payment_response(payment)


@payments_router.get(
    "/",
    response_model=list[PaymentResponse],
    response_model_by_alias=True,
)
async def list_payments(
    request: Request,
    session: AsyncSession = Depends(get_session),
):
    merchant_id = require_merchant(request)
    payments = await list_payments_service(merchant_id, session)
    return [_to_payment_response(payment) for payment in payments]


@payments_router.get(
    "/webhooks/logs",
    response_model=list[WebhookLogResponse],
    response_model_by_alias=True,
)
async def list_webhook_logs(
    request: Request,
    session: AsyncSession = Depends(get_session),
):
    merchant_id = require_merchant(request)
    entries = await PaymentRepository(session).list_webhook_logs_by_merchant(merchant_id)
    return [_to_log_response(entry) for entry in entries]


@payments_router.post(
    "/webhooks/verify",
    response_model=WebhookVerifyResponse,
    response_model_by_alias=True,
)
async def verify_webhook_signature(payload: WebhookVerifyRequest):
    if payload.payload is None or not payload.signature:
        raise ValidationException(ErrorMessage.MISSING_PAYLOAD_OR_SIGNATURE)

    if isinstance(payload.payload, dict):
        body = canonical_json(
            {key: value for key, value in payload.payload.items() if key != "signature"}
        )
    else:
        body = payload.payload

    is_valid = verify_signature(body, payload.signature, Config.WEBHOOK_SECRET)
    return WebhookVerifyResponse(
        isValid=is_valid,
        message=SuccessMessage.SIGNATURE_VALID if is_valid else SuccessMessage.SIGNATURE_INVALID,
    )


@payments_router.post("/webhooks/test")
async def send_test_webhook(request: Request):
    merchant_id = require_merchant(request)
    sample = {
        "paymentId": "pay_test",
        "merchantId": merchant_id,
        "status": PaymentStatus.CONFIRMED.value,
        "amount": 100,
        "amountReceived": 100,
        "currency": "USDT",
        "txHash": "0xtest",
        "confirmedAt": isoformat(utcnow()),
        "customerReference": "test_order",
        "timestamp": isoformat(utcnow()),
    }
    return sign_webhook_payload(sample, Config.WEBHOOK_SECRET)


@payments_router.post(
    "/webhooks/ingest",
    response_model=InboundWebhookResponse,
    response_model_by_alias=True,
)
async def ingest_status_update(
    request: Request,
    session: AsyncSession = Depends(get_session),
    webhook_engine: WebhookDeliveryEngine = Depends(get_webhook_engine),
):
    raw_body = await request.body()
    return await process_inbound_update_service(
        raw_body, get_webhook_signature(request), session, webhook_engine
    )


@payments_router.post(
    "/expire",
    response_model=ExpirySweepResponse,
)
async def run_expiry_sweep(
    request: Request,
    session: AsyncSession = Depends(get_session),
):
    require_merchant(request)
    expired = await expire_pending_payments_service(session)
    return ExpirySweepResponse(expired=len(expired))


@payments_router.get(
    "/{payment_id}",
    response_model=PaymentStatusResponse,
    response_model_by_alias=True,
)
async def get_payment_status(
    request: Request,
    payment_id: str,
    session: AsyncSession = Depends(get_session),
):
    merchant_id = require_merchant(request)
    payment = await get_merchant_payment_service(merchant_id, payment_id, session)
    return _to_status_response(payment)


@payments_router.post(
    "/{payment_id}/confirm",
    response_model=PaymentResponse,
    response_model_by_alias=True,
)
async def confirm_payment(
    request: Request,
    payment_id: str,
    payload: ConfirmPaymentRequest,
    session: AsyncSession = Depends(get_session),
    webhook_engine: WebhookDeliveryEngine = Depends(get_webhook_engine),
):
    merchant_id = require_merchant(request)
    payment = await confirm_payment_service(
        payment_id,
        payload.tx_hash,
        session,
        webhook_engine,
        amount_received=payload.amount_received,
        merchant_id=merchant_id,
    )
    return _to_payment_response(payment)


@payments_router.post(
    "/{payment_id}/fail",
    response_model=PaymentResponse,
    response_model_by_alias=True,
)
async def fail_payment(
    request: Request,
    payment_id: str,
    payload: FailPaymentRequest | None = None,
    session: AsyncSession = Depends(get_session),
    webhook_engine: WebhookDeliveryEngine = Depends(get_webhook_engine),
):
    merchant_id = require_merchant(request)
    payment = await fail_payment_service(
        payment_id,
        session,
        webhook_engine,
        reason=payload.reason if payload else None,
        merchant_id=merchant_id,
    )
    return _to_payment_response(payment)
