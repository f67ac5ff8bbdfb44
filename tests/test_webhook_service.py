import json
from unittest.mock import patch

import httpx

from gateway.api.payments.repository import PaymentRepository
from gateway.api.payments.services.payment_service import (
    confirm_payment_service,
    create_payment_service,
)
from gateway.api.payments.services.webhook_service import (
    DeliveryOutcome,
    build_webhook_payload,
    sign_webhook_payload,
)
from gateway.api.merchants.models import Merchant
from gateway.core.security import canonical_json, verify_signature

from tests.conftest import MERCHANT_WEBHOOK_URL, WEBHOOK_SECRET, make_payment_request


def _assert_signed(body: dict) -> None:
    unsigned = dict(body)
    signature = unsigned.pop("signature")
    assert verify_signature(canonical_json(unsigned), signature, WEBHOOK_SECRET)


async def _logs_for(session_maker, payment_id):
    async with session_maker() as session:
        return await PaymentRepository(session).list_webhook_logs_by_payment(payment_id)


async def test_confirmed_payment_is_delivered_with_valid_signature(
    session, session_maker, pending_payment, make_webhook_engine
):
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"received": True})

    engine = make_webhook_engine(handler)
    await confirm_payment_service(pending_payment.id, "0xabc", session, engine)
    await engine.drain()

    assert len(requests) == 1
    assert str(requests[0].url) == MERCHANT_WEBHOOK_URL
    body = json.loads(requests[0].content)
    assert body["paymentId"] == pending_payment.id
    assert body["status"] == "confirmed"
    assert body["txHash"] == "0xabc"
    assert body["amount"] == 100
    _assert_signed(body)

    logs = await _logs_for(session_maker, pending_payment.id)
    assert len(logs) == 1
    assert logs[0].url == MERCHANT_WEBHOOK_URL
    assert logs[0].status == 200
    assert logs[0].outcome == DeliveryOutcome.DELIVERED.value
    assert logs[0].retries == 0
    assert logs[0].response == {"received": True}
    assert logs[0].next_retry_at is None
    _assert_signed(logs[0].payload)


async def test_application_rejection_is_recorded_and_not_retried(
    session, session_maker, pending_payment, make_webhook_engine
):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(500, text="merchant exploded")

    engine = make_webhook_engine(handler)
    await confirm_payment_service(pending_payment.id, "0xabc", session, engine)
    await engine.drain()

    assert len(calls) == 1
    logs = await _logs_for(session_maker, pending_payment.id)
    assert len(logs) == 1
    assert logs[0].status == 500
    assert logs[0].outcome == DeliveryOutcome.APPLICATION_REJECTED.value
    assert logs[0].response == "merchant exploded"
    assert logs[0].next_retry_at is None


async def test_transport_failures_retry_with_growing_delays_then_stop(
    session, session_maker, pending_payment, make_webhook_engine
):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    engine = make_webhook_engine(handler, max_attempts=3)
    with patch.object(engine, "_schedule_retry", wraps=engine._schedule_retry) as scheduled:
        await confirm_payment_service(pending_payment.id, "0xabc", session, engine)
        await engine.drain()

    # first attempt plus three retries
    assert len(calls) == 4
    delays = [call.args[0] for call in scheduled.call_args_list]
    assert len(delays) == 3
    assert all(earlier < later for earlier, later in zip(delays, delays[1:]))

    logs = await _logs_for(session_maker, pending_payment.id)
    assert [entry.retries for entry in logs] == [0, 1, 2, 3, 4]
    assert all(entry.outcome == DeliveryOutcome.TRANSPORT_FAILURE.value for entry in logs)
    assert all(entry.status == 0 for entry in logs)
    assert all(entry.next_retry_at is not None for entry in logs[:3])
    assert logs[-1].next_retry_at is None
    assert logs[-1].retries == engine.max_attempts + 1
    assert engine.in_flight == 0


async def test_recovers_when_a_retry_succeeds(
    session, session_maker, pending_payment, make_webhook_engine
):
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        if len(attempts) == 1:
            raise httpx.ReadTimeout("too slow", request=request)
        return httpx.Response(204)

    engine = make_webhook_engine(handler)
    await confirm_payment_service(pending_payment.id, "0xabc", session, engine)
    await engine.drain()

    logs = await _logs_for(session_maker, pending_payment.id)
    assert [entry.outcome for entry in logs] == [
        DeliveryOutcome.TRANSPORT_FAILURE.value,
        DeliveryOutcome.DELIVERED.value,
    ]
    assert logs[1].retries == 1
    assert logs[1].status == 204


async def test_merchant_without_webhook_url_is_skipped(session, session_maker, make_webhook_engine):
    async with session_maker() as setup:
        setup.add(Merchant(id="mer_quiet", name="Quiet", email="quiet@example.com"))
        await setup.commit()
    payment = await create_payment_service("mer_quiet", make_payment_request(), session)
    calls = []
    engine = make_webhook_engine(lambda request: calls.append(request) or httpx.Response(200))

    await confirm_payment_service(payment.id, "0xabc", session, engine)
    await engine.drain()

    assert calls == []
    assert await _logs_for(session_maker, payment.id) == []


async def test_retry_delay_is_linear_in_attempt(make_webhook_engine):
    engine = make_webhook_engine(lambda request: httpx.Response(200), base_delay_ms=5000)

    assert [engine.retry_delay(attempt) for attempt in range(3)] == [5.0, 10.0, 15.0]


async def test_payload_fields_and_resigning(pending_payment):
    payload = build_webhook_payload(pending_payment)

    assert list(payload) == [
        "paymentId",
        "merchantId",
        "status",
        "amount",
        "amountReceived",
        "currency",
        "txHash",
        "confirmedAt",
        "customerReference",
        "timestamp",
    ]
    signed = sign_webhook_payload(payload, WEBHOOK_SECRET)
    resigned = sign_webhook_payload(signed, WEBHOOK_SECRET)
    assert signed == resigned
    assert "signature" not in payload
    _assert_signed(signed)
