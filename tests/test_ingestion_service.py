import json
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest

from gateway.api.payments.repository import PaymentRepository
from gateway.api.payments.services.ingestion_service import (
    inbound_event_id,
    process_inbound_update_service,
)
from gateway.api.payments.services.payment_service import get_payment_service
from gateway.core.config import Config
from gateway.core.exceptions import (
    InvalidSignature,
    PaymentNotFound,
    StateConflict,
    ValidationException,
)
from gateway.core.security import sign_payload

TIMESTAMP = "2026-01-15T10:30:00Z"


def _body(**fields) -> bytes:
    data = {"paymentId": "pay_missing", "status": "confirmed", "txHash": "0xabc", "timestamp": TIMESTAMP}
    data.update(fields)
    return json.dumps({key: value for key, value in data.items() if value is not None}).encode()


async def test_confirmed_update_goes_through_lifecycle(session, pending_payment):
    engine = MagicMock()
    body = _body(paymentId=pending_payment.id, amountReceived=99.5)

    result = await process_inbound_update_service(body, None, session, engine)

    assert result.status == "confirmed"
    assert result.duplicate is False
    stored = await get_payment_service(pending_payment.id, session)
    assert stored.status == "confirmed"
    assert stored.tx_hash == "0xabc"
    assert stored.amount_received == Decimal("99.5")
    engine.notify.assert_called_once()

    event = await PaymentRepository(session).get_inbound_event(inbound_event_id(json.loads(body)))
    assert event.processed is True
    assert event.payload["occurredAt"] == "2026-01-15T10:30:00"


async def test_replayed_update_is_acknowledged_without_side_effects(session, pending_payment):
    engine = MagicMock()
    body = _body(paymentId=pending_payment.id)
    await process_inbound_update_service(body, None, session, engine)

    replay = await process_inbound_update_service(body, None, session, engine)

    assert replay.duplicate is True
    assert replay.status == "confirmed"
    engine.notify.assert_called_once()


async def test_update_cannot_move_a_terminal_payment(session, pending_payment):
    engine = MagicMock()
    await process_inbound_update_service(
        _body(paymentId=pending_payment.id, status="failed", txHash=None), None, session, engine
    )

    with pytest.raises(StateConflict):
        await process_inbound_update_service(
            _body(paymentId=pending_payment.id, timestamp="2026-01-15T10:31:00Z"),
            None,
            session,
            engine,
        )

    assert (await get_payment_service(pending_payment.id, session)).status == "failed"
    assert engine.notify.call_count == 1


async def test_expired_update_is_silent(session, pending_payment):
    engine = MagicMock()

    result = await process_inbound_update_service(
        _body(paymentId=pending_payment.id, status="expired", txHash=None), None, session, engine
    )

    assert result.status == "expired"
    engine.notify.assert_not_called()


async def test_unknown_payment_is_not_found(session, merchant):
    with pytest.raises(PaymentNotFound):
        await process_inbound_update_service(_body(), None, session, MagicMock())


@pytest.mark.parametrize(
    "body",
    [
        b"not json",
        b"[1, 2, 3]",
        _body(paymentId=""),
        json.dumps({"status": "confirmed", "txHash": "0xabc", "timestamp": TIMESTAMP}).encode(),
        _body(status="pending"),
        _body(status="refunded"),
        _body(txHash=None),
        _body(timestamp="yesterday"),
        _body(amountReceived="100"),
        _body(paymentId=123),
    ],
)
async def test_malformed_updates_are_rejected(session, pending_payment, body):
    engine = MagicMock()

    with pytest.raises(ValidationException):
        await process_inbound_update_service(body, None, session, engine)

    assert (await get_payment_service(pending_payment.id, session)).status == "pending"
    engine.notify.assert_not_called()


async def test_signature_required_when_inbound_secret_is_configured(session, pending_payment):
    body = _body(paymentId=pending_payment.id)
    engine = MagicMock()

    with patch.object(Config, "INBOUND_WEBHOOK_SECRET", "inbound-secret"):
        with pytest.raises(InvalidSignature):
            await process_inbound_update_service(body, None, session, engine)
        with pytest.raises(InvalidSignature):
            await process_inbound_update_service(
                body, sign_payload(body.decode(), "wrong"), session, engine
            )
        result = await process_inbound_update_service(
            body, sign_payload(body.decode(), "inbound-secret"), session, engine
        )

    assert result.status == "confirmed"


@pytest.mark.parametrize("amount", [-5, 0, -0.5, float("nan"), float("inf"), float("-inf")])
async def test_non_positive_or_non_finite_amount_is_rejected(session, pending_payment, amount):
    engine = MagicMock()
    body = _body(paymentId=pending_payment.id, amountReceived=amount)

    with pytest.raises(ValidationException):
        await process_inbound_update_service(body, None, session, engine)

    stored = await get_payment_service(pending_payment.id, session)
    assert stored.status == "pending"
    assert stored.amount_received is None
    engine.notify.assert_not_called()


async def test_bare_nan_token_is_rejected(session, pending_payment):
    body = (
        f'{{"paymentId":"{pending_payment.id}","status":"confirmed","txHash":"0xabc",'
        f'"amountReceived":NaN,"timestamp":"{TIMESTAMP}"}}'
    ).encode()

    with pytest.raises(ValidationException):
        await process_inbound_update_service(body, None, session, MagicMock())

    assert (await get_payment_service(pending_payment.id, session)).status == "pending"
