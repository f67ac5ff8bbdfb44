from __future__ import annotations

import asyncio
from datetime import timedelta
from decimal import Decimal
from enum import Enum
from typing import Any

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gateway.api.payments.helpers import isoformat, utcnow
from gateway.api.payments.models import Payment, WebhookLog
from gateway.api.payments.repository import PaymentRepository
from gateway.core.config import Config
from gateway.core.exceptions import PersistenceError
from gateway.core.middlewares import logger
from gateway.core.security import canonical_json, sign_payload


class DeliveryOutcome(str, Enum):
    DELIVERED = "delivered"
    APPLICATION_REJECTED = "application_rejected"
    TRANSPORT_FAILURE = "transport_failure"


def _as_number(value: Decimal | None) -> int | float | None:
    if value is None:
        return None
    if value == value.to_integral_value():
        return int(value)
    return float(value)


def build_webhook_payload(payment: Payment) -> dict[str, Any]:
    return {
        "paymentId": payment.id,
        "merchantId": payment.merchant_id,
        "status": payment.status,
        "amount": _as_number(payment.amount),
        "amountReceived": _as_number(payment.amount_received),
        "currency": payment.currency,
        "txHash": payment.tx_hash,
        "confirmedAt": isoformat(payment.confirmed_at),
        "customerReference": payment.customer_reference,
        "timestamp": isoformat(utcnow()),
    }


def sign_webhook_payload(payload: dict[str, Any], secret: str) -> dict[str, Any]:
    """Return a copy of ``payload`` with its HMAC appended as ``signature``."""
    unsigned = {key: value for key, value in payload.items() if key != "signature"}
    signature = sign_payload(canonical_json(unsigned), secret)
    return {**unsigned, "signature": signature}


def _parse_response_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text or None


class WebhookDeliveryEngine:
    """Delivers signed payment notifications to merchant callback URLs.

    Each delivery runs as an asyncio task on the running loop. Transport
    failures are retried with a linear backoff scheduled through
    ``loop.call_later``; non-2xx responses are recorded and not retried.
    Every attempt leaves a ``WebhookLog`` row behind.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        *,
        secret: str = Config.WEBHOOK_SECRET,
        max_attempts: int = Config.WEBHOOK_RETRY_ATTEMPTS,
        base_delay_ms: int = Config.WEBHOOK_RETRY_DELAY_MS,
        timeout: float = Config.WEBHOOK_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.session_maker = session_maker
        self.secret = secret
        self.max_attempts = max_attempts
        self.base_delay_ms = base_delay_ms
        self.timeout = timeout
        self._transport = transport
        self._tasks: set[asyncio.Task] = set()
        self._timers: set[asyncio.TimerHandle] = set()
        self._pending = 0
        self._idle = asyncio.Event()
        self._idle.set()

    # ---------- bookkeeping ----------

    def _hold(self) -> None:
        self._pending += 1
        self._idle.clear()

    def _release(self) -> None:
        self._pending -= 1
        if self._pending <= 0:
            self._pending = 0
            self._idle.set()

    def _spawn(self, coro) -> asyncio.Task:
        self._hold()
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)

        def _done(finished: asyncio.Task) -> None:
            self._tasks.discard(finished)
            if not finished.cancelled() and finished.exception() is not None:
                logger.error(f"Webhook delivery task crashed: {finished.exception()!r}")
            self._release()

        task.add_done_callback(_done)
        return task

    @property
    def in_flight(self) -> int:
        return self._pending

    async def drain(self) -> None:
        """Wait until every scheduled attempt and retry has finished."""
        await self._idle.wait()

    async def shutdown(self, timeout: float = 30.0) -> None:
        try:
            await asyncio.wait_for(self.drain(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"Webhook engine shutting down with {self._pending} deliveries still pending"
            )
            for handle in list(self._timers):
                handle.cancel()
            self._timers.clear()
            for task in list(self._tasks):
                task.cancel()

    # ---------- public API ----------

    def retry_delay(self, attempt: int) -> float:
        """Seconds to wait before retrying after failed ``attempt``."""
        return self.base_delay_ms * (attempt + 1) / 1000

    def notify(self, payment: Payment) -> asyncio.Task:
        """Schedule a notification for ``payment`` and return immediately."""
        payload = sign_webhook_payload(build_webhook_payload(payment), self.secret)
        return self._spawn(self._start(payment.id, payment.merchant_id, payload))

    async def _start(self, payment_id: str, merchant_id: str, payload: dict[str, Any]) -> None:
        async with self.session_maker() as session:
            merchant = await PaymentRepository(session).get_merchant(merchant_id)
        if not merchant or not merchant.webhook_url:
            logger.debug(f"No webhook URL for merchant={merchant_id}, skipping payment={payment_id}")
            return
        await self.deliver(merchant.webhook_url, payload, payment_id, merchant_id, attempt=0)

    async def deliver(
        self,
        url: str,
        payload: dict[str, Any],
        payment_id: str,
        merchant_id: str,
        attempt: int = 0,
    ) -> DeliveryOutcome:
        log_id = await self._open_log(url, payload, payment_id, merchant_id, attempt)

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    url,
                    content=canonical_json(payload).encode("utf-8"),
                    headers={"Content-Type": "application/json"},
                )
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            await self._handle_transport_failure(
                url, payload, payment_id, merchant_id, attempt, log_id, exc
            )
            return DeliveryOutcome.TRANSPORT_FAILURE

        outcome = (
            DeliveryOutcome.DELIVERED
            if response.is_success
            else DeliveryOutcome.APPLICATION_REJECTED
        )
        logger.info(
            f"Webhook sent payment={payment_id} merchant={merchant_id} "
            f"status={response.status_code} outcome={outcome.value}"
        )
        await self._close_log(
            log_id,
            {
                "status": response.status_code,
                "response": _parse_response_body(response),
                "outcome": outcome.value,
            },
        )
        return outcome

    # ---------- retries ----------

    async def _handle_transport_failure(
        self,
        url: str,
        payload: dict[str, Any],
        payment_id: str,
        merchant_id: str,
        attempt: int,
        log_id: str | None,
        exc: Exception,
    ) -> None:
        if attempt < self.max_attempts:
            delay = self.retry_delay(attempt)
            logger.warning(
                f"Webhook send failed, retrying payment={payment_id} attempt={attempt} "
                f"in {delay:.1f}s: {exc!r}"
            )
            await self._close_log(
                log_id,
                {
                    "outcome": DeliveryOutcome.TRANSPORT_FAILURE.value,
                    "next_retry_at": utcnow() + timedelta(seconds=delay),
                },
            )
            self._schedule_retry(delay, url, payload, payment_id, merchant_id, attempt + 1)
            return

        logger.error(
            f"Webhook send failed after retries payment={payment_id} "
            f"merchant={merchant_id}: {exc!r}"
        )
        await self._close_log(log_id, {"outcome": DeliveryOutcome.TRANSPORT_FAILURE.value})
        await self._open_log(
            url,
            payload,
            payment_id,
            merchant_id,
            attempt + 1,
            outcome=DeliveryOutcome.TRANSPORT_FAILURE.value,
        )

    def _schedule_retry(
        self,
        delay: float,
        url: str,
        payload: dict[str, Any],
        payment_id: str,
        merchant_id: str,
        attempt: int,
    ) -> None:
        self._hold()
        handle: asyncio.TimerHandle | None = None

        def _fire() -> None:
            self._timers.discard(handle)
            self._spawn(self.deliver(url, payload, payment_id, merchant_id, attempt))
            self._release()

        handle = asyncio.get_running_loop().call_later(delay, _fire)
        self._timers.add(handle)

    # ---------- audit trail (best effort) ----------

    async def _open_log(
        self,
        url: str,
        payload: dict[str, Any],
        payment_id: str,
        merchant_id: str,
        attempt: int,
        outcome: str | None = None,
    ) -> str | None:
        entry = WebhookLog(
            payment_id=payment_id,
            merchant_id=merchant_id,
            url=url,
            payload=payload,
            status=0,
            retries=attempt,
            outcome=outcome,
            next_retry_at=None,
        )
        try:
            async with self.session_maker() as session:
                await PaymentRepository(session).create_webhook_log(entry)
        except PersistenceError:
            logger.error(f"Failed to persist webhook log payment={payment_id} attempt={attempt}")
            return None
        return entry.id

    async def _close_log(self, log_id: str | None, patch: dict[str, Any]) -> None:
        if log_id is None:
            return
        try:
            async with self.session_maker() as session:
                await PaymentRepository(session).update_webhook_log(log_id, patch)
        except PersistenceError:
            logger.error(f"Failed to update webhook log id={log_id}")


_engine: WebhookDeliveryEngine | None = None


def get_webhook_engine() -> WebhookDeliveryEngine:
    global _engine
    if _engine is None:
        from gateway.db.main import async_session_maker

        _engine = WebhookDeliveryEngine(async_session_maker)
    return _engine
