from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from gateway.api.merchants.models import Merchant
from gateway.api.payments.helpers import utcnow
from gateway.api.payments.models import InboundWebhookEvent, Payment, WebhookLog
from gateway.core.exceptions import PersistenceError
from gateway.core.middlewares import logger


class PaymentRepository:
    """Storage contract consumed by the payment lifecycle, delivery and sweeper code.

    Every write commits immediately. SQLAlchemy failures are rolled back and
    re-raised as ``PersistenceError``.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _commit(self, operation: str) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            logger.error(f"{operation} failed: {exc}")
            raise PersistenceError() from exc

    async def _fetch(self, stmt, operation: str):
        try:
            return await self.session.execute(stmt)
        except SQLAlchemyError as exc:
            await self.session.rollback()
            logger.error(f"{operation} failed: {exc}")
            raise PersistenceError() from exc

    # ---------- Payments ----------

    async def create_payment(self, payment: Payment) -> Payment:
        self.session.add(payment)
        await self._commit("create_payment")
        return payment

    async def get_payment(self, payment_id: str) -> Payment | None:
        stmt = (
            select(Payment)
            .where(Payment.id == payment_id)
            .execution_options(populate_existing=True)
        )
        return (await self._fetch(stmt, "get_payment")).scalars().first()

    async def update_payment_conditional(
        self,
        payment_id: str,
        expected_status: str,
        patch: dict[str, Any],
    ) -> Payment | None:
        """Apply ``patch`` only while the row still has ``expected_status``.

        The status check happens inside the UPDATE statement, so two concurrent
        writers cannot both win. Returns the updated row, or None when no row
        matched.
        """
        values = {"updated_at": utcnow(), **patch}
        stmt = (
            update(Payment)
            .where(Payment.id == payment_id, Payment.status == expected_status)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self._fetch(stmt, "update_payment_conditional")
        await self._commit("update_payment_conditional")
        if result.rowcount == 0:
            return None
        return await self.get_payment(payment_id)

    async def list_payments_by_merchant(self, merchant_id: str) -> list[Payment]:
        stmt = (
            select(Payment)
            .where(Payment.merchant_id == merchant_id)
            .order_by(Payment.created_at.desc())
        )
        return list((await self._fetch(stmt, "list_payments_by_merchant")).scalars().all())

    async def list_pending_expired(self, now: datetime) -> list[Payment]:
        stmt = (
            select(Payment)
            .where(Payment.status == "pending", Payment.expires_at < now)
            .order_by(Payment.expires_at)
        )
        return list((await self._fetch(stmt, "list_pending_expired")).scalars().all())

    # ---------- Merchants ----------

    async def get_merchant(self, merchant_id: str) -> Merchant | None:
        stmt = select(Merchant).where(Merchant.id == merchant_id)
        return (await self._fetch(stmt, "get_merchant")).scalars().first()

    # ---------- Outbound webhook audit trail ----------

    async def create_webhook_log(self, entry: WebhookLog) -> WebhookLog:
        self.session.add(entry)
        await self._commit("create_webhook_log")
        return entry

    async def update_webhook_log(self, log_id: str, patch: dict[str, Any]) -> None:
        stmt = (
            update(WebhookLog)
            .where(WebhookLog.id == log_id)
            .values(updated_at=utcnow(), **patch)
            .execution_options(synchronize_session=False)
        )
        await self._fetch(stmt, "update_webhook_log")
        await self._commit("update_webhook_log")

    async def list_webhook_logs_by_merchant(self, merchant_id: str) -> list[WebhookLog]:
        stmt = (
            select(WebhookLog)
            .where(WebhookLog.merchant_id == merchant_id)
            .order_by(WebhookLog.created_at.desc())
        )
        return list((await self._fetch(stmt, "list_webhook_logs_by_merchant")).scalars().all())

    async def list_webhook_logs_by_payment(self, payment_id: str) -> list[WebhookLog]:
        stmt = (
            select(WebhookLog)
            .where(WebhookLog.payment_id == payment_id)
            .order_by(WebhookLog.retries, WebhookLog.created_at)
        )
        return list((await self._fetch(stmt, "list_webhook_logs_by_payment")).scalars().all())

    # ---------- Inbound status updates ----------

    async def get_inbound_event(self, event_id: str) -> InboundWebhookEvent | None:
        stmt = select(InboundWebhookEvent).where(InboundWebhookEvent.event_id == event_id)
        return (await self._fetch(stmt, "get_inbound_event")).scalars().first()

    async def record_inbound_event(self, event: InboundWebhookEvent) -> InboundWebhookEvent:
        self.session.add(event)
        await self._commit("record_inbound_event")
        return event
