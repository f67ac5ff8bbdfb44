from __future__ import annotations

from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from gateway.api.payments.helpers import utcnow
from gateway.api.payments.repository import PaymentRepository
from gateway.api.payments.services.payment_service import expire_payment_service
from gateway.core.exceptions import PersistenceError, StateConflict
from gateway.core.middlewares import logger


async def expire_pending_payments_service(
    session: AsyncSession,
    now: datetime | None = None,
) -> list[str]:
    """Expire every pending payment whose deadline is before ``now``.

    Records are handled one at a time; a failure on one does not stop the
    batch. Returns the ids that were actually expired.
    """
    now = now or utcnow()
    candidates = await PaymentRepository(session).list_pending_expired(now)
    candidate_ids = [payment.id for payment in candidates]

    expired: list[str] = []
    for payment_id in candidate_ids:
        try:
            await expire_payment_service(payment_id, session)
        except StateConflict:
            # settled by a concurrent confirm/fail
            continue
        except PersistenceError as exc:
            logger.error(f"Expiry failed payment={payment_id}: {exc}")
            continue
        expired.append(payment_id)

    if candidate_ids:
        logger.info(f"Expiry sweep expired {len(expired)} of {len(candidate_ids)} payments")
    return expired
