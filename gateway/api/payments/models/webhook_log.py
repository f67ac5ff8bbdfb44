from __future__ import annotations

from datetime import datetime
import uuid

from sqlalchemy import Column, DateTime, Index, Integer, String, Text
from sqlalchemy.sql import func
from sqlmodel import Field, SQLModel

from gateway.api.payments.helpers import utcnow
from gateway.api.payments.models.payment import JSONVariant


class WebhookLog(SQLModel, table=True):
    """One row per outbound delivery attempt; never deleted."""

    __tablename__ = "webhook_logs"
    __table_args__ = (
        Index("idx_webhook_log_payment_id", "payment_id"),
        Index("idx_webhook_log_merchant_id", "merchant_id"),
    )

    id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        sa_column=Column("id", String(40), primary_key=True),
    )
    payment_id: str = Field(sa_column=Column(String(40), nullable=False))
    merchant_id: str = Field(sa_column=Column(String(40), nullable=False))
    url: str = Field(sa_column=Column(Text, nullable=False))
    payload: dict | None = Field(default=None, sa_column=Column(JSONVariant))
    # HTTP status, 0 when the attempt never got a response
    status: int = Field(default=0, sa_column=Column(Integer, nullable=False, server_default="0"))
    outcome: str | None = Field(default=None, sa_column=Column(String(30)))
    response: dict | list | str | None = Field(default=None, sa_column=Column(JSONVariant))
    retries: int = Field(default=0, sa_column=Column(Integer, nullable=False, server_default="0"))
    next_retry_at: datetime | None = Field(default=None, sa_column=Column(DateTime))

    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime, nullable=False, server_default=func.now()),
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime, nullable=False, server_default=func.now()),
    )
