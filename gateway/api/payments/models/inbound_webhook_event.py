from __future__ import annotations

from datetime import datetime
import uuid

from sqlalchemy import Boolean, Column, DateTime, Index, String
from sqlalchemy.sql import func
from sqlmodel import Field, SQLModel

from gateway.api.payments.helpers import utcnow
from gateway.api.payments.models.payment import JSONVariant


class InboundWebhookEvent(SQLModel, table=True):
    __tablename__ = "inbound_webhook_events"
    __table_args__ = (
        Index("idx_inbound_webhook_payment_id", "payment_id"),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True, nullable=False)
    event_id: str = Field(
        sa_column=Column("event_id", String(64), unique=True, nullable=False)
    )
    payment_id: str = Field(sa_column=Column(String(40), nullable=False))
    status: str = Field(sa_column=Column(String(20), nullable=False))
    payload: dict | None = Field(default=None, sa_column=Column(JSONVariant))
    processed: bool = Field(
        default=False, sa_column=Column(Boolean, nullable=False, server_default="false")
    )
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime, nullable=False, server_default=func.now()),
    )
