from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import JSON, Column, DateTime, Index, Numeric, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from sqlmodel import Field, SQLModel

from gateway.api.payments.helpers import utcnow

JSONVariant = JSON().with_variant(JSONB(), "postgresql")


class Payment(SQLModel, table=True):
    __tablename__ = "payments"
    __table_args__ = (
        Index("idx_payment_merchant_id", "merchant_id"),
        Index("idx_payment_status_expires_at", "status", "expires_at"),
    )

    id: str = Field(sa_column=Column("id", String(40), primary_key=True))
    merchant_id: str = Field(sa_column=Column("merchant_id", String(40), nullable=False))

    amount: Decimal = Field(sa_column=Column(Numeric(20, 8), nullable=False))
    currency: str = Field(sa_column=Column(String(10), nullable=False))
    network: str = Field(sa_column=Column(String(10), nullable=False))
    payment_method: str = Field(sa_column=Column(String(20), nullable=False))
    customer_reference: str = Field(sa_column=Column(String(255), nullable=False))

    status: str = Field(
        default="pending", sa_column=Column(String(20), nullable=False, server_default="pending")
    )
    payment_address: str = Field(sa_column=Column(String(128), nullable=False))
    payment_link: str = Field(sa_column=Column(String(255), nullable=False))

    tx_hash: str | None = Field(default=None, sa_column=Column(String(128)))
    amount_received: Decimal | None = Field(default=None, sa_column=Column(Numeric(20, 8)))
    confirmed_at: datetime | None = Field(default=None, sa_column=Column(DateTime))
    expires_at: datetime = Field(sa_column=Column(DateTime, nullable=False))

    callback_url: str | None = Field(default=None, sa_column=Column(Text))
    description: str | None = Field(default=None, sa_column=Column(Text))
    # "metadata" is reserved on declarative classes
    extra_metadata: dict | None = Field(
        default=None, sa_column=Column("metadata", JSONVariant)
    )

    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime, nullable=False, server_default=func.now()),
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime, nullable=False, server_default=func.now()),
    )
