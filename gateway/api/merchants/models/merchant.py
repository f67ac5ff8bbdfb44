from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Index, String, Text
from sqlalchemy.sql import func
from sqlmodel import Field, SQLModel

from gateway.api.payments.helpers import utcnow


class Merchant(SQLModel, table=True):
    __tablename__ = "merchants"
    __table_args__ = (
        Index("idx_merchant_api_key_hash", "api_key_hash"),
    )

    id: str = Field(sa_column=Column("id", String(40), primary_key=True))
    name: str = Field(sa_column=Column(String(255), nullable=False))
    email: str = Field(sa_column=Column(String(255), unique=True, nullable=False))
    website: str | None = Field(default=None, sa_column=Column(Text))
    webhook_url: str | None = Field(default=None, sa_column=Column(Text))

    api_key_hash: str | None = Field(default=None, sa_column=Column(String(64)))
    api_secret_encrypted: str | None = Field(default=None, sa_column=Column(Text))
    secret_revealed_at: datetime | None = Field(default=None, sa_column=Column(DateTime))

    is_active: bool = Field(
        default=True, sa_column=Column(Boolean, nullable=False, server_default="true")
    )
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime, nullable=False, server_default=func.now()),
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now()),
    )
