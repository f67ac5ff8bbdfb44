from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
import math
from typing import Annotated, Any
from urllib.parse import urlparse

from pydantic import (
    BaseModel,
    Field,
    StrictFloat,
    StrictInt,
    StrictStr,
    field_serializer,
    field_validator,
)

from gateway.api.payments.helpers import isoformat, parse_timestamp


class PaymentCurrency(str, Enum):
    USDT = "USDT"
    BNB = "BNB"
    ETH = "ETH"
    BTC = "BTC"


class PaymentNetwork(str, Enum):
    TRC20 = "TRC20"
    BSC = "BSC"
    ERC20 = "ERC20"
    BITCOIN = "BITCOIN"


class PaymentMethod(str, Enum):
    BINANCE_PAY = "binance_pay"
    USDT_TRC20 = "usdt_trc20"
    CRYPTO_WALLET = "crypto_wallet"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    EXPIRED = "expired"



def _validate_http_url(value: str | None) -> str | None:
    if value is None:
        return None
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError("must be an absolute http(s) URL")
    return value


class CreatePaymentRequest(BaseModel):
    amount: Annotated[Decimal, Field(gt=0)]
    currency: PaymentCurrency
    network: PaymentNetwork
    payment_method: Annotated[PaymentMethod, Field(alias="paymentMethod")]
    customer_reference: Annotated[str, Field(alias="customerReference", min_length=1)]
    callback_url: Annotated[str | None, Field(alias="callbackUrl")] = None
    description: str | None = None
    metadata: dict[str, Any] | None = None

    model_config = {"populate_by_name": True}

    @field_validator("callback_url")
    @classmethod
    def validate_callback_url(cls, value: str | None) -> str | None:
        return _validate_http_url(value)


class _ResponseModel(BaseModel):
    model_config = {"populate_by_name": True}

    @field_serializer("amount", "amount_received", check_fields=False)
    def serialize_amount(self, value: Decimal | None) -> float | None:
        return float(value) if value is not None else None

    @field_serializer(
        "expires_at", "confirmed_at", "created_at", "updated_at",
        check_fields=False,
    )
    def serialize_datetime(self, value: datetime | None) -> str | None:
        return isoformat(value)


class PaymentResponse(_ResponseModel):
    id: str
    merchant_id: Annotated[str, Field(alias="merchantId")]
    amount: Decimal
    currency: str
    network: str
    payment_method: Annotated[str, Field(alias="paymentMethod")]
    customer_reference: Annotated[str, Field(alias="customerReference")]
    status: str
    payment_address: Annotated[str, Field(alias="paymentAddress")]
    payment_link: Annotated[str, Field(alias="paymentLink")]
    tx_hash: Annotated[str | None, Field(alias="txHash")] = None
    amount_received: Annotated[Decimal | None, Field(alias="amountReceived")] = None
    expires_at: Annotated[datetime, Field(alias="expiresAt")]
    confirmed_at: Annotated[datetime | None, Field(alias="confirmedAt")] = None
    callback_url: Annotated[str | None, Field(alias="callbackUrl")] = None
    description: str | None = None
    metadata: dict[str, Any] | None = None
    created_at: Annotated[datetime, Field(alias="createdAt")]
    updated_at: Annotated[datetime, Field(alias="updatedAt")]


class PaymentStatusResponse(_ResponseModel):
    id: str
    status: str
    amount: Decimal
    amount_received: Annotated[Decimal | None, Field(alias="amountReceived")] = None
    currency: str
    tx_hash: Annotated[str | None, Field(alias="txHash")] = None
    confirmed_at: Annotated[datetime | None, Field(alias="confirmedAt")] = None
    expires_at: Annotated[datetime, Field(alias="expiresAt")]
    network: str


class ConfirmPaymentRequest(BaseModel):
    tx_hash: Annotated[str, Field(alias="txHash", min_length=1)]
    amount_received: Annotated[Decimal | None, Field(alias="amountReceived", gt=0)] = None

    model_config = {"populate_by_name": True}


class FailPaymentRequest(BaseModel):
    reason: str | None = None


class ExpirySweepResponse(BaseModel):
    expired: int


class WebhookVerifyRequest(BaseModel):
    payload: dict[str, Any] | str | None = None
    signature: str | None = None


class WebhookVerifyResponse(BaseModel):
    is_valid: Annotated[bool, Field(alias="isValid")]
    message: str

    model_config = {"populate_by_name": True}


class WebhookLogResponse(_ResponseModel):
    id: str
    payment_id: Annotated[str, Field(alias="paymentId")]
    merchant_id: Annotated[str, Field(alias="merchantId")]
    url: str
    payload: dict[str, Any] | None = None
    status: int
    outcome: str | None = None
    response: Any = None
    retries: int
    next_retry_at: Annotated[datetime | None, Field(alias="nextRetryAt")] = None
    created_at: Annotated[datetime, Field(alias="createdAt")]
    updated_at: Annotated[datetime, Field(alias="updatedAt")]

    @field_serializer("next_retry_at")
    def serialize_next_retry_at(self, value: datetime | None) -> str | None:
        return isoformat(value)


class InboundStatusUpdate(BaseModel):
    payment_id: Annotated[StrictStr, Field(alias="paymentId", min_length=1)]
    status: StrictStr
    tx_hash: Annotated[StrictStr | None, Field(alias="txHash")] = None
    amount_received: Annotated[
        StrictInt | StrictFloat | None, Field(alias="amountReceived")
    ] = None
    timestamp: StrictStr

    model_config = {"populate_by_name": True}

    @field_validator("timestamp")
    @classmethod
    def validate_timestamp(cls, value: str) -> str:
        try:
            parse_timestamp(value)
        except ValueError as exc:
            raise ValueError("timestamp must be ISO-8601") from exc
        return value

    @field_validator("amount_received")
    @classmethod
    def validate_amount_received(cls, value: int | float | None) -> int | float | None:
        if value is not None and (not math.isfinite(value) or value <= 0):
            raise ValueError("amountReceived must be a finite number greater than 0")
        return value

    @property
    def occurred_at(self) -> datetime:
        return parse_timestamp(self.timestamp)


class InboundWebhookResponse(BaseModel):
    status: str
    payment_id: Annotated[str, Field(alias="paymentId")]
    duplicate: bool = False

    model_config = {"populate_by_name": True}
