from __future__ import annotations

from typing import Annotated

from pydantic import BaseModel, Field, field_validator

from gateway.api.payments.schemas import _validate_http_url


class ApiCredentialsResponse(BaseModel):
    merchant_id: Annotated[str, Field(alias="merchantId")]
    api_key: Annotated[str, Field(alias="apiKey")]
    api_secret: Annotated[str, Field(alias="apiSecret")]

    model_config = {"populate_by_name": True}


class ApiSecretResponse(BaseModel):
    merchant_id: Annotated[str, Field(alias="merchantId")]
    api_secret: Annotated[str, Field(alias="apiSecret")]

    model_config = {"populate_by_name": True}


class WebhookSettingsRequest(BaseModel):
    webhook_url: Annotated[str | None, Field(alias="webhookUrl")] = None

    model_config = {"populate_by_name": True}

    @field_validator("webhook_url")
    @classmethod
    def validate_webhook_url(cls, value: str | None) -> str | None:
        return _validate_http_url(value)


class WebhookSettingsResponse(BaseModel):
    merchant_id: Annotated[str, Field(alias="merchantId")]
    webhook_url: Annotated[str | None, Field(alias="webhookUrl")] = None

    model_config = {"populate_by_name": True}
