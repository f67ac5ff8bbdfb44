from gateway.api.payments.models.payment import Payment
from gateway.api.payments.models.webhook_log import WebhookLog
from gateway.api.payments.models.inbound_webhook_event import InboundWebhookEvent


__all__ = [
    "InboundWebhookEvent",
    "Payment",
    "WebhookLog",
]
