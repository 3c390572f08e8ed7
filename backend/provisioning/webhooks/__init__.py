from .handlers import (
    EVENT_HANDLERS,
    handle_payment_captured,
    handle_payment_failed,
    handle_subscription_activated,
    handle_subscription_cancelled,
    handle_subscription_charged,
    handle_subscription_halted,
    handle_subscription_pending,
)
from .receiver import RazorpayWebhookView
from .verification import WebhookConfigurationError, WebhookVerificationError, _verify_webhook

__all__ = [
    "RazorpayWebhookView",
    "EVENT_HANDLERS",
    "WebhookConfigurationError",
    "WebhookVerificationError",
    "_verify_webhook",
    "handle_subscription_activated",
    "handle_subscription_charged",
    "handle_subscription_pending",
    "handle_subscription_halted",
    "handle_subscription_cancelled",
    "handle_payment_captured",
    "handle_payment_failed",
]
