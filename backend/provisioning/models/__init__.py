from .catalog import BillingCycle, SubscriptionPlan
from .registration import (
    CREDENTIAL_CLEARED,
    CREDENTIAL_EXPIRED,
    CREDENTIAL_SENTINELS,
    PaymentTransaction,
    PendingRegistration,
    Restaurant,
    Subscription,
)
from .security import RateLimitCounter, SecurityAuditEntry, WebhookEvent

__all__ = [
    "BillingCycle",
    "SubscriptionPlan",
    "CREDENTIAL_CLEARED",
    "CREDENTIAL_EXPIRED",
    "CREDENTIAL_SENTINELS",
    "PendingRegistration",
    "Restaurant",
    "Subscription",
    "PaymentTransaction",
    "SecurityAuditEntry",
    "RateLimitCounter",
    "WebhookEvent",
]
