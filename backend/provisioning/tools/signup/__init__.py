from .intake import RegistrationTicket, begin_registration, registration_ttl
from .maintenance import (
    PruneResult,
    expire_lapsed_subscriptions,
    expire_pending_registration,
    expire_stale_registrations,
    prune_security_state,
)
from .provisioner import (
    PaymentReceipt,
    ProvisionedAccount,
    RegistrationAlreadyConsumed,
    billing_period_end,
    provision_account,
)
from .verification import VerificationResult, verify_payment

__all__ = [
    "RegistrationTicket",
    "begin_registration",
    "registration_ttl",
    "PruneResult",
    "expire_lapsed_subscriptions",
    "expire_pending_registration",
    "expire_stale_registrations",
    "prune_security_state",
    "PaymentReceipt",
    "ProvisionedAccount",
    "RegistrationAlreadyConsumed",
    "billing_period_end",
    "provision_account",
    "VerificationResult",
    "verify_payment",
]
