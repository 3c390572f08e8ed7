from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from django.utils import timezone

from ...errors import (
    AbuseError,
    GatewayNotConfigured,
    NotFoundError,
    SecurityViolation,
    UpstreamError,
)
from ...models import PendingRegistration
from ...validators import (
    InvalidInput,
    validate_payment_id,
    validate_signature,
    validate_subscription_id,
)
from ..gateway import (
    SUCCESSFUL_PAYMENT_STATUSES,
    GatewayConfigurationError,
    GatewayError,
    GatewayTimeout,
    RazorpayClient,
    compute_payment_signature,
    get_gateway_credentials,
    signatures_match,
)
from ..security import (
    ACTION_PAYMENT_VERIFY,
    ClientFingerprint,
    EventType,
    check_rate_limit,
    record_security_event,
)
from .maintenance import expire_pending_registration
from .provisioner import PaymentReceipt, provision_account

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VerificationResult:
    email: str
    has_orders_feature: bool

    def as_response(self) -> dict[str, Any]:
        return {
            "success": True,
            "email": self.email,
            "hasOrdersFeature": self.has_orders_feature,
        }


def _checked(validator, value: Any, event_type: str, fingerprint: ClientFingerprint) -> str:
    try:
        return validator(value)
    except InvalidInput as exc:
        record_security_event(event_type, fingerprint=fingerprint, error_message=str(exc.detail))
        raise


def verify_payment(
    *,
    payment_id: Any,
    subscription_id: Any,
    signature: Any,
    fingerprint: ClientFingerprint,
    now: datetime | None = None,
) -> VerificationResult:
    """Confirm a gateway payment callback and provision the matching registration.

    Checks run cheapest first: shapes, quota, signature, the gateway's own
    record of the payment, then local state. No store read happens before
    the signature has been proven.
    """
    payment_id = _checked(validate_payment_id, payment_id, EventType.INVALID_PAYMENT_ID, fingerprint)
    subscription_id = _checked(
        validate_subscription_id, subscription_id, EventType.INVALID_SUBSCRIPTION_ID, fingerprint
    )
    signature = _checked(validate_signature, signature, EventType.INVALID_SIGNATURE_FORMAT, fingerprint)

    decision = check_rate_limit(fingerprint.ip_hash, ACTION_PAYMENT_VERIFY)
    if not decision.allowed:
        record_security_event(
            EventType.RATE_LIMIT_EXCEEDED,
            fingerprint=fingerprint,
            error_message="Payment verification rate limit exceeded",
            metadata={"action": ACTION_PAYMENT_VERIFY, "blocked_for_seconds": decision.blocked_for_seconds},
        )
        raise AbuseError(
            "Too many verification attempts. Please try again later.",
            wait=decision.blocked_for_seconds or 1,
        )

    try:
        credentials = get_gateway_credentials()
    except GatewayConfigurationError as exc:
        logger.error("Razorpay credentials are not configured.")
        raise GatewayNotConfigured() from exc

    expected = compute_payment_signature(payment_id, subscription_id, credentials.key_secret)
    if not signatures_match(expected, signature):
        record_security_event(
            EventType.SIGNATURE_MISMATCH,
            fingerprint=fingerprint,
            error_message="Payment signature mismatch",
            metadata={"subscription_id": subscription_id},
        )
        logger.error("Payment signature mismatch for %s", subscription_id)
        raise SecurityViolation("Invalid payment signature")

    try:
        payment = RazorpayClient(credentials).fetch_payment(payment_id)
    except GatewayTimeout as exc:
        record_security_event(
            EventType.RAZORPAY_API_ERROR,
            fingerprint=fingerprint,
            error_message=str(exc),
            metadata={"payment_id": payment_id, "timeout": True},
        )
        raise UpstreamError(
            "Payment verification is temporarily unavailable. Please retry.",
            retryable=True,
        ) from exc
    except GatewayError as exc:
        record_security_event(
            EventType.RAZORPAY_API_ERROR,
            fingerprint=fingerprint,
            error_message=str(exc),
            metadata={"payment_id": payment_id, "status": exc.status},
        )
        raise UpstreamError("Failed to verify payment") from exc

    payment_status = str(payment.get("status") or "").strip().lower()
    if payment_status not in SUCCESSFUL_PAYMENT_STATUSES:
        record_security_event(
            EventType.PAYMENT_NOT_SUCCESSFUL,
            fingerprint=fingerprint,
            error_message=f"Payment status: {payment_status or 'unknown'}",
            metadata={"payment_id": payment_id},
        )
        raise SecurityViolation("Payment not successful")

    pending = (
        PendingRegistration.objects.select_related("plan")
        .filter(
            gateway_subscription_id=subscription_id,
            status=PendingRegistration.Status.PENDING,
        )
        .first()
    )
    if pending is None:
        record_security_event(
            EventType.PENDING_REGISTRATION_NOT_FOUND,
            fingerprint=fingerprint,
            error_message="No pending registration for subscription",
            metadata={"subscription_id": subscription_id},
        )
        raise NotFoundError("Registration not found or expired")

    now = now or timezone.now()
    if pending.is_expired(now):
        expire_pending_registration(pending, fingerprint=fingerprint, now=now)
        raise SecurityViolation("Registration expired. Please start over.")

    if pending.credential_consumed:
        record_security_event(
            EventType.REGISTRATION_ALREADY_PROCESSED,
            fingerprint=fingerprint,
            email=pending.email,
            error_message="Credential already consumed",
            metadata={"subscription_id": subscription_id},
        )
        raise SecurityViolation("Registration already processed")

    receipt = PaymentReceipt.from_gateway(
        payment,
        payment_id=payment_id,
        subscription_id=subscription_id,
        signature=signature,
    )
    account = provision_account(pending, receipt, fingerprint=fingerprint, now=now)
    return VerificationResult(email=account.email, has_orders_feature=account.has_orders_feature)
