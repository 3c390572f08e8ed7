from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any

from django.conf import settings
from django.db import DatabaseError, transaction
from django.utils import timezone

from ...errors import (
    AbuseError,
    ClientInputError,
    GatewayNotConfigured,
    NotFoundError,
    ProvisioningFailed,
    UpstreamError,
)
from ...models import PendingRegistration, SubscriptionPlan
from ...validators import (
    normalize_billing_cycle,
    normalize_business_name,
    normalize_description,
    normalize_email,
    normalize_plan_id,
    validate_password,
)
from ..gateway import (
    GatewayConfigurationError,
    GatewayError,
    GatewayTimeout,
    RazorpayClient,
    get_gateway_credentials,
)
from ..identity import IdentityProviderError, get_identity_provider
from ..security import (
    ACTION_REGISTRATION,
    ClientFingerprint,
    EventType,
    check_rate_limit,
    hash_for_log,
    record_security_event,
)

logger = logging.getLogger(__name__)

DEFAULT_REGISTRATION_TTL_MINUTES = 30
GATEWAY_MESSAGE_MAX_LENGTH = 200


@dataclass(frozen=True)
class RegistrationTicket:
    """What the client needs to open the gateway checkout."""

    subscription_id: str
    plan_name: str
    amount: Decimal
    key_id: str

    def as_response(self) -> dict[str, Any]:
        return {
            "subscriptionId": self.subscription_id,
            "planName": self.plan_name,
            "amount": self.amount,
            "razorpayKeyId": self.key_id,
        }


def registration_ttl() -> timedelta:
    minutes = int(getattr(settings, "REGISTRATION_TTL_MINUTES", DEFAULT_REGISTRATION_TTL_MINUTES))
    return timedelta(minutes=max(minutes, 1))


def _gateway_message(exc: GatewayError) -> str:
    description = str(exc.description or "").strip()[:GATEWAY_MESSAGE_MAX_LENGTH]
    return description or "Failed to create subscription"


def _ensure_email_available(email: str, fingerprint: ClientFingerprint) -> None:
    try:
        exists = get_identity_provider().email_exists(email)
    except IdentityProviderError as exc:
        logger.error("Identity lookup failed during registration: %s", exc)
        raise UpstreamError("Unable to verify email. Please try again.") from exc

    if exists:
        record_security_event(
            EventType.DUPLICATE_EMAIL_ATTEMPT,
            fingerprint=fingerprint,
            email=email,
            error_message="Email already registered",
        )
        raise ClientInputError("Email already registered. Please sign in.", field="email")


def _store_pending_registration(
    *,
    email: str,
    password: str,
    restaurant_name: str,
    restaurant_description: str,
    plan: SubscriptionPlan,
    billing_cycle: str,
    subscription_id: str,
    now: datetime,
) -> PendingRegistration:
    try:
        with transaction.atomic():
            # A newer intake supersedes a live attempt; terminal rows are kept.
            PendingRegistration.objects.filter(
                email=email,
                status=PendingRegistration.Status.PENDING,
            ).delete()
            return PendingRegistration.objects.create(
                email=email,
                password_credential=password,
                restaurant_name=restaurant_name,
                restaurant_description=restaurant_description,
                plan=plan,
                billing_cycle=billing_cycle,
                gateway_subscription_id=subscription_id,
                status=PendingRegistration.Status.PENDING,
                created_at=now,
                expires_at=now + registration_ttl(),
            )
    except DatabaseError as exc:
        logger.exception("Failed to store pending registration for %s", hash_for_log(email))
        raise ProvisioningFailed("Failed to create pending registration") from exc


def begin_registration(
    *,
    email: Any,
    password: Any,
    restaurant_name: Any,
    plan_id: Any,
    billing_cycle: Any,
    restaurant_description: Any = "",
    fingerprint: ClientFingerprint,
    now: datetime | None = None,
) -> RegistrationTicket:
    """Validate a signup, open a gateway subscription and park the signup as pending.

    Nothing is persisted locally until the gateway has issued a subscription,
    so every failure before that point leaves no pending row behind.
    """
    email = normalize_email(email)
    password = validate_password(password)
    restaurant_name = normalize_business_name(restaurant_name)
    restaurant_description = normalize_description(restaurant_description)
    plan_id = normalize_plan_id(plan_id)
    billing_cycle = normalize_billing_cycle(billing_cycle)

    decision = check_rate_limit(fingerprint.ip_hash, ACTION_REGISTRATION)
    if not decision.allowed:
        record_security_event(
            EventType.RATE_LIMIT_EXCEEDED,
            fingerprint=fingerprint,
            email=email,
            error_message="Registration rate limit exceeded",
            metadata={"action": ACTION_REGISTRATION, "blocked_for_seconds": decision.blocked_for_seconds},
        )
        raise AbuseError(
            "Too many registration attempts. Please try again later.",
            wait=decision.blocked_for_seconds or 1,
        )

    _ensure_email_available(email, fingerprint)

    plan = SubscriptionPlan.objects.filter(pk=plan_id, is_active=True).first()
    if plan is None:
        raise NotFoundError("Plan not found or inactive")

    try:
        credentials = get_gateway_credentials()
    except GatewayConfigurationError as exc:
        logger.error("Razorpay credentials are not configured.")
        raise GatewayNotConfigured() from exc

    client = RazorpayClient(credentials)
    amount = plan.price_for(billing_cycle)

    try:
        gateway_plan_id = client.get_or_create_plan(
            plan_slug=plan.slug,
            period=billing_cycle,
            amount=amount,
        )
    except GatewayError as exc:
        record_security_event(
            EventType.RAZORPAY_PLAN_FAILED,
            fingerprint=fingerprint,
            email=email,
            error_message=str(exc),
            metadata={"plan_id": str(plan.pk), "billing_cycle": billing_cycle},
        )
        raise UpstreamError(
            "Failed to create subscription plan",
            retryable=isinstance(exc, GatewayTimeout),
        ) from exc

    notes = {
        "email_hash": hash_for_log(email),
        "plan_id": str(plan.pk),
        "billing_cycle": billing_cycle,
        "type": "registration",
    }
    try:
        subscription = client.create_subscription(
            plan_id=gateway_plan_id,
            billing_cycle=billing_cycle,
            notes=notes,
        )
    except GatewayError as exc:
        record_security_event(
            EventType.RAZORPAY_SUBSCRIPTION_FAILED,
            fingerprint=fingerprint,
            email=email,
            error_message=str(exc),
            metadata={"plan_id": str(plan.pk), "billing_cycle": billing_cycle},
        )
        raise UpstreamError(_gateway_message(exc), retryable=isinstance(exc, GatewayTimeout)) from exc

    subscription_id = str(subscription["id"]).strip()
    _store_pending_registration(
        email=email,
        password=password,
        restaurant_name=restaurant_name,
        restaurant_description=restaurant_description,
        plan=plan,
        billing_cycle=billing_cycle,
        subscription_id=subscription_id,
        now=now or timezone.now(),
    )

    record_security_event(
        EventType.REGISTRATION_INITIATED,
        fingerprint=fingerprint,
        email=email,
        success=True,
        metadata={"plan_name": plan.name, "billing_cycle": billing_cycle},
    )
    logger.info("Registration initiated for %s on %s", hash_for_log(email), subscription_id)

    return RegistrationTicket(
        subscription_id=subscription_id,
        plan_name=plan.name,
        amount=amount,
        key_id=credentials.key_id,
    )
