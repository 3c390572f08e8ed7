from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

from django.db import transaction
from django.utils import timezone

from ...errors import PartialProvisioningError, ProvisioningFailed, SecurityViolation
from ...models import (
    CREDENTIAL_CLEARED,
    CREDENTIAL_SENTINELS,
    BillingCycle,
    PaymentTransaction,
    PendingRegistration,
    Restaurant,
    Subscription,
)
from ..gateway import from_minor_units
from ..identity import IdentityProvider, IdentityProviderError, get_identity_provider
from ..security import ClientFingerprint, EventType, hash_for_log, record_security_event

logger = logging.getLogger(__name__)

STAGE_RESTAURANT = "restaurant"
STAGE_SUBSCRIPTION = "subscription"
STAGE_PAYMENT = "payment_transaction"
STAGE_COMPLETION = "pending_registration"


class RegistrationAlreadyConsumed(RuntimeError):
    """Another request completed or expired the pending row first."""


@dataclass(frozen=True)
class PaymentReceipt:
    payment_id: str
    subscription_id: str
    signature: str
    amount: Decimal
    currency: str
    method: str
    gateway_status: str

    @classmethod
    def from_gateway(
        cls,
        payment: dict[str, Any],
        *,
        payment_id: str,
        subscription_id: str,
        signature: str,
    ) -> "PaymentReceipt":
        return cls(
            payment_id=payment_id,
            subscription_id=subscription_id,
            signature=signature,
            amount=from_minor_units(payment.get("amount")),
            currency=str(payment.get("currency") or "INR").upper()[:3],
            method=str(payment.get("method") or "")[:32],
            gateway_status=str(payment.get("status") or ""),
        )


@dataclass(frozen=True)
class ProvisionedAccount:
    user_id: str
    email: str
    restaurant_id: int
    subscription_id: int
    has_orders_feature: bool


def _anchored_dt(year: int, month: int, anchor: datetime) -> datetime:
    last_day = calendar.monthrange(year, month)[1]
    return anchor.replace(year=year, month=month, day=min(anchor.day, last_day))


def billing_period_end(start: datetime, billing_cycle: str) -> datetime:
    """Return the end of the first billing period, clamping to the month's last day."""
    if billing_cycle == BillingCycle.YEARLY:
        return _anchored_dt(start.year + 1, start.month, start)
    if start.month == 12:
        return _anchored_dt(start.year + 1, 1, start)
    return _anchored_dt(start.year, start.month + 1, start)


def _delete_account(
    identity: IdentityProvider,
    user_id: str,
    *,
    email: str,
    fingerprint: ClientFingerprint,
) -> bool:
    try:
        identity.delete_user(user_id)
    except IdentityProviderError as exc:
        logger.exception("Failed to roll back account %s", user_id)
        record_security_event(
            EventType.ROLLBACK_FAILED,
            fingerprint=fingerprint,
            email=email,
            error_message=str(exc),
            metadata={"user_id": user_id},
        )
        return False
    logger.warning("Rolled back account %s after a provisioning failure", user_id)
    return True


def _write_local_records(
    pending: PendingRegistration,
    receipt: PaymentReceipt,
    *,
    user_id: str,
    fingerprint: ClientFingerprint,
    now: datetime,
    progress: list[str],
) -> tuple[Restaurant, Subscription]:
    with transaction.atomic():
        progress.append(STAGE_RESTAURANT)
        restaurant = Restaurant.objects.create(
            user_id=user_id,
            name=pending.restaurant_name,
            email=pending.email,
            description=pending.restaurant_description,
            plan=pending.plan,
            is_active=True,
        )

        progress.append(STAGE_SUBSCRIPTION)
        subscription = Subscription.objects.create(
            user_id=user_id,
            restaurant=restaurant,
            plan=pending.plan,
            gateway_subscription_id=pending.gateway_subscription_id,
            billing_cycle=pending.billing_cycle,
            status=Subscription.Status.ACTIVE,
            current_period_start=now,
            current_period_end=billing_period_end(now, pending.billing_cycle),
        )

        progress.append(STAGE_PAYMENT)
        PaymentTransaction.objects.get_or_create(
            gateway_payment_id=receipt.payment_id,
            defaults={
                "user_id": user_id,
                "subscription": subscription,
                "gateway_subscription_id": receipt.subscription_id,
                "gateway_signature": receipt.signature,
                "amount": receipt.amount,
                "currency": receipt.currency,
                "status": PaymentTransaction.Status.CAPTURED,
                "payment_method": receipt.method,
                "metadata": {
                    "type": "registration",
                    "ip_hash": fingerprint.ip_hash,
                    "gateway_status": receipt.gateway_status,
                },
            },
        )

        progress.append(STAGE_COMPLETION)
        # Only one request can flip the row out of pending.
        completed = (
            PendingRegistration.objects.filter(
                pk=pending.pk,
                status=PendingRegistration.Status.PENDING,
            )
            .exclude(password_credential__in=CREDENTIAL_SENTINELS)
            .update(
                password_credential=CREDENTIAL_CLEARED,
                status=PendingRegistration.Status.COMPLETED,
                updated_at=now,
            )
        )
        if completed != 1:
            raise RegistrationAlreadyConsumed(f"Pending registration {pending.pk} is no longer pending")

    return restaurant, subscription


def provision_account(
    pending: PendingRegistration,
    receipt: PaymentReceipt,
    *,
    fingerprint: ClientFingerprint,
    now: datetime | None = None,
) -> ProvisionedAccount:
    """Turn a paid pending registration into an account, restaurant and subscription.

    The account lives in the identity provider, outside the local
    transaction, so a failure in any local write deletes it again before the
    error is raised.
    """
    now = now or timezone.now()
    identity = get_identity_provider()
    email = pending.email

    try:
        user_id = identity.create_user(
            email=email,
            password=pending.password_credential,
            display_name=pending.restaurant_name,
        )
    except IdentityProviderError as exc:
        record_security_event(
            EventType.AUTH_CREATION_FAILED,
            fingerprint=fingerprint,
            email=email,
            error_message=str(exc),
            metadata={"subscription_id": receipt.subscription_id},
        )
        raise ProvisioningFailed() from exc

    progress: list[str] = []
    try:
        restaurant, subscription = _write_local_records(
            pending,
            receipt,
            user_id=user_id,
            fingerprint=fingerprint,
            now=now,
            progress=progress,
        )
    except Exception as exc:
        stage = progress[-1] if progress else STAGE_RESTAURANT
        rolled_back = _delete_account(identity, user_id, email=email, fingerprint=fingerprint)
        event_type = (
            EventType.RESTAURANT_CREATION_FAILED
            if stage == STAGE_RESTAURANT
            else EventType.PROVISIONING_ROLLED_BACK
        )
        record_security_event(
            event_type,
            fingerprint=fingerprint,
            email=email,
            error_message=str(exc),
            metadata={
                "stage": stage,
                "subscription_id": receipt.subscription_id,
                "account_rolled_back": rolled_back,
            },
        )
        if isinstance(exc, RegistrationAlreadyConsumed):
            raise SecurityViolation("Registration already processed") from exc
        logger.exception("Provisioning failed at %s for %s", stage, hash_for_log(email))
        raise PartialProvisioningError() from exc

    record_security_event(
        EventType.REGISTRATION_COMPLETED,
        fingerprint=fingerprint,
        email=email,
        success=True,
        metadata={
            "user_id": user_id,
            "plan_id": str(pending.plan_id),
            "billing_cycle": pending.billing_cycle,
        },
    )
    logger.info("Provisioned restaurant %s for %s", restaurant.pk, hash_for_log(email))

    return ProvisionedAccount(
        user_id=user_id,
        email=email,
        restaurant_id=restaurant.pk,
        subscription_id=subscription.pk,
        has_orders_feature=bool(pending.plan.has_orders_feature),
    )
