from __future__ import annotations

import logging
from typing import Any

from django.db import transaction
from django.utils import timezone as django_timezone

from ..models import PaymentTransaction, Subscription
from ..tools.gateway import from_minor_units
from .helpers import _entity, _normalize_text, _resolve_subscription, _safe_datetime

logger = logging.getLogger(__name__)


def _set_subscription_status(data: dict[str, Any], status: str, **extra: Any) -> int:
    entity = _entity(data, "subscription")
    gateway_subscription_id = _normalize_text(entity.get("id"))
    if not gateway_subscription_id:
        logger.warning("Skipping subscription webhook without a subscription id.")
        return 0

    updated = Subscription.objects.filter(gateway_subscription_id=gateway_subscription_id).update(
        status=status,
        updated_at=django_timezone.now(),
        **extra,
    )
    if not updated:
        logger.debug("No local subscription for %s", gateway_subscription_id)
    return updated


def _period_updates(entity: dict[str, Any]) -> dict[str, Any]:
    updates: dict[str, Any] = {}
    period_start = _safe_datetime(entity.get("current_start"))
    period_end = _safe_datetime(entity.get("current_end"))
    if period_start:
        updates["current_period_start"] = period_start
    if period_end:
        updates["current_period_end"] = period_end
    return updates


def handle_subscription_activated(data: dict[str, Any]) -> None:
    entity = _entity(data, "subscription")
    _set_subscription_status(data, Subscription.Status.ACTIVE, **_period_updates(entity))


def handle_subscription_pending(data: dict[str, Any]) -> None:
    _set_subscription_status(data, Subscription.Status.PENDING)


def handle_subscription_halted(data: dict[str, Any]) -> None:
    _set_subscription_status(data, Subscription.Status.HALTED)


def handle_subscription_cancelled(data: dict[str, Any]) -> None:
    _set_subscription_status(data, Subscription.Status.CANCELLED, cancelled_at=django_timezone.now())


def _record_payment(
    payment: dict[str, Any],
    *,
    subscription: Subscription,
    status: str,
    event_type: str,
) -> None:
    payment_id = _normalize_text(payment.get("id"))
    if not payment_id:
        return

    metadata: dict[str, Any] = {"type": "webhook", "event": event_type}
    if status == PaymentTransaction.Status.FAILED:
        metadata["error_code"] = _normalize_text(payment.get("error_code"))
        metadata["error_description"] = _normalize_text(payment.get("error_description"))[:300]

    PaymentTransaction.objects.get_or_create(
        gateway_payment_id=payment_id,
        defaults={
            "user_id": subscription.user_id,
            "subscription": subscription,
            "gateway_subscription_id": subscription.gateway_subscription_id or "",
            "amount": from_minor_units(payment.get("amount")),
            "currency": _normalize_text(payment.get("currency")).upper()[:3] or "INR",
            "status": status,
            "payment_method": _normalize_text(payment.get("method"))[:32],
            "metadata": metadata,
        },
    )


def handle_subscription_charged(data: dict[str, Any]) -> None:
    entity = _entity(data, "subscription")
    payment = _entity(data, "payment")
    subscription = _resolve_subscription(_normalize_text(entity.get("id")))
    if subscription is None:
        logger.debug("Skipping subscription.charged for unknown subscription.")
        return

    with transaction.atomic():
        _record_payment(
            payment,
            subscription=subscription,
            status=PaymentTransaction.Status.CAPTURED,
            event_type="subscription.charged",
        )
        updates = _period_updates(entity)
        if updates:
            Subscription.objects.filter(pk=subscription.pk).update(
                updated_at=django_timezone.now(),
                **updates,
            )


def _handle_payment(data: dict[str, Any], *, status: str, event_type: str) -> None:
    payment = _entity(data, "payment")
    subscription = _resolve_subscription(_normalize_text(payment.get("subscription_id")))
    if subscription is None:
        logger.debug("Skipping %s: no local subscription for payment.", event_type)
        return
    _record_payment(payment, subscription=subscription, status=status, event_type=event_type)


def handle_payment_captured(data: dict[str, Any]) -> None:
    _handle_payment(data, status=PaymentTransaction.Status.CAPTURED, event_type="payment.captured")


def handle_payment_failed(data: dict[str, Any]) -> None:
    _handle_payment(data, status=PaymentTransaction.Status.FAILED, event_type="payment.failed")


EVENT_HANDLERS: dict[str, Any] = {
    "subscription.activated": handle_subscription_activated,
    "subscription.charged": handle_subscription_charged,
    "subscription.pending": handle_subscription_pending,
    "subscription.halted": handle_subscription_halted,
    "subscription.cancelled": handle_subscription_cancelled,
    "payment.captured": handle_payment_captured,
    "payment.failed": handle_payment_failed,
}
