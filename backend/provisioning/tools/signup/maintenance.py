from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from django.conf import settings
from django.db.models import Q
from django.utils import timezone

from ...models import (
    CREDENTIAL_EXPIRED,
    PendingRegistration,
    RateLimitCounter,
    SecurityAuditEntry,
    Subscription,
)
from ..security import (
    ACTION_PAYMENT_VERIFY,
    ACTION_REGISTRATION,
    ClientFingerprint,
    EventType,
    record_security_event,
    rule_for,
)

logger = logging.getLogger(__name__)

DEFAULT_SECURITY_LOG_RETENTION_DAYS = 90


@dataclass(frozen=True)
class PruneResult:
    counters_deleted: int
    audit_entries_deleted: int


def expire_pending_registration(
    pending: PendingRegistration,
    *,
    fingerprint: ClientFingerprint | None = None,
    now: datetime | None = None,
) -> bool:
    """Move a pending row to ``expired`` and overwrite its credential.

    The update is conditional on the row still being pending so it never
    clobbers a registration another request has just completed.
    """
    now = now or timezone.now()
    updated = PendingRegistration.objects.filter(
        pk=pending.pk,
        status=PendingRegistration.Status.PENDING,
    ).update(
        status=PendingRegistration.Status.EXPIRED,
        password_credential=CREDENTIAL_EXPIRED,
        updated_at=now,
    )
    if not updated:
        return False

    pending.status = PendingRegistration.Status.EXPIRED
    pending.password_credential = CREDENTIAL_EXPIRED
    record_security_event(
        EventType.REGISTRATION_EXPIRED,
        fingerprint=fingerprint,
        email=pending.email,
        error_message="Registration expired",
        metadata={"subscription_id": pending.gateway_subscription_id},
    )
    return True


def expire_stale_registrations(now: datetime | None = None) -> int:
    now = now or timezone.now()
    stale = PendingRegistration.objects.filter(
        status=PendingRegistration.Status.PENDING,
        expires_at__lt=now,
    )
    expired = 0
    for pending in stale.iterator():
        if expire_pending_registration(pending, now=now):
            expired += 1
    if expired:
        logger.info("Expired %s stale pending registrations", expired)
    return expired


def expire_lapsed_subscriptions(now: datetime | None = None) -> int:
    now = now or timezone.now()
    lapsed = Subscription.objects.filter(
        status=Subscription.Status.ACTIVE,
        current_period_end__lt=now,
    )
    expired = 0
    for subscription in lapsed.iterator():
        updated = Subscription.objects.filter(
            pk=subscription.pk,
            status=Subscription.Status.ACTIVE,
        ).update(status=Subscription.Status.EXPIRED, updated_at=now)
        if not updated:
            continue
        expired += 1
        record_security_event(
            EventType.SUBSCRIPTION_EXPIRED,
            success=True,
            metadata={
                "subscription_id": subscription.pk,
                "user_id": subscription.user_id,
                "period_end": subscription.current_period_end.isoformat(),
            },
        )
    if expired:
        logger.info("Expired %s lapsed subscriptions", expired)
    return expired


def prune_security_state(
    now: datetime | None = None,
    *,
    retention_days: int | None = None,
) -> PruneResult:
    now = now or timezone.now()
    if retention_days is None:
        retention_days = int(
            getattr(settings, "SECURITY_LOG_RETENTION_DAYS", DEFAULT_SECURITY_LOG_RETENTION_DAYS)
        )

    rules = [rule_for(ACTION_REGISTRATION), rule_for(ACTION_PAYMENT_VERIFY)]
    idle_after = max(max(rule.window_seconds, rule.block_seconds) for rule in rules)
    counters_deleted, _ = RateLimitCounter.objects.filter(
        Q(blocked_until__isnull=True) | Q(blocked_until__lt=now),
        updated_at__lt=now - timedelta(seconds=idle_after),
    ).delete()

    # Queryset deletes bypass the model's append-only guard; this is the only caller that does so.
    audit_deleted, _ = SecurityAuditEntry.objects.filter(
        created_at__lt=now - timedelta(days=max(int(retention_days), 1)),
    ).delete()

    logger.info(
        "Pruned %s rate limit counters and %s audit entries",
        counters_deleted,
        audit_deleted,
    )
    return PruneResult(counters_deleted=counters_deleted, audit_entries_deleted=audit_deleted)
