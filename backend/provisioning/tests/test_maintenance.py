from datetime import datetime, timedelta, timezone as dt_timezone
from io import StringIO

from django.core.management import call_command
from django.test import SimpleTestCase, TestCase
from django.utils import timezone

from provisioning.models import (
    CREDENTIAL_EXPIRED,
    BillingCycle,
    PendingRegistration,
    RateLimitCounter,
    Restaurant,
    SecurityAuditEntry,
    Subscription,
)
from provisioning.tools.security import EventType, record_security_event
from provisioning.tools.signup import billing_period_end

from .helpers import make_pending, make_plan


class BillingPeriodTests(SimpleTestCase):
    def test_monthly_period_clamps_to_month_end(self):
        start = datetime(2025, 1, 31, 12, 0, tzinfo=dt_timezone.utc)
        self.assertEqual(billing_period_end(start, BillingCycle.MONTHLY), datetime(2025, 2, 28, 12, 0, tzinfo=dt_timezone.utc))

    def test_monthly_period_rolls_year(self):
        start = datetime(2025, 12, 15, tzinfo=dt_timezone.utc)
        self.assertEqual(billing_period_end(start, BillingCycle.MONTHLY), datetime(2026, 1, 15, tzinfo=dt_timezone.utc))

    def test_yearly_period_handles_leap_day(self):
        start = datetime(2024, 2, 29, tzinfo=dt_timezone.utc)
        self.assertEqual(billing_period_end(start, BillingCycle.YEARLY), datetime(2025, 2, 28, tzinfo=dt_timezone.utc))


class ExpirePendingRegistrationsCommandTests(TestCase):
    def test_only_lapsed_rows_are_expired(self):
        plan = make_plan()
        now = timezone.now()
        stale = make_pending(
            plan,
            created_at=now - timedelta(hours=2),
            expires_at=now - timedelta(hours=1),
        )
        fresh = make_pending(plan, email="c@d.com", gateway_subscription_id="sub_FreshSubscr001")

        out = StringIO()
        call_command("expire_pending_registrations", stdout=out)

        stale.refresh_from_db()
        fresh.refresh_from_db()
        self.assertEqual(stale.status, PendingRegistration.Status.EXPIRED)
        self.assertEqual(stale.password_credential, CREDENTIAL_EXPIRED)
        self.assertEqual(fresh.status, PendingRegistration.Status.PENDING)
        self.assertIn("Expired 1 pending registration", out.getvalue())
        self.assertEqual(SecurityAuditEntry.objects.filter(event_type=EventType.REGISTRATION_EXPIRED).count(), 1)


class ExpireSubscriptionsCommandTests(TestCase):
    def test_lapsed_active_subscriptions_expire(self):
        plan = make_plan()
        now = timezone.now()
        restaurant = Restaurant.objects.create(user_id="user-1", name="Joe's Diner", email="a@b.com", plan=plan)
        lapsed = Subscription.objects.create(
            user_id="user-1",
            restaurant=restaurant,
            plan=plan,
            gateway_subscription_id="sub_Lapsed00000001",
            billing_cycle=BillingCycle.MONTHLY,
            current_period_start=now - timedelta(days=40),
            current_period_end=now - timedelta(days=10),
        )
        current = Subscription.objects.create(
            user_id="user-1",
            restaurant=restaurant,
            plan=plan,
            gateway_subscription_id="sub_Current0000001",
            billing_cycle=BillingCycle.MONTHLY,
            current_period_start=now - timedelta(days=5),
            current_period_end=now + timedelta(days=25),
        )

        call_command("expire_subscriptions", stdout=StringIO())

        lapsed.refresh_from_db()
        current.refresh_from_db()
        self.assertEqual(lapsed.status, Subscription.Status.EXPIRED)
        self.assertEqual(current.status, Subscription.Status.ACTIVE)
        self.assertTrue(SecurityAuditEntry.objects.filter(event_type=EventType.SUBSCRIPTION_EXPIRED).exists())


class PruneSecurityStateCommandTests(TestCase):
    def test_prunes_old_audit_entries_and_idle_counters(self):
        now = timezone.now()
        old = record_security_event(EventType.SIGNATURE_MISMATCH)
        recent = record_security_event(EventType.SIGNATURE_MISMATCH)
        SecurityAuditEntry.objects.filter(pk=old.pk).update(created_at=now - timedelta(days=120))

        idle = RateLimitCounter.objects.create(identifier="ip-idle", action_type="registration")
        blocked = RateLimitCounter.objects.create(
            identifier="ip-blocked",
            action_type="registration",
            blocked_until=now + timedelta(hours=1),
        )
        RateLimitCounter.objects.filter(pk__in=[idle.pk, blocked.pk]).update(updated_at=now - timedelta(days=1))

        out = StringIO()
        call_command("prune_security_state", "--retention-days", "90", stdout=out)

        self.assertFalse(SecurityAuditEntry.objects.filter(pk=old.pk).exists())
        self.assertTrue(SecurityAuditEntry.objects.filter(pk=recent.pk).exists())
        self.assertFalse(RateLimitCounter.objects.filter(pk=idle.pk).exists())
        self.assertTrue(RateLimitCounter.objects.filter(pk=blocked.pk).exists())
        self.assertIn("Deleted 1 rate limit counter", out.getvalue())
