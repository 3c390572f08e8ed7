from datetime import timedelta
from unittest.mock import Mock, patch

from django.core.exceptions import ValidationError
from django.db import DatabaseError
from django.test import RequestFactory, SimpleTestCase, TestCase, override_settings
from django.utils import timezone

from provisioning.models import RateLimitCounter, SecurityAuditEntry
from provisioning.tools.security import (
    ACTION_PAYMENT_VERIFY,
    ACTION_REGISTRATION,
    ClientFingerprint,
    EventType,
    check_rate_limit,
    hash_for_log,
    record_security_event,
    resolve_client_ip,
)


class FingerprintTests(SimpleTestCase):
    def setUp(self):
        self.factory = RequestFactory()

    def test_hash_for_log_is_short_and_stable(self):
        digest = hash_for_log("a@b.com")
        self.assertEqual(len(digest), 16)
        self.assertEqual(digest, hash_for_log("a@b.com"))
        self.assertNotEqual(digest, hash_for_log("b@b.com"))

    def test_client_ip_prefers_first_forwarded_hop(self):
        request = self.factory.post(
            "/",
            HTTP_X_FORWARDED_FOR="203.0.113.7, 10.0.0.1",
            HTTP_X_REAL_IP="198.51.100.2",
        )
        self.assertEqual(resolve_client_ip(request), "203.0.113.7")

    def test_client_ip_falls_back_to_real_ip_then_remote_addr(self):
        self.assertEqual(resolve_client_ip(self.factory.post("/", HTTP_X_REAL_IP="198.51.100.2")), "198.51.100.2")
        self.assertEqual(resolve_client_ip(self.factory.post("/", REMOTE_ADDR="192.0.2.9")), "192.0.2.9")

    def test_fingerprint_never_holds_raw_values(self):
        request = self.factory.post("/", REMOTE_ADDR="192.0.2.9", HTTP_USER_AGENT="pytest-agent")
        fingerprint = ClientFingerprint.from_request(request)
        self.assertEqual(fingerprint.ip_hash, hash_for_log("192.0.2.9"))
        self.assertEqual(fingerprint.user_agent_hash, hash_for_log("pytest-agent"))


class SecurityAuditTests(TestCase):
    def test_record_stores_only_hashes(self):
        fingerprint = ClientFingerprint(ip_hash=hash_for_log("192.0.2.9"), user_agent_hash="ua")
        entry = record_security_event(
            EventType.DUPLICATE_EMAIL_ATTEMPT,
            fingerprint=fingerprint,
            email="a@b.com",
            error_message="x" * 900,
        )

        entry.refresh_from_db()
        self.assertEqual(entry.email_hash, hash_for_log("a@b.com"))
        self.assertEqual(entry.ip_hash, hash_for_log("192.0.2.9"))
        self.assertEqual(len(entry.error_message), 500)
        self.assertFalse(entry.success)

    def test_entries_are_append_only(self):
        entry = record_security_event(EventType.REGISTRATION_INITIATED, success=True)
        entry.error_message = "changed"
        with self.assertRaises(ValidationError):
            entry.save()
        with self.assertRaises(ValidationError):
            entry.delete()

    def test_write_failure_does_not_propagate(self):
        with patch.object(SecurityAuditEntry, "save", side_effect=DatabaseError("down")):
            self.assertIsNone(record_security_event(EventType.SIGNATURE_MISMATCH))


@override_settings(RATE_LIMIT_BACKEND="database")
class DatabaseRateLimitTests(TestCase):
    def test_blocks_after_max_requests_within_window(self):
        now = timezone.now()
        decisions = [
            check_rate_limit("ip-1", ACTION_REGISTRATION, 3, 600, 1800, now=now + timedelta(seconds=i))
            for i in range(4)
        ]

        self.assertEqual([d.allowed for d in decisions], [True, True, True, False])
        self.assertEqual(decisions[-1].blocked_for_seconds, 1800)

        still_blocked = check_rate_limit("ip-1", ACTION_REGISTRATION, 3, 600, 1800, now=now + timedelta(minutes=10))
        self.assertFalse(still_blocked.allowed)
        self.assertGreater(still_blocked.blocked_for_seconds, 0)
        self.assertLess(still_blocked.blocked_for_seconds, 1800)

    def test_block_lapses_and_window_rolls(self):
        now = timezone.now()
        for i in range(3):
            check_rate_limit("ip-2", ACTION_REGISTRATION, 2, 60, 120, now=now + timedelta(seconds=i))

        after_block = check_rate_limit("ip-2", ACTION_REGISTRATION, 2, 60, 120, now=now + timedelta(seconds=200))
        self.assertTrue(after_block.allowed)

        counter = RateLimitCounter.objects.get(identifier="ip-2", action_type=ACTION_REGISTRATION)
        self.assertIsNone(counter.blocked_until)
        self.assertEqual(len(counter.hits), 1)

    def test_actions_are_counted_separately(self):
        now = timezone.now()
        check_rate_limit("ip-3", ACTION_REGISTRATION, 1, 600, 1800, now=now)
        self.assertFalse(check_rate_limit("ip-3", ACTION_REGISTRATION, 1, 600, 1800, now=now).allowed)
        self.assertTrue(check_rate_limit("ip-3", ACTION_PAYMENT_VERIFY, 1, 600, 1800, now=now).allowed)

    @override_settings(REGISTRATION_RATE_LIMIT=1)
    def test_defaults_come_from_settings(self):
        self.assertTrue(check_rate_limit("ip-4", ACTION_REGISTRATION).allowed)
        self.assertFalse(check_rate_limit("ip-4", ACTION_REGISTRATION).allowed)


@override_settings(RATE_LIMIT_BACKEND="supabase")
class SupabaseRateLimitTests(SimpleTestCase):
    @patch("provisioning.tools.security.rate_limit.get_supabase_client")
    def test_rpc_decision_is_returned(self, mock_get_client):
        rpc = mock_get_client.return_value.rpc
        rpc.return_value.execute.return_value = Mock(data=[{"allowed": False, "blocked_for_seconds": 900}])

        decision = check_rate_limit("ip-hash", ACTION_REGISTRATION)

        self.assertFalse(decision.allowed)
        self.assertEqual(decision.blocked_for_seconds, 900)
        rpc.assert_called_once_with(
            "check_rate_limit",
            {
                "p_identifier": "ip-hash",
                "p_action_type": ACTION_REGISTRATION,
                "p_max_requests": 5,
                "p_window_seconds": 600,
                "p_block_seconds": 1800,
            },
        )

    @patch("provisioning.tools.security.rate_limit.get_supabase_client")
    def test_rpc_failure_allows_request(self, mock_get_client):
        mock_get_client.return_value.rpc.side_effect = RuntimeError("rpc unavailable")
        self.assertTrue(check_rate_limit("ip-hash", ACTION_PAYMENT_VERIFY).allowed)
