from django.test import SimpleTestCase

from provisioning.validators import (
    InvalidInput,
    normalize_billing_cycle,
    normalize_business_name,
    normalize_description,
    normalize_email,
    normalize_plan_id,
    sanitize_text,
    validate_password,
    validate_payment_id,
    validate_signature,
    validate_subscription_id,
)


class SanitizeTextTests(SimpleTestCase):
    def test_strips_angle_brackets_and_control_characters(self):
        self.assertEqual(sanitize_text("  <b>Joe's\x00 Diner</b>\n "), "bJoe's Diner/b")

    def test_caps_length(self):
        self.assertEqual(len(sanitize_text("x" * 900)), 500)

    def test_empty_values_become_blank(self):
        self.assertEqual(sanitize_text(None), "")
        self.assertEqual(normalize_description(None), "")


class EmailAndPasswordTests(SimpleTestCase):
    def test_email_is_trimmed_and_lowercased(self):
        self.assertEqual(normalize_email("  A@B.COM "), "a@b.com")

    def test_rejects_malformed_email(self):
        for value in (
            "",
            "no-at-sign",
            "a@b",
            "a b@c.com",
            "a@b." + "c" * 260,
            "a..b@example.com",
            ".a@example.com",
            "a@-x.com",
        ):
            with self.subTest(value=value):
                with self.assertRaises(InvalidInput) as ctx:
                    normalize_email(value)
                self.assertEqual(str(ctx.exception.detail), "Invalid email format")

    def test_password_length_bounds(self):
        self.assertEqual(validate_password("12345678"), "12345678")
        with self.assertRaisesMessage(InvalidInput, "Password must be at least 8 characters"):
            validate_password("short")
        with self.assertRaisesMessage(InvalidInput, "Password too long"):
            validate_password("x" * 129)

    def test_password_is_not_trimmed(self):
        self.assertEqual(validate_password("  spaced  "), "  spaced  ")


class BusinessFieldTests(SimpleTestCase):
    def test_business_name_bounds(self):
        self.assertEqual(normalize_business_name(" Joe's Diner "), "Joe's Diner")
        with self.assertRaises(InvalidInput):
            normalize_business_name("J")
        with self.assertRaises(InvalidInput):
            normalize_business_name("J" * 101)

    def test_business_name_is_measured_after_sanitizing(self):
        with self.assertRaises(InvalidInput):
            normalize_business_name("<>a")

    def test_plan_id_must_be_a_uuid(self):
        self.assertEqual(
            normalize_plan_id("6F1C2B9E-4A3D-4E5F-8A7B-1C2D3E4F5A6B"),
            "6f1c2b9e-4a3d-4e5f-8a7b-1c2d3e4f5a6b",
        )
        for value in ("basic", "6f1c2b9e-4a3d-0e5f-8a7b-1c2d3e4f5a6b", "6f1c2b9e-4a3d-4e5f-ca7b-1c2d3e4f5a6b"):
            with self.subTest(value=value):
                with self.assertRaisesMessage(InvalidInput, "Invalid plan ID"):
                    normalize_plan_id(value)

    def test_billing_cycle(self):
        self.assertEqual(normalize_billing_cycle("Monthly"), "monthly")
        self.assertEqual(normalize_billing_cycle("yearly"), "yearly")
        with self.assertRaisesMessage(InvalidInput, "Invalid billing cycle"):
            normalize_billing_cycle("weekly")


class GatewayIdentifierTests(SimpleTestCase):
    def test_payment_and_subscription_ids(self):
        self.assertEqual(validate_payment_id("pay_ABCdef123456"), "pay_ABCdef123456")
        self.assertEqual(validate_subscription_id("sub_ABCdef123456"), "sub_ABCdef123456")

        for value in ("pay_short", "pay_" + "a" * 21, "sub_ABCdef123456", "pay_ABC-def12345", 12345):
            with self.subTest(value=value):
                with self.assertRaisesMessage(InvalidInput, "Invalid payment ID"):
                    validate_payment_id(value)

        with self.assertRaisesMessage(InvalidInput, "Invalid subscription ID"):
            validate_subscription_id("pay_ABCdef123456")

    def test_signature_must_be_lowercase_hex(self):
        self.assertEqual(validate_signature("a" * 64), "a" * 64)
        for value in ("A" * 64, "a" * 63, "g" * 64, None):
            with self.subTest(value=value):
                with self.assertRaisesMessage(InvalidInput, "Invalid signature format"):
                    validate_signature(value)
