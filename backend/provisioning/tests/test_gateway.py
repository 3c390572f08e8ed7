import io
import json
from decimal import Decimal
from unittest.mock import MagicMock, patch
from urllib.error import HTTPError, URLError

from django.test import SimpleTestCase, override_settings

from provisioning.tools.gateway import (
    GatewayConfigurationError,
    GatewayCredentials,
    GatewayError,
    GatewayTimeout,
    RazorpayClient,
    compute_payment_signature,
    from_minor_units,
    get_gateway_credentials,
    signatures_match,
    to_minor_units,
)


def _response(payload):
    response = MagicMock()
    response.read.return_value = json.dumps(payload).encode("utf-8")
    response.__enter__.return_value = response
    return response


def _http_error(code, payload):
    return HTTPError(
        "https://api.razorpay.com/v1/test",
        code,
        "error",
        {},
        io.BytesIO(json.dumps(payload).encode("utf-8")),
    )


class GatewayHelperTests(SimpleTestCase):
    def test_minor_unit_conversion(self):
        self.assertEqual(to_minor_units(Decimal("499.00")), 49900)
        self.assertEqual(to_minor_units("0.015"), 2)
        self.assertEqual(from_minor_units(49900), Decimal("499.00"))
        self.assertEqual(from_minor_units(None), Decimal("0.00"))

    def test_payment_signature_matches_known_digest(self):
        signature = compute_payment_signature("pay_ABCdef123456", "sub_ABCdef123456", "secret")
        self.assertEqual(len(signature), 64)
        self.assertTrue(signatures_match(signature, signature))
        tampered = signature[:-1] + ("1" if signature.endswith("0") else "0")
        self.assertFalse(signatures_match(signature, tampered))
        self.assertNotEqual(
            signature,
            compute_payment_signature("pay_ABCdef123456", "sub_ABCdef123456", "other-secret"),
        )

    @override_settings(RAZORPAY_KEY_ID="", RAZORPAY_KEY_SECRET="")
    def test_missing_credentials(self):
        with self.assertRaises(GatewayConfigurationError):
            get_gateway_credentials()


@override_settings(RAZORPAY_PLAN_CURRENCY="INR", RAZORPAY_PLAN_DESCRIPTION_PREFIX="AddMenu")
class RazorpayClientTests(SimpleTestCase):
    def setUp(self):
        self.client = RazorpayClient(
            GatewayCredentials(key_id="rzp_test_key123", key_secret="rzp_test_secret"),
            base_url="https://api.razorpay.test/v1",
            timeout=5,
        )

    @patch("provisioning.tools.gateway.razorpay.urlopen")
    def test_requests_use_basic_auth_and_timeout(self, mock_urlopen):
        mock_urlopen.return_value = _response({"id": "pay_ABCdef123456", "status": "captured"})

        payment = self.client.fetch_payment("pay_ABCdef123456")

        self.assertEqual(payment["status"], "captured")
        request = mock_urlopen.call_args.args[0]
        self.assertEqual(request.full_url, "https://api.razorpay.test/v1/payments/pay_ABCdef123456")
        self.assertTrue(request.get_header("Authorization").startswith("Basic "))
        self.assertEqual(mock_urlopen.call_args.kwargs["timeout"], 5)

    @patch("provisioning.tools.gateway.razorpay.urlopen")
    def test_get_or_create_plan_reuses_matching_plan(self, mock_urlopen):
        mock_urlopen.return_value = _response(
            {
                "items": [
                    {"id": "plan_wrongamount", "period": "monthly", "item": {"name": "basic-monthly", "amount": 100}},
                    {"id": "plan_match123456", "period": "monthly", "item": {"name": "basic-monthly", "amount": 49900}},
                ]
            }
        )

        plan_id = self.client.get_or_create_plan(plan_slug="basic", period="monthly", amount=Decimal("499"))

        self.assertEqual(plan_id, "plan_match123456")
        self.assertEqual(mock_urlopen.call_count, 1)

    @patch("provisioning.tools.gateway.razorpay.urlopen")
    def test_get_or_create_plan_creates_missing_plan(self, mock_urlopen):
        mock_urlopen.side_effect = [
            _response({"items": []}),
            _response({"id": "plan_new123456789"}),
        ]

        plan_id = self.client.get_or_create_plan(plan_slug="basic", period="yearly", amount=Decimal("4999"))

        self.assertEqual(plan_id, "plan_new123456789")
        create_request = mock_urlopen.call_args_list[1].args[0]
        body = json.loads(create_request.data.decode("utf-8"))
        self.assertEqual(body["period"], "yearly")
        self.assertEqual(body["interval"], 1)
        self.assertEqual(
            body["item"],
            {
                "name": "basic-yearly",
                "amount": 499900,
                "currency": "INR",
                "description": "AddMenu basic yearly subscription",
            },
        )

    @patch("provisioning.tools.gateway.razorpay.urlopen")
    def test_create_subscription_sends_total_count_and_notes(self, mock_urlopen):
        mock_urlopen.return_value = _response({"id": "sub_ABCdef123456", "status": "created"})

        self.client.create_subscription(
            plan_id="plan_match123456",
            billing_cycle="yearly",
            notes={"email_hash": "abc", "type": "registration"},
        )

        body = json.loads(mock_urlopen.call_args.args[0].data.decode("utf-8"))
        self.assertEqual(body["total_count"], 10)
        self.assertEqual(body["notes"], {"email_hash": "abc", "type": "registration"})

    @patch("provisioning.tools.gateway.razorpay.urlopen")
    def test_http_error_carries_gateway_description(self, mock_urlopen):
        mock_urlopen.side_effect = _http_error(400, {"error": {"description": "The id provided does not exist"}})

        with self.assertRaises(GatewayError) as ctx:
            self.client.fetch_payment("pay_ABCdef123456")

        self.assertEqual(ctx.exception.status, 400)
        self.assertEqual(ctx.exception.description, "The id provided does not exist")
        self.assertNotIsInstance(ctx.exception, GatewayTimeout)

    @patch("provisioning.tools.gateway.razorpay.urlopen")
    def test_timeouts_are_distinguished(self, mock_urlopen):
        mock_urlopen.side_effect = URLError(TimeoutError("timed out"))
        with self.assertRaises(GatewayTimeout):
            self.client.fetch_payment("pay_ABCdef123456")

        mock_urlopen.side_effect = TimeoutError("timed out")
        with self.assertRaises(GatewayTimeout):
            self.client.fetch_payment("pay_ABCdef123456")

    @patch("provisioning.tools.gateway.razorpay.urlopen")
    def test_subscription_without_id_is_an_error(self, mock_urlopen):
        mock_urlopen.return_value = _response({"status": "created"})
        with self.assertRaises(GatewayError):
            self.client.create_subscription(plan_id="plan_x", billing_cycle="monthly", notes={})
