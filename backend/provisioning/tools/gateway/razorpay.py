from __future__ import annotations

import base64
import hashlib
import hmac
import json
import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.parse import quote, urlencode
from urllib.request import Request, urlopen

from django.conf import settings

logger = logging.getLogger(__name__)

DEFAULT_API_BASE_URL = "https://api.razorpay.com/v1"
MINOR_UNITS_PER_MAJOR = 100
PLAN_PAGE_SIZE = 100
SUCCESSFUL_PAYMENT_STATUSES = frozenset({"captured", "authorized"})

# Number of billing cycles a registration subscription runs for (~10 years).
SUBSCRIPTION_TOTAL_COUNT = {"monthly": 120, "yearly": 10}


class GatewayError(RuntimeError):
    """Raised when the payment gateway rejects or fails a request."""

    def __init__(self, message: str, *, status: int | None = None, description: str = ""):
        super().__init__(message)
        self.status = status
        self.description = description


class GatewayTimeout(GatewayError):
    pass


class GatewayConfigurationError(GatewayError):
    pass


def _setting(name: str, default: str = "") -> str:
    return str(getattr(settings, name, default) or "").strip()


def to_minor_units(amount: Any) -> int:
    """Convert a major-unit amount (rupees) to the gateway's minor units (paise)."""
    value = Decimal(str(amount)) * MINOR_UNITS_PER_MAJOR
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(value: Any) -> Decimal:
    return (Decimal(int(value or 0)) / MINOR_UNITS_PER_MAJOR).quantize(Decimal("0.01"))


def compute_payment_signature(payment_id: str, subscription_id: str, secret: str) -> str:
    message = f"{payment_id}|{subscription_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def compute_webhook_signature(body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def signatures_match(expected: str, provided: str) -> bool:
    return hmac.compare_digest(str(expected or "").encode("utf-8"), str(provided or "").encode("utf-8"))


def plan_item_name(plan_slug: str, period: str) -> str:
    return f"{plan_slug}-{period}"


@dataclass(frozen=True)
class GatewayCredentials:
    key_id: str
    key_secret: str


def get_gateway_credentials() -> GatewayCredentials:
    key_id = _setting("RAZORPAY_KEY_ID")
    key_secret = _setting("RAZORPAY_KEY_SECRET")
    if not key_id or not key_secret:
        raise GatewayConfigurationError("RAZORPAY_KEY_ID and RAZORPAY_KEY_SECRET must be configured.")
    return GatewayCredentials(key_id=key_id, key_secret=key_secret)


class RazorpayClient:
    """Minimal Razorpay REST client for plans, subscriptions and payments."""

    def __init__(
        self,
        credentials: GatewayCredentials | None = None,
        *,
        base_url: str | None = None,
        timeout: int | None = None,
    ):
        self.credentials = credentials or get_gateway_credentials()
        self.base_url = (base_url or _setting("RAZORPAY_API_BASE_URL") or DEFAULT_API_BASE_URL).rstrip("/")
        self.timeout = int(timeout or getattr(settings, "RAZORPAY_TIMEOUT_SECONDS", 10))

    def _authorization(self) -> str:
        token = f"{self.credentials.key_id}:{self.credentials.key_secret}".encode("utf-8")
        return f"Basic {base64.b64encode(token).decode('ascii')}"

    def _request(
        self,
        method: str,
        path: str,
        *,
        payload: dict[str, Any] | None = None,
        query: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        url = f"{self.base_url}/{path.lstrip('/')}"
        if query:
            url = f"{url}?{urlencode(query)}"

        headers = {"Authorization": self._authorization(), "Accept": "application/json"}
        data = None
        if payload is not None:
            data = json.dumps(payload).encode("utf-8")
            headers["Content-Type"] = "application/json"

        request = Request(url, data=data, headers=headers, method=method)
        try:
            with urlopen(request, timeout=self.timeout) as response:
                body = response.read().decode("utf-8", errors="ignore")
        except HTTPError as exc:
            error_body = exc.read().decode("utf-8", errors="ignore")
            description = _error_description(error_body)
            logger.warning("Razorpay %s %s failed with status %s: %s", method, path, exc.code, description)
            raise GatewayError(
                description or f"Razorpay request failed with status {exc.code}",
                status=exc.code,
                description=description,
            ) from exc
        except TimeoutError as exc:
            raise GatewayTimeout(f"Razorpay {method} {path} timed out") from exc
        except URLError as exc:
            if isinstance(exc.reason, TimeoutError):
                raise GatewayTimeout(f"Razorpay {method} {path} timed out") from exc
            raise GatewayError(f"Razorpay request failed: {exc.reason}") from exc

        try:
            parsed = json.loads(body or "{}")
        except ValueError as exc:
            raise GatewayError("Razorpay returned a non-JSON response") from exc
        if not isinstance(parsed, dict):
            raise GatewayError("Razorpay returned an unexpected response shape")
        return parsed

    def list_plans(self) -> list[dict[str, Any]]:
        plans: list[dict[str, Any]] = []
        skip = 0
        while True:
            page = self._request("GET", "plans", query={"count": PLAN_PAGE_SIZE, "skip": skip})
            items = page.get("items") if isinstance(page.get("items"), list) else []
            plans.extend(item for item in items if isinstance(item, dict))
            if len(items) < PLAN_PAGE_SIZE:
                return plans
            skip += PLAN_PAGE_SIZE

    def create_plan(
        self,
        *,
        name: str,
        amount_minor: int,
        currency: str,
        period: str,
        description: str = "",
    ) -> dict[str, Any]:
        return self._request(
            "POST",
            "plans",
            payload={
                "period": period,
                "interval": 1,
                "item": {
                    "name": name,
                    "amount": amount_minor,
                    "currency": currency,
                    "description": description,
                },
            },
        )

    def get_or_create_plan(self, *, plan_slug: str, period: str, amount: Any) -> str:
        """Return the id of the gateway plan for (slug, period, amount), creating it if absent.

        Plans are matched on the business tuple rather than on gateway ids so
        repeated signups for the same catalog plan reuse one gateway plan.
        """
        name = plan_item_name(plan_slug, period)
        amount_minor = to_minor_units(amount)

        for plan in self.list_plans():
            item = plan.get("item") if isinstance(plan.get("item"), dict) else {}
            if (
                item.get("name") == name
                and item.get("amount") == amount_minor
                and plan.get("period", period) == period
                and plan.get("id")
            ):
                return str(plan["id"])

        currency = _setting("RAZORPAY_PLAN_CURRENCY", "INR").upper() or "INR"
        prefix = _setting("RAZORPAY_PLAN_DESCRIPTION_PREFIX")
        created = self.create_plan(
            name=name,
            amount_minor=amount_minor,
            currency=currency,
            period=period,
            description=f"{prefix} {plan_slug} {period} subscription".strip(),
        )
        plan_id = str(created.get("id") or "").strip()
        if not plan_id:
            raise GatewayError("Razorpay did not return a plan id")
        logger.info("Created Razorpay plan %s for %s", plan_id, name)
        return plan_id

    def create_subscription(
        self,
        *,
        plan_id: str,
        billing_cycle: str,
        notes: dict[str, str],
    ) -> dict[str, Any]:
        subscription = self._request(
            "POST",
            "subscriptions",
            payload={
                "plan_id": plan_id,
                "total_count": SUBSCRIPTION_TOTAL_COUNT.get(billing_cycle, SUBSCRIPTION_TOTAL_COUNT["monthly"]),
                "customer_notify": 1,
                "notes": notes,
            },
        )
        if not str(subscription.get("id") or "").strip():
            raise GatewayError("Razorpay did not return a subscription id")
        return subscription

    def fetch_payment(self, payment_id: str) -> dict[str, Any]:
        return self._request("GET", f"payments/{quote(payment_id, safe='')}")


def _error_description(raw_body: str) -> str:
    try:
        parsed = json.loads(raw_body or "{}")
    except ValueError:
        return ""
    error = parsed.get("error") if isinstance(parsed, dict) else None
    if isinstance(error, dict):
        return str(error.get("description") or "").strip()[:300]
    return ""
