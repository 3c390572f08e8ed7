"""Input sanitizing and format checks for the signup pipeline.

These are pure functions: each returns a normalized value or raises
:class:`InvalidInput`. Nothing here touches the database or the network.
"""

from __future__ import annotations

import re
from typing import Any

from django.core.exceptions import ValidationError
from django.core.validators import validate_email

from .errors import ClientInputError
from .models import BillingCycle

EMAIL_MAX_LENGTH = 254
PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 128
FREE_TEXT_MAX_LENGTH = 500
BUSINESS_NAME_MIN_LENGTH = 2
BUSINESS_NAME_MAX_LENGTH = 100
SIGNATURE_HEX_LENGTH = 64

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)
SIGNATURE_PATTERN = re.compile(rf"^[0-9a-f]{{{SIGNATURE_HEX_LENGTH}}}$")
CONTROL_CHARS_PATTERN = re.compile(r"[\x00-\x1f\x7f]")
ANGLE_BRACKETS_PATTERN = re.compile(r"[<>]")

PAYMENT_ID_PREFIX = "pay"
SUBSCRIPTION_ID_PREFIX = "sub"


class InvalidInput(ClientInputError):
    pass


def _gateway_id_pattern(prefix: str) -> re.Pattern[str]:
    return re.compile(rf"^{prefix}_[a-zA-Z0-9]{{10,20}}$")


GATEWAY_ID_PATTERNS = {
    PAYMENT_ID_PREFIX: _gateway_id_pattern(PAYMENT_ID_PREFIX),
    SUBSCRIPTION_ID_PREFIX: _gateway_id_pattern(SUBSCRIPTION_ID_PREFIX),
}


def sanitize_text(value: Any, max_length: int = FREE_TEXT_MAX_LENGTH) -> str:
    if not value:
        return ""
    cleaned = ANGLE_BRACKETS_PATTERN.sub("", str(value))
    cleaned = CONTROL_CHARS_PATTERN.sub("", cleaned)
    return cleaned.strip()[:max_length]


def normalize_email(value: Any) -> str:
    email = sanitize_text(value).lower()
    if len(email) > EMAIL_MAX_LENGTH or not EMAIL_PATTERN.match(email):
        raise InvalidInput("Invalid email format", field="email")
    # Same check the model's EmailField applies on save.
    try:
        validate_email(email)
    except ValidationError as exc:
        raise InvalidInput("Invalid email format", field="email") from exc
    return email


def validate_password(value: Any) -> str:
    if not isinstance(value, str):
        raise InvalidInput("Invalid password", field="password")
    if len(value) < PASSWORD_MIN_LENGTH:
        raise InvalidInput(
            f"Password must be at least {PASSWORD_MIN_LENGTH} characters",
            field="password",
        )
    if len(value) > PASSWORD_MAX_LENGTH:
        raise InvalidInput("Password too long", field="password")
    return value


def normalize_business_name(value: Any) -> str:
    name = sanitize_text(value)
    if not BUSINESS_NAME_MIN_LENGTH <= len(name) <= BUSINESS_NAME_MAX_LENGTH:
        raise InvalidInput(
            f"Restaurant name must be {BUSINESS_NAME_MIN_LENGTH}-{BUSINESS_NAME_MAX_LENGTH} characters",
            field="restaurant_name",
        )
    return name


def normalize_description(value: Any) -> str:
    return sanitize_text(value)


def normalize_plan_id(value: Any) -> str:
    plan_id = str(value or "").strip()
    if not UUID_PATTERN.match(plan_id):
        raise InvalidInput("Invalid plan ID", field="plan_id")
    return plan_id.lower()


def normalize_billing_cycle(value: Any) -> str:
    cycle = str(value or "").strip().lower()
    if cycle not in BillingCycle.values:
        raise InvalidInput("Invalid billing cycle", field="billing_cycle")
    return cycle


def validate_gateway_id(value: Any, prefix: str) -> str:
    pattern = GATEWAY_ID_PATTERNS.get(prefix) or _gateway_id_pattern(prefix)
    candidate = value if isinstance(value, str) else ""
    if not pattern.match(candidate):
        label = "payment" if prefix == PAYMENT_ID_PREFIX else "subscription"
        raise InvalidInput(f"Invalid {label} ID", field=f"{label}_id")
    return candidate


def validate_payment_id(value: Any) -> str:
    return validate_gateway_id(value, PAYMENT_ID_PREFIX)


def validate_subscription_id(value: Any) -> str:
    return validate_gateway_id(value, SUBSCRIPTION_ID_PREFIX)


def validate_signature(value: Any) -> str:
    candidate = value if isinstance(value, str) else ""
    if not SIGNATURE_PATTERN.match(candidate):
        raise InvalidInput("Invalid signature format", field="signature")
    return candidate
