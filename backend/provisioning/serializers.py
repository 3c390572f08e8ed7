from __future__ import annotations

from rest_framework import serializers

MISSING_FIELDS = "Missing required fields"
MISSING_PAYMENT_DETAILS = "Missing payment details"
RAW_FIELD_MAX_LENGTH = 1000


def _required_text(message: str, **kwargs) -> serializers.CharField:
    return serializers.CharField(
        max_length=RAW_FIELD_MAX_LENGTH,
        error_messages={"required": message, "blank": message, "null": message},
        **kwargs,
    )


class RegistrationIntakeSerializer(serializers.Serializer):
    """Presence checks only; field formats are validated by the intake step."""

    email = _required_text(MISSING_FIELDS)
    password = _required_text(MISSING_FIELDS, trim_whitespace=False)
    restaurantName = _required_text(MISSING_FIELDS, source="restaurant_name")
    restaurantDescription = serializers.CharField(
        source="restaurant_description",
        max_length=RAW_FIELD_MAX_LENGTH,
        required=False,
        allow_blank=True,
        allow_null=True,
        default="",
    )
    planId = _required_text(MISSING_FIELDS, source="plan_id")
    billingCycle = _required_text(MISSING_FIELDS, source="billing_cycle")


class PaymentVerificationSerializer(serializers.Serializer):
    paymentId = _required_text(MISSING_PAYMENT_DETAILS, source="payment_id")
    subscriptionId = _required_text(MISSING_PAYMENT_DETAILS, source="subscription_id")
    signature = _required_text(MISSING_PAYMENT_DETAILS)
