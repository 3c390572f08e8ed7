from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.utils import timezone

from provisioning.models import BillingCycle, PendingRegistration, SubscriptionPlan
from provisioning.tools.gateway import compute_payment_signature

PAYMENT_ID = "pay_TestPayment001"
SUBSCRIPTION_ID = "sub_TestSubscr0001"


def make_plan(**overrides) -> SubscriptionPlan:
    values = {
        "name": "Basic",
        "slug": "basic",
        "price_monthly": Decimal("499.00"),
        "price_yearly": Decimal("4999.00"),
        "has_orders_feature": True,
        "is_active": True,
    }
    values.update(overrides)
    return SubscriptionPlan.objects.create(**values)


def make_pending(plan: SubscriptionPlan, **overrides) -> PendingRegistration:
    now = timezone.now()
    values = {
        "email": "a@b.com",
        "password_credential": "correct-horse",
        "restaurant_name": "Joe's Diner",
        "restaurant_description": "Burgers",
        "plan": plan,
        "billing_cycle": BillingCycle.MONTHLY,
        "gateway_subscription_id": SUBSCRIPTION_ID,
        "created_at": now,
        "expires_at": now + timedelta(minutes=30),
    }
    values.update(overrides)
    return PendingRegistration.objects.create(**values)


def sign(payment_id: str = PAYMENT_ID, subscription_id: str = SUBSCRIPTION_ID) -> str:
    return compute_payment_signature(payment_id, subscription_id, settings.RAZORPAY_KEY_SECRET)


def captured_payment(payment_id: str = PAYMENT_ID, **overrides) -> dict:
    payment = {
        "id": payment_id,
        "entity": "payment",
        "status": "captured",
        "amount": 49900,
        "currency": "INR",
        "method": "upi",
    }
    payment.update(overrides)
    return payment
