from __future__ import annotations

from datetime import datetime

from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q
from django.utils import timezone

from .catalog import BillingCycle

CREDENTIAL_CLEARED = "[CLEARED]"
CREDENTIAL_EXPIRED = "[EXPIRED]"
CREDENTIAL_SENTINELS = frozenset({CREDENTIAL_CLEARED, CREDENTIAL_EXPIRED})


class PendingRegistration(models.Model):
    """A signup held back until the gateway confirms payment.

    ``password_credential`` holds the raw password chosen at intake. It is
    overwritten with ``[CLEARED]`` once the identity provider has the account,
    or with ``[EXPIRED]`` when the TTL lapses, and is never read again after
    either sentinel is set.
    """

    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        COMPLETED = "completed", "Completed"
        EXPIRED = "expired", "Expired"

    email = models.EmailField(max_length=254, db_index=True)
    password_credential = models.CharField(max_length=128)
    restaurant_name = models.CharField(max_length=100)
    restaurant_description = models.TextField(blank=True)
    plan = models.ForeignKey(
        "SubscriptionPlan",
        on_delete=models.PROTECT,
        related_name="pending_registrations",
    )
    billing_cycle = models.CharField(max_length=16, choices=BillingCycle.choices)
    gateway_subscription_id = models.CharField(max_length=64, unique=True)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)
    created_at = models.DateTimeField(default=timezone.now)
    expires_at = models.DateTimeField()
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("-created_at",)
        indexes = [
            models.Index(fields=("status", "expires_at"), name="pending_status_expires_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=("email",),
                condition=Q(status="pending"),
                name="pending_registration_live_email",
            ),
        ]

    @property
    def credential_consumed(self) -> bool:
        return self.password_credential in CREDENTIAL_SENTINELS

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or timezone.now()) > self.expires_at

    def clean(self) -> None:
        self.email = (self.email or "").strip().lower()
        self.restaurant_name = (self.restaurant_name or "").strip()
        self.restaurant_description = (self.restaurant_description or "").strip()
        self.gateway_subscription_id = (self.gateway_subscription_id or "").strip()

        if self.expires_at and self.created_at and self.expires_at <= self.created_at:
            raise ValidationError({"expires_at": "Must be after created_at."})

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.gateway_subscription_id} ({self.status})"


class Restaurant(models.Model):
    user_id = models.CharField(max_length=64, unique=True, db_index=True)
    name = models.CharField(max_length=100)
    email = models.EmailField(max_length=254)
    description = models.TextField(blank=True)
    plan = models.ForeignKey(
        "SubscriptionPlan",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="restaurants",
    )
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("-created_at",)
        constraints = [
            models.CheckConstraint(condition=~Q(name=""), name="restaurant_name_not_empty"),
        ]

    def clean(self) -> None:
        self.name = (self.name or "").strip()
        self.email = (self.email or "").strip().lower()
        self.description = (self.description or "").strip()
        if not self.name:
            raise ValidationError({"name": "Restaurant name cannot be empty."})

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)

    def __str__(self) -> str:
        return self.name


class Subscription(models.Model):
    class Status(models.TextChoices):
        ACTIVE = "active", "Active"
        PENDING = "pending", "Pending"
        HALTED = "halted", "Halted"
        CANCELLED = "cancelled", "Cancelled"
        EXPIRED = "expired", "Expired"

    user_id = models.CharField(max_length=64, db_index=True)
    restaurant = models.ForeignKey(
        "Restaurant",
        on_delete=models.CASCADE,
        related_name="subscriptions",
    )
    plan = models.ForeignKey(
        "SubscriptionPlan",
        on_delete=models.PROTECT,
        related_name="subscriptions",
    )
    gateway_subscription_id = models.CharField(max_length=64, null=True, blank=True, unique=True)
    billing_cycle = models.CharField(max_length=16, choices=BillingCycle.choices)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.ACTIVE)
    current_period_start = models.DateTimeField(blank=True, null=True)
    current_period_end = models.DateTimeField(blank=True, null=True)
    cancelled_at = models.DateTimeField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("-updated_at",)
        indexes = [
            models.Index(fields=("status", "current_period_end"), name="sub_status_period_end_idx"),
        ]

    def clean(self) -> None:
        self.gateway_subscription_id = (self.gateway_subscription_id or "").strip() or None

        if (
            self.current_period_start
            and self.current_period_end
            and self.current_period_end <= self.current_period_start
        ):
            raise ValidationError({"current_period_end": "Must be after current_period_start."})

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)

    def __str__(self) -> str:
        return self.gateway_subscription_id or f"subscription-{self.pk}"


class PaymentTransaction(models.Model):
    """Receipt of a gateway payment. Rows are written once and never changed."""

    class Status(models.TextChoices):
        CAPTURED = "captured", "Captured"
        FAILED = "failed", "Failed"

    user_id = models.CharField(max_length=64, db_index=True)
    subscription = models.ForeignKey(
        "Subscription",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="transactions",
    )
    gateway_payment_id = models.CharField(max_length=64, unique=True)
    gateway_subscription_id = models.CharField(max_length=64, blank=True, db_index=True)
    gateway_signature = models.CharField(max_length=64, blank=True)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=3, default="INR")
    status = models.CharField(max_length=16, choices=Status.choices)
    payment_method = models.CharField(max_length=32, blank=True)
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ("-created_at",)
        indexes = [
            models.Index(fields=("status", "created_at"), name="txn_status_created_idx"),
        ]

    def clean(self) -> None:
        self.currency = (self.currency or "INR").strip().upper()
        if len(self.currency) != 3:
            raise ValidationError({"currency": "Currency must be a 3-letter code."})

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValidationError("Payment transactions are immutable.")
        self.full_clean()
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError("Payment transactions are immutable.")

    def __str__(self) -> str:
        return self.gateway_payment_id
