from __future__ import annotations

from decimal import Decimal
from uuid import uuid4

from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q
from django.utils.text import slugify


class BillingCycle(models.TextChoices):
    MONTHLY = "monthly", "Monthly"
    YEARLY = "yearly", "Yearly"


class SubscriptionPlan(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid4, editable=False)
    name = models.CharField(max_length=120)
    slug = models.SlugField(max_length=120, unique=True)
    description = models.TextField(blank=True)
    price_monthly = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0"))
    price_yearly = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0"))
    currency = models.CharField(max_length=3, default="INR")
    has_orders_feature = models.BooleanField(default=False)
    max_menu_items = models.PositiveIntegerField(blank=True, null=True)
    max_categories = models.PositiveIntegerField(blank=True, null=True)
    features = models.JSONField(default=list, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("price_monthly", "name")
        indexes = [
            models.Index(fields=("is_active",), name="plan_active_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(price_monthly__gte=0) & Q(price_yearly__gte=0),
                name="plan_prices_non_negative",
            ),
        ]

    def price_for(self, billing_cycle: str) -> Decimal:
        if billing_cycle == BillingCycle.YEARLY:
            return self.price_yearly
        return self.price_monthly

    def clean(self) -> None:
        self.name = (self.name or "").strip()
        if not self.name:
            raise ValidationError({"name": "Plan name cannot be empty."})

        self.slug = slugify((self.slug or "").strip() or self.name)
        self.currency = (self.currency or "INR").strip().upper()
        if len(self.currency) != 3:
            raise ValidationError({"currency": "Currency must be a 3-letter code."})

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)

    def __str__(self) -> str:
        return self.name
