from __future__ import annotations

from django.core.exceptions import ValidationError
from django.db import models


class SecurityAuditEntry(models.Model):
    """Append-only security event. Identifier columns only ever hold hashes."""

    class EventType(models.TextChoices):
        RATE_LIMIT_EXCEEDED = "rate_limit_exceeded", "Rate limit exceeded"
        DUPLICATE_EMAIL_ATTEMPT = "duplicate_email_attempt", "Duplicate email attempt"
        RAZORPAY_PLAN_FAILED = "razorpay_plan_failed", "Gateway plan failed"
        RAZORPAY_SUBSCRIPTION_FAILED = "razorpay_subscription_failed", "Gateway subscription failed"
        REGISTRATION_INITIATED = "registration_initiated", "Registration initiated"
        REGISTRATION_ERROR = "registration_error", "Registration error"
        INVALID_PAYMENT_ID = "invalid_payment_id", "Invalid payment id"
        INVALID_SUBSCRIPTION_ID = "invalid_subscription_id", "Invalid subscription id"
        INVALID_SIGNATURE_FORMAT = "invalid_signature_format", "Invalid signature format"
        SIGNATURE_MISMATCH = "signature_mismatch", "Signature mismatch"
        RAZORPAY_API_ERROR = "razorpay_api_error", "Gateway API error"
        PAYMENT_NOT_SUCCESSFUL = "payment_not_successful", "Payment not successful"
        PENDING_REGISTRATION_NOT_FOUND = "pending_registration_not_found", "Pending registration not found"
        REGISTRATION_EXPIRED = "registration_expired", "Registration expired"
        REGISTRATION_ALREADY_PROCESSED = "registration_already_processed", "Registration already processed"
        AUTH_CREATION_FAILED = "auth_creation_failed", "Account creation failed"
        RESTAURANT_CREATION_FAILED = "restaurant_creation_failed", "Restaurant creation failed"
        PROVISIONING_ROLLED_BACK = "provisioning_rolled_back", "Provisioning rolled back"
        ROLLBACK_FAILED = "rollback_failed", "Rollback failed"
        REGISTRATION_COMPLETED = "registration_completed", "Registration completed"
        VERIFICATION_ERROR = "verification_error", "Verification error"
        WEBHOOK_SIGNATURE_INVALID = "webhook_signature_invalid", "Webhook signature invalid"
        SUBSCRIPTION_EXPIRED = "subscription_expired", "Subscription expired"

    event_type = models.CharField(max_length=48, choices=EventType.choices, db_index=True)
    ip_hash = models.CharField(max_length=64, blank=True)
    email_hash = models.CharField(max_length=64, blank=True)
    user_agent_hash = models.CharField(max_length=64, blank=True)
    success = models.BooleanField(default=False)
    error_message = models.CharField(max_length=500, blank=True)
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ("-created_at",)
        verbose_name_plural = "security audit entries"
        indexes = [
            models.Index(fields=("event_type", "created_at"), name="audit_event_created_idx"),
            models.Index(fields=("ip_hash", "created_at"), name="audit_ip_created_idx"),
        ]

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValidationError("Security audit entries are append-only.")
        self.error_message = (self.error_message or "").strip()[:500]
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError("Security audit entries are append-only.")

    def __str__(self) -> str:
        return f"{self.event_type} ({'ok' if self.success else 'fail'})"


class RateLimitCounter(models.Model):
    identifier = models.CharField(max_length=64)
    action_type = models.CharField(max_length=48)
    hits = models.JSONField(default=list, blank=True)
    blocked_until = models.DateTimeField(blank=True, null=True)
    updated_at = models.DateTimeField(auto_now=True, db_index=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=("identifier", "action_type"),
                name="rate_limit_identifier_action_unique",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.action_type}:{self.identifier}"


class WebhookEvent(models.Model):
    class Provider(models.TextChoices):
        RAZORPAY = "razorpay", "Razorpay"
        OTHER = "other", "Other"

    class Status(models.TextChoices):
        RECEIVED = "received", "Received"
        PROCESSED = "processed", "Processed"
        FAILED = "failed", "Failed"
        IGNORED = "ignored", "Ignored"

    provider = models.CharField(max_length=24, choices=Provider.choices, default=Provider.RAZORPAY)
    event_id = models.CharField(max_length=191)
    event_type = models.CharField(max_length=191)
    payload = models.JSONField(default=dict, blank=True)
    status = models.CharField(max_length=24, choices=Status.choices, default=Status.RECEIVED)
    error_message = models.TextField(blank=True)
    received_at = models.DateTimeField(auto_now_add=True)
    processed_at = models.DateTimeField(blank=True, null=True)

    class Meta:
        ordering = ("-received_at",)
        constraints = [
            models.UniqueConstraint(fields=("provider", "event_id"), name="webhook_provider_event_unique"),
        ]
        indexes = [
            models.Index(fields=("status", "received_at"), name="webhook_status_received_idx"),
        ]

    def clean(self) -> None:
        self.event_id = (self.event_id or "").strip()
        self.event_type = (self.event_type or "").strip()
        self.error_message = (self.error_message or "").strip()

        if not self.event_id:
            raise ValidationError({"event_id": "Event id is required."})
        if not self.event_type:
            raise ValidationError({"event_type": "Event type is required."})

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.provider}:{self.event_id}"
