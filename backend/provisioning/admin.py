from django.contrib import admin

from .models import (
    PaymentTransaction,
    PendingRegistration,
    RateLimitCounter,
    Restaurant,
    SecurityAuditEntry,
    Subscription,
    SubscriptionPlan,
    WebhookEvent,
)


class ReadOnlyAdmin(admin.ModelAdmin):
    """Rows written by the signup pipeline are inspected here, never edited."""

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(SubscriptionPlan)
class SubscriptionPlanAdmin(admin.ModelAdmin):
    list_display = ("name", "slug", "price_monthly", "price_yearly", "currency", "has_orders_feature", "is_active")
    search_fields = ("name", "slug")
    list_filter = ("is_active", "has_orders_feature", "currency")
    prepopulated_fields = {"slug": ("name",)}


@admin.register(PendingRegistration)
class PendingRegistrationAdmin(ReadOnlyAdmin):
    list_display = ("gateway_subscription_id", "email", "plan", "billing_cycle", "status", "expires_at")
    search_fields = ("email", "gateway_subscription_id")
    list_filter = ("status", "billing_cycle")
    exclude = ("password_credential",)


@admin.register(Restaurant)
class RestaurantAdmin(ReadOnlyAdmin):
    list_display = ("name", "email", "user_id", "plan", "is_active", "created_at")
    search_fields = ("name", "email", "user_id")
    list_filter = ("is_active",)


@admin.register(Subscription)
class SubscriptionAdmin(ReadOnlyAdmin):
    list_display = (
        "gateway_subscription_id",
        "restaurant",
        "plan",
        "billing_cycle",
        "status",
        "current_period_end",
        "updated_at",
    )
    search_fields = ("gateway_subscription_id", "user_id", "restaurant__name")
    list_filter = ("status", "billing_cycle")


@admin.register(PaymentTransaction)
class PaymentTransactionAdmin(ReadOnlyAdmin):
    list_display = ("gateway_payment_id", "gateway_subscription_id", "status", "amount", "currency", "created_at")
    search_fields = ("gateway_payment_id", "gateway_subscription_id", "user_id")
    list_filter = ("status", "currency")
    exclude = ("gateway_signature",)


@admin.register(SecurityAuditEntry)
class SecurityAuditEntryAdmin(ReadOnlyAdmin):
    list_display = ("event_type", "success", "ip_hash", "email_hash", "created_at")
    search_fields = ("ip_hash", "email_hash")
    list_filter = ("event_type", "success")


@admin.register(RateLimitCounter)
class RateLimitCounterAdmin(ReadOnlyAdmin):
    list_display = ("identifier", "action_type", "blocked_until", "updated_at")
    search_fields = ("identifier",)
    list_filter = ("action_type",)


@admin.register(WebhookEvent)
class WebhookEventAdmin(ReadOnlyAdmin):
    list_display = ("provider", "event_id", "event_type", "status", "received_at", "processed_at")
    search_fields = ("event_id", "event_type")
    list_filter = ("provider", "status")
