from django.urls import path

from .views import HealthView, PaymentVerificationView, RegistrationIntakeView
from .webhooks import RazorpayWebhookView

urlpatterns = [
    path("health/", HealthView.as_view(), name="health"),
    path("registrations/", RegistrationIntakeView.as_view(), name="registration-intake"),
    path("registrations/verify/", PaymentVerificationView.as_view(), name="registration-verify"),
    path("webhooks/razorpay/", RazorpayWebhookView.as_view(), name="razorpay-webhook"),
]
