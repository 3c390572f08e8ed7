from __future__ import annotations

import hashlib
import logging

from django.db import DatabaseError, transaction
from django.http import HttpRequest, JsonResponse
from django.utils import timezone as django_timezone
from django.utils.decorators import method_decorator
from django.views import View
from django.views.decorators.csrf import csrf_exempt

from ..models import WebhookEvent
from ..tools.security import ClientFingerprint, EventType, record_security_event
from .handlers import EVENT_HANDLERS
from .verification import WebhookConfigurationError, WebhookVerificationError, _verify_webhook

logger = logging.getLogger(__name__)


def _event_id(request: HttpRequest, event: dict) -> str:
    header_id = str(request.headers.get("X-Razorpay-Event-Id", "") or "").strip()
    if header_id:
        return header_id
    payload_id = str(event.get("event_id") or event.get("id") or "").strip()
    if payload_id:
        return payload_id
    return f"sha256:{hashlib.sha256(request.body).hexdigest()}"


def _finish(webhook_event: WebhookEvent | None, status: str, error_message: str = "") -> None:
    if webhook_event is None:
        return
    webhook_event.status = status
    webhook_event.processed_at = django_timezone.now()
    webhook_event.error_message = error_message
    webhook_event.save(update_fields=["status", "processed_at", "error_message"])


@method_decorator(csrf_exempt, name="dispatch")
class RazorpayWebhookView(View):
    """Receive and process Razorpay subscription and payment events."""

    def post(self, request: HttpRequest) -> JsonResponse:
        signature = str(request.headers.get("X-Razorpay-Signature", "") or "")

        try:
            event = _verify_webhook(request.body, signature)
        except WebhookConfigurationError as exc:
            logger.error("Webhook rejected: %s", exc)
            return JsonResponse({"error": "Webhook not configured"}, status=500)
        except WebhookVerificationError as exc:
            logger.warning("Webhook verification failed: %s", exc)
            record_security_event(
                EventType.WEBHOOK_SIGNATURE_INVALID,
                fingerprint=ClientFingerprint.from_request(request),
                error_message=str(exc),
            )
            return JsonResponse({"error": "Invalid signature"}, status=400)

        event_id = _event_id(request, event)
        event_type = str(event.get("event") or "").strip()
        data = event.get("payload", {})

        webhook_event = None
        try:
            with transaction.atomic():
                webhook_event, created = WebhookEvent.objects.get_or_create(
                    provider=WebhookEvent.Provider.RAZORPAY,
                    event_id=event_id,
                    defaults={
                        "event_type": event_type or "unknown",
                        "payload": event,
                        "status": WebhookEvent.Status.RECEIVED,
                    },
                )
        except DatabaseError:
            logger.exception("Failed to persist webhook event %s", event_id)
            return JsonResponse({"error": "Internal handler error"}, status=500)

        if not created and webhook_event.status in {
            WebhookEvent.Status.PROCESSED,
            WebhookEvent.Status.IGNORED,
        }:
            return JsonResponse({"status": "ok", "deduplicated": True})

        handler = EVENT_HANDLERS.get(event_type)
        if handler is None:
            logger.debug("Unhandled Razorpay webhook event type: %s", event_type)
            _finish(webhook_event, WebhookEvent.Status.IGNORED)
            return JsonResponse({"status": "ok"})

        try:
            with transaction.atomic():
                handler(data if isinstance(data, dict) else {})
        except Exception as exc:
            logger.exception("Error processing webhook event: %s", event_type)
            _finish(webhook_event, WebhookEvent.Status.FAILED, str(exc))
            return JsonResponse({"error": "Internal handler error"}, status=500)

        _finish(webhook_event, WebhookEvent.Status.PROCESSED)
        return JsonResponse({"status": "ok"})
