from __future__ import annotations

import json
from typing import Any

from django.conf import settings

from ..tools.gateway import compute_webhook_signature, signatures_match


class WebhookVerificationError(RuntimeError):
    pass


class WebhookConfigurationError(WebhookVerificationError):
    pass


def _verify_webhook(payload: bytes, signature: str) -> dict[str, Any]:
    """Verify the Razorpay body signature and return the parsed event payload."""
    signing_secret = str(getattr(settings, "RAZORPAY_WEBHOOK_SECRET", "") or "").strip()
    if not signing_secret:
        raise WebhookConfigurationError("RAZORPAY_WEBHOOK_SECRET is not configured.")

    if not signature:
        raise WebhookVerificationError("Missing webhook signature.")

    expected = compute_webhook_signature(payload, signing_secret)
    if not signatures_match(expected, signature.strip()):
        raise WebhookVerificationError("Webhook signature verification failed.")

    try:
        event = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise WebhookVerificationError("Webhook payload is not valid JSON.") from exc

    if not isinstance(event, dict):
        raise WebhookVerificationError("Webhook payload must be a JSON object.")
    return event
