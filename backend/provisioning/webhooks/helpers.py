from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from ..models import Subscription


def _normalize_text(value: Any) -> str:
    return str(value).strip() if value else ""


def _entity(data: dict[str, Any], key: str) -> dict[str, Any]:
    """Return ``payload.<key>.entity`` from a Razorpay event, or an empty dict."""
    wrapper = data.get(key)
    if not isinstance(wrapper, dict):
        return {}
    entity = wrapper.get("entity")
    return entity if isinstance(entity, dict) else {}


def _safe_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    if isinstance(value, (int, float)):
        timestamp = float(value)
        if timestamp > 1_000_000_000_000:
            timestamp = timestamp / 1000.0
        return datetime.fromtimestamp(timestamp, tz=timezone.utc)

    raw = str(value).strip()
    if raw.isdigit():
        return _safe_datetime(int(raw))
    return None


def _resolve_subscription(gateway_subscription_id: str) -> Subscription | None:
    if not gateway_subscription_id:
        return None
    return Subscription.objects.filter(gateway_subscription_id=gateway_subscription_id).first()
