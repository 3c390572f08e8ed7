from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from ...models import RateLimitCounter
from ..database.supabase import SupabaseConfigurationError, get_supabase_client

logger = logging.getLogger(__name__)

ACTION_REGISTRATION = "registration"
ACTION_PAYMENT_VERIFY = "payment_verify"


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    blocked_for_seconds: int | None = None


@dataclass(frozen=True)
class RateLimitRule:
    max_requests: int
    window_seconds: int
    block_seconds: int


def rule_for(action_type: str) -> RateLimitRule:
    if action_type == ACTION_REGISTRATION:
        return RateLimitRule(
            max_requests=int(getattr(settings, "REGISTRATION_RATE_LIMIT", 5)),
            window_seconds=int(getattr(settings, "REGISTRATION_RATE_LIMIT_WINDOW_SECONDS", 600)),
            block_seconds=int(getattr(settings, "REGISTRATION_RATE_LIMIT_BLOCK_SECONDS", 1800)),
        )
    if action_type == ACTION_PAYMENT_VERIFY:
        return RateLimitRule(
            max_requests=int(getattr(settings, "PAYMENT_VERIFY_RATE_LIMIT", 10)),
            window_seconds=int(getattr(settings, "PAYMENT_VERIFY_RATE_LIMIT_WINDOW_SECONDS", 600)),
            block_seconds=int(getattr(settings, "PAYMENT_VERIFY_RATE_LIMIT_BLOCK_SECONDS", 1800)),
        )
    raise ValueError(f"Unknown rate limit action: {action_type}")


def _check_database(
    identifier: str,
    action_type: str,
    rule: RateLimitRule,
    now: datetime,
) -> RateLimitDecision:
    with transaction.atomic():
        # Row lock serializes concurrent checks for the same identifier/action.
        counter, _ = RateLimitCounter.objects.select_for_update().get_or_create(
            identifier=identifier,
            action_type=action_type,
        )

        if counter.blocked_until and counter.blocked_until > now:
            remaining = math.ceil((counter.blocked_until - now).total_seconds())
            return RateLimitDecision(allowed=False, blocked_for_seconds=max(remaining, 1))

        now_ts = now.timestamp()
        cutoff = now_ts - rule.window_seconds
        hits = [
            float(ts)
            for ts in (counter.hits if isinstance(counter.hits, list) else [])
            if isinstance(ts, (int, float)) and ts > cutoff
        ]
        hits.append(now_ts)

        if len(hits) > rule.max_requests:
            counter.hits = []
            counter.blocked_until = now + timedelta(seconds=rule.block_seconds)
            counter.save(update_fields=["hits", "blocked_until", "updated_at"])
            return RateLimitDecision(allowed=False, blocked_for_seconds=rule.block_seconds)

        counter.hits = hits
        counter.blocked_until = None
        counter.save(update_fields=["hits", "blocked_until", "updated_at"])
    return RateLimitDecision(allowed=True)


def _check_supabase(identifier: str, action_type: str, rule: RateLimitRule) -> RateLimitDecision:
    try:
        client = get_supabase_client(use_service_role=True)
        response = client.rpc(
            "check_rate_limit",
            {
                "p_identifier": identifier,
                "p_action_type": action_type,
                "p_max_requests": rule.max_requests,
                "p_window_seconds": rule.window_seconds,
                "p_block_seconds": rule.block_seconds,
            },
        ).execute()
    except SupabaseConfigurationError:
        raise
    except Exception:
        # Availability of signup wins over the limiter when the RPC is down.
        logger.exception("check_rate_limit RPC failed for action %s; allowing request.", action_type)
        return RateLimitDecision(allowed=True)

    data = getattr(response, "data", None)
    row = data[0] if isinstance(data, list) and data else data
    if not isinstance(row, dict) or row.get("allowed", True):
        return RateLimitDecision(allowed=True)

    blocked_for = row.get("blocked_for_seconds") or rule.block_seconds
    return RateLimitDecision(allowed=False, blocked_for_seconds=int(blocked_for))


def check_rate_limit(
    identifier: str,
    action_type: str,
    max_requests: int | None = None,
    window_seconds: int | None = None,
    block_seconds: int | None = None,
    *,
    now: datetime | None = None,
) -> RateLimitDecision:
    """Count one request for ``identifier``/``action_type`` and decide if it may proceed.

    Requests are counted over a rolling window. The request that pushes the
    count past ``max_requests`` starts a block of ``block_seconds`` during
    which every request is refused regardless of the window.
    """
    default_rule = rule_for(action_type)
    rule = RateLimitRule(
        max_requests=max_requests if max_requests is not None else default_rule.max_requests,
        window_seconds=window_seconds if window_seconds is not None else default_rule.window_seconds,
        block_seconds=block_seconds if block_seconds is not None else default_rule.block_seconds,
    )

    backend = str(getattr(settings, "RATE_LIMIT_BACKEND", "database") or "database").strip().lower()
    if backend == "supabase":
        return _check_supabase(identifier, action_type, rule)
    return _check_database(identifier, action_type, rule, now or timezone.now())
