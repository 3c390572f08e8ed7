from .audit import EventType, record_security_event
from .hashing import ClientFingerprint, hash_for_log, resolve_client_ip
from .rate_limit import (
    ACTION_PAYMENT_VERIFY,
    ACTION_REGISTRATION,
    RateLimitDecision,
    RateLimitRule,
    check_rate_limit,
    rule_for,
)

__all__ = [
    "EventType",
    "record_security_event",
    "ClientFingerprint",
    "hash_for_log",
    "resolve_client_ip",
    "ACTION_PAYMENT_VERIFY",
    "ACTION_REGISTRATION",
    "RateLimitDecision",
    "RateLimitRule",
    "check_rate_limit",
    "rule_for",
]
