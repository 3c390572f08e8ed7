from __future__ import annotations

import hashlib
from dataclasses import dataclass

UNKNOWN_CLIENT = "unknown"
HASH_LENGTH = 16


def hash_for_log(value: str) -> str:
    """Return a short, stable SHA-256 digest safe to store in place of ``value``."""
    return hashlib.sha256(str(value or "").encode("utf-8")).hexdigest()[:HASH_LENGTH]


def resolve_client_ip(request) -> str:
    forwarded_for = str(request.headers.get("X-Forwarded-For", "") or "")
    first_hop = forwarded_for.split(",")[0].strip()
    if first_hop:
        return first_hop

    real_ip = str(request.headers.get("X-Real-IP", "") or "").strip()
    if real_ip:
        return real_ip

    return str(request.META.get("REMOTE_ADDR", "") or "").strip() or UNKNOWN_CLIENT


@dataclass(frozen=True)
class ClientFingerprint:
    ip_hash: str
    user_agent_hash: str

    @classmethod
    def from_request(cls, request) -> "ClientFingerprint":
        user_agent = str(request.headers.get("User-Agent", "") or "").strip() or UNKNOWN_CLIENT
        return cls(
            ip_hash=hash_for_log(resolve_client_ip(request)),
            user_agent_hash=hash_for_log(user_agent),
        )

    @classmethod
    def system(cls) -> "ClientFingerprint":
        return cls(ip_hash="", user_agent_hash="")
