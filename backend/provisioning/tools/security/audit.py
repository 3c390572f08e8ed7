from __future__ import annotations

import logging
from typing import Any

from django.db import DatabaseError, transaction

from ...models import SecurityAuditEntry
from .hashing import ClientFingerprint, hash_for_log

logger = logging.getLogger(__name__)

EventType = SecurityAuditEntry.EventType


def record_security_event(
    event_type: str,
    *,
    fingerprint: ClientFingerprint | None = None,
    email: str = "",
    success: bool = False,
    error_message: str = "",
    metadata: dict[str, Any] | None = None,
) -> SecurityAuditEntry | None:
    """Append a security audit entry.

    ``email`` is accepted raw and only its hash is stored. A failed audit
    write is logged and never interrupts the request it describes.
    """
    fingerprint = fingerprint or ClientFingerprint.system()
    entry = SecurityAuditEntry(
        event_type=event_type,
        ip_hash=fingerprint.ip_hash,
        user_agent_hash=fingerprint.user_agent_hash,
        email_hash=hash_for_log(email) if email else "",
        success=success,
        error_message=str(error_message or "")[:500],
        metadata=metadata if isinstance(metadata, dict) else {},
    )
    try:
        with transaction.atomic():
            entry.save()
    except DatabaseError:
        logger.exception("Failed to write security audit entry %s", event_type)
        return None

    log = logger.info if success else logger.warning
    log("Security event %s (ip=%s)", event_type, fingerprint.ip_hash or "-")
    return entry
