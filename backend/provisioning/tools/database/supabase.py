"""Supabase access for the identity store and the rate-limit RPC.

Every caller in the signup pipeline runs server-side without a user
session, so clients are keyed only by project URL and API key and are
shared across requests.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any

from django.conf import settings
from supabase import create_client

SERVICE_ROLE_KEY_SETTING = "SUPABASE_SERVICE_ROLE_KEY"
ANON_KEY_SETTING = "SUPABASE_ANON_KEY"


class SupabaseConfigurationError(RuntimeError):
    pass


def _setting(name: str) -> str:
    value = str(getattr(settings, name, "") or "").strip()
    if not value:
        raise SupabaseConfigurationError(f"{name} is not configured.")
    return value


def project_url() -> str:
    url = _setting("SUPABASE_URL").rstrip("/")
    if not url.startswith(("http://", "https://")):
        url = f"https://{url}"
    return url


@lru_cache(maxsize=2)
def _client_for(url: str, key: str) -> Any:
    return create_client(url, key)


def get_supabase_client(use_service_role: bool = False) -> Any:
    """Return a shared Supabase client.

    The service-role key is required for the Auth admin API (account
    creation and rollback) and for the ``check_rate_limit`` RPC.

    Raises:
        SupabaseConfigurationError: If the project URL or the requested
            key is not configured.
    """
    key = _setting(SERVICE_ROLE_KEY_SETTING if use_service_role else ANON_KEY_SETTING)
    return _client_for(project_url(), key)
