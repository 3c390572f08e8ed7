from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction

from ..database.supabase import SupabaseConfigurationError, get_supabase_client
from ..security.hashing import hash_for_log

logger = logging.getLogger(__name__)


class IdentityProviderError(RuntimeError):
    """Raised when the identity provider rejects or fails a request."""


class IdentityProviderConfigurationError(IdentityProviderError):
    pass


class IdentityProvider:
    """Account store that owns user identities and credentials."""

    name = "base"

    def email_exists(self, email: str) -> bool:
        raise NotImplementedError

    def create_user(self, *, email: str, password: str, display_name: str = "") -> str:
        """Create a confirmed user and return its id."""
        raise NotImplementedError

    def delete_user(self, user_id: str) -> None:
        raise NotImplementedError


class SupabaseIdentityProvider(IdentityProvider):
    name = "supabase"

    def _admin(self) -> Any:
        try:
            client = get_supabase_client(use_service_role=True)
        except SupabaseConfigurationError as exc:
            raise IdentityProviderConfigurationError(
                "Supabase identity backend requires SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY."
            ) from exc
        return client.auth.admin

    def email_exists(self, email: str) -> bool:
        admin = self._admin()
        per_page = max(int(getattr(settings, "IDENTITY_LIST_PAGE_SIZE", 1000)), 1)
        normalized = email.strip().lower()
        page = 1
        while True:
            try:
                users = admin.list_users(page=page, per_page=per_page)
            except Exception as exc:
                raise IdentityProviderError(f"Failed to list users: {exc}") from exc

            users = list(users or [])
            if any(str(getattr(user, "email", "") or "").lower() == normalized for user in users):
                return True
            if len(users) < per_page:
                return False
            page += 1

    def create_user(self, *, email: str, password: str, display_name: str = "") -> str:
        admin = self._admin()
        try:
            response = admin.create_user(
                {
                    "email": email,
                    "password": password,
                    "email_confirm": True,
                    "user_metadata": {"name": display_name},
                }
            )
        except Exception as exc:
            raise IdentityProviderError(f"Failed to create user: {exc}") from exc

        user = getattr(response, "user", None)
        user_id = str(getattr(user, "id", "") or "").strip()
        if not user_id:
            raise IdentityProviderError("Identity provider did not return a user id.")
        return user_id

    def delete_user(self, user_id: str) -> None:
        admin = self._admin()
        try:
            admin.delete_user(user_id)
        except Exception as exc:
            raise IdentityProviderError(f"Failed to delete user {user_id}: {exc}") from exc


class DjangoIdentityProvider(IdentityProvider):
    """Stores identities as ``django.contrib.auth`` users keyed by email."""

    name = "django"

    @staticmethod
    def _username_for(email: str) -> str:
        user_model = get_user_model()
        max_length = user_model._meta.get_field(user_model.USERNAME_FIELD).max_length or 150
        return email if len(email) <= max_length else hash_for_log(email)

    def email_exists(self, email: str) -> bool:
        return get_user_model().objects.filter(email__iexact=email.strip()).exists()

    def create_user(self, *, email: str, password: str, display_name: str = "") -> str:
        user_model = get_user_model()
        try:
            with transaction.atomic():
                user = user_model.objects.create_user(
                    username=self._username_for(email),
                    email=email,
                    password=password,
                    first_name=display_name[:150],
                )
        except IntegrityError as exc:
            raise IdentityProviderError("A user with this email address has already been registered.") from exc
        return str(user.pk)

    def delete_user(self, user_id: str) -> None:
        deleted, _ = get_user_model().objects.filter(pk=user_id).delete()
        if not deleted:
            logger.warning("Identity rollback found no local user %s", user_id)


IDENTITY_BACKENDS: dict[str, type[IdentityProvider]] = {
    SupabaseIdentityProvider.name: SupabaseIdentityProvider,
    DjangoIdentityProvider.name: DjangoIdentityProvider,
}


@lru_cache(maxsize=4)
def _provider_for(backend: str) -> IdentityProvider:
    provider_class = IDENTITY_BACKENDS.get(backend)
    if provider_class is None:
        raise IdentityProviderConfigurationError(f"Unsupported IDENTITY_BACKEND: {backend}")
    return provider_class()


def get_identity_provider() -> IdentityProvider:
    backend = str(getattr(settings, "IDENTITY_BACKEND", "supabase") or "supabase").strip().lower()
    return _provider_for(backend)
