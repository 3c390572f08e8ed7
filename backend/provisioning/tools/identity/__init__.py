from .backends import (
    DjangoIdentityProvider,
    IdentityProvider,
    IdentityProviderConfigurationError,
    IdentityProviderError,
    SupabaseIdentityProvider,
    get_identity_provider,
)

__all__ = [
    "DjangoIdentityProvider",
    "IdentityProvider",
    "IdentityProviderConfigurationError",
    "IdentityProviderError",
    "SupabaseIdentityProvider",
    "get_identity_provider",
]
