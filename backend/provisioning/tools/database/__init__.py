from .supabase import SupabaseConfigurationError, get_supabase_client

__all__ = ["SupabaseConfigurationError", "get_supabase_client"]
