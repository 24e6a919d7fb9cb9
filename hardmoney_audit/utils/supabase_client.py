"""Supabase client initialization for the audit store."""

from typing import Optional

from supabase import create_client, Client

from hardmoney_audit.config.settings import settings
from hardmoney_audit.config.logger import app_logger

_supabase_admin_client: Optional[Client] = None


def get_supabase_admin_client() -> Client:
    """Get or create Supabase admin client with service role key.

    The collector writes with the service role so that the append-only
    audit table can stay closed to anon/public keys.

    Returns:
        Client: Supabase admin client instance

    Raises:
        ValueError: If Supabase URL or service role key is not configured
    """
    global _supabase_admin_client

    if _supabase_admin_client is not None:
        return _supabase_admin_client

    if not settings.SUPABASE_URL or not settings.SUPABASE_SERVICE_ROLE_KEY:
        raise ValueError(
            "Supabase URL and SERVICE_ROLE_KEY must be configured for the audit store. "
            "Set SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY in .env"
        )

    try:
        _supabase_admin_client = create_client(
            settings.SUPABASE_URL,
            settings.SUPABASE_SERVICE_ROLE_KEY
        )
        app_logger.info("Supabase admin client initialized successfully")
        return _supabase_admin_client
    except Exception as e:
        app_logger.error(f"Failed to initialize Supabase admin client: {e}")
        raise
