"""
Database connection management.

Provides the Supabase client singleton used by the Supabase record store.
"""

from supabase import create_client, Client
from functools import lru_cache
import structlog

from config.settings import settings
from exceptions import StoreUnavailableError

logger = structlog.get_logger(__name__)


@lru_cache()
def get_supabase_client() -> Client:
    """
    Get cached Supabase client instance.

    Uses lru_cache to ensure only one client is created.
    Call get_supabase_client.cache_clear() to reconnect.

    Returns:
        Client: Supabase client

    Raises:
        StoreUnavailableError: If credentials are missing or connection fails
    """
    if not settings.supabase_configured:
        raise StoreUnavailableError("connect", "Supabase credentials are not configured")

    try:
        logger.info(
            "connecting_to_supabase",
            url=settings.supabase_url[:30] + "..."  # Log partial URL only
        )

        client = create_client(
            settings.supabase_url,
            settings.supabase_key
        )

        logger.info(
            "supabase_connected",
            status="success"
        )

        return client

    except Exception as e:
        logger.error(
            "supabase_connection_failed",
            error=str(e),
            error_type=type(e).__name__
        )
        raise StoreUnavailableError("connect", str(e)) from e


# Convenience alias
db = get_supabase_client


# ===================
# HELPER FUNCTIONS
# ===================

def check_connection() -> dict:
    """
    Check record store connection health.

    Returns:
        dict: Connection status with details
    """
    if settings.record_store_backend != "supabase":
        return {
            "status": "healthy",
            "backend": settings.record_store_backend,
        }

    try:
        client = get_supabase_client()

        records = (
            client.table(settings.records_table)
            .select("tracking_number", count="exact")
            .limit(1)
            .execute()
        )

        return {
            "status": "healthy",
            "backend": "supabase",
            "records_count": records.count
        }

    except Exception as e:
        return {
            "status": "unhealthy",
            "backend": "supabase",
            "error": str(e)
        }


def reset_connection():
    """
    Reset the cached database connection.

    Call this if connection becomes stale or after config changes.
    """
    get_supabase_client.cache_clear()
    logger.info("database_connection_reset")
