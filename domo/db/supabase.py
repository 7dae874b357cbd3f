"""Supabase client module for database, storage and realtime access."""

import asyncio
import logging

from domo.core.config import settings
from domo.core.exceptions import DatabaseError, ExternalServiceError
from supabase import AsyncClient, Client, acreate_client, create_client

logger = logging.getLogger(__name__)


class SupabaseClient:
    """Singleton Supabase clients for backend operations.

    Table and storage calls go through the synchronous client. Realtime
    channels are only available on the async client, which is created
    lazily on first broadcast.
    """

    _client: Client | None = None
    _async_client: AsyncClient | None = None
    _async_lock: asyncio.Lock | None = None

    @classmethod
    def get_client(cls) -> Client:
        """Get or create the Supabase client singleton.

        Returns:
            Initialized Supabase client.

        Raises:
            DatabaseError: If client initialization fails.
        """
        if cls._client is None:
            try:
                cls._client = create_client(
                    settings.SUPABASE_URL,
                    settings.SUPABASE_SERVICE_ROLE_KEY.get_secret_value(),
                )
                logger.info("Supabase client initialized successfully")
            except Exception as e:
                logger.exception("Failed to initialize Supabase client")
                raise DatabaseError(f"Failed to initialize database connection: {e}") from e
        return cls._client

    @classmethod
    async def get_realtime_client(cls) -> AsyncClient:
        """Get or create the async Supabase client used for realtime channels.

        Raises:
            ExternalServiceError: If client initialization fails.
        """
        if cls._async_client is None:
            if cls._async_lock is None:
                cls._async_lock = asyncio.Lock()
            async with cls._async_lock:
                if cls._async_client is None:
                    try:
                        cls._async_client = await acreate_client(
                            settings.SUPABASE_URL,
                            settings.SUPABASE_SERVICE_ROLE_KEY.get_secret_value(),
                        )
                        logger.info("Supabase realtime client initialized successfully")
                    except Exception as e:
                        logger.exception("Failed to initialize Supabase realtime client")
                        raise ExternalServiceError(
                            "supabase_realtime", f"Failed to initialize realtime client: {e}"
                        ) from e
        return cls._async_client


# Convenience function for dependency injection
def get_supabase_client() -> Client:
    """Get Supabase client for FastAPI dependency injection.

    Returns:
        Supabase client instance.
    """
    return SupabaseClient.get_client()
