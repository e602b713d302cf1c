import functools
import logging
import time
from typing import Callable, TypeVar

import httpx
from postgrest.exceptions import APIError
from supabase import Client

from app.core.config import settings
from app.core.errors import TransientWriteConflict

logger = logging.getLogger(__name__)

T = TypeVar("T")

# PostgREST code for "column not found in the schema cache"
SCHEMA_CACHE_MISS = "PGRST204"


def init_db():
    """Verify the Supabase connection at startup.

    Note: Schema is managed via Supabase migrations (see database/schema.py).
    """
    if not settings.supabase_url or not settings.supabase_secret_key:
        logger.warning("Supabase credentials not configured. Database features disabled.")
        return

    try:
        client = get_db()
        client.table("pass_registrations").select("id").limit(1).execute()
        logger.info("Supabase connection verified")
    except Exception as e:
        logger.warning(f"Supabase connection check failed: {e}")
        logger.warning("Make sure migrations have been run and credentials are correct.")


def get_db() -> Client:
    """Get database client - Supabase compatible."""
    from .supabase_client import get_supabase_client
    return get_supabase_client()


def with_retry(max_retries: int = 2, delay: float = 0.1) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Decorator that retries database operations on connection errors.

    Handles transient HTTP connection errors like "Server disconnected" by
    resetting the connection and retrying.

    Args:
        max_retries: Maximum number of retry attempts (default 2)
        delay: Delay in seconds between retries (default 0.1)
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> T:
            from .supabase_client import reset_supabase_client

            last_error = None
            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except (httpx.RemoteProtocolError, httpx.ConnectError) as e:
                    last_error = e
                    if attempt < max_retries:
                        logger.warning(
                            f"Connection error in {func.__name__}, retrying ({attempt + 1}/{max_retries}): {e}"
                        )
                        reset_supabase_client()
                        time.sleep(delay)
                    else:
                        logger.error(f"Connection error in {func.__name__} after {max_retries} retries: {e}")
                        raise
            raise last_error
        return wrapper
    return decorator


def is_stale_schema_error(error: APIError, column: str) -> bool:
    """Detect a write rejected because ``column`` is not yet in the schema cache."""
    message = f"{error.message or ''} {error.details or ''}"
    return column in message and (error.code == SCHEMA_CACHE_MISS or "schema cache" in message)


def update_with_schema_fallback(table: str, match: dict, values: dict, optional_column: str) -> list[dict]:
    """Update rows, retrying exactly once without ``optional_column``.

    Supabase's schema cache can lag behind a migration, in which case the
    write path rejects a column that exists. The retry drops that column and
    keeps everything else.

    Raises:
        TransientWriteConflict: if the reduced write fails as well.
        APIError: for any other PostgREST failure.
    """
    def _execute(payload: dict) -> list[dict]:
        query = get_db().table(table).update(payload)
        for column, value in match.items():
            query = query.eq(column, value)
        result = query.execute()
        return result.data if result and result.data else []

    try:
        return _execute(values)
    except APIError as e:
        if optional_column not in values or not is_stale_schema_error(e, optional_column):
            raise
        logger.warning(f"Update on {table} rejected {optional_column} ({e.message}), retrying without it")

    reduced = {k: v for k, v in values.items() if k != optional_column}
    try:
        return _execute(reduced)
    except APIError as e:
        logger.error(f"Reduced update on {table} failed: {e.message}")
        raise TransientWriteConflict() from e
