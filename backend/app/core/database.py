"""
Database connections: Supabase store capabilities.

Two capability types, never interchangeable:
  SystemStore: service_role key, bypasses RLS. Only the provisioning flow
               (authenticated by device token, not by a user) receives one.
  UserStore:   anon key + the caller's JWT, so RLS scopes every query to the
               caller. Built per request from a verified identity.
"""

import logging
from functools import lru_cache

import httpx
from postgrest.exceptions import APIError
from supabase import create_client, Client, ClientOptions

from app.config import get_settings
from app.core.exceptions import ConflictError, DependencyError
from app.core.security import UserIdentity

logger = logging.getLogger(__name__)

# PostgreSQL unique_violation
UNIQUE_VIOLATION = "23505"


class SystemStore:
    """Service-role access to the data store (bypasses RLS)."""

    def __init__(self, client: Client):
        self._client = client

    def table(self, name: str):
        return self._client.table(name)

    @property
    def auth(self):
        """Supabase Auth admin API, used to verify user access tokens."""
        return self._client.auth


class UserStore:
    """Caller-scoped access to the data store (RLS applies)."""

    def __init__(self, client: Client, identity: UserIdentity):
        self._client = client
        self.identity = identity

    @property
    def user_id(self) -> str:
        return self.identity.id

    def table(self, name: str):
        return self._client.table(name)


def _client_options() -> ClientOptions:
    settings = get_settings()
    return ClientOptions(
        postgrest_client_timeout=settings.STORE_TIMEOUT_SECONDS,
        auto_refresh_token=False,
        persist_session=False,
    )


@lru_cache
def get_system_store() -> SystemStore:
    """Process-wide service-role store (created once, passed by reference)."""
    settings = get_settings()
    if not settings.SUPABASE_SERVICE_KEY:
        raise ValueError("SUPABASE_SERVICE_KEY not configured")
    client = create_client(
        settings.SUPABASE_URL, settings.SUPABASE_SERVICE_KEY, options=_client_options()
    )
    return SystemStore(client)


def create_user_store(identity: UserIdentity) -> UserStore:
    """Store scoped to one verified caller."""
    settings = get_settings()
    client = create_client(
        settings.SUPABASE_URL, settings.SUPABASE_KEY, options=_client_options()
    )
    client.postgrest.auth(identity.access_token)
    return UserStore(client, identity)


def run_query(query, conflict_message: str | None = None):
    """Execute a PostgREST query, mapping transport failures to DependencyError.

    If conflict_message is given, a unique-constraint violation becomes a
    ConflictError with that message. Other API errors propagate unchanged.
    """
    try:
        return query.execute()
    except APIError as e:
        if conflict_message and e.code == UNIQUE_VIOLATION:
            raise ConflictError(conflict_message) from e
        raise
    except httpx.TimeoutException as e:
        logger.error(f"Data store timed out: {e}")
        raise DependencyError("Data store", "The data store timed out. Please retry.") from e
    except httpx.TransportError as e:
        logger.error(f"Data store unreachable: {e}")
        raise DependencyError("Data store") from e
