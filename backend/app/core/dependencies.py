"""
FastAPI dependency injection functions.
"""

from functools import lru_cache

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.config import get_settings
from app.core.database import SystemStore, UserStore, create_user_store, get_system_store
from app.core.exceptions import AuthenticationError
from app.core.identity import IdentityVerifier
from app.core.security import UserIdentity
from app.features.provisioning.broker import BrokerRegistrar, EmqxRegistrar, NullRegistrar

# Bearer token scheme for Swagger UI; missing headers are rejected below with 401
bearer_scheme = HTTPBearer(auto_error=False)


def get_system_db() -> SystemStore:
    """Dependency: service-role store (provisioning only)."""
    return get_system_store()


@lru_cache
def get_identity_verifier() -> IdentityVerifier:
    """Dependency: local JWT verification when a secret is configured, else Supabase Auth."""
    settings = get_settings()
    if settings.SUPABASE_JWT_SECRET:
        return IdentityVerifier(verify_locally=True)
    return IdentityVerifier(store=get_system_store())


@lru_cache
def get_broker_registrar() -> BrokerRegistrar:
    """Dependency: EMQX registrar if its API is configured, else a logging no-op."""
    settings = get_settings()
    if not settings.EMQX_API_URL:
        return NullRegistrar()
    return EmqxRegistrar(
        settings.EMQX_API_URL,
        settings.EMQX_API_KEY,
        settings.EMQX_API_SECRET,
        timeout=settings.BROKER_API_TIMEOUT,
    )


def get_current_identity(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    verifier: IdentityVerifier = Depends(get_identity_verifier),
) -> UserIdentity:
    """Dependency: verify the bearer token and return the caller.

    Raises:
        AuthenticationError: header missing, not Bearer, or token rejected.
    """
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AuthenticationError(detail="Missing or invalid Authorization header")
    return verifier.verify(credentials.credentials)


def get_user_db(identity: UserIdentity = Depends(get_current_identity)) -> UserStore:
    """Dependency: store scoped to the verified caller."""
    return create_user_store(identity)
