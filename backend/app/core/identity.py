"""
Identity verification: bearer token → UserIdentity.

Supabase Auth issues the access tokens. With SUPABASE_JWT_SECRET configured the
token is checked locally; otherwise the auth server is asked (auth.get_user).
"""

import logging

import httpx
from supabase import AuthApiError, AuthRetryableError

from app.core.database import SystemStore
from app.core.exceptions import AuthenticationError, DependencyError
from app.core.security import UserIdentity, decode_access_token

logger = logging.getLogger(__name__)


class IdentityVerifier:
    """Validates a bearer token and yields the caller's identity."""

    def __init__(self, store: SystemStore | None = None, verify_locally: bool = False):
        if store is None and not verify_locally:
            raise ValueError("IdentityVerifier needs a SystemStore unless verifying locally")
        self.store = store
        self.verify_locally = verify_locally

    def verify(self, token: str) -> UserIdentity:
        """Return the identity behind `token`.

        Raises:
            AuthenticationError: token invalid, expired or has no subject.
            DependencyError: identity provider unreachable.
        """
        if self.verify_locally:
            return self._verify_jwt(token)
        return self._verify_remote(token)

    def _verify_jwt(self, token: str) -> UserIdentity:
        payload = decode_access_token(token)
        if payload is None:
            raise AuthenticationError(detail="Invalid or expired token")

        user_id = payload.get("sub")
        if not user_id:
            raise AuthenticationError(detail="Token does not identify a user")
        return UserIdentity(id=user_id, access_token=token, email=payload.get("email"))

    def _verify_remote(self, token: str) -> UserIdentity:
        try:
            response = self.store.auth.get_user(token)
        except AuthApiError as e:
            raise AuthenticationError(detail="Invalid or expired token") from e
        except (AuthRetryableError, httpx.HTTPError) as e:
            logger.error(f"Identity provider unreachable: {e}")
            raise DependencyError("Identity provider") from e

        user = response.user if response else None
        if user is None:
            raise AuthenticationError(detail="Invalid or expired token")
        return UserIdentity(id=str(user.id), access_token=token, email=user.email)
