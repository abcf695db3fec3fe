"""
Provisioning feature: MQTT broker account registration.

EMQX v5 management API (built-in database authn + authz):
  Create user:   POST   /api/v5/authentication/password_based:built_in_database/users
  Reset pass:    PUT    /api/v5/authentication/password_based:built_in_database/users/{user_id}
  Delete user:   DELETE /api/v5/authentication/password_based:built_in_database/users/{user_id}
  ACL rules:     POST   /api/v5/authorization/sources/built_in_database/rules/users
                 PUT    /api/v5/authorization/sources/built_in_database/rules/users/{username}
                 DELETE /api/v5/authorization/sources/built_in_database/rules/users/{username}
Auth: HTTP Basic with an API key / secret pair.
"""

import logging
import httpx

from app.core.exceptions import DependencyError
from app.features.provisioning.credentials import TopicNamespace

logger = logging.getLogger(__name__)

AUTHN_USERS_PATH = "/api/v5/authentication/password_based:built_in_database/users"
AUTHZ_USERS_PATH = "/api/v5/authorization/sources/built_in_database/rules/users"


class BrokerRegistrar:
    """Creates and revokes per-device broker accounts."""

    async def create_account(self, username: str, password: str, topics: TopicNamespace) -> None:
        """Register `username` with its ACL. Raises DependencyError on failure."""
        raise NotImplementedError

    async def revoke_account(self, username: str) -> bool:
        """Remove `username` and its ACL. Returns False if the broker could not be reached."""
        raise NotImplementedError


class NullRegistrar(BrokerRegistrar):
    """Used when no broker API is configured: accounts are managed out of band."""

    async def create_account(self, username: str, password: str, topics: TopicNamespace) -> None:
        logger.warning(f"Broker API not configured; account {username} not registered")

    async def revoke_account(self, username: str) -> bool:
        logger.warning(f"Broker API not configured; account {username} not revoked")
        return True


class EmqxRegistrar(BrokerRegistrar):
    """Registrar backed by the EMQX management REST API."""

    def __init__(
        self,
        api_url: str,
        api_key: str,
        api_secret: str,
        timeout: int = 10,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_url = api_url.rstrip("/")
        self._auth = (api_key, api_secret)
        self._timeout = float(timeout)
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.api_url,
            auth=self._auth,
            timeout=self._timeout,
            transport=self._transport,
        )

    async def create_account(self, username: str, password: str, topics: TopicNamespace) -> None:
        rules = topics.acl_rules()
        try:
            async with self._client() as client:
                response = await client.post(
                    AUTHN_USERS_PATH, json={"user_id": username, "password": password}
                )
                if response.status_code == 409:
                    # Left over from an earlier epoch that was never revoked
                    response = await client.put(
                        f"{AUTHN_USERS_PATH}/{username}", json={"password": password}
                    )
                response.raise_for_status()

                response = await client.post(
                    AUTHZ_USERS_PATH, json=[{"username": username, "rules": rules}]
                )
                if response.status_code == 409:
                    response = await client.put(
                        f"{AUTHZ_USERS_PATH}/{username}",
                        json={"username": username, "rules": rules},
                    )
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"EMQX rejected account {username}: HTTP {e.response.status_code}")
            raise DependencyError("MQTT broker") from e
        except httpx.HTTPError as e:
            logger.error(f"EMQX unreachable while creating {username}: {e}")
            raise DependencyError("MQTT broker") from e

        logger.info(f"Registered broker account {username}")

    async def revoke_account(self, username: str) -> bool:
        try:
            async with self._client() as client:
                for path in (AUTHN_USERS_PATH, AUTHZ_USERS_PATH):
                    response = await client.delete(f"{path}/{username}")
                    if response.status_code != 404:
                        response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"❌ Failed to revoke broker account {username}: {e}")
            return False

        logger.info(f"Revoked broker account {username}")
        return True
