"""
Provisioning feature: exchange a one-time device token for broker credentials.
"""

import logging

from fastapi.concurrency import run_in_threadpool

from app.config import Settings, get_settings
from app.core.exceptions import AuthenticationError, ConflictError, DependencyError
from app.core.security import generate_secure_password, hash_for_storage
from app.features.provisioning.broker import BrokerRegistrar
from app.features.provisioning.credentials import derive_topics, derive_username
from app.features.provisioning.repository import DeviceCredentialStore
from app.features.provisioning.schemas import (
    MqttCredentials,
    ProvisionedDevice,
    ProvisionResponse,
    TopicsResponse,
)

logger = logging.getLogger(__name__)

ALREADY_PROVISIONED = "This device has already been provisioned. Use regenerate-token to re-provision."
ROLLBACK_ATTEMPTS = 3


class ProvisioningService:
    """
    Device provisioning protocol.

    Flow: resolve token → reject if provisioned → generate + hash password →
    conditional write → register with broker → return plaintext password once.

    Nothing is returned unless the store already reflects the new credentials.
    """

    def __init__(
        self,
        credentials: DeviceCredentialStore,
        registrar: BrokerRegistrar,
        settings: Settings | None = None,
    ):
        self.credentials = credentials
        self.registrar = registrar
        self.settings = settings or get_settings()

    async def provision(
        self,
        device_token: str,
        mac_address: str | None = None,
        firmware_version: str | None = None,
    ) -> ProvisionResponse:
        """Provision the device holding `device_token`.

        Raises:
            AuthenticationError: unknown token.
            ConflictError: device already provisioned in this epoch.
            DependencyError: store or broker unavailable; safe to retry.
        """
        device = self.credentials.find_by_token(device_token)
        if device is None:
            raise AuthenticationError(
                "Invalid device token", "Device not found or token is incorrect"
            )
        if device["is_provisioned"]:
            raise ConflictError("Already provisioned", ALREADY_PROVISIONED)

        device_id = str(device["id"])
        owner_id = str(device["owner_id"])

        username = derive_username(owner_id, device_id)
        password = generate_secure_password()
        password_hash = await run_in_threadpool(hash_for_storage, password)

        claimed = self.credentials.mark_provisioned(
            device_id,
            mqtt_username=username,
            mqtt_password_hash=password_hash,
            mac_address=mac_address,
            firmware_version=firmware_version,
        )
        if not claimed:
            # Another request provisioned this device between our read and write
            logger.warning(f"Concurrent provisioning rejected for device {device_id}")
            raise ConflictError("Already provisioned", ALREADY_PROVISIONED)

        topics = derive_topics(owner_id, device_id)
        try:
            await self.registrar.create_account(username, password, topics)
        except Exception:
            self._roll_back(device_id, password_hash)
            raise

        logger.info(f"Device {device_id} provisioned as {username}")

        return ProvisionResponse(
            mqtt=MqttCredentials(
                host=self.settings.MQTT_BROKER_HOST,
                port=self.settings.MQTT_BROKER_PORT,
                username=username,
                password=password,
                client_id=device_id,
                use_tls=self.settings.MQTT_USE_TLS,
            ),
            topics=TopicsResponse(
                subscribe=topics.subscribe,
                state_prefix=topics.state_prefix,
                telemetry_prefix=topics.telemetry_prefix,
            ),
            device=ProvisionedDevice(id=device_id, name=device["name"]),
        )

    def _roll_back(self, device_id: str, password_hash: str) -> None:
        """Return a claimed device to unprovisioned after a failed registration.

        Never raises: the caller re-raises the registration error.
        """
        for attempt in range(1, ROLLBACK_ATTEMPTS + 1):
            try:
                self.credentials.reset_provisioning(device_id, password_hash)
            except Exception:
                if attempt == ROLLBACK_ATTEMPTS:
                    logger.exception(
                        f"Rollback failed for device {device_id}; regenerate its token to recover"
                    )
                    return
                logger.warning(f"Rollback attempt {attempt} failed for device {device_id}, retrying")
            else:
                logger.error(f"Broker registration failed; device {device_id} rolled back to unprovisioned")
                return
