"""
Devices feature: Service layer for device management and token regeneration.
"""

import logging

from app.core.database import UserStore, run_query
from app.core.exceptions import ClientInputError, NotFoundError
from app.core.security import generate_device_token
from app.features.projects.service import ProjectsService
from app.features.provisioning.broker import BrokerRegistrar
from app.features.provisioning.credentials import derive_username

logger = logging.getLogger(__name__)

DEFAULT_HARDWARE_TYPE = "ESP32"


class DevicesService:
    """
    CRUD for devices in the caller's projects.

    Ownership goes through the project: a device is visible only if its
    project_id belongs to one of the caller's projects.
    """

    def __init__(self, store: UserStore):
        self.store = store
        self.projects = ProjectsService(store)

    def _get_owned_device(self, device_id: str) -> tuple[dict, dict]:
        """Return (device, project) or raise NotFoundError."""
        owned = self.projects.owned_projects()
        result = run_query(
            self.store.table("devices").select("*").eq("id", device_id).limit(1)
        )
        if not result.data or str(result.data[0]["project_id"]) not in owned:
            raise NotFoundError("Device")
        device = result.data[0]
        return device, owned[str(device["project_id"])]

    def list_devices(self, project_id: str | None = None) -> list[dict]:
        """Devices across the caller's projects (or one project), newest first."""
        owned = self.projects.owned_projects()
        project_ids = list(owned)
        if project_id is not None:
            project_ids = [p for p in project_ids if p == project_id]
        if not project_ids:
            return []

        result = run_query(
            self.store.table("devices")
            .select("*")
            .in_("project_id", project_ids)
            .order("created_at", desc=True)
        )
        for device in result.data:
            device["project"] = owned[str(device["project_id"])]
        return result.data

    def get_device(self, device_id: str) -> dict:
        """Single device with its project and channels."""
        device, project = self._get_owned_device(device_id)
        channels = run_query(
            self.store.table("device_channels").select("*").eq("device_id", device_id)
        )
        device["project"] = project
        device["channels"] = channels.data
        return device

    def create_device(self, project_id: str, name: str, hardware_type: str | None = None) -> dict:
        """Create a device with a fresh provisioning token.

        The returned row includes device_token; no later read returns it.
        """
        if project_id not in self.projects.owned_projects():
            raise NotFoundError("Project")

        result = run_query(
            self.store.table("devices").insert({
                "project_id": project_id,
                "name": name,
                "hardware_type": hardware_type or DEFAULT_HARDWARE_TYPE,
                "device_token": generate_device_token(),
            })
        )
        device = result.data[0]
        logger.info(f"Device {device['id']} created in project {project_id}")
        return device

    def update_device(self, device_id: str, data: dict) -> dict:
        """Update name / hardware_type."""
        updates = {k: v for k, v in data.items() if v is not None}
        if not updates:
            raise ClientInputError("No valid fields to update")

        self._get_owned_device(device_id)
        result = run_query(
            self.store.table("devices").update(updates).eq("id", device_id)
        )
        if not result.data:
            raise NotFoundError("Device")
        return result.data[0]

    def delete_device(self, device_id: str) -> str | None:
        """Delete a device (cascades to channels).

        Returns:
            Broker username to revoke, if the device was provisioned.
        """
        device, _ = self._get_owned_device(device_id)
        run_query(self.store.table("devices").delete().eq("id", device_id))
        logger.info(f"Device {device_id} deleted")
        return device.get("mqtt_username")

    def regenerate_token(self, device_id: str) -> tuple[dict, str]:
        """Rotate the provisioning token and start a new provisioning epoch.

        Clears the broker credentials and resets is_provisioned, so the old
        password stops verifying and the device must provision again.

        Returns:
            (device row including the new device_token, broker username to
            revoke). The username is derived rather than read from the row, so
            a provisioning that commits between our read and write is still
            revoked.
        """
        self._get_owned_device(device_id)

        result = run_query(
            self.store.table("devices")
            .update({
                "device_token": generate_device_token(),
                "is_provisioned": False,
                "mqtt_username": None,
                "mqtt_password_hash": None,
                "provisioned_at": None,
            })
            .eq("id", device_id)
        )
        if not result.data:
            raise NotFoundError("Device")

        logger.info(f"Provisioning token regenerated for device {device_id}")
        return result.data[0], derive_username(self.store.user_id, device_id)

    async def revoke_previous_epoch(self, registrar: BrokerRegistrar, device_id: str, username: str) -> bool:
        """Revoke the broker account of a regenerated device.

        Skipped once the device has provisioned again with its new token: the
        account under `username` then belongs to the new epoch.
        """
        result = run_query(
            self.store.table("devices").select("is_provisioned").eq("id", device_id).limit(1)
        )
        if result.data and result.data[0]["is_provisioned"]:
            logger.info(f"Device {device_id} re-provisioned before revocation of {username}; skipped")
            return False
        return await registrar.revoke_account(username)
