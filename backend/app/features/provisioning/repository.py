"""
Provisioning feature: credential store adapter over the service-role store.
"""

from datetime import datetime, timezone

from app.core.database import SystemStore, run_query


class DeviceCredentialStore:
    """Device lookups and provisioning state transitions.

    Requires a SystemStore: the caller is a device holding a token, not a user,
    so row-level security cannot scope these queries.
    """

    def __init__(self, store: SystemStore):
        if not isinstance(store, SystemStore):
            raise TypeError("DeviceCredentialStore requires a SystemStore")
        self.store = store

    def find_by_token(self, device_token: str) -> dict | None:
        """Device with this provisioning token plus its owner's user id, or None."""
        result = run_query(
            self.store.table("devices")
            .select("id, name, project_id, is_provisioned")
            .eq("device_token", device_token)
            .limit(1)
        )
        if not result.data:
            return None
        device = result.data[0]

        project = run_query(
            self.store.table("projects")
            .select("user_id")
            .eq("id", device["project_id"])
            .limit(1)
        )
        if not project.data:
            return None

        device["owner_id"] = project.data[0]["user_id"]
        return device

    def mark_provisioned(
        self,
        device_id: str,
        mqtt_username: str,
        mqtt_password_hash: str,
        mac_address: str | None = None,
        firmware_version: str | None = None,
    ) -> bool:
        """Flip is_provisioned false → true and store the credentials.

        Single conditional UPDATE (… WHERE is_provisioned = false), so of two
        concurrent callers exactly one gets True.
        """
        updates = {
            "mqtt_username": mqtt_username,
            "mqtt_password_hash": mqtt_password_hash,
            "is_provisioned": True,
            "provisioned_at": datetime.now(timezone.utc).isoformat(),
        }
        if mac_address is not None:
            updates["mac_address"] = mac_address
        if firmware_version is not None:
            updates["firmware_version"] = firmware_version

        result = run_query(
            self.store.table("devices")
            .update(updates)
            .eq("id", device_id)
            .eq("is_provisioned", False)
        )
        return bool(result.data)

    def reset_provisioning(self, device_id: str, mqtt_password_hash: str) -> bool:
        """Undo mark_provisioned, but only if our hash is still the stored one."""
        result = run_query(
            self.store.table("devices")
            .update({
                "is_provisioned": False,
                "mqtt_username": None,
                "mqtt_password_hash": None,
                "provisioned_at": None,
            })
            .eq("id", device_id)
            .eq("mqtt_password_hash", mqtt_password_hash)
        )
        return bool(result.data)
