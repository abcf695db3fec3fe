"""
Provisioning feature: broker credential and topic namespace derivation.

Pure functions only. Secret generation and hashing live in app.core.security.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class TopicNamespace:
    """MQTT topics one device may use. Tied to ids, so stable across epochs."""
    subscribe: str
    state_prefix: str
    telemetry_prefix: str

    def acl_rules(self) -> list[dict]:
        """Broker authorization rules granting exactly this namespace."""
        return [
            {"topic": self.subscribe, "permission": "allow", "action": "subscribe"},
            {"topic": f"{self.state_prefix}#", "permission": "allow", "action": "publish"},
            {"topic": f"{self.telemetry_prefix}#", "permission": "allow", "action": "publish"},
        ]


def _short_id(value: str) -> str:
    return str(value).replace("-", "")[:8]


def derive_username(owner_id: str, device_id: str) -> str:
    """Broker username, e.g. u_11111111_d_22222222.

    Reproducible for audit/debugging; not a security boundary.
    """
    return f"u_{_short_id(owner_id)}_d_{_short_id(device_id)}"


def derive_topics(owner_id: str, device_id: str) -> TopicNamespace:
    """Topic namespace for a device owned by `owner_id`."""
    base = f"u/{owner_id}/d/{device_id}"
    return TopicNamespace(
        subscribe=f"{base}/cmd/#",
        state_prefix=f"{base}/state/",
        telemetry_prefix=f"{base}/tel/",
    )
