"""
Provisioning feature: Pydantic schemas for request/response models.
"""

from pydantic import BaseModel, Field

DEVICE_TOKEN_PATTERN = r"^[A-Za-z0-9_-]{64}$"
MAC_ADDRESS_PATTERN = r"^([0-9A-Fa-f]{2}:){5}[0-9A-Fa-f]{2}$"


# ── Requests ─────────────────────────────────────────────
class ProvisionRequest(BaseModel):
    """Sent by the device on first boot."""
    device_token: str = Field(..., min_length=64, max_length=64, pattern=DEVICE_TOKEN_PATTERN)
    mac_address: str | None = Field(None, pattern=MAC_ADDRESS_PATTERN)
    firmware_version: str | None = None


# ── Responses ────────────────────────────────────────────
class MqttCredentials(BaseModel):
    host: str
    port: int
    username: str
    password: str  # only time the plaintext password leaves the server
    client_id: str
    use_tls: bool = True


class TopicsResponse(BaseModel):
    subscribe: str
    state_prefix: str
    telemetry_prefix: str


class ProvisionedDevice(BaseModel):
    id: str
    name: str


class ProvisionResponse(BaseModel):
    mqtt: MqttCredentials
    topics: TopicsResponse
    device: ProvisionedDevice
