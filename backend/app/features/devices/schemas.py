"""
Devices feature: Pydantic schemas for request/response models.

Responses never carry mqtt_password_hash; device_token only appears in
DeviceWithTokenResponse (creation and regeneration).
"""

from pydantic import BaseModel, ConfigDict, Field
from uuid import UUID
from datetime import datetime

from app.features.projects.schemas import ProjectSummary


# ── Requests ─────────────────────────────────────────────
class DeviceCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    project_id: UUID
    name: str = Field(..., min_length=1, max_length=100)
    hardware_type: str | None = Field(None, max_length=50)


class DeviceUpdate(BaseModel):
    """Only name and hardware_type are mutable; project_id is fixed at creation."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str | None = Field(None, min_length=1, max_length=100)
    hardware_type: str | None = Field(None, min_length=1, max_length=50)


# ── Responses ────────────────────────────────────────────
class DeviceResponse(BaseModel):
    id: UUID
    project_id: UUID
    name: str
    hardware_type: str | None = None
    is_provisioned: bool = False
    mqtt_username: str | None = None
    mac_address: str | None = None
    firmware_version: str | None = None
    provisioned_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    project: ProjectSummary | None = None
    channels: list[dict] | None = None


class DeviceWithTokenResponse(DeviceResponse):
    device_token: str
