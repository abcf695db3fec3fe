"""
Projects feature: Pydantic schemas for request/response models.
"""

from pydantic import BaseModel, ConfigDict, Field
from uuid import UUID
from datetime import datetime


# ── Requests ─────────────────────────────────────────────
class ProjectCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=100)
    slug: str | None = Field(None, min_length=1, max_length=50)
    description: str | None = None


class ProjectUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str | None = Field(None, min_length=1, max_length=100)
    slug: str | None = Field(None, min_length=1, max_length=50)
    description: str | None = None


# ── Responses ────────────────────────────────────────────
class ProjectResponse(BaseModel):
    id: UUID
    user_id: UUID
    name: str
    slug: str
    description: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    device_count: int | None = None


class ProjectSummary(BaseModel):
    """Embedded in device responses."""
    id: UUID
    name: str
    slug: str
