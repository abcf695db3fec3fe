"""
Projects feature: Service layer for project management.

Every query is filtered by the caller's user_id in addition to RLS.
"""

import re

from app.core.database import UserStore, run_query
from app.core.exceptions import ClientInputError, NotFoundError

SLUG_MAX_LENGTH = 50


def generate_slug(name: str) -> str:
    """URL slug from a project name: "My Farm #2" → "my-farm-2"."""
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug[:SLUG_MAX_LENGTH]


class ProjectsService:
    """CRUD for the caller's projects."""

    def __init__(self, store: UserStore):
        self.store = store

    @property
    def user_id(self) -> str:
        return self.store.user_id

    def list_projects(self) -> list[dict]:
        """Caller's projects, newest first."""
        result = run_query(
            self.store.table("projects")
            .select("*")
            .eq("user_id", self.user_id)
            .order("created_at", desc=True)
        )
        return result.data

    def owned_projects(self) -> dict[str, dict]:
        """Map of project id → {id, name, slug} for the caller."""
        result = run_query(
            self.store.table("projects")
            .select("id, name, slug")
            .eq("user_id", self.user_id)
        )
        return {str(p["id"]): p for p in result.data}

    def _get_owned(self, project_id: str) -> dict:
        result = run_query(
            self.store.table("projects")
            .select("*")
            .eq("id", project_id)
            .eq("user_id", self.user_id)
            .limit(1)
        )
        if not result.data:
            raise NotFoundError("Project")
        return result.data[0]

    def get_project(self, project_id: str) -> dict:
        """Single project with its device count."""
        project = self._get_owned(project_id)
        devices = run_query(
            self.store.table("devices")
            .select("id", count="exact")
            .eq("project_id", project_id)
        )
        project["device_count"] = devices.count if devices.count is not None else len(devices.data)
        return project

    def create_project(self, name: str, slug: str | None = None, description: str | None = None) -> dict:
        """Create a project; slug defaults to one derived from the name.

        Raises:
            ClientInputError: no usable slug could be derived.
            ConflictError: the caller already has a project with this slug.
        """
        slug = slug or generate_slug(name)
        if not slug:
            raise ClientInputError("Invalid slug", "Provide a slug containing letters or digits.")

        result = run_query(
            self.store.table("projects").insert({
                "user_id": self.user_id,
                "name": name,
                "slug": slug,
                "description": description,
            }),
            conflict_message="A project with this slug already exists",
        )
        return result.data[0]

    def update_project(self, project_id: str, data: dict) -> dict:
        """Update name / slug / description. `data` holds only fields the client sent."""
        updates = {k: v for k, v in data.items() if k == "description" or v is not None}
        if not updates:
            raise ClientInputError("No valid fields to update")

        result = run_query(
            self.store.table("projects")
            .update(updates)
            .eq("id", project_id)
            .eq("user_id", self.user_id),
            conflict_message="Slug already exists",
        )
        if not result.data:
            raise NotFoundError("Project")
        return result.data[0]

    def delete_project(self, project_id: str) -> list[str]:
        """Delete a project (cascades to devices and channels).

        Returns:
            Broker usernames of the deleted devices that had been provisioned.
        """
        self._get_owned(project_id)
        devices = run_query(
            self.store.table("devices")
            .select("mqtt_username")
            .eq("project_id", project_id)
            .eq("is_provisioned", True)
        )
        usernames = [d["mqtt_username"] for d in devices.data if d.get("mqtt_username")]

        run_query(
            self.store.table("projects")
            .delete()
            .eq("id", project_id)
            .eq("user_id", self.user_id)
        )
        return usernames
