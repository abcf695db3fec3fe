"""
Projects feature: API routes.
"""

from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, Response, status

from app.core.database import UserStore
from app.core.dependencies import get_broker_registrar, get_user_db
from app.features.projects.schemas import ProjectCreate, ProjectResponse, ProjectUpdate
from app.features.projects.service import ProjectsService
from app.features.provisioning.broker import BrokerRegistrar

router = APIRouter()


@router.get("")
async def list_projects(db: UserStore = Depends(get_user_db)):
    """List all projects for the current user."""
    service = ProjectsService(db)
    return {"projects": [ProjectResponse(**p) for p in service.list_projects()]}


@router.get("/{project_id}")
async def get_project(project_id: UUID, db: UserStore = Depends(get_user_db)):
    """Get a single project with device count."""
    service = ProjectsService(db)
    return {"project": ProjectResponse(**service.get_project(str(project_id)))}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_project(data: ProjectCreate, db: UserStore = Depends(get_user_db)):
    """Create a new project."""
    service = ProjectsService(db)
    project = service.create_project(data.name, data.slug, data.description)
    return {"project": ProjectResponse(**project)}


@router.patch("/{project_id}")
async def update_project(
    project_id: UUID,
    data: ProjectUpdate,
    db: UserStore = Depends(get_user_db),
):
    """Update a project."""
    service = ProjectsService(db)
    project = service.update_project(str(project_id), data.model_dump(exclude_unset=True))
    return {"project": ProjectResponse(**project)}


@router.delete("/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_project(
    project_id: UUID,
    background_tasks: BackgroundTasks,
    db: UserStore = Depends(get_user_db),
    registrar: BrokerRegistrar = Depends(get_broker_registrar),
):
    """Delete a project (cascades to devices and channels) and revoke their broker accounts."""
    service = ProjectsService(db)
    for username in service.delete_project(str(project_id)):
        background_tasks.add_task(registrar.revoke_account, username)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
