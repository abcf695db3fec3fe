"""
Devices feature: API routes.
"""

from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, Response, status

from app.core.database import UserStore
from app.core.dependencies import get_broker_registrar, get_user_db
from app.features.devices.schemas import (
    DeviceCreate,
    DeviceResponse,
    DeviceUpdate,
    DeviceWithTokenResponse,
)
from app.features.devices.service import DevicesService
from app.features.provisioning.broker import BrokerRegistrar

router = APIRouter()


@router.get("")
async def list_devices(
    project_id: UUID | None = None,
    db: UserStore = Depends(get_user_db),
):
    """List all devices (optionally filtered by project)."""
    service = DevicesService(db)
    devices = service.list_devices(str(project_id) if project_id else None)
    return {"devices": [DeviceResponse(**d) for d in devices]}


@router.get("/{device_id}")
async def get_device(device_id: UUID, db: UserStore = Depends(get_user_db)):
    """Get a single device with its channels."""
    service = DevicesService(db)
    return {"device": DeviceResponse(**service.get_device(str(device_id)))}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_device(data: DeviceCreate, db: UserStore = Depends(get_user_db)):
    """Create a new device. The response is the only time device_token is shown."""
    service = DevicesService(db)
    device = service.create_device(str(data.project_id), data.name, data.hardware_type)
    return {
        "device": DeviceWithTokenResponse(**device),
        "message": "Save this device_token! It will not be shown again.",
    }


@router.patch("/{device_id}")
async def update_device(
    device_id: UUID,
    data: DeviceUpdate,
    db: UserStore = Depends(get_user_db),
):
    """Update a device (name, hardware_type only)."""
    service = DevicesService(db)
    device = service.update_device(str(device_id), data.model_dump(exclude_unset=True))
    return {"device": DeviceResponse(**device)}


@router.delete("/{device_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_device(
    device_id: UUID,
    background_tasks: BackgroundTasks,
    db: UserStore = Depends(get_user_db),
    registrar: BrokerRegistrar = Depends(get_broker_registrar),
):
    """Delete a device (cascades to channels) and revoke its broker account."""
    service = DevicesService(db)
    username = service.delete_device(str(device_id))
    if username:
        background_tasks.add_task(registrar.revoke_account, username)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{device_id}/regenerate-token")
async def regenerate_token(
    device_id: UUID,
    background_tasks: BackgroundTasks,
    db: UserStore = Depends(get_user_db),
    registrar: BrokerRegistrar = Depends(get_broker_registrar),
):
    """Generate a new device_token (invalidates the old token and broker credentials)."""
    service = DevicesService(db)
    device, username = service.regenerate_token(str(device_id))
    background_tasks.add_task(service.revoke_previous_epoch, registrar, str(device_id), username)
    return {
        "device": DeviceWithTokenResponse(**device),
        "message": "New device_token generated. Save it! The old token is now invalid.",
    }
