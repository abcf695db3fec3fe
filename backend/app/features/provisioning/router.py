"""
Provisioning feature: API routes.

Called by the device firmware on first boot. The device token in the body is
the credential; no bearer token is required or accepted.
"""

from fastapi import APIRouter, Depends

from app.core.database import SystemStore
from app.core.dependencies import get_broker_registrar, get_system_db
from app.features.provisioning.broker import BrokerRegistrar
from app.features.provisioning.repository import DeviceCredentialStore
from app.features.provisioning.schemas import ProvisionRequest, ProvisionResponse
from app.features.provisioning.service import ProvisioningService

router = APIRouter()


def get_provisioning_service(
    store: SystemStore = Depends(get_system_db),
    registrar: BrokerRegistrar = Depends(get_broker_registrar),
) -> ProvisioningService:
    return ProvisioningService(DeviceCredentialStore(store), registrar)


@router.post("", response_model=ProvisionResponse)
async def provision_device(
    data: ProvisionRequest,
    service: ProvisioningService = Depends(get_provisioning_service),
):
    """Exchange a device_token for MQTT credentials and topics (once per epoch)."""
    return await service.provision(
        data.device_token,
        mac_address=data.mac_address,
        firmware_version=data.firmware_version,
    )
