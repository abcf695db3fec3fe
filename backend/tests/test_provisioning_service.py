"""
Unit tests for the provisioning protocol (service + credential store).
"""

import logging
import threading

import httpx
import pytest

from app.core.database import UserStore
from app.core.exceptions import AuthenticationError, ConflictError, DependencyError
from app.core.security import UserIdentity, verify_stored_hash
from app.features.provisioning.repository import DeviceCredentialStore
from app.features.provisioning import service as provisioning_service
from app.features.provisioning.service import ProvisioningService
from fakes import RecordingRegistrar


@pytest.fixture
def credentials(system_store) -> DeviceCredentialStore:
    return DeviceCredentialStore(system_store)


@pytest.fixture
def service(credentials, registrar) -> ProvisioningService:
    return ProvisioningService(credentials, registrar)


class TestDeviceCredentialStore:
    def test_requires_system_store(self, fake_db):
        user_store = UserStore(fake_db, UserIdentity(id="u", access_token="t"))
        with pytest.raises(TypeError):
            DeviceCredentialStore(user_store)

    def test_find_by_token_joins_owner(self, credentials, device, project):
        found = credentials.find_by_token(device["device_token"])
        assert found["id"] == device["id"]
        assert found["owner_id"] == project["user_id"]
        assert "device_token" not in found

    def test_find_by_unknown_token(self, credentials, device):
        assert credentials.find_by_token("a" * 64) is None

    def test_mark_provisioned_only_once(self, credentials, device):
        assert credentials.mark_provisioned(device["id"], "u_x_d_y", "hash-1")
        assert not credentials.mark_provisioned(device["id"], "u_x_d_y", "hash-2")
        assert device["mqtt_password_hash"] == "hash-1"

    def test_reset_only_matches_own_hash(self, credentials, device):
        credentials.mark_provisioned(device["id"], "u_x_d_y", "hash-1")
        assert not credentials.reset_provisioning(device["id"], "someone-elses-hash")
        assert device["is_provisioned"] is True
        assert credentials.reset_provisioning(device["id"], "hash-1")
        assert device["is_provisioned"] is False
        assert device["mqtt_username"] is None


class TestProvision:
    @pytest.mark.asyncio
    async def test_success(self, service, device, registrar):
        result = await service.provision(device["device_token"], "AA:BB:CC:DD:EE:FF", "1.0.0")

        assert result.mqtt.username == "u_11111111_d_22222222"
        assert result.mqtt.client_id == device["id"]
        assert len(result.mqtt.password) >= 32
        assert result.device.name == "Sensor A"

        assert device["is_provisioned"] is True
        assert device["mqtt_username"] == "u_11111111_d_22222222"
        assert device["mac_address"] == "AA:BB:CC:DD:EE:FF"
        assert device["firmware_version"] == "1.0.0"
        assert device["provisioned_at"] is not None
        assert device["mqtt_password_hash"] != result.mqtt.password
        assert verify_stored_hash(result.mqtt.password, device["mqtt_password_hash"])

        assert registrar.created == [("u_11111111_d_22222222", result.mqtt.password)]

    @pytest.mark.asyncio
    async def test_optional_metadata_left_untouched(self, service, device):
        await service.provision(device["device_token"])
        assert device["mac_address"] is None
        assert device["firmware_version"] is None

    @pytest.mark.asyncio
    async def test_unknown_token(self, service, device, fake_db):
        with pytest.raises(AuthenticationError):
            await service.provision("a" * 64)
        assert fake_db.writes() == []

    @pytest.mark.asyncio
    async def test_second_provision_conflicts_without_mutation(self, service, device, fake_db):
        await service.provision(device["device_token"])
        snapshot = dict(device)
        writes = len(fake_db.writes())

        with pytest.raises(ConflictError):
            await service.provision(device["device_token"], "11:22:33:44:55:66")

        assert device == snapshot
        assert len(fake_db.writes()) == writes

    @pytest.mark.asyncio
    async def test_race_loser_gets_conflict(self, credentials, registrar, device):
        """Both callers read the unprovisioned row before either writes."""
        stale = credentials.find_by_token(device["device_token"])

        class StaleReads(DeviceCredentialStore):
            def find_by_token(self, device_token):
                return dict(stale)

        racing = ProvisioningService(StaleReads(credentials.store), registrar)
        first = await racing.provision(device["device_token"])

        with pytest.raises(ConflictError):
            await racing.provision(device["device_token"])

        assert verify_stored_hash(first.mqtt.password, device["mqtt_password_hash"])
        assert len(registrar.created) == 1

    @pytest.mark.asyncio
    async def test_broker_failure_rolls_back(self, service, device, registrar):
        registrar.fail = True
        with pytest.raises(DependencyError):
            await service.provision(device["device_token"])

        assert device["is_provisioned"] is False
        assert device["mqtt_password_hash"] is None

        # Retry succeeds once the broker is back
        registrar.fail = False
        result = await service.provision(device["device_token"])
        assert result.mqtt.username == "u_11111111_d_22222222"

    @pytest.mark.asyncio
    async def test_store_timeout_is_dependency_error(self, service, device, fake_db):
        fake_db.fail_with = httpx.ReadTimeout("timed out")
        with pytest.raises(DependencyError):
            await service.provision(device["device_token"])

    @pytest.mark.asyncio
    async def test_hashing_runs_off_the_event_loop(self, service, device, monkeypatch):
        threads = []

        def recording_hash(password):
            threads.append(threading.get_ident())
            return "hash"

        monkeypatch.setattr(provisioning_service, "hash_for_storage", recording_hash)
        await service.provision(device["device_token"])

        assert threads and threads[0] != threading.get_ident()
        assert device["mqtt_password_hash"] == "hash"


class CrashingRegistrar(RecordingRegistrar):
    async def create_account(self, username, password, topics):
        raise RuntimeError("unexpected broker response")


class FlakyReset(DeviceCredentialStore):
    """Credential store whose first `failures` resets time out."""

    def __init__(self, store, failures: int):
        super().__init__(store)
        self.failures = failures
        self.reset_calls = 0

    def reset_provisioning(self, device_id, mqtt_password_hash):
        self.reset_calls += 1
        if self.reset_calls <= self.failures:
            raise DependencyError("Data store", "The data store timed out. Please retry.")
        return super().reset_provisioning(device_id, mqtt_password_hash)


class TestRollback:
    @pytest.mark.asyncio
    async def test_unexpected_registrar_error_rolls_back(self, credentials, device):
        service = ProvisioningService(credentials, CrashingRegistrar())
        with pytest.raises(RuntimeError):
            await service.provision(device["device_token"])

        assert device["is_provisioned"] is False
        assert device["mqtt_password_hash"] is None

    @pytest.mark.asyncio
    async def test_reset_timeout_is_retried(self, system_store, registrar, device):
        flaky = FlakyReset(system_store, failures=1)
        registrar.fail = True
        with pytest.raises(DependencyError) as exc_info:
            await ProvisioningService(flaky, registrar).provision(device["device_token"])

        assert exc_info.value.message == "MQTT broker unavailable"
        assert flaky.reset_calls == 2
        assert device["is_provisioned"] is False

        registrar.fail = False
        result = await ProvisioningService(flaky, registrar).provision(device["device_token"])
        assert result.mqtt.username == "u_11111111_d_22222222"

    @pytest.mark.asyncio
    async def test_failed_rollback_keeps_registration_error(self, system_store, registrar, device, caplog):
        flaky = FlakyReset(system_store, failures=provisioning_service.ROLLBACK_ATTEMPTS)
        registrar.fail = True
        with caplog.at_level(logging.ERROR, logger=provisioning_service.__name__):
            with pytest.raises(DependencyError) as exc_info:
                await ProvisioningService(flaky, registrar).provision(device["device_token"])

        assert exc_info.value.message == "MQTT broker unavailable"
        assert flaky.reset_calls == provisioning_service.ROLLBACK_ATTEMPTS
        assert "Rollback failed" in caplog.text
